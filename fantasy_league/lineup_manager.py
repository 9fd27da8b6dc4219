"""Lineup management, validation, and round locking logic."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

import pandas as pd

from fantasy_league import data_loader, draft_engine, locks, roster_validator
from fantasy_league.config import LeagueConfig
from fantasy_league.errors import (
    CompositionError,
    InsufficientPlayers,
    RoundLocked,
    ValidationError,
    operation,
    parse_id,
)

logger = logging.getLogger(__name__)


# ── Lineup tiers ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Starter:
    index: int  # 1-5, ordering within the formation

    @property
    def name(self) -> str:
        return 'starter'

    @property
    def multiplier(self) -> float:
        return LeagueConfig.STARTER_MULTIPLIER

    def to_position(self) -> int:
        return self.index


@dataclass(frozen=True)
class SixthMan:
    @property
    def name(self) -> str:
        return 'sixth_man'

    @property
    def multiplier(self) -> float:
        return LeagueConfig.SIXTH_MAN_MULTIPLIER

    def to_position(self) -> int:
        return LeagueConfig.SIXTH_MAN_POSITION


@dataclass(frozen=True)
class Bench:
    @property
    def name(self) -> str:
        return 'bench'

    @property
    def multiplier(self) -> float:
        return LeagueConfig.BENCH_MULTIPLIER

    def to_position(self) -> None:
        return None


LineupTier = Union[Starter, SixthMan, Bench]


def tier_from_position(lineup_position) -> LineupTier:
    """Map a stored lineup_position (1-5, 6 or null) to its tier."""
    if lineup_position is None or pd.isna(lineup_position):
        return Bench()
    value = int(lineup_position)
    if 1 <= value <= LeagueConfig.STARTERS_PER_LINEUP:
        return Starter(value)
    if value == LeagueConfig.SIXTH_MAN_POSITION:
        return SixthMan()
    raise ValueError(f"Invalid lineup_position {lineup_position}")


def scoring_multiplier(tier: LineupTier, is_captain: bool = False) -> float:
    """Captain (when enabled) overrides the tier multiplier."""
    if is_captain and LeagueConfig.CAPTAIN_ENABLED:
        return LeagueConfig.CAPTAIN_MULTIPLIER
    return tier.multiplier


# ── Round classification ───────────────────────────────────────────────────

def _round_games(championship_id: int, round_number: int) -> pd.DataFrame:
    games = data_loader.load_games(championship_id)
    return games[games['round'] == round_number]


def is_round_active(championship_id: int, round_number: int, now: Optional[datetime] = None) -> bool:
    """
    Check if a round is in progress.

    A round is active once any game has started (status moved off
    'scheduled', a score was recorded, or the earliest tip-off time passed)
    and until every game is finished.
    """
    games = _round_games(championship_id, round_number)

    if games.empty:
        return False

    if (games['status'] == 'finished').all():
        return False

    started = ((games['status'] != 'scheduled') | games['home_score'].notna()).any()

    earliest = games['scheduled_at'].min()
    now = now or data_loader.now()
    reached_tip_off = pd.notna(earliest) and now >= earliest

    return bool(started or reached_tip_off)


def get_active_round(championship_id: int, now: Optional[datetime] = None) -> Optional[int]:
    """Get the current active round for a championship (if any)."""
    games = data_loader.load_games(championship_id)
    for round_number in sorted(games['round'].dropna().unique()):
        if is_round_active(championship_id, int(round_number), now):
            return int(round_number)
    return None


def is_round_locked(championship_id: int, now: Optional[datetime] = None) -> bool:
    return get_active_round(championship_id, now) is not None


def is_round_finished(championship_id: int, round_number: int) -> bool:
    games = _round_games(championship_id, round_number)
    return not games.empty and bool((games['status'] == 'finished').all())


def get_latest_finished_round(championship_id: int) -> Optional[int]:
    games = data_loader.load_games(championship_id)
    finished = [
        int(r) for r in games['round'].dropna().unique()
        if is_round_finished(championship_id, int(r))
    ]
    return max(finished) if finished else None


def get_current_round(championship_id: int) -> int:
    """Default round to show: the one after the latest fully finished round."""
    latest = get_latest_finished_round(championship_id)
    return (latest or 0) + 1


def ensure_round_unlocked(championship_id: int, now: Optional[datetime] = None) -> None:
    """
    Raises:
        RoundLocked: a round of this championship is in progress
    """
    active_round = get_active_round(championship_id, now)
    if active_round is not None:
        raise RoundLocked(f"Round {active_round} is in progress. Rosters and lineups are locked until all games finish.")


# ── Lineup writes ──────────────────────────────────────────────────────────

def _apply_lineup(team_id: int, starter_ids: List[int], sixth_man_id: Optional[int], formation: str) -> None:
    """Full replace of a team's lineup positions. Caller holds the team lock and a transaction."""
    slots = data_loader.load_roster_slots()
    team_mask = slots['team_id'] == team_id

    slots['lineup_position'] = slots['lineup_position'].astype(float)
    slots.loc[team_mask, 'lineup_position'] = float('nan')

    for index, player_id in enumerate(starter_ids, start=1):
        slots.loc[team_mask & (slots['player_id'] == player_id), 'lineup_position'] = index

    if sixth_man_id is not None:
        slots.loc[team_mask & (slots['player_id'] == sixth_man_id), 'lineup_position'] = LeagueConfig.SIXTH_MAN_POSITION

    # A captain left on the bench loses the armband
    benched_captain = team_mask & slots['is_captain'] & slots['lineup_position'].isna()
    slots.loc[benched_captain, 'is_captain'] = False

    data_loader.save_roster_slots(slots)
    data_loader.update_team(team_id, lineup_type=formation)


def _validate_lineup_request(roster: pd.DataFrame, starter_ids: List[int], formation: str,
                             sixth_man_id: Optional[int]) -> None:
    if len(starter_ids) != LeagueConfig.STARTERS_PER_LINEUP:
        raise ValidationError(
            f"Must select exactly {LeagueConfig.STARTERS_PER_LINEUP} starters (selected: {len(starter_ids)})"
        )

    if len(starter_ids) != len(set(starter_ids)):
        raise ValidationError("Duplicate players in lineup")

    if sixth_man_id is not None and sixth_man_id in starter_ids:
        raise ValidationError("The sixth man cannot also be a starter")

    try:
        roster_validator.parse_formation(formation)
    except ValueError as e:
        raise ValidationError(str(e))

    roster_ids = set(int(p) for p in roster['player_id'])
    requested = starter_ids + ([sixth_man_id] if sixth_man_id is not None else [])
    if any(player_id not in roster_ids for player_id in requested):
        raise ValidationError("One or more players do not belong to your team")

    positions = roster.set_index('player_id')['position']
    starter_positions = [positions[player_id] for player_id in starter_ids]

    if not roster_validator.matches_formation_order(starter_positions, formation):
        expected = roster_validator.parse_formation(formation).slot_positions()
        raise CompositionError(
            f"Starting lineup does not match formation {formation}: "
            f"expected {', '.join(expected)}, got {', '.join(starter_positions)}"
        )


def _log_lineup_transaction(team_id: int, transaction_type: str, details: str, player_id=None) -> None:
    team = data_loader.get_team(team_id)
    data_loader.append_rows('transaction_log', [{
        'timestamp': data_loader.now(),
        'league_id': int(team['league_id']),
        'team_id': team_id,
        'transaction_type': transaction_type,
        'player_id': player_id,
        'amount': None,
        'details': details,
    }])


@operation
def set_lineup(team_id: int, starter_ids: List[int], formation: str,
               sixth_man_id: Optional[int] = None, now: Optional[datetime] = None):
    """
    Save a team's lineup.

    Args:
        team_id: Team setting the lineup
        starter_ids: 5 player IDs in slot order (Guards first, then Forwards, then Centers)
        formation: Formation id, e.g. '2-2-1'
        sixth_man_id: Optional first substitute

    Everyone else on the roster goes to the bench.
    """
    if not isinstance(starter_ids, (list, tuple)):
        raise ValidationError("Starters must be a list of player IDs")
    starter_ids = [parse_id(p) for p in starter_ids]
    sixth_man_id = None if sixth_man_id is None else parse_id(sixth_man_id)

    with locks.team_lock(team_id, reason='set_lineup'), data_loader.transaction():
        team = data_loader.get_team(team_id)
        league = data_loader.get_league(int(team['league_id']))
        ensure_round_unlocked(league['championship_id'], now)

        roster = draft_engine.get_team_roster(team_id)
        _validate_lineup_request(roster, starter_ids, formation, sixth_man_id)

        _apply_lineup(team_id, starter_ids, sixth_man_id, formation)
        _log_lineup_transaction(
            team_id, 'lineup_change',
            f"{formation}: starters={','.join(map(str, starter_ids))} sixth_man={sixth_man_id}",
        )

    logger.info("Team %s lineup set to %s", team_id, formation)
    return "Lineup updated successfully!", {
        'formation': formation,
        'starters': starter_ids,
        'sixth_man': sixth_man_id,
    }


@operation
def auto_generate(team_id: int, now: Optional[datetime] = None):
    """
    Build a default 2-2-1 lineup from average fantasy points.

    Top 2 Guards, top 2 Forwards and the top Center start; the best remaining
    player is the sixth man and the rest sit on the bench.
    """
    from fantasy_league import score_calculator

    with locks.team_lock(team_id, reason='auto_generate'), data_loader.transaction():
        team = data_loader.get_team(team_id)
        league = data_loader.get_league(int(team['league_id']))
        ensure_round_unlocked(league['championship_id'], now)

        roster = draft_engine.get_team_roster(team_id)
        roster = roster.assign(
            avg_points=[score_calculator.get_player_average_points(int(p)) for p in roster['player_id']]
        ).sort_values(['avg_points', 'player_id'], ascending=[False, True])

        formation = roster_validator.parse_formation(LeagueConfig.DEFAULT_FORMATION)
        starters = []
        for position, needed in formation.as_counts().items():
            pool = roster[roster['position'] == position]
            if len(pool) < needed:
                raise InsufficientPlayers(f"Not enough {position.lower()}s to create a valid lineup")
            starters.extend(int(p) for p in pool['player_id'].head(needed))

        remaining = roster[~roster['player_id'].isin(starters)]
        reserves = [int(p) for p in remaining['player_id'].head(1 + LeagueConfig.BENCH_SLOTS_AUTO)]
        sixth_man_id = reserves[0] if reserves else None

        _apply_lineup(team_id, starters, sixth_man_id, formation.name)
        _log_lineup_transaction(team_id, 'lineup_change', f"auto-generated {formation.name}")

    logger.info("Team %s lineup auto-generated", team_id)
    return "Auto-generated lineup set successfully!", {
        'formation': formation.name,
        'starters': starters,
        'sixth_man': sixth_man_id,
        'bench': reserves[1:],
    }


@operation
def set_captain(team_id: int, player_id: int, now: Optional[datetime] = None):
    """Name a captain. Must be in the starting five or the sixth man."""
    player_id = parse_id(player_id)

    with locks.team_lock(team_id, reason='set_captain'), data_loader.transaction():
        team = data_loader.get_team(team_id)
        league = data_loader.get_league(int(team['league_id']))
        ensure_round_unlocked(league['championship_id'], now)

        slots = data_loader.load_roster_slots()
        team_mask = slots['team_id'] == team_id
        player_mask = team_mask & (slots['player_id'] == player_id)

        if not player_mask.any():
            raise ValidationError("Player does not belong to your team")
        if pd.isna(slots.loc[player_mask, 'lineup_position'].iloc[0]):
            raise ValidationError("The captain must be a starter or the sixth man")

        slots.loc[team_mask, 'is_captain'] = False
        slots.loc[player_mask, 'is_captain'] = True
        data_loader.save_roster_slots(slots)
        _log_lineup_transaction(team_id, 'captain_change', f"captain={player_id}", player_id=player_id)

    return "Captain updated", {'captain': player_id}


# ── Round snapshots ────────────────────────────────────────────────────────

def snapshot_round_lineups(league_id: int, round_number: int, force: bool = False) -> int:
    """
    Freeze every team's lineup for a round, so later changes can't alter its scoring.

    Returns:
        Number of teams snapshotted (teams already captured are skipped unless force)
    """
    with data_loader.transaction():
        teams = data_loader.load_teams(league_id)
        history = data_loader.load_lineup_history()
        slots = data_loader.load_roster_slots()
        taken_at = data_loader.now()

        new_rows = []
        replaced = []
        for team_id in teams['team_id']:
            team_id = int(team_id)
            existing = (history['team_id'] == team_id) & (history['round'] == round_number)
            if existing.any() and not force:
                continue
            if existing.any():
                replaced.append(team_id)

            for _, slot in slots[slots['team_id'] == team_id].iterrows():
                new_rows.append({
                    'team_id': team_id,
                    'round': round_number,
                    'player_id': int(slot['player_id']),
                    'lineup_position': slot['lineup_position'],
                    'is_captain': bool(slot['is_captain']),
                    'snapshot_at': taken_at,
                })

        if replaced:
            history = history[~(history['team_id'].isin(replaced) & (history['round'] == round_number))]
            data_loader.save_lineup_history(history)
        data_loader.append_rows('lineup_history', new_rows)

    count = len(set(row['team_id'] for row in new_rows))
    if count:
        logger.info("Snapshotted round %s lineups for %s team(s) in league %s", round_number, count, league_id)
    return count


def sync_round_locks(now: Optional[datetime] = None) -> int:
    """
    Snapshot lineups of every league whose championship has a round in progress.

    Meant to run whenever the game feed is refreshed.

    Returns:
        Number of team lineups snapshotted
    """
    total = 0
    leagues = data_loader.load_leagues()
    for _, league in leagues.iterrows():
        active_round = get_active_round(league['championship_id'], now)
        if active_round is not None:
            total += snapshot_round_lineups(int(league['league_id']), active_round)
    return total


def get_lineup_for_round(team_id: int, round_number: int) -> pd.DataFrame:
    """
    Lineup used to score a round: the frozen snapshot if one exists, else the live roster.

    Returns:
        DataFrame with player_id, lineup_position, is_captain and player details
    """
    history = data_loader.load_lineup_history()
    snapshot = history[(history['team_id'] == team_id) & (history['round'] == round_number)]
    roster = draft_engine.get_team_roster(team_id)

    if snapshot.empty:
        return roster

    players = data_loader.load_players()
    return snapshot.drop(columns=['round', 'snapshot_at']).merge(
        players[['player_id', 'player_name', 'position', 'price', 'is_active']],
        on='player_id',
        how='left',
    )


# ── Views ──────────────────────────────────────────────────────────────────

def get_validation_state(team_id: int) -> dict:
    """Advisory composition flags for a team's current roster and lineup."""
    team = data_loader.get_team(team_id)
    roster = draft_engine.get_team_roster(team_id)

    starters = roster[roster['lineup_position'].between(1, LeagueConfig.STARTERS_PER_LINEUP)]
    formation = team['lineup_type'] if isinstance(team['lineup_type'], str) else LeagueConfig.DEFAULT_FORMATION
    counts = roster_validator.count_positions(roster['position'])

    return {
        'position_counts': counts,
        'starting_lineup_counts': roster_validator.count_positions(starters['position']),
        'has_valid_team_composition': roster_validator.has_valid_team_composition(counts),
        'has_valid_starting_lineup': roster_validator.has_valid_starting_lineup(starters['position'], formation),
    }


def get_lineup_view(team_id: int, round_number: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    """
    Per-round lineup with scoring.

    Round scoring fields (round_fantasy_points, round_team_points,
    round_total_points) are only present once every game of the round is
    finished.
    """
    from fantasy_league import score_calculator

    team = data_loader.get_team(team_id)
    league = data_loader.get_league(int(team['league_id']))
    championship_id = league['championship_id']

    if round_number is None:
        round_number = get_current_round(championship_id)

    finished = is_round_finished(championship_id, round_number)
    round_scores = score_calculator.calculate_round_scores(team_id, round_number) if finished else None

    if round_scores is not None:
        players = round_scores['players']
    else:
        players = get_lineup_for_round(team_id, round_number).copy()
        tiers = [tier_from_position(p) for p in players['lineup_position']]
        players['tier'] = [t.name for t in tiers]
        players['multiplier'] = [
            scoring_multiplier(t, bool(c)) for t, c in zip(tiers, players['is_captain'])
        ]

    view = {
        'team_id': team_id,
        'round': round_number,
        'formation': team['lineup_type'],
        'is_round_finished': finished,
        'is_round_locked': is_round_locked(championship_id, now),
        'active_round': get_active_round(championship_id, now),
        'players': players.sort_values('lineup_position', na_position='last').reset_index(drop=True),
    }
    if round_scores is not None:
        view['round_total_points'] = round_scores['round_team_points']
    view.update(get_validation_state(team_id))
    return view
