"""Snake draft engine for fantasy league."""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import pandas as pd

from fantasy_league import data_loader, locks, roster_validator
from fantasy_league.config import LeagueConfig
from fantasy_league.errors import (
    CapacityError,
    CompositionError,
    ConflictError,
    NotFoundError,
    StateError,
    TurnViolation,
    ValidationError,
    operation,
    parse_id,
)

logger = logging.getLogger(__name__)


# ── Turn projection ────────────────────────────────────────────────────────

def create_snake_order(team_ids: List[int], num_rounds: int) -> List[Tuple[int, int, int]]:
    """
    Generate snake draft order.

    Args:
        team_ids: List of team IDs in initial draft order
        num_rounds: Number of draft rounds (one per roster slot)

    Returns:
        List of (pick_number, round, team_id) tuples
    """
    draft_order = []
    pick_number = 1

    for round_num in range(1, num_rounds + 1):
        if round_num % 2 == 1:  # Odd rounds: normal order
            round_picks = team_ids
        else:  # Even rounds: reversed order (snake)
            round_picks = list(reversed(team_ids))

        for team_id in round_picks:
            draft_order.append((pick_number, round_num, team_id))
            pick_number += 1

    return draft_order


def round_for_pick(pick_number: int, num_teams: int) -> int:
    return math.ceil(pick_number / num_teams)


def team_on_clock(turn_order: List[int], pick_number: int) -> int:
    """
    Team that owns a pick number, derived from the turn order alone.

    Odd rounds run in turn order, even rounds in reverse.
    """
    num_teams = len(turn_order)
    round_num = round_for_pick(pick_number, num_teams)
    order = turn_order if round_num % 2 == 1 else list(reversed(turn_order))
    return order[(pick_number - 1) % num_teams]


def total_picks(team_size: int, num_teams: int) -> int:
    return int(team_size) * int(num_teams)


def get_turn_order(league_id: int) -> List[int]:
    """Team IDs sorted by draft_order (empty before the draft starts)."""
    teams = data_loader.load_teams(league_id)
    teams = teams[teams['draft_order'].notna()]
    return [int(t) for t in teams.sort_values('draft_order')['team_id']]


# ── Read helpers ───────────────────────────────────────────────────────────

def get_team_roster(team_id: int) -> pd.DataFrame:
    """Get roster for a specific team with player details."""
    slots = data_loader.load_roster_slots()
    team_slots = slots[slots['team_id'] == team_id]

    if team_slots.empty:
        return team_slots.reindex(columns=list(team_slots.columns) + ['player_name', 'position', 'price', 'is_active'])

    players = data_loader.load_players()
    return team_slots.merge(
        players[['player_id', 'player_name', 'position', 'price', 'is_active']],
        on='player_id',
        how='left',
    )


def get_available_players(league_id: int, position: Optional[str] = None, search: Optional[str] = None) -> pd.DataFrame:
    """Active, undrafted players of the league's championship, best (priciest) first."""
    league = data_loader.get_league(league_id)
    players = data_loader.load_players()

    players = players[players['is_active'] & (players['championship_id'] == league['championship_id'])]

    drafted = data_loader.load_draft_picks(league_id)['player_id']
    players = players[~players['player_id'].isin(drafted)]

    if position:
        players = players[players['position'] == position]
    if search:
        players = players[players['player_name'].str.contains(search, case=False, na=False)]

    return players.sort_values(['price', 'player_id'], ascending=[False, True])


def get_time_remaining(league: pd.Series, now: Optional[datetime] = None) -> Optional[float]:
    """Seconds left on the current pick, or None when no pick is running."""
    if league['draft_status'] != 'in_progress':
        return None
    if bool(league['is_paused']):
        remaining = league['pause_time_remaining']
        return None if pd.isna(remaining) else float(remaining)
    if pd.isna(league['pick_started_at']):
        return None

    now = now or data_loader.now()
    elapsed = (now - league['pick_started_at']).total_seconds()
    return max(0.0, float(league['pick_time_limit']) - elapsed)


def is_pick_expired(league: pd.Series, now: Optional[datetime] = None) -> bool:
    """A running pick is expired once now > pick_started_at + pick_time_limit."""
    if league['draft_status'] != 'in_progress' or bool(league['is_paused']):
        return False
    if pd.isna(league['pick_started_at']):
        return False

    now = now or data_loader.now()
    deadline = league['pick_started_at'] + timedelta(seconds=float(league['pick_time_limit']))
    return now > deadline


def get_pick_deadline(league_id: int) -> Optional[datetime]:
    league = data_loader.get_league(league_id)
    if league['draft_status'] != 'in_progress' or bool(league['is_paused']) or pd.isna(league['pick_started_at']):
        return None
    return league['pick_started_at'] + timedelta(seconds=float(league['pick_time_limit']))


def validate_draft_complete(league_id: int) -> bool:
    """Check if draft is complete."""
    return data_loader.get_league(league_id)['draft_status'] == 'completed'


# ── Mutations ──────────────────────────────────────────────────────────────

def _log_draft_action(league_id: int, action_type: str, team_id=None, player_id=None,
                      pick_number=None, round_num=None, details: str = '', now: Optional[datetime] = None) -> None:
    data_loader.append_rows('draft_actions', [{
        'league_id': league_id,
        'action_type': action_type,
        'team_id': team_id,
        'player_id': player_id,
        'pick_number': pick_number,
        'round': round_num,
        'details': details,
        'action_at': now or data_loader.now(),
    }])


def _require_draft_league(league: pd.Series) -> None:
    if league['mode'] != 'draft':
        raise StateError("This is not a draft league")


@operation
def start_draft(league_id: int, shuffle: bool = True, seed: Optional[int] = None, now: Optional[datetime] = None):
    """
    Move a draft from pending to in_progress.

    Assigns draft_order 1..N to the league's teams (shuffled, or registration
    order when shuffle is False), puts pick 1 on the clock.
    """
    now = now or data_loader.now()

    with locks.league_lock(league_id, reason='start_draft'), data_loader.transaction():
        league = data_loader.get_league(league_id)
        _require_draft_league(league)

        if league['draft_status'] != 'pending':
            raise StateError("Draft has already been started")

        teams = data_loader.load_teams()
        league_mask = teams['league_id'] == league_id
        team_ids = sorted(int(t) for t in teams.loc[league_mask, 'team_id'])

        if len(team_ids) < LeagueConfig.MIN_DRAFT_TEAMS:
            raise CapacityError(f"At least {LeagueConfig.MIN_DRAFT_TEAMS} teams are required to start the draft")

        if shuffle:
            random.Random(seed).shuffle(team_ids)

        for order, team_id in enumerate(team_ids, start=1):
            teams.loc[teams['team_id'] == team_id, 'draft_order'] = order
        data_loader.save_teams(teams)

        data_loader.update_league(
            league_id,
            draft_status='in_progress',
            current_pick=1,
            pick_started_at=now,
            is_paused=False,
            pause_time_remaining=None,
        )
        _log_draft_action(league_id, 'start', details=','.join(map(str, team_ids)), now=now)

    logger.info("Draft started for league %s, order %s", league_id, team_ids)
    return "Draft has started!", {'turn_order': team_ids}


def _check_can_draft(league: pd.Series, team_id: int, player: pd.Series) -> None:
    """Roster-side checks shared by human and automatic picks."""
    roster = get_team_roster(team_id)
    team_size = int(league['team_size'])

    if len(roster) >= team_size:
        raise CapacityError(f"Your team is full. Maximum {team_size} players allowed.")

    counts = roster_validator.count_positions(roster['position'])
    if not roster_validator.can_add_position(counts, player['position'], team_size):
        minimums = roster_validator.minimum_counts()
        raise CompositionError(
            f"Cannot draft another {player['position']}. Team composition requires minimum: "
            f"{minimums['Guard']} Guards, {minimums['Forward']} Forwards, {minimums['Center']} Centers."
        )


def _execute_pick(league: pd.Series, team_id: int, player: pd.Series, is_auto: bool, now: datetime) -> dict:
    """Record a pick and advance the clock. Caller holds the league lock and a transaction."""
    league_id = int(league['league_id'])
    player_id = int(player['player_id'])
    turn_order = get_turn_order(league_id)
    pick_number = int(league['current_pick'])
    round_num = round_for_pick(pick_number, len(turn_order))

    data_loader.append_rows('draft_picks', [{
        'league_id': league_id,
        'team_id': team_id,
        'player_id': player_id,
        'pick_number': pick_number,
        'round': round_num,
        'is_auto': is_auto,
        'picked_at': now,
    }])
    data_loader.append_rows('roster_slots', [{
        'team_id': team_id,
        'player_id': player_id,
        'purchase_price': 0.0,
        'lineup_position': None,
        'is_captain': False,
        'acquired_at': now,
    }])
    _log_draft_action(league_id, 'auto_pick' if is_auto else 'pick', team_id, player_id, pick_number, round_num, now=now)

    logger.info("League %s pick %s (round %s): team %s took player %s%s",
                league_id, pick_number, round_num, team_id, player_id, " [auto]" if is_auto else "")

    _advance_pick(league, len(turn_order), now)

    return {
        'pick_number': pick_number,
        'round': round_num,
        'team_id': team_id,
        'player_id': player_id,
        'player_name': player['player_name'],
        'is_auto': is_auto,
    }


def _advance_pick(league: pd.Series, num_teams: int, now: datetime) -> None:
    league_id = int(league['league_id'])
    next_pick = int(league['current_pick']) + 1

    if next_pick > total_picks(league['team_size'], num_teams):
        data_loader.update_league(league_id, current_pick=next_pick, pick_started_at=None, draft_status='completed')
        _log_draft_action(league_id, 'complete', now=now)
        logger.info("Draft completed for league %s", league_id)
    else:
        data_loader.update_league(league_id, current_pick=next_pick, pick_started_at=now)


def _select_auto_pick_player(league: pd.Series, team_id: int) -> Optional[pd.Series]:
    """Highest-priced eligible player the team may still add; ties go to the lowest player_id."""
    available = get_available_players(int(league['league_id']))
    if available.empty:
        return None

    roster = get_team_roster(team_id)
    counts = roster_validator.count_positions(roster['position'])
    team_size = int(league['team_size'])
    allowed = available['position'].map(lambda pos: roster_validator.can_add_position(counts, pos, team_size))
    available = available[allowed]

    if available.empty:
        return None
    return available.iloc[0]


def _resolve_expired_pick(league_id: int, now: datetime, policy: Optional[str] = None) -> Optional[dict]:
    """Auto-pick for the team on the clock if its time ran out. Caller holds the league lock."""
    league = data_loader.get_league(league_id)
    if not is_pick_expired(league, now):
        return None

    turn_order = get_turn_order(league_id)
    pick_number = int(league['current_pick'])
    team_id = team_on_clock(turn_order, pick_number)
    player = _select_auto_pick_player(league, team_id)

    if player is not None:
        result = _execute_pick(league, team_id, player, is_auto=True, now=now)
        result['action'] = 'auto_pick'
        return result

    policy = policy or LeagueConfig.NO_ELIGIBLE_PLAYER_POLICY
    round_num = round_for_pick(pick_number, len(turn_order))

    if policy == 'skip':
        _log_draft_action(league_id, 'skip', team_id, pick_number=pick_number, round_num=round_num,
                          details='no eligible player', now=now)
        logger.warning("League %s pick %s skipped: no eligible player for team %s", league_id, pick_number, team_id)
        _advance_pick(league, len(turn_order), now)
        return {'action': 'skip', 'pick_number': pick_number, 'round': round_num, 'team_id': team_id}

    if policy != 'halt':
        raise ValueError(f"Unknown no-eligible-player policy: {policy}")

    data_loader.update_league(
        league_id,
        is_paused=True,
        pause_time_remaining=float(league['pick_time_limit']),
    )
    _log_draft_action(league_id, 'halt', team_id, pick_number=pick_number, round_num=round_num,
                      details='no eligible player', now=now)
    logger.warning("League %s draft halted at pick %s: no eligible player for team %s", league_id, pick_number, team_id)
    return {'action': 'halt', 'pick_number': pick_number, 'round': round_num, 'team_id': team_id}


def check_expired_pick(league_id: int, now: Optional[datetime] = None, policy: Optional[str] = None) -> Optional[dict]:
    """
    Resolve an expired pick, if there is one.

    Safe to call from any number of readers at once: the check and the
    auto-pick run under the league lock, so one expired turn yields at most
    one auto-pick.

    Returns:
        Description of the action taken ('auto_pick', 'skip' or 'halt'), or None
    """
    now = now or data_loader.now()
    with locks.league_lock(league_id, reason='expiry_check'), data_loader.transaction():
        return _resolve_expired_pick(league_id, now, policy)


@operation
def pick(league_id: int, team_id: int, player_id: int, now: Optional[datetime] = None):
    """
    Make a draft pick for the team on the clock.

    An already-expired pick is resolved (auto-picked) first, so a late
    human pick is judged against the draft as it stands after that.
    """
    player_id = parse_id(player_id)
    now = now or data_loader.now()

    with locks.league_lock(league_id, reason='pick'), data_loader.transaction():
        _resolve_expired_pick(league_id, now)

        league = data_loader.get_league(league_id)
        _require_draft_league(league)

        if league['draft_status'] != 'in_progress':
            raise StateError("Draft is not in progress")
        if bool(league['is_paused']):
            raise StateError("Draft is currently paused")

        team = data_loader.get_team(team_id)
        if int(team['league_id']) != league_id:
            raise ValidationError("You are not a member of this league")

        current_team = team_on_clock(get_turn_order(league_id), int(league['current_pick']))
        if current_team != team_id:
            raise TurnViolation("It is not your turn to pick")

        player = data_loader.get_player(player_id)
        if not bool(player['is_active']) or player['championship_id'] != league['championship_id']:
            raise ValidationError(f"{player['player_name']} is not eligible for this league")

        drafted = data_loader.load_draft_picks(league_id)
        if (drafted['player_id'] == player_id).any():
            raise ConflictError("Player has already been drafted")

        _check_can_draft(league, team_id, player)
        result = _execute_pick(league, team_id, player, is_auto=False, now=now)

    return f"You drafted {player['player_name']}!", result


@operation
def pause_draft(league_id: int, now: Optional[datetime] = None):
    """Stop the clock, remembering the time left on the current pick."""
    now = now or data_loader.now()

    with locks.league_lock(league_id, reason='pause'), data_loader.transaction():
        _resolve_expired_pick(league_id, now)
        league = data_loader.get_league(league_id)

        if league['draft_status'] != 'in_progress':
            raise StateError("Draft is not in progress")
        if bool(league['is_paused']):
            raise StateError("Draft is already paused")

        remaining = get_time_remaining(league, now)
        data_loader.update_league(league_id, is_paused=True, pause_time_remaining=remaining)
        _log_draft_action(league_id, 'pause', details=f"time_remaining={remaining}", now=now)

    logger.info("Draft paused for league %s with %.0fs left", league_id, remaining or 0)
    return "Draft has been paused", {'time_remaining': remaining}


@operation
def resume_draft(league_id: int, now: Optional[datetime] = None):
    """Restart the clock with the time that was left when the draft paused."""
    now = now or data_loader.now()

    with locks.league_lock(league_id, reason='resume'), data_loader.transaction():
        league = data_loader.get_league(league_id)

        if league['draft_status'] != 'in_progress':
            raise StateError("Draft is not in progress")
        if not bool(league['is_paused']):
            raise StateError("Draft is not paused")

        limit = float(league['pick_time_limit'])
        remaining = league['pause_time_remaining']
        remaining = limit if pd.isna(remaining) else float(remaining)

        data_loader.update_league(
            league_id,
            is_paused=False,
            pause_time_remaining=None,
            pick_started_at=now - timedelta(seconds=limit - remaining),
        )
        _log_draft_action(league_id, 'resume', now=now)

    logger.info("Draft resumed for league %s", league_id)
    return "Draft has been resumed", {'time_remaining': remaining}


# ── Views ──────────────────────────────────────────────────────────────────

def get_draft_status(league_id: int, now: Optional[datetime] = None) -> dict:
    """
    Draft room view: who is on the clock, time left, picks so far.

    Resolves an expired pick before reading.
    """
    now = now or data_loader.now()
    auto_action = check_expired_pick(league_id, now)

    league = data_loader.get_league(league_id)
    turn_order = get_turn_order(league_id)
    picks = data_loader.load_draft_picks(league_id).sort_values('pick_number')

    current_team = None
    current_round = None
    if league['draft_status'] == 'in_progress' and turn_order:
        current_pick = int(league['current_pick'])
        current_team = team_on_clock(turn_order, current_pick)
        current_round = round_for_pick(current_pick, len(turn_order))

    return {
        'league_id': league_id,
        'draft_status': league['draft_status'],
        'is_paused': bool(league['is_paused']),
        'current_pick': None if pd.isna(league['current_pick']) else int(league['current_pick']),
        'current_round': current_round,
        'team_on_clock': current_team,
        'time_remaining': get_time_remaining(league, now),
        'turn_order': turn_order,
        'total_picks': total_picks(league['team_size'], len(turn_order)) if turn_order else None,
        'picks': picks,
        'available_players_count': len(get_available_players(league_id)),
        'last_auto_action': auto_action,
    }


def get_draft_history(league_id: int) -> pd.DataFrame:
    """Draft actions, newest first."""
    actions = data_loader.load_draft_actions(league_id)
    return actions.sort_values('action_at', ascending=False)
