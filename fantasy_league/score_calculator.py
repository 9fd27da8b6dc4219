"""Round scoring and finalization engine."""

import logging
from typing import Dict, List, Optional

import pandas as pd

from fantasy_league import data_loader, lineup_manager, locks
from fantasy_league.config import LeagueConfig
from fantasy_league.errors import StateError, operation

logger = logging.getLogger(__name__)


def get_round_player_points(championship_id: int, round_number: int) -> Dict[int, float]:
    """
    Sum each player's fantasy points over every game of a round.

    Handles the rare round where a player appears in more than one game.

    Returns:
        Dict of player_id -> fantasy points
    """
    games = data_loader.load_games(championship_id)
    round_game_ids = games.loc[games['round'] == round_number, 'game_id']

    scores = data_loader.load_player_game_scores()
    round_scores = scores[scores['game_id'].isin(round_game_ids)]

    if round_scores.empty:
        return {}

    totals = round_scores.groupby('player_id')['fantasy_points'].sum()
    return {int(player_id): float(points) for player_id, points in totals.items()}


def get_player_average_points(player_id: int, last_n_games: Optional[int] = None) -> float:
    """
    Average fantasy points over a player's most recent games.

    Args:
        player_id: Player ID
        last_n_games: Window size (defaults to LeagueConfig.AVERAGE_POINTS_WINDOW)
    """
    last_n_games = last_n_games or LeagueConfig.AVERAGE_POINTS_WINDOW
    scores = data_loader.load_player_game_scores()
    player_scores = scores[scores['player_id'] == player_id]

    if player_scores.empty:
        return 0.0

    games = data_loader.load_games()[['game_id', 'round', 'scheduled_at']]
    player_scores = player_scores.merge(games, on='game_id', how='left')
    player_scores = player_scores.sort_values(['round', 'scheduled_at', 'game_id'], ascending=False)

    return round(float(player_scores['fantasy_points'].head(last_n_games).mean()), 2)


def calculate_round_scores(team_id: int, round_number: int) -> Optional[dict]:
    """
    Score a team's lineup for one round.

    Returns:
        None while any game of the round is unfinished. Otherwise a dict with
        'players' (one row per roster slot: tier, multiplier,
        round_fantasy_points, round_team_points) and 'round_team_points'.
    """
    team = data_loader.get_team(team_id)
    league = data_loader.get_league(int(team['league_id']))
    championship_id = league['championship_id']

    if not lineup_manager.is_round_finished(championship_id, round_number):
        return None

    points = get_round_player_points(championship_id, round_number)
    lineup = lineup_manager.get_lineup_for_round(team_id, round_number).copy()

    rows: List[dict] = []
    for _, slot in lineup.iterrows():
        tier = lineup_manager.tier_from_position(slot['lineup_position'])
        multiplier = lineup_manager.scoring_multiplier(tier, bool(slot['is_captain']))
        raw = points.get(int(slot['player_id']), 0.0)
        rows.append({
            'player_id': int(slot['player_id']),
            'player_name': slot['player_name'],
            'position': slot['position'],
            'lineup_position': slot['lineup_position'],
            'is_captain': bool(slot['is_captain']),
            'tier': tier.name,
            'multiplier': multiplier,
            'round_fantasy_points': raw,
            'round_team_points': round(raw * multiplier, 2),
        })

    total = round(sum(row['round_fantasy_points'] * row['multiplier'] for row in rows), 2)
    columns = ['player_id', 'player_name', 'position', 'lineup_position', 'is_captain', 'tier',
               'multiplier', 'round_fantasy_points', 'round_team_points']

    return {
        'players': pd.DataFrame(rows, columns=columns),
        'round_team_points': total,
    }


def get_round_team_points(team_id: int, round_number: int) -> Optional[float]:
    """Team points for a round, or None until the round is finished."""
    scores = calculate_round_scores(team_id, round_number)
    return None if scores is None else scores['round_team_points']


def _recalculate_team_totals(league_id: int) -> None:
    """total_points = sum of the team's finalized round points."""
    markers = data_loader.load_round_finalizations(league_id)
    totals = markers.groupby('team_id')['round_points'].sum() if not markers.empty else pd.Series(dtype=float)

    teams = data_loader.load_teams()
    league_mask = teams['league_id'] == league_id
    teams.loc[league_mask, 'total_points'] = [
        round(float(totals.get(team_id, 0.0)), 2) for team_id in teams.loc[league_mask, 'team_id']
    ]
    data_loader.save_teams(teams)


@operation
def finalize_round(league_id: int, round_number: int):
    """
    Add a finished round's points to every team's total, exactly once.

    A (league, round, team) marker records each team's round points; teams
    already marked are skipped, and total_points is rebuilt from the markers.
    Safe to call repeatedly and from concurrent triggers.
    """
    with locks.league_lock(league_id, reason='finalize_round'), data_loader.transaction():
        league = data_loader.get_league(league_id)

        if not lineup_manager.is_round_finished(league['championship_id'], round_number):
            raise StateError(f"Round {round_number} is not finished yet")

        markers = data_loader.load_round_finalizations(league_id)
        done = set(int(t) for t in markers.loc[markers['round'] == round_number, 'team_id'])

        processed_at = data_loader.now()
        new_markers = []
        for team_id in data_loader.load_teams(league_id)['team_id']:
            team_id = int(team_id)
            if team_id in done:
                continue
            new_markers.append({
                'league_id': league_id,
                'round': round_number,
                'team_id': team_id,
                'round_points': get_round_team_points(team_id, round_number),
                'processed_at': processed_at,
            })

        data_loader.append_rows('round_finalizations', new_markers)
        _recalculate_team_totals(league_id)

    if new_markers:
        logger.info("Finalized round %s for %s team(s) in league %s", round_number, len(new_markers), league_id)
    else:
        logger.info("Round %s already finalized for league %s", round_number, league_id)

    return f"Round {round_number} finalized", {
        'round': round_number,
        'teams_finalized': [m['team_id'] for m in new_markers],
        'round_points': {m['team_id']: m['round_points'] for m in new_markers},
    }


def finalize_ready_rounds(league_id: int) -> List[int]:
    """
    Finalize every finished round that still has unmarked teams, in round order.

    Returns:
        Rounds that produced new markers
    """
    league = data_loader.get_league(league_id)
    championship_id = league['championship_id']
    games = data_loader.load_games(championship_id)

    finalized = []
    for round_number in sorted(int(r) for r in games['round'].dropna().unique()):
        if not lineup_manager.is_round_finished(championship_id, round_number):
            continue
        result = finalize_round(league_id, round_number)
        if result.success and result.data['teams_finalized']:
            finalized.append(round_number)

    return finalized


def get_team_round_history(team_id: int) -> pd.DataFrame:
    """Finalized points per round for a team."""
    team = data_loader.get_team(team_id)
    markers = data_loader.load_round_finalizations(int(team['league_id']))
    return markers[markers['team_id'] == team_id].sort_values('round')[['round', 'round_points', 'processed_at']]
