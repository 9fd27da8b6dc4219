"""League standings from finalized round points."""

import pandas as pd

from fantasy_league import data_loader


def calculate_standings(league_id: int) -> pd.DataFrame:
    """
    Calculate league standings based on finalized total points.

    Returns:
        DataFrame with team_id, team_name, total_points, rounds_scored,
        avg_points_per_round, rank
    """
    teams = data_loader.load_teams(league_id)
    markers = data_loader.load_round_finalizations(league_id)

    rounds_scored = markers.groupby('team_id')['round'].nunique() if not markers.empty else pd.Series(dtype=int)

    standings = teams[['team_id', 'team_name', 'total_points']].copy()
    standings['total_points'] = standings['total_points'].fillna(0).round(2)
    standings['rounds_scored'] = [int(rounds_scored.get(t, 0)) for t in standings['team_id']]

    # Average points per finalized round
    standings['avg_points_per_round'] = [
        round(points / rounds, 2) if rounds else 0.0
        for points, rounds in zip(standings['total_points'], standings['rounds_scored'])
    ]

    # Rank by total points (descending), ties share the better rank
    standings = standings.sort_values(['total_points', 'team_id'], ascending=[False, True]).reset_index(drop=True)
    standings['rank'] = standings['total_points'].rank(method='min', ascending=False).astype(int)

    return standings


def get_round_points_table(league_id: int) -> pd.DataFrame:
    """Finalized points per team per round, with running totals (for charts)."""
    markers = data_loader.load_round_finalizations(league_id)
    teams = data_loader.load_teams(league_id)[['team_id', 'team_name']]

    if markers.empty:
        return pd.DataFrame(columns=['team_id', 'team_name', 'round', 'round_points', 'cumulative_points'])

    table = markers.merge(teams, on='team_id', how='left').sort_values(['team_id', 'round'])
    table['cumulative_points'] = table.groupby('team_id')['round_points'].cumsum().round(2)
    return table[['team_id', 'team_name', 'round', 'round_points', 'cumulative_points']]


def get_team_rank(league_id: int, team_id: int) -> int:
    """
    Get current rank for a specific team.

    Returns:
        Rank, or 0 if the team is not in the league
    """
    standings = calculate_standings(league_id)
    team_standing = standings[standings['team_id'] == team_id]

    if team_standing.empty:
        return 0

    return int(team_standing['rank'].iloc[0])
