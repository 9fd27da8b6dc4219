"""Shared fixtures: a throwaway data directory seeded with a small championship."""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pandas as pd
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fantasy_league import data_loader

NOW = datetime(2026, 1, 10, 12, 0, 0)
CHAMPIONSHIP_ID = 1

# Player ids by position. Prices fall as ids rise, so lower ids are "better".
GUARDS = list(range(1, 13))
FORWARDS = list(range(13, 25))
CENTERS = list(range(25, 35))
INACTIVE_GUARD = 35
OTHER_CHAMPIONSHIP_GUARD = 36


class Clock:
    """Settable stand-in for data_loader.now."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


def _seed_players() -> pd.DataFrame:
    rows = []
    for player_id in GUARDS + FORWARDS + CENTERS:
        if player_id in GUARDS:
            position = 'Guard'
        elif player_id in FORWARDS:
            position = 'Forward'
        else:
            position = 'Center'
        rows.append({
            'player_id': player_id,
            'player_name': f"{position} {player_id}",
            'position': position,
            'price': 5_000_000 + (35 - player_id) * 100_000,
            'is_active': True,
            'championship_id': CHAMPIONSHIP_ID,
        })
    rows.append({'player_id': INACTIVE_GUARD, 'player_name': 'Injured Guard', 'position': 'Guard',
                 'price': 9_000_000, 'is_active': False, 'championship_id': CHAMPIONSHIP_ID})
    rows.append({'player_id': OTHER_CHAMPIONSHIP_GUARD, 'player_name': 'Visiting Guard', 'position': 'Guard',
                 'price': 9_000_000, 'is_active': True, 'championship_id': 2})
    return pd.DataFrame(rows)


def _seed_games() -> pd.DataFrame:
    """Round 1 is finished, rounds 2 and 3 are still to be played."""
    return pd.DataFrame([
        {'game_id': 1, 'championship_id': CHAMPIONSHIP_ID, 'round': 1, 'status': 'finished',
         'scheduled_at': NOW - timedelta(days=7), 'home_score': 101, 'away_score': 95},
        {'game_id': 2, 'championship_id': CHAMPIONSHIP_ID, 'round': 1, 'status': 'finished',
         'scheduled_at': NOW - timedelta(days=7, hours=-2), 'home_score': 88, 'away_score': 90},
        {'game_id': 3, 'championship_id': CHAMPIONSHIP_ID, 'round': 2, 'status': 'scheduled',
         'scheduled_at': NOW + timedelta(days=7), 'home_score': None, 'away_score': None},
        {'game_id': 4, 'championship_id': CHAMPIONSHIP_ID, 'round': 2, 'status': 'scheduled',
         'scheduled_at': NOW + timedelta(days=7, hours=2), 'home_score': None, 'away_score': None},
        {'game_id': 5, 'championship_id': CHAMPIONSHIP_ID, 'round': 3, 'status': 'scheduled',
         'scheduled_at': NOW + timedelta(days=14), 'home_score': None, 'away_score': None},
    ])


def _seed_scores() -> pd.DataFrame:
    """Round 1: every player scores fantasy points equal to their id."""
    rows = []
    for player_id in GUARDS + FORWARDS + CENTERS:
        rows.append({
            'player_id': player_id,
            'game_id': 1 if player_id % 2 else 2,
            'fantasy_points': float(player_id),
        })
    return pd.DataFrame(rows)


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch, clock):
    """Point storage at tmp_path, freeze data_loader.now and seed the source feeds."""
    monkeypatch.setattr(data_loader, 'DATA_DIR', tmp_path)
    monkeypatch.setattr(data_loader, 'now', clock)

    data_loader.save_players(_seed_players())
    data_loader.save_games(_seed_games())
    data_loader.save_player_game_scores(_seed_scores())
    return tmp_path


@pytest.fixture
def budget_league():
    """Budget league with two empty teams."""
    league_id = data_loader.create_league('Budget League', CHAMPIONSHIP_ID, mode='budget')
    team_ids = [data_loader.create_team(league_id, f"Team {n}") for n in (1, 2)]
    return league_id, team_ids


@pytest.fixture
def make_draft_league():
    def _make(num_teams=4, team_size=2, pick_time_limit=30, championship_id=CHAMPIONSHIP_ID):
        league_id = data_loader.create_league(
            'Draft League', championship_id, mode='draft',
            team_size=team_size, pick_time_limit=pick_time_limit,
        )
        team_ids = [data_loader.create_team(league_id, f"Drafter {n}") for n in range(1, num_teams + 1)]
        return league_id, team_ids

    return _make


@pytest.fixture
def give_roster():
    """Put players straight onto a team's roster (bypasses draft and market rules)."""
    def _give(team_id, player_ids, purchase_price=0.0):
        data_loader.append_rows('roster_slots', [{
            'team_id': team_id,
            'player_id': player_id,
            'purchase_price': purchase_price,
            'lineup_position': None,
            'is_captain': False,
            'acquired_at': NOW,
        } for player_id in player_ids])

    return _give


@pytest.fixture
def finish_round():
    """Mark every game of a round finished and record fantasy points."""
    def _finish(round_number, points=None):
        games = data_loader.load_games()
        mask = games['round'] == round_number
        games['status'] = games['status'].astype(object)
        games.loc[mask, 'status'] = 'finished'
        games.loc[mask, 'home_score'] = 100
        games.loc[mask, 'away_score'] = 98
        data_loader.save_games(games)

        game_id = int(games.loc[mask, 'game_id'].iloc[0])
        points = points or {player_id: float(player_id) for player_id in GUARDS + FORWARDS + CENTERS}
        scores = data_loader.load_player_game_scores()
        new_scores = pd.DataFrame([
            {'player_id': player_id, 'game_id': game_id, 'fantasy_points': value}
            for player_id, value in points.items()
        ])
        data_loader.save_player_game_scores(pd.concat([scores, new_scores], ignore_index=True))

    return _finish


@pytest.fixture
def start_round():
    """Mark the first game of a round as under way."""
    def _start(round_number):
        games = data_loader.load_games()
        first = games.index[games['round'] == round_number][0]
        games['status'] = games['status'].astype(object)
        games.loc[first, 'status'] = 'in_progress'
        data_loader.save_games(games)

    return _start
