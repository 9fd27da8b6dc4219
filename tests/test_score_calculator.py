"""Tests for round scoring, score visibility and round finalization."""

from concurrent.futures import ThreadPoolExecutor

import pandas as pd
import pytest

from fantasy_league import data_loader, lineup_manager, score_calculator
from fantasy_league.config import LeagueConfig

from conftest import CHAMPIONSHIP_ID, INACTIVE_GUARD

ROSTER = [1, 2, 3, 4, 13, 14, 15, 16, 25, 26]


@pytest.fixture
def league(budget_league, give_roster):
    """Team 1 has a full lineup with a captain, team 2 two bench players."""
    league_id, team_ids = budget_league
    give_roster(team_ids[0], ROSTER)
    give_roster(team_ids[1], [5, 17])
    lineup_manager.set_lineup(team_ids[0], [1, 2, 13, 14, 25], '2-2-1', sixth_man_id=3)
    lineup_manager.set_captain(team_ids[0], 25)
    return league_id, team_ids


# Round 1 points equal player ids:
# starters 1+2+13+14, captain 25 x2, sixth man 3 x0.75, bench (4+15+16+26) x0.5
TEAM_ONE_ROUND_ONE = 30 + 50 + 2.25 + 30.5
TEAM_TWO_ROUND_ONE = (5 + 17) * 0.5


class TestPlayerPoints:

    def test_round_points_sum_every_game(self):
        scores = data_loader.load_player_game_scores()
        extra = pd.DataFrame([{'player_id': 1, 'game_id': 2, 'fantasy_points': 10.0}])
        data_loader.save_player_game_scores(pd.concat([scores, extra], ignore_index=True))

        points = score_calculator.get_round_player_points(CHAMPIONSHIP_ID, 1)

        assert points[1] == 11.0
        assert points[2] == 2.0

    def test_average_over_recent_games(self, finish_round):
        finish_round(2, {7: 20.0})

        assert score_calculator.get_player_average_points(7) == 13.5
        assert score_calculator.get_player_average_points(7, last_n_games=1) == 20.0

    def test_average_without_games(self):
        assert score_calculator.get_player_average_points(INACTIVE_GUARD) == 0.0


class TestRoundScores:

    def test_multipliers(self, league):
        _, team_ids = league

        scores = score_calculator.calculate_round_scores(team_ids[0], 1)

        assert scores['round_team_points'] == TEAM_ONE_ROUND_ONE
        players = scores['players'].set_index('player_id')
        assert players.loc[25, 'multiplier'] == 2.0
        assert players.loc[3, 'tier'] == 'sixth_man'
        assert players.loc[3, 'round_team_points'] == 2.25
        assert players.loc[26, 'tier'] == 'bench'

    def test_captain_disabled(self, league, monkeypatch):
        _, team_ids = league
        monkeypatch.setattr(LeagueConfig, 'CAPTAIN_ENABLED', False)

        assert score_calculator.get_round_team_points(team_ids[0], 1) == TEAM_ONE_ROUND_ONE - 25

    def test_unfinished_round_has_no_score(self, league):
        _, team_ids = league

        assert score_calculator.calculate_round_scores(team_ids[0], 2) is None

    def test_scores_appear_once_round_finishes(self, league, finish_round):
        _, team_ids = league

        view = lineup_manager.get_lineup_view(team_ids[0], 2)
        assert 'round_total_points' not in view
        assert 'round_fantasy_points' not in view['players'].columns
        assert 'round_team_points' not in view['players'].columns
        assert not view['is_round_finished']

        finish_round(2)

        view = lineup_manager.get_lineup_view(team_ids[0], 2)
        assert view['is_round_finished']
        assert view['round_total_points'] == TEAM_ONE_ROUND_ONE
        assert 'round_fantasy_points' in view['players'].columns

    def test_snapshot_is_scored_not_live_lineup(self, league, finish_round):
        league_id, team_ids = league
        lineup_manager.snapshot_round_lineups(league_id, 2)
        # Bench the captain after the round locked in
        lineup_manager.set_lineup(team_ids[0], [3, 4, 15, 16, 26], '2-2-1')

        finish_round(2)

        assert score_calculator.get_round_team_points(team_ids[0], 2) == TEAM_ONE_ROUND_ONE


class TestFinalizeRound:

    def test_finalize_adds_round_points(self, league):
        league_id, team_ids = league

        result = score_calculator.finalize_round(league_id, 1)

        assert result.success
        assert sorted(result.data['teams_finalized']) == sorted(team_ids)
        assert data_loader.get_team(team_ids[0])['total_points'] == TEAM_ONE_ROUND_ONE
        assert data_loader.get_team(team_ids[1])['total_points'] == TEAM_TWO_ROUND_ONE

    def test_finalize_twice_is_idempotent(self, league):
        league_id, team_ids = league
        score_calculator.finalize_round(league_id, 1)
        first = data_loader.load_teams(league_id).set_index('team_id')['total_points'].to_dict()

        result = score_calculator.finalize_round(league_id, 1)

        assert result.success
        assert result.data['teams_finalized'] == []
        assert data_loader.load_teams(league_id).set_index('team_id')['total_points'].to_dict() == first

    def test_concurrent_finalize(self, league):
        league_id, team_ids = league

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: score_calculator.finalize_round(league_id, 1), range(8)))

        assert all(r.success for r in results)
        assert len(data_loader.load_round_finalizations(league_id)) == len(team_ids)
        assert data_loader.get_team(team_ids[0])['total_points'] == TEAM_ONE_ROUND_ONE

    def test_unfinished_round_cannot_be_finalized(self, league):
        league_id, _ = league

        result = score_calculator.finalize_round(league_id, 2)

        assert result.code == 'state_error'
        assert data_loader.load_round_finalizations(league_id).empty

    def test_finalize_ready_rounds(self, league, finish_round):
        league_id, team_ids = league
        finish_round(2)

        assert score_calculator.finalize_ready_rounds(league_id) == [1, 2]
        assert score_calculator.finalize_ready_rounds(league_id) == []

        history = score_calculator.get_team_round_history(team_ids[0])
        assert list(history['round'].astype(int)) == [1, 2]
        assert data_loader.get_team(team_ids[0])['total_points'] == 2 * TEAM_ONE_ROUND_ONE
