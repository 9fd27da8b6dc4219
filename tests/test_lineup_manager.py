"""Tests for lineups, captains, round locks and lineup snapshots."""

from datetime import timedelta

import pandas as pd
import pytest

from fantasy_league import data_loader, draft_engine, lineup_manager
from fantasy_league.lineup_manager import Bench, SixthMan, Starter

from conftest import CHAMPIONSHIP_ID, NOW

# Four Guards, four Forwards, two Centers
ROSTER = [1, 2, 3, 4, 13, 14, 15, 16, 25, 26]


@pytest.fixture
def team(budget_league, give_roster):
    league_id, team_ids = budget_league
    give_roster(team_ids[0], ROSTER)
    return league_id, team_ids[0]


def _positions(team_id):
    roster = draft_engine.get_team_roster(team_id)
    return {int(r['player_id']): r['lineup_position'] for _, r in roster.iterrows()}


class TestTiers:

    def test_tier_from_position(self):
        assert lineup_manager.tier_from_position(3) == Starter(3)
        assert lineup_manager.tier_from_position(6) == SixthMan()
        assert lineup_manager.tier_from_position(None) == Bench()
        assert lineup_manager.tier_from_position(float('nan')) == Bench()

    def test_invalid_position(self):
        with pytest.raises(ValueError):
            lineup_manager.tier_from_position(7)

    def test_multipliers(self):
        assert lineup_manager.scoring_multiplier(Starter(1)) == 1.0
        assert lineup_manager.scoring_multiplier(SixthMan()) == 0.75
        assert lineup_manager.scoring_multiplier(Bench()) == 0.5
        assert lineup_manager.scoring_multiplier(Bench(), is_captain=True) == 2.0


class TestRoundState:

    def test_finished_round_is_not_active(self):
        assert lineup_manager.is_round_finished(CHAMPIONSHIP_ID, 1)
        assert not lineup_manager.is_round_active(CHAMPIONSHIP_ID, 1, NOW)

    def test_round_active_after_tip_off(self):
        assert not lineup_manager.is_round_active(CHAMPIONSHIP_ID, 2, NOW)
        assert lineup_manager.is_round_active(CHAMPIONSHIP_ID, 2, NOW + timedelta(days=7, minutes=1))

    def test_round_active_once_a_game_starts(self, start_round):
        start_round(2)
        assert lineup_manager.is_round_active(CHAMPIONSHIP_ID, 2, NOW)
        assert lineup_manager.get_active_round(CHAMPIONSHIP_ID, NOW) == 2

    def test_current_round_follows_latest_finished(self):
        assert lineup_manager.get_latest_finished_round(CHAMPIONSHIP_ID) == 1
        assert lineup_manager.get_current_round(CHAMPIONSHIP_ID) == 2

    def test_schedule_with_utc_offset(self):
        games = data_loader.load_games()
        games['scheduled_at'] = [ts.strftime('%Y-%m-%dT%H:%M:%S+00:00') for ts in games['scheduled_at']]
        data_loader.save_games(games)

        assert data_loader.load_games()['scheduled_at'].dt.tz is None
        assert not lineup_manager.is_round_active(CHAMPIONSHIP_ID, 2, NOW)
        assert lineup_manager.is_round_active(CHAMPIONSHIP_ID, 2, NOW + timedelta(days=8))


class TestSetLineup:

    def test_valid_lineup(self, team):
        _, team_id = team

        result = lineup_manager.set_lineup(team_id, [1, 2, 13, 14, 25], '2-2-1', sixth_man_id=3)

        assert result.success, result.message
        positions = _positions(team_id)
        assert [positions[p] for p in (1, 2, 13, 14, 25)] == [1, 2, 3, 4, 5]
        assert positions[3] == 6
        assert all(pd.isna(positions[p]) for p in (4, 15, 16, 26))
        assert data_loader.get_team(team_id)['lineup_type'] == '2-2-1'

    def test_three_guards_do_not_fit_two_two_one(self, team):
        _, team_id = team

        result = lineup_manager.set_lineup(team_id, [1, 2, 3, 13, 25], '2-2-1')

        assert not result.success
        assert result.code == 'composition_error'

    def test_three_guards_fit_three_one_one(self, team):
        _, team_id = team

        result = lineup_manager.set_lineup(team_id, [1, 2, 3, 13, 25], '3-1-1')

        assert result.success
        assert data_loader.get_team(team_id)['lineup_type'] == '3-1-1'

    def test_slots_must_follow_formation_order(self, team):
        _, team_id = team

        result = lineup_manager.set_lineup(team_id, [13, 1, 2, 14, 25], '2-2-1')

        assert result.code == 'composition_error'

    @pytest.mark.parametrize('starters, formation, sixth_man', [
        ([1, 2, 13, 14], '2-2-1', None),
        ([1, 1, 13, 14, 25], '2-2-1', None),
        ([1, 2, 13, 14, 25], '4-0-1', None),
        ([1, 2, 13, 14, 30], '2-2-1', None),
        ([1, 2, 13, 14, 25], '2-2-1', 25),
        (['a', 'b', 'c', 'd', 'e'], '2-2-1', None),
        ('1,2,13,14,25', '2-2-1', None),
        ([1, 2, 13, 14, 25], '2-2-1', 'sixth'),
    ])
    def test_rejected_requests(self, team, starters, formation, sixth_man):
        _, team_id = team

        result = lineup_manager.set_lineup(team_id, starters, formation, sixth_man_id=sixth_man)

        assert result.code == 'validation_error'

    def test_locked_during_round(self, team):
        _, team_id = team

        result = lineup_manager.set_lineup(
            team_id, [1, 2, 13, 14, 25], '2-2-1', now=NOW + timedelta(days=7, minutes=5)
        )

        assert result.code == 'round_locked'
        assert all(pd.isna(p) for p in _positions(team_id).values())

    def test_validation_state(self, team):
        _, team_id = team
        lineup_manager.set_lineup(team_id, [1, 2, 13, 14, 25], '2-2-1')

        state = lineup_manager.get_validation_state(team_id)

        assert state['has_valid_team_composition']
        assert state['has_valid_starting_lineup']
        assert state['starting_lineup_counts'] == {'Guard': 2, 'Forward': 2, 'Center': 1}


class TestAutoGenerate:

    def test_picks_best_average_by_position(self, team):
        _, team_id = team

        result = lineup_manager.auto_generate(team_id)

        # Round 1 fantasy points equal player ids
        assert result.success
        assert result.data['starters'] == [4, 3, 16, 15, 26]
        assert result.data['sixth_man'] == 25
        assert result.data['bench'] == [14, 13, 2, 1]
        assert _positions(team_id)[25] == 6

    def test_not_enough_guards(self, budget_league, give_roster):
        _, team_ids = budget_league
        give_roster(team_ids[0], [1, 13, 14, 25])

        result = lineup_manager.auto_generate(team_ids[0])

        assert result.code == 'insufficient_players'
        assert result.message == "Not enough guards to create a valid lineup"


class TestCaptain:

    def test_captain_must_be_in_lineup(self, team):
        _, team_id = team
        lineup_manager.set_lineup(team_id, [1, 2, 13, 14, 25], '2-2-1', sixth_man_id=3)

        assert lineup_manager.set_captain(team_id, 3).success
        assert lineup_manager.set_captain(team_id, 4).code == 'validation_error'

    def test_single_captain(self, team):
        _, team_id = team
        lineup_manager.set_lineup(team_id, [1, 2, 13, 14, 25], '2-2-1')
        lineup_manager.set_captain(team_id, 1)
        lineup_manager.set_captain(team_id, 25)

        roster = draft_engine.get_team_roster(team_id)
        assert list(roster.loc[roster['is_captain'], 'player_id']) == [25]

    def test_benched_captain_loses_armband(self, team):
        _, team_id = team
        lineup_manager.set_lineup(team_id, [1, 2, 13, 14, 25], '2-2-1')
        lineup_manager.set_captain(team_id, 1)

        lineup_manager.set_lineup(team_id, [3, 2, 13, 14, 25], '2-2-1')

        roster = draft_engine.get_team_roster(team_id)
        assert not roster['is_captain'].any()

    def test_malformed_captain_id(self, team):
        _, team_id = team

        assert lineup_manager.set_captain(team_id, 'abc').code == 'validation_error'


class TestSnapshots:

    def test_snapshot_freezes_round_lineup(self, team):
        league_id, team_id = team
        lineup_manager.set_lineup(team_id, [1, 2, 13, 14, 25], '2-2-1')

        assert lineup_manager.snapshot_round_lineups(league_id, 2) == 1
        lineup_manager.set_lineup(team_id, [3, 4, 15, 16, 26], '2-2-1')

        frozen = lineup_manager.get_lineup_for_round(team_id, 2)
        starters = frozen[frozen['lineup_position'].between(1, 5)]
        assert sorted(int(p) for p in starters['player_id']) == [1, 2, 13, 14, 25]

        live = lineup_manager.get_lineup_for_round(team_id, 3)
        starters = live[live['lineup_position'].between(1, 5)]
        assert sorted(int(p) for p in starters['player_id']) == [3, 4, 15, 16, 26]

    def test_snapshot_is_taken_once(self, team):
        league_id, _ = team

        assert lineup_manager.snapshot_round_lineups(league_id, 2) == 1
        assert lineup_manager.snapshot_round_lineups(league_id, 2) == 0
        assert lineup_manager.snapshot_round_lineups(league_id, 2, force=True) == 1
        assert len(data_loader.load_lineup_history()) == len(ROSTER)

    def test_sync_round_locks(self, team, start_round):
        assert lineup_manager.sync_round_locks(NOW) == 0

        start_round(2)

        assert lineup_manager.sync_round_locks(NOW) == 1
