"""Tests for the timer-driven auto-pick scheduler."""

import time
from datetime import datetime

import pytest

from fantasy_league import data_loader, draft_engine
from fantasy_league.draft_scheduler import DraftScheduler


@pytest.fixture
def scheduler_factory():
    schedulers = []

    def _make(**kwargs):
        scheduler = DraftScheduler(**kwargs)
        schedulers.append(scheduler)
        return scheduler

    yield _make

    for scheduler in schedulers:
        scheduler.shutdown()


def _wait_for_picks(league_id, count, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        picks = data_loader.load_draft_picks(league_id)
        if len(picks) >= count:
            return picks
        time.sleep(0.05)
    return data_loader.load_draft_picks(league_id)


class TestDraftScheduler:

    def test_pending_draft_is_not_watched(self, make_draft_league, scheduler_factory):
        league_id, _ = make_draft_league()
        scheduler = scheduler_factory(clock=datetime.now)

        assert not scheduler.watch(league_id)
        assert not scheduler.is_watching(league_id)

    def test_timer_auto_picks_at_deadline(self, make_draft_league, scheduler_factory):
        league_id, team_ids = make_draft_league(pick_time_limit=1)
        draft_engine.start_draft(league_id, shuffle=False, now=datetime.now())
        scheduler = scheduler_factory(clock=datetime.now)

        assert scheduler.watch(league_id)
        picks = _wait_for_picks(league_id, 1)
        scheduler.shutdown()

        assert len(picks) >= 1
        first = picks.sort_values('pick_number').iloc[0]
        assert int(first['team_id']) == team_ids[0]
        assert bool(first['is_auto'])

    def test_fire_resolves_expired_pick_and_rearms(self, make_draft_league, scheduler_factory, clock):
        league_id, team_ids = make_draft_league(pick_time_limit=30)
        draft_engine.start_draft(league_id, shuffle=False, now=clock())
        clock.advance(31)
        scheduler = scheduler_factory(clock=clock)

        action = scheduler._fire(league_id)

        assert action['action'] == 'auto_pick'
        assert action['team_id'] == team_ids[0]
        assert scheduler.is_watching(league_id)

    def test_fire_before_deadline_does_nothing(self, make_draft_league, scheduler_factory, clock):
        league_id, _ = make_draft_league(pick_time_limit=30)
        draft_engine.start_draft(league_id, shuffle=False, now=clock())
        scheduler = scheduler_factory(clock=clock)

        assert scheduler._fire(league_id) is None
        assert data_loader.load_draft_picks(league_id).empty

    def test_unwatch(self, make_draft_league, scheduler_factory, clock):
        league_id, _ = make_draft_league(pick_time_limit=30)
        draft_engine.start_draft(league_id, shuffle=False, now=clock())
        scheduler = scheduler_factory(clock=clock)
        scheduler.watch(league_id)

        scheduler.unwatch(league_id)

        assert not scheduler.is_watching(league_id)

    def test_fire_rearms_after_a_failure(self, make_draft_league, scheduler_factory, clock, monkeypatch):
        league_id, _ = make_draft_league(pick_time_limit=30)
        draft_engine.start_draft(league_id, shuffle=False, now=clock())
        clock.advance(31)
        scheduler = scheduler_factory(clock=clock, retry_seconds=60)

        def broken_check(league_id, now=None):
            raise OSError("disk unavailable")

        monkeypatch.setattr(draft_engine, 'check_expired_pick', broken_check)

        assert scheduler._fire(league_id) is None
        assert scheduler.is_watching(league_id)
        assert data_loader.load_draft_picks(league_id).empty
