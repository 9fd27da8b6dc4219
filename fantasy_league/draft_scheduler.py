"""
Timer-driven auto-pick for running drafts.

One threading.Timer per watched league is armed for the current pick's
deadline. When it fires it runs draft_engine.check_expired_pick, which takes
the same league lock as human picks and lazy expiry checks, then re-arms for
whatever pick is on the clock. A human pick needs no coordination: the next
fire finds nothing expired and simply re-arms for the new deadline.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

from fantasy_league import data_loader, draft_engine

logger = logging.getLogger(__name__)


class DraftScheduler:
    """Arms a per-league timer that fires auto-pick at each pick deadline."""

    def __init__(self, clock: Callable[[], datetime] = data_loader.now, grace_seconds: float = 0.05,
                 retry_seconds: float = 5.0):
        self._clock = clock
        self._grace = grace_seconds
        self._retry = retry_seconds
        self._timers: Dict[int, threading.Timer] = {}
        self._lock = threading.Lock()
        self._stopped = False

    def watch(self, league_id: int) -> bool:
        """
        Start (or refresh) the timer for a league.

        Returns:
            True if a timer was armed, False if the draft has no running pick
        """
        return self._arm(league_id)

    def unwatch(self, league_id: int) -> None:
        with self._lock:
            timer = self._timers.pop(league_id, None)
        if timer is not None:
            timer.cancel()

    def is_watching(self, league_id: int) -> bool:
        with self._lock:
            return league_id in self._timers

    def shutdown(self) -> None:
        with self._lock:
            self._stopped = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _arm(self, league_id: int, min_delay: float = 0.0) -> bool:
        deadline = draft_engine.get_pick_deadline(league_id)

        with self._lock:
            existing = self._timers.pop(league_id, None)
            if existing is not None:
                existing.cancel()

            if self._stopped or deadline is None:
                return False

            delay = max(min_delay, (deadline - self._clock()).total_seconds()) + self._grace
            timer = threading.Timer(delay, self._fire, args=(league_id,))
            timer.daemon = True
            self._timers[league_id] = timer
            timer.start()

        logger.debug("Auto-pick timer for league %s armed for %.2fs", league_id, delay)
        return True

    def _fire(self, league_id: int) -> Optional[dict]:
        with self._lock:
            if self._stopped:
                return None
            self._timers.pop(league_id, None)

        try:
            action = draft_engine.check_expired_pick(league_id, now=self._clock())
        except Exception:
            logger.exception("Auto-pick timer failed for league %s, retrying in %.1fs", league_id, self._retry)
            self._arm(league_id, min_delay=self._retry)
            return None

        if action is not None:
            logger.info("Timer resolved league %s pick %s: %s", league_id, action['pick_number'], action['action'])
        self._arm(league_id)
        return action
