"""
Per-entity mutual exclusion for league and team mutations.

Locks are process-local RLocks kept in a registry keyed by entity. They
serialize check-then-act sequences (draft picks, auto-picks, buys, sells,
lineup saves, round finalization) inside a single process; they do not
coordinate multiple worker processes sharing the same data directory.

Lock order: entity lock -> data_loader.transaction(). Never acquire an
entity lock while holding the storage lock.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from fantasy_league.config import LeagueConfig

logger = logging.getLogger(__name__)

_REGISTRY_LOCK = threading.Lock()
_ENTITY_LOCKS: Dict[Hashable, threading.RLock] = {}


def _get_lock(key: Hashable) -> threading.RLock:
    with _REGISTRY_LOCK:
        lock = _ENTITY_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _ENTITY_LOCKS[key] = lock
        return lock


@contextmanager
def entity_lock(kind: str, entity_id: int, timeout: Optional[float] = None, reason: str = "") -> Iterator[None]:
    """
    Hold the lock for one league or team for the duration of the block.

    Args:
        kind: 'league' or 'team'
        entity_id: League or team ID
        timeout: Seconds to wait (defaults to LeagueConfig.LOCK_TIMEOUT_SECONDS)
        reason: Optional label for debug logs

    Raises:
        TimeoutError: lock not acquired within timeout
    """
    timeout = LeagueConfig.LOCK_TIMEOUT_SECONDS if timeout is None else max(0.0, float(timeout))
    lock = _get_lock((kind, int(entity_id)))

    if not lock.acquire(timeout=timeout):
        msg = f"{kind} {entity_id} lock timeout (timeout={timeout}s)"
        if reason:
            msg += f" reason={reason}"
        raise TimeoutError(msg)

    logger.debug("Acquired %s %s lock %s", kind, entity_id, reason)
    try:
        yield
    finally:
        lock.release()


def league_lock(league_id: int, timeout: Optional[float] = None, reason: str = ""):
    """Serialize draft and finalization mutations for one league."""
    return entity_lock('league', league_id, timeout=timeout, reason=reason)


def team_lock(team_id: int, timeout: Optional[float] = None, reason: str = ""):
    """Serialize roster and lineup mutations for one team."""
    return entity_lock('team', team_id, timeout=timeout, reason=reason)
