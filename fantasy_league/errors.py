"""Domain error taxonomy and operation results."""

import functools
import logging
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)


class LeagueError(Exception):
    """Base class for league rule violations. Carries a reason code for the UI."""

    code = "league_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LeagueError):
    code = "validation_error"


class StateError(LeagueError):
    code = "state_error"


class RoundLocked(LeagueError):
    code = "round_locked"


class TurnViolation(LeagueError):
    code = "turn_violation"


class CapacityError(LeagueError):
    code = "capacity_error"


class ConflictError(LeagueError):
    code = "conflict_error"


class BudgetError(LeagueError):
    code = "budget_error"


class CompositionError(LeagueError):
    code = "composition_error"


class InsufficientPlayers(LeagueError):
    code = "insufficient_players"


class NotFoundError(LeagueError):
    code = "not_found"


def parse_id(value: Any, label: str = "player") -> int:
    """Convert a caller-supplied id to int. Malformed ids raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label} id: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} id: {value!r}") from None


class OperationResult(NamedTuple):
    """Outcome of a mutating operation, ready for direct display."""

    success: bool
    message: str
    code: Optional[str] = None
    data: Any = None


def operation(func):
    """
    Run a mutating operation and return an OperationResult.

    The wrapped function returns (message, data) on success and raises a
    LeagueError on a rule violation. Anything else (storage faults, lock
    timeouts) propagates unchanged.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> OperationResult:
        try:
            message, data = func(*args, **kwargs)
        except LeagueError as e:
            logger.warning("%s rejected (%s): %s", func.__name__, e.code, e.message)
            return OperationResult(False, e.message, e.code)
        return OperationResult(True, message, None, data)

    return wrapper
