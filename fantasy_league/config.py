"""League configuration constants."""

import os
from pathlib import Path


class LeagueConfig:
    """Central configuration for league-wide constants."""

    # Storage
    DATA_DIR = Path(os.environ.get("FANTASY_DATA_DIR", Path(__file__).parent.parent / "data"))

    # League defaults
    DEFAULT_BUDGET = 100_000_000
    DEFAULT_TEAM_SIZE = 10
    DEFAULT_PICK_TIME_LIMIT = 60  # seconds
    MIN_DRAFT_TEAMS = 2

    # Positions
    POSITIONS = ("Guard", "Forward", "Center")
    MIN_GUARDS = 3
    MIN_FORWARDS = 3
    MIN_CENTERS = 2

    # Lineups
    STARTERS_PER_LINEUP = 5
    SIXTH_MAN_POSITION = 6
    BENCH_SLOTS_AUTO = 4  # bench players named by auto-generate, after the sixth man
    FORMATIONS = ("2-2-1", "3-1-1", "1-3-1", "1-2-2", "2-1-2")
    DEFAULT_FORMATION = "2-2-1"

    # Scoring
    STARTER_MULTIPLIER = 1.0
    SIXTH_MAN_MULTIPLIER = 0.75
    BENCH_MULTIPLIER = 0.5
    CAPTAIN_MULTIPLIER = 2.0
    CAPTAIN_ENABLED = True
    AVERAGE_POINTS_WINDOW = 5  # games

    # Policies
    SELL_PRICE_POLICY = "market"  # "market" credits current price, "purchase" refunds purchase price
    NO_ELIGIBLE_PLAYER_POLICY = "halt"  # "halt" pauses the draft, "skip" passes the turn

    # Concurrency
    LOCK_TIMEOUT_SECONDS = 10.0


# For backward compatibility, create module-level constants
DATA_DIR = LeagueConfig.DATA_DIR
DEFAULT_BUDGET = LeagueConfig.DEFAULT_BUDGET
DEFAULT_TEAM_SIZE = LeagueConfig.DEFAULT_TEAM_SIZE
DEFAULT_PICK_TIME_LIMIT = LeagueConfig.DEFAULT_PICK_TIME_LIMIT
MIN_DRAFT_TEAMS = LeagueConfig.MIN_DRAFT_TEAMS
POSITIONS = LeagueConfig.POSITIONS
FORMATIONS = LeagueConfig.FORMATIONS
STARTERS_PER_LINEUP = LeagueConfig.STARTERS_PER_LINEUP
SIXTH_MAN_POSITION = LeagueConfig.SIXTH_MAN_POSITION
AVERAGE_POINTS_WINDOW = LeagueConfig.AVERAGE_POINTS_WINDOW
