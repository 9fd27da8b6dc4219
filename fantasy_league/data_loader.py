"""Data loading and saving utilities for CSV files."""

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import pandas as pd

from fantasy_league.config import LeagueConfig
from fantasy_league.errors import NotFoundError

logger = logging.getLogger(__name__)

# Base path, resolved on every access so tests can point it elsewhere
DATA_DIR = LeagueConfig.DATA_DIR

# Table schemas. External feeds live under source/, engine tables under processed/
SOURCE_TABLES = {
    'players': ['player_id', 'player_name', 'position', 'price', 'is_active', 'championship_id'],
    'games': ['game_id', 'championship_id', 'round', 'status', 'scheduled_at', 'home_score', 'away_score'],
    'player_game_scores': ['player_id', 'game_id', 'fantasy_points'],
}

PROCESSED_TABLES = {
    'leagues': [
        'league_id', 'league_name', 'championship_id', 'mode', 'budget', 'team_size',
        'pick_time_limit', 'draft_status', 'current_pick', 'pick_started_at',
        'is_paused', 'pause_time_remaining',
    ],
    'teams': [
        'team_id', 'league_id', 'team_name', 'budget_spent', 'budget_remaining',
        'lineup_type', 'total_points', 'draft_order',
    ],
    'roster_slots': ['team_id', 'player_id', 'purchase_price', 'lineup_position', 'is_captain', 'acquired_at'],
    'draft_picks': ['league_id', 'team_id', 'player_id', 'pick_number', 'round', 'is_auto', 'picked_at'],
    'draft_actions': ['league_id', 'action_type', 'team_id', 'player_id', 'pick_number', 'round', 'details', 'action_at'],
    'round_finalizations': ['league_id', 'round', 'team_id', 'round_points', 'processed_at'],
    'lineup_history': ['team_id', 'round', 'player_id', 'lineup_position', 'is_captain', 'snapshot_at'],
    'transaction_log': ['timestamp', 'league_id', 'team_id', 'transaction_type', 'player_id', 'amount', 'details'],
    'price_history': ['championship_id', 'round', 'player_id', 'price', 'average_fantasy_points', 'games_played_in_round', 'recorded_at'],
}

_DATETIME_COLUMNS = {'pick_started_at', 'acquired_at', 'picked_at', 'action_at', 'processed_at', 'snapshot_at', 'scheduled_at', 'timestamp', 'recorded_at'}
_BOOL_COLUMNS = {'is_active', 'is_paused', 'is_captain', 'is_auto'}
_NUMERIC_COLUMNS = {'budget', 'budget_spent', 'budget_remaining', 'total_points', 'price', 'purchase_price', 'fantasy_points', 'round_points', 'pause_time_remaining', 'amount', 'current_pick', 'draft_order', 'lineup_position', 'home_score', 'away_score', 'pick_number', 'round', 'team_id', 'player_id', 'game_id', 'league_id', 'championship_id', 'team_size', 'pick_time_limit', 'average_fantasy_points', 'games_played_in_round'}

# Guards every read-modify-write of the CSV tables within this process
_STORAGE_LOCK = threading.RLock()


def source_dir() -> Path:
    return Path(DATA_DIR) / "source"


def processed_dir() -> Path:
    return Path(DATA_DIR) / "processed"


def _table_path(name: str) -> Path:
    if name in SOURCE_TABLES:
        return source_dir() / f"{name}.csv"
    return processed_dir() / f"{name}.csv"


def _columns_for(name: str) -> list:
    return SOURCE_TABLES.get(name) or PROCESSED_TABLES[name]


@contextmanager
def transaction(timeout: Optional[float] = None) -> Iterator[None]:
    """
    Hold the storage lock for a load-modify-save sequence.

    Re-entrant, so operation code can nest helpers that take it themselves.
    Raises TimeoutError if the lock can't be acquired in time.
    """
    timeout = LeagueConfig.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    if not _STORAGE_LOCK.acquire(timeout=timeout):
        raise TimeoutError(f"storage lock not acquired within {timeout}s")
    try:
        yield
    finally:
        _STORAGE_LOCK.release()


def _to_local_naive(values: pd.Series) -> pd.Series:
    """
    Parse timestamps into naive local time.

    Feeds may carry a UTC offset. Those values are converted to local time
    and stripped, so they compare with now() like the engine's own columns.
    """
    text = values.astype('string').str.strip()
    aware = text.str.contains(r'(?:Z|[+-]\d{2}:?\d{2})$', na=False)
    if not aware.any():
        return pd.to_datetime(values, errors='coerce')

    parsed = pd.Series(pd.NaT, index=values.index, dtype='datetime64[ns]')
    parsed[~aware] = pd.to_datetime(values[~aware], errors='coerce')
    local_tz = datetime.now().astimezone().tzinfo
    parsed[aware] = (
        pd.to_datetime(values[aware], errors='coerce', utc=True)
        .dt.tz_convert(local_tz)
        .dt.tz_localize(None)
    )
    return parsed


def _coerce_types(df: pd.DataFrame) -> pd.DataFrame:
    """Normalize column dtypes after a CSV round trip."""
    for col in df.columns:
        if col in _DATETIME_COLUMNS:
            df[col] = _to_local_naive(df[col])
        elif col in _BOOL_COLUMNS:
            df[col] = df[col].astype(str).str.strip().str.lower().isin(['true', '1', '1.0', 'yes'])
        elif col in _NUMERIC_COLUMNS:
            df[col] = pd.to_numeric(df[col], errors='coerce')
            if df.empty:
                df[col] = df[col].astype(float)
    return df


def load_table(name: str) -> pd.DataFrame:
    """Load a table, returning an empty frame with its schema if the file is missing or empty."""
    path = _table_path(name)
    columns = _columns_for(name)

    if not path.exists() or path.stat().st_size == 0:
        return _coerce_types(pd.DataFrame(columns=columns))

    try:
        df = pd.read_csv(path)
    except pd.errors.EmptyDataError:
        df = pd.DataFrame(columns=columns)

    for col in columns:
        if col not in df.columns:
            df[col] = pd.NA

    return _coerce_types(df)


def save_csv(df: pd.DataFrame, file_path: Path, index: bool = False) -> None:
    """Save dataframe to CSV, replacing the target file atomically."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.stem}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', newline='') as handle:
            df.to_csv(handle, index=index)
        os.replace(tmp_name, file_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def save_table(name: str, df: pd.DataFrame) -> None:
    columns = _columns_for(name)
    extra = [c for c in df.columns if c not in columns]
    save_csv(df[columns + extra], _table_path(name))


# ── External feeds ─────────────────────────────────────────────────────────

def load_players() -> pd.DataFrame:
    """Load player catalog."""
    return load_table('players')


def load_games(championship_id: Optional[int] = None) -> pd.DataFrame:
    """Load game feed, optionally filtered by championship."""
    df = load_table('games')
    if championship_id is not None:
        df = df[df['championship_id'] == championship_id]
    return df


def load_player_game_scores() -> pd.DataFrame:
    """Load externally computed fantasy points per player per game."""
    return load_table('player_game_scores')


def save_players(df: pd.DataFrame) -> None:
    with transaction():
        save_table('players', df)


def save_games(df: pd.DataFrame) -> None:
    with transaction():
        save_table('games', df)


def save_player_game_scores(df: pd.DataFrame) -> None:
    with transaction():
        save_table('player_game_scores', df)


def get_player(player_id: int) -> pd.Series:
    players = load_players()
    match = players[players['player_id'] == player_id]
    if match.empty:
        raise NotFoundError(f"Player {player_id} not found")
    return match.iloc[0]


# ── Engine tables ──────────────────────────────────────────────────────────

def load_leagues() -> pd.DataFrame:
    return load_table('leagues')


def load_teams(league_id: Optional[int] = None) -> pd.DataFrame:
    """Load fantasy teams, optionally for a single league."""
    df = load_table('teams')
    if league_id is not None:
        df = df[df['league_id'] == league_id]
    return df


def load_roster_slots() -> pd.DataFrame:
    return load_table('roster_slots')


def load_draft_picks(league_id: Optional[int] = None) -> pd.DataFrame:
    df = load_table('draft_picks')
    if league_id is not None:
        df = df[df['league_id'] == league_id]
    return df


def load_draft_actions(league_id: Optional[int] = None) -> pd.DataFrame:
    df = load_table('draft_actions')
    if league_id is not None:
        df = df[df['league_id'] == league_id]
    return df


def load_round_finalizations(league_id: Optional[int] = None) -> pd.DataFrame:
    df = load_table('round_finalizations')
    if league_id is not None:
        df = df[df['league_id'] == league_id]
    return df


def load_lineup_history() -> pd.DataFrame:
    return load_table('lineup_history')


def load_transaction_log() -> pd.DataFrame:
    """Load transaction history log."""
    return load_table('transaction_log')


def load_price_history(championship_id: Optional[int] = None) -> pd.DataFrame:
    """Load per-round catalog price snapshots."""
    df = load_table('price_history')
    if championship_id is not None:
        df = df[df['championship_id'] == championship_id]
    return df


def save_leagues(df: pd.DataFrame) -> None:
    save_table('leagues', df)


def save_teams(df: pd.DataFrame) -> None:
    save_table('teams', df)


def save_roster_slots(df: pd.DataFrame) -> None:
    save_table('roster_slots', df)


def save_draft_picks(df: pd.DataFrame) -> None:
    save_table('draft_picks', df)


def save_round_finalizations(df: pd.DataFrame) -> None:
    save_table('round_finalizations', df)


def save_lineup_history(df: pd.DataFrame) -> None:
    save_table('lineup_history', df)


def save_price_history(df: pd.DataFrame) -> None:
    save_table('price_history', df)


def append_rows(name: str, rows: list) -> None:
    """Append rows to a table."""
    if not rows:
        return
    with transaction():
        existing = load_table(name)
        new_rows = pd.DataFrame(rows)
        if existing.empty:
            updated = new_rows
        else:
            updated = pd.concat([existing, new_rows], ignore_index=True)
        save_table(name, updated)


def get_league(league_id: int) -> pd.Series:
    leagues = load_leagues()
    match = leagues[leagues['league_id'] == league_id]
    if match.empty:
        raise NotFoundError(f"League {league_id} not found")
    return match.iloc[0]


def get_team(team_id: int) -> pd.Series:
    teams = load_teams()
    match = teams[teams['team_id'] == team_id]
    if match.empty:
        raise NotFoundError(f"Team {team_id} not found")
    return match.iloc[0]


def update_league(league_id: int, **fields) -> None:
    with transaction():
        leagues = load_leagues()
        mask = leagues['league_id'] == league_id
        if not mask.any():
            raise NotFoundError(f"League {league_id} not found")
        for column, value in fields.items():
            leagues[column] = leagues[column].astype(object)
            leagues.loc[mask, column] = value
        save_leagues(leagues)


def update_team(team_id: int, **fields) -> None:
    with transaction():
        teams = load_teams()
        mask = teams['team_id'] == team_id
        if not mask.any():
            raise NotFoundError(f"Team {team_id} not found")
        for column, value in fields.items():
            teams[column] = teams[column].astype(object)
            teams.loc[mask, column] = value
        save_teams(teams)


def _next_id(df: pd.DataFrame, column: str) -> int:
    return int(df[column].max()) + 1 if not df.empty else 1


def create_league(
    league_name: str,
    championship_id: int,
    mode: str = 'budget',
    budget: float = LeagueConfig.DEFAULT_BUDGET,
    team_size: int = LeagueConfig.DEFAULT_TEAM_SIZE,
    pick_time_limit: int = LeagueConfig.DEFAULT_PICK_TIME_LIMIT,
) -> int:
    """
    Seed a league row. League CRUD proper belongs to the calling layer.

    Returns:
        New league_id
    """
    if mode not in ('budget', 'draft'):
        raise ValueError(f"Unknown league mode: {mode}")

    with transaction():
        leagues = load_leagues()
        league_id = _next_id(leagues, 'league_id')
        append_rows('leagues', [{
            'league_id': league_id,
            'league_name': league_name,
            'championship_id': championship_id,
            'mode': mode,
            'budget': float(budget),
            'team_size': int(team_size),
            'pick_time_limit': int(pick_time_limit),
            'draft_status': 'pending',
            'current_pick': None,
            'pick_started_at': None,
            'is_paused': False,
            'pause_time_remaining': None,
        }])

    logger.info("Created %s league %s (%s)", mode, league_id, league_name)
    return league_id


def create_team(league_id: int, team_name: str) -> int:
    """
    Seed a team in a league, with its full budget still unspent.

    Returns:
        New team_id
    """
    with transaction():
        league = get_league(league_id)
        teams = load_teams()
        team_id = _next_id(teams, 'team_id')
        budget = float(league['budget']) if league['mode'] == 'budget' else 0.0
        append_rows('teams', [{
            'team_id': team_id,
            'league_id': league_id,
            'team_name': team_name,
            'budget_spent': 0.0,
            'budget_remaining': budget,
            'lineup_type': LeagueConfig.DEFAULT_FORMATION,
            'total_points': 0.0,
            'draft_order': None,
        }])

    return team_id


def now() -> datetime:
    """Current wall-clock time. Naive local time, like the stored timestamps."""
    return datetime.now()
