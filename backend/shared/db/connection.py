"""SQLite database connection and schema management."""

import os
import sqlite3
from pathlib import Path

import structlog

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS matches (
    uuid TEXT PRIMARY KEY,
    start_time INTEGER NOT NULL,
    schema_version TEXT NOT NULL,
    round_count INTEGER,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_matches_start_time
    ON matches (start_time);

CREATE TABLE IF NOT EXISTS schemas (
    version TEXT PRIMARY KEY,
    definition BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS round_results (
    uuid TEXT NOT NULL,
    round_index INTEGER NOT NULL,
    seat INTEGER NOT NULL,
    wind INTEGER NOT NULL,
    hand_number INTEGER NOT NULL,
    honba INTEGER NOT NULL,
    account_id INTEGER,
    nickname TEXT,
    win_amount INTEGER,
    deal_in_paid INTEGER,
    riichi_turn INTEGER,
    data TEXT NOT NULL,
    PRIMARY KEY (uuid, round_index, seat)
);

CREATE INDEX IF NOT EXISTS idx_round_results_account
    ON round_results (account_id);

CREATE TABLE IF NOT EXISTS player_stats (
    account_id INTEGER PRIMARY KEY,
    nickname TEXT NOT NULL,
    rounds INTEGER NOT NULL,
    wins INTEGER NOT NULL,
    deal_ins INTEGER NOT NULL,
    riichi INTEGER NOT NULL,
    total_win_amount INTEGER NOT NULL
);
"""


def namespaced_path(path: str | Path, suffix: str) -> Path:
    """Database path for a tenant namespace: `records.db` + `_jinja` -> `records_jinja.db`."""
    path = Path(path)
    if not suffix:
        return path
    return path.with_name(f"{path.stem}{suffix}{path.suffix}")


class Database:
    """SQLite database wrapper with schema management."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        parent = Path(self._path).parent
        parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)

        self._harden_permissions()
        logger.debug("database connected", path=self._path)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _harden_permissions(self) -> None:
        """Set restrictive file permissions on POSIX systems (best effort).

        Hardens the main DB file and WAL/SHM sibling files created by WAL mode.
        """
        if os.name != "posix":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
