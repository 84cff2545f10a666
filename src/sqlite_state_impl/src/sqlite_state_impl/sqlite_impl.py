"""SQLite State Store Implementation.

Concrete state_store_api.StateStore that keeps each key as a JSON document in a
single table. Reads are synchronous (the sync store loads state once at
startup); writes run in a worker thread so the event loop never blocks on disk.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

import state_store_api
from state_store_api import StateStore

load_dotenv()
logger = logging.getLogger("sqlite_state_impl")

STATE_DB_PATH = os.environ.get("CHAT_SYNC_STATE_DB", "chat_sync_state.db")

# ---------------------------------------------------------------------------
# State store implementation
# ---------------------------------------------------------------------------


class SqliteStateStore(StateStore):
    """Concrete StateStore persisting JSON values in SQLite.

    Attributes:
        _path: Database file path.
        _write_lock: Serializes writes issued from concurrent tasks.

    """

    def __init__(self, path: str | Path | None = None) -> None:
        """Initialize the store, creating the schema when missing."""
        self._path = Path(path or STATE_DB_PATH)
        self._write_lock = asyncio.Lock()
        _open_db(self._path).close()

    @property
    def path(self) -> Path:
        """Get the database file path."""
        return self._path

    def get(self, key: str) -> Any:  # noqa: ANN401
        """Return the decoded value for ``key``, or None when absent or unreadable."""
        conn = _open_db(self._path)
        try:
            row = conn.execute("SELECT value FROM state WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt state value for %s", key)
            return None

    async def set(self, key: str, value: Any) -> None:  # noqa: ANN401
        """Persist ``value`` under ``key`` from a worker thread.

        Writes are applied in the order they were requested.
        """
        payload = None if value is None else json.dumps(value, ensure_ascii=True)
        async with self._write_lock:
            await asyncio.to_thread(self._write, key, payload)

    def _write(self, key: str, payload: str | None) -> None:
        conn = _open_db(self._path)
        try:
            if payload is None:
                conn.execute("DELETE FROM state WHERE key = ?", (key,))
            else:
                _upsert_value(conn, key=key, payload=payload, now=int(time.time()))
            conn.commit()
        finally:
            conn.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open_db(path: Path) -> sqlite3.Connection:
    """Open the state SQLite DB and ensure schema exists."""
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    _init_db(conn)
    return conn


def _init_db(conn: sqlite3.Connection) -> None:
    """Create the state table when missing."""
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at INTEGER NOT NULL
        );
        """
    )
    conn.commit()


def _upsert_value(conn: sqlite3.Connection, *, key: str, payload: str, now: int) -> None:
    """Insert or replace the JSON payload for a key."""
    conn.execute(
        """
        INSERT INTO state (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, payload, now),
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_state_store_impl() -> SqliteStateStore:
    """Return a new SqliteStateStore using env defaults."""
    return SqliteStateStore()


# ---------------------------------------------------------------------------
# Factory registration
# ---------------------------------------------------------------------------


def register() -> None:
    """Bind the SQLite factory into state_store_api.get_state_store."""
    state_store_api.get_state_store = get_state_store_impl
