"""Client-scoped key-value stores backing the quota record."""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store, handy for tests and one-shot CLI runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteStore:
    """Durable key-value store backed by a single SQLite table."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._init_db()

    # ── public ──────────────────────────────────────────────────────────

    def get(self, key: str) -> str | None:
        con = self._connect()
        try:
            cur = con.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = cur.fetchone()
        finally:
            con.close()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        con = self._connect()
        try:
            con.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now(UTC).isoformat()),
            )
            con.commit()
        finally:
            con.close()
        logger.debug("Stored %s in %s", key, self._db_path)

    def delete(self, key: str) -> None:
        con = self._connect()
        try:
            con.execute("DELETE FROM kv WHERE key = ?", (key,))
            con.commit()
        finally:
            con.close()

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._db_path))

    def _init_db(self) -> None:
        con = self._connect()
        con.executescript(_SCHEMA)
        con.close()
