"""SQLite-backed key-value store.

One table holds every entity record as JSON text. Blocking sqlite3 calls run
in a worker thread via ``asyncio.to_thread``; a single connection is shared
and guarded by a lock because sqlite3 connections are not safe for
concurrent use.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from sos_relay.adapters.storage.base import AbstractKeyValueStore, JsonRecord
from sos_relay.core.errors import StorageAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS records (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SqliteKeyValueStore(AbstractKeyValueStore):
    """Durable store for single-node deployments."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._path, check_same_thread=False)
            if self._path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.execute(SCHEMA_SQL)
            conn.commit()
            self._conn = conn
        return self._conn

    def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            try:
                return fn(self._connect())
            except sqlite3.Error as exc:
                logger.error(
                    "storage.failed",
                    extra={"operation": operation, "error_type": type(exc).__name__},
                )
                raise StorageAppError(
                    code="storage_unavailable",
                    message="The backing store could not complete the request",
                    details={"operation": operation},
                ) from exc

    async def get(self, key: str) -> JsonRecord | None:
        def _get(conn: sqlite3.Connection) -> Any:
            row = conn.execute("SELECT value FROM records WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

        raw = await asyncio.to_thread(self._run, "get", _get)
        return json.loads(raw) if raw is not None else None

    async def put(self, key: str, value: JsonRecord) -> None:
        raw = json.dumps(value)

        def _put(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO records (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, raw),
            )
            conn.commit()

        await asyncio.to_thread(self._run, "put", _put)

    async def delete(self, key: str) -> bool:
        def _delete(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute("DELETE FROM records WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

        return await asyncio.to_thread(self._run, "delete", _delete)

    async def keys(self, prefix: str = "") -> list[str]:
        # LIKE would need escaping for '%' and '_'; a range scan on the
        # primary key does not.
        def _keys(conn: sqlite3.Connection) -> list[str]:
            if not prefix:
                rows = conn.execute("SELECT key FROM records ORDER BY key").fetchall()
            else:
                rows = conn.execute(
                    "SELECT key FROM records WHERE key >= ? AND key < ? ORDER BY key",
                    (prefix, prefix + "\U0010ffff"),
                ).fetchall()
            return [row[0] for row in rows]

        return await asyncio.to_thread(self._run, "keys", _keys)

    async def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
