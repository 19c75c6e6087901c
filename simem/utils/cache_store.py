"""
Persistent Cache Store - SQLite-backed per-day record cache

One table keyed by the YYYY-MM-DD date string. Each row holds the day's full
record list (orjson-encoded), its creation timestamp and record count. Rows are
only ever replaced whole, never patched.

The SQLite handle is opened lazily, once, by the first operation that needs it.
Blocking sqlite3 calls run in worker threads via asyncio.to_thread and are
serialized by a lock on the shared connection.

Every operation except initialize() fails closed: storage errors are logged and
reported as a cache miss, a dropped write or an empty listing, never raised.
A clear() racing an in-flight put() has undefined ordering.
"""

import asyncio
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import orjson
from pydantic import ValidationError

from simem.utils.config import settings
from simem.utils.errors import CacheStoreError
from simem.utils.schemas import CacheDateSummary, CacheEntry, CacheStats, Record

logger = logging.getLogger(__name__)

TABLE_NAME = "price_data"

# 16-bit code units per character of the serialized entry.
SIZE_MULTIPLIER = 2


class CacheStore:
    """Key-value store of record lists keyed by calendar date."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        """
        Args:
            db_path: SQLite file path (":memory:" allowed), defaults to settings.CACHE_DB_PATH
        """
        self.db_path = db_path or settings.CACHE_DB_PATH
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the database and create the table if needed.

        Raises:
            CacheStoreError: If the database cannot be opened. A later call
                tries again.
        """
        if self._conn is not None:
            return
        await asyncio.to_thread(self._open_sync)

    def _open_sync(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                        date TEXT PRIMARY KEY,
                        records TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        record_count INTEGER NOT NULL
                    )
                """)
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise CacheStoreError(f"Failed to open cache at {self.db_path}: {e}") from e

            self._conn = conn

        logger.info("Cache store ready", extra={"db_path": self.db_path})

    async def close(self) -> None:
        """Close the underlying connection. A later operation reopens it."""
        await asyncio.to_thread(self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        await self.initialize()
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._lock:
            if self._conn is None:
                raise CacheStoreError("Cache store was closed")
            return fn(self._conn, *args)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def exists(self, day: str) -> bool:
        try:
            return await self._run(_exists, day)
        except (sqlite3.Error, CacheStoreError) as e:
            logger.error("Cache existence check failed", extra={"day": day, "error": str(e)})
            return False

    async def get(self, day: str) -> Optional[list[Record]]:
        """Return the cached records for a day, or None if absent or unreadable."""
        try:
            return await self._run(_get, day)
        except (sqlite3.Error, CacheStoreError, orjson.JSONDecodeError) as e:
            logger.error("Cache read failed", extra={"day": day, "error": str(e)})
            return None

    async def put(self, day: str, records: list[Record]) -> bool:
        """Insert or replace the entry for a day.

        Returns:
            True if the entry was written
        """
        try:
            entry = CacheEntry.build(day, records)
            payload = orjson.dumps(entry.records)
        except (ValidationError, TypeError) as e:
            logger.error("Cache entry rejected", extra={"day": day, "error": str(e)})
            return False

        try:
            await self._run(_put, entry, payload)
        except (sqlite3.Error, CacheStoreError) as e:
            logger.error("Cache write failed", extra={"day": day, "error": str(e)})
            return False

        logger.debug("Cached day", extra={"day": day, "records": entry.record_count})
        return True

    async def delete(self, day: str) -> bool:
        try:
            await self._run(_delete, day)
        except (sqlite3.Error, CacheStoreError) as e:
            logger.error("Cache delete failed", extra={"day": day, "error": str(e)})
            return False
        return True

    async def list_keys(self) -> list[str]:
        try:
            return await self._run(_list_keys)
        except (sqlite3.Error, CacheStoreError) as e:
            logger.error("Cache key listing failed", extra={"error": str(e)})
            return []

    async def stats(self) -> CacheStats:
        """Full scan of the cache.

        approx_size_bytes sums, per entry, the character length of its JSON
        serialization multiplied by SIZE_MULTIPLIER.
        """
        try:
            return await self._run(_stats)
        except (sqlite3.Error, CacheStoreError, orjson.JSONDecodeError) as e:
            logger.error("Cache stats failed", extra={"error": str(e)})
            return CacheStats()

    async def clear(self) -> bool:
        try:
            removed = await self._run(_clear)
        except (sqlite3.Error, CacheStoreError) as e:
            logger.error("Cache clear failed", extra={"error": str(e)})
            return False

        logger.info("Cache cleared", extra={"removed_dates": removed})
        return True


# ----------------------------------------------------------------------
# Blocking helpers, executed in a worker thread under the store lock
# ----------------------------------------------------------------------

def _exists(conn: sqlite3.Connection, day: str) -> bool:
    row = conn.execute(f"SELECT 1 FROM {TABLE_NAME} WHERE date = ?", (day,)).fetchone()
    return row is not None


def _get(conn: sqlite3.Connection, day: str) -> Optional[list[Record]]:
    row = conn.execute(
        f"SELECT records FROM {TABLE_NAME} WHERE date = ?", (day,)
    ).fetchone()
    if row is None:
        return None
    return orjson.loads(row["records"])


def _put(conn: sqlite3.Connection, entry: CacheEntry, payload: bytes) -> None:
    conn.execute(
        f"""
        INSERT OR REPLACE INTO {TABLE_NAME} (date, records, created_at, record_count)
        VALUES (?, ?, ?, ?)
        """,
        (
            entry.date,
            payload.decode("utf-8"),
            entry.created_at.isoformat(),
            entry.record_count,
        ),
    )
    conn.commit()


def _delete(conn: sqlite3.Connection, day: str) -> None:
    conn.execute(f"DELETE FROM {TABLE_NAME} WHERE date = ?", (day,))
    conn.commit()


def _list_keys(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(f"SELECT date FROM {TABLE_NAME} ORDER BY date").fetchall()
    return [row["date"] for row in rows]


def _stats(conn: sqlite3.Connection) -> CacheStats:
    rows = conn.execute(
        f"SELECT date, records, created_at, record_count FROM {TABLE_NAME} ORDER BY date"
    ).fetchall()

    total_records = 0
    approx_size = 0
    summaries = []

    for row in rows:
        total_records += row["record_count"]
        serialized = orjson.dumps({
            "date": row["date"],
            "records": orjson.loads(row["records"]),
            "created_at": row["created_at"],
            "record_count": row["record_count"],
        }).decode("utf-8")
        approx_size += len(serialized) * SIZE_MULTIPLIER
        summaries.append(
            CacheDateSummary(
                date=row["date"],
                record_count=row["record_count"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
        )

    return CacheStats(
        total_dates=len(rows),
        total_records=total_records,
        approx_size_bytes=approx_size,
        per_date_summary=summaries,
    )


def _clear(conn: sqlite3.Connection) -> int:
    cursor = conn.execute(f"DELETE FROM {TABLE_NAME}")
    conn.commit()
    return cursor.rowcount
