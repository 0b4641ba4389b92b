"""Two-tier TTL cache for fetched payloads.

The in-memory tier is authoritative. An optional SQLite file mirrors it so
a restarted process can reuse recent responses; any failure of that tier
is logged and ignored.
"""

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from trade_macro_dashboard.data.telemetry import EventLog


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60

# Returned by ``get`` on a miss; ``None`` is a legitimate cached payload
MISSING = object()


def fingerprint(url: str, params: dict | None = None) -> str:
    """Cache key / request fingerprint for a URL and optional params."""
    return f"{url}|{json.dumps(params or {}, sort_keys=True, separators=(',', ':'))}"


@dataclass
class CacheEntry:
    """A cached payload and its absolute expiry (epoch seconds)."""

    key: str
    value: Any
    expires_at: float


class CacheStore:
    """Keyed, TTL-bounded payload store shared by concurrent fetches."""

    def __init__(
        self,
        db_path: Path | None = None,
        events: EventLog | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = db_path
        self.events = events if events is not None else EventLog()
        self._clock = clock
        self._mem: dict[str, CacheEntry] = {}
        if self.db_path is not None:
            self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS cache_entries (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        expires_at REAL NOT NULL
                    )
                """)
        except sqlite3.Error as e:
            logger.warning(f"Persistent cache disabled ({self.db_path}): {e}")
            self.db_path = None

    def get(self, key: str) -> Any:
        """Return the live payload for ``key`` or ``MISSING``."""
        now = self._clock()
        entry = self._mem.get(key)
        if entry is not None:
            if now < entry.expires_at:
                self.events.track("cache", "cache_hit", store="memory", key=key)
                return entry.value
            self._mem.pop(key, None)

        entry = self._load(key, now)
        if entry is not None:
            self.events.track("cache", "cache_hit", store="sqlite", key=key)
            self._mem[key] = entry
            return entry.value

        self.events.track("cache", "cache_miss", key=key)
        return MISSING

    def set(self, key: str, value: Any, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        """Store a payload; concurrent writers simply overwrite each other."""
        entry = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl_seconds)
        self._mem[key] = entry
        self._store(entry)

    def invalidate(self, key: str) -> None:
        self._mem.pop(key, None)
        if self.db_path is None:
            return
        try:
            with self._get_connection() as conn:
                conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        except sqlite3.Error as e:
            logger.debug(f"Cache invalidate failed for {key}: {e}")

    def clear(self) -> None:
        self._mem.clear()
        if self.db_path is None:
            return
        try:
            with self._get_connection() as conn:
                conn.execute("DELETE FROM cache_entries")
        except sqlite3.Error as e:
            logger.debug(f"Cache clear failed: {e}")

    def purge_expired(self) -> int:
        """Drop expired entries from both tiers. Returns rows removed from SQLite."""
        now = self._clock()
        for key in [k for k, e in self._mem.items() if e.expires_at <= now]:
            self._mem.pop(key, None)
        if self.db_path is None:
            return 0
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM cache_entries WHERE expires_at <= ?", (now,)
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.debug(f"Cache purge failed: {e}")
            return 0

    def get_cache_status(self) -> dict[str, int]:
        """Entry counts per tier."""
        status = {"memory_entries": len(self._mem), "sqlite_entries": 0}
        if self.db_path is None:
            return status
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT COUNT(*) AS n FROM cache_entries").fetchone()
                status["sqlite_entries"] = row["n"]
        except sqlite3.Error as e:
            logger.debug(f"Cache status unavailable: {e}")
        return status

    def _load(self, key: str, now: float) -> CacheEntry | None:
        if self.db_path is None:
            return None
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT value, expires_at FROM cache_entries WHERE key = ?",
                    (key,),
                ).fetchone()
                if row is None:
                    return None
                if now >= row["expires_at"]:
                    conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                    return None
                return CacheEntry(
                    key=key, value=json.loads(row["value"]), expires_at=row["expires_at"]
                )
        except (sqlite3.Error, ValueError) as e:
            logger.debug(f"Persistent cache read failed for {key}: {e}")
            return None

    def _store(self, entry: CacheEntry) -> None:
        if self.db_path is None:
            return
        try:
            payload = json.dumps(entry.value)
        except (TypeError, ValueError):
            # XML trees and other non-JSON payloads stay memory-only
            return
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO cache_entries (key, value, expires_at)
                    VALUES (?, ?, ?)
                    """,
                    (entry.key, payload, entry.expires_at),
                )
        except sqlite3.Error as e:
            logger.debug(f"Persistent cache write failed for {entry.key}: {e}")
