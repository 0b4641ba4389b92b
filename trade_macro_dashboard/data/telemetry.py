"""Append-only, capped event log for fetch diagnostics."""

import logging
import threading
import time
from collections import deque
from typing import Any

from trade_macro_dashboard.data.errors import ClassifiedError


logger = logging.getLogger(__name__)


class EventLog:
    """
    In-memory event log shared by concurrent fetches.

    Oldest events are evicted once ``max_events`` is reached. One instance
    is constructed per pipeline (or per test) and passed to collaborators.
    """

    MAX_EVENTS = 500

    def __init__(self, max_events: int = MAX_EVENTS) -> None:
        self._events: deque[dict[str, Any]] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def track(self, category: str, action: str, **meta: Any) -> None:
        """Record one event."""
        event = {"ts": time.time(), "category": category, "action": action, **meta}
        with self._lock:
            self._events.append(event)

    def track_error(self, err: ClassifiedError) -> None:
        """Record a classified error and log it."""
        logger.error(f"[{err.kind.value}] {err.message}")
        self.track(
            "error",
            err.kind.value,
            message=err.message,
            source=err.source,
            retryable=err.retryable,
        )

    def events(self, category: str | None = None) -> list[dict[str, Any]]:
        """Snapshot of recorded events, optionally filtered by category."""
        with self._lock:
            snapshot = list(self._events)
        if category is None:
            return snapshot
        return [e for e in snapshot if e["category"] == category]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def summarise(self) -> dict[str, Any]:
        """Fetch, error and cache-hit counts over the retained window."""
        events = self.events()
        fetches = sum(1 for e in events if e["category"] == "fetch")
        errors = sum(1 for e in events if e["category"] == "error")
        hits = sum(1 for e in events if e["action"] == "cache_hit")
        misses = sum(1 for e in events if e["action"] == "cache_miss")
        lookups = hits + misses
        return {
            "total_fetches": fetches,
            "total_errors": errors,
            "cache_hits": hits,
            "cache_misses": misses,
            "cache_hit_rate": f"{hits / lookups * 100:.1f}%" if lookups else "N/A",
        }
