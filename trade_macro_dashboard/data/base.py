"""Shared plumbing for the per-provider fetchers."""

import logging
from dataclasses import dataclass, field

from trade_macro_dashboard.config import Settings
from trade_macro_dashboard.data.cache import CacheStore
from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.data.executor import RequestExecutor
from trade_macro_dashboard.data.telemetry import EventLog


logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Records from one fetch plus the partial failures it absorbed."""

    records: list = field(default_factory=list)
    failures: list[ClassifiedError] = field(default_factory=list)

    def extend(self, other: "FetchResult") -> None:
        self.records.extend(other.records)
        self.failures.extend(other.failures)


class SourceFetcher:
    """Base for fetchers; owns the executor unless one is shared in."""

    SOURCE = ""

    def __init__(
        self,
        executor: RequestExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        if settings is None:
            settings = executor.settings if executor is not None else Settings()
        self.settings = settings
        self._owns_executor = executor is None
        if executor is None:
            events = EventLog()
            executor = RequestExecutor(
                cache=CacheStore(self.settings.db_path, events=events),
                events=events,
                settings=self.settings,
            )
        self.executor = executor

    @property
    def events(self) -> EventLog:
        return self.executor.events

    def close(self) -> None:
        """Close the executor if this fetcher created it."""
        if self._owns_executor:
            self.executor.close()

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()
