"""Frankfurter FX rate fetcher."""

import logging
import threading
from datetime import date

from trade_macro_dashboard.config import Frankfurter
from trade_macro_dashboard.data.base import FetchResult, SourceFetcher
from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.data.executor import RequestDescriptor, ResponseFormat
from trade_macro_dashboard.data.normalizer import SourceDescriptor, normalize


logger = logging.getLogger(__name__)


def year_chunks(start: str, end: str, years: int = 5) -> list[tuple[str, str]]:
    """Split an ISO date range into consecutive chunks of at most ``years`` years."""
    first, last = date.fromisoformat(start), date.fromisoformat(end)
    chunks = []
    for year in range(first.year, last.year + 1, years):
        chunk_start = max(first, date(year, 1, 1))
        chunk_end = min(last, date(year + years - 1, 12, 31))
        chunks.append((chunk_start.isoformat(), chunk_end.isoformat()))
    return chunks


class FrankfurterFetcher(SourceFetcher):
    """Fetches USD exchange rates and annualises them."""

    SOURCE = "frankfurter"
    LATEST_TTL = 15 * 60  # 15 minutes
    HISTORICAL_TTL = 24 * 60 * 60  # 24 hours
    CHUNK_YEARS = 5

    def __init__(self, *args, base: str = "USD", symbols: str = "INR,CNY", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.base = base
        self.symbols = symbols

    def fetch_latest(self, cancel: threading.Event | None = None) -> dict:
        return self.executor.execute(
            RequestDescriptor(
                Frankfurter.latest(self.base, self.symbols),
                ResponseFormat.JSON,
                cache_ttl=self.LATEST_TTL,
            ),
            cancel=cancel,
        )

    def fetch_historical(self, on_date: str, cancel: threading.Event | None = None) -> dict:
        return self.executor.execute(
            RequestDescriptor(
                Frankfurter.historical(on_date, self.base, self.symbols),
                ResponseFormat.JSON,
                cache_ttl=self.HISTORICAL_TTL,
            ),
            cancel=cancel,
        )

    def fetch_series(
        self,
        start: str,
        end: str,
        cancel: threading.Event | None = None,
        failures: list[ClassifiedError] | None = None,
    ) -> dict | None:
        """
        Daily rates between two ISO dates, fetched in 5-year chunks.

        Failed chunks are skipped (and appended to ``failures`` when given).

        Returns:
            ``{"base", "start_date", "end_date", "rates"}`` or None when no
            chunk returned data
        """
        rates: dict[str, dict] = {}
        for chunk_start, chunk_end in year_chunks(start, end, self.CHUNK_YEARS):
            url = Frankfurter.series(chunk_start, chunk_end, self.base, self.symbols)
            try:
                payload = self.executor.execute(
                    RequestDescriptor(url, ResponseFormat.JSON, cache_ttl=self.HISTORICAL_TTL),
                    cancel=cancel,
                )
            except ClassifiedError as e:
                logger.warning(f"  FX chunk {chunk_start}..{chunk_end} failed: {e.message}")
                if failures is not None:
                    failures.append(e)
                continue
            if isinstance(payload, dict) and isinstance(payload.get("rates"), dict):
                rates.update(payload["rates"])

        if not rates:
            return None
        return {"base": self.base, "start_date": start, "end_date": end, "rates": rates}

    def fetch_annual(
        self, start: str, end: str, cancel: threading.Event | None = None
    ) -> FetchResult:
        """Annual-average FX MacroFacts over a date range."""
        logger.info(f"Fetching FX {self.base}->{self.symbols} {start}..{end}")
        result = FetchResult()
        series = self.fetch_series(start, end, cancel, failures=result.failures)
        if series is None:
            if result.failures:
                raise result.failures[-1]
            return result
        result.records = normalize(
            series, SourceDescriptor(self.SOURCE, f"frankfurter:{start}..{end}")
        )
        logger.info(f"  {len(result.records)} annual FX observations")
        return result
