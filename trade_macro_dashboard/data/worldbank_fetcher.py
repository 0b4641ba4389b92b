"""World Bank Indicators (V2) fetcher with pagination."""

import logging
import threading

from trade_macro_dashboard.config import DEFAULT_YEAR_RANGE, WorldBank
from trade_macro_dashboard.data.base import FetchResult, SourceFetcher
from trade_macro_dashboard.data.errors import ClassifiedError, ErrorKind
from trade_macro_dashboard.data.executor import RequestDescriptor, ResponseFormat
from trade_macro_dashboard.data.normalizer import (
    SourceDescriptor,
    WorldBankPageShape,
    normalize,
)


logger = logging.getLogger(__name__)


class WorldBankFetcher(SourceFetcher):
    """Fetches World Bank indicator series as MacroFacts."""

    SOURCE = "worldbank"
    CACHE_TTL = 60 * 60  # 1 hour
    PER_PAGE = 500

    _page_shape = WorldBankPageShape()

    def _check_page(self, payload, url: str) -> dict:
        """Return the page metadata or raise if the payload is not a data page."""
        if self._page_shape.detect(payload):
            return payload[0]
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            messages = payload[0].get("message")
            if messages:
                raise ClassifiedError(
                    ErrorKind.CLIENT_ERROR,
                    f"World Bank rejected request: {messages}",
                    self.SOURCE,
                    {"url": url},
                )
        raise ClassifiedError.schema_drift(
            self.SOURCE, {"url": url, "reason": "expected [metadata, data] page"}
        )

    def fetch_indicator(
        self,
        country: str,
        indicator: str,
        year_range: tuple[int, int] = DEFAULT_YEAR_RANGE,
        cancel: threading.Event | None = None,
    ) -> FetchResult:
        """
        Fetch every page of one indicator for one country.

        Args:
            country: ISO3 country code
            indicator: World Bank indicator code (e.g. NY.GDP.MKTP.CD)
            year_range: Inclusive year range requested
            cancel: Shared cancellation flag

        Returns:
            Non-null observations as MacroFacts
        """
        logger.info(f"Fetching World Bank {indicator} for {country}...")
        date = f"{year_range[0]}:{year_range[1]}"
        source = SourceDescriptor(self.SOURCE, "", indicator)
        result = FetchResult()

        page, pages = 1, 1
        while page <= pages:
            url = WorldBank.indicator(country, indicator, date, self.PER_PAGE, page)
            payload = self.executor.execute(
                RequestDescriptor(url, ResponseFormat.JSON, cache_ttl=self.CACHE_TTL),
                cancel=cancel,
            )
            meta = self._check_page(payload, url)
            pages = int(meta.get("pages") or 1)
            result.records.extend(normalize(payload, source))
            page += 1

        logger.info(f"  {len(result.records)} observations over {pages} page(s)")
        return result

    def fetch_countries(
        self,
        countries: list[str],
        indicator: str = WorldBank.GDP_CURRENT_USD,
        year_range: tuple[int, int] = DEFAULT_YEAR_RANGE,
        cancel: threading.Event | None = None,
    ) -> FetchResult:
        """Same indicator for several countries; one country failing does not stop the rest."""
        result = FetchResult()
        for country in countries:
            try:
                result.extend(self.fetch_indicator(country, indicator, year_range, cancel))
            except ClassifiedError as e:
                logger.warning(f"  {indicator} for {country} failed: {e.message}")
                result.failures.append(e)

        if countries and len(result.failures) == len(countries):
            raise result.failures[-1]
        return result
