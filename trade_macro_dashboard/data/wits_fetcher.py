"""WITS bilateral trade fetcher."""

import logging
import threading
import xml.etree.ElementTree as ET

from trade_macro_dashboard.config import (
    DEFAULT_PARTNER,
    DEFAULT_REPORTER,
    DEFAULT_YEAR_RANGE,
    WITS,
    Settings,
)
from trade_macro_dashboard.data.base import FetchResult, SourceFetcher
from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.data.executor import (
    RequestDescriptor,
    RequestExecutor,
    ResponseFormat,
)
from trade_macro_dashboard.data.normalizer import SourceDescriptor, normalize
from trade_macro_dashboard.data.planner import QueryPlanner, WITS_RULES


logger = logging.getLogger(__name__)


class WitsFetcher(SourceFetcher):
    """Plans, fetches and normalises WITS trade statistics."""

    SOURCE = "wits"
    CACHE_TTL = 60 * 60  # 1 hour

    METADATA = {
        "dataflow": WITS.DATAFLOW,
        "codelists": WITS.CODELISTS,
        "tradestats": WITS.DSD_TRADESTATS,
        "tariff_trains": WITS.DSD_TARIFF_TRAINS,
    }

    def __init__(
        self,
        executor: RequestExecutor | None = None,
        settings: Settings | None = None,
        planner: QueryPlanner | None = None,
    ) -> None:
        super().__init__(executor, settings)
        self.planner = planner or QueryPlanner(WITS_RULES)

    def default_params(self) -> dict[str, str]:
        """Bilateral totals for the tracked pair."""
        return {
            "reporter": DEFAULT_REPORTER,
            "year": "all",
            "partner": DEFAULT_PARTNER,
            "product": WITS.PRODUCT_NOT_APPLICABLE,
            "indicator": "all",
        }

    def fetch_trade(
        self,
        datasource: str = "tradestats-trade",
        params: dict | None = None,
        year_range: tuple[int, int] = DEFAULT_YEAR_RANGE,
        cancel: threading.Event | None = None,
    ) -> FetchResult:
        """
        Fetch every legal sub-query of a WITS request.

        Args:
            datasource: WITS datasource name
            params: Dimension values; defaults to the tracked pair's totals
            year_range: Range used when the year must be enumerated
            cancel: Shared cancellation flag

        Returns:
            TradeFacts from all sub-queries that succeeded, plus the
            sub-query failures

        Raises:
            ClassifiedError: QUERY_LIMIT_EXCEEDED from the planner, or the
                last failure when every sub-query failed
        """
        queries = self.planner.plan(datasource, params or self.default_params(), year_range)
        logger.info(f"Fetching WITS {datasource}: {len(queries)} request(s)")

        result = FetchResult()
        for query in queries:
            url = WITS.json(query.datasource, **query.params)
            try:
                payload = self.executor.execute(
                    RequestDescriptor(url, ResponseFormat.JSON, cache_ttl=self.CACHE_TTL),
                    cancel=cancel,
                )
            except ClassifiedError as e:
                logger.warning(f"  WITS sub-query failed ({e.kind.value}): {url}")
                result.failures.append(e)
                continue
            result.records.extend(
                normalize(payload, SourceDescriptor(self.SOURCE, url, datasource))
            )

        if queries and len(result.failures) == len(queries):
            raise result.failures[-1]
        logger.info(f"  {len(result.records)} WITS records")
        return result

    def fetch_metadata(
        self, which: str = "dataflow", cancel: threading.Event | None = None
    ) -> ET.Element:
        """Fetch an SDMX metadata document (dataflow, codelists or a DSD)."""
        if which not in self.METADATA:
            raise ValueError(f"Unknown WITS metadata {which!r}; use one of {list(self.METADATA)}")
        return self.executor.execute(
            RequestDescriptor(
                self.METADATA[which], ResponseFormat.XML, cache_ttl=self.CACHE_TTL
            ),
            cancel=cancel,
        )
