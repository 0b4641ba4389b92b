"""UN Comtrade fetcher (optional, key-gated)."""

import logging
import threading

from trade_macro_dashboard.config import Comtrade, redact_url
from trade_macro_dashboard.data.base import FetchResult, SourceFetcher
from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.data.executor import RequestDescriptor, ResponseFormat
from trade_macro_dashboard.data.normalizer import SourceDescriptor, normalize


logger = logging.getLogger(__name__)


class ComtradeFetcher(SourceFetcher):
    """
    Optional HS-level trade detail from UN Comtrade.

    Disabled unless configured with a key. The first failed call disables
    the fetcher for the rest of the process and records why.
    """

    SOURCE = "comtrade"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._disable_reason: str | None = None
        if not self.settings.has_comtrade():
            self._disable_reason = (
                "COMTRADE_API_KEY not set"
                if self.settings.comtrade_enabled
                else "COMTRADE_ENABLED is off"
            )

    @property
    def enabled(self) -> bool:
        return self._disable_reason is None

    @property
    def disable_reason(self) -> str | None:
        return self._disable_reason

    def fetch_bilateral(
        self,
        reporter: str,
        partner: str,
        period: str,
        flow: str = "IMPORT",
        cmd_code: str = "TOTAL",
        cancel: threading.Event | None = None,
    ) -> FetchResult:
        """
        Fetch trade between two ISO3 countries.

        Args:
            period: Year, or comma-separated years
            flow: IMPORT or EXPORT

        Raises:
            ClassifiedError: The call failed; the fetcher is now disabled
        """
        if not self.enabled:
            logger.info(f"Comtrade skipped: {self._disable_reason}")
            return FetchResult()

        try:
            reporter_code = Comtrade.REPORTER_CODES[reporter]
            partner_code = Comtrade.REPORTER_CODES[partner]
            flow_code = Comtrade.FLOW_CODES[flow]
        except KeyError as e:
            raise ValueError(f"Unsupported Comtrade parameter: {e}") from None

        url = Comtrade.data(
            self.settings.comtrade_base_url,
            reporter_code,
            partner_code,
            period,
            cmd_code=cmd_code,
            flow_code=flow_code,
            api_key=self.settings.comtrade_api_key,
        )
        logger.info(f"Fetching Comtrade {reporter}->{partner} {flow} {period}")
        try:
            payload = self.executor.execute(
                RequestDescriptor(url, ResponseFormat.JSON),
                cancel=cancel,
            )
        except ClassifiedError as e:
            self._disable_reason = f"{e.kind.value}: {e.message}"
            logger.warning(f"Comtrade disabled for this session ({self._disable_reason})")
            raise

        records = normalize(payload, SourceDescriptor(self.SOURCE, redact_url(url), cmd_code))
        logger.info(f"  {len(records)} Comtrade records")
        return FetchResult(records=records)
