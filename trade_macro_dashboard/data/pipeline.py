"""Concurrent multi-source refresh with per-source outcomes."""

import copy
import logging
import queue
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from trade_macro_dashboard.config import (
    DEFAULT_PARTNER,
    DEFAULT_REPORTER,
    DEFAULT_YEAR_RANGE,
    Settings,
    WorldBank,
)
from trade_macro_dashboard.data.base import FetchResult
from trade_macro_dashboard.data.cache import CacheStore
from trade_macro_dashboard.data.comtrade_fetcher import ComtradeFetcher
from trade_macro_dashboard.data.errors import Banner, ClassifiedError, error_to_banner
from trade_macro_dashboard.data.executor import RequestExecutor
from trade_macro_dashboard.data.frankfurter_fetcher import FrankfurterFetcher
from trade_macro_dashboard.data.telemetry import EventLog
from trade_macro_dashboard.data.validator import InvalidRecord, validate
from trade_macro_dashboard.data.wits_fetcher import WitsFetcher
from trade_macro_dashboard.data.worldbank_fetcher import WorldBankFetcher
from trade_macro_dashboard.indicators.forecast import ForecastParams, ForecastResult
from trade_macro_dashboard.indicators.worker import ForecastWorker
from trade_macro_dashboard.models import MacroFact, SchemaKind, TradeFact


logger = logging.getLogger(__name__)

FX_DATE_RANGE = ("2005-01-03", "2024-12-31")


class SourceStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DISABLED = "disabled"


@dataclass
class SourceOutcome:
    """What one source produced during a refresh."""

    source: str
    status: SourceStatus
    valid: list = field(default_factory=list)
    invalid: list[InvalidRecord] = field(default_factory=list)
    error: ClassifiedError | None = None
    drift: ClassifiedError | None = None
    partial_failures: list[ClassifiedError] = field(default_factory=list)
    stale: bool = False  # valid holds last-known-good records
    reason: str = ""


@dataclass
class RefreshResult:
    outcomes: dict[str, SourceOutcome]
    banners: list[Banner] = field(default_factory=list)
    forecast: ForecastResult | None = None
    forecast_error: str = ""

    @property
    def any_success(self) -> bool:
        return any(o.status is SourceStatus.OK for o in self.outcomes.values())

    @property
    def trade_facts(self) -> list[TradeFact]:
        return [r for o in self.outcomes.values() for r in o.valid if isinstance(r, TradeFact)]

    @property
    def macro_facts(self) -> list[MacroFact]:
        return [r for o in self.outcomes.values() for r in o.valid if isinstance(r, MacroFact)]


@dataclass(frozen=True)
class SourceSpec:
    fetch: Callable[[threading.Event], FetchResult]
    kind: SchemaKind


class AcquisitionPipeline:
    """
    Refreshes every configured source concurrently.

    One source failing never affects its siblings. Each source keeps its
    last successful record set; when a later refresh fails the old
    records are served again and flagged stale.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        executor: RequestExecutor | None = None,
        worker: ForecastWorker | None = None,
        year_range: tuple[int, int] = DEFAULT_YEAR_RANGE,
        fx_range: tuple[str, str] = FX_DATE_RANGE,
        max_workers: int = 4,
    ) -> None:
        if settings is None:
            settings = executor.settings if executor is not None else Settings()
        self.settings = settings
        self.settings.validate()
        if executor is None:
            events = EventLog()
            executor = RequestExecutor(
                cache=CacheStore(self.settings.db_path, events=events),
                events=events,
                settings=self.settings,
            )
        self.executor = executor
        self.events = executor.events
        self.year_range = year_range
        self.fx_range = fx_range
        self.max_workers = max_workers
        self.worker = worker

        self.wits = WitsFetcher(executor, self.settings)
        self.worldbank = WorldBankFetcher(executor, self.settings)
        self.frankfurter = FrankfurterFetcher(executor, self.settings)
        self.comtrade = ComtradeFetcher(executor, self.settings)

        self._last_good: dict[str, list] = {}
        self._cancel = threading.Event()

        self.sources: dict[str, SourceSpec] = {
            "wits_trade": SourceSpec(self._fetch_wits, SchemaKind.TRADE_FACT),
            "worldbank_gdp": SourceSpec(self._fetch_worldbank, SchemaKind.MACRO_FACT),
            "frankfurter_fx": SourceSpec(self._fetch_fx, SchemaKind.MACRO_FACT),
            "comtrade": SourceSpec(self._fetch_comtrade, SchemaKind.TRADE_FACT),
        }

    def close(self) -> None:
        self.executor.close()
        if self.worker is not None:
            self.worker.stop()

    def __enter__(self) -> "AcquisitionPipeline":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # =========================================================================
    # Source tasks
    # =========================================================================

    def _fetch_wits(self, cancel: threading.Event) -> FetchResult:
        return self.wits.fetch_trade(year_range=self.year_range, cancel=cancel)

    def _fetch_worldbank(self, cancel: threading.Event) -> FetchResult:
        return self.worldbank.fetch_countries(
            [DEFAULT_REPORTER, DEFAULT_PARTNER],
            WorldBank.GDP_CURRENT_USD,
            self.year_range,
            cancel,
        )

    def _fetch_fx(self, cancel: threading.Event) -> FetchResult:
        return self.frankfurter.fetch_annual(*self.fx_range, cancel=cancel)

    def _fetch_comtrade(self, cancel: threading.Event) -> FetchResult:
        end = self.year_range[1]
        period = ",".join(str(y) for y in range(max(self.year_range[0], end - 4), end + 1))
        result = FetchResult()
        for flow in ("IMPORT", "EXPORT"):
            result.extend(
                self.comtrade.fetch_bilateral(
                    DEFAULT_REPORTER, DEFAULT_PARTNER, period, flow=flow, cancel=cancel
                )
            )
        return result

    # =========================================================================
    # Refresh
    # =========================================================================

    def cancel(self) -> None:
        """Stop issuing new requests for the refresh in progress."""
        self._cancel.set()

    def _fallback(self, outcome: SourceOutcome) -> SourceOutcome:
        previous = self._last_good.get(outcome.source)
        if self.settings.snapshot_fallback and previous:
            logger.info(f"  {outcome.source}: serving {len(previous)} last-known-good records")
            outcome.valid = copy.deepcopy(previous)
            outcome.stale = True
        return outcome

    def _run_source(self, name: str, cancel: threading.Event) -> SourceOutcome:
        spec = self.sources[name]
        if name == "comtrade" and not self.comtrade.enabled:
            return SourceOutcome(
                name, SourceStatus.DISABLED, reason=self.comtrade.disable_reason or ""
            )
        if cancel.is_set():
            return self._fallback(SourceOutcome(name, SourceStatus.CANCELLED))

        try:
            fetched = spec.fetch(cancel)
            checked = validate(fetched.records, spec.kind, self.events)
        except ClassifiedError as e:
            logger.warning(f"  {name} failed: [{e.kind.value}] {e.message}")
            return self._fallback(SourceOutcome(name, SourceStatus.FAILED, error=e))
        except CancelledError:
            return self._fallback(SourceOutcome(name, SourceStatus.CANCELLED))
        except Exception as e:
            # Unclassified failures stay confined to their own source
            logger.exception(f"  {name} failed unexpectedly")
            return self._fallback(
                SourceOutcome(name, SourceStatus.FAILED, reason=f"{type(e).__name__}: {e}")
            )

        outcome = SourceOutcome(
            name,
            SourceStatus.OK,
            valid=checked.valid,
            invalid=checked.invalid,
            drift=checked.drift,
            partial_failures=fetched.failures,
        )
        if checked.valid:
            self._last_good[name] = copy.deepcopy(checked.valid)
        logger.info(
            f"  {name}: {len(checked.valid)} valid, {len(checked.invalid)} invalid"
        )
        return outcome

    def refresh(
        self,
        sources: list[str] | None = None,
        forecast_target: tuple[str, str] | None = None,
        forecast_params: ForecastParams | None = None,
    ) -> RefreshResult:
        """
        Fetch, normalise and validate the selected sources concurrently.

        Args:
            sources: Source names (default: all)
            forecast_target: Optional ``(country, indicator_code)`` to forecast
                from the refreshed macro facts
            forecast_params: Parameters for that forecast

        Returns:
            RefreshResult with one outcome per requested source
        """
        names = list(sources or self.sources)
        unknown = [n for n in names if n not in self.sources]
        if unknown:
            raise ValueError(f"Unknown sources: {unknown}. Available: {list(self.sources)}")

        if not self.settings.live_refresh:
            outcomes = {
                n: self._fallback(SourceOutcome(n, SourceStatus.DISABLED, reason="LIVE_REFRESH is off"))
                for n in names
            }
            return RefreshResult(outcomes)

        self._cancel = cancel = threading.Event()
        logger.info(f"Refreshing {len(names)} source(s): {', '.join(names)}")

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {n: pool.submit(self._run_source, n, cancel) for n in names}
            outcomes = {n: f.result() for n, f in futures.items()}

        result = RefreshResult(outcomes)
        for outcome in outcomes.values():
            if outcome.error is not None:
                result.banners.append(error_to_banner(outcome.error))
            if outcome.drift is not None:
                result.banners.append(error_to_banner(outcome.drift))

        if forecast_target is not None:
            self._forecast(result, forecast_target, forecast_params)
        return result

    def _forecast(
        self,
        result: RefreshResult,
        target: tuple[str, str],
        params: ForecastParams | None,
    ) -> None:
        if not self.settings.forecast_enabled:
            result.forecast_error = "FORECAST_ENABLED is off"
            return
        country, indicator = target
        series = sorted(
            (r for r in result.macro_facts
             if r.country == country and r.indicator_code == indicator),
            key=lambda r: r.date,
        )
        if not series:
            result.forecast_error = f"No observations for {country} {indicator}"
            return

        if self.worker is None:
            self.worker = ForecastWorker()
        request_id = self.worker.submit(
            "forecast",
            {"values": [r.value for r in series], "params": params or ForecastParams()},
        )
        try:
            response = self.worker.receive(request_id, timeout=self.settings.request_timeout)
        except queue.Empty:
            self.worker.abandon(request_id)
            result.forecast_error = (
                f"Forecast timed out after {self.settings.request_timeout}s"
            )
            return
        except KeyError as e:
            result.forecast_error = f"Forecast response lost: {e}"
            return
        if response.ok:
            result.forecast = response.result
        else:
            result.forecast_error = response.message

    def get_status(self) -> dict:
        """Cache, telemetry and last-known-good counts."""
        return {
            "cache": self.executor.cache.get_cache_status(),
            "telemetry": self.events.summarise(),
            "last_known_good": {name: len(rows) for name, rows in self._last_good.items()},
            "comtrade": self.comtrade.disable_reason or "enabled",
        }


def main() -> None:
    """CLI entry point for refreshing all sources."""
    import argparse
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Refresh trade and macro data")
    parser.add_argument(
        "--sources",
        type=str,
        help="Comma-separated sources (default: all)",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show cache and telemetry status and exit",
    )
    parser.add_argument(
        "--forecast",
        type=str,
        metavar="COUNTRY:INDICATOR",
        help="Forecast one macro series after refreshing (e.g. CHN:NY.GDP.MKTP.CD)",
    )
    args = parser.parse_args()

    target = None
    if args.forecast:
        country, sep, indicator = args.forecast.partition(":")
        if not sep or not country or not indicator:
            print(f"Invalid --forecast value: {args.forecast} (expected COUNTRY:INDICATOR)")
            sys.exit(1)
        target = (country.upper(), indicator)

    try:
        with AcquisitionPipeline() as pipeline:
            if args.status:
                status = pipeline.get_status()
                print("\nStatus:")
                print("-" * 70)
                for section, info in status.items():
                    print(f"{section:16} | {info}")
                return

            names = [s.strip() for s in args.sources.split(",")] if args.sources else None
            result = pipeline.refresh(names, forecast_target=target)

            print("\nSources:")
            for name, outcome in result.outcomes.items():
                stale = " (stale)" if outcome.stale else ""
                detail = outcome.error.message if outcome.error else outcome.reason
                print(
                    f"  {name:16} | {outcome.status.value:9} | "
                    f"{len(outcome.valid):5} valid | {len(outcome.invalid):4} invalid{stale}"
                    + (f" | {detail}" if detail else "")
                )
            for banner in result.banners:
                print(f"  [{banner.level}] {banner.text}")

            if result.forecast is not None:
                fc = result.forecast
                print(f"\n{fc.label}")
                print(f"  Baseline:      {fc.baseline_forecast}")
                print(f"  Holt-Winters:  {fc.seasonal_trend_forecast}")
            elif result.forecast_error:
                print(f"\nForecast unavailable: {result.forecast_error}")

            print(f"\nTelemetry: {pipeline.events.summarise()}")

    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
