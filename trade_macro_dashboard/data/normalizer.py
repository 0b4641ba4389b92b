"""Convert provider payloads into canonical TradeFact / MacroFact records.

Each provider is an adapter holding an ordered set of response shapes. A
shape knows how to recognise a payload and pull a flat list of
observation dicts out of it; the adapter then maps fields. Payloads that
no shape recognises normalise to an empty list.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable

import pandas as pd

from trade_macro_dashboard.config import FX_SYMBOL_COUNTRIES, WITS
from trade_macro_dashboard.models import (
    Flow,
    Frequency,
    MacroFact,
    ProductLevel,
    TradeFact,
)
from trade_macro_dashboard.models.trade_data import utc_timestamp


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceDescriptor:
    """Where a payload came from."""

    provider: str  # wits | worldbank | frankfurter | comtrade
    request_fingerprint: str
    dataset: str = ""  # WITS datasource or World Bank indicator code


Observations = list[dict[str, Any]]


# =============================================================================
# Response shapes
# =============================================================================

class ResponseShape:
    """One recognisable payload layout."""

    name = "shape"

    def detect(self, payload: Any) -> bool:
        raise NotImplementedError

    def observations(self, payload: Any) -> Observations:
        raise NotImplementedError


class FlatListShape(ResponseShape):
    """``[{...}, {...}]``"""

    name = "flat_list"

    def detect(self, payload: Any) -> bool:
        return isinstance(payload, list) and all(isinstance(o, dict) for o in payload)

    def observations(self, payload: Any) -> Observations:
        return list(payload)


class SdmxDatasetShape(ResponseShape):
    """``{"dataSets": [{"observations": {...}}]}`` or nested series."""

    name = "sdmx_dataset"

    def detect(self, payload: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        datasets = payload.get("dataSets")
        return isinstance(datasets, list) and bool(datasets) and isinstance(datasets[0], dict)

    def observations(self, payload: Any) -> Observations:
        dataset = payload["dataSets"][0]
        if isinstance(dataset.get("observations"), dict):
            return [o for o in dataset["observations"].values() if isinstance(o, dict)]
        obs: Observations = []
        series = dataset.get("series")
        if isinstance(series, dict):
            for entry in series.values():
                inner = entry.get("observations") if isinstance(entry, dict) else None
                if isinstance(inner, dict):
                    obs.extend(o for o in inner.values() if isinstance(o, dict))
        return obs


class WrappedObjectShape(ResponseShape):
    """``{"Dataset": [...]}`` and friends, or a single wrapped object."""

    name = "wrapped_object"
    KEYS = ("Dataset", "data", "wits", "Data")

    def detect(self, payload: Any) -> bool:
        return isinstance(payload, dict) and any(
            isinstance(payload.get(k), (list, dict)) for k in self.KEYS
        )

    def observations(self, payload: Any) -> Observations:
        for key in self.KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return [o for o in value if isinstance(o, dict)]
            if isinstance(value, dict):
                return [value]
        return []


class WorldBankPageShape(ResponseShape):
    """``[metadata, data]`` as returned by the Indicators V2 API."""

    name = "worldbank_page"

    def detect(self, payload: Any) -> bool:
        return (
            isinstance(payload, list)
            and len(payload) == 2
            and isinstance(payload[0], dict)
            and "pages" in payload[0]
            and (payload[1] is None or isinstance(payload[1], list))
        )

    def observations(self, payload: Any) -> Observations:
        return [o for o in (payload[1] or []) if isinstance(o, dict)]


class FxSeriesShape(ResponseShape):
    """``{"rates": {"2024-01-02": {"INR": 83.2}}}``"""

    name = "fx_series"

    def detect(self, payload: Any) -> bool:
        rates = payload.get("rates") if isinstance(payload, dict) else None
        return isinstance(rates, dict) and bool(rates) and all(
            isinstance(v, dict) for v in rates.values()
        )

    def observations(self, payload: Any) -> Observations:
        return [
            {"date": day, "symbol": symbol, "rate": rate}
            for day, quotes in payload["rates"].items()
            for symbol, rate in quotes.items()
        ]


class FxSingleDateShape(ResponseShape):
    """``{"date": "2024-01-02", "rates": {"INR": 83.2}}``"""

    name = "fx_single_date"

    def detect(self, payload: Any) -> bool:
        rates = payload.get("rates") if isinstance(payload, dict) else None
        return (
            isinstance(rates, dict)
            and "date" in payload
            and all(not isinstance(v, dict) for v in rates.values())
        )

    def observations(self, payload: Any) -> Observations:
        return [
            {"date": payload["date"], "symbol": symbol, "rate": rate}
            for symbol, rate in payload["rates"].items()
        ]


def detect_shape(payload: Any, shapes: tuple[ResponseShape, ...]) -> Observations:
    """Observations from the first matching shape; ``[]`` when none match."""
    if payload is None:
        return []
    for shape in shapes:
        if shape.detect(payload):
            return shape.observations(payload)
    logger.warning(f"Unrecognised payload shape ({type(payload).__name__}); skipping")
    return []


# =============================================================================
# Field helpers
# =============================================================================

def parse_value(raw: Any) -> float | None:
    """Numeric value or None; zero stays zero."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip().replace(",", "")
        if text == "":
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    return None if math.isnan(value) or math.isinf(value) else value


def map_flow(code: Any) -> str:
    c = str(code or "").upper()
    if "EXPORT" in c or c.startswith("XPRT") or c in ("X", "2"):
        return Flow.EXPORT.value
    if "IMPORT" in c or c.startswith("MPRT") or c in ("M", "1"):
        return Flow.IMPORT.value
    return c


def classify_product_level(code: Any) -> str:
    s = str(code or "")
    if s in ("TOTAL", "AG6", "", WITS.PRODUCT_NOT_APPLICABLE):
        return ProductLevel.TOTAL.value
    if len(s) <= 2:
        return ProductLevel.HS2.value
    if len(s) <= 4:
        return ProductLevel.HS4.value
    return ProductLevel.GROUP.value


def guess_unit(indicator_code: str) -> str:
    if "CD" in indicator_code or "USD" in indicator_code:
        return "current USD"
    if "ZG" in indicator_code or "ZS" in indicator_code:
        return "%"
    return "value"


def _first(obs: dict, *keys: str, default: Any = "") -> Any:
    for key in keys:
        value = obs.get(key)
        if value not in (None, ""):
            return value
    return default


# =============================================================================
# Provider adapters
# =============================================================================

class ProviderAdapter:
    """Shape detection plus field mapping for one provider."""

    provider = ""
    shapes: tuple[ResponseShape, ...] = ()

    def normalize(self, payload: Any, source: SourceDescriptor) -> list:
        observations = detect_shape(payload, self.shapes)
        retrieved = utc_timestamp()
        return self.map_records(observations, source, retrieved)

    def map_records(
        self, observations: Observations, source: SourceDescriptor, retrieved: str
    ) -> list:
        return [self.to_record(obs, source, retrieved) for obs in observations]

    def to_record(self, obs: dict, source: SourceDescriptor, retrieved: str):
        raise NotImplementedError


class WitsAdapter(ProviderAdapter):
    provider = "wits"
    shapes = (FlatListShape(), SdmxDatasetShape(), WrappedObjectShape())

    def to_record(self, obs: dict, source: SourceDescriptor, retrieved: str) -> TradeFact:
        code = str(_first(obs, "ProductCode", "productcode", "product", default="TOTAL"))
        is_total = code in ("TOTAL", WITS.PRODUCT_NOT_APPLICABLE)
        return TradeFact(
            date=str(_first(obs, "year", "Year", "TimePeriod")),
            frequency=Frequency.ANNUAL.value,
            reporter=str(_first(obs, "ReporterISO3", "reporter")),
            partner=str(_first(obs, "PartnerISO3", "partner")),
            flow=map_flow(_first(obs, "TradeFlowCode", "TradeFlow", "Indicator")),
            product_level=(ProductLevel.TOTAL if is_total else ProductLevel.GROUP).value,
            product_code=code,
            product_name=str(_first(obs, "ProductDescription", "Product", "productname")),
            value_usd=parse_value(_first(obs, "Value", "TradeValue", "value", default=None)),
            source_id=f"wits:{source.dataset}",
            retrieval_timestamp=retrieved,
            request_fingerprint=source.request_fingerprint,
        )


class WorldBankAdapter(ProviderAdapter):
    provider = "worldbank"
    shapes = (WorldBankPageShape(), FlatListShape())

    def map_records(
        self, observations: Observations, source: SourceDescriptor, retrieved: str
    ) -> list[MacroFact]:
        return [
            self.to_record(obs, source, retrieved)
            for obs in observations
            if parse_value(obs.get("value")) is not None
        ]

    def to_record(self, obs: dict, source: SourceDescriptor, retrieved: str) -> MacroFact:
        indicator = obs.get("indicator") if isinstance(obs.get("indicator"), dict) else {}
        country = obs.get("country") if isinstance(obs.get("country"), dict) else {}
        code = source.dataset or str(indicator.get("id", ""))
        iso3 = str(obs.get("countryiso3code") or country.get("id") or "")
        date = str(obs.get("date") or "")
        return MacroFact(
            date=date,
            country=iso3,
            indicator_code=code,
            indicator_name=str(indicator.get("value") or code),
            value=parse_value(obs.get("value")),
            unit=guess_unit(code),
            source_id="worldbank",
            retrieval_timestamp=retrieved,
            request_fingerprint=f"worldbank:{iso3}:{code}:{date}",
        )


class FrankfurterAdapter(ProviderAdapter):
    """Daily rates averaged into annual MacroFacts."""

    provider = "frankfurter"
    shapes = (FxSeriesShape(), FxSingleDateShape())

    def __init__(self, symbol_countries: dict[str, str] | None = None) -> None:
        self.symbol_countries = symbol_countries or FX_SYMBOL_COUNTRIES

    def map_records(
        self, observations: Observations, source: SourceDescriptor, retrieved: str
    ) -> list[MacroFact]:
        if not observations:
            return []
        df = pd.DataFrame(observations)
        df["rate"] = pd.to_numeric(df["rate"], errors="coerce")
        df = df.dropna(subset=["rate"])
        df = df[df["symbol"].isin(self.symbol_countries)]
        if df.empty:
            return []
        df["year"] = df["date"].astype(str).str.slice(0, 4)
        annual = df.groupby(["year", "symbol"], as_index=False)["rate"].mean()

        rows = [
            MacroFact(
                date=row.year,
                country=self.symbol_countries[row.symbol],
                indicator_code=f"FX_USD_{row.symbol}",
                indicator_name=f"USD/{row.symbol} Exchange Rate (annual avg)",
                value=round(float(row.rate), 4),
                unit=f"{row.symbol} per USD",
                source_id="frankfurter",
                retrieval_timestamp=retrieved,
                request_fingerprint=f"frankfurter:annual:{row.year}:{row.symbol}",
            )
            for row in annual.itertuples(index=False)
        ]
        return sorted(rows, key=lambda r: (r.date, r.indicator_code))


class ComtradeAdapter(ProviderAdapter):
    provider = "comtrade"
    shapes = (FlatListShape(), WrappedObjectShape())

    def to_record(self, obs: dict, source: SourceDescriptor, retrieved: str) -> TradeFact:
        flow_desc = str(obs.get("flowDesc") or "").upper()
        is_export = "EXPORT" in flow_desc or str(obs.get("flowCode") or "").upper() == "X"
        reporter = str(_first(obs, "reporterISO", "rtCode"))
        partner = str(_first(obs, "partnerISO", "ptCode"))
        period = str(_first(obs, "period", "yr"))
        code = str(_first(obs, "cmdCode"))
        return TradeFact(
            date=period,
            frequency=Frequency.ANNUAL.value,
            reporter=reporter,
            partner=partner,
            flow=(Flow.EXPORT if is_export else Flow.IMPORT).value,
            product_level=classify_product_level(code),
            product_code=code,
            product_name=str(_first(obs, "cmdDescE", "cmdDesc")),
            value_usd=parse_value(_first(obs, "primaryValue", "TradeValue", default=None)),
            source_id="comtrade",
            retrieval_timestamp=retrieved,
            request_fingerprint=f"comtrade:{reporter}:{partner}:{period}:{code}",
        )


ADAPTERS: dict[str, Callable[[], ProviderAdapter]] = {
    "wits": WitsAdapter,
    "worldbank": WorldBankAdapter,
    "frankfurter": FrankfurterAdapter,
    "comtrade": ComtradeAdapter,
}


def normalize(raw_payload: Any, source: SourceDescriptor) -> list:
    """Canonical records for one raw payload."""
    try:
        adapter = ADAPTERS[source.provider]()
    except KeyError:
        raise ValueError(f"No adapter for provider {source.provider!r}") from None
    records = adapter.normalize(raw_payload, source)
    logger.debug(f"Normalised {len(records)} {source.provider} records")
    return records
