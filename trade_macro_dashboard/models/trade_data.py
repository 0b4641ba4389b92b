"""Canonical record schemas for trade and macro observations."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

import pandas as pd


class Frequency(str, Enum):
    ANNUAL = "A"
    MONTHLY = "M"


class Flow(str, Enum):
    IMPORT = "IMPORT"
    EXPORT = "EXPORT"


class ProductLevel(str, Enum):
    TOTAL = "TOTAL"
    GROUP = "GROUP"
    HS2 = "HS2"
    HS4 = "HS4"


class SchemaKind(str, Enum):
    TRADE_FACT = "trade_fact"
    MACRO_FACT = "macro_fact"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class TradeFact:
    """One bilateral trade observation."""

    date: str
    frequency: str
    reporter: str
    partner: str
    flow: str
    product_level: str
    product_code: str
    product_name: str
    value_usd: float | None  # None = missing, never zero
    source_id: str
    retrieval_timestamp: str
    request_fingerprint: str
    unit: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MacroFact:
    """One macro or FX indicator observation."""

    date: str
    country: str
    indicator_code: str
    indicator_name: str
    value: float | None
    unit: str
    source_id: str
    retrieval_timestamp: str
    request_fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def records_to_frame(records: Iterable[TradeFact | MacroFact | dict]) -> pd.DataFrame:
    """Tabular view of records for aggregation."""
    rows = [r if isinstance(r, dict) else r.to_dict() for r in records]
    return pd.DataFrame(rows)
