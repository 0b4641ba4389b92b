"""Canonical record types."""

from trade_macro_dashboard.models.trade_data import (
    Flow,
    Frequency,
    MacroFact,
    ProductLevel,
    SchemaKind,
    TradeFact,
    records_to_frame,
)

__all__ = [
    "Flow",
    "Frequency",
    "MacroFact",
    "ProductLevel",
    "SchemaKind",
    "TradeFact",
    "records_to_frame",
]
