"""Settings and endpoint definitions."""

from trade_macro_dashboard.config.settings import (
    Settings,
    DEFAULT_REPORTER,
    DEFAULT_PARTNER,
    DEFAULT_YEAR_RANGE,
    FX_SYMBOL_COUNTRIES,
)
from trade_macro_dashboard.config.endpoints import (
    WITS,
    WorldBank,
    Frankfurter,
    Comtrade,
    redact_url,
)

__all__ = [
    "Settings",
    "DEFAULT_REPORTER",
    "DEFAULT_PARTNER",
    "DEFAULT_YEAR_RANGE",
    "FX_SYMBOL_COUNTRIES",
    "WITS",
    "WorldBank",
    "Frankfurter",
    "Comtrade",
    "redact_url",
]
