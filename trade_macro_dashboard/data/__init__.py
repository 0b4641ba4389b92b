"""Data fetching, caching and normalisation."""

from .errors import ClassifiedError, ErrorKind, Banner, error_to_banner
from .cache import CacheStore
from .executor import RequestExecutor, RequestDescriptor, ResponseFormat
from .planner import QueryPlanner, WITS_RULES
from .normalizer import SourceDescriptor, normalize
from .validator import validate
from .wits_fetcher import WitsFetcher
from .worldbank_fetcher import WorldBankFetcher
from .frankfurter_fetcher import FrankfurterFetcher
from .comtrade_fetcher import ComtradeFetcher

__all__ = [
    "ClassifiedError",
    "ErrorKind",
    "Banner",
    "error_to_banner",
    "CacheStore",
    "RequestExecutor",
    "RequestDescriptor",
    "ResponseFormat",
    "QueryPlanner",
    "WITS_RULES",
    "SourceDescriptor",
    "normalize",
    "validate",
    "WitsFetcher",
    "WorldBankFetcher",
    "FrankfurterFetcher",
    "ComtradeFetcher",
]
