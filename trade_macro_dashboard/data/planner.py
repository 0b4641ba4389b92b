"""Query planner for dimensionally-constrained data sources.

WITS rejects requests where too many dimensions are wildcarded, and never
allows ``reporter=all`` together with ``partner=all``. The planner checks a
query against such rules and, when it is illegal, splits it into legal
sub-queries by pinning enumerable dimensions (the year first).
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterator, NamedTuple

from trade_macro_dashboard.config import WITS
from trade_macro_dashboard.data.errors import ClassifiedError, ErrorKind


logger = logging.getLogger(__name__)


class Validation(NamedTuple):
    valid: bool
    reason: str = ""


@dataclass(frozen=True)
class DimensionRules:
    """Constraints a provider imposes on wildcarded dimensions."""

    source: str
    dimensions: tuple[str, ...]
    max_wildcards: int = 2
    forbidden_pairs: tuple[tuple[str, str], ...] = ()
    wildcard: str = "all"
    chunk_dimension: str = "year"
    chunk_size: int = 5
    members: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def with_members(self, **members: tuple[str, ...]) -> "DimensionRules":
        """Copy of these rules with known members for extra dimensions."""
        merged = dict(self.members)
        merged.update({dim: tuple(values) for dim, values in members.items()})
        return replace(self, members=merged)


WITS_RULES = DimensionRules(
    source="wits",
    dimensions=WITS.DIMENSIONS,
    max_wildcards=2,
    forbidden_pairs=(("reporter", "partner"),),
    chunk_dimension="year",
    chunk_size=5,
)


@dataclass(frozen=True)
class LegalQuery:
    """A query the provider will accept."""

    datasource: str
    params: dict[str, str]


class QueryPlanner:
    """Validates queries and decomposes illegal ones."""

    def __init__(self, rules: DimensionRules = WITS_RULES) -> None:
        self.rules = rules

    def _is_wildcard(self, value) -> bool:
        return str(value).lower() == self.rules.wildcard

    def wildcarded(self, params: dict) -> list[str]:
        """Dimensions set to the wildcard (a missing dimension defaults to it)."""
        return [
            dim for dim in self.rules.dimensions
            if self._is_wildcard(params.get(dim, self.rules.wildcard))
        ]

    def validate(self, params: dict) -> Validation:
        """Check a query against the wildcard rules."""
        wild = self.wildcarded(params)
        if len(wild) > self.rules.max_wildcards:
            return Validation(
                False,
                f"{len(wild)} dimensions set to ALL; max {self.rules.max_wildcards} allowed.",
            )
        for first, second in self.rules.forbidden_pairs:
            if first in wild and second in wild:
                return Validation(False, f"{first}=ALL + {second}=ALL is not allowed.")
        return Validation(True)

    def plan(
        self,
        datasource: str,
        params: dict,
        fallback_range: tuple[int, int] = (2000, 2024),
    ) -> list[LegalQuery]:
        """
        Legalize a query.

        Args:
            datasource: Provider dataset (e.g. "tradestats-trade")
            params: Dimension values; missing dimensions mean ALL
            fallback_range: Inclusive range enumerated for the chunk dimension

        Returns:
            The query unchanged when legal, else legal sub-queries in order

        Raises:
            ClassifiedError: QUERY_LIMIT_EXCEEDED when nothing legal remains
        """
        params = {dim: str(params.get(dim, self.rules.wildcard)) for dim in self.rules.dimensions}
        check = self.validate(params)
        if check.valid:
            return [LegalQuery(datasource, params)]

        logger.info(f"Query for {datasource} is illegal ({check.reason}); decomposing")
        queries = [
            LegalQuery(datasource, sub)
            for sub in self._decompose(params, fallback_range)
        ]
        if not queries:
            raise ClassifiedError(
                ErrorKind.QUERY_LIMIT_EXCEEDED,
                f"{self.rules.source.upper()} request limit: {check.reason}",
                self.rules.source,
                {"reason": check.reason, "datasource": datasource, "params": params},
            )
        logger.info(f"  Split into {len(queries)} legal sub-queries")
        return queries

    def _decompose(
        self, params: dict[str, str], fallback_range: tuple[int, int]
    ) -> Iterator[dict[str, str]]:
        dim = self._next_dimension(params)
        if dim is None:
            return
        for value in self._members(dim, fallback_range):
            sub = {**params, dim: value}
            if self.validate(sub).valid:
                yield sub
            else:
                yield from self._decompose(sub, fallback_range)

    def _next_dimension(self, params: dict[str, str]) -> str | None:
        """The chunk dimension first, then the wildcard with fewest known members."""
        wild = self.wildcarded(params)
        chunk = self.rules.chunk_dimension
        if chunk in wild:
            return chunk
        candidates = [dim for dim in wild if self.rules.members.get(dim)]
        if not candidates:
            return None
        return min(candidates, key=lambda d: len(self.rules.members[d]))

    def _members(self, dim: str, fallback_range: tuple[int, int]) -> Iterator[str]:
        if dim != self.rules.chunk_dimension:
            yield from self.rules.members[dim]
            return
        yield from (str(v) for v in period_blocks_flat(fallback_range, self.rules.chunk_size))


def period_blocks(
    fallback_range: tuple[int, int], size: int = 5
) -> Iterator[tuple[int, int]]:
    """Inclusive ``(start, end)`` blocks of ``size`` units over the range."""
    start, end = fallback_range
    for block_start in range(start, end + 1, size):
        yield block_start, min(block_start + size - 1, end)


def period_blocks_flat(fallback_range: tuple[int, int], size: int = 5) -> Iterator[int]:
    for block_start, block_end in period_blocks(fallback_range, size):
        logger.debug(f"  Planning period block {block_start}-{block_end}")
        yield from range(block_start, block_end + 1)
