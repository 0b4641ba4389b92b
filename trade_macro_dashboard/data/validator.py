"""Schema validation for canonical records."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.data.telemetry import EventLog
from trade_macro_dashboard.models import (
    Flow,
    Frequency,
    MacroFact,
    ProductLevel,
    SchemaKind,
    TradeFact,
)


logger = logging.getLogger(__name__)


REQUIRED_FIELDS: dict[SchemaKind, tuple[str, ...]] = {
    SchemaKind.TRADE_FACT: (
        "date", "frequency", "reporter", "partner", "flow", "product_level",
        "product_code", "value_usd", "source_id", "retrieval_timestamp",
    ),
    SchemaKind.MACRO_FACT: (
        "date", "country", "indicator_code", "value", "source_id",
        "retrieval_timestamp",
    ),
}

# Missing values are legitimate observations
NULLABLE_FIELDS = {"value_usd", "value"}

ENUM_FIELDS: dict[str, tuple[str, ...]] = {
    "frequency": tuple(f.value for f in Frequency),
    "flow": tuple(f.value for f in Flow),
    "product_level": tuple(p.value for p in ProductLevel),
}

ISO3_FIELDS = ("reporter", "partner", "country")


@dataclass
class InvalidRecord:
    record: Any
    errors: list[str]


@dataclass
class ValidationResult:
    valid: list = field(default_factory=list)
    invalid: list[InvalidRecord] = field(default_factory=list)
    drift: ClassifiedError | None = None

    @property
    def ok(self) -> bool:
        return not self.invalid


def _as_dict(record: Any) -> dict[str, Any]:
    if isinstance(record, (TradeFact, MacroFact)):
        return record.to_dict()
    return dict(record)


def check_record(record: Any, kind: SchemaKind) -> list[str]:
    """Violations for one record; empty when it conforms."""
    data = _as_dict(record)
    errors = []
    for name in REQUIRED_FIELDS[kind]:
        if name in NULLABLE_FIELDS:
            continue
        if data.get(name) in (None, ""):
            errors.append(f"Missing required field: {name}")

    for name, allowed in ENUM_FIELDS.items():
        if name not in REQUIRED_FIELDS[kind]:
            continue
        value = data.get(name)
        if value not in (None, "") and value not in allowed:
            errors.append(f"Invalid {name}: {value}")

    for name in ISO3_FIELDS:
        value = data.get(name)
        if name in REQUIRED_FIELDS[kind] and value not in (None, "") and len(str(value)) != 3:
            errors.append(f"{name} must be 3 chars")
    return errors


def validate(
    records: Iterable[Any],
    kind: SchemaKind | str,
    events: EventLog | None = None,
) -> ValidationResult:
    """
    Split records into valid and invalid.

    Any rejection attaches a SCHEMA_DRIFT error to the result; it is
    logged and recorded but never raised.
    """
    kind = SchemaKind(kind)
    result = ValidationResult()
    for record in records:
        errors = check_record(record, kind)
        if errors:
            result.invalid.append(InvalidRecord(record, errors))
        else:
            result.valid.append(record)

    if result.invalid:
        result.drift = ClassifiedError.schema_drift(
            kind.value,
            {
                "invalid_count": len(result.invalid),
                "sample_errors": result.invalid[0].errors,
            },
        )
        if events is not None:
            events.track_error(result.drift)
        else:
            logger.warning(
                f"{len(result.invalid)} {kind.value} records failed validation: "
                f"{result.invalid[0].errors}"
            )
    return result
