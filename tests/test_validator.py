from trade_macro_dashboard.data.errors import ErrorKind
from trade_macro_dashboard.data.telemetry import EventLog
from trade_macro_dashboard.data.validator import validate
from trade_macro_dashboard.models import MacroFact, SchemaKind, TradeFact


def trade_fact(**overrides) -> TradeFact:
    fields = dict(
        date="2020",
        frequency="A",
        reporter="IND",
        partner="CHN",
        flow="IMPORT",
        product_level="TOTAL",
        product_code="999999",
        product_name="All products",
        value_usd=6.5e10,
        source_id="wits:tradestats-trade",
        retrieval_timestamp="2024-01-01T00:00:00+00:00",
        request_fingerprint="https://wits.example/1",
    )
    fields.update(overrides)
    return TradeFact(**fields)


def test_missing_value_is_still_valid() -> None:
    result = validate([trade_fact(value_usd=None)], SchemaKind.TRADE_FACT)

    assert len(result.valid) == 1
    assert result.invalid == []
    assert result.drift is None


def test_missing_source_id_is_rejected() -> None:
    events = EventLog()
    result = validate([trade_fact(source_id="")], "trade_fact", events)

    assert result.valid == []
    assert result.invalid[0].errors == ["Missing required field: source_id"]
    assert result.drift.kind is ErrorKind.SCHEMA_DRIFT
    assert result.drift.details["invalid_count"] == 1
    assert events.events("error")[0]["action"] == "SCHEMA_DRIFT"


def test_enumerations_and_codes_are_checked() -> None:
    bad = trade_fact(flow="RE-EXPORT", frequency="Q", reporter="IN")
    result = validate([bad, trade_fact()], SchemaKind.TRADE_FACT)

    assert len(result.valid) == 1
    errors = result.invalid[0].errors
    assert "Invalid flow: RE-EXPORT" in errors
    assert "Invalid frequency: Q" in errors
    assert "reporter must be 3 chars" in errors


def test_macro_facts_and_plain_dicts() -> None:
    good = MacroFact(
        date="2023",
        country="CHN",
        indicator_code="NY.GDP.MKTP.CD",
        indicator_name="GDP (current US$)",
        value=1.8e13,
        unit="current USD",
        source_id="worldbank",
        retrieval_timestamp="2024-01-01T00:00:00+00:00",
        request_fingerprint="worldbank:CHN:NY.GDP.MKTP.CD:2023",
    )
    bad = {"date": "2023", "country": "CHINA", "indicator_code": "X", "source_id": "worldbank"}

    result = validate([good, bad], SchemaKind.MACRO_FACT)

    assert result.valid == [good]
    assert result.invalid[0].record is bad
    assert result.invalid[0].errors == [
        "Missing required field: retrieval_timestamp",
        "country must be 3 chars",
    ]
