import pytest

from trade_macro_dashboard.data.errors import ClassifiedError, ErrorKind
from trade_macro_dashboard.data.planner import (
    WITS_RULES,
    QueryPlanner,
    period_blocks,
)


def test_legal_query_is_unchanged() -> None:
    params = {
        "reporter": "IND",
        "year": "all",
        "partner": "CHN",
        "product": "999999",
        "indicator": "all",
    }
    plan = QueryPlanner().plan("tradestats-trade", params)

    assert len(plan) == 1
    assert plan[0].params == params
    assert plan[0].datasource == "tradestats-trade"


def test_validate_messages() -> None:
    planner = QueryPlanner()

    too_many = planner.validate({"reporter": "IND", "partner": "CHN"})
    pair = planner.validate(
        {"reporter": "ALL", "partner": "all", "year": "2020", "product": "x", "indicator": "y"}
    )

    assert not too_many.valid
    assert too_many.reason == "3 dimensions set to ALL; max 2 allowed."
    assert not pair.valid
    assert pair.reason == "reporter=ALL + partner=ALL is not allowed."


def test_three_wildcards_split_into_one_query_per_year() -> None:
    params = {"reporter": "all", "year": "all", "partner": "CHN", "product": "all", "indicator": "TOTAL"}
    plan = QueryPlanner().plan("tradestats-trade", params, (2000, 2024))

    assert [q.params["year"] for q in plan] == [str(y) for y in range(2000, 2025)]
    for query in plan:
        assert query.params["reporter"] == "all"
        assert query.params["product"] == "all"
        assert QueryPlanner().validate(query.params).valid


def test_reporter_and_partner_wildcards_raise_without_members() -> None:
    params = {"reporter": "all", "year": "all", "partner": "all", "product": "999999", "indicator": "x"}

    with pytest.raises(ClassifiedError) as excinfo:
        QueryPlanner().plan("tradestats-trade", params, (2000, 2024))

    err = excinfo.value
    assert err.kind is ErrorKind.QUERY_LIMIT_EXCEEDED
    assert err.details["reason"] == "3 dimensions set to ALL; max 2 allowed."
    assert err.message.endswith(err.details["reason"])


def test_reporter_members_make_the_pair_decomposable() -> None:
    rules = WITS_RULES.with_members(reporter=("IND", "CHN"))
    params = {"reporter": "all", "year": "all", "partner": "all", "product": "999999", "indicator": "x"}

    plan = QueryPlanner(rules).plan("tradestats-trade", params, (2000, 2024))

    assert len(plan) == 25 * 2
    years = sorted({int(q.params["year"]) for q in plan})
    assert years == list(range(2000, 2025))
    assert {q.params["reporter"] for q in plan} == {"IND", "CHN"}
    assert all(q.params["partner"] == "all" for q in plan)


def test_missing_dimensions_count_as_wildcards() -> None:
    planner = QueryPlanner()

    assert planner.wildcarded({"reporter": "IND"}) == ["year", "partner", "product", "indicator"]


def test_period_blocks_cover_the_range() -> None:
    assert list(period_blocks((2000, 2011), 5)) == [(2000, 2004), (2005, 2009), (2010, 2011)]
