import math

import pytest

from trade_macro_dashboard.indicators.trade_metrics import (
    aggregate_by_year,
    compute_balance,
    compute_cagr,
    compute_entropy,
    compute_hhi,
    compute_top_n_share,
    compute_yoy,
    pearson_correlation,
    pivot_macro_by_indicator,
)


def row(date, flow, value):
    return {"date": date, "flow": flow, "value_usd": value}


def test_aggregate_yoy_and_balance() -> None:
    rows = [
        row("2020", "IMPORT", 60.0),
        row("2020", "IMPORT", 5.0),
        row("2020", "EXPORT", 20.0),
        row("2021", "IMPORT", 97.5),
        row("2021", "EXPORT", None),
    ]
    annual = aggregate_by_year(rows)

    imports_2020 = annual[(annual["date"] == "2020") & (annual["flow"] == "IMPORT")].iloc[0]
    assert imports_2020["value_usd"] == 65.0
    assert imports_2020["count"] == 2
    assert list(annual["date"]) == ["2020", "2020", "2021", "2021"]

    yoy = compute_yoy(annual)
    imports_2021 = yoy[(yoy["date"] == "2021") & (yoy["flow"] == "IMPORT")].iloc[0]
    assert imports_2021["yoy_pct"] == pytest.approx(50.0)

    balance = compute_balance(annual)
    assert list(balance["date"]) == ["2020", "2021"]
    assert balance.iloc[0]["balance"] == -45.0
    assert balance.iloc[0]["total"] == 85.0
    assert balance.iloc[1]["exports"] == 0.0


def test_cagr() -> None:
    assert compute_cagr(100.0, 121.0, 2) == pytest.approx(10.0)
    assert compute_cagr(0.0, 121.0, 2) is None
    assert compute_cagr(100.0, 121.0, 0) is None


def test_concentration_measures() -> None:
    values = [50.0, 30.0, 20.0, None]

    assert compute_hhi(values) == pytest.approx(3800.0)
    assert compute_top_n_share(values, n=2) == pytest.approx(80.0)
    expected_entropy = -sum(p * math.log2(p) for p in (0.5, 0.3, 0.2))
    assert compute_entropy(values) == pytest.approx(expected_entropy)
    assert compute_hhi([0.0, None]) is None


def test_pearson_correlation() -> None:
    assert pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)
    assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)
    assert pearson_correlation([1, 2], [1, 2]) is None
    assert pearson_correlation([1, 1, 1], [1, 2, 3]) == 0.0


def test_pivot_macro_by_indicator() -> None:
    facts = [
        {"date": "2021", "country": "IND", "indicator_code": "GDP", "value": 2.0},
        {"date": "2020", "country": "IND", "indicator_code": "GDP", "value": 1.0},
        {"date": "2020", "country": "CHN", "indicator_code": "GDP", "value": 9.0},
        {"date": "2020", "country": "IND", "indicator_code": "FX_USD_INR", "value": 74.1},
    ]
    pivot = pivot_macro_by_indicator(facts, "IND")

    assert set(pivot) == {"GDP", "FX_USD_INR"}
    assert list(pivot["GDP"].index) == ["2020", "2021"]
    assert list(pivot["GDP"]) == [1.0, 2.0]
