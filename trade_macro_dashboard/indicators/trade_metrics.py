"""Aggregations over canonical trade and macro records."""

import math
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from trade_macro_dashboard.models import Flow, MacroFact, TradeFact, records_to_frame


def aggregate_by_year(trade_facts: Iterable[TradeFact | dict]) -> pd.DataFrame:
    """
    Sum trade value per year and flow.

    Returns:
        DataFrame with columns date, flow, value_usd, count sorted by date.
        ``count`` is the number of non-null values summed.
    """
    df = records_to_frame(trade_facts)
    if df.empty:
        return pd.DataFrame(columns=["date", "flow", "value_usd", "count"])
    df["date"] = df["date"].astype(str).str.slice(0, 4)
    df["value_usd"] = pd.to_numeric(df["value_usd"], errors="coerce")
    agg = (
        df.groupby(["date", "flow"], as_index=False, sort=False)
        .agg(value_usd=("value_usd", "sum"), count=("value_usd", "count"))
    )
    return agg.sort_values("date", kind="stable").reset_index(drop=True)


def compute_yoy(annual: pd.DataFrame) -> pd.DataFrame:
    """Add ``yoy_pct`` versus the previous calendar year of the same flow."""
    out = annual.copy()
    keys = list(zip(out["date"].astype(str), out["flow"]))
    previous = dict(zip(keys, out["value_usd"]))

    yoy = []
    for (year, flow), value in zip(keys, out["value_usd"]):
        prev = previous.get((str(int(year) - 1), flow))
        yoy.append(None if prev is None or prev <= 0 else (value - prev) / prev * 100)
    out["yoy_pct"] = yoy
    return out


def compute_cagr(start_value: float | None, end_value: float | None, years: float) -> float | None:
    """Compound annual growth rate in percent."""
    if not start_value or start_value <= 0 or not end_value or end_value <= 0 or years <= 0:
        return None
    return (math.pow(end_value / start_value, 1 / years) - 1) * 100


def compute_balance(annual: pd.DataFrame) -> pd.DataFrame:
    """Exports, imports, balance and total per year."""
    if annual.empty:
        return pd.DataFrame(columns=["date", "exports", "imports", "balance", "total"])
    wide = annual.pivot_table(
        index="date", columns="flow", values="value_usd", aggfunc="sum", fill_value=0
    )
    exports = wide.get(Flow.EXPORT.value, pd.Series(0.0, index=wide.index))
    imports = wide.get(Flow.IMPORT.value, pd.Series(0.0, index=wide.index))
    out = pd.DataFrame({"exports": exports, "imports": imports}).astype(float)
    out["balance"] = out["exports"] - out["imports"]
    out["total"] = out["exports"] + out["imports"]
    return out.sort_index().rename_axis("date").reset_index()


def _shares(values: Sequence[float | None]) -> np.ndarray | None:
    arr = np.array([v or 0.0 for v in values], dtype=float)
    total = arr.sum()
    if total <= 0:
        return None
    return arr / total


def compute_hhi(values: Sequence[float | None]) -> float | None:
    """Herfindahl-Hirschman index on the conventional 0-10,000 scale."""
    shares = _shares(values)
    if shares is None:
        return None
    return float(np.sum(shares ** 2) * 10000)


def compute_top_n_share(values: Sequence[float | None], n: int = 5) -> float | None:
    """Percent of the total held by the ``n`` largest values."""
    shares = _shares(values)
    if shares is None:
        return None
    return float(np.sort(shares)[::-1][:n].sum() * 100)


def compute_entropy(values: Sequence[float | None]) -> float | None:
    """Shannon entropy (bits) of the value shares."""
    shares = _shares(values)
    if shares is None:
        return None
    positive = shares[shares > 0]
    return float(-np.sum(positive * np.log2(positive)))


def pivot_macro_by_indicator(
    macro_facts: Iterable[MacroFact | dict], country: str
) -> dict[str, pd.Series]:
    """Date-sorted value series per indicator for one country."""
    df = records_to_frame(macro_facts)
    if df.empty:
        return {}
    df = df[df["country"] == country]
    return {
        code: group.sort_values("date").set_index("date")["value"].rename(code)
        for code, group in df.groupby("indicator_code")
    }


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float | None:
    """Pearson r over the common prefix; None below three points, 0 with no variance."""
    n = min(len(xs), len(ys))
    if n < 3:
        return None
    x = np.asarray(xs[:n], dtype=float)
    y = np.asarray(ys[:n], dtype=float)
    dx, dy = x - x.mean(), y - y.mean()
    den = math.sqrt(float(np.sum(dx * dx) * np.sum(dy * dy)))
    if den == 0:
        return 0.0
    return float(np.sum(dx * dy) / den)
