"""
Baseline forecasters for annual (or monthly) trade and macro series.

- Seasonal naive with an average seasonal-difference trend
- Additive Holt-Winters (level, trend and seasonal smoothing)
- Optional explanatory regression on exogenous series

Every result is model output and is labelled as such; it is never merged
with fact records.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

from trade_macro_dashboard.data.errors import ClassifiedError
from trade_macro_dashboard.indicators.evaluation import EvaluationMetrics, rolling_evaluation
from trade_macro_dashboard.indicators.regression import RegressionFit, fit_regression


logger = logging.getLogger(__name__)

MODEL_LABEL = "MODEL OUTPUT - NOT FACT"

Series = Sequence[float | None]


@dataclass
class ForecastParams:
    horizon: int = 5
    alpha: float = 0.3
    beta: float = 0.1
    gamma: float = 0.2
    season_length: int = 1

    def __post_init__(self) -> None:
        if self.season_length < 1:
            raise ValueError(f"season_length must be >= 1, got {self.season_length}")
        if self.horizon < 0:
            raise ValueError(f"horizon must be >= 0, got {self.horizon}")


@dataclass
class HoltWintersFit:
    """Final smoothing state and the forecasts it implies."""
    forecast: list[float | None]
    level: float | None = None
    trend: float | None = None
    seasonal: list[float] = field(default_factory=list)
    low_confidence: bool = False  # a first-two-season value was null
    fallback: bool = False  # too short; seasonal naive was used


@dataclass
class ForecastResult:
    baseline_forecast: list[float | None]
    seasonal_trend_forecast: list[float | None]
    diagnostics: dict[str, EvaluationMetrics]
    regression: RegressionFit | None = None
    regression_error: ClassifiedError | None = None
    low_confidence: bool = False
    label: str = MODEL_LABEL

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "baseline_forecast": list(self.baseline_forecast),
            "seasonal_trend_forecast": list(self.seasonal_trend_forecast),
            "diagnostics": {k: v.to_dict() for k, v in self.diagnostics.items()},
            "regression": self.regression.to_dict() if self.regression else None,
            "regression_error": (
                self.regression_error.to_dict() if self.regression_error else None
            ),
            "low_confidence": self.low_confidence,
        }


# =============================================================================
# Forecasters
# =============================================================================

def seasonal_naive(
    values: Series, season_length: int = 1, horizon: int = 12
) -> list[float | None]:
    """Value one season back plus the mean seasonal difference per season ahead."""
    if season_length < 1:
        raise ValueError(f"season_length must be >= 1, got {season_length}")
    n = len(values)
    s = season_length
    if n < s + 1:
        return [None] * horizon

    diffs = [
        values[i] - values[i - s]
        for i in range(s, n)
        if values[i] is not None and values[i - s] is not None
    ]
    avg_trend = sum(diffs) / len(diffs) if diffs else 0.0

    forecast = []
    for h in range(1, horizon + 1):
        base = values[n - s + (h - 1) % s]
        steps_ahead = math.ceil(h / s)
        forecast.append(None if base is None else base + avg_trend * steps_ahead)
    return forecast


def _season_mean(values: Series) -> float:
    return sum(v or 0.0 for v in values) / len(values)


def fit_holt_winters(
    values: Series,
    alpha: float = 0.3,
    beta: float = 0.1,
    gamma: float = 0.2,
    season_length: int = 1,
    horizon: int = 12,
) -> HoltWintersFit:
    """
    Additive Holt-Winters.

    Initial level is the first-season mean and initial trend the change
    in season means per step; nulls in those seasons count as zero and
    flag the fit as low confidence. Null observations are skipped while
    smoothing. Series shorter than two seasons fall back to seasonal naive.
    """
    if season_length < 1:
        raise ValueError(f"season_length must be >= 1, got {season_length}")
    n = len(values)
    s = season_length
    if n < 2 * s:
        return HoltWintersFit(
            forecast=seasonal_naive(values, s, horizon), fallback=True
        )

    first, second = values[:s], values[s:2 * s]
    low_confidence = any(v is None for v in (*first, *second))
    if low_confidence:
        logger.warning("Holt-Winters initialised with missing values; forecast is low confidence")

    level = _season_mean(first)
    trend = (_season_mean(second) - level) / s
    seasonal = [0.0] * s
    if s > 1:
        seasonal = [(v or 0.0) - level for v in first]

    for t, v in enumerate(values):
        if v is None:
            continue
        idx = t % s
        prev_level = level
        level = alpha * (v - seasonal[idx]) + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend
        if s > 1:
            seasonal[idx] = gamma * (v - level) + (1 - gamma) * seasonal[idx]

    forecast = [
        level + trend * h + (seasonal[(n + h - 1) % s] if s > 1 else 0.0)
        for h in range(1, horizon + 1)
    ]
    return HoltWintersFit(
        forecast=forecast,
        level=level,
        trend=trend,
        seasonal=seasonal,
        low_confidence=low_confidence,
    )


def holt_winters(
    values: Series,
    alpha: float = 0.3,
    beta: float = 0.1,
    gamma: float = 0.2,
    season_length: int = 1,
    horizon: int = 12,
) -> list[float | None]:
    return fit_holt_winters(values, alpha, beta, gamma, season_length, horizon).forecast


# =============================================================================
# Regression design helpers
# =============================================================================

def lagged(values: Series, k: int = 1) -> list[float | None]:
    """Shift a series forward by ``k`` steps, padding the head with None."""
    if k <= 0:
        return list(values)
    return [None] * min(k, len(values)) + list(values[:-k])


def seasonal_dummies(n: int, season_length: int) -> list[list[float]]:
    """0/1 indicators for seasons 2..s (season 1 is the baseline)."""
    return [
        [1.0 if t % season_length == j else 0.0 for j in range(1, season_length)]
        for t in range(n)
    ]


def _complete_rows(
    values: Series, exog: dict[str, Series]
) -> tuple[list[list[float]], list[float]]:
    X, y = [], []
    columns = list(exog.values())
    for t, target in enumerate(values):
        row = [col[t] if t < len(col) else None for col in columns]
        if target is None or any(v is None for v in row):
            continue
        X.append(row)
        y.append(target)
    return X, y


# =============================================================================
# Orchestration
# =============================================================================

def run_forecast(
    values: Series,
    params: ForecastParams | None = None,
    exog: dict[str, Series] | None = None,
) -> ForecastResult:
    """
    Baseline and Holt-Winters forecasts with hold-out diagnostics.

    Args:
        values: Chronological observations (None = missing)
        params: Horizon and smoothing parameters
        exog: Optional predictors aligned with ``values``, keyed by label

    Returns:
        ForecastResult tagged as model output
    """
    params = params or ForecastParams()
    s = params.season_length

    baseline = seasonal_naive(values, s, params.horizon)
    hw = fit_holt_winters(
        values, params.alpha, params.beta, params.gamma, s, params.horizon
    )

    test_size = min(3, len(values) // 3)
    diagnostics = {
        "baseline": rolling_evaluation(
            values, test_size, lambda train: seasonal_naive(train, s, test_size)
        ),
        "seasonal_trend": rolling_evaluation(
            values,
            test_size,
            lambda train: holt_winters(
                train, params.alpha, params.beta, params.gamma, s, test_size
            ),
        ),
    }

    result = ForecastResult(
        baseline_forecast=baseline,
        seasonal_trend_forecast=hw.forecast,
        diagnostics=diagnostics,
        low_confidence=hw.low_confidence,
    )

    if exog:
        X, y = _complete_rows(values, exog)
        if len(y) <= len(exog) + 1:
            logger.info(f"Skipping regression: {len(y)} complete rows for {len(exog)} predictors")
        else:
            try:
                result.regression = fit_regression(X, y, list(exog))
            except ClassifiedError as e:
                result.regression_error = e
    return result
