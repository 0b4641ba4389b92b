"""Forecast accuracy metrics and hold-out evaluation."""

from dataclasses import dataclass, field
from typing import Callable, Sequence

import numpy as np


Series = Sequence[float | None]


@dataclass
class EvaluationMetrics:
    """Hold-out accuracy of one forecasting method."""
    rmse: float | None
    mape: float | None  # percent
    residuals: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"rmse": self.rmse, "mape": self.mape, "residuals": list(self.residuals)}


def _paired(actual: Series, predicted: Series) -> tuple[np.ndarray, np.ndarray]:
    pairs = [
        (a, p) for a, p in zip(actual, predicted)
        if a is not None and p is not None
    ]
    if not pairs:
        return np.array([]), np.array([])
    a, p = zip(*pairs)
    return np.asarray(a, dtype=float), np.asarray(p, dtype=float)


def rmse(actual: Series, predicted: Series) -> float | None:
    """Root mean squared error over non-null pairs."""
    a, p = _paired(actual, predicted)
    if a.size == 0:
        return None
    return float(np.sqrt(np.mean((a - p) ** 2)))


def mape(actual: Series, predicted: Series) -> float | None:
    """Mean absolute percentage error (x100), skipping zero actuals."""
    a, p = _paired(actual, predicted)
    mask = a != 0
    if not mask.any():
        return None
    return float(np.mean(np.abs((a[mask] - p[mask]) / a[mask])) * 100)


def rolling_evaluation(
    values: Series,
    test_size: int,
    forecast_fn: Callable[[list[float]], Series],
) -> EvaluationMetrics:
    """
    Hold out the last ``test_size`` observations and score a forecaster.

    Nulls are dropped first. Fewer than ``test_size + 3`` remaining points
    gives null metrics and no residuals.

    Args:
        values: Chronological observations
        test_size: Number of trailing points held out
        forecast_fn: Maps the training prefix to at least ``test_size`` forecasts
    """
    clean = [v for v in values if v is not None]
    if len(clean) < test_size + 3:
        return EvaluationMetrics(None, None, [])

    split = len(clean) - test_size
    train, test = clean[:split], clean[split:]
    predicted = list(forecast_fn(train))

    residuals = []
    for i, actual in enumerate(test):
        pred = predicted[i] if i < len(predicted) else None
        residuals.append(actual - (pred or 0))

    return EvaluationMetrics(
        rmse=rmse(test, predicted),
        mape=mape(test, predicted),
        residuals=residuals,
    )
