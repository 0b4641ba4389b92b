"""
Explanatory OLS regression.

Used for models of the form trade_value ~ lag(FX) + GDP + seasonality
dummies. The normal equations are solved by Gaussian elimination with
partial pivoting so a singular design is reported rather than papered
over with a pseudo-inverse.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from trade_macro_dashboard.data.errors import ClassifiedError, ErrorKind
from trade_macro_dashboard.indicators.evaluation import mape, rmse


logger = logging.getLogger(__name__)

PIVOT_TOLERANCE = 1e-12


@dataclass
class RegressionFit:
    """Coefficients are ordered intercept first, then one per predictor."""
    coefficients: list[float]
    fitted: list[float]
    residuals: list[float]
    predictor_labels: list[str] = field(default_factory=list)
    rmse: float | None = None
    mape: float | None = None

    def to_dict(self) -> dict:
        return {
            "coefficients": list(self.coefficients),
            "fitted": list(self.fitted),
            "residuals": list(self.residuals),
            "predictor_labels": list(self.predictor_labels),
            "rmse": self.rmse,
            "mape": self.mape,
        }


def solve_linear(A: np.ndarray, b: np.ndarray) -> np.ndarray | None:
    """Solve ``A x = b``; None when a pivot falls below tolerance."""
    n = A.shape[0]
    aug = np.column_stack([A.astype(float), b.astype(float)])

    for col in range(n):
        pivot = col + int(np.argmax(np.abs(aug[col:, col])))
        if pivot != col:
            aug[[col, pivot]] = aug[[pivot, col]]
        if abs(aug[col, col]) < PIVOT_TOLERANCE:
            return None
        for row in range(col + 1, n):
            factor = aug[row, col] / aug[col, col]
            aug[row, col:] -= factor * aug[col, col:]

    x = np.zeros(n)
    for i in range(n - 1, -1, -1):
        x[i] = (aug[i, n] - aug[i, i + 1:n] @ x[i + 1:]) / aug[i, i]
    return x


def ols_regression(X: Sequence[Sequence[float]], y: Sequence[float]) -> RegressionFit | None:
    """
    Ordinary least squares with an intercept.

    Args:
        X: One row of predictor values per observation
        y: Response values

    Returns:
        The fit, or None if the normal equations are singular
    """
    y_arr = np.asarray(y, dtype=float)
    X_arr = np.asarray(X, dtype=float)
    if X_arr.ndim == 1:
        X_arr = X_arr.reshape(-1, 1)
    if X_arr.shape[0] != y_arr.shape[0] or y_arr.size == 0:
        raise ValueError(f"X has {X_arr.shape[0]} rows but y has {y_arr.size} values")

    design = np.column_stack([np.ones(len(y_arr)), X_arr])
    coefficients = solve_linear(design.T @ design, design.T @ y_arr)
    if coefficients is None:
        return None

    fitted = design @ coefficients
    return RegressionFit(
        coefficients=coefficients.tolist(),
        fitted=fitted.tolist(),
        residuals=(y_arr - fitted).tolist(),
    )


def fit_regression(
    X: Sequence[Sequence[float]],
    y: Sequence[float],
    labels: Sequence[str] | None = None,
) -> RegressionFit:
    """OLS fit with in-sample RMSE/MAPE attached; raises SINGULAR_MATRIX."""
    fit = ols_regression(X, y)
    if fit is None:
        logger.warning("Regression normal equations are singular")
        raise ClassifiedError(
            ErrorKind.SINGULAR_MATRIX,
            "Regression failed (singular matrix).",
            "regression",
            {"observations": len(y)},
        )
    fit.predictor_labels = list(labels or [])
    fit.rmse = rmse(list(y), fit.fitted)
    fit.mape = mape(list(y), fit.fitted)
    return fit
