"""Forecasting and trade metric calculations."""

from trade_macro_dashboard.indicators.forecast import ForecastParams, ForecastResult, run_forecast
from trade_macro_dashboard.indicators.worker import ForecastWorker

__all__ = ["ForecastParams", "ForecastResult", "run_forecast", "ForecastWorker"]
