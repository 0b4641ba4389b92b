import pytest

from trade_macro_dashboard.indicators.forecast import (
    MODEL_LABEL,
    ForecastParams,
    fit_holt_winters,
    holt_winters,
    lagged,
    run_forecast,
    seasonal_dummies,
    seasonal_naive,
)


def test_holt_winters_reduces_to_random_walk_with_drift() -> None:
    forecast = holt_winters(
        [100, 110, 121, 133.1], alpha=1, beta=0, gamma=0, season_length=1, horizon=3
    )

    assert forecast == pytest.approx([143.1, 153.1, 163.1])


def test_holt_winters_short_series_falls_back_to_naive() -> None:
    fit = fit_holt_winters([10, 12, 14], season_length=4, horizon=2)

    assert fit.fallback
    assert fit.forecast == [None, None]


def test_holt_winters_flags_missing_initial_values() -> None:
    fit = fit_holt_winters([None, 110, 121, 133.1, 146.4], season_length=2, horizon=2)

    assert fit.low_confidence
    assert len(fit.forecast) == 2
    assert all(v is not None for v in fit.forecast)


def test_seasonal_holt_winters_repeats_the_pattern() -> None:
    values = [10, 20, 10, 20, 10, 20, 10, 20]
    forecast = holt_winters(values, alpha=0.5, beta=0.0, gamma=0.5, season_length=2, horizon=2)

    assert forecast[1] > forecast[0]


def test_seasonal_naive_adds_average_trend() -> None:
    assert seasonal_naive([1, 2, 3, 4], season_length=1, horizon=3) == [5, 6, 7]
    assert seasonal_naive([10, 20, 12, 22], season_length=2, horizon=3) == [14, 24, 16]


def test_seasonal_naive_needs_more_than_one_season() -> None:
    assert seasonal_naive([5.0], season_length=1, horizon=2) == [None, None]


def test_seasonal_naive_propagates_missing_base() -> None:
    assert seasonal_naive([1, 2, None], season_length=1, horizon=2) == [None, None]


def test_design_helpers() -> None:
    assert lagged([1, 2, 3, 4], 1) == [None, 1, 2, 3]
    assert lagged([1, 2], 5) == [None, None]
    assert seasonal_dummies(4, 2) == [[0.0], [1.0], [0.0], [1.0]]
    assert seasonal_dummies(2, 1) == [[], []]


def test_run_forecast_reports_diagnostics() -> None:
    values = [100.0 + 10 * i for i in range(10)]
    result = run_forecast(values, ForecastParams(horizon=3))

    assert result.label == MODEL_LABEL
    assert len(result.baseline_forecast) == 3
    assert result.baseline_forecast[0] == pytest.approx(200.0)
    assert len(result.diagnostics["baseline"].residuals) == 3
    assert result.diagnostics["baseline"].rmse == pytest.approx(0.0)
    assert result.regression is None


def test_run_forecast_with_exogenous_regression() -> None:
    fx = [60.0, 62.0, 65.0, 63.0, 68.0, 70.0, 74.0, 73.0]
    values = [None] + [5.0 + 2.0 * x for x in fx[:-1]]

    result = run_forecast(values, ForecastParams(horizon=2), exog={"fx_lag1": lagged(fx, 1)})

    assert result.regression is not None
    assert result.regression.coefficients == pytest.approx([5.0, 2.0])
    assert result.regression.predictor_labels == ["fx_lag1"]


def test_run_forecast_records_singular_regression() -> None:
    values = [1.0, 2.0, 3.0, 4.0, 5.0]
    result = run_forecast(values, exog={"constant": [7.0] * 5})

    assert result.regression is None
    assert result.regression_error.message == "Regression failed (singular matrix)."


def test_params_reject_non_positive_season_length_and_negative_horizon() -> None:
    with pytest.raises(ValueError):
        ForecastParams(season_length=0)
    with pytest.raises(ValueError):
        ForecastParams(horizon=-1)
    with pytest.raises(ValueError):
        seasonal_naive([1.0, 2.0, 3.0], season_length=0)
    with pytest.raises(ValueError):
        fit_holt_winters([1.0, 2.0, 3.0], season_length=0)
