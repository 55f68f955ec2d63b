"""Forecast accuracy metrics and naive baselines."""

import logging

import numpy as np
import pytest

from forecast_engine_src.entities import FittedModel, ForecastResult, OrderSpec, TimeSeries
from forecast_engine_src.exceptions import InputValidationError
from forecast_engine_src.metrics_utils import (
    compute_metrics,
    evaluate_forecast,
    in_sample_metrics,
    mae,
    mape,
    mape_with_skips,
    naive_forecast,
    rmse,
    seasonal_naive_forecast,
    theil_u2,
)


def test_mae_formula():
    actual = [10.0, 12.0, 14.0, 16.0]
    fc = [11.0, 11.0, 15.0, 13.0]
    assert mae(actual, fc) == pytest.approx((1 + 1 + 1 + 3) / 4)


def test_perfect_forecast_scores_zero():
    y = np.array([3.0, 1.0, 4.0, 1.0, 5.0])
    report = compute_metrics(y, y)
    assert report.mae == 0.0
    assert report.mape == 0.0
    assert report.rmse == 0.0
    assert report.me == 0.0
    assert report.n_points == 5


def test_mape_skips_zero_actuals():
    value, skipped = mape_with_skips([0.0, 10.0, 20.0], [1.0, 11.0, 18.0])
    assert skipped == 1
    assert value == pytest.approx(100 * (0.1 + 0.1) / 2)


def test_mape_all_zero_actuals_is_nan_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        value = mape([0.0, 0.0], [1.0, 2.0])
    assert np.isnan(value)
    assert "DegenerateMetric" in caplog.text


def test_metrics_reject_length_mismatch():
    with pytest.raises(InputValidationError):
        mae([1.0, 2.0], [1.0])


def test_me_sign_is_forecast_minus_actual():
    report = compute_metrics([10.0, 10.0], [12.0, 12.0])
    assert report.me == 2.0
    assert report.rmse == pytest.approx(2.0)


def test_theil_u2_relative_to_naive():
    actual = [1.0, 2.0, 3.0]
    assert theil_u2(actual, [1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0
    assert theil_u2(actual, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]) == pytest.approx(1.0)
    assert rmse(actual, [0.0, 0.0, 0.0]) == pytest.approx(np.sqrt(14 / 3))


def test_evaluate_forecast_checks_horizon():
    fc = ForecastResult.from_standard_errors([1.0, 2.0, 3.0], [0.1, 0.1, 0.1])
    report = evaluate_forecast(fc, [1.0, 2.0, 4.0])
    assert report.mae == pytest.approx(1 / 3)
    with pytest.raises(InputValidationError):
        evaluate_forecast(fc, [1.0, 2.0])


def test_naive_forecasts():
    train = TimeSeries([5.0, 6.0, 7.0, 1.0, 2.0, 3.0], period=3)
    assert naive_forecast(train, 3).tolist() == [3.0, 3.0, 3.0]
    assert seasonal_naive_forecast(train, 4, period=3).tolist() == [1.0, 2.0, 3.0, 1.0]
    assert seasonal_naive_forecast([1.0, 2.0], 2, period=3).tolist() == [2.0, 2.0]
    with pytest.raises(InputValidationError):
        naive_forecast(train, 0)


def test_in_sample_metrics_drop_burn_in():
    values = np.array([100.0, 1.0, 2.0, 3.0, 4.0])
    model = FittedModel(
        order=OrderSpec(0, 1, 0),
        params=[1.0],
        llf=0.0, aic=0.0, aicc=0.0, bic=0.0,
        residuals=np.zeros(5),
        fitted_values=np.array([0.0, 1.0, 2.0, 3.0, 5.0]),
        nobs=5,
    )
    report = in_sample_metrics(model, values)
    assert report.n_points == 4
    assert report.mae == pytest.approx(0.25)
