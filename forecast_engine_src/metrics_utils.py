# forecast_engine_src/metrics_utils.py

import logging
from typing import Callable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .entities import FittedModel, ForecastResult, MetricsReport, TimeSeries
from .exceptions import InputValidationError

logger = logging.getLogger(__name__)

ArrayLike = Union[List[float], np.ndarray, pd.Series]


def to_1d_array(x: ArrayLike) -> np.ndarray:
    """
    Convert input to a 1D float numpy array.

    Parameters
    ----------
    x : Union[List[float], np.ndarray, pd.Series, TimeSeries]
        Input data to convert

    Returns
    -------
    np.ndarray
        1D float array (values are not filtered)
    """
    if isinstance(x, TimeSeries):
        return np.array(x.values, dtype=float)
    return np.asarray(x, dtype=float).ravel()


def _aligned(y_true: ArrayLike, y_hat: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    """Return paired arrays restricted to positions where both values are finite."""
    yt = to_1d_array(y_true)
    yh = to_1d_array(y_hat)
    if yt.size != yh.size:
        raise InputValidationError(f"Actual and forecast lengths differ ({yt.size} != {yh.size})")
    mask = np.isfinite(yt) & np.isfinite(yh)
    return yt[mask], yh[mask]


def mae(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Calculate Mean Absolute Error, ``mean(|actual - forecast|)``.

    Parameters
    ----------
    y_true : Union[List[float], np.ndarray, pd.Series]
        True values
    y_hat : Union[List[float], np.ndarray, pd.Series]
        Predicted values

    Returns
    -------
    float
        Mean absolute error, or NaN if no valid data
    """
    yt, yh = _aligned(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.mean(np.abs(yt - yh)))


def mape_with_skips(y_true: ArrayLike, y_hat: ArrayLike) -> Tuple[float, int]:
    """
    Calculate Mean Absolute Percentage Error, skipping zero actuals.

    Returns
    -------
    Tuple[float, int]
        (MAPE in percent, number of skipped points). MAPE is NaN when every
        actual is zero; a ``DegenerateMetric`` warning is logged in that case.

    Notes
    -----
    ``100 * mean(|a - f| / |a|)`` over the points with ``a != 0``. Zero
    actuals make the percentage undefined; they are counted, not imputed.
    """
    yt, yh = _aligned(y_true, y_hat)
    nonzero = yt != 0.0
    skipped = int(yt.size - np.count_nonzero(nonzero))
    if skipped:
        logger.debug("MAPE: skipped %d zero-valued actual(s)", skipped)
    if not np.any(nonzero):
        logger.warning("DegenerateMetric: MAPE undefined, all %d actual values are zero", yt.size)
        return float("nan"), skipped
    ratio = np.abs(yt[nonzero] - yh[nonzero]) / np.abs(yt[nonzero])
    return float(np.mean(ratio) * 100.0), skipped


def mape(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """MAPE in percent; zero actuals are skipped (see ``mape_with_skips``)."""
    return mape_with_skips(y_true, y_hat)[0]


def rmse(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Calculate Root Mean Square Error.

    RMSE penalizes large errors more heavily than MAE.
    """
    yt, yh = _aligned(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.sqrt(np.mean((yh - yt) ** 2)))


def theil_u2(y_true: ArrayLike, y_hat: ArrayLike, y_hat_naive: ArrayLike) -> float:
    """
    Theil's U2: forecast RMSE relative to a naive forecast's RMSE.

    Values < 1 indicate the forecast beats the naive benchmark.
    """
    rmse_f = rmse(y_true, y_hat)
    rmse_n = rmse(y_true, y_hat_naive)
    if not np.isfinite(rmse_n) or rmse_n == 0.0:
        return float("nan")
    return float(rmse_f / rmse_n)


def compute_metrics(y_true: ArrayLike, y_hat: ArrayLike) -> MetricsReport:
    """
    Compute the forecast accuracy metrics for a pair of aligned sequences.

    Parameters
    ----------
    y_true : Union[List[float], np.ndarray, pd.Series]
        Actual values
    y_hat : Union[List[float], np.ndarray, pd.Series]
        Forecast values, same length as ``y_true``

    Returns
    -------
    MetricsReport
        ME (forecast minus actual), MAE, RMSE, MAPE and the MAPE skip count

    Raises
    ------
    InputValidationError
        If the sequences differ in length
    """
    yt, yh = _aligned(y_true, y_hat)
    mape_value, skipped = mape_with_skips(yt, yh)
    return MetricsReport(
        mae=mae(yt, yh),
        mape=mape_value,
        rmse=rmse(yt, yh),
        me=float(np.mean(yh - yt)) if yt.size else float("nan"),
        n_points=int(yt.size),
        n_skipped_mape=skipped,
    )


def evaluate_forecast(forecast: ForecastResult, actual: ArrayLike) -> MetricsReport:
    """
    Score a forecast's point predictions against held-out observations.

    ``actual`` must have exactly ``forecast.horizon`` values.
    """
    act = to_1d_array(actual)
    if act.size != forecast.horizon:
        raise InputValidationError(
            f"Holdout has {act.size} observations but the forecast horizon is {forecast.horizon}"
        )
    report = compute_metrics(act, forecast.mean)
    logger.debug("Evaluated %s: MAE=%.4f MAPE=%.4f", forecast.model_label or "forecast", report.mae, report.mape)
    return report


def naive_forecast(train: Union[TimeSeries, ArrayLike], horizon: int) -> np.ndarray:
    """Repeat the last observed value ``horizon`` times."""
    if horizon < 1:
        raise InputValidationError(f"Forecast horizon must be >= 1, got {horizon}")
    values = to_1d_array(train)
    if values.size == 0:
        raise InputValidationError("Naive forecast requires at least one observation")
    return np.full(int(horizon), values[-1], dtype=float)


def seasonal_naive_forecast(train: Union[TimeSeries, ArrayLike], horizon: int, period: int) -> np.ndarray:
    """
    Repeat the last observed season: ``f[t+h] = y[t+h-s*k]`` for the smallest ``k`` reaching the sample.

    Falls back to the naive last-value forecast when fewer than ``period``
    observations are available or ``period <= 1``.
    """
    if horizon < 1:
        raise InputValidationError(f"Forecast horizon must be >= 1, got {horizon}")
    values = to_1d_array(train)
    if period <= 1 or values.size < period:
        return naive_forecast(values, horizon)
    last_season = values[-period:]
    return np.array([last_season[h % period] for h in range(int(horizon))], dtype=float)


def in_sample_metrics(fitted: FittedModel,
                      series: Union[TimeSeries, ArrayLike],
                      inverse: Optional[Callable[[np.ndarray], np.ndarray]] = None) -> MetricsReport:
    """
    In-sample accuracy of one-step-ahead fitted values.

    The first ``d + D*s`` observations are dropped: their fitted values come
    from the diffuse initialization of the differenced state and are not
    genuine predictions. When the model was fit on a transformed series,
    ``inverse`` maps its fitted values back to the scale of ``series``.
    """
    actual = to_1d_array(series)
    fitted_values = np.asarray(fitted.fitted_values, dtype=float)
    if inverse is not None:
        fitted_values = np.asarray(inverse(fitted_values), dtype=float)
    if actual.size != fitted_values.size:
        raise InputValidationError(
            f"Series has {actual.size} observations but the model has {fitted_values.size} fitted values"
        )
    burn = fitted.order.d + fitted.order.D * fitted.order.s
    if burn >= actual.size:
        logger.warning("In-sample metrics undefined: burn-in of %d covers the whole sample", burn)
        return MetricsReport(float("nan"), float("nan"), float("nan"), float("nan"), 0, 0)
    return compute_metrics(actual[burn:], fitted_values[burn:])
