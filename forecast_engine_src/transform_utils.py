# forecast_engine_src/transform_utils.py

import logging
from typing import Callable, Optional, Tuple

import numpy as np

from .entities import ForecastResult, TimeSeries
from .exceptions import InputValidationError

logger = logging.getLogger(__name__)

TRANSFORMS = ("level", "log")


def log_transform(series: TimeSeries) -> TimeSeries:
    """
    Natural-log transform of a strictly positive series.

    Raises
    ------
    InputValidationError
        If any observation is <= 0
    """
    return series.log()


def inverse_log_forecast(forecast: ForecastResult) -> ForecastResult:
    """
    Map a forecast made on the log scale back to the original scale.

    Point forecasts become ``exp(mean)`` (the conditional median on the
    original scale) and each interval bound is exponentiated. ``exp`` is
    monotone, so interval ordering and nesting are preserved.
    """
    return forecast.inverse_transform(np.exp)


def validate_series_for_transform(series: TimeSeries, transform: str) -> TimeSeries:
    """
    Validate a time series for the requested transformation.

    Parameters
    ----------
    series : TimeSeries
        Input time series
    transform : str
        Transformation type ("level" or "log")

    Returns
    -------
    TimeSeries
        The input series, unchanged

    Raises
    ------
    InputValidationError
        If the series is unsuitable for the transformation
    """
    if transform not in TRANSFORMS:
        raise InputValidationError(f"Unknown transform '{transform}'; expected one of {TRANSFORMS}")
    if transform == "log" and np.any(series.values <= 0):
        raise InputValidationError("log transformation requires all positive values")
    return series


def apply_target_transform(series: TimeSeries, transform: str
                           ) -> Tuple[TimeSeries, Optional[Callable[[ForecastResult], ForecastResult]]]:
    """
    Apply a target transformation and return the transformed series with its inverse.

    Parameters
    ----------
    series : TimeSeries
        Input time series to transform
    transform : str
        "level" (identity) or "log"

    Returns
    -------
    Tuple[TimeSeries, Optional[Callable]]
        Transformed series and the function mapping a forecast back to the
        original scale (None for the identity)

    Examples
    --------
    >>> y, inverse = apply_target_transform(series, "log")
    >>> fc = inverse(forecast(fitted, horizon=12))
    """
    validate_series_for_transform(series, transform)
    if transform == "log":
        logger.debug("Applying log transform to %s", series.name)
        return log_transform(series), inverse_log_forecast
    return series, None


def inverse_values(transform: str) -> Optional[Callable[[np.ndarray], np.ndarray]]:
    """Elementwise inverse of ``transform`` for plain arrays (fitted values); None for the identity."""
    if transform not in TRANSFORMS:
        raise InputValidationError(f"Unknown transform '{transform}'; expected one of {TRANSFORMS}")
    return np.exp if transform == "log" else None
