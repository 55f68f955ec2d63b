# forecast_engine_src/data_utils.py

import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .entities import TimeSeries
from .exceptions import InputValidationError
from .file_utils import safe_read_csv

logger = logging.getLogger(__name__)


def load_series_csv(series_path: Path,
                    value_column: str = "value",
                    regressor_columns: Optional[Sequence[str]] = None,
                    period: int = 1) -> Tuple[TimeSeries, Optional[pd.DataFrame]]:
    """
    Load a target series and optional regressors from a CSV with a 'date' column.

    Parameters
    ----------
    series_path : Path
        CSV with a 'date' column, the target column and any regressor columns.
    value_column : str, default="value"
        Name of the target column; also used as the series name.
    regressor_columns : Sequence[str], optional
        Regressor columns to return. None returns every remaining numeric
        column; an empty sequence returns no regressors.
    period : int, default=1
        Seasonal period of the series.

    Returns
    -------
    Tuple[TimeSeries, Optional[pd.DataFrame]]
        The target series and the regressor frame aligned with it (None when
        there are no regressors).

    Raises
    ------
    InputValidationError
        If the file doesn't exist, lacks required columns, or contains no valid data.
    """
    logger.info("Loading series from: %s", series_path)
    df = safe_read_csv(series_path)
    if df is None:
        raise InputValidationError(f"Series CSV missing or empty: {series_path}")

    if "date" not in df.columns or value_column not in df.columns:
        raise InputValidationError(f"Series CSV must contain 'date' and '{value_column}' columns.")

    if regressor_columns is None:
        regressor_columns = [c for c in df.columns if c not in ("date", value_column)]
    missing = [c for c in regressor_columns if c not in df.columns]
    if missing:
        raise InputValidationError(f"Regressor column(s) not found in {series_path.name}: {missing}")

    # Parse and validate data
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    for col in [value_column, *regressor_columns]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    n_raw = len(df)
    df = df.dropna(subset=["date", value_column, *regressor_columns]).sort_values("date").reset_index(drop=True)
    if len(df) < n_raw:
        logger.warning("Dropped %d row(s) with missing or unparseable values", n_raw - len(df))

    if df.empty:
        raise InputValidationError("No valid rows found in series CSV after parsing.")
    if df["date"].duplicated().any():
        raise InputValidationError("Series CSV contains duplicate dates.")

    series = TimeSeries(df[value_column].to_numpy(dtype=float), period=period, name=value_column)
    regressors = df[list(regressor_columns)].astype(float) if regressor_columns else None
    logger.info("Loaded %d observations (%s to %s) with %d regressor(s)",
                len(series), df["date"].iloc[0].date(), df["date"].iloc[-1].date(),
                0 if regressors is None else regressors.shape[1])
    return series, regressors


def synthetic_seasonal_series(pattern: Sequence[float],
                              n_obs: int,
                              drift: float = 0.0,
                              noise_sd: float = 0.0,
                              seed: Optional[int] = None,
                              name: str = "y") -> TimeSeries:
    """
    Repeat a seasonal pattern with a linear drift and optional Gaussian noise.

    Observation ``t`` is ``pattern[t % len(pattern)] + drift * t + noise``;
    the seasonal period is ``len(pattern)``.

    Examples
    --------
    >>> y = synthetic_seasonal_series([100, 101, 99, 105], n_obs=40, drift=2.0)
    >>> len(y), y.period
    (40, 4)
    """
    pattern_arr = np.asarray(pattern, dtype=float)
    if pattern_arr.size < 1 or n_obs < 1:
        raise InputValidationError("Synthetic series needs a non-empty pattern and n_obs >= 1")
    s = pattern_arr.size
    t = np.arange(n_obs)
    values = pattern_arr[t % s] + drift * t
    if noise_sd > 0:
        values = values + np.random.default_rng(seed).normal(0.0, noise_sd, size=values.size)
    return TimeSeries(values, period=s, name=name)
