# forecast_engine_src/stationarity_utils.py

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tsa.stattools import acf, adfuller

from .config_utils import EngineConfig
from .entities import TimeSeries

logger = logging.getLogger(__name__)


def adf_test(series: Union[TimeSeries, pd.Series, np.ndarray],
             maxlag: Optional[int] = None,
             autolag: Optional[str] = "AIC",
             regression: str = "c") -> Tuple[float, float]:
    """
    Run the Augmented Dickey-Fuller (ADF) test for unit roots.

    Parameters
    ----------
    series : Union[TimeSeries, pd.Series, np.ndarray]
        Input series. NaNs are dropped prior to testing.
    maxlag : int, optional
        Maximum lag of the differenced term; statsmodels' ``12*(n/100)^(1/4)``
        rule when None.
    autolag : str, optional
        Lag selection method ("AIC", "BIC", "t-stat"); None uses ``maxlag`` as is.
    regression : str, default="c"
        Deterministic terms in the test regression ("c", "ct", "ctt", "n").

    Returns
    -------
    Tuple[float, float]
        (test_statistic, p_value)

    Notes
    -----
    - ADF null hypothesis: the series has a unit root (non-stationary)
    - Lower p-values (< 0.05) suggest rejection of null (series is stationary)
    - A constant series is reported as stationary (statistic -inf, p-value 0)
    """
    values = series.values if isinstance(series, TimeSeries) else pd.Series(series).dropna().to_numpy(dtype=float)
    if values.size > 0 and np.ptp(values) == 0:
        return float("-inf"), 0.0
    res = adfuller(values, maxlag=maxlag, autolag=autolag, regression=regression)
    return float(res[0]), float(res[1])


def seasonal_autocorrelation(series: TimeSeries) -> float:
    """Sample autocorrelation at the seasonal lag ``s``; NaN when undefined."""
    s = series.period
    if s <= 1 or len(series) <= 2 * s or np.ptp(series.values) == 0:
        return float("nan")
    return float(acf(series.values, nlags=s, fft=True)[s])


@dataclass(frozen=True, eq=False)
class StationarityResult:
    """
    Outcome of the differencing search.

    ``series`` is the input after ``d`` ordinary and ``D`` seasonal
    differences. ``warning`` is set when ``max_d`` was reached without the ADF
    test rejecting a unit root; differencing is still applied in that case.
    """

    d: int
    D: int
    series: TimeSeries
    adf_pvalues: Tuple[float, ...]
    seasonal_acf: Tuple[float, ...]
    warning: bool = False

    @property
    def is_stationary(self) -> bool:
        return not self.warning

    @property
    def final_pvalue(self) -> float:
        return self.adf_pvalues[-1] if self.adf_pvalues else float("nan")


class StationarityAnalyzer:
    """
    Chooses the differencing orders ``d`` and ``D`` for a series.

    The non-seasonal order is found by repeated ADF testing: while the p-value
    exceeds ``alpha`` the series is differenced again, up to ``max_d``. The
    seasonal order is then decided on the ``d``-differenced series: seasonal
    differences are taken while the lag-``s`` autocorrelation stays at or above
    ``seasonal_acf_threshold``, up to ``max_D``.
    """

    def __init__(self,
                 alpha: float = 0.05,
                 max_d: int = 2,
                 max_D: int = 2,
                 adf_maxlag: Optional[int] = None,
                 autolag: Optional[str] = "AIC",
                 regression: str = "c",
                 seasonal_test: str = "acf",
                 seasonal_acf_threshold: float = 0.64):
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")
        if max_d < 0 or max_D < 0:
            raise ValueError("Maximum differencing orders must be >= 0")
        if seasonal_test not in ("acf", "none"):
            raise ValueError(f"Unknown seasonal test '{seasonal_test}'")
        self.alpha = alpha
        self.max_d = max_d
        self.max_D = max_D
        self.adf_maxlag = adf_maxlag
        self.autolag = autolag
        self.regression = regression
        self.seasonal_test = seasonal_test
        self.seasonal_acf_threshold = seasonal_acf_threshold

    @classmethod
    def from_config(cls, config: EngineConfig) -> "StationarityAnalyzer":
        return cls(
            alpha=config.alpha,
            max_d=config.max_d,
            max_D=config.max_D,
            adf_maxlag=config.adf_maxlag,
            autolag=config.adf_autolag,
            regression=config.adf_regression,
            seasonal_test=config.seasonal_test,
            seasonal_acf_threshold=config.seasonal_acf_threshold,
        )

    def _pvalue(self, series: TimeSeries) -> float:
        try:
            return adf_test(series, maxlag=self.adf_maxlag, autolag=self.autolag, regression=self.regression)[1]
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.debug("ADF test unavailable for series of length %d: %s", len(series), e)
            return float("nan")

    def analyze(self, series: TimeSeries) -> StationarityResult:
        """
        Determine the minimal differencing orders for ``series``.

        Parameters
        ----------
        series : TimeSeries
            Input series; never modified.

        Returns
        -------
        StationarityResult
            ``d``, ``D``, the differenced series and the test history.
        """
        current = series
        d = 0
        pvalues: List[float] = [self._pvalue(current)]
        warning = False

        while not pvalues[-1] <= self.alpha:
            if np.isnan(pvalues[-1]) or d >= self.max_d:
                warning = True
                break
            if len(current) <= 2:
                logger.debug("Series too short to difference further at d=%d", d)
                warning = True
                break
            current = current.difference()
            d += 1
            pvalues.append(self._pvalue(current))
            logger.debug("ADF p-value after %d difference(s): %.4f", d, pvalues[-1])

        if warning:
            logger.warning(
                "NonStationaryInput: ADF p-value %.4f > %.2f after d=%d differences (max_d=%d); "
                "proceeding with d=%d",
                pvalues[-1], self.alpha, d, self.max_d, d,
            )

        D = 0
        seasonal_acf: List[float] = []
        if self.seasonal_test == "acf" and series.period > 1:
            while D < self.max_D:
                r = seasonal_autocorrelation(current)
                seasonal_acf.append(r)
                if not r >= self.seasonal_acf_threshold:
                    break
                candidate = current.seasonal_difference()
                if np.isclose(np.ptp(candidate.values), 0.0):
                    # an exactly periodic series would difference to a constant
                    logger.debug("Seasonal difference would leave a constant series; keeping D=%d", D)
                    break
                current = candidate
                D += 1
                logger.debug("Seasonal lag-%d autocorrelation %.3f; applied seasonal difference D=%d",
                             series.period, r, D)

        logger.info("Stationarity analysis: d=%d, D=%d (ADF p-values: %s)",
                    d, D, ", ".join(f"{p:.4f}" for p in pvalues))
        return StationarityResult(
            d=d,
            D=D,
            series=current,
            adf_pvalues=tuple(pvalues),
            seasonal_acf=tuple(seasonal_acf),
            warning=warning,
        )
