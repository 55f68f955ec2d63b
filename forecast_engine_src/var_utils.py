# forecast_engine_src/var_utils.py

"""
Vector autoregression: lag-order selection, joint OLS estimation, stability
check through the companion matrix, Granger-causality F-tests and forecasts
with MSE-based intervals.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.api import VAR

from .config_utils import EngineConfig
from .entities import DEFAULT_COVERAGE_LEVELS, ForecastResult, GrangerResult, VARModel
from .exceptions import InputValidationError

logger = logging.getLogger(__name__)

VAR_CRITERIA = ("aic", "bic", "hqic", "fpe")

# deterministic terms -> statsmodels trend code
_TREND_CODES = {
    frozenset(): "n",
    frozenset({"constant"}): "c",
    frozenset({"constant", "trend"}): "ct",
}


def deterministic_to_trend(deterministic: Iterable[str]) -> str:
    """
    Map a subset of {"constant", "trend"} to a statsmodels trend code.

    A trend without a constant is not supported.
    """
    key = frozenset(str(d).lower() for d in deterministic)
    unknown = key - {"constant", "trend"}
    if unknown:
        raise InputValidationError(f"Unknown deterministic term(s): {sorted(unknown)}")
    if key not in _TREND_CODES:
        raise InputValidationError("A linear trend requires a constant as well")
    return _TREND_CODES[key]


def companion_matrix(coefs: np.ndarray) -> np.ndarray:
    """
    Stack ``p`` coefficient matrices ``(p, k, k)`` into the ``(k*p, k*p)`` companion form.

    The first ``k`` rows hold ``[A_1 ... A_p]``; the block below is an identity
    shifting lags down by one.
    """
    coefs = np.asarray(coefs, dtype=float)
    p, k, _ = coefs.shape
    companion = np.zeros((k * p, k * p))
    companion[:k, :] = np.hstack(list(coefs))
    if p > 1:
        companion[k:, :-k] = np.eye(k * (p - 1))
    return companion


def difference_frame(frame: pd.DataFrame, order: int) -> pd.DataFrame:
    """Difference every column ``order`` times, dropping the leading rows."""
    out = frame
    for _ in range(order):
        out = out.diff().iloc[1:]
    return out


def integrate_forecast(forecast: np.ndarray, history: np.ndarray, order: int) -> np.ndarray:
    """
    Undo ``order`` rounds of differencing on a ``(h, k)`` forecast.

    ``history`` holds the level observations the model was trained on; only
    its last ``order`` rows are used.
    """
    history = np.asarray(history, dtype=float)
    anchors = []
    current = history
    for _ in range(order):
        anchors.append(current[-1])
        current = np.diff(current, axis=0)
    out = np.asarray(forecast, dtype=float)
    for anchor in reversed(anchors):
        out = anchor + np.cumsum(out, axis=0)
    return out


class VAREngine:
    """
    Fits vector autoregressions on two or more aligned series.

    Parameters
    ----------
    max_lags : int, default=8
        Upper bound of the lag-order search (lags ``1..max_lags``).
    criterion : str, default="aic"
        One of "aic", "bic", "hqic", "fpe".
    deterministic : Sequence[str], default=("constant",)
        Subset of {"constant", "trend"}.
    granger_significance : float, default=0.10
        Default significance level for Granger tests.
    """

    def __init__(self, max_lags: int = 8, criterion: str = "aic",
                 deterministic: Sequence[str] = ("constant",),
                 granger_significance: float = 0.10):
        if max_lags < 1:
            raise InputValidationError("max_lags must be >= 1")
        key = str(criterion).lower()
        if key not in VAR_CRITERIA:
            raise InputValidationError(f"Unknown VAR criterion '{criterion}'; expected one of {VAR_CRITERIA}")
        self.max_lags = int(max_lags)
        self.criterion = key
        self.deterministic = tuple(sorted(set(str(d).lower() for d in deterministic)))
        self.trend = deterministic_to_trend(self.deterministic)
        self.granger_significance = granger_significance

    @classmethod
    def from_config(cls, config: EngineConfig) -> "VAREngine":
        return cls(max_lags=config.var_max_lags, criterion=config.var_criterion,
                   deterministic=config.var_deterministic,
                   granger_significance=config.granger_significance)

    @property
    def n_deterministic(self) -> int:
        return len(self.deterministic)

    def _prepare(self, frame: pd.DataFrame) -> pd.DataFrame:
        if not isinstance(frame, pd.DataFrame) or frame.shape[1] < 2:
            raise InputValidationError("A VAR needs a DataFrame with at least two columns")
        data = frame.astype(float).reset_index(drop=True)
        if not np.all(np.isfinite(data.to_numpy())):
            raise InputValidationError("VAR input must not contain missing or infinite values")
        data.columns = [str(c) for c in data.columns]
        return data

    def feasible_max_lags(self, nobs: int, k: int) -> int:
        """Largest lag order ``<= max_lags`` leaving positive residual degrees of freedom."""
        lag = self.max_lags
        while lag >= 1 and nobs - lag <= k * lag + self.n_deterministic:
            lag -= 1
        return lag

    def select_order(self, frame: pd.DataFrame) -> Tuple[int, pd.DataFrame]:
        """
        Choose the lag order by information criterion over ``1..max_lags``.

        Returns
        -------
        Tuple[int, pd.DataFrame]
            Selected lag and the per-lag criterion table (index "lag",
            columns AIC, BIC, HQIC, FPE). Lag 0 is never selected.
        """
        data = self._prepare(frame)
        max_lags = self.feasible_max_lags(len(data), data.shape[1])
        if max_lags < 1:
            raise InputValidationError(f"Not enough observations ({len(data)}) for a VAR(1) on {data.shape[1]} series")
        if max_lags < self.max_lags:
            logger.debug("VAR lag search capped at %d by sample size %d", max_lags, len(data))

        selection = VAR(data).select_order(maxlags=max_lags, trend=self.trend)
        table = pd.DataFrame({name.upper(): np.asarray(values, dtype=float)
                              for name, values in selection.ics.items()})
        table.index = pd.RangeIndex(0, len(table), name="lag")
        candidates = table.loc[1:, self.criterion.upper()]
        lag = int(candidates.idxmin())
        logger.info("VAR lag selection: %s picks p=%d (searched 1..%d)", self.criterion.upper(), lag, max_lags)
        return lag, table

    def fit(self, frame: pd.DataFrame, lags: Optional[int] = None, difference: int = 0) -> VARModel:
        """
        Estimate a VAR by OLS.

        Parameters
        ----------
        frame : pd.DataFrame
            Aligned level observations, one column per variable.
        lags : int, optional
            Lag order; selected by ``select_order`` when omitted.
        difference : int, default=0
            Number of times to difference every column before fitting.

        Returns
        -------
        VARModel
            Unstable fits are returned with ``is_stable == False`` and a
            logged ``UnstableVAR`` warning.
        """
        data = difference_frame(self._prepare(frame), difference).reset_index(drop=True)
        lag_table = None
        if lags is None:
            lags, lag_table = self.select_order(data)
        elif lags < 1:
            raise InputValidationError("VAR lag order must be >= 1")
        elif len(data) - lags <= data.shape[1] * lags + self.n_deterministic:
            raise InputValidationError(f"Not enough observations ({len(data)}) for a VAR({lags})")

        res = VAR(data).fit(maxlags=int(lags), trend=self.trend)
        coefs = np.asarray(res.coefs, dtype=float)
        moduli = np.abs(np.linalg.eigvals(companion_matrix(coefs)))
        model = VARModel(
            variables=tuple(data.columns),
            lag_order=int(lags),
            deterministic=self.deterministic,
            coefs=coefs,
            deterministic_params=np.asarray(res.params, dtype=float)[:self.n_deterministic],
            sigma_u=np.asarray(res.sigma_u, dtype=float),
            eigenvalue_moduli=moduli,
            aic=float(res.aic),
            bic=float(res.bic),
            hqic=float(res.hqic),
            fpe=float(res.fpe),
            nobs=int(res.nobs),
            differenced=int(difference),
            lag_selection=lag_table,
            results=res,
        )
        if model.is_stable:
            logger.info("Fitted %s on %s: max companion modulus %.4f",
                        model.label, ", ".join(model.variables), model.max_modulus)
        else:
            logger.warning("UnstableVAR: %s has max companion eigenvalue modulus %.4f >= 1",
                           model.label, model.max_modulus)
        return model

    def granger_causality(self, model: VARModel, cause: str, effect: str,
                          significance: Optional[float] = None) -> GrangerResult:
        """
        F-test that every lag of ``cause`` has a zero coefficient in the ``effect`` equation.

        A p-value above ``significance`` means the test fails to reject
        no-Granger-causality; it is not evidence of no relationship.
        """
        if cause not in model.variables or effect not in model.variables:
            raise InputValidationError(f"Unknown variable(s) in Granger test: cause={cause!r}, effect={effect!r}")
        if cause == effect:
            raise InputValidationError("Granger test needs distinct cause and effect variables")
        level = self.granger_significance if significance is None else significance

        test = model.results.test_causality(caused=effect, causing=cause, kind="f", signif=level)
        result = GrangerResult(
            cause=cause,
            effect=effect,
            statistic=float(test.test_statistic),
            p_value=float(test.pvalue),
            df=tuple(int(v) for v in np.atleast_1d(test.df)),
            significance_level=level,
        )
        logger.info("Granger test: %s", result.conclusion)
        return result

    def forecast_covariance(self, model: VARModel, horizon: int) -> np.ndarray:
        """
        Forecast error covariance ``(h, k, k)`` on the scale the series were given in.

        Uses the MA representation ``Psi_n``; for a model fit on ``d``-times
        differenced data the matrices are cumulated ``d`` times so the
        covariance refers to levels.
        """
        psi = np.asarray(model.results.ma_rep(maxn=horizon - 1), dtype=float)
        for _ in range(model.differenced):
            psi = np.cumsum(psi, axis=0)
        sigma = model.sigma_u
        terms = np.einsum("nij,jk,nlk->nil", psi, sigma, psi)
        return np.cumsum(terms, axis=0)

    def forecast(self, model: VARModel, horizon: int, target: Optional[str] = None,
                 levels: Sequence[int] = DEFAULT_COVERAGE_LEVELS,
                 history: Optional[pd.DataFrame] = None,
                 allow_unstable: bool = False) -> ForecastResult:
        """
        Forecast one variable ``horizon`` steps ahead.

        Parameters
        ----------
        model : VARModel
            Fitted model.
        horizon : int
            Steps ahead (>= 1).
        target : str, optional
            Variable to report; the first variable by default.
        levels : Sequence[int]
            Coverage levels in percent.
        history : pd.DataFrame, optional
            Level observations the model was trained on; required when the
            model was fit on differenced data, used to integrate back.
        allow_unstable : bool, default=False
            Forecast an unstable model instead of raising.

        Raises
        ------
        UnstableVARError
            If the model is unstable and ``allow_unstable`` is False.
        """
        if int(horizon) != horizon or horizon < 1:
            raise InputValidationError(f"Forecast horizon must be a positive integer, got {horizon}")
        horizon = int(horizon)
        if not allow_unstable:
            model.require_stable()
        target = target or model.variables[0]
        if target not in model.variables:
            raise InputValidationError(f"Unknown forecast target {target!r}")
        j = model.variables.index(target)

        res = model.results
        y0 = np.asarray(res.endog, dtype=float)[-model.lag_order:]
        mean = np.asarray(res.forecast(y0, steps=horizon), dtype=float)

        if model.differenced:
            if history is None:
                raise InputValidationError(f"{model.label} was fit on differenced data; level history is required")
            hist = self._prepare(history)[list(model.variables)].to_numpy()
            if len(hist) < model.differenced + 1:
                raise InputValidationError("Level history is too short to integrate the forecast")
            mean = integrate_forecast(mean, hist, model.differenced)

        cov = self.forecast_covariance(model, horizon)
        se = np.sqrt(np.maximum(cov[:, j, j], 0.0))
        return ForecastResult.from_standard_errors(mean[:, j], se, levels, model_label=model.label)
