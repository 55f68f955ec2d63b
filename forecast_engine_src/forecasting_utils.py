# forecast_engine_src/forecasting_utils.py

import logging
import os
import time
import warnings
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX
from tqdm.auto import tqdm

from .config_utils import EngineConfig
from .entities import (
    DEFAULT_COVERAGE_LEVELS,
    FitFailure,
    FitFailureReason,
    FittedModel,
    ForecastResult,
    OrderSpec,
    TimeSeries,
)
from .exceptions import InputValidationError, NoCandidateConvergedError
from .order_search import ExhaustiveOrderGrid, SearchState, StepwiseOrderSearch
from .selection_utils import InformationCriterionSelector, SelectionResult
from .stationarity_utils import StationarityAnalyzer, StationarityResult

logger = logging.getLogger(__name__)

FitOutcome = Union[FittedModel, FitFailure]


class FitBudgetExceeded(Exception):
    """Raised from the optimizer callback once a fit has used up its time budget."""


def validate_sarimax_inputs(series: TimeSeries,
                            regressors: Optional[pd.DataFrame] = None,
                            min_obs: int = 8) -> None:
    """
    Validate inputs for SARIMAX modeling.

    Parameters
    ----------
    series : TimeSeries
        Endogenous time series to validate
    regressors : Optional[pd.DataFrame]
        Exogenous variables to validate
    min_obs : int, default=8
        Minimum number of observations required

    Raises
    ------
    InputValidationError
        If validation fails
    """
    if len(series) < min_obs:
        raise InputValidationError(f"Insufficient observations: {len(series)} < {min_obs}")

    if regressors is not None:
        if not isinstance(regressors, pd.DataFrame) or regressors.shape[1] == 0:
            raise InputValidationError("Regressors must be a DataFrame with at least one column")
        if len(regressors) != len(series):
            raise InputValidationError(
                f"Regressors must have the same length as the series ({len(regressors)} != {len(series)})"
            )
        if not np.all(np.isfinite(regressors.to_numpy(dtype=float))):
            raise InputValidationError("Regressors must not contain missing or infinite values")


def _regressor_array(regressors: Optional[pd.DataFrame]) -> Optional[pd.DataFrame]:
    if regressors is None:
        return None
    return regressors.reset_index(drop=True).astype(float)


class ModelBackend:
    """
    Capability interface for fitting one candidate order.

    Implementations return a ``FittedModel`` on success and a ``FitFailure``
    for candidate-level numerical problems; they must not mutate their inputs.
    """

    def fit(self, series: TimeSeries, order: OrderSpec,
            regressors: Optional[pd.DataFrame] = None) -> FitOutcome:
        raise NotImplementedError

    def forecast(self, fitted: FittedModel, horizon: int,
                 regressors: Optional[pd.DataFrame] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Return (point forecasts, standard errors) for ``horizon`` steps."""
        raise NotImplementedError


class SarimaxBackend(ModelBackend):
    """
    statsmodels SARIMAX maximum-likelihood backend.

    Regression with ARIMA errors is SARIMAX with ``exog``. The model is fit
    with ``simple_differencing=False`` so differencing stays inside the state
    space and forecasts come back on the original scale.

    Parameters
    ----------
    maxiter : int, default=200
        Optimizer iteration cap; hitting it is a ``ConvergenceFailure``.
    method : str, default="lbfgs"
        statsmodels optimizer name.
    trend : str, default="auto"
        "auto" adds a constant only when ``d + D == 0``; any statsmodels trend
        spec ("n", "c", "t", "ct") is passed through unchanged.
    fit_timeout : float, optional
        Wall-clock budget in seconds for one fit, measured from the start of
        that fit and checked after every optimizer iteration. A fit that runs
        past it is a ``ConvergenceFailure``.
    """

    def __init__(self, maxiter: int = 200, method: str = "lbfgs", trend: str = "auto",
                 fit_timeout: Optional[float] = None):
        if fit_timeout is not None and fit_timeout < 0:
            raise InputValidationError("fit_timeout must be >= 0")
        self.maxiter = maxiter
        self.method = method
        self.trend = trend
        self.fit_timeout = fit_timeout

    @classmethod
    def from_config(cls, config: EngineConfig) -> "SarimaxBackend":
        return cls(maxiter=config.maxiter, method=config.method, trend=config.trend,
                   fit_timeout=config.fit_timeout)

    def trend_for(self, order: OrderSpec) -> str:
        if self.trend == "auto":
            return "c" if order.d + order.D == 0 else "n"
        return self.trend

    def _budget_callback(self):
        if self.fit_timeout is None:
            return None
        deadline = time.monotonic() + self.fit_timeout

        def _check(params):
            if time.monotonic() >= deadline:
                raise FitBudgetExceeded()
        return _check

    def fit(self, series: TimeSeries, order: OrderSpec,
            regressors: Optional[pd.DataFrame] = None) -> FitOutcome:
        endog = pd.Series(np.array(series.values), name=series.name)
        exog = _regressor_array(regressors)

        callback = self._budget_callback()
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                warnings.simplefilter("ignore", UserWarning)
                model = SARIMAX(
                    endog,
                    exog,
                    order=order.order,
                    seasonal_order=order.seasonal_order,
                    trend=self.trend_for(order),
                    simple_differencing=False,
                )
                res = model.fit(disp=False, maxiter=self.maxiter, method=self.method, callback=callback)
        except FitBudgetExceeded:
            logger.debug("Fit of %s exceeded the %.3gs budget", order.label, self.fit_timeout)
            return FitFailure(order, FitFailureReason.CONVERGENCE_FAILURE,
                              f"exceeded fit budget of {self.fit_timeout}s")
        except Exception as e:
            logger.debug("Fit of %s raised %s: %s", order.label, type(e).__name__, e)
            return FitFailure(order, FitFailureReason.CONVERGENCE_FAILURE, f"{type(e).__name__}: {e}")

        retvals = getattr(res, "mle_retvals", None) or {}
        if not retvals.get("converged", True):
            return FitFailure(order, FitFailureReason.CONVERGENCE_FAILURE,
                              f"optimizer did not converge within {self.maxiter} iterations")
        if not np.isfinite(res.llf):
            return FitFailure(order, FitFailureReason.CONVERGENCE_FAILURE, "non-finite log-likelihood")

        if order.p + order.P > 0:
            ar_moduli = np.abs(np.asarray(res.arroots))
            if ar_moduli.size and np.any(ar_moduli <= 1.0):
                return FitFailure(order, FitFailureReason.NON_STATIONARY_ROOTS,
                                  f"min AR root modulus {ar_moduli.min():.4f} <= 1")
        if order.q + order.Q > 0:
            ma_moduli = np.abs(np.asarray(res.maroots))
            if ma_moduli.size and np.any(ma_moduli <= 1.0):
                return FitFailure(order, FitFailureReason.NON_INVERTIBLE_MA,
                                  f"min MA root modulus {ma_moduli.min():.4f} <= 1")

        return FittedModel(
            order=order,
            params=pd.Series(res.params),
            llf=float(res.llf),
            aic=float(res.aic),
            aicc=float(res.aicc),
            bic=float(res.bic),
            residuals=np.asarray(res.resid, dtype=float),
            fitted_values=np.asarray(res.fittedvalues, dtype=float),
            nobs=int(res.nobs),
            exog_names=tuple(str(c) for c in regressors.columns) if regressors is not None else (),
            results=res,
        )

    def forecast(self, fitted: FittedModel, horizon: int,
                 regressors: Optional[pd.DataFrame] = None) -> Tuple[np.ndarray, np.ndarray]:
        exog = None if regressors is None else regressors.to_numpy(dtype=float)
        fc = fitted.results.get_forecast(steps=horizon, exog=exog)
        return np.asarray(fc.predicted_mean, dtype=float), np.asarray(fc.se_mean, dtype=float)


def _fit_one(backend: ModelBackend, series: TimeSeries, order: OrderSpec,
             regressors: Optional[pd.DataFrame]) -> FitOutcome:
    # Module-level so it can be pickled into worker processes
    return backend.fit(series, order, regressors)


class ModelFitter:
    """
    Fits candidate orders, sequentially or on a process pool.

    Candidates have no data dependency on one another, so with ``n_jobs > 1``
    each order is an independent unit of work. Outcomes are always returned in
    candidate order. Per-fit time budgets are the backend's concern (see
    ``SarimaxBackend.fit_timeout``), so every worker finishes its task and the
    pool always shuts down cleanly.
    """

    def __init__(self, backend: Optional[ModelBackend] = None, n_jobs: int = 1, progress: bool = False):
        self.backend = backend or SarimaxBackend()
        if n_jobs is None or n_jobs < 1:
            n_jobs = os.cpu_count() or 1
        self.n_jobs = n_jobs
        self.progress = progress

    @classmethod
    def from_config(cls, config: EngineConfig, backend: Optional[ModelBackend] = None,
                    progress: bool = False) -> "ModelFitter":
        return cls(backend=backend or SarimaxBackend.from_config(config),
                   n_jobs=config.n_jobs, progress=progress)

    def fit(self, series: TimeSeries, order: OrderSpec,
            regressors: Optional[pd.DataFrame] = None) -> FitOutcome:
        validate_sarimax_inputs(series, regressors)
        return self.backend.fit(series, order, regressors)

    def fit_many(self, series: TimeSeries, orders: Iterable[OrderSpec],
                 regressors: Optional[pd.DataFrame] = None,
                 desc: str = "Fitting SARIMAX candidates") -> Tuple[List[FittedModel], List[FitFailure]]:
        """Fit every order and split the outcomes into (fitted, failures), each in candidate order."""
        outcomes = self.fit_outcomes(series, orders, regressors, desc)
        fitted = [o for o in outcomes if isinstance(o, FittedModel)]
        failures = [o for o in outcomes if isinstance(o, FitFailure)]
        return fitted, failures

    def fit_outcomes(self, series: TimeSeries, orders: Iterable[OrderSpec],
                     regressors: Optional[pd.DataFrame] = None,
                     desc: str = "Fitting SARIMAX candidates") -> List[FitOutcome]:
        """
        Fit every order and return one outcome per order, in order.

        Parameters
        ----------
        series : TimeSeries
            Target series (undifferenced; ``d`` and ``D`` live in each order).
        orders : Iterable[OrderSpec]
            Candidates to fit.
        regressors : Optional[pd.DataFrame]
            Exogenous regressors aligned with ``series``.
        desc : str
            Progress bar label.

        Returns
        -------
        List[Union[FittedModel, FitFailure]]
        """
        validate_sarimax_inputs(series, regressors)
        orders = list(orders)
        if not orders:
            return []

        if self.n_jobs == 1:
            return [self.backend.fit(series, order, regressors)
                    for order in tqdm(orders, desc=desc, disable=not self.progress)]

        with ProcessPoolExecutor(max_workers=min(self.n_jobs, len(orders))) as pool:
            futures = [pool.submit(_fit_one, self.backend, series, order, regressors) for order in orders]
            return [future.result() for future in tqdm(futures, desc=desc, disable=not self.progress)]


@dataclass(frozen=True, eq=False)
class SearchResult:
    """Everything a search fitted or dropped."""

    fitted: Tuple[FittedModel, ...]
    failures: Tuple[FitFailure, ...]
    mode: str
    state: Optional[SearchState] = None

    @property
    def n_candidates(self) -> int:
        return len(self.fitted) + len(self.failures)


def search_orders(series: TimeSeries,
                  d: int,
                  D: int,
                  regressors: Optional[pd.DataFrame] = None,
                  config: Optional[EngineConfig] = None,
                  fitter: Optional[ModelFitter] = None) -> SearchResult:
    """
    Search SARIMAX orders with fixed differencing and score them by the configured criterion.

    Parameters
    ----------
    series : TimeSeries
        Endogenous (target) series, undifferenced
    d : int
        Non-seasonal differencing order
    D : int
        Seasonal differencing order
    regressors : Optional[pd.DataFrame]
        Optional exogenous regressors aligned with the series (None for endog-only)
    config : EngineConfig, optional
        Search bounds, mode ("stepwise" or "exhaustive"), criterion and step budget
    fitter : ModelFitter, optional
        Fitter to use; built from ``config`` when omitted

    Returns
    -------
    SearchResult
        Fitted candidates and dropped candidates

    Notes
    -----
    - The exhaustive grid fits every (p, q, P, Q) within the bounds
    - The stepwise search fits one batch at a time; fits inside a batch are
      independent, batches are sequential
    """
    config = config or EngineConfig()
    fitter = fitter or ModelFitter.from_config(config)
    s = series.period if series.period > 1 else 0
    bounds = config.search_bounds

    if config.search_mode == "exhaustive":
        grid = ExhaustiveOrderGrid(d, D, s, bounds)
        logger.info("Exhaustive search over %d candidate orders (d=%d, D=%d, s=%d)", len(grid), d, D, s)
        grid_fitted, grid_failures = fitter.fit_many(series, grid, regressors, desc="Grid search SARIMAX")
        logger.info("Grid search fitted %d of %d candidates", len(grid_fitted), len(grid))
        return SearchResult(fitted=tuple(grid_fitted), failures=tuple(grid_failures), mode="exhaustive")

    if config.search_mode != "stepwise":
        raise InputValidationError(f"Unknown search mode '{config.search_mode}'")

    search = StepwiseOrderSearch(d, D, s, bounds, max_steps=config.max_steps, tolerance=config.tie_tolerance)
    fitted: List[FittedModel] = []
    failures: List[FitFailure] = []
    for batch in search:
        outcomes = fitter.fit_outcomes(series, batch, regressors, desc="Stepwise search SARIMAX")
        for order, outcome in zip(batch, outcomes):
            if isinstance(outcome, FittedModel):
                fitted.append(outcome)
                search.record(order, outcome.criterion(config.criterion))
            else:
                failures.append(outcome)
                search.record(order, None)
    logger.info("Stepwise search finished in state '%s' after %d candidates (%d fitted, %d dropped)",
                search.state.value, search.n_proposed, len(fitted), len(failures))
    return SearchResult(fitted=tuple(fitted), failures=tuple(failures), mode="stepwise", state=search.state)


@dataclass(frozen=True, eq=False)
class AutoSarimaxResult:
    """Stationarity analysis, order search and selection for one series."""

    stationarity: StationarityResult
    search: SearchResult
    selection: SelectionResult

    @property
    def best(self) -> FittedModel:
        return self.selection.best


def auto_sarimax(series: TimeSeries,
                 regressors: Optional[pd.DataFrame] = None,
                 config: Optional[EngineConfig] = None,
                 fitter: Optional[ModelFitter] = None) -> AutoSarimaxResult:
    """
    Choose differencing orders, search AR/MA orders and select the best model.

    Raises
    ------
    NoCandidateConvergedError
        If no candidate order could be fit.
    InputValidationError
        If the series or regressors are malformed.
    """
    config = config or EngineConfig()
    validate_sarimax_inputs(series, regressors)

    stationarity = StationarityAnalyzer.from_config(config).analyze(series)
    search = search_orders(series, stationarity.d, stationarity.D, regressors, config, fitter)
    if not search.fitted:
        reasons = pd.Series([f.reason.value for f in search.failures]).value_counts().to_dict()
        raise NoCandidateConvergedError(
            f"Search failed: none of {search.n_candidates} candidate orders could be fit ({reasons})",
            failures=search.failures,
        )

    selection = InformationCriterionSelector(config.criterion, config.tie_tolerance).select(search.fitted)
    return AutoSarimaxResult(stationarity=stationarity, search=search, selection=selection)


def forecast(fitted: FittedModel,
             horizon: int,
             regressors: Optional[pd.DataFrame] = None,
             levels: Sequence[int] = DEFAULT_COVERAGE_LEVELS,
             backend: Optional[ModelBackend] = None) -> ForecastResult:
    """
    Produce ``horizon``-step point forecasts and prediction intervals.

    Parameters
    ----------
    fitted : FittedModel
        Model to forecast from; forecasts are on the scale it was fit in
    horizon : int
        Number of steps ahead (>= 1)
    regressors : Optional[pd.DataFrame]
        Regressor values over the forecast horizon; required (exactly
        ``horizon`` rows) when the model has regression terms
    levels : Sequence[int]
        Coverage levels in percent
    backend : ModelBackend, optional
        Backend that produced ``fitted``; SARIMAX by default

    Returns
    -------
    ForecastResult
    """
    if int(horizon) != horizon or horizon < 1:
        raise InputValidationError(f"Forecast horizon must be a positive integer, got {horizon}")
    horizon = int(horizon)

    if fitted.has_regressors:
        if regressors is None:
            raise InputValidationError(
                f"{fitted.label} has regression terms; regressor values for the {horizon}-step horizon are required"
            )
        if len(regressors) != horizon:
            raise InputValidationError(
                f"Horizon regressors have {len(regressors)} rows, expected {horizon}"
            )
        if regressors.shape[1] != len(fitted.exog_names):
            raise InputValidationError(
                f"Horizon regressors have {regressors.shape[1]} columns, expected {len(fitted.exog_names)}"
            )
    elif regressors is not None:
        raise InputValidationError(f"{fitted.label} was fit without regressors")

    backend = backend or SarimaxBackend()
    mean, se = backend.forecast(fitted, horizon, regressors)
    return ForecastResult.from_standard_errors(mean, se, levels, model_label=fitted.label)
