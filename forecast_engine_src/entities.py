# forecast_engine_src/entities.py

"""
Immutable value types shared by every stage of the engine.

Every entity is created once by a fitting or search step and never mutated;
derived values (a differenced series, an inverse-transformed forecast) are new
objects. Arrays are copied on construction and flagged read-only so results
can be handed between stages, or shipped to worker processes, without
defensive copies.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.stats import norm

from .exceptions import InputValidationError, UnstableVARError

logger = logging.getLogger(__name__)

DEFAULT_COVERAGE_LEVELS: Tuple[int, ...] = (68, 95, 99)
CRITERIA: Tuple[str, ...] = ("aic", "aicc", "bic")


def _frozen_array(values: Union[Iterable[float], np.ndarray, pd.Series]) -> np.ndarray:
    """Return a read-only 1D float copy of ``values``."""
    arr = np.array(values, dtype=float).ravel()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """
    Ordered real-valued observations with a seasonal period.

    Parameters
    ----------
    values : array-like
        Observations. Must be finite and non-empty.
    period : int, default=1
        Seasonal period ``s`` (12 for monthly data, 4 for quarterly, 1 for none).
    index : array-like of int, optional
        Strictly increasing integer time offsets; defaults to ``0..n-1``.
    name : str, default="y"
        Series label used in reports and regressor frames.
    """

    values: np.ndarray
    period: int = 1
    index: Optional[np.ndarray] = None
    name: str = "y"

    def __post_init__(self):
        values = _frozen_array(self.values)
        if values.size == 0:
            raise InputValidationError("TimeSeries requires at least one observation.")
        if not np.all(np.isfinite(values)):
            raise InputValidationError("TimeSeries observations must be finite.")
        if int(self.period) < 1:
            raise InputValidationError(f"Seasonal period must be >= 1, got {self.period}.")

        if self.index is None:
            index = np.arange(values.size, dtype=int)
        else:
            index = np.array(self.index, dtype=int).ravel()
            if index.size != values.size:
                raise InputValidationError("TimeSeries index and values must have the same length.")
            if index.size > 1 and np.any(np.diff(index) <= 0):
                raise InputValidationError("TimeSeries index must be strictly increasing.")
        index.setflags(write=False)

        object.__setattr__(self, "values", values)
        object.__setattr__(self, "index", index)
        object.__setattr__(self, "period", int(self.period))

    def __len__(self) -> int:
        return int(self.values.size)

    def _derive(self, values: np.ndarray, index: np.ndarray, name: Optional[str] = None) -> "TimeSeries":
        return TimeSeries(values, period=self.period, index=index, name=name or self.name)

    def difference(self, lag: int = 1) -> "TimeSeries":
        """Return ``y[t] - y[t-lag]`` as a new series (``lag`` observations shorter)."""
        if lag < 1:
            raise InputValidationError(f"Differencing lag must be >= 1, got {lag}.")
        if lag >= len(self):
            raise InputValidationError(
                f"Cannot difference a series of length {len(self)} at lag {lag}."
            )
        return self._derive(self.values[lag:] - self.values[:-lag], self.index[lag:])

    def seasonal_difference(self) -> "TimeSeries":
        """Return ``y[t] - y[t-s]``."""
        if self.period <= 1:
            raise InputValidationError("Seasonal differencing requires a period > 1.")
        return self.difference(self.period)

    def log(self) -> "TimeSeries":
        if np.any(self.values <= 0):
            raise InputValidationError("Log transform requires strictly positive observations.")
        return self._derive(np.log(self.values), self.index, name=f"log({self.name})")

    def head(self, n: int) -> "TimeSeries":
        if n < 1:
            raise InputValidationError("head() requires n >= 1.")
        return self._derive(self.values[:n], self.index[:n])

    def tail(self, n: int) -> "TimeSeries":
        if n < 1:
            raise InputValidationError("tail() requires n >= 1.")
        return self._derive(self.values[-n:], self.index[-n:])

    def split(self, holdout: int) -> Tuple["TimeSeries", "TimeSeries"]:
        """Split into a training prefix and a ``holdout``-length suffix."""
        if holdout < 1 or holdout >= len(self):
            raise InputValidationError(
                f"Holdout must satisfy 1 <= holdout < {len(self)}, got {holdout}."
            )
        return self.head(len(self) - holdout), self.tail(holdout)

    def to_pandas(self) -> pd.Series:
        return pd.Series(np.array(self.values), index=pd.Index(np.array(self.index)), name=self.name)

    @classmethod
    def from_pandas(cls, series: pd.Series, period: int = 1, name: Optional[str] = None) -> "TimeSeries":
        """
        Build a TimeSeries from a pandas Series.

        Integer indexes are kept as time offsets; any other index (dates,
        periods) is replaced by positional offsets since the engine assumes a
        regular, gap-free sampling.
        """
        s = pd.Series(series)
        if pd.api.types.is_integer_dtype(s.index):
            index = s.index.to_numpy()
        else:
            index = None
        return cls(s.to_numpy(dtype=float), period=period, index=index, name=name or str(s.name or "y"))


@dataclass(frozen=True)
class SearchBounds:
    """Upper bounds on the AR/MA orders explored by a search."""

    max_p: int = 5
    max_q: int = 5
    max_P: int = 2
    max_Q: int = 2

    def __post_init__(self):
        for name in ("max_p", "max_q", "max_P", "max_Q"):
            if int(getattr(self, name)) < 0:
                raise InputValidationError(f"{name} must be >= 0.")

    def for_period(self, s: int) -> "SearchBounds":
        """Seasonal orders collapse to zero for non-seasonal data."""
        if s > 1:
            return self
        return replace(self, max_P=0, max_Q=0)

    def contains(self, p: int, q: int, P: int, Q: int) -> bool:
        return (
            0 <= p <= self.max_p
            and 0 <= q <= self.max_q
            and 0 <= P <= self.max_P
            and 0 <= Q <= self.max_Q
        )

    def clip(self, p: int, q: int, P: int, Q: int) -> Tuple[int, int, int, int]:
        return (
            min(max(p, 0), self.max_p),
            min(max(q, 0), self.max_q),
            min(max(P, 0), self.max_P),
            min(max(Q, 0), self.max_Q),
        )


@dataclass(frozen=True, order=True)
class OrderSpec:
    """
    Seasonal ARIMA order ``(p, d, q) x (P, D, Q, s)``.

    ``s`` is 0 for non-seasonal models; seasonal terms require ``s >= 2``.
    """

    p: int = 0
    d: int = 0
    q: int = 0
    P: int = 0
    D: int = 0
    Q: int = 0
    s: int = 0

    def __post_init__(self):
        for name in ("p", "d", "q", "P", "D", "Q", "s"):
            value = getattr(self, name)
            if isinstance(value, bool) or int(value) != value or value < 0:
                raise InputValidationError(f"Order component {name} must be a non-negative integer, got {value!r}.")
            object.__setattr__(self, name, int(value))
        if self.s == 1:
            object.__setattr__(self, "s", 0)
        if self.s == 0 and (self.P or self.D or self.Q):
            raise InputValidationError("Seasonal orders (P, D, Q) require a seasonal period s >= 2.")

    @property
    def order(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    @property
    def seasonal_order(self) -> Tuple[int, int, int, int]:
        return (self.P, self.D, self.Q, self.s)

    @property
    def arma_key(self) -> Tuple[int, int, int, int]:
        return (self.p, self.q, self.P, self.Q)

    @property
    def n_arma_params(self) -> int:
        """Total count of AR/MA terms ``p+q+P+Q`` used for parsimony tie-breaks."""
        return self.p + self.q + self.P + self.Q

    @property
    def label(self) -> str:
        base = f"SARIMA({self.p},{self.d},{self.q})"
        if self.s:
            return f"{base}({self.P},{self.D},{self.Q})[{self.s}]"
        return base

    def with_arma(self, p: int, q: int, P: int, Q: int) -> "OrderSpec":
        return replace(self, p=p, q=q, P=P, Q=Q)

    def neighbours(self, bounds: SearchBounds) -> List["OrderSpec"]:
        """
        Orders one step away: +/-1 in each of p, q, P, Q, and jointly in
        (p, q) and (P, Q). Only orders inside ``bounds`` are returned.
        """
        steps = []
        for delta in (-1, 1):
            steps.extend([
                (delta, 0, 0, 0),
                (0, delta, 0, 0),
                (delta, delta, 0, 0),
            ])
            if self.s:
                steps.extend([
                    (0, 0, delta, 0),
                    (0, 0, 0, delta),
                    (0, 0, delta, delta),
                ])

        out: List[OrderSpec] = []
        for dp, dq, dP, dQ in steps:
            key = (self.p + dp, self.q + dq, self.P + dP, self.Q + dQ)
            if bounds.contains(*key):
                cand = self.with_arma(*key)
                if cand not in out:
                    out.append(cand)
        return out

    def __str__(self) -> str:
        return self.label


class FitFailureReason(Enum):
    """Why a candidate produced no fitted model."""
    NON_STATIONARY_ROOTS = "NonStationaryRoots"
    NON_INVERTIBLE_MA = "NonInvertibleMA"
    CONVERGENCE_FAILURE = "ConvergenceFailure"


@dataclass(frozen=True)
class FitFailure:
    """A candidate that was dropped from consideration."""

    order: OrderSpec
    reason: FitFailureReason
    message: str = ""


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    A successfully estimated seasonal ARIMA (optionally with regression terms).

    ``results`` is the backend's own results object. It is excluded from
    comparisons and the repr and is only used to produce forecasts.
    """

    order: OrderSpec
    params: pd.Series
    llf: float
    aic: float
    aicc: float
    bic: float
    residuals: np.ndarray
    fitted_values: np.ndarray
    nobs: int
    exog_names: Tuple[str, ...] = ()
    results: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "params", pd.Series(self.params, dtype=float).copy())
        object.__setattr__(self, "residuals", _frozen_array(self.residuals))
        object.__setattr__(self, "fitted_values", _frozen_array(self.fitted_values))
        object.__setattr__(self, "exog_names", tuple(self.exog_names))

    def criterion(self, name: str) -> float:
        key = str(name).lower()
        if key not in CRITERIA:
            raise InputValidationError(f"Unknown information criterion '{name}'; expected one of {CRITERIA}.")
        return float(getattr(self, key))

    @property
    def n_params(self) -> int:
        return int(len(self.params))

    @property
    def has_regressors(self) -> bool:
        return bool(self.exog_names)

    @property
    def label(self) -> str:
        if self.exog_names:
            return f"{self.order.label} + exog[{', '.join(self.exog_names)}]"
        return self.order.label


def z_value(level: Union[int, float]) -> float:
    """Two-sided standard normal quantile for a coverage level given in percent."""
    lvl = float(level)
    if not 0.0 < lvl < 100.0:
        raise InputValidationError(f"Coverage level must be in (0, 100), got {level}.")
    return float(norm.ppf(0.5 + lvl / 200.0))


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """
    Point forecasts for ``h`` periods with prediction intervals.

    ``intervals`` maps a coverage level in percent (e.g. 95) to a
    ``(lower, upper)`` pair of arrays. ``std_errors`` is None once the result
    has been mapped through an inverse transform.
    """

    mean: np.ndarray
    intervals: Dict[int, Tuple[np.ndarray, np.ndarray]]
    std_errors: Optional[np.ndarray] = None
    model_label: str = ""

    def __post_init__(self):
        mean = _frozen_array(self.mean)
        if mean.size < 1:
            raise InputValidationError("A forecast needs a horizon h >= 1.")
        intervals: Dict[int, Tuple[np.ndarray, np.ndarray]] = {}
        for level in sorted(self.intervals):
            lo, hi = self.intervals[level]
            lo, hi = _frozen_array(lo), _frozen_array(hi)
            if lo.size != mean.size or hi.size != mean.size:
                raise InputValidationError(f"Interval bounds for level {level} do not match the horizon.")
            intervals[level] = (lo, hi)
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "intervals", intervals)
        if self.std_errors is not None:
            se = _frozen_array(self.std_errors)
            if se.size != mean.size:
                raise InputValidationError("Standard errors do not match the horizon.")
            object.__setattr__(self, "std_errors", se)

    @classmethod
    def from_standard_errors(cls,
                             mean: Iterable[float],
                             std_errors: Iterable[float],
                             levels: Iterable[int] = DEFAULT_COVERAGE_LEVELS,
                             model_label: str = "") -> "ForecastResult":
        """Build symmetric ``mean +/- z * se`` intervals for each coverage level."""
        mu = np.asarray(mean, dtype=float).ravel()
        se = np.asarray(std_errors, dtype=float).ravel()
        intervals = {}
        for level in sorted(set(int(lvl) for lvl in levels)):
            z = z_value(level)
            intervals[level] = (mu - z * se, mu + z * se)
        return cls(mean=mu, intervals=intervals, std_errors=se, model_label=model_label)

    @property
    def horizon(self) -> int:
        return int(self.mean.size)

    @property
    def levels(self) -> List[int]:
        return sorted(self.intervals)

    def lower(self, level: int) -> np.ndarray:
        return self.intervals[level][0]

    def upper(self, level: int) -> np.ndarray:
        return self.intervals[level][1]

    def width(self, level: int) -> np.ndarray:
        lo, hi = self.intervals[level]
        return hi - lo

    def inverse_transform(self, func: Callable[[np.ndarray], np.ndarray]) -> "ForecastResult":
        """
        Map the forecast through a monotone function (e.g. ``np.exp`` after a
        log transform). Bounds are re-ordered so ``lower <= upper`` also holds
        for decreasing functions.
        """
        intervals = {}
        for level, (lo, hi) in self.intervals.items():
            a = np.asarray(func(np.array(lo)), dtype=float)
            b = np.asarray(func(np.array(hi)), dtype=float)
            intervals[level] = (np.minimum(a, b), np.maximum(a, b))
        mean = np.asarray(func(np.array(self.mean)), dtype=float)
        return ForecastResult(mean=mean, intervals=intervals, std_errors=None, model_label=self.model_label)

    def to_frame(self) -> pd.DataFrame:
        data = {"mean": np.array(self.mean)}
        if self.std_errors is not None:
            data["se"] = np.array(self.std_errors)
        for level in self.levels:
            data[f"lower_{level}"] = np.array(self.lower(level))
            data[f"upper_{level}"] = np.array(self.upper(level))
        return pd.DataFrame(data, index=pd.RangeIndex(1, self.horizon + 1, name="step"))


@dataclass(frozen=True)
class MetricsReport:
    """Forecast accuracy against ``n_points`` actual observations."""

    mae: float
    mape: float
    rmse: float
    me: float
    n_points: int
    n_skipped_mape: int = 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "ME": self.me,
            "MAE": self.mae,
            "RMSE": self.rmse,
            "MAPE": self.mape,
            "n": self.n_points,
            "MAPE_skipped": self.n_skipped_mape,
        }


@dataclass(frozen=True, eq=False)
class VARModel:
    """
    A fitted vector autoregression.

    ``coefs`` has shape ``(p, k, k)``; ``deterministic_params`` has one row
    per deterministic term (constant, trend) and one column per variable.
    """

    variables: Tuple[str, ...]
    lag_order: int
    deterministic: Tuple[str, ...]
    coefs: np.ndarray
    deterministic_params: np.ndarray
    sigma_u: np.ndarray
    eigenvalue_moduli: np.ndarray
    aic: float
    bic: float
    hqic: float
    fpe: float
    nobs: int
    differenced: int = 0
    lag_selection: Optional[pd.DataFrame] = field(default=None, repr=False)
    results: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "deterministic", tuple(self.deterministic))
        object.__setattr__(self, "eigenvalue_moduli", _frozen_array(self.eigenvalue_moduli))
        for name in ("coefs", "deterministic_params", "sigma_u"):
            arr = np.array(getattr(self, name), dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def is_stable(self) -> bool:
        """Stable iff every companion eigenvalue modulus is strictly below one."""
        return bool(np.all(self.eigenvalue_moduli < 1.0))

    @property
    def max_modulus(self) -> float:
        return float(np.max(self.eigenvalue_moduli)) if self.eigenvalue_moduli.size else 0.0

    @property
    def label(self) -> str:
        suffix = f", diff={self.differenced}" if self.differenced else ""
        return f"VAR({self.lag_order}){suffix}"

    def criterion(self, name: str) -> float:
        key = str(name).lower()
        if key not in ("aic", "bic", "hqic", "fpe"):
            raise InputValidationError(f"Unknown VAR criterion '{name}'.")
        return float(getattr(self, key))

    def require_stable(self) -> "VARModel":
        if not self.is_stable:
            raise UnstableVARError(
                f"{self.label} is unstable: max companion eigenvalue modulus {self.max_modulus:.4f} >= 1",
                moduli=self.eigenvalue_moduli,
            )
        return self


@dataclass(frozen=True)
class GrangerResult:
    """F-test of whether lags of ``cause`` help predict ``effect``."""

    cause: str
    effect: str
    statistic: float
    p_value: float
    df: Tuple[int, int]
    significance_level: float = 0.10

    @property
    def rejects_null(self) -> bool:
        return self.p_value < self.significance_level

    @property
    def conclusion(self) -> str:
        if self.rejects_null:
            return (f"Reject H0 at {self.significance_level:.0%}: {self.cause} Granger-causes "
                    f"{self.effect} (p={self.p_value:.4f})")
        return (f"Fails to reject no-Granger-causality of {self.effect} by {self.cause} "
                f"(p={self.p_value:.4f}); this is not evidence of no relationship")


@dataclass(frozen=True, eq=False)
class EvaluationRecord:
    """A model family's out-of-sample result used for comparison."""

    family: str
    model_label: str
    model: Union[FittedModel, VARModel, None]
    forecast: ForecastResult
    actual: np.ndarray
    metrics: MetricsReport
    in_sample: Optional[MetricsReport] = None
    ranking: Optional[pd.DataFrame] = field(default=None, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "actual", _frozen_array(self.actual))

    @property
    def mae(self) -> float:
        return self.metrics.mae

    @property
    def mape(self) -> float:
        return self.metrics.mape
