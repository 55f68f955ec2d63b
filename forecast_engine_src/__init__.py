# forecast_engine_src/__init__.py

"""
Forecast Engine - automatic seasonal ARIMA order selection and evaluation

This package selects differencing and AR/MA orders for seasonal ARIMA models,
ranks candidate fits by information criterion, evaluates forecasts on a
holdout, and compares univariate, regression-with-ARIMA-errors and VAR
models by out-of-sample MAE.

Key Components
--------------
- entities: Immutable value types (TimeSeries, OrderSpec, FittedModel, ForecastResult, ...)
- config_utils: Engine configuration and CLI override support
- stationarity_utils: ADF-based differencing order selection
- order_search: Exhaustive and stepwise candidate order generation
- forecasting_utils: SARIMAX fitting, order search driver and forecasts
- selection_utils: Information-criterion ranking with parsimony tie-breaks
- metrics_utils: Forecast accuracy metrics and naive baselines
- transform_utils: Log transform and inverse-transformed forecasts
- var_utils: Vector autoregression, stability and Granger causality
- comparison_utils: Out-of-sample comparison of model families
- data_utils / file_utils / parsing_utils: CSV input, exports and CLI parsing
- main: Main entry point and workflow orchestration

Usage
-----
    # Command-line usage
    python -m forecast_engine_src.main --series-csv data/sales.csv --period 12

    # Programmatic usage
    from forecast_engine_src import TimeSeries, auto_sarimax, forecast
"""

__version__ = "1.0.0"

from .comparison_utils import ComparisonResult, FamilySpec, ModelComparator
from .config_utils import EngineConfig, get_config_value, initialize_config
from .entities import (
    FitFailure,
    FitFailureReason,
    FittedModel,
    ForecastResult,
    GrangerResult,
    MetricsReport,
    OrderSpec,
    SearchBounds,
    TimeSeries,
    VARModel,
)
from .exceptions import (
    ComparisonError,
    ForecastEngineError,
    InputValidationError,
    NoCandidateConvergedError,
    UnstableVARError,
)
from .forecasting_utils import ModelFitter, SarimaxBackend, auto_sarimax, forecast, search_orders
from .metrics_utils import compute_metrics, evaluate_forecast, mae, mape, naive_forecast
from .order_search import ExhaustiveOrderGrid, SearchState, StepwiseOrderSearch
from .selection_utils import InformationCriterionSelector
from .stationarity_utils import StationarityAnalyzer
from .var_utils import VAREngine

__all__ = [
    "ComparisonError",
    "ComparisonResult",
    "EngineConfig",
    "ExhaustiveOrderGrid",
    "FamilySpec",
    "FitFailure",
    "FitFailureReason",
    "FittedModel",
    "ForecastEngineError",
    "ForecastResult",
    "GrangerResult",
    "InformationCriterionSelector",
    "InputValidationError",
    "MetricsReport",
    "ModelComparator",
    "ModelFitter",
    "NoCandidateConvergedError",
    "OrderSpec",
    "SarimaxBackend",
    "SearchBounds",
    "SearchState",
    "StationarityAnalyzer",
    "StepwiseOrderSearch",
    "TimeSeries",
    "UnstableVARError",
    "VAREngine",
    "VARModel",
    "auto_sarimax",
    "compute_metrics",
    "evaluate_forecast",
    "forecast",
    "get_config_value",
    "initialize_config",
    "mae",
    "mape",
    "naive_forecast",
    "search_orders",
    "__version__",
]
