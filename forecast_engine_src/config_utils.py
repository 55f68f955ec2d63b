# forecast_engine_src/config_utils.py

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional, Tuple

from config import ConfigurationError, get_config

from .entities import SearchBounds

logger = logging.getLogger(__name__)

# Initialize the global configuration manager
config_manager = None


def initialize_config(config_path: Optional[Path] = None):
    """
    Initializes the global configuration manager.
    This function loads and validates the project's configuration files. If the configuration
    fails to load, it logs the error and proceeds with default settings.
    """
    global config_manager
    if config_manager is None or config_path is not None:
        try:
            config_manager = get_config(config_path)
            validation_errors = config_manager.validate_configuration()
            if validation_errors:
                logger.warning("Configuration validation warnings: %s", validation_errors)
            logger.debug("Configuration loaded: %s", config_manager.get_configuration_summary())
        except ConfigurationError as e:
            logger.error("Failed to initialize configuration: %s. Using defaults.", e)
            config_manager = None
    return config_manager


def get_config_value(key_path: str, default=None, args=None, cli_param=None):
    """
    Retrieves a configuration value, providing support for command-line overrides.
    The function prioritizes values in the following order:
    1. CLI argument (if provided)
    2. Configuration file
    3. Default value
    """
    # First priority: CLI argument
    if args is not None and cli_param and hasattr(args, cli_param):
        cli_value = getattr(args, cli_param)
        if cli_value is not None:
            return cli_value

    # Second priority: Configuration file
    if config_manager:
        config_value = config_manager.get(key_path, default)
        if config_value is not None:
            return config_value

    # Third priority: Default value
    return default


@dataclass(frozen=True)
class EngineConfig:
    """Settings for one run of the selection engine."""

    # Stationarity analysis
    alpha: float = 0.05
    max_d: int = 2
    max_D: int = 2
    adf_maxlag: Optional[int] = None
    adf_autolag: Optional[str] = "AIC"
    adf_regression: str = "c"
    seasonal_test: str = "acf"
    seasonal_acf_threshold: float = 0.64

    # Order search
    period: int = 12
    max_p: int = 5
    max_q: int = 5
    max_P: int = 2
    max_Q: int = 2
    search_mode: str = "stepwise"
    max_steps: int = 94
    criterion: str = "aic"
    tie_tolerance: float = 1e-6

    # Fitting
    maxiter: int = 200
    method: str = "lbfgs"
    trend: str = "auto"
    fit_timeout: Optional[float] = None
    n_jobs: int = 1

    # Diagnostics
    diagnostics_alpha: float = 0.05
    ljung_box_lags: int = 10
    ljung_box_model_df: Optional[int] = None
    acf_lags: int = 24

    # Forecasting
    horizon: int = 12
    coverage_levels: Tuple[int, ...] = (68, 95, 99)
    target_transform: str = "level"

    # Vector autoregression
    var_max_lags: int = 8
    var_criterion: str = "aic"
    var_deterministic: Tuple[str, ...] = ("constant",)
    granger_significance: float = 0.10

    # Comparison
    families: Tuple[str, ...] = ("sarima", "sarimax", "var")
    comparison_n_jobs: int = 1

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a copy with the given fields replaced; ``None`` values are ignored."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_config_manager(cls, manager: Optional[Any] = None) -> "EngineConfig":
        """Create an EngineConfig from a configuration manager.

        Parameters
        ----------
        manager : ConfigurationManager, optional
            Configuration manager instance; the module-level manager is used
            when omitted, and plain defaults when neither is available.

        Returns
        -------
        EngineConfig
            Configuration populated from the manager's values.
        """
        config = cls()
        manager = manager if manager is not None else config_manager
        if manager is None:
            return config

        def _get(key: str, current: Any) -> Any:
            value = manager.get(key, None)
            return current if value is None else value

        config = replace(
            config,
            alpha=float(_get("stationarity.alpha", config.alpha)),
            max_d=int(_get("stationarity.max_d", config.max_d)),
            max_D=int(_get("stationarity.max_D", config.max_D)),
            adf_maxlag=manager.get("stationarity.adf_maxlag", config.adf_maxlag),
            adf_autolag=manager.get("stationarity.adf_autolag", config.adf_autolag),
            adf_regression=_get("stationarity.adf_regression", config.adf_regression),
            seasonal_test=_get("stationarity.seasonal_test", config.seasonal_test),
            seasonal_acf_threshold=float(_get("stationarity.seasonal_acf_threshold", config.seasonal_acf_threshold)),
            period=int(_get("model.period", config.period)),
            max_p=int(_get("model.search_space.max_p", config.max_p)),
            max_q=int(_get("model.search_space.max_q", config.max_q)),
            max_P=int(_get("model.search_space.max_P", config.max_P)),
            max_Q=int(_get("model.search_space.max_Q", config.max_Q)),
            search_mode=_get("model.search_mode", config.search_mode),
            max_steps=int(_get("model.max_steps", config.max_steps)),
            criterion=str(_get("model.information_criterion", config.criterion)).lower(),
            tie_tolerance=float(_get("model.tie_tolerance", config.tie_tolerance)),
            maxiter=int(_get("model.fitting.maxiter", config.maxiter)),
            method=_get("model.fitting.method", config.method),
            trend=_get("model.fitting.trend", config.trend),
            fit_timeout=manager.get("model.fitting.fit_timeout", config.fit_timeout),
            n_jobs=int(_get("model.fitting.n_jobs", config.n_jobs)),
            diagnostics_alpha=float(_get("diagnostics.significance_level", config.diagnostics_alpha)),
            ljung_box_lags=int(_get("diagnostics.ljung_box_lags", config.ljung_box_lags)),
            ljung_box_model_df=manager.get("diagnostics.ljung_box_model_df", config.ljung_box_model_df),
            acf_lags=int(_get("diagnostics.acf_lags", config.acf_lags)),
            horizon=int(_get("forecast.horizon", config.horizon)),
            coverage_levels=tuple(int(v) for v in _get("forecast.coverage_levels", config.coverage_levels)),
            target_transform=_get("forecast.target_transform", config.target_transform),
            var_max_lags=int(_get("var.max_lags", config.var_max_lags)),
            var_criterion=str(_get("var.information_criterion", config.var_criterion)).lower(),
            var_deterministic=tuple(_get("var.deterministic", config.var_deterministic)),
            granger_significance=float(_get("var.granger_significance", config.granger_significance)),
            families=tuple(_get("comparison.families", config.families)),
            comparison_n_jobs=int(_get("comparison.n_jobs", config.comparison_n_jobs)),
        )
        logger.debug("Loaded engine configuration from config manager")
        return config

    @property
    def search_bounds(self) -> SearchBounds:
        return SearchBounds(self.max_p, self.max_q, self.max_P, self.max_Q)
