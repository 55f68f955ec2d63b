# forecast_engine_src/main.py

"""
Automatic seasonal ARIMA order selection and model-family comparison.

Purpose
-------
- Load a target series (and optional regressors) from CSV
- Choose differencing orders by ADF testing and a seasonal autocorrelation check
- Search (p, q, P, Q) stepwise or exhaustively and rank fits by AIC / AICc / BIC
- Compare seasonal ARIMA, regression with ARIMA errors and VAR by holdout MAE,
  with a naive last-value forecast as reference
- Run residual diagnostics on the selected seasonal model and export metrics

Configuration-Driven Workflow
-----------------------------
Defaults live in config/engine_defaults.json; a file passed with --config or
named by FORECAST_ENGINE_CONFIG overrides them, and CLI arguments override both.
"""

import argparse
import logging
import sys
import warnings
from pathlib import Path
from typing import List, Optional

import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from diagnostics import ResidualDiagnostics

from .comparison_utils import ComparisonResult, ModelComparator, default_families
from .config_utils import EngineConfig, get_config_value, initialize_config
from .data_utils import load_series_csv
from .entities import FittedModel
from .exceptions import ForecastEngineError
from .file_utils import resolve_path, write_frame_csv
from .parsing_utils import build_parser, parse_column_list, parse_families, parse_intervals_arg, validate_log_level

logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """
    Configure logging with specified level and warning filters.

    Parameters
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = validate_log_level(log_level)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Configure warnings based on log level
    if level == "DEBUG":
        warnings.resetwarnings()
        warnings.filterwarnings("default")
    else:
        warnings.filterwarnings("ignore", category=ConvergenceWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")


def build_engine_config(args: argparse.Namespace) -> EngineConfig:
    """Configuration file values overlaid with the CLI arguments that were given."""
    manager = initialize_config(Path(args.config) if args.config else None)
    config = EngineConfig.from_config_manager(manager)
    coverage = parse_intervals_arg(args.intervals, default=config.coverage_levels) if args.intervals else None
    return config.with_overrides(
        period=args.period,
        criterion=args.criterion,
        max_p=args.max_p,
        max_q=args.max_q,
        max_P=args.max_P,
        max_Q=args.max_Q,
        max_d=args.max_d,
        max_D=args.max_D,
        search_mode=args.search,
        n_jobs=args.n_jobs,
        coverage_levels=tuple(coverage) if coverage else None,
        target_transform=args.target_transform,
        families=tuple(parse_families(args.families)) if args.families else None,
    )


def _log_summary(result: ComparisonResult) -> None:
    with pd.option_context("display.width", 160, "display.max_columns", 20):
        logger.info("Holdout comparison (%d periods):\n%s", result.holdout, result.summary_frame().round(4))
    for family, reason in result.failures.items():
        logger.warning("Family '%s' did not produce a forecast: %s", family, reason)
    if result.beats_naive:
        logger.info("%s beats the naive forecast (MAE %.4f < %.4f)",
                    result.best.model_label, result.best.mae, result.baseline.mae)
    else:
        logger.warning("%s does not beat the naive forecast (MAE %.4f >= %.4f)",
                       result.best.model_label, result.best.mae, result.baseline.mae)


def run_selection_workflow(args: argparse.Namespace, config: EngineConfig, base_dir: Path) -> ComparisonResult:
    """
    Load the series, compare the configured families and export the results.

    Returns
    -------
    ComparisonResult
    """
    series_path = resolve_path(args.series_csv, base_dir)
    series, regressors = load_series_csv(
        series_path,
        value_column=args.value_column,
        regressor_columns=parse_column_list(args.regressor),
        period=config.period,
    )
    holdout = int(get_config_value("forecast.horizon", config.horizon, args, "holdout"))
    reg_columns: List[str] = list(regressors.columns) if regressors is not None else []
    families = default_families(reg_columns, config.families)
    logger.info("Comparing families %s on %s (n=%d, s=%d, holdout=%d)",
                [f.name for f in families], series.name, len(series), series.period, holdout)

    result = ModelComparator(config).compare(series, holdout, families, regressors)
    _log_summary(result)

    for record in result.records:
        if isinstance(record.model, FittedModel):
            report = ResidualDiagnostics.from_config(config).diagnose(record.model)
            logger.info("Diagnostics for %s: adequate=%s, Ljung-Box p=%.4f, Jarque-Bera p=%.4f",
                        record.model_label, report.overall_adequate,
                        report.ljung_box.p_value, report.jarque_bera.p_value)

    if args.metrics_csv:
        n = result.export_metrics_csv(resolve_path(args.metrics_csv, base_dir))
        logger.info("Appended %d metrics row(s) to %s", n, args.metrics_csv)

    if args.ranking_csv:
        ranked = [r for r in result.records if r.ranking is not None]
        if ranked:
            write_frame_csv(ranked[0].ranking, resolve_path(args.ranking_csv, base_dir))
        else:
            logger.warning("No information-criterion ranking available to write")

    if args.forecast_csv:
        frame = result.best.forecast.to_frame()
        frame.insert(0, "actual", result.best.actual)
        write_frame_csv(frame, resolve_path(args.forecast_csv, base_dir))

    return result


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the model selection application.

    Returns
    -------
    int
        Process exit code: 0 on success, 1 when the workflow failed.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    config = build_engine_config(args)
    try:
        run_selection_workflow(args, config, Path.cwd())
    except ForecastEngineError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
