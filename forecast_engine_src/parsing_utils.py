# forecast_engine_src/parsing_utils.py

import argparse
import logging
from typing import List, Optional, Sequence

from .comparison_utils import FAMILY_KINDS
from .entities import CRITERIA, DEFAULT_COVERAGE_LEVELS
from .transform_utils import TRANSFORMS

logger = logging.getLogger(__name__)

SEARCH_MODES = ("stepwise", "exhaustive")


def parse_intervals_arg(s: Optional[str], default: Sequence[int] = DEFAULT_COVERAGE_LEVELS) -> List[int]:
    """
    Parse a CLI intervals argument like '68,95,99' into sorted unique integer coverage levels.

    Values outside 1..99 are dropped with a warning; if nothing valid remains
    the default levels are returned.

    Examples
    --------
    >>> parse_intervals_arg("80,95")
    [80, 95]
    >>> parse_intervals_arg("95,68,95")
    [68, 95]
    >>> parse_intervals_arg(None)
    [68, 95, 99]
    """
    if not s or not s.strip():
        return sorted(set(int(v) for v in default))
    try:
        vals = sorted({int(x.strip()) for x in s.split(",") if x.strip() != ""})
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid --intervals value '{s}'; expected integers like '68,95,99'")
    valid = [v for v in vals if 1 <= v < 100]
    if len(valid) < len(vals):
        logger.warning("Ignoring coverage level(s) outside 1..99: %s", sorted(set(vals) - set(valid)))
    return valid or sorted(set(int(v) for v in default))


def parse_families(s: Optional[str], default: Sequence[str] = FAMILY_KINDS) -> List[str]:
    """
    Parse a comma-separated list of model families.

    Examples
    --------
    >>> parse_families("sarima, var")
    ['sarima', 'var']
    """
    txt = s or ",".join(default)
    families = []
    for item in txt.split(","):
        name = item.strip().lower()
        if not name:
            continue
        if name not in FAMILY_KINDS:
            raise argparse.ArgumentTypeError(f"Unknown model family '{name}'. Must be one of: {list(FAMILY_KINDS)}")
        if name not in families:
            families.append(name)
    return families


def parse_column_list(s: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated column list; None or '' means 'not specified'."""
    if not s:
        return None
    return [c.strip() for c in s.split(",") if c.strip()]


def validate_criterion(criterion: str) -> str:
    """
    Validate and normalize an information criterion name.

    >>> validate_criterion("BIC")
    'bic'
    """
    key = criterion.lower()
    if key not in CRITERIA:
        raise argparse.ArgumentTypeError(f"Invalid criterion '{criterion}'. Must be one of: {list(CRITERIA)}")
    return key


def validate_log_level(log_level: str) -> str:
    """
    Validate and normalize logging level specification.

    Raises
    ------
    argparse.ArgumentTypeError
        If the logging level is not supported
    """
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = log_level.upper()
    if level_upper not in valid_levels:
        raise argparse.ArgumentTypeError(f"Invalid log level '{log_level}'. Must be one of: {valid_levels}")
    return level_upper


def build_parser() -> argparse.ArgumentParser:
    """Command-line interface of the model selection tool."""
    parser = argparse.ArgumentParser(
        description="Automatic seasonal ARIMA order selection and out-of-sample model comparison."
    )
    parser.add_argument("--series-csv", type=str, required=True,
                        help="CSV with a 'date' column, the target column and optional regressor columns")
    parser.add_argument("--value-column", type=str, default="value", help="Target column name (default: value)")
    parser.add_argument("--regressor", type=str, default=None,
                        help="Comma-separated regressor columns (default: every other column)")
    parser.add_argument("--period", type=int, default=None, help="Seasonal period s (e.g. 12 monthly, 4 quarterly)")
    parser.add_argument("--holdout", type=int, default=None, help="Holdout length / forecast horizon")
    parser.add_argument("--criterion", type=validate_criterion, default=None, help="aic, aicc or bic")
    parser.add_argument("--max-p", type=int, default=None)
    parser.add_argument("--max-q", type=int, default=None)
    parser.add_argument("--max-P", type=int, default=None)
    parser.add_argument("--max-Q", type=int, default=None)
    parser.add_argument("--max-d", type=int, default=None, help="Bound on non-seasonal differencing")
    parser.add_argument("--max-D", type=int, default=None, help="Bound on seasonal differencing")
    parser.add_argument("--search", choices=SEARCH_MODES, default=None, help="Order search strategy")
    parser.add_argument("--intervals", type=str, default=None, help="Coverage levels, e.g. '68,95,99'")
    parser.add_argument("--target-transform", choices=TRANSFORMS, default=None,
                        help="Fit on the level or the log of the target; forecasts are reported in levels")
    parser.add_argument("--families", type=str, default=None,
                        help=f"Comma-separated model families to compare ({', '.join(FAMILY_KINDS)})")
    parser.add_argument("--n-jobs", type=int, default=None, help="Worker processes for candidate fits")
    parser.add_argument("--metrics-csv", type=str, default=None, help="Append per-family metrics to this CSV")
    parser.add_argument("--ranking-csv", type=str, default=None,
                        help="Write the information-criterion ranking of the sarima family to this CSV")
    parser.add_argument("--forecast-csv", type=str, default=None,
                        help="Write the winning family's forecast and intervals to this CSV")
    parser.add_argument("--log-level", type=validate_log_level, default="INFO")
    parser.add_argument("--config", type=str, default=None, help="JSON configuration file")
    return parser
