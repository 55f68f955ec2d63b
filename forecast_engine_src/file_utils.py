# forecast_engine_src/file_utils.py

import csv
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

METRICS_HEADER: List[str] = [
    "run_id",
    "series",
    "family",
    "model",
    "is_best",
    "holdout",
    "ME",
    "MAE",
    "RMSE",
    "MAPE",
    "U2",
    "MAPE_skipped",
    "in_sample_MAE",
    "in_sample_MAPE",
]


def ensure_dir(path: Path) -> None:
    """
    Create directory if it doesn't exist, including all parent directories.

    No error is raised if the directory already exists.
    """
    path.mkdir(parents=True, exist_ok=True)


def append_metrics_csv_rows(csv_path: Optional[Path],
                            rows: Iterable[Dict[str, Any]],
                            header: List[str] = METRICS_HEADER) -> int:
    """
    Append metrics rows to a CSV, creating the header on first write.

    Parameters
    ----------
    csv_path : Optional[Path]
        Path to metrics CSV file (None to skip writing)
    rows : Iterable[Dict[str, Any]]
        Row dictionaries; keys outside ``header`` are ignored
    header : List[str]
        Column names for the CSV

    Returns
    -------
    int
        Number of rows written

    Notes
    -----
    - Creates parent directories if they don't exist
    - Writes the header row only if the file doesn't exist or is empty
    """
    if csv_path is None:
        return 0

    ensure_dir(csv_path.parent)
    exists = csv_path.exists() and csv_path.stat().st_size > 0
    written = 0
    with csv_path.open("a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=header, extrasaction="ignore")
        if not exists:
            writer.writeheader()
        for row in rows:
            writer.writerow(row)
            written += 1
    logger.debug("Appended %d metrics row(s) to %s", written, csv_path)
    return written


def write_frame_csv(frame: pd.DataFrame, csv_path: Path, index: bool = True) -> Path:
    """Write a DataFrame to CSV, creating parent directories."""
    ensure_dir(csv_path.parent)
    frame.to_csv(csv_path, index=index)
    logger.info("Wrote %d row(s) to %s", len(frame), csv_path)
    return csv_path


def safe_read_csv(csv_path: Path, **kwargs) -> Optional[pd.DataFrame]:
    """
    Read a CSV file, returning None when it is missing or empty.

    Parse errors propagate to the caller.
    """
    if not csv_path.exists():
        logger.warning("CSV file not found: %s", csv_path)
        return None
    if csv_path.stat().st_size == 0:
        logger.warning("CSV file is empty: %s", csv_path)
        return None
    try:
        df = pd.read_csv(csv_path, **kwargs)
    except pd.errors.EmptyDataError:
        logger.warning("CSV file contains no data: %s", csv_path)
        return None
    if df.empty:
        logger.warning("CSV file contains no data: %s", csv_path)
        return None
    return df


def resolve_path(path_str: str, base_dir: Path) -> Path:
    """
    Resolve a path string relative to a base directory if not absolute.

    Examples
    --------
    >>> resolve_path("data/file.csv", Path("/project"))
    Path("/project/data/file.csv")
    >>> resolve_path("/absolute/path.csv", Path("/project"))
    Path("/absolute/path.csv")
    """
    path = Path(path_str)
    return path if path.is_absolute() else (base_dir / path)
