"""CSV loading, metrics export and CLI argument parsing."""

import argparse

import pandas as pd
import pytest

from forecast_engine_src.data_utils import load_series_csv, synthetic_seasonal_series
from forecast_engine_src.exceptions import InputValidationError
from forecast_engine_src.file_utils import METRICS_HEADER, append_metrics_csv_rows, resolve_path, safe_read_csv
from forecast_engine_src.parsing_utils import (
    build_parser,
    parse_column_list,
    parse_families,
    parse_intervals_arg,
    validate_criterion,
)


def _csv(tmp_path, rows, name="series.csv"):
    path = tmp_path / name
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


def test_load_series_csv_sorts_and_splits_regressors(tmp_path):
    path = _csv(tmp_path, {
        "date": ["2020-03-01", "2020-01-01", "2020-02-01"],
        "value": [3.0, 1.0, 2.0],
        "price": [30.0, 10.0, 20.0],
    })
    series, regs = load_series_csv(path, period=12)
    assert series.values.tolist() == [1.0, 2.0, 3.0]
    assert series.name == "value"
    assert series.period == 12
    assert regs["price"].tolist() == [10.0, 20.0, 30.0]

    series, regs = load_series_csv(path, regressor_columns=[])
    assert regs is None


def test_load_series_csv_drops_unparseable_rows(tmp_path):
    path = _csv(tmp_path, {"date": ["2020-01-01", "bad", "2020-03-01"], "value": [1.0, 2.0, "x"]})
    series, _ = load_series_csv(path)
    assert len(series) == 1


def test_load_series_csv_errors(tmp_path):
    with pytest.raises(InputValidationError):
        load_series_csv(tmp_path / "nope.csv")
    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(InputValidationError):
        load_series_csv(empty)
    with pytest.raises(InputValidationError):
        load_series_csv(_csv(tmp_path, {"date": ["2020-01-01"], "y": [1.0]}, "a.csv"))
    with pytest.raises(InputValidationError):
        load_series_csv(_csv(tmp_path, {"date": ["2020-01-01", "2020-01-01"], "value": [1.0, 2.0]}, "b.csv"))
    with pytest.raises(InputValidationError):
        load_series_csv(_csv(tmp_path, {"date": ["2020-01-01"], "value": [1.0]}, "c.csv"),
                        regressor_columns=["price"])


def test_synthetic_series_is_seeded():
    a = synthetic_seasonal_series([1.0, 2.0, 3.0], 30, noise_sd=1.0, seed=3)
    b = synthetic_seasonal_series([1.0, 2.0, 3.0], 30, noise_sd=1.0, seed=3)
    assert a.values.tolist() == b.values.tolist()
    with pytest.raises(InputValidationError):
        synthetic_seasonal_series([], 10)


def test_append_metrics_writes_header_once(tmp_path):
    path = tmp_path / "nested" / "metrics.csv"
    assert append_metrics_csv_rows(path, [{"family": "sarima", "MAE": 1.0}]) == 1
    assert append_metrics_csv_rows(path, [{"family": "var", "MAE": 2.0, "extra": 5}]) == 1
    frame = safe_read_csv(path)
    assert list(frame.columns) == METRICS_HEADER
    assert frame["family"].tolist() == ["sarima", "var"]
    assert append_metrics_csv_rows(None, [{"MAE": 1.0}]) == 0


def test_safe_read_csv_missing_and_empty(tmp_path):
    assert safe_read_csv(tmp_path / "none.csv") is None
    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    assert safe_read_csv(empty) is None


def test_resolve_path(tmp_path):
    assert resolve_path("data/x.csv", tmp_path) == tmp_path / "data" / "x.csv"
    assert resolve_path(str(tmp_path / "abs.csv"), tmp_path / "other") == tmp_path / "abs.csv"


def test_parse_intervals():
    assert parse_intervals_arg("95,68,95") == [68, 95]
    assert parse_intervals_arg(None) == [68, 95, 99]
    assert parse_intervals_arg("0,150") == [68, 95, 99]
    with pytest.raises(argparse.ArgumentTypeError):
        parse_intervals_arg("a,b")


def test_parse_families_and_columns():
    assert parse_families("SARIMA, var, var") == ["sarima", "var"]
    with pytest.raises(argparse.ArgumentTypeError):
        parse_families("sarima,lstm")
    assert parse_column_list("a, b,,c") == ["a", "b", "c"]
    assert parse_column_list("") is None


def test_parser_flags():
    args = build_parser().parse_args(["--series-csv", "s.csv", "--max-P", "0", "--criterion", "BIC",
                                      "--search", "exhaustive"])
    assert args.max_P == 0
    assert args.max_p is None
    assert args.criterion == "bic"
    assert args.search == "exhaustive"
    assert args.log_level == "INFO"
    with pytest.raises(argparse.ArgumentTypeError):
        validate_criterion("hqic")
