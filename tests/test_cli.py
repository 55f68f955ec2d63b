"""Command-line workflow: CSV in, comparison, metrics/ranking/forecast CSVs out."""

import numpy as np
import pandas as pd

import forecast_engine_src.config_utils as cfg
from config.manager import ENV_VAR
from forecast_engine_src.main import main


def _write_series(path, n=60, seed=11):
    rng = np.random.default_rng(seed)
    price = 20.0 + np.cumsum(rng.normal(size=n))
    value = 5.0 + 2.0 * price + rng.normal(scale=0.5, size=n)
    pd.DataFrame({
        "date": pd.date_range("2015-01-01", periods=n, freq="MS").strftime("%Y-%m-%d"),
        "value": value,
        "price": price,
    }).to_csv(path, index=False)
    return path


def _base_args(series_csv):
    return [
        "--series-csv", str(series_csv),
        "--period", "1",
        "--holdout", "6",
        "--max-p", "1", "--max-q", "1", "--max-P", "0", "--max-Q", "0",
        "--search", "exhaustive",
        "--log-level", "WARNING",
    ]


def test_main_writes_metrics_ranking_and_forecast(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    monkeypatch.setattr(cfg, "config_manager", None)
    series_csv = _write_series(tmp_path / "series.csv")
    metrics_csv = tmp_path / "out" / "metrics.csv"
    ranking_csv = tmp_path / "out" / "ranking.csv"
    forecast_csv = tmp_path / "out" / "forecast.csv"

    code = main(_base_args(series_csv) + [
        "--families", "sarima,sarimax",
        "--intervals", "80,95",
        "--metrics-csv", str(metrics_csv),
        "--ranking-csv", str(ranking_csv),
        "--forecast-csv", str(forecast_csv),
    ])
    assert code == 0

    metrics = pd.read_csv(metrics_csv)
    assert set(metrics["family"]) == {"sarima", "sarimax", "naive"}
    assert metrics["is_best"].sum() == 1
    assert (metrics["holdout"] == 6).all()
    assert "U2" in metrics.columns

    ranking = pd.read_csv(ranking_csv)
    assert 1 <= len(ranking) <= 4
    assert ranking["rank"].tolist() == list(range(1, len(ranking) + 1))

    fc = pd.read_csv(forecast_csv)
    assert len(fc) == 6
    for col in ("actual", "mean", "lower_80", "upper_80", "lower_95", "upper_95"):
        assert col in fc.columns


def test_main_returns_error_code_for_missing_file(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)
    monkeypatch.setattr(cfg, "config_manager", None)
    assert main(_base_args(tmp_path / "missing.csv")) == 1
