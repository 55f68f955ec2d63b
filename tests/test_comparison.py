"""Out-of-sample comparison of model families."""

import numpy as np
import pandas as pd
import pytest

import forecast_engine_src.comparison_utils as cu
from forecast_engine_src.comparison_utils import FamilySpec, ModelComparator, default_families
from forecast_engine_src.config_utils import EngineConfig
from forecast_engine_src.entities import EvaluationRecord, ForecastResult, MetricsReport, TimeSeries
from forecast_engine_src.exceptions import (
    ComparisonError,
    InputValidationError,
    NoCandidateConvergedError,
    UnstableVARError,
)

SMALL = EngineConfig(period=1, max_p=1, max_q=1, max_P=0, max_Q=0, search_mode="exhaustive", var_max_lags=3)


def _dataset(n=100, seed=7):
    rng = np.random.default_rng(seed)
    x = 50.0 + np.cumsum(rng.normal(size=n))
    noise = np.zeros(n)
    e = rng.normal(scale=0.5, size=n)
    for t in range(1, n):
        noise[t] = 0.5 * noise[t - 1] + e[t]
    y = 3.0 + 1.5 * x + noise
    return TimeSeries(y, period=1, name="sales"), pd.DataFrame({"price": x})


def test_family_spec_validation():
    with pytest.raises(InputValidationError):
        FamilySpec("reg", "sarimax")
    with pytest.raises(InputValidationError):
        FamilySpec("x", "prophet")
    spec = FamilySpec("var", "var", regressors=["price"])
    assert spec.regressors == ("price",)


def test_default_families_skip_regressor_kinds_without_regressors():
    assert [f.kind for f in default_families([])] == ["sarima"]
    fams = default_families(["price"])
    assert [f.kind for f in fams] == ["sarima", "sarimax", "var"]
    assert fams[0].regressors == ()


def test_compare_all_families():
    series, regs = _dataset()
    result = ModelComparator(SMALL).compare(series, 10, default_families(["price"]), regs)
    assert {r.family for r in result.records} | set(result.failures) == {"sarima", "sarimax", "var"}
    assert result.records
    finite = [r.mae for r in result.records if np.isfinite(r.mae)]
    assert result.best.mae == min(finite)
    assert result.baseline.family == "naive"
    assert result.holdout == 10
    for rec in result.records:
        assert rec.forecast.horizon == 10
        assert np.allclose(rec.actual, series.values[-10:])

    summary = result.summary_frame()
    assert "naive" in summary.index
    assert summary["is_best"].sum() == 1
    assert list(summary.columns[:3]) == ["model", "MAE", "MAPE"]


def test_regression_family_uses_holdout_regressors():
    series, regs = _dataset()
    result = ModelComparator(SMALL).compare(series, 10, [FamilySpec("reg", "sarimax", ("price",))], regs)
    record = result.records[0]
    assert record.model.exog_names == ("price",)
    # price explains most of the movement, so the regression beats repeating the last value
    assert result.beats_naive


def test_failed_family_is_recorded(monkeypatch):
    def _fail(*args, **kwargs):
        raise NoCandidateConvergedError("forced")

    monkeypatch.setattr(cu, "auto_sarimax", _fail)
    series, regs = _dataset()
    families = [FamilySpec("sarima", "sarima"), FamilySpec("var", "var", ("price",))]
    result = ModelComparator(SMALL).compare(series, 10, families, regs)
    assert "sarima" in result.failures
    assert "NoCandidateConvergedError" in result.failures["sarima"]
    assert result.best.family == "var"


def test_every_family_failing_raises(monkeypatch):
    def _fail(*args, **kwargs):
        raise NoCandidateConvergedError("forced")

    monkeypatch.setattr(cu, "auto_sarimax", _fail)
    series, _ = _dataset()
    with pytest.raises(ComparisonError) as exc:
        ModelComparator(SMALL).compare(series, 10)
    assert set(exc.value.failures) == {"sarima"}


def _fake_record(mae):
    def _evaluate(family, train, test, reg_train, reg_test, config):
        fc = ForecastResult.from_standard_errors(np.zeros(len(test)), np.ones(len(test)), levels=(95,))
        return EvaluationRecord(
            family=family.name,
            model_label=family.name,
            model=None,
            forecast=fc,
            actual=test.values,
            metrics=MetricsReport(mae=mae, mape=1.0, rmse=mae, me=0.0, n_points=len(test)),
        )
    return _evaluate


def test_mae_tie_goes_to_first_listed_family(monkeypatch):
    monkeypatch.setattr(cu, "_evaluate_family", _fake_record(2.0))
    series, _ = _dataset()
    families = [FamilySpec("second", "sarima"), FamilySpec("first", "sarima")]
    result = ModelComparator(SMALL).compare(series, 5, families)
    assert result.best.family == "second"


def test_duplicate_family_names_rejected():
    series, _ = _dataset()
    with pytest.raises(InputValidationError):
        ModelComparator(SMALL).compare(series, 5, [FamilySpec("a", "sarima"), FamilySpec("a", "sarima")])


def test_missing_regressor_column_rejected():
    series, regs = _dataset()
    with pytest.raises(InputValidationError):
        ModelComparator(SMALL).compare(series, 5, [FamilySpec("reg", "sarimax", ("cost",))], regs)


def test_export_metrics_csv(tmp_path):
    series, regs = _dataset()
    result = ModelComparator(SMALL).compare(series, 10, [FamilySpec("sarima", "sarima")], regs)
    path = tmp_path / "out" / "metrics.csv"
    assert result.export_metrics_csv(path) == 2
    assert result.export_metrics_csv(path) == 2
    frame = pd.read_csv(path)
    assert len(frame) == 4
    assert set(frame["family"]) == {"sarima", "naive"}
    assert frame["run_id"].nunique() == 1


def test_log_transform_reports_level_forecasts():
    series, _ = _dataset()
    config = SMALL.with_overrides(target_transform="log")
    result = ModelComparator(config).compare(series, 10, [FamilySpec("sarima", "sarima")])
    record = result.records[0]
    assert record.forecast.std_errors is None
    assert abs(record.forecast.mean[0] - series.values[-11]) < 10.0
    assert record.in_sample.mae < 5.0
    for level in record.forecast.levels:
        assert np.all(record.forecast.lower(level) <= record.forecast.upper(level))


def test_summary_includes_theil_u2():
    series, _ = _dataset()
    result = ModelComparator(SMALL).compare(series, 10)
    summary = result.summary_frame()
    assert summary.loc["naive", "U2"] == pytest.approx(1.0)
    assert "seasonal_naive" not in summary.index


def test_unstable_var_is_recorded_as_typed_failure(monkeypatch):
    def _unstable(self, model, *args, **kwargs):
        raise UnstableVARError("companion root on the unit circle", moduli=np.array([1.01, 0.2]))

    monkeypatch.setattr(cu.VAREngine, "forecast", _unstable)
    series, regs = _dataset()
    families = [FamilySpec("sarima", "sarima"), FamilySpec("var", "var", ("price",))]
    result = ModelComparator(SMALL).compare(series, 10, families, regs)
    assert result.failures["var"].startswith("UnstableVARError")
    assert result.best.family == "sarima"
