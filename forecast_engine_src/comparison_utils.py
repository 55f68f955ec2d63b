# forecast_engine_src/comparison_utils.py

"""
Out-of-sample comparison of model families.

Each family (seasonal ARIMA, regression with ARIMA errors, VAR) is fit on the
same training prefix and scored on the same holdout. The family with the
lowest holdout MAE wins; a naive last-value forecast is evaluated alongside as
a reference point but never competes.
"""

import logging
import math
import uuid
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config_utils import EngineConfig
from .entities import EvaluationRecord, ForecastResult, TimeSeries
from .exceptions import ComparisonError, ForecastEngineError, InputValidationError
from .file_utils import append_metrics_csv_rows
from .forecasting_utils import ModelFitter, auto_sarimax, forecast
from .metrics_utils import evaluate_forecast, in_sample_metrics, naive_forecast, seasonal_naive_forecast, theil_u2
from .stationarity_utils import StationarityAnalyzer
from .transform_utils import apply_target_transform, inverse_values
from .var_utils import VAREngine

logger = logging.getLogger(__name__)

FAMILY_KINDS = ("sarima", "sarimax", "var")


@dataclass(frozen=True)
class FamilySpec:
    """
    One competitor in a comparison.

    ``regressors`` names columns of the regressor frame passed to
    ``ModelComparator.compare``; "sarimax" uses them as exogenous regressors
    (their holdout values are treated as known), "var" models them jointly
    with the target. "sarima" ignores them.
    """

    name: str
    kind: str
    regressors: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.kind not in FAMILY_KINDS:
            raise InputValidationError(f"Unknown model family kind '{self.kind}'; expected one of {FAMILY_KINDS}")
        object.__setattr__(self, "regressors", tuple(self.regressors))
        if self.kind in ("sarimax", "var") and not self.regressors:
            raise InputValidationError(f"Family '{self.name}' ({self.kind}) needs at least one regressor column")


def default_families(regressors: Sequence[str], kinds: Sequence[str] = FAMILY_KINDS) -> List[FamilySpec]:
    """One FamilySpec per kind; kinds needing regressors are skipped when there are none."""
    families = []
    for kind in kinds:
        if kind != "sarima" and not regressors:
            logger.info("Skipping family '%s': no regressor columns available", kind)
            continue
        families.append(FamilySpec(name=kind, kind=kind, regressors=() if kind == "sarima" else tuple(regressors)))
    return families


def _evaluate_family(family: FamilySpec,
                     train: TimeSeries,
                     test: TimeSeries,
                     reg_train: Optional[pd.DataFrame],
                     reg_test: Optional[pd.DataFrame],
                     config: EngineConfig) -> EvaluationRecord:
    # Module-level so it can be pickled into worker processes
    horizon = len(test)
    levels = config.coverage_levels
    target, inverse = apply_target_transform(train, config.target_transform)

    if family.kind == "var":
        if target.name in reg_train.columns:
            raise InputValidationError(f"Regressor column '{target.name}' clashes with the target name")
        frame = pd.concat(
            [target.to_pandas().reset_index(drop=True), reg_train.reset_index(drop=True)], axis=1
        )
        d = StationarityAnalyzer.from_config(config).analyze(target).d
        engine = VAREngine.from_config(config)
        model = engine.fit(frame, difference=d)
        result = engine.forecast(model, horizon, target=target.name, levels=levels, history=frame)
        if inverse is not None:
            result = inverse(result)
        return EvaluationRecord(
            family=family.name,
            model_label=model.label,
            model=model,
            forecast=result,
            actual=test.values,
            metrics=evaluate_forecast(result, test.values),
        )

    fitter = ModelFitter.from_config(config)
    exog_train = reg_train if family.kind == "sarimax" else None
    exog_test = reg_test if family.kind == "sarimax" else None
    auto = auto_sarimax(target, exog_train, config, fitter)
    best = auto.best
    result = forecast(best, horizon, exog_test, levels=levels)
    if inverse is not None:
        result = inverse(result)
    return EvaluationRecord(
        family=family.name,
        model_label=best.label,
        model=best,
        forecast=result,
        actual=test.values,
        metrics=evaluate_forecast(result, test.values),
        in_sample=in_sample_metrics(best, train, inverse_values(config.target_transform)),
        ranking=auto.selection.ranking_frame(),
    )


def _baseline_record(family: str, label: str, values: np.ndarray, test: TimeSeries) -> EvaluationRecord:
    """Reference forecast scored on the holdout; it has no model and no intervals."""
    fc = ForecastResult.from_standard_errors(values, np.zeros(len(test)), levels=(), model_label=label)
    return EvaluationRecord(
        family=family,
        model_label=label,
        model=None,
        forecast=fc,
        actual=test.values,
        metrics=evaluate_forecast(fc, test.values),
    )


@dataclass(frozen=True, eq=False)
class ComparisonResult:
    """Per-family holdout evaluation and the winner."""

    best: EvaluationRecord
    records: Tuple[EvaluationRecord, ...]
    failures: Dict[str, str]
    baseline: EvaluationRecord
    holdout: int
    series_name: str = "y"
    seasonal_baseline: Optional[EvaluationRecord] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def beats_naive(self) -> bool:
        return self.best.mae < self.baseline.mae

    def summary_frame(self) -> pd.DataFrame:
        """
        Tabulate every record plus the naive baselines.

        Returns
        -------
        pd.DataFrame
            Indexed by family; columns model, MAE, MAPE, RMSE, ME, U2,
            MAPE_skipped, in_sample_MAE, in_sample_MAPE, is_best. U2 is
            Theil's RMSE ratio against the naive last-value forecast.
        """
        baselines = [self.baseline] + ([self.seasonal_baseline] if self.seasonal_baseline else [])
        rows = []
        for rec in list(self.records) + baselines:
            rows.append({
                "family": rec.family,
                "model": rec.model_label,
                "MAE": rec.metrics.mae,
                "MAPE": rec.metrics.mape,
                "RMSE": rec.metrics.rmse,
                "ME": rec.metrics.me,
                "U2": theil_u2(rec.actual, rec.forecast.mean, self.baseline.forecast.mean),
                "MAPE_skipped": rec.metrics.n_skipped_mape,
                "in_sample_MAE": rec.in_sample.mae if rec.in_sample else float("nan"),
                "in_sample_MAPE": rec.in_sample.mape if rec.in_sample else float("nan"),
                "is_best": rec is self.best,
            })
        return pd.DataFrame(rows).set_index("family")

    def export_metrics_csv(self, csv_path: Path) -> int:
        """Append one row per record (baselines included) to ``csv_path``."""
        rows = []
        for family, row in self.summary_frame().iterrows():
            rows.append({
                "run_id": self.run_id,
                "series": self.series_name,
                "family": family,
                "model": row["model"],
                "is_best": bool(row["is_best"]),
                "holdout": self.holdout,
                "ME": row["ME"],
                "MAE": row["MAE"],
                "RMSE": row["RMSE"],
                "MAPE": row["MAPE"],
                "U2": row["U2"],
                "MAPE_skipped": row["MAPE_skipped"],
                "in_sample_MAE": row["in_sample_MAE"],
                "in_sample_MAPE": row["in_sample_MAPE"],
            })
        return append_metrics_csv_rows(csv_path, rows)


class ModelComparator:
    """
    Fits each family on the training prefix and picks the lowest holdout MAE.

    Ties go to the family listed first. A family that raises an engine error
    (no candidate converged, unstable VAR, bad input) is recorded in
    ``failures`` and skipped; only when every family fails is a
    ``ComparisonError`` raised.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def _split_regressors(self, regressors: Optional[pd.DataFrame], columns: Sequence[str],
                          n_train: int, n_total: int) -> Tuple[Optional[pd.DataFrame], Optional[pd.DataFrame]]:
        if not columns:
            return None, None
        if regressors is None:
            raise InputValidationError(f"Regressor columns {list(columns)} requested but no regressors given")
        missing = [c for c in columns if c not in regressors.columns]
        if missing:
            raise InputValidationError(f"Unknown regressor column(s): {missing}")
        if len(regressors) != n_total:
            raise InputValidationError(
                f"Regressors must have the same length as the series ({len(regressors)} != {n_total})"
            )
        frame = regressors[list(columns)].reset_index(drop=True).astype(float)
        return frame.iloc[:n_train].reset_index(drop=True), frame.iloc[n_train:].reset_index(drop=True)

    def compare(self, series: TimeSeries, holdout: int,
                families: Optional[Sequence[FamilySpec]] = None,
                regressors: Optional[pd.DataFrame] = None) -> ComparisonResult:
        """
        Evaluate every family on the last ``holdout`` observations.

        Parameters
        ----------
        series : TimeSeries
            Full target series; the last ``holdout`` points are held out.
        holdout : int
            Holdout length (also the forecast horizon).
        families : Sequence[FamilySpec], optional
            Competitors; a single "sarima" family when omitted.
        regressors : pd.DataFrame, optional
            Covariates aligned with ``series`` over the full sample.

        Returns
        -------
        ComparisonResult

        Raises
        ------
        ComparisonError
            If every family failed.
        InputValidationError
            If the holdout or the family list is malformed.
        """
        families = list(families or [FamilySpec("sarima", "sarima")])
        names = [f.name for f in families]
        if len(set(names)) != len(names):
            raise InputValidationError(f"Family names must be unique, got {names}")
        train, test = series.split(holdout)

        jobs = []
        for family in families:
            reg_train, reg_test = self._split_regressors(regressors, family.regressors, len(train), len(series))
            jobs.append((family, train, test, reg_train, reg_test, self.config))

        outcomes: List[Tuple[FamilySpec, Optional[EvaluationRecord], Optional[str]]] = []
        n_jobs = max(1, int(self.config.comparison_n_jobs))
        if n_jobs > 1 and len(jobs) > 1:
            with ProcessPoolExecutor(max_workers=min(n_jobs, len(jobs))) as pool:
                futures = [pool.submit(_evaluate_family, *job) for job in jobs]
                for job, future in zip(jobs, futures):
                    outcomes.append(self._collect(job[0], future.result))
        else:
            for job in jobs:
                outcomes.append(self._collect(job[0], lambda job=job: _evaluate_family(*job)))

        records = [rec for _, rec, _ in outcomes if rec is not None]
        failures = {fam.name: err for fam, _, err in outcomes if err is not None}
        if not records:
            raise ComparisonError(f"Every model family failed: {failures}", failures=failures)

        # lowest MAE, first-listed family on ties; NaN never wins
        best = min(records, key=lambda r: (r.mae if math.isfinite(r.mae) else math.inf, names.index(r.family)))
        baseline = _baseline_record("naive", "Naive(last value)", naive_forecast(train, holdout), test)
        seasonal_baseline = None
        if series.period > 1 and len(train) >= series.period:
            seasonal_baseline = _baseline_record(
                "seasonal_naive", f"SeasonalNaive[{series.period}]",
                seasonal_naive_forecast(train, holdout, series.period), test,
            )
        logger.info("Best family: %s (%s) with holdout MAE %.4f; naive MAE %.4f",
                    best.family, best.model_label, best.mae, baseline.mae)
        return ComparisonResult(
            best=best,
            records=tuple(records),
            failures=failures,
            baseline=baseline,
            holdout=holdout,
            series_name=series.name,
            seasonal_baseline=seasonal_baseline,
        )

    @staticmethod
    def _collect(family: FamilySpec, run) -> Tuple[FamilySpec, Optional[EvaluationRecord], Optional[str]]:
        try:
            record = run()
        except (ForecastEngineError, ValueError, np.linalg.LinAlgError) as e:
            logger.error("Family '%s' failed: %s: %s", family.name, type(e).__name__, e)
            return family, None, f"{type(e).__name__}: {e}"
        logger.info("Family '%s': %s holdout MAE=%.4f MAPE=%.4f",
                    family.name, record.model_label, record.mae, record.mape)
        return family, record, None
