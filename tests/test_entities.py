"""Value types: construction checks, derived series and interval bookkeeping."""

import numpy as np
import pandas as pd
import pytest

from forecast_engine_src.entities import (
    ForecastResult,
    OrderSpec,
    SearchBounds,
    TimeSeries,
    VARModel,
    z_value,
)
from forecast_engine_src.exceptions import InputValidationError, NoCandidateConvergedError, UnstableVARError


def test_timeseries_is_read_only_copy():
    raw = np.array([1.0, 2.0, 3.0])
    ts = TimeSeries(raw, period=1)
    raw[0] = 99.0
    assert ts.values[0] == 1.0
    with pytest.raises(ValueError):
        ts.values[0] = 5.0


def test_timeseries_rejects_bad_input():
    with pytest.raises(InputValidationError):
        TimeSeries([])
    with pytest.raises(InputValidationError):
        TimeSeries([1.0, np.nan, 3.0])
    with pytest.raises(InputValidationError):
        TimeSeries([1.0, 2.0], period=0)
    with pytest.raises(InputValidationError):
        TimeSeries([1.0, 2.0, 3.0], index=[0, 2, 1])


def test_difference_and_split():
    ts = TimeSeries([1.0, 3.0, 6.0, 10.0, 15.0], period=2)
    d1 = ts.difference()
    assert d1.values.tolist() == [2.0, 3.0, 4.0, 5.0]
    assert d1.index.tolist() == [1, 2, 3, 4]
    assert d1.period == 2
    sd = ts.seasonal_difference()
    assert sd.values.tolist() == [5.0, 7.0, 9.0]

    train, test = ts.split(2)
    assert train.values.tolist() == [1.0, 3.0, 6.0]
    assert test.values.tolist() == [10.0, 15.0]
    with pytest.raises(InputValidationError):
        ts.split(5)


def test_from_pandas_with_date_index_uses_positions():
    idx = pd.date_range("2020-01-01", periods=4, freq="MS")
    ts = TimeSeries.from_pandas(pd.Series([1.0, 2.0, 3.0, 4.0], index=idx, name="sales"), period=12)
    assert ts.name == "sales"
    assert ts.index.tolist() == [0, 1, 2, 3]
    assert ts.period == 12


def test_order_spec_validation_and_label():
    o = OrderSpec(1, 1, 1, 1, 1, 0, 12)
    assert o.label == "SARIMA(1,1,1)(1,1,0)[12]"
    assert o.n_arma_params == 3
    assert OrderSpec(2, 0, 1).label == "SARIMA(2,0,1)"
    # s=1 is the same as no seasonality
    assert OrderSpec(1, 0, 0, s=1).s == 0
    with pytest.raises(InputValidationError):
        OrderSpec(-1, 0, 0)
    with pytest.raises(InputValidationError):
        OrderSpec(0, 0, 0, P=1, s=0)


def test_neighbours_stay_inside_bounds():
    bounds = SearchBounds(2, 2, 1, 1)
    origin = OrderSpec(0, 1, 0, 0, 0, 0, 12)
    nbrs = origin.neighbours(bounds)
    assert OrderSpec(1, 1, 0, 0, 0, 0, 12) in nbrs
    assert OrderSpec(1, 1, 1, 0, 0, 0, 12) in nbrs
    assert OrderSpec(0, 1, 0, 1, 0, 1, 12) in nbrs
    for n in nbrs:
        assert bounds.contains(*n.arma_key)
    assert len(nbrs) == len(set(nbrs))


def test_z_value_matches_normal_quantiles():
    assert z_value(95) == pytest.approx(1.959964, abs=1e-5)
    assert z_value(68) == pytest.approx(0.994458, abs=1e-5)
    with pytest.raises(InputValidationError):
        z_value(100)


def test_forecast_result_intervals_nest():
    fc = ForecastResult.from_standard_errors([10.0, 11.0, 12.0], [1.0, 1.5, 2.0], levels=(95, 68, 99))
    assert fc.levels == [68, 95, 99]
    assert fc.horizon == 3
    assert np.all(fc.lower(99) <= fc.lower(95))
    assert np.all(fc.lower(95) <= fc.lower(68))
    assert np.all(fc.upper(68) <= fc.upper(95))
    assert np.all(fc.width(95) > 0)
    frame = fc.to_frame()
    assert list(frame.columns) == ["mean", "se", "lower_68", "upper_68", "lower_95", "upper_95",
                                   "lower_99", "upper_99"]


def test_forecast_result_rejects_empty_horizon():
    with pytest.raises(InputValidationError):
        ForecastResult.from_standard_errors([], [])


def test_var_model_stability_flag():
    common = dict(
        variables=("a", "b"),
        lag_order=1,
        deterministic=("constant",),
        coefs=np.eye(2).reshape(1, 2, 2),
        deterministic_params=np.zeros((1, 2)),
        sigma_u=np.eye(2),
        aic=0.0, bic=0.0, hqic=0.0, fpe=1.0, nobs=10,
    )
    stable = VARModel(eigenvalue_moduli=[0.5, 0.2], **common)
    assert stable.is_stable
    assert stable.require_stable() is stable

    unstable = VARModel(eigenvalue_moduli=[1.0, 0.3], **common)
    assert not unstable.is_stable
    with pytest.raises(UnstableVARError) as exc:
        unstable.require_stable()
    assert exc.value.moduli == [1.0, 0.3]


def test_engine_errors_accept_numpy_arrays():
    err = UnstableVARError("unstable", moduli=np.array([1.02, 0.4]))
    assert err.moduli == [1.02, 0.4]
    assert UnstableVARError("unstable").moduli == []
    failures = np.array(["a", "b"], dtype=object)
    assert NoCandidateConvergedError("none", failures=failures).failures == ["a", "b"]
