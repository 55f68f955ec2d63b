"""Information-criterion ranking and parsimony tie-breaks."""

import numpy as np
import pandas as pd
import pytest

from forecast_engine_src.entities import FittedModel, OrderSpec
from forecast_engine_src.exceptions import InputValidationError, NoCandidateConvergedError
from forecast_engine_src.selection_utils import InformationCriterionSelector


def _model(p, q, aic, bic=None, P=0, Q=0, s=12):
    order = OrderSpec(p, 1, q, P, 0, Q, s)
    return FittedModel(
        order=order,
        params=pd.Series(np.zeros(order.n_arma_params + 1)),
        llf=-aic / 2.0,
        aic=aic,
        aicc=aic + 1.0,
        bic=aic if bic is None else bic,
        residuals=np.zeros(10),
        fitted_values=np.zeros(10),
        nobs=10,
    )


def test_selects_minimum_criterion():
    models = [_model(1, 0, 105.0), _model(2, 1, 98.5), _model(0, 1, 101.0)]
    result = InformationCriterionSelector("aic").select(models)
    assert result.best.order.arma_key == (2, 1, 0, 0)
    assert [m.aic for m in result.ranking] == [98.5, 101.0, 105.0]


def test_criterion_choice_changes_winner():
    models = [_model(3, 2, 90.0, bic=120.0), _model(1, 0, 95.0, bic=100.0)]
    assert InformationCriterionSelector("aic").select(models).best.order.p == 3
    assert InformationCriterionSelector("BIC").select(models).best.order.p == 1


def test_tie_goes_to_fewer_arma_terms():
    models = [_model(2, 2, 100.0), _model(1, 0, 100.0 + 5e-7), _model(1, 1, 100.0)]
    result = InformationCriterionSelector("aic", tolerance=1e-6).select(models)
    assert result.best.order.arma_key == (1, 0, 0, 0)
    assert [m.order.n_arma_params for m in result.ranking] == [1, 2, 4]


def test_ranking_frame_columns():
    result = InformationCriterionSelector().select([_model(1, 0, 10.0), _model(0, 1, 12.0, P=1)])
    frame = result.ranking_frame()
    assert list(frame.index) == [1, 2]
    assert frame.index.name == "rank"
    assert frame.loc[1, "model"] == "SARIMA(1,1,0)(0,0,0)[12]"
    for col in ("p", "d", "q", "P", "D", "Q", "s", "n_arma", "n_params", "AIC", "AICc", "BIC"):
        assert col in frame.columns
    # one ARMA term plus the innovation variance
    assert frame.loc[1, "n_params"] == 2


def test_non_finite_scores_rank_last():
    models = [_model(1, 0, float("nan")), _model(0, 1, 50.0)]
    result = InformationCriterionSelector().select(models)
    assert result.best.order.arma_key == (0, 1, 0, 0)


def test_empty_input_raises():
    with pytest.raises(NoCandidateConvergedError):
        InformationCriterionSelector().select([])


def test_unknown_criterion_rejected():
    with pytest.raises(InputValidationError):
        InformationCriterionSelector("hqic")
