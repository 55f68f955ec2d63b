# forecast_engine_src/selection_utils.py

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Tuple

import pandas as pd

from .entities import CRITERIA, FittedModel
from .exceptions import InputValidationError, NoCandidateConvergedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SelectionResult:
    """Best model plus the full ascending ranking it was taken from."""

    best: FittedModel
    ranking: Tuple[FittedModel, ...]
    criterion: str

    def ranking_frame(self) -> pd.DataFrame:
        """
        Tabulate the ranking, one row per fitted candidate.

        Returns
        -------
        pd.DataFrame
            Indexed by ``rank`` (1 = best); columns ['model', 'p', 'd', 'q',
            'P', 'D', 'Q', 's', 'n_arma', 'n_params', 'AIC', 'AICc', 'BIC'].
            ``n_params`` counts every estimated parameter (ARMA terms, trend,
            regression coefficients and the innovation variance).
        """
        rows = []
        for rank, m in enumerate(self.ranking, start=1):
            o = m.order
            rows.append({
                "rank": rank,
                "model": m.label,
                "p": o.p, "d": o.d, "q": o.q,
                "P": o.P, "D": o.D, "Q": o.Q, "s": o.s,
                "n_arma": o.n_arma_params,
                "n_params": m.n_params,
                "AIC": m.aic,
                "AICc": m.aicc,
                "BIC": m.bic,
            })
        return pd.DataFrame(rows).set_index("rank")


class InformationCriterionSelector:
    """
    Ranks fitted candidates by AIC, AICc or BIC (lower is better).

    Candidates whose criterion values lie within ``tolerance`` of each other
    are treated as tied; a tie goes to the model with fewer AR/MA terms
    (``p+q+P+Q``). Remaining ties fall back to the raw criterion value and
    then the order tuple so the ranking is fully deterministic.
    """

    def __init__(self, criterion: str = "aic", tolerance: float = 1e-6):
        key = str(criterion).lower()
        if key not in CRITERIA:
            raise InputValidationError(f"Unknown information criterion '{criterion}'; expected one of {CRITERIA}.")
        if tolerance < 0:
            raise InputValidationError("tolerance must be >= 0")
        self.criterion = key
        self.tolerance = tolerance

    def _score(self, model: FittedModel) -> float:
        value = model.criterion(self.criterion)
        return value if math.isfinite(value) else math.inf

    def rank(self, models: Iterable[FittedModel]) -> List[FittedModel]:
        candidates = sorted(models, key=lambda m: (self._score(m), m.order))
        if not candidates:
            return []

        # group values that chain within tolerance of the group's first member
        groups: List[List[FittedModel]] = []
        for model in candidates:
            if groups and abs(self._score(model) - self._score(groups[-1][0])) <= self.tolerance:
                groups[-1].append(model)
            else:
                groups.append([model])

        ranking: List[FittedModel] = []
        for group in groups:
            ranking.extend(sorted(group, key=lambda m: (m.order.n_arma_params, self._score(m), m.order)))
        return ranking

    def select(self, models: Iterable[FittedModel]) -> SelectionResult:
        """
        Return the best model and the full ranking.

        Raises
        ------
        NoCandidateConvergedError
            If ``models`` is empty.
        """
        ranking = self.rank(models)
        if not ranking:
            raise NoCandidateConvergedError("Model selection failed: no fitted candidates to rank.")
        best = ranking[0]
        logger.info("Selected %s with %s=%.3f (%d candidates ranked)",
                    best.label, self.criterion.upper(), best.criterion(self.criterion), len(ranking))
        return SelectionResult(best=best, ranking=tuple(ranking), criterion=self.criterion)
