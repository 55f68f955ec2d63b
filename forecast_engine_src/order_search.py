# forecast_engine_src/order_search.py

"""
Candidate order generation for seasonal ARIMA searches.

Two strategies share the ``(d, D, s)`` decided by the stationarity analysis:

- ``ExhaustiveOrderGrid`` enumerates every ``(p, q, P, Q)`` inside the bounds.
- ``StepwiseOrderSearch`` is a greedy local search that starts from a few seed
  orders and moves to the best neighbour while the information criterion keeps
  improving. It is a small state machine (SEED -> EXPLORING -> CONVERGED or
  EXHAUSTED) that proposes batches of orders and is fed back their scores; it
  never fits a model itself.
"""

import logging
import math
from enum import Enum
from itertools import product
from typing import Dict, Iterator, List, Optional

from .entities import OrderSpec, SearchBounds

logger = logging.getLogger(__name__)

# (p, q, P, Q) seeds: the usual starting set of automatic ARIMA selection
STEPWISE_SEEDS = [(2, 2, 1, 1), (0, 0, 0, 0), (1, 0, 1, 0), (0, 1, 0, 1)]


class SearchState(Enum):
    """States of the stepwise search."""
    SEED = "seed"
    EXPLORING = "exploring"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


class ExhaustiveOrderGrid:
    """
    Lazy, restartable iterable over the full bounded order grid.

    Each call to ``iter()`` starts a fresh enumeration in lexicographic
    ``(p, q, P, Q)`` order.
    """

    def __init__(self, d: int, D: int, s: int, bounds: SearchBounds):
        self.d = d
        self.D = D
        self.s = s if s > 1 else 0
        self.bounds = bounds.for_period(self.s)

    def __iter__(self) -> Iterator[OrderSpec]:
        b = self.bounds
        for p, q, P, Q in product(range(b.max_p + 1), range(b.max_q + 1),
                                  range(b.max_P + 1), range(b.max_Q + 1)):
            yield OrderSpec(p, self.d, q, P, self.D, Q, self.s)

    def __len__(self) -> int:
        b = self.bounds
        return (b.max_p + 1) * (b.max_q + 1) * (b.max_P + 1) * (b.max_Q + 1)


def generate_candidate_orders(d: int, D: int, s: int, bounds: SearchBounds) -> List[OrderSpec]:
    """Materialize the exhaustive grid as a list."""
    return list(ExhaustiveOrderGrid(d, D, s, bounds))


class StepwiseOrderSearch:
    """
    Greedy neighbourhood search over ``(p, q, P, Q)``.

    Usage
    -----
    >>> search = StepwiseOrderSearch(d=1, D=0, s=12, bounds=SearchBounds(3, 3, 1, 1))
    >>> for batch in search:
    ...     for order in batch:
    ...         search.record(order, score_of(order))   # None when the fit failed
    >>> search.state, search.best

    Parameters
    ----------
    d, D, s : int
        Fixed differencing orders and seasonal period.
    bounds : SearchBounds
        Upper bounds on p, q, P, Q.
    max_steps : int, default=94
        Budget on the number of distinct orders proposed.
    tolerance : float, default=1e-6
        Score differences within this tolerance are ties; ties go to the
        order with fewer AR/MA terms.
    """

    def __init__(self, d: int, D: int, s: int, bounds: SearchBounds,
                 max_steps: int = 94, tolerance: float = 1e-6):
        if max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        self.d = d
        self.D = D
        self.s = s if s > 1 else 0
        self.bounds = bounds.for_period(self.s)
        self.max_steps = max_steps
        self.tolerance = tolerance
        self.reset()

    def reset(self) -> None:
        """Return to the SEED state, forgetting every recorded score."""
        self.state = SearchState.SEED
        self.best: Optional[OrderSpec] = None
        self.best_score = math.inf
        self.n_batches = 0
        self._scores: Dict[OrderSpec, Optional[float]] = {}
        self._batch: List[OrderSpec] = []
        self._pending: set = set()
        self._truncated = False

    @property
    def is_finished(self) -> bool:
        return self.state in (SearchState.CONVERGED, SearchState.EXHAUSTED)

    @property
    def n_proposed(self) -> int:
        return len(self._scores)

    @property
    def history(self) -> Dict[OrderSpec, Optional[float]]:
        return dict(self._scores)

    def _order(self, p: int, q: int, P: int, Q: int) -> OrderSpec:
        return OrderSpec(p, self.d, q, P, self.D, Q, self.s)

    def _seeds(self) -> List[OrderSpec]:
        seeds: List[OrderSpec] = []
        for key in STEPWISE_SEEDS:
            cand = self._order(*self.bounds.clip(*key))
            if cand not in seeds:
                seeds.append(cand)
        return seeds

    def _unvisited_neighbours(self) -> List[OrderSpec]:
        if self.best is None:
            return []
        return [o for o in self.best.neighbours(self.bounds) if o not in self._scores]

    def next_batch(self) -> List[OrderSpec]:
        """
        Propose the next orders to fit.

        Returns an empty list once the search has finished. Scores for the
        previous batch must be recorded before a new batch is proposed.
        """
        if self._pending:
            raise RuntimeError(f"{len(self._pending)} order(s) of the current batch have no recorded score")
        if self.is_finished:
            return []

        if self.state == SearchState.SEED:
            batch = self._seeds()
        else:
            batch = self._unvisited_neighbours()

        if not batch:
            self.state = SearchState.CONVERGED
            return []
        budget = self.max_steps - len(self._scores)
        if budget <= 0:
            self.state = SearchState.EXHAUSTED
            return []

        self._truncated = len(batch) > budget
        batch = batch[:budget]
        for order in batch:
            self._scores[order] = None
        self._batch = list(batch)
        self._pending = set(batch)
        logger.debug("Stepwise search (%s): proposing %d order(s)", self.state.value, len(batch))
        return list(batch)

    def record(self, order: OrderSpec, score: Optional[float]) -> None:
        """Feed back the criterion value of a proposed order (None for a failed fit)."""
        if order not in self._pending:
            raise ValueError(f"{order.label} was not proposed in the current batch")
        if score is not None and not math.isfinite(score):
            score = None
        self._scores[order] = score
        self._pending.discard(order)
        if not self._pending:
            self._complete_batch()

    def _is_better(self, order: OrderSpec, score: float) -> bool:
        if self.best is None or score < self.best_score - self.tolerance:
            return True
        return abs(score - self.best_score) <= self.tolerance and order.n_arma_params < self.best.n_arma_params

    def _complete_batch(self) -> None:
        improved = False
        for order in self._batch:
            score = self._scores[order]
            if score is not None and self._is_better(order, score):
                self.best, self.best_score = order, score
                improved = True
        self.n_batches += 1
        self._batch = []

        if self.best is None:
            # every seed failed; there is no incumbent to explore around
            self.state = SearchState.EXHAUSTED
        elif self.state == SearchState.SEED:
            self.state = SearchState.EXPLORING
        elif not improved:
            # a budget-truncated neighbourhood was not fully explored
            self.state = SearchState.EXHAUSTED if self._truncated else SearchState.CONVERGED

        if self.state == SearchState.EXPLORING and len(self._scores) >= self.max_steps:
            self.state = SearchState.EXHAUSTED

        logger.debug("Stepwise batch %d complete: state=%s best=%s score=%.4f",
                     self.n_batches, self.state.value,
                     self.best.label if self.best else None, self.best_score)

    def __iter__(self) -> Iterator[List[OrderSpec]]:
        """Restart the search and yield batches until it finishes."""
        self.reset()
        while True:
            batch = self.next_batch()
            if not batch:
                return
            yield batch
