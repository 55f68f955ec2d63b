# forecast_engine_src/exceptions.py

"""
Exception hierarchy for the order-selection engine.

Only failures that stop a whole workflow are exceptions. Per-candidate
numerical problems (non-stationary AR roots, non-invertible MA roots,
optimizer non-convergence) are returned as ``FitFailure`` values so the search
can carry on without them.
"""


class ForecastEngineError(Exception):
    """Base class for all engine errors."""


class InputValidationError(ForecastEngineError, ValueError):
    """Malformed input: mismatched lengths, non-positive horizon, bad orders."""


class NoCandidateConvergedError(ForecastEngineError):
    """Every candidate of a search failed to produce a fitted model."""

    def __init__(self, message: str = "No candidate model converged.", failures=None):
        super().__init__(message)
        self.failures = list(failures) if failures is not None else []


class UnstableVARError(ForecastEngineError):
    """A VAR model has a companion eigenvalue on or outside the unit circle."""

    def __init__(self, message: str, moduli=None):
        super().__init__(message)
        self.moduli = [float(m) for m in moduli] if moduli is not None else []


class ComparisonError(ForecastEngineError):
    """Every model family in a comparison failed."""

    def __init__(self, message: str, failures=None):
        super().__init__(message)
        self.failures = dict(failures) if failures is not None else {}
