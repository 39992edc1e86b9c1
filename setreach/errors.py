"""
Exception hierarchy for setreach.

Every error raised by the package derives from :class:`ReachError` and keeps
the diagnostic context (step index, time, guard id, distance, error estimate)
that was available when it was raised.
"""

from __future__ import annotations

from typing import Any, Optional


class ReachError(Exception):
    """
    Base class for all reachability errors.

    Attributes
    ----------
    step : int or None
        Index of the propagation step that failed
    time : float or None
        Start time of the failing step
    guard_id : int or None
        Guard being intersected when the error occurred
    distance : float or None
        Last signed distance to the guard (pancake search)
    error : Any
        Last abstraction or remainder estimate
    """

    def __init__(
        self,
        message: str,
        *,
        step: Optional[int] = None,
        time: Optional[float] = None,
        guard_id: Optional[int] = None,
        distance: Optional[float] = None,
        error: Any = None,
    ):
        self.step = step
        self.time = time
        self.guard_id = guard_id
        self.distance = distance
        self.error = error
        super().__init__(message)

    @property
    def context(self) -> dict:
        """Non-empty diagnostic fields."""
        fields = {
            "step": self.step,
            "time": self.time,
            "guard_id": self.guard_id,
            "distance": self.distance,
            "error": self.error,
        }
        return {k: v for k, v in fields.items() if v is not None}

    def __str__(self) -> str:
        message = super().__str__()
        if not self.context:
            return message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{message} ({details})"


class ConfigurationError(ReachError, ValueError):
    """Invalid options, dimensions or request fields."""


class UnsupportedGuardError(ConfigurationError):
    """Guard cannot be represented as a constrained hyperplane."""


class TaylorModelDivisionError(ConfigurationError, ZeroDivisionError):
    """Division by a Taylor model or interval whose range contains zero."""


class NumericalError(ReachError, RuntimeError):
    """Base class for fatal numerical failures of a request."""


class ExponentialConvergenceError(NumericalError):
    """Taylor series of the matrix exponential does not converge."""


class AbstractionError(NumericalError):
    """Abstraction error could not be bounded within the allowed refinements."""


class DegenerateSetError(NumericalError):
    """Set operation produced a degenerate (non-finite or empty) set."""


class GuardSearchError(ReachError, RuntimeError):
    """Pancake jump search diverged or ran out of iterations."""
