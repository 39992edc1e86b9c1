"""
Flowpipe container: time-ordered enclosures produced by the propagator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from setreach.errors import ConfigurationError
from setreach.sets.interval import Interval
from setreach.sets.zonotope import as_zonotope


@dataclass(frozen=True)
class TimeInterval:
    """Closed time interval ``[start, end]`` covered by one time-interval set."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, t: float, tol: float = 1e-12) -> bool:
        return self.start - tol <= t <= self.end + tol


@dataclass(frozen=True)
class StepRecord:
    """
    Bookkeeping of one propagation step.

    Attributes
    ----------
    index : int
        Step index (0-based)
    time : float
        Start time of the step
    time_step : float
        Step size that was accepted
    taylor_terms : int
        Terms of the exponential series
    abstraction_order : int
        Abstraction order used (0 for exact linear steps)
    error : float
        Infinity norm of the abstraction error of the step
    zonotope_order : float
        Order of the time-interval set after reduction
    refinements : int
        Rejected attempts before the step was accepted
    step_error : float
        Error measure compared against the adaptive tolerance (0 in fixed mode)
    """

    index: int
    time: float
    time_step: float
    taylor_terms: int
    abstraction_order: int
    error: float
    zonotope_order: float
    refinements: int = 0
    step_error: float = 0.0


@dataclass
class Flowpipe:
    """
    Sequence of time-interval and time-point enclosures.

    Entries are only ever appended; ``time_interval[k]`` encloses all states
    for ``t`` in ``intervals[k]`` and ``time_point[k]`` encloses the states at
    ``intervals[k].end``.
    """

    initial_set: Any
    time_interval: List[Any] = field(default_factory=list)
    time_point: List[Any] = field(default_factory=list)
    intervals: List[TimeInterval] = field(default_factory=list)
    steps: List[StepRecord] = field(default_factory=list)
    violated: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def append(self, ti_set, tp_set, interval: TimeInterval, record: StepRecord) -> None:
        if self.intervals and interval.start < self.intervals[-1].end - 1e-12:
            raise ConfigurationError("Flowpipe entries must be appended in time order")
        self.time_interval.append(ti_set)
        self.time_point.append(tp_set)
        self.intervals.append(interval)
        self.steps.append(record)

    def __len__(self) -> int:
        return len(self.time_interval)

    @property
    def final_set(self):
        return self.time_point[-1] if self.time_point else self.initial_set

    @property
    def final_time(self) -> float:
        return self.intervals[-1].end if self.intervals else 0.0

    @property
    def time_steps(self) -> np.ndarray:
        return np.array([rec.time_step for rec in self.steps])

    def sets_at(self, t: float) -> List[Any]:
        """Time-interval sets whose interval covers ``t``."""
        return [S for S, iv in zip(self.time_interval, self.intervals) if iv.contains(t)]

    def contains(self, point, t: Optional[float] = None, tol: float = 1e-7) -> bool:
        """
        True if ``point`` lies in a time-interval set (covering ``t`` when given).
        """
        candidates = self.time_interval if t is None else self.sets_at(t)
        return any(as_zonotope(S).contains(point, tol) for S in candidates)

    def interval_hull(self) -> Interval:
        """Interval hull of the whole flowpipe."""
        hull = as_zonotope(self.time_interval[0]).interval()
        for S in self.time_interval[1:]:
            hull = hull.hull(as_zonotope(S).interval())
        return hull

    def summary(self) -> Dict[str, Any]:
        final = as_zonotope(self.final_set).interval()
        return {
            "steps": len(self),
            "final_time": self.final_time,
            "violated": self.violated,
            "final_inf": final.inf.tolist(),
            "final_sup": final.sup.tolist(),
            "max_error": max((rec.error for rec in self.steps), default=0.0),
        }
