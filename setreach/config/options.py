"""
Reachability options.

Options are validated once, when they are constructed, and are immutable
afterwards; use :func:`dataclasses.replace` (or :meth:`ReachOptions.replace`)
to derive variants. Unknown keys in dictionaries are rejected.

Example YAML block (see :mod:`setreach.config.request`)::

    options:
      t_final: 8.0
      alg: lin-adaptive
      zonotope_order: 50
      adaptive:
        error_tolerance: 0.01
        min_time_step: 1.0e-5
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from setreach.errors import ConfigurationError

ALGORITHMS = ("lin", "lin-adaptive", "poly")
REMAINDER_METHODS = ("interval", "taylor_model")


def _reject_unknown(cls, data: Dict[str, Any]) -> None:
    known = {f.name for f in dataclasses.fields(cls) if f.init}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} field(s): {unknown}. Valid fields: {sorted(known)}")


@dataclass(frozen=True)
class AdaptiveOptions:
    """
    Settings of the 'lin-adaptive' algorithm.

    Attributes
    ----------
    error_tolerance : float
        Per-step bound (infinity norm) on the effect of the abstraction
        remainder on the reachable set
    min_time_step : float
        Smallest admissible step size
    max_time_step : float or None
        Largest step size (None: no bound besides the horizon)
    shrink_factor : float
        Step size factor applied when the error budget is exceeded
    growth_factor : float
        Step size factor applied after an accepted step
    max_refinements : int
        Refinement attempts per step before giving up
    min_abstraction_order : int
        Abstraction order the search starts from
    max_abstraction_order : int
        Ceiling of the abstraction order
    min_taylor_terms : int
        Smallest number of exponential Taylor terms
    max_taylor_terms : int
        Ceiling of the exponential Taylor terms
    """

    error_tolerance: float = 0.05
    min_time_step: float = 1e-6
    max_time_step: Optional[float] = None
    shrink_factor: float = 0.5
    growth_factor: float = 1.25
    max_refinements: int = 20
    min_abstraction_order: int = 2
    max_abstraction_order: int = 3
    min_taylor_terms: int = 4
    max_taylor_terms: int = 20

    def __post_init__(self):
        if not self.error_tolerance > 0:
            raise ConfigurationError(f"error_tolerance must be positive, got {self.error_tolerance}")
        if not self.min_time_step > 0:
            raise ConfigurationError(f"min_time_step must be positive, got {self.min_time_step}")
        if self.max_time_step is not None and self.max_time_step < self.min_time_step:
            raise ConfigurationError("max_time_step must not be smaller than min_time_step")
        if not 0 < self.shrink_factor < 1:
            raise ConfigurationError(f"shrink_factor must lie in (0, 1), got {self.shrink_factor}")
        if self.growth_factor < 1:
            raise ConfigurationError(f"growth_factor must be >= 1, got {self.growth_factor}")
        if self.max_refinements < 1:
            raise ConfigurationError(f"max_refinements must be >= 1, got {self.max_refinements}")
        if not 2 <= self.min_abstraction_order <= self.max_abstraction_order <= 3:
            raise ConfigurationError("abstraction orders must satisfy 2 <= min <= max <= 3")
        if not 1 <= self.min_taylor_terms <= self.max_taylor_terms:
            raise ConfigurationError("taylor terms must satisfy 1 <= min <= max")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AdaptiveOptions":
        data = dict(data or {})
        _reject_unknown(cls, data)
        return cls(**data)


@dataclass(frozen=True)
class ReachOptions:
    """
    Options of a reachability request.

    Attributes
    ----------
    t_final : float
        Time horizon (required, positive)
    alg : str
        "lin", "lin-adaptive" or "poly"
    time_step : float or None
        Fixed step size; initial step in adaptive mode. Defaults to t_final / 100
    taylor_terms : int
        Terms of the matrix exponential Taylor series
    zonotope_order : float
        Reduced sets keep at most zonotope_order * n generators
    abstraction_order : int
        Order of the Lagrange remainder of the linearization (2 or 3)
    intermediate_order : float
        Reduction order applied before the abstraction error is evaluated
    error_order : float
        Reduction order applied before the quadratic map (order 3)
    max_error : float
        Fixed-step bound on the abstraction error; exceeding it is fatal
    max_abstraction_iterations : int
        Bound on the abstraction error fixed-point iterations per step
    remainder_method : str
        "interval" or "taylor_model" range bounding of derivatives
    taylor_model_order : int
        Truncation order of Taylor models used for range bounding
    adaptive : AdaptiveOptions
        Settings of the adaptive algorithm
    """

    t_final: float
    alg: str = "lin"
    time_step: Optional[float] = None
    taylor_terms: int = 10
    zonotope_order: float = 50
    abstraction_order: int = 2
    intermediate_order: float = 50
    error_order: float = 5
    max_error: float = math.inf
    max_abstraction_iterations: int = 20
    remainder_method: str = "interval"
    taylor_model_order: int = 3
    adaptive: AdaptiveOptions = field(default_factory=AdaptiveOptions)

    def __post_init__(self):
        if not isinstance(self.t_final, (int, float)) or not self.t_final > 0:
            raise ConfigurationError(f"t_final must be positive, got {self.t_final}")
        if self.alg not in ALGORITHMS:
            raise ConfigurationError(f"Unknown algorithm: {self.alg}. Valid: {ALGORITHMS}")
        if self.time_step is None:
            object.__setattr__(self, "time_step", self.t_final / 100.0)
        if not self.time_step > 0:
            raise ConfigurationError(f"time_step must be positive, got {self.time_step}")
        if self.taylor_terms < 1:
            raise ConfigurationError(f"taylor_terms must be >= 1, got {self.taylor_terms}")
        for name in ("zonotope_order", "intermediate_order", "error_order"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.abstraction_order not in (2, 3):
            raise ConfigurationError(f"abstraction_order must be 2 or 3, got {self.abstraction_order}")
        if not self.max_error > 0:
            raise ConfigurationError(f"max_error must be positive, got {self.max_error}")
        if self.max_abstraction_iterations < 1:
            raise ConfigurationError("max_abstraction_iterations must be >= 1")
        if self.remainder_method not in REMAINDER_METHODS:
            raise ConfigurationError(
                f"Unknown remainder method: {self.remainder_method}. Valid: {REMAINDER_METHODS}"
            )
        if self.taylor_model_order < 1:
            raise ConfigurationError("taylor_model_order must be >= 1")
        if isinstance(self.adaptive, dict):
            object.__setattr__(self, "adaptive", AdaptiveOptions.from_dict(self.adaptive))
        if not isinstance(self.adaptive, AdaptiveOptions):
            raise ConfigurationError("adaptive must be an AdaptiveOptions instance or a mapping")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReachOptions":
        """Create options from a parsed mapping; unknown keys raise ConfigurationError."""
        data = dict(data or {})
        _reject_unknown(cls, data)
        if "t_final" not in data:
            raise ConfigurationError("Missing required option: t_final")
        if "adaptive" in data:
            data["adaptive"] = AdaptiveOptions.from_dict(data["adaptive"])
        return cls(**data)

    @classmethod
    def nonlinear_defaults(cls, t_final: float, **overrides) -> "ReachOptions":
        """
        Options for nonlinear reachability of a system derived from linear
        dynamics (e.g. the time-scaled system of a guard intersection).
        """
        settings = dict(
            t_final=t_final,
            alg="lin",
            abstraction_order=3,
            error_order=5,
            intermediate_order=50,
            zonotope_order=50,
            taylor_terms=10,
            time_step=0.01,
        )
        settings.update(overrides)
        return cls(**settings)

    def replace(self, **changes) -> "ReachOptions":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)
