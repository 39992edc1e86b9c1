"""
Reachability request files.

A request bundles the dynamics, the initial and input sets and the options of
one reachability computation.

Example YAML format:
    request:
      name: van_der_pol
      system:
        type: nonlinear          # or: linear (with A, B, c)
        states: [x, y]
        inputs: [u]
        equations:
          - "y"
          - "mu * (1 - x**2) * y - x + u"
        params:
          mu: 1.0

      initial_set:               # box (inf/sup) or zonotope (center/generators)
        inf: [1.2, 2.3]
        sup: [1.4, 2.5]

      input_set:
        center: [0.0]
        generators: [[0.01]]     # one generator per entry

      unsafe_set:                # optional halfspace c . x <= d
        c: [0.0, -1.0]
        d: -3.0

      options:
        t_final: 1.0
        time_step: 0.01
        alg: lin
        zonotope_order: 20
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import yaml

from setreach.config.options import ReachOptions
from setreach.errors import ConfigurationError
from setreach.sets.halfspace import Halfspace
from setreach.sets.interval import Interval
from setreach.sets.zonotope import Zonotope

SYSTEM_TYPES = ("linear", "nonlinear")


def _check_keys(section: str, data: Dict[str, Any], allowed) -> None:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section '{section}' must be a mapping")
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ConfigurationError(f"Unknown field(s) in '{section}': {unknown}")


@dataclass
class SystemSpec:
    """
    Description of the continuous dynamics.

    Attributes
    ----------
    type : str
        "linear" or "nonlinear"
    A, B, c : list or None
        System matrices (linear systems)
    states, inputs : list[str]
        Variable names (nonlinear systems)
    equations : list[str]
        Right-hand side expressions (nonlinear systems)
    params : dict
        Parameter values substituted into the equations
    """

    type: str = "nonlinear"
    A: Optional[List[List[float]]] = None
    B: Optional[List[List[float]]] = None
    c: Optional[List[float]] = None
    states: List[str] = field(default_factory=list)
    inputs: List[str] = field(default_factory=list)
    equations: List[str] = field(default_factory=list)
    params: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in SYSTEM_TYPES:
            raise ConfigurationError(f"Unknown system type: {self.type}. Valid: {SYSTEM_TYPES}")
        if self.type == "linear" and self.A is None:
            raise ConfigurationError("Linear system requires 'A'")
        if self.type == "nonlinear" and (not self.equations or not self.states):
            raise ConfigurationError("Nonlinear system requires 'states' and 'equations'")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemSpec":
        _check_keys("system", data, ("type", "A", "B", "c", "states", "inputs", "equations", "params"))
        return cls(**data)

    def build(self, name: str):
        from setreach.dynamics.systems import LinearSystem, NonlinearSystem

        if self.type == "linear":
            return LinearSystem(self.A, self.B, self.c, name=name)
        return NonlinearSystem.from_strings(self.equations, self.states, self.inputs, self.params, name=name)


def parse_set(section: str, data: Dict[str, Any]) -> Zonotope:
    """Zonotope from ``{inf, sup}`` or ``{center, generators}``."""
    _check_keys(section, data, ("inf", "sup", "center", "generators"))
    if "inf" in data or "sup" in data:
        if "inf" not in data or "sup" not in data or "center" in data or "generators" in data:
            raise ConfigurationError(f"Section '{section}' needs exactly 'inf' and 'sup' for a box")
        try:
            return Zonotope.from_interval(Interval(data["inf"], data["sup"]))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid box in '{section}': {exc}") from exc
    if "center" not in data:
        raise ConfigurationError(f"Section '{section}' needs 'inf'/'sup' or 'center'")
    try:
        center = np.asarray(data["center"], dtype=float).reshape(-1)
        generators = np.asarray(data.get("generators") or [], dtype=float)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid zonotope in '{section}': {exc}") from exc
    if generators.size == 0:
        return Zonotope(center)
    if generators.ndim != 2 or generators.shape[1] != center.size:
        raise ConfigurationError(
            f"Generators in '{section}' must be a list of vectors with {center.size} entries each"
        )
    return Zonotope(center, generators.T)


@dataclass
class ReachRequest:
    """
    Complete reachability request.

    Attributes
    ----------
    name : str
        Name of the request (used as the system name)
    system : SystemSpec
        Dynamics
    initial_set : Zonotope
        Initial states
    input_set : Zonotope or None
        Inputs (None: zero input)
    options : ReachOptions
        Algorithm settings
    unsafe_set : Halfspace or None
        Propagation stops when the flowpipe reaches it
    """

    name: str
    system: SystemSpec
    initial_set: Zonotope
    options: ReachOptions
    input_set: Optional[Zonotope] = None
    unsafe_set: Optional[Halfspace] = None

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ReachRequest":
        """
        Load a request from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML file

        Returns
        -------
        ReachRequest
            Parsed request
        """
        path = Path(path)
        with open(path) as f:
            return cls.from_yaml_str(f.read())

    @classmethod
    def from_yaml_str(cls, yaml_str: str) -> "ReachRequest":
        """Load from a YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML: {exc}") from exc
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReachRequest":
        """
        Create a request from a parsed mapping (a top-level ``request`` key
        is optional). Unknown fields raise ConfigurationError.
        """
        if isinstance(data, dict) and "request" in data:
            data = data["request"]
        _check_keys("request", data, ("name", "system", "initial_set", "input_set", "unsafe_set", "options"))
        for required in ("system", "initial_set", "options"):
            if required not in data:
                raise ConfigurationError(f"Missing required field: {required}")

        unsafe = data.get("unsafe_set")
        if unsafe is not None:
            _check_keys("unsafe_set", unsafe, ("c", "d"))
            missing = [key for key in ("c", "d") if key not in unsafe]
            if missing:
                raise ConfigurationError(f"Missing required field(s) in 'unsafe_set': {missing}")
            try:
                unsafe = Halfspace(unsafe["c"], unsafe["d"])
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid unsafe_set: {exc}") from exc

        input_data = data.get("input_set")
        return cls(
            name=str(data.get("name", "request")),
            system=SystemSpec.from_dict(data["system"]),
            initial_set=parse_set("initial_set", data["initial_set"]),
            input_set=parse_set("input_set", input_data) if input_data else None,
            unsafe_set=unsafe,
            options=ReachOptions.from_dict(data["options"]),
        )

    def build(self):
        """``(system, initial_set, input_set, options)`` ready for propagation."""
        system = self.system.build(self.name)
        if self.initial_set.dim != system.dim:
            raise ConfigurationError(
                f"Initial set has dimension {self.initial_set.dim}, system has {system.dim} states"
            )
        if self.unsafe_set is not None and self.unsafe_set.dim != system.dim:
            raise ConfigurationError(
                f"Unsafe set has dimension {self.unsafe_set.dim}, system has {system.dim} states"
            )
        return system, self.initial_set, self.input_set, self.options

    def run(self):
        """Propagate the request and return the Flowpipe."""
        from setreach.flowpipe.propagate import propagate

        system, R0, U, options = self.build()
        return propagate(system, R0, U, options, unsafe_set=self.unsafe_set)
