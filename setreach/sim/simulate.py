"""
Trajectory simulation used to sanity-check reachable sets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy.integrate import solve_ivp

from setreach.errors import ConfigurationError, NumericalError
from setreach.sets.zonotope import as_zonotope

logger = logging.getLogger(__name__)


@dataclass
class Trajectory:
    """
    Sampled solution of the dynamics.

    Attributes
    ----------
    t : np.ndarray
        Sample times (N,)
    x : np.ndarray
        States (N, n)
    u : np.ndarray
        Input applied on each sample (N, m)
    metadata : dict
        Extra solver output (e.g. ``events``: states at detected events)
    """

    t: np.ndarray
    x: np.ndarray
    u: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def final_state(self) -> np.ndarray:
        return self.x[-1]


def simulate(system, x0, t_span, u=None, t_eval=None, events=None, rtol: float = 1e-9, atol: float = 1e-11) -> Trajectory:
    """
    Integrate ``system`` from ``x0`` over ``t_span`` with a constant input.

    ``events`` are passed to :func:`scipy.integrate.solve_ivp`; the states at
    the detected events are stored in ``metadata["events"]``.
    """
    x0 = np.asarray(x0, dtype=float).reshape(-1)
    u = np.zeros(system.n_inputs) if u is None else np.asarray(u, dtype=float).reshape(-1)
    if x0.size != system.dim or u.size != system.n_inputs:
        raise ConfigurationError(
            f"Simulation start ({x0.size}) or input ({u.size}) does not match the system "
            f"({system.dim}, {system.n_inputs})"
        )

    sol = solve_ivp(
        fun=lambda t, x: system.evaluate(x, u),
        t_span=tuple(t_span),
        y0=x0,
        method="RK45",
        t_eval=t_eval,
        events=events,
        rtol=rtol,
        atol=atol,
    )
    if sol.status < 0:
        raise NumericalError(f"Simulation failed: {sol.message}")
    metadata = {}
    if events is not None:
        metadata["events"] = [np.asarray(y) for y in sol.y_events]
        metadata["event_times"] = [np.asarray(t) for t in sol.t_events]
    return Trajectory(t=sol.t, x=sol.y.T, u=np.tile(u, (sol.t.size, 1)), metadata=metadata)


def _concatenate(pieces: Sequence[Trajectory]) -> Trajectory:
    t = np.concatenate([pieces[0].t] + [p.t[1:] for p in pieces[1:]])
    x = np.vstack([pieces[0].x] + [p.x[1:] for p in pieces[1:]])
    u = np.vstack([pieces[0].u] + [p.u[1:] for p in pieces[1:]])
    return Trajectory(t=t, x=x, u=u)


def simulate_random(
    system,
    initial_set,
    input_set=None,
    t_final: float = 1.0,
    points: int = 10,
    frac_vert: float = 0.5,
    frac_inp_vert: float = 0.5,
    inp_changes: int = 1,
    rng: Optional[np.random.Generator] = None,
) -> List[Trajectory]:
    """
    Simulate trajectories from random points of ``initial_set``.

    Parameters
    ----------
    initial_set : Zonotope, PolyZonotope or Interval
        Start states
    input_set : Zonotope, Interval or None
        Inputs; piecewise constant with ``inp_changes`` segments
    points : int
        Number of trajectories
    frac_vert : float
        Fraction of start points drawn from extreme points of the set
    frac_inp_vert : float
        Fraction of input values drawn from extreme points of the input set
    rng : numpy.random.Generator or None
        Source of randomness
    """
    if points < 1 or inp_changes < 1:
        raise ConfigurationError("points and inp_changes must be >= 1")
    if not 0.0 <= frac_vert <= 1.0 or not 0.0 <= frac_inp_vert <= 1.0:
        raise ConfigurationError("frac_vert and frac_inp_vert must lie in [0, 1]")
    rng = np.random.default_rng() if rng is None else rng
    if not hasattr(initial_set, "random_points"):
        initial_set = as_zonotope(initial_set)

    n_extreme = int(round(frac_vert * points))
    starts = np.hstack([
        initial_set.random_points(n_extreme, rng, extreme=True) if n_extreme else np.zeros((system.dim, 0)),
        initial_set.random_points(points - n_extreme, rng) if points > n_extreme else np.zeros((system.dim, 0)),
    ])

    U = as_zonotope(np.zeros(system.n_inputs) if input_set is None else input_set)
    segment = t_final / inp_changes
    trajectories = []
    for k in range(points):
        x = starts[:, k]
        pieces = []
        for j in range(inp_changes):
            extreme = rng.random() < frac_inp_vert
            u = U.random_points(1, rng, extreme=extreme)[:, 0]
            piece = simulate(system, x, (j * segment, (j + 1) * segment), u)
            pieces.append(piece)
            x = piece.final_state
        trajectories.append(_concatenate(pieces))
    logger.debug("Simulated %d random trajectories of %s", points, system.name)
    return trajectories
