"""
Guard intersection by time scaling ("pancake" approach).

The dynamics are multiplied by the normalized distance to the guard,
``F(x, u) = (c . x - d) / p * f(x, u)``, so the scaled flow slows down and
flattens against the hyperplane instead of crossing it. The scaled system is
propagated until it touches the guard halfspace, then the original system
jumps across the guard in a single step whose size is searched (bisection
when the first step overshoots, additive expansion when it falls short).
The time-interval set of that step is projected onto the hyperplane.

References
----------
S. Bak et al., "Time-Triggered Conversion of Guards for Reachability
Analysis of Hybrid Automata"
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np
import sympy as sp

from setreach.config.options import ReachOptions
from setreach.dynamics.classification import DynamicsClass
from setreach.dynamics.systems import NonlinearSystem
from setreach.errors import ConfigurationError, GuardSearchError, ReachError, UnsupportedGuardError
from setreach.flowpipe.propagate import propagate
from setreach.sets.halfspace import ConstrainedHyperplane, Halfspace
from setreach.sets.interval import Interval
from setreach.sets.zonotope import Zonotope

logger = logging.getLogger(__name__)

MAX_BISECTIONS = 10
MAX_EXPANSIONS = 100


def orient_halfspace(guard: ConstrainedHyperplane, crossing_set) -> Halfspace:
    """Halfspace of the guard that does not contain the center of the set."""
    hs = guard.halfspace
    if hs.contains(_center(crossing_set)):
        hs = hs.flip()
    return hs


def _center(S) -> np.ndarray:
    return np.asarray(S.center if hasattr(S, "center") else S, dtype=float).reshape(-1)


def _symbolic_variables(system) -> Tuple[list, list]:
    states = list(getattr(system, "states", None) or sp.symbols(f"x0:{system.dim}"))
    inputs = list(getattr(system, "inputs", None) or sp.symbols(f"u0:{system.n_inputs}"))
    return states, inputs


def scaled_system(system, halfspace: Halfspace, crossing_set, guard_id=0) -> Tuple[NonlinearSystem, float]:
    """
    Time-scaled dynamics ``(c . x - d) / p * f(x, u)``.

    ``p`` is the largest distance of ``crossing_set`` to the hyperplane and is
    substituted by value, so every call yields an independent system.

    Returns
    -------
    tuple
        ``(scaled system, p)``
    """
    p = halfspace.distance(crossing_set)
    if not p > 0:
        raise GuardSearchError(
            "Crossing set does not reach beyond the guard hyperplane", guard_id=guard_id, distance=p
        )
    states, inputs = _symbolic_variables(system)
    f = system.symbolic_rhs(states, inputs)
    g = (sum(ci * xi for ci, xi in zip(halfspace.c.tolist(), states)) - halfspace.d) / p
    F = (f * g).applyfunc(sp.expand)
    name = f"{system.name}_{guard_id}_time_scaled"
    return NonlinearSystem(F, states, inputs, name=name), p


def scaled_options(system, options: ReachOptions) -> ReachOptions:
    """
    Options for the scaled system.

    Linear location dynamics carry no nonlinear settings, so these fall back
    to :meth:`ReachOptions.nonlinear_defaults`. The error bound of fixed-step
    propagation is lifted.
    """
    if system.kind is DynamicsClass.LINEAR:
        scaled = ReachOptions.nonlinear_defaults(
            options.t_final,
            alg=options.alg,
            time_step=options.time_step,
            taylor_terms=options.taylor_terms,
            zonotope_order=options.zonotope_order,
            adaptive=options.adaptive,
        )
    else:
        scaled = options
    return scaled.replace(max_error=math.inf)


def _jump(system, R, input_set, time_step: float, options: ReachOptions, halfspace: Halfspace):
    """One step of length ``time_step``: (time-interval set, signed distance)."""
    # a single step covers the whole jump, so the adaptive scheme is not used here
    alg = "lin" if options.alg == "lin-adaptive" else options.alg
    step_options = options.replace(alg=alg, t_final=time_step, time_step=time_step)
    fp = propagate(system, R, input_set, step_options)
    return fp.time_interval[-1], halfspace.distance(fp.time_point[-1])


def jump_search(
    system,
    R,
    input_set,
    options: ReachOptions,
    halfspace: Halfspace,
    guard_id=0,
    max_expansions: int = MAX_EXPANSIONS,
):
    """
    Find a single step that carries ``R`` across the halfspace boundary.

    Returns the time-interval set of the accepted step.

    Raises
    ------
    GuardSearchError
        If the distance grows while expanding the step, or the set has not
        crossed after ``max_expansions`` expansions
    """
    base_step = options.time_step
    time_step = base_step
    R_cont, dist = _jump(system, R, input_set, time_step, options, halfspace)

    if dist < 0:
        # crossed: bisect the step to tighten the set
        dist_min = R.support_function(halfspace.c, "lower") - halfspace.d
        lb, ub = 0.0, time_step
        for iteration in range(1, MAX_BISECTIONS + 1):
            time_step = lb + (ub - lb) / 2
            R_ti, dist = _jump(system, R, input_set, time_step, options, halfspace)
            if dist < 0:
                R_cont = R_ti
                ub = time_step
                if abs(dist) <= dist_min:
                    break
            else:
                lb = time_step
        else:
            logger.warning(
                "Guard %s: jump search stopped after %d bisections (last distance %.3g, target %.3g)",
                guard_id, MAX_BISECTIONS, dist, dist_min,
            )
        logger.debug("Guard %s: jump step %.4g after %d bisections", guard_id, ub, iteration)
        return R_cont

    previous = dist
    for expansion in range(1, max_expansions + 1):
        time_step += base_step
        R_ti, dist = _jump(system, R, input_set, time_step, options, halfspace)
        logger.debug("Guard %s: expansion %d step %.4g distance %.3g", guard_id, expansion, time_step, dist)
        if dist < 0:
            return R_ti
        if dist > previous:
            raise GuardSearchError(
                "Pancake search diverged: distance to the guard increased",
                guard_id=guard_id,
                distance=dist,
            )
        previous = dist
    raise GuardSearchError(
        f"Guard not crossed after {max_expansions} step expansions",
        guard_id=guard_id,
        distance=dist,
    )


def intersect_guard(
    system,
    crossing_set,
    guard,
    guard_id,
    options: ReachOptions,
    input_set=None,
    scaled: Optional[ReachOptions] = None,
    max_expansions: int = MAX_EXPANSIONS,
):
    """
    Enclosure of the intersection of the flow from ``crossing_set`` with the
    guard.

    Parameters
    ----------
    system : LinearSystem or NonlinearSystem
        Location dynamics
    crossing_set : Zonotope or PolyZonotope
        Set before the guard (typically a time-point set of the flowpipe)
    guard : ConstrainedHyperplane
        Guard set
    guard_id : hashable
        Identifier used in logs and errors
    options : ReachOptions
        Options of the location; ``time_step`` is the coarse jump step
    input_set : Zonotope, Interval or None
        Inputs of the location
    scaled : ReachOptions or None
        Options of the scaled system (default: :func:`scaled_options`)
    max_expansions : int
        Budget of additive step expansions

    Returns
    -------
    Zonotope
        Enclosure on the guard hyperplane

    Raises
    ------
    UnsupportedGuardError
        If ``guard`` is not a constrained hyperplane
    GuardSearchError
        If the jump search fails
    """
    if not isinstance(guard, ConstrainedHyperplane):
        raise UnsupportedGuardError(
            f"Guard intersection requires a ConstrainedHyperplane, got {type(guard).__name__}",
            guard_id=guard_id,
        )
    if guard.dim != system.dim:
        raise ConfigurationError(
            f"Guard dimension {guard.dim} does not match system dimension {system.dim}", guard_id=guard_id
        )
    if max_expansions < 1:
        raise ConfigurationError("max_expansions must be >= 1", guard_id=guard_id)

    if isinstance(crossing_set, Interval):
        crossing_set = Zonotope.from_interval(crossing_set)

    try:
        halfspace = orient_halfspace(guard, crossing_set)
        sys_scaled, p = scaled_system(system, halfspace, crossing_set, guard_id)
        logger.debug("Guard %s: scaled system %s with p=%.4g", guard_id, sys_scaled.name, p)

        scaled_fp = propagate(
            sys_scaled, crossing_set, input_set, scaled or scaled_options(system, options), unsafe_set=halfspace
        )
        R_fin = scaled_fp.final_set

        R_cont = jump_search(system, R_fin, input_set, options, halfspace, guard_id, max_expansions)
    except ReachError as exc:
        if exc.guard_id is None:
            exc.guard_id = guard_id
        raise

    result = guard.project(R_cont)
    logger.info(
        "Guard %s intersected after %d scaled steps (scaled time %.4g)",
        guard_id, len(scaled_fp), scaled_fp.final_time,
    )
    return result
