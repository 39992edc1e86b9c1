"""
Flowpipe propagation driver.

:func:`propagate` advances an enclosure of the reachable states step by step
up to ``options.t_final`` and returns a :class:`Flowpipe`. Three algorithms
are available:

- ``lin``: fixed step size; exact linear steps for linear dynamics and
  conservative linearization for nonlinear dynamics,
- ``lin-adaptive``: step size, Taylor terms and abstraction order chosen per
  step to keep the error below ``options.adaptive.error_tolerance``,
- ``poly``: like ``lin`` but time-point sets are polynomial zonotopes so the
  quadratic part of the dynamics keeps its dependency on the initial set.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from setreach.config.options import ReachOptions
from setreach.dynamics.classification import DynamicsClass, as_linear, classify_dynamics
from setreach.errors import AbstractionError, ConfigurationError, ExponentialConvergenceError
from setreach.flowpipe.flowpipe import Flowpipe, StepRecord, TimeInterval
from setreach.flowpipe.linear import exponential_terms, linear_step
from setreach.flowpipe.nonlinear import nonlinear_step
from setreach.sets.interval import Interval
from setreach.sets.poly_zonotope import PolyZonotope
from setreach.sets.zonotope import Zonotope, as_zonotope

logger = logging.getLogger(__name__)

_TIME_TOL = 1e-12


def _as_set(value, dim: int, what: str):
    if isinstance(value, (Zonotope, PolyZonotope)):
        S = value
    elif isinstance(value, Interval):
        S = Zonotope.from_interval(value)
    else:
        S = Zonotope(np.asarray(value, dtype=float).reshape(-1))
    if S.dim != dim:
        raise ConfigurationError(f"{what} has dimension {S.dim}, expected {dim}")
    return S


def _step_grid(t_final: float, time_step: float):
    n_steps = max(int(math.ceil(t_final / time_step - 1e-9)), 1)
    for k in range(n_steps):
        start = k * time_step
        end = min((k + 1) * time_step, t_final)
        yield k, start, end


def _order(S) -> float:
    Z = as_zonotope(S)
    return Z.num_generators / Z.dim


def propagate(system, initial_set, input_set=None, options: Optional[ReachOptions] = None, unsafe_set=None) -> Flowpipe:
    """
    Compute a flowpipe of ``system`` from ``initial_set``.

    Parameters
    ----------
    system : LinearSystem or NonlinearSystem
        Continuous dynamics
    initial_set : Zonotope, PolyZonotope, Interval or array_like
        Initial states
    input_set : Zonotope, Interval, array_like or None
        Admissible inputs (None: the origin)
    options : ReachOptions
        Algorithm settings; ``t_final`` is required
    unsafe_set : object with ``intersects(set)`` or None
        Propagation stops after the first time-interval set intersecting it

    Returns
    -------
    Flowpipe
        Time-interval and time-point enclosures

    Raises
    ------
    ConfigurationError
        Invalid options or set dimensions (before any step is computed)
    NumericalError
        Exponential or abstraction failure during propagation
    """
    if not isinstance(options, ReachOptions):
        raise ConfigurationError("propagate() requires a ReachOptions instance")
    R0 = _as_set(initial_set, system.dim, "Initial set")
    U = as_zonotope(_as_set(np.zeros(system.n_inputs) if input_set is None else input_set, system.n_inputs, "Input set"))

    if system.kind is DynamicsClass.NONLINEAR and classify_dynamics(system) is DynamicsClass.LINEAR:
        logger.debug("%r is affine; using linear propagation", system)
        system = as_linear(system)

    if options.alg == "poly":
        R0 = R0 if isinstance(R0, PolyZonotope) else PolyZonotope.from_zonotope(as_zonotope(R0))
    elif isinstance(R0, PolyZonotope):
        R0 = R0.zonotope()

    flowpipe = Flowpipe(initial_set=R0, metadata={"alg": options.alg, "system": system.name})
    if options.alg == "lin-adaptive":
        _propagate_adaptive(system, R0, U, options, flowpipe, unsafe_set)
    elif system.kind is DynamicsClass.LINEAR:
        _propagate_linear(system, R0, U, options, flowpipe, unsafe_set)
    else:
        _propagate_nonlinear(system, R0, U, options, flowpipe, unsafe_set)

    logger.info(
        "Propagated %s (%s): %d steps up to t=%.6g%s",
        system.name, options.alg, len(flowpipe), flowpipe.final_time,
        ", stopped at unsafe set" if flowpipe.violated else "",
    )
    return flowpipe


def _record(flowpipe: Flowpipe, unsafe_set, ti, tp, start: float, end: float, record: StepRecord) -> bool:
    """Append a step; True if propagation must stop at the unsafe set."""
    flowpipe.append(ti, tp, TimeInterval(start, end), record)
    if unsafe_set is not None and unsafe_set.intersects(ti):
        flowpipe.violated = True
        logger.debug("Time-interval set of step %d intersects the unsafe set", record.index)
        return True
    return False


def _propagate_linear(system, R, U, options: ReachOptions, flowpipe: Flowpipe, unsafe_set) -> None:
    u_c = U.center
    v = system.c + system.B @ u_c
    V = system.B @ (U - u_c)
    cache: Dict[float, Any] = {}
    for k, start, end in _step_grid(options.t_final, options.time_step):
        dt = end - start
        key = round(dt, 15)
        if key not in cache:
            cache[key] = [exponential_terms(system.A, dt, options.taylor_terms), None]
        terms, RV = cache[key]
        R_ti, R_tp, RV = linear_step(R, terms, V, v, options.zonotope_order, RV)
        cache[key][1] = RV
        record = StepRecord(k, start, dt, options.taylor_terms, 0, 0.0, _order(R_ti))
        logger.debug("linear step %d t=%.6g dt=%.4g", k, start, dt)
        if _record(flowpipe, unsafe_set, R_ti, R_tp, start, end, record):
            return
        R = R_tp


def _propagate_nonlinear(system, R, U, options: ReachOptions, flowpipe: Flowpipe, unsafe_set) -> None:
    order = 3 if options.alg == "poly" else options.abstraction_order
    for k, start, end in _step_grid(options.t_final, options.time_step):
        dt = end - start
        result = nonlinear_step(system, R, U, dt, options, order, options.taylor_terms, step=k, time=start)
        if result.error > options.max_error:
            raise AbstractionError(
                f"Abstraction error {result.error:.3g} exceeds max_error {options.max_error:.3g}",
                step=k,
                time=start,
                error=result.error,
            )
        record = StepRecord(k, start, dt, result.taylor_terms, order, result.error, _order(result.time_interval))
        if _record(flowpipe, unsafe_set, result.time_interval, result.time_point, start, end, record):
            return
        R = result.time_point


def _propagate_adaptive(system, R, U, options: ReachOptions, flowpipe: Flowpipe, unsafe_set) -> None:
    """
    Adaptive step: raise the abstraction order first, then shrink the step.

    The error of a step is the effect of the abstraction remainder on the
    reachable set for nonlinear dynamics and the time-interval correction for
    linear dynamics. The order reached is kept for later steps; the step size
    grows after every accepted step.
    """
    adaptive = options.adaptive
    tolerance = adaptive.error_tolerance
    max_dt = adaptive.max_time_step or options.t_final
    is_linear = system.kind is DynamicsClass.LINEAR
    order = adaptive.min_abstraction_order
    dt = min(options.time_step, max_dt)
    t, k = 0.0, 0

    while t < options.t_final - _TIME_TOL * max(1.0, options.t_final):
        step_dt = min(dt, options.t_final - t)
        refinements = 0
        while True:
            try:
                result = nonlinear_step(system, R, U, step_dt, options, order, None, step=k, time=t)
                error = result.correction if is_linear else result.set_error
            except (AbstractionError, ExponentialConvergenceError) as exc:
                logger.debug("step %d at t=%.6g with dt=%.4g failed: %s", k, t, step_dt, exc)
                result, error = None, math.inf
            if error <= tolerance:
                break
            refinements += 1
            if refinements >= adaptive.max_refinements:
                raise AbstractionError(
                    f"No step size/order meets the error tolerance {tolerance:.3g} "
                    f"after {adaptive.max_refinements} refinements",
                    step=k,
                    time=t,
                    error=error,
                )
            if result is not None and not is_linear and order < adaptive.max_abstraction_order:
                order += 1
                logger.debug("step %d: raising abstraction order to %d", k, order)
                continue
            step_dt *= adaptive.shrink_factor
            if step_dt < adaptive.min_time_step:
                raise AbstractionError(
                    f"Step size fell below min_time_step {adaptive.min_time_step:.3g}",
                    step=k,
                    time=t,
                    error=error,
                )
            logger.debug("step %d: shrinking step size to %.4g (error %.3g)", k, step_dt, error)

        record = StepRecord(
            k, t, step_dt, result.taylor_terms, 0 if is_linear else order, result.error,
            _order(result.time_interval), refinements, error,
        )
        end = min(t + step_dt, options.t_final)
        if _record(flowpipe, unsafe_set, result.time_interval, result.time_point, t, end, record):
            return
        R = result.time_point
        t, k = end, k + 1
        dt = min(step_dt * adaptive.growth_factor, max_dt)


def propagate_many(tasks: Iterable[Dict[str, Any]], max_workers: Optional[int] = None) -> List[Flowpipe]:
    """
    Propagate independent requests concurrently.

    Each task is a mapping with the keyword arguments of :func:`propagate`
    (``system``, ``initial_set``, ``input_set``, ``options``, ``unsafe_set``).
    Results are returned in task order; the first failure is re-raised.
    """
    tasks = list(tasks)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(propagate, **task) for task in tasks]
        return [future.result() for future in futures]
