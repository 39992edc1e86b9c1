"""
One reachability step of a nonlinear system (conservative linearization).

The system is linearized at ``x* = c + dt/2 f(c, u_c)``; the linear step of
the deviation system is enlarged by the particular solution of the
abstraction remainder. The remainder depends on the reachable set of the
step, so it is found as a fixed point: an assumed error bound yields a
reachable set, the remainder over that set must lie inside the assumed
bound, otherwise the bound is enlarged and the step repeated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from setreach.dynamics.linearization import LinearizedModel, abstraction_remainder, linearize_at
from setreach.errors import AbstractionError, ExponentialConvergenceError
from setreach.flowpipe.linear import exponential_remainder, exponential_terms, input_solution, linear_step
from setreach.sets.interval import Interval
from setreach.sets.poly_zonotope import PolyZonotope
from setreach.sets.zonotope import Zonotope, as_zonotope

logger = logging.getLogger(__name__)

# enlargement of the assumed error bound between fixed-point iterations
ERROR_INFLATION = 1.1


@dataclass(frozen=True, eq=False)
class StepResult:
    """
    Output of one nonlinear step.

    Attributes
    ----------
    time_interval : Zonotope
        Enclosure over the whole step
    time_point : Zonotope or PolyZonotope
        Enclosure at the end of the step
    remainder : Zonotope
        Abstraction remainder used for the step
    error : float
        Infinity norm of the remainder
    correction : float
        Infinity norm of the time-interval correction ``F R``
    set_error : float
        Infinity norm of the remainder's particular solution, i.e. its
        effect on the reachable set at the end of the step
    taylor_terms : int
        Taylor terms used
    abstraction_order : int
        Abstraction order used
    iterations : int
        Fixed-point iterations needed
    """

    time_interval: Zonotope
    time_point: object
    remainder: Zonotope
    error: float
    correction: float
    set_error: float
    taylor_terms: int
    abstraction_order: int
    iterations: int


def linearization_point(system, R, U, time_step: float):
    """``(c + dt/2 f(c, u_c), u_c)`` for the centers of ``R`` and ``U``."""
    c = as_zonotope(R).center
    u_c = as_zonotope(U).center
    return c + 0.5 * time_step * system.evaluate(c, u_c), u_c


def choose_taylor_terms(A, time_step: float, R, tolerance: float, min_terms: int, max_terms: int) -> int:
    """
    Smallest number of terms whose exponential remainder, applied to ``R``,
    stays below ``0.1 * tolerance``.
    """
    size = float(np.max(as_zonotope(R).interval().magnitude()))
    for terms in range(min_terms, max_terms + 1):
        try:
            phi = exponential_remainder(A, time_step, terms)
        except ExponentialConvergenceError:
            continue
        if phi * A.shape[0] * size <= 0.1 * tolerance:
            return terms
    # raises if the series does not converge even at the ceiling
    exponential_remainder(A, time_step, max_terms)
    return max_terms


def _static_error(system, model: LinearizedModel, Rdelta: PolyZonotope, U, options) -> PolyZonotope:
    """Quadratic part of the remainder at the start of the step, kept polynomial."""
    z = Rdelta.reduce(options.intermediate_order).cartesian_product(as_zonotope(U) - model.u0)
    H = system.derivatives.hessians(model.x0, model.u0)
    return z.quad_map(H) * 0.5


def nonlinear_step(
    system,
    R,
    U,
    time_step: float,
    options,
    abstraction_order: int,
    taylor_terms: Optional[int] = None,
    *,
    step: Optional[int] = None,
    time: Optional[float] = None,
) -> StepResult:
    """
    Reachable sets of one step of length ``time_step`` starting from ``R``.

    Parameters
    ----------
    system : LinearSystem or NonlinearSystem
        Dynamics
    R : Zonotope or PolyZonotope
        Start set; a polynomial zonotope keeps its dependencies in the
        time-point result
    U : Zonotope
        Input set
    options : ReachOptions
        Reduction orders and iteration bounds
    abstraction_order : int
        2 or 3
    taylor_terms : int or None
        Exponential Taylor terms; None selects them from the adaptive settings

    Raises
    ------
    AbstractionError
        If the remainder fixed point is not reached within
        ``options.max_abstraction_iterations`` iterations
    """
    x_lin, u_lin = linearization_point(system, R, U, time_step)
    model = linearize_at(system, x_lin, u_lin)
    if taylor_terms is None:
        adaptive = options.adaptive
        taylor_terms = choose_taylor_terms(
            model.A, time_step, R, adaptive.error_tolerance, adaptive.min_taylor_terms, adaptive.max_taylor_terms
        )
    terms = exponential_terms(model.A, time_step, taylor_terms)

    Rdelta = R - x_lin
    V = model.B @ (as_zonotope(U) - u_lin)
    R_ti_lin, R_tp_lin, _ = linear_step(Rdelta, terms, V, model.f0, options.zonotope_order)
    correction = float(np.max((terms.F @ as_zonotope(Rdelta)).interval().magnitude()))

    def remainder_over(Rmax):
        return abstraction_remainder(
            system,
            model,
            Rmax,
            U,
            abstraction_order,
            intermediate_order=options.intermediate_order,
            error_order=options.error_order,
            remainder_method=options.remainder_method,
            taylor_model_order=options.taylor_model_order,
        )

    zero = Zonotope(np.zeros(system.dim))
    applied = np.zeros(system.dim)
    for iteration in range(1, options.max_abstraction_iterations + 1):
        assumed = Zonotope.from_interval(Interval(-applied, applied)).enclose(zero)
        Rmax = R_ti_lin + input_solution(terms, assumed) + x_lin
        remainder = remainder_over(Rmax)
        true_error = remainder.interval().magnitude()
        if np.all(true_error <= applied):
            break
        applied = ERROR_INFLATION * true_error
    else:
        raise AbstractionError(
            f"Abstraction error did not converge within {options.max_abstraction_iterations} iterations",
            step=step,
            time=time,
            error=float(np.max(true_error)),
        )

    error = float(np.max(true_error))
    set_error = float(np.max(input_solution(terms, remainder).interval().magnitude()))
    R_ti = R_ti_lin + input_solution(terms, remainder.enclose(zero)) + x_lin

    if isinstance(Rdelta, PolyZonotope) and np.any(true_error):
        static = _static_error(system, model, Rdelta, U, options)
        dynamic = Zonotope.from_interval(remainder.interval() - static.interval())
        R_tp = (
            R_tp_lin.exact_plus(terms.Asum @ static)
            + Zonotope.from_interval((terms.E * time_step) @ static.interval())
            + input_solution(terms, dynamic)
            + x_lin
        )
    else:
        R_tp = R_tp_lin + input_solution(terms, remainder) + x_lin

    logger.debug(
        "step %s t=%s dt=%.4g order=%d terms=%d iterations=%d error=%.3g",
        step, time, time_step, abstraction_order, taylor_terms, iteration, error,
    )
    return StepResult(
        time_interval=R_ti.reduce(options.zonotope_order),
        time_point=R_tp.reduce(options.zonotope_order),
        remainder=remainder,
        error=error,
        correction=correction,
        set_error=set_error,
        taylor_terms=taylor_terms,
        abstraction_order=abstraction_order,
        iterations=iteration,
    )
