"""
One reachability step of a linear system ``x' = A x + B u + v``.

The matrix exponential is computed with :func:`scipy.linalg.expm`; its
truncated Taylor series (``taylor_terms`` terms) is used for the correction
matrices of the time-interval enclosure, with an interval matrix ``E``
bounding the series remainder.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.linalg import expm

from setreach.errors import ExponentialConvergenceError
from setreach.sets.interval import Interval
from setreach.sets.zonotope import Zonotope, as_zonotope

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ExponentialTerms:
    """
    Matrices shared by all steps with the same ``A`` and step size.

    Attributes
    ----------
    time_step : float
        Step size
    taylor_terms : int
        Number of Taylor terms
    eAt : np.ndarray
        Matrix exponential ``exp(A dt)``
    powers : tuple
        ``A^0 ... A^(taylor_terms + 1)``
    E : Interval
        Remainder of the truncated exponential series
    F : Interval
        Correction of the homogeneous solution over the time interval
    G : Interval
        Correction of the constant-input solution over the time interval
    Asum : np.ndarray
        ``sum_i A^i dt^(i+1) / (i+1)!``
    remainder : float
        Scalar bound ``phi`` of the entries of ``E``
    """

    time_step: float
    taylor_terms: int
    eAt: np.ndarray
    powers: tuple
    E: Interval
    F: Interval
    G: Interval
    Asum: np.ndarray
    remainder: float


def exponential_remainder(A: np.ndarray, time_step: float, taylor_terms: int) -> float:
    """
    Bound ``phi`` on the entries of the exponential series remainder.

    Raises
    ------
    ExponentialConvergenceError
        If ``||A dt||_inf / (taylor_terms + 2) >= 1``
    """
    a = float(np.linalg.norm(A * time_step, np.inf))
    epsilon = a / (taylor_terms + 2)
    if epsilon >= 1.0:
        raise ExponentialConvergenceError(
            f"Exponential series does not converge with {taylor_terms} terms for step {time_step}",
            error=epsilon,
        )
    return a ** (taylor_terms + 1) / math.factorial(taylor_terms + 1) / (1.0 - epsilon)


def _correction_factor(i: int, time_step: float) -> Interval:
    low = (i ** (-i / (i - 1)) - i ** (-1 / (i - 1))) * time_step ** i
    return Interval(low, 0.0)


def exponential_terms(A: np.ndarray, time_step: float, taylor_terms: int) -> ExponentialTerms:
    A = np.asarray(A, dtype=float)
    n = A.shape[0]
    phi = exponential_remainder(A, time_step, taylor_terms)
    logger.debug("exponential terms: dt=%.4g, %d Taylor terms, remainder %.3g", time_step, taylor_terms, phi)
    E = Interval(-phi * np.ones((n, n)), phi * np.ones((n, n)))

    powers = [np.eye(n)]
    for _ in range(taylor_terms + 1):
        powers.append(powers[-1] @ A)

    F = E
    for i in range(2, taylor_terms + 1):
        F = F + _correction_factor(i, time_step) * (powers[i] / math.factorial(i))

    G = E * time_step
    for i in range(2, taylor_terms + 2):
        G = G + _correction_factor(i, time_step) * (powers[i - 1] / math.factorial(i))

    Asum = sum(powers[i] * time_step ** (i + 1) / math.factorial(i + 1) for i in range(taylor_terms + 1))

    return ExponentialTerms(
        time_step=time_step,
        taylor_terms=taylor_terms,
        eAt=expm(A * time_step),
        powers=tuple(powers),
        E=E,
        F=F,
        G=G,
        Asum=Asum,
        remainder=phi,
    )


def input_solution(terms: ExponentialTerms, V) -> Zonotope:
    """
    Reachable set of ``x' = A x + v(t)``, ``x(0) = 0``, ``v(t) in V``, at ``dt``.

    The input may vary in time, so every term of the series is a separate
    Minkowski summand.
    """
    V = as_zonotope(V)
    dt = terms.time_step
    if V.num_generators == 0 and not np.any(V.center):
        return Zonotope(np.zeros(V.dim))
    result = Zonotope(np.zeros(V.dim))
    for i in range(terms.taylor_terms + 1):
        result = result + (terms.powers[i] * (dt ** (i + 1) / math.factorial(i + 1))) @ V
    return result + Zonotope.from_interval((terms.E * dt) @ V.interval())


def constant_input_solution(terms: ExponentialTerms, v: np.ndarray) -> Zonotope:
    """Solution at ``dt`` for a constant input ``v`` starting from the origin."""
    v = np.asarray(v, dtype=float).reshape(-1)
    remainder = (terms.E * terms.time_step) @ v
    return Zonotope(terms.Asum @ v) + Zonotope.from_interval(remainder)


def homogeneous_step(R, terms: ExponentialTerms, v: np.ndarray) -> Tuple[Zonotope, object]:
    """
    Time-interval and time-point sets of ``x' = A x + v`` from ``R``.

    ``R`` may be a zonotope or a polynomial zonotope; the time-point set keeps
    its type, the time-interval set is always a zonotope.
    """
    v = np.asarray(v, dtype=float).reshape(-1)
    Rtrans = constant_input_solution(terms, v)
    Rhom_tp = terms.eAt @ R + Rtrans
    Z0 = as_zonotope(R)
    Rhom = Z0.enclose(as_zonotope(Rhom_tp)) + terms.F @ Z0
    correction = terms.G @ v
    Rhom = Rhom + Zonotope.from_interval(correction)
    return Rhom, Rhom_tp


def linear_step(R, terms: ExponentialTerms, V, v, zonotope_order: float, RV=None):
    """
    One step of the linear reachability algorithm.

    Returns
    -------
    tuple
        ``(R_ti, R_tp, RV)``: time-interval set, time-point set and the
        (reduced) particular solution of the uncertain input, which can be
        reused by later steps with the same terms.
    """
    Rhom, Rhom_tp = homogeneous_step(R, terms, v)
    if RV is None:
        RV = input_solution(terms, V).reduce(zonotope_order)
    Rhom = Rhom.reduce(zonotope_order)
    Rhom_tp = Rhom_tp.reduce(zonotope_order)
    return Rhom + RV, Rhom_tp + RV, RV
