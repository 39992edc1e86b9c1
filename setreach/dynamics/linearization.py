"""
Linearization and abstraction error.

A nonlinear vector field is replaced on each step by its first-order Taylor
expansion around a point ``(x0, u0)``

    f(x, u) in f0 + A (x - x0) + B (u - u0) + L

where ``L`` (the abstraction remainder) encloses the Lagrange remainder over
the region of the step. Order 2 bounds the remainder with interval Hessians;
order 3 evaluates the quadratic term exactly at ``(x0, u0)`` and bounds the
cubic Lagrange term with interval third derivatives.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from setreach.dynamics.classification import DynamicsClass
from setreach.errors import ConfigurationError
from setreach.sets.interval import Interval
from setreach.sets.zonotope import Zonotope, as_zonotope

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class LinearizedModel:
    """
    Affine approximation ``f0 + A (x - x0) + B (u - u0)``.

    Attributes
    ----------
    A : np.ndarray
        State Jacobian at the linearization point
    B : np.ndarray
        Input Jacobian at the linearization point
    f0 : np.ndarray
        Vector field value at the linearization point
    x0 : np.ndarray
        State linearization point
    u0 : np.ndarray
        Input linearization point
    """

    A: np.ndarray
    B: np.ndarray
    f0: np.ndarray
    x0: np.ndarray
    u0: np.ndarray


def linearize_at(system, x0, u0) -> LinearizedModel:
    """First-order Taylor expansion of ``system`` at ``(x0, u0)``."""
    x0 = np.asarray(x0, dtype=float).reshape(-1)
    u0 = np.asarray(u0, dtype=float).reshape(-1)
    if x0.size != system.dim or u0.size != system.n_inputs:
        raise ConfigurationError(
            f"Linearization point has dimensions ({x0.size}, {u0.size}), "
            f"expected ({system.dim}, {system.n_inputs})"
        )
    if system.kind is DynamicsClass.LINEAR:
        A, B = np.array(system.A), np.array(system.B)
    else:
        A, B = system.derivatives.jacobians(x0, u0)
    return LinearizedModel(A=A, B=B, f0=system.evaluate(x0, u0), x0=x0, u0=u0)


def _stack(first: Interval, second: Interval) -> Interval:
    return Interval(
        np.concatenate([first.inf.reshape(-1), second.inf.reshape(-1)]),
        np.concatenate([first.sup.reshape(-1), second.sup.reshape(-1)]),
        check=False,
    )


def _second_order_products(dz: Interval) -> Interval:
    """Interval matrix of ``dz_j dz_k`` with exact squares on the diagonal."""
    N = dz.inf.size
    col, row = dz.reshape(N, 1), dz.reshape(1, N)
    products = col * row
    squares = dz ** 2
    inf, sup = products.inf.copy(), products.sup.copy()
    inf[np.diag_indices(N)] = squares.inf
    sup[np.diag_indices(N)] = squares.sup
    return Interval(inf, sup, check=False)


def _third_order_term(bounds, dz: Interval) -> Interval:
    """
    ``1/6 sum T_jkl(xi) dz_j dz_k dz_l`` using only ``j <= k <= l`` entries,
    each weighted by the number of its index permutations.
    """
    result_inf = np.zeros(len(bounds))
    result_sup = np.zeros(len(bounds))
    for i, entries in enumerate(bounds):
        total = Interval(0.0)
        for (j, k, l), T in entries.items():
            counts = Counter((j, k, l))
            multiplicity = 6 // math.prod(math.factorial(c) for c in counts.values())
            monomial = Interval(1.0)
            for index, power in counts.items():
                monomial = monomial * dz[index] ** power
            total = total + multiplicity * (T * monomial)
        total = total / 6.0
        result_inf[i], result_sup[i] = total.inf, total.sup
    return Interval(result_inf, result_sup, check=False)


def abstraction_remainder(
    system,
    model: LinearizedModel,
    state_set,
    input_set,
    order: int = 2,
    *,
    intermediate_order: float = 50,
    error_order: float = 5,
    remainder_method: str = "interval",
    taylor_model_order: int = 3,
) -> Zonotope:
    """
    Enclosure of ``f(x, u) - f0 - A (x - x0) - B (u - u0)`` over the sets.

    Parameters
    ----------
    system : LinearSystem or NonlinearSystem
        Dynamics
    model : LinearizedModel
        Linearization the remainder belongs to
    state_set, input_set : Zonotope, PolyZonotope or Interval
        Region of states and inputs
    order : int
        2 (interval Hessians) or 3 (quadratic map plus cubic Lagrange term)

    Returns
    -------
    Zonotope
        Remainder set in state space
    """
    if order not in (2, 3):
        raise ConfigurationError(f"Abstraction order must be 2 or 3, got {order}")
    n = system.dim
    if system.kind is DynamicsClass.LINEAR:
        return Zonotope(np.zeros(n))

    Zx = as_zonotope(state_set).reduce(intermediate_order)
    Zu = as_zonotope(input_set)
    # the Lagrange point lies between the expansion point and the set
    box = _stack(Zx.interval().hull(Interval(model.x0)), Zu.interval().hull(Interval(model.u0)))
    dz = _stack((Zx - model.x0).interval(), (Zu - model.u0).interval())
    provider = system.derivatives

    if order == 2:
        H = provider.hessian_bounds(box, remainder_method, taylor_model_order)
        products = _second_order_products(dz)
        inf = np.zeros(n)
        sup = np.zeros(n)
        for i, Hi in enumerate(H):
            err = (Hi * products).sum() * 0.5
            inf[i], sup[i] = err.inf, err.sup
        return Zonotope.from_interval(Interval(inf, sup, check=False))

    Zz = (Zx - model.x0).cartesian_product(Zu - model.u0).reduce(error_order)
    quadratic = Zz.quad_map(provider.hessians(model.x0, model.u0)) * 0.5
    cubic = _third_order_term(provider.third_order_bounds(box, remainder_method, taylor_model_order), dz)
    return quadratic + Zonotope.from_interval(cubic)


def linearize(
    system,
    base_point,
    base_input,
    order: int,
    state_set,
    input_set,
    **kwargs,
) -> Tuple[LinearizedModel, Zonotope]:
    """
    Linear model at ``(base_point, base_input)`` and its abstraction
    remainder over ``state_set`` x ``input_set``.
    """
    model = linearize_at(system, base_point, base_input)
    remainder = abstraction_remainder(system, model, state_set, input_set, order, **kwargs)
    if logger.isEnabledFor(logging.DEBUG):
        radius = float(np.max(remainder.interval().magnitude()))
        logger.debug("%s: order %d abstraction remainder radius %.3g", system.name, order, radius)
    return model, remainder
