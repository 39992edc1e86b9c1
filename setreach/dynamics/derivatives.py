"""
Derivative provider for symbolic vector fields.

Builds Jacobians, Hessians and third-order derivative tensors of
``f(x, u)`` with sympy and compiles them for three kinds of arguments:
floats (values at the linearization point), intervals and Taylor models
(range bounds over a box). Expressions are compiled lazily and cached per
provider under a lock, so one provider can be shared between threads;
results depend only on the arguments.
"""

from __future__ import annotations

import itertools
import threading
from typing import Dict, List, Sequence, Tuple

import numpy as np
import sympy as sp

from setreach.errors import ConfigurationError
from setreach.sets.elementary import lambdify_entries
from setreach.sets.interval import Interval
from setreach.sets.taylor_model import TaylorModel

RANGE_METHODS = ("interval", "taylor_model")


def _to_interval(value) -> Interval:
    if isinstance(value, Interval):
        return value
    if isinstance(value, TaylorModel):
        return value.interval()
    return Interval(float(value))


class DerivativeProvider:
    """
    Derivatives of ``f`` with respect to ``z = (x, u)``.

    Parameters
    ----------
    rhs : sympy.Matrix
        Vector field (n, 1)
    states : list
        State symbols
    inputs : list
        Input symbols
    """

    def __init__(self, rhs: sp.Matrix, states: Sequence[sp.Symbol], inputs: Sequence[sp.Symbol]):
        self.rhs = rhs
        self.states = list(states)
        self.inputs = list(inputs)
        self.variables = self.states + self.inputs
        self.n = len(self.states)
        self.m = len(self.inputs)

        jac_x = rhs.jacobian(self.states)
        jac_u = rhs.jacobian(self.inputs)
        self._jacobians = sp.lambdify([self.states, self.inputs], [jac_x, jac_u], modules="numpy")

        self._hessian_exprs = None
        self._hessian_funcs = None
        self._hessian_entries = None
        self._third_entries = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # symbolic derivatives
    # ------------------------------------------------------------------

    def hessian_exprs(self) -> List[sp.Matrix]:
        """Hessian of every component of ``f`` w.r.t. ``z``."""
        with self._lock:
            if self._hessian_exprs is None:
                self._hessian_exprs = [sp.hessian(fi, self.variables) for fi in self.rhs]
        return self._hessian_exprs

    def third_order_exprs(self) -> List[Dict[Tuple[int, int, int], sp.Expr]]:
        """Non-zero third derivatives ``d3 f_i / dz_j dz_k dz_l`` for ``j <= k <= l``."""
        tensors = []
        N = len(self.variables)
        for H in self.hessian_exprs():
            entries = {}
            for j, k, l in itertools.combinations_with_replacement(range(N), 3):
                expr = sp.diff(H[j, k], self.variables[l])
                if expr != 0:
                    entries[(j, k, l)] = expr
            tensors.append(entries)
        return tensors

    # ------------------------------------------------------------------
    # point evaluation
    # ------------------------------------------------------------------

    def jacobians(self, x, u) -> Tuple[np.ndarray, np.ndarray]:
        A, B = self._jacobians(np.asarray(x, dtype=float), np.asarray(u, dtype=float))
        return (
            np.asarray(A, dtype=float).reshape(self.n, self.n),
            np.asarray(B, dtype=float).reshape(self.n, self.m),
        )

    def hessians(self, x, u) -> List[np.ndarray]:
        """Numeric Hessians at ``(x, u)``, one (n+m, n+m) matrix per state."""
        with self._lock:
            if self._hessian_funcs is None:
                self._hessian_funcs = [
                    sp.lambdify([self.states, self.inputs], H, modules="numpy") for H in self.hessian_exprs()
                ]
        N = len(self.variables)
        x = np.asarray(x, dtype=float)
        u = np.asarray(u, dtype=float)
        return [np.asarray(func(x, u), dtype=float).reshape(N, N) for func in self._hessian_funcs]

    # ------------------------------------------------------------------
    # range bounds
    # ------------------------------------------------------------------

    def _range_arguments(self, box: Interval, method: str, tm_order: int):
        if method == "interval":
            return [box[j] for j in range(box.inf.size)]
        if method == "taylor_model":
            return TaylorModel.variables(box, max_order=tm_order)
        raise ConfigurationError(f"Unknown range bounding method: {method}. Valid: {RANGE_METHODS}")

    def hessian_bounds(self, box: Interval, method: str = "interval", tm_order: int = 3) -> List[Interval]:
        """
        Interval Hessians over ``box`` (the hull of states and inputs).
        """
        with self._lock:
            if self._hessian_entries is None:
                compiled = []
                for H in self.hessian_exprs():
                    flat = list(H)
                    funcs = lambdify_entries(self.variables, flat)
                    nonzero = [idx for idx, expr in enumerate(flat) if expr != 0]
                    compiled.append((funcs, nonzero))
                self._hessian_entries = compiled
        N = len(self.variables)
        args = self._range_arguments(box, method, tm_order)
        bounds = []
        for funcs, nonzero in self._hessian_entries:
            inf = np.zeros(N * N)
            sup = np.zeros(N * N)
            for idx in nonzero:
                value = _to_interval(funcs[idx](*args))
                inf[idx], sup[idx] = value.inf, value.sup
            bounds.append(Interval(inf.reshape(N, N), sup.reshape(N, N), check=False))
        return bounds

    def third_order_bounds(
        self, box: Interval, method: str = "interval", tm_order: int = 3
    ) -> List[Dict[Tuple[int, int, int], Interval]]:
        """Interval bounds of the non-zero third derivatives over ``box``."""
        with self._lock:
            if self._third_entries is None:
                compiled = []
                for entries in self.third_order_exprs():
                    keys = list(entries)
                    funcs = lambdify_entries(self.variables, [entries[k] for k in keys])
                    compiled.append(list(zip(keys, funcs)))
                self._third_entries = compiled
        args = self._range_arguments(box, method, tm_order)
        return [{key: _to_interval(func(*args)) for key, func in entries} for entries in self._third_entries]
