"""
Continuous dynamics: linear systems ``x' = A x + B u + c`` and general
nonlinear systems ``x' = f(x, u)`` given symbolically.

Both classes share the same small interface (``dim``, ``n_inputs``,
``evaluate``, ``symbolic_rhs``, ``kind``) so the propagator can dispatch on
``kind`` without a class hierarchy.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Optional, Sequence

import numpy as np
import sympy as sp

from setreach.dynamics.classification import DynamicsClass
from setreach.errors import ConfigurationError
from setreach.sets.elementary import check_supported


def _symbols(prefix: str, count: int) -> list:
    return list(sp.symbols(f"{prefix}0:{count}"))


class LinearSystem:
    """
    Linear time-invariant system ``x' = A x + B u + c``.

    Attributes
    ----------
    A : np.ndarray
        System matrix (n, n)
    B : np.ndarray
        Input matrix (n, m); defaults to a single zero input column
    c : np.ndarray
        Constant offset (n,), models constant inputs
    name : str
        Name used in logs and derived systems
    """

    kind = DynamicsClass.LINEAR

    def __init__(self, A, B=None, c=None, name: str = "linear_system"):
        A = np.atleast_2d(np.asarray(A, dtype=float))
        n = A.shape[0]
        if A.shape != (n, n):
            raise ConfigurationError(f"System matrix must be square, got shape {A.shape}")
        B = np.zeros((n, 1)) if B is None else np.asarray(B, dtype=float).reshape(n, -1)
        if B.shape[1] == 0:
            B = np.zeros((n, 1))
        c = np.zeros(n) if c is None else np.asarray(c, dtype=float).reshape(-1)
        if c.size != n:
            raise ConfigurationError(f"Offset c has {c.size} entries, expected {n}")
        for array in (A, B, c):
            array.setflags(write=False)
        self.A, self.B, self.c = A, B, c
        self.name = name

    @property
    def dim(self) -> int:
        return self.A.shape[0]

    @property
    def n_inputs(self) -> int:
        return self.B.shape[1]

    def __repr__(self) -> str:
        return f"LinearSystem(name={self.name!r}, dim={self.dim}, inputs={self.n_inputs})"

    def evaluate(self, x, u=None) -> np.ndarray:
        x = np.asarray(x, dtype=float).reshape(-1)
        u = np.zeros(self.n_inputs) if u is None else np.asarray(u, dtype=float).reshape(-1)
        return self.A @ x + self.B @ u + self.c

    def symbolic_rhs(self, x=None, u=None) -> sp.Matrix:
        x = sp.Matrix(_symbols("x", self.dim) if x is None else list(x))
        u = sp.Matrix(_symbols("u", self.n_inputs) if u is None else list(u))
        return sp.Matrix(self.A) * x + sp.Matrix(self.B) * u + sp.Matrix(self.c)


class NonlinearSystem:
    """
    Nonlinear system ``x' = f(x, u)`` with a symbolic right-hand side.

    Attributes
    ----------
    rhs : sympy.Matrix
        Vector field (n, 1) in terms of ``states`` and ``inputs``
    states : list
        State symbols
    inputs : list
        Input symbols (at least one; a dummy input is added if none is given)
    name : str
        Name used in logs and derived systems
    """

    kind = DynamicsClass.NONLINEAR

    def __init__(self, rhs, states: Sequence[sp.Symbol], inputs: Optional[Sequence[sp.Symbol]] = None,
                 name: str = "nonlinear_system"):
        rhs = sp.Matrix(rhs).reshape(len(rhs), 1)
        states = list(states)
        inputs = list(inputs or [])
        if rhs.shape[0] != len(states):
            raise ConfigurationError(f"Vector field has {rhs.shape[0]} entries but there are {len(states)} states")
        if not inputs:
            inputs = [sp.Symbol("u_dummy")]
        unknown = rhs.free_symbols - set(states) - set(inputs)
        if unknown:
            raise ConfigurationError(f"Vector field depends on undeclared symbols: {sorted(map(str, unknown))}")
        for expr in rhs:
            check_supported(expr)

        self.rhs = rhs
        self.states = states
        self.inputs = inputs
        self.name = name
        self._derivatives = None
        self._lock = threading.Lock()
        self._f = sp.lambdify([states, inputs], rhs, modules="numpy")

    @classmethod
    def from_function(cls, fun: Callable, n: int, m: int = 1, name: str = "nonlinear_system") -> "NonlinearSystem":
        """
        Trace ``fun(x, u)`` on symbolic arguments.

        ``fun`` receives sympy column vectors and must use sympy-compatible
        operations (``sympy.sin`` and friends); it must return ``n`` entries.
        """
        states = _symbols("x", n)
        inputs = _symbols("u", max(m, 1))
        out = fun(sp.Matrix(states), sp.Matrix(inputs))
        rhs = sp.Matrix(list(out) if not isinstance(out, sp.MatrixBase) else out)
        return cls(rhs, states, inputs, name=name)

    @classmethod
    def from_strings(
        cls,
        equations: Sequence[str],
        states: Sequence[str],
        inputs: Optional[Sequence[str]] = None,
        params: Optional[Dict[str, float]] = None,
        name: str = "nonlinear_system",
    ) -> "NonlinearSystem":
        """Parse right-hand side expressions; ``params`` are substituted by value."""
        state_syms = [sp.Symbol(s) for s in states]
        input_syms = [sp.Symbol(s) for s in (inputs or [])]
        params = params or {}
        local = {str(s): s for s in state_syms + input_syms}
        local.update({k: sp.Float(v) for k, v in params.items()})
        try:
            rhs = [sp.sympify(eq, locals=local) for eq in equations]
        except (sp.SympifyError, SyntaxError, TypeError) as exc:
            raise ConfigurationError(f"Cannot parse dynamics equations: {exc}") from exc
        return cls(rhs, state_syms, input_syms, name=name)

    @property
    def dim(self) -> int:
        return len(self.states)

    @property
    def n_inputs(self) -> int:
        return len(self.inputs)

    @property
    def derivatives(self):
        """Cached :class:`~setreach.dynamics.derivatives.DerivativeProvider`."""
        with self._lock:
            if self._derivatives is None:
                from setreach.dynamics.derivatives import DerivativeProvider

                self._derivatives = DerivativeProvider(self.rhs, self.states, self.inputs)
        return self._derivatives

    def __repr__(self) -> str:
        return f"NonlinearSystem(name={self.name!r}, dim={self.dim}, inputs={self.n_inputs})"

    def evaluate(self, x, u=None) -> np.ndarray:
        x = np.asarray(x, dtype=float).reshape(-1)
        u = np.zeros(self.n_inputs) if u is None else np.asarray(u, dtype=float).reshape(-1)
        return np.asarray(self._f(x, u), dtype=float).reshape(-1)

    def symbolic_rhs(self, x=None, u=None) -> sp.Matrix:
        if x is None and u is None:
            return self.rhs
        subs = {}
        if x is not None:
            subs.update(dict(zip(self.states, list(x))))
        if u is not None:
            subs.update(dict(zip(self.inputs, list(u))))
        return self.rhs.subs(subs, simultaneous=True)
