"""
Elementary functions that dispatch on the argument type.

Symbolic expressions are compiled with :func:`sympy.lambdify` against
:data:`NAMESPACE`, so the same expression can be evaluated on floats,
numpy arrays, :class:`~setreach.sets.interval.Interval` objects or
:class:`~setreach.sets.taylor_model.TaylorModel` objects.
"""

from __future__ import annotations

from typing import Callable, List, Sequence

import numpy as np
import sympy as sp

from setreach.errors import ConfigurationError

SUPPORTED_FUNCTIONS = frozenset({"sin", "cos", "tan", "exp", "log"})


def _dispatch(name: str, numpy_func: Callable) -> Callable:
    def func(x):
        method = getattr(x, name, None)
        if method is not None and not isinstance(x, np.ndarray):
            return method()
        return numpy_func(x)

    func.__name__ = name
    return func


sin = _dispatch("sin", np.sin)
cos = _dispatch("cos", np.cos)
tan = _dispatch("tan", np.tan)
exp = _dispatch("exp", np.exp)
log = _dispatch("log", np.log)
sqrt = _dispatch("sqrt", np.sqrt)

NAMESPACE = {
    "sin": sin,
    "cos": cos,
    "tan": tan,
    "exp": exp,
    "log": log,
    "sqrt": sqrt,
    "pi": np.pi,
    "E": np.e,
    "e": np.e,
}


def check_supported(expr: sp.Expr) -> None:
    """Raise :class:`ConfigurationError` if ``expr`` uses a function without a range extension."""
    unsupported = {type(f).__name__ for f in sp.sympify(expr).atoms(sp.Function)} - SUPPORTED_FUNCTIONS
    if unsupported:
        raise ConfigurationError(
            f"Unsupported functions in dynamics: {sorted(unsupported)}. "
            f"Supported: {sorted(SUPPORTED_FUNCTIONS)}"
        )


def lambdify_entries(symbols: Sequence[sp.Symbol], exprs: Sequence[sp.Expr]) -> List[Callable]:
    """
    Compile every scalar expression separately.

    Constant entries are returned as callables producing a float so callers
    can treat all entries uniformly.
    """
    compiled = []
    for expr in exprs:
        expr = sp.sympify(expr)
        if not expr.free_symbols:
            value = float(expr)
            compiled.append(lambda *args, _v=value: _v)
        else:
            compiled.append(sp.lambdify(list(symbols), expr, modules=[NAMESPACE]))
    return compiled
