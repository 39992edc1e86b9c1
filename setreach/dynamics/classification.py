from __future__ import annotations

from enum import Enum

import numpy as np
import sympy as sp


class DynamicsClass(str, Enum):
    LINEAR = "linear"
    NONLINEAR = "nonlinear"


def _sympy_is_linear(rhs: sp.Matrix, symbols) -> bool:
    """
    Declare linear if all second derivatives w.r.t. states/inputs vanish.
    """
    for expr in rhs:
        for i, zi in enumerate(symbols):
            first = sp.diff(expr, zi)
            for zj in symbols[i:]:
                if sp.simplify(sp.diff(first, zj)) != 0:
                    return False
    return True


def classify_dynamics(system) -> DynamicsClass:
    """
    Classify a system into linear / nonlinear.

    Linear systems are always linear; a nonlinear system is reported linear
    when its vector field is affine in states and inputs.
    """
    if system.kind is DynamicsClass.LINEAR:
        return DynamicsClass.LINEAR
    if _sympy_is_linear(system.rhs, list(system.states) + list(system.inputs)):
        return DynamicsClass.LINEAR
    return DynamicsClass.NONLINEAR


def as_linear(system):
    """
    Convert an affine nonlinear system into a :class:`LinearSystem`.
    """
    from setreach.dynamics.systems import LinearSystem
    from setreach.errors import ConfigurationError

    if system.kind is DynamicsClass.LINEAR:
        return system
    if classify_dynamics(system) is not DynamicsClass.LINEAR:
        raise ConfigurationError(f"{system!r} is not affine in its states and inputs")
    zero = {s: 0 for s in list(system.states) + list(system.inputs)}
    A = np.array(system.rhs.jacobian(system.states).subs(zero), dtype=float)
    B = np.array(system.rhs.jacobian(system.inputs).subs(zero), dtype=float)
    c = np.array(system.rhs.subs(zero), dtype=float).reshape(-1)
    return LinearSystem(A, B, c, name=system.name)
