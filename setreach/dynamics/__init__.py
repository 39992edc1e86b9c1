"""
Continuous dynamics, classification and linearization.
"""

from setreach.dynamics.classification import DynamicsClass, as_linear, classify_dynamics
from setreach.dynamics.systems import LinearSystem, NonlinearSystem
from setreach.dynamics.derivatives import DerivativeProvider
from setreach.dynamics.linearization import (
    LinearizedModel,
    abstraction_remainder,
    linearize,
    linearize_at,
)

__all__ = [
    "DerivativeProvider",
    "DynamicsClass",
    "LinearSystem",
    "LinearizedModel",
    "NonlinearSystem",
    "abstraction_remainder",
    "as_linear",
    "classify_dynamics",
    "linearize",
    "linearize_at",
]
