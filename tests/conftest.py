"""
Pytest configuration and shared fixtures for setreach tests.
"""

import numpy as np
import pytest

from setreach.dynamics import LinearSystem, NonlinearSystem
from setreach.sets import Zonotope


@pytest.fixture
def rng():
    """Seeded random generator for sampling-based checks."""
    return np.random.default_rng(1234)


@pytest.fixture
def unit_box():
    """Square [-1, 1]^2 as a zonotope."""
    return Zonotope.from_box([-1.0, -1.0], [1.0, 1.0])


@pytest.fixture
def skewed_zonotope():
    """Two-dimensional zonotope with three non-aligned generators."""
    return Zonotope([1.0, 0.0], [[1.0, 0.5, 0.2], [0.0, 1.0, -0.3]])


@pytest.fixture
def falling_ball():
    """Point mass under gravity: x' = v, v' = -9.81."""
    # State: [height, velocity]
    A = np.array([[0.0, 1.0], [0.0, 0.0]])
    B = np.zeros((2, 1))
    c = np.array([0.0, -9.81])
    return LinearSystem(A, B, c, name="falling_ball")


@pytest.fixture
def mass_spring_damper():
    """Damped oscillator with a force input: x' = v, v' = -2x - 0.5v + u."""
    A = np.array([[0.0, 1.0], [-2.0, -0.5]])
    B = np.array([[0.0], [1.0]])
    return LinearSystem(A, B, name="mass_spring_damper")


@pytest.fixture
def van_der_pol():
    """Van der Pol oscillator with mu = 1."""
    return NonlinearSystem.from_strings(
        ["y", "mu * (1 - x**2) * y - x"],
        states=["x", "y"],
        params={"mu": 1.0},
        name="van_der_pol",
    )


@pytest.fixture
def pendulum():
    """Pendulum with damping and a torque input."""
    return NonlinearSystem.from_strings(
        ["omega", "-9.81 * sin(theta) - 0.1 * omega + tau"],
        states=["theta", "omega"],
        inputs=["tau"],
        name="pendulum",
    )


@pytest.fixture
def request_yaml():
    """A small nonlinear reachability request."""
    return """
request:
  name: vdp
  system:
    type: nonlinear
    states: [x, y]
    equations:
      - "y"
      - "mu * (1 - x**2) * y - x"
    params:
      mu: 1.0
  initial_set:
    inf: [1.25, 2.25]
    sup: [1.35, 2.35]
  options:
    t_final: 0.1
    time_step: 0.02
    zonotope_order: 20
"""
