"""
Simulation of trajectories for validating reachable sets.
"""

from setreach.sim.simulate import Trajectory, simulate, simulate_random

__all__ = ["Trajectory", "simulate", "simulate_random"]
