"""
Flowpipe propagation for linear and nonlinear continuous dynamics.
"""

from setreach.flowpipe.flowpipe import Flowpipe, StepRecord, TimeInterval
from setreach.flowpipe.linear import ExponentialTerms, exponential_terms, input_solution, linear_step
from setreach.flowpipe.nonlinear import StepResult, nonlinear_step
from setreach.flowpipe.propagate import propagate, propagate_many

__all__ = [
    "ExponentialTerms",
    "Flowpipe",
    "StepRecord",
    "StepResult",
    "TimeInterval",
    "exponential_terms",
    "input_solution",
    "linear_step",
    "nonlinear_step",
    "propagate",
    "propagate_many",
]
