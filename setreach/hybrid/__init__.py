"""
Hybrid automata: locations, transitions and guard intersection.
"""

from setreach.hybrid.location import Location, Transition
from setreach.hybrid.pancake import intersect_guard, jump_search, orient_halfspace, scaled_options, scaled_system

__all__ = [
    "Location",
    "Transition",
    "intersect_guard",
    "jump_search",
    "orient_halfspace",
    "scaled_options",
    "scaled_system",
]
