"""
Set representations: intervals, zonotopes, polynomial zonotopes, Taylor
models and guard sets.
"""

from setreach.sets.interval import Interval, as_interval
from setreach.sets.zonotope import Zonotope, as_zonotope
from setreach.sets.poly_zonotope import PolyZonotope
from setreach.sets.taylor_model import TaylorModel
from setreach.sets.halfspace import ConstrainedHyperplane, Halfspace

__all__ = [
    "ConstrainedHyperplane",
    "Halfspace",
    "Interval",
    "PolyZonotope",
    "TaylorModel",
    "Zonotope",
    "as_interval",
    "as_zonotope",
]
