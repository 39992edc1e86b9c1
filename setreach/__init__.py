__version__ = "0.1.0"
__author__ = "setreach developers"
__license__ = "Apache-2.0"


# Lazy-load optional subpackages (plotting pulls in matplotlib).
import importlib
from typing import Any

from setreach.config import AdaptiveOptions, ReachOptions, ReachRequest
from setreach.dynamics import LinearSystem, NonlinearSystem
from setreach.errors import ReachError
from setreach.flowpipe import Flowpipe, propagate, propagate_many
from setreach.hybrid import Location, Transition, intersect_guard
from setreach.sets import ConstrainedHyperplane, Halfspace, Interval, PolyZonotope, TaylorModel, Zonotope

__all__ = [
    "AdaptiveOptions",
    "ConstrainedHyperplane",
    "Flowpipe",
    "Halfspace",
    "Interval",
    "LinearSystem",
    "Location",
    "NonlinearSystem",
    "PolyZonotope",
    "ReachError",
    "ReachOptions",
    "ReachRequest",
    "TaylorModel",
    "Transition",
    "Zonotope",
    "intersect_guard",
    "plotting",
    "propagate",
    "propagate_many",
    "sim",
]

_SUBMODULES = {
    "plotting": "setreach.plotting",
    "sim": "setreach.sim",
}


def __getattr__(name: str) -> Any:
    if name in _SUBMODULES:
        module = importlib.import_module(_SUBMODULES[name])
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__} has no attribute {name!r}")
