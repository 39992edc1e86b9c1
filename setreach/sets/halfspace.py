"""
Halfspaces and constrained hyperplanes (guard sets).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from setreach.errors import ConfigurationError


def _support(set_, direction: np.ndarray, bound: str) -> float:
    if hasattr(set_, "support_function"):
        return set_.support_function(direction, bound)
    point = np.asarray(set_, dtype=float).reshape(-1)
    return float(direction @ point)


@dataclass(frozen=True, eq=False)
class Halfspace:
    """
    Halfspace ``{x : c . x <= d}``.

    Attributes
    ----------
    c : np.ndarray
        Normal vector
    d : float
        Offset
    """

    c: np.ndarray
    d: float

    def __post_init__(self):
        c = np.asarray(self.c, dtype=float).reshape(-1)
        if not np.any(c):
            raise ConfigurationError("Halfspace normal vector must be non-zero")
        object.__setattr__(self, "c", c)
        object.__setattr__(self, "d", float(self.d))

    @property
    def dim(self) -> int:
        return self.c.size

    def contains(self, point, tol: float = 0.0) -> bool:
        return bool(self.c @ np.asarray(point, dtype=float).reshape(-1) <= self.d + tol)

    def flip(self) -> "Halfspace":
        """Complementary closed halfspace ``{x : -c . x <= -d}``."""
        return Halfspace(-self.c, -self.d)

    def distance(self, set_) -> float:
        """Signed distance ``max c . x - d`` over the set (positive: partly outside)."""
        return _support(set_, self.c, "upper") - self.d

    def intersects(self, set_) -> bool:
        """True if some point of the set satisfies ``c . x <= d``."""
        return _support(set_, self.c, "lower") <= self.d


@dataclass(frozen=True, eq=False)
class ConstrainedHyperplane:
    """
    Hyperplane ``{x : c . x = d}`` restricted by ``C x <= e``.

    Attributes
    ----------
    c : np.ndarray
        Normal vector of the hyperplane
    d : float
        Offset of the hyperplane
    C : np.ndarray or None
        Constraint matrix of the restricting polytope
    e : np.ndarray or None
        Constraint offsets
    """

    c: np.ndarray
    d: float
    C: Optional[np.ndarray] = None
    e: Optional[np.ndarray] = None
    halfspace: Halfspace = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        hs = Halfspace(self.c, self.d)
        object.__setattr__(self, "c", hs.c)
        object.__setattr__(self, "d", hs.d)
        object.__setattr__(self, "halfspace", hs)
        if (self.C is None) != (self.e is None):
            raise ConfigurationError("Constraint matrix C and offsets e must be given together")
        if self.C is not None:
            C = np.atleast_2d(np.asarray(self.C, dtype=float))
            e = np.asarray(self.e, dtype=float).reshape(-1)
            if C.shape != (e.size, hs.dim):
                raise ConfigurationError(f"Constraint matrix shape {C.shape} does not match e ({e.size}) and dimension {hs.dim}")
            object.__setattr__(self, "C", C)
            object.__setattr__(self, "e", e)

    @property
    def dim(self) -> int:
        return self.c.size

    def contains(self, point, tol: float = 1e-9) -> bool:
        point = np.asarray(point, dtype=float).reshape(-1)
        if abs(self.c @ point - self.d) > tol:
            return False
        if self.C is not None and np.any(self.C @ point > self.e + tol):
            return False
        return True

    def may_intersect(self, set_) -> bool:
        """
        False if the set provably misses the guard: the plane does not pass
        through it or one constraint ``C_i x <= e_i`` excludes all of it.
        """
        hs = self.halfspace
        if not (hs.intersects(set_) and hs.flip().intersects(set_)):
            return False
        if self.C is None:
            return True
        return all(_support(set_, row, "lower") <= bound for row, bound in zip(self.C, self.e))

    def projection(self):
        """Affine map ``x -> P x + t`` onto the hyperplane, as ``(P, t)``."""
        norm2 = float(self.c @ self.c)
        P = np.eye(self.dim) - np.outer(self.c, self.c) / norm2
        return P, self.d * self.c / norm2

    def project(self, set_):
        """Orthogonal projection of a set (or point) onto the hyperplane."""
        P, t = self.projection()
        if hasattr(set_, "linear_map"):
            return set_.linear_map(P) + t
        return P @ np.asarray(set_, dtype=float).reshape(-1) + t
