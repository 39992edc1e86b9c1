"""
Zonotopes: ``{c + G b : b in [-1, 1]^k}``.

Zonotopes are the main set representation of the flowpipe propagator. All
operations return new objects; center and generator arrays are read-only.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import cvxpy as cp
import numpy as np

from setreach.errors import ConfigurationError, DegenerateSetError
from setreach.sets.interval import Interval

logger = logging.getLogger(__name__)

_LP_SOLVERS = [cp.CLARABEL, cp.ECOS, cp.SCS]


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=float)
    array.setflags(write=False)
    return array


class Zonotope:
    """
    Zonotope with center ``c`` (n,) and generator matrix ``G`` (n, k).

    Attributes
    ----------
    center : np.ndarray
        Center vector
    generators : np.ndarray
        Generator matrix, one generator per column
    """

    __array_ufunc__ = None

    def __init__(self, center, generators=None):
        center = np.asarray(center, dtype=float).reshape(-1)
        if generators is None:
            generators = np.zeros((center.size, 0))
        generators = np.asarray(generators, dtype=float)
        if generators.ndim == 1:
            generators = generators.reshape(-1, 1)
        if generators.shape[0] != center.size:
            raise ConfigurationError(
                f"Generator matrix has {generators.shape[0]} rows, expected {center.size}"
            )
        self.center = _frozen(center)
        self.generators = _frozen(generators)

    # ------------------------------------------------------------------
    # constructors and conversions
    # ------------------------------------------------------------------

    @classmethod
    def from_interval(cls, interval: Interval) -> "Zonotope":
        """Axis-aligned box as a zonotope; degenerate directions get no generator."""
        radius = np.asarray(interval.radius, dtype=float).reshape(-1)
        G = np.diag(radius)[:, radius > 0.0]
        return cls(np.asarray(interval.center).reshape(-1), G)

    @classmethod
    def from_box(cls, lower, upper) -> "Zonotope":
        return cls.from_interval(Interval(lower, upper))

    @classmethod
    def point(cls, x) -> "Zonotope":
        return cls(x)

    @property
    def dim(self) -> int:
        return self.center.size

    @property
    def num_generators(self) -> int:
        return self.generators.shape[1]

    @property
    def order(self) -> float:
        return self.num_generators / self.dim

    def __repr__(self) -> str:
        return f"Zonotope(dim={self.dim}, generators={self.num_generators})"

    def interval(self) -> Interval:
        """Interval hull."""
        delta = np.abs(self.generators).sum(axis=1)
        return Interval(self.center - delta, self.center + delta, check=False)

    def zonotope(self) -> "Zonotope":
        return self

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.center)) and np.all(np.isfinite(self.generators)))

    def compact(self, tol: float = 0.0) -> "Zonotope":
        """Drop generators whose entries are all at most ``tol`` in magnitude."""
        keep = np.any(np.abs(self.generators) > tol, axis=0)
        return Zonotope(self.center, self.generators[:, keep])

    def project(self, dims: Sequence[int]) -> "Zonotope":
        dims = list(dims)
        return Zonotope(self.center[dims], self.generators[dims, :])

    # ------------------------------------------------------------------
    # set operations
    # ------------------------------------------------------------------

    def linear_map(self, matrix) -> "Zonotope":
        """
        Image under a real or interval matrix.

        An interval matrix ``M = Mc +/- Mr`` is handled by mapping with
        ``Mc`` and adding the box ``Mr |Z|``, where ``|Z|`` bounds the
        absolute value of every point of the zonotope.
        """
        if isinstance(matrix, Interval):
            Mc, Mr = matrix.center, matrix.radius
            mapped = Zonotope(Mc @ self.center, Mc @ self.generators)
            if not np.any(Mr):
                return mapped
            bound = np.abs(self.center) + np.abs(self.generators).sum(axis=1)
            return mapped + Zonotope.from_interval(Interval.from_center_radius(np.zeros(Mr.shape[0]), Mr @ bound))
        M = np.atleast_2d(np.asarray(matrix, dtype=float))
        if M.shape[1] != self.dim:
            raise ConfigurationError(f"Cannot map a {self.dim}-dimensional zonotope with a {M.shape} matrix")
        return Zonotope(M @ self.center, M @ self.generators)

    def __rmatmul__(self, matrix):
        if isinstance(matrix, (np.ndarray, list, tuple, Interval)):
            return self.linear_map(matrix)
        return NotImplemented

    def __mul__(self, scalar):
        if isinstance(scalar, (int, float, np.floating, np.integer)):
            return Zonotope(scalar * self.center, scalar * self.generators)
        return NotImplemented

    __rmul__ = __mul__

    def __neg__(self) -> "Zonotope":
        return Zonotope(-self.center, -self.generators)

    def __add__(self, other):
        """Minkowski sum with a zonotope or interval, translation by a vector."""
        if isinstance(other, Zonotope):
            if other.dim != self.dim:
                raise ConfigurationError(f"Dimension mismatch in Minkowski sum: {self.dim} vs {other.dim}")
            return Zonotope(self.center + other.center, np.hstack([self.generators, other.generators]))
        if isinstance(other, Interval):
            return self + Zonotope.from_interval(other)
        if isinstance(other, (np.ndarray, list, tuple, int, float)):
            return Zonotope(self.center + np.asarray(other, dtype=float).reshape(-1), self.generators)
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, (np.ndarray, list, tuple, int, float)):
            return Zonotope(self.center - np.asarray(other, dtype=float).reshape(-1), self.generators)
        if isinstance(other, (Zonotope, Interval)):
            # Minkowski sum with the negated set
            return self + (-_as_zonotope(other))
        return NotImplemented

    def enclose(self, other: "Zonotope") -> "Zonotope":
        """Zonotope enclosing the convex hull of ``self`` and ``other``."""
        G1, G2 = self.generators, other.generators
        k1, k2 = G1.shape[1], G2.shape[1]
        if k1 < k2:
            G1 = np.hstack([G1, np.zeros((self.dim, k2 - k1))])
        elif k2 < k1:
            G2 = np.hstack([G2, np.zeros((self.dim, k1 - k2))])
        c1, c2 = self.center, other.center
        G = np.hstack([0.5 * (G1 + G2), 0.5 * (c1 - c2).reshape(-1, 1), 0.5 * (G1 - G2)])
        return Zonotope(0.5 * (c1 + c2), G).compact()

    def cartesian_product(self, other: "Zonotope") -> "Zonotope":
        other = _as_zonotope(other)
        G = np.block(
            [
                [self.generators, np.zeros((self.dim, other.num_generators))],
                [np.zeros((other.dim, self.num_generators)), other.generators],
            ]
        )
        return Zonotope(np.concatenate([self.center, other.center]), G)

    def quad_map(self, Q: Sequence[np.ndarray]) -> "Zonotope":
        """
        Enclosure of ``{(x^T Q_i x)_i : x in Z}``.

        Squared factors ``b_j^2`` lie in ``[0, 1]`` and are written as
        ``0.5 + 0.5 [-1, 1]``; mixed products keep one generator each.
        """
        Zmat = np.hstack([self.center.reshape(-1, 1), self.generators])
        k = self.num_generators
        lower = np.tril_indices(k + 1, -1)
        centers = np.zeros(len(Q))
        gens = np.zeros((len(Q), k + lower[0].size))
        for i, Qi in enumerate(Q):
            Qi = np.asarray(Qi, dtype=float)
            if not np.any(Qi):
                continue
            quad = Zmat.T @ Qi @ Zmat
            diag = np.diag(quad)[1:]
            centers[i] = quad[0, 0] + 0.5 * diag.sum()
            gens[i, :k] = 0.5 * diag
            gens[i, k:] = (quad + quad.T)[lower]
        return Zonotope(centers, gens).compact()

    def reduce(self, order: float) -> "Zonotope":
        """
        Girard order reduction to at most ``order * n`` generators.

        Generators are ranked by ``||g||_1 - ||g||_inf`` with a stable sort
        (ties keep their index order) and the smallest ones are replaced by
        their interval hull.
        """
        Z = self.compact()
        n, k = Z.dim, Z.num_generators
        if k <= order * n:
            return Z
        n_keep = max(int(np.floor(n * (order - 1))), 0)
        n_reduce = k - n_keep
        G = Z.generators
        metric = np.abs(G).sum(axis=0) - np.abs(G).max(axis=0)
        idx = np.argsort(metric, kind="stable")
        reduced, kept = G[:, idx[:n_reduce]], G[:, idx[n_reduce:]]
        box = np.diag(np.abs(reduced).sum(axis=1))
        result = Zonotope(Z.center, np.hstack([kept, box])).compact()
        if not result.is_finite():
            raise DegenerateSetError(f"Order reduction of {self!r} produced a non-finite set")
        return result

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def support_function(self, direction, bound: str = "upper") -> float:
        """
        Support function value ``max/min {direction . x : x in Z}``.

        Parameters
        ----------
        direction : array_like
            Direction vector
        bound : str
            "upper" or "lower"
        """
        direction = np.asarray(direction, dtype=float).reshape(-1)
        projected = float(direction @ self.center)
        spread = float(np.abs(direction @ self.generators).sum())
        if bound == "upper":
            return projected + spread
        if bound == "lower":
            return projected - spread
        raise ConfigurationError(f"Unknown support function bound: {bound}")

    def contains(self, points, tol: float = 1e-7) -> Union[bool, np.ndarray]:
        """
        Exact point containment via the linear program

            min t  s.t.  G b = p - c,  -t <= b <= t.

        ``points`` may be a single point (n,) or columns (n, N); the result is
        a bool or a boolean array accordingly.
        """
        points = np.asarray(points, dtype=float)
        single = points.ndim == 1
        points = points.reshape(self.dim, -1)
        hull = self.interval()
        result = np.zeros(points.shape[1], dtype=bool)

        problem = None
        for j in range(points.shape[1]):
            p = points[:, j]
            if not hull.contains(p, tol):
                continue
            if self.num_generators == 0:
                result[j] = bool(np.all(np.abs(p - self.center) <= tol))
                continue
            if problem is None:
                target = cp.Parameter(self.dim)
                beta = cp.Variable(self.num_generators)
                t = cp.Variable()
                problem = cp.Problem(
                    cp.Minimize(t),
                    [self.generators @ beta == target, beta <= t, -beta <= t],
                )
            target.value = p - self.center
            value = _solve_lp(problem)
            result[j] = value is not None and value <= 1.0 + tol
        return bool(result[0]) if single else result

    def random_points(self, count: int, rng: Optional[np.random.Generator] = None, extreme: bool = False) -> np.ndarray:
        """Sample points as columns; ``extreme`` samples sign vectors (vertex candidates)."""
        rng = np.random.default_rng() if rng is None else rng
        if extreme:
            beta = rng.choice([-1.0, 1.0], size=(self.num_generators, count))
        else:
            beta = rng.uniform(-1.0, 1.0, size=(self.num_generators, count))
        return self.center.reshape(-1, 1) + self.generators @ beta

    def polygon(self) -> np.ndarray:
        """Vertices (2, N) of a two-dimensional zonotope in counter-clockwise order."""
        if self.dim != 2:
            raise ConfigurationError("polygon() requires a two-dimensional zonotope")
        G = self.compact().generators.copy()
        if G.shape[1] == 0:
            return self.center.reshape(2, 1)
        G[:, G[1, :] < 0] *= -1.0
        angles = np.arctan2(G[1, :], G[0, :])
        G = G[:, np.argsort(angles, kind="stable")]
        start = self.center - G.sum(axis=1)
        steps = np.hstack([2.0 * G, -2.0 * G])
        return start.reshape(2, 1) + np.hstack([np.zeros((2, 1)), np.cumsum(steps, axis=1)[:, :-1]])


def _solve_lp(problem: cp.Problem) -> Optional[float]:
    installed = set(cp.installed_solvers())
    for solver in _LP_SOLVERS:
        if solver not in installed:
            continue
        try:
            problem.solve(solver=solver)
        except cp.error.SolverError:
            continue
        if problem.status in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE):
            return float(problem.value)
        if problem.status in (cp.INFEASIBLE, cp.INFEASIBLE_INACCURATE):
            return None
    logger.debug("Containment LP ended with status %s", problem.status)
    return None


def _as_zonotope(value) -> Zonotope:
    if isinstance(value, Zonotope):
        return value
    if isinstance(value, Interval):
        return Zonotope.from_interval(value)
    if hasattr(value, "zonotope"):
        return value.zonotope()
    return Zonotope(value)


def as_zonotope(value) -> Zonotope:
    """Convert an interval, vector or polynomial zonotope to a zonotope."""
    return _as_zonotope(value)
