"""
Sparse polynomial zonotopes.

A polynomial zonotope is the set

    { c + sum_j G[:, j] * prod_k a_k^E[k, j] + Grest b : a in [-1,1]^p, b in [-1,1]^q }

where the dependent factors ``a_k`` carry identifiers ``ids[k]`` so that two
polynomial zonotopes built from the same initial set keep their dependency
under exact addition.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from setreach.errors import ConfigurationError, DegenerateSetError
from setreach.sets.interval import Interval
from setreach.sets.zonotope import Zonotope, _frozen


def _even_columns(exp_mat: np.ndarray) -> np.ndarray:
    """Columns whose monomial is non-negative on the unit box."""
    return np.all(exp_mat % 2 == 0, axis=0)


def _align_exponents(E1, ids1, E2, ids2) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Express two exponent matrices over the union of their identifiers."""
    ids = list(ids1) + [i for i in ids2 if i not in set(ids1)]
    rows = {ident: r for r, ident in enumerate(ids)}
    A = np.zeros((len(ids), E1.shape[1]), dtype=int)
    B = np.zeros((len(ids), E2.shape[1]), dtype=int)
    for r, ident in enumerate(ids1):
        A[rows[ident], :] = E1[r, :]
    for r, ident in enumerate(ids2):
        B[rows[ident], :] = E2[r, :]
    return A, B, np.asarray(ids, dtype=int)


class PolyZonotope:
    """
    Sparse polynomial zonotope ``(c, G, Grest, exp_mat, ids)``.

    Attributes
    ----------
    center : np.ndarray
        Constant offset (n,)
    G : np.ndarray
        Dependent generators (n, h)
    Grest : np.ndarray
        Independent generators (n, q)
    exp_mat : np.ndarray
        Exponent matrix (p, h) of non-negative integers
    ids : np.ndarray
        Identifiers of the p dependent factors
    """

    __array_ufunc__ = None

    def __init__(self, center, G=None, Grest=None, exp_mat=None, ids=None):
        center = np.asarray(center, dtype=float).reshape(-1)
        n = center.size
        G = np.zeros((n, 0)) if G is None else np.asarray(G, dtype=float).reshape(n, -1)
        Grest = np.zeros((n, 0)) if Grest is None else np.asarray(Grest, dtype=float).reshape(n, -1)
        if exp_mat is None:
            exp_mat = np.eye(G.shape[1], dtype=int)
        exp_mat = np.asarray(exp_mat, dtype=int)
        if exp_mat.ndim != 2:
            if exp_mat.size == 0:
                exp_mat = np.zeros((0, G.shape[1]), dtype=int)
            elif G.shape[1] == 0:
                raise ConfigurationError("Exponent matrix given without dependent generators")
            else:
                exp_mat = exp_mat.reshape(-1, G.shape[1])
        if exp_mat.shape[1] != G.shape[1]:
            raise ConfigurationError(
                f"Exponent matrix has {exp_mat.shape[1]} columns but there are {G.shape[1]} dependent generators"
            )
        if np.any(exp_mat < 0):
            raise ConfigurationError("Exponent matrix entries must be non-negative integers")
        ids = np.arange(exp_mat.shape[0]) if ids is None else np.asarray(ids, dtype=int).reshape(-1)
        if ids.size != exp_mat.shape[0]:
            raise ConfigurationError(f"Expected {exp_mat.shape[0]} factor identifiers, got {ids.size}")
        if len(set(ids.tolist())) != ids.size:
            raise ConfigurationError("Factor identifiers must be unique")

        self.center = _frozen(center)
        self.G = _frozen(G)
        self.Grest = _frozen(Grest)
        self.exp_mat = np.array(exp_mat, dtype=int)
        self.exp_mat.setflags(write=False)
        self.ids = np.array(ids, dtype=int)
        self.ids.setflags(write=False)

    @classmethod
    def from_zonotope(cls, Z: Zonotope, ids: Optional[Sequence[int]] = None) -> "PolyZonotope":
        """Every generator of ``Z`` becomes a dependent factor of degree one."""
        k = Z.num_generators
        ids = np.arange(k) if ids is None else ids
        return cls(Z.center, Z.generators, None, np.eye(k, dtype=int), ids)

    @property
    def dim(self) -> int:
        return self.center.size

    @property
    def num_dependent(self) -> int:
        return self.G.shape[1]

    @property
    def num_independent(self) -> int:
        return self.Grest.shape[1]

    def __repr__(self) -> str:
        return (
            f"PolyZonotope(dim={self.dim}, dependent={self.num_dependent}, "
            f"independent={self.num_independent}, factors={self.ids.size})"
        )

    def compact(self) -> "PolyZonotope":
        """
        Canonical form: constant monomials move into the center, equal
        monomials are merged, zero generators and unused factors are dropped.
        """
        c = self.center.copy()
        G, E = self.G, self.exp_mat
        constant = np.all(E == 0, axis=0)
        if np.any(constant):
            c = c + G[:, constant].sum(axis=1)
            G, E = G[:, ~constant], E[:, ~constant]
        if E.shape[1] > 0:
            unique, inverse = np.unique(E, axis=1, return_inverse=True)
            merged = np.zeros((self.dim, unique.shape[1]))
            np.add.at(merged.T, inverse.reshape(-1), G.T)
            G, E = merged, unique
        nonzero = np.any(G != 0.0, axis=0)
        G, E = G[:, nonzero], E[:, nonzero]
        used = np.any(E != 0, axis=1)
        Grest = self.Grest[:, np.any(self.Grest != 0.0, axis=0)]
        return PolyZonotope(c, G, Grest, E[used, :], self.ids[used])

    # ------------------------------------------------------------------
    # set operations
    # ------------------------------------------------------------------

    def linear_map(self, matrix) -> "PolyZonotope":
        if isinstance(matrix, Interval):
            Mc, Mr = matrix.center, matrix.radius
            mapped = self.linear_map(Mc)
            if not np.any(Mr):
                return mapped
            bound = self.interval().magnitude()
            return mapped + Zonotope.from_interval(Interval.from_center_radius(np.zeros(Mr.shape[0]), Mr @ bound))
        M = np.atleast_2d(np.asarray(matrix, dtype=float))
        if M.shape[1] != self.dim:
            raise ConfigurationError(f"Cannot map a {self.dim}-dimensional set with a {M.shape} matrix")
        return PolyZonotope(M @ self.center, M @ self.G, M @ self.Grest, self.exp_mat, self.ids)

    def __rmatmul__(self, matrix):
        if isinstance(matrix, (np.ndarray, list, tuple, Interval)):
            return self.linear_map(matrix)
        return NotImplemented

    def __mul__(self, scalar):
        if isinstance(scalar, (int, float, np.floating, np.integer)):
            return PolyZonotope(scalar * self.center, scalar * self.G, scalar * self.Grest, self.exp_mat, self.ids)
        return NotImplemented

    __rmul__ = __mul__

    def __add__(self, other):
        """
        Minkowski sum. Another polynomial zonotope is treated as independent:
        its factors are renamed if they clash with ours. Use
        :meth:`exact_plus` to add sets that share factors.
        """
        if isinstance(other, PolyZonotope):
            shared = set(self.ids.tolist()) & set(other.ids.tolist())
            if shared:
                offset = int(max(self.ids.max(), other.ids.max())) + 1 - int(other.ids.min())
                other = PolyZonotope(other.center, other.G, other.Grest, other.exp_mat, other.ids + offset)
            return self.exact_plus(other)
        if isinstance(other, (Zonotope, Interval)):
            Z = other if isinstance(other, Zonotope) else Zonotope.from_interval(other)
            if Z.dim != self.dim:
                raise ConfigurationError(f"Dimension mismatch in Minkowski sum: {self.dim} vs {Z.dim}")
            return PolyZonotope(
                self.center + Z.center, self.G, np.hstack([self.Grest, Z.generators]), self.exp_mat, self.ids
            )
        if isinstance(other, (np.ndarray, list, tuple, int, float)):
            shift = np.asarray(other, dtype=float).reshape(-1)
            return PolyZonotope(self.center + shift, self.G, self.Grest, self.exp_mat, self.ids)
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, (np.ndarray, list, tuple, int, float)):
            return self + (-np.asarray(other, dtype=float))
        return NotImplemented

    def exact_plus(self, other: "PolyZonotope") -> "PolyZonotope":
        """Sum of two polynomial zonotopes over the same dependent factors."""
        E1, E2, ids = _align_exponents(self.exp_mat, self.ids, other.exp_mat, other.ids)
        return PolyZonotope(
            self.center + other.center,
            np.hstack([self.G, other.G]),
            np.hstack([self.Grest, other.Grest]),
            np.hstack([E1, E2]),
            ids,
        ).compact()

    def cartesian_product(self, other) -> "PolyZonotope":
        """Cartesian product with a zonotope (its generators stay independent)."""
        if isinstance(other, PolyZonotope):
            raise ConfigurationError("Cartesian product of two polynomial zonotopes is not supported")
        Z = other if isinstance(other, Zonotope) else Zonotope.from_interval(other)
        n, m = self.dim, Z.dim
        G = np.vstack([self.G, np.zeros((m, self.num_dependent))])
        Grest = np.block(
            [
                [self.Grest, np.zeros((n, Z.num_generators))],
                [np.zeros((m, self.num_independent)), Z.generators],
            ]
        )
        return PolyZonotope(np.concatenate([self.center, Z.center]), G, Grest, self.exp_mat, self.ids)

    def quad_map(self, Q: Sequence[np.ndarray]) -> "PolyZonotope":
        """
        Exact image under ``x -> (x^T Q_i x)_i`` for the dependent part.

        Independent generators are treated as temporary factors during the
        expansion; every product that involves one of them is enclosed and
        returned as an independent generator.
        """
        q = self.num_independent
        next_id = int(self.ids.max()) + 1 if self.ids.size else 0
        temp_ids = np.arange(next_id, next_id + q)
        p = self.ids.size
        E_all = np.block(
            [
                [self.exp_mat, np.zeros((p, q), dtype=int)],
                [np.zeros((q, self.num_dependent), dtype=int), np.eye(q, dtype=int)],
            ]
        )
        G_ext = np.hstack([self.center.reshape(-1, 1), self.G, self.Grest])
        E_ext = np.hstack([np.zeros((p + q, 1), dtype=int), E_all])
        rows, cols = np.triu_indices(G_ext.shape[1])

        gens = np.zeros((len(Q), rows.size))
        for i, Qi in enumerate(Q):
            Qi = np.asarray(Qi, dtype=float)
            if not np.any(Qi):
                continue
            coef = G_ext.T @ Qi @ G_ext
            sym = coef + coef.T
            gens[i, :] = np.where(rows == cols, np.diag(coef)[rows], sym[rows, cols])
        exps = E_ext[:, rows] + E_ext[:, cols]

        full = PolyZonotope(
            np.zeros(len(Q)), gens, None, exps, np.concatenate([self.ids, temp_ids])
        ).compact()
        if q == 0:
            return full

        temp_rows = np.isin(full.ids, temp_ids)
        independent = np.any(full.exp_mat[temp_rows, :] != 0, axis=0)
        G_ind, E_ind = full.G[:, independent], full.exp_mat[:, independent]
        even = _even_columns(E_ind)
        center = full.center + 0.5 * G_ind[:, even].sum(axis=1)
        Grest = np.hstack([0.5 * G_ind[:, even], G_ind[:, ~even]])
        keep_rows = ~temp_rows
        return PolyZonotope(
            center,
            full.G[:, ~independent],
            Grest,
            full.exp_mat[keep_rows][:, ~independent],
            full.ids[keep_rows],
        ).compact()

    def reduce(self, order: float) -> "PolyZonotope":
        """
        Reduce to at most ``order * n`` generators.

        The smallest generators (same ranking as Girard's method for
        zonotopes, dependent and independent alike) are enclosed by a box
        that becomes part of the independent generators.
        """
        pZ = self.compact()
        n, h, q = pZ.dim, pZ.num_dependent, pZ.num_independent
        if h + q <= order * n:
            return pZ
        n_keep = max(int(np.floor(n * (order - 1))), 0)
        G_all = np.hstack([pZ.G, pZ.Grest])
        metric = np.abs(G_all).sum(axis=0) - np.abs(G_all).max(axis=0)
        idx = np.argsort(metric, kind="stable")
        reduce_idx = idx[: h + q - n_keep]
        dep = np.sort(reduce_idx[reduce_idx < h])
        ind = np.sort(reduce_idx[reduce_idx >= h] - h)

        even = _even_columns(pZ.exp_mat[:, dep])
        G_dep = pZ.G[:, dep]
        shift = 0.5 * G_dep[:, even].sum(axis=1)
        reduced = np.hstack([0.5 * G_dep[:, even], G_dep[:, ~even], pZ.Grest[:, ind]])
        box = np.diag(np.abs(reduced).sum(axis=1))

        keep_dep = np.setdiff1d(np.arange(h), dep)
        keep_ind = np.setdiff1d(np.arange(q), ind)
        result = PolyZonotope(
            pZ.center + shift,
            pZ.G[:, keep_dep],
            np.hstack([pZ.Grest[:, keep_ind], box]),
            pZ.exp_mat[:, keep_dep],
            pZ.ids,
        ).compact()
        if not (np.all(np.isfinite(result.G)) and np.all(np.isfinite(result.Grest))):
            raise DegenerateSetError(f"Order reduction of {self!r} produced a non-finite set")
        return result

    # ------------------------------------------------------------------
    # enclosures and queries
    # ------------------------------------------------------------------

    def zonotope(self) -> Zonotope:
        """Zonotope enclosure; monomials with only even exponents lie in [0, 1]."""
        even = _even_columns(self.exp_mat)
        G_even = self.G[:, even]
        center = self.center + 0.5 * G_even.sum(axis=1)
        return Zonotope(center, np.hstack([self.G[:, ~even], 0.5 * G_even, self.Grest])).compact()

    def interval(self) -> Interval:
        return self.zonotope().interval()

    def support_function(self, direction, bound: str = "upper") -> float:
        return self.zonotope().support_function(direction, bound)

    def is_finite(self) -> bool:
        return bool(
            np.all(np.isfinite(self.center)) and np.all(np.isfinite(self.G)) and np.all(np.isfinite(self.Grest))
        )

    def evaluate(self, alpha, beta=None) -> np.ndarray:
        """Point of the set for dependent factors ``alpha`` (ordered as ``ids``) and independent ``beta``."""
        alpha = np.asarray(alpha, dtype=float).reshape(-1, 1)
        monomials = np.prod(alpha ** self.exp_mat, axis=0) if self.ids.size else np.ones(self.num_dependent)
        point = self.center + self.G @ monomials
        if beta is not None and self.num_independent:
            point = point + self.Grest @ np.asarray(beta, dtype=float).reshape(-1)
        return point

    def random_points(self, count: int, rng: Optional[np.random.Generator] = None, extreme: bool = False) -> np.ndarray:
        """Sample points as columns; ``extreme`` uses factor values in {-1, 1}."""
        rng = np.random.default_rng() if rng is None else rng
        p, q = self.ids.size, self.num_independent
        if extreme:
            alphas = rng.choice([-1.0, 1.0], size=(p, count))
            betas = rng.choice([-1.0, 1.0], size=(q, count))
        else:
            alphas = rng.uniform(-1.0, 1.0, size=(p, count))
            betas = rng.uniform(-1.0, 1.0, size=(q, count))
        return np.column_stack([self.evaluate(alphas[:, j], betas[:, j]) for j in range(count)])
