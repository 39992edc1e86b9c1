"""
Interval arithmetic over numpy arrays.

An :class:`Interval` holds elementwise lower and upper bounds of any shape
(scalar, vector or matrix). It is the workhorse for Lagrange remainder
bounds, interval matrices in the exponential remainder terms and the
interval hull of zonotopes.
"""

from __future__ import annotations

import numbers
from typing import Iterable, Tuple, Union

import numpy as np

from setreach.errors import ConfigurationError, TaylorModelDivisionError

ArrayLike = Union[float, np.ndarray, Iterable]

_TWO_PI = 2.0 * np.pi


def _is_operand(value) -> bool:
    return isinstance(value, (numbers.Number, np.ndarray, list, tuple))


class Interval:
    """
    Closed interval ``[inf, sup]`` with elementwise numpy bounds.

    Attributes
    ----------
    inf : np.ndarray
        Lower bounds
    sup : np.ndarray
        Upper bounds, ``inf <= sup`` elementwise
    """

    # numpy should defer to the reflected operators defined below
    __array_ufunc__ = None

    def __init__(self, inf: ArrayLike, sup: ArrayLike = None, *, check: bool = True):
        inf = np.array(inf, dtype=float)
        sup = inf.copy() if sup is None else np.array(sup, dtype=float)
        if inf.shape != sup.shape:
            inf, sup = np.broadcast_arrays(inf, sup)
            inf, sup = inf.copy(), sup.copy()
        if check and np.any(inf > sup):
            raise ConfigurationError(f"Interval lower bound exceeds upper bound: {inf} > {sup}")
        self.inf = inf
        self.sup = sup

    # ------------------------------------------------------------------
    # constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_center_radius(cls, center: ArrayLike, radius: ArrayLike) -> "Interval":
        center = np.asarray(center, dtype=float)
        radius = np.abs(np.asarray(radius, dtype=float))
        return cls(center - radius, center + radius)

    @classmethod
    def enclose_points(cls, points: ArrayLike) -> "Interval":
        """
        Smallest interval containing a point cloud.

        Parameters
        ----------
        points : array_like
            Points as columns, shape (n, N)
        """
        points = np.atleast_2d(np.asarray(points, dtype=float))
        return cls(points.min(axis=1), points.max(axis=1))

    @classmethod
    def zeros(cls, shape) -> "Interval":
        return cls(np.zeros(shape))

    # ------------------------------------------------------------------
    # basic properties
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.inf.shape

    @property
    def ndim(self) -> int:
        return self.inf.ndim

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.inf + self.sup)

    @property
    def radius(self) -> np.ndarray:
        return 0.5 * (self.sup - self.inf)

    @property
    def T(self) -> "Interval":
        return Interval(self.inf.T, self.sup.T, check=False)

    def __len__(self) -> int:
        return len(self.inf)

    def __getitem__(self, key) -> "Interval":
        return Interval(self.inf[key], self.sup[key], check=False)

    def __repr__(self) -> str:
        return f"Interval(inf={self.inf!r}, sup={self.sup!r})"

    def magnitude(self) -> np.ndarray:
        """Elementwise ``max(|inf|, |sup|)``."""
        return np.maximum(np.abs(self.inf), np.abs(self.sup))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.inf)) and np.all(np.isfinite(self.sup)))

    def contains(self, point: ArrayLike, tol: float = 0.0) -> bool:
        point = np.asarray(point, dtype=float)
        return bool(np.all(point >= self.inf - tol) and np.all(point <= self.sup + tol))

    def contains_zero(self) -> bool:
        return bool(np.any((self.inf <= 0.0) & (self.sup >= 0.0)))

    def is_subset(self, other: "Interval") -> bool:
        return bool(np.all(self.inf >= other.inf) and np.all(self.sup <= other.sup))

    def hull(self, other: "Interval") -> "Interval":
        other = _as_interval(other)
        return Interval(np.minimum(self.inf, other.inf), np.maximum(self.sup, other.sup), check=False)

    def sum(self, axis=None) -> "Interval":
        return Interval(self.inf.sum(axis=axis), self.sup.sum(axis=axis), check=False)

    def reshape(self, *shape) -> "Interval":
        return Interval(self.inf.reshape(*shape), self.sup.reshape(*shape), check=False)

    # ------------------------------------------------------------------
    # arithmetic
    # ------------------------------------------------------------------

    def __neg__(self) -> "Interval":
        return Interval(-self.sup, -self.inf, check=False)

    def __pos__(self) -> "Interval":
        return self

    def __add__(self, other):
        if isinstance(other, Interval):
            return Interval(self.inf + other.inf, self.sup + other.sup, check=False)
        if _is_operand(other):
            other = np.asarray(other, dtype=float)
            return Interval(self.inf + other, self.sup + other, check=False)
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, Interval):
            return Interval(self.inf - other.sup, self.sup - other.inf, check=False)
        if _is_operand(other):
            other = np.asarray(other, dtype=float)
            return Interval(self.inf - other, self.sup - other, check=False)
        return NotImplemented

    def __rsub__(self, other):
        if _is_operand(other):
            return (-self) + other
        return NotImplemented

    def __mul__(self, other):
        if isinstance(other, Interval):
            products = np.stack(
                np.broadcast_arrays(
                    self.inf * other.inf,
                    self.inf * other.sup,
                    self.sup * other.inf,
                    self.sup * other.sup,
                )
            )
            return Interval(products.min(axis=0), products.max(axis=0), check=False)
        if _is_operand(other):
            other = np.asarray(other, dtype=float)
            a, b = self.inf * other, self.sup * other
            return Interval(np.minimum(a, b), np.maximum(a, b), check=False)
        return NotImplemented

    __rmul__ = __mul__

    def reciprocal(self) -> "Interval":
        if self.contains_zero():
            raise TaylorModelDivisionError(f"Division by an interval containing zero: {self}")
        return Interval(1.0 / self.sup, 1.0 / self.inf, check=False)

    def __truediv__(self, other):
        if isinstance(other, Interval):
            return self * other.reciprocal()
        if _is_operand(other):
            other = np.asarray(other, dtype=float)
            if np.any(other == 0.0):
                raise TaylorModelDivisionError("Division of an interval by zero")
            return self * (1.0 / other)
        return NotImplemented

    def __rtruediv__(self, other):
        if _is_operand(other):
            return np.asarray(other, dtype=float) * self.reciprocal()
        return NotImplemented

    def __pow__(self, exponent):
        if isinstance(exponent, (numbers.Integral, np.integer)) or (
            isinstance(exponent, numbers.Real) and float(exponent).is_integer()
        ):
            return self._int_pow(int(exponent))
        if isinstance(exponent, numbers.Real):
            return self._real_pow(float(exponent))
        return NotImplemented

    def _int_pow(self, n: int) -> "Interval":
        if n == 0:
            return Interval(np.ones(self.shape))
        if n < 0:
            return self._int_pow(-n).reciprocal()
        a, b = self.inf ** n, self.sup ** n
        if n % 2 == 1:
            return Interval(a, b, check=False)
        low = np.where((self.inf <= 0.0) & (self.sup >= 0.0), 0.0, np.minimum(a, b))
        return Interval(low, np.maximum(a, b), check=False)

    def _real_pow(self, p: float) -> "Interval":
        if np.any(self.inf < 0.0) or (p < 0.0 and np.any(self.inf <= 0.0)):
            raise ConfigurationError(f"Real power {p} of an interval reaching non-positive values: {self}")
        a, b = self.inf ** p, self.sup ** p
        return Interval(np.minimum(a, b), np.maximum(a, b), check=False)

    def __abs__(self) -> "Interval":
        mag = self.magnitude()
        low = np.where(
            (self.inf <= 0.0) & (self.sup >= 0.0),
            0.0,
            np.minimum(np.abs(self.inf), np.abs(self.sup)),
        )
        return Interval(low, mag, check=False)

    def __matmul__(self, other):
        if isinstance(other, Interval):
            mc, mr = other.center, other.radius
        elif _is_operand(other):
            mc = np.asarray(other, dtype=float)
            mr = np.zeros_like(mc)
        else:
            return NotImplemented
        c, r = self.center, self.radius
        mid = c @ mc
        rad = np.abs(c) @ mr + r @ np.abs(mc) + r @ mr
        return Interval(mid - rad, mid + rad, check=False)

    def __rmatmul__(self, other):
        if not _is_operand(other):
            return NotImplemented
        M = np.asarray(other, dtype=float)
        mid = M @ self.center
        rad = np.abs(M) @ self.radius
        return Interval(mid - rad, mid + rad, check=False)

    # ------------------------------------------------------------------
    # elementary functions
    # ------------------------------------------------------------------

    def exp(self) -> "Interval":
        return Interval(np.exp(self.inf), np.exp(self.sup), check=False)

    def log(self) -> "Interval":
        if np.any(self.inf <= 0.0):
            raise ConfigurationError(f"Logarithm of an interval reaching non-positive values: {self}")
        return Interval(np.log(self.inf), np.log(self.sup), check=False)

    def sqrt(self) -> "Interval":
        if np.any(self.inf < 0.0):
            raise ConfigurationError(f"Square root of an interval reaching negative values: {self}")
        return Interval(np.sqrt(self.inf), np.sqrt(self.sup), check=False)

    def sin(self) -> "Interval":
        lo = np.minimum(np.sin(self.inf), np.sin(self.sup))
        hi = np.maximum(np.sin(self.inf), np.sin(self.sup))
        # an extremum is attained where inf <= pi/2 + 2k*pi <= sup (max) or -pi/2 + 2k*pi (min)
        k_max = np.ceil((self.inf - 0.5 * np.pi) / _TWO_PI)
        k_min = np.ceil((self.inf + 0.5 * np.pi) / _TWO_PI)
        has_max = 0.5 * np.pi + _TWO_PI * k_max <= self.sup
        has_min = -0.5 * np.pi + _TWO_PI * k_min <= self.sup
        hi = np.where(has_max, 1.0, hi)
        lo = np.where(has_min, -1.0, lo)
        return Interval(lo, hi, check=False)

    def cos(self) -> "Interval":
        return (self + 0.5 * np.pi).sin()

    def tan(self) -> "Interval":
        return self.sin() / self.cos()


def _as_interval(value) -> Interval:
    if isinstance(value, Interval):
        return value
    return Interval(value)


def as_interval(value) -> Interval:
    """Wrap a number or array as a degenerate interval; intervals pass through."""
    return _as_interval(value)
