"""
Taylor models: polynomial plus interval remainder.

A :class:`TaylorModel` encloses a function over a box as ``p(s) + I`` where
``p`` is a polynomial in normalised variables ``s in [-1, 1]^k`` and ``I`` is
a scalar interval. Every operation keeps ``I`` large enough to bound all
terms that were truncated at ``max_order`` and all series remainders.
"""

from __future__ import annotations

import functools
import math
import numbers
from typing import Mapping, Optional, Sequence, Tuple

import sympy as sp

from setreach.errors import ConfigurationError, TaylorModelDivisionError
from setreach.sets.elementary import NAMESPACE
from setreach.sets.interval import Interval

DEFAULT_MAX_ORDER = 6

_UNIT = Interval(-1.0, 1.0)
_NONNEG_UNIT = Interval(0.0, 1.0)


def _scalar(value) -> Interval:
    if isinstance(value, Interval):
        return value
    return Interval(float(value))


def _monomial_range(monom: Tuple[int, ...]) -> Interval:
    if not any(monom):
        return Interval(1.0)
    if all(e % 2 == 0 for e in monom):
        return _NONNEG_UNIT
    return _UNIT


def _terms_range(terms) -> Interval:
    """Range of a sum of monomials over the unit box."""
    total = Interval(0.0)
    for monom, coeff in terms:
        total = total + float(coeff) * _monomial_range(monom)
    return total


def _truncate(poly: sp.Poly, max_order: int) -> Tuple[sp.Poly, Interval]:
    keep, dropped = {}, []
    for monom, coeff in poly.terms():
        if sum(monom) <= max_order:
            keep[monom] = coeff
        else:
            dropped.append((monom, coeff))
    if not dropped:
        return poly, Interval(0.0)
    if not keep:
        keep = {(0,) * len(poly.gens): 0}
    truncated = sp.Poly.from_dict(keep, *poly.gens, domain=poly.domain)
    return truncated, _terms_range(dropped)


@functools.lru_cache(maxsize=None)
def _series(kind: str, exponent: Optional[float], order: int):
    """
    Derivatives of a univariate function for a Taylor expansion of ``order``.

    Returns a callable giving the first ``order + 1`` derivatives at a float
    and a callable bounding derivative ``order + 1`` over an interval.
    """
    t = sp.Symbol("t")
    if kind == "pow":
        f = t ** sp.nsimplify(exponent)
    elif kind == "reciprocal":
        f = 1 / t
    else:
        f = getattr(sp, kind)(t)
    derivs = [f]
    for _ in range(order + 1):
        derivs.append(sp.diff(derivs[-1], t))
    coefficients = sp.lambdify(t, derivs[: order + 1], modules=[NAMESPACE])
    lagrange = sp.lambdify(t, derivs[order + 1], modules=[NAMESPACE])
    return coefficients, lagrange


class TaylorModel:
    """
    Scalar Taylor model over normalised variables.

    Attributes
    ----------
    poly : sympy.Poly
        Polynomial part in the normalised variables
    remainder : Interval
        Scalar interval remainder
    max_order : int
        Terms of higher total degree are moved into the remainder
    """

    def __init__(self, poly: sp.Poly, remainder: Optional[Interval] = None, max_order: int = DEFAULT_MAX_ORDER):
        if max_order < 1:
            raise ConfigurationError(f"Taylor model order must be positive, got {max_order}")
        remainder = Interval(0.0) if remainder is None else _scalar(remainder)
        poly, dropped = _truncate(poly, max_order)
        self.poly = poly
        self.remainder = remainder + dropped
        self.max_order = max_order

    # ------------------------------------------------------------------
    # constructors
    # ------------------------------------------------------------------

    @classmethod
    def variable(cls, domain, name: str = "s0", max_order: int = DEFAULT_MAX_ORDER) -> "TaylorModel":
        """
        Taylor model of the identity ``x`` on ``domain = [a, b]``.

        The model is ``mid + rad * s`` with the normalised variable ``s``.
        """
        domain = domain if isinstance(domain, Interval) else Interval(*domain)
        s = sp.Symbol(name)
        mid, rad = float(domain.center), float(domain.radius)
        return cls(sp.Poly(mid + rad * s, s, domain="RR"), Interval(0.0), max_order)

    @classmethod
    def variables(
        cls, box: Interval, names: Optional[Sequence[str]] = None, max_order: int = DEFAULT_MAX_ORDER
    ) -> list:
        """One model per component of ``box``, all over the same variables."""
        k = box.inf.size
        names = [f"s{i}" for i in range(k)] if names is None else list(names)
        gens = sp.symbols(names)
        if k == 1:
            gens = (gens,) if isinstance(gens, sp.Symbol) else tuple(gens)
        models = []
        for i in range(k):
            mid, rad = float(box.center.reshape(-1)[i]), float(box.radius.reshape(-1)[i])
            models.append(cls(sp.Poly(mid + rad * gens[i], *gens, domain="RR"), Interval(0.0), max_order))
        return models

    def _like(self, poly: sp.Poly, remainder: Interval, max_order: Optional[int] = None) -> "TaylorModel":
        return TaylorModel(poly, remainder, self.max_order if max_order is None else max_order)

    def _constant(self, value: float) -> "TaylorModel":
        return self._like(sp.Poly(value, *self.poly.gens, domain="RR"), Interval(0.0))

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @property
    def gens(self) -> Tuple[sp.Symbol, ...]:
        return self.poly.gens

    def polynomial_range(self) -> Interval:
        return _terms_range(self.poly.terms())

    def interval(self) -> Interval:
        """Rigorous enclosure of the range."""
        return self.polynomial_range() + self.remainder

    def constant_term(self) -> float:
        zero = (0,) * len(self.poly.gens)
        return float(self.poly.as_dict().get(zero, 0.0))

    def evaluate(self, values: Mapping) -> Interval:
        """Enclosure of the modelled function at normalised variable values."""
        subs = {sp.Symbol(str(k)) if not isinstance(k, sp.Symbol) else k: v for k, v in values.items()}
        value = float(self.poly.as_expr().subs(subs))
        return self.remainder + value

    def __repr__(self) -> str:
        return f"TaylorModel({self.poly.as_expr()} + {self.remainder}, order={self.max_order})"

    # ------------------------------------------------------------------
    # arithmetic
    # ------------------------------------------------------------------

    def __neg__(self) -> "TaylorModel":
        return self._like(-self.poly, -self.remainder)

    def __add__(self, other):
        if isinstance(other, TaylorModel):
            return self._like(self.poly + other.poly, self.remainder + other.remainder,
                              min(self.max_order, other.max_order))
        if isinstance(other, numbers.Real):
            return self._like(self.poly + float(other), self.remainder)
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, TaylorModel):
            return self + (-other)
        if isinstance(other, numbers.Real):
            return self + (-float(other))
        return NotImplemented

    def __rsub__(self, other):
        if isinstance(other, numbers.Real):
            return (-self) + float(other)
        return NotImplemented

    def __mul__(self, other):
        if isinstance(other, TaylorModel):
            r1, r2 = self.remainder, other.remainder
            b1, b2 = self.polynomial_range(), other.polynomial_range()
            remainder = b1 * r2 + b2 * r1 + r1 * r2
            return self._like(self.poly * other.poly, remainder, min(self.max_order, other.max_order))
        if isinstance(other, numbers.Real):
            return self._like(self.poly * float(other), self.remainder * float(other))
        return NotImplemented

    __rmul__ = __mul__

    def reciprocal(self) -> "TaylorModel":
        if self.interval().contains_zero():
            raise TaylorModelDivisionError(f"Division by a Taylor model whose range {self.interval()} contains zero")
        return self._apply("reciprocal")

    def __truediv__(self, other):
        if isinstance(other, TaylorModel):
            return self * other.reciprocal()
        if isinstance(other, numbers.Real):
            if float(other) == 0.0:
                raise TaylorModelDivisionError("Division of a Taylor model by zero")
            return self * (1.0 / float(other))
        return NotImplemented

    def __rtruediv__(self, other):
        if isinstance(other, numbers.Real):
            return self.reciprocal() * float(other)
        return NotImplemented

    def __pow__(self, exponent):
        if not isinstance(exponent, numbers.Real):
            return NotImplemented
        if float(exponent).is_integer():
            n = int(exponent)
            if n < 0:
                return self.reciprocal() ** (-n)
            result, base = self._constant(1.0), self
            while n:
                if n & 1:
                    result = result * base
                base = base * base if n > 1 else base
                n >>= 1
            return result
        if self.interval().inf <= 0.0:
            raise ConfigurationError(f"Real power {exponent} of a Taylor model reaching non-positive values")
        return self._apply("pow", float(exponent))

    # ------------------------------------------------------------------
    # elementary functions
    # ------------------------------------------------------------------

    def _apply(self, kind: str, exponent: Optional[float] = None) -> "TaylorModel":
        """
        Compose a univariate function with this model.

        The function is expanded to ``max_order`` around the constant term
        ``x0``; the Lagrange remainder is bounded by interval evaluation of
        the next derivative over the hull of the range and ``x0``.
        """
        order = self.max_order
        coefficients, lagrange = _series(kind, exponent, order)
        x0 = self.constant_term()
        values = coefficients(x0)

        h = self - x0
        result = self._constant(float(values[order]) / math.factorial(order))
        for k in range(order - 1, -1, -1):
            result = result * h + float(values[k]) / math.factorial(k)

        xi = self.interval().hull(Interval(x0))
        bound = _scalar(lagrange(xi)) * (h.interval() ** (order + 1)) / float(math.factorial(order + 1))
        return self._like(result.poly, result.remainder + bound)

    def exp(self) -> "TaylorModel":
        return self._apply("exp")

    def log(self) -> "TaylorModel":
        if self.interval().inf <= 0.0:
            raise ConfigurationError(f"Logarithm of a Taylor model reaching non-positive values: {self.interval()}")
        return self._apply("log")

    def sqrt(self) -> "TaylorModel":
        if self.interval().inf <= 0.0:
            raise ConfigurationError(f"Square root of a Taylor model reaching non-positive values: {self.interval()}")
        return self._apply("sqrt")

    def sin(self) -> "TaylorModel":
        return self._apply("sin")

    def cos(self) -> "TaylorModel":
        return self._apply("cos")

    def tan(self) -> "TaylorModel":
        return self.sin() / self.cos()
