"""
Unit tests for polynomial zonotopes in setreach.sets.poly_zonotope.
"""

import numpy as np
import pytest

from setreach.errors import ConfigurationError
from setreach.sets import PolyZonotope, Zonotope


def _alpha(pZ, values_by_id):
    """Factor values ordered as the identifiers of ``pZ``."""
    return np.array([values_by_id[i] for i in pZ.ids])


@pytest.fixture
def curved_set():
    """{c + a0 g0 + a0^2 a1 g1 + a1 g2} with two dependent factors."""
    return PolyZonotope(
        center=[1.0, 0.0],
        G=[[1.0, 0.3, 0.0], [0.0, 0.5, 1.0]],
        exp_mat=[[1, 2, 0], [0, 1, 1]],
        ids=[3, 7],
    )


class TestPolyZonotopeConstruction:
    """Tests for construction and canonical form."""

    def test_negative_exponent_rejected(self):
        """Test exponents must be non-negative."""
        with pytest.raises(ConfigurationError):
            PolyZonotope([0.0], [[1.0]], exp_mat=[[-1]])

    def test_duplicate_ids_rejected(self):
        """Test factor identifiers must be unique."""
        with pytest.raises(ConfigurationError):
            PolyZonotope([0.0], [[1.0, 1.0]], exp_mat=[[1, 0], [0, 1]], ids=[2, 2])

    def test_from_zonotope_is_the_same_set(self, skewed_zonotope):
        """Test conversion from a zonotope keeps center and generators."""
        pZ = PolyZonotope.from_zonotope(skewed_zonotope)
        assert pZ.num_dependent == skewed_zonotope.num_generators
        Z = pZ.zonotope()
        np.testing.assert_array_almost_equal(Z.center, skewed_zonotope.center)
        np.testing.assert_array_almost_equal(np.abs(Z.generators).sum(axis=1),
                                             np.abs(skewed_zonotope.generators).sum(axis=1))

    def test_point_set(self):
        """Test a center without generators is a valid point set."""
        pZ = PolyZonotope([1.0, -2.0])
        assert pZ.num_dependent == 0 and pZ.num_independent == 0
        assert pZ.exp_mat.shape == (0, 0)
        Z = pZ.zonotope()
        assert Z.num_generators == 0
        np.testing.assert_array_almost_equal(Z.center, [1.0, -2.0])

    def test_from_point_zonotope(self):
        """Test converting a zonotope without generators."""
        pZ = PolyZonotope.from_zonotope(Zonotope([0.5, 0.5]))
        assert pZ.num_dependent == 0
        assert pZ.ids.size == 0
        np.testing.assert_array_almost_equal(pZ.evaluate([]), [0.5, 0.5])

    def test_flat_exponents_without_generators_rejected(self):
        """Test exponents cannot be given when there is no dependent generator."""
        with pytest.raises(ConfigurationError):
            PolyZonotope([0.0], exp_mat=[1, 2])

    def test_compact_merges_monomials(self):
        """Test equal monomials merge and constant monomials join the center."""
        pZ = PolyZonotope([0.0], [[1.0, 2.0, 5.0]], exp_mat=[[1, 1, 0]], ids=[0]).compact()
        assert pZ.num_dependent == 1
        np.testing.assert_array_almost_equal(pZ.G, [[3.0]])
        np.testing.assert_array_almost_equal(pZ.center, [5.0])


class TestPolyZonotopeOperations:
    """Tests for dependency-preserving operations."""

    def test_exact_plus_cancels_shared_factors(self, curved_set):
        """Test x + (-x) over shared factors is the origin."""
        result = curved_set.exact_plus(-1.0 * curved_set)
        assert result.num_dependent == 0
        np.testing.assert_array_almost_equal(result.center, [0.0, 0.0])

    def test_operations_on_point_set(self, curved_set):
        """Test maps, sums and reduction accept a polynomial zonotope without generators."""
        point = PolyZonotope([1.0, 2.0])
        mapped = np.array([[2.0, 0.0], [0.0, -1.0]]) @ point
        np.testing.assert_array_almost_equal(mapped.center, [2.0, -2.0])
        assert point.exact_plus(curved_set).num_dependent == curved_set.num_dependent
        np.testing.assert_array_almost_equal(point.quad_map([np.eye(2)]).center, [5.0])
        assert point.reduce(1.0).num_dependent == 0

    def test_minkowski_sum_treats_operands_independently(self, curved_set):
        """Test the Minkowski sum renames clashing factors."""
        result = curved_set + (-1.0 * curved_set)
        assert result.num_dependent == 2 * curved_set.num_dependent
        assert len(set(result.ids.tolist())) == result.ids.size

    def test_linear_map_evaluates_pointwise(self, curved_set, rng):
        """Test a linear map commutes with evaluation."""
        M = np.array([[2.0, -1.0], [0.5, 1.0]])
        mapped = M @ curved_set
        for _ in range(10):
            alpha = rng.uniform(-1.0, 1.0, size=2)
            np.testing.assert_array_almost_equal(mapped.evaluate(alpha), M @ curved_set.evaluate(alpha))

    def test_quad_map_is_exact_on_dependent_part(self, curved_set, rng):
        """Test the quadratic map of a set without independent generators is exact."""
        Q = [np.array([[1.0, 0.5], [0.5, -2.0]]), np.array([[0.0, 1.0], [0.0, 0.0]])]
        image = curved_set.quad_map(Q)
        for _ in range(10):
            values = dict(zip(curved_set.ids.tolist(), rng.uniform(-1.0, 1.0, size=2)))
            x = curved_set.evaluate(_alpha(curved_set, values))
            expected = np.array([x @ Qi @ x for Qi in Q])
            np.testing.assert_array_almost_equal(image.evaluate(_alpha(image, values)), expected)

    def test_quad_map_encloses_independent_part(self, curved_set, rng):
        """Test the quadratic map encloses samples when independent generators exist."""
        pZ = curved_set + Zonotope([0.0, 0.0], [[0.1], [0.2]])
        Q = [np.array([[1.0, 0.0], [0.0, 1.0]])]
        image = pZ.quad_map(Q).zonotope()
        points = pZ.random_points(30, rng)
        values = np.array([[x @ Q[0] @ x for x in points.T]])
        assert np.all(image.contains(values, tol=1e-6))

    def test_cartesian_product_with_zonotope(self, curved_set):
        """Test cartesian product stacks dimensions."""
        P = curved_set.cartesian_product(Zonotope([4.0], [[0.5]]))
        assert P.dim == 3
        assert P.num_independent == 1
        np.testing.assert_array_almost_equal(P.center, [1.0, 0.0, 4.0])


class TestPolyZonotopeEnclosures:
    """Tests for zonotope enclosure and reduction."""

    def test_zonotope_encloses_samples(self, curved_set, rng):
        """Test the zonotope enclosure contains sampled points."""
        Z = curved_set.zonotope()
        points = curved_set.random_points(40, rng)
        assert np.all(Z.contains(points, tol=1e-6))

    def test_even_monomials_use_nonnegative_range(self):
        """Test a^2 generators enclose to [0, 1] times the generator."""
        pZ = PolyZonotope([0.0], [[1.0]], exp_mat=[[2]])
        hull = pZ.interval()
        assert float(hull.inf[0]) == pytest.approx(0.0)
        assert float(hull.sup[0]) == pytest.approx(1.0)

    def test_reduce_bounds_generators(self, rng):
        """Test reduction respects the order bound."""
        G = rng.normal(size=(2, 8))
        pZ = PolyZonotope(np.zeros(2), G, rng.normal(size=(2, 4)), exp_mat=rng.integers(0, 3, size=(3, 8)))
        reduced = pZ.reduce(2)
        assert reduced.num_dependent + reduced.num_independent <= 4

    def test_reduce_is_sound(self, rng):
        """Test reduced set encloses sampled points of the original."""
        G = rng.normal(size=(2, 8))
        pZ = PolyZonotope(np.array([0.5, 1.0]), G, rng.normal(size=(2, 2)),
                          exp_mat=rng.integers(0, 3, size=(3, 8)))
        hull = pZ.reduce(2).interval()
        points = np.hstack([pZ.random_points(50, rng), pZ.random_points(50, rng, extreme=True)])
        for j in range(points.shape[1]):
            assert hull.contains(points[:, j], tol=1e-9)
