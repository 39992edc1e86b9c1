"""
Unit tests for zonotopes in setreach.sets.zonotope.
"""

import numpy as np
import pytest

from setreach.errors import ConfigurationError
from setreach.sets import Interval, Zonotope


class TestZonotopeConstruction:
    """Tests for constructors and conversions."""

    def test_from_interval_drops_degenerate_directions(self):
        """Test that zero-width dimensions get no generator."""
        Z = Zonotope.from_interval(Interval([0.0, 1.0, -1.0], [2.0, 1.0, 1.0]))
        assert Z.num_generators == 2
        np.testing.assert_array_almost_equal(Z.center, [1.0, 1.0, 0.0])

    def test_interval_hull(self, skewed_zonotope):
        """Test the interval hull sums absolute generator entries."""
        hull = skewed_zonotope.interval()
        np.testing.assert_array_almost_equal(hull.inf, [-0.7, -1.3])
        np.testing.assert_array_almost_equal(hull.sup, [2.7, 1.3])

    def test_generator_shape_mismatch_raises(self):
        """Test generator rows must match the center."""
        with pytest.raises(ConfigurationError):
            Zonotope([0.0, 0.0], [[1.0, 0.0, 0.0]])

    def test_arrays_are_read_only(self, unit_box):
        """Test zonotopes are immutable value objects."""
        with pytest.raises(ValueError):
            unit_box.center[0] = 5.0


class TestZonotopeOperations:
    """Tests for linear maps, sums and hulls."""

    def test_linear_map_of_points(self, skewed_zonotope, rng):
        """Test that mapped sample points lie in the mapped zonotope."""
        M = np.array([[0.5, -1.0], [2.0, 0.3]])
        mapped = M @ skewed_zonotope
        points = skewed_zonotope.random_points(20, rng)
        assert np.all(mapped.contains(M @ points))

    def test_interval_matrix_map_encloses_samples(self, skewed_zonotope, rng):
        """Test an interval matrix map encloses every member map."""
        M = Interval([[0.9, -0.1], [0.0, 0.95]], [[1.1, 0.1], [0.05, 1.05]])
        mapped = M @ skewed_zonotope
        points = skewed_zonotope.random_points(10, rng, extreme=True)
        for j in range(points.shape[1]):
            Ms = rng.uniform(M.inf, M.sup)
            assert mapped.contains(Ms @ points[:, j], tol=1e-6)

    def test_minkowski_sum_center_and_generators(self, unit_box, skewed_zonotope):
        """Test Minkowski sum concatenates generators and adds centers."""
        S = unit_box + skewed_zonotope
        assert S.num_generators == unit_box.num_generators + skewed_zonotope.num_generators
        np.testing.assert_array_almost_equal(S.center, [1.0, 0.0])

    def test_minkowski_sum_dimension_mismatch(self, unit_box):
        """Test sums of different dimensions are rejected."""
        with pytest.raises(ConfigurationError):
            unit_box + Zonotope([0.0, 0.0, 0.0])

    def test_repeated_operations_are_identical(self, unit_box, skewed_zonotope):
        """Test maps, sums and reductions repeat exactly and leave their operands unchanged."""
        M = np.array([[0.3, -1.2], [2.0, 0.7]])
        center, generators = skewed_zonotope.center.copy(), skewed_zonotope.generators.copy()
        for first, second in [
            (M @ skewed_zonotope, M @ skewed_zonotope),
            (unit_box + skewed_zonotope, unit_box + skewed_zonotope),
            ((unit_box + skewed_zonotope).reduce(1.5), (unit_box + skewed_zonotope).reduce(1.5)),
        ]:
            np.testing.assert_array_equal(first.center, second.center)
            np.testing.assert_array_equal(first.generators, second.generators)
        np.testing.assert_array_equal(skewed_zonotope.center, center)
        np.testing.assert_array_equal(skewed_zonotope.generators, generators)

    def test_translation(self, unit_box):
        """Test adding a vector translates the center."""
        moved = unit_box + np.array([2.0, -1.0])
        np.testing.assert_array_almost_equal(moved.center, [2.0, -1.0])
        np.testing.assert_array_almost_equal(moved.generators, unit_box.generators)

    def test_enclose_contains_both_sets(self, unit_box, rng):
        """Test convex hull enclosure contains both operands."""
        other = 0.5 * unit_box + np.array([3.0, 1.0])
        hull = unit_box.enclose(other)
        assert np.all(hull.contains(unit_box.random_points(10, rng, extreme=True), tol=1e-6))
        assert np.all(hull.contains(other.random_points(10, rng, extreme=True), tol=1e-6))

    def test_cartesian_product(self, unit_box):
        """Test cartesian product dimensions and hull."""
        P = unit_box.cartesian_product(Zonotope([5.0], [[0.5]]))
        assert P.dim == 3
        hull = P.interval()
        np.testing.assert_array_almost_equal(hull.inf, [-1.0, -1.0, 4.5])
        np.testing.assert_array_almost_equal(hull.sup, [1.0, 1.0, 5.5])

    def test_quad_map_encloses_samples(self, skewed_zonotope, rng):
        """Test quadratic map encloses x^T Q x for sampled x."""
        Q = [np.array([[1.0, 0.5], [0.5, -2.0]]), np.array([[0.0, 1.0], [0.0, 0.0]])]
        image = skewed_zonotope.quad_map(Q)
        points = skewed_zonotope.random_points(20, rng)
        values = np.array([[x @ Qi @ x for Qi in Q] for x in points.T]).T
        assert np.all(image.contains(values))


class TestZonotopeReduction:
    """Tests for Girard order reduction."""

    def test_reduce_bounds_generators(self, rng):
        """Test reduction respects the order bound."""
        Z = Zonotope(np.zeros(2), rng.normal(size=(2, 12)))
        reduced = Z.reduce(2)
        assert reduced.num_generators <= 4

    def test_reduce_is_sound(self, rng):
        """Test extreme points of the original lie in the reduced set."""
        Z = Zonotope(np.array([1.0, -1.0]), rng.normal(size=(2, 10)))
        reduced = Z.reduce(1.5)
        assert np.all(reduced.contains(Z.random_points(30, rng, extreme=True), tol=1e-6))

    def test_reduce_noop_below_order(self, skewed_zonotope):
        """Test a zonotope within the order bound is unchanged."""
        reduced = skewed_zonotope.reduce(5)
        np.testing.assert_array_almost_equal(reduced.generators, skewed_zonotope.generators)

    def test_reduce_order_one_is_interval_hull(self, skewed_zonotope):
        """Test order one reduction yields the interval hull box."""
        reduced = skewed_zonotope.reduce(1)
        hull = skewed_zonotope.interval()
        np.testing.assert_array_almost_equal(reduced.interval().inf, hull.inf)
        np.testing.assert_array_almost_equal(reduced.interval().sup, hull.sup)


class TestZonotopeQueries:
    """Tests for support functions, containment and vertices."""

    def test_support_function(self, unit_box):
        """Test support function of the unit box."""
        assert unit_box.support_function([1.0, 2.0], "upper") == pytest.approx(3.0)
        assert unit_box.support_function([1.0, 2.0], "lower") == pytest.approx(-3.0)

    def test_support_function_invalid_bound(self, unit_box):
        """Test unknown bound names are rejected."""
        with pytest.raises(ConfigurationError):
            unit_box.support_function([1.0, 0.0], "middle")

    def test_contains(self, skewed_zonotope):
        """Test containment of the center and of a far point."""
        assert skewed_zonotope.contains(skewed_zonotope.center)
        assert not skewed_zonotope.contains(np.array([10.0, 10.0]))

    def test_contains_point_in_hull_but_outside(self):
        """Test a point inside the interval hull but outside the zonotope."""
        Z = Zonotope([0.0, 0.0], [[1.0], [1.0]])
        assert not Z.contains(np.array([1.0, -1.0]))
        assert Z.contains(np.array([0.5, 0.5]))

    def test_polygon_of_box(self, unit_box):
        """Test the vertices of the unit box in counter-clockwise order."""
        vertices = unit_box.polygon()
        expected = np.array([[-1.0, 1.0, 1.0, -1.0], [-1.0, -1.0, 1.0, 1.0]])
        np.testing.assert_array_almost_equal(vertices, expected)
