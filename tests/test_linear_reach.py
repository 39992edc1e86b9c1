"""
Tests for exact linear reachability steps and fixed-step propagation.
"""

import numpy as np
import pytest

from setreach.config import ReachOptions
from setreach.dynamics import LinearSystem
from setreach.errors import ConfigurationError, ExponentialConvergenceError
from setreach.flowpipe import (
    Flowpipe,
    StepRecord,
    TimeInterval,
    exponential_terms,
    input_solution,
    propagate,
    propagate_many,
)
from setreach.sets import Halfspace, Interval, PolyZonotope, Zonotope
from setreach.sim import simulate


def _ball_state(h0, v0, t):
    """Closed-form state of the falling ball."""
    return np.array([h0 + v0 * t - 0.5 * 9.81 * t ** 2, v0 - 9.81 * t])


@pytest.fixture
def ball_start():
    """Initial heights around 10 m and small velocities."""
    return Zonotope.from_box([9.9, -0.1], [10.1, 0.1])


class TestExponentialTerms:
    """Tests for the matrix exponential and its correction terms."""

    def test_nilpotent_matrix(self):
        """Test exp(A dt) and the integral of a nilpotent matrix."""
        A = np.array([[0.0, 1.0], [0.0, 0.0]])
        terms = exponential_terms(A, 0.1, 4)
        np.testing.assert_array_almost_equal(terms.eAt, [[1.0, 0.1], [0.0, 1.0]])
        np.testing.assert_array_almost_equal(terms.Asum, [[0.1, 0.005], [0.0, 0.1]])
        assert terms.remainder < 1e-7

    def test_correction_contains_zero(self, mass_spring_damper):
        """Test the time-interval correction interval contains the zero matrix."""
        terms = exponential_terms(mass_spring_damper.A, 0.05, 6)
        assert terms.F.contains(np.zeros((2, 2)))
        assert terms.G.contains(np.zeros((2, 2)))

    def test_divergent_series(self):
        """Test a step too large for the number of terms is rejected."""
        with pytest.raises(ExponentialConvergenceError):
            exponential_terms(100.0 * np.eye(2), 1.0, 4)

    def test_zero_input_solution(self, mass_spring_damper):
        """Test a zero input set yields the origin."""
        terms = exponential_terms(mass_spring_damper.A, 0.05, 6)
        RV = input_solution(terms, Zonotope(np.zeros(2)))
        assert RV.num_generators == 0
        np.testing.assert_array_almost_equal(RV.center, [0.0, 0.0])


class TestLinearPropagation:
    """Tests for fixed-step propagation of linear systems."""

    def test_step_grid_truncates_last_step(self, falling_ball, ball_start):
        """Test the last step is shortened to end at t_final."""
        fp = propagate(falling_ball, ball_start, options=ReachOptions(t_final=0.25, time_step=0.1))
        assert len(fp) == 3
        np.testing.assert_array_almost_equal(fp.time_steps, [0.1, 0.1, 0.05])
        assert fp.final_time == pytest.approx(0.25)

    def test_falling_ball_time_point_sets(self, falling_ball, ball_start):
        """Test time-point sets contain the closed-form solution."""
        fp = propagate(falling_ball, ball_start, options=ReachOptions(t_final=0.5, time_step=0.05))
        assert len(fp) == 10
        corners = [(h, v) for h in (9.9, 10.1) for v in (-0.1, 0.1)]
        for S, interval in zip(fp.time_point, fp.intervals):
            for h0, v0 in corners:
                assert S.contains(_ball_state(h0, v0, interval.end), tol=1e-6)

    def test_falling_ball_time_interval_sets(self, falling_ball, ball_start, rng):
        """Test time-interval sets contain the solution at intermediate times."""
        fp = propagate(falling_ball, ball_start, options=ReachOptions(t_final=0.5, time_step=0.05))
        for h0, v0 in ball_start.random_points(5, rng).T:
            for t in rng.uniform(0.0, 0.5, size=8):
                assert fp.contains(_ball_state(h0, v0, t), t=t, tol=1e-6)

    def test_uncertain_input(self, mass_spring_damper, rng):
        """Test simulations with constant inputs stay in the flowpipe."""
        R0 = Zonotope.from_box([0.9, -0.1], [1.1, 0.1])
        U = Zonotope([0.0], [[0.1]])
        fp = propagate(mass_spring_damper, R0, U, ReachOptions(t_final=1.0, time_step=0.05, taylor_terms=6))
        times = np.linspace(0.0, 1.0, 11)
        for x0 in R0.random_points(4, rng, extreme=True).T:
            for u in (-0.1, 0.1):
                traj = simulate(mass_spring_damper, x0, (0.0, 1.0), [u], t_eval=times)
                for t, x in zip(traj.t, traj.x):
                    assert fp.contains(x, t=t, tol=1e-6)

    def test_interval_and_point_initial_sets(self, falling_ball):
        """Test intervals and plain vectors are accepted as initial sets."""
        options = ReachOptions(t_final=0.1, time_step=0.05)
        from_box = propagate(falling_ball, Interval([9.9, -0.1], [10.1, 0.1]), options=options)
        from_point = propagate(falling_ball, np.array([10.0, 0.0]), options=options)
        assert from_box.final_set.contains(_ball_state(10.0, 0.0, 0.1), tol=1e-6)
        assert from_point.final_set.contains(_ball_state(10.0, 0.0, 0.1), tol=1e-6)

    def test_poly_algorithm_keeps_polynomial_sets(self, falling_ball, ball_start):
        """Test the 'poly' algorithm propagates polynomial zonotopes."""
        fp = propagate(falling_ball, ball_start, options=ReachOptions(t_final=0.1, time_step=0.05, alg="poly"))
        assert isinstance(fp.final_set, PolyZonotope)
        assert fp.final_set.zonotope().contains(_ball_state(10.0, 0.0, 0.1), tol=1e-6)

    def test_poly_algorithm_from_point(self, falling_ball):
        """Test the 'poly' algorithm starts from a single initial state."""
        fp = propagate(falling_ball, [1.0, 0.0], options=ReachOptions(t_final=0.2, time_step=0.1, alg="poly"))
        assert len(fp) == 2
        for S, interval in zip(fp.time_point, fp.intervals):
            assert S.zonotope().contains(_ball_state(1.0, 0.0, interval.end), tol=1e-6)

    def test_adaptive_reaches_horizon(self, mass_spring_damper):
        """Test adaptive propagation of a linear system covers the horizon without gaps."""
        R0 = Zonotope.from_box([0.9, -0.1], [1.1, 0.1])
        options = ReachOptions(t_final=1.0, time_step=0.01, alg="lin-adaptive")
        fp = propagate(mass_spring_damper, R0, options=options)
        assert fp.final_time == pytest.approx(1.0)
        for previous, current in zip(fp.intervals, fp.intervals[1:]):
            assert current.start == pytest.approx(previous.end)

    def test_unsafe_set_stops_propagation(self, falling_ball, ball_start):
        """Test propagation stops at the first set reaching the unsafe halfspace."""
        unsafe = Halfspace([1.0, 0.0], 9.0)
        fp = propagate(falling_ball, ball_start, options=ReachOptions(t_final=1.0, time_step=0.05),
                       unsafe_set=unsafe)
        assert fp.violated
        assert fp.final_time < 1.0
        assert unsafe.intersects(fp.time_interval[-1])
        assert not any(unsafe.intersects(S) for S in fp.time_interval[:-1])

    def test_requires_options(self, falling_ball, ball_start):
        """Test options must be a ReachOptions instance."""
        with pytest.raises(ConfigurationError):
            propagate(falling_ball, ball_start, options={"t_final": 1.0})

    def test_dimension_mismatch(self, falling_ball):
        """Test initial sets of the wrong dimension are rejected."""
        with pytest.raises(ConfigurationError):
            propagate(falling_ball, Zonotope([0.0, 0.0, 0.0]), options=ReachOptions(t_final=0.1))

    def test_propagate_many_matches_sequential(self, falling_ball, mass_spring_damper, ball_start):
        """Test concurrent propagation returns the sequential results in order."""
        options = ReachOptions(t_final=0.2, time_step=0.05)
        tasks = [
            dict(system=falling_ball, initial_set=ball_start, options=options),
            dict(system=mass_spring_damper, initial_set=ball_start - [9.0, 0.0], options=options),
        ]
        results = propagate_many(tasks, max_workers=2)
        assert len(results) == 2
        for task, fp in zip(tasks, results):
            expected = propagate(**task).final_set.interval()
            np.testing.assert_array_almost_equal(fp.final_set.interval().inf, expected.inf)
            np.testing.assert_array_almost_equal(fp.final_set.interval().sup, expected.sup)


class TestSoundness:
    """Simulated trajectories against computed flowpipes."""

    def test_free_fall_scenario(self, falling_ball, rng):
        """Test the two sets of a 0.2 s free fall from (1, 0) contain all simulated states."""
        R0 = Zonotope.from_box([0.95, -0.05], [1.05, 0.05])
        fp = propagate(falling_ball, R0, options=ReachOptions(t_final=0.2, time_step=0.1))
        assert len(fp.time_interval) == 2
        times = np.linspace(0.0, 0.2, 21)
        starts = np.hstack([R0.random_points(4, rng, extreme=True), R0.random_points(6, rng)])
        for x0 in starts.T:
            traj = simulate(falling_ball, x0, (0.0, 0.2), t_eval=times)
            for t, x in zip(traj.t, traj.x):
                assert fp.contains(x, t=t, tol=1e-6)
                np.testing.assert_allclose(x, _ball_state(x0[0], x0[1], t), atol=1e-6)

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_random_linear_systems(self, seed):
        """Test random 3-D systems with constant offsets and bounded inputs."""
        rng = np.random.default_rng(seed)
        system = LinearSystem(
            rng.uniform(-1.0, 1.0, (3, 3)), rng.uniform(-1.0, 1.0, (3, 1)), rng.uniform(-2.0, 2.0, 3)
        )
        center = rng.uniform(-1.0, 1.0, 3)
        R0 = Zonotope.from_box(center - 0.1, center + 0.1)
        U = Zonotope([0.0], [[0.1]])
        fp = propagate(system, R0, U, ReachOptions(t_final=0.5, time_step=0.05))
        times = np.linspace(0.0, 0.5, 6)
        for x0 in R0.random_points(3, rng, extreme=True).T:
            for u in ([-0.1], [0.1]):
                traj = simulate(system, x0, (0.0, 0.5), u, t_eval=times)
                for t, x in zip(traj.t, traj.x):
                    assert fp.contains(x, t=t, tol=1e-6)


class TestFlowpipeContainer:
    """Tests for the Flowpipe container."""

    def _record(self, index, start, dt):
        return StepRecord(index, start, dt, 4, 0, 0.0, 1.0)

    def test_empty_flowpipe(self, unit_box):
        """Test an empty flowpipe reports its initial set."""
        fp = Flowpipe(initial_set=unit_box)
        assert len(fp) == 0
        assert fp.final_set is unit_box
        assert fp.final_time == 0.0

    def test_out_of_order_append_rejected(self, unit_box):
        """Test entries must be appended in time order."""
        fp = Flowpipe(initial_set=unit_box)
        fp.append(unit_box, unit_box, TimeInterval(0.0, 1.0), self._record(0, 0.0, 1.0))
        with pytest.raises(ConfigurationError):
            fp.append(unit_box, unit_box, TimeInterval(0.5, 1.5), self._record(1, 0.5, 1.0))

    def test_sets_at_and_summary(self, unit_box):
        """Test lookup by time and the summary dictionary."""
        fp = Flowpipe(initial_set=unit_box)
        fp.append(unit_box, unit_box, TimeInterval(0.0, 1.0), self._record(0, 0.0, 1.0))
        fp.append(2.0 * unit_box, 2.0 * unit_box, TimeInterval(1.0, 2.0), self._record(1, 1.0, 1.0))
        assert len(fp.sets_at(0.5)) == 1
        assert len(fp.sets_at(1.0)) == 2
        assert fp.sets_at(3.0) == []
        summary = fp.summary()
        assert summary["steps"] == 2
        assert summary["final_time"] == 2.0
        assert summary["final_sup"] == [2.0, 2.0]
        np.testing.assert_array_almost_equal(fp.interval_hull().sup, [2.0, 2.0])
