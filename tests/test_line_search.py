"""
Unit tests for the backtracking line search.

Covers acceptance of a full step, interpolated backtracking, in-place rescaling
of long directions, rejection of non-ascent directions, restoration of the
parameters on failure and the handling of non-finite objective values.
"""

import numpy as np
import pytest

from singularity.regression.src.config import OptimizerConfig
from singularity.regression.src.line_search import LineSearch
from singularity.regression.src.objective import ArrayObjective


def parabola(center, theta0):
    """f(theta) = -||theta - center||^2, maximized at ``center``."""
    center = np.asarray(center, dtype=float)
    return ArrayObjective(
        lambda t: -float((t - center) @ (t - center)),
        lambda t: -2.0 * (t - center),
        theta0,
    )


def test_accepts_full_newton_step():
    obj = parabola([3.0], [0.0])
    search = LineSearch(obj)

    assert search.search(np.array([3.0]))
    assert search.last_step == 1.0
    assert obj.get_parameters()[0] == pytest.approx(3.0)
    assert search.last_value == pytest.approx(0.0)


def test_backtracks_with_quadratic_interpolation():
    """Overshooting by 10x lands exactly on the maximum after one backtrack."""
    obj = parabola([1.0], [0.0])
    search = LineSearch(obj)

    assert search.search(np.array([10.0]))
    assert search.last_step == pytest.approx(0.1)
    assert obj.get_parameters()[0] == pytest.approx(1.0)
    assert search.evaluations == 2


def test_cubic_backtracking_keeps_lambda_within_bounds():
    """Later backtracks shrink lambda by a factor between 0.1 and 0.5."""
    steps = []

    def value(t):
        steps.append(float(t[0]))
        # Sharp drop-off beyond 0.01 forces several backtracks
        return float(t[0]) if t[0] <= 0.01 else -1e6 * float(t[0]) ** 4

    obj = ArrayObjective(value, lambda t: np.ones_like(t), [0.0])
    search = LineSearch(obj)

    assert search.search(np.array([1.0]))
    trials = steps[1:]  # steps[0] is the value at lambda = 0
    assert len(trials) > 2
    for prev, nxt in zip(trials, trials[1:]):
        assert 0.1 * prev - 1e-15 <= nxt <= 0.5 * prev + 1e-15
    assert obj.get_parameters()[0] <= 0.01


def test_long_direction_is_rescaled_in_place():
    obj = parabola([1000.0, 1000.0], [0.0, 0.0])
    search = LineSearch(obj, OptimizerConfig(max_step=100.0))
    direction = np.array([300.0, 400.0])

    search.search(direction)

    np.testing.assert_allclose(direction, [60.0, 80.0])
    assert np.linalg.norm(direction) == pytest.approx(100.0)


def test_non_ascent_direction_rejected_before_any_step():
    obj = parabola([1.0, 1.0], [0.0, 0.0])
    search = LineSearch(obj)
    before = obj.get_parameters().copy()

    assert not search.search(np.array([-1.0, -1.0]))
    assert obj.value_calls == 0, "no trial step may be evaluated"
    np.testing.assert_array_equal(obj.get_parameters(), before)

    # Orthogonal to the gradient is not an ascent direction either
    assert not search.search(np.array([1.0, -1.0]))
    assert obj.value_calls == 0


def test_nan_direction_rejected():
    obj = parabola([1.0], [0.0])
    assert not LineSearch(obj).search(np.array([np.nan]))
    assert obj.value_calls == 0


def test_zero_direction_raises():
    obj = parabola([1.0], [0.0])
    with pytest.raises(ValueError, match="zero magnitude"):
        LineSearch(obj).search(np.zeros(1))


def test_direction_shape_mismatch_raises():
    obj = parabola([1.0, 2.0], [0.0, 0.0])
    with pytest.raises(ValueError, match="shape mismatch"):
        LineSearch(obj).search(np.ones(3))


def test_tiny_step_restores_parameters_bitwise():
    """A step below the absolute tolerance is stagnation: parameters restored."""
    theta0 = [0.1 + 0.2, 1.0 / 3.0]
    obj = parabola([1.0, 1.0], theta0)
    before = obj.get_parameters().copy()

    assert not LineSearch(obj).search(np.array([1e-6, 1e-6]))
    np.testing.assert_array_equal(obj.get_parameters(), before)


def test_exhausted_iterations_restore_parameters():
    obj = parabola([1.0], [0.0])
    search = LineSearch(obj, OptimizerConfig(max_line_search_iterations=1))
    before = obj.get_parameters().copy()

    assert not search.search(np.array([10.0]))
    np.testing.assert_array_equal(obj.get_parameters(), before)


@pytest.mark.parametrize("bad", [-np.inf, np.inf, np.nan])
def test_non_finite_values_shrink_the_step(bad):
    """Unstable territory halves lambda instead of raising."""

    def value(t):
        if t[0] > 2.0:
            return bad
        return -float((t[0] - 1.0) ** 2)

    obj = ArrayObjective(value, lambda t: -2.0 * (t - 1.0), [0.0])
    search = LineSearch(obj)

    assert search.search(np.array([10.0]))
    # 10 -> 5 -> 2.5 are non-finite, 1.25 is accepted
    assert search.last_step == pytest.approx(0.125)
    assert obj.get_parameters()[0] == pytest.approx(1.25)


def test_accepted_step_satisfies_sufficient_increase():
    rng = np.random.default_rng(0)
    center = rng.normal(size=4)
    obj = parabola(center, np.zeros(4))
    cfg = OptimizerConfig()
    search = LineSearch(obj, cfg)

    f0 = obj.get_value()
    g0 = obj.get_gradient()
    direction = 7.0 * g0
    slope = float(g0 @ direction)

    assert search.search(direction)
    assert obj.get_value() >= f0 + cfg.alf * search.last_step * slope
