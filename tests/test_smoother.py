import numpy as np
import pytest

from walkingqp.smoother import MinJerkSmoother


def test_reset_places_at_rest():
    smoother = MinJerkSmoother([1.0, 2.0], 0.01, 0.5)
    smoother.step([5.0, 5.0])
    smoother.reset([3.0, -1.0])
    np.testing.assert_array_equal(smoother.position, [3.0, -1.0])
    np.testing.assert_array_equal(smoother.velocity, [0.0, 0.0])
    np.testing.assert_array_equal(smoother.acceleration, [0.0, 0.0])


def test_at_rest_on_target_stays_put():
    smoother = MinJerkSmoother([0.5, -0.5], 0.01, 0.2)
    for _ in range(10):
        result = smoother.step([0.5, -0.5])
    np.testing.assert_allclose(result, [0.5, -0.5])


def test_converges_to_target():
    smoother = MinJerkSmoother([0.0, 10.0], 0.01, 0.3)
    target = np.array([1.0, 4.0])
    for _ in range(1000):
        result = smoother.step(target)
    np.testing.assert_allclose(result, target, atol=1e-6)
    np.testing.assert_allclose(smoother.velocity, 0.0, atol=1e-5)


def test_first_step_is_small_and_in_direction():
    smoother = MinJerkSmoother([0.0], 0.01, 1.0)
    result = smoother.step([1.0])
    assert 0.0 < result[0] < 0.01


def test_stays_between_start_and_target():
    smoother = MinJerkSmoother([0.0], 0.01, 0.5)
    previous = 0.0
    for _ in range(300):
        value = smoother.step([2.0])[0]
        assert -1e-9 <= value <= 2.0 + 1e-9
        assert value >= previous - 1e-9
        previous = value


def test_sample_time_beyond_horizon_jumps():
    smoother = MinJerkSmoother([0.0, 0.0], 0.5, 0.1)
    np.testing.assert_array_equal(smoother.step([3.0, 4.0]), [3.0, 4.0])


def test_scalar_initial_value():
    smoother = MinJerkSmoother(2.0, 0.01, 0.2)
    assert smoother.size == 1
    assert smoother.position[0] == 2.0


def test_step_shape_mismatch():
    smoother = MinJerkSmoother([0.0, 0.0], 0.01, 0.2)
    with pytest.raises(ValueError):
        smoother.step([1.0, 2.0, 3.0])


@pytest.mark.parametrize("sample_time, smoothing_time", [(0.0, 1.0), (0.01, 0.0), (-1.0, 1.0)])
def test_invalid_times(sample_time, smoothing_time):
    with pytest.raises(ValueError):
        MinJerkSmoother([0.0], sample_time, smoothing_time)


def test_returned_position_is_a_copy():
    smoother = MinJerkSmoother([0.0], 0.01, 0.2)
    result = smoother.step([1.0])
    stepped = float(result[0])
    result[0] = 100.0
    assert smoother.position[0] == pytest.approx(stepped)
    assert 0.0 < smoother.position[0] < 1.0