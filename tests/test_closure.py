import pytest

from territory_loop.closure import ClosureDetector, ClosureParams, check_closure
from territory_loop.geo import offset_m


def _loop(origin, n: int, end_north: float):
    """n-1 points walking east, then a last point ``end_north`` meters north of the start."""

    return [offset_m(origin, 15.0 * i, 40.0) for i in range(n - 1)] + [offset_m(origin, 0.0, end_north)]


def test_needs_minimum_points(origin):
    path = [origin] * 9
    assert not check_closure(path)
    assert check_closure(path, min_points=9)


def test_last_point_near_first(origin):
    start = offset_m(origin, 0.0, 0.0)
    path = [start] + _loop(origin, 10, 20.0)[1:]
    assert check_closure(path)

    path[-1] = offset_m(origin, 0.0, 35.0)
    assert not check_closure(path)
    assert check_closure(path, threshold_m=40.0)


def test_detector_latches(origin):
    detector = ClosureDetector()
    path = [origin] + _loop(origin, 10, 10.0)[1:]
    assert detector.update(path)

    path.append(offset_m(origin, 500.0, 500.0))
    assert detector.update(path)
    assert detector.closed


@pytest.mark.parametrize("kwargs", [{"threshold_m": 0.0}, {"min_points": 2}])
def test_invalid_params(kwargs):
    with pytest.raises(ValueError):
        ClosureParams(**kwargs)
