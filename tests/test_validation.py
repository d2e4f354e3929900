import pytest

from territory_loop.geo import offset_m
from territory_loop.validation import (
    GateFailure,
    TerritoryValidator,
    ValidationParams,
    find_self_intersection,
    has_self_intersection,
)


def _rect_loop(origin, width_m: float, height_m: float, step_m: float):
    """Points every ``step_m`` along a rectangle's perimeter, not repeating the start."""

    corners = [(0.0, 0.0), (width_m, 0.0), (width_m, height_m), (0.0, height_m), (0.0, 0.0)]
    points = []
    for (x0, y0), (x1, y1) in zip(corners, corners[1:]):
        leg = abs(x1 - x0) + abs(y1 - y0)
        steps = int(round(leg / step_m))
        for k in range(steps):
            f = k / steps
            points.append(offset_m(origin, x0 + (x1 - x0) * f, y0 + (y1 - y0) * f))
    return points


def _bow_tie(origin, size_m: float = 100.0, per_leg: int = 7):
    """A figure-eight: diagonal, side, other diagonal, side."""

    corners = [(0.0, 0.0), (size_m, size_m), (size_m, 0.0), (0.0, size_m), (0.0, 0.0)]
    points = []
    for (x0, y0), (x1, y1) in zip(corners, corners[1:]):
        for k in range(per_leg):
            f = k / per_leg
            points.append(offset_m(origin, x0 + (x1 - x0) * f, y0 + (y1 - y0) * f))
    return points


def test_square_loop_is_valid(origin):
    result = TerritoryValidator().validate(_rect_loop(origin, 100.0, 100.0, 20.0))
    assert result.is_valid
    assert result.failure is None
    assert result.point_count == 20
    assert result.area_sq_m == pytest.approx(10_000.0, rel=0.01)
    assert result.total_distance_m == pytest.approx(380.0, rel=0.01)


def test_too_few_points(origin):
    result = TerritoryValidator().validate(_rect_loop(origin, 100.0, 100.0, 50.0))
    assert not result.is_valid
    assert result.failure is GateFailure.TOO_FEW_POINTS
    assert result.point_count == 8
    assert result.total_distance_m is None
    assert result.area_sq_m is None


def test_short_tiny_loop_fails_on_distance_first(origin):
    # Too short and too small at the same time: the distance gate comes first.
    result = TerritoryValidator().validate(_rect_loop(origin, 2.0, 2.0, 0.5))
    assert result.failure is GateFailure.TOO_SHORT
    assert result.total_distance_m == pytest.approx(7.5, rel=0.01)
    assert result.area_sq_m is None


def test_figure_eight_is_rejected(origin):
    path = _bow_tie(origin)
    assert find_self_intersection(path) == (3, 17)

    result = TerritoryValidator().validate(path)
    assert result.failure is GateFailure.SELF_INTERSECTION
    assert result.area_sq_m is None
    assert "8字形" in result.message


def test_thin_loop_is_too_small(origin):
    result = TerritoryValidator().validate(_rect_loop(origin, 30.0, 2.0, 2.0))
    assert result.failure is GateFailure.TOO_SMALL
    assert result.area_sq_m == pytest.approx(60.0, rel=0.02)


def test_convex_loop_has_no_self_intersection(origin):
    assert not has_self_intersection(_rect_loop(origin, 150.0, 100.0, 10.0))
    assert find_self_intersection(_rect_loop(origin, 150.0, 100.0, 10.0)[:3]) is None


def test_closing_seam_crossing_is_ignored(origin):
    path = _rect_loop(origin, 100.0, 100.0, 20.0)
    # Overshoot the start: the last segment cuts the first one.
    path.append(offset_m(origin, 10.0, -10.0))
    assert find_self_intersection(path) is None
    assert find_self_intersection(path, head_skip=0) == (0, 19)


def test_crossing_near_shared_endpoints_is_jitter(origin):
    path = _bow_tie(origin)
    assert find_self_intersection(path, tolerance_m=20.0) is None


def test_custom_minimum_area(origin):
    validator = TerritoryValidator(ValidationParams(min_area_sq_m=20_000.0))
    result = validator.validate(_rect_loop(origin, 100.0, 100.0, 20.0))
    assert result.failure is GateFailure.TOO_SMALL
