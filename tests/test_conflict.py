import math

import pytest

from territory_loop.conflict import (
    ConflictEngine,
    ConflictParams,
    WarningTracker,
    classify_path_segment,
    classify_point,
    level_for_distance,
)
from territory_loop.geo import EARTH_RADIUS_M
from territory_loop.models import GeoPoint, Territory, WarningLevel

METERS_PER_DEG = math.radians(1.0) * EARTH_RADIUS_M


@pytest.fixture
def territory(unit_square) -> Territory:
    return Territory(id="t-1", owner_id="rival", polygon=unit_square, area_sqm=12_363.0)


def _east_of_square(meters: float) -> GeoPoint:
    return GeoPoint(0.0005, 0.001 + meters / METERS_PER_DEG)


@pytest.mark.parametrize(
    ("meters", "level"),
    [
        (15.0, WarningLevel.DANGER),
        (40.0, WarningLevel.CAUTION),
        (80.0, WarningLevel.NOTICE),
        (500.0, WarningLevel.SAFE),
    ],
)
def test_distance_bands(territory, meters, level):
    result = classify_point(_east_of_square(meters), [territory])
    assert result.level is level
    assert result.distance_m == pytest.approx(meters, abs=0.01)
    assert result.nearest is territory


def test_inside_is_violation(territory):
    result = classify_point(GeoPoint(0.0005, 0.0005), [territory])
    assert result.is_violation
    assert result.distance_m == 0.0
    assert result.nearest is territory


def test_no_competitors_is_safe():
    result = classify_point(GeoPoint(0.0, 0.0), [])
    assert result.level is WarningLevel.SAFE
    assert result.distance_m == math.inf
    assert result.nearest is None


def test_nearest_territory_decides(territory, unit_square):
    far = Territory(
        id="t-far",
        owner_id="other",
        polygon=tuple(GeoPoint(p.latitude, p.longitude + 0.01) for p in unit_square),
        area_sqm=12_363.0,
    )
    result = classify_point(_east_of_square(40.0), [far, territory])
    assert result.nearest is territory
    assert result.level is WarningLevel.CAUTION


@pytest.mark.parametrize(
    ("distance", "level"),
    [
        (0.5, WarningLevel.DANGER),
        (19.9, WarningLevel.DANGER),
        (20.0, WarningLevel.CAUTION),
        (49.9, WarningLevel.CAUTION),
        (50.0, WarningLevel.NOTICE),
        (99.9, WarningLevel.NOTICE),
        (100.0, WarningLevel.SAFE),
    ],
)
def test_level_for_distance(distance, level):
    assert level_for_distance(distance) is level


def test_warning_levels_are_ordered():
    levels = list(WarningLevel)
    assert levels == sorted(levels)
    thresholds = [lvl.max_distance_m for lvl in levels]
    assert thresholds == sorted(thresholds, reverse=True)
    assert [lvl.haptic_intensity for lvl in levels] == [0.0, 0.3, 0.5, 0.7, 1.0]


def test_segment_through_territory(territory):
    a = GeoPoint(0.0005, -0.0002)
    b = GeoPoint(0.0005, 0.0012)
    result = classify_path_segment(a, b, [territory])
    assert result.has_conflict
    assert result.crosses_boundary
    assert result.territory is territory


def test_segment_ending_inside(territory):
    result = classify_path_segment(GeoPoint(0.0005, -0.0002), GeoPoint(0.0005, 0.0005), [territory])
    assert result.has_conflict
    assert not result.crosses_boundary


def test_corner_graze_is_allowed(territory):
    # Clips the north-east corner; the midpoint is about 100 m outside.
    a = GeoPoint(0.00106, 0.0008)
    b = GeoPoint(0.00018, 0.0030)
    assert not classify_path_segment(a, b, [territory]).has_conflict

    deep = classify_path_segment(a, b, [territory], penetration_threshold_m=200.0)
    assert deep.has_conflict
    assert deep.crosses_boundary


def test_segment_far_away(territory):
    a = GeoPoint(0.003, 0.003)
    b = GeoPoint(0.004, 0.004)
    assert not classify_path_segment(a, b, [territory]).has_conflict
    assert not classify_path_segment(a, b, []).has_conflict


def test_engine_uses_its_params(territory):
    engine = ConflictEngine(ConflictParams(danger_m=40.0, caution_m=60.0, notice_m=80.0))
    assert engine.classify_point(_east_of_square(30.0), [territory]).level is WarningLevel.DANGER
    assert engine.classify_point(_east_of_square(90.0), [territory]).level is WarningLevel.SAFE


def test_invalid_conflict_params():
    with pytest.raises(ValueError):
        ConflictParams(danger_m=60.0, caution_m=50.0)
    with pytest.raises(ValueError):
        ConflictParams(penetration_threshold_m=-1.0)


def test_warning_tracker_reports_transitions():
    tracker = WarningTracker()
    assert tracker.level is WarningLevel.SAFE
    assert not tracker.update(WarningLevel.SAFE)
    assert tracker.update(WarningLevel.NOTICE)
    assert not tracker.update(WarningLevel.NOTICE)
    assert tracker.update(WarningLevel.DANGER)
    assert tracker.update(WarningLevel.SAFE)
    assert tracker.level is WarningLevel.SAFE
