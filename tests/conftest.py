from __future__ import annotations

import pytest

from territory_loop.geo import offset_m
from territory_loop.models import GeoPoint, Territory, TimedFix

# Somewhere in Shanghai; all generated tracks are offsets from here.
ORIGIN = GeoPoint(latitude=31.2304, longitude=121.4737)


@pytest.fixture
def origin() -> GeoPoint:
    return ORIGIN


@pytest.fixture
def make_fix():
    """Build a fix ``east``/``north`` meters away from ORIGIN."""

    def _make(east: float, north: float, t: float, accuracy: float = 5.0, speed: float | None = 1.4) -> TimedFix:
        return TimedFix(
            point=offset_m(ORIGIN, east, north),
            timestamp_s=t,
            horizontal_accuracy_m=accuracy,
            speed_mps=speed,
        )

    return _make


@pytest.fixture
def make_territory():
    """Build an axis-aligned rectangle territory from local meter offsets."""

    def _make(
        east_min: float,
        north_min: float,
        east_max: float,
        north_max: float,
        territory_id: str = "rival-1",
        owner_id: str = "rival",
    ) -> Territory:
        corners = [(east_min, north_min), (east_max, north_min), (east_max, north_max), (east_min, north_max)]
        polygon = tuple(offset_m(ORIGIN, e, n) for e, n in corners)
        area = (east_max - east_min) * (north_max - north_min)
        return Territory(id=territory_id, owner_id=owner_id, polygon=polygon, area_sqm=area)

    return _make


@pytest.fixture
def unit_square() -> tuple[GeoPoint, ...]:
    """0.001 degree square at the equator (about 111 m per side)."""

    return (
        GeoPoint(0.0, 0.0),
        GeoPoint(0.0, 0.001),
        GeoPoint(0.001, 0.001),
        GeoPoint(0.001, 0.0),
    )


# Walked around a 150 m x 100 m block, one fix every 45 m of perimeter; the
# last fix is 5 m short of the start.
BLOCK_WALK = [
    (0, 0), (45, 0), (90, 0), (135, 0), (150, 30), (150, 75),
    (130, 100), (85, 100), (40, 100), (0, 95), (0, 50), (0, 5),
]


@pytest.fixture
def make_block_walk(make_fix):
    """Fixes for the block walk, shifted by ``east``/``north`` meters, 32 s apart."""

    def _make(east: float = 0.0, north: float = 0.0, t0: float = 1000.0) -> list[TimedFix]:
        return [make_fix(e + east, n + north, t0 + 32.0 * i) for i, (e, n) in enumerate(BLOCK_WALK)]

    return _make


@pytest.fixture
def block_fixes(make_block_walk) -> list[TimedFix]:
    return make_block_walk()
