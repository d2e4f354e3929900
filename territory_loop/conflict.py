"""Proximity and crossing checks against competitor territories.

Everything here works on an already-fetched snapshot of territories; fetching
(and failing open when the store is unreachable) is the caller's job.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from territory_loop.geo import distance_point_to_polygon, line_intersects_polygon, midpoint, point_in_polygon
from territory_loop.models import GeoPoint, Territory, WarningLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConflictParams:
    """Distance bands (meters) and the path penetration threshold."""

    danger_m: float = 20.0
    caution_m: float = 50.0
    notice_m: float = 100.0
    penetration_threshold_m: float = 3.0

    def __post_init__(self) -> None:
        if not 0 < self.danger_m <= self.caution_m <= self.notice_m:
            raise ValueError("need 0 < danger_m <= caution_m <= notice_m")
        if self.penetration_threshold_m < 0:
            raise ValueError(f"penetration_threshold_m must be >= 0, got {self.penetration_threshold_m}")


DEFAULT_CONFLICT = ConflictParams()


@dataclass(frozen=True, slots=True)
class PointConflict:
    """Warning level for a position plus the nearest competitor territory."""

    level: WarningLevel
    distance_m: float
    nearest: Territory | None = None

    @property
    def is_violation(self) -> bool:
        return self.level is WarningLevel.VIOLATION


@dataclass(frozen=True, slots=True)
class PathConflict:
    """Result of checking one path segment.

    ``crosses_boundary`` is False when the conflict comes from the segment's
    endpoint already being inside a territory.
    """

    has_conflict: bool
    territory: Territory | None = None
    crosses_boundary: bool = False


NO_PATH_CONFLICT = PathConflict(has_conflict=False)


def level_for_distance(distance: float, params: ConflictParams = DEFAULT_CONFLICT) -> WarningLevel:
    """Map a distance outside all territories to a warning level."""

    if distance < params.danger_m:
        return WarningLevel.DANGER
    if distance < params.caution_m:
        return WarningLevel.CAUTION
    if distance < params.notice_m:
        return WarningLevel.NOTICE
    return WarningLevel.SAFE


def classify_point(
    point: GeoPoint,
    territories: Sequence[Territory],
    params: ConflictParams = DEFAULT_CONFLICT,
) -> PointConflict:
    """Classify a position against competitor territories.

    Inside any territory is an immediate VIOLATION (first match wins).
    Otherwise the nearest territory decides the level by distance band.
    """

    best = math.inf
    nearest: Territory | None = None
    for territory in territories:
        if point_in_polygon(point, territory.polygon):
            return PointConflict(WarningLevel.VIOLATION, 0.0, territory)
        d = distance_point_to_polygon(point, territory.polygon)
        if d < best:
            best = d
            nearest = territory

    if nearest is None:
        return PointConflict(WarningLevel.SAFE, math.inf, None)
    return PointConflict(level_for_distance(best, params), best, nearest)


def classify_path_segment(
    a: GeoPoint,
    b: GeoPoint,
    territories: Sequence[Territory],
    penetration_threshold_m: float = DEFAULT_CONFLICT.penetration_threshold_m,
) -> PathConflict:
    """Check whether walking from ``a`` to ``b`` enters or cuts through a territory.

    1. ``b`` inside any territory is a conflict.
    2. For each territory whose boundary the segment crosses, the segment's
       midpoint decides: inside, or closer than ``penetration_threshold_m`` to
       the boundary, is a real crossing; farther away is a graze and the next
       territory is checked.
    """

    for territory in territories:
        if point_in_polygon(b, territory.polygon):
            return PathConflict(has_conflict=True, territory=territory, crosses_boundary=False)

    mid = midpoint(a, b)
    for territory in territories:
        if not line_intersects_polygon(a, b, territory.polygon):
            continue
        if point_in_polygon(mid, territory.polygon):
            return PathConflict(has_conflict=True, territory=territory, crosses_boundary=True)
        depth = distance_point_to_polygon(mid, territory.polygon)
        if depth < penetration_threshold_m:
            return PathConflict(has_conflict=True, territory=territory, crosses_boundary=True)
        logger.debug("线段仅擦过领地 %s 边界（中点距离 %.1fm），允许通过", territory.id, depth)
    return NO_PATH_CONFLICT


class ConflictEngine:
    """Binds :class:`ConflictParams` to the classification functions."""

    def __init__(self, params: ConflictParams = DEFAULT_CONFLICT) -> None:
        self._params = params

    @property
    def params(self) -> ConflictParams:
        return self._params

    def classify_point(self, point: GeoPoint, territories: Sequence[Territory]) -> PointConflict:
        return classify_point(point, territories, self._params)

    def classify_path_segment(self, a: GeoPoint, b: GeoPoint, territories: Sequence[Territory]) -> PathConflict:
        return classify_path_segment(a, b, territories, self._params.penetration_threshold_m)


class WarningTracker:
    """Remembers the last reported level so feedback only fires on transitions."""

    def __init__(self, initial: WarningLevel = WarningLevel.SAFE) -> None:
        self._level = initial

    @property
    def level(self) -> WarningLevel:
        return self._level

    def update(self, level: WarningLevel) -> bool:
        """Record ``level``; return True when it differs from the previous one."""

        if level is self._level:
            return False
        self._level = level
        return True
