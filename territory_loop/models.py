"""Data models for fixes, territories and warning levels."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Final, Sequence


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """A WGS-84 coordinate in decimal degrees."""

    latitude: float
    longitude: float


Polygon = Sequence[GeoPoint]
"""Ordered vertices (>= 3), implicitly closed: the last vertex connects back to the first."""


@dataclass(frozen=True, slots=True)
class TimedFix:
    """A single location sample delivered by a location provider.

    Attributes:
        point: Position.
        timestamp_s: Unix epoch seconds.
        horizontal_accuracy_m: Horizontal accuracy in meters. Providers use -1.0
            (or 0) when the accuracy is unknown.
        speed_mps: Instantaneous speed reported by the provider in meters/second.
            None or a negative value means the provider has no speed estimate.
    """

    point: GeoPoint
    timestamp_s: float
    horizontal_accuracy_m: float
    speed_mps: float | None = None

    @property
    def has_valid_accuracy(self) -> bool:
        return math.isfinite(self.horizontal_accuracy_m) and self.horizontal_accuracy_m > 0

    @property
    def has_valid_speed(self) -> bool:
        return self.speed_mps is not None and math.isfinite(self.speed_mps) and self.speed_mps >= 0


@dataclass(frozen=True, slots=True)
class Territory:
    """A validated, claimed polygon owned by one player.

    Territories are never edited in place; they are only created or deactivated.
    """

    id: str
    owner_id: str
    polygon: tuple[GeoPoint, ...]
    area_sqm: float
    created_at: datetime | None = None
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class ClaimRecord:
    """What a successful claim hands to the territory store."""

    polygon: tuple[GeoPoint, ...]
    area_sqm: float
    point_count: int
    started_at_s: float


class WarningLevel(IntEnum):
    """Graduated proximity to competitor territories, ordered by severity."""

    SAFE = 0
    NOTICE = 1
    CAUTION = 2
    DANGER = 3
    VIOLATION = 4

    @property
    def max_distance_m(self) -> float:
        """Upper bound (exclusive) of the distance band for this level."""

        return _LEVEL_MAX_DISTANCE[self]

    @property
    def haptic_intensity(self) -> float:
        """Feedback strength in [0, 1] the UI layer should use for this level."""

        return _LEVEL_HAPTIC[self]

    @property
    def label(self) -> str:
        return _LEVEL_LABEL[self]


_LEVEL_MAX_DISTANCE: Final[dict[WarningLevel, float]] = {
    WarningLevel.SAFE: math.inf,
    WarningLevel.NOTICE: 100.0,
    WarningLevel.CAUTION: 50.0,
    WarningLevel.DANGER: 20.0,
    WarningLevel.VIOLATION: 0.0,
}

_LEVEL_HAPTIC: Final[dict[WarningLevel, float]] = {
    WarningLevel.SAFE: 0.0,
    WarningLevel.NOTICE: 0.3,
    WarningLevel.CAUTION: 0.5,
    WarningLevel.DANGER: 0.7,
    WarningLevel.VIOLATION: 1.0,
}

_LEVEL_LABEL: Final[dict[WarningLevel, str]] = {
    WarningLevel.SAFE: "安全",
    WarningLevel.NOTICE: "发现附近领地",
    WarningLevel.CAUTION: "接近他人领地",
    WarningLevel.DANGER: "危险：距离他人领地过近",
    WarningLevel.VIOLATION: "违规：进入他人领地",
}


DEFAULT_TZ: Final[str] = "Asia/Shanghai"
