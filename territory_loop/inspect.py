"""Inspect a replay log before feeding it to a session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from territory_loop.geo import path_length_m
from territory_loop.models import TimedFix
from territory_loop.timeutils import DeltaStats, delta_stats


@dataclass(frozen=True, slots=True)
class InspectResult:
    """High-level replay log inspection result."""

    fixes: int
    min_time_s: float | None
    max_time_s: float | None
    delta: DeltaStats | None
    min_lat: float | None
    max_lat: float | None
    min_lon: float | None
    max_lon: float | None
    duplicate_timestamps: int
    invalid_accuracy: int
    unknown_speed: int
    raw_length_m: float


def inspect_fixes(fixes: Sequence[TimedFix]) -> InspectResult:
    """Inspect already-loaded fixes."""

    if not fixes:
        return InspectResult(
            fixes=0,
            min_time_s=None,
            max_time_s=None,
            delta=None,
            min_lat=None,
            max_lat=None,
            min_lon=None,
            max_lon=None,
            duplicate_timestamps=0,
            invalid_accuracy=0,
            unknown_speed=0,
            raw_length_m=0.0,
        )

    times = sorted(fx.timestamp_s for fx in fixes)
    dupe = sum(1 for i in range(1, len(times)) if times[i] == times[i - 1])

    lats = [fx.point.latitude for fx in fixes]
    lons = [fx.point.longitude for fx in fixes]
    return InspectResult(
        fixes=len(fixes),
        min_time_s=times[0],
        max_time_s=times[-1],
        delta=delta_stats(times),
        min_lat=min(lats),
        max_lat=max(lats),
        min_lon=min(lons),
        max_lon=max(lons),
        duplicate_timestamps=dupe,
        invalid_accuracy=sum(1 for fx in fixes if not fx.has_valid_accuracy),
        unknown_speed=sum(1 for fx in fixes if not fx.has_valid_speed),
        raw_length_m=path_length_m([fx.point for fx in fixes]),
    )
