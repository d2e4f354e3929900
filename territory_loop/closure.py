"""Loop closure detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from territory_loop.geo import is_inside_circle
from territory_loop.models import GeoPoint


@dataclass(frozen=True, slots=True)
class ClosureParams:
    threshold_m: float = 30.0
    min_points: int = 10

    def __post_init__(self) -> None:
        if self.threshold_m <= 0:
            raise ValueError(f"threshold_m must be > 0, got {self.threshold_m}")
        if self.min_points < 3:
            raise ValueError(f"min_points must be >= 3, got {self.min_points}")


def check_closure(path: Sequence[GeoPoint], threshold_m: float = 30.0, min_points: int = 10) -> bool:
    """True when the path has enough points and its last point is back near its first."""

    if len(path) < min_points:
        return False
    return is_inside_circle(path[-1], path[0], threshold_m)


class ClosureDetector:
    """Latching closure check: once closed, stays closed for the session."""

    def __init__(self, params: ClosureParams | None = None) -> None:
        self._params = params or ClosureParams()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def update(self, path: Sequence[GeoPoint]) -> bool:
        if not self._closed:
            self._closed = check_closure(path, self._params.threshold_m, self._params.min_points)
        return self._closed
