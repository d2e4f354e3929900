"""Territory acceptance pipeline for a closed loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from territory_loop.geo import distance_m, path_length_m, polygon_area_sq_m, segments_intersect
from territory_loop.models import GeoPoint

logger = logging.getLogger(__name__)


class GateFailure(Enum):
    """Which acceptance gate rejected the loop (gates run in this order)."""

    TOO_FEW_POINTS = "too_few_points"
    TOO_SHORT = "too_short"
    SELF_INTERSECTION = "self_intersection"
    TOO_SMALL = "too_small"


@dataclass(frozen=True, slots=True)
class ValidationParams:
    """Parameters for the acceptance gates and the self-intersection heuristic."""

    min_points: int = 10
    min_total_distance_m: float = 50.0
    min_area_sq_m: float = 100.0
    # Crossings whose segments have endpoints closer than this are GPS jitter.
    intersection_tolerance_m: float = 5.0
    # Segments this close to the start/end of the path are not compared with each other.
    head_skip: int = 3
    tail_skip: int = 3

    def __post_init__(self) -> None:
        if self.min_points < 3:
            raise ValueError(f"min_points must be >= 3, got {self.min_points}")
        if self.head_skip < 0 or self.tail_skip < 0:
            raise ValueError("head_skip/tail_skip must be >= 0")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of the gates plus the measured values.

    Measurements that were not reached because an earlier gate failed are None.
    """

    is_valid: bool
    failure: GateFailure | None
    point_count: int
    total_distance_m: float | None = None
    area_sq_m: float | None = None
    message: str = ""


def find_self_intersection(
    path: Sequence[GeoPoint],
    tolerance_m: float = 5.0,
    head_skip: int = 3,
    tail_skip: int = 3,
) -> tuple[int, int] | None:
    """Find the first pair of crossing, non-adjacent path segments.

    Segment ``i`` runs from ``path[i]`` to ``path[i + 1]``. Pairs ``(i, j)``
    with ``j >= i + 2`` are compared, except pairs where ``i`` is one of the
    first ``head_skip`` segments and ``j`` one of the last ``tail_skip``:
    a closed loop's seam is expected to come back near its start. A crossing
    is discounted when any endpoint of one segment is within ``tolerance_m``
    of an endpoint of the other.

    Returns:
        (i, j) segment indices, or None when no crossing is found.
    """

    if len(path) < 4:
        return None
    segment_count = len(path) - 1

    for i in range(segment_count):
        p1, p2 = path[i], path[i + 1]
        for j in range(i + 2, segment_count):
            if i < head_skip and j >= segment_count - tail_skip:
                continue
            p3, p4 = path[j], path[j + 1]
            if not segments_intersect(p1, p2, p3, p4):
                continue
            nearest = min(distance_m(p1, p3), distance_m(p1, p4), distance_m(p2, p3), distance_m(p2, p4))
            if nearest < tolerance_m:
                continue
            return i, j
    return None


def has_self_intersection(path: Sequence[GeoPoint], tolerance_m: float = 5.0, head_skip: int = 3, tail_skip: int = 3) -> bool:
    return find_self_intersection(path, tolerance_m, head_skip, tail_skip) is not None


class TerritoryValidator:
    """Runs the acceptance gates in order and reports the first failure."""

    def __init__(self, params: ValidationParams | None = None) -> None:
        self._params = params or ValidationParams()

    @property
    def params(self) -> ValidationParams:
        return self._params

    def validate(self, path: Sequence[GeoPoint]) -> ValidationResult:
        p = self._params
        count = len(path)
        logger.info("开始领地验证：%s个点", count)

        if count < p.min_points:
            return self._fail(
                GateFailure.TOO_FEW_POINTS,
                count,
                message=f"点数不足: {count}个点 (需≥{p.min_points}个)",
            )

        total = path_length_m(path)
        if total < p.min_total_distance_m:
            return self._fail(
                GateFailure.TOO_SHORT,
                count,
                total_distance_m=total,
                message=f"距离不足: {total:.0f}m (需≥{p.min_total_distance_m:.0f}m)",
            )

        crossing = find_self_intersection(path, p.intersection_tolerance_m, p.head_skip, p.tail_skip)
        if crossing is not None:
            i, j = crossing
            return self._fail(
                GateFailure.SELF_INTERSECTION,
                count,
                total_distance_m=total,
                message=f"轨迹自相交（线段{i}-{i + 1} 与 线段{j}-{j + 1}），请勿画8字形",
            )

        area = polygon_area_sq_m(path)
        if area < p.min_area_sq_m:
            return self._fail(
                GateFailure.TOO_SMALL,
                count,
                total_distance_m=total,
                area_sq_m=area,
                message=f"面积不足: {area:.0f}m² (需≥{p.min_area_sq_m:.0f}m²)",
            )

        logger.info("领地验证通过！面积: %.0fm²，距离: %.0fm", area, total)
        return ValidationResult(
            is_valid=True,
            failure=None,
            point_count=count,
            total_distance_m=total,
            area_sq_m=area,
            message=f"领地验证通过！面积: {area:.0f}m²",
        )

    @staticmethod
    def _fail(
        failure: GateFailure,
        count: int,
        *,
        total_distance_m: float | None = None,
        area_sq_m: float | None = None,
        message: str,
    ) -> ValidationResult:
        logger.warning("领地验证失败: %s", message)
        return ValidationResult(
            is_valid=False,
            failure=failure,
            point_count=count,
            total_distance_m=total_distance_m,
            area_sq_m=area_sq_m,
            message=message,
        )
