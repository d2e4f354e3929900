"""Turn a raw stream of fixes into a filtered, deduplicated path."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Final

from territory_loop.geo import distance_m
from territory_loop.models import GeoPoint, TimedFix

logger = logging.getLogger(__name__)


class SampleOutcome(Enum):
    """What the sampler did with one offered fix."""

    ACCEPTED = "accepted"
    REJECTED_ACCURACY = "rejected_accuracy"
    REJECTED_TOO_CLOSE = "rejected_too_close"
    REJECTED_TIME_GAP = "rejected_time_gap"
    REJECTED_JUMP = "rejected_jump"

    @property
    def accepted(self) -> bool:
        return self is SampleOutcome.ACCEPTED


@dataclass(frozen=True, slots=True)
class SamplerParams:
    """Parameters controlling path sampling."""

    # Minimum distance from the last accepted point before a new point is kept.
    min_step_m: float
    # Fixes with unknown accuracy or accuracy worse than this are dropped.
    accuracy_threshold_m: float = 50.0
    # Steps longer than this are treated as GPS jumps and dropped (None disables).
    max_jump_m: float | None = None
    # Fixes closer in time than this to the last accepted one are dropped.
    min_interval_s: float = 0.0

    def __post_init__(self) -> None:
        if self.min_step_m < 0:
            raise ValueError(f"min_step_m must be >= 0, got {self.min_step_m}")
        if self.accuracy_threshold_m <= 0:
            raise ValueError(f"accuracy_threshold_m must be > 0, got {self.accuracy_threshold_m}")
        if self.max_jump_m is not None and self.max_jump_m <= self.min_step_m:
            raise ValueError("max_jump_m must be larger than min_step_m")
        if self.min_interval_s < 0:
            raise ValueError(f"min_interval_s must be >= 0, got {self.min_interval_s}")


TERRITORY_SAMPLING: Final[SamplerParams] = SamplerParams(min_step_m=10.0)
EXPLORATION_SAMPLING: Final[SamplerParams] = SamplerParams(min_step_m=1.0, max_jump_m=100.0, min_interval_s=1.0)


class PathSampler:
    """Accumulates accepted fixes into a path.

    Rejections are silent: nothing is appended and nothing is raised. The
    sampler never blocks and never retries.
    """

    def __init__(self, params: SamplerParams = TERRITORY_SAMPLING) -> None:
        self._params = params
        self._path: list[GeoPoint] = []
        self._last_accepted: TimedFix | None = None
        self._distance_m = 0.0

    @property
    def params(self) -> SamplerParams:
        return self._params

    @property
    def path(self) -> list[GeoPoint]:
        """A copy of the accepted points, oldest first."""

        return list(self._path)

    @property
    def last_accepted(self) -> TimedFix | None:
        return self._last_accepted

    @property
    def distance_m(self) -> float:
        """Sum of accepted step lengths."""

        return self._distance_m

    def __len__(self) -> int:
        return len(self._path)

    def offer(self, fix: TimedFix) -> SampleOutcome:
        """Offer one fix; return whether it was appended to the path."""

        p = self._params
        if not fix.has_valid_accuracy or fix.horizontal_accuracy_m > p.accuracy_threshold_m:
            return SampleOutcome.REJECTED_ACCURACY

        last = self._last_accepted
        if last is None:
            self._accept(fix, 0.0)
            return SampleOutcome.ACCEPTED

        if fix.timestamp_s - last.timestamp_s < p.min_interval_s:
            return SampleOutcome.REJECTED_TIME_GAP

        step = distance_m(last.point, fix.point)
        if p.max_jump_m is not None and step > p.max_jump_m:
            logger.debug("丢弃跳点：距上点 %.1fm > %.1fm", step, p.max_jump_m)
            return SampleOutcome.REJECTED_JUMP
        if step < p.min_step_m:
            return SampleOutcome.REJECTED_TOO_CLOSE

        self._accept(fix, step)
        return SampleOutcome.ACCEPTED

    def _accept(self, fix: TimedFix, step: float) -> None:
        self._path.append(fix.point)
        self._last_accepted = fix
        self._distance_m += step
        logger.debug("记录第%s个点，距上点 %.1fm", len(self._path), step)

    def clear(self) -> None:
        """Drop the accumulated path (used when a session is discarded)."""

        self._path.clear()
        self._last_accepted = None
        self._distance_m = 0.0
