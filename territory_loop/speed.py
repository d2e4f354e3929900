"""Anti-cheat speed checks."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from territory_loop.geo import distance_m
from territory_loop.models import TimedFix

MPS_TO_KMH = 3.6


class SpeedStatus(Enum):
    OK = "ok"
    WARN = "warn"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class SpeedVerdict:
    """Classification of one movement step.

    ``speed_kmh`` is None when the speed could not be evaluated (no previous
    fix, no reported speed and a non-positive time delta).
    """

    status: SpeedStatus
    speed_kmh: float | None = None

    @property
    def ok(self) -> bool:
        return self.status is SpeedStatus.OK

    @property
    def warn(self) -> bool:
        return self.status is SpeedStatus.WARN

    @property
    def abort(self) -> bool:
        return self.status is SpeedStatus.ABORT


UNKNOWN_SPEED = SpeedVerdict(SpeedStatus.OK)


@dataclass(frozen=True, slots=True)
class SpeedParams:
    """Speed thresholds (km/h) and the sustained over-speed window (seconds)."""

    warn_kmh: float = 15.0
    abort_kmh: float = 30.0
    sustain_s: float = 10.0

    def __post_init__(self) -> None:
        if not 0 < self.warn_kmh <= self.abort_kmh:
            raise ValueError(f"need 0 < warn_kmh <= abort_kmh, got {self.warn_kmh}/{self.abort_kmh}")
        if self.sustain_s < 0:
            raise ValueError(f"sustain_s must be >= 0, got {self.sustain_s}")


class SpeedGuard:
    """Classifies the speed of each new fix relative to the previous accepted one."""

    def __init__(self, params: SpeedParams | None = None) -> None:
        self._params = params or SpeedParams()

    @property
    def params(self) -> SpeedParams:
        return self._params

    def classify_kmh(self, speed_kmh: float) -> SpeedVerdict:
        if speed_kmh > self._params.abort_kmh:
            return SpeedVerdict(SpeedStatus.ABORT, speed_kmh)
        if speed_kmh > self._params.warn_kmh:
            return SpeedVerdict(SpeedStatus.WARN, speed_kmh)
        return SpeedVerdict(SpeedStatus.OK, speed_kmh)

    def evaluate(self, fix: TimedFix, previous: TimedFix | None) -> SpeedVerdict:
        """Classify the movement from ``previous`` to ``fix``.

        The provider's own speed is preferred when it is valid; otherwise the
        speed is derived from distance over elapsed time. Zero or negative time
        deltas cannot be evaluated and are reported as OK.
        """

        if fix.speed_mps is not None and fix.has_valid_speed:
            return self.classify_kmh(fix.speed_mps * MPS_TO_KMH)

        if previous is None:
            return UNKNOWN_SPEED
        dt = fix.timestamp_s - previous.timestamp_s
        if not math.isfinite(dt) or dt <= 0:
            return UNKNOWN_SPEED
        return self.classify_kmh(distance_m(previous.point, fix.point) / dt * MPS_TO_KMH)


class OverspeedTimer:
    """Tracks how long speed has stayed in the abort range.

    Feed every verdict through :meth:`observe`; call :meth:`check` on each
    periodic tick. Once the over-speed has lasted ``sustain_s`` seconds the
    check reports an abort, even if no new fix arrived in the meantime.
    """

    def __init__(self, sustain_s: float = 10.0) -> None:
        self._sustain_s = sustain_s
        self._since_s: float | None = None
        self._last_kmh: float | None = None

    @property
    def since_s(self) -> float | None:
        return self._since_s

    def observe(self, verdict: SpeedVerdict, timestamp_s: float) -> None:
        if verdict.abort:
            if self._since_s is None:
                self._since_s = timestamp_s
            self._last_kmh = verdict.speed_kmh
        else:
            self.reset()

    def remaining_s(self, now_s: float) -> float | None:
        """Seconds left before the sustained rule fires, or None when not over speed."""

        if self._since_s is None:
            return None
        return max(0.0, self._sustain_s - (now_s - self._since_s))

    def check(self, now_s: float) -> SpeedVerdict:
        if self._since_s is not None and now_s - self._since_s >= self._sustain_s:
            return SpeedVerdict(SpeedStatus.ABORT, self._last_kmh)
        return UNKNOWN_SPEED

    def reset(self) -> None:
        self._since_s = None
        self._last_kmh = None
