"""Free-roam walking distance accumulation.

Uses the fine-grained sampler (1 m steps, jump and time-gap filters). Unlike a
territory claim, going over the speed limit is tolerated for a grace period:
the session only aborts once the over-speed has lasted ``sustain_s`` seconds,
checked on every fix and on every tick.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from territory_loop.models import TimedFix
from territory_loop.sampler import EXPLORATION_SAMPLING, PathSampler, SampleOutcome, SamplerParams
from territory_loop.speed import OverspeedTimer, SpeedGuard, SpeedParams, SpeedVerdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExplorationParams:
    sampler: SamplerParams = EXPLORATION_SAMPLING
    speed: SpeedParams = field(default_factory=SpeedParams)


@dataclass(frozen=True, slots=True)
class ExplorationSummary:
    distance_m: float
    duration_s: float
    points: int
    aborted: bool
    abort_reason: str | None = None


class ExplorationSession:
    """Accumulates walked distance; not thread-safe."""

    def __init__(self, params: ExplorationParams | None = None) -> None:
        self._params = params or ExplorationParams()
        self._sampler = PathSampler(self._params.sampler)
        self._guard = SpeedGuard(self._params.speed)
        self._overspeed = OverspeedTimer(self._params.speed.sustain_s)
        self._started_at_s: float | None = None
        self._last_seen_s: float | None = None
        self._summary: ExplorationSummary | None = None
        self._last_verdict: SpeedVerdict | None = None

    @property
    def active(self) -> bool:
        return self._started_at_s is not None and self._summary is None

    @property
    def distance_m(self) -> float:
        return self._sampler.distance_m

    @property
    def last_verdict(self) -> SpeedVerdict | None:
        return self._last_verdict

    @property
    def summary(self) -> ExplorationSummary | None:
        """Final result once stopped or aborted."""

        return self._summary

    def start(self, timestamp_s: float) -> None:
        if self._started_at_s is not None:
            raise ValueError("exploration already started")
        self._started_at_s = timestamp_s
        self._last_seen_s = timestamp_s

    def offer(self, fix: TimedFix) -> SampleOutcome | None:
        """Feed one fix; returns the sampler outcome, or None once finished."""

        if not self.active:
            return None
        self._last_seen_s = fix.timestamp_s

        # Speed is only trusted for fixes with usable accuracy.
        if fix.has_valid_accuracy and fix.horizontal_accuracy_m <= self._params.sampler.accuracy_threshold_m:
            verdict = self._guard.evaluate(fix, self._sampler.last_accepted)
            self._last_verdict = verdict
            self._overspeed.observe(verdict, fix.timestamp_s)
            if verdict.abort:
                remaining = self._overspeed.remaining_s(fix.timestamp_s)
                logger.warning("速度过快 (%.1f km/h)，%.0f秒后将停止探索", verdict.speed_kmh, remaining or 0.0)
            if self.tick(fix.timestamp_s) is not None:
                return None
        return self._sampler.offer(fix)

    def tick(self, now_s: float) -> ExplorationSummary | None:
        """Periodic check; returns the summary when the sustained over-speed rule fired."""

        if not self.active:
            return self._summary
        if self._overspeed.check(now_s).abort:
            logger.warning("速度持续超过%.0fkm/h，探索已中止", self._params.speed.abort_kmh)
            return self._finish(now_s, abort_reason="OVERSPEED")
        return None

    def stop(self, now_s: float | None = None) -> ExplorationSummary:
        if self._summary is not None:
            return self._summary
        if self._started_at_s is None:
            raise ValueError("exploration was never started")
        return self._finish(now_s if now_s is not None else (self._last_seen_s or self._started_at_s))

    def _finish(self, end_s: float, abort_reason: str | None = None) -> ExplorationSummary:
        started = self._started_at_s if self._started_at_s is not None else end_s
        self._overspeed.reset()
        self._summary = ExplorationSummary(
            distance_m=self._sampler.distance_m,
            duration_s=max(0.0, end_s - started),
            points=len(self._sampler),
            aborted=abort_reason is not None,
            abort_reason=abort_reason,
        )
        return self._summary
