"""Claim-attempt state machine.

A :class:`TrackingSession` is created when the player starts a claim and is
driven by explicit events pushed by the caller: :class:`FixEvent` for each new
location and :class:`TickEvent` from the caller's periodic timer. The session
owns no timers and performs no I/O; competitor territories are a snapshot
handed in by the caller (see :func:`fetch_competitors`).

Lifecycle::

    IDLE -> CHECKING -> ACTIVE -> CLOSED (valid | invalid)
                 |          `--> ABORTED (over-speed, territory violation, cancel)
                 `--> IDLE (start point inside a competitor territory)

CLOSED and ABORTED are terminal; a new claim always uses a new session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from territory_loop.closure import ClosureDetector, ClosureParams
from territory_loop.conflict import ConflictEngine, ConflictParams, PathConflict, PointConflict, WarningTracker
from territory_loop.models import ClaimRecord, GeoPoint, Territory, TimedFix, WarningLevel
from territory_loop.sampler import TERRITORY_SAMPLING, PathSampler, SampleOutcome, SamplerParams
from territory_loop.speed import OverspeedTimer, SpeedGuard, SpeedParams, SpeedVerdict
from territory_loop.store import TerritoryStore
from territory_loop.validation import TerritoryValidator, ValidationParams, ValidationResult

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    ACTIVE = "active"
    CLOSED = "closed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.ABORTED)


class AbortReason(Enum):
    OVERSPEED = "overspeed"
    SUSTAINED_OVERSPEED = "sustained_overspeed"
    ENTERED_TERRITORY = "entered_territory"
    CROSSED_BOUNDARY = "crossed_boundary"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class FixEvent:
    fix: TimedFix


@dataclass(frozen=True, slots=True)
class TickEvent:
    timestamp_s: float


SessionEvent = FixEvent | TickEvent


@dataclass(frozen=True, slots=True)
class ClaimParams:
    """All tunables of a claim attempt."""

    sampler: SamplerParams = TERRITORY_SAMPLING
    speed: SpeedParams = field(default_factory=SpeedParams)
    closure: ClosureParams = field(default_factory=ClosureParams)
    validation: ValidationParams = field(default_factory=ValidationParams)
    conflict: ConflictParams = field(default_factory=ConflictParams)
    # How often a tick re-classifies the last known position against competitors.
    collision_check_interval_s: float = 10.0
    # False tolerates abort-range fixes (rejected like warnings) until the
    # over-speed has lasted speed.sustain_s.
    abort_on_first_overspeed: bool = True

    def __post_init__(self) -> None:
        if self.collision_check_interval_s <= 0:
            raise ValueError(f"collision_check_interval_s must be > 0, got {self.collision_check_interval_s}")


@dataclass(frozen=True, slots=True)
class SessionUpdate:
    """What one call into the session changed.

    Attributes:
        state: State after the call.
        sample: Sampler outcome when the fix reached the sampler.
        speed: Speed verdict for a fix, or the sustained-rule verdict on a tick.
        conflict: Point classification when one was made.
        path_conflict: Segment classification that ended the session, if any.
        warning_changed: True when the warning level differs from the previous
            one (the caller's cue for haptic/UI feedback).
        validation: Gate result once the loop closed.
        claim: Record to persist on a valid closure.
        abort_reason: Why the session was aborted.
        offending_territory: Competitor territory involved in a violation.
        abandoned_path: The path at the moment of abort (discarded afterwards).
        message: Short human-readable summary.
    """

    state: SessionState
    sample: SampleOutcome | None = None
    speed: SpeedVerdict | None = None
    conflict: PointConflict | None = None
    path_conflict: PathConflict | None = None
    warning_changed: bool = False
    validation: ValidationResult | None = None
    claim: ClaimRecord | None = None
    abort_reason: AbortReason | None = None
    offending_territory: Territory | None = None
    abandoned_path: tuple[GeoPoint, ...] = ()
    message: str = ""

    @property
    def warning_level(self) -> WarningLevel | None:
        return self.conflict.level if self.conflict is not None else None


def fetch_competitors(store: TerritoryStore, owner_id: str) -> list[Territory]:
    """Load other players' active territories, failing open.

    A store failure is logged and treated as "no known competitors" so that a
    flaky backend never blocks play.
    """

    try:
        return list(store.load_active(exclude_owner=owner_id))
    except Exception:
        logger.warning("加载他人领地失败，按无已知领地继续", exc_info=True)
        return []


class TrackingSession:
    """One claim attempt. Not thread-safe: the caller serializes all calls."""

    def __init__(self, competitors: Sequence[Territory] = (), params: ClaimParams | None = None) -> None:
        self._params = params or ClaimParams()
        self._competitors: tuple[Territory, ...] = tuple(competitors)

        self._sampler = PathSampler(self._params.sampler)
        self._guard = SpeedGuard(self._params.speed)
        self._overspeed = OverspeedTimer(self._params.speed.sustain_s)
        self._closure = ClosureDetector(self._params.closure)
        self._validator = TerritoryValidator(self._params.validation)
        self._conflicts = ConflictEngine(self._params.conflict)
        self._warning = WarningTracker()

        self._state = SessionState.IDLE
        self._started_at_s: float | None = None
        self._last_seen: TimedFix | None = None
        self._last_collision_check_s: float | None = None
        self._last_conflict: PointConflict | None = None
        self._validation: ValidationResult | None = None
        self._claim: ClaimRecord | None = None
        self._abort_reason: AbortReason | None = None

    # -- read-only views -------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def params(self) -> ClaimParams:
        return self._params

    @property
    def path(self) -> list[GeoPoint]:
        return self._sampler.path

    @property
    def is_closed(self) -> bool:
        return self._closure.closed

    @property
    def warning_level(self) -> WarningLevel:
        return self._warning.level

    @property
    def last_conflict(self) -> PointConflict | None:
        return self._last_conflict

    @property
    def started_at_s(self) -> float | None:
        return self._started_at_s

    @property
    def validation(self) -> ValidationResult | None:
        return self._validation

    @property
    def claim(self) -> ClaimRecord | None:
        return self._claim

    @property
    def abort_reason(self) -> AbortReason | None:
        return self._abort_reason

    @property
    def competitors(self) -> tuple[Territory, ...]:
        return self._competitors

    def update_competitors(self, territories: Sequence[Territory]) -> None:
        """Replace the competitor snapshot (e.g. after a periodic refetch)."""

        self._competitors = tuple(territories)

    # -- transitions -----------------------------------------------------

    def start(self, fix: TimedFix) -> SessionUpdate:
        """Begin the claim at ``fix``.

        The start point is checked against competitors first; a start inside
        another player's territory leaves the session IDLE.

        Raises:
            ValueError: If the session is not IDLE.
        """

        if self._state is not SessionState.IDLE:
            raise ValueError(f"start() requires an idle session, current state is {self._state.value}")

        self._state = SessionState.CHECKING
        result = self._conflicts.classify_point(fix.point, self._competitors)
        self._last_conflict = result
        if result.is_violation:
            self._state = SessionState.IDLE
            territory_id = result.nearest.id if result.nearest else "未知"
            logger.warning("起始点位于他人领地内（ID: %s），圈地已取消", territory_id)
            return SessionUpdate(
                state=self._state,
                conflict=result,
                offending_territory=result.nearest,
                message="起始点位于他人领地内，无法在此圈地",
            )

        self._state = SessionState.ACTIVE
        self._started_at_s = fix.timestamp_s
        self._last_seen = fix
        self._last_collision_check_s = fix.timestamp_s
        changed = self._warning.update(result.level)
        sample = self._sampler.offer(fix)
        logger.info("起点碰撞检测通过，开始圈地追踪（最近领地 %.1fm）", result.distance_m)
        return SessionUpdate(state=self._state, sample=sample, conflict=result, warning_changed=changed)

    def advance(self, event: SessionEvent) -> SessionUpdate:
        """Feed one event. Events after a terminal state change nothing."""

        if self._state is not SessionState.ACTIVE:
            return SessionUpdate(state=self._state, message=f"会话状态为 {self._state.value}，忽略事件")
        if isinstance(event, FixEvent):
            return self._on_fix(event.fix)
        if isinstance(event, TickEvent):
            return self._on_tick(event.timestamp_s)
        raise TypeError(f"unsupported session event: {event!r}")

    def cancel(self) -> SessionUpdate:
        """Stop the claim at the player's request."""

        if self._state.terminal:
            return SessionUpdate(state=self._state)
        return self._abort(AbortReason.CANCELLED, message="圈地已取消")

    # -- internals -------------------------------------------------------

    def _on_fix(self, fix: TimedFix) -> SessionUpdate:
        self._last_seen = fix

        verdict = self._guard.evaluate(fix, self._sampler.last_accepted)
        self._overspeed.observe(verdict, fix.timestamp_s)
        if verdict.abort and self._params.abort_on_first_overspeed:
            return self._abort(
                AbortReason.OVERSPEED,
                speed=verdict,
                message=f"速度过快 ({verdict.speed_kmh:.1f} km/h)，已停止圈地",
            )
        if verdict.abort:
            if self._overspeed.check(fix.timestamp_s).abort:
                return self._abort(
                    AbortReason.SUSTAINED_OVERSPEED,
                    speed=verdict,
                    message="速度持续超过限制，圈地已停止",
                )
            remaining = self._overspeed.remaining_s(fix.timestamp_s) or 0.0
            logger.warning("速度过快 %.1f km/h，%.0f秒后将停止圈地", verdict.speed_kmh, remaining)
            return SessionUpdate(
                state=self._state,
                speed=verdict,
                message=f"速度过快 ({verdict.speed_kmh:.1f} km/h)，{remaining:.0f}秒内请减速",
            )
        if verdict.warn:
            logger.warning("速度较快 %.1f km/h，本点不记录", verdict.speed_kmh)
            return SessionUpdate(
                state=self._state,
                speed=verdict,
                message=f"移动速度过快 ({verdict.speed_kmh:.1f} km/h)，请慢行",
            )

        point = self._classify(fix)
        changed = self._warning.update(point.level)
        if point.is_violation:
            return self._abort(
                AbortReason.ENTERED_TERRITORY,
                speed=verdict,
                conflict=point,
                territory=point.nearest,
                warning_changed=changed,
                message="路径进入他人领地，圈地已停止",
            )

        last = self._sampler.last_accepted
        if last is not None:
            crossing = self._conflicts.classify_path_segment(last.point, fix.point, self._competitors)
            if crossing.has_conflict:
                changed = self._warning.update(WarningLevel.VIOLATION) or changed
                return self._abort(
                    AbortReason.CROSSED_BOUNDARY if crossing.crosses_boundary else AbortReason.ENTERED_TERRITORY,
                    speed=verdict,
                    conflict=point,
                    path_conflict=crossing,
                    territory=crossing.territory,
                    warning_changed=changed,
                    message="路径穿越他人领地边界，圈地已停止",
                )

        sample = self._sampler.offer(fix)
        if not sample.accepted or not self._closure.update(self._sampler.path):
            return SessionUpdate(
                state=self._state,
                sample=sample,
                speed=verdict,
                conflict=point,
                warning_changed=changed,
            )
        return self._close(sample, verdict, point, changed)

    def _on_tick(self, now_s: float) -> SessionUpdate:
        sustained = self._overspeed.check(now_s)
        if sustained.abort:
            return self._abort(
                AbortReason.SUSTAINED_OVERSPEED,
                speed=sustained,
                message="速度持续超过限制，圈地已停止",
            )

        last_check = self._last_collision_check_s
        if self._last_seen is None or (
            last_check is not None and now_s - last_check < self._params.collision_check_interval_s
        ):
            return SessionUpdate(state=self._state)

        self._last_collision_check_s = now_s
        point = self._classify(self._last_seen)
        changed = self._warning.update(point.level)
        if point.is_violation:
            return self._abort(
                AbortReason.ENTERED_TERRITORY,
                conflict=point,
                territory=point.nearest,
                warning_changed=changed,
                message="进入他人领地，圈地已停止",
            )
        return SessionUpdate(state=self._state, conflict=point, warning_changed=changed)

    def _classify(self, fix: TimedFix) -> PointConflict:
        result = self._conflicts.classify_point(fix.point, self._competitors)
        self._last_conflict = result
        if result.level is not WarningLevel.SAFE:
            logger.debug("距离最近领地 %.1fm，预警级别 %s", result.distance_m, result.level.name)
        return result

    def _close(
        self,
        sample: SampleOutcome,
        verdict: SpeedVerdict,
        point: PointConflict,
        changed: bool,
    ) -> SessionUpdate:
        path = self._sampler.path
        logger.info("闭环成功！共 %s 个点", len(path))
        result = self._validator.validate(path)
        self._validation = result
        self._state = SessionState.CLOSED
        if result.is_valid and result.area_sq_m is not None and self._started_at_s is not None:
            self._claim = ClaimRecord(
                polygon=tuple(path),
                area_sqm=result.area_sq_m,
                point_count=len(path),
                started_at_s=self._started_at_s,
            )
        return SessionUpdate(
            state=self._state,
            sample=sample,
            speed=verdict,
            conflict=point,
            warning_changed=changed,
            validation=result,
            claim=self._claim,
            message=result.message,
        )

    def _abort(
        self,
        reason: AbortReason,
        *,
        speed: SpeedVerdict | None = None,
        conflict: PointConflict | None = None,
        path_conflict: PathConflict | None = None,
        territory: Territory | None = None,
        warning_changed: bool = False,
        message: str = "",
    ) -> SessionUpdate:
        abandoned = tuple(self._sampler.path)
        self._sampler.clear()
        self._overspeed.reset()
        self._state = SessionState.ABORTED
        self._abort_reason = reason
        logger.warning(
            "%s（原因: %s，领地ID: %s，已记录 %s 个点）",
            message,
            reason.value,
            territory.id if territory else "-",
            len(abandoned),
        )
        return SessionUpdate(
            state=self._state,
            speed=speed,
            conflict=conflict,
            path_conflict=path_conflict,
            warning_changed=warning_changed,
            abort_reason=reason,
            offending_territory=territory,
            abandoned_path=abandoned,
            message=message,
        )
