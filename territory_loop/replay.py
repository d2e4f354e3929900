"""Drive sessions from a recorded list of fixes.

The replay acts as the location provider and the periodic timer: between two
consecutive fixes it emits one tick every ``tick_seconds`` of recorded time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Sequence

from territory_loop.exploration import ExplorationParams, ExplorationSession, ExplorationSummary
from territory_loop.models import Territory, TimedFix
from territory_loop.session import (
    ClaimParams,
    FixEvent,
    SessionEvent,
    SessionState,
    SessionUpdate,
    TickEvent,
    TrackingSession,
)


@dataclass(slots=True)
class ClaimReplay:
    session: TrackingSession
    updates: list[SessionUpdate] = field(default_factory=list)
    fixes_used: int = 0

    @property
    def final(self) -> SessionUpdate | None:
        return self.updates[-1] if self.updates else None


def iter_events(fixes: Sequence[TimedFix], tick_seconds: float | None = 2.0) -> Iterator[SessionEvent]:
    """Interleave fix events with synthetic ticks (None disables ticks)."""

    prev: TimedFix | None = None
    for fix in fixes:
        if prev is not None and tick_seconds is not None and tick_seconds > 0:
            t = prev.timestamp_s + tick_seconds
            while t < fix.timestamp_s:
                yield TickEvent(t)
                t += tick_seconds
        yield FixEvent(fix)
        prev = fix


def replay_claim(
    fixes: Sequence[TimedFix],
    competitors: Sequence[Territory] = (),
    params: ClaimParams | None = None,
    tick_seconds: float | None = 2.0,
) -> ClaimReplay:
    """Start a claim at the first fix and feed the rest until the session ends.

    A rejected start leaves the session IDLE and nothing else is replayed.
    """

    session = TrackingSession(competitors, params)
    replay = ClaimReplay(session=session)
    if not fixes:
        return replay

    replay.updates.append(session.start(fixes[0]))
    replay.fixes_used = 1
    if session.state is not SessionState.ACTIVE:
        return replay

    events = iter_events(fixes, tick_seconds)
    next(events)  # the start fix
    for event in events:
        if isinstance(event, FixEvent):
            replay.fixes_used += 1
        update = session.advance(event)
        if isinstance(event, FixEvent) or update.conflict is not None or update.state.terminal:
            replay.updates.append(update)
        if update.state.terminal:
            break
    return replay


def replay_exploration(
    fixes: Sequence[TimedFix],
    params: ExplorationParams | None = None,
    tick_seconds: float | None = 1.0,
) -> ExplorationSummary | None:
    if not fixes:
        return None
    session = ExplorationSession(params)
    session.start(fixes[0].timestamp_s)
    for event in iter_events(fixes, tick_seconds):
        if isinstance(event, FixEvent):
            session.offer(event.fix)
        elif session.tick(event.timestamp_s) is not None:
            break
        if not session.active:
            break
    return session.stop()
