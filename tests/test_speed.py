import pytest

from territory_loop.speed import UNKNOWN_SPEED, OverspeedTimer, SpeedGuard, SpeedParams, SpeedStatus, SpeedVerdict


def test_derived_speed_abort(make_fix):
    # 200 m in 5 s is 144 km/h.
    guard = SpeedGuard()
    previous = make_fix(0, 0, 100.0, speed=None)
    verdict = guard.evaluate(make_fix(0, 200, 105.0, speed=None), previous)
    assert verdict.abort
    assert verdict.speed_kmh == pytest.approx(144.0, rel=1e-6)


def test_reported_speed_is_preferred(make_fix):
    guard = SpeedGuard()
    previous = make_fix(0, 0, 0.0)
    # Far away in little time, but the provider says walking pace.
    verdict = guard.evaluate(make_fix(0, 200, 5.0, speed=1.2), previous)
    assert verdict.ok
    assert verdict.speed_kmh == pytest.approx(4.32)


def test_invalid_reported_speed_falls_back_to_derived(make_fix):
    guard = SpeedGuard()
    previous = make_fix(0, 0, 0.0)
    verdict = guard.evaluate(make_fix(0, 25, 5.0, speed=-1.0), previous)
    assert verdict.warn
    assert verdict.speed_kmh == pytest.approx(18.0, rel=1e-6)


@pytest.mark.parametrize(
    ("kmh", "status"),
    [
        (5.0, SpeedStatus.OK),
        (15.0, SpeedStatus.OK),
        (15.1, SpeedStatus.WARN),
        (30.0, SpeedStatus.WARN),
        (30.1, SpeedStatus.ABORT),
    ],
)
def test_thresholds_are_strict(kmh, status):
    assert SpeedGuard().classify_kmh(kmh).status is status


def test_cannot_evaluate_is_ok(make_fix):
    guard = SpeedGuard()
    fix = make_fix(0, 50, 10.0, speed=None)
    assert guard.evaluate(fix, None) is UNKNOWN_SPEED
    assert guard.evaluate(fix, make_fix(0, 0, 10.0, speed=None)) is UNKNOWN_SPEED
    assert guard.evaluate(fix, make_fix(0, 0, 12.0, speed=None)) is UNKNOWN_SPEED
    assert UNKNOWN_SPEED.ok
    assert UNKNOWN_SPEED.speed_kmh is None


def test_custom_thresholds(make_fix):
    guard = SpeedGuard(SpeedParams(warn_kmh=5.0, abort_kmh=10.0))
    assert guard.evaluate(make_fix(0, 0, 0.0, speed=2.0), None).warn
    assert guard.evaluate(make_fix(0, 0, 0.0, speed=3.0), None).abort


def test_overspeed_timer_fires_after_sustain():
    timer = OverspeedTimer(sustain_s=10.0)
    over = SpeedVerdict(SpeedStatus.ABORT, 40.0)

    timer.observe(over, 100.0)
    timer.observe(over, 104.0)
    assert timer.since_s == 100.0
    assert timer.remaining_s(104.0) == pytest.approx(6.0)
    assert timer.check(109.9).ok

    verdict = timer.check(110.0)
    assert verdict.abort
    assert verdict.speed_kmh == 40.0


def test_overspeed_timer_resets_on_normal_speed():
    timer = OverspeedTimer(sustain_s=10.0)
    timer.observe(SpeedVerdict(SpeedStatus.ABORT, 40.0), 0.0)
    timer.observe(SpeedVerdict(SpeedStatus.WARN, 20.0), 8.0)
    assert timer.since_s is None
    assert timer.remaining_s(20.0) is None
    assert timer.check(20.0).ok


@pytest.mark.parametrize(
    "kwargs",
    [{"warn_kmh": 0.0}, {"warn_kmh": 40.0, "abort_kmh": 30.0}, {"sustain_s": -1.0}],
)
def test_invalid_speed_params(kwargs):
    with pytest.raises(ValueError):
        SpeedParams(**kwargs)
