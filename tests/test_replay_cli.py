import json

import pytest

from territory_loop.cli import build_claim_params, main
from territory_loop.csv_io import write_fixes_csv
from territory_loop.replay import iter_events, replay_claim
from territory_loop.session import AbortReason, FixEvent, SessionState, TickEvent


@pytest.fixture
def track_csv(tmp_path, block_fixes):
    p = tmp_path / "track.csv"
    write_fixes_csv(block_fixes, p)
    return p


def test_iter_events_interleaves_ticks(make_fix):
    fixes = [make_fix(0, 0, 0.0), make_fix(0, 20, 5.0)]
    events = list(iter_events(fixes, tick_seconds=2.0))
    assert events == [FixEvent(fixes[0]), TickEvent(2.0), TickEvent(4.0), FixEvent(fixes[1])]
    assert list(iter_events(fixes, tick_seconds=None)) == [FixEvent(f) for f in fixes]


def test_replay_claim_stops_at_closure(block_fixes, make_fix):
    extra = make_fix(300, 300, 2000.0)
    replay = replay_claim(block_fixes + [extra])
    assert replay.session.state is SessionState.CLOSED
    assert replay.fixes_used == 12
    assert replay.final.claim is not None


def test_replay_claim_rejected_start(block_fixes, make_territory):
    replay = replay_claim(block_fixes, [make_territory(-10, -10, 10, 10)])
    assert replay.session.state is SessionState.IDLE
    assert replay.fixes_used == 1
    assert len(replay.updates) == 1


def test_replay_claim_without_fixes():
    replay = replay_claim([])
    assert replay.final is None
    assert replay.session.state is SessionState.IDLE


def test_cli_claim_save_and_list(track_csv, tmp_path, capsys, make_block_walk):
    territories = tmp_path / "territories.json"
    assert main(["claim", "--csv", str(track_csv), "--territories", str(territories), "--save"]) == 0
    assert "领地验证通过" in capsys.readouterr().out

    rows = json.loads(territories.read_text(encoding="utf-8"))
    assert len(rows) == 1
    assert rows[0]["user_id"] == "local-player"
    assert rows[0]["polygon"].startswith("SRID=4326;POLYGON((")

    assert main(["territories", "--territories", str(territories)]) == 0
    assert "共 1 块激活领地" in capsys.readouterr().out

    # The saved territory now blocks another player starting inside it.
    inside = tmp_path / "inside.csv"
    write_fixes_csv(make_block_walk(20, 20, t0=5000.0), inside)
    assert main(["claim", "--csv", str(inside), "--territories", str(territories), "--owner", "someone-else"]) == 2
    assert main(["claim", "--csv", str(inside), "--territories", str(territories)]) == 0


def test_cli_reports_corrupt_territory_file(track_csv, tmp_path, capsys):
    territories = tmp_path / "territories.json"
    territories.write_text("{broken", encoding="utf-8")

    assert main(["claim", "--csv", str(track_csv), "--territories", str(territories), "--save"]) == 1
    assert "领地文件不是合法JSON" in capsys.readouterr().out
    assert territories.read_text(encoding="utf-8") == "{broken"

    assert main(["territories", "--territories", str(territories)]) == 1
    assert "领地文件不是合法JSON" in capsys.readouterr().out


def test_cli_claim_not_closed(tmp_path, block_fixes):
    p = tmp_path / "partial.csv"
    write_fixes_csv(block_fixes[:-1], p)
    assert main(["claim", "--csv", str(p)]) == 3


def test_cli_other_commands(track_csv, capsys):
    assert main(["inspect", "--csv", str(track_csv), "--json"]) == 0
    assert main(["explore", "--csv", str(track_csv)]) == 0
    assert main(["area", "--csv", str(track_csv)]) == 0
    out = capsys.readouterr().out
    assert "点数=12" in out


@pytest.fixture
def fast_block_fixes(block_fixes, make_fix):
    # One car-speed reading halfway round; the walker is back to normal 32 s later.
    fixes = list(block_fixes)
    fixes[5] = make_fix(150, 75, fixes[5].timestamp_s, speed=12.0)
    return fixes


def test_overspeed_grace_setting(fast_block_fixes):
    assert build_claim_params().abort_on_first_overspeed
    grace = build_claim_params(overspeed_grace=True)
    assert not grace.abort_on_first_overspeed

    strict = replay_claim(fast_block_fixes, tick_seconds=None)
    assert strict.session.state is SessionState.ABORTED
    assert strict.session.abort_reason is AbortReason.OVERSPEED

    relaxed = replay_claim(fast_block_fixes, params=grace, tick_seconds=None)
    assert relaxed.session.state is SessionState.CLOSED
    assert relaxed.session.claim is not None

    # Timer ticks keep the sustained rule running while no fix arrives.
    ticking = replay_claim(fast_block_fixes, params=grace, tick_seconds=2.0)
    assert ticking.session.state is SessionState.ABORTED
    assert ticking.session.abort_reason is AbortReason.SUSTAINED_OVERSPEED
