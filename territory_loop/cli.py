"""Command-line interface for territory_loop.

Run:
    python -m territory_loop claim --csv track.csv --territories territories.json
"""

from __future__ import annotations

import argparse
import json
import logging
import math
from dataclasses import asdict

from territory_loop.closure import ClosureParams
from territory_loop.conflict import ConflictParams
from territory_loop.csv_io import iter_fixes, load_fixes
from territory_loop.geo import path_length_m, polygon_area_sq_m
from territory_loop.inspect import inspect_fixes
from territory_loop.models import DEFAULT_TZ
from territory_loop.replay import replay_claim, replay_exploration
from territory_loop.session import ClaimParams, SessionState, fetch_competitors
from territory_loop.speed import SpeedParams
from territory_loop.store import JsonTerritoryStore, StoreError
from territory_loop.timeutils import dt_from_epoch_s, format_hhmmss
from territory_loop.validation import ValidationParams


def _cmd_inspect(args: argparse.Namespace) -> int:
    fixes, summary = load_fixes(args.csv)
    res = inspect_fixes(fixes)

    print("### CSV字段")
    print(", ".join(summary.fieldnames))
    print()

    print("### 行数")
    print(f"total_rows={summary.rows_total}, parsed={summary.rows_parsed}, skipped={summary.rows_skipped}")
    print()

    if res.min_time_s is not None and res.max_time_s is not None:
        print("### 时间范围（本地时区）")
        start = dt_from_epoch_s(res.min_time_s, args.tz)
        end = dt_from_epoch_s(res.max_time_s, args.tz)
        print(f"start={start.isoformat(sep=' ')}, end={end.isoformat(sep=' ')}")
        print()

    if res.delta is not None:
        print("### 采样间隔（秒）")
        print(
            f"count={res.delta.count}, min={res.delta.min_s:.3f}, median={res.delta.median_s:.3f}, "
            f"p95={res.delta.p95_s:.3f}, max={res.delta.max_s:.3f}"
        )
        print()

    print("### 经纬度范围（粗略）")
    print(f"lat=[{res.min_lat}, {res.max_lat}], lon=[{res.min_lon}, {res.max_lon}]")
    print()

    print("### 数据质量")
    print(
        f"重复时间戳={res.duplicate_timestamps}, 精度无效={res.invalid_accuracy}, "
        f"速度未知={res.unknown_speed}, 原始轨迹长度={res.raw_length_m:.1f}m"
    )
    print()

    if args.json:
        payload = asdict(res) | {
            "rows_total": summary.rows_total,
            "rows_skipped": summary.rows_skipped,
            "fieldnames": list(summary.fieldnames),
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def build_claim_params(
    warn_kmh: float = 15.0,
    abort_kmh: float = 30.0,
    closure_m: float = 30.0,
    min_area_sq_m: float = 100.0,
    penetration_m: float = 3.0,
    overspeed_grace: bool = False,
) -> ClaimParams:
    """Rule knobs shared by the CLI and the streamlit page.

    With ``overspeed_grace`` an abort-range speed only ends the claim once it
    has lasted the sustained window.
    """

    return ClaimParams(
        speed=SpeedParams(warn_kmh=float(warn_kmh), abort_kmh=float(abort_kmh)),
        closure=ClosureParams(threshold_m=float(closure_m)),
        validation=ValidationParams(min_area_sq_m=float(min_area_sq_m)),
        conflict=ConflictParams(penetration_threshold_m=float(penetration_m)),
        abort_on_first_overspeed=not overspeed_grace,
    )


def _claim_params(args: argparse.Namespace) -> ClaimParams:
    return build_claim_params(
        warn_kmh=args.warn_kmh,
        abort_kmh=args.abort_kmh,
        closure_m=args.closure_m,
        min_area_sq_m=args.min_area,
        penetration_m=args.penetration_m,
        overspeed_grace=args.overspeed_grace,
    )


def _cmd_claim(args: argparse.Namespace) -> int:
    fixes, _ = load_fixes(args.csv)
    if not fixes:
        print("CSV中没有可用的定位点")
        return 1

    store = JsonTerritoryStore(args.territories) if args.territories else None
    competitors = fetch_competitors(store, args.owner) if store is not None else []
    print(f"他人领地：{len(competitors)} 块")

    replay = replay_claim(fixes, competitors, _claim_params(args), tick_seconds=args.tick_seconds)
    for upd in replay.updates:
        if upd.warning_changed and upd.warning_level is not None:
            dist = upd.conflict.distance_m if upd.conflict is not None else math.inf
            dist_text = "-" if math.isinf(dist) else f"{dist:.1f}m"
            print(
                f"预警：{upd.warning_level.label}（距离 {dist_text}，"
                f"震动强度 {upd.warning_level.haptic_intensity:.1f}）"
            )
        if upd.speed is not None and upd.speed.warn:
            print(upd.message)

    session = replay.session
    final = replay.final
    print(f"使用定位点：{replay.fixes_used}/{len(fixes)}，记录路径点：{len(session.path)}")

    if session.state is SessionState.IDLE:
        print(final.message if final is not None else "未能开始圈地")
        return 2
    if session.state is SessionState.ABORTED:
        print(f"圈地中止：{final.message if final is not None else session.abort_reason}")
        return 2
    if session.state is SessionState.ACTIVE:
        print("轨迹未闭环：请回到起点附近（或继续行走）")
        return 3

    result = session.validation
    if result is None or not result.is_valid or session.claim is None:
        print(f"领地验证失败：{result.message if result is not None else '未知错误'}")
        return 4

    claim = session.claim
    duration = (fixes[replay.fixes_used - 1].timestamp_s - claim.started_at_s) if replay.fixes_used else 0.0
    print(
        f"领地验证通过！面积={claim.area_sqm:.0f}m²，点数={claim.point_count}，"
        f"距离={result.total_distance_m or 0.0:.0f}m，用时={format_hhmmss(duration)}"
    )
    if args.save:
        if store is None:
            print("未指定 --territories，无法保存")
            return 1
        try:
            territory = store.save_claim(args.owner, claim)
        except StoreError as exc:
            print(f"保存失败：{exc}")
            return 1
        print(f"已保存：{store.path}（id={territory.id}）")
    return 0


def _cmd_explore(args: argparse.Namespace) -> int:
    fixes, _ = load_fixes(args.csv)
    summary = replay_exploration(fixes, tick_seconds=args.tick_seconds)
    if summary is None:
        print("CSV中没有可用的定位点")
        return 1
    print(
        f"探索距离={summary.distance_m:.1f}m，时长={format_hhmmss(summary.duration_s)}，"
        f"记录点={summary.points}"
    )
    if summary.aborted:
        print(f"探索已中止：{summary.abort_reason}（速度持续超过限制）")
        return 2
    return 0


def _cmd_area(args: argparse.Namespace) -> int:
    points = [fx.point for fx in iter_fixes(args.csv)]
    print(f"点数={len(points)}，轨迹长度={path_length_m(points):.1f}m，围合面积={polygon_area_sq_m(points):.1f}m²")
    return 0


def _cmd_territories(args: argparse.Namespace) -> int:
    store = JsonTerritoryStore(args.territories)
    try:
        territories = store.load_active(exclude_owner=args.exclude_owner)
    except StoreError as exc:
        print(exc)
        return 1
    for t in territories:
        created = t.created_at.isoformat(sep=" ") if t.created_at else "-"
        print(f"{t.id}\towner={t.owner_id}\tarea={t.area_sqm:.0f}m²\tvertices={len(t.polygon)}\tcreated={created}")
    print(f"共 {len(territories)} 块激活领地")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="territory_loop")
    p.add_argument("--log-level", type=str, default="WARNING", help="日志级别（DEBUG/INFO/WARNING）")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_ins = sub.add_parser("inspect", help="分析轨迹CSV的时间范围/采样间隔/数据质量")
    p_ins.add_argument("--csv", type=str, default="track.csv", help="输入CSV路径")
    p_ins.add_argument("--tz", type=str, default=DEFAULT_TZ, help="时区（IANA），默认 Asia/Shanghai")
    p_ins.add_argument("--json", action="store_true", help="额外输出JSON（便于后处理）")
    p_ins.set_defaults(func=_cmd_inspect)

    p_cl = sub.add_parser("claim", help="用轨迹CSV回放一次圈地（闭环检测、验证、碰撞检测）")
    p_cl.add_argument("--csv", type=str, default="track.csv", help="输入CSV路径")
    p_cl.add_argument("--territories", type=str, default=None, help="领地JSON文件（他人领地来源/保存目标）")
    p_cl.add_argument("--owner", type=str, default="local-player", help="当前玩家ID（其领地不参与碰撞检测）")
    p_cl.add_argument("--save", action="store_true", help="验证通过后保存到领地JSON文件")
    p_cl.add_argument(
        "--tick-seconds",
        type=float,
        default=2.0,
        help="回放时两次定位之间的定时器间隔（秒），用于持续超速与周期性碰撞检测",
    )
    p_cl.add_argument("--warn-kmh", type=float, default=15.0, help="超过该速度（km/h）时本点不记录并提示")
    p_cl.add_argument("--abort-kmh", type=float, default=30.0, help="超过该速度（km/h）时停止圈地")
    p_cl.add_argument("--closure-m", type=float, default=30.0, help="闭环距离阈值（米）")
    p_cl.add_argument("--min-area", type=float, default=100.0, help="最小领地面积（平方米）")
    p_cl.add_argument("--penetration-m", type=float, default=3.0, help="穿越深度阈值（米），小于此视为擦边")
    p_cl.add_argument(
        "--overspeed-grace",
        action="store_true",
        help="超速时不立即停止，速度持续超限10秒后才停止圈地",
    )
    p_cl.set_defaults(func=_cmd_claim)

    p_ex = sub.add_parser("explore", help="用轨迹CSV回放一次自由探索（累计行走距离）")
    p_ex.add_argument("--csv", type=str, default="track.csv", help="输入CSV路径")
    p_ex.add_argument("--tick-seconds", type=float, default=1.0, help="超速检测定时器间隔（秒）")
    p_ex.set_defaults(func=_cmd_explore)

    p_ar = sub.add_parser("area", help="把整条轨迹当作多边形，计算长度与面积")
    p_ar.add_argument("--csv", type=str, default="track.csv", help="输入CSV路径")
    p_ar.set_defaults(func=_cmd_area)

    p_tr = sub.add_parser("territories", help="列出领地JSON文件中的激活领地")
    p_tr.add_argument("--territories", type=str, required=True, help="领地JSON文件")
    p_tr.add_argument("--exclude-owner", type=str, default=None, help="排除该玩家的领地")
    p_tr.set_defaults(func=_cmd_territories)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
