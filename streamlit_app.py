from __future__ import annotations

import math
from pathlib import Path

import streamlit as st

from territory_loop.cli import build_claim_params
from territory_loop.csv_io import load_fixes
from territory_loop.models import DEFAULT_TZ, TimedFix
from territory_loop.replay import replay_claim
from territory_loop.session import SessionState, SessionUpdate, fetch_competitors
from territory_loop.store import JsonTerritoryStore
from territory_loop.timeutils import dt_from_epoch_s, format_hhmmss


@st.cache_data(show_spinner=False)
def _load_fixes(track_csv: str, mtime: float) -> list[TimedFix]:
    _ = mtime  # part of cache key so updated files reload automatically
    fixes, _summary = load_fixes(track_csv)
    return fixes


def _update_row(i: int, upd: SessionUpdate) -> dict[str, object]:
    dist = upd.conflict.distance_m if upd.conflict is not None else math.inf
    return {
        "#": i,
        "state": upd.state.value,
        "sample": upd.sample.value if upd.sample is not None else "",
        "speed_kmh": round(upd.speed.speed_kmh, 1) if upd.speed is not None and upd.speed.speed_kmh is not None else None,
        "level": upd.warning_level.name if upd.warning_level is not None else "",
        "distance_m": None if math.isinf(dist) else round(dist, 1),
        "warning_changed": upd.warning_changed,
        "message": upd.message,
    }


def main() -> None:
    st.set_page_config(page_title="圈地回放：闭环验证与碰撞检测", layout="wide")
    st.title("圈地回放：闭环验证与碰撞检测")

    with st.sidebar:
        st.subheader("数据")
        tz_name = st.text_input("时区（IANA）", value=DEFAULT_TZ)
        track_csv = st.text_input("轨迹CSV路径", value="sample_data/track.csv")
        territories_json = st.text_input("领地JSON路径（可留空）", value="")
        owner = st.text_input("当前玩家ID", value="local-player")

        with st.expander("规则参数（通常不用改）", expanded=False):
            warn_kmh = st.number_input("提示速度 warn_kmh", value=15.0, step=1.0)
            abort_kmh = st.number_input("停止速度 abort_kmh", value=30.0, step=1.0)
            closure_m = st.number_input("闭环距离阈值（米）", value=30.0, step=5.0)
            min_area = st.number_input("最小面积（平方米）", value=100.0, step=50.0)
            penetration_m = st.number_input("穿越深度阈值（米）", value=3.0, step=0.5)
            tick_seconds = st.number_input("定时器间隔（秒）", value=2.0, step=1.0)
            overspeed_grace = st.checkbox("超速宽限（速度持续超限10秒后才停止）", value=False)

    p = Path(track_csv)
    if not p.exists():
        st.error(f"找不到文件：{track_csv!r}。可先运行 scripts/generate_sample_track_csv.py 生成示例轨迹。")
        return

    fixes = _load_fixes(track_csv, p.stat().st_mtime)
    if not fixes:
        st.warning("CSV中没有可用的定位点")
        return

    # 读取失败时按“无已知领地”处理（与游戏内一致）
    competitors = fetch_competitors(JsonTerritoryStore(territories_json), owner) if territories_json else []

    params = build_claim_params(
        warn_kmh=warn_kmh,
        abort_kmh=abort_kmh,
        closure_m=closure_m,
        min_area_sq_m=min_area,
        penetration_m=penetration_m,
        overspeed_grace=overspeed_grace,
    )
    replay = replay_claim(fixes, competitors, params, tick_seconds=float(tick_seconds))
    session = replay.session
    final = replay.final

    st.subheader("结果")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("会话状态", session.state.value)
    c2.metric("记录路径点", str(len(session.path)))
    c3.metric("他人领地", str(len(competitors)))
    levels = [u.warning_level for u in replay.updates if u.warning_level is not None]
    c4.metric("最高预警", max(levels).name if levels else "-")

    start_dt = dt_from_epoch_s(fixes[0].timestamp_s, tz_name)
    st.caption(f"起点时间：{start_dt.isoformat(sep=' ')}，使用定位点 {replay.fixes_used}/{len(fixes)}")

    if session.state is SessionState.CLOSED and session.validation is not None:
        v = session.validation
        if v.is_valid and session.claim is not None:
            duration = fixes[replay.fixes_used - 1].timestamp_s - session.claim.started_at_s
            st.success(f"{v.message}（距离 {v.total_distance_m or 0.0:.0f}m，用时 {format_hhmmss(duration)}）")
        else:
            st.error(f"领地验证失败：{v.message}")
    elif session.state is SessionState.ABORTED and final is not None:
        st.error(f"圈地中止：{final.message}")
        if final.abandoned_path:
            st.caption(f"中止前已记录 {len(final.abandoned_path)} 个点（已丢弃）")
    elif session.state is SessionState.IDLE and final is not None:
        st.error(final.message)
    else:
        st.info("轨迹未闭环：请回到起点附近")

    st.subheader("事件明细")
    st.dataframe([_update_row(i, u) for i, u in enumerate(replay.updates)], use_container_width=True, height=420)

    with st.expander("路径点", expanded=False):
        st.dataframe(
            [{"lat": pt.latitude, "lon": pt.longitude} for pt in session.path],
            use_container_width=True,
            height=360,
        )


if __name__ == "__main__":
    main()
