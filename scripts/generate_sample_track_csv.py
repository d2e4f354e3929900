from __future__ import annotations

import argparse
import random
from pathlib import Path
from typing import Final

from territory_loop.csv_io import write_fixes_csv
from territory_loop.geo import offset_m, polygon_area_sq_m
from territory_loop.models import ClaimRecord, GeoPoint, TimedFix
from territory_loop.store import JsonTerritoryStore


ORIGIN: Final[GeoPoint] = GeoPoint(latitude=31.2304000, longitude=121.4737000)


def _outline(shape: str, width_m: float, height_m: float) -> list[tuple[float, float]]:
    """Corner offsets (east, north) in meters, first corner repeated at the end."""

    if shape == "figure8":
        return [(0, 0), (width_m, height_m), (width_m, 0), (0, height_m), (0, 0)]
    return [(0, 0), (width_m, 0), (width_m, height_m), (0, height_m), (0, 0)]


def generate_fixes(
    *,
    seed: int,
    start_epoch_s: float,
    shape: str,
    width_m: float,
    height_m: float,
    step_m: float,
    walk_mps: float,
) -> list[TimedFix]:
    """Generate a walked loop with GPS jitter, unknown speeds and bad-accuracy samples."""

    rng = random.Random(seed)
    corners = _outline(shape, width_m, height_m)

    out: list[TimedFix] = []
    t = start_epoch_s
    for (x0, y0), (x1, y1) in zip(corners, corners[1:]):
        leg = ((x1 - x0) ** 2 + (y1 - y0) ** 2) ** 0.5
        steps = max(1, int(leg // step_m))
        for k in range(steps):
            f = k / steps
            x = x0 + (x1 - x0) * f + rng.uniform(-1.5, 1.5)
            y = y0 + (y1 - y0) * f + rng.uniform(-1.5, 1.5)
            speed = rng.choice([walk_mps, walk_mps * 1.1, walk_mps * 0.9, -1.0])
            hacc = rng.choice([5.0, 8.0, 10.0, 15.0, 20.0, 80.0, -1.0])
            out.append(
                TimedFix(
                    point=offset_m(ORIGIN, x, y),
                    timestamp_s=t,
                    horizontal_accuracy_m=hacc,
                    speed_mps=speed if speed >= 0 else None,
                )
            )
            t += (leg / steps) / walk_mps

    # Walk back onto the starting corner.
    out.append(TimedFix(point=offset_m(ORIGIN, 1.0, 1.0), timestamp_s=t, horizontal_accuracy_m=5.0, speed_mps=walk_mps))
    return out


def competitor_square(east_m: float, north_m: float, size_m: float) -> ClaimRecord:
    corners = [(0, 0), (size_m, 0), (size_m, size_m), (0, size_m)]
    polygon = tuple(offset_m(ORIGIN, east_m + dx, north_m + dy) for dx, dy in corners)
    return ClaimRecord(polygon=polygon, area_sqm=polygon_area_sq_m(polygon), point_count=4, started_at_s=0.0)


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake walking-loop track CSV for demo/testing (privacy-safe).")
    p.add_argument("--out", type=str, default="sample_data/track.csv", help="Output CSV path")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument("--shape", type=str, default="rect", choices=["rect", "figure8"], help="Loop shape")
    p.add_argument("--width-m", type=float, default=150.0, help="Loop width in meters")
    p.add_argument("--height-m", type=float, default=100.0, help="Loop height in meters")
    p.add_argument("--step-m", type=float, default=12.0, help="Distance between samples in meters")
    p.add_argument("--walk-mps", type=float, default=1.4, help="Walking speed in m/s")
    p.add_argument("--start-epoch", type=float, default=1_735_689_600.0, help="Start time (Unix seconds)")
    p.add_argument(
        "--territories-out",
        type=str,
        default=None,
        help="Also write a territories JSON with one competitor square 60m east of the loop",
    )
    args = p.parse_args()

    fixes = generate_fixes(
        seed=args.seed,
        start_epoch_s=args.start_epoch,
        shape=args.shape,
        width_m=args.width_m,
        height_m=args.height_m,
        step_m=args.step_m,
        walk_mps=args.walk_mps,
    )
    out_path = Path(args.out)
    write_fixes_csv(fixes, out_path)
    print(f"Generated: {out_path} (rows={len(fixes)}, seed={args.seed}, shape={args.shape})")

    if args.territories_out:
        store = JsonTerritoryStore(args.territories_out)
        territory = store.save_claim("rival-player", competitor_square(args.width_m + 60.0, 0.0, 80.0))
        print(f"Generated: {args.territories_out} (competitor id={territory.id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
