"""CSV replay logs: read exported fixes, write generated ones."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from territory_loop.models import GeoPoint, TimedFix

logger = logging.getLogger(__name__)

FIELDNAMES: tuple[str, ...] = ("geoTime", "latitude", "longitude", "speed", "horizontalAccuracy")


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_float(value: str) -> float:
    return float(value.strip())


def fix_from_row(row: dict[str, str]) -> TimedFix:
    """Parse one export row.

    Columns (observed in the export):
      - geoTime: epoch milliseconds
      - latitude/longitude: decimal degrees
      - speed: m/s, -1 when unknown (optional)
      - horizontalAccuracy: meters, -1 when unknown (optional)

    Raises:
        KeyError: If a required column is missing.
        ValueError: If a value cannot be parsed.
    """

    speed = _parse_float(row.get("speed", "-1") or "-1")
    return TimedFix(
        point=GeoPoint(latitude=_parse_float(row["latitude"]), longitude=_parse_float(row["longitude"])),
        timestamp_s=_parse_int(row["geoTime"]) / 1000.0,
        horizontal_accuracy_m=_parse_float(row.get("horizontalAccuracy", "-1") or "-1"),
        speed_mps=speed if speed >= 0 else None,
    )


def iter_fixes(csv_path: str | Path) -> Iterator[TimedFix]:
    """Yield fixes from a replay CSV, skipping broken rows.

    Raises:
        KeyError: If the file lacks a required column.
    """

    p = Path(csv_path)
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            return

        for row in reader:
            try:
                yield fix_from_row(row)
            except KeyError as exc:
                raise KeyError(f"CSV缺少必要字段：{exc}. 实际字段：{reader.fieldnames}") from exc
            except (ValueError, TypeError):
                # 某些行可能损坏/空行，直接跳过
                continue


def load_fixes(csv_path: str | Path) -> tuple[list[TimedFix], CsvSummary]:
    """Load all fixes into memory, sorted by time.

    Returns:
        (fixes, summary)
    """

    p = Path(csv_path)
    rows_total = 0
    parsed: list[TimedFix] = []
    fieldnames: Sequence[str] = ()

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or ()
        for row in reader:
            rows_total += 1
            try:
                parsed.append(fix_from_row(row))
            except (KeyError, ValueError, TypeError):
                continue

    parsed.sort(key=lambda fx: fx.timestamp_s)
    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("CSV中有 %s 行解析失败已跳过", summary.rows_skipped)
    return parsed, summary


def write_fixes_csv(fixes: Iterable[TimedFix], out_path: str | Path) -> None:
    """Write fixes in the export format (unknown values as -1)."""

    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(FIELDNAMES))
        w.writeheader()
        for fx in fixes:
            w.writerow(
                {
                    "geoTime": int(round(fx.timestamp_s * 1000)),
                    "latitude": f"{fx.point.latitude:.7f}",
                    "longitude": f"{fx.point.longitude:.7f}",
                    "speed": f"{fx.speed_mps:.2f}" if fx.speed_mps is not None else "-1",
                    "horizontalAccuracy": f"{fx.horizontal_accuracy_m:.1f}",
                }
            )
