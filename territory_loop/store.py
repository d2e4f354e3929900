"""Territory persistence: a small JSON-file store and backend serialization helpers.

Rows use the column names of the game's backend table (``user_id``, ``path``,
``polygon`` as WKT, ``bbox_*``, ``area``, ``point_count``, ``started_at``,
``is_active``) so that a JSON dump of the table can be used as-is.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

from territory_loop.geo import bounding_box
from territory_loop.models import ClaimRecord, GeoPoint, Territory

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The store file exists but cannot be read as a territory list."""


class TerritoryStore(Protocol):
    """Read/write boundary to wherever territories live."""

    def load_active(self, exclude_owner: str | None = None) -> list[Territory]:
        ...

    def save_claim(self, owner_id: str, record: ClaimRecord) -> Territory:
        ...

    def deactivate(self, territory_id: str) -> bool:
        ...


def polygon_to_wkt(polygon: Sequence[GeoPoint]) -> str:
    """Serialize to ``SRID=4326;POLYGON((lon lat, ...))``.

    WKT lists longitude first and requires an explicitly closed ring, so the
    first vertex is appended when the polygon does not already end with it.
    """

    ring = list(polygon)
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    coords = ", ".join(f"{p.longitude} {p.latitude}" for p in ring)
    return f"SRID=4326;POLYGON(({coords}))"


def _parse_dt(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def territory_from_row(row: dict[str, Any]) -> Territory:
    """Build a Territory from a stored row.

    Raises:
        KeyError/ValueError/TypeError: If required fields are missing or malformed.
    """

    polygon = tuple(GeoPoint(latitude=float(p["lat"]), longitude=float(p["lon"])) for p in row["path"])
    return Territory(
        id=str(row["id"]),
        owner_id=str(row["user_id"]).lower(),
        polygon=polygon,
        area_sqm=float(row.get("area", 0.0) or 0.0),
        created_at=_parse_dt(row.get("created_at")),
        is_active=bool(row.get("is_active", True)),
    )


def claim_to_row(owner_id: str, record: ClaimRecord, territory_id: str, created_at: datetime) -> dict[str, Any]:
    """Serialize a claim the way the backend table expects it."""

    min_lat, max_lat, min_lon, max_lon = bounding_box(record.polygon)
    return {
        "id": territory_id,
        "user_id": owner_id.lower(),
        "path": [{"lat": p.latitude, "lon": p.longitude} for p in record.polygon],
        "polygon": polygon_to_wkt(record.polygon),
        "bbox_min_lat": min_lat,
        "bbox_max_lat": max_lat,
        "bbox_min_lon": min_lon,
        "bbox_max_lon": max_lon,
        "area": record.area_sqm,
        "point_count": record.point_count,
        "started_at": datetime.fromtimestamp(record.started_at_s, tz=UTC).isoformat(),
        "created_at": created_at.isoformat(),
        "is_active": True,
    }


class JsonTerritoryStore:
    """Territories persisted as a JSON list on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._rows: list[dict[str, Any]] = []
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load rows from disk (missing or empty file means no territories)."""

        if self._loaded:
            return
        self._rows = []
        if self._path.exists():
            text = self._path.read_text(encoding="utf-8").strip()
            if text:
                try:
                    data = json.loads(text)
                except json.JSONDecodeError as exc:
                    raise StoreError(f"领地文件不是合法JSON：{self._path}") from exc
                if not isinstance(data, list):
                    raise StoreError(f"领地文件应为JSON数组：{self._path}")
                self._rows = [r for r in data if isinstance(r, dict)]
        self._loaded = True

    def territories(self) -> Iterable[Territory]:
        """Yield every parseable territory, active or not."""

        self.load()
        skipped = 0
        for row in self._rows:
            try:
                yield territory_from_row(row)
            except (KeyError, ValueError, TypeError):
                skipped += 1
        if skipped:
            logger.warning("领地文件中有 %s 条记录解析失败已跳过", skipped)

    def load_active(self, exclude_owner: str | None = None) -> list[Territory]:
        owner = exclude_owner.lower() if exclude_owner else None
        return [t for t in self.territories() if t.is_active and t.owner_id != owner]

    def save_claim(self, owner_id: str, record: ClaimRecord) -> Territory:
        self.load()
        territory_id = str(uuid.uuid4())
        created_at = datetime.now(tz=UTC)
        row = claim_to_row(owner_id, record, territory_id, created_at)
        self._rows.append(row)
        self.flush()
        logger.info("领地已保存：id=%s 面积=%.0fm² 点数=%s", territory_id, record.area_sqm, record.point_count)
        return territory_from_row(row)

    def deactivate(self, territory_id: str) -> bool:
        self.load()
        for row in self._rows:
            if str(row.get("id")) == territory_id and row.get("is_active", True):
                row["is_active"] = False
                self.flush()
                return True
        return False

    def flush(self) -> None:
        """Persist rows to disk (atomic-ish)."""

        self.load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._rows, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)


class InMemoryTerritoryStore:
    """Store backed by a plain list; handy for tests and simulations."""

    def __init__(self, territories: Iterable[Territory] = ()) -> None:
        self._items: list[Territory] = list(territories)

    def load_active(self, exclude_owner: str | None = None) -> list[Territory]:
        owner = exclude_owner.lower() if exclude_owner else None
        return [t for t in self._items if t.is_active and t.owner_id.lower() != owner]

    def save_claim(self, owner_id: str, record: ClaimRecord) -> Territory:
        territory = Territory(
            id=str(uuid.uuid4()),
            owner_id=owner_id.lower(),
            polygon=record.polygon,
            area_sqm=record.area_sqm,
            created_at=datetime.now(tz=UTC),
        )
        self._items.append(territory)
        return territory

    def deactivate(self, territory_id: str) -> bool:
        for i, t in enumerate(self._items):
            if t.id == territory_id and t.is_active:
                self._items[i] = replace(t, is_active=False)
                return True
        return False
