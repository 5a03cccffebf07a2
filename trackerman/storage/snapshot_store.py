# trackerman/storage/snapshot_store.py

"""SQLite-backed, append-only price history for tracked items.

Every item keeps its full observation log.  Exactly one observation per
item is *current* (``superseded = 0``); appending a new one flips the old
one in the same transaction.  A partial unique index makes a second
current row impossible at the storage level, and one re-entrant lock
around the shared connection keeps readers from ever seeing the
in-between state.
"""

import json
import logging
import sqlite3
import threading
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from trackerman.config.settings import Settings
from trackerman.errors import DuplicateItemError, NotFoundError
from trackerman.models.exterior import Exterior
from trackerman.models.observation import Observation
from trackerman.models.tracked_item import Thresholds, TrackedItem
from trackerman.parsers.exterior import resolve_exterior

logger = logging.getLogger("trackerman.store")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS tracked_items (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT    NOT NULL,
    exterior       TEXT    NOT NULL,
    url            TEXT    NOT NULL,
    threshold_high REAL,
    threshold_low  REAL,
    created_at     TEXT    NOT NULL,
    UNIQUE (name, exterior)
);

CREATE TABLE IF NOT EXISTS observations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id     INTEGER NOT NULL
                REFERENCES tracked_items(id) ON DELETE CASCADE,
    timestamp   TEXT    NOT NULL,
    price       REAL    NOT NULL,
    currency    TEXT    NOT NULL DEFAULT '$',
    listing_id  TEXT,
    seller_id   TEXT,
    seller_name TEXT,
    superseded  INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_observations_item
    ON observations(item_id, id);

CREATE UNIQUE INDEX IF NOT EXISTS idx_observations_current
    ON observations(item_id) WHERE superseded = 0;
"""

_OBSERVATION_COLUMNS = (
    "item_id, timestamp, price, currency, "
    "listing_id, seller_id, seller_name, superseded"
)


def _exterior_value(exterior: "str | Exterior") -> str:
    return exterior.value if isinstance(exterior, Exterior) else exterior


def _row_to_observation(row: sqlite3.Row) -> Observation:
    return Observation(
        timestamp=datetime.fromisoformat(row["timestamp"]),
        price=row["price"],
        currency=row["currency"],
        listing_id=row["listing_id"],
        seller_id=row["seller_id"],
        seller_name=row["seller_name"],
        superseded=bool(row["superseded"]),
    )


def _row_to_thresholds(row: sqlite3.Row) -> Thresholds | None:
    high, low = row["threshold_high"], row["threshold_low"]
    if high is None and low is None:
        return None
    return Thresholds(high=high, low=low)


class SnapshotStore:
    """Owns tracked items and their observation history."""

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.DATA_DIR / Settings.ITEMS_DB_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("SnapshotStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Internal helpers ─────────────────────────────────

    def _item_id(self, name: str, exterior: str) -> int | None:
        row = self._conn.execute(
            "SELECT id FROM tracked_items WHERE name = ? AND exterior = ?",
            (name, exterior),
        ).fetchone()
        return int(row["id"]) if row else None

    def _insert_item(
        self,
        name: str,
        exterior: str,
        url: str,
        thresholds: Thresholds | None,
    ) -> int:
        cur = self._conn.execute(
            "INSERT INTO tracked_items "
            "(name, exterior, url, threshold_high, threshold_low, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                name,
                exterior,
                url,
                thresholds.high if thresholds else None,
                thresholds.low if thresholds else None,
                datetime.now().isoformat(),
            ),
        )
        return int(cur.lastrowid or 0)

    def _load_items(
        self,
        *,
        name: str | None = None,
        exterior: str | None = None,
        current_only: bool = False,
    ) -> list[TrackedItem]:
        where: list[str] = []
        params: list[Any] = []
        if name is not None:
            where.append("name = ?")
            params.append(name)
        if exterior is not None:
            where.append("exterior = ?")
            params.append(exterior)
        clause = f" WHERE {' AND '.join(where)}" if where else ""

        with self._lock:
            item_rows = self._conn.execute(
                f"SELECT * FROM tracked_items{clause} ORDER BY id",
                params,
            ).fetchall()
            if not item_rows:
                return []
            ids = [r["id"] for r in item_rows]
            marks = ", ".join("?" for _ in ids)
            obs_sql = (
                f"SELECT * FROM observations WHERE item_id IN ({marks})"
            )
            if current_only:
                obs_sql += " AND superseded = 0"
            obs_rows = self._conn.execute(
                obs_sql + " ORDER BY item_id, id", ids,
            ).fetchall()

        history: dict[int, list[Observation]] = defaultdict(list)
        for row in obs_rows:
            history[row["item_id"]].append(_row_to_observation(row))

        return [
            TrackedItem(
                name=r["name"],
                exterior=Exterior(r["exterior"]),
                url=r["url"],
                history=history.get(r["id"], []),
                thresholds=_row_to_thresholds(r),
            )
            for r in item_rows
        ]

    # ── Mutations ────────────────────────────────────────

    def add_item(
        self,
        name: str,
        exterior: "str | Exterior",
        url: str,
        thresholds: Thresholds | None = None,
    ) -> TrackedItem:
        """Start tracking (name, exterior) with an empty history."""
        ext = resolve_exterior(exterior).value
        with self._lock, self._conn:
            if self._item_id(name, ext) is not None:
                raise DuplicateItemError(name, ext)
            self._insert_item(name, ext, url, thresholds)
        logger.info("Added item %s (%s) -> %s", name, ext, url)
        return TrackedItem(
            name=name,
            exterior=Exterior(ext),
            url=url,
            thresholds=(
                thresholds
                if thresholds is not None and not thresholds.is_empty
                else None
            ),
        )

    def remove_item(self, name: str, exterior: "str | Exterior") -> bool:
        """Stop tracking an item; returns False when it was not tracked."""
        ext = _exterior_value(exterior)
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM tracked_items WHERE name = ? AND exterior = ?",
                (name, ext),
            )
        removed = cur.rowcount > 0
        if removed:
            logger.info("Removed item %s (%s)", name, ext)
        else:
            logger.debug("Remove ignored, %s (%s) not tracked", name, ext)
        return removed

    def append_observation(
        self,
        name: str,
        exterior: "str | Exterior",
        observation: Observation,
        url: str,
    ) -> Observation | None:
        """Record *observation* as the item's current snapshot.

        Creates the item when it is not tracked yet.  Returns the
        observation that was current before this call (now superseded),
        or ``None`` for an item's first observation.
        """
        ext = resolve_exterior(exterior).value
        with self._lock, self._conn:
            item_id = self._item_id(name, ext)
            previous: Observation | None = None
            if item_id is None:
                item_id = self._insert_item(name, ext, url, None)
            else:
                row = self._conn.execute(
                    "SELECT * FROM observations "
                    "WHERE item_id = ? AND superseded = 0",
                    (item_id,),
                ).fetchone()
                if row is not None:
                    previous = _row_to_observation(row).as_superseded()
                self._conn.execute(
                    "UPDATE observations SET superseded = 1 "
                    "WHERE item_id = ? AND superseded = 0",
                    (item_id,),
                )
                self._conn.execute(
                    "UPDATE tracked_items SET url = ? WHERE id = ?",
                    (url, item_id),
                )
            self._conn.execute(
                f"INSERT INTO observations ({_OBSERVATION_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, 0)",
                (
                    item_id,
                    observation.timestamp.isoformat(),
                    observation.price,
                    observation.currency,
                    observation.listing_id,
                    observation.seller_id,
                    observation.seller_name,
                ),
            )
        logger.info(
            "Recorded %s (%s): %.2f %s",
            name,
            ext,
            observation.price,
            observation.currency,
        )
        return previous

    def update_thresholds(
        self,
        name: str,
        exterior: "str | Exterior",
        thresholds: Thresholds | None,
    ) -> None:
        """Replace the threshold pair wholesale."""
        ext = _exterior_value(exterior)
        with self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE tracked_items "
                "SET threshold_high = ?, threshold_low = ? "
                "WHERE name = ? AND exterior = ?",
                (
                    thresholds.high if thresholds else None,
                    thresholds.low if thresholds else None,
                    name,
                    ext,
                ),
            )
            if cur.rowcount == 0:
                raise NotFoundError(name, ext)
        logger.info(
            "Thresholds for %s (%s) set to %s", name, ext, thresholds,
        )

    # ── Queries ──────────────────────────────────────────

    def current_view(
        self,
        name: str | None = None,
        exterior: "str | Exterior | None" = None,
    ) -> list[TrackedItem]:
        """Items (all, or the matching one) with only the current snapshot."""
        return self._load_items(
            name=name,
            exterior=(
                _exterior_value(exterior) if exterior is not None else None
            ),
            current_only=True,
        )

    def full_view(self) -> list[TrackedItem]:
        """All items with their complete history, oldest first."""
        return self._load_items()

    def get_item(
        self,
        name: str,
        exterior: "str | Exterior",
        current_only: bool = False,
    ) -> TrackedItem | None:
        """One item, or ``None`` when it is not tracked."""
        items = self._load_items(
            name=name,
            exterior=_exterior_value(exterior),
            current_only=current_only,
        )
        return items[0] if items else None

    # ── Legacy import ────────────────────────────────────

    def import_legacy_json(self, path: Path) -> int:
        """Import a legacy ``data.json`` history document.

        Each entry's ``skindata`` is replayed in order through
        :meth:`append_observation`, so the last entry ends up current
        regardless of the stored ``expired`` flags.  Returns the number
        of observations imported.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data: object = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            return 0

        if not isinstance(data, dict):
            return 0
        raw_skins: object = cast(dict[str, Any], data).get("skins", [])
        if not isinstance(raw_skins, list):
            return 0

        count = 0
        for raw in cast(list[object], raw_skins):
            if not isinstance(raw, dict):
                continue
            entry = cast(dict[str, Any], raw)
            try:
                count += self._import_entry(entry)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping legacy entry %r: %s",
                    entry.get("name"),
                    exc,
                )
        logger.info("Legacy import complete: %d observations", count)
        return count

    def _import_entry(self, entry: dict[str, Any]) -> int:
        name = str(entry["name"])
        exterior = Exterior.from_label(str(entry.get("exterior", "Unknown")))
        url = str(entry.get("url", ""))

        if self.get_item(name, exterior, current_only=True) is None:
            self.add_item(name, exterior, url)

        count = 0
        for point in cast(list[dict[str, Any]], entry.get("skindata") or []):
            timestamp = str(point["timestamp"]).replace("Z", "+00:00")
            self.append_observation(
                name,
                exterior,
                Observation(
                    timestamp=datetime.fromisoformat(timestamp),
                    price=float(point.get("price", 0)),
                    currency=str(point.get("currency") or "$"),
                    listing_id=point.get("listingId"),
                    seller_id=point.get("sellerId"),
                    seller_name=point.get("sellerName"),
                ),
                url,
            )
            count += 1

        raw_thresholds: object = entry.get("thresholds")
        if isinstance(raw_thresholds, dict):
            bounds = cast(dict[str, Any], raw_thresholds)
            high, low = bounds.get("high"), bounds.get("low")
            self.update_thresholds(
                name,
                exterior,
                Thresholds(
                    high=float(high) if high is not None else None,
                    low=float(low) if low is not None else None,
                ),
            )
        return count
