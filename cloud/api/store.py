"""Relational store backing the household recipe service."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

_LOGGER = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS recipes (
    id TEXT PRIMARY KEY,
    name TEXT,
    category TEXT,
    share_to_family INTEGER NOT NULL DEFAULT 0,
    deleted INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    updated_at INTEGER NOT NULL,
    created_at INTEGER
);
CREATE INDEX IF NOT EXISTS idx_recipes_updated_at ON recipes (updated_at);
CREATE INDEX IF NOT EXISTS idx_recipes_share ON recipes (share_to_family);

CREATE TABLE IF NOT EXISTS shopping_list (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS meal_plans (
    id TEXT PRIMARY KEY,
    date TEXT,
    slot TEXT,
    recipe_id TEXT,
    data TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


def _require_id(record: Mapping[str, Any]) -> str:
    value = record.get("id")
    if not isinstance(value, str) or not value.strip():
        raise ValueError("record id is required")
    return value


class ServerStore:
    """SQLite persistence for recipes, the shared shopping list and meal plans.

    Recipes are last-write-wins by id: the server stamps ``updatedAt`` on
    arrival and the whole document replaces whatever was stored before.
    Deletes become tombstones so that pulling clients observe them.
    """

    def __init__(self, path: str | Path, *, clock: Callable[[], int]) -> None:
        self.path = Path(path)
        self._clock = clock
        self._is_memory = str(self.path) == ":memory:"
        self._shared_conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        if not self._is_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self._is_memory:
            with self._lock:
                if self._shared_conn is None:
                    self._shared_conn = sqlite3.connect(":memory:", check_same_thread=False)
                    self._shared_conn.row_factory = sqlite3.Row
                with self._shared_conn:
                    yield self._shared_conn
            return
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None

    # ------------------------------------------------------------------
    def upsert_recipe(self, recipe: Mapping[str, Any]) -> int:
        """Store ``recipe`` under a fresh server timestamp and return it."""

        recipe_id = _require_id(recipe)
        now = self._clock()
        record = dict(recipe)
        record["updatedAt"] = now
        record.setdefault("createdAt", now)
        shared = bool(record.get("shareToFamily"))
        deleted = record.get("deleted") is True
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO recipes (id, name, category, share_to_family, deleted, data, updated_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    category=excluded.category,
                    share_to_family=excluded.share_to_family,
                    deleted=excluded.deleted,
                    data=excluded.data,
                    updated_at=excluded.updated_at
                """,
                (
                    recipe_id,
                    record.get("name"),
                    record.get("category"),
                    int(shared),
                    int(deleted),
                    json.dumps(record),
                    now,
                    record.get("createdAt"),
                ),
            )
        return now

    def delete_recipe(self, recipe_id: str) -> int:
        """Replace the row with a tombstone; unknown ids still get one.

        A private row stays private so its id is never served to pulling
        clients.
        """

        now = self._clock()
        with self._connection() as conn:
            row = conn.execute("SELECT share_to_family FROM recipes WHERE id = ?", (recipe_id,)).fetchone()
            shared = True if row is None else bool(row["share_to_family"])
            tombstone = {"id": recipe_id, "deleted": True, "shareToFamily": shared, "updatedAt": now}
            conn.execute(
                """
                INSERT INTO recipes (id, name, category, share_to_family, deleted, data, updated_at, created_at)
                VALUES (?, NULL, NULL, ?, 1, ?, ?, NULL)
                ON CONFLICT(id) DO UPDATE SET
                    name=NULL,
                    category=NULL,
                    share_to_family=excluded.share_to_family,
                    deleted=1,
                    data=excluded.data,
                    updated_at=excluded.updated_at
                """,
                (recipe_id, int(shared), json.dumps(tombstone), now),
            )
        return now

    def changes_since(self, since: int) -> list[dict[str, Any]]:
        """Shared records, tombstones included, stamped after ``since``."""

        with self._connection() as conn:
            rows = conn.execute(
                "SELECT data FROM recipes WHERE share_to_family = 1 AND updated_at > ?",
                (int(since),),
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def get_recipe(self, recipe_id: str) -> dict[str, Any] | None:
        with self._connection() as conn:
            row = conn.execute("SELECT data FROM recipes WHERE id = ?", (recipe_id,)).fetchone()
        return json.loads(row["data"]) if row else None

    def purge_tombstones(self, older_than: int) -> int:
        """Physically remove tombstones stamped before ``older_than``."""

        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM recipes WHERE deleted = 1 AND updated_at < ?",
                (int(older_than),),
            )
            removed = cursor.rowcount
        if removed:
            _LOGGER.info("Purged %s recipe tombstones", removed)
        return removed

    # ------------------------------------------------------------------
    def list_shopping(self) -> list[dict[str, Any]]:
        with self._connection() as conn:
            rows = conn.execute("SELECT data FROM shopping_list ORDER BY updated_at").fetchall()
        return [json.loads(row["data"]) for row in rows]

    def upsert_shopping_item(self, item: Mapping[str, Any]) -> None:
        item_id = _require_id(item)
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO shopping_list (id, data, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at
                """,
                (item_id, json.dumps(dict(item)), self._clock()),
            )

    def delete_shopping_item(self, item_id: str) -> int:
        with self._connection() as conn:
            return conn.execute("DELETE FROM shopping_list WHERE id = ?", (item_id,)).rowcount

    def clear_shopping(self, *, only_checked: bool = False) -> int:
        if not only_checked:
            with self._connection() as conn:
                return conn.execute("DELETE FROM shopping_list").rowcount
        checked = [item["id"] for item in self.list_shopping() if item.get("isChecked")]
        if not checked:
            return 0
        placeholders = ",".join("?" for _ in checked)
        with self._connection() as conn:
            return conn.execute(
                f"DELETE FROM shopping_list WHERE id IN ({placeholders})",  # noqa: S608
                checked,
            ).rowcount

    # ------------------------------------------------------------------
    def list_plans(self) -> list[dict[str, Any]]:
        with self._connection() as conn:
            rows = conn.execute("SELECT data FROM meal_plans ORDER BY date, slot").fetchall()
        return [json.loads(row["data"]) for row in rows]

    def upsert_plan(self, plan: Mapping[str, Any]) -> None:
        plan_id = _require_id(plan)
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO meal_plans (id, date, slot, recipe_id, data, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    date=excluded.date,
                    slot=excluded.slot,
                    recipe_id=excluded.recipe_id,
                    data=excluded.data,
                    updated_at=excluded.updated_at
                """,
                (
                    plan_id,
                    plan.get("date"),
                    plan.get("slot"),
                    plan.get("recipeId"),
                    json.dumps(dict(plan)),
                    self._clock(),
                ),
            )

    def delete_plan(self, plan_id: str) -> int:
        with self._connection() as conn:
            return conn.execute("DELETE FROM meal_plans WHERE id = ?", (plan_id,)).rowcount


__all__ = ["ServerStore"]
