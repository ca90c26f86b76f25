from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..const import ENTITY_TYPES
from .entities import entity_id, is_shared, updated_at
from .errors import StorageUnavailable


class LocalStore:
    """SQLite-backed durable key-value store, one table per entity type.

    The outbox and sync metadata tables live in the same file so a single
    ``LocalStore`` path describes the complete client state.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._is_memory = str(self.path) == ":memory:"
        self._shared_conn: sqlite3.Connection | None = None
        if not self._is_memory:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as err:
                raise StorageUnavailable(f"cannot create store directory: {err}") from err
        self._ensure_schema()

    # ------------------------------------------------------------------
    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; any SQLite failure surfaces as ``StorageUnavailable``."""

        try:
            if self._is_memory:
                if self._shared_conn is None:
                    self._shared_conn = sqlite3.connect(":memory:")
                    self._shared_conn.row_factory = sqlite3.Row
                yield self._shared_conn
            else:
                conn = sqlite3.connect(self.path)
                conn.row_factory = sqlite3.Row
                try:
                    yield conn
                finally:
                    conn.close()
        except sqlite3.Error as err:
            raise StorageUnavailable(f"local store unavailable: {err}") from err

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None

    def _ensure_schema(self) -> None:
        statements = [
            f"""
            CREATE TABLE IF NOT EXISTS {entity_type} (
                id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at INTEGER NOT NULL DEFAULT 0,
                shared INTEGER NOT NULL DEFAULT 0
            );
            """
            for entity_type in ENTITY_TYPES
        ]
        statements.append(
            """
            CREATE TABLE IF NOT EXISTS outbox (
                id TEXT PRIMARY KEY,
                item TEXT NOT NULL,
                enqueued_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS sync_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        with self.connection() as conn:
            conn.executescript("".join(statements))
            conn.commit()

    @staticmethod
    def _table(entity_type: str) -> str:
        if entity_type not in ENTITY_TYPES:
            raise ValueError(f"unknown entity type: {entity_type}")
        return entity_type

    # ------------------------------------------------------------------
    def put(self, entity_type: str, entity: Mapping[str, Any]) -> None:
        table = self._table(entity_type)
        item_id = entity_id(entity)
        with self.connection() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {table}(id, payload, updated_at, shared) VALUES(?, ?, ?, ?)",
                (
                    item_id,
                    json.dumps(dict(entity), separators=(",", ":")),
                    updated_at(entity),
                    1 if is_shared(entity) else 0,
                ),
            )
            conn.commit()

    def get(self, entity_type: str, item_id: str) -> dict[str, Any] | None:
        table = self._table(entity_type)
        with self.connection() as conn:
            row = conn.execute(f"SELECT payload FROM {table} WHERE id = ?", (item_id,)).fetchone()
        if not row:
            return None
        return json.loads(row["payload"])

    def get_all(self, entity_type: str) -> list[dict[str, Any]]:
        table = self._table(entity_type)
        with self.connection() as conn:
            rows = conn.execute(f"SELECT payload FROM {table} ORDER BY updated_at DESC, id ASC").fetchall()
        return [json.loads(row["payload"]) for row in rows]

    def remove(self, entity_type: str, item_id: str) -> None:
        table = self._table(entity_type)
        with self.connection() as conn:
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (item_id,))
            conn.commit()

    def clear(self, entity_type: str) -> None:
        table = self._table(entity_type)
        with self.connection() as conn:
            conn.execute(f"DELETE FROM {table}")
            conn.commit()

    def count(self, entity_type: str, *, shared_only: bool = False) -> int:
        table = self._table(entity_type)
        query = f"SELECT COUNT(*) AS total FROM {table}"
        if shared_only:
            query += " WHERE shared = 1"
        with self.connection() as conn:
            row = conn.execute(query).fetchone()
        if not row:
            return 0
        total = row["total"]
        return int(total) if total is not None else 0
