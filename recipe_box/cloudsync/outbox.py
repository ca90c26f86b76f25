from __future__ import annotations

from .entities import OutboxItem
from .local_store import LocalStore


class Outbox:
    """Durable queue of local mutations awaiting remote confirmation.

    Holds at most one pending intent per entity id: enqueueing a second
    mutation for the same id replaces the first, so only the latest state is
    ever transmitted.
    """

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def enqueue(self, item: OutboxItem) -> None:
        with self.store.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO outbox(id, item, enqueued_at) VALUES(?, ?, ?)",
                (item.id, item.to_json(), item.enqueued_at),
            )
            conn.commit()

    def drain(self) -> list[OutboxItem]:
        """Return pending items, oldest first. Items stay queued until acked."""

        with self.store.connection() as conn:
            rows = conn.execute("SELECT item FROM outbox ORDER BY enqueued_at ASC, id ASC").fetchall()
        return [OutboxItem.from_json(row["item"]) for row in rows]

    def get(self, item_id: str) -> OutboxItem | None:
        with self.store.connection() as conn:
            row = conn.execute("SELECT item FROM outbox WHERE id = ?", (item_id,)).fetchone()
        if not row:
            return None
        return OutboxItem.from_json(row["item"])

    def ack(self, item_id: str, *, sent: OutboxItem | None = None) -> bool:
        """Remove ``item_id`` after the remote store confirmed it.

        When ``sent`` is given the entry is only removed if it still is the
        intent that was transmitted; a newer coalesced intent stays queued.
        """

        query = "DELETE FROM outbox WHERE id = ?"
        params: tuple[object, ...] = (item_id,)
        if sent is not None:
            query += " AND item = ?"
            params = (item_id, sent.to_json())
        with self.store.connection() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            removed = cursor.rowcount
        return bool(removed)

    def size(self) -> int:
        with self.store.connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM outbox").fetchone()
        if not row:
            return 0
        total = row["total"]
        return int(total) if total is not None else 0

    def __len__(self) -> int:
        return self.size()
