from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..const import META_CREDENTIAL, META_CURSOR
from .local_store import LocalStore
from .outbox import Outbox


@dataclass(slots=True)
class SyncState:
    """Persistent sync bookkeeping: pull cursor, stored credential and outbox.

    All mutation goes through the methods below so the cursor and outbox
    invariants stay checkable in one place.
    """

    store: LocalStore
    outbox: Outbox = field(init=False)

    def __post_init__(self) -> None:
        self.outbox = Outbox(self.store)

    @classmethod
    def open(cls, path: str | Path) -> SyncState:
        return cls(LocalStore(path))

    # ------------------------------------------------------------------
    def _get_meta(self, key: str) -> str | None:
        with self.store.connection() as conn:
            row = conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return row["value"]

    def _set_meta(self, key: str, value: str) -> None:
        with self.store.connection() as conn:
            conn.execute("INSERT OR REPLACE INTO sync_meta(key, value) VALUES(?, ?)", (key, value))
            conn.commit()

    def _delete_meta(self, key: str) -> None:
        with self.store.connection() as conn:
            conn.execute("DELETE FROM sync_meta WHERE key = ?", (key,))
            conn.commit()

    # ------------------------------------------------------------------
    def get_cursor(self) -> int:
        raw = self._get_meta(META_CURSOR)
        if raw is None:
            return 0
        try:
            return max(int(raw), 0)
        except ValueError:
            return 0

    def advance_cursor(self, candidate: int, *, base: int | None = None) -> int:
        """Move the cursor forward to ``candidate`` and return the stored value.

        ``base`` is the cursor the pull started from; it is lower than the
        stored value only after a forced full resync.
        """

        start = self.get_cursor() if base is None else base
        cursor = max(start, int(candidate))
        self._set_meta(META_CURSOR, str(cursor))
        return cursor

    def reset_cursor(self) -> None:
        self._set_meta(META_CURSOR, "0")

    # ------------------------------------------------------------------
    def get_credential(self) -> str | None:
        return self._get_meta(META_CREDENTIAL)

    def set_credential(self, token: str) -> None:
        self._set_meta(META_CREDENTIAL, token)

    def clear_credential(self) -> None:
        self._delete_meta(META_CREDENTIAL)

    def unsynced_count(self) -> int:
        return self.outbox.size()
