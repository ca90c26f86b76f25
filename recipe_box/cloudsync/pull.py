from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..const import LOCAL_PREFERENCE_FIELDS, STORE_RECIPES
from .entities import entity_id, is_deleted, updated_at
from .errors import TransportFailure, Unauthorized, ValidationFailure
from .events import EventChannel, SyncEventType
from .local_store import LocalStore
from .remote import RemoteClient
from .sync_state import SyncState

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PullResult:
    fetched: int = 0
    cursor: int = 0
    full_resync: bool = False
    error: str | None = None


class PullReconciler:
    """Merge remote recipe changes newer than the sync cursor into the local store.

    Remote state always wins for the records it returns. A local edit that
    has not been pushed yet is represented by its outbox entry and will be
    re-sent on the next push, so the overwrite here is accepted behaviour of
    the last-write-wins policy.
    """

    def __init__(
        self,
        store: LocalStore,
        state: SyncState,
        remote: RemoteClient,
        events: EventChannel | None = None,
    ) -> None:
        self.store = store
        self.state = state
        self.remote = remote
        self.events = events
        self.last_error: str | None = None

    async def pull(self) -> PullResult:
        cursor = self.state.get_cursor()
        full_resync = False
        if cursor and self.store.count(STORE_RECIPES, shared_only=True) == 0:
            _LOGGER.debug("Local store holds no shared recipes; forcing a full resync from cursor %s", cursor)
            cursor = 0
            full_resync = True

        try:
            records = await self.remote.fetch_recipes(cursor)
        except (TransportFailure, ValidationFailure, Unauthorized) as err:
            _LOGGER.warning("Sync pull failed: %s", err)
            self.last_error = str(err)
            return PullResult(cursor=self.state.get_cursor(), full_resync=full_resync, error=str(err))

        max_seen = cursor
        merged = 0
        for record in records:
            try:
                record_id = entity_id(record)
            except ValueError:
                _LOGGER.warning("Skipping remote record without id: %s", record)
                continue
            self.store.put(STORE_RECIPES, self._merge(record_id, record))
            max_seen = max(max_seen, updated_at(record))
            merged += 1

        new_cursor = self.state.advance_cursor(max_seen, base=0 if full_resync else None)
        self.last_error = None
        if merged and self.events is not None:
            await self.events.emit(SyncEventType.CHANGED, source="pull", count=merged)
        _LOGGER.debug("Pulled %s recipes; cursor %s -> %s", merged, cursor, new_cursor)
        return PullResult(fetched=merged, cursor=new_cursor, full_resync=full_resync)

    def _merge(self, record_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        merged = dict(record)
        if is_deleted(merged):
            return merged
        existing = self.store.get(STORE_RECIPES, record_id) or {}
        for field in LOCAL_PREFERENCE_FIELDS:
            merged[field] = bool(existing.get(field, False))
        return merged
