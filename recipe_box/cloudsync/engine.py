"""Data-access interface used by the UI, wired to the offline-first sync engine.

Every entity mutation goes through :class:`SyncEngine` so that an outbox
entry exists for each pending shared change. Recipes are the only
synchronised type; shopping items, meal plans and settings stay local.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from aiohttp import ClientSession

from ..const import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SETTINGS,
    FIELD_UPDATED_AT,
    SETTINGS_ID,
    STORE_PLANS,
    STORE_RECIPES,
    STORE_SETTINGS,
    STORE_SHOPPING,
)
from .auth import CredentialManager
from .entities import Credential, OutboxItem, entity_id, is_deleted, is_shared, make_tombstone, now_ms
from .errors import Unauthorized
from .events import EventChannel, SyncEventType
from .pull import PullReconciler, PullResult
from .push import PushProcessor, PushResult
from .remote import RemoteClient
from .sync_state import SyncState

_LOGGER = logging.getLogger(__name__)


class SyncEngine:
    """Local-first entity operations plus pull/push orchestration."""

    def __init__(
        self,
        state: SyncState,
        remote: RemoteClient,
        *,
        events: EventChannel | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.state = state
        self.store = state.store
        self.remote = remote
        self.events = events or EventChannel()
        self._clock = clock
        self.credentials = CredentialManager(state, remote, self.events, clock=clock)
        self.puller = PullReconciler(self.store, state, remote, self.events)
        self.pusher = PushProcessor(state.outbox, remote, self.credentials, self.events)
        self.online = True
        self.last_success_at: int | None = None

    @classmethod
    def open(
        cls,
        path: str | Path,
        base_url: str,
        *,
        session: ClientSession | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> SyncEngine:
        return cls(SyncState.open(path), RemoteClient(base_url, session, timeout=timeout))

    async def async_close(self) -> None:
        await self.remote.async_close()
        self.store.close()

    # ------------------------------------------------------------------
    def get_settings(self) -> dict[str, Any]:
        settings = dict(DEFAULT_SETTINGS)
        stored = self.store.get(STORE_SETTINGS, SETTINGS_ID)
        if stored:
            settings.update({key: value for key, value in stored.items() if key != "id"})
        return settings

    def save_settings(self, settings: Mapping[str, Any]) -> None:
        self.store.put(STORE_SETTINGS, {**settings, "id": SETTINGS_ID})

    def auto_sync_enabled(self) -> bool:
        return self.get_settings().get("autoSync") is not False

    # ------------------------------------------------------------------
    def get_recipe(self, recipe_id: str) -> dict[str, Any] | None:
        return self.store.get(STORE_RECIPES, recipe_id)

    def list_recipes(self, *, include_deleted: bool = False) -> list[dict[str, Any]]:
        recipes = self.store.get_all(STORE_RECIPES)
        if include_deleted:
            return recipes
        return [recipe for recipe in recipes if not is_deleted(recipe)]

    async def upsert_recipe(self, recipe: Mapping[str, Any], *, local_only: bool = False) -> dict[str, Any]:
        """Save ``recipe`` locally and queue it for sync when it is shared."""

        now = self._clock()
        record = dict(recipe)
        recipe_id = entity_id(record)
        record.setdefault("createdAt", now)
        record[FIELD_UPDATED_AT] = now
        record.pop("deleted", None)
        previous = self.store.get(STORE_RECIPES, recipe_id)
        self.store.put(STORE_RECIPES, record)

        # Unsharing a previously shared recipe is itself a shared change
        was_shared = previous is not None and is_shared(previous)
        if local_only or not (is_shared(record) or was_shared):
            return record

        self.state.outbox.enqueue(OutboxItem.upsert(record, ts=now))
        await self.events.emit(SyncEventType.CHANGED, source="local", id=recipe_id)
        await self._push_if_enabled()
        return record

    async def delete_recipe(self, recipe_id: str) -> None:
        existing = self.store.get(STORE_RECIPES, recipe_id)
        if existing is None:
            return
        if not is_shared(existing):
            self.store.remove(STORE_RECIPES, recipe_id)
            await self.events.emit(SyncEventType.CHANGED, source="local", id=recipe_id)
            return

        now = self._clock()
        self.store.put(STORE_RECIPES, make_tombstone(recipe_id, now))
        self.state.outbox.enqueue(OutboxItem.delete(recipe_id, ts=now))
        await self.events.emit(SyncEventType.CHANGED, source="local", id=recipe_id)
        await self._push_if_enabled()

    # ------------------------------------------------------------------
    def list_shopping(self) -> list[dict[str, Any]]:
        return self.store.get_all(STORE_SHOPPING)

    def upsert_shopping_item(self, item: Mapping[str, Any]) -> dict[str, Any]:
        record = {**item, FIELD_UPDATED_AT: self._clock()}
        record.setdefault("isChecked", False)
        self.store.put(STORE_SHOPPING, record)
        return record

    def delete_shopping_item(self, item_id: str) -> None:
        self.store.remove(STORE_SHOPPING, item_id)

    def clear_shopping_list(self, *, only_checked: bool = False) -> int:
        removed = 0
        for item in self.list_shopping():
            if only_checked and not item.get("isChecked"):
                continue
            self.store.remove(STORE_SHOPPING, entity_id(item))
            removed += 1
        return removed

    def list_meal_plans(self) -> list[dict[str, Any]]:
        return self.store.get_all(STORE_PLANS)

    def upsert_meal_plan(self, plan: Mapping[str, Any]) -> dict[str, Any]:
        record = {**plan, FIELD_UPDATED_AT: self._clock()}
        if not record.get("id"):
            if not record.get("date") or not record.get("slot"):
                raise ValueError("meal plan needs an id or a date and slot")
            record["id"] = f"{record['date']}_{record['slot']}"
        self.store.put(STORE_PLANS, record)
        return record

    def delete_meal_plan(self, plan_id: str) -> None:
        self.store.remove(STORE_PLANS, plan_id)

    # ------------------------------------------------------------------
    def unsynced_count(self) -> int:
        return self.state.unsynced_count()

    def is_authorized(self) -> bool:
        return self.credentials.is_authorized()

    async def authenticate(self, secret: str, challenge_response: str | None = None) -> Credential:
        credential = await self.credentials.authenticate(secret, challenge_response)
        if self.online and self.unsynced_count():
            await self.push()
        return credential

    async def pull(self) -> PullResult:
        result = await self.puller.pull()
        if result.error is None:
            self.last_success_at = self._clock()
        return result

    async def push(self) -> PushResult:
        result = await self.pusher.push()
        if result.error is None and not result.halted:
            self.last_success_at = self._clock()
        return result

    async def sync(self, *, pull: bool = True, push: bool = True) -> dict[str, Any]:
        """Run one pull-then-push cycle and report what happened."""

        pulled = await self.pull() if pull else None
        pushed = await self.push() if push else None
        return {
            "pulled": pulled.fetched if pulled else 0,
            "pushed": pushed.pushed if pushed else 0,
            "unsynced": self.unsynced_count(),
            "cursor": self.state.get_cursor(),
        }

    async def _push_if_enabled(self) -> None:
        if not self.online or not self.auto_sync_enabled():
            _LOGGER.debug("Push skipped (online=%s); %s items queued", self.online, self.unsynced_count())
            return
        await self.push()

    async def upload_image(
        self,
        data: bytes,
        filename: str,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        token = self.credentials.token
        if token is None:
            await self.credentials.notify_unauthorized(operation="upload")
            raise Unauthorized("Authentication required to upload images")
        try:
            return await self.remote.upload_image(data, filename, token, content_type=content_type)
        except Unauthorized:
            await self.credentials.notify_unauthorized(operation="upload", rejected=True)
            raise

    def status(self) -> dict[str, Any]:
        return {
            "online": self.online,
            "authorized": self.is_authorized(),
            "unsynced": self.unsynced_count(),
            "cursor": self.state.get_cursor(),
            "last_success_at": self.last_success_at,
            "last_pull_error": self.puller.last_error,
            "last_push_error": self.pusher.last_error,
        }


__all__ = ["SyncEngine"]
