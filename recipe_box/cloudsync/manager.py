"""Schedule background sync cycles for a :class:`SyncEngine`."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from aiohttp import ClientSession

from ..const import (
    CONF_BASE_URL,
    CONF_REQUEST_TIMEOUT,
    CONF_STORE_PATH,
    CONF_SYNC_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STORE_PATH,
    DEFAULT_SYNC_INTERVAL,
    MIN_SYNC_INTERVAL,
)
from .engine import SyncEngine
from .errors import SyncError

_LOGGER = logging.getLogger(__name__)


class SyncManagerError(SyncError):
    """Raised when a manual sync operation cannot be completed."""

    reason = "sync_failed"


@dataclass(slots=True)
class SyncConfig:
    """Configuration required to run the background sync task."""

    base_url: str = ""
    store_path: str = DEFAULT_STORE_PATH
    interval: int = DEFAULT_SYNC_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> SyncConfig:
        base_url = str(options.get(CONF_BASE_URL, "") or "").strip().rstrip("/")
        store_path = str(options.get(CONF_STORE_PATH, "") or "").strip() or DEFAULT_STORE_PATH
        interval_raw = options.get(CONF_SYNC_INTERVAL, DEFAULT_SYNC_INTERVAL)
        try:
            interval = max(MIN_SYNC_INTERVAL, int(interval_raw))
        except (TypeError, ValueError):
            interval = DEFAULT_SYNC_INTERVAL
        timeout_raw = options.get(CONF_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)
        try:
            request_timeout = float(timeout_raw)
        except (TypeError, ValueError):
            request_timeout = float(DEFAULT_REQUEST_TIMEOUT)
        if request_timeout <= 0:
            request_timeout = float(DEFAULT_REQUEST_TIMEOUT)
        return cls(
            base_url=base_url,
            store_path=store_path,
            interval=interval,
            request_timeout=request_timeout,
        )

    @property
    def ready(self) -> bool:
        return bool(self.base_url)


class SyncManager:
    """Own the periodic resync task and react to connectivity changes.

    There is no continuous background service: a timer task calls the engine
    every ``interval`` seconds and a reconnect triggers one extra cycle.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        engine: SyncEngine | None = None,
        session: ClientSession | None = None,
    ) -> None:
        self.config = config
        self.engine = engine or SyncEngine.open(
            config.store_path,
            config.base_url,
            session=session,
            timeout=config.request_timeout,
        )
        self._task: asyncio.Task | None = None
        self.last_cycle: dict[str, Any] | None = None
        self.last_cycle_error: str | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def async_start(self) -> None:
        if not self.config.ready:
            raise SyncManagerError("sync is not configured: base_url missing", reason="not_configured")
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever())

    async def async_stop(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None

    async def async_close(self) -> None:
        await self.async_stop()
        await self.engine.async_close()

    async def async_sync_now(self, *, push: bool = True, pull: bool = True) -> dict[str, Any]:
        """Run a single cycle immediately."""

        if not push and not pull:
            raise SyncManagerError("at least one of push/pull must be enabled", reason="invalid_request")
        result = await self.engine.sync(pull=pull, push=push)
        self.last_cycle = result
        self.last_cycle_error = None
        return {**result, "status": self.status()}

    async def async_set_online(self, online: bool) -> dict[str, Any] | None:
        """Record a connectivity change; coming back online runs a cycle."""

        was_online = self.engine.online
        self.engine.online = online
        if online and not was_online:
            _LOGGER.debug("Connectivity restored; running sync cycle")
            return await self.async_sync_now()
        return None

    async def _run_forever(self) -> None:
        while True:
            if self.engine.online and self.engine.auto_sync_enabled():
                try:
                    self.last_cycle = await self.engine.sync()
                    self.last_cycle_error = None
                except asyncio.CancelledError:
                    raise
                except Exception as err:  # pragma: no cover - defensive log
                    _LOGGER.exception("Unexpected sync error: %s", err)
                    self.last_cycle_error = str(err)
            await asyncio.sleep(self.config.interval)

    def status(self) -> dict[str, Any]:
        status = self.engine.status()
        status.update(
            {
                "running": self.running,
                "interval": self.config.interval,
                "base_url": self.config.base_url,
                "last_cycle": dict(self.last_cycle) if self.last_cycle else None,
                "last_cycle_error": self.last_cycle_error,
            }
        )
        return status


__all__ = ["SyncConfig", "SyncManager", "SyncManagerError"]
