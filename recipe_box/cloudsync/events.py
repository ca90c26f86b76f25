"""Event channel the sync engine uses to talk to the UI layer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)


class SyncEventType(str, Enum):
    """Kinds of notifications emitted by the engine."""

    UNAUTHORIZED = "unauthorized"
    CHANGED = "changed"


@dataclass(slots=True)
class SyncEvent:
    type: SyncEventType
    detail: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[SyncEvent], Awaitable[None] | None]


class EventChannel:
    """Fan out engine events to registered listeners and subscriber queues."""

    def __init__(self) -> None:
        self._listeners: list[tuple[SyncEventType | None, Listener]] = []
        self._queues: list[asyncio.Queue[SyncEvent]] = []

    def subscribe(self, listener: Listener, *, event_type: SyncEventType | None = None) -> Callable[[], None]:
        """Register ``listener``; returns a callable that removes it again."""

        entry = (event_type, listener)
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe

    def queue(self, maxsize: int = 0) -> asyncio.Queue[SyncEvent]:
        """Return a queue receiving every subsequent event."""

        q: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=maxsize)
        self._queues.append(q)
        return q

    def close_queue(self, q: asyncio.Queue[SyncEvent]) -> None:
        if q in self._queues:
            self._queues.remove(q)

    async def emit(self, event_type: SyncEventType, **detail: Any) -> SyncEvent:
        event = SyncEvent(type=event_type, detail=detail)
        for wanted, listener in list(self._listeners):
            if wanted is not None and wanted != event_type:
                continue
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as err:  # pragma: no cover - defensive log
                _LOGGER.debug("Sync listener raised error: %s", err, exc_info=True)
        for q in list(self._queues):
            if q.full():
                _LOGGER.debug("Dropping %s event for a full subscriber queue", event_type.value)
                continue
            q.put_nowait(event)
        return event


__all__ = ["EventChannel", "Listener", "SyncEvent", "SyncEventType"]
