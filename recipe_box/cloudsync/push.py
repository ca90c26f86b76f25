from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .auth import CredentialManager
from .entities import OutboxAction, OutboxItem
from .errors import TransportFailure, Unauthorized, ValidationFailure
from .events import EventChannel, SyncEventType
from .outbox import Outbox
from .remote import RemoteClient

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PushResult:
    pushed: int = 0
    failed: list[str] = field(default_factory=list)
    halted: bool = False
    error: str | None = None


class PushProcessor:
    """Drain the outbox against the remote store.

    The processor never writes the local store; it already reflects the
    intended state from the local mutation.
    """

    def __init__(
        self,
        outbox: Outbox,
        remote: RemoteClient,
        credentials: CredentialManager,
        events: EventChannel | None = None,
    ) -> None:
        self.outbox = outbox
        self.remote = remote
        self.credentials = credentials
        self.events = events
        self.last_error: str | None = None

    async def push(self) -> PushResult:
        items = self.outbox.drain()
        if not items:
            return PushResult()

        token = self.credentials.token
        if token is None:
            _LOGGER.debug("Push deferred: %s queued items and no valid credential", len(items))
            await self.credentials.notify_unauthorized(operation="push")
            self.last_error = "unauthorized"
            return PushResult(halted=True, error="unauthorized")

        result = PushResult()
        for item in items:
            try:
                await self._send(item, token)
            except Unauthorized as err:
                _LOGGER.warning("Push rejected credential on %s: %s", item.id, err)
                await self.credentials.notify_unauthorized(operation="push", rejected=True)
                result.halted = True
                result.error = str(err)
                break
            except ValidationFailure as err:
                # Stays queued until a newer intent for the id replaces it.
                _LOGGER.warning("Remote store rejected %s %s: %s", item.action.value, item.id, err)
                result.failed.append(item.id)
                result.error = str(err)
                continue
            except TransportFailure as err:
                _LOGGER.warning("Sync push of %s failed: %s", item.id, err)
                result.failed.append(item.id)
                result.error = str(err)
                continue
            self.outbox.ack(item.id, sent=item)
            result.pushed += 1

        self.last_error = result.error
        if result.pushed and self.events is not None:
            await self.events.emit(SyncEventType.CHANGED, source="push", count=result.pushed)
        return result

    async def _send(self, item: OutboxItem, token: str) -> None:
        if item.action is OutboxAction.DELETE:
            await self.remote.delete_recipe(item.id, token)
            return
        if item.payload is None:
            raise ValidationFailure(f"upsert for {item.id} has no payload")
        await self.remote.upsert_recipe(item.payload, token)
