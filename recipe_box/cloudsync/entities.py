from __future__ import annotations

import base64
import binascii
import json
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..const import FIELD_DELETED, FIELD_ID, FIELD_SHARED, FIELD_UPDATED_AT


def now_ms() -> int:
    """Return the current wall-clock time as integer epoch milliseconds."""

    return int(time.time() * 1000)


def entity_id(entity: Mapping[str, Any]) -> str:
    raw = entity.get(FIELD_ID)
    if raw is None or not str(raw).strip():
        raise ValueError("entity is missing an id")
    return str(raw)


def updated_at(entity: Mapping[str, Any]) -> int:
    raw = entity.get(FIELD_UPDATED_AT)
    try:
        return int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        return 0


def is_shared(entity: Mapping[str, Any]) -> bool:
    return bool(entity.get(FIELD_SHARED))


def is_deleted(entity: Mapping[str, Any]) -> bool:
    return bool(entity.get(FIELD_DELETED))


def make_tombstone(item_id: str, ts: int) -> dict[str, Any]:
    """Return the minimal marker that replaces a deleted shared entity."""

    return {FIELD_ID: item_id, FIELD_DELETED: True, FIELD_SHARED: True, FIELD_UPDATED_AT: ts}


class OutboxAction(str, Enum):
    """Pending intents recorded in the outbox."""

    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(slots=True)
class OutboxItem:
    """A local mutation that has not been confirmed by the remote store."""

    id: str
    action: OutboxAction
    payload: dict[str, Any] | None = None
    enqueued_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "action": self.action.value,
            "enqueuedAt": self.enqueued_at,
        }
        if self.payload is not None:
            payload["payload"] = self.payload
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> OutboxItem:
        body = payload.get("payload")
        return cls(
            id=str(payload["id"]),
            action=OutboxAction(payload["action"]),
            payload=dict(body) if isinstance(body, Mapping) else None,
            enqueued_at=int(payload.get("enqueuedAt") or 0),
        )

    @classmethod
    def from_json(cls, line: str) -> OutboxItem:
        return cls.from_dict(json.loads(line))

    @classmethod
    def upsert(cls, entity: Mapping[str, Any], *, ts: int | None = None) -> OutboxItem:
        return cls(
            id=entity_id(entity),
            action=OutboxAction.UPSERT,
            payload=dict(entity),
            enqueued_at=now_ms() if ts is None else ts,
        )

    @classmethod
    def delete(cls, item_id: str, *, ts: int | None = None) -> OutboxItem:
        return cls(id=item_id, action=OutboxAction.DELETE, enqueued_at=now_ms() if ts is None else ts)


@dataclass(slots=True)
class Credential:
    """Signed bearer token issued by the remote store.

    The client never verifies the signature; it only reads the payload
    segment to learn when the token expires.
    """

    token: str
    subject: str | None
    expires_at: int

    @classmethod
    def from_token(cls, token: str) -> Credential:
        text = (token or "").strip()
        payload_b64, sep, signature = text.partition(".")
        if not payload_b64 or not sep or not signature:
            raise ValueError("credential is not in payload.signature form")
        try:
            payload = json.loads(base64.b64decode(payload_b64, validate=True))
        except (binascii.Error, ValueError) as err:
            raise ValueError("credential payload is not base64 JSON") from err
        if not isinstance(payload, Mapping):
            raise ValueError("credential payload is not an object")
        try:
            expires_at = int(payload.get("expiresAt"))
        except (TypeError, ValueError) as err:
            raise ValueError("credential payload has no expiresAt") from err
        subject = payload.get("subject")
        return cls(token=text, subject=str(subject) if subject is not None else None, expires_at=expires_at)

    def is_expired(self, *, now: int | None = None) -> bool:
        current = now_ms() if now is None else now
        return self.expires_at < current


__all__ = [
    "Credential",
    "OutboxAction",
    "OutboxItem",
    "entity_id",
    "is_deleted",
    "is_shared",
    "make_tombstone",
    "now_ms",
    "updated_at",
]
