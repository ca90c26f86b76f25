from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from cloud.api.auth import sign_token, verify_token
from cloud.api.store import ServerStore
from recipe_box.cloudsync import (
    EventChannel,
    InvalidSecret,
    SyncEngine,
    SyncState,
    TransportFailure,
    Unauthorized,
    ValidationFailure,
)

FAMILY_PASSWORD = "open sesame"
DAY_MS = 86_400_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeRemote:
    """In-process stand-in for ``RemoteClient`` backed by a real ``ServerStore``."""

    def __init__(self, store: ServerStore, clock: FakeClock, *, secret: str = FAMILY_PASSWORD) -> None:
        self.store = store
        self.clock = clock
        self.secret = secret
        self.online = True
        self.reject_ids: set[str] = set()
        self.calls: list[tuple[str, Any]] = []
        self.images: dict[str, bytes] = {}
        self.closed = False

    def _check_online(self, operation: str) -> None:
        if not self.online:
            raise TransportFailure(f"{operation} request failed: offline")

    def _check_token(self, token: str | None) -> None:
        if verify_token(token or "", self.secret, now=self.clock()) is None:
            raise Unauthorized("Unauthorized", status=401)

    def issue_token(self, *, ttl_ms: int = 100 * 365 * DAY_MS) -> str:
        return sign_token(self.secret, subject="family", expires_at=self.clock() + ttl_ms)

    async def authenticate(self, secret: str, challenge_response: str | None = None) -> str:
        self._check_online("auth")
        self.calls.append(("auth", secret))
        if secret.strip() != self.secret:
            raise InvalidSecret("Invalid password", status=401)
        return self.issue_token()

    async def fetch_recipes(self, since: int) -> list[dict[str, Any]]:
        self._check_online("pull")
        self.calls.append(("pull", since))
        return self.store.changes_since(since)

    async def upsert_recipe(self, recipe: Mapping[str, Any], token: str) -> dict[str, Any]:
        self._check_online("upsert")
        self._check_token(token)
        if recipe.get("id") in self.reject_ids:
            raise ValidationFailure("rejected", status=400)
        self.calls.append(("upsert", recipe["id"]))
        return {"success": True, "timestamp": self.store.upsert_recipe(recipe)}

    async def delete_recipe(self, recipe_id: str, token: str) -> dict[str, Any]:
        self._check_online("delete")
        self._check_token(token)
        self.calls.append(("delete", recipe_id))
        return {"success": True, "timestamp": self.store.delete_recipe(recipe_id)}

    async def upload_image(self, data: bytes, filename: str, token: str, *, content_type: str = "") -> str:
        self._check_online("upload")
        self._check_token(token)
        key = f"{len(self.images)}-{filename}"
        self.images[key] = data
        return f"/images?key={key}"

    async def async_close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def server_store(clock: FakeClock) -> ServerStore:
    store = ServerStore(":memory:", clock=clock)
    yield store
    store.close()


@pytest.fixture
def remote(server_store: ServerStore, clock: FakeClock) -> FakeRemote:
    return FakeRemote(server_store, clock)


def make_engine(path: Path, remote: FakeRemote, clock: FakeClock) -> SyncEngine:
    return SyncEngine(SyncState.open(path), remote, events=EventChannel(), clock=clock)  # type: ignore[arg-type]


@pytest.fixture
def engine(tmp_path: Path, remote: FakeRemote, clock: FakeClock) -> SyncEngine:
    engine = make_engine(tmp_path / "client.db", remote, clock)
    yield engine
    engine.store.close()
