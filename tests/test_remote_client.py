from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from aiohttp import ClientError

from recipe_box.cloudsync import (
    ChallengeFailed,
    InvalidSecret,
    RemoteClient,
    ServerMisconfigured,
    TransportFailure,
    Unauthorized,
    ValidationFailure,
)


class _Response:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._text = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _Response:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


class _Session:
    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_fetch_recipes_sends_cursor() -> None:
    session = _Session(_Response(200, [{"id": "r1", "updatedAt": 5}, "junk"]))
    client = RemoteClient("https://recipes.example/", session)  # type: ignore[arg-type]

    records = await client.fetch_recipes(42)

    assert records == [{"id": "r1", "updatedAt": 5}]
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "https://recipes.example/recipes")
    assert kwargs["params"] == {"since": "42"}
    assert "Authorization" not in kwargs["headers"]


@pytest.mark.asyncio
async def test_mutations_send_bearer_token() -> None:
    session = _Session(_Response(200, {"success": True, "timestamp": 9}), _Response(200, {"success": True}))
    client = RemoteClient("https://recipes.example", session)  # type: ignore[arg-type]

    assert (await client.upsert_recipe({"id": "r1"}, "tok"))["timestamp"] == 9
    await client.delete_recipe("r1", "tok")

    assert session.requests[0][2]["headers"]["Authorization"] == "Bearer tok"
    assert session.requests[0][2]["json"] == {"id": "r1"}
    assert session.requests[1][0] == "DELETE"
    assert session.requests[1][2]["params"] == {"id": "r1"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error"),
    [(401, Unauthorized), (403, Unauthorized), (400, ValidationFailure), (500, TransportFailure)],
)
async def test_status_codes_map_to_error_classes(status: int, error: type[Exception]) -> None:
    session = _Session(_Response(status, {"error": "nope"}))
    client = RemoteClient("https://recipes.example", session)  # type: ignore[arg-type]
    with pytest.raises(error) as exc:
        await client.upsert_recipe({"id": "r1"}, "tok")
    assert str(exc.value) == "nope"


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [ClientError("reset"), asyncio.TimeoutError()])
async def test_network_failures_become_transport_failures(failure: BaseException) -> None:
    client = RemoteClient("https://recipes.example", _Session(failure))  # type: ignore[arg-type]
    with pytest.raises(TransportFailure):
        await client.fetch_recipes(0)


@pytest.mark.asyncio
async def test_malformed_pull_body_is_a_transport_failure() -> None:
    client = RemoteClient("https://recipes.example", _Session(_Response(200, "<html>")))  # type: ignore[arg-type]
    with pytest.raises(TransportFailure):
        await client.fetch_recipes(0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "body", "error"),
    [
        (401, {"error": "Invalid password", "reason": "invalid_secret"}, InvalidSecret),
        (400, {"error": "Human verification is required", "reason": "challenge_failed"}, ChallengeFailed),
        (503, {"error": "Human verification is temporarily unavailable", "reason": "challenge_failed"}, ChallengeFailed),
        (500, {"error": "Server misconfigured", "reason": "server_misconfigured"}, ServerMisconfigured),
        (401, {"error": "Invalid password"}, InvalidSecret),
        (502, "Bad gateway", TransportFailure),
    ],
)
async def test_authenticate_maps_failures(status: int, body: Any, error: type[Exception]) -> None:
    client = RemoteClient("https://recipes.example", _Session(_Response(status, body)))  # type: ignore[arg-type]
    with pytest.raises(error) as exc:
        await client.authenticate("secret", "challenge")
    if isinstance(body, dict):
        assert str(exc.value) == body["error"]


@pytest.mark.asyncio
async def test_authenticate_returns_token() -> None:
    session = _Session(_Response(200, {"token": "abc.def", "success": True}))
    client = RemoteClient("https://recipes.example", session)  # type: ignore[arg-type]

    assert await client.authenticate("secret", "challenge") == "abc.def"
    assert session.requests[0][2]["json"] == {"password": "secret", "challengeResponse": "challenge"}


@pytest.mark.asyncio
async def test_upload_image_returns_url() -> None:
    session = _Session(_Response(200, {"url": "/images?key=abc.png", "key": "abc.png", "deduplicated": False}))
    client = RemoteClient("https://recipes.example", session)  # type: ignore[arg-type]

    assert await client.upload_image(b"png", "a.png", "tok", content_type="image/png") == "/images?key=abc.png"
    assert session.requests[0][1] == "https://recipes.example/images"


@pytest.mark.asyncio
async def test_close_leaves_injected_session_open() -> None:
    session = _Session()
    client = RemoteClient("https://recipes.example", session)  # type: ignore[arg-type]
    await client.async_close()
    assert session.closed is False
