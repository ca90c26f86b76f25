"""HTTP transport between the sync engine and the remote recipe store."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from aiohttp import ClientError, ClientSession, ClientTimeout, FormData

from ..const import DEFAULT_REQUEST_TIMEOUT
from .errors import (
    AUTH_ERRORS_BY_REASON,
    ChallengeFailed,
    InvalidSecret,
    ServerMisconfigured,
    TransportFailure,
    Unauthorized,
    ValidationFailure,
)

_LOGGER = logging.getLogger(__name__)


def _decode_body(text: str) -> Any:
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"error": text.strip()}


def _error_message(payload: Any, default: str) -> str:
    if isinstance(payload, Mapping):
        message = payload.get("error") or payload.get("detail") or payload.get("message")
        if isinstance(message, str) and message:
            return message
        if isinstance(message, Mapping) and message.get("error"):
            return str(message["error"])
    return default


def raise_for_status(status: int, payload: Any, *, operation: str) -> None:
    """Translate an HTTP status into the engine's error taxonomy."""

    if status < 400:
        return
    message = _error_message(payload, f"{operation} failed: HTTP {status}")
    if status in (401, 403):
        raise Unauthorized(message, status=status)
    if status in (400, 422):
        raise ValidationFailure(message, status=status)
    raise TransportFailure(message, status=status)


class RemoteClient:
    """Thin aiohttp wrapper around the recipe store endpoints."""

    def __init__(
        self,
        base_url: str,
        session: ClientSession | None = None,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_session(self) -> ClientSession:
        if self._session is None:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    async def async_close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        operation: str,
        **kwargs: Any,
    ) -> tuple[int, Any]:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        session = self._get_session()
        try:
            async with session.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                timeout=self._timeout,
                **kwargs,
            ) as resp:
                text = await resp.text()
                return resp.status, _decode_body(text)
        except asyncio.TimeoutError as err:
            raise TransportFailure(f"{operation} timed out") from err
        except ClientError as err:
            raise TransportFailure(f"{operation} request failed: {err}") from err

    # ------------------------------------------------------------------
    async def authenticate(self, secret: str, challenge_response: str | None = None) -> str:
        """Exchange the household secret for a signed bearer token."""

        body = {"password": secret, "challengeResponse": challenge_response}
        status, payload = await self._request("POST", "/auth", json=body, operation="auth")
        if status < 400 and isinstance(payload, Mapping) and payload.get("token"):
            return str(payload["token"])
        if status == 404:
            raise TransportFailure("auth endpoint not found; is the recipe service running?", status=status)
        message = _error_message(payload, f"authentication failed: HTTP {status}")
        reason = payload.get("reason") if isinstance(payload, Mapping) else None
        error_cls = AUTH_ERRORS_BY_REASON.get(str(reason)) if reason else None
        if error_cls is None:
            if status == 401:
                error_cls = InvalidSecret
            elif status in (400, 403):
                error_cls = ChallengeFailed
            elif status == 500 and "misconfigured" in message.lower():
                error_cls = ServerMisconfigured
            else:
                raise TransportFailure(message, status=status)
        raise error_cls(message, status=status)

    async def fetch_recipes(self, since: int) -> list[dict[str, Any]]:
        status, payload = await self._request(
            "GET",
            "/recipes",
            params={"since": str(int(since))},
            operation="pull",
        )
        raise_for_status(status, payload, operation="pull")
        if not isinstance(payload, list):
            raise TransportFailure("pull returned a malformed body")
        return [dict(item) for item in payload if isinstance(item, Mapping)]

    async def upsert_recipe(self, recipe: Mapping[str, Any], token: str) -> dict[str, Any]:
        status, payload = await self._request(
            "POST",
            "/recipes",
            json=dict(recipe),
            token=token,
            operation="upsert",
        )
        raise_for_status(status, payload, operation="upsert")
        return dict(payload) if isinstance(payload, Mapping) else {}

    async def delete_recipe(self, recipe_id: str, token: str) -> dict[str, Any]:
        status, payload = await self._request(
            "DELETE",
            "/recipes",
            params={"id": recipe_id},
            token=token,
            operation="delete",
        )
        raise_for_status(status, payload, operation="delete")
        return dict(payload) if isinstance(payload, Mapping) else {}

    async def upload_image(
        self,
        data: bytes,
        filename: str,
        token: str,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        form = FormData()
        form.add_field("file", data, filename=filename, content_type=content_type)
        status, payload = await self._request("POST", "/images", data=form, token=token, operation="upload")
        raise_for_status(status, payload, operation="upload")
        url = payload.get("url") if isinstance(payload, Mapping) else None
        if not url:
            raise TransportFailure("upload response is missing a url")
        _LOGGER.debug("Uploaded %s as %s", filename, url)
        return str(url)


__all__ = ["RemoteClient", "raise_for_status"]
