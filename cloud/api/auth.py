"""Household credential issue and verification."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import hmac
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout
from fastapi import Header, HTTPException, Request, status

from .config import TURNSTILE_VERIFY_URL, ServiceConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_SUBJECT = "family"

REASON_INVALID_SECRET = "invalid_secret"
REASON_CHALLENGE_FAILED = "challenge_failed"
REASON_SERVER_MISCONFIGURED = "server_misconfigured"


class AuthFailure(RuntimeError):
    """Raised when ``/auth`` refuses to issue a credential."""

    def __init__(self, message: str, *, reason: str, status_code: int) -> None:
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code

    def as_dict(self) -> dict[str, Any]:
        return {"error": str(self), "reason": self.reason}


class ChallengeUnavailable(RuntimeError):
    """Raised when the challenge verifier cannot be reached."""


class ChallengeVerifier(Protocol):
    async def __call__(self, response: str, remote_ip: str | None = None) -> bool: ...


# ----------------------------------------------------------------------
def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _signature(payload_b64: str, secret: str) -> bytes:
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).digest()


def sign_token(secret: str, *, subject: str, expires_at: int) -> str:
    """Return ``base64(payload).base64(HMAC-SHA256(payload))``."""

    payload = json.dumps({"subject": subject, "expiresAt": int(expires_at)}, separators=(",", ":"))
    payload_b64 = _b64encode(payload.encode())
    return f"{payload_b64}.{_b64encode(_signature(payload_b64, secret))}"


def verify_token(token: str, secret: str, *, now: int) -> dict[str, Any] | None:
    """Return the payload of a valid, unexpired token or ``None``."""

    if not token or not secret:
        return None
    payload_b64, sep, signature_b64 = token.strip().partition(".")
    if not payload_b64 or not sep or not signature_b64:
        return None
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not hmac.compare_digest(signature, _signature(payload_b64, secret)):
        return None
    try:
        payload = json.loads(base64.b64decode(payload_b64, validate=True))
        expires_at = int(payload["expiresAt"])
    except (binascii.Error, ValueError, TypeError, KeyError):
        return None
    if expires_at <= now:
        return None
    return payload


@dataclass(slots=True)
class Principal:
    subject: str
    expires_at: int


def bearer_dependency(
    config_getter: Callable[[], ServiceConfig],
    clock: Callable[[], int],
) -> Callable[..., Awaitable[Principal]]:
    """Build a FastAPI dependency that requires a valid bearer credential."""

    async def dependency(authorization: str | None = Header(None)) -> Principal:
        token = None
        if authorization and authorization.startswith("Bearer "):
            token = authorization[len("Bearer ") :].strip()
        payload = verify_token(token or "", config_getter().signing_secret, now=clock())
        if payload is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"error": "Unauthorized"},
            )
        return Principal(subject=str(payload.get("subject") or DEFAULT_SUBJECT), expires_at=int(payload["expiresAt"]))

    return dependency


# ----------------------------------------------------------------------
class TurnstileVerifier:
    """Check a human-verification response with the Turnstile siteverify API."""

    def __init__(
        self,
        secret: str,
        *,
        session: ClientSession | None = None,
        url: str = TURNSTILE_VERIFY_URL,
        timeout: float = 10,
    ) -> None:
        self._secret = secret
        self._session = session
        self._url = url
        self._timeout = ClientTimeout(total=timeout)

    async def __call__(self, response: str, remote_ip: str | None = None) -> bool:
        form = {"secret": self._secret, "response": response}
        if remote_ip:
            form["remoteip"] = remote_ip
        session = self._session or ClientSession()
        try:
            async with session.post(self._url, data=form, timeout=self._timeout) as resp:
                if resp.status >= 500:
                    raise ChallengeUnavailable(f"verifier returned HTTP {resp.status}")
                outcome = await resp.json(content_type=None)
        except (asyncio.TimeoutError, ClientError, ValueError) as err:
            raise ChallengeUnavailable(str(err) or err.__class__.__name__) from err
        finally:
            if self._session is None:
                await session.close()
        return bool(isinstance(outcome, dict) and outcome.get("success"))


class Authenticator:
    """Exchange the household secret for a signed credential."""

    def __init__(
        self,
        config: ServiceConfig,
        *,
        clock: Callable[[], int],
        challenge_verifier: ChallengeVerifier | None = None,
    ) -> None:
        self.config = config
        self._clock = clock
        self._verifier = challenge_verifier

    def _challenge_verifier(self) -> ChallengeVerifier:
        if self._verifier is None:
            self._verifier = TurnstileVerifier(self.config.turnstile_secret)
        return self._verifier

    async def authenticate(
        self,
        secret: str | None,
        challenge_response: str | None = None,
        *,
        remote_ip: str | None = None,
    ) -> dict[str, Any]:
        if not self.config.provisioned:
            _LOGGER.error("Authentication attempted but FAMILY_PASSWORD is not set")
            raise AuthFailure(
                "Server misconfigured: family password is not set",
                reason=REASON_SERVER_MISCONFIGURED,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        if self.config.challenge_required:
            if not isinstance(challenge_response, str) or not challenge_response:
                raise AuthFailure(
                    "Human verification is required",
                    reason=REASON_CHALLENGE_FAILED,
                    status_code=status.HTTP_400_BAD_REQUEST,
                )
            try:
                passed = await self._challenge_verifier()(challenge_response, remote_ip)
            except ChallengeUnavailable as err:
                _LOGGER.warning("Challenge verifier unreachable: %s", err)
                raise AuthFailure(
                    "Human verification is temporarily unavailable",
                    reason=REASON_CHALLENGE_FAILED,
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                ) from err
            if not passed:
                raise AuthFailure(
                    "Human verification failed",
                    reason=REASON_CHALLENGE_FAILED,
                    status_code=status.HTTP_403_FORBIDDEN,
                )

        if not isinstance(secret, str) or secret.strip() != self.config.family_password.strip():
            raise AuthFailure(
                "Invalid password",
                reason=REASON_INVALID_SECRET,
                status_code=status.HTTP_401_UNAUTHORIZED,
            )

        expires_at = self._clock() + self.config.token_ttl_ms
        token = sign_token(self.config.signing_secret, subject=DEFAULT_SUBJECT, expires_at=expires_at)
        return {"token": token, "expiresAt": expires_at, "success": True}


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("CF-Connecting-IP") or request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


__all__ = [
    "AuthFailure",
    "Authenticator",
    "ChallengeUnavailable",
    "ChallengeVerifier",
    "Principal",
    "TurnstileVerifier",
    "bearer_dependency",
    "client_ip",
    "sign_token",
    "verify_token",
]
