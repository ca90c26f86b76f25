"""Error taxonomy shared by the sync engine components."""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for failures raised by the sync engine."""

    reason = "sync_error"

    def __init__(self, message: str, *, reason: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason
        self.status = status


class StorageUnavailable(SyncError):
    """Raised when the durable local store cannot be read or written."""

    reason = "storage_unavailable"


class TransportFailure(SyncError):
    """Raised for transient network or server failures; the caller retries later."""

    reason = "transport_failure"


class Unauthorized(SyncError):
    """Raised when the remote store rejects a call for a missing or expired credential."""

    reason = "unauthorized"


class ValidationFailure(SyncError):
    """Raised when the remote store rejects a malformed payload."""

    reason = "validation_failure"


class AuthError(SyncError):
    """Raised when authentication against the remote store fails."""

    reason = "auth_error"


class InvalidSecret(AuthError):
    reason = "invalid_secret"


class ChallengeFailed(AuthError):
    reason = "challenge_failed"


class ServerMisconfigured(AuthError):
    reason = "server_misconfigured"


AUTH_ERRORS_BY_REASON: dict[str, type[AuthError]] = {
    InvalidSecret.reason: InvalidSecret,
    ChallengeFailed.reason: ChallengeFailed,
    ServerMisconfigured.reason: ServerMisconfigured,
}


__all__ = [
    "AUTH_ERRORS_BY_REASON",
    "AuthError",
    "ChallengeFailed",
    "InvalidSecret",
    "ServerMisconfigured",
    "StorageUnavailable",
    "SyncError",
    "TransportFailure",
    "Unauthorized",
    "ValidationFailure",
]
