"""Credential handling for the client side of the sync engine."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .entities import Credential, now_ms
from .errors import TransportFailure
from .events import EventChannel, Listener, SyncEventType
from .remote import RemoteClient
from .sync_state import SyncState

_LOGGER = logging.getLogger(__name__)


class CredentialManager:
    """Hold the signed access token and announce when re-authentication is needed."""

    def __init__(
        self,
        state: SyncState,
        remote: RemoteClient,
        events: EventChannel,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.state = state
        self.remote = remote
        self.events = events
        self._clock = clock

    def credential(self) -> Credential | None:
        """Return the stored credential, or ``None`` when absent, malformed or expired."""

        token = self.state.get_credential()
        if not token:
            return None
        try:
            credential = Credential.from_token(token)
        except ValueError as err:
            _LOGGER.warning("Discarding malformed stored credential: %s", err)
            return None
        if credential.is_expired(now=self._clock()):
            return None
        return credential

    @property
    def token(self) -> str | None:
        credential = self.credential()
        return credential.token if credential else None

    def is_authorized(self) -> bool:
        return self.credential() is not None

    async def authenticate(self, secret: str, challenge_response: str | None = None) -> Credential:
        """Authenticate against the remote store and persist the issued credential.

        Raises one of ``InvalidSecret``, ``ChallengeFailed`` or
        ``ServerMisconfigured`` with the server's message, or
        ``TransportFailure`` when the server could not be reached.
        """

        token = await self.remote.authenticate(secret, challenge_response)
        try:
            credential = Credential.from_token(token)
        except ValueError as err:
            raise TransportFailure(f"server issued an unreadable credential: {err}") from err
        self.state.set_credential(credential.token)
        _LOGGER.debug("Stored credential for %s valid until %s", credential.subject, credential.expires_at)
        return credential

    def clear(self) -> None:
        self.state.clear_credential()

    def on_unauthorized(self, callback: Listener) -> Callable[[], None]:
        """Call ``callback`` whenever a remote call is rejected for lack of credentials."""

        return self.events.subscribe(callback, event_type=SyncEventType.UNAUTHORIZED)

    async def notify_unauthorized(self, *, operation: str, rejected: bool = False) -> None:
        if rejected:
            self.clear()
        await self.events.emit(SyncEventType.UNAUTHORIZED, operation=operation, rejected=rejected)
