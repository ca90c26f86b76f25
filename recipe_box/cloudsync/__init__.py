"""Offline-first sync engine shared by the Recipe Box clients."""

from .auth import CredentialManager
from .engine import SyncEngine
from .entities import Credential, OutboxAction, OutboxItem, make_tombstone, now_ms
from .errors import (
    AuthError,
    ChallengeFailed,
    InvalidSecret,
    ServerMisconfigured,
    StorageUnavailable,
    SyncError,
    TransportFailure,
    Unauthorized,
    ValidationFailure,
)
from .events import EventChannel, SyncEvent, SyncEventType
from .local_store import LocalStore
from .manager import SyncConfig, SyncManager, SyncManagerError
from .outbox import Outbox
from .pull import PullReconciler, PullResult
from .push import PushProcessor, PushResult
from .remote import RemoteClient
from .sync_state import SyncState

__all__ = [
    "AuthError",
    "ChallengeFailed",
    "Credential",
    "CredentialManager",
    "EventChannel",
    "InvalidSecret",
    "LocalStore",
    "Outbox",
    "OutboxAction",
    "OutboxItem",
    "PullReconciler",
    "PullResult",
    "PushProcessor",
    "PushResult",
    "RemoteClient",
    "ServerMisconfigured",
    "StorageUnavailable",
    "SyncConfig",
    "SyncEngine",
    "SyncError",
    "SyncEvent",
    "SyncEventType",
    "SyncManager",
    "SyncManagerError",
    "SyncState",
    "TransportFailure",
    "Unauthorized",
    "ValidationFailure",
    "make_tombstone",
    "now_ms",
]
