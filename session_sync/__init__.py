"""
Session Sync

Multi-device synchronization for study sessions.

Provides:
- Local-first session storage (atomic JSON files)
- Portable snapshot codec for the full session history
- Upload with bounded retry, one remote record per session
- Reconciliation with a server-timestamp conflict policy
- Change notifications for sessions updated from the cloud

Usage:

    >>> from session_sync import SyncCoordinator, create_sync_service
    >>> service = await create_sync_service()
    >>> coordinator = SyncCoordinator(service)
    >>> await service.local.register_user("user-123")
    ...
    >>> # Local edit: saved now, uploaded in the background
    >>> session.add_message("user", "Any chest pain?")
    >>> await coordinator.session_changed(session)
    ...
    >>> # App lifecycle
    >>> await coordinator.entering_background("user-123")
    >>> result = await coordinator.entering_foreground("user-123")

Backend Selection:

    # Cosmos DB for cloud multi-device sync
    from session_sync.remote import CosmosSessionStore, CosmosConfig

    # In-memory store for tests and offline development
    from session_sync.remote import InMemorySessionStore
"""

from .config import SyncConfig
from .events import ALL_SESSIONS, SessionEventBus, SessionUpdatedFromRemote
from .exceptions import (
    AuthenticationError,
    RemoteStoreError,
    SessionNotFoundError,
    SessionNotLinkedError,
    SessionSyncError,
    SnapshotDecodeError,
    SnapshotEncodeError,
    StorageConnectionError,
    StorageIOError,
    SyncError,
    TransientStoreError,
    UserNotFoundError,
    ValidationError,
)
from .local import LocalSessionStore
from .models import (
    ConversationMessage,
    DifferentialItem,
    EvaluationStatus,
    PerformedAction,
    StudySession,
)
from .policy import ConflictDecision, ConflictPolicy, DecisionReason, should_take_remote
from .records import RemoteSessionRecord
from .remote import (
    CosmosAuthMethod,
    CosmosConfig,
    CosmosSessionStore,
    InMemorySessionStore,
    RemoteSessionStore,
)
from .snapshot import PortableSnapshot, decode_snapshot, encode_snapshot, pack, unpack
from .sync import (
    ReconcileResult,
    SessionSyncService,
    SyncCoordinator,
    UploadOutcome,
    UploadResult,
    create_sync_service,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    "StudySession",
    "ConversationMessage",
    "PerformedAction",
    "DifferentialItem",
    "EvaluationStatus",
    # Snapshot codec
    "PortableSnapshot",
    "pack",
    "unpack",
    "encode_snapshot",
    "decode_snapshot",
    "RemoteSessionRecord",
    # Policy
    "ConflictPolicy",
    "ConflictDecision",
    "DecisionReason",
    "should_take_remote",
    # Stores
    "LocalSessionStore",
    "RemoteSessionStore",
    "CosmosSessionStore",
    "CosmosConfig",
    "CosmosAuthMethod",
    "InMemorySessionStore",
    # Sync
    "SessionSyncService",
    "create_sync_service",
    "SyncCoordinator",
    "UploadOutcome",
    "UploadResult",
    "ReconcileResult",
    # Events
    "SessionEventBus",
    "SessionUpdatedFromRemote",
    "ALL_SESSIONS",
    # Config
    "SyncConfig",
    # Exceptions
    "SessionSyncError",
    "SessionNotLinkedError",
    "UserNotFoundError",
    "SessionNotFoundError",
    "SnapshotEncodeError",
    "SnapshotDecodeError",
    "RemoteStoreError",
    "TransientStoreError",
    "AuthenticationError",
    "StorageConnectionError",
    "StorageIOError",
    "SyncError",
    "ValidationError",
]
