"""
Sync paths between this device and the remote store.

Upload pushes one local session as a single record; reconciliation pulls a
user's records and applies them under the conflict policy. SessionSyncService
wires both with shared locks, SyncCoordinator maps app lifecycle events
onto it.
"""

from .lifecycle import SyncCoordinator
from .locks import KeyedLocks
from .reconcile import (
    ReconcileResult,
    RecordOutcome,
    SessionReconciler,
    apply_remote,
    session_from_remote,
)
from .service import SessionSyncService, create_sync_service
from .upload import SessionUploader, UploadOutcome, UploadResult

__all__ = [
    "SessionSyncService",
    "create_sync_service",
    "SyncCoordinator",
    "SessionUploader",
    "UploadOutcome",
    "UploadResult",
    "SessionReconciler",
    "ReconcileResult",
    "RecordOutcome",
    "apply_remote",
    "session_from_remote",
    "KeyedLocks",
]
