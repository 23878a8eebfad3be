"""
Download / reconciliation path: remote records -> local sessions.

For every remote record of a user, newest first, the reconciler either
creates the missing local session, replaces the local copy when the
conflict policy says the remote one wins, or leaves the local copy alone.

A record that cannot be parsed or decoded is logged and skipped on its own;
the rest of the pass continues. A local session is either fully replaced or
not touched at all: the blob is decoded before any field is assigned.

Changes go through a unit of work owned by the pass and are committed once
at the end of it, after which one SessionUpdatedFromRemote event is
published per changed session. A failed commit restores every touched
session in place and publishes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..config import SyncConfig
from ..events import SessionEventBus, SessionUpdatedFromRemote
from ..exceptions import (
    SessionSyncError,
    SnapshotDecodeError,
    StorageIOError,
    SyncError,
    UserNotFoundError,
    ValidationError,
)
from ..local.store import LocalSessionStore, LocalUnitOfWork
from ..logging_utils import SyncLoggerAdapter, get_sync_logger
from ..models import StudySession
from ..policy import ConflictPolicy, LocalVersion, RemoteVersion
from ..records import RemoteSessionRecord
from ..remote.base import RemoteSessionStore
from ..snapshot import PortableSnapshot, decode_snapshot
from ..utils import Clock, utc_now
from .locks import KeyedLocks

logger = get_sync_logger("reconcile")


class RecordOutcome(Enum):
    """What a reconciliation pass did with one remote record."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class ReconcileResult:
    """Summary of one reconciliation pass."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    changed_session_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return self.created + self.updated


def apply_remote(
    session: StudySession,
    record: RemoteSessionRecord,
    snapshot: PortableSnapshot,
    synced_at: datetime,
) -> None:
    """Overwrite every remote-owned field of a session in one step."""
    session.messages = list(snapshot.messages)
    session.performed_actions = list(snapshot.actions)
    session.notes = snapshot.notes
    session.differential = list(snapshot.differential)
    session.evaluation_payload = snapshot.evaluation
    session.score = record.score
    session.is_completed = record.is_completed
    session.evaluation_status = record.evaluation_status
    if record.server_updated_at is not None:
        session.cloud_last_updated = record.server_updated_at
    session.last_synced_at = synced_at


def session_from_remote(
    user_id: str,
    record: RemoteSessionRecord,
    snapshot: PortableSnapshot,
    synced_at: datetime,
) -> StudySession:
    """Build a new local session from a remote record."""
    session = StudySession(
        session_id=record.session_id,
        case_id=record.case_id,
        user_id=user_id,
        origin_device=record.device_id or snapshot.device_identifier,
    )
    apply_remote(session, record, snapshot, synced_at)
    return session


class SessionReconciler:
    """Applies a user's remote records to the local store."""

    def __init__(
        self,
        remote: RemoteSessionStore,
        local: LocalSessionStore,
        events: SessionEventBus,
        config: SyncConfig,
        user_locks: KeyedLocks | None = None,
        session_locks: KeyedLocks | None = None,
        policy: ConflictPolicy | None = None,
        clock: Clock = utc_now,
    ):
        """Initialize the reconciler.

        Args:
            remote: Shared remote store
            local: This device's store
            events: Channel for "session updated from remote" events
            config: Sync configuration (conflict tolerance)
            user_locks: Locks serializing passes of the same user
            session_locks: Locks serializing work on the same session
            policy: Conflict policy, built from config when omitted
            clock: Device clock
        """
        self.remote = remote
        self.local = local
        self.events = events
        self.config = config
        self.user_locks = user_locks or KeyedLocks()
        self.session_locks = session_locks or KeyedLocks()
        self.policy = policy or ConflictPolicy(config.conflict_tolerance)
        self.clock = clock

    async def reconcile(self, user_id: str | None, force: bool = False) -> ReconcileResult:
        """Reconcile every remote record of a user with the local store.

        Args:
            user_id: User whose sessions to reconcile; empty means no-op
            force: Adopt every decodable remote record regardless of the policy

        Returns:
            ReconcileResult with created/updated/skipped/failed counts

        Raises:
            UserNotFoundError: If the user has no local record on this device
            SyncError: If listing remote records or committing locally failed
        """
        if not user_id:
            logger.warning("No user identity, skipping restore")
            return ReconcileResult()

        async with self.user_locks.hold(user_id):
            return await self._reconcile_locked(user_id, force)

    async def _reconcile_locked(self, user_id: str, force: bool) -> ReconcileResult:
        log = SyncLoggerAdapter(
            logger, {"user_id": user_id, "device_id": self.config.device_id}
        )

        if not await self.local.has_user(user_id):
            log.error(f"Restore failed: local user {user_id} not found")
            raise UserNotFoundError(user_id)

        log.info(f"Restoring progress for user {user_id} (force={force})...")
        try:
            documents = await self.remote.query_documents(user_id)
        except SessionSyncError as e:
            log.error(f"Failed to list remote sessions: {e}")
            raise SyncError("Failed to list remote sessions", user_id, e) from e

        log.info(f"Found {len(documents)} cloud sessions")

        result = ReconcileResult()
        unit = self.local.begin()
        changes: list[SessionUpdatedFromRemote] = []

        for doc in documents:
            try:
                record = RemoteSessionRecord.from_document(doc)
                outcome = await self._reconcile_record(user_id, record, unit, force, log)
            except (ValidationError, SnapshotDecodeError) as e:
                label = doc.get("sessionId") or doc.get("id") or "<unknown>"
                log.error(f"Skipping remote session {label}: {e}")
                result.failed += 1
                result.errors.append(f"{label}: {e}")
                continue

            if outcome == RecordOutcome.CREATED:
                result.created += 1
            elif outcome == RecordOutcome.UPDATED:
                result.updated += 1
            else:
                result.skipped += 1
                continue

            result.changed_session_ids.append(record.session_id)
            changes.append(
                SessionUpdatedFromRemote(
                    session_id=record.session_id,
                    user_id=user_id,
                    created=outcome == RecordOutcome.CREATED,
                )
            )

        if not changes:
            log.info(f"Local data is current (skipped {result.skipped} sessions)")
            return result

        try:
            await unit.commit()
        except StorageIOError as e:
            log.error(f"Failed to commit restored sessions, rolling back: {e}")
            await unit.rollback()
            raise SyncError("Failed to commit restored sessions", user_id, e) from e

        log.info(
            f"Restore complete: {result.created} new, {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed"
        )

        for event in changes:
            self.events.publish(event)

        return result

    async def _reconcile_record(
        self,
        user_id: str,
        record: RemoteSessionRecord,
        unit: LocalUnitOfWork,
        force: bool,
        log: SyncLoggerAdapter,
    ) -> RecordOutcome:
        session_id = record.session_id
        log = log.bind(session_id=session_id)

        async with self.session_locks.hold(session_id):
            existing = await self.local.get(session_id)

            if existing is None:
                snapshot = decode_snapshot(record.history_blob, session_id)
                session = session_from_remote(user_id, record, snapshot, self.clock())
                await unit.add(session)
                log.info(f"Restored new session {session_id}")
                return RecordOutcome.CREATED

            if existing.user_id not in (None, user_id):
                log.warning(f"Skipped session {session_id}: owned by another local user")
                return RecordOutcome.SKIPPED

            decision = self.policy.decide(
                RemoteVersion(record.server_updated_at, record.message_count),
                LocalVersion(existing.cloud_last_updated, existing.message_count),
                force=force,
            )
            if not decision.take_remote:
                log.info(f"Skipped session {session_id}: {decision.reason.value}")
                return RecordOutcome.SKIPPED

            snapshot = decode_snapshot(record.history_blob, session_id)
            unit.track(existing)
            apply_remote(existing, record, snapshot, self.clock())
            if existing.user_id is None:
                existing.user_id = user_id
            log.info(f"Updated session {session_id} from cloud: {decision.reason.value}")
            return RecordOutcome.UPDATED
