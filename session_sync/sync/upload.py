"""
Upload path: local session -> one remote record.

An upload packs the whole session into a snapshot and writes header plus
blob in a single upsert, so the remote state of a session is never observed
half-written. Sessions without an owner or without content are skipped to
keep remote writes cheap. Transient failures are retried a fixed number of
times with a fixed delay; after that the failure is reported, not raised,
and the next lifecycle trigger tries again with whatever state is current.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from ..config import SyncConfig
from ..exceptions import (
    SessionSyncError,
    SnapshotEncodeError,
    StorageConnectionError,
    StorageIOError,
    TransientStoreError,
)
from ..local.store import LocalSessionStore
from ..logging_utils import SyncLoggerAdapter, get_sync_logger
from ..models import StudySession
from ..records import RemoteSessionRecord
from ..remote.base import RemoteSessionStore
from ..snapshot import pack_blob
from ..utils import Clock, utc_now
from .locks import KeyedLocks

logger = get_sync_logger("upload")

Sleeper = Callable[[float], Awaitable[None]]


class UploadOutcome(Enum):
    """Result of one upload attempt sequence."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UploadResult:
    """What happened to one session upload."""

    session_id: str
    outcome: UploadOutcome
    attempts: int = 0
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == UploadOutcome.SUCCESS


class SessionUploader:
    """Writes sessions to the remote store with bounded retry."""

    def __init__(
        self,
        remote: RemoteSessionStore,
        local: LocalSessionStore,
        config: SyncConfig,
        session_locks: KeyedLocks | None = None,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ):
        """Initialize the uploader.

        Args:
            remote: Shared remote store
            local: This device's store, used to persist bookkeeping after success
            config: Retry bound, delay, app version and device id
            session_locks: Locks serializing work on the same session
            clock: Device clock
            sleep: Awaitable delay between attempts
        """
        self.remote = remote
        self.local = local
        self.config = config
        self.session_locks = session_locks or KeyedLocks()
        self.clock = clock
        self._sleep = sleep

    async def upload(self, session: StudySession) -> UploadResult:
        """Upload one session. Never raises.

        Returns:
            UploadResult with SUCCESS, SKIPPED or FAILED
        """
        log = SyncLoggerAdapter(
            logger,
            {
                "user_id": session.user_id,
                "session_id": session.session_id,
                "device_id": self.config.device_id,
            },
        )

        if not session.user_id:
            log.warning(f"Skipping upload of {session.session_id}: session not linked to a user")
            return UploadResult(session.session_id, UploadOutcome.SKIPPED, reason="not_linked")

        if not session.has_content():
            log.info(f"Skipping upload of {session.session_id}: no messages or notes")
            return UploadResult(session.session_id, UploadOutcome.SKIPPED, reason="no_content")

        async with self.session_locks.hold(session.session_id):
            return await self._upload_locked(session, session.user_id, log)

    async def _upload_locked(
        self,
        session: StudySession,
        user_id: str,
        log: SyncLoggerAdapter,
    ) -> UploadResult:
        # Packing is synchronous, so the snapshot reflects a single point in time
        try:
            snapshot, blob = pack_blob(
                session,
                app_version=self.config.app_version,
                device_id=self.config.device_id,
                clock=self.clock,
            )
        except SnapshotEncodeError as e:
            log.error(f"Failed to pack session {session.session_id}: {e}")
            return UploadResult(session.session_id, UploadOutcome.FAILED, reason=str(e))

        record = RemoteSessionRecord.build(session, snapshot, blob)
        log.info(f"Uploading session {session.session_id} ({record.message_count} messages)")

        max_retries = self.config.max_retries
        for attempt in range(1, max_retries + 1):
            try:
                await self.remote.upsert_record(user_id, record)
            except (TransientStoreError, StorageConnectionError) as e:
                if attempt < max_retries:
                    log.warning(
                        f"Upload failed (attempt {attempt}/{max_retries}): {e}. Retrying..."
                    )
                    await self._sleep(self.config.retry_delay)
                    continue
                log.error(f"Upload failed after {max_retries} attempts: {e}")
                return UploadResult(
                    session.session_id, UploadOutcome.FAILED, attempts=attempt, reason=str(e)
                )
            except SessionSyncError as e:
                log.error(f"Upload of {session.session_id} failed permanently: {e}")
                return UploadResult(
                    session.session_id, UploadOutcome.FAILED, attempts=attempt, reason=str(e)
                )
            except Exception as e:
                log.exception(f"Unexpected error uploading {session.session_id}: {e}")
                return UploadResult(
                    session.session_id, UploadOutcome.FAILED, attempts=attempt, reason=str(e)
                )

            log.info(f"Session {session.session_id} synced to cloud (attempt {attempt})")
            await self._record_success(session, log)
            return UploadResult(session.session_id, UploadOutcome.SUCCESS, attempts=attempt)

        # max_retries >= 1 is enforced by SyncConfig
        return UploadResult(session.session_id, UploadOutcome.FAILED, reason="no attempts made")

    async def _record_success(self, session: StudySession, log: SyncLoggerAdapter) -> None:
        # cloud_last_updated is only learned from a later download
        session.last_synced_at = self.clock()
        try:
            await self.local.save(session)
        except StorageIOError as e:
            log.warning(f"Uploaded {session.session_id} but failed to persist sync time: {e}")

    async def upload_many(self, sessions: Iterable[StudySession]) -> int:
        """Upload sessions concurrently.

        Returns:
            Number of sessions uploaded successfully
        """
        sessions = list(sessions)
        if not sessions:
            return 0

        logger.info(f"Batch uploading {len(sessions)} sessions...")
        results = await asyncio.gather(*(self.upload(s) for s in sessions))
        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"Batch upload complete: {succeeded}/{len(sessions)} sessions synced")
        return succeeded
