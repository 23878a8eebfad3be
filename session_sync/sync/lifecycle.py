"""
Lifecycle triggers.

Thin coordinator that turns app events into sync work:
- a session changed locally: persist it, then upload in the background
- the app is going to the background: flush incomplete sessions, bounded
- the app came to the foreground: reconcile with the remote store
- the user asked for a refresh: reconcile, adopting every remote copy

Callers never see sync failures from the background paths; they are logged
and the next trigger tries again.
"""

from __future__ import annotations

import asyncio

from ..exceptions import SessionSyncError
from ..logging_utils import get_sync_logger
from ..models import StudySession
from .reconcile import ReconcileResult
from .service import SessionSyncService
from .upload import UploadResult

logger = get_sync_logger("lifecycle")


class SyncCoordinator:
    """Maps lifecycle events onto a SessionSyncService."""

    def __init__(self, service: SessionSyncService):
        self.service = service
        self._pending: set[asyncio.Task[UploadResult]] = set()

    @property
    def pending_uploads(self) -> int:
        return len(self._pending)

    async def session_changed(self, session: StudySession) -> asyncio.Task[UploadResult]:
        """Persist a locally edited session and schedule its upload.

        The local save completes before this returns; the upload does not.

        Returns:
            The scheduled upload task
        """
        await self.service.local.save(session)

        task = asyncio.create_task(
            self.service.upload(session),
            name=f"upload-{session.session_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def entering_background(self, user_id: str | None) -> int:
        """Upload every incomplete session of a user before suspension.

        Returns:
            Number of sessions uploaded before the deadline (0 on timeout)
        """
        if not user_id:
            return 0

        sessions = await self.service.local.list_sessions(user_id=user_id, completed=False)
        if not sessions:
            return 0

        timeout = self.service.config.background_upload_timeout
        logger.info(f"Entering background: uploading {len(sessions)} incomplete sessions")
        try:
            return await asyncio.wait_for(self.service.upload_many(sessions), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Background upload did not finish within {timeout}s")
            return 0

    async def entering_foreground(self, user_id: str | None) -> ReconcileResult | None:
        """Reconcile on foreground.

        Returns:
            ReconcileResult, or None if reconciliation failed and local data
            may be stale
        """
        return await self._reconcile(user_id, force=False)

    async def refresh(self, user_id: str | None) -> ReconcileResult | None:
        """User-initiated refresh: every decodable remote copy replaces the local one."""
        return await self._reconcile(user_id, force=True)

    async def _reconcile(self, user_id: str | None, force: bool) -> ReconcileResult | None:
        try:
            return await self.service.reconcile(user_id, force=force)
        except SessionSyncError as e:
            logger.error(f"Restore failed, local data may be stale: {e}")
            return None

    async def delete_session(self, session: StudySession) -> bool:
        """Delete a session from the remote store and this device.

        The local copy is removed even if the session was never uploaded.

        Raises:
            RemoteStoreError: If the remote delete fails; the local copy is kept
        """
        if session.user_id:
            await self.service.delete(session.session_id, session.user_id)
        return await self.service.local.delete(session.session_id)

    async def drain(self) -> None:
        """Wait for every scheduled upload to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
