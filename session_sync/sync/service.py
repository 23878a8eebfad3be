"""
Session sync service.

Single entry point for one device's sync work. Owns the locks that keep
uploads and reconciliation passes from interleaving their changes to the
local store:
- one lock per user: reconciliation passes of a user run one at a time
- one lock per session: an upload and a reconcile touching the same session
  never overlap, while different sessions upload concurrently
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from ..config import SyncConfig
from ..events import SessionEventBus
from ..exceptions import SessionNotLinkedError
from ..local.store import LocalSessionStore
from ..logging_utils import configure_structured_logging, get_sync_logger
from ..models import StudySession
from ..policy import ConflictPolicy
from ..remote.base import RemoteSessionStore
from ..remote.cosmos import CosmosConfig, CosmosSessionStore
from ..utils import Clock, utc_now
from .locks import KeyedLocks
from .reconcile import ReconcileResult, SessionReconciler
from .upload import SessionUploader, Sleeper, UploadResult

logger = get_sync_logger("service")


class SessionSyncService:
    """Upload, reconcile and delete sessions for one device.

    Example:
        >>> service = SessionSyncService(remote=store, local=LocalSessionStore(path))
        >>> await service.upload(session)
        >>> result = await service.reconcile("user-123")
    """

    def __init__(
        self,
        remote: RemoteSessionStore,
        local: LocalSessionStore,
        config: SyncConfig | None = None,
        events: SessionEventBus | None = None,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ):
        """Initialize the service.

        Args:
            remote: Shared remote store
            local: This device's store
            config: Sync configuration
            events: Channel for change notifications
            clock: Device clock
            sleep: Awaitable delay used between upload attempts
        """
        self.remote = remote
        self.local = local
        self.config = config or SyncConfig()
        self.events = events or SessionEventBus()

        self._user_locks = KeyedLocks()
        self._session_locks = KeyedLocks()

        self.uploader = SessionUploader(
            remote=remote,
            local=local,
            config=self.config,
            session_locks=self._session_locks,
            clock=clock,
            sleep=sleep,
        )
        self.reconciler = SessionReconciler(
            remote=remote,
            local=local,
            events=self.events,
            config=self.config,
            user_locks=self._user_locks,
            session_locks=self._session_locks,
            policy=ConflictPolicy(self.config.conflict_tolerance),
            clock=clock,
        )

    async def upload(self, session: StudySession) -> UploadResult:
        """Upload one session; see SessionUploader.upload."""
        return await self.uploader.upload(session)

    async def upload_many(self, sessions: Iterable[StudySession]) -> int:
        """Upload sessions concurrently; returns the success count."""
        return await self.uploader.upload_many(sessions)

    async def reconcile(self, user_id: str | None, force: bool = False) -> ReconcileResult:
        """Reconcile a user's remote records; see SessionReconciler.reconcile."""
        return await self.reconciler.reconcile(user_id, force=force)

    async def delete(self, session_id: str, user_id: str | None) -> bool:
        """Remove a session's remote record.

        Local deletion is the caller's responsibility.

        Returns:
            True if a remote record was deleted

        Raises:
            SessionNotLinkedError: If no user id is given
            RemoteStoreError: If the remote delete fails
        """
        if not user_id:
            raise SessionNotLinkedError(session_id)

        async with self._session_locks.hold(session_id):
            deleted = await self.remote.delete_record(user_id, session_id)

        if deleted:
            logger.info(f"Deleted session {session_id} from cloud")
        else:
            logger.info(f"Session {session_id} had no cloud record")
        return deleted

    async def close(self) -> None:
        await self.remote.close()

    async def __aenter__(self) -> SessionSyncService:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def create_sync_service(
    config: SyncConfig | None = None,
    cosmos_config: CosmosConfig | None = None,
) -> SessionSyncService:
    """Create a sync service backed by Cosmos DB and the local file store.

    Args:
        config: Sync configuration (from environment when omitted)
        cosmos_config: CosmosConfig (from environment when omitted)

    Returns:
        Ready SessionSyncService
    """
    config = config or SyncConfig.from_environment()
    if config.log_level:
        configure_structured_logging(config.log_level)

    cosmos_config = cosmos_config or CosmosConfig.from_environment()

    local = LocalSessionStore(config.local_path)
    await local.load()

    return SessionSyncService(
        remote=CosmosSessionStore(cosmos_config),
        local=local,
        config=config,
    )
