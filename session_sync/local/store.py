"""
Local persistent session store.

Holds this device's copy of every session. Writes made on behalf of the UI
are durable immediately (save). Writes made by a reconciliation pass go
through a LocalUnitOfWork owned by that pass: flushed together by commit(),
or undone in place by rollback(). Two passes never share a unit of work.

Directory structure:
{base_path}/
  users.json                 # user ids known on this device
  sessions/
    {session_id}.json        # one StudySession per file
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from pathlib import Path
from typing import Any

from ..exceptions import SessionNotFoundError, StorageIOError, ValidationError
from ..models import StudySession
from .file_ops import list_json_files, read_json, remove_file, write_json_atomic

logger = logging.getLogger(__name__)


def _validate_session_id(session_id: str) -> None:
    if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
        raise ValidationError("session_id", "not usable as a file name", session_id)


class LocalSessionStore:
    """File-backed store of StudySession aggregates with an in-memory cache.

    Aggregates returned by get() are the cached instances, so the UI and the
    sync engine share them by reference.
    """

    def __init__(self, base_path: Path | str):
        """Initialize the store.

        Args:
            base_path: Directory holding users.json and sessions/
        """
        self.base_path = Path(base_path)
        self._sessions: dict[str, StudySession] = {}
        self._users: set[str] = set()
        self._loaded = False
        self._load_lock = asyncio.Lock()

    @property
    def sessions_dir(self) -> Path:
        return self.base_path / "sessions"

    @property
    def users_file(self) -> Path:
        return self.base_path / "users.json"

    def _session_file(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    async def load(self) -> None:
        """Load users and sessions from disk once.

        A session file that cannot be parsed is logged and left on disk;
        it is not loaded.
        """
        if self._loaded:
            return

        async with self._load_lock:
            if self._loaded:
                return

            users = await read_json(self.users_file)
            if users:
                self._users = set(users.get("users", []))

            for path in await list_json_files(self.sessions_dir):
                session = await self._read_session_file(path)
                if session is not None:
                    self._sessions[session.session_id] = session

            self._loaded = True
            logger.debug(
                f"Loaded {len(self._sessions)} sessions and {len(self._users)} users "
                f"from {self.base_path}"
            )

    async def _read_session_file(self, path: Path) -> StudySession | None:
        try:
            data = await read_json(path)
            if data is None:
                return None
            return StudySession.from_dict(data)
        except StorageIOError as e:
            logger.error(f"Unreadable session file {path}: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed session file {path}: {e}")
        return None

    # =========================================================================
    # Users
    # =========================================================================

    async def register_user(self, user_id: str) -> None:
        """Record that a user is known on this device."""
        await self.load()
        if user_id in self._users:
            return
        self._users.add(user_id)
        await write_json_atomic(self.users_file, {"users": sorted(self._users)})

    async def has_user(self, user_id: str) -> bool:
        await self.load()
        return user_id in self._users

    # =========================================================================
    # Sessions
    # =========================================================================

    async def get(self, session_id: str) -> StudySession | None:
        """Get a session by id, or None."""
        await self.load()
        return self._sessions.get(session_id)

    async def require(self, session_id: str) -> StudySession:
        """Get a session by id.

        Raises:
            SessionNotFoundError: If the session is not stored locally
        """
        session = await self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(
        self,
        user_id: str | None = None,
        completed: bool | None = None,
    ) -> list[StudySession]:
        """List sessions, optionally filtered by owner and completion."""
        await self.load()
        sessions = list(self._sessions.values())
        if user_id is not None:
            sessions = [s for s in sessions if s.user_id == user_id]
        if completed is not None:
            sessions = [s for s in sessions if s.is_completed == completed]
        return sessions

    async def save(self, session: StudySession) -> None:
        """Persist a session immediately."""
        _validate_session_id(session.session_id)
        await self.load()
        await write_json_atomic(self._session_file(session.session_id), session.to_dict())
        self._sessions[session.session_id] = session

    def begin(self) -> LocalUnitOfWork:
        """Start a unit of work for one reconciliation pass."""
        return LocalUnitOfWork(self)

    async def delete(self, session_id: str) -> bool:
        """Delete a session from disk and cache.

        Returns:
            True if the session existed
        """
        await self.load()
        existed = self._sessions.pop(session_id, None) is not None
        removed = await remove_file(self._session_file(session_id))
        return existed or removed


class LocalUnitOfWork:
    """Session changes of one reconciliation pass.

    New sessions are visible in the cache as soon as they are added. Existing
    sessions must be tracked before they are modified so that rollback can
    restore them in place, keeping the instances other holders reference.
    """

    def __init__(self, store: LocalSessionStore):
        self._store = store
        self._added: dict[str, StudySession] = {}
        self._originals: dict[str, dict[str, Any]] = {}
        self._written: list[str] = []

    @property
    def session_ids(self) -> list[str]:
        return sorted(set(self._added) | set(self._originals))

    @property
    def has_changes(self) -> bool:
        return bool(self._added) or bool(self._originals)

    async def add(self, session: StudySession) -> None:
        """Insert a new session."""
        _validate_session_id(session.session_id)
        await self._store.load()
        self._store._sessions[session.session_id] = session
        self._added[session.session_id] = session

    def track(self, session: StudySession) -> None:
        """Remember the current state of a cached session before modifying it."""
        if self._store._sessions.get(session.session_id) is not session:
            raise SessionNotFoundError(session.session_id)
        if session.session_id not in self._added:
            self._originals.setdefault(session.session_id, session.to_dict())

    async def commit(self) -> int:
        """Write every session of this unit to disk.

        Returns:
            Number of sessions written

        Raises:
            StorageIOError: If a write fails; call rollback() to undo
        """
        for session_id in self.session_ids:
            session = self._added.get(session_id) or self._store._sessions.get(session_id)
            if session is None:
                continue
            await write_json_atomic(self._store._session_file(session_id), session.to_dict())
            self._written.append(session_id)

        written = len(self._written)
        self._clear()
        logger.debug(f"Committed {written} sessions")
        return written

    async def rollback(self) -> None:
        """Undo every change of this unit, in memory and on disk."""
        store = self._store
        for session_id, session in self._added.items():
            if store._sessions.get(session_id) is session:
                del store._sessions[session_id]
            if session_id in self._written:
                await self._undo_write(remove_file(store._session_file(session_id)))

        for session_id, original in self._originals.items():
            session = store._sessions.get(session_id)
            if session is not None:
                session.restore(original)
            if session_id in self._written:
                await self._undo_write(
                    write_json_atomic(store._session_file(session_id), original)
                )

        logger.info(f"Rolled back {len(self.session_ids)} sessions")
        self._clear()

    async def _undo_write(self, operation: Awaitable[Any]) -> None:
        try:
            await operation
        except StorageIOError as e:
            logger.error(f"Failed to undo local write: {e}")

    def _clear(self) -> None:
        self._added.clear()
        self._originals.clear()
        self._written.clear()
