"""
In-process remote store.

Behaves like the shared remote store for development and tests: documents
are keyed by (user_id, session_id), every write is stamped with a server
timestamp from the store's own clock, and that timestamp never goes
backwards for a record. Several LocalSessionStore instances pointing at one
InMemorySessionStore simulate several devices.
"""

from __future__ import annotations

import copy
import logging
from datetime import UTC, datetime
from typing import Any

from ..records import RemoteSessionRecord
from ..utils import Clock, to_iso, utc_now
from .base import RemoteSessionStore

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=UTC)


class InMemorySessionStore(RemoteSessionStore):
    """Dictionary-backed RemoteSessionStore with a server clock."""

    def __init__(self, clock: Clock = utc_now):
        """Initialize the store.

        Args:
            clock: Server clock used to stamp writes
        """
        self.clock = clock
        self._documents: dict[str, dict[str, dict[str, Any]]] = {}
        self._updated_at: dict[tuple[str, str], datetime] = {}
        self.write_count = 0

    async def upsert_record(self, user_id: str, record: RemoteSessionRecord) -> None:
        key = (user_id, record.session_id)
        stamp = self.clock()
        previous = self._updated_at.get(key)
        if previous is not None and stamp < previous:
            stamp = previous

        doc = record.to_document(user_id)
        self._documents.setdefault(user_id, {})[record.session_id] = doc
        self._updated_at[key] = stamp
        self.write_count += 1
        logger.debug(f"Stored session {record.session_id} for {user_id} at {stamp.isoformat()}")

    async def query_documents(self, user_id: str) -> list[dict[str, Any]]:
        entries = [
            (self._updated_at.get((user_id, session_id)), session_id, doc)
            for session_id, doc in self._documents.get(user_id, {}).items()
        ]
        entries.sort(key=lambda e: e[0] or _NEVER, reverse=True)
        return [
            self._with_server_timestamp(user_id, session_id, doc)
            for _, session_id, doc in entries
        ]

    async def get_document(self, user_id: str, session_id: str) -> dict[str, Any] | None:
        doc = self._documents.get(user_id, {}).get(session_id)
        if doc is None:
            return None
        return self._with_server_timestamp(user_id, session_id, doc)

    async def delete_record(self, user_id: str, session_id: str) -> bool:
        removed = self._documents.get(user_id, {}).pop(session_id, None)
        self._updated_at.pop((user_id, session_id), None)
        return removed is not None

    async def close(self) -> None:
        pass

    def put_document(self, user_id: str, doc: dict[str, Any], server_updated_at: datetime | None):
        """Place a raw document as-is, bypassing validation.

        Used to seed records written by other app versions or damaged ones.
        """
        existing = self._documents.get(user_id, {})
        session_id = doc.get("sessionId") or doc.get("id") or f"raw-{len(existing)}"
        self._documents.setdefault(user_id, {})[session_id] = copy.deepcopy(doc)
        if server_updated_at is None:
            self._updated_at.pop((user_id, session_id), None)
        else:
            self._updated_at[(user_id, session_id)] = server_updated_at

    def _with_server_timestamp(
        self, user_id: str, session_id: str, doc: dict[str, Any]
    ) -> dict[str, Any]:
        result = copy.deepcopy(doc)
        result["serverUpdatedAt"] = to_iso(self._updated_at.get((user_id, session_id)))
        return result
