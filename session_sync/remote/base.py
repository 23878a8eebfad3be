"""
Abstract remote session store.

Defines the contract every remote backend implements. The store is keyed by
(user_id, session_id), holds one document per session, treats writes as
overwrite-by-key, and stamps every write with its own server timestamp.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..records import RemoteSessionRecord


class RemoteSessionStore(ABC):
    """Contract for the shared remote store.

    Documents returned by query_documents and get_document carry the
    server-assigned write time under "serverUpdatedAt", as an ISO 8601
    string or epoch seconds.
    """

    @abstractmethod
    async def upsert_record(self, user_id: str, record: RemoteSessionRecord) -> None:
        """Write one session record in a single operation.

        Args:
            user_id: Owning user
            record: Header fields plus blob

        Raises:
            TransientStoreError: If the write may succeed when retried
            RemoteStoreError: If the write failed permanently
        """
        ...

    @abstractmethod
    async def query_documents(self, user_id: str) -> list[dict[str, Any]]:
        """List every session document of a user, newest serverUpdatedAt first.

        Documents are returned raw so one malformed document can be
        skipped without failing the listing.
        """
        ...

    @abstractmethod
    async def get_document(self, user_id: str, session_id: str) -> dict[str, Any] | None:
        """Read one session document, or None if it does not exist."""
        ...

    @abstractmethod
    async def delete_record(self, user_id: str, session_id: str) -> bool:
        """Delete a session record.

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release resources."""
        ...

    async def __aenter__(self) -> RemoteSessionStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
