"""
Live tests against a real Cosmos DB account.

Requires SESSION_SYNC_COSMOS_* environment variables to be set.
"""

import os
import uuid

import pytest

from session_sync import CosmosConfig, CosmosSessionStore, RemoteSessionRecord, decode_snapshot
from session_sync.snapshot import pack_blob

pytestmark = [
    pytest.mark.cosmos,
    pytest.mark.skipif(
        not os.environ.get("SESSION_SYNC_COSMOS_ENDPOINT"),
        reason="SESSION_SYNC_COSMOS_ENDPOINT not set",
    ),
]


@pytest.fixture
async def store():  # type: ignore[misc]
    store = CosmosSessionStore(CosmosConfig.from_environment())
    yield store
    await store.close()


async def test_upload_list_delete(store: CosmosSessionStore, session_factory) -> None:
    unique = uuid.uuid4().hex[:8]
    user_id = f"test-user-{unique}"
    session = session_factory(session_id=f"test-session-{unique}", user_id=user_id)
    snapshot, blob = pack_blob(session, app_version="test", device_id="pytest")

    await store.upsert_record(user_id, RemoteSessionRecord.build(session, snapshot, blob))
    try:
        documents = await store.query_documents(user_id)

        assert len(documents) == 1
        record = RemoteSessionRecord.from_document(documents[0])
        assert record.server_updated_at is not None
        assert decode_snapshot(record.history_blob).same_content(snapshot)
    finally:
        assert await store.delete_record(user_id, session.session_id) is True
