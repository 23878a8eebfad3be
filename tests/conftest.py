"""
Shared test configuration and fixtures.

Every test runs against the in-memory remote store driven by a controllable
server clock, so ordering between devices is decided by the test and not by
wall-clock time. A "device" is a LocalSessionStore in its own directory plus
a SessionSyncService pointing at the shared remote store.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from session_sync import (
    InMemorySessionStore,
    LocalSessionStore,
    SessionSyncService,
    StudySession,
    SyncConfig,
)

USER_ID = "user-123"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


async def make_device(
    base_path: Path,
    remote: InMemorySessionStore,
    device_id: str,
    user_id: str = USER_ID,
    clock: FakeClock | None = None,
) -> SessionSyncService:
    """Create one device with a registered user and instant retries."""
    local = LocalSessionStore(base_path / device_id)
    await local.register_user(user_id)
    config = SyncConfig(device_id=device_id, app_version="2.1.0", local_path=base_path / device_id)
    return SessionSyncService(
        remote=remote,
        local=local,
        config=config,
        clock=clock or FakeClock(),
        sleep=AsyncMock(),
    )


def make_session(
    message_count: int = 3,
    user_id: str | None = USER_ID,
    session_id: str = "sess-1",
    case_id: str = "case-chest-pain",
) -> StudySession:
    """Create a session with a few messages and one action."""
    session = StudySession(case_id=case_id, session_id=session_id, user_id=user_id)
    start = datetime(2026, 3, 1, 8, 0, 0, tzinfo=UTC)
    for i in range(message_count):
        sender = "student" if i % 2 == 0 else "patient"
        session.add_message(sender, f"message {i}", timestamp=start + timedelta(minutes=i))
    if message_count:
        session.record_action("order_ecg", reason="rule out STEMI")
    return session


@pytest.fixture
def server_clock() -> FakeClock:
    """Server clock used by the remote store to stamp writes."""
    return FakeClock()


@pytest.fixture
def remote(server_clock: FakeClock) -> InMemorySessionStore:
    """Shared remote store."""
    return InMemorySessionStore(clock=server_clock)


@pytest.fixture
async def device_a(
    tmp_path: Path, remote: InMemorySessionStore
) -> AsyncIterator[SessionSyncService]:
    service = await make_device(tmp_path, remote, "device-a")
    yield service
    await service.close()


@pytest.fixture
async def device_b(
    tmp_path: Path, remote: InMemorySessionStore
) -> AsyncIterator[SessionSyncService]:
    service = await make_device(tmp_path, remote, "device-b")
    yield service
    await service.close()


@pytest.fixture
def session_factory():
    """Factory for populated sessions."""
    return make_session


@pytest.fixture
def device_factory(tmp_path: Path, remote: InMemorySessionStore):
    """Factory for additional devices sharing the remote store."""

    async def factory(device_id: str, user_id: str = USER_ID) -> SessionSyncService:
        return await make_device(tmp_path, remote, device_id, user_id=user_id)

    return factory
