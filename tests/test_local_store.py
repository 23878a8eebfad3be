"""Tests for the file-backed local session store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from session_sync import (
    LocalSessionStore,
    SessionNotFoundError,
    StorageIOError,
    StudySession,
    ValidationError,
)
from session_sync.local import store as store_module


class TestLocalSessionStore:
    """Tests for LocalSessionStore."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> LocalSessionStore:
        return LocalSessionStore(tmp_path / "device")

    async def test_save_and_reload(
        self, store: LocalSessionStore, tmp_path: Path, session_factory
    ) -> None:
        session = session_factory(message_count=2)
        await store.save(session)

        assert (store.sessions_dir / "sess-1.json").exists()

        reopened = LocalSessionStore(tmp_path / "device")
        loaded = await reopened.require("sess-1")
        assert loaded == session

    async def test_get_returns_shared_instance(
        self, store: LocalSessionStore, session_factory
    ) -> None:
        session = session_factory()
        await store.save(session)

        assert await store.get("sess-1") is session
        assert await store.get("missing") is None

    async def test_require_missing_raises(self, store: LocalSessionStore) -> None:
        with pytest.raises(SessionNotFoundError):
            await store.require("missing")

    async def test_users(self, store: LocalSessionStore, tmp_path: Path) -> None:
        assert await store.has_user("user-123") is False

        await store.register_user("user-123")
        await store.register_user("user-123")

        assert await store.has_user("user-123") is True
        data = json.loads(store.users_file.read_text())
        assert data == {"users": ["user-123"]}

        reopened = LocalSessionStore(tmp_path / "device")
        assert await reopened.has_user("user-123") is True

    async def test_list_sessions_filters(self, store: LocalSessionStore, session_factory) -> None:
        open_session = session_factory(session_id="sess-open")
        done_session = session_factory(session_id="sess-done")
        done_session.is_completed = True
        other_user = session_factory(session_id="sess-other", user_id="user-999")
        for session in (open_session, done_session, other_user):
            await store.save(session)

        mine = await store.list_sessions(user_id="user-123")
        assert {s.session_id for s in mine} == {"sess-open", "sess-done"}

        incomplete = await store.list_sessions(user_id="user-123", completed=False)
        assert [s.session_id for s in incomplete] == ["sess-open"]

    async def test_commit_writes_unit_sessions(
        self, store: LocalSessionStore, tmp_path: Path, session_factory
    ) -> None:
        existing = session_factory(session_id="sess-existing")
        await store.save(existing)

        unit = store.begin()
        await unit.add(session_factory(session_id="sess-new"))
        unit.track(existing)
        existing.notes = "edited by reconcile"
        assert unit.has_changes is True
        assert unit.session_ids == ["sess-existing", "sess-new"]

        written = await unit.commit()

        assert written == 2
        assert unit.has_changes is False
        reopened = LocalSessionStore(tmp_path / "device")
        assert (await reopened.require("sess-existing")).notes == "edited by reconcile"
        assert await reopened.get("sess-new") is not None

    async def test_rollback_restores_in_place(
        self, store: LocalSessionStore, session_factory
    ) -> None:
        existing = session_factory(session_id="sess-existing")
        await store.save(existing)

        unit = store.begin()
        await unit.add(session_factory(session_id="sess-new"))
        unit.track(existing)
        existing.notes = "discard me"
        existing.add_message("patient", "from another device")

        await unit.rollback()

        assert unit.has_changes is False
        assert await store.get("sess-new") is None
        assert await store.get("sess-existing") is existing
        assert existing.notes == ""
        assert existing.message_count == 3

    async def test_rollback_after_partial_commit_restores_disk(
        self,
        store: LocalSessionStore,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        session_factory,
    ) -> None:
        first = session_factory(session_id="sess-a")
        second = session_factory(session_id="sess-b")
        await store.save(first)
        await store.save(second)

        unit = store.begin()
        await unit.add(session_factory(session_id="sess-0-new"))
        for session in (first, second):
            unit.track(session)
            session.notes = "remote notes"

        real_write = store_module.write_json_atomic

        async def failing_second_session(path: Path, data) -> None:
            if path.name == "sess-b.json":
                raise StorageIOError("write_json", str(path))
            await real_write(path, data)

        monkeypatch.setattr(store_module, "write_json_atomic", failing_second_session)

        with pytest.raises(StorageIOError):
            await unit.commit()
        await unit.rollback()

        reopened = LocalSessionStore(tmp_path / "device")
        assert (await reopened.require("sess-a")).notes == ""
        assert (await reopened.require("sess-b")).notes == ""
        assert await reopened.get("sess-0-new") is None
        assert first.notes == ""
        assert second.notes == ""

    async def test_units_are_independent(
        self, store: LocalSessionStore, tmp_path: Path, session_factory
    ) -> None:
        mine = session_factory(session_id="sess-mine")
        theirs = session_factory(session_id="sess-theirs", user_id="user-999")
        await store.save(mine)
        await store.save(theirs)

        unit_a = store.begin()
        unit_b = store.begin()
        unit_a.track(mine)
        mine.notes = "pass A"
        unit_b.track(theirs)
        theirs.notes = "pass B"

        await unit_a.rollback()
        assert await unit_b.commit() == 1

        assert mine.notes == ""
        assert theirs.notes == "pass B"
        reopened = LocalSessionStore(tmp_path / "device")
        assert (await reopened.require("sess-theirs")).notes == "pass B"
        assert (await reopened.require("sess-mine")).notes == ""

    async def test_track_requires_cached_instance(
        self, store: LocalSessionStore, session_factory
    ) -> None:
        await store.save(session_factory())

        with pytest.raises(SessionNotFoundError):
            store.begin().track(session_factory())

    async def test_delete(self, store: LocalSessionStore, session_factory) -> None:
        await store.save(session_factory())

        assert await store.delete("sess-1") is True
        assert await store.get("sess-1") is None
        assert not (store.sessions_dir / "sess-1.json").exists()
        assert await store.delete("sess-1") is False

    async def test_malformed_file_is_skipped(
        self, store: LocalSessionStore, tmp_path: Path, session_factory
    ) -> None:
        await store.save(session_factory(session_id="sess-good"))
        (store.sessions_dir / "sess-bad.json").write_text("{not json")
        (store.sessions_dir / "sess-partial.json").write_text('{"case_id": "c"}')

        reopened = LocalSessionStore(tmp_path / "device")
        sessions = await reopened.list_sessions()

        assert [s.session_id for s in sessions] == ["sess-good"]

    @pytest.mark.parametrize("session_id", ["", "../escape", "a/b", ".hidden"])
    async def test_rejects_unsafe_session_ids(
        self, store: LocalSessionStore, session_id: str
    ) -> None:
        with pytest.raises(ValidationError):
            await store.save(StudySession(case_id="case-1", session_id=session_id))
