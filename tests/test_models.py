"""Tests for the session aggregate and its local persistence form."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from session_sync import (
    ConversationMessage,
    DifferentialItem,
    EvaluationStatus,
    PerformedAction,
    StudySession,
)


class TestEvaluationStatus:
    def test_parse_known_value(self) -> None:
        assert EvaluationStatus.parse("retry_needed") == EvaluationStatus.RETRY_NEEDED

    def test_parse_unknown_value_falls_back(self) -> None:
        assert EvaluationStatus.parse("archived") == EvaluationStatus.NOT_STARTED
        assert EvaluationStatus.parse(None) == EvaluationStatus.NOT_STARTED

    def test_parse_passes_enum_through(self) -> None:
        assert EvaluationStatus.parse(EvaluationStatus.FAILED) == EvaluationStatus.FAILED


class TestDifferentialItem:
    def test_confidence_bounds(self) -> None:
        DifferentialItem(diagnosis="ACS", confidence=0.0)
        DifferentialItem(diagnosis="ACS", confidence=1.0)

        with pytest.raises(ValueError):
            DifferentialItem(diagnosis="ACS", confidence=1.5)
        with pytest.raises(ValueError):
            DifferentialItem(diagnosis="ACS", confidence=-0.1)


class TestStudySession:
    """Tests for StudySession."""

    def test_defaults(self) -> None:
        session = StudySession(case_id="case-1")

        assert session.session_id
        assert session.user_id is None
        assert session.is_completed is False
        assert session.evaluation_status == EvaluationStatus.NOT_STARTED
        assert session.message_count == 0
        assert session.has_content() is False

    def test_has_content(self) -> None:
        session = StudySession(case_id="case-1")
        session.notes = "febrile, tachycardic"
        assert session.has_content() is True

        session = StudySession(case_id="case-1")
        session.add_message("student", "Hello")
        assert session.has_content() is True

    def test_actions_keep_order(self) -> None:
        session = StudySession(case_id="case-1")
        session.record_action("take_history")
        session.record_action("order_ecg", reason="chest pain")
        session.record_action("order_troponin")

        assert session.ordered_action_names == ["take_history", "order_ecg", "order_troponin"]
        assert session.performed_actions[1].reason == "chest pain"

    def test_local_form_includes_bookkeeping(self) -> None:
        synced = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
        session = StudySession(
            case_id="case-1",
            session_id="sess-1",
            user_id="user-123",
            score=72.5,
            evaluation_status=EvaluationStatus.COMPLETED,
            notes="notes",
            evaluation_payload='{"feedback": "good"}',
            last_synced_at=synced,
            cloud_last_updated=synced,
            origin_device="device-a",
        )
        session.add_message("student", "Hi", timestamp=synced)
        session.differential.append(DifferentialItem("PE", 0.4, "tachycardia"))

        data = session.to_dict()
        assert data["evaluation_status"] == "completed"
        assert data["last_synced_at"] == "2026-03-01T10:00:00+00:00"
        assert data["origin_device"] == "device-a"

        restored = StudySession.from_dict(data)
        assert restored == session

    def test_from_dict_tolerates_missing_optional_fields(self) -> None:
        restored = StudySession.from_dict({"session_id": "sess-1", "case_id": "case-1"})

        assert restored.messages == []
        assert restored.notes == ""
        assert restored.cloud_last_updated is None


class TestValueTypes:
    def test_action_uses_wire_key(self) -> None:
        action = PerformedAction(
            "order_ecg", timestamp=datetime(2026, 3, 1, tzinfo=UTC), reason=None
        )
        assert action.to_dict()["actionName"] == "order_ecg"
        assert PerformedAction.from_dict(action.to_dict()) == action

    def test_message_accepts_epoch_timestamp(self) -> None:
        message = ConversationMessage.from_dict(
            {"sender": "patient", "content": "It hurts", "timestamp": 1772355600}
        )
        assert message.timestamp == datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
