"""Tests for parsing remote session documents."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from session_sync import EvaluationStatus, RemoteSessionRecord, ValidationError


def _document(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "id": "sess-1",
        "sessionId": "sess-1",
        "caseId": "case-1",
        "historyBlob": "{}",
        "score": 72,
        "isCompleted": True,
        "evaluationStatus": "completed",
        "messageCount": 4,
        "serverUpdatedAt": 1_700_000_000,
    }
    doc.update(overrides)
    return doc


class TestFromDocument:
    def test_parses_header(self) -> None:
        record = RemoteSessionRecord.from_document(_document())

        assert record.session_id == "sess-1"
        assert record.score == 72.0
        assert record.is_completed is True
        assert record.evaluation_status == EvaluationStatus.COMPLETED
        assert record.message_count == 4
        assert record.server_updated_at == datetime.fromtimestamp(1_700_000_000, UTC)

    def test_missing_completion_defaults_to_false(self) -> None:
        doc = _document()
        del doc["isCompleted"]
        assert RemoteSessionRecord.from_document(doc).is_completed is False
        assert RemoteSessionRecord.from_document(_document(isCompleted=None)).is_completed is False

    @pytest.mark.parametrize("value", ["false", "true", 0, 1])
    def test_non_boolean_completion_rejected(self, value: Any) -> None:
        with pytest.raises(ValidationError) as exc_info:
            RemoteSessionRecord.from_document(_document(isCompleted=value))
        assert exc_info.value.field == "isCompleted"

    def test_boolean_score_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RemoteSessionRecord.from_document(_document(score=True))

    def test_malformed_timestamp_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RemoteSessionRecord.from_document(_document(serverUpdatedAt="yesterday"))
