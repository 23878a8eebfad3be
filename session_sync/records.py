"""
Remote session record.

One record per (user_id, session_id). Header fields are denormalized from
the aggregate so listing never has to read the blob; the blob carries
everything else. serverUpdatedAt is assigned by the remote store at write
time and is the only ordering signal between devices.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .exceptions import ValidationError
from .models import EvaluationStatus, StudySession
from .snapshot import PortableSnapshot
from .utils import parse_optional_timestamp


@dataclass
class RemoteSessionRecord:
    """Header fields plus history blob of one remote session.

    Attributes:
        session_id: Session identifier, also the record id
        case_id: Case reference
        score: Optional numeric result
        is_completed: Completion flag
        evaluation_status: Evaluation state
        message_count: Number of messages inside the blob, None if the store omitted it
        history_blob: Serialized PortableSnapshot
        server_updated_at: Timestamp assigned by the store, None until written
        blob_version: App version that wrote the blob (informational)
        device_id: Device that wrote the blob (informational)
    """

    session_id: str
    case_id: str
    history_blob: str
    score: float | None = None
    is_completed: bool = False
    evaluation_status: EvaluationStatus = EvaluationStatus.NOT_STARTED
    message_count: int | None = 0
    server_updated_at: datetime | None = None
    blob_version: str | None = None
    device_id: str | None = None

    @classmethod
    def build(
        cls,
        session: StudySession,
        snapshot: PortableSnapshot,
        blob: str,
    ) -> RemoteSessionRecord:
        """Build the record to upload for a packed session."""
        return cls(
            session_id=session.session_id,
            case_id=session.case_id,
            history_blob=blob,
            score=session.score,
            is_completed=session.is_completed,
            evaluation_status=session.evaluation_status,
            message_count=snapshot.message_count,
            blob_version=snapshot.app_version,
            device_id=snapshot.device_identifier,
        )

    def to_document(self, user_id: str) -> dict[str, Any]:
        """Serialize to a store document.

        serverUpdatedAt is never written by the client.
        """
        return {
            "id": self.session_id,
            "userId": user_id,
            "sessionId": self.session_id,
            "caseId": self.case_id,
            "score": self.score,
            "isCompleted": self.is_completed,
            "evaluationStatus": self.evaluation_status.value,
            "messageCount": self.message_count,
            "historyBlob": self.history_blob,
            "blobVersion": self.blob_version,
            "deviceId": self.device_id,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> RemoteSessionRecord:
        """Parse a store document.

        Stores expose their server timestamp under "serverUpdatedAt".

        Raises:
            ValidationError: If a required header field is missing or malformed
        """
        session_id = doc.get("sessionId") or doc.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("sessionId", "missing from remote record")

        case_id = doc.get("caseId")
        if not isinstance(case_id, str) or not case_id:
            raise ValidationError("caseId", "missing from remote record", session_id)

        blob = doc.get("historyBlob")
        if not isinstance(blob, str):
            raise ValidationError("historyBlob", "missing from remote record", session_id)

        score = doc.get("score")
        if score is not None:
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                raise ValidationError("score", "not a number", str(score))
            score = float(score)

        is_completed = doc.get("isCompleted")
        if is_completed is None:
            is_completed = False
        elif not isinstance(is_completed, bool):
            raise ValidationError("isCompleted", "not a boolean", str(is_completed))

        message_count = doc.get("messageCount")
        if message_count is not None and (
            isinstance(message_count, bool) or not isinstance(message_count, int)
        ):
            raise ValidationError("messageCount", "not an integer", str(message_count))

        try:
            server_updated_at = parse_optional_timestamp(doc.get("serverUpdatedAt"))
        except (ValueError, OverflowError, OSError) as e:
            raise ValidationError("serverUpdatedAt", str(e)) from e

        return cls(
            session_id=session_id,
            case_id=case_id,
            history_blob=blob,
            score=score,
            is_completed=is_completed,
            evaluation_status=EvaluationStatus.parse(doc.get("evaluationStatus")),
            message_count=message_count,
            server_updated_at=server_updated_at,
            blob_version=doc.get("blobVersion"),
            device_id=doc.get("deviceId"),
        )
