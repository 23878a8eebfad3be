"""
Session aggregate and its value types.

A StudySession is one learner's progress in one case attempt. It is owned
by the device that last wrote it locally and is shared by reference between
the UI and the sync engine on that device.

The remote-owned part (messages, actions, notes, differential, evaluation,
score, completion, evaluation status) can be replaced wholesale by a
download. The sync bookkeeping fields are local-only and never leave the
device inside a snapshot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

from .utils import parse_optional_timestamp, parse_timestamp, to_iso, utc_now


class EvaluationStatus(Enum):
    """State of the external evaluation, surfaced to the UI."""

    NOT_STARTED = "not_started"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY_NEEDED = "retry_needed"

    @classmethod
    def parse(cls, value: Any) -> EvaluationStatus:
        """Parse a stored value, falling back to NOT_STARTED for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NOT_STARTED


@dataclass
class ConversationMessage:
    """One entry of the conversation log."""

    sender: str
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "content": self.content,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationMessage:
        return cls(
            sender=data["sender"],
            content=data["content"],
            timestamp=parse_timestamp(data["timestamp"]),
        )


@dataclass
class PerformedAction:
    """An action the learner performed, with an optional justification."""

    action_name: str
    timestamp: datetime = field(default_factory=utc_now)
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionName": self.action_name,
            "timestamp": to_iso(self.timestamp),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformedAction:
        return cls(
            action_name=data["actionName"],
            timestamp=parse_timestamp(data["timestamp"]),
            reason=data.get("reason"),
        )


@dataclass
class DifferentialItem:
    """One hypothesis of the differential.

    Attributes:
        diagnosis: Diagnosis text
        confidence: Confidence in [0, 1]
        rationale: Learner's rationale
    """

    diagnosis: str
    confidence: float
    rationale: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "diagnosis": self.diagnosis,
            "confidence": self.confidence,
            "rationale": self.rationale,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DifferentialItem:
        return cls(
            diagnosis=data["diagnosis"],
            confidence=float(data["confidence"]),
            rationale=data.get("rationale", ""),
        )


@dataclass
class StudySession:
    """Session aggregate: one learner's progress in one case attempt.

    Attributes:
        case_id: Reference to an externally managed case definition
        session_id: Unique, immutable identifier and remote record key
        user_id: Owning user identity, None until linked
        is_completed: Completion flag
        score: Result set by the evaluation collaborator
        evaluation_status: Evaluation state shown to the UI
        messages: Ordered conversation log
        performed_actions: Ordered action log
        notes: Free text, full-replace semantics
        differential: Ordered hypothesis list, full-replace semantics
        evaluation_payload: Opaque serialized evaluation result
        last_synced_at: Device time of the last successful upload or download
        cloud_last_updated: Server-assigned timestamp last observed remotely
        origin_device: Device identifier recorded at creation
    """

    case_id: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str | None = None
    is_completed: bool = False
    score: float | None = None
    evaluation_status: EvaluationStatus = EvaluationStatus.NOT_STARTED
    messages: list[ConversationMessage] = field(default_factory=list)
    performed_actions: list[PerformedAction] = field(default_factory=list)
    notes: str = ""
    differential: list[DifferentialItem] = field(default_factory=list)
    evaluation_payload: str | None = None

    # Sync bookkeeping (local only)
    last_synced_at: datetime | None = None
    cloud_last_updated: datetime | None = None
    origin_device: str | None = None

    def add_message(
        self,
        sender: str,
        content: str,
        timestamp: datetime | None = None,
    ) -> ConversationMessage:
        """Append a message to the conversation log."""
        message = ConversationMessage(
            sender=sender, content=content, timestamp=timestamp or utc_now()
        )
        self.messages.append(message)
        return message

    def record_action(self, action_name: str, reason: str | None = None) -> PerformedAction:
        """Append a performed action."""
        action = PerformedAction(action_name=action_name, reason=reason)
        self.performed_actions.append(action)
        return action

    @property
    def ordered_action_names(self) -> list[str]:
        return [action.action_name for action in self.performed_actions]

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def has_content(self) -> bool:
        """Whether the session holds anything worth a remote write."""
        return bool(self.messages) or bool(self.notes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for local storage, bookkeeping included."""
        return {
            "session_id": self.session_id,
            "case_id": self.case_id,
            "user_id": self.user_id,
            "is_completed": self.is_completed,
            "score": self.score,
            "evaluation_status": self.evaluation_status.value,
            "messages": [m.to_dict() for m in self.messages],
            "performed_actions": [a.to_dict() for a in self.performed_actions],
            "notes": self.notes,
            "differential": [d.to_dict() for d in self.differential],
            "evaluation_payload": self.evaluation_payload,
            "last_synced_at": to_iso(self.last_synced_at),
            "cloud_last_updated": to_iso(self.cloud_last_updated),
            "origin_device": self.origin_device,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudySession:
        """Deserialize from the local storage form."""
        return cls(
            session_id=data["session_id"],
            case_id=data["case_id"],
            user_id=data.get("user_id"),
            is_completed=bool(data.get("is_completed", False)),
            score=data.get("score"),
            evaluation_status=EvaluationStatus.parse(data.get("evaluation_status")),
            messages=[ConversationMessage.from_dict(m) for m in data.get("messages", [])],
            performed_actions=[
                PerformedAction.from_dict(a) for a in data.get("performed_actions", [])
            ],
            notes=data.get("notes", ""),
            differential=[DifferentialItem.from_dict(d) for d in data.get("differential", [])],
            evaluation_payload=data.get("evaluation_payload"),
            last_synced_at=parse_optional_timestamp(data.get("last_synced_at")),
            cloud_last_updated=parse_optional_timestamp(data.get("cloud_last_updated")),
            origin_device=data.get("origin_device"),
        )

    def restore(self, data: dict[str, Any]) -> None:
        """Reset every field in place from the local storage form.

        Keeps object identity, so holders of this instance see the restored state.
        """
        restored = StudySession.from_dict(data)
        for f in fields(self):
            setattr(self, f.name, getattr(restored, f.name))
