"""
Portable snapshot codec.

Packs the mutable parts of a StudySession into one self-contained JSON
payload (the history blob) so that a session's remote state is written and
read in a single atomic record operation.

Wire format:
    {
      "messages": [{"sender", "content", "timestamp"}],
      "actions": [{"actionName", "timestamp", "reason"?}],
      "notes": str,
      "differential": [{"diagnosis", "confidence", "rationale"}],
      "evaluation": str | null,
      "clientTimestamp": ISO 8601,
      "appVersion": str,
      "deviceIdentifier": str
    }

Decoding tolerates payloads written by other application versions: unknown
keys are ignored and missing optional keys take defaults. A structurally
corrupt payload raises SnapshotDecodeError and never yields a partial result.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .exceptions import SnapshotDecodeError, SnapshotEncodeError
from .models import ConversationMessage, DifferentialItem, PerformedAction, StudySession
from .utils import Clock, parse_timestamp, to_iso, utc_now

UNKNOWN = "unknown"


@dataclass
class PortableSnapshot:
    """Decoded contents of a history blob."""

    messages: list[ConversationMessage] = field(default_factory=list)
    actions: list[PerformedAction] = field(default_factory=list)
    notes: str = ""
    differential: list[DifferentialItem] = field(default_factory=list)
    evaluation: str | None = None

    # Snapshot metadata
    client_timestamp: datetime | None = None
    app_version: str = UNKNOWN
    device_identifier: str = UNKNOWN

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "actions": [_action_to_wire(a) for a in self.actions],
            "notes": self.notes,
            "differential": [d.to_dict() for d in self.differential],
            "evaluation": self.evaluation,
            "clientTimestamp": to_iso(self.client_timestamp),
            "appVersion": self.app_version,
            "deviceIdentifier": self.device_identifier,
        }

    def same_content(self, other: PortableSnapshot) -> bool:
        """Compare session content, ignoring snapshot metadata."""
        return (
            self.messages == other.messages
            and self.actions == other.actions
            and self.notes == other.notes
            and self.differential == other.differential
            and self.evaluation == other.evaluation
        )


def _action_to_wire(action: PerformedAction) -> dict[str, Any]:
    data = action.to_dict()
    # reason is optional on the wire
    if data["reason"] is None:
        del data["reason"]
    return data


def pack(
    session: StudySession,
    *,
    app_version: str,
    device_id: str,
    clock: Clock = utc_now,
) -> PortableSnapshot:
    """Capture the portable part of a session.

    Lists are copied so later local edits do not leak into the snapshot.
    """
    return PortableSnapshot(
        messages=[
            ConversationMessage(sender=m.sender, content=m.content, timestamp=m.timestamp)
            for m in session.messages
        ],
        actions=[
            PerformedAction(action_name=a.action_name, timestamp=a.timestamp, reason=a.reason)
            for a in session.performed_actions
        ],
        notes=session.notes,
        differential=[
            DifferentialItem(diagnosis=d.diagnosis, confidence=d.confidence, rationale=d.rationale)
            for d in session.differential
        ],
        evaluation=session.evaluation_payload,
        client_timestamp=clock(),
        app_version=app_version,
        device_identifier=device_id,
    )


def encode_snapshot(snapshot: PortableSnapshot, session_id: str = UNKNOWN) -> str:
    """Serialize a snapshot into a history blob.

    Raises:
        SnapshotEncodeError: If the snapshot holds unserializable values
    """
    try:
        return json.dumps(snapshot.to_dict(), sort_keys=True, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SnapshotEncodeError(session_id, e) from e


def pack_blob(
    session: StudySession,
    *,
    app_version: str,
    device_id: str,
    clock: Clock = utc_now,
) -> tuple[PortableSnapshot, str]:
    """Pack and encode a session in one step."""
    snapshot = pack(session, app_version=app_version, device_id=device_id, clock=clock)
    return snapshot, encode_snapshot(snapshot, session.session_id)


def decode_snapshot(blob: str | bytes, session_id: str | None = None) -> PortableSnapshot:
    """Parse a history blob.

    Args:
        blob: Serialized snapshot
        session_id: Only used to enrich error messages

    Raises:
        SnapshotDecodeError: If the payload is structurally corrupt
    """
    try:
        data = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise SnapshotDecodeError(f"invalid JSON ({e})", session_id) from e

    if not isinstance(data, dict):
        raise SnapshotDecodeError("payload is not an object", session_id)

    try:
        messages = [_decode_message(item) for item in _list_field(data, "messages")]
        actions = [_decode_action(item) for item in _list_field(data, "actions")]
        differential = [_decode_differential(item) for item in _list_field(data, "differential")]
        notes = _optional_str(data, "notes", "")
        evaluation = _optional_str(data, "evaluation", None)
        client_ts_raw = data.get("clientTimestamp")
        client_timestamp = parse_timestamp(client_ts_raw) if client_ts_raw is not None else None
        app_version = _optional_str(data, "appVersion", UNKNOWN)
        device_identifier = _optional_str(data, "deviceIdentifier", UNKNOWN)
    except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
        raise SnapshotDecodeError(str(e), session_id) from e

    return PortableSnapshot(
        messages=messages,
        actions=actions,
        notes=notes,
        differential=differential,
        evaluation=evaluation,
        client_timestamp=client_timestamp,
        app_version=app_version,
        device_identifier=device_identifier,
    )


# Short alias matching pack()
unpack = decode_snapshot


def _list_field(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"'{key}' must be a list")
    return value


def _optional_str(data: dict[str, Any], key: str, default: str | None) -> str | None:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string")
    return value


def _require_str(item: dict[str, Any], key: str) -> str:
    if key not in item:
        raise KeyError(f"missing '{key}'")
    value = item[key]
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string")
    return value


def _require_object(item: Any, kind: str) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise TypeError(f"{kind} entry must be an object")
    return item


def _decode_message(item: Any) -> ConversationMessage:
    item = _require_object(item, "message")
    if "timestamp" not in item:
        raise KeyError("missing 'timestamp'")
    return ConversationMessage(
        sender=_require_str(item, "sender"),
        content=_require_str(item, "content"),
        timestamp=parse_timestamp(item["timestamp"]),
    )


def _decode_action(item: Any) -> PerformedAction:
    item = _require_object(item, "action")
    if "timestamp" not in item:
        raise KeyError("missing 'timestamp'")
    return PerformedAction(
        action_name=_require_str(item, "actionName"),
        timestamp=parse_timestamp(item["timestamp"]),
        reason=_optional_str(item, "reason", None),
    )


def _decode_differential(item: Any) -> DifferentialItem:
    item = _require_object(item, "differential")
    confidence = item.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise TypeError("'confidence' must be a number")
    return DifferentialItem(
        diagnosis=_require_str(item, "diagnosis"),
        confidence=float(confidence),
        rationale=_optional_str(item, "rationale", "") or "",
    )
