"""
Conflict resolution policy.

Decides, per session, whether a remote record should replace the local
copy. Resolution is last-writer-wins at session granularity, ordered only by
the server-assigned timestamp, never by comparing two clients' clocks.

The policy is biased toward keeping the local copy: ties, missing ordering
signals and anything inside the tolerance window all keep local.

Known limitation: on first contact (the local copy was never synced) the
decision falls back to comparing message counts, which can pick the wrong
side when a device has more messages but an older state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .config import DEFAULT_CONFLICT_TOLERANCE


class DecisionReason(Enum):
    """Why the policy decided the way it did."""

    MISSING_SERVER_TIMESTAMP = "missing_server_timestamp"
    FIRST_CONTACT_REMOTE_RICHER = "first_contact_remote_richer"
    FIRST_CONTACT_LOCAL_RICHER = "first_contact_local_richer"
    FIRST_CONTACT_NO_COUNT = "first_contact_no_count"
    WITHIN_TOLERANCE = "within_tolerance"
    REMOTE_NEWER = "remote_newer"
    LOCAL_NEWER = "local_newer"
    FORCED = "forced"


@dataclass(frozen=True)
class RemoteVersion:
    """Ordering inputs taken from a remote record."""

    server_updated_at: datetime | None
    message_count: int | None


@dataclass(frozen=True)
class LocalVersion:
    """Ordering inputs taken from the local aggregate."""

    cloud_last_updated: datetime | None
    message_count: int


@dataclass(frozen=True)
class ConflictDecision:
    """Outcome of the policy."""

    take_remote: bool
    reason: DecisionReason
    delta_seconds: float | None = None


class ConflictPolicy:
    """Last-writer-wins by server timestamp with a tie tolerance window."""

    def __init__(self, tolerance: float = DEFAULT_CONFLICT_TOLERANCE):
        """Initialize the policy.

        Args:
            tolerance: Seconds within which two server timestamps count as equal
        """
        if tolerance < 0:
            raise ValueError("tolerance must not be negative")
        self.tolerance = tolerance

    def decide(
        self,
        remote: RemoteVersion,
        local: LocalVersion,
        force: bool = False,
    ) -> ConflictDecision:
        """Decide between keeping the local copy and taking the remote one.

        Args:
            remote: Remote ordering inputs
            local: Local ordering inputs
            force: Explicit user refresh, adopt remote unconditionally

        Returns:
            ConflictDecision
        """
        if force:
            return ConflictDecision(take_remote=True, reason=DecisionReason.FORCED)

        if remote.server_updated_at is None:
            return ConflictDecision(
                take_remote=False, reason=DecisionReason.MISSING_SERVER_TIMESTAMP
            )

        if local.cloud_last_updated is None:
            if remote.message_count is None:
                return ConflictDecision(
                    take_remote=False, reason=DecisionReason.FIRST_CONTACT_NO_COUNT
                )
            if remote.message_count > local.message_count:
                return ConflictDecision(
                    take_remote=True, reason=DecisionReason.FIRST_CONTACT_REMOTE_RICHER
                )
            return ConflictDecision(
                take_remote=False, reason=DecisionReason.FIRST_CONTACT_LOCAL_RICHER
            )

        delta = (remote.server_updated_at - local.cloud_last_updated).total_seconds()

        if abs(delta) <= self.tolerance:
            return ConflictDecision(
                take_remote=False, reason=DecisionReason.WITHIN_TOLERANCE, delta_seconds=delta
            )
        if delta > self.tolerance:
            return ConflictDecision(
                take_remote=True, reason=DecisionReason.REMOTE_NEWER, delta_seconds=delta
            )
        return ConflictDecision(
            take_remote=False, reason=DecisionReason.LOCAL_NEWER, delta_seconds=delta
        )


def should_take_remote(
    remote_updated_at: datetime | None,
    remote_message_count: int | None,
    local_cloud_last_updated: datetime | None,
    local_message_count: int,
    tolerance: float = DEFAULT_CONFLICT_TOLERANCE,
) -> bool:
    """Pure decision function: True means the remote copy wins."""
    decision = ConflictPolicy(tolerance).decide(
        RemoteVersion(remote_updated_at, remote_message_count),
        LocalVersion(local_cloud_last_updated, local_message_count),
    )
    return decision.take_remote
