"""Tests for the conflict resolution policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from session_sync import ConflictPolicy, DecisionReason, should_take_remote
from session_sync.policy import LocalVersion, RemoteVersion

BASE = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _at(seconds: float) -> datetime:
    return BASE + timedelta(seconds=seconds)


@pytest.fixture
def policy() -> ConflictPolicy:
    return ConflictPolicy(tolerance=5.0)


class TestConflictPolicy:
    """Tests for ConflictPolicy.decide."""

    def test_missing_server_timestamp_keeps_local(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(None, 50), LocalVersion(None, 0))

        assert decision.take_remote is False
        assert decision.reason == DecisionReason.MISSING_SERVER_TIMESTAMP

    def test_first_contact_remote_richer(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(BASE, 5), LocalVersion(None, 3))

        assert decision.take_remote is True
        assert decision.reason == DecisionReason.FIRST_CONTACT_REMOTE_RICHER

    @pytest.mark.parametrize("remote_count", [3, 2, 0])
    def test_first_contact_equal_or_poorer_keeps_local(
        self, policy: ConflictPolicy, remote_count: int
    ) -> None:
        decision = policy.decide(RemoteVersion(BASE, remote_count), LocalVersion(None, 3))

        assert decision.take_remote is False
        assert decision.reason == DecisionReason.FIRST_CONTACT_LOCAL_RICHER

    def test_first_contact_without_count_keeps_local(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(BASE, None), LocalVersion(None, 0))

        assert decision.take_remote is False
        assert decision.reason == DecisionReason.FIRST_CONTACT_NO_COUNT

    @pytest.mark.parametrize("delta", [0.0, 2.5, -4.9, 5.0, -5.0])
    def test_within_tolerance_keeps_local(self, policy: ConflictPolicy, delta: float) -> None:
        decision = policy.decide(RemoteVersion(_at(delta), 99), LocalVersion(BASE, 1))

        assert decision.take_remote is False
        assert decision.reason == DecisionReason.WITHIN_TOLERANCE
        assert decision.delta_seconds == pytest.approx(delta)

    def test_remote_newer_beyond_tolerance(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(_at(5.5), 0), LocalVersion(BASE, 10))

        assert decision.take_remote is True
        assert decision.reason == DecisionReason.REMOTE_NEWER

    def test_local_newer_keeps_local(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(_at(-60), 10), LocalVersion(BASE, 1))

        assert decision.take_remote is False
        assert decision.reason == DecisionReason.LOCAL_NEWER

    def test_message_counts_ignored_once_synced(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(_at(3), 100), LocalVersion(BASE, 1))

        assert decision.take_remote is False

    def test_force_always_takes_remote(self, policy: ConflictPolicy) -> None:
        decision = policy.decide(RemoteVersion(None, None), LocalVersion(BASE, 10), force=True)

        assert decision.take_remote is True
        assert decision.reason == DecisionReason.FORCED

    def test_custom_tolerance(self) -> None:
        strict = ConflictPolicy(tolerance=0.0)

        decision = strict.decide(RemoteVersion(_at(1), 0), LocalVersion(BASE, 0))

        assert decision.take_remote is True

    def test_negative_tolerance_rejected(self) -> None:
        with pytest.raises(ValueError):
            ConflictPolicy(tolerance=-1.0)


class TestShouldTakeRemote:
    def test_matches_policy(self) -> None:
        assert should_take_remote(_at(10), 3, BASE, 3) is True
        assert should_take_remote(_at(4), 3, BASE, 3) is False
        assert should_take_remote(BASE, 4, None, 3) is True
        assert should_take_remote(None, 4, None, 3) is False
