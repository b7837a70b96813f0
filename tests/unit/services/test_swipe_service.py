"""
Unit tests for SwipeService.

Covers the skip tally messages, INTERESTED idempotency, session counter
updates, connection-sent reconciliation, and statistics.
"""

from unittest.mock import MagicMock

import pytest
from discovery_engine.models import DiscoveryFilters, SwipeAction
from discovery_engine.services.swipes import SwipeService, parse_action
from discovery_engine.utils.errors import (
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)


@pytest.fixture
def service(directory, swipes, sessions, settings, make_profile):
    for user_id in ("me", "a", "b", "c"):
        directory.add(make_profile(user_id))
    return SwipeService(directory, swipes, sessions, settings)


class TestParseAction:
    def test_accepts_enum_and_string(self):
        assert parse_action("SKIP") is SwipeAction.SKIP
        assert parse_action(SwipeAction.INTERESTED) is SwipeAction.INTERESTED

    @pytest.mark.parametrize("action", ["skip", "LIKE", ""])
    def test_rejects_unknown(self, action):
        with pytest.raises(InvalidInputError):
            parse_action(action)


class TestRecordSwipe:
    def test_skip_messages_follow_tally(self, service):
        messages = [service.record_swipe("me", "a", "SKIP").message for _ in range(4)]
        assert messages == [
            "Skipped (1/3)",
            "Skipped (2/3)",
            "User will not be shown again",
            "User will not be shown again",
        ]

    def test_skip_result_carries_count(self, service):
        service.record_swipe("me", "a", "SKIP")
        result = service.record_swipe("me", "a", "SKIP")
        assert result.action is SwipeAction.SKIP
        assert result.skip_count == 2
        assert result.already_swiped is False

    def test_interested_once(self, service, swipes):
        first = service.record_swipe("me", "a", "INTERESTED")
        second = service.record_swipe("me", "a", "INTERESTED")

        assert first.already_swiped is False
        assert first.message == "Interest recorded. Send a connection request to connect!"
        assert second.already_swiped is True
        assert second.message == "Already expressed interest in this user"
        assert len(swipes.list_by_swiper("me")) == 1

    def test_self_swipe_rejected(self, service):
        with pytest.raises(InvalidInputError):
            service.record_swipe("me", "me", "INTERESTED")

    def test_unknown_target(self, service):
        with pytest.raises(NotFoundError):
            service.record_swipe("me", "ghost", "SKIP")

    def test_invalid_action_writes_nothing(self, service, swipes):
        with pytest.raises(InvalidInputError):
            service.record_swipe("me", "a", "MAYBE")
        assert swipes.list_by_swiper("me") == []


class TestSessionCounters:
    def test_counters_follow_swipes(self, service, sessions):
        session = sessions.create("me", DiscoveryFilters())

        service.record_swipe("me", "a", "SKIP", session_id=session.id)
        service.record_swipe("me", "b", "INTERESTED", session_id=session.id)
        service.record_swipe("me", "b", "INTERESTED", session_id=session.id)

        stored = sessions.get(session.id)
        assert stored.total_skips == 1
        # The repeated INTERESTED is not counted.
        assert stored.total_interested == 1

    def test_unknown_session_does_not_fail_swipe(self, service, swipes):
        result = service.record_swipe("me", "a", "SKIP", session_id="missing")
        assert result.skip_count == 1
        assert len(swipes.list_by_swiper("me")) == 1

    def test_unavailable_session_store_does_not_fail_swipe(
        self, directory, swipes, settings, make_profile
    ):
        directory.add(make_profile("a"))
        sessions = MagicMock()
        sessions.increment_interested.side_effect = StoreUnavailableError("down")
        service = SwipeService(directory, swipes, sessions, settings)

        result = service.record_swipe("me", "a", "INTERESTED", session_id="s1")

        assert result.already_swiped is False
        sessions.increment_interested.assert_called_once_with("s1")


class TestConnectionSent:
    def test_marks_interested_record(self, service, swipes):
        service.record_swipe("me", "a", "INTERESTED")
        assert service.mark_connection_sent("me", "a", "conn-1") == 1
        (record,) = swipes.list_by_swiper("me")
        assert record.connection_sent is True

    def test_no_record_is_silent(self, service):
        assert service.mark_connection_sent("me", "a", "conn-1") == 0


class TestSwipeStats:
    def test_stats_aggregate(self, service):
        service.record_swipe("me", "a", "SKIP")
        service.record_swipe("me", "a", "SKIP")
        service.record_swipe("me", "b", "INTERESTED")
        service.record_swipe("me", "c", "INTERESTED")
        service.mark_connection_sent("me", "b", "conn-1")

        stats = service.get_swipe_stats("me")

        assert stats.total_swipes == 4
        assert stats.skipped == 2
        assert stats.interested == 2
        assert stats.connections_sent == 1
        assert stats.pending_interests == 1

    def test_stats_for_new_user(self, service):
        stats = service.get_swipe_stats("a")
        assert stats.total_swipes == 0
        assert stats.pending_interests == 0

    def test_stats_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.get_swipe_stats("ghost")
