"""Unit tests for exclusion resolution."""

from datetime import datetime, timedelta, timezone

from discovery_engine.models import DiscoverySession, SwipeAction, SwipeRecord
from discovery_engine.tools.exclusion_tools import (
    latest_skip_counts,
    resolve_exclusions,
    skip_threshold_ids,
)

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _swipe(target, action, skip_count=0, minutes=0):
    return SwipeRecord(
        swiper_id="me",
        target_id=target,
        action=action,
        skip_count=skip_count,
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestLatestSkipCounts:
    def test_uses_most_recent_skip(self):
        history = [
            _swipe("a", SwipeAction.SKIP, 1, minutes=1),
            _swipe("a", SwipeAction.SKIP, 2, minutes=2),
            _swipe("b", SwipeAction.SKIP, 1, minutes=3),
        ]
        assert latest_skip_counts(history) == {"a": 2, "b": 1}

    def test_ignores_interested_records(self):
        history = [_swipe("a", SwipeAction.INTERESTED)]
        assert latest_skip_counts(history) == {}

    def test_equal_timestamps_prefer_later_entry(self):
        history = [
            _swipe("a", SwipeAction.SKIP, 3),
            _swipe("a", SwipeAction.SKIP, 1),
        ]
        assert latest_skip_counts(history) == {"a": 1}


class TestSkipThreshold:
    def test_threshold_reached(self):
        history = [_swipe("a", SwipeAction.SKIP, n, minutes=n) for n in (1, 2, 3)]
        assert skip_threshold_ids(history) == {"a"}

    def test_below_threshold(self):
        history = [_swipe("a", SwipeAction.SKIP, n, minutes=n) for n in (1, 2)]
        assert skip_threshold_ids(history) == set()

    def test_custom_threshold(self):
        history = [_swipe("a", SwipeAction.SKIP, 1)]
        assert skip_threshold_ids(history, threshold=1) == {"a"}


class TestResolveExclusions:
    def test_always_excludes_requester(self):
        assert resolve_exclusions("me", [], []) == {"me"}

    def test_union_of_all_sources(self):
        history = [_swipe("skipped", SwipeAction.SKIP, 3)]
        session = DiscoverySession(owner_user_id="me", shown_candidate_ids={"shown"})
        excluded = resolve_exclusions("me", history, {"friend", "pending"}, session)
        assert excluded == {"me", "friend", "pending", "skipped", "shown"}

    def test_no_session_means_no_shown_ids(self):
        history = [_swipe("once", SwipeAction.SKIP, 1)]
        assert resolve_exclusions("me", history, [], None) == {"me"}
