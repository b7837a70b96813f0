"""
Unit tests for the in-memory store adapters.

Covers the concurrency guarantees the discovery flow relies on:
  - Concurrent append_shown calls never lose ids
  - Concurrent INTERESTED swipes never create two records
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from discovery_engine.models import DiscoveryFilters, SwipeAction
from discovery_engine.utils.errors import NotFoundError


class TestSessionStore:
    def test_create_starts_empty(self, sessions):
        session = sessions.create("owner", DiscoveryFilters(limit=5))
        assert session.owner_user_id == "owner"
        assert session.shown_candidate_ids == set()
        assert (session.total_shown, session.total_skips, session.total_interested) == (0, 0, 0)
        assert session.filters.limit == 5

    def test_append_shown_unions_and_counts(self, sessions):
        session = sessions.create("owner", DiscoveryFilters())
        sessions.append_shown(session.id, ["a", "b"])
        updated = sessions.append_shown(session.id, ["b", "c"])
        assert updated.shown_candidate_ids == {"a", "b", "c"}
        # Counter is advisory and counts per batch.
        assert updated.total_shown == 4

    def test_get_unknown_session(self, sessions):
        with pytest.raises(NotFoundError):
            sessions.get("missing")

    def test_append_unknown_session(self, sessions):
        with pytest.raises(NotFoundError):
            sessions.append_shown("missing", ["a"])

    def test_counters(self, sessions):
        session = sessions.create("owner", DiscoveryFilters())
        sessions.increment_skips(session.id)
        sessions.increment_skips(session.id)
        sessions.increment_interested(session.id)
        stored = sessions.get(session.id)
        assert stored.total_skips == 2
        assert stored.total_interested == 1

    def test_returned_session_is_a_copy(self, sessions):
        session = sessions.create("owner", DiscoveryFilters())
        snapshot = sessions.append_shown(session.id, ["a"])
        snapshot.shown_candidate_ids.add("intruder")
        assert sessions.get(session.id).shown_candidate_ids == {"a"}

    def test_concurrent_append_loses_nothing(self, sessions):
        """N concurrent appends of disjoint sets keep every id."""
        session = sessions.create("owner", DiscoveryFilters())
        chunks = [[f"user-{n}-{i}" for i in range(10)] for n in range(50)]

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(lambda ids: sessions.append_shown(session.id, ids), chunks))

        stored = sessions.get(session.id)
        assert len(stored.shown_candidate_ids) == sum(len(c) for c in chunks)
        assert stored.total_shown == 500

    def test_concurrent_counters(self, sessions):
        session = sessions.create("owner", DiscoveryFilters())
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: sessions.increment_skips(session.id), range(100)))
        assert sessions.get(session.id).total_skips == 100


class TestSwipeLog:
    def test_skip_counts_increment(self, swipes):
        counts = [swipes.append_skip("me", "target").skip_count for _ in range(4)]
        assert counts == [1, 2, 3, 4]
        assert len(swipes.list_by_swiper("me")) == 4

    def test_skip_counts_are_per_pair(self, swipes):
        swipes.append_skip("me", "a")
        assert swipes.append_skip("me", "b").skip_count == 1
        assert swipes.append_skip("other", "a").skip_count == 1

    def test_skip_after_interested_continues_from_zero(self, swipes):
        swipes.append_skip("me", "a")
        swipes.add_interested_if_absent("me", "a")
        assert swipes.append_skip("me", "a").skip_count == 1

    def test_interested_is_idempotent(self, swipes):
        first, created = swipes.add_interested_if_absent("me", "a")
        second, created_again = swipes.add_interested_if_absent("me", "a")
        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert len(swipes.list_by_swiper("me")) == 1

    def test_concurrent_interested_creates_one_record(self, swipes):
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(
                pool.map(lambda _: swipes.add_interested_if_absent("me", "a"), range(50))
            )
        assert sum(1 for _, created in results if created) == 1
        records = [
            r for r in swipes.list_by_swiper("me") if r.action is SwipeAction.INTERESTED
        ]
        assert len(records) == 1

    def test_mark_connection_sent(self, swipes):
        swipes.add_interested_if_absent("me", "a")
        assert swipes.mark_connection_sent("me", "a", "conn-1") == 1
        (record,) = swipes.list_by_swiper("me")
        assert record.connection_sent is True
        assert record.connection_id == "conn-1"

    def test_mark_connection_sent_without_record(self, swipes):
        swipes.append_skip("me", "a")
        assert swipes.mark_connection_sent("me", "a", "conn-1") == 0
        assert swipes.mark_connection_sent("me", "nobody", "conn-2") == 0


class TestUserDirectory:
    @pytest.fixture
    def populated(self, directory, make_profile):
        directory.add(make_profile("young", age=19, gender="female", city="Penang", trust_score=10))
        directory.add(make_profile("mid", age=30, gender="Male", city="Kuala Lumpur", is_verified=True, trust_score=80))
        directory.add(make_profile("old", age=60, gender="female", city="Kuala Lumpur", trust_score=50))
        directory.add(make_profile("ageless", gender="female"))
        return directory

    def test_get_and_exists(self, populated):
        assert populated.get("mid").age == 30
        assert populated.exists("mid")
        assert not populated.exists("ghost")
        with pytest.raises(NotFoundError):
            populated.get("ghost")

    def test_query_keeps_insertion_order(self, populated):
        ids = [p.id for p in populated.query(DiscoveryFilters(), set(), 10)]
        assert ids == ["young", "mid", "old", "ageless"]

    def test_query_respects_limit_and_exclusions(self, populated):
        ids = [p.id for p in populated.query(DiscoveryFilters(), {"young"}, 2)]
        assert ids == ["mid", "old"]

    def test_age_range_skips_unknown_ages(self, populated):
        filters = DiscoveryFilters(min_age=25, max_age=65)
        assert [p.id for p in populated.query(filters, set(), 10)] == ["mid", "old"]

    def test_gender_and_city_are_case_insensitive(self, populated):
        filters = DiscoveryFilters(gender="male", city="kuala lumpur")
        assert [p.id for p in populated.query(filters, set(), 10)] == ["mid"]

    def test_verified_and_trust(self, populated):
        assert [p.id for p in populated.query(DiscoveryFilters(only_verified=True), set(), 10)] == ["mid"]
        filters = DiscoveryFilters(min_trust_score=50)
        assert [p.id for p in populated.query(filters, set(), 10)] == ["mid", "old"]


class TestRelationshipRegistry:
    def test_both_directions_any_status(self, relationships):
        relationships.add_relationship("me", "sent", "PENDING")
        relationships.add_relationship("received", "me", "PENDING")
        relationships.add_relationship("friend", "me", "ACCEPTED")
        relationships.add_relationship("x", "y", "ACCEPTED")
        assert relationships.list_related("me") == {"sent", "received", "friend"}
