"""In-process store adapters.

Used for local development (STORAGE_BACKEND=memory) and throughout the test
suite. Every mutation runs under a lock so concurrent requests behave the way
the Firestore adapters do.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable

from discovery_engine.models import (
    CandidateProfile,
    Coordinates,
    DiscoveryFilters,
    DiscoverySession,
    SwipeAction,
    SwipeRecord,
    utcnow,
)
from discovery_engine.stores.base import (
    RelationshipRegistry,
    SessionStore,
    SwipeLog,
    UserDirectory,
)
from discovery_engine.utils.errors import NotFoundError


def _same(left: str | None, right: str | None) -> bool:
    return bool(left) and bool(right) and left.strip().casefold() == right.strip().casefold()


def matches_hard_filters(profile: CandidateProfile, filters: DiscoveryFilters) -> bool:
    """Apply the directory-side hard filters to a single profile."""

    if filters.gender and not _same(profile.gender, filters.gender):
        return False
    if filters.min_age is not None and (profile.age is None or profile.age < filters.min_age):
        return False
    if filters.max_age is not None and (profile.age is None or profile.age > filters.max_age):
        return False
    if filters.city and not _same(profile.city, filters.city):
        return False
    if filters.only_verified and not profile.is_verified:
        return False
    if filters.min_trust_score is not None and profile.trust_score < filters.min_trust_score:
        return False
    return True


class InMemoryUserDirectory(UserDirectory):
    """Profiles kept in insertion order, which is also the query order."""

    def __init__(self, profiles: Iterable[CandidateProfile] = ()):
        self._profiles: dict[str, CandidateProfile] = {}
        for profile in profiles:
            self.add(profile)

    def add(self, profile: CandidateProfile) -> None:
        self._profiles[profile.id] = profile

    def get(self, user_id: str) -> CandidateProfile:
        try:
            return self._profiles[user_id]
        except KeyError:
            raise NotFoundError(f"User not found: {user_id}") from None

    def exists(self, user_id: str) -> bool:
        return user_id in self._profiles

    def query(
        self,
        filters: DiscoveryFilters,
        exclude_ids: set[str],
        limit: int,
    ) -> list[CandidateProfile]:
        results: list[CandidateProfile] = []
        for profile in self._profiles.values():
            if len(results) >= limit:
                break
            if profile.id in exclude_ids:
                continue
            if matches_hard_filters(profile, filters):
                results.append(profile)
        return results


class InMemoryRelationshipRegistry(RelationshipRegistry):
    def __init__(self):
        self._relationships: list[tuple[str, str, str]] = []

    def add_relationship(
        self, initiator_id: str, receiver_id: str, status: str = "PENDING"
    ) -> None:
        self._relationships.append((initiator_id, receiver_id, status))

    def list_related(self, user_id: str) -> set[str]:
        related: set[str] = set()
        for initiator_id, receiver_id, _status in self._relationships:
            if initiator_id == user_id:
                related.add(receiver_id)
            elif receiver_id == user_id:
                related.add(initiator_id)
        return related


class InMemorySessionStore(SessionStore):
    """Session arena guarded by one lock per session."""

    def __init__(self):
        self._sessions: dict[str, DiscoverySession] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            if session_id not in self._sessions:
                raise NotFoundError(f"Discovery session not found: {session_id}")
            return self._locks[session_id]

    def _update(self, session_id: str, **changes) -> DiscoverySession:
        with self._lock_for(session_id):
            current = self._sessions[session_id]
            updates = {"updated_at": utcnow()}
            for field, value in changes.items():
                updates[field] = value(current) if callable(value) else value
            updated = current.model_copy(update=updates)
            self._sessions[session_id] = updated
            return updated.model_copy(deep=True)

    def create(
        self,
        owner_id: str,
        filters: DiscoveryFilters,
        origin: Coordinates | None = None,
    ) -> DiscoverySession:
        session = DiscoverySession(
            owner_user_id=owner_id,
            filters=filters.model_copy(deep=True),
            origin=origin,
        )
        with self._registry_lock:
            self._sessions[session.id] = session
            self._locks[session.id] = threading.Lock()
        return session.model_copy(deep=True)

    def get(self, session_id: str) -> DiscoverySession:
        with self._lock_for(session_id):
            return self._sessions[session_id].model_copy(deep=True)

    def append_shown(self, session_id: str, new_ids: Iterable[str]) -> DiscoverySession:
        new_ids = set(new_ids)
        return self._update(
            session_id,
            shown_candidate_ids=lambda s: s.shown_candidate_ids | new_ids,
            total_shown=lambda s: s.total_shown + len(new_ids),
        )

    def increment_skips(self, session_id: str) -> None:
        self._update(session_id, total_skips=lambda s: s.total_skips + 1)

    def increment_interested(self, session_id: str) -> None:
        self._update(session_id, total_interested=lambda s: s.total_interested + 1)


class InMemorySwipeLog(SwipeLog):
    """Per-swiper append-only lists behind a single log lock."""

    def __init__(self):
        self._records: dict[str, list[SwipeRecord]] = defaultdict(list)
        self._lock = threading.Lock()

    def _latest_for_pair(self, swiper_id: str, target_id: str) -> SwipeRecord | None:
        for record in reversed(self._records[swiper_id]):
            if record.target_id == target_id:
                return record
        return None

    def append_skip(
        self, swiper_id: str, target_id: str, context: str = "discover"
    ) -> SwipeRecord:
        with self._lock:
            latest = self._latest_for_pair(swiper_id, target_id)
            record = SwipeRecord(
                swiper_id=swiper_id,
                target_id=target_id,
                action=SwipeAction.SKIP,
                skip_count=(latest.skip_count if latest else 0) + 1,
                context=context,
            )
            self._records[swiper_id].append(record)
            return record

    def add_interested_if_absent(
        self, swiper_id: str, target_id: str, context: str = "discover"
    ) -> tuple[SwipeRecord, bool]:
        with self._lock:
            for record in self._records[swiper_id]:
                if record.target_id == target_id and record.action is SwipeAction.INTERESTED:
                    return record, False
            record = SwipeRecord(
                swiper_id=swiper_id,
                target_id=target_id,
                action=SwipeAction.INTERESTED,
                context=context,
            )
            self._records[swiper_id].append(record)
            return record, True

    def list_by_swiper(self, swiper_id: str) -> list[SwipeRecord]:
        with self._lock:
            return list(self._records.get(swiper_id, []))

    def mark_connection_sent(
        self, swiper_id: str, target_id: str, connection_id: str
    ) -> int:
        updated = 0
        with self._lock:
            records = self._records.get(swiper_id, [])
            for index, record in enumerate(records):
                if record.target_id == target_id and record.action is SwipeAction.INTERESTED:
                    records[index] = record.model_copy(
                        update={"connection_sent": True, "connection_id": connection_id}
                    )
                    updated += 1
        return updated
