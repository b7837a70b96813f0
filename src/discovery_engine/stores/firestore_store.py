"""Firestore-backed store adapters.

These classes centralize collection layout, error handling, and logging so the
discovery graph and swipe service stay focused on their rules. Multi-field
filtering is done in memory to avoid requiring composite indexes.
"""

from __future__ import annotations

import os
from collections.abc import Iterable

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

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
from discovery_engine.stores.memory import matches_hard_filters
from discovery_engine.utils.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    StoreUnavailableError,
)
from discovery_engine.utils.logging_config import logger
from discovery_engine.utils.retry import exponential_backoff

PROFILES = "profiles"
CONNECTIONS = "connections"
SESSIONS = "discovery_sessions"
SWIPES = "swipes"

RELATIONSHIP_STATUSES = ("accepted", "pending", "blocked")

_db: firestore.Client | None = None


def get_db() -> firestore.Client:
    """Get a Firestore client, initializing Firebase lazily."""
    global _db

    if _db is not None:
        return _db

    try:
        if not firebase_admin._apps:
            cred_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
            if not cred_path:
                raise RuntimeError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not set"
                )

            cred = credentials.Certificate(cred_path)
            firebase_admin.initialize_app(cred)

        _db = firestore.client()
        return _db

    except Exception as exc:
        logger.error("Failed to initialize Firestore: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc


def _profile_from_doc(doc_id: str, data: dict) -> CandidateProfile:
    """Normalize legacy profile fields expected by the scorer."""

    merged = {"id": doc_id, **data}
    if "coordinates" not in merged and merged.get("locationLat") is not None:
        merged["coordinates"] = {
            "latitude": merged.get("locationLat"),
            "longitude": merged.get("locationLng"),
        }
    if "fullName" not in merged and merged.get("displayName"):
        merged["fullName"] = merged.get("displayName")
    return CandidateProfile.model_validate(merged)


def _record_to_doc(record: SwipeRecord) -> dict:
    data = record.model_dump(by_alias=True, exclude={"id"})
    data["action"] = record.action.value
    return data


def _record_from_doc(doc) -> SwipeRecord:
    return SwipeRecord.model_validate({**(doc.to_dict() or {}), "id": doc.id})


class FirestoreUserDirectory(UserDirectory):
    def __init__(self, db: firestore.Client | None = None, scan_limit: int = 1000):
        self._db = db
        self.scan_limit = scan_limit

    @property
    def db(self) -> firestore.Client:
        return self._db or get_db()

    def get(self, user_id: str) -> CandidateProfile:
        try:
            doc = self.db.collection(PROFILES).document(user_id).get()
            profile = (
                _profile_from_doc(doc.id, doc.to_dict() or {}) if doc.exists else None
            )
        except Exception as exc:
            logger.error("Failed to fetch user profile: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

        if profile is None:
            raise NotFoundError(f"User not found: {user_id}")
        return profile

    def exists(self, user_id: str) -> bool:
        try:
            return self.db.collection(PROFILES).document(user_id).get().exists
        except Exception as exc:
            logger.error("Failed to validate user exists: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def query(
        self,
        filters: DiscoveryFilters,
        exclude_ids: set[str],
        limit: int,
    ) -> list[CandidateProfile]:
        """Stream profiles in document-id order and filter them in memory."""

        try:
            query = self.db.collection(PROFILES)
            if filters.only_verified:
                query = query.where("isVerified", "==", True)
            query = query.limit(self.scan_limit)

            results: list[CandidateProfile] = []
            for doc in query.stream():
                if doc.id in exclude_ids:
                    continue
                profile = _profile_from_doc(doc.id, doc.to_dict() or {})
                if matches_hard_filters(profile, filters):
                    results.append(profile)
                    if len(results) >= limit:
                        break
            return results
        except Exception as exc:
            logger.error("Failed to query profiles: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc


class FirestoreRelationshipRegistry(RelationshipRegistry):
    """Reads connections/{user_id} documents holding per-status id lists."""

    def __init__(self, db: firestore.Client | None = None):
        self._db = db

    def list_related(self, user_id: str) -> set[str]:
        try:
            db = self._db or get_db()
            doc = db.collection(CONNECTIONS).document(user_id).get()
            if not doc.exists:
                return set()

            data = doc.to_dict() or {}
            related: set[str] = set()
            for status in RELATIONSHIP_STATUSES:
                related.update(data.get(status, []))
            return related
        except Exception as exc:
            logger.error("Failed to fetch connections: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc


class FirestoreSessionStore(SessionStore):
    """Sessions updated with server-side ArrayUnion/Increment transforms."""

    def __init__(self, db: firestore.Client | None = None, max_retries: int = 3):
        self._db = db
        self.max_retries = max_retries

    def _ref(self, session_id: str):
        return (self._db or get_db()).collection(SESSIONS).document(session_id)

    def _update_once(self, session_id: str, changes: dict) -> None:
        try:
            self._ref(session_id).update(changes)
        except google_exceptions.NotFound as exc:
            raise NotFoundError(f"Discovery session not found: {session_id}") from exc
        except (google_exceptions.Aborted, google_exceptions.Conflict) as exc:
            raise ConcurrencyConflictError(str(exc)) from exc
        except Exception as exc:
            logger.error("Failed to update session: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def _apply(self, session_id: str, changes: dict) -> None:
        changes["updatedAt"] = utcnow()
        update = exponential_backoff(max_retries=self.max_retries)(self._update_once)
        update(session_id, changes)

    def create(
        self,
        owner_id: str,
        filters: DiscoveryFilters,
        origin: Coordinates | None = None,
    ) -> DiscoverySession:
        session = DiscoverySession(owner_user_id=owner_id, filters=filters, origin=origin)
        data = session.model_dump(by_alias=True, exclude={"id"})
        data["shownCandidateIds"] = []
        try:
            self._ref(session.id).set(data)
        except Exception as exc:
            logger.error("Failed to create session: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc
        return session

    def get(self, session_id: str) -> DiscoverySession:
        try:
            doc = self._ref(session_id).get()
        except Exception as exc:
            logger.error("Failed to fetch session: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

        if not doc.exists:
            raise NotFoundError(f"Discovery session not found: {session_id}")
        return DiscoverySession.model_validate({**(doc.to_dict() or {}), "id": doc.id})

    def append_shown(self, session_id: str, new_ids: Iterable[str]) -> DiscoverySession:
        new_ids = sorted(set(new_ids))
        changes: dict = {"totalShown": firestore.Increment(len(new_ids))}
        if new_ids:
            changes["shownCandidateIds"] = firestore.ArrayUnion(new_ids)
        self._apply(session_id, changes)
        return self.get(session_id)

    def increment_skips(self, session_id: str) -> None:
        self._apply(session_id, {"totalSkips": firestore.Increment(1)})

    def increment_interested(self, session_id: str) -> None:
        self._apply(session_id, {"totalInterested": firestore.Increment(1)})


class FirestoreSwipeLog(SwipeLog):
    """Swipe documents; the INTERESTED record uses a deterministic id."""

    def __init__(self, db: firestore.Client | None = None):
        self._db = db

    @property
    def db(self) -> firestore.Client:
        return self._db or get_db()

    @staticmethod
    def interested_doc_id(swiper_id: str, target_id: str) -> str:
        return f"{swiper_id}__{target_id}__interested"

    def _pair_query(self, swiper_id: str, target_id: str):
        return (
            self.db.collection(SWIPES)
            .where("swiperId", "==", swiper_id)
            .where("targetId", "==", target_id)
        )

    def append_skip(
        self, swiper_id: str, target_id: str, context: str = "discover"
    ) -> SwipeRecord:
        pair_query = self._pair_query(swiper_id, target_id)
        collection = self.db.collection(SWIPES)

        @firestore.transactional
        def _append(transaction) -> SwipeRecord:
            existing = [
                _record_from_doc(doc) for doc in pair_query.stream(transaction=transaction)
            ]
            latest = max(existing, key=lambda r: r.created_at, default=None)
            record = SwipeRecord(
                swiper_id=swiper_id,
                target_id=target_id,
                action=SwipeAction.SKIP,
                skip_count=(latest.skip_count if latest else 0) + 1,
                context=context,
            )
            transaction.set(collection.document(record.id), _record_to_doc(record))
            return record

        try:
            return _append(self.db.transaction())
        except Exception as exc:
            logger.error("Failed to record skip: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def add_interested_if_absent(
        self, swiper_id: str, target_id: str, context: str = "discover"
    ) -> tuple[SwipeRecord, bool]:
        doc_id = self.interested_doc_id(swiper_id, target_id)
        ref = self.db.collection(SWIPES).document(doc_id)
        record = SwipeRecord(
            id=doc_id,
            swiper_id=swiper_id,
            target_id=target_id,
            action=SwipeAction.INTERESTED,
            context=context,
        )
        try:
            ref.create(_record_to_doc(record))
            return record, True
        except google_exceptions.AlreadyExists:
            return _record_from_doc(ref.get()), False
        except Exception as exc:
            logger.error("Failed to record interest: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def list_by_swiper(self, swiper_id: str) -> list[SwipeRecord]:
        try:
            query = self.db.collection(SWIPES).where("swiperId", "==", swiper_id)
            records = [_record_from_doc(doc) for doc in query.stream()]
        except Exception as exc:
            logger.error("Failed to fetch swipes: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc
        # Sorted in memory to avoid a composite index on (swiperId, createdAt).
        return sorted(records, key=lambda r: r.created_at)

    def mark_connection_sent(
        self, swiper_id: str, target_id: str, connection_id: str
    ) -> int:
        ref = self.db.collection(SWIPES).document(
            self.interested_doc_id(swiper_id, target_id)
        )
        try:
            ref.update({"connectionSent": True, "connectionId": connection_id})
            return 1
        except google_exceptions.NotFound:
            return 0
        except Exception as exc:
            logger.error("Failed to mark connection sent: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc
