"""Collaborator interfaces the discovery engine depends on.

Concrete adapters live in ``stores.memory`` (local runs, tests) and
``stores.firestore_store`` (production).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from discovery_engine.models import (
    CandidateProfile,
    Coordinates,
    DiscoveryFilters,
    DiscoverySession,
    SwipeRecord,
)


class UserDirectory(ABC):
    """Read-only source of candidate profiles."""

    @abstractmethod
    def get(self, user_id: str) -> CandidateProfile:
        """Return the profile or raise NotFoundError."""

    @abstractmethod
    def exists(self, user_id: str) -> bool:
        """Quick existence check used in input validation."""

    @abstractmethod
    def query(
        self,
        filters: DiscoveryFilters,
        exclude_ids: set[str],
        limit: int,
    ) -> list[CandidateProfile]:
        """Return up to ``limit`` profiles matching the hard filters.

        Hard filters: age range, gender, city, verified-only, min trust score.
        Ids in ``exclude_ids`` must never be returned. Result order must be
        stable for identical inputs; ranking ties fall back to it.
        """


class RelationshipRegistry(ABC):
    @abstractmethod
    def list_related(self, user_id: str) -> set[str]:
        """Counterparts of every relationship (any status, either direction)."""


class SessionStore(ABC):
    """Discovery sessions. All mutations must be atomic per session."""

    @abstractmethod
    def create(
        self,
        owner_id: str,
        filters: DiscoveryFilters,
        origin: Coordinates | None = None,
    ) -> DiscoverySession:
        """Create an empty session with zeroed counters."""

    @abstractmethod
    def get(self, session_id: str) -> DiscoverySession:
        """Return the session or raise NotFoundError."""

    @abstractmethod
    def append_shown(self, session_id: str, new_ids: Iterable[str]) -> DiscoverySession:
        """Union ``new_ids`` into the shown set and bump ``total_shown``."""

    @abstractmethod
    def increment_skips(self, session_id: str) -> None:
        ...

    @abstractmethod
    def increment_interested(self, session_id: str) -> None:
        ...


class SwipeLog(ABC):
    """Append-only log of swipe records."""

    @abstractmethod
    def append_skip(
        self, swiper_id: str, target_id: str, context: str = "discover"
    ) -> SwipeRecord:
        """Append a SKIP whose skip count continues the pair's latest record."""

    @abstractmethod
    def add_interested_if_absent(
        self, swiper_id: str, target_id: str, context: str = "discover"
    ) -> tuple[SwipeRecord, bool]:
        """Atomically create the pair's INTERESTED record.

        Returns the stored record and whether it was created by this call.
        """

    @abstractmethod
    def list_by_swiper(self, swiper_id: str) -> list[SwipeRecord]:
        """All records written by ``swiper_id`` in append order."""

    @abstractmethod
    def mark_connection_sent(
        self, swiper_id: str, target_id: str, connection_id: str
    ) -> int:
        """Flag matching INTERESTED records; return how many were updated."""
