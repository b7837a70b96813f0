"""Pydantic models shared by the discovery engine, its stores, and the API.

Field names are snake_case in Python and camelCase on the wire (and in
Firestore documents), so the same model validates both.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from math import floor
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class CamelModel(BaseModel):
    """Base model accepting both snake_case names and camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class CandidateProfile(CamelModel):
    """Read-only snapshot of a user as served by the user directory."""

    id: str
    full_name: str = ""
    username: str | None = None
    age: int | None = None
    gender: str | None = None
    bio: str | None = None
    profile_picture: str | None = None
    occupation: str | None = None
    profession: str | None = None

    coordinates: Coordinates | None = None
    city: str | None = None
    country: str | None = None

    interests: set[str] = Field(default_factory=set)
    languages: set[str] = Field(default_factory=set)
    community_ids: set[str] = Field(default_factory=set)

    trust_score: float = Field(default=0.0, ge=0, le=100)
    is_verified: bool = False
    badge_count: int = 0
    connection_count: int = 0

    is_host_available: bool = False
    is_guide_available: bool = False
    is_host_certified: bool = False

    @property
    def community_count(self) -> int:
        return len(self.community_ids)


class DiscoveryFilters(CamelModel):
    """Caller-supplied discovery filters. Every field is optional.

    ``limit`` and ``distance_km`` are clamped when applied rather than
    rejected; the age range and trust score are validated here.
    """

    min_age: int | None = Field(default=None, ge=18, le=100)
    max_age: int | None = Field(default=None, ge=18, le=100)
    distance_km: float | None = Field(
        default=None,
        validation_alias=AliasChoices("distance", "distanceKm", "distance_km"),
        serialization_alias="distance",
        ge=0,
    )
    gender: str | None = None
    interests: list[str] = Field(default_factory=list)
    city: str | None = None
    only_verified: bool = False
    min_trust_score: float | None = Field(default=None, ge=0, le=100)
    limit: int | None = None

    @model_validator(mode="after")
    def _check_age_range(self) -> "DiscoveryFilters":
        if (
            self.min_age is not None
            and self.max_age is not None
            and self.min_age > self.max_age
        ):
            raise ValueError("minAge cannot be greater than maxAge")
        return self

    def batch_size(self, default: int, minimum: int, maximum: int) -> int:
        requested = self.limit if self.limit is not None else default
        return min(max(requested, minimum), maximum)

    def effective_distance_km(self, default: float, ceiling: float) -> float:
        requested = self.distance_km if self.distance_km is not None else default
        return min(max(requested, 1.0), ceiling)


class SwipeAction(str, Enum):
    SKIP = "SKIP"
    INTERESTED = "INTERESTED"


class SwipeRecord(CamelModel):
    """One entry of the append-only swipe log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    swiper_id: str
    target_id: str
    action: SwipeAction
    skip_count: int = 0
    connection_sent: bool = False
    connection_id: str | None = None
    context: str = "discover"
    created_at: datetime = Field(default_factory=utcnow)


class DiscoverySession(CamelModel):
    """Deduplication scope shared by successive discovery calls.

    ``shown_candidate_ids`` is authoritative for exclusion; the ``total_*``
    counters are telemetry and may drift from the set size.
    """

    id: str = Field(default_factory=new_id)
    owner_user_id: str
    filters: DiscoveryFilters = Field(default_factory=DiscoveryFilters)
    origin: Coordinates | None = None
    shown_candidate_ids: set[str] = Field(default_factory=set)
    total_shown: int = 0
    total_skips: int = 0
    total_interested: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DiscoveryCandidate(CamelModel):
    """A ranked candidate as presented to the requester."""

    id: str
    full_name: str = ""
    username: str | None = None
    age: int | None = None
    gender: str | None = None
    bio: str | None = None
    profile_picture: str | None = None
    occupation: str | None = None
    profession: str | None = None

    city: str | None = None
    country: str | None = None
    distance_km: float | None = None

    interests: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)

    is_host_available: bool = False
    is_guide_available: bool = False
    is_host_certified: bool = False

    trust_score: float = 0.0
    is_verified: bool = False
    badge_count: int = 0
    connection_count: int = 0
    community_count: int = 0

    mutual_interests: list[str] = Field(default_factory=list)
    mutual_communities: int = 0
    match_score: int = 0

    @classmethod
    def from_profile(
        cls,
        profile: CandidateProfile,
        *,
        score: float,
        distance_km: float | None,
        mutual_interests: list[str],
        mutual_communities: int,
    ) -> "DiscoveryCandidate":
        return cls(
            id=profile.id,
            full_name=profile.full_name,
            username=profile.username,
            age=profile.age,
            gender=profile.gender,
            bio=profile.bio,
            profile_picture=profile.profile_picture,
            occupation=profile.occupation,
            profession=profile.profession,
            city=profile.city,
            country=profile.country,
            distance_km=round(distance_km, 1) if distance_km is not None else None,
            interests=sorted(profile.interests),
            languages=sorted(profile.languages),
            is_host_available=profile.is_host_available,
            is_guide_available=profile.is_guide_available,
            is_host_certified=profile.is_host_certified,
            trust_score=profile.trust_score,
            is_verified=profile.is_verified,
            badge_count=profile.badge_count,
            connection_count=profile.connection_count,
            community_count=profile.community_count,
            mutual_interests=mutual_interests,
            mutual_communities=mutual_communities,
            # Half-up rounding for display; ranking uses the raw score.
            match_score=int(floor(score + 0.5)),
        )


class DiscoveryBatch(CamelModel):
    candidates: list[DiscoveryCandidate] = Field(default_factory=list)
    session_id: str
    # Heuristic only: the pre-filter pool filled the batch.
    has_more: bool = False
    filters: DiscoveryFilters = Field(default_factory=DiscoveryFilters)


class SwipeResult(CamelModel):
    action: SwipeAction
    already_swiped: bool = False
    skip_count: int | None = None
    message: str = ""


class SwipeStats(CamelModel):
    total_swipes: int = 0
    interested: int = 0
    skipped: int = 0
    connections_sent: int = 0
    pending_interests: int = 0
