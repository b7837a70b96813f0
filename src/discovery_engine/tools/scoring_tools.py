"""Deterministic scoring utilities for discovery ranking."""

from __future__ import annotations

from collections.abc import Iterable

from discovery_engine.models import CandidateProfile, Coordinates, DiscoveryFilters
from discovery_engine.utils.geo import haversine_km

# Component caps; they sum to exactly 100.
MATCH_WEIGHTS = {
    "location": 30,
    "interests": 25,
    "communities": 20,
    "trust_score": 15,
    "verification": 10,
}


def _normalize(value: str | None) -> str:
    return value.strip().casefold() if value else ""


def overlap_ratio(first: Iterable[str], second: Iterable[str]) -> float:
    """Shared items divided by the size of the larger set (0 if either is empty)."""

    first_set = set(first)
    second_set = set(second)
    if not first_set or not second_set:
        return 0.0
    return len(first_set & second_set) / max(len(first_set), len(second_set))


def mutual_items(first: Iterable[str], second: Iterable[str]) -> list[str]:
    return sorted(set(first) & set(second))


def calculate_location_score(
    requester: CandidateProfile, candidate: CandidateProfile
) -> float:
    """Full weight for the same city, half for the same country, else 0.

    Both profiles must have a city; without one neither tier applies.
    """

    weight = MATCH_WEIGHTS["location"]
    requester_city = _normalize(requester.city)
    candidate_city = _normalize(candidate.city)
    if not requester_city or not candidate_city:
        return 0.0

    if requester_city == candidate_city:
        return float(weight)

    requester_country = _normalize(requester.country)
    if requester_country and requester_country == _normalize(candidate.country):
        return weight * 0.5

    return 0.0


def calculate_match_score(
    requester: CandidateProfile,
    candidate: CandidateProfile,
    filters: DiscoveryFilters | None = None,
) -> float:
    """Calculate the deterministic compatibility score (0-100).

    Weighted by priority: location > interests > communities > trust score >
    verification. Distance never lowers the score; out-of-radius candidates
    are dropped before scoring (see ``is_within_distance``). ``filters`` is
    part of the contract so ranking can depend on the active query, but no
    component reads it today.
    """

    score = calculate_location_score(requester, candidate)
    score += MATCH_WEIGHTS["interests"] * overlap_ratio(
        requester.interests, candidate.interests
    )
    score += MATCH_WEIGHTS["communities"] * overlap_ratio(
        requester.community_ids, candidate.community_ids
    )
    score += MATCH_WEIGHTS["trust_score"] * (candidate.trust_score / 100)
    if candidate.is_verified:
        score += MATCH_WEIGHTS["verification"]

    return min(100.0, max(0.0, score))


def candidate_distance_km(
    origin: Coordinates | None, candidate: CandidateProfile
) -> float | None:
    """Distance from origin to the candidate, or None if either side is unknown."""

    if origin is None or candidate.coordinates is None:
        return None
    return haversine_km(
        origin.latitude,
        origin.longitude,
        candidate.coordinates.latitude,
        candidate.coordinates.longitude,
    )


def is_within_distance(
    origin: Coordinates | None,
    candidate: CandidateProfile,
    max_distance_km: float,
) -> tuple[bool, float | None]:
    """Check the radius filter and return the computed distance alongside.

    Candidates without coordinates (or requests without an origin) always pass.
    """

    distance = candidate_distance_km(origin, candidate)
    if distance is None:
        return True, None
    return distance <= max_distance_km, distance
