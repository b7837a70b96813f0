"""Shared LangGraph state definitions.

Graph state is a TypedDict so the data each node reads and writes is explicit
and consistent across the pipeline.
"""

from __future__ import annotations

from typing import TypedDict

from discovery_engine.models import (
    CandidateProfile,
    Coordinates,
    DiscoveryBatch,
    DiscoveryCandidate,
    DiscoveryFilters,
    DiscoverySession,
)


class ScoredCandidate(TypedDict):
    profile: CandidateProfile
    score: float
    distance_km: float | None


class DiscoveryState(TypedDict, total=False):
    """State for the discovery graph.

    Fields are optional at runtime because nodes populate them progressively.
    """

    # Identifies the requesting user.
    requester_id: str
    # Validated filters from the request.
    filters: DiscoveryFilters
    # Coordinates sent with the request, if any.
    origin: Coordinates | None
    # Session to continue; absent on the first call.
    session_id: str | None
    # Requester snapshot from the user directory.
    requester: CandidateProfile
    # Session loaded for session_id.
    session: DiscoverySession | None
    # Ids that must never be returned.
    excluded_ids: set[str]
    # Clamped number of candidates to return.
    batch_size: int
    # Over-fetched pool in directory order.
    candidates: list[CandidateProfile]
    # Candidates that passed the distance filter, with scores, in pool order.
    scored_candidates: list[ScoredCandidate]
    # Ranked and truncated candidates.
    top_candidates: list[ScoredCandidate]
    # Session after recording the shown ids.
    updated_session: DiscoverySession
    # Final response returned to the caller.
    batch: DiscoveryBatch
    # Presentation views for top_candidates.
    final_candidates: list[DiscoveryCandidate]
