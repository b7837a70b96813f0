"""Discovery graph: exclusion, deterministic scoring, ranking, and session tracking."""

from __future__ import annotations

from collections.abc import Mapping

from langgraph.graph import StateGraph
from pydantic import ValidationError

from discovery_engine.config import Config, config
from discovery_engine.graphs.base_graph import BaseGraph
from discovery_engine.models import (
    Coordinates,
    DiscoveryBatch,
    DiscoveryCandidate,
    DiscoveryFilters,
)
from discovery_engine.state import DiscoveryState, ScoredCandidate
from discovery_engine.stores.base import (
    RelationshipRegistry,
    SessionStore,
    SwipeLog,
    UserDirectory,
)
from discovery_engine.tools.exclusion_tools import resolve_exclusions
from discovery_engine.tools.scoring_tools import (
    calculate_match_score,
    is_within_distance,
    mutual_items,
)
from discovery_engine.utils.errors import InvalidInputError, NotFoundError


def _with_state(state: DiscoveryState, **updates) -> DiscoveryState:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


def parse_filters(filters: DiscoveryFilters | Mapping | None) -> DiscoveryFilters:
    """Coerce caller filters into a validated DiscoveryFilters."""

    if filters is None:
        return DiscoveryFilters()
    if isinstance(filters, DiscoveryFilters):
        return filters
    try:
        return DiscoveryFilters.model_validate(dict(filters))
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid filters: {exc}") from exc


def parse_origin(origin: Coordinates | Mapping | None) -> Coordinates | None:
    if origin is None or isinstance(origin, Coordinates):
        return origin
    try:
        return Coordinates.model_validate(dict(origin))
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid coordinates: {exc}") from exc


class DiscoveryGraph(BaseGraph):
    """Linear pipeline producing one ranked discovery batch."""

    def __init__(
        self,
        directory: UserDirectory,
        relationships: RelationshipRegistry,
        sessions: SessionStore,
        swipes: SwipeLog,
        settings: Config = config,
    ):
        super().__init__("discovery")
        self.directory = directory
        self.relationships = relationships
        self.sessions = sessions
        self.swipes = swipes
        self.settings = settings

    def build_graph(self) -> StateGraph:
        graph = StateGraph(DiscoveryState)

        graph.add_node("fetch_requester", self.node_fetch_requester)
        graph.add_node("load_session", self.node_load_session)
        graph.add_node("resolve_exclusions", self.node_resolve_exclusions)
        graph.add_node("query_candidates", self.node_query_candidates)
        graph.add_node("score_candidates", self.node_score_candidates)
        graph.add_node("rank_candidates", self.node_rank_candidates)
        graph.add_node("record_session", self.node_record_session)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("fetch_requester")
        graph.add_edge("fetch_requester", "load_session")
        graph.add_edge("load_session", "resolve_exclusions")
        graph.add_edge("resolve_exclusions", "query_candidates")
        graph.add_edge("query_candidates", "score_candidates")
        graph.add_edge("score_candidates", "rank_candidates")
        graph.add_edge("rank_candidates", "record_session")
        graph.add_edge("record_session", "finalize_response")
        graph.set_finish_point("finalize_response")

        return graph

    def get_batch(
        self,
        requester_id: str,
        filters: DiscoveryFilters | Mapping | None = None,
        origin: Coordinates | Mapping | None = None,
        session_id: str | None = None,
    ) -> DiscoveryBatch:
        """Run the graph and return the ranked batch.

        Raises:
            InvalidInputError: Filters or coordinates are malformed. Nothing is
                queried in that case.
            NotFoundError: The requester or session does not resolve.
        """

        state = self.invoke(
            {
                "requester_id": requester_id,
                "filters": parse_filters(filters),
                "origin": parse_origin(origin),
                "session_id": session_id,
            }
        )
        return state["batch"]

    def node_fetch_requester(self, state: DiscoveryState) -> DiscoveryState:
        with self.node_scope("fetch_requester", state):
            requester = self.directory.get(state["requester_id"])
        return _with_state(state, requester=requester)

    def node_load_session(self, state: DiscoveryState) -> DiscoveryState:
        """Load the session being continued, if any.

        An unknown id, or a session owned by someone else, is a caller error;
        a new session is never created in its place.
        """

        session_id = state.get("session_id")
        if not session_id:
            return _with_state(state, session=None)

        with self.node_scope("load_session", state):
            session = self.sessions.get(session_id)
            if session.owner_user_id != state["requester_id"]:
                raise NotFoundError(f"Discovery session not found: {session_id}")
        return _with_state(state, session=session)

    def node_resolve_exclusions(self, state: DiscoveryState) -> DiscoveryState:
        """Collect self, related users, skip-threshold users, and session ids."""

        requester_id = state["requester_id"]
        with self.node_scope("resolve_exclusions", state):
            history = self.swipes.list_by_swiper(requester_id)
            related = self.relationships.list_related(requester_id)

        excluded = resolve_exclusions(
            requester_id,
            history,
            related,
            state.get("session"),
            threshold=self.settings.SKIP_THRESHOLD,
        )
        return _with_state(state, excluded_ids=excluded)

    def node_query_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Over-fetch a pool matching the hard filters."""

        batch_size = state["filters"].batch_size(
            default=self.settings.DEFAULT_BATCH_SIZE,
            minimum=self.settings.MIN_BATCH_SIZE,
            maximum=self.settings.MAX_BATCH_SIZE,
        )
        excluded = state["excluded_ids"]
        with self.node_scope("query_candidates", state):
            pool = self.directory.query(
                state["filters"],
                excluded,
                limit=batch_size * self.settings.OVERFETCH_FACTOR,
            )

        # Adapters already honor exclude_ids; this guards custom ones.
        candidates = [c for c in pool if c.id not in excluded]
        return _with_state(state, batch_size=batch_size, candidates=candidates)

    def node_score_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Drop out-of-radius candidates and score the rest."""

        requester = state["requester"]
        filters = state["filters"]
        origin = state.get("origin") or requester.coordinates
        max_distance = filters.effective_distance_km(
            default=self.settings.DEFAULT_DISTANCE_KM,
            ceiling=self.settings.MAX_DISTANCE_KM,
        )

        scored: list[ScoredCandidate] = []
        for candidate in state.get("candidates", []):
            within, distance = is_within_distance(origin, candidate, max_distance)
            if not within:
                continue
            scored.append(
                {
                    "profile": candidate,
                    "score": calculate_match_score(requester, candidate, filters),
                    "distance_km": distance,
                }
            )

        return _with_state(state, scored_candidates=scored)

    def node_rank_candidates(self, state: DiscoveryState) -> DiscoveryState:
        # sorted() is stable: equal scores keep the directory's fetch order.
        ranked = sorted(
            state.get("scored_candidates", []),
            key=lambda item: item["score"],
            reverse=True,
        )
        return _with_state(state, top_candidates=ranked[: state["batch_size"]])

    def node_record_session(self, state: DiscoveryState) -> DiscoveryState:
        """Create the session on first call, then append the shown ids."""

        shown_ids = [item["profile"].id for item in state.get("top_candidates", [])]
        with self.node_scope("record_session", state):
            session = state.get("session")
            if session is None:
                session = self.sessions.create(
                    state["requester_id"], state["filters"], state.get("origin")
                )
            updated = self.sessions.append_shown(session.id, shown_ids)
        return _with_state(state, updated_session=updated)

    def node_finalize_response(self, state: DiscoveryState) -> DiscoveryState:
        """Build presentation views and the response envelope."""

        requester = state["requester"]
        final_candidates = [
            DiscoveryCandidate.from_profile(
                item["profile"],
                score=item["score"],
                distance_km=item["distance_km"],
                mutual_interests=mutual_items(
                    requester.interests, item["profile"].interests
                ),
                mutual_communities=len(
                    mutual_items(requester.community_ids, item["profile"].community_ids)
                ),
            )
            for item in state.get("top_candidates", [])
        ]

        pool_size = len(state.get("candidates", []))
        batch = DiscoveryBatch(
            candidates=final_candidates,
            session_id=state["updated_session"].id,
            has_more=pool_size >= state["batch_size"],
            filters=state["filters"],
        )

        self.logger.info(
            "discovery summary: requester=%s pool=%s in_range=%s returned=%s session=%s",
            state["requester_id"],
            pool_size,
            len(state.get("scored_candidates", [])),
            len(final_candidates),
            batch.session_id,
        )
        return _with_state(state, final_candidates=final_candidates, batch=batch)


def create_discovery_graph(
    directory: UserDirectory,
    relationships: RelationshipRegistry,
    sessions: SessionStore,
    swipes: SwipeLog,
    settings: Config = config,
) -> DiscoveryGraph:
    """Build the discovery graph around the given collaborators."""

    return DiscoveryGraph(directory, relationships, sessions, swipes, settings)
