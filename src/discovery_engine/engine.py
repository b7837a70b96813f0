"""Engine facade exposing the four discovery operations.

The request-handling layer talks only to ``DiscoveryEngine``; the graph,
swipe service, and store adapters behind it are wired by ``create_engine``.
"""

from __future__ import annotations

from collections.abc import Mapping

from discovery_engine.config import Config, config
from discovery_engine.graphs.discovery import create_discovery_graph
from discovery_engine.models import (
    Coordinates,
    DiscoveryBatch,
    DiscoveryFilters,
    SwipeAction,
    SwipeResult,
    SwipeStats,
)
from discovery_engine.services.swipes import SwipeService
from discovery_engine.stores.base import (
    RelationshipRegistry,
    SessionStore,
    SwipeLog,
    UserDirectory,
)
from discovery_engine.stores.firestore_store import (
    FirestoreRelationshipRegistry,
    FirestoreSessionStore,
    FirestoreSwipeLog,
    FirestoreUserDirectory,
)
from discovery_engine.stores.memory import (
    InMemoryRelationshipRegistry,
    InMemorySessionStore,
    InMemorySwipeLog,
    InMemoryUserDirectory,
)
from discovery_engine.utils.logging_config import logger


class DiscoveryEngine:
    def __init__(
        self,
        directory: UserDirectory,
        relationships: RelationshipRegistry,
        sessions: SessionStore,
        swipes: SwipeLog,
        settings: Config = config,
    ):
        self.directory = directory
        self.relationships = relationships
        self.sessions = sessions
        self.swipes = swipes
        self.graph = create_discovery_graph(
            directory, relationships, sessions, swipes, settings
        )
        self.swipe_service = SwipeService(directory, swipes, sessions, settings)

    def get_discovery_batch(
        self,
        requester_id: str,
        filters: DiscoveryFilters | Mapping | None = None,
        origin: Coordinates | Mapping | None = None,
        session_id: str | None = None,
    ) -> DiscoveryBatch:
        return self.graph.get_batch(requester_id, filters, origin, session_id)

    def record_swipe(
        self,
        swiper_id: str,
        target_id: str,
        action: SwipeAction | str,
        session_id: str | None = None,
    ) -> SwipeResult:
        return self.swipe_service.record_swipe(swiper_id, target_id, action, session_id)

    def mark_connection_sent(
        self, swiper_id: str, target_id: str, connection_id: str
    ) -> int:
        return self.swipe_service.mark_connection_sent(
            swiper_id, target_id, connection_id
        )

    def get_swipe_stats(self, user_id: str) -> SwipeStats:
        return self.swipe_service.get_swipe_stats(user_id)


def create_engine(settings: Config = config) -> DiscoveryEngine:
    """Wire the engine with the adapters selected by STORAGE_BACKEND."""

    if settings.STORAGE_BACKEND == "firestore":
        logger.info("Using Firestore store adapters")
        return DiscoveryEngine(
            FirestoreUserDirectory(),
            FirestoreRelationshipRegistry(),
            FirestoreSessionStore(max_retries=settings.STORE_MAX_RETRIES),
            FirestoreSwipeLog(),
            settings,
        )

    logger.info("Using in-memory store adapters")
    return DiscoveryEngine(
        InMemoryUserDirectory(),
        InMemoryRelationshipRegistry(),
        InMemorySessionStore(),
        InMemorySwipeLog(),
        settings,
    )
