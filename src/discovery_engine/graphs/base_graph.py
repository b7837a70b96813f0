"""Shared plumbing for the service's LangGraph pipelines."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

from langgraph.graph import StateGraph

from discovery_engine.utils.errors import DiscoveryError
from discovery_engine.utils.logging_config import logger


class BaseGraph(ABC):
    """Base class for graphs built from plain synchronous nodes.

    The graph is compiled on first use and reused for every invocation.
    Nodes wrap their store calls in ``node_scope`` so failures are logged
    once with the node name and then propagate unchanged to the caller.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logger
        self._app = None

    @abstractmethod
    def build_graph(self) -> StateGraph:
        """Build and return the StateGraph instance."""

    @property
    def app(self):
        if self._app is None:
            self._app = self.build_graph().compile()
        return self._app

    def invoke(self, state: dict) -> dict:
        started = time.perf_counter()
        try:
            return self.app.invoke(state)
        finally:
            self.logger.debug(
                "%s graph finished in %.1fms",
                self.name,
                (time.perf_counter() - started) * 1000,
            )

    @contextmanager
    def node_scope(self, node_name: str, state: dict) -> Iterator[None]:
        self.logger.debug(
            "%s.%s requester=%s", self.name, node_name, state.get("requester_id")
        )
        try:
            yield
        except DiscoveryError as exc:
            # Ids only; never log profile contents.
            self.logger.error("Node %s.%s failed: %s", self.name, node_name, exc)
            raise
