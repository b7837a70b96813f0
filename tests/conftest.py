"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
  - Test configuration (env vars set before the config singleton loads)
  - Profile factory and in-memory collaborators
  - A fully wired DiscoveryEngine
  - A mock Firestore client
"""

import os

# The config singleton is built at import time, so set env vars up front.
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("DEBUG", "True")

import pytest
from unittest.mock import MagicMock

from discovery_engine.config import Config
from discovery_engine.engine import DiscoveryEngine
from discovery_engine.models import CandidateProfile
from discovery_engine.stores.memory import (
    InMemoryRelationshipRegistry,
    InMemorySessionStore,
    InMemorySwipeLog,
    InMemoryUserDirectory,
)

@pytest.fixture
def settings():
    """Defaults only; ignores any local .env file."""
    return Config(_env_file=None, STORAGE_BACKEND="memory", SERVICE_TOKEN="")


@pytest.fixture
def make_profile():
    """
    Factory for CandidateProfile snapshots.

    Example:
        def test_something(make_profile):
            alice = make_profile("alice", city="Kuala Lumpur")
    """

    def _make(user_id: str, **fields) -> CandidateProfile:
        data = {"id": user_id, "full_name": user_id.title()}
        data.update(fields)
        return CandidateProfile(**data)

    return _make


@pytest.fixture
def directory():
    return InMemoryUserDirectory()


@pytest.fixture
def relationships():
    return InMemoryRelationshipRegistry()


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def swipes():
    return InMemorySwipeLog()


@pytest.fixture
def engine(directory, relationships, sessions, swipes, settings):
    return DiscoveryEngine(directory, relationships, sessions, swipes, settings)


@pytest.fixture
def mock_db():
    """
    Provide a mock Firestore client for the Firestore adapters.

    Adapters accept the client directly, so no Firebase app is initialized.
    """
    return MagicMock()
