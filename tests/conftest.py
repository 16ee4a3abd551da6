"""Pytest fixtures for Mailroom tests."""

import logging

import pytest

from mailroom.cache import ConversationCache
from mailroom.config import DatabaseBackend, DatabaseConfig, LimitsConfig, ServerConfig
from mailroom.conversations import ConversationService
from mailroom.db.memory import MemoryMessageStore
from mailroom.mutations import StateMutator
from mailroom.search import SearchService
from tests.factories import ACCOUNT, OTHER_ACCOUNT, OWNER

# Configure logging
logging.basicConfig(level=logging.INFO)


@pytest.fixture
def limits():
    return LimitsConfig()


@pytest.fixture
def store():
    """In-memory store with two known accounts."""
    return MemoryMessageStore(accounts={ACCOUNT: OWNER, OTHER_ACCOUNT: "other@example.com"})


@pytest.fixture
def cache():
    return ConversationCache(ttl_seconds=30)


@pytest.fixture
def conversations(store, cache, limits):
    return ConversationService(store, store, cache, limits)


@pytest.fixture
def search_service(store, conversations, limits):
    return SearchService(store, conversations, limits)


@pytest.fixture
def mutator(store, cache, limits):
    return StateMutator(store, cache, limits)


@pytest.fixture
def memory_config():
    return ServerConfig(database=DatabaseConfig(backend=DatabaseBackend.MEMORY))
