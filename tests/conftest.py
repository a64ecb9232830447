"""Pytest configuration and fixtures."""

import os

import pytest

from mycel.core.config import get_settings
from mycel.core.embeddings import MockEmbeddingClient
from mycel.db.field_stats import InMemoryFieldStatsRepository
from mycel.db.knowledge import InMemoryKnowledgeRepository
from mycel.db.sessions import InMemorySessionRepository
from tests.fakes.fake_llm import FakeLlmClient
from tests.fixtures_domain import make_domain_config, make_persona_config


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["MYCEL_ENV"] = "test"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["SERPAPI_API_KEY"] = "test-serpapi-key"
    get_settings.cache_clear()


@pytest.fixture
def domain_config():
    return make_domain_config()


@pytest.fixture
def persona_config():
    return make_persona_config()


@pytest.fixture
def fake_llm():
    return FakeLlmClient()


@pytest.fixture
def embedding_client():
    return MockEmbeddingClient()


@pytest.fixture
def knowledge_repository():
    return InMemoryKnowledgeRepository()


@pytest.fixture
def session_repository():
    return InMemorySessionRepository()


@pytest.fixture
def field_stats_repository():
    return InMemoryFieldStatsRepository()
