"""Shared test fixtures for NovelLens backend tests.

Provides mocked infrastructure services (Neo4j, Redis, model endpoint)
and small factories for novels, chapters and analyses.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.repositories.novel_repo import NovelRepository
from app.schemas.analysis import AnalysisDimension, LLMConfig
from app.schemas.novel import Chapter, ChapterMeta, Novel
from app.services.progress import CollectingProgressSink

# -- Infrastructure mocks -------------------------------------------------


@pytest.fixture
def mock_neo4j_session():
    """Pre-configured Neo4j session with run().data()/.consume() chain."""
    session = AsyncMock()

    result = AsyncMock()
    result.data = AsyncMock(return_value=[])

    summary = MagicMock()
    summary.counters.nodes_created = 0
    summary.counters.nodes_deleted = 0
    summary.counters.properties_set = 0
    result.consume = AsyncMock(return_value=summary)

    session.run = AsyncMock(return_value=result)
    return session


@pytest.fixture
def mock_neo4j_driver_with_session(mock_neo4j_session):
    """Neo4j driver that yields the pre-configured session.

    driver.session() is synchronous (returns an async context manager),
    so we use MagicMock for the driver and wire __aenter__/__aexit__
    on the returned object.
    """
    driver = MagicMock()
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=mock_neo4j_session)
    cm.__aexit__ = AsyncMock(return_value=False)
    driver.session.return_value = cm
    return driver


@pytest.fixture
def mock_redis():
    """Mock Redis async client."""
    redis = AsyncMock()
    redis.ping.return_value = True
    redis.exists.return_value = 0
    redis.set.return_value = True
    redis.delete.return_value = 1
    redis.publish.return_value = 1
    return redis


@pytest.fixture
def llm_config():
    return LLMConfig(
        base_url="http://llm.test/v1",
        api_key="test-key",
        model="test-model",
        max_context_tokens=128_000,
        max_output_tokens=8192,
    )


@pytest.fixture
def mock_model_client():
    """ModelClient stand-in; set call/call_stream side effects per test."""
    client = MagicMock()
    client.call = AsyncMock()
    client.call_stream = AsyncMock()
    client.list_models = AsyncMock(return_value=[])
    return client


@pytest.fixture
def mock_repo():
    """NovelRepository with every method an AsyncMock."""
    return AsyncMock(spec=NovelRepository)


@pytest.fixture
def progress_sink():
    return CollectingProgressSink()


# -- Factory fixtures -----------------------------------------------------


@pytest.fixture
def make_novel():
    """Factory for Novel with sensible defaults."""

    def _factory(
        novel_id: str = "n1",
        title: str = "Test Novel",
        dimensions: list[AnalysisDimension] | None = None,
    ) -> Novel:
        if dimensions is None:
            return Novel(id=novel_id, title=title)
        return Novel(id=novel_id, title=title, enabled_dimensions=dimensions)

    return _factory


@pytest.fixture
def make_chapter():
    """Factory for Chapter with sensible defaults."""

    def _factory(
        chapter_id: str = "c1",
        index: int = 0,
        title: str = "Chapter One",
        content: str = "Default paragraph one.\n\nDefault paragraph two.",
        novel_id: str = "n1",
    ) -> Chapter:
        return Chapter(id=chapter_id, novel_id=novel_id, index=index, title=title, content=content)

    return _factory


@pytest.fixture
def make_meta():
    """Factory for ChapterMeta listing entries."""

    def _factory(chapter_id: str, index: int = 0, has_analysis: bool = False) -> ChapterMeta:
        return ChapterMeta(id=chapter_id, index=index, title=f"Chapter {index + 1}", has_analysis=has_analysis)

    return _factory


# -- Sample data ----------------------------------------------------------


@pytest.fixture
def sample_analysis_json():
    """A model response covering characters and plot."""
    return """{
  "characters": {
    "characters": [
      {"name": "Alice", "role": "protagonist", "traits": ["curious"], "actions": "follows the rabbit"}
    ],
    "relationships": [
      {"from": "Alice", "to": "White Rabbit", "relation_type": "pursuer", "description": "chases him"}
    ],
    "insights": "Curiosity drives the chapter."
  },
  "plot": {
    "summary": "Alice falls down the rabbit hole.",
    "key_events": [{"event": "The fall", "cause": "curiosity", "effect": "a new world"}],
    "conflicts": ["size versus doors"],
    "suspense": ["where does the hole lead?"],
    "insights": null
  }
}"""
