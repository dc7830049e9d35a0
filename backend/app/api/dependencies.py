"""FastAPI dependency injection.

Provides shared resources (Neo4j, Redis, model client, services) to route
handlers. All connections are managed via the application lifespan.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, Request  # noqa: TC002 (needed at runtime for FastAPI DI)

from app.config import settings
from app.core.exceptions import ServiceUnavailableError
from app.llm.client import ModelClient
from app.repositories.novel_repo import NovelRepository
from app.schemas.analysis import LLMConfig
from app.services.analysis import ChapterAnalyzer
from app.services.progress import ProgressSink
from app.services.summary import SummaryReducer

if TYPE_CHECKING:
    from arq.connections import ArqRedis
    from neo4j import AsyncDriver
    from redis.asyncio import Redis


async def get_neo4j(request: Request) -> AsyncDriver:
    """Get Neo4j async driver from app state."""
    return request.app.state.neo4j_driver


async def get_redis(request: Request) -> Redis:
    """Get Redis async client from app state."""
    return request.app.state.redis


async def get_arq_pool(request: Request) -> ArqRedis:
    """Get arq Redis pool from app state for job enqueueing."""
    pool = request.app.state.arq_pool
    if pool is None:
        raise ServiceUnavailableError("Task queue not available (Redis down?)")
    return pool


async def get_model_client(request: Request) -> ModelClient:
    return request.app.state.model_client


async def get_progress(request: Request) -> ProgressSink:
    return request.app.state.progress


async def get_llm_config() -> LLMConfig:
    return settings.llm_config()


async def get_novel_repo(driver: AsyncDriver = Depends(get_neo4j)) -> NovelRepository:
    return NovelRepository(driver)


async def get_chapter_analyzer(request: Request) -> ChapterAnalyzer:
    """Process-wide analyzer built in the lifespan."""
    return request.app.state.chapter_analyzer


async def get_summary_reducer(
    repo: NovelRepository = Depends(get_novel_repo),
    client: ModelClient = Depends(get_model_client),
    config: LLMConfig = Depends(get_llm_config),
    progress: ProgressSink = Depends(get_progress),
) -> SummaryReducer:
    return SummaryReducer(repo, client, config, progress=progress, group_size=settings.summary_group_size)
