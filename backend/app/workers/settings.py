"""arq worker settings and lifecycle management.

Startup/shutdown mirrors main.py lifespan but is independent of FastAPI.
Each worker process initializes its own connections to Neo4j, Redis and
the model endpoint.

Launch:
    arq app.workers.settings.WorkerSettings
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from arq.connections import RedisSettings as ArqRedisSettings
from neo4j import AsyncGraphDatabase
from redis.asyncio import Redis

from app.config import settings
from app.core.logging import get_logger, setup_logging
from app.llm.client import ModelClient
from app.services.progress import RedisProgressPublisher

logger = get_logger(__name__)

ARQ_QUEUE = "novellens:arq"


def _parse_redis_settings() -> ArqRedisSettings:
    """Parse redis_url into arq RedisSettings.

    settings.redis_url format: redis://:novellens@localhost:6379/0
    arq requires host/port/password/database separately.
    """
    parsed = urlparse(settings.redis_url)
    database = parsed.path.lstrip("/")
    return ArqRedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password or None,
        database=int(database) if database else 0,
    )


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize all infrastructure for the worker process.

    Populates ctx with shared resources for task functions.
    Note: arq puts its own ArqRedis pool at ctx["redis"] automatically.
    Progress publishing and cancellation flags use a separate plain client.
    """
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    logger.info("arq_worker_starting")

    # --- Neo4j ---
    neo4j_driver = AsyncGraphDatabase.driver(
        settings.neo4j_uri,
        auth=(settings.neo4j_user, settings.neo4j_password),
    )
    await neo4j_driver.verify_connectivity()
    ctx["neo4j_driver"] = neo4j_driver
    logger.info("arq_worker_neo4j_connected")

    # --- Redis (pub/sub + cancellation flags, separate from arq's own pool) ---
    app_redis = Redis.from_url(settings.redis_url, decode_responses=True)
    await app_redis.ping()
    ctx["app_redis"] = app_redis
    ctx["progress"] = RedisProgressPublisher(app_redis)
    logger.info("arq_worker_redis_connected")

    # --- Model client ---
    ctx["model_client"] = ModelClient(
        timeout=settings.llm_timeout,
        requests_per_minute=settings.llm_requests_per_minute,
    )

    logger.info("arq_worker_started")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanly close all infrastructure connections."""
    logger.info("arq_worker_stopping")
    if client := ctx.get("model_client"):
        await client.close()
    if driver := ctx.get("neo4j_driver"):
        await driver.close()
    if app_redis := ctx.get("app_redis"):
        await app_redis.aclose()
    logger.info("arq_worker_stopped")


class WorkerSettings:
    """arq WorkerSettings for NovelLens background tasks.

    Launch with: arq app.workers.settings.WorkerSettings
    """

    # Import functions lazily to avoid circular imports at module load
    from app.workers.tasks import process_batch_analysis, process_novel_summary

    functions = [process_batch_analysis, process_novel_summary]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _parse_redis_settings()
    max_jobs = settings.arq_max_jobs
    job_timeout = settings.arq_job_timeout
    keep_result = settings.arq_keep_result
    queue_name = ARQ_QUEUE
