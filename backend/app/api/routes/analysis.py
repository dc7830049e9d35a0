"""Analysis API routes.

Batch analysis runs in the arq worker; these routes enqueue it, request
its cancellation, and expose the metadata a client needs to configure it
(available dimensions and models).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends

from app.api.dependencies import (
    get_arq_pool,
    get_llm_config,
    get_model_client,
    get_novel_repo,
    get_redis,
)
from app.api.jobs import analysis_job_id, enqueue_unique
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.llm.client import ModelClient
from app.repositories.novel_repo import NovelRepository
from app.schemas.analysis import (
    DEFAULT_DIMENSIONS,
    DIMENSION_INFO,
    AnalysisDimension,
    LLMConfig,
)
from app.schemas.novel import (  # noqa: TC001 (runtime use by FastAPI)
    BatchAnalyzeRequest,
    DimensionInfo,
    JobEnqueued,
)
from app.services.cancellation import RedisCancellationFlag

if TYPE_CHECKING:
    from arq.connections import ArqRedis
    from redis.asyncio import Redis

logger = get_logger(__name__)
router = APIRouter(tags=["analysis"])


@router.get("/dimensions", response_model=list[DimensionInfo])
async def list_dimensions() -> list[DimensionInfo]:
    """All analysis dimensions, flagging the ones enabled by default."""
    return [
        DimensionInfo(
            key=dim,
            name=DIMENSION_INFO[dim][0],
            description=DIMENSION_INFO[dim][1],
            default=dim in DEFAULT_DIMENSIONS,
        )
        for dim in AnalysisDimension
    ]


@router.get("/models")
async def list_models(
    client: ModelClient = Depends(get_model_client),
    config: LLMConfig = Depends(get_llm_config),
) -> dict:
    """Model ids offered by the configured endpoint."""
    return {"current": config.model, "models": await client.list_models(config)}


@router.post("/novels/{novel_id}/analyze", response_model=JobEnqueued)
async def enqueue_batch_analysis(
    novel_id: str,
    body: BatchAnalyzeRequest | None = None,
    repo: NovelRepository = Depends(get_novel_repo),
    arq_pool: ArqRedis = Depends(get_arq_pool),
    redis: Redis = Depends(get_redis),
) -> JobEnqueued:
    """Enqueue analysis of the selected chapters, or of every unanalyzed one.

    Progress is published on ``/api/stream/analysis/{novel_id}``. A cancel
    left over from an earlier run is cleared, unless a batch is still pending.
    """
    await repo.get_novel(novel_id)
    metas = await repo.list_chapter_metas(novel_id)
    chapter_ids = body.chapter_ids if body else None

    if chapter_ids is None:
        pending = sum(1 for meta in metas if not meta.has_analysis)
    else:
        known = {meta.id for meta in metas}
        unknown = [cid for cid in chapter_ids if cid not in known]
        if unknown:
            raise NotFoundError(
                f"Chapters not found in novel '{novel_id}'",
                context={"chapter_ids": unknown},
            )
        pending = len(chapter_ids)

    if pending == 0:
        logger.info("batch_analysis_skipped", novel_id=novel_id, reason="no_pending_chapters")
        return JobEnqueued(novel_id=novel_id, status="nothing_to_do", chapters=0)

    job = await enqueue_unique(
        arq_pool,
        "process_batch_analysis",
        analysis_job_id(novel_id),
        novel_id,
        chapter_ids,
        on_fresh=RedisCancellationFlag(redis, novel_id).clear,
    )
    return JobEnqueued(novel_id=novel_id, job_id=job.job_id, chapters=pending)


@router.post("/novels/{novel_id}/analyze/cancel")
async def cancel_batch_analysis(
    novel_id: str,
    redis: Redis = Depends(get_redis),
) -> dict:
    """Ask the running batch to stop dispatching new chapters.

    Chapters already being analyzed finish normally; the stream then
    reports ``batch_cancelled``.
    """
    await RedisCancellationFlag(redis, novel_id).set()
    logger.info("batch_cancel_requested", novel_id=novel_id)
    return {"novel_id": novel_id, "cancel_requested": True}
