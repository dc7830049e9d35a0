"""arq task functions for NovelLens background processing.

Each task receives a `ctx` dict populated by worker startup with:
  - ctx["neo4j_driver"]: AsyncDriver
  - ctx["app_redis"]: Redis (plain, for pub/sub and cancellation flags)
  - ctx["progress"]: RedisProgressPublisher
  - ctx["model_client"]: ModelClient
  - ctx["redis"]: ArqRedis (arq's own pool, for enqueuing)
"""

from __future__ import annotations

from typing import Any

from app.core.logging import get_logger
from app.repositories.novel_repo import NovelRepository
from app.services.analysis import ChapterAnalyzer
from app.services.batch import BatchScheduler
from app.services.cancellation import RedisCancellationFlag
from app.services.summary import SummaryReducer

logger = get_logger(__name__)


async def process_batch_analysis(
    ctx: dict[str, Any],
    novel_id: str,
    chapter_ids: list[str] | None = None,
) -> dict[str, Any]:
    """Analyze the chapters of a novel in the background.

    Called by the arq worker after a job is enqueued from
    POST /novels/{novel_id}/analyze.

    If *chapter_ids* is provided, only those chapters are analyzed
    (re-analyzing any that already have a result). Pass ``None`` to
    analyze every chapter without an analysis.

    On chapter failure: the batch stops and the error is raised so arq
    marks the job as failed. Cancellation is a normal return.
    """
    from app.config import settings

    repo = NovelRepository(ctx["neo4j_driver"])
    progress = ctx["progress"]
    analyzer = ChapterAnalyzer(
        repo,
        ctx["model_client"],
        settings.llm_config(),
        progress=progress,
        template_overhead=settings.segment_template_overhead,
    )
    scheduler = BatchScheduler(
        analyzer,
        repo,
        progress=progress,
        cancel_flag=RedisCancellationFlag(ctx["app_redis"], novel_id),
        concurrency=settings.batch_concurrency,
    )

    logger.info("task_batch_analysis_started", novel_id=novel_id, chapter_ids=chapter_ids)

    if chapter_ids is None:
        result = await scheduler.analyze_unanalyzed(novel_id)
    else:
        result = await scheduler.analyze_selected(novel_id, chapter_ids)

    logger.info(
        "task_batch_analysis_completed",
        novel_id=novel_id,
        total=result.total,
        completed=result.completed,
        cancelled=result.cancelled,
    )
    return {
        "novel_id": novel_id,
        "total": result.total,
        "completed": result.completed,
        "cancelled": result.cancelled,
    }


async def process_novel_summary(ctx: dict[str, Any], novel_id: str) -> dict[str, Any]:
    """Generate the book-level summary of a novel in the background.

    Called by the arq worker after a job is enqueued from
    POST /novels/{novel_id}/summary.
    """
    from app.config import settings

    reducer = SummaryReducer(
        NovelRepository(ctx["neo4j_driver"]),
        ctx["model_client"],
        settings.llm_config(),
        progress=ctx["progress"],
        group_size=settings.summary_group_size,
    )

    logger.info("task_novel_summary_started", novel_id=novel_id)
    summary = await reducer.generate(novel_id)
    logger.info("task_novel_summary_completed", novel_id=novel_id)
    return {"novel_id": novel_id, "summary": summary.model_dump(exclude_none=True)}
