"""Enqueueing of per-novel background jobs.

Each novel has at most one batch analysis and one summary job at a time,
enforced through fixed arq job ids. arq also refuses a job id while the
previous run's result is kept, so a finished result is dropped first.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from arq.constants import result_key_prefix
from arq.jobs import Job, JobStatus

from app.core.exceptions import ConflictError
from app.core.logging import get_logger
from app.workers.settings import ARQ_QUEUE

if TYPE_CHECKING:
    from arq.connections import ArqRedis

logger = get_logger(__name__)


def analysis_job_id(novel_id: str) -> str:
    return f"analyze:{novel_id}"


def summary_job_id(novel_id: str) -> str:
    return f"summary:{novel_id}"


async def enqueue_unique(
    arq_pool: ArqRedis,
    function: str,
    job_id: str,
    *args: Any,
    on_fresh: Callable[[], Awaitable[None]] | None = None,
) -> Job:
    """Enqueue ``function`` under ``job_id`` unless that job is still pending.

    ``on_fresh`` runs before enqueueing when no job with this id is queued
    or running, to reset per-run state a pending job still relies on.

    Raises:
        ConflictError: If a job with this id is queued or running.
    """
    previous = Job(job_id, arq_pool, _queue_name=ARQ_QUEUE)
    status = await previous.status()
    if status == JobStatus.complete:
        await arq_pool.delete(result_key_prefix + job_id)
    if on_fresh is not None and status in (JobStatus.complete, JobStatus.not_found):
        await on_fresh()

    job = await arq_pool.enqueue_job(function, *args, _queue_name=ARQ_QUEUE, _job_id=job_id)
    if job is None:
        raise ConflictError(
            "Job already enqueued or running.",
            context={"job_id": job_id},
        )
    logger.info("job_enqueued", function=function, job_id=job_id)
    return job
