"""Novel summary API routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends

from app.api.dependencies import get_arq_pool, get_novel_repo, get_summary_reducer
from app.api.jobs import enqueue_unique, summary_job_id
from app.core.exceptions import NoAnalyzedChaptersError
from app.repositories.novel_repo import NovelRepository
from app.schemas.novel import JobEnqueued, PromptResponse, SummaryResponse
from app.services.summary import SummaryReducer
from app.services.token_budget import estimate_tokens

if TYPE_CHECKING:
    from arq.connections import ArqRedis

router = APIRouter(prefix="/novels", tags=["summary"])


@router.post("/{novel_id}/summary", response_model=JobEnqueued)
async def enqueue_summary(
    novel_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
    arq_pool: ArqRedis = Depends(get_arq_pool),
) -> JobEnqueued:
    """Enqueue the hierarchical reduction of all chapter analyses.

    Fails with 422 before enqueueing when no chapter has been analyzed.
    """
    await repo.get_novel(novel_id)
    analyzed = sum(1 for meta in await repo.list_chapter_metas(novel_id) if meta.has_analysis)
    if not analyzed:
        raise NoAnalyzedChaptersError(
            f"Novel '{novel_id}' has no analyzed chapters to summarize",
            context={"novel_id": novel_id},
        )

    job = await enqueue_unique(arq_pool, "process_novel_summary", summary_job_id(novel_id), novel_id)
    return JobEnqueued(novel_id=novel_id, job_id=job.job_id, chapters=analyzed)


@router.get("/{novel_id}/summary", response_model=SummaryResponse)
async def get_summary(
    novel_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> SummaryResponse:
    """Stored summary of a novel (``summary`` is null until generated)."""
    await repo.get_novel(novel_id)
    return SummaryResponse(novel_id=novel_id, summary=await repo.load_novel_summary(novel_id))


@router.get("/{novel_id}/summary/prompt", response_model=PromptResponse)
async def get_summary_prompt(
    novel_id: str,
    reducer: SummaryReducer = Depends(get_summary_reducer),
) -> PromptResponse:
    """Single-shot summary prompt over every chapter analysis, for manual use."""
    prompt = await reducer.build_manual_prompt(novel_id)
    return PromptResponse(prompt=prompt, estimated_tokens=estimate_tokens(prompt))
