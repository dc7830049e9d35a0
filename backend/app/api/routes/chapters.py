"""Chapter-level API routes.

Besides synchronous analysis, chapters support a manual round trip: fetch
the analysis prompt, run it in any chat UI, and paste the JSON back.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_chapter_analyzer, get_llm_config, get_novel_repo
from app.core.logging import get_logger
from app.prompts.chapter_analysis import build_chapter_prompt
from app.repositories.novel_repo import NovelRepository
from app.schemas.analysis import ChapterAnalysis, LLMConfig
from app.schemas.novel import (  # noqa: TC001 (runtime use by FastAPI)
    Chapter,
    ManualAnalysisInput,
    PromptResponse,
    TokenEstimate,
)
from app.services.analysis import ChapterAnalyzer
from app.services.response_parsing import parse_analysis_json
from app.services.token_budget import content_budget, estimate_tokens

logger = get_logger(__name__)
router = APIRouter(prefix="/chapters", tags=["chapters"])


async def _chapter_prompt(repo: NovelRepository, chapter_id: str) -> str:
    chapter = await repo.load_chapter(chapter_id)
    novel = await repo.get_novel(chapter.novel_id)
    return build_chapter_prompt(chapter.title, chapter.content, novel.enabled_dimensions)


@router.get("/{chapter_id}", response_model=Chapter)
async def get_chapter(
    chapter_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> Chapter:
    """Get a chapter with its text and stored analysis."""
    return await repo.load_chapter(chapter_id)


@router.get("/{chapter_id}/prompt", response_model=PromptResponse)
async def get_chapter_prompt(
    chapter_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> PromptResponse:
    """Whole-chapter analysis prompt for manual use."""
    prompt = await _chapter_prompt(repo, chapter_id)
    return PromptResponse(prompt=prompt, estimated_tokens=estimate_tokens(prompt))


@router.get("/{chapter_id}/prompt/tokens", response_model=TokenEstimate)
async def estimate_chapter_prompt(
    chapter_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
    config: LLMConfig = Depends(get_llm_config),
) -> TokenEstimate:
    """Estimate the prompt size and whether it fits without segmentation."""
    prompt = await _chapter_prompt(repo, chapter_id)
    estimated = estimate_tokens(prompt)
    return TokenEstimate(
        estimated_tokens=estimated,
        max_context_tokens=config.max_context_tokens,
        fits=estimated <= content_budget(config),
    )


@router.post("/{chapter_id}/analysis/manual", response_model=ChapterAnalysis)
async def save_manual_analysis(
    chapter_id: str,
    body: ManualAnalysisInput,
    repo: NovelRepository = Depends(get_novel_repo),
) -> ChapterAnalysis:
    """Parse a pasted model response and store it as the chapter's analysis."""
    await repo.load_chapter(chapter_id)
    analysis = parse_analysis_json(body.response)
    await repo.save_chapter_analysis(chapter_id, analysis)
    logger.info(
        "manual_analysis_saved",
        chapter_id=chapter_id,
        dimensions=[d.value for d in analysis.present_dimensions()],
    )
    return analysis


@router.delete("/{chapter_id}/analysis")
async def clear_analysis(
    chapter_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> dict:
    await repo.clear_chapter_analysis(chapter_id)
    return {"chapter_id": chapter_id, "cleared": True}


@router.post("/{chapter_id}/analyze", response_model=ChapterAnalysis)
async def analyze_chapter(
    chapter_id: str,
    analyzer: ChapterAnalyzer = Depends(get_chapter_analyzer),
) -> ChapterAnalysis:
    """Analyze one chapter now, streaming progress on the novel's channel.

    The request stays open until the model has answered (and, for long
    chapters, until every segment has been analyzed and merged).
    """
    return await analyzer.analyze(chapter_id)
