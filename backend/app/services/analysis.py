"""Chapter analysis service: one chapter from text to stored analysis.

Orchestrates a single chapter:
  1. Build the whole-chapter prompt and check it against the context budget
  2. Fits: one streaming model call, parse
  3. Too long: split the content, one streaming call per segment in order,
     parse each, merge the segment analyses
  4. Persist the result

Any budget, transport or parse error aborts the chapter before anything
is saved. Segments of a chapter are never analyzed in parallel.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

from app.core.exceptions import BudgetExceededError, ValidationError
from app.core.logging import chapter_id_var, get_logger, novel_id_var, pipeline_stage_var
from app.prompts.chapter_analysis import build_chapter_prompt, build_segment_prompt
from app.schemas.analysis import AnalysisDimension, ChapterAnalysis, LLMConfig, ordered_dimensions
from app.schemas.progress import ProgressEvent, ProgressStatus, StreamChunk
from app.services.chunking import split_content
from app.services.merging import merge_segment_analyses
from app.services.progress import ProgressSink
from app.services.response_parsing import parse_analysis_json
from app.services.token_budget import available_tokens, content_budget, estimate_tokens

if TYPE_CHECKING:
    from app.llm.client import ChunkCallback, ModelClient
    from app.repositories.novel_repo import NovelRepository
    from app.schemas.novel import Chapter

logger = get_logger(__name__)

DEFAULT_TEMPLATE_OVERHEAD = 500


class AnalysisState(StrEnum):
    NOT_STARTED = "not_started"
    FITS_BUDGET = "fits_budget"
    NEEDS_SEGMENTATION = "needs_segmentation"
    COMPLETED = "completed"
    FAILED = "failed"


class ChapterAnalyzer:
    """Runs chapter analyses against one model configuration.

    A chapter's load, analyze and save sequence is serialized by a
    per-chapter lock, so two analyses of the same chapter never interleave
    their writes. Different chapters run freely in parallel.
    """

    def __init__(
        self,
        repo: NovelRepository,
        client: ModelClient,
        config: LLMConfig,
        progress: ProgressSink | None = None,
        template_overhead: int = DEFAULT_TEMPLATE_OVERHEAD,
    ) -> None:
        self.repo = repo
        self.client = client
        self.config = config
        self.progress = progress or ProgressSink()
        self.template_overhead = template_overhead
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def analyze(
        self,
        chapter_id: str,
        dimensions: Iterable[AnalysisDimension] | None = None,
    ) -> ChapterAnalysis:
        """Analyze one chapter and persist the result.

        Args:
            chapter_id: Chapter to analyze.
            dimensions: Dimensions to request; defaults to the novel's enabled set.

        Returns:
            The stored ChapterAnalysis.
        """
        async with self._locks[chapter_id]:
            chapter = await self.repo.load_chapter(chapter_id)
            if dimensions is None:
                novel = await self.repo.get_novel(chapter.novel_id)
                dimensions = novel.enabled_dimensions
            dims = ordered_dimensions(list(dimensions))
            if not dims:
                raise ValidationError("At least one analysis dimension is required")

            novel_token = novel_id_var.set(chapter.novel_id)
            chapter_token = chapter_id_var.set(chapter_id)
            try:
                return await self._analyze_chapter(chapter, dims)
            finally:
                chapter_id_var.reset(chapter_token)
                novel_id_var.reset(novel_token)

    async def _analyze_chapter(self, chapter: Chapter, dims: list[AnalysisDimension]) -> ChapterAnalysis:
        state = AnalysisState.NOT_STARTED
        logger.info(
            "chapter_analysis_started",
            state=state.value,
            dimensions=[d.value for d in dims],
            content_tokens=estimate_tokens(chapter.content),
        )

        prompt = build_chapter_prompt(chapter.title, chapter.content, dims)
        prompt_tokens = estimate_tokens(prompt)
        budget = available_tokens(self.config.max_context_tokens, self.config.max_output_tokens, 0)

        try:
            if prompt_tokens <= budget:
                state = AnalysisState.FITS_BUDGET
                logger.info("chapter_analysis_state", state=state.value, prompt_tokens=prompt_tokens)
                analysis = await self._analyze_whole(chapter, prompt)
            else:
                state = AnalysisState.NEEDS_SEGMENTATION
                logger.info(
                    "chapter_analysis_state",
                    state=state.value,
                    prompt_tokens=prompt_tokens,
                    budget=budget,
                )
                analysis = await self._analyze_segmented(chapter, dims)

            await self.repo.save_chapter_analysis(chapter.id, analysis)
        except Exception:
            logger.warning("chapter_analysis_state", state=AnalysisState.FAILED.value, from_state=state.value)
            raise

        await self._emit(chapter, ProgressStatus.CHAPTER_ANALYZED, 1, 1, "Chapter analysis saved")
        logger.info(
            "chapter_analysis_state",
            state=AnalysisState.COMPLETED.value,
            dimensions=[d.value for d in analysis.present_dimensions()],
        )
        return analysis

    async def _analyze_whole(self, chapter: Chapter, prompt: str) -> ChapterAnalysis:
        await self._emit(chapter, ProgressStatus.ANALYZING, 0, 1, "Generating analysis...")
        stage_token = pipeline_stage_var.set("analyze")
        try:
            response = await self.client.call_stream(prompt, self.config, self._chunk_forwarder(chapter))
        finally:
            pipeline_stage_var.reset(stage_token)
        return parse_analysis_json(response)

    async def _analyze_segmented(self, chapter: Chapter, dims: list[AnalysisDimension]) -> ChapterAnalysis:
        segment_budget = content_budget(self.config, self.template_overhead)
        if segment_budget == 0:
            raise BudgetExceededError(
                "Model context is too small to hold any chapter content after the "
                "output reserve and prompt overhead",
                context={
                    "max_context_tokens": self.config.max_context_tokens,
                    "max_output_tokens": self.config.max_output_tokens,
                    "template_overhead": self.template_overhead,
                },
            )

        segments = split_content(chapter.content, segment_budget)
        total = len(segments)
        logger.info("chapter_segmented", segments=total, segment_budget=segment_budget)

        analyses: list[ChapterAnalysis] = []
        on_chunk = self._chunk_forwarder(chapter)
        for i, segment in enumerate(segments):
            await self._emit(
                chapter,
                ProgressStatus.ANALYZING_SEGMENT,
                i + 1,
                total,
                f"Analyzing segment {i + 1}/{total}...",
            )
            prompt = build_segment_prompt(chapter.title, segment, i, total, dims)
            stage_token = pipeline_stage_var.set(f"segment_{i + 1}")
            try:
                response = await self.client.call_stream(prompt, self.config, on_chunk)
            finally:
                pipeline_stage_var.reset(stage_token)
            analyses.append(parse_analysis_json(response))
            logger.info("segment_analyzed", segment=i + 1, total=total)

        await self._emit(chapter, ProgressStatus.MERGING_SEGMENTS, total, total, "Merging segment analyses...")
        return merge_segment_analyses(analyses)

    def _chunk_forwarder(self, chapter: Chapter) -> ChunkCallback:
        async def _forward(delta: str, full_content: str) -> None:
            await self.progress.emit_chunk(
                StreamChunk(
                    novel_id=chapter.novel_id,
                    chapter_id=chapter.id,
                    chunk=delta,
                    full_content=full_content,
                )
            )

        return _forward

    async def _emit(
        self,
        chapter: Chapter,
        status: ProgressStatus,
        current: int,
        total: int,
        message: str,
    ) -> None:
        await self.progress.emit(
            ProgressEvent(
                novel_id=chapter.novel_id,
                chapter_id=chapter.id,
                status=status,
                current=current,
                total=total,
                message=message,
            )
        )
