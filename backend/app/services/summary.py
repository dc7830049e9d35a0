"""Book-level summary by tree reduction over chapter analyses.

  1. Load analyzed chapters in index order (none: fail before any model call)
  2. Clear the summary cache, then reduce each group of ``group_size``
     chapters with one model call, caching each result as layer 1
  3. One group: its text is the summary. Otherwise, while more than
     ``group_size`` summaries remain, reduce them again group by group
     (layers 2, 3, ...), then one final call over what is left
  4. Save the summary, replacing the previous one

Up to group_size squared chapters this is exactly two levels: groups, then final.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, TypeVar

from app.core.exceptions import NoAnalyzedChaptersError
from app.core.logging import get_logger, novel_id_var
from app.prompts.summary import (
    build_final_summary_prompt,
    build_group_summary_prompt,
    build_manual_summary_prompt,
)
from app.schemas.analysis import LLMConfig, NovelSummary
from app.schemas.progress import ProgressEvent, ProgressStatus
from app.services.progress import ProgressSink
from app.services.response_parsing import clean_json_response, parse_summary_json

if TYPE_CHECKING:
    from app.llm.client import ModelClient
    from app.repositories.novel_repo import NovelRepository

logger = get_logger(__name__)

DEFAULT_GROUP_SIZE = 10

T = TypeVar("T")


def _batched(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def planned_calls(chapter_count: int, group_size: int = DEFAULT_GROUP_SIZE) -> int:
    """Number of model calls a reduction over ``chapter_count`` chapters makes."""
    if chapter_count == 0:
        return 0
    groups = -(-chapter_count // group_size)
    calls = groups
    if groups == 1:
        return calls
    while groups > group_size:
        groups = -(-groups // group_size)
        calls += groups
    return calls + 1


class SummaryReducer:
    """Generates and stores the NovelSummary of a novel."""

    def __init__(
        self,
        repo: NovelRepository,
        client: ModelClient,
        config: LLMConfig,
        progress: ProgressSink | None = None,
        group_size: int = DEFAULT_GROUP_SIZE,
    ) -> None:
        if group_size < 2:
            raise ValueError("group_size must be at least 2")
        self.repo = repo
        self.client = client
        self.config = config
        self.progress = progress or ProgressSink()
        self.group_size = group_size

    async def _chapter_summaries(self, novel_id: str) -> list[tuple[int, str]]:
        chapters = await self.repo.load_analyzed_chapters(novel_id)
        summaries = [(ch.index, ch.analysis.to_json()) for ch in chapters if ch.analysis is not None]
        if not summaries:
            raise NoAnalyzedChaptersError(
                f"Novel '{novel_id}' has no analyzed chapters to summarize",
                context={"novel_id": novel_id},
            )
        return summaries

    async def build_manual_prompt(self, novel_id: str) -> str:
        """Single prompt over every analyzed chapter, for manual use."""
        novel = await self.repo.get_novel(novel_id)
        summaries = await self._chapter_summaries(novel_id)
        return build_manual_summary_prompt(summaries, novel.enabled_dimensions)

    async def generate(self, novel_id: str) -> NovelSummary:
        """Reduce all chapter analyses of a novel into one stored summary."""
        token = novel_id_var.set(novel_id)
        try:
            return await self._generate(novel_id)
        except Exception as exc:
            logger.exception("summary_failed")
            # Terminal event so live streams of the job close
            await self._emit(novel_id, ProgressStatus.ERROR, 0, 0, f"Book summary failed: {exc}")
            raise
        finally:
            novel_id_var.reset(token)

    async def _generate(self, novel_id: str) -> NovelSummary:
        novel = await self.repo.get_novel(novel_id)
        dims = novel.enabled_dimensions
        chapter_summaries = await self._chapter_summaries(novel_id)

        total_calls = planned_calls(len(chapter_summaries), self.group_size)
        calls_done = 0
        logger.info(
            "summary_started",
            chapters=len(chapter_summaries),
            group_size=self.group_size,
            planned_calls=total_calls,
        )
        await self._emit(novel_id, ProgressStatus.SUMMARIZING, 0, total_calls, "Preparing book summary...")

        await self.repo.clear_summary_cache(novel_id)

        # Layer 1: chapter analyses -> group summaries
        groups = _batched(chapter_summaries, self.group_size)
        summaries: list[str] = []
        for i, group in enumerate(groups):
            calls_done += 1
            await self._emit(
                novel_id,
                ProgressStatus.SUMMARIZING,
                calls_done,
                total_calls,
                f"Summarizing chapter group {i + 1}/{len(groups)}",
            )
            response = await self.client.call(build_group_summary_prompt(group, dims), self.config)
            content = clean_json_response(response)
            await self.repo.save_summary_cache(novel_id, 1, i, content)
            summaries.append(content)

        if len(summaries) == 1:
            summary = parse_summary_json(summaries[0])
        else:
            # Further layers only when the group summaries are too many for one call
            layer = 1
            while len(summaries) > self.group_size:
                layer += 1
                parts = _batched(summaries, self.group_size)
                summaries = []
                for i, part in enumerate(parts):
                    calls_done += 1
                    await self._emit(
                        novel_id,
                        ProgressStatus.SUMMARIZING,
                        calls_done,
                        total_calls,
                        f"Merging layer {layer} group {i + 1}/{len(parts)}",
                    )
                    response = await self.client.call(build_final_summary_prompt(part, dims), self.config)
                    content = clean_json_response(response)
                    await self.repo.save_summary_cache(novel_id, layer, i, content)
                    summaries.append(content)

            calls_done += 1
            await self._emit(
                novel_id,
                ProgressStatus.SUMMARIZING,
                calls_done,
                total_calls,
                "Generating the final book summary...",
            )
            response = await self.client.call(build_final_summary_prompt(summaries, dims), self.config)
            summary = parse_summary_json(response)

        await self.repo.save_novel_summary(novel_id, summary)
        await self._emit(novel_id, ProgressStatus.SUMMARY_DONE, total_calls, total_calls, "Book summary complete")
        logger.info("summary_completed", model_calls=calls_done)
        return summary

    async def _emit(
        self,
        novel_id: str,
        status: ProgressStatus,
        current: int,
        total: int,
        message: str,
    ) -> None:
        await self.progress.emit(
            ProgressEvent(novel_id=novel_id, status=status, current=current, total=total, message=message)
        )