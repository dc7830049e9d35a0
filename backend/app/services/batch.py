"""Batch chapter analysis with bounded concurrency and cooperative cancellation.

Runs ChapterAnalyzer across many chapters, at most ``concurrency`` at a time.

Before each dispatch the scheduler checks the cancellation flag:
  - set: stop dispatching, report ``batch_cancelled`` with the completions
    counted so far, let in-flight chapters finish, clear the flag
  - unset: report ``batch_analyzing`` and start the chapter

The first chapter failure also stops dispatching; in-flight chapters drain
and the failure is raised. ``batch_done`` is reported only when every
chapter was analyzed. Whichever terminal condition is observed first
(cancellation or failure) decides the outcome.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.core.logging import get_logger, novel_id_var
from app.schemas.analysis import AnalysisDimension, ordered_dimensions
from app.schemas.progress import ProgressEvent, ProgressStatus
from app.services.cancellation import CancellationFlag
from app.services.progress import ProgressSink

if TYPE_CHECKING:
    from app.repositories.novel_repo import NovelRepository
    from app.schemas.novel import ChapterMeta
    from app.services.analysis import ChapterAnalyzer

logger = get_logger(__name__)

DEFAULT_CONCURRENCY = 3


@dataclass
class BatchState:
    """Counters shared by the concurrent chapter jobs of one run.

    Only mutated from the event loop thread, between suspension points.
    """

    total: int
    completed: int = 0
    error: Exception | None = None
    cancelled: bool = False

    @property
    def stopped(self) -> bool:
        return self.cancelled or self.error is not None


@dataclass
class BatchResult:
    novel_id: str
    total: int
    completed: int
    cancelled: bool = False


class BatchScheduler:
    """Dispatches chapter analyses for one novel at a time."""

    def __init__(
        self,
        analyzer: ChapterAnalyzer,
        repo: NovelRepository,
        progress: ProgressSink | None = None,
        cancel_flag: CancellationFlag | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.analyzer = analyzer
        self.repo = repo
        self.progress = progress or ProgressSink()
        self.cancel_flag = cancel_flag or CancellationFlag()
        self.concurrency = concurrency

    async def analyze_unanalyzed(self, novel_id: str) -> BatchResult:
        """Analyze every chapter of the novel that has no analysis yet."""
        novel = await self.repo.get_novel(novel_id)
        metas = await self.repo.list_chapter_metas(novel_id)
        pending = [m for m in metas if not m.has_analysis]
        return await self.run(novel_id, pending, novel.enabled_dimensions)

    async def analyze_selected(self, novel_id: str, chapter_ids: list[str]) -> BatchResult:
        """Analyze the given chapters (re-analyzing ones that already have a result)."""
        novel = await self.repo.get_novel(novel_id)
        wanted = set(chapter_ids)
        metas = [m for m in await self.repo.list_chapter_metas(novel_id) if m.id in wanted]
        missing = wanted - {m.id for m in metas}
        if missing:
            logger.warning("batch_unknown_chapters_skipped", novel_id=novel_id, chapter_ids=sorted(missing))
        return await self.run(novel_id, metas, novel.enabled_dimensions)

    async def run(
        self,
        novel_id: str,
        chapters: list[ChapterMeta],
        dimensions: Iterable[AnalysisDimension],
    ) -> BatchResult:
        """Analyze ``chapters`` with at most ``concurrency`` in flight.

        Returns:
            BatchResult; ``cancelled`` is set when the run stopped on the flag.

        Raises:
            Exception: The first chapter failure, after in-flight chapters drained.
        """
        total = len(chapters)
        if total == 0:
            return BatchResult(novel_id=novel_id, total=0, completed=0)

        dims = ordered_dimensions(list(dimensions))
        state = BatchState(total=total)
        slots = asyncio.Semaphore(self.concurrency)
        in_flight: set[asyncio.Task[None]] = set()

        token = novel_id_var.set(novel_id)
        logger.info("batch_started", total=total, concurrency=self.concurrency)
        try:
            for meta in chapters:
                await slots.acquire()
                if state.stopped:
                    slots.release()
                    break
                if await self.cancel_flag.is_set():
                    slots.release()
                    state.cancelled = True
                    logger.info("batch_cancelled", completed=state.completed, total=total)
                    await self._emit(
                        novel_id,
                        None,
                        ProgressStatus.BATCH_CANCELLED,
                        state.completed,
                        total,
                        f"Batch analysis cancelled ({state.completed}/{total})",
                    )
                    break

                await self._emit(
                    novel_id,
                    meta.id,
                    ProgressStatus.BATCH_ANALYZING,
                    state.completed,
                    total,
                    f"Dispatching: {meta.title} (completed {state.completed}/{total})",
                )
                task = asyncio.create_task(self._process_one(novel_id, meta, dims, state, slots))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

            if in_flight:
                await asyncio.gather(*in_flight)
        finally:
            novel_id_var.reset(token)

        if state.cancelled:
            await self.cancel_flag.clear()
            return BatchResult(novel_id=novel_id, total=total, completed=state.completed, cancelled=True)

        if state.error is not None:
            logger.error("batch_failed", novel_id=novel_id, completed=state.completed, total=total)
            raise state.error

        await self._emit(novel_id, None, ProgressStatus.BATCH_DONE, total, total, "Batch analysis complete")
        logger.info("batch_completed", novel_id=novel_id, total=total)
        return BatchResult(novel_id=novel_id, total=total, completed=state.completed)

    async def _process_one(
        self,
        novel_id: str,
        meta: ChapterMeta,
        dims: list[AnalysisDimension],
        state: BatchState,
        slots: asyncio.Semaphore,
    ) -> None:
        """Analyze one chapter, recording its failure in ``state`` instead of raising it."""
        try:
            await self.analyzer.analyze(meta.id, dims)
        except Exception as exc:
            if state.stopped:
                logger.warning(
                    "batch_chapter_failed_after_stop",
                    novel_id=novel_id,
                    chapter_id=meta.id,
                    error=str(exc),
                )
            else:
                state.error = exc
                logger.exception("batch_chapter_failed", novel_id=novel_id, chapter_id=meta.id)
            await self._emit(
                novel_id,
                meta.id,
                ProgressStatus.ERROR,
                state.completed,
                state.total,
                f"Analysis of {meta.title} failed: {exc}",
            )
        else:
            state.completed += 1
            await self._emit(
                novel_id,
                meta.id,
                ProgressStatus.CHAPTER_DONE,
                state.completed,
                state.total,
                f"Completed: {meta.title} ({state.completed}/{state.total})",
            )
        finally:
            slots.release()

    async def _emit(
        self,
        novel_id: str,
        chapter_id: str | None,
        status: ProgressStatus,
        current: int,
        total: int,
        message: str,
    ) -> None:
        await self.progress.emit(
            ProgressEvent(
                novel_id=novel_id,
                chapter_id=chapter_id,
                status=status,
                current=current,
                total=total,
                message=message,
            )
        )
