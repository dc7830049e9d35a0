"""Pydantic schemas for transient progress reporting.

Events are published for live consumers (SSE) and never persisted.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class ProgressStatus(StrEnum):
    # Single chapter
    ANALYZING = "analyzing"
    ANALYZING_SEGMENT = "analyzing_segment"
    MERGING_SEGMENTS = "merging_segments"
    CHAPTER_ANALYZED = "chapter_analyzed"
    # Batch
    BATCH_ANALYZING = "batch_analyzing"
    CHAPTER_DONE = "chapter_done"
    ERROR = "error"
    BATCH_CANCELLED = "batch_cancelled"
    BATCH_DONE = "batch_done"
    # Summary
    SUMMARIZING = "summarizing"
    SUMMARY_DONE = "summary_done"


# A live stream ends after any of these
TERMINAL_STATUSES = frozenset(
    {
        ProgressStatus.BATCH_DONE,
        ProgressStatus.BATCH_CANCELLED,
        ProgressStatus.ERROR,
        ProgressStatus.SUMMARY_DONE,
    }
)


class ProgressEvent(BaseModel):
    """One progress report for a novel-level or chapter-level operation."""

    novel_id: str
    chapter_id: str | None = None
    status: ProgressStatus
    current: int
    total: int
    message: str = ""


class StreamChunk(BaseModel):
    """A piece of model output received while a streaming call is running."""

    novel_id: str
    chapter_id: str
    chunk: str
    full_content: str
