"""Pydantic schemas for novels and chapters.

Chapters arrive already split as (title, content) pairs; extracting them
from EPUB or plain-text files happens upstream of this service.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.schemas.analysis import (
    DEFAULT_DIMENSIONS,
    AnalysisDimension,
    ChapterAnalysis,
    NovelSummary,
    ordered_dimensions,
)

# --- Internal schemas ---


class Novel(BaseModel):
    """A novel and the analysis dimensions enabled for it."""

    id: str
    title: str
    enabled_dimensions: list[AnalysisDimension] = Field(
        default_factory=lambda: ordered_dimensions(DEFAULT_DIMENSIONS)
    )
    created_at: str = ""


class Chapter(BaseModel):
    """A chapter with its full text and optional stored analysis."""

    id: str
    novel_id: str
    index: int = Field(..., ge=0)
    title: str = ""
    content: str
    analysis: ChapterAnalysis | None = None


class ChapterMeta(BaseModel):
    """Chapter listing entry without the text body."""

    id: str
    index: int
    title: str = ""
    has_analysis: bool = False
    token_estimate: int = 0


# --- Request schemas ---


class ChapterInput(BaseModel):
    title: str = ""
    content: str


class NovelCreate(BaseModel):
    """Request schema for importing a novel with pre-split chapters."""

    title: str = Field(..., min_length=1, max_length=500)
    chapters: list[ChapterInput] = Field(default_factory=list)
    enabled_dimensions: list[AnalysisDimension] | None = None


class DimensionsUpdate(BaseModel):
    enabled_dimensions: list[AnalysisDimension] = Field(..., min_length=1)


class BatchAnalyzeRequest(BaseModel):
    """Analyze the given chapters, or every unanalyzed chapter when omitted."""

    chapter_ids: list[str] | None = None


class ManualAnalysisInput(BaseModel):
    """A model response pasted back by hand."""

    response: str = Field(..., min_length=1)


# --- Response schemas ---


class NovelInfo(BaseModel):
    id: str
    title: str
    enabled_dimensions: list[AnalysisDimension]
    created_at: str = ""
    total_chapters: int = 0
    analyzed_chapters: int = 0


class DimensionInfo(BaseModel):
    key: AnalysisDimension
    name: str
    description: str
    default: bool


class PromptResponse(BaseModel):
    prompt: str
    estimated_tokens: int


class TokenEstimate(BaseModel):
    estimated_tokens: int
    max_context_tokens: int
    fits: bool


class JobEnqueued(BaseModel):
    novel_id: str
    job_id: str | None = None
    status: str = "enqueued"
    chapters: int | None = None


class SummaryResponse(BaseModel):
    novel_id: str
    summary: NovelSummary | None = None
