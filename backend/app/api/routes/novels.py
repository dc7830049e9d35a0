"""Novel management API routes.

Handles importing novels (title plus pre-split chapters), listing,
deletion and the per-novel choice of analysis dimensions.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_novel_repo
from app.core.logging import get_logger
from app.repositories.novel_repo import NovelRepository
from app.schemas.novel import (  # noqa: TC001 (runtime use by FastAPI)
    ChapterMeta,
    DimensionsUpdate,
    Novel,
    NovelCreate,
    NovelInfo,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/novels", tags=["novels"])


@router.get("", response_model=list[NovelInfo])
async def list_novels(
    repo: NovelRepository = Depends(get_novel_repo),
) -> list[NovelInfo]:
    """List all novels with their chapter counts."""
    return await repo.list_novels()


@router.post("", response_model=NovelInfo, status_code=201)
async def create_novel(
    body: NovelCreate,
    repo: NovelRepository = Depends(get_novel_repo),
) -> NovelInfo:
    """Create a novel and store its chapters in the given order."""
    novel = await repo.create_novel(body.title, body.enabled_dimensions)
    created = await repo.add_chapters(novel.id, body.chapters)
    logger.info("novel_imported", novel_id=novel.id, chapters=created)
    return NovelInfo(**novel.model_dump(), total_chapters=created)


@router.get("/{novel_id}", response_model=Novel)
async def get_novel(
    novel_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> Novel:
    return await repo.get_novel(novel_id)


@router.delete("/{novel_id}")
async def delete_novel(
    novel_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> dict:
    """Delete a novel with its chapters, analyses and summary."""
    chapters_deleted = await repo.delete_novel(novel_id)
    return {"novel_id": novel_id, "chapters_deleted": chapters_deleted}


@router.put("/{novel_id}/dimensions", response_model=Novel)
async def update_dimensions(
    novel_id: str,
    body: DimensionsUpdate,
    repo: NovelRepository = Depends(get_novel_repo),
) -> Novel:
    """Replace the dimensions requested for future analyses.

    Existing chapter analyses are kept as they are.
    """
    return await repo.update_dimensions(novel_id, body.enabled_dimensions)


@router.get("/{novel_id}/chapters", response_model=list[ChapterMeta])
async def list_chapters(
    novel_id: str,
    repo: NovelRepository = Depends(get_novel_repo),
) -> list[ChapterMeta]:
    """List chapters in reading order, without their text."""
    await repo.get_novel(novel_id)
    return await repo.list_chapter_metas(novel_id)
