"""Neo4j repository for novels, chapters, analyses and summaries.

Graph layout:
    (:Novel)-[:HAS_CHAPTER {position}]->(:Chapter)
    (:Novel)-[:HAS_SUMMARY]->(:NovelSummary)
    (:Novel)-[:HAS_SUMMARY_CACHE]->(:SummaryCache {layer, group_index})

Analyses and summaries are stored as JSON strings on their nodes; the
pydantic schemas are the single source of truth for their shape.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.repositories.base import Neo4jRepository
from app.schemas.analysis import (
    DEFAULT_DIMENSIONS,
    AnalysisDimension,
    ChapterAnalysis,
    NovelSummary,
    ordered_dimensions,
)
from app.schemas.novel import Chapter, ChapterInput, ChapterMeta, Novel, NovelInfo
from app.services.token_budget import estimate_tokens

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _to_novel(node: dict[str, Any]) -> Novel:
    return Novel(
        id=node["id"],
        title=node["title"],
        enabled_dimensions=ordered_dimensions(
            [AnalysisDimension(d) for d in node.get("enabled_dimensions") or []]
        ),
        created_at=node.get("created_at", ""),
    )


def _to_chapter(node: dict[str, Any]) -> Chapter:
    raw = node.get("analysis_json")
    return Chapter(
        id=node["id"],
        novel_id=node["novel_id"],
        index=node["index"],
        title=node.get("title", ""),
        content=node.get("content", ""),
        analysis=ChapterAnalysis.model_validate_json(raw) if raw else None,
    )


class NovelRepository(Neo4jRepository):
    """Repository for novel, chapter, analysis and summary storage in Neo4j."""

    # --- Novel operations ---

    async def create_novel(
        self,
        title: str,
        enabled_dimensions: list[AnalysisDimension] | None = None,
    ) -> Novel:
        """Create a novel node with the default dimensions unless given."""
        novel = Novel(
            id=str(uuid.uuid4())[:8],
            title=title,
            enabled_dimensions=ordered_dimensions(enabled_dimensions or DEFAULT_DIMENSIONS),
            created_at=_now(),
        )
        await self.execute_write(
            """
            CREATE (n:Novel {
                id: $id,
                title: $title,
                enabled_dimensions: $dimensions,
                created_at: $created_at
            })
            """,
            {
                "id": novel.id,
                "title": novel.title,
                "dimensions": [d.value for d in novel.enabled_dimensions],
                "created_at": novel.created_at,
            },
        )
        logger.info("novel_created", novel_id=novel.id, title=title)
        return novel

    async def get_novel(self, novel_id: str) -> Novel:
        """Get a novel by ID.

        Raises:
            NotFoundError: If no such novel exists.
        """
        result = await self.execute_read(
            "MATCH (n:Novel {id: $id}) RETURN n",
            {"id": novel_id},
        )
        if not result:
            raise NotFoundError(f"Novel '{novel_id}' not found")
        return _to_novel(dict(result[0]["n"]))

    async def list_novels(self) -> list[NovelInfo]:
        """List all novels with chapter counts, newest first."""
        rows = await self.execute_read(
            """
            MATCH (n:Novel)
            OPTIONAL MATCH (n)-[:HAS_CHAPTER]->(c:Chapter)
            RETURN n,
                   count(c) AS total_chapters,
                   count(c.analysis_json) AS analyzed_chapters
            ORDER BY n.created_at DESC
            """
        )
        infos = []
        for row in rows:
            novel = _to_novel(dict(row["n"]))
            infos.append(
                NovelInfo(
                    **novel.model_dump(),
                    total_chapters=row["total_chapters"],
                    analyzed_chapters=row["analyzed_chapters"],
                )
            )
        return infos

    async def update_dimensions(
        self,
        novel_id: str,
        dimensions: list[AnalysisDimension],
    ) -> Novel:
        """Replace the enabled dimension set of a novel."""
        ordered = ordered_dimensions(dimensions)
        result = await self.execute_write(
            """
            MATCH (n:Novel {id: $id})
            SET n.enabled_dimensions = $dimensions
            RETURN n
            """,
            {"id": novel_id, "dimensions": [d.value for d in ordered]},
        )
        if not result:
            raise NotFoundError(f"Novel '{novel_id}' not found")
        logger.info("novel_dimensions_updated", novel_id=novel_id, dimensions=[d.value for d in ordered])
        return _to_novel(dict(result[0]["n"]))

    async def delete_novel(self, novel_id: str) -> int:
        """Delete a novel with its chapters, summary and summary cache."""
        if not await self.node_exists("Novel", novel_id):
            raise NotFoundError(f"Novel '{novel_id}' not found")
        result = await self.execute_write(
            """
            MATCH (n:Novel {id: $id})
            OPTIONAL MATCH (n)-[:HAS_CHAPTER]->(c:Chapter)
            OPTIONAL MATCH (n)-[:HAS_SUMMARY]->(s:NovelSummary)
            OPTIONAL MATCH (n)-[:HAS_SUMMARY_CACHE]->(sc:SummaryCache)
            WITH n, collect(DISTINCT c) AS chapters, collect(DISTINCT s) + collect(DISTINCT sc) AS extras
            FOREACH (x IN chapters | DETACH DELETE x)
            FOREACH (x IN extras | DETACH DELETE x)
            DETACH DELETE n
            RETURN size(chapters) AS chapters_deleted
            """,
            {"id": novel_id},
        )
        count = result[0]["chapters_deleted"] if result else 0
        logger.info("novel_deleted", novel_id=novel_id, chapters_deleted=count)
        return count

    # --- Chapter operations ---

    async def add_chapters(self, novel_id: str, chapters: list[ChapterInput]) -> int:
        """Append chapters after the novel's existing ones.

        Uses UNWIND for efficient batch insertion.
        Returns number of chapters created.
        """
        if not chapters:
            return 0
        existing = await self.execute_read(
            """
            MATCH (n:Novel {id: $novel_id})
            OPTIONAL MATCH (n)-[:HAS_CHAPTER]->(c:Chapter)
            RETURN count(n) AS novels, max(c.index) AS last_index
            """,
            {"novel_id": novel_id},
        )
        if not existing or not existing[0]["novels"]:
            raise NotFoundError(f"Novel '{novel_id}' not found")
        last_index = existing[0]["last_index"]
        start = 0 if last_index is None else last_index + 1

        chapter_data = [
            {
                "id": str(uuid.uuid4())[:12],
                "index": start + offset,
                "title": ch.title,
                "content": ch.content,
                "token_estimate": estimate_tokens(ch.content),
            }
            for offset, ch in enumerate(chapters)
        ]
        await self.execute_write(
            """
            MATCH (n:Novel {id: $novel_id})
            UNWIND $chapters AS ch
            CREATE (c:Chapter {
                id: ch.id,
                novel_id: $novel_id,
                index: ch.index,
                title: ch.title,
                content: ch.content,
                token_estimate: ch.token_estimate
            })
            CREATE (n)-[:HAS_CHAPTER {position: ch.index}]->(c)
            """,
            {"novel_id": novel_id, "chapters": chapter_data},
        )
        logger.info("chapters_created", novel_id=novel_id, count=len(chapters))
        return len(chapters)

    async def list_chapter_metas(self, novel_id: str) -> list[ChapterMeta]:
        """List chapters of a novel in index order, without their text."""
        rows = await self.execute_read(
            """
            MATCH (:Novel {id: $novel_id})-[:HAS_CHAPTER]->(c:Chapter)
            RETURN c.id AS id,
                   c.index AS index,
                   c.title AS title,
                   c.analysis_json IS NOT NULL AS has_analysis,
                   coalesce(c.token_estimate, 0) AS token_estimate
            ORDER BY c.index
            """,
            {"novel_id": novel_id},
        )
        return [ChapterMeta(**row) for row in rows]

    async def load_chapter(self, chapter_id: str) -> Chapter:
        """Load a chapter with its text and any stored analysis."""
        result = await self.execute_read(
            "MATCH (c:Chapter {id: $id}) RETURN c",
            {"id": chapter_id},
        )
        if not result:
            raise NotFoundError(f"Chapter '{chapter_id}' not found")
        return _to_chapter(dict(result[0]["c"]))

    async def save_chapter_analysis(self, chapter_id: str, analysis: ChapterAnalysis) -> None:
        """Store a chapter's analysis, replacing any previous one."""
        result = await self.execute_write(
            """
            MATCH (c:Chapter {id: $id})
            SET c.analysis_json = $analysis, c.analyzed_at = $now
            RETURN c.id AS id
            """,
            {"id": chapter_id, "analysis": analysis.to_json(), "now": _now()},
        )
        if not result:
            raise NotFoundError(f"Chapter '{chapter_id}' not found")
        logger.info(
            "chapter_analysis_saved",
            chapter_id=chapter_id,
            dimensions=[d.value for d in analysis.present_dimensions()],
        )

    async def clear_chapter_analysis(self, chapter_id: str) -> None:
        result = await self.execute_write(
            """
            MATCH (c:Chapter {id: $id})
            REMOVE c.analysis_json, c.analyzed_at
            RETURN c.id AS id
            """,
            {"id": chapter_id},
        )
        if not result:
            raise NotFoundError(f"Chapter '{chapter_id}' not found")
        logger.info("chapter_analysis_cleared", chapter_id=chapter_id)

    async def load_analyzed_chapters(self, novel_id: str) -> list[Chapter]:
        """Chapters of a novel that have an analysis, in index order."""
        rows = await self.execute_read(
            """
            MATCH (:Novel {id: $novel_id})-[:HAS_CHAPTER]->(c:Chapter)
            WHERE c.analysis_json IS NOT NULL
            RETURN c
            ORDER BY c.index
            """,
            {"novel_id": novel_id},
        )
        return [_to_chapter(dict(row["c"])) for row in rows]

    # --- Summary operations ---

    async def save_novel_summary(self, novel_id: str, summary: NovelSummary) -> None:
        """Store the book summary, overwriting any previous one."""
        await self.execute_write(
            """
            MATCH (n:Novel {id: $novel_id})
            MERGE (n)-[:HAS_SUMMARY]->(s:NovelSummary {novel_id: $novel_id})
            SET s.content = $content, s.updated_at = $now
            """,
            {"novel_id": novel_id, "content": summary.to_json(), "now": _now()},
        )
        logger.info("novel_summary_saved", novel_id=novel_id)

    async def load_novel_summary(self, novel_id: str) -> NovelSummary | None:
        result = await self.execute_read(
            "MATCH (s:NovelSummary {novel_id: $novel_id}) RETURN s.content AS content",
            {"novel_id": novel_id},
        )
        if not result or not result[0]["content"]:
            return None
        return NovelSummary.model_validate_json(result[0]["content"])

    async def save_summary_cache(
        self,
        novel_id: str,
        layer: int,
        group_index: int,
        content: str,
    ) -> None:
        """Store one intermediate reduction result as soon as it is produced."""
        await self.execute_write(
            """
            MATCH (n:Novel {id: $novel_id})
            MERGE (n)-[:HAS_SUMMARY_CACHE]->(sc:SummaryCache {
                novel_id: $novel_id, layer: $layer, group_index: $group_index
            })
            SET sc.content = $content, sc.created_at = $now
            """,
            {
                "novel_id": novel_id,
                "layer": layer,
                "group_index": group_index,
                "content": content,
                "now": _now(),
            },
        )

    async def load_summary_cache(self, novel_id: str, layer: int) -> list[str]:
        """Cached reduction results of one layer, in group order."""
        rows = await self.execute_read(
            """
            MATCH (sc:SummaryCache {novel_id: $novel_id, layer: $layer})
            RETURN sc.content AS content
            ORDER BY sc.group_index
            """,
            {"novel_id": novel_id, "layer": layer},
        )
        return [row["content"] for row in rows]

    async def clear_summary_cache(self, novel_id: str) -> None:
        await self.execute_write(
            "MATCH (sc:SummaryCache {novel_id: $novel_id}) DETACH DELETE sc",
            {"novel_id": novel_id},
        )
