"""Tests for app.repositories.novel_repo (Neo4j storage of novels and analyses)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import NotFoundError
from app.repositories.novel_repo import NovelRepository
from app.schemas.analysis import AnalysisDimension, ChapterAnalysis, NovelSummary, PlotAnalysis
from app.schemas.novel import ChapterInput


@pytest.fixture
def repo(mock_neo4j_driver_with_session):
    return NovelRepository(mock_neo4j_driver_with_session)


def _returns(session, *batches):
    """Make successive queries return the given record lists."""
    session.run.return_value.data = AsyncMock(side_effect=list(batches))


class TestNovels:

    async def test_create_novel_defaults(self, repo, mock_neo4j_session):
        novel = await repo.create_novel("Alice in Wonderland")

        assert novel.title == "Alice in Wonderland"
        assert novel.enabled_dimensions == [
            AnalysisDimension.CHARACTERS,
            AnalysisDimension.PLOT,
            AnalysisDimension.FORESHADOWING,
            AnalysisDimension.WRITING_TECHNIQUE,
        ]
        params = mock_neo4j_session.run.call_args.args[1]
        assert params["dimensions"] == ["characters", "plot", "foreshadowing", "writing_technique"]
        assert params["id"] == novel.id

    async def test_create_novel_orders_dimensions(self, repo):
        novel = await repo.create_novel("T", [AnalysisDimension.THEMES, AnalysisDimension.PLOT])
        assert novel.enabled_dimensions == [AnalysisDimension.PLOT, AnalysisDimension.THEMES]

    async def test_get_novel(self, repo, mock_neo4j_session):
        _returns(
            mock_neo4j_session,
            [{"n": {"id": "n1", "title": "T", "enabled_dimensions": ["themes", "plot"], "created_at": "x"}}],
        )
        novel = await repo.get_novel("n1")
        assert novel.id == "n1"
        assert novel.enabled_dimensions == [AnalysisDimension.PLOT, AnalysisDimension.THEMES]

    async def test_get_missing_novel(self, repo):
        with pytest.raises(NotFoundError):
            await repo.get_novel("ghost")

    async def test_update_missing_novel(self, repo):
        with pytest.raises(NotFoundError):
            await repo.update_dimensions("ghost", [AnalysisDimension.PLOT])

    async def test_delete_missing_novel(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"exists": False}])
        with pytest.raises(NotFoundError):
            await repo.delete_novel("ghost")

    async def test_delete_reports_chapter_count(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"exists": True}], [{"chapters_deleted": 3}])
        assert await repo.delete_novel("n1") == 3


class TestChapters:

    async def test_add_chapters_appends_after_last_index(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"novels": 1, "last_index": 4}], [])

        created = await repo.add_chapters(
            "n1",
            [ChapterInput(title="Six", content="你好"), ChapterInput(title="Seven", content="abc")],
        )

        assert created == 2
        params = mock_neo4j_session.run.call_args.args[1]
        assert [c["index"] for c in params["chapters"]] == [5, 6]
        assert [c["token_estimate"] for c in params["chapters"]] == [3, 1]

    async def test_first_chapters_start_at_zero(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"novels": 1, "last_index": None}], [])
        await repo.add_chapters("n1", [ChapterInput(content="text")])
        params = mock_neo4j_session.run.call_args.args[1]
        assert params["chapters"][0]["index"] == 0

    async def test_add_chapters_to_missing_novel(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"novels": 0, "last_index": None}])
        with pytest.raises(NotFoundError):
            await repo.add_chapters("ghost", [ChapterInput(content="text")])

    async def test_add_no_chapters_is_noop(self, repo, mock_neo4j_session):
        assert await repo.add_chapters("n1", []) == 0
        mock_neo4j_session.run.assert_not_called()

    async def test_load_chapter_with_analysis(self, repo, mock_neo4j_session):
        stored = ChapterAnalysis(plot=PlotAnalysis(summary="A.")).to_json()
        _returns(
            mock_neo4j_session,
            [{"c": {"id": "c1", "novel_id": "n1", "index": 0, "title": "One", "content": "t", "analysis_json": stored}}],
        )
        chapter = await repo.load_chapter("c1")
        assert chapter.analysis.plot.summary == "A."

    async def test_load_missing_chapter(self, repo):
        with pytest.raises(NotFoundError):
            await repo.load_chapter("ghost")


class TestAnalyses:

    async def test_save_analysis_stores_json(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"id": "c1"}])
        analysis = ChapterAnalysis(plot=PlotAnalysis(summary="A."))

        await repo.save_chapter_analysis("c1", analysis)

        params = mock_neo4j_session.run.call_args.args[1]
        assert json.loads(params["analysis"]) == {
            "plot": {"summary": "A.", "key_events": [], "conflicts": [], "suspense": []}
        }

    async def test_save_analysis_missing_chapter(self, repo):
        with pytest.raises(NotFoundError):
            await repo.save_chapter_analysis("ghost", ChapterAnalysis())

    async def test_clear_analysis_missing_chapter(self, repo):
        with pytest.raises(NotFoundError):
            await repo.clear_chapter_analysis("ghost")


class TestSummaries:

    async def test_missing_summary_is_none(self, repo):
        assert await repo.load_novel_summary("n1") is None

    async def test_load_summary(self, repo, mock_neo4j_session):
        _returns(mock_neo4j_session, [{"content": '{"overall_plot": "A journey."}'}])
        assert await repo.load_novel_summary("n1") == NovelSummary(overall_plot="A journey.")

    async def test_summary_cache_round_trip_params(self, repo, mock_neo4j_session):
        await repo.save_summary_cache("n1", 2, 1, '{"overall_plot": "x"}')
        params = mock_neo4j_session.run.call_args.args[1]
        assert (params["layer"], params["group_index"]) == (2, 1)

        _returns(mock_neo4j_session, [{"content": "a"}, {"content": "b"}])
        assert await repo.load_summary_cache("n1", 1) == ["a", "b"]
