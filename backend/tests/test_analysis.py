"""Tests for app.services.analysis (single chapter analysis runner)."""

from __future__ import annotations

import asyncio
import json

import pytest

from app.core.exceptions import BudgetExceededError, LLMTransportError, ResponseParseError, ValidationError
from app.core.logging import chapter_id_var, novel_id_var
from app.prompts.chapter_analysis import DIMENSION_INSTRUCTIONS
from app.schemas.analysis import AnalysisDimension, ChapterAnalysis, LLMConfig
from app.services.analysis import ChapterAnalyzer

PLOT = [AnalysisDimension.PLOT]


def _plot_json(summary: str) -> str:
    return json.dumps({"plot": {"summary": summary, "key_events": [{"event": summary}]}})


@pytest.fixture
def analyzer(mock_repo, mock_model_client, llm_config, progress_sink, make_chapter, make_novel):
    mock_repo.load_chapter.return_value = make_chapter()
    mock_repo.get_novel.return_value = make_novel()
    return ChapterAnalyzer(mock_repo, mock_model_client, llm_config, progress=progress_sink)


class TestWholeChapter:

    async def test_analyzes_and_saves(self, analyzer, mock_repo, mock_model_client, sample_analysis_json):
        mock_model_client.call_stream.return_value = sample_analysis_json

        result = await analyzer.analyze("c1", PLOT)

        assert isinstance(result, ChapterAnalysis)
        assert result.plot.summary == "Alice falls down the rabbit hole."
        mock_model_client.call_stream.assert_awaited_once()
        mock_repo.save_chapter_analysis.assert_awaited_once_with("c1", result)

    async def test_progress_events(self, analyzer, mock_model_client, progress_sink):
        mock_model_client.call_stream.return_value = _plot_json("A.")

        await analyzer.analyze("c1", PLOT)

        assert progress_sink.statuses() == ["analyzing", "chapter_analyzed"]
        assert [(e.current, e.total) for e in progress_sink.events] == [(0, 1), (1, 1)]
        assert all(e.chapter_id == "c1" and e.novel_id == "n1" for e in progress_sink.events)

    async def test_stream_chunks_forwarded(self, analyzer, mock_model_client, progress_sink):
        async def fake_stream(prompt, config, on_chunk=None):
            await on_chunk("{", "{")
            return _plot_json("A.")

        mock_model_client.call_stream.side_effect = fake_stream

        await analyzer.analyze("c1", PLOT)

        assert len(progress_sink.chunks) == 1
        assert progress_sink.chunks[0].chapter_id == "c1"
        assert progress_sink.chunks[0].full_content == "{"

    async def test_defaults_to_novel_dimensions(self, analyzer, mock_repo, mock_model_client, make_novel):
        mock_repo.get_novel.return_value = make_novel(dimensions=[AnalysisDimension.THEMES])
        mock_model_client.call_stream.return_value = '{"themes": {"motifs": ["home"]}}'

        await analyzer.analyze("c1")

        mock_repo.get_novel.assert_awaited_once_with("n1")
        prompt = mock_model_client.call_stream.call_args.args[0]
        assert DIMENSION_INSTRUCTIONS[AnalysisDimension.THEMES] in prompt
        assert DIMENSION_INSTRUCTIONS[AnalysisDimension.PLOT] not in prompt

    async def test_context_vars_reset(self, analyzer, mock_model_client):
        mock_model_client.call_stream.return_value = _plot_json("A.")
        await analyzer.analyze("c1", PLOT)
        assert novel_id_var.get() is None
        assert chapter_id_var.get() is None


class TestFailures:

    async def test_empty_dimensions_rejected(self, analyzer, mock_model_client):
        with pytest.raises(ValidationError):
            await analyzer.analyze("c1", [])
        mock_model_client.call_stream.assert_not_called()

    async def test_parse_error_saves_nothing(self, analyzer, mock_repo, mock_model_client, progress_sink):
        mock_model_client.call_stream.return_value = "I cannot do that."

        with pytest.raises(ResponseParseError):
            await analyzer.analyze("c1", PLOT)

        mock_repo.save_chapter_analysis.assert_not_called()
        assert "chapter_analyzed" not in progress_sink.statuses()

    async def test_transport_error_propagates(self, analyzer, mock_repo, mock_model_client):
        mock_model_client.call_stream.side_effect = LLMTransportError("down")

        with pytest.raises(LLMTransportError):
            await analyzer.analyze("c1", PLOT)
        mock_repo.save_chapter_analysis.assert_not_called()


# 300 tokens per paragraph; six of them overflow a 1500-token window
LONG_CHAPTER = "\n\n".join("你" * 200 for _ in range(6))


@pytest.fixture
def small_window_analyzer(mock_repo, mock_model_client, progress_sink, make_chapter):
    mock_repo.load_chapter.return_value = make_chapter(content=LONG_CHAPTER)
    config = LLMConfig(base_url="http://llm.test/v1", max_context_tokens=2000, max_output_tokens=500)
    # Segment budget: 2000 - 500 - 1000 = 500 tokens, one paragraph per segment
    return ChapterAnalyzer(mock_repo, mock_model_client, config, progress=progress_sink, template_overhead=1000)


class TestSegmentedChapter:

    async def test_segments_analyzed_in_order_and_merged(
        self, small_window_analyzer, mock_repo, mock_model_client
    ):
        mock_model_client.call_stream.side_effect = [_plot_json(f"S{i}.") for i in range(1, 7)]

        result = await small_window_analyzer.analyze("c1", PLOT)

        assert mock_model_client.call_stream.await_count == 6
        assert result.plot.summary == "S1. S2. S3. S4. S5. S6."
        assert [e.event for e in result.plot.key_events] == [f"S{i}." for i in range(1, 7)]
        mock_repo.save_chapter_analysis.assert_awaited_once_with("c1", result)

    async def test_segment_prompts_carry_position(self, small_window_analyzer, mock_model_client):
        mock_model_client.call_stream.side_effect = [_plot_json("S.") for _ in range(6)]

        await small_window_analyzer.analyze("c1", PLOT)

        prompts = [c.args[0] for c in mock_model_client.call_stream.call_args_list]
        assert "part 1 of 6" in prompts[0]
        assert "part 6 of 6" in prompts[5]

    async def test_segment_progress_events(self, small_window_analyzer, mock_model_client, progress_sink):
        mock_model_client.call_stream.side_effect = [_plot_json("S.") for _ in range(6)]

        await small_window_analyzer.analyze("c1", PLOT)

        assert progress_sink.statuses() == [
            *["analyzing_segment"] * 6,
            "merging_segments",
            "chapter_analyzed",
        ]
        segment_events = progress_sink.events[:6]
        assert [(e.current, e.total) for e in segment_events] == [(i, 6) for i in range(1, 7)]

    async def test_segment_failure_aborts_chapter(self, small_window_analyzer, mock_repo, mock_model_client):
        mock_model_client.call_stream.side_effect = [_plot_json("S1."), "not json"]

        with pytest.raises(ResponseParseError):
            await small_window_analyzer.analyze("c1", PLOT)

        assert mock_model_client.call_stream.await_count == 2
        mock_repo.save_chapter_analysis.assert_not_called()

    async def test_zero_segment_budget_raises(self, mock_repo, mock_model_client, make_chapter):
        mock_repo.load_chapter.return_value = make_chapter(content=LONG_CHAPTER)
        config = LLMConfig(base_url="http://llm.test/v1", max_context_tokens=1000, max_output_tokens=500)
        analyzer = ChapterAnalyzer(mock_repo, mock_model_client, config, template_overhead=600)

        with pytest.raises(BudgetExceededError):
            await analyzer.analyze("c1", PLOT)
        mock_model_client.call_stream.assert_not_called()
        mock_repo.save_chapter_analysis.assert_not_called()


class TestPerChapterLock:

    async def test_same_chapter_serialized(self, analyzer, mock_model_client):
        active = 0
        peak = 0

        async def slow_stream(prompt, config, on_chunk=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _plot_json("A.")

        mock_model_client.call_stream.side_effect = slow_stream

        await asyncio.gather(analyzer.analyze("c1", PLOT), analyzer.analyze("c1", PLOT))
        assert peak == 1

    async def test_different_chapters_run_in_parallel(self, analyzer, mock_repo, mock_model_client, make_chapter):
        mock_repo.load_chapter.side_effect = lambda cid: make_chapter(chapter_id=cid)
        active = 0
        peak = 0

        async def slow_stream(prompt, config, on_chunk=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _plot_json("A.")

        mock_model_client.call_stream.side_effect = slow_stream

        await asyncio.gather(analyzer.analyze("c1", PLOT), analyzer.analyze("c2", PLOT))
        assert peak == 2
