"""Tests for arq worker settings, task functions and job enqueueing.

All tests use mocked infrastructure (no real Neo4j/Redis).
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from arq.jobs import JobStatus

from app.api.jobs import analysis_job_id, enqueue_unique, summary_job_id
from app.core.exceptions import ConflictError, NoAnalyzedChaptersError
from app.schemas.analysis import NovelSummary
from app.services.batch import BatchResult
from app.workers.settings import ARQ_QUEUE, _parse_redis_settings
from app.workers.tasks import process_batch_analysis, process_novel_summary

# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def mock_ctx(mock_redis):
    """Create a mock arq context dict with all required resources."""
    return {
        "neo4j_driver": AsyncMock(),
        "app_redis": mock_redis,
        "progress": MagicMock(),
        "model_client": MagicMock(),
        "redis": AsyncMock(),  # arq's ArqRedis pool
    }


# ── TestParseRedisSettings ────────────────────────────────────────────────


class TestParseRedisSettings:
    """Tests for _parse_redis_settings()."""

    def test_default_url(self):
        """Parses the default redis URL from settings."""
        rs = _parse_redis_settings()
        assert rs.host in ("localhost", "127.0.0.1")
        assert rs.port == 6379
        assert rs.password == "novellens"
        assert rs.database == 0

    def test_custom_url(self, monkeypatch):
        """Parses a custom redis URL."""
        monkeypatch.setattr(
            "app.workers.settings.settings",
            MagicMock(redis_url="redis://:secret@myhost:6380/2"),
        )
        rs = _parse_redis_settings()
        assert rs.host == "myhost"
        assert rs.port == 6380
        assert rs.password == "secret"
        assert rs.database == 2


# ── TestWorkerSettings ────────────────────────────────────────────────────


class TestWorkerSettings:
    """Tests for the WorkerSettings class configuration."""

    def test_has_required_functions(self):
        from app.workers.settings import WorkerSettings

        func_names = [f.__name__ for f in WorkerSettings.functions]
        assert func_names == ["process_batch_analysis", "process_novel_summary"]

    def test_queue_name(self):
        from app.workers.settings import WorkerSettings

        assert WorkerSettings.queue_name == ARQ_QUEUE == "novellens:arq"


# ── TestProcessBatchAnalysis ──────────────────────────────────────────────


class TestProcessBatchAnalysis:
    """Tests for the process_batch_analysis task."""

    async def test_unanalyzed_chapters_by_default(self, mock_ctx):
        with (
            patch("app.workers.tasks.NovelRepository"),
            patch("app.workers.tasks.BatchScheduler") as mock_scheduler_cls,
        ):
            scheduler = mock_scheduler_cls.return_value
            scheduler.analyze_unanalyzed = AsyncMock(
                return_value=BatchResult(novel_id="n1", total=4, completed=4),
            )
            scheduler.analyze_selected = AsyncMock()

            result = await process_batch_analysis(mock_ctx, "n1")

        scheduler.analyze_unanalyzed.assert_awaited_once_with("n1")
        scheduler.analyze_selected.assert_not_called()
        assert result == {"novel_id": "n1", "total": 4, "completed": 4, "cancelled": False}

    async def test_selected_chapters(self, mock_ctx):
        with (
            patch("app.workers.tasks.NovelRepository"),
            patch("app.workers.tasks.BatchScheduler") as mock_scheduler_cls,
        ):
            scheduler = mock_scheduler_cls.return_value
            scheduler.analyze_selected = AsyncMock(
                return_value=BatchResult(novel_id="n1", total=2, completed=1, cancelled=True),
            )

            result = await process_batch_analysis(mock_ctx, "n1", ["c1", "c2"])

        scheduler.analyze_selected.assert_awaited_once_with("n1", ["c1", "c2"])
        assert result["cancelled"] is True
        assert result["completed"] == 1

    async def test_scheduler_wired_to_worker_resources(self, mock_ctx):
        from app.config import settings

        with (
            patch("app.workers.tasks.NovelRepository") as mock_repo_cls,
            patch("app.workers.tasks.BatchScheduler") as mock_scheduler_cls,
        ):
            mock_scheduler_cls.return_value.analyze_unanalyzed = AsyncMock(
                return_value=BatchResult(novel_id="n1", total=0, completed=0),
            )
            await process_batch_analysis(mock_ctx, "n1")

        mock_repo_cls.assert_called_once_with(mock_ctx["neo4j_driver"])
        kwargs = mock_scheduler_cls.call_args.kwargs
        assert kwargs["progress"] is mock_ctx["progress"]
        assert kwargs["concurrency"] == settings.batch_concurrency
        assert kwargs["cancel_flag"].redis is mock_ctx["app_redis"]

    async def test_batch_failure_propagates(self, mock_ctx):
        with (
            patch("app.workers.tasks.NovelRepository"),
            patch("app.workers.tasks.BatchScheduler") as mock_scheduler_cls,
        ):
            mock_scheduler_cls.return_value.analyze_unanalyzed = AsyncMock(
                side_effect=RuntimeError("model down"),
            )
            with pytest.raises(RuntimeError, match="model down"):
                await process_batch_analysis(mock_ctx, "n1")


# ── TestProcessNovelSummary ───────────────────────────────────────────────


class TestProcessNovelSummary:
    """Tests for the process_novel_summary task."""

    async def test_returns_summary(self, mock_ctx):
        with (
            patch("app.workers.tasks.NovelRepository"),
            patch("app.workers.tasks.SummaryReducer") as mock_reducer_cls,
        ):
            mock_reducer_cls.return_value.generate = AsyncMock(
                return_value=NovelSummary(overall_plot="A journey."),
            )
            result = await process_novel_summary(mock_ctx, "n1")

        mock_reducer_cls.return_value.generate.assert_awaited_once_with("n1")
        assert result["novel_id"] == "n1"
        assert result["summary"]["overall_plot"] == "A journey."

    async def test_no_analyzed_chapters_fails_job(self, mock_ctx):
        with (
            patch("app.workers.tasks.NovelRepository"),
            patch("app.workers.tasks.SummaryReducer") as mock_reducer_cls,
        ):
            mock_reducer_cls.return_value.generate = AsyncMock(
                side_effect=NoAnalyzedChaptersError("nothing analyzed"),
            )
            with pytest.raises(NoAnalyzedChaptersError):
                await process_novel_summary(mock_ctx, "n1")


# ── TestEnqueueUnique ─────────────────────────────────────────────────────


class TestEnqueueUnique:
    """Tests for per-novel job uniqueness."""

    def test_job_ids(self):
        assert analysis_job_id("n1") == "analyze:n1"
        assert summary_job_id("n1") == "summary:n1"

    async def test_enqueues_with_fixed_id(self):
        pool = AsyncMock()
        with patch("app.api.jobs.Job") as mock_job_cls:
            mock_job_cls.return_value.status = AsyncMock(return_value=JobStatus.not_found)
            job = await enqueue_unique(pool, "process_novel_summary", "summary:n1", "n1")

        pool.enqueue_job.assert_awaited_once_with(
            "process_novel_summary",
            "n1",
            _queue_name=ARQ_QUEUE,
            _job_id="summary:n1",
        )
        pool.delete.assert_not_called()
        assert job is pool.enqueue_job.return_value

    async def test_finished_result_dropped_before_rerun(self):
        pool = AsyncMock()
        with patch("app.api.jobs.Job") as mock_job_cls:
            mock_job_cls.return_value.status = AsyncMock(return_value=JobStatus.complete)
            await enqueue_unique(pool, "process_batch_analysis", "analyze:n1", "n1", None)

        pool.delete.assert_awaited_once_with("arq:result:analyze:n1")
        pool.enqueue_job.assert_awaited_once()

    async def test_running_job_conflicts(self):
        pool = AsyncMock()
        pool.enqueue_job.return_value = None
        with patch("app.api.jobs.Job") as mock_job_cls:
            mock_job_cls.return_value.status = AsyncMock(return_value=JobStatus.in_progress)
            with pytest.raises(ConflictError):
                await enqueue_unique(pool, "process_batch_analysis", "analyze:n1", "n1", None)
        pool.delete.assert_not_called()

    async def test_stale_state_reset_when_no_job_pending(self):
        pool = AsyncMock()
        reset = AsyncMock()
        with patch("app.api.jobs.Job") as mock_job_cls:
            mock_job_cls.return_value.status = AsyncMock(return_value=JobStatus.complete)
            await enqueue_unique(pool, "process_batch_analysis", "analyze:n1", "n1", None, on_fresh=reset)

        reset.assert_awaited_once()
        assert pool.enqueue_job.call_args.args == ("process_batch_analysis", "n1", None)

    async def test_pending_job_state_left_alone(self):
        pool = AsyncMock()
        pool.enqueue_job.return_value = None
        reset = AsyncMock()
        with patch("app.api.jobs.Job") as mock_job_cls:
            mock_job_cls.return_value.status = AsyncMock(return_value=JobStatus.queued)
            with pytest.raises(ConflictError):
                await enqueue_unique(pool, "process_batch_analysis", "analyze:n1", "n1", None, on_fresh=reset)

        reset.assert_not_called()
