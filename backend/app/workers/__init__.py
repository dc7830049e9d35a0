"""arq background task workers for NovelLens.

Entry point:
    arq app.workers.settings.WorkerSettings

Tasks:
    process_batch_analysis: Concurrent chapter analysis with cancellation
    process_novel_summary: Hierarchical book summary reduction
"""

from app.workers.settings import WorkerSettings
from app.workers.tasks import process_batch_analysis, process_novel_summary

__all__ = [
    "WorkerSettings",
    "process_batch_analysis",
    "process_novel_summary",
]
