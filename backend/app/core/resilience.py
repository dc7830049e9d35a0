"""Retry policy for storage writes.

Model calls are deliberately single-attempt; only Neo4j writes retry, and
only on transient errors such as deadlocks between concurrent chapter saves.
"""

from __future__ import annotations

from neo4j.exceptions import TransientError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.core.logging import get_logger

logger = get_logger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    logger.warning(
        "retry_attempt",
        attempt=retry_state.attempt_number,
        wait=getattr(retry_state.next_action, "sleep", None),
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


def retry_neo4j_write(max_attempts: int = 4, initial_wait: float = 0.2):
    """Retry decorator for Neo4j write operations on transient errors.

    Catches DeadlockDetected and other TransientErrors raised when several
    chapter analyses of the same novel are saved concurrently.
    Uses jittered backoff to prevent thundering herd.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=initial_wait, max=10, jitter=2),
        retry=retry_if_exception_type(TransientError),
        before_sleep=_log_retry,
        reraise=True,
    )
