"""Progress reporting sinks.

The analysis pipeline reports through a ProgressSink and never reads events
back. Delivery is best-effort: a failing sink is logged and the pipeline
carries on.

Redis channels (consumed by the SSE endpoint):
    novellens:progress:{novel_id}  ProgressEvent JSON
    novellens:stream:{novel_id}    StreamChunk JSON
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.logging import get_logger
from app.schemas.progress import ProgressEvent, StreamChunk

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)


def progress_channel(novel_id: str) -> str:
    return f"novellens:progress:{novel_id}"


def stream_channel(novel_id: str) -> str:
    return f"novellens:stream:{novel_id}"


class ProgressSink:
    """Sink that discards everything; subclasses deliver somewhere."""

    async def emit(self, event: ProgressEvent) -> None:
        return None

    async def emit_chunk(self, chunk: StreamChunk) -> None:
        return None


class RedisProgressPublisher(ProgressSink):
    """Publishes progress and stream chunks to Redis pub/sub."""

    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    async def emit(self, event: ProgressEvent) -> None:
        try:
            await self.redis.publish(progress_channel(event.novel_id), event.model_dump_json())
        except Exception as exc:
            logger.warning(
                "progress_publish_failed",
                novel_id=event.novel_id,
                status=event.status.value,
                error=str(exc),
            )

    async def emit_chunk(self, chunk: StreamChunk) -> None:
        try:
            await self.redis.publish(stream_channel(chunk.novel_id), chunk.model_dump_json())
        except Exception as exc:
            logger.debug("stream_chunk_publish_failed", novel_id=chunk.novel_id, error=str(exc))


class CollectingProgressSink(ProgressSink):
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []
        self.chunks: list[StreamChunk] = []

    async def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    async def emit_chunk(self, chunk: StreamChunk) -> None:
        self.chunks.append(chunk)

    def statuses(self) -> list[str]:
        return [e.status.value for e in self.events]
