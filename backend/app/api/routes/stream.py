"""SSE streaming endpoints for real-time analysis progress.

Relays the progress and model-output channels of a novel from Redis
pub/sub as Server-Sent Events.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from app.api.dependencies import get_redis
from app.core.logging import get_logger
from app.schemas.progress import TERMINAL_STATUSES
from app.services.progress import progress_channel, stream_channel

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)
router = APIRouter(prefix="/stream", tags=["stream"])


@router.get("/analysis/{novel_id}")
async def stream_analysis_progress(
    novel_id: str,
    redis: Redis = Depends(get_redis),
) -> EventSourceResponse:
    """Stream analysis and summary progress as SSE events.

    Subscribes to `novellens:progress:{novel_id}` and
    `novellens:stream:{novel_id}`.

    Events:
      - `progress`: a ProgressEvent (status, current, total, message)
      - `chunk`: a StreamChunk of model output for one chapter
      - `keepalive`: periodic heartbeat to prevent timeout

    The stream ends after the first `batch_done`, `batch_cancelled`,
    `error` or `summary_done` event.
    """
    progress_ch = progress_channel(novel_id)
    chunk_ch = stream_channel(novel_id)

    async def event_generator():
        pubsub = redis.pubsub()
        await pubsub.subscribe(progress_ch, chunk_ch)

        try:
            while True:
                msg = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=5.0,
                )

                if not msg or msg["type"] != "message":
                    yield {"event": "keepalive", "data": "{}"}
                    continue

                if msg["channel"] == chunk_ch:
                    yield {"event": "chunk", "data": msg["data"]}
                    continue

                yield {"event": "progress", "data": msg["data"]}
                status = json.loads(msg["data"]).get("status", "")
                if status in TERMINAL_STATUSES:
                    logger.debug("analysis_stream_finished", novel_id=novel_id, status=status)
                    break
        finally:
            await pubsub.unsubscribe(progress_ch, chunk_ch)
            await pubsub.aclose()

    return EventSourceResponse(event_generator())
