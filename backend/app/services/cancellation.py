"""Cooperative cancellation flags for batch analysis.

One writer (the cancel endpoint) sets the flag; the batch scheduler reads
it before each dispatch and clears it once the cancellation is reported.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from redis.asyncio import Redis

# A flag nobody consumes (no batch running) expires on its own
CANCEL_TTL_SECONDS = 3600


def cancel_key(novel_id: str) -> str:
    return f"novellens:cancel:{novel_id}"


class CancellationFlag:
    """In-process flag, for batches running in the same event loop as the canceller."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    async def is_set(self) -> bool:
        return self._event.is_set()

    async def set(self) -> None:
        self._event.set()

    async def clear(self) -> None:
        self._event.clear()


class RedisCancellationFlag(CancellationFlag):
    """Flag stored in Redis so an API process can cancel a batch running in a worker."""

    def __init__(self, redis: Redis, novel_id: str) -> None:
        self.redis = redis
        self.key = cancel_key(novel_id)

    async def is_set(self) -> bool:
        return bool(await self.redis.exists(self.key))

    async def set(self) -> None:
        await self.redis.set(self.key, "1", ex=CANCEL_TTL_SECONDS)

    async def clear(self) -> None:
        await self.redis.delete(self.key)
