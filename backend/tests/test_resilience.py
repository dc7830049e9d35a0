"""Tests for app.core.resilience (Neo4j write retry)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from neo4j.exceptions import ClientError, TransientError

from app.core.resilience import retry_neo4j_write


class TestRetryNeo4jWrite:

    async def test_retries_transient_error(self):
        call_count = 0

        @retry_neo4j_write(max_attempts=3)
        async def flaky():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TransientError("deadlock detected")
            return "ok"

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await flaky()
        assert result == "ok"
        assert call_count == 3

    async def test_no_retry_on_client_error(self):
        """Non-transient driver errors raise immediately."""
        call_count = 0

        @retry_neo4j_write(max_attempts=3)
        async def bad():
            nonlocal call_count
            call_count += 1
            raise ClientError("syntax error")

        with pytest.raises(ClientError):
            await bad()
        assert call_count == 1

    async def test_no_retry_on_value_error(self):
        @retry_neo4j_write(max_attempts=3)
        async def bad():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await bad()

    async def test_max_attempts_exceeded(self):
        """After max_attempts, the last error is reraised."""
        call_count = 0

        @retry_neo4j_write(max_attempts=2)
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise TransientError("always")

        with (
            pytest.raises(TransientError),
            patch("asyncio.sleep", new_callable=AsyncMock),
        ):
            await always_fails()
        assert call_count == 2
