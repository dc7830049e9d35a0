"""Base repository for Neo4j data access.

Repositories inherit query execution from this class:
- one async session per query
- parameterized Cypher only (labels are checked against a whitelist)
- writes retried on transient cluster errors
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.core.logging import get_logger
from app.core.resilience import retry_neo4j_write

if TYPE_CHECKING:
    from neo4j import AsyncDriver

logger = get_logger(__name__)

# Node labels this service stores; anything else is rejected before it
# reaches an f-string query.
NODE_LABELS = frozenset({"Novel", "Chapter", "NovelSummary", "SummaryCache"})


class Neo4jRepository:
    """Query helpers shared by the Neo4j repositories."""

    def __init__(self, driver: AsyncDriver) -> None:
        self.driver = driver

    @staticmethod
    def _checked_label(label: str) -> str:
        if label not in NODE_LABELS:
            raise ValueError(f"Invalid Neo4j label: {label!r}")
        return label

    async def execute_read(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a read query and return its records as dicts."""
        async with self.driver.session() as session:
            result = await session.run(query, parameters or {})
            records = await result.data()
        logger.debug("neo4j_read", query=query.strip()[:80], result_count=len(records))
        return records

    @retry_neo4j_write(max_attempts=4)
    async def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a write query and return the records of its RETURN clause.

        Retried on ``TransientError`` only; other driver errors propagate.
        """
        async with self.driver.session() as session:
            result = await session.run(query, parameters or {})
            records = await result.data()
            counters = (await result.consume()).counters
        logger.debug(
            "neo4j_write",
            query=query.strip()[:80],
            nodes_created=counters.nodes_created,
            nodes_deleted=counters.nodes_deleted,
            properties_set=counters.properties_set,
        )
        return records

    async def node_exists(self, label: str, node_id: str) -> bool:
        """Whether a node with this label and ``id`` property exists."""
        safe_label = self._checked_label(label)
        result = await self.execute_read(
            f"MATCH (n:{safe_label} {{id: $id}}) RETURN count(n) > 0 AS exists",
            {"id": node_id},
        )
        return bool(result and result[0]["exists"])
