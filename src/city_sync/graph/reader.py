"""Snapshot reads of city nodes from the Neo4j graph store."""

from __future__ import annotations

from types import TracebackType
from typing import Protocol

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase

from city_sync.graph.parsing import AcceptedRow, RejectedRow, parse_graph_row
from city_sync.identity.types import GraphCityRow, priority_key

logger = structlog.get_logger()

LIST_CITIES_QUERY = """
MATCH (c:City)
RETURN
  c.id AS id,
  c.name AS name,
  c.countryCode AS countryCode,
  c.region AS region,
  c.timezone AS timezone,
  c.latitude AS latitude,
  c.longitude AS longitude
"""

LIST_CITIES_WITH_REFS_QUERY = """
MATCH (c:City)
OPTIONAL MATCH (e:Event)-[:IN]->(c)
WITH c, count(DISTINCT e) AS eventRefs
OPTIONAL MATCH (u:User)-[:LOCATED_IN]->(c)
WITH c, eventRefs, count(DISTINCT u) AS userRefs
RETURN
  c.id AS id,
  c.name AS name,
  c.countryCode AS countryCode,
  c.region AS region,
  c.timezone AS timezone,
  c.latitude AS latitude,
  c.longitude AS longitude,
  eventRefs,
  userRefs
ORDER BY eventRefs + userRefs DESC, c.name ASC
"""


class GraphReader(Protocol):
    """What the stages need from the graph store."""

    rejected: list[RejectedRow]

    async def list_graph_cities(self) -> list[GraphCityRow]: ...

    async def list_graph_cities_with_refs(self) -> list[GraphCityRow]: ...


class Neo4jGraphReader:
    """Graph store reader with an explicit lifecycle.

    The reader owns its driver: call ``close()`` (or use ``async with``)
    once the stage is done.  ``rejected`` holds the records refused by the
    parse boundary during the most recent read.
    """

    def __init__(self, driver: AsyncDriver, database: str | None = None) -> None:
        self._driver = driver
        self._database = database
        self.rejected: list[RejectedRow] = []

    @classmethod
    def connect(
        cls, uri: str, user: str, password: str, database: str | None = None
    ) -> Neo4jGraphReader:
        driver = AsyncGraphDatabase.driver(uri, auth=(user, password))
        return cls(driver, database=database)

    async def __aenter__(self) -> Neo4jGraphReader:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._driver.close()

    async def _fetch(self, query: str) -> list[dict]:
        async with self._driver.session(database=self._database) as session:
            result = await session.run(query)
            return await result.data()

    async def _read(self, query: str) -> list[GraphCityRow]:
        records = await self._fetch(query)
        rows: list[GraphCityRow] = []
        rejected: list[RejectedRow] = []
        for record in records:
            parsed = parse_graph_row(record)
            if isinstance(parsed, AcceptedRow):
                rows.append(parsed.row)
            else:
                rejected.append(parsed)
                logger.warning("graph_row_rejected", city_id=parsed.raw_id, reason=parsed.reason)

        self.rejected = rejected
        logger.info("graph_cities_read", rows=len(rows), rejected=len(rejected))
        return rows

    async def list_graph_cities(self) -> list[GraphCityRow]:
        """All city nodes in the store's default order."""
        return await self._read(LIST_CITIES_QUERY)

    async def list_graph_cities_with_refs(self) -> list[GraphCityRow]:
        """City nodes with event/user reference counts, in backfill priority order."""
        rows = await self._read(LIST_CITIES_WITH_REFS_QUERY)
        # Re-sort so the priority holds regardless of the store's collation
        return sorted(rows, key=priority_key)
