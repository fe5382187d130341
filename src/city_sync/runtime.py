"""Explicitly constructed store clients shared by a single stage run.

``open_stage_context`` builds the canonical store engine, the graph reader
and the geocoding client once at startup and closes all of them when the
run ends.  Stages receive the resulting ``StageContext``; nothing is kept in
module-level state.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from city_sync.config.environment import Environment, resolve_environment
from city_sync.config.settings import Settings
from city_sync.db.engine import create_engine
from city_sync.db.session import create_session_factory
from city_sync.geocoding.client import GooglePlacesClient
from city_sync.graph.reader import GraphReader, Neo4jGraphReader
from city_sync.identity.resolver import Geocoder

logger = structlog.get_logger()


@dataclass
class StageContext:
    environment: Environment
    session_factory: async_sessionmaker[AsyncSession]
    graph: GraphReader
    geocoder: Geocoder
    reports_dir: Path
    seed_cities_path: Path | None = None
    city_autofix_low_risk: bool = False
    max_concurrent_resolutions: int = 4


@asynccontextmanager
async def open_stage_context(settings: Settings) -> AsyncGenerator[StageContext, None]:
    """Open every store client for one stage run and close them afterwards.

    Connections are established lazily, so an environment guard raised by
    the stage still fires before any store is touched.
    """
    environment = resolve_environment(settings.app_env, settings.node_env)
    engine = create_engine(settings.database_url)
    graph = Neo4jGraphReader.connect(
        settings.neo4j_uri,
        settings.neo4j_user,
        settings.neo4j_password,
        database=settings.neo4j_database,
    )
    geocoder = GooglePlacesClient(
        settings.google_places_api_key,
        settings.timezone_api_key,
        timeout_seconds=settings.geocoding_timeout_seconds,
        retries=settings.geocoding_retries,
    )
    logger.info(
        "stage_context_opened",
        environment=environment,
        database=settings.database_url.split("@")[-1],
        neo4j=settings.neo4j_uri,
    )
    try:
        yield StageContext(
            environment=environment,
            session_factory=create_session_factory(engine),
            graph=graph,
            geocoder=geocoder,
            reports_dir=settings.reports_dir,
            seed_cities_path=settings.seed_cities_path,
            city_autofix_low_risk=settings.city_autofix_low_risk,
            max_concurrent_resolutions=settings.max_concurrent_resolutions,
        )
    finally:
        await geocoder.aclose()
        await graph.close()
        await engine.dispose()
        logger.info("stage_context_closed")
