"""Normalize stage: destructive cleanup for development and staging.

Each step stands on its own and commits its own work, so a failure in one
row or step never discards fixes already made:

1. Purge canonical rows whose id is not shaped like a place id.
2. Re-sync every graph city that resolves (inline metadata or provider).
3. Upsert the versioned seed cities.
4. Clear read-model city references that no longer resolve.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from city_sync.canonical.store import (
    delete_malformed_cities,
    nullify_dangling_city_refs,
    upsert_canonical_city,
)
from city_sync.config.environment import require_non_production
from city_sync.config.seeds import load_seed_cities
from city_sync.errors import PersistenceError, PreconditionError
from city_sync.identity.resolver import resolve_graph_row
from city_sync.identity.types import City
from city_sync.identity.validation import is_likely_place_id
from city_sync.models.cards import EventCard, UserCard
from city_sync.pool import run_prioritized
from city_sync.reports import ReportModel, utc_timestamp
from city_sync.runtime import StageContext
from city_sync.stages.common import finish_stage

logger = structlog.get_logger()

STAGE = "normalize"


class NormalizeReport(ReportModel):
    environment: str
    started_at: str
    finished_at: str
    deleted_invalid_cities: int
    synced_from_neo4j: int
    seeded_canonical_cities: int
    nullified_event_card_city_refs: int
    nullified_user_card_city_refs: int


async def _upsert_each(session: AsyncSession, cities: list[City], step: str) -> int:
    """Upsert cities one transaction at a time; returns how many were written."""
    written = 0
    for city in cities:
        try:
            async with session.begin():
                await upsert_canonical_city(session, city)
        except (PersistenceError, PreconditionError) as e:
            logger.warning("normalize_upsert_failed", step=step, city_id=city.id, error=str(e))
            continue
        written += 1
    return written


async def run_normalize(ctx: StageContext) -> NormalizeReport:
    """Run the cleanup steps.

    Raises:
        EnvironmentGuardError: The environment is production.  Raised before
            any store is touched.
        pydantic.ValidationError: The seed file is malformed.  Raised before
            any store is touched.
    """
    require_non_production(ctx.environment, STAGE)
    # A malformed seed file fails here, before any step mutates the store
    seeds = load_seed_cities(ctx.seed_cities_path) if ctx.seed_cities_path else []

    started_at = utc_timestamp()
    print(f"\n[{STAGE}] Starting ({ctx.environment})...")

    async with ctx.session_factory() as session:
        async with session.begin():
            deleted = await delete_malformed_cities(session)

        rows = await ctx.graph.list_graph_cities()
        outcomes = await run_prioritized(
            [row for row in rows if is_likely_place_id(row.id)],
            lambda row: resolve_graph_row(row, ctx.geocoder),
            priority=lambda row: 0,
            max_concurrency=ctx.max_concurrent_resolutions,
        )
        for outcome in outcomes:
            if not outcome.ok:
                logger.debug("normalize_resolve_skipped", city_id=outcome.item.id, error=str(outcome.error))
        synced = await _upsert_each(
            session, [outcome.value for outcome in outcomes if outcome.ok], "sync"
        )

        seeded = await _upsert_each(session, seeds, "seed")

        async with session.begin():
            nullified_events = await nullify_dangling_city_refs(session, EventCard)
        async with session.begin():
            nullified_users = await nullify_dangling_city_refs(session, UserCard)

    report = NormalizeReport(
        environment=ctx.environment,
        started_at=started_at,
        finished_at=utc_timestamp(),
        deleted_invalid_cities=deleted,
        synced_from_neo4j=synced,
        seeded_canonical_cities=seeded,
        nullified_event_card_city_refs=nullified_events,
        nullified_user_card_city_refs=nullified_users,
    )
    finish_stage(
        ctx,
        STAGE,
        report,
        [
            ("deleted invalid city ids", report.deleted_invalid_cities),
            ("synced from neo4j", report.synced_from_neo4j),
            ("canonical seed cities upserted", report.seeded_canonical_cities),
            ("nullified event_card city refs", report.nullified_event_card_city_refs),
            ("nullified user_card city refs", report.nullified_user_card_city_refs),
        ],
    )
    return report
