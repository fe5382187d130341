"""Backfill stage: create canonical rows for graph cities that lack one.

Rows are processed in priority order (most referenced first).  Each row is
either rejected up front, accepted from its own metadata, or resolved
through the geocoding provider.  Every resolved city is then written in a
single transaction: all of them commit, or none do.
"""

from __future__ import annotations

import structlog

from city_sync.canonical.store import upsert_canonical_city
from city_sync.identity.resolver import resolve_graph_row
from city_sync.identity.types import City, GraphCityRow, priority_key
from city_sync.identity.validation import is_likely_place_id
from city_sync.pool import run_prioritized
from city_sync.reports import ReportModel, utc_timestamp
from city_sync.runtime import StageContext
from city_sync.stages.common import finish_stage

logger = structlog.get_logger()

STAGE = "backfill"

MISSING_CITY_ID = "missing_city_id"
INVALID_PLACE_ID_FORMAT = "invalid_place_id_format"


class UnresolvedCity(ReportModel):
    id: str
    name: str
    reason: str
    event_refs: int
    user_refs: int


class BackfillReport(ReportModel):
    environment: str
    started_at: str
    finished_at: str
    total_neo4j_cities: int
    attempted_place_ids: int
    resolved_cities: int
    unresolved_cities: list[UnresolvedCity]


def _unresolved(row: GraphCityRow, reason: str) -> tuple[GraphCityRow, str]:
    logger.info("backfill_row_unresolved", city_id=row.id, name=row.name, reason=reason)
    return row, reason


async def run_backfill(ctx: StageContext) -> BackfillReport:
    """Resolve missing graph cities and upsert them in one batch transaction.

    Raises:
        PersistenceError: An upsert failed; the whole batch was rolled back.
    """
    started_at = utc_timestamp()
    print(f"\n[{STAGE}] Starting city backfill ({ctx.environment})...")

    rows = await ctx.graph.list_graph_cities_with_refs()
    unresolved: list[tuple[GraphCityRow, str]] = [
        _unresolved(GraphCityRow(id=r.raw_id), r.reason) for r in ctx.graph.rejected
    ]

    candidates: list[GraphCityRow] = []
    for row in rows:
        if not row.id:
            unresolved.append(_unresolved(row, MISSING_CITY_ID))
        elif not is_likely_place_id(row.id):
            unresolved.append(_unresolved(row, INVALID_PLACE_ID_FORMAT))
        else:
            candidates.append(row)

    outcomes = await run_prioritized(
        candidates,
        lambda row: resolve_graph_row(row, ctx.geocoder),
        priority=priority_key,
        max_concurrency=ctx.max_concurrent_resolutions,
    )

    resolved: list[City] = []
    for outcome in outcomes:
        if outcome.ok:
            resolved.append(outcome.value)
        else:
            unresolved.append(_unresolved(outcome.item, str(outcome.error) or "resolve_failed"))

    async with ctx.session_factory() as session:
        async with session.begin():
            for city in resolved:
                await upsert_canonical_city(session, city)
    logger.info("backfill_batch_committed", upserted=len(resolved))

    report = BackfillReport(
        environment=ctx.environment,
        started_at=started_at,
        finished_at=utc_timestamp(),
        total_neo4j_cities=len(rows) + len(ctx.graph.rejected),
        attempted_place_ids=len(candidates),
        resolved_cities=len(resolved),
        unresolved_cities=[
            UnresolvedCity(
                id=row.id,
                name=row.name,
                reason=reason,
                event_refs=row.event_refs,
                user_refs=row.user_refs,
            )
            for row, reason in sorted(unresolved, key=lambda item: priority_key(item[0]))
        ],
    )
    finish_stage(
        ctx,
        STAGE,
        report,
        [
            ("total neo4j cities", report.total_neo4j_cities),
            ("attempted place ids", report.attempted_place_ids),
            ("resolved/upserted", report.resolved_cities),
            ("unresolved", len(report.unresolved_cities)),
        ],
    )
    return report
