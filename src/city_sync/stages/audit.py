"""Audit stage: read-only snapshot of parity between the two stores.

Computes:
1. Graph city ids with no canonical row, including graph rows refused at
   the parse boundary.
2. Canonical rows that fail the resolved predicate.
3. Referenced graph cities with no canonical row, most referenced first --
   the follow-up worklist for backfill.
"""

from __future__ import annotations

import structlog

from city_sync.canonical.store import list_canonical_cities
from city_sync.identity.types import priority_key
from city_sync.identity.validation import is_resolved
from city_sync.reports import ReportModel, utc_timestamp
from city_sync.runtime import StageContext
from city_sync.stages.common import finish_stage, graph_city_ids

logger = structlog.get_logger()

STAGE = "audit"


class ReferencedCity(ReportModel):
    city_id: str
    event_refs: int
    user_refs: int


class RejectedGraphRow(ReportModel):
    city_id: str
    reason: str


class AuditReport(ReportModel):
    environment: str
    created_at: str
    neo4j_city_count: int
    postgres_city_count: int
    missing_in_postgres: list[str]
    unresolved_in_postgres: list[str]
    referenced_but_missing: list[ReferencedCity]
    rejected_graph_rows: list[RejectedGraphRow] = []


async def run_audit(ctx: StageContext) -> AuditReport:
    """Diff graph and canonical ids and write the audit report.  No writes."""
    created_at = utc_timestamp()
    graph_rows = await ctx.graph.list_graph_cities_with_refs()
    rejected = list(ctx.graph.rejected)

    async with ctx.session_factory() as session:
        canonical = await list_canonical_cities(session)

    graph_ids = graph_city_ids(graph_rows, rejected)
    canonical_ids = {city.id for city in canonical}

    referenced = sorted(
        (
            row
            for row in graph_rows
            if row.id and row.id not in canonical_ids and row.total_refs > 0
        ),
        key=priority_key,
    )

    report = AuditReport(
        environment=ctx.environment,
        created_at=created_at,
        neo4j_city_count=len(graph_ids),
        postgres_city_count=len(canonical),
        missing_in_postgres=[place_id for place_id in graph_ids if place_id not in canonical_ids],
        unresolved_in_postgres=[city.id for city in canonical if not is_resolved(city)],
        referenced_but_missing=[
            ReferencedCity(city_id=row.id, event_refs=row.event_refs, user_refs=row.user_refs)
            for row in referenced
        ],
        rejected_graph_rows=[
            RejectedGraphRow(city_id=r.raw_id, reason=r.reason) for r in rejected
        ],
    )

    logger.info(
        "audit_complete",
        missing_in_postgres=len(report.missing_in_postgres),
        unresolved_in_postgres=len(report.unresolved_in_postgres),
    )
    finish_stage(
        ctx,
        STAGE,
        report,
        [
            ("neo4j city count", report.neo4j_city_count),
            ("postgres city count", report.postgres_city_count),
            ("missing in postgres", len(report.missing_in_postgres)),
            ("unresolved in postgres", len(report.unresolved_in_postgres)),
            ("referenced missing in postgres", len(report.referenced_but_missing)),
            ("rejected graph rows", len(report.rejected_graph_rows)),
        ],
    )
    return report
