"""Shadow reconcile stage: field drift between matched graph and canonical rows.

Compares country code, region and timezone for every graph city that has a
canonical row.  With ``apply`` set, each mismatched field takes the graph
value when it is non-empty and keeps the canonical value otherwise, so a
populated canonical field is never blanked.  Graph cities without a
canonical row (rows refused at the parse boundary included) are only
reported.
"""

from __future__ import annotations

import structlog

from city_sync.canonical.store import apply_low_risk_patch, list_canonical_cities
from city_sync.identity.types import PartialCity
from city_sync.reports import ReportModel, utc_timestamp
from city_sync.runtime import StageContext
from city_sync.stages.common import dedupe_ids, finish_stage

logger = structlog.get_logger()

STAGE = "shadow-reconcile"


class DriftFields(ReportModel):
    country_code: str
    region: str
    timezone: str

    @classmethod
    def of(cls, city: PartialCity) -> DriftFields:
        return cls(
            country_code=city.country_code or "",
            region=city.region or "",
            timezone=city.timezone or "",
        )


class FieldMismatch(ReportModel):
    city_id: str
    neo4j: DriftFields
    postgres: DriftFields


class ReconcileReport(ReportModel):
    environment: str
    created_at: str
    apply_fixes: bool
    compared_cities: int
    low_risk_mismatches: list[FieldMismatch]
    fixed_count: int
    missing_in_postgres: list[str]


async def run_shadow_reconcile(ctx: StageContext, apply: bool = False) -> ReconcileReport:
    """Report field drift and optionally merge graph values into the canonical store."""
    apply_fixes = apply or ctx.city_autofix_low_risk
    created_at = utc_timestamp()

    graph_rows = [row for row in await ctx.graph.list_graph_cities() if row.id]
    rejected = list(ctx.graph.rejected)

    mismatches: list[FieldMismatch] = []
    missing: list[str] = []
    compared = 0
    fixed = 0

    async with ctx.session_factory() as session:
        async with session.begin():
            canonical_by_id = {city.id: city for city in await list_canonical_cities(session)}

        for row in graph_rows:
            canonical = canonical_by_id.get(row.id)
            if canonical is None:
                missing.append(row.id)
                continue

            compared += 1
            graph_fields = DriftFields.of(row)
            canonical_fields = DriftFields.of(canonical)
            if graph_fields == canonical_fields:
                continue

            mismatches.append(
                FieldMismatch(city_id=row.id, neo4j=graph_fields, postgres=canonical_fields)
            )

            if apply_fixes:
                async with session.begin():
                    await apply_low_risk_patch(
                        session,
                        row.id,
                        country_code=graph_fields.country_code or canonical_fields.country_code,
                        region=graph_fields.region or canonical_fields.region,
                        timezone=graph_fields.timezone or canonical_fields.timezone,
                    )
                fixed += 1
                logger.info("reconcile_fix_applied", city_id=row.id)

    report = ReconcileReport(
        environment=ctx.environment,
        created_at=created_at,
        apply_fixes=apply_fixes,
        compared_cities=compared,
        low_risk_mismatches=mismatches,
        fixed_count=fixed,
        missing_in_postgres=dedupe_ids(
            missing + [r.raw_id for r in rejected if r.raw_id not in canonical_by_id]
        ),
    )
    finish_stage(
        ctx,
        STAGE,
        report,
        [
            ("environment", ctx.environment),
            ("compared cities", report.compared_cities),
            ("low-risk mismatches", len(report.low_risk_mismatches)),
            ("fixes applied", report.fixed_count),
            ("missing in postgres", len(report.missing_in_postgres)),
        ],
    )
    return report
