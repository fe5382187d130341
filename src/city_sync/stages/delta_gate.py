"""Delta gate stage: the production-only promotion check.

Read-only.  The gate passes only when every graph city has a canonical
row, every canonical row is resolved, and no matched pair disagrees on
name.  Coordinate and country/region/timezone drift is reported as low
risk and never blocks.
"""

from __future__ import annotations

import structlog
from pydantic import Field

from city_sync.canonical.store import list_canonical_cities
from city_sync.config.environment import require_production
from city_sync.identity.types import PartialCity
from city_sync.identity.validation import is_resolved
from city_sync.reports import ReportModel, utc_timestamp
from city_sync.runtime import StageContext
from city_sync.stages.common import dedupe_ids, finish_stage, graph_city_ids

logger = structlog.get_logger()

STAGE = "delta-gate"

COORDINATE_EPSILON = 0.0001


class Parity(ReportModel):
    missing_in_postgres: list[str]
    missing_in_neo4j: list[str]


class RiskMismatch(ReportModel):
    city_id: str
    reasons: list[str]


class DeltaGateReport(ReportModel):
    environment: str
    created_at: str
    passed: bool = Field(alias="pass")
    parity: Parity
    unresolved_postgres_city_ids: list[str]
    high_risk_mismatches: list[RiskMismatch]
    low_risk_mismatches: list[RiskMismatch]
    rejected_graph_city_ids: list[str] = []


def nearly_equal(a: float | None, b: float | None, epsilon: float = COORDINATE_EPSILON) -> bool:
    """Coordinate equality within ``epsilon`` degrees, boundary inclusive.

    A missing value on either side never counts as equal.
    """
    if a is None or b is None:
        return False
    # Rounded so that a difference of exactly epsilon survives float error
    return round(abs(float(a) - float(b)), 9) <= epsilon


def high_risk_reasons(graph: PartialCity, canonical: PartialCity) -> list[str]:
    reasons = []
    if graph.name and canonical.name and graph.name.strip().lower() != canonical.name.strip().lower():
        reasons.append("name")
    return reasons


def low_risk_reasons(graph: PartialCity, canonical: PartialCity) -> list[str]:
    reasons = []
    if not nearly_equal(graph.latitude, canonical.latitude):
        reasons.append("latitude")
    if not nearly_equal(graph.longitude, canonical.longitude):
        reasons.append("longitude")
    if (graph.country_code or "") != (canonical.country_code or ""):
        reasons.append("countryCode")
    if (graph.region or "") != (canonical.region or ""):
        reasons.append("region")
    if (graph.timezone or "") != (canonical.timezone or ""):
        reasons.append("timezone")
    return reasons


async def run_delta_gate(ctx: StageContext) -> DeltaGateReport:
    """Evaluate the gate and write its report.

    Raises:
        EnvironmentGuardError: The environment is not production.  Raised
            before any read.
    """
    require_production(ctx.environment, STAGE)
    created_at = utc_timestamp()

    graph_rows = [row for row in await ctx.graph.list_graph_cities() if row.id]
    rejected = list(ctx.graph.rejected)
    async with ctx.session_factory() as session:
        canonical = await list_canonical_cities(session)

    # Rejected rows still count for parity; their metadata is not compared
    graph_ids = graph_city_ids(graph_rows, rejected)
    canonical_by_id = {city.id: city for city in canonical}
    graph_id_set = set(graph_ids)

    high_risk: list[RiskMismatch] = []
    low_risk: list[RiskMismatch] = []
    first_row_by_id: dict[str, PartialCity] = {}
    for row in graph_rows:
        first_row_by_id.setdefault(row.id, row)
    for row in first_row_by_id.values():
        match = canonical_by_id.get(row.id)
        if match is None:
            continue
        if reasons := high_risk_reasons(row, match):
            high_risk.append(RiskMismatch(city_id=row.id, reasons=reasons))
        if reasons := low_risk_reasons(row, match):
            low_risk.append(RiskMismatch(city_id=row.id, reasons=reasons))

    parity = Parity(
        missing_in_postgres=[place_id for place_id in graph_ids if place_id not in canonical_by_id],
        missing_in_neo4j=[city.id for city in canonical if city.id not in graph_id_set],
    )
    unresolved = [city.id for city in canonical if not is_resolved(city)]
    passed = not parity.missing_in_postgres and not unresolved and not high_risk

    report = DeltaGateReport(
        environment=ctx.environment,
        created_at=created_at,
        passed=passed,
        parity=parity,
        unresolved_postgres_city_ids=unresolved,
        high_risk_mismatches=high_risk,
        low_risk_mismatches=low_risk,
        rejected_graph_city_ids=dedupe_ids([r.raw_id for r in rejected]),
    )
    logger.info("delta_gate_evaluated", passed=passed)
    finish_stage(
        ctx,
        STAGE,
        report,
        [
            ("pass", str(passed).lower()),
            ("missing in postgres", len(parity.missing_in_postgres)),
            ("unresolved postgres", len(unresolved)),
            ("high-risk mismatches", len(high_risk)),
            ("low-risk mismatches", len(low_risk)),
            ("rejected graph rows", len(report.rejected_graph_city_ids)),
        ],
    )
    return report
