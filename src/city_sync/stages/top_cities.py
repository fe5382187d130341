"""Export the most referenced canonical cities as seed candidates."""

from __future__ import annotations

from city_sync.canonical.store import list_top_referenced_cities
from city_sync.reports import ReportModel, utc_timestamp
from city_sync.runtime import StageContext
from city_sync.stages.common import finish_stage

STAGE = "top-cities"


class TopCityEntry(ReportModel):
    id: str
    slug: str | None
    name: str
    country_code: str
    region: str
    timezone: str | None
    latitude: float | None
    longitude: float | None
    refs: int


class TopCitiesReport(ReportModel):
    environment: str
    created_at: str
    cities: list[TopCityEntry]


async def run_export_top_cities(ctx: StageContext, limit: int = 3) -> TopCitiesReport:
    async with ctx.session_factory() as session:
        top = await list_top_referenced_cities(session, limit=limit)

    report = TopCitiesReport(
        environment=ctx.environment,
        created_at=utc_timestamp(),
        cities=[
            TopCityEntry(
                id=entry.city.id,
                slug=entry.city.slug,
                name=entry.city.name,
                country_code=entry.city.country_code,
                region=entry.city.region or "",
                timezone=entry.city.timezone,
                latitude=entry.city.latitude,
                longitude=entry.city.longitude,
                refs=entry.refs,
            )
            for entry in top
        ],
    )
    finish_stage(
        ctx,
        STAGE,
        report,
        [(f"{entry.name} ({entry.id})", f"{entry.refs} refs") for entry in report.cities],
    )
    return report
