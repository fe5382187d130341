"""Tests for the shadow reconcile stage."""

import json

import pytest

from city_sync.canonical.store import get_canonical_city, upsert_canonical_city
from city_sync.graph.parsing import RejectedRow
from city_sync.stages.reconcile import run_shadow_reconcile

from helpers import PORTLAND_ID, SEATTLE_ID, FakeGraphReader, make_city, make_graph_row


@pytest.fixture
async def seattle(test_session_factory):
    async with test_session_factory() as session:
        async with session.begin():
            return await upsert_canonical_city(session, make_city())


@pytest.mark.asyncio
async def test_dry_run_reports_without_writing(make_context, test_session_factory, seattle, reports_dir):
    graph = FakeGraphReader(
        [
            make_graph_row(SEATTLE_ID, region="Washington", timezone="America/Vancouver"),
            make_graph_row(PORTLAND_ID, name="Portland"),
        ]
    )

    report = await run_shadow_reconcile(make_context(graph=graph))

    assert report.apply_fixes is False
    assert report.compared_cities == 1
    assert report.fixed_count == 0
    assert report.missing_in_postgres == [PORTLAND_ID]
    (mismatch,) = report.low_risk_mismatches
    assert mismatch.neo4j.region == "Washington"
    assert mismatch.postgres.region == "WA"

    async with test_session_factory() as session:
        assert (await get_canonical_city(session, SEATTLE_ID)).region == "WA"
        assert await get_canonical_city(session, PORTLAND_ID) is None

    (path,) = reports_dir.glob("shadow-reconcile-development-*.json")
    data = json.loads(path.read_text())
    assert data["lowRiskMismatches"][0]["neo4j"] == {
        "countryCode": "US",
        "region": "Washington",
        "timezone": "America/Vancouver",
    }


@pytest.mark.asyncio
async def test_apply_merges_non_empty_graph_values(make_context, test_session_factory, seattle):
    graph = FakeGraphReader([make_graph_row(SEATTLE_ID, region="", timezone="America/Vancouver")])

    report = await run_shadow_reconcile(make_context(graph=graph), apply=True)

    assert report.fixed_count == 1
    async with test_session_factory() as session:
        city = await get_canonical_city(session, SEATTLE_ID)
    # Empty graph region never blanks the canonical one
    assert city.region == "WA"
    assert city.timezone == "America/Vancouver"
    assert city.slug == seattle.slug


@pytest.mark.asyncio
async def test_config_toggle_forces_apply(make_context, test_session_factory, seattle):
    graph = FakeGraphReader([make_graph_row(SEATTLE_ID, country_code="CA")])

    report = await run_shadow_reconcile(make_context(graph=graph, city_autofix_low_risk=True))

    assert report.apply_fixes is True
    async with test_session_factory() as session:
        assert (await get_canonical_city(session, SEATTLE_ID)).country_code == "CA"


@pytest.mark.asyncio
async def test_matching_rows_produce_no_mismatch(make_context, seattle):
    report = await run_shadow_reconcile(make_context(graph=FakeGraphReader([make_graph_row()])), apply=True)
    assert report.low_risk_mismatches == []
    assert report.fixed_count == 0


@pytest.mark.asyncio
async def test_rejected_graph_rows_without_canonical_row_reported_missing(make_context, seattle):
    graph = FakeGraphReader(
        [make_graph_row()],
        rejected=[
            RejectedRow(raw_id=PORTLAND_ID, reason="malformed_fields:latitude"),
            RejectedRow(raw_id=SEATTLE_ID, reason="malformed_fields:longitude"),
        ],
    )

    report = await run_shadow_reconcile(make_context(graph=graph))

    assert report.missing_in_postgres == [PORTLAND_ID]
    assert report.compared_cities == 1


@pytest.mark.asyncio
async def test_applied_fix_is_canonicalized(make_context, test_session_factory, seattle):
    graph = FakeGraphReader([make_graph_row(SEATTLE_ID, country_code="ca")])

    await run_shadow_reconcile(make_context(graph=graph), apply=True)

    async with test_session_factory() as session:
        assert (await get_canonical_city(session, SEATTLE_ID)).country_code == "CA"
