"""Tests for the backfill stage."""

import json
from unittest.mock import patch

import pytest

from city_sync.canonical.store import get_canonical_city, list_canonical_cities, upsert_canonical_city
from city_sync.errors import PersistenceError
from city_sync.graph.parsing import RejectedRow
from city_sync.identity.types import City
from city_sync.stages.backfill import INVALID_PLACE_ID_FORMAT, MISSING_CITY_ID, run_backfill

from helpers import (
    BERLIN_ID,
    PORTLAND_ID,
    SEATTLE_ID,
    FakeGeocoder,
    FakeGraphReader,
    make_graph_row,
    make_place,
)


@pytest.mark.asyncio
async def test_fast_path_rows_skip_provider(make_context, test_session_factory):
    geocoder = FakeGeocoder()
    graph = FakeGraphReader([make_graph_row(SEATTLE_ID), make_graph_row(BERLIN_ID, name="Berlin", country_code="DE", region="BE", timezone="Europe/Berlin")])

    report = await run_backfill(make_context(graph=graph, geocoder=geocoder))

    assert geocoder.calls == []
    assert report.resolved_cities == 2
    assert report.unresolved_cities == []
    async with test_session_factory() as session:
        assert isinstance(await get_canonical_city(session, BERLIN_ID), City)


@pytest.mark.asyncio
async def test_incomplete_rows_resolved_through_provider(make_context, test_session_factory):
    geocoder = FakeGeocoder({PORTLAND_ID: make_place(PORTLAND_ID, name="Portland", region="OR")})
    graph = FakeGraphReader([make_graph_row(PORTLAND_ID, name="Portland", timezone=None, latitude=None)])

    report = await run_backfill(make_context(graph=graph, geocoder=geocoder))

    assert geocoder.calls == [PORTLAND_ID]
    assert report.attempted_place_ids == 1
    async with test_session_factory() as session:
        stored = await get_canonical_city(session, PORTLAND_ID)
    assert stored.region == "OR"


@pytest.mark.asyncio
async def test_reason_codes(make_context, reports_dir):
    graph = FakeGraphReader(
        [
            make_graph_row("", name="Nameless", event_refs=1),
            make_graph_row("ny", name="New York", event_refs=5),
            make_graph_row(PORTLAND_ID, name="Portland", timezone=None),
        ],
        rejected=[RejectedRow(raw_id="ChIJbrokenLatitude", reason="malformed_fields:latitude")],
    )

    report = await run_backfill(make_context(graph=graph))

    reasons = {entry.name or entry.id: entry.reason for entry in report.unresolved_cities}
    assert reasons == {
        "Nameless": MISSING_CITY_ID,
        "New York": INVALID_PLACE_ID_FORMAT,
        "Portland": "Google Places API error: NOT_FOUND",
        "ChIJbrokenLatitude": "malformed_fields:latitude",
    }
    # Most referenced first
    assert report.unresolved_cities[0].name == "New York"
    # Parse-rejected rows are part of the total
    assert report.total_neo4j_cities == 4
    assert report.attempted_place_ids == 1
    assert report.resolved_cities == 0

    (path,) = reports_dir.glob("backfill-development-*.json")
    data = json.loads(path.read_text())
    assert data["unresolvedCities"][0]["eventRefs"] == 5


@pytest.mark.asyncio
async def test_batch_is_all_or_nothing(make_context, test_session_factory, reports_dir):
    graph = FakeGraphReader(
        [
            make_graph_row(SEATTLE_ID, event_refs=3),
            make_graph_row(PORTLAND_ID, name="Portland", region="OR"),
        ]
    )

    async def failing_upsert(session, city):
        if city.id == PORTLAND_ID:
            raise PersistenceError(f"Failed to upsert city: {city.id}")
        return await upsert_canonical_city(session, city)

    with patch("city_sync.stages.backfill.upsert_canonical_city", side_effect=failing_upsert):
        with pytest.raises(PersistenceError):
            await run_backfill(make_context(graph=graph))

    async with test_session_factory() as session:
        assert await list_canonical_cities(session) == []
    assert not reports_dir.exists() or list(reports_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_rerun_is_idempotent(make_context, test_session_factory):
    graph = FakeGraphReader([make_graph_row()])
    await run_backfill(make_context(graph=graph))
    await run_backfill(make_context(graph=graph))

    async with test_session_factory() as session:
        cities = await list_canonical_cities(session)
    assert [(c.id, c.slug) for c in cities] == [(SEATTLE_ID, "seattle-wa-us")]
