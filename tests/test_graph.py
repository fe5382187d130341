"""Tests for the graph row parse boundary and the Neo4j reader."""

import pytest

from city_sync.graph.parsing import AcceptedRow, RejectedRow, parse_graph_row
from city_sync.graph.reader import LIST_CITIES_WITH_REFS_QUERY, Neo4jGraphReader

from helpers import PORTLAND_ID, SEATTLE_ID


def _record(**overrides):
    record = {
        "id": SEATTLE_ID,
        "name": "Seattle",
        "countryCode": "US",
        "region": "WA",
        "timezone": "America/Los_Angeles",
        "latitude": 47.6,
        "longitude": -122.3,
    }
    record.update(overrides)
    return record


class TestParseGraphRow:
    def test_accepts_complete_record(self):
        parsed = parse_graph_row(_record(eventRefs=3, userRefs=2))
        assert isinstance(parsed, AcceptedRow)
        assert parsed.row.country_code == "US"
        assert parsed.row.total_refs == 5

    def test_missing_fields_become_defaults(self):
        parsed = parse_graph_row({"id": SEATTLE_ID, "name": None, "timezone": "  ", "eventRefs": None})
        assert isinstance(parsed, AcceptedRow)
        row = parsed.row
        assert row.name == ""
        assert row.country_code == ""
        assert row.timezone is None
        assert row.latitude is None
        assert row.event_refs == 0

    def test_text_fields_are_trimmed(self):
        parsed = parse_graph_row(_record(id=f" {SEATTLE_ID} ", name=" Seattle "))
        assert parsed.row.id == SEATTLE_ID
        assert parsed.row.name == "Seattle"

    def test_rejects_wrong_types(self):
        parsed = parse_graph_row(_record(latitude="north", countryCode=42))
        assert isinstance(parsed, RejectedRow)
        assert parsed.raw_id == SEATTLE_ID
        assert parsed.reason == "malformed_fields:countryCode,latitude"

    def test_rejects_non_finite_coordinates(self):
        parsed = parse_graph_row(_record(longitude=float("nan")))
        assert isinstance(parsed, RejectedRow)
        assert parsed.reason == "malformed_fields:longitude"

    def test_extra_fields_ignored(self):
        assert isinstance(parse_graph_row(_record(population=750000)), AcceptedRow)


class _FakeResult:
    def __init__(self, records):
        self._records = records

    async def data(self):
        return self._records


class _FakeSession:
    def __init__(self, driver):
        self._driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def run(self, query):
        self._driver.queries.append(query)
        return _FakeResult(self._driver.records)


class _FakeDriver:
    def __init__(self, records):
        self.records = records
        self.queries: list[str] = []
        self.databases: list[str | None] = []
        self.closed = False

    def session(self, database=None):
        self.databases.append(database)
        return _FakeSession(self)

    async def close(self):
        self.closed = True


class TestNeo4jGraphReader:
    @pytest.mark.asyncio
    async def test_splits_accepted_and_rejected(self):
        driver = _FakeDriver([_record(), _record(id="bad", latitude="north")])
        reader = Neo4jGraphReader(driver, database="cities")

        rows = await reader.list_graph_cities()

        assert [r.id for r in rows] == [SEATTLE_ID]
        assert [r.raw_id for r in reader.rejected] == ["bad"]
        assert driver.databases == ["cities"]

    @pytest.mark.asyncio
    async def test_with_refs_sorted_by_priority(self):
        driver = _FakeDriver(
            [
                _record(name="Seattle", eventRefs=1, userRefs=1),
                _record(id=PORTLAND_ID, name="Portland", eventRefs=2, userRefs=0),
                _record(id="ChIJ_zero_refs_city", name="Aberdeen"),
            ]
        )
        reader = Neo4jGraphReader(driver)

        rows = await reader.list_graph_cities_with_refs()

        # Ties on refs fall back to name
        assert [r.name for r in rows] == ["Portland", "Seattle", "Aberdeen"]
        assert driver.queries == [LIST_CITIES_WITH_REFS_QUERY]

    @pytest.mark.asyncio
    async def test_rejected_reset_on_each_read(self):
        driver = _FakeDriver([_record(latitude="north")])
        reader = Neo4jGraphReader(driver)
        await reader.list_graph_cities()
        assert len(reader.rejected) == 1

        driver.records = [_record()]
        await reader.list_graph_cities()
        assert reader.rejected == []

    @pytest.mark.asyncio
    async def test_context_manager_closes_driver(self):
        driver = _FakeDriver([])
        async with Neo4jGraphReader(driver) as reader:
            assert await reader.list_graph_cities() == []
        assert driver.closed is True
