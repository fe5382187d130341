"""Shared test fixtures."""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from city_sync.models.base import Base
from city_sync.models.city import CityRecord
from city_sync.runtime import StageContext

from helpers import FakeGeocoder, FakeGraphReader


@pytest.fixture
async def test_engine():
    """Create an async SQLite in-memory engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
def reports_dir(tmp_path: Path) -> Path:
    return tmp_path / "reports"


@pytest.fixture
def make_context(test_session_factory, reports_dir):
    """Factory for a StageContext wired to the test DB and in-memory fakes."""

    def _make(
        environment: str = "development",
        graph: FakeGraphReader | None = None,
        geocoder: FakeGeocoder | None = None,
        **kwargs,
    ) -> StageContext:
        return StageContext(
            environment=environment,
            session_factory=test_session_factory,
            graph=graph or FakeGraphReader(),
            geocoder=geocoder or FakeGeocoder(),
            reports_dir=reports_dir,
            **kwargs,
        )

    return _make


@pytest.fixture
async def seed_records(test_session_factory):
    """Insert raw canonical rows, bypassing the upsert validation."""

    async def _seed(*records: CityRecord) -> None:
        async with test_session_factory() as session:
            async with session.begin():
                session.add_all(records)

    return _seed
