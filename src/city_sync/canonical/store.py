"""Canonical store reads and writes for the ``cities`` table.

Provides the write path every other part of the system relies on:

- ``upsert_canonical_city``: idempotent insert-or-update of a resolved
  city.  The slug is assigned once and never overwritten.
- ``require_canonical_city``: the guard used by event/user write paths.

All writes run on the caller's session; the caller decides where the
transaction boundary is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import sqlalchemy as sa
import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from city_sync.canonical.slug import generate_city_slug
from city_sync.errors import PersistenceError, PreconditionError, UnresolvedCityError
from city_sync.identity.resolver import Geocoder, resolve_external_city
from city_sync.identity.types import City, PartialCity
from city_sync.identity.validation import classify_city, is_likely_place_id, is_resolved
from city_sync.models.cards import EventCard, UserCard
from city_sync.models.city import CityRecord

logger = structlog.get_logger()

SLUG_SUFFIX_LENGTH = 6

_cities = CityRecord.__table__
# Mapper columns are keyed by attribute name, not by the quoted SQL name
_cols = CityRecord.__mapper__.columns


@dataclass(frozen=True)
class TopCity:
    """A canonical city with its read-model reference count."""

    city: City | PartialCity
    refs: int


def _utcnow() -> datetime:
    # Stored as naive UTC to match the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _next_updated_at(previous: datetime | None) -> datetime:
    """Current time, nudged forward so ``updatedAt`` strictly increases per row."""
    now = _utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _location_value(session: AsyncSession, latitude: float, longitude: float):
    ewkt = f"SRID=4326;POINT({longitude} {latitude})"
    if session.get_bind().dialect.name == "postgresql":
        return sa.func.ST_GeogFromText(ewkt)
    return ewkt


def _to_partial(record: CityRecord) -> PartialCity:
    return PartialCity(
        id=record.id,
        slug=record.slug,
        name=record.name or "",
        country_code=record.country_code or "",
        region=record.region or "",
        timezone=record.timezone,
        latitude=record.latitude,
        longitude=record.longitude,
    )


def _canonicalize(city: City) -> City:
    return City(
        id=city.id.strip(),
        name=city.name.strip(),
        country_code=city.country_code.strip().upper(),
        region=(city.region or "").strip(),
        timezone=city.timezone.strip(),
        latitude=float(city.latitude),
        longitude=float(city.longitude),
        slug=city.slug.strip() if city.slug else None,
    )


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT that supports ``ON CONFLICT``."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(_cities)
    if dialect == "sqlite":
        return sqlite.insert(_cities)
    raise PersistenceError(f"Unsupported canonical store dialect: {dialect}")


async def _choose_slug(session: AsyncSession, city: City, existing_slug: str | None) -> str:
    if existing_slug:
        return existing_slug

    slug = city.slug or generate_city_slug(city)
    holder = await session.scalar(sa.select(_cols.id).where(_cols.slug == slug).limit(1))
    if holder is not None and holder != city.id:
        slug = f"{slug}-{city.id[-SLUG_SUFFIX_LENGTH:].lower()}"
    return slug


async def get_canonical_city(session: AsyncSession, place_id: str) -> City | PartialCity | None:
    """Read one canonical row; returns the partial variant if it is incomplete."""
    record = await session.scalar(
        sa.select(CityRecord)
        .where(CityRecord.id == place_id)
        .execution_options(populate_existing=True)
    )
    if record is None:
        return None
    return classify_city(_to_partial(record))


async def list_canonical_cities(session: AsyncSession) -> list[PartialCity]:
    """All canonical rows as stored, including unresolved ones."""
    result = await session.execute(
        sa.select(CityRecord).order_by(CityRecord.id).execution_options(populate_existing=True)
    )
    return [_to_partial(record) for record in result.scalars().all()]


async def upsert_canonical_city(session: AsyncSession, city: City) -> City:
    """Insert or update a resolved city and return the stored row.

    Repeated calls with the same input converge on one row with a stable
    slug.  Every field except ``slug`` is overwritten, and ``updatedAt``
    moves forward on each call.

    Raises:
        PreconditionError: ``city`` is not resolved.
        PersistenceError: The store rejected the write.
    """
    if not is_resolved(city):
        raise PreconditionError(f"City must be a resolved place before upsert: {city.id!r}")

    canonical = _canonicalize(city)
    try:
        existing = (
            await session.execute(
                sa.select(_cols.slug, _cols.updated_at).where(_cols.id == canonical.id)
            )
        ).first()
        existing_slug, previous_updated_at = existing if existing is not None else (None, None)
        slug = await _choose_slug(session, canonical, existing_slug)
        updated_at = _next_updated_at(previous_updated_at)

        fields = {
            _cols.name: canonical.name,
            _cols.country_code: canonical.country_code,
            _cols.region: canonical.region or None,
            _cols.timezone: canonical.timezone,
            _cols.latitude: canonical.latitude,
            _cols.longitude: canonical.longitude,
            _cols.location: _location_value(session, canonical.latitude, canonical.longitude),
            _cols.updated_at: updated_at,
        }
        stmt = _insert_for(session).values(
            {
                _cols.id: canonical.id,
                _cols.slug: slug,
                _cols.created_at: updated_at,
                **fields,
            }
        )
        # slug is never part of the update set
        stmt = stmt.on_conflict_do_update(index_elements=[_cols.id], set_=fields)
        await session.execute(stmt)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to upsert city: {canonical.id}") from e

    stored = await get_canonical_city(session, canonical.id)
    if not isinstance(stored, City):
        raise PersistenceError(f"Failed to upsert city: {canonical.id}")

    logger.debug("canonical_city_upserted", city_id=stored.id, slug=stored.slug)
    return stored


async def require_canonical_city(session: AsyncSession, place_id: str) -> City:
    """Return the canonical city or fail if it is missing or unresolved."""
    city = await get_canonical_city(session, place_id)
    if not isinstance(city, City):
        raise UnresolvedCityError(place_id)
    return city


async def resolve_and_upsert_city_for_write(
    session: AsyncSession,
    city: City | PartialCity,
    geocoder: Geocoder,
    autofix_low_risk: bool = False,
) -> City:
    """Ensure a city exists canonically before an event or user write uses it.

    An existing resolved row wins.  With ``autofix_low_risk`` the caller's
    non-empty country code, region and timezone are merged into it when they
    differ.  Otherwise the id is resolved through the provider and upserted.
    """
    if not is_likely_place_id(city.id):
        raise PreconditionError("City must use a place id")

    existing = await get_canonical_city(session, city.id)
    if isinstance(existing, City):
        drifted = (
            existing.country_code != city.country_code
            or existing.region != city.region
            or existing.timezone != city.timezone
        )
        if autofix_low_risk and drifted:
            return await upsert_canonical_city(
                session,
                City(
                    id=existing.id,
                    name=existing.name,
                    country_code=city.country_code or existing.country_code,
                    region=city.region or existing.region,
                    timezone=city.timezone or existing.timezone,
                    latitude=existing.latitude,
                    longitude=existing.longitude,
                ),
            )
        return existing

    resolved = await resolve_external_city(city.id, geocoder)
    return await upsert_canonical_city(session, resolved)


async def apply_low_risk_patch(
    session: AsyncSession,
    place_id: str,
    *,
    country_code: str,
    region: str,
    timezone: str,
) -> None:
    """Overwrite the non-identity descriptive fields of one canonical row.

    Values are canonicalized the same way as in ``upsert_canonical_city``.
    """
    previous = await session.scalar(
        sa.select(_cols.updated_at).where(_cols.id == place_id)
    )
    try:
        await session.execute(
            sa.update(_cities)
            .where(_cols.id == place_id)
            .values(
                {
                    _cols.country_code: country_code.strip().upper(),
                    _cols.region: region.strip() or None,
                    _cols.timezone: timezone.strip(),
                    _cols.updated_at: _next_updated_at(previous),
                }
            )
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to patch city: {place_id}") from e


async def delete_malformed_cities(session: AsyncSession) -> int:
    """Delete canonical rows whose id is not shaped like a place id."""
    ids = (await session.scalars(sa.select(_cols.id))).all()
    malformed = [place_id for place_id in ids if not is_likely_place_id(place_id)]
    if not malformed:
        return 0

    try:
        await session.execute(sa.delete(_cities).where(_cols.id.in_(malformed)))
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to delete malformed cities") from e

    logger.info("malformed_cities_deleted", count=len(malformed), city_ids=malformed)
    return len(malformed)


async def nullify_dangling_city_refs(session: AsyncSession, card: type[EventCard] | type[UserCard]) -> int:
    """Clear ``cityId``/``cityName`` on read-model rows pointing at missing cities."""
    table = card.__table__
    columns = card.__mapper__.columns
    stmt = (
        sa.update(table)
        .where(columns.city_id.is_not(None))
        .where(~sa.exists().where(_cols.id == columns.city_id).correlate(table))
        .values({columns.city_id: None, columns.city_name: None})
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to clear dangling city refs on {table.name}") from e
    return result.rowcount or 0


async def list_top_referenced_cities(session: AsyncSession, limit: int = 3) -> list[TopCity]:
    """Canonical cities ordered by read-model references, then by name."""
    event_refs = (
        sa.select(EventCard.city_id.label("city_id"), sa.func.count().label("refs"))
        .where(EventCard.city_id.is_not(None))
        .group_by(EventCard.city_id)
        .subquery()
    )
    user_refs = (
        sa.select(UserCard.city_id.label("city_id"), sa.func.count().label("refs"))
        .where(UserCard.city_id.is_not(None))
        .group_by(UserCard.city_id)
        .subquery()
    )
    refs = sa.func.coalesce(event_refs.c.refs, 0) + sa.func.coalesce(user_refs.c.refs, 0)
    stmt = (
        sa.select(CityRecord, refs.label("refs"))
        .outerjoin(event_refs, event_refs.c.city_id == CityRecord.id)
        .outerjoin(user_refs, user_refs.c.city_id == CityRecord.id)
        .order_by(refs.desc(), CityRecord.name.asc())
        .limit(max(1, limit))
    )
    result = await session.execute(stmt)
    return [
        TopCity(city=classify_city(_to_partial(record)), refs=int(count or 0))
        for record, count in result.all()
    ]
