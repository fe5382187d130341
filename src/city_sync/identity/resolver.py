"""Resolve a place id into a fully populated city via the geocoding provider."""

from __future__ import annotations

from typing import Protocol

import structlog

from city_sync.errors import FormatError, ResolutionError
from city_sync.geocoding.schemas import PlaceDetails, TimezoneResult
from city_sync.identity.types import City, GraphCityRow
from city_sync.identity.validation import has_core_metadata, is_likely_place_id, is_resolved

logger = structlog.get_logger()


class Geocoder(Protocol):
    async def get_place_details(self, place_id: str) -> PlaceDetails: ...

    async def get_timezone(
        self, lat: float, lng: float, timestamp: int | None = None
    ) -> TimezoneResult: ...


async def resolve_external_city(place_id: str, geocoder: Geocoder) -> City:
    """Build a resolved city from the provider's place details and timezone.

    Raises:
        FormatError: ``place_id`` does not look like a place id.  No
            network call is made.
        ResolutionError: The provider failed, or its answer is missing a
            required field.
    """
    if not is_likely_place_id(place_id):
        raise FormatError(place_id)

    details = await geocoder.get_place_details(place_id.strip())
    location = details.geometry.location
    tz = await geocoder.get_timezone(location.lat, location.lng)

    city = City(
        id=details.place_id,
        name=details.name or details.formatted_address,
        country_code=details.component_short_name("country"),
        region=details.component_short_name("administrative_area_level_1"),
        timezone=tz.timeZoneId,
        latitude=location.lat,
        longitude=location.lng,
    )

    if not is_resolved(city):
        raise ResolutionError(f"Place does not resolve to a full city: {place_id}")

    logger.debug("city_resolved_externally", place_id=place_id, name=city.name)
    return city


async def resolve_graph_row(row: GraphCityRow, geocoder: Geocoder) -> City:
    """Resolve a graph row, using its own metadata when it is already complete.

    The inline path skips the provider entirely; only rows missing core
    metadata cost an API call.
    """
    if not is_likely_place_id(row.id):
        raise FormatError(row.id)

    if has_core_metadata(row):
        return City(
            id=row.id,
            name=row.name,
            country_code=row.country_code,
            region=row.region or "",
            timezone=row.timezone or "",
            latitude=float(row.latitude),
            longitude=float(row.longitude),
        )

    return await resolve_external_city(row.id, geocoder)
