"""Place id shape checks and the resolved-city predicate."""

from __future__ import annotations

import math
import re

from city_sync.identity.types import City, PartialCity

PLACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{10,}$")


def is_likely_place_id(place_id: str | None) -> bool:
    """Return True if ``place_id`` has the shape of an external place id."""
    if not place_id:
        return False
    return PLACE_ID_PATTERN.fullmatch(place_id.strip()) is not None


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_resolved(city: object) -> bool:
    """Return True if ``city`` carries every field a canonical row needs.

    Works on any object exposing ``id``, ``name``, ``country_code``,
    ``timezone``, ``latitude`` and ``longitude`` attributes: value types,
    graph rows and ORM rows alike.
    """
    if city is None:
        return False
    return bool(
        is_likely_place_id(getattr(city, "id", None))
        and getattr(city, "name", None)
        and getattr(city, "country_code", None)
        and getattr(city, "timezone", None)
        and _is_finite_number(getattr(city, "latitude", None))
        and _is_finite_number(getattr(city, "longitude", None))
    )


def has_core_metadata(row: PartialCity) -> bool:
    """True if the row alone is enough to build a resolved city (no API call)."""
    return bool(
        row.name
        and row.country_code
        and row.timezone
        and row.latitude is not None
        and row.longitude is not None
    )


def classify_city(partial: PartialCity) -> City | PartialCity:
    """Split a partial record into the resolved or partial variant."""
    if not is_resolved(partial):
        return partial
    return City(
        id=partial.id,
        name=partial.name,
        country_code=partial.country_code,
        timezone=partial.timezone or "",
        latitude=float(partial.latitude),
        longitude=float(partial.longitude),
        region=partial.region or "",
        slug=partial.slug,
    )
