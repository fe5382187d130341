"""URL-safe city slugs: ``{name}-{region}-{countryCode}``."""

from __future__ import annotations

import re
import unicodedata

from city_sync.identity.types import City


def slugify(text: str) -> str:
    """Lowercase ASCII slug with single hyphens and no leading/trailing hyphen."""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = normalized.lower().strip()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]+", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def generate_city_slug(city: City) -> str:
    parts = [slugify(value) for value in (city.name, city.region, city.country_code) if value and value.strip()]
    slug = "-".join(part for part in parts if part)
    # Names with no ASCII content still need a unique, stable key
    return slug or city.id.lower()
