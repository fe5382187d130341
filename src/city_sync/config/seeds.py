"""Versioned seed set of known-good reference cities."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, field_validator

from city_sync.identity.types import City
from city_sync.identity.validation import is_likely_place_id


class SeedCity(BaseModel):
    id: str
    name: str
    country_code: str
    region: str = ""
    timezone: str
    latitude: float
    longitude: float

    @field_validator("id")
    @classmethod
    def _place_id_shape(cls, v: str) -> str:
        if not is_likely_place_id(v):
            raise ValueError(f"seed city id is not a place id: {v!r}")
        return v.strip()

    def to_city(self) -> City:
        return City(
            id=self.id,
            name=self.name,
            country_code=self.country_code,
            region=self.region,
            timezone=self.timezone,
            latitude=self.latitude,
            longitude=self.longitude,
        )


class SeedFile(BaseModel):
    version: int = 1
    cities: list[SeedCity] = []


def load_seed_cities(path: Path) -> list[City]:
    """Load the seed city set from YAML.

    Returns an empty list if the file does not exist.  Every entry is
    validated, so a malformed seed file fails loudly instead of seeding
    partial cities.
    """
    if not path.exists():
        return []

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return [seed.to_city() for seed in SeedFile(**data).cities]
