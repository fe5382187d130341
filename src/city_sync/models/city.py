"""Canonical city model -- the long-term source of truth for city data."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from city_sync.models.base import Base


class CityRecord(Base):
    """One row per external place id.

    ``slug`` is assigned on first write and never changed afterwards.
    ``location`` mirrors latitude/longitude as an EWKT point; on PostgreSQL
    the migration declares it as a PostGIS geography column.
    """

    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    slug: Mapped[str] = mapped_column(sa.String, unique=True)
    name: Mapped[str] = mapped_column(sa.String)
    country_code: Mapped[str] = mapped_column("countryCode", sa.String)
    region: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    timezone: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    latitude: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    location: Mapped[str | None] = mapped_column(sa.String, nullable=True, deferred=True)

    created_at: Mapped[datetime] = mapped_column(
        "createdAt", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        "updatedAt", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
