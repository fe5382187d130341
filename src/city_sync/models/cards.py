"""Read-model tables that reference cities by value.

Only the city reference columns are modeled here; the rest of each card
belongs to the event and user domains.  ``cityId`` is a soft reference with
no enforced foreign key.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from city_sync.models.base import Base


class EventCard(Base):
    __tablename__ = "event_cards"

    id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    city_id: Mapped[str | None] = mapped_column("cityId", sa.String, nullable=True, index=True)
    city_name: Mapped[str | None] = mapped_column("cityName", sa.String, nullable=True)


class UserCard(Base):
    __tablename__ = "user_cards"

    id: Mapped[str] = mapped_column(sa.String, primary_key=True)
    city_id: Mapped[str | None] = mapped_column("cityId", sa.String, nullable=True, index=True)
    city_name: Mapped[str | None] = mapped_column("cityName", sa.String, nullable=True)
