"""Typed parse-and-validate boundary for raw graph city records.

Every record read off the graph store goes through ``parse_graph_row``,
which returns either an accepted ``GraphCityRow`` or a rejection carrying a
reason.  Missing text fields become empty strings and missing coordinates
stay ``None``; values of the wrong type reject the row.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from city_sync.identity.types import GraphCityRow


class RawGraphCity(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    id: str = ""
    name: str = ""
    countryCode: str = ""
    region: str = ""
    timezone: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    eventRefs: int = 0
    userRefs: int = 0

    @field_validator("id", "name", "countryCode", "region", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("timezone", mode="before")
    @classmethod
    def _blank_timezone(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("eventRefs", "userRefs", mode="before")
    @classmethod
    def _none_to_zero(cls, v: object) -> object:
        return 0 if v is None else v


@dataclass(frozen=True)
class AcceptedRow:
    row: GraphCityRow
    ok: bool = True


@dataclass(frozen=True)
class RejectedRow:
    raw_id: str
    reason: str
    ok: bool = False


ParsedRow = AcceptedRow | RejectedRow


def parse_graph_row(record: Mapping[str, object]) -> ParsedRow:
    """Validate one raw graph record."""
    try:
        raw = RawGraphCity.model_validate(dict(record))
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        return RejectedRow(
            raw_id=str(record.get("id") or ""),
            reason="malformed_fields:" + ",".join(fields),
        )

    return AcceptedRow(
        row=GraphCityRow(
            id=raw.id,
            name=raw.name,
            country_code=raw.countryCode,
            region=raw.region,
            timezone=raw.timezone,
            latitude=raw.latitude,
            longitude=raw.longitude,
            event_refs=raw.eventRefs,
            user_refs=raw.userRefs,
        )
    )
