"""City value types shared by every stage.

``City`` is the resolved variant: every required field is present.
``PartialCity`` is the unvalidated shape read off either store.
``GraphCityRow`` is a partial city plus its relationship counts in the
graph store.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class City:
    """A fully resolved city, safe to write to the canonical store."""

    id: str
    name: str
    country_code: str
    timezone: str
    latitude: float
    longitude: float
    region: str = ""
    slug: str | None = None


@dataclass(frozen=True)
class PartialCity:
    """A city record that may be missing any field."""

    id: str = ""
    name: str = ""
    country_code: str = ""
    timezone: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    region: str = ""
    slug: str | None = None


@dataclass(frozen=True)
class GraphCityRow(PartialCity):
    """A city node from the graph store with its reference counts."""

    event_refs: int = 0
    user_refs: int = 0

    @property
    def total_refs(self) -> int:
        return self.event_refs + self.user_refs


def priority_key(row: GraphCityRow) -> tuple[int, str]:
    """Sort key for backfill priority: most referenced first, then by name."""
    return (-row.total_refs, row.name)
