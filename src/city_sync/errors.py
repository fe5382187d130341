"""Error taxonomy for the city reconciliation pipeline.

Per-row errors (``FormatError``, ``ResolutionError``) are caught by the
stages and recorded in reports.  ``EnvironmentGuardError`` and
``PersistenceError`` propagate to the CLI and produce a non-zero exit code.
"""

from __future__ import annotations


class CitySyncError(Exception):
    """Base class for all pipeline errors."""


class FormatError(CitySyncError):
    """A city id does not have the shape of an external place id."""

    reason = "invalid_place_id_format"

    def __init__(self, place_id: str | None) -> None:
        super().__init__(f"City id is not a valid place id: {place_id!r}")
        self.place_id = place_id


class ResolutionError(CitySyncError):
    """The geocoding provider failed or returned an incomplete city."""


class PreconditionError(CitySyncError):
    """A write was attempted with a city that is not resolved."""


class UnresolvedCityError(CitySyncError):
    """A caller required a canonical city that is missing or incomplete."""

    def __init__(self, place_id: str) -> None:
        super().__init__(
            f"City {place_id} is unresolved. Resolve and upsert it in the canonical store before write."
        )
        self.place_id = place_id


class EnvironmentGuardError(CitySyncError):
    """A stage was invoked in an environment it must not run in."""


class PersistenceError(CitySyncError):
    """A canonical store write failed; the current transaction is discarded."""
