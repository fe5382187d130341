"""Async client for the Google Places details and Time Zone APIs.

Transport-level retries are handled by ``httpx.AsyncHTTPTransport``.  Any
provider failure surfaces as ``ResolutionError`` so callers can record it
per row without aborting a batch.
"""

from __future__ import annotations

import time
from types import TracebackType

import httpx
import structlog
from pydantic import ValidationError

from city_sync.errors import ResolutionError
from city_sync.geocoding.schemas import PlaceDetails, TimezoneResult

logger = structlog.get_logger()

MAPS_BASE_URL = "https://maps.googleapis.com/maps/api/"
PLACE_DETAILS_FIELDS = "place_id,name,formatted_address,address_components,geometry,types"
CITY_PLACE_TYPES = frozenset(
    {"locality", "administrative_area_level_1", "administrative_area_level_2"}
)


class GooglePlacesClient:
    """Geocoding provider client with an explicit open/close lifecycle.

    Use as ``async with GooglePlacesClient(...) as client:``.  A custom
    ``transport`` can be injected for tests (``httpx.MockTransport``).
    """

    def __init__(
        self,
        places_api_key: str,
        timezone_api_key: str | None = None,
        *,
        timeout_seconds: float = 10.0,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
        base_url: str = MAPS_BASE_URL,
    ) -> None:
        self._places_api_key = places_api_key
        self._timezone_api_key = timezone_api_key or places_api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport or httpx.AsyncHTTPTransport(retries=retries),
        )

    async def __aenter__(self) -> GooglePlacesClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, params: dict[str, str], api_name: str) -> dict:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ResolutionError(
                f"{api_name} API error: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise ResolutionError(f"{api_name} API request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ResolutionError(f"{api_name} API returned a non-JSON body") from e
        status = data.get("status")
        if status != "OK":
            raise ResolutionError(f"{api_name} API error: {status}")
        return data

    async def get_place_details(self, place_id: str) -> PlaceDetails:
        """Look up a place by id and validate that it is a city-level location."""
        if not self._places_api_key:
            raise ResolutionError("Google Places API key not configured")

        data = await self._get_json(
            "place/details/json",
            {"place_id": place_id, "fields": PLACE_DETAILS_FIELDS, "key": self._places_api_key},
            "Google Places",
        )
        try:
            details = PlaceDetails.model_validate(data.get("result") or {})
        except ValidationError as e:
            raise ResolutionError(f"Google Places returned an incomplete place: {place_id}") from e

        if not CITY_PLACE_TYPES.intersection(details.types):
            raise ResolutionError("Place is not a city-level location")

        logger.debug("place_details_fetched", place_id=place_id, name=details.name)
        return details

    async def get_timezone(
        self, lat: float, lng: float, timestamp: int | None = None
    ) -> TimezoneResult:
        """Look up the IANA timezone id for a coordinate pair."""
        if not self._timezone_api_key:
            raise ResolutionError("Google Time Zone API key not configured")

        data = await self._get_json(
            "timezone/json",
            {
                "location": f"{lat},{lng}",
                "timestamp": str(timestamp if timestamp is not None else int(time.time())),
                "key": self._timezone_api_key,
            },
            "Google Time Zone",
        )
        try:
            return TimezoneResult.model_validate(data)
        except ValidationError as e:
            raise ResolutionError(f"Google Time Zone returned no timezone for {lat},{lng}") from e
