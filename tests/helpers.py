"""Builders and in-memory fakes shared by the tests."""

from city_sync.errors import ResolutionError
from city_sync.geocoding.schemas import PlaceDetails, TimezoneResult
from city_sync.graph.parsing import RejectedRow
from city_sync.identity.types import City, GraphCityRow, priority_key

SEATTLE_ID = "ChIJVTPokywQkFQRmtVEaUZlJRA"
PORTLAND_ID = "ChIJJ3SpfQsLlVQRkYXR9ua5Nhw"
BERLIN_ID = "ChIJAVkDPzdOqEcRcDteW0YgIQQ"


def make_city(
    place_id: str = SEATTLE_ID,
    name: str = "Seattle",
    country_code: str = "US",
    region: str = "WA",
    timezone: str = "America/Los_Angeles",
    latitude: float = 47.6,
    longitude: float = -122.3,
) -> City:
    return City(
        id=place_id,
        name=name,
        country_code=country_code,
        region=region,
        timezone=timezone,
        latitude=latitude,
        longitude=longitude,
    )


def make_graph_row(
    place_id: str = SEATTLE_ID,
    name: str = "Seattle",
    country_code: str = "US",
    region: str = "WA",
    timezone: str | None = "America/Los_Angeles",
    latitude: float | None = 47.6,
    longitude: float | None = -122.3,
    event_refs: int = 0,
    user_refs: int = 0,
) -> GraphCityRow:
    return GraphCityRow(
        id=place_id,
        name=name,
        country_code=country_code,
        region=region,
        timezone=timezone,
        latitude=latitude,
        longitude=longitude,
        event_refs=event_refs,
        user_refs=user_refs,
    )


def make_place(
    place_id: str = SEATTLE_ID,
    name: str = "Seattle",
    lat: float = 47.6062,
    lng: float = -122.3321,
    country: str = "US",
    region: str = "WA",
    types: list[str] | None = None,
) -> PlaceDetails:
    return PlaceDetails.model_validate(
        {
            "place_id": place_id,
            "name": name,
            "formatted_address": f"{name}, {region}, {country}",
            "geometry": {"location": {"lat": lat, "lng": lng}},
            "address_components": [
                {"types": ["locality", "political"], "short_name": name, "long_name": name},
                {
                    "types": ["administrative_area_level_1", "political"],
                    "short_name": region,
                    "long_name": region,
                },
                {"types": ["country", "political"], "short_name": country, "long_name": country},
            ],
            "types": types or ["locality", "political"],
        }
    )


class FakeGeocoder:
    """In-memory geocoding provider keyed by place id."""

    def __init__(
        self,
        places: dict[str, PlaceDetails] | None = None,
        timezone: str = "America/Los_Angeles",
    ) -> None:
        self.places = places or {}
        self.timezone = timezone
        self.calls: list[str] = []

    async def get_place_details(self, place_id: str) -> PlaceDetails:
        self.calls.append(place_id)
        if place_id not in self.places:
            raise ResolutionError("Google Places API error: NOT_FOUND")
        return self.places[place_id]

    async def get_timezone(
        self, lat: float, lng: float, timestamp: int | None = None
    ) -> TimezoneResult:
        return TimezoneResult(timeZoneId=self.timezone)


class FakeGraphReader:
    """In-memory graph store snapshot."""

    def __init__(
        self,
        rows: list[GraphCityRow] | None = None,
        rejected: list[RejectedRow] | None = None,
    ) -> None:
        self.rows = rows or []
        self._rejected = rejected or []
        self.rejected: list[RejectedRow] = []
        self.reads = 0

    async def list_graph_cities(self) -> list[GraphCityRow]:
        self.reads += 1
        self.rejected = list(self._rejected)
        return list(self.rows)

    async def list_graph_cities_with_refs(self) -> list[GraphCityRow]:
        self.reads += 1
        self.rejected = list(self._rejected)
        return sorted(self.rows, key=priority_key)

