from city_sync.identity.types import City, GraphCityRow, PartialCity
from city_sync.identity.validation import classify_city, is_likely_place_id, is_resolved

__all__ = [
    "City",
    "GraphCityRow",
    "PartialCity",
    "classify_city",
    "is_likely_place_id",
    "is_resolved",
]
