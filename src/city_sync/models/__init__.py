from city_sync.models.base import Base
from city_sync.models.cards import EventCard, UserCard
from city_sync.models.city import CityRecord

__all__ = [
    "Base",
    "CityRecord",
    "EventCard",
    "UserCard",
]
