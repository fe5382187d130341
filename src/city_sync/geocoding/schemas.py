"""Pydantic models for the geocoding provider payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GeocodingModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AddressComponent(GeocodingModel):
    types: list[str] = []
    short_name: str = ""
    long_name: str = ""


class LatLng(GeocodingModel):
    lat: float
    lng: float


class Geometry(GeocodingModel):
    location: LatLng


class PlaceDetails(GeocodingModel):
    place_id: str
    name: str = ""
    formatted_address: str = ""
    geometry: Geometry
    address_components: list[AddressComponent] = []
    types: list[str] = []

    def component_short_name(self, component_type: str) -> str:
        """Short name of the first address component of the given type, or ``""``."""
        for component in self.address_components:
            if component_type in component.types:
                return component.short_name
        return ""


class TimezoneResult(GeocodingModel):
    timeZoneId: str
    timeZoneName: str = ""
