"""
Domain models (Pydantic).

These types are the contract between layers:
- catalog entities (`Business`, `BusinessLocation`, `Service`, `Category`)
- search inputs (`SearchFilters`, `SearchOptions`, `ValidationOptions`)
- transient outputs (`SearchResult`, `ServiceAreaValidationResult`, ...)

The geometry layer (`biabook.geo`) works on plain `Coordinates` dataclasses;
`GeoPoint` is the validated form used at the API boundary.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from biabook.core.time import is_valid_timezone
from biabook.geo.distance import Coordinates

SortBy = Literal["distance", "rating", "price", "name"]


class GeoPoint(BaseModel):
    """A geographic point in decimal degrees."""

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)

    def to_coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    @classmethod
    def from_coordinates(cls, coords: Coordinates) -> "GeoPoint":
        return cls(latitude=coords.latitude, longitude=coords.longitude)


class Address(BaseModel):
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "US"

    def one_line(self) -> str:
        locality = " ".join(p for p in [self.state, self.zip_code] if p)
        return ", ".join(p for p in [self.address, self.city, locality] if p)


class AddressSuggestion(BaseModel):
    """One autocomplete candidate; `place_id` feeds `get_place_details`."""

    place_id: str
    description: str
    main_text: str = ""
    secondary_text: str = ""


class PlaceDetails(BaseModel):
    place_id: str
    formatted_address: str
    coordinates: GeoPoint
    address: Address


class AddressValidation(BaseModel):
    is_valid: bool
    formatted_address: str | None = None
    coordinates: GeoPoint | None = None
    timezone: str | None = None
    errors: list[str] = Field(default_factory=list)


class Category(BaseModel):
    id: str
    name: str


UNCATEGORIZED = Category(id="", name="Uncategorized")


class Service(BaseModel):
    """A bookable service offered by a business. `price` is in cents."""

    id: str
    business_id: str
    name: str
    description: str | None = None
    duration: int = Field(..., gt=0)
    price: int = Field(..., ge=0)
    category: str | None = None
    is_active: bool = True


class Business(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    phone: str | None = None
    email: str | None = None
    category_id: str | None = None
    owner_id: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    is_active: bool = True


class BusinessLocation(BaseModel):
    """A physical location of a business. `service_radius=None` means unlimited."""

    id: str
    business_id: str
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "US"
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    timezone: str = "America/New_York"
    service_radius: float | None = Field(default=None, gt=0, le=500)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class SearchFilters(BaseModel):
    """Search knobs. `radius` is range-checked by the matcher, not here."""

    radius: float = 25
    category_id: str | None = None
    sort_by: SortBy = "distance"
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class SearchOptions(BaseModel):
    include_services: bool = False
    validate_service_radius: bool = False


class SearchResult(BaseModel):
    """One ranked business location with its distance from the search center."""

    business: Business
    location: BusinessLocation
    category: Category = UNCATEGORIZED
    distance: float
    estimated_travel_time: int
    services: list[Service] | None = None


class ValidationOptions(BaseModel):
    include_alternatives: bool = False
    max_alternative_radius: float = Field(default=50, ge=1, le=500)
    max_alternatives: int = Field(default=5, ge=1, le=20)


class LocationSummary(BaseModel):
    address: str
    city: str
    state: str
    zip_code: str


class AlternativeBusiness(BaseModel):
    id: str
    name: str
    distance: float
    estimated_travel_time: int


class ServiceAreaValidationResult(BaseModel):
    is_valid: bool
    distance: float
    service_radius: float | None
    business_name: str
    business_location: LocationSummary
    alternatives: list[AlternativeBusiness] | None = None


class BookingLocationCheck(BaseModel):
    can_book: bool
    message: str
    distance: float
    service_radius: float | None


class ServiceAreaStats(BaseModel):
    service_radius: float | None
    has_unlimited_radius: bool
    coverage_area: float
    latitude: float
    longitude: float
    address: str
    city: str
    state: str
