"""
Service-radius booking validation.

A business location may limit how far away its customers can be
(`service_radius`, miles; None means unlimited). Before a booking is created the
customer's location is checked against the business's primary location; when it is
out of range, nearby substitutes in the same category can be suggested.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable

from biabook.domain.models import (
    AlternativeBusiness,
    BookingLocationCheck,
    LocationSummary,
    SearchFilters,
    SearchOptions,
    SearchResult,
    ServiceAreaStats,
    ServiceAreaValidationResult,
    ValidationOptions,
)
from biabook.errors import BusinessNotFound, InvalidCoordinates, InvalidRadius, LocationError
from biabook.geo.distance import Coordinates, calculate_distance, round_half_up, validate_coordinates
from biabook.repositories.businesses import BusinessRepository
from biabook.search.proximity import MAX_SEARCH_RADIUS_MILES, ProximitySearchService

logger = logging.getLogger(__name__)

MAX_SERVICE_RADIUS_MILES = 500.0


def format_miles(value: float) -> str:
    """`12.50` -> `12.5`, `3.00` -> `3`."""
    return f"{value:.2f}".rstrip("0").rstrip(".")


def booking_message(result: ServiceAreaValidationResult) -> str:
    base = f"You are {format_miles(result.distance)} miles from {result.business_name}"
    if result.is_valid:
        return base
    radius = f"{format_miles(result.service_radius)} mile" if result.service_radius else "unlimited"
    return f"{base}, which is outside their {radius} service area."


def validate_service_radius_value(radius: float | None) -> tuple[bool, str | None]:
    """Check a radius a business owner wants to configure. None (unlimited) is allowed."""
    if radius is None:
        return True, None
    if isinstance(radius, bool) or not isinstance(radius, (int, float)) or math.isnan(radius):
        return False, "Service radius must be a number or null for unlimited"
    if radius <= 0:
        return False, "Service radius must be greater than 0"
    if radius > MAX_SERVICE_RADIUS_MILES:
        return False, f"Service radius cannot exceed {MAX_SERVICE_RADIUS_MILES:g} miles"
    return True, None


def _unknown_result() -> ServiceAreaValidationResult:
    return ServiceAreaValidationResult(
        is_valid=False,
        distance=0.0,
        service_radius=None,
        business_name="Unknown",
        business_location=LocationSummary(address="", city="", state="", zip_code=""),
    )


class ServiceRadiusValidationService:
    def __init__(self, repository: BusinessRepository, search: ProximitySearchService):
        self._repository = repository
        self._search = search

    def validate_booking_location(
        self,
        business_id: str,
        customer_location: Coordinates,
        options: ValidationOptions | None = None,
    ) -> ServiceAreaValidationResult:
        """Is `customer_location` inside the business's service area?"""
        options = options or ValidationOptions()
        if not validate_coordinates(customer_location):
            raise InvalidCoordinates("Invalid customer coordinates provided")

        record = self._repository.find_by_id(business_id)
        location = record.primary_location if record is not None else None
        if record is None or location is None:
            raise BusinessNotFound(business_id)

        distance = calculate_distance(customer_location, location.coordinates)
        is_valid = location.service_radius is None or distance <= location.service_radius

        result = ServiceAreaValidationResult(
            is_valid=is_valid,
            distance=round_half_up(distance, 2),
            service_radius=location.service_radius,
            business_name=record.business.name,
            business_location=LocationSummary(
                address=location.address,
                city=location.city,
                state=location.state,
                zip_code=location.zip_code,
            ),
        )
        if options.include_alternatives and not is_valid:
            alternatives = self._alternatives(
                customer_location,
                business_id,
                options.max_alternative_radius,
                options.max_alternatives,
            )
            result.alternatives = [
                AlternativeBusiness(
                    id=alt.business.id,
                    name=alt.business.name,
                    distance=alt.distance,
                    estimated_travel_time=alt.estimated_travel_time,
                )
                for alt in alternatives
            ]
        return result

    def _alternatives(
        self,
        customer_location: Coordinates,
        business_id: str,
        max_radius: float,
        max_results: int,
    ) -> list[SearchResult]:
        # Suggestions are best-effort; the validation result stands on its own.
        try:
            return self._search.find_alternative_businesses(
                customer_location,
                business_id,
                max_radius=max_radius,
                limit=max_results,
            )
        except LocationError:
            logger.warning("Error finding alternative businesses for %s", business_id, exc_info=True)
            return []

    def validate_before_booking(self, business_id: str, customer_location: Coordinates) -> BookingLocationCheck:
        validation = self.validate_booking_location(business_id, customer_location)
        return BookingLocationCheck(
            can_book=validation.is_valid,
            message=booking_message(validation),
            distance=validation.distance,
            service_radius=validation.service_radius,
        )

    def validate_multiple_businesses(
        self,
        business_ids: Iterable[str],
        customer_location: Coordinates,
    ) -> dict[str, ServiceAreaValidationResult]:
        """Validate several businesses at once; failures become `is_valid=False` placeholders."""
        results: dict[str, ServiceAreaValidationResult] = {}
        for business_id in business_ids:
            try:
                results[business_id] = self.validate_booking_location(business_id, customer_location)
            except LocationError as e:
                logger.info("Service area validation failed for %s: %s", business_id, e)
                results[business_id] = _unknown_result()
        return results

    def get_service_area_stats(self, business_id: str) -> ServiceAreaStats:
        record = self._repository.find_by_id(business_id)
        location = record.primary_location if record is not None else None
        if location is None:
            raise BusinessNotFound(business_id, "Business location not found")

        unlimited = location.service_radius is None
        coverage = math.inf if unlimited else math.pi * location.service_radius**2
        return ServiceAreaStats(
            service_radius=location.service_radius,
            has_unlimited_radius=unlimited,
            coverage_area=coverage,
            latitude=location.latitude,
            longitude=location.longitude,
            address=location.address,
            city=location.city,
            state=location.state,
        )

    def update_service_radius(self, business_id: str, service_radius: float | None) -> None:
        ok, message = validate_service_radius_value(service_radius)
        if not ok:
            raise InvalidRadius(message or "Invalid service radius")
        self._repository.update_service_radius(business_id, service_radius)
        logger.info("Updated service radius for %s to %s", business_id, service_radius)

    def get_businesses_serving_location(
        self,
        location: Coordinates,
        category_id: str | None = None,
        max_radius: float = 100,
    ) -> list[SearchResult]:
        """Businesses within `max_radius` whose own service area reaches `location`."""
        max_radius = min(max_radius, MAX_SEARCH_RADIUS_MILES)
        return self._search.search_nearby(
            location,
            SearchFilters(radius=max_radius, category_id=category_id, sort_by="distance"),
            SearchOptions(validate_service_radius=True),
        )
