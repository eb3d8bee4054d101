from __future__ import annotations

# Proximity matcher: "which businesses are near this point?"
#
# Pipeline per call:
# - validate center + radius (nothing else runs on bad input)
# - repository candidates, prefiltered by a conservative bounding box
# - exact Haversine distance + travel time per candidate
# - radius filter (and service-radius filter when requested)
# - stable multi-key sort, then offset/limit
# - optional service attachment
#
# Address and zip entry points resolve coordinates through the geocoding service first.

import logging
import math
from typing import Sequence

from biabook.domain.models import (
    UNCATEGORIZED,
    SearchFilters,
    SearchOptions,
    SearchResult,
    Service,
)
from biabook.errors import BusinessNotFound, GeocodingFailed, InvalidCoordinates, InvalidRadius
from biabook.geo.bounding_box import create_bounding_box
from biabook.geo.distance import Coordinates, calculate_distance_with_time, validate_coordinates
from biabook.geocoding.service import GeocodingService, normalize_zip_code
from biabook.repositories.businesses import BusinessRepository, Candidate

logger = logging.getLogger(__name__)

MAX_SEARCH_RADIUS_MILES = 500.0
DEFAULT_SEARCH_RADIUS_MILES = 25.0
DEFAULT_ALTERNATIVES_RADIUS_MILES = 50.0


def validate_radius(radius: float) -> None:
    if isinstance(radius, bool) or not isinstance(radius, (int, float)) or math.isnan(radius):
        raise InvalidRadius("Radius must be a number")
    if radius <= 0 or radius > MAX_SEARCH_RADIUS_MILES:
        raise InvalidRadius(f"Radius must be greater than 0 and at most {MAX_SEARCH_RADIUS_MILES:g} miles")


def _average_price(services: Sequence[Service]) -> float | None:
    prices = [s.price for s in services]
    return sum(prices) / len(prices) if prices else None


def _sort_results(
    results: list[SearchResult],
    sort_by: str,
    prices: dict[str, float | None] | None = None,
) -> None:
    """Sort in place; Python's sort is stable so ties keep candidate order."""
    if sort_by == "rating":
        # Unrated businesses go last.
        results.sort(key=lambda r: (r.business.rating is None, -(r.business.rating or 0.0)))
    elif sort_by == "price":
        prices = prices or {}

        def price_key(r: SearchResult) -> tuple[bool, float]:
            avg = prices.get(r.business.id)
            return (avg is None, avg if avg is not None else 0.0)

        results.sort(key=price_key)
    elif sort_by == "name":
        results.sort(key=lambda r: r.business.name.casefold())
    else:
        results.sort(key=lambda r: r.distance)


class ProximitySearchService:
    """Ranks business locations by distance from a point.

    `geocoder` is only needed for the address and zip code entry points.
    """

    def __init__(self, repository: BusinessRepository, geocoder: GeocodingService | None = None):
        self._repository = repository
        self._geocoder = geocoder

    @property
    def repository(self) -> BusinessRepository:
        return self._repository

    def _require_geocoder(self) -> GeocodingService:
        if self._geocoder is None:
            raise GeocodingFailed("No geocoding service configured")
        return self._geocoder

    def search_nearby(
        self,
        center: Coordinates,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        filters = filters or SearchFilters()
        options = options or SearchOptions()

        if not validate_coordinates(center):
            raise InvalidCoordinates(
                "Latitude must be within [-90, 90] and longitude within [-180, 180]",
                fallback_action="Please provide valid coordinates",
            )
        validate_radius(filters.radius)

        box = create_bounding_box(center, filters.radius)
        candidates = self._repository.find_all(category_id=filters.category_id, within=box)

        results: list[SearchResult] = []
        for candidate in candidates:
            measured = calculate_distance_with_time(center, candidate.location.coordinates)
            if not self._in_range(candidate, measured.distance, filters.radius, options):
                continue
            results.append(
                SearchResult(
                    business=candidate.business,
                    location=candidate.location,
                    category=candidate.category or UNCATEGORIZED,
                    distance=measured.distance,
                    estimated_travel_time=measured.estimated_travel_time,
                )
            )

        services: dict[str, list[Service]] | None = None
        if options.include_services or filters.sort_by == "price":
            services = self._repository.find_services({r.business.id for r in results})

        prices = None
        if filters.sort_by == "price" and services is not None:
            prices = {business_id: _average_price(items) for business_id, items in services.items()}
        _sort_results(results, filters.sort_by, prices)

        start = filters.offset
        end = start + filters.limit if filters.limit is not None else None
        page = results[start:end]

        if options.include_services and services is not None:
            page = [r.model_copy(update={"services": list(services.get(r.business.id, []))}) for r in page]

        logger.debug(
            "search_nearby center=%.5f,%.5f radius=%s candidates=%d matched=%d returned=%d",
            center.latitude,
            center.longitude,
            filters.radius,
            len(candidates),
            len(results),
            len(page),
        )
        return page

    @staticmethod
    def _in_range(candidate: Candidate, distance: float, radius: float, options: SearchOptions) -> bool:
        if distance > radius:
            return False
        if not options.validate_service_radius:
            return True
        service_radius = candidate.location.service_radius
        return service_radius is None or distance <= service_radius

    def search_by_zip_code(
        self,
        zip_code: str,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Geocode a US zip code and search around its centroid (25 mi by default)."""
        filters = filters or SearchFilters(radius=DEFAULT_SEARCH_RADIUS_MILES)
        normalize_zip_code(zip_code)
        validate_radius(filters.radius)
        center = self._require_geocoder().geocode_zip_code(zip_code)
        return self.search_nearby(center, filters, options)

    def search_by_address(
        self,
        address: str,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        filters = filters or SearchFilters()
        validate_radius(filters.radius)
        center = self._require_geocoder().geocode_address(address)
        return self.search_nearby(center, filters, options)

    def get_businesses_in_radius(
        self,
        center: Coordinates,
        radius: float,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Every active location within `radius` miles, nearest first, unpaged."""
        return self.search_nearby(center, SearchFilters(radius=radius, sort_by="distance"), options)

    def find_alternative_businesses(
        self,
        customer_location: Coordinates,
        original_business_id: str,
        max_radius: float = DEFAULT_ALTERNATIVES_RADIUS_MILES,
        limit: int = 10,
    ) -> list[SearchResult]:
        """Same-category businesses that actually serve `customer_location`."""
        original = self._repository.find_by_id(original_business_id)
        if original is None:
            raise BusinessNotFound(original_business_id)

        filters = SearchFilters(
            radius=max_radius,
            category_id=original.business.category_id,
            sort_by="distance",
        )
        results = self.search_nearby(
            customer_location,
            filters,
            SearchOptions(validate_service_radius=True),
        )
        return [r for r in results if r.business.id != original_business_id][:limit]
