"""
API routes.

Endpoints:
- GET|POST `/api/businesses/search/nearby`: proximity search around coordinates.
- GET|POST `/api/businesses/search/zip`: proximity search around a US zip code.
- POST `/api/bookings/validate-location`: service-radius check before booking.
- GET  `/api/businesses/{business_id}/service-area`: service-area statistics.
- GET  `/api/location/geocode`: address -> coordinates.
- GET  `/api/location/validate`: geocode + reverse-geocode an address, reporting problems.
- GET  `/api/location/autocomplete`: address suggestions while typing.
- GET  `/api/location/place-details`: a suggestion's place ID -> address + coordinates.
- GET  `/api/timezone/detect`: coordinates -> IANA timezone.
- POST `/api/timezone/convert`: business <-> customer local time.
- GET  `/api/settings`: public settings (secrets redacted).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from biabook.config.settings import get_settings
from biabook.core.rate_limit import KeyedRateLimiter
from biabook.core.time import convert_timezone, is_valid_timezone, parse_datetime
from biabook.domain.models import (
    GeoPoint,
    SearchFilters,
    SearchOptions,
    SearchResult,
    SortBy,
    ValidationOptions,
)
from biabook.errors import BusinessNotFound, LocationError
from biabook.geo.distance import Coordinates
from biabook.geocoding.factory import build_geocoding_service
from biabook.geocoding.service import GeocodingService
from biabook.repositories.businesses import InMemoryBusinessRepository
from biabook.search.proximity import ProximitySearchService
from biabook.search.service_radius import ServiceRadiusValidationService, booking_message

logger = logging.getLogger(__name__)

router = APIRouter()


class NearbySearchRequest(BaseModel):
    latitude: float
    longitude: float
    radius: float | None = None
    category_id: str | None = None
    sort_by: SortBy | None = None
    include_services: bool = False
    validate_service_radius: bool = False
    limit: int | None = Field(None, ge=1)
    offset: int = Field(0, ge=0)


class ZipSearchRequest(BaseModel):
    zip_code: str
    radius: float | None = None
    category_id: str | None = None
    sort_by: SortBy | None = None
    include_services: bool = False
    validate_service_radius: bool = False
    limit: int | None = Field(None, ge=1)
    offset: int = Field(0, ge=0)


class ValidateLocationRequest(BaseModel):
    business_id: str = Field(..., min_length=1)
    customer_location: GeoPoint
    include_alternatives: bool = False
    max_alternative_radius: float | None = Field(None, ge=1, le=500)
    max_alternatives: int | None = Field(None, ge=1, le=20)


class TimezoneConvertRequest(BaseModel):
    datetime: str
    business_timezone: str
    customer_timezone: str | None = None
    direction: str = Field("to_customer", pattern="^(to_customer|to_business)$")


@dataclass(frozen=True)
class Services:
    search: ProximitySearchService
    validator: ServiceRadiusValidationService
    geocoder: GeocodingService
    limiter: KeyedRateLimiter | None = None


@lru_cache
def _services() -> Services:
    settings = get_settings()
    repository = InMemoryBusinessRepository.from_path(settings.catalog.path)
    geocoder = build_geocoding_service(settings)
    search = ProximitySearchService(repository, geocoder)
    rpm = settings.api.location_requests_per_minute
    return Services(
        search=search,
        validator=ServiceRadiusValidationService(repository, search),
        geocoder=geocoder,
        limiter=KeyedRateLimiter(rpm) if rpm > 0 else None,
    )


def _http_error(e: Exception) -> HTTPException:
    """Map a core failure onto an HTTP status with a `{code, message}` detail."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, BusinessNotFound):
        return HTTPException(status_code=404, detail=e.as_dict())
    if isinstance(e, LocationError):
        status = 400 if isinstance(e, ValueError) else 502
        return HTTPException(status_code=status, detail=e.as_dict())
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": str(e)})
    # Unexpected failures stay in the server log; clients get a fixed message.
    logger.exception("Unhandled error while serving request")
    return HTTPException(status_code=500, detail={"code": "INTERNAL_ERROR", "message": "Internal server error"})


def _check_rate_limit(request: Request, services: Services) -> None:
    if services.limiter is None:
        return
    key = request.client.host if request.client else "anonymous"
    decision = services.limiter.check(key)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail={"code": "RATE_LIMITED", "message": "Too many location requests"},
            headers={"Retry-After": str(max(1, int(decision.retry_after_seconds + 0.999)))},
        )


def _search_filters(body: NearbySearchRequest | ZipSearchRequest) -> SearchFilters:
    """Fill unset knobs from `search` settings; `limit` is capped at `search.max_limit`."""
    search = get_settings().search
    limit = body.limit if body.limit is not None else search.default_limit
    if limit > search.max_limit:
        raise ValueError(f"limit must be at most {search.max_limit}")
    return SearchFilters(
        radius=body.radius if body.radius is not None else search.default_radius_miles,
        category_id=body.category_id,
        sort_by=body.sort_by or search.default_sort_by,
        limit=limit,
        offset=body.offset,
    )


def _search_payload(results: list[SearchResult], params: dict[str, Any]) -> dict:
    return {
        "success": True,
        "data": {
            "businesses": [r.model_dump(mode="json") for r in results],
            "search_params": {**params, "results_count": len(results)},
        },
    }


def _run_nearby(body: NearbySearchRequest) -> dict:
    services = _services()
    center = Coordinates(latitude=body.latitude, longitude=body.longitude)
    try:
        filters = _search_filters(body)
        results = services.search.search_nearby(
            center,
            filters,
            SearchOptions(
                include_services=body.include_services,
                validate_service_radius=body.validate_service_radius,
            ),
        )
    except Exception as e:
        raise _http_error(e) from e
    return _search_payload(
        results,
        {
            "location": {"latitude": body.latitude, "longitude": body.longitude},
            "radius": filters.radius,
            "category_id": filters.category_id,
            "sort_by": filters.sort_by,
        },
    )


@router.post("/api/businesses/search/nearby")
def post_search_nearby(body: NearbySearchRequest) -> dict:
    """Rank active business locations by distance from a point."""
    return _run_nearby(body)


@router.get("/api/businesses/search/nearby")
def get_search_nearby(
    latitude: float,
    longitude: float,
    radius: float | None = None,
    category_id: str | None = None,
    sort_by: SortBy | None = None,
    include_services: bool = False,
    validate_service_radius: bool = False,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
) -> dict:
    return _run_nearby(
        NearbySearchRequest(
            latitude=latitude,
            longitude=longitude,
            radius=radius,
            category_id=category_id,
            sort_by=sort_by,
            include_services=include_services,
            validate_service_radius=validate_service_radius,
            limit=limit,
            offset=offset,
        )
    )


def _run_zip(request: Request, body: ZipSearchRequest) -> dict:
    services = _services()
    _check_rate_limit(request, services)
    try:
        filters = _search_filters(body)
        results = services.search.search_by_zip_code(
            body.zip_code,
            filters,
            SearchOptions(
                include_services=body.include_services,
                validate_service_radius=body.validate_service_radius,
            ),
        )
    except Exception as e:
        raise _http_error(e) from e
    return _search_payload(
        results,
        {
            "zip_code": body.zip_code,
            "radius": filters.radius,
            "category_id": filters.category_id,
            "sort_by": filters.sort_by,
        },
    )


@router.post("/api/businesses/search/zip")
def post_search_zip(request: Request, body: ZipSearchRequest) -> dict:
    """Geocode a zip code, then search around it."""
    return _run_zip(request, body)


@router.get("/api/businesses/search/zip")
def get_search_zip(
    request: Request,
    zip_code: str,
    radius: float | None = None,
    category_id: str | None = None,
    sort_by: SortBy | None = None,
    include_services: bool = False,
    validate_service_radius: bool = False,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
) -> dict:
    return _run_zip(
        request,
        ZipSearchRequest(
            zip_code=zip_code,
            radius=radius,
            category_id=category_id,
            sort_by=sort_by,
            include_services=include_services,
            validate_service_radius=validate_service_radius,
            limit=limit,
            offset=offset,
        ),
    )


@router.post("/api/bookings/validate-location")
def post_validate_location(body: ValidateLocationRequest) -> dict:
    """Check a customer location against a business's service radius."""
    services = _services()
    search = get_settings().search
    try:
        result = services.validator.validate_booking_location(
            body.business_id,
            body.customer_location.to_coordinates(),
            ValidationOptions(
                include_alternatives=body.include_alternatives,
                max_alternative_radius=body.max_alternative_radius or search.alternatives_max_radius_miles,
                max_alternatives=body.max_alternatives or search.alternatives_max_results,
            ),
        )
    except Exception as e:
        raise _http_error(e) from e
    return {
        "validation": result.model_dump(mode="json"),
        "can_book": result.is_valid,
        "message": booking_message(result),
    }


@router.get("/api/businesses/{business_id}/service-area")
def get_service_area(business_id: str) -> dict:
    services = _services()
    try:
        stats = services.validator.get_service_area_stats(business_id)
    except Exception as e:
        raise _http_error(e) from e
    payload = stats.model_dump(mode="python")
    # JSON has no infinity; unlimited coverage is reported as null.
    if stats.has_unlimited_radius:
        payload["coverage_area"] = None
    return {"success": True, "data": payload}


@router.get("/api/location/geocode")
def get_geocode(request: Request, address: str = Query(..., min_length=1)) -> dict:
    """Resolve an address to coordinates."""
    services = _services()
    _check_rate_limit(request, services)
    try:
        coords = services.geocoder.geocode_address(address)
    except Exception as e:
        raise _http_error(e) from e
    return {
        "success": True,
        "data": {
            "address": address,
            "coordinates": {"latitude": coords.latitude, "longitude": coords.longitude},
        },
    }


@router.get("/api/location/validate")
def get_validate_address(request: Request, address: str = Query(..., min_length=1)) -> dict:
    services = _services()
    _check_rate_limit(request, services)
    validation = services.geocoder.validate_address(address)
    return {"success": validation.is_valid, "data": validation.model_dump(mode="json")}


@router.get("/api/location/autocomplete")
def get_address_autocomplete(
    request: Request,
    text: str = Query(..., alias="input"),
    session_token: str | None = None,
) -> dict:
    """Address suggestions for partial input; empty when input is short or providers fail."""
    services = _services()
    _check_rate_limit(request, services)
    suggestions = services.geocoder.get_address_suggestions(text, session_token=session_token)
    return {
        "success": True,
        "data": {"suggestions": [s.model_dump(mode="json") for s in suggestions], "input": text},
    }


@router.get("/api/location/place-details")
def get_place_details(request: Request, place_id: str = Query(..., min_length=1)) -> dict:
    services = _services()
    _check_rate_limit(request, services)
    try:
        details = services.geocoder.get_place_details(place_id)
    except Exception as e:
        raise _http_error(e) from e
    return {"success": True, "data": details.model_dump(mode="json")}


@router.get("/api/timezone/detect")
def get_timezone_detect(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
) -> dict:
    services = _services()
    _check_rate_limit(request, services)
    try:
        timezone = services.geocoder.get_timezone(Coordinates(latitude=latitude, longitude=longitude))
    except Exception as e:
        raise _http_error(e) from e
    return {"timezone": timezone}


@router.post("/api/timezone/convert")
def post_timezone_convert(body: TimezoneConvertRequest) -> dict:
    """Convert an appointment time between business and customer timezones."""
    settings = get_settings()
    customer_tz = body.customer_timezone or settings.geocoding.default_timezone
    source, target = (
        (body.business_timezone, customer_tz)
        if body.direction == "to_customer"
        else (customer_tz, body.business_timezone)
    )
    try:
        for name in (source, target):
            if not is_valid_timezone(name):
                raise ValueError(f"Unknown timezone: {name}")
        converted = convert_timezone(
            parse_datetime(body.datetime, source),
            to_timezone=target,
            from_timezone=source,
        )
    except Exception as e:
        raise _http_error(e) from e
    return {
        "datetime": converted.isoformat(),
        "from_timezone": source,
        "to_timezone": target,
    }


@router.get("/api/settings")
def get_public_settings() -> dict:
    """Return safe-to-expose settings for clients (credentials removed)."""
    settings = get_settings()
    data = settings.model_dump(mode="json")

    geocoding = data.get("geocoding", {})
    return {
        "app": {"name": data["app"]["name"], "timezone": data["app"]["timezone"]},
        "search": data.get("search", {}),
        "geocoding": {
            "primary": geocoding.get("primary"),
            "default_timezone": geocoding.get("default_timezone"),
            "providers": {
                "google": bool(settings.geocoding.google.api_key),
                "locationiq": bool(settings.geocoding.locationiq.api_key),
            },
        },
    }
