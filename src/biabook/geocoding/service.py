"""
Geocoding service: the collaborator the proximity matcher resolves addresses and
zip codes through.

Responsibilities:
- primary/fallback provider execution (one fallback attempt, no retry loop)
- on-disk caching of successful lookups (`FileCache`; its default TTL unless
  `cache_ttl_seconds` overrides it)
- zip code normalization before anything reaches a provider

When both providers fail, the primary provider's error is raised so callers see the
most relevant failure.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, TypeVar

from biabook.core.cache import FileCache
from biabook.domain.models import Address, AddressSuggestion, AddressValidation, GeoPoint, PlaceDetails
from biabook.errors import (
    GeocodingFailed,
    InvalidCoordinates,
    InvalidZipCode,
    LocationError,
    TimezoneDetectionFailed,
)
from biabook.geo.distance import Coordinates, validate_coordinates
from biabook.geocoding.providers import GeocodingProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

ZIP_CODE_RE = re.compile(r"^\d{5}(-\d{4})?$")
MIN_SUGGESTION_INPUT = 3


def normalize_zip_code(zip_code: str) -> str:
    """Return `12345` or `12345-6789`; accepts `123456789` and `12345 6789`."""
    raw = str(zip_code or "").strip()
    compact = re.sub(r"\s+", "", raw)
    if len(compact) == 9 and compact.isdigit():
        compact = f"{compact[:5]}-{compact[5:]}"
    elif re.fullmatch(r"\d{5}\s+\d{4}", raw):
        compact = re.sub(r"\s+", "-", raw)
    if not ZIP_CODE_RE.match(compact):
        raise InvalidZipCode(
            f"Invalid zip code format: {zip_code!r}",
            fallback_action="Use 12345 or 12345-6789 format",
        )
    return compact


def _coords_to_cache(coords: Coordinates) -> dict[str, float]:
    return {"latitude": coords.latitude, "longitude": coords.longitude}


def _coords_from_cache(value: object) -> Coordinates | None:
    if not isinstance(value, dict):
        return None
    try:
        coords = Coordinates(latitude=float(value["latitude"]), longitude=float(value["longitude"]))
    except (KeyError, TypeError, ValueError):
        return None
    return coords if validate_coordinates(coords) else None


class GeocodingService:
    def __init__(
        self,
        primary: GeocodingProvider | None,
        fallback: GeocodingProvider | None = None,
        *,
        cache: FileCache | None = None,
        cache_ttl_seconds: int | None = None,
    ):
        self._primary = primary
        self._fallback = fallback
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds
        if primary is None:
            logger.warning("No geocoding providers configured; address and zip lookups will fail")

    @property
    def cache(self) -> FileCache | None:
        return self._cache

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in (self._primary, self._fallback) if p is not None]

    def _execute_with_fallback(self, operation: Callable[[GeocodingProvider], T], operation_name: str) -> T:
        if self._primary is None:
            raise GeocodingFailed(
                "No geocoding providers configured",
                fallback_action="Configure at least one geocoding provider API key",
            )
        try:
            return operation(self._primary)
        except LocationError as primary_error:
            # Bad input fails the same way everywhere.
            if isinstance(primary_error, ValueError) or self._fallback is None:
                raise
            logger.warning(
                "Primary provider (%s) failed for %s: %s",
                self._primary.name,
                operation_name,
                primary_error,
            )
            try:
                return operation(self._fallback)
            except LocationError as fallback_error:
                logger.warning(
                    "Fallback provider (%s) also failed for %s: %s",
                    self._fallback.name,
                    operation_name,
                    fallback_error,
                )
                raise primary_error from fallback_error

    def _store(self, namespace: str, key: str, value: object) -> None:
        """Cache a successful lookup; a failed write never fails the lookup itself."""
        if self._cache is None:
            return
        try:
            self._cache.set(namespace, key, value, ttl_seconds=self._cache_ttl_seconds)
        except OSError as e:
            logger.warning("Could not cache %s lookup for %r: %s", namespace, key, e)

    def _cached_coordinates(self, namespace: str, key: str, lookup: Callable[[], Coordinates]) -> Coordinates:
        if self._cache is not None:
            hit = _coords_from_cache(self._cache.get(namespace, key, ttl_seconds=self._cache_ttl_seconds))
            if hit is not None:
                return hit
        coords = lookup()
        self._store(namespace, key, _coords_to_cache(coords))
        return coords

    def geocode_address(self, address: str) -> Coordinates:
        """Resolve a free-form address to coordinates."""
        query = str(address or "").strip()
        if not query:
            raise GeocodingFailed("Address cannot be empty", fallback_action="Please provide a valid address")
        return self._cached_coordinates(
            "address",
            query,
            lambda: self._execute_with_fallback(lambda p: p.geocode_address(query), "geocode_address"),
        )

    def geocode_zip_code(self, zip_code: str) -> Coordinates:
        """Resolve a US zip code (5 or 5+4 digits) to its centroid."""
        normalized = normalize_zip_code(zip_code)
        zip5 = normalized[:5]
        return self._cached_coordinates(
            "zip",
            zip5,
            lambda: self._execute_with_fallback(lambda p: p.geocode_postal_code(zip5), "geocode_zip_code"),
        )

    def reverse_geocode(self, coordinates: Coordinates) -> Address:
        if not validate_coordinates(coordinates):
            raise InvalidCoordinates("Invalid coordinates provided")
        return self._execute_with_fallback(lambda p: p.reverse_geocode(coordinates), "reverse_geocode")

    def get_timezone(self, coordinates: Coordinates) -> str:
        """IANA timezone for a point (cached per ~100 m cell)."""
        if not validate_coordinates(coordinates):
            raise InvalidCoordinates("Invalid coordinates provided")
        key = f"{coordinates.latitude:.3f},{coordinates.longitude:.3f}"
        if self._cache is not None:
            cached = self._cache.get("timezone", key, ttl_seconds=self._cache_ttl_seconds)
            if isinstance(cached, str):
                return cached
        name = self._execute_with_fallback(lambda p: p.get_timezone(coordinates), "get_timezone")
        self._store("timezone", key, name)
        return name

    def get_address_suggestions(self, text: str, session_token: str | None = None) -> list[AddressSuggestion]:
        """Autocomplete candidates for partial input.

        Input under three characters is never sent upstream; provider failures
        yield an empty list (logged) instead of an error.
        """
        query = str(text or "").strip()
        if len(query) < MIN_SUGGESTION_INPUT:
            return []
        try:
            return self._execute_with_fallback(
                lambda p: p.get_address_suggestions(query, session_token=session_token),
                "get_address_suggestions",
            )
        except LocationError as e:
            logger.warning("Address suggestions unavailable for %r: %s", query, e)
            return []

    def get_place_details(self, place_id: str) -> PlaceDetails:
        place_id = str(place_id or "").strip()
        if not place_id:
            raise GeocodingFailed("Place ID cannot be empty", fallback_action="Pick an address suggestion first")
        return self._execute_with_fallback(lambda p: p.get_place_details(place_id), "get_place_details")

    def validate_address(self, address: str) -> AddressValidation:
        """Geocode then reverse-geocode; failures are reported, not raised.

        The timezone is best effort: an address that resolves is valid even when no
        provider can name its timezone.
        """
        try:
            coords = self.geocode_address(address)
            resolved = self.reverse_geocode(coords)
        except LocationError as e:
            return AddressValidation(is_valid=False, errors=[e.message])
        try:
            timezone = self.get_timezone(coords)
        except TimezoneDetectionFailed as e:
            logger.warning("No timezone for validated address %r: %s", address, e)
            timezone = None
        return AddressValidation(
            is_valid=True,
            formatted_address=resolved.one_line() or None,
            coordinates=GeoPoint.from_coordinates(coords),
            timezone=timezone,
        )

    def purge_expired_cache(self) -> int:
        return self._cache.purge_expired() if self._cache is not None else 0

    def cache_stats(self) -> dict[str, int]:
        if self._cache is None:
            return {"total_entries": 0, "expired_entries": 0}
        return self._cache.stats()
