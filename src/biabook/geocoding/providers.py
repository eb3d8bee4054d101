"""
Geocoding providers (LocationIQ, Google Maps).

Each provider turns one upstream API into the `GeocodingProvider` protocol:
- `geocode_address` / `geocode_postal_code` -> `Coordinates`
- `reverse_geocode` -> `Address`
- `get_timezone` -> IANA timezone name
- `get_address_suggestions` -> `AddressSuggestion`s, `get_place_details` -> `PlaceDetails`

Upstream failures (transport errors, non-2xx, empty results, malformed payloads) are
raised as `GeocodingFailed` / `TimezoneDetectionFailed`. Providers never retry;
`GeocodingService` decides whether a fallback provider gets a turn.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx

from biabook.core.http import get_json
from biabook.core.rate_limit import TokenBucketRateLimiter
from biabook.core.time import is_valid_timezone
from biabook.domain.models import Address, AddressSuggestion, GeoPoint, PlaceDetails
from biabook.errors import GeocodingFailed, InvalidCoordinates, LocationError, TimezoneDetectionFailed
from biabook.geo.distance import Coordinates, validate_coordinates

logger = logging.getLogger(__name__)


class GeocodingProvider(Protocol):
    name: str

    def is_configured(self) -> bool: ...

    def geocode_address(self, address: str) -> Coordinates: ...

    def geocode_postal_code(self, postal_code: str, *, country: str = "US") -> Coordinates: ...

    def reverse_geocode(self, coordinates: Coordinates) -> Address: ...

    def get_timezone(self, coordinates: Coordinates) -> str: ...

    def get_address_suggestions(self, text: str, *, session_token: str | None = None) -> list[AddressSuggestion]: ...

    def get_place_details(self, place_id: str) -> PlaceDetails: ...


def _parse_coordinates(lat: Any, lon: Any, *, provider: str) -> Coordinates:
    try:
        coords = Coordinates(latitude=float(lat), longitude=float(lon))
    except (TypeError, ValueError) as e:
        raise GeocodingFailed(f"{provider} returned non-numeric coordinates") from e
    if not validate_coordinates(coords):
        raise GeocodingFailed(f"{provider} returned out-of-range coordinates: {lat},{lon}")
    return coords


def _require_valid(coordinates: Coordinates) -> None:
    if not validate_coordinates(coordinates):
        raise InvalidCoordinates("Latitude must be within [-90, 90] and longitude within [-180, 180]")


class _HttpProvider:
    name = "base"

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout_seconds: float = 10,
        rate_limiter: TokenBucketRateLimiter | None = None,
    ):
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._rate_limiter = rate_limiter

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get(self, url: str, params: dict[str, Any], *, error_cls: type[LocationError]) -> Any:
        if not self.is_configured():
            raise error_cls(
                f"{self.name} API key not configured",
                fallback_action=f"Configure the {self.name} API key",
            )
        logger.debug("%s request: %s", self.name, url)
        try:
            return get_json(
                url,
                params={**params, **self._auth_params()},
                timeout_seconds=self._timeout_seconds,
                rate_limiter=self._rate_limiter,
            )
        except httpx.HTTPStatusError as e:
            raise error_cls(f"{self.name} API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise error_cls(f"{self.name} request failed: {e}") from e
        except ValueError as e:
            raise error_cls(f"{self.name} returned invalid JSON") from e

    def _auth_params(self) -> dict[str, str]:
        return {"key": self._api_key or ""}


def _street(parts: dict[str, Any]) -> str:
    return " ".join(str(parts[k]) for k in ("house_number", "road") if parts.get(k))


def _locationiq_address(parts: Any) -> Address:
    if not isinstance(parts, dict):
        parts = {}
    return Address(
        address=_street(parts),
        city=str(parts.get("city") or parts.get("town") or parts.get("suburb") or parts.get("neighbourhood") or ""),
        state=str(parts.get("state") or ""),
        zip_code=str(parts.get("postcode") or ""),
        country=str(parts.get("country_code") or "us").upper(),
    )


class LocationIQProvider(_HttpProvider):
    name = "locationiq"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://us1.locationiq.com/v1",
        country_codes: str = "us",
        timeout_seconds: float = 10,
        rate_limiter: TokenBucketRateLimiter | None = None,
    ):
        super().__init__(api_key, timeout_seconds=timeout_seconds, rate_limiter=rate_limiter)
        self._base_url = base_url.rstrip("/")
        self._country_codes = country_codes

    def _search(self, params: dict[str, Any], *, what: str) -> Coordinates:
        data = self._get(
            f"{self._base_url}/search.php",
            {"format": "json", "addressdetails": 1, "limit": 1, "countrycodes": self._country_codes, **params},
            error_cls=GeocodingFailed,
        )
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise GeocodingFailed(
                f"No results found for {what}",
                fallback_action="Please check the address and try again",
            )
        first = data[0]
        return _parse_coordinates(first.get("lat"), first.get("lon"), provider=self.name)

    def geocode_address(self, address: str) -> Coordinates:
        return self._search({"q": address}, what=f"address '{address}'")

    def geocode_postal_code(self, postal_code: str, *, country: str = "US") -> Coordinates:
        return self._search({"postalcode": postal_code, "countrycodes": country.lower()}, what=f"zip code {postal_code}")

    def reverse_geocode(self, coordinates: Coordinates) -> Address:
        _require_valid(coordinates)
        data = self._get(
            f"{self._base_url}/reverse.php",
            {"lat": coordinates.latitude, "lon": coordinates.longitude, "format": "json", "addressdetails": 1},
            error_cls=GeocodingFailed,
        )
        if not isinstance(data, dict):
            raise GeocodingFailed("Unable to determine address from coordinates")
        return _locationiq_address(data.get("address"))

    def get_address_suggestions(self, text: str, *, session_token: str | None = None) -> list[AddressSuggestion]:
        # LocationIQ has no autocomplete sessions; the token only matters to Google billing.
        data = self._get(
            f"{self._base_url}/autocomplete.php",
            {
                "q": text,
                "format": "json",
                "addressdetails": 1,
                "limit": 5,
                "countrycodes": self._country_codes,
                "tag": "place:house,place:building,highway",
            },
            error_cls=GeocodingFailed,
        )
        if not isinstance(data, list):
            raise GeocodingFailed("Unexpected autocomplete response")
        suggestions: list[AddressSuggestion] = []
        for item in data:
            if not isinstance(item, dict) or not item.get("place_id"):
                continue
            parts = item.get("address") if isinstance(item.get("address"), dict) else {}
            street = _street(parts)
            suggestions.append(
                AddressSuggestion(
                    place_id=str(item["place_id"]),
                    description=str(item.get("display_name") or ""),
                    main_text=street or str(parts.get("city") or parts.get("suburb") or ""),
                    secondary_text=", ".join(str(parts[k]) for k in ("city", "state", "postcode") if parts.get(k)),
                )
            )
        return suggestions

    def get_place_details(self, place_id: str) -> PlaceDetails:
        data = self._get(
            f"{self._base_url}/details.php",
            {"place_id": place_id, "format": "json", "addressdetails": 1},
            error_cls=GeocodingFailed,
        )
        if not isinstance(data, dict):
            raise GeocodingFailed(f"No details found for place {place_id}", fallback_action="Unable to get place details")
        coords = _parse_coordinates(data.get("lat"), data.get("lon"), provider=self.name)
        address = _locationiq_address(data.get("address"))
        return PlaceDetails(
            place_id=place_id,
            formatted_address=str(data.get("display_name") or address.one_line()),
            coordinates=GeoPoint.from_coordinates(coords),
            address=address,
        )

    def get_timezone(self, coordinates: Coordinates) -> str:
        _require_valid(coordinates)
        data = self._get(
            f"{self._base_url}/timezone.php",
            {"lat": coordinates.latitude, "lon": coordinates.longitude, "format": "json"},
            error_cls=TimezoneDetectionFailed,
        )
        name = ((data or {}).get("timezone") or {}).get("name") if isinstance(data, dict) else None
        if not is_valid_timezone(name):
            raise TimezoneDetectionFailed(f"Invalid timezone returned: {name}")
        return str(name)


# Google address component type -> Address field.
_GOOGLE_COMPONENTS = {
    "locality": "city",
    "administrative_area_level_1": "state",
    "postal_code": "zip_code",
    "country": "country",
}


def _google_address(components: Any) -> Address:
    fields: dict[str, str] = {}
    number = route = ""
    for component in components or []:
        types = component.get("types") or []
        if "street_number" in types:
            number = component.get("long_name", "")
        elif "route" in types:
            route = component.get("long_name", "")
        for kind, field in _GOOGLE_COMPONENTS.items():
            if kind in types:
                short = field in {"state", "country"}
                fields[field] = component.get("short_name" if short else "long_name", "")
    return Address(address=" ".join(p for p in [number, route] if p), **fields)


class GoogleMapsProvider(_HttpProvider):
    name = "google"

    def __init__(
        self,
        api_key: str | None,
        *,
        geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json",
        timezone_url: str = "https://maps.googleapis.com/maps/api/timezone/json",
        autocomplete_url: str = "https://maps.googleapis.com/maps/api/place/autocomplete/json",
        place_details_url: str = "https://maps.googleapis.com/maps/api/place/details/json",
        timeout_seconds: float = 10,
        rate_limiter: TokenBucketRateLimiter | None = None,
    ):
        super().__init__(api_key, timeout_seconds=timeout_seconds, rate_limiter=rate_limiter)
        self._geocode_url = geocode_url
        self._timezone_url = timezone_url
        self._autocomplete_url = autocomplete_url
        self._place_details_url = place_details_url

    def _geocode(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = self._get(self._geocode_url, params, error_cls=GeocodingFailed)
        status = (data or {}).get("status") if isinstance(data, dict) else None
        results = (data or {}).get("results") if isinstance(data, dict) else None
        if status != "OK" or not results:
            message = (data or {}).get("error_message") if isinstance(data, dict) else None
            raise GeocodingFailed(message or f"Geocoding failed: {status}")
        return results

    def _first_coordinates(self, results: list[dict[str, Any]]) -> Coordinates:
        location = ((results[0].get("geometry") or {}).get("location")) or {}
        return _parse_coordinates(location.get("lat"), location.get("lng"), provider=self.name)

    def geocode_address(self, address: str) -> Coordinates:
        return self._first_coordinates(self._geocode({"address": address}))

    def geocode_postal_code(self, postal_code: str, *, country: str = "US") -> Coordinates:
        return self._first_coordinates(self._geocode({"components": f"postal_code:{postal_code}|country:{country}"}))

    def reverse_geocode(self, coordinates: Coordinates) -> Address:
        _require_valid(coordinates)
        results = self._geocode({"latlng": f"{coordinates.latitude},{coordinates.longitude}"})
        return _google_address(results[0].get("address_components"))

    def get_address_suggestions(self, text: str, *, session_token: str | None = None) -> list[AddressSuggestion]:
        params: dict[str, Any] = {"input": text, "types": "address"}
        if session_token:
            params["sessiontoken"] = session_token
        data = self._get(self._autocomplete_url, params, error_cls=GeocodingFailed)
        status = data.get("status") if isinstance(data, dict) else None
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            message = data.get("error_message") if isinstance(data, dict) else None
            raise GeocodingFailed(message or f"Places autocomplete failed: {status}")
        suggestions: list[AddressSuggestion] = []
        for prediction in data.get("predictions") or []:
            if not prediction.get("place_id"):
                continue
            formatting = prediction.get("structured_formatting") or {}
            suggestions.append(
                AddressSuggestion(
                    place_id=str(prediction["place_id"]),
                    description=str(prediction.get("description") or ""),
                    main_text=str(formatting.get("main_text") or ""),
                    secondary_text=str(formatting.get("secondary_text") or ""),
                )
            )
        return suggestions

    def get_place_details(self, place_id: str) -> PlaceDetails:
        data = self._get(
            self._place_details_url,
            {"place_id": place_id, "fields": "formatted_address,geometry,address_components"},
            error_cls=GeocodingFailed,
        )
        status = data.get("status") if isinstance(data, dict) else None
        result = data.get("result") if isinstance(data, dict) else None
        if status != "OK" or not isinstance(result, dict):
            message = data.get("error_message") if isinstance(data, dict) else None
            raise GeocodingFailed(
                message or f"Place details failed: {status}",
                fallback_action="Unable to get place details",
            )
        coords = self._first_coordinates([result])
        address = _google_address(result.get("address_components"))
        return PlaceDetails(
            place_id=place_id,
            formatted_address=str(result.get("formatted_address") or address.one_line()),
            coordinates=GeoPoint.from_coordinates(coords),
            address=address,
        )

    def get_timezone(self, coordinates: Coordinates) -> str:
        _require_valid(coordinates)
        data = self._get(
            self._timezone_url,
            {"location": f"{coordinates.latitude},{coordinates.longitude}", "timestamp": int(time.time())},
            error_cls=TimezoneDetectionFailed,
        )
        if not isinstance(data, dict) or data.get("status") != "OK":
            status = data.get("status") if isinstance(data, dict) else None
            raise TimezoneDetectionFailed(f"Timezone detection failed: {status}")
        name = data.get("timeZoneId")
        if not is_valid_timezone(name):
            raise TimezoneDetectionFailed(f"Invalid timezone returned: {name}")
        return str(name)
