"""
Typed failures raised by the geospatial core.

Every error carries a stable `code` so the HTTP layer and CLI can report it without
parsing messages. Input problems also subclass `ValueError` and a missing business
subclasses `LookupError`, which lets callers catch them by kind.
"""

from __future__ import annotations


class LocationError(Exception):
    """Base class for location/geocoding failures."""

    code = "LOCATION_ERROR"

    def __init__(self, message: str, *, fallback_action: str | None = None):
        super().__init__(message)
        self.message = message
        self.fallback_action = fallback_action

    def as_dict(self) -> dict[str, str]:
        payload = {"code": self.code, "message": self.message}
        if self.fallback_action:
            payload["fallback_action"] = self.fallback_action
        return payload


class InvalidCoordinates(LocationError, ValueError):
    code = "INVALID_COORDINATES"


class InvalidRadius(LocationError, ValueError):
    code = "INVALID_RADIUS"


class GeocodingFailed(LocationError):
    code = "GEOCODING_FAILED"


class InvalidZipCode(GeocodingFailed, ValueError):
    code = "INVALID_ZIP_CODE"


class TimezoneDetectionFailed(LocationError):
    code = "TIMEZONE_DETECTION_FAILED"


class BusinessNotFound(LocationError, LookupError):
    code = "BUSINESS_NOT_FOUND"

    def __init__(self, business_id: str, message: str | None = None):
        super().__init__(message or f"Business not found or location not configured: {business_id}")
        self.business_id = business_id
