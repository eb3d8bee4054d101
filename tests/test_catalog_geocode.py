import importlib.util
from pathlib import Path

import pytest

from biabook.errors import GeocodingFailed, TimezoneDetectionFailed
from biabook.geo.distance import Coordinates

_SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "catalog_geocode.py"
_spec = importlib.util.spec_from_file_location("catalog_geocode", _SCRIPT)
catalog_geocode = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(catalog_geocode)

HOBOKEN = Coordinates(latitude=40.7440, longitude=-74.0324)


class _StubGeocoder:
    def __init__(self, *, timezone_fails: bool = False):
        self.timezone_fails = timezone_fails
        self.queries: list[str] = []

    def geocode_address(self, address: str) -> Coordinates:
        self.queries.append(address)
        return HOBOKEN

    def get_timezone(self, coordinates: Coordinates) -> str:
        if self.timezone_fails:
            raise TimezoneDetectionFailed("no timezone")
        return "America/New_York"


def test_fills_missing_coordinates_and_timezone():
    loc = {"id": "l1", "address": "221 Washington St", "city": "Hoboken", "state": "NJ", "zip_code": "07030"}
    geocoder = _StubGeocoder()

    changed = catalog_geocode.fill_location(loc, geocoder, default_timezone="America/Chicago")

    assert changed == ["coordinates", "timezone"]
    assert geocoder.queries == ["221 Washington St, Hoboken, NJ 07030"]
    assert (loc["latitude"], loc["longitude"]) == (HOBOKEN.latitude, HOBOKEN.longitude)
    assert loc["timezone"] == "America/New_York"


def test_complete_location_is_left_alone():
    loc = {"id": "l1", "latitude": 40.7, "longitude": -74.0, "timezone": "America/New_York"}
    geocoder = _StubGeocoder()
    assert catalog_geocode.fill_location(loc, geocoder, default_timezone="UTC") == []
    assert geocoder.queries == []


def test_timezone_detection_failure_uses_default():
    loc = {"id": "l1", "latitude": 40.7, "longitude": -74.0, "timezone": "Not/AZone"}
    changed = catalog_geocode.fill_location(loc, _StubGeocoder(timezone_fails=True), default_timezone="America/Chicago")
    assert changed == ["timezone"]
    assert loc["timezone"] == "America/Chicago"


def test_location_without_address_or_coordinates_fails():
    with pytest.raises(GeocodingFailed):
        catalog_geocode.fill_location({"id": "l1"}, _StubGeocoder(), default_timezone="UTC")
