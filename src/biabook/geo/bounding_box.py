"""
Bounding-box prefilter.

A lat/lon rectangle around a search circle lets the repository discard far-away
locations with four comparisons before any Haversine work. The box must always be a
superset of the circle: a location inside the radius is never outside the box.

Degrees per mile use the usual 1/69 approximation. Three cases need a guard:
- near the poles `cos(latitude)` goes to 0, so the longitude span becomes unbounded;
- at high latitudes the circle's true longitude extent exceeds `r / (69 cos lat)`;
- a box that crosses the antimeridian cannot be expressed as `west <= lon <= east`.
In each case the longitude span widens (up to the full [-180, 180]).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from biabook.geo.distance import EARTH_RADIUS_MILES, Coordinates

MILES_PER_DEGREE = 69.0


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    @property
    def spans_all_longitudes(self) -> bool:
        return self.west <= -180.0 and self.east >= 180.0


def _exact_lon_offset_deg(latitude: float, radius_miles: float) -> float | None:
    """Longitude half-width of a spherical cap, or None when the cap covers a pole."""
    angular = radius_miles / EARTH_RADIUS_MILES
    if angular >= math.pi / 2:
        return None
    ratio = math.sin(angular) / math.cos(math.radians(latitude))
    if ratio >= 1.0:
        return None
    return math.degrees(math.asin(ratio))


def create_bounding_box(center: Coordinates, radius_miles: float) -> BoundingBox:
    """Conservative rectangle containing every point within `radius_miles` of `center`."""
    lat_offset = radius_miles / MILES_PER_DEGREE
    north = min(90.0, center.latitude + lat_offset)
    south = max(-90.0, center.latitude - lat_offset)

    if abs(center.latitude) + lat_offset >= 90.0:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)

    lon_offset = radius_miles / (MILES_PER_DEGREE * math.cos(math.radians(center.latitude)))
    exact = _exact_lon_offset_deg(center.latitude, radius_miles)
    if exact is None:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
    lon_offset = max(lon_offset, exact)

    east = center.longitude + lon_offset
    west = center.longitude - lon_offset
    if lon_offset >= 180.0 or east > 180.0 or west < -180.0:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
    return BoundingBox(north=north, south=south, east=east, west=west)


def is_within_bounding_box(coords: Coordinates, box: BoundingBox) -> bool:
    return box.south <= coords.latitude <= box.north and box.west <= coords.longitude <= box.east
