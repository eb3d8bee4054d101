"""
Distance helpers.

All distances are statute miles on a spherical Earth (R = 3959 mi); coordinates are
WGS84 decimal degrees. The functions here are pure and assume validated input:
call `validate_coordinates` first, garbage in gives garbage out.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

EARTH_RADIUS_MILES = 3959.0

# (upper bound in miles, average speed in mph); anything longer is highway driving.
_SPEED_TIERS_MPH: tuple[tuple[float, float], ...] = ((5.0, 25.0), (20.0, 35.0))
_HIGHWAY_SPEED_MPH = 50.0

T = TypeVar("T")


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class DistanceResult:
    distance: float
    estimated_travel_time: int


def round_half_up(value: float, ndigits: int = 0) -> float:
    # Half-up rather than Python's banker's rounding: 2.5 minutes shows as 3.
    factor = 10.0**ndigits
    return math.floor(value * factor + 0.5) / factor


def validate_coordinates(coords: object) -> bool:
    """True if `coords` has numeric, finite, in-range latitude and longitude."""
    lat = getattr(coords, "latitude", None)
    lon = getattr(coords, "longitude", None)
    for value in (lat, lon):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if math.isnan(value):
            return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def calculate_distance(from_: Coordinates, to: Coordinates) -> float:
    """Great-circle distance in miles (Haversine)."""
    lat1 = math.radians(from_.latitude)
    lat2 = math.radians(to.latitude)
    dlat = math.radians(to.latitude - from_.latitude)
    dlon = math.radians(to.longitude - from_.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    h = min(1.0, h)
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def estimate_travel_time(distance: float) -> int:
    """Estimated driving time in whole minutes for `distance` miles."""
    speed = _HIGHWAY_SPEED_MPH
    for upper, mph in _SPEED_TIERS_MPH:
        if distance <= upper:
            speed = mph
            break
    return int(round_half_up(distance / speed * 60))


def calculate_distance_with_time(from_: Coordinates, to: Coordinates) -> DistanceResult:
    """Distance rounded to 2 decimals plus travel time from the unrounded distance."""
    distance = calculate_distance(from_, to)
    return DistanceResult(
        distance=round_half_up(distance, 2),
        estimated_travel_time=estimate_travel_time(distance),
    )


def sort_by_distance(
    items: Iterable[T],
    reference: Coordinates,
    *,
    get_coordinates: Callable[[T], Coordinates],
) -> list[tuple[T, DistanceResult]]:
    """Pair each item with its distance from `reference`, nearest first (stable)."""
    scored = [(it, calculate_distance_with_time(reference, get_coordinates(it))) for it in items]
    scored.sort(key=lambda pair: pair[1].distance)
    return scored


def filter_by_radius(
    items: Iterable[T],
    center: Coordinates,
    radius_miles: float,
    *,
    get_coordinates: Callable[[T], Coordinates],
) -> list[T]:
    """Keep items whose exact distance from `center` is within `radius_miles`."""
    return [it for it in items if calculate_distance(center, get_coordinates(it)) <= radius_miles]
