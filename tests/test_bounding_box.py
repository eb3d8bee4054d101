import math

import pytest

from biabook.geo.bounding_box import MILES_PER_DEGREE, BoundingBox, create_bounding_box, is_within_bounding_box
from biabook.geo.distance import EARTH_RADIUS_MILES, Coordinates, calculate_distance


def _ring(center: Coordinates, radius_miles: float, steps: int = 72) -> list[Coordinates]:
    """Points on the circle of `radius_miles` around `center` (spherical destination formula)."""
    lat1 = math.radians(center.latitude)
    lon1 = math.radians(center.longitude)
    angular = radius_miles / EARTH_RADIUS_MILES
    out = []
    for i in range(steps):
        bearing = 2 * math.pi * i / steps
        lat2 = math.asin(
            math.sin(lat1) * math.cos(angular) + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
        )
        lon2 = lon1 + math.atan2(
            math.sin(bearing) * math.sin(angular) * math.cos(lat1),
            math.cos(angular) - math.sin(lat1) * math.sin(lat2),
        )
        lon_deg = (math.degrees(lon2) + 540) % 360 - 180
        out.append(Coordinates(latitude=math.degrees(lat2), longitude=lon_deg))
    return out


def test_box_offsets_at_mid_latitude():
    center = Coordinates(40.0, -75.0)
    box = create_bounding_box(center, 25)
    assert box.north == pytest.approx(40.0 + 25 / MILES_PER_DEGREE)
    assert box.south == pytest.approx(40.0 - 25 / MILES_PER_DEGREE)
    expected_lon = 25 / (MILES_PER_DEGREE * math.cos(math.radians(40.0)))
    assert box.east >= -75.0 + expected_lon - 1e-9
    assert box.west <= -75.0 - expected_lon + 1e-9
    assert not box.spans_all_longitudes


@pytest.mark.parametrize(
    "center",
    [
        Coordinates(40.0, -75.0),
        Coordinates(0.0, 0.0),
        Coordinates(-33.87, 151.21),
        Coordinates(89.9, 0.0),
        Coordinates(-90.0, 0.0),
        Coordinates(0.0, 179.95),
        Coordinates(10.0, -179.99),
    ],
)
@pytest.mark.parametrize("radius", [0.5, 25, 500])
def test_box_contains_its_center(center, radius):
    assert is_within_bounding_box(center, create_bounding_box(center, radius))


@pytest.mark.parametrize(
    "center",
    [Coordinates(40.0, -75.0), Coordinates(70.0, 20.0), Coordinates(85.0, -120.0), Coordinates(-60.0, 100.0)],
)
@pytest.mark.parametrize("radius", [10, 100, 500])
def test_box_is_a_superset_of_the_circle(center, radius):
    box = create_bounding_box(center, radius)
    for point in _ring(center, radius * 0.999):
        assert calculate_distance(center, point) <= radius
        assert is_within_bounding_box(point, box), point


def test_pole_center_spans_all_longitudes():
    box = create_bounding_box(Coordinates(90.0, 0.0), 10)
    assert box.north == 90.0
    assert box.spans_all_longitudes
    assert is_within_bounding_box(Coordinates(89.95, 135.0), box)


def test_latitudes_are_clamped():
    box = create_bounding_box(Coordinates(-89.5, 10.0), 100)
    assert box.south == -90.0
    assert box.north <= 90.0
    assert box.spans_all_longitudes


def test_antimeridian_crossing_widens_to_full_span():
    center = Coordinates(0.0, 179.9)
    box = create_bounding_box(center, 25)
    assert box.spans_all_longitudes
    # A point just across the date line is 10-ish miles away and must not be dropped.
    across = Coordinates(0.0, -179.95)
    assert calculate_distance(center, across) < 25
    assert is_within_bounding_box(across, box)


def test_containment_is_inclusive():
    box = BoundingBox(north=1.0, south=-1.0, east=2.0, west=-2.0)
    assert is_within_bounding_box(Coordinates(1.0, 2.0), box)
    assert is_within_bounding_box(Coordinates(-1.0, -2.0), box)
    assert not is_within_bounding_box(Coordinates(1.0001, 0.0), box)
    assert not is_within_bounding_box(Coordinates(0.0, -2.0001), box)
