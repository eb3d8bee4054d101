from __future__ import annotations

import math

import pytest

from biabook.config.settings import get_settings
from biabook.domain.models import Business, BusinessLocation, Category, Service
from biabook.geo.distance import EARTH_RADIUS_MILES, Coordinates
from biabook.repositories.businesses import BusinessCatalog, InMemoryBusinessRepository

CENTER = Coordinates(latitude=40.0, longitude=-75.0)

# Along a meridian the great-circle distance is exactly R * dlat.
MILES_PER_DEGREE_LAT = EARTH_RADIUS_MILES * math.pi / 180


def north_of(center: Coordinates, miles: float) -> Coordinates:
    return Coordinates(latitude=center.latitude + miles / MILES_PER_DEGREE_LAT, longitude=center.longitude)


def make_business(business_id: str, name: str, **kwargs) -> Business:
    return Business(id=business_id, name=name, slug=business_id, **kwargs)


def make_location(
    business_id: str,
    at: Coordinates,
    *,
    location_id: str | None = None,
    service_radius: float | None = None,
    **kwargs,
) -> BusinessLocation:
    return BusinessLocation(
        id=location_id or f"loc-{business_id}",
        business_id=business_id,
        address=kwargs.pop("address", "1 Main St"),
        city=kwargs.pop("city", "Testville"),
        state=kwargs.pop("state", "PA"),
        zip_code=kwargs.pop("zip_code", "19000"),
        latitude=at.latitude,
        longitude=at.longitude,
        service_radius=service_radius,
        **kwargs,
    )


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    # Keep provider keys from a developer's shell or .env out of the tests.
    monkeypatch.delenv("LOCATIONIQ_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    monkeypatch.delenv("BIABOOK_CONFIG_PATH", raising=False)
    monkeypatch.setenv("BIABOOK_CACHE_DIR", str(tmp_path / "cache"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def catalog() -> BusinessCatalog:
    """Five businesses around CENTER in catalog (candidate) order.

    - alpha: 10 mi north, hair, rated 4.0, service radius 5 mi
    - bravo: 3 mi north, hair, rated 4.8, unlimited
    - charlie: 30 mi north, hair (outside a 25 mi search)
    - delta: 18 mi north, spa, unrated, service radius 20 mi
    - echo: 1 mi north, hair, inactive
    """
    hair = Category(id="cat-hair", name="Hair Salon")
    spa = Category(id="cat-spa", name="Spa")
    businesses = [
        make_business("alpha", "alpha Salon", category_id="cat-hair", rating=4.0),
        make_business("bravo", "Bravo Barbers", category_id="cat-hair", rating=4.8),
        make_business("charlie", "Charlie Cuts", category_id="cat-hair", rating=5.0),
        make_business("delta", "Delta Spa", category_id="cat-spa"),
        make_business("echo", "Echo Closed", category_id="cat-hair", rating=4.9, is_active=False),
    ]
    locations = [
        make_location("alpha", north_of(CENTER, 10), service_radius=5),
        make_location("bravo", north_of(CENTER, 3)),
        make_location("charlie", north_of(CENTER, 30)),
        make_location("delta", north_of(CENTER, 18), service_radius=20),
        make_location("echo", north_of(CENTER, 1)),
    ]
    services = [
        Service(id="s-alpha-1", business_id="alpha", name="Cut", duration=30, price=3000),
        Service(id="s-alpha-2", business_id="alpha", name="Color", duration=60, price=9000),
        Service(id="s-bravo-1", business_id="bravo", name="Fade", duration=30, price=2500),
        Service(id="s-bravo-old", business_id="bravo", name="Retired", duration=30, price=100, is_active=False),
    ]
    return BusinessCatalog(categories=[hair, spa], businesses=businesses, locations=locations, services=services)


@pytest.fixture
def repository(catalog: BusinessCatalog) -> InMemoryBusinessRepository:
    return InMemoryBusinessRepository(catalog)
