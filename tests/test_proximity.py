import pytest

from biabook.domain.models import Category, SearchFilters, SearchOptions
from biabook.errors import BusinessNotFound, GeocodingFailed, InvalidCoordinates, InvalidRadius, InvalidZipCode
from biabook.geo.distance import Coordinates
from biabook.repositories.businesses import BusinessCatalog, InMemoryBusinessRepository
from biabook.search.proximity import ProximitySearchService

from conftest import CENTER, make_business, make_location, north_of


class StubGeocoder:
    def __init__(self, coords: Coordinates | None = None, error: Exception | None = None):
        self.coords = coords or CENTER
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def geocode_zip_code(self, zip_code: str) -> Coordinates:
        self.calls.append(("zip", zip_code))
        if self.error:
            raise self.error
        return self.coords

    def geocode_address(self, address: str) -> Coordinates:
        self.calls.append(("address", address))
        if self.error:
            raise self.error
        return self.coords


class CountingRepository(InMemoryBusinessRepository):
    def __init__(self, catalog):
        super().__init__(catalog)
        self.find_all_calls = 0

    def find_all(self, **kwargs):
        self.find_all_calls += 1
        return super().find_all(**kwargs)


def _ids(results):
    return [r.business.id for r in results]


def test_ten_mile_candidate_returned_thirty_mile_candidate_dropped():
    catalog = BusinessCatalog(
        businesses=[make_business("near", "Near"), make_business("far", "Far")],
        locations=[make_location("near", north_of(CENTER, 10)), make_location("far", north_of(CENTER, 30))],
    )
    search = ProximitySearchService(InMemoryBusinessRepository(catalog))
    results = search.search_nearby(CENTER, SearchFilters(radius=25))
    assert _ids(results) == ["near"]
    assert results[0].distance == pytest.approx(10, abs=0.01)
    assert results[0].estimated_travel_time == 17


def test_results_never_exceed_radius(repository):
    search = ProximitySearchService(repository)
    for radius in (1, 5, 12, 25, 40):
        for r in search.search_nearby(CENTER, SearchFilters(radius=radius)):
            assert r.distance <= radius


def test_default_sort_is_distance_and_skips_inactive(repository):
    search = ProximitySearchService(repository)
    results = search.search_nearby(CENTER, SearchFilters(radius=25))
    assert _ids(results) == ["bravo", "alpha", "delta"]
    assert "echo" not in _ids(results)


def test_validate_service_radius_excludes_out_of_range_businesses(repository):
    search = ProximitySearchService(repository)
    results = search.search_nearby(
        CENTER,
        SearchFilters(radius=25),
        SearchOptions(validate_service_radius=True),
    )
    # alpha is 10 mi away but only serves 5 mi; delta serves 20 mi and is 18 mi away.
    assert _ids(results) == ["bravo", "delta"]


def test_sort_by_name_is_case_insensitive(repository):
    search = ProximitySearchService(repository)
    results = search.search_nearby(CENTER, SearchFilters(radius=40, sort_by="name"))
    names = [r.business.name for r in results]
    assert names == ["alpha Salon", "Bravo Barbers", "Charlie Cuts", "Delta Spa"]


def test_sort_by_rating_puts_unrated_last(repository):
    search = ProximitySearchService(repository)
    results = search.search_nearby(CENTER, SearchFilters(radius=40, sort_by="rating"))
    assert _ids(results) == ["charlie", "bravo", "alpha", "delta"]


def test_sort_by_price_uses_average_active_service_price(repository):
    search = ProximitySearchService(repository)
    results = search.search_nearby(CENTER, SearchFilters(radius=40, sort_by="price"))
    # bravo avg 2500 (retired service ignored), alpha avg 6000, then no-service businesses in catalog order.
    assert _ids(results) == ["bravo", "alpha", "charlie", "delta"]
    assert all(r.services is None for r in results)


def test_limit_and_offset_return_second_ranked_result(repository):
    search = ProximitySearchService(repository)
    full = search.search_nearby(CENTER, SearchFilters(radius=25))
    assert len(full) == 3
    page = search.search_nearby(CENTER, SearchFilters(radius=25, limit=1, offset=1))
    assert _ids(page) == [full[1].business.id]


def test_offset_past_end_is_empty(repository):
    search = ProximitySearchService(repository)
    assert search.search_nearby(CENTER, SearchFilters(radius=25, offset=10)) == []


def test_category_filter_and_uncategorized_fallback():
    catalog = BusinessCatalog(
        categories=[Category(id="cat-spa", name="Spa")],
        businesses=[
            make_business("spa", "Spa", category_id="cat-spa"),
            make_business("plain", "Plain"),
        ],
        locations=[make_location("spa", north_of(CENTER, 2)), make_location("plain", north_of(CENTER, 1))],
    )
    search = ProximitySearchService(InMemoryBusinessRepository(catalog))

    only_spa = search.search_nearby(CENTER, SearchFilters(radius=10, category_id="cat-spa"))
    assert _ids(only_spa) == ["spa"]
    assert only_spa[0].category.name == "Spa"

    everything = search.search_nearby(CENTER, SearchFilters(radius=10))
    plain = next(r for r in everything if r.business.id == "plain")
    assert plain.category.id == ""
    assert plain.category.name == "Uncategorized"


def test_include_services_attaches_active_services(repository):
    search = ProximitySearchService(repository)
    results = search.search_nearby(CENTER, SearchFilters(radius=25), SearchOptions(include_services=True))
    by_id = {r.business.id: r for r in results}
    assert [s.id for s in by_id["bravo"].services] == ["s-bravo-1"]
    assert [s.id for s in by_id["alpha"].services] == ["s-alpha-1", "s-alpha-2"]
    assert by_id["delta"].services == []


def test_multiple_locations_each_become_a_candidate():
    catalog = BusinessCatalog(
        businesses=[make_business("chain", "Chain")],
        locations=[
            make_location("chain", north_of(CENTER, 8), location_id="loc-b"),
            make_location("chain", north_of(CENTER, 2), location_id="loc-a"),
        ],
    )
    search = ProximitySearchService(InMemoryBusinessRepository(catalog))
    results = search.search_nearby(CENTER, SearchFilters(radius=10))
    assert [r.location.id for r in results] == ["loc-a", "loc-b"]


@pytest.mark.parametrize("radius", [0, -1, 500.5, float("nan")])
def test_invalid_radius_rejected_before_repository_access(catalog, radius):
    repo = CountingRepository(catalog)
    search = ProximitySearchService(repo)
    with pytest.raises(InvalidRadius):
        search.search_nearby(CENTER, SearchFilters(radius=radius))
    assert repo.find_all_calls == 0


def test_radius_of_500_is_allowed(repository):
    search = ProximitySearchService(repository)
    assert len(search.search_nearby(CENTER, SearchFilters(radius=500))) == 4


@pytest.mark.parametrize(
    "center",
    [Coordinates(91, 0), Coordinates(45, -200), Coordinates(float("nan"), 0)],
)
def test_invalid_center_rejected(catalog, center):
    repo = CountingRepository(catalog)
    search = ProximitySearchService(repo)
    with pytest.raises(InvalidCoordinates):
        search.search_nearby(center)
    assert repo.find_all_calls == 0


def test_search_by_zip_code_geocodes_then_searches(repository):
    geocoder = StubGeocoder()
    search = ProximitySearchService(repository, geocoder)
    results = search.search_by_zip_code("19103")
    assert geocoder.calls == [("zip", "19103")]
    assert _ids(results) == ["bravo", "alpha", "delta"]


def test_search_by_zip_code_rejects_bad_format_without_geocoding(repository):
    geocoder = StubGeocoder()
    search = ProximitySearchService(repository, geocoder)
    with pytest.raises(InvalidZipCode):
        search.search_by_zip_code("1910")
    with pytest.raises(GeocodingFailed):
        search.search_by_zip_code("abcde")
    assert geocoder.calls == []


def test_search_by_zip_code_propagates_geocoding_failure(repository):
    geocoder = StubGeocoder(error=GeocodingFailed("No results found for zip code 99999"))
    search = ProximitySearchService(repository, geocoder)
    with pytest.raises(GeocodingFailed, match="99999"):
        search.search_by_zip_code("99999")


def test_search_by_zip_code_without_geocoder_fails(repository):
    search = ProximitySearchService(repository)
    with pytest.raises(GeocodingFailed):
        search.search_by_zip_code("19103")


def test_search_by_address(repository):
    geocoder = StubGeocoder()
    search = ProximitySearchService(repository, geocoder)
    results = search.search_by_address("1 Main St, Testville PA", SearchFilters(radius=5))
    assert geocoder.calls == [("address", "1 Main St, Testville PA")]
    assert _ids(results) == ["bravo"]


def test_get_businesses_in_radius_is_unpaged_and_distance_sorted(repository):
    search = ProximitySearchService(repository)
    results = search.get_businesses_in_radius(CENTER, 40)
    assert _ids(results) == ["bravo", "alpha", "delta", "charlie"]


def test_find_alternative_businesses_same_category_excluding_original(repository):
    search = ProximitySearchService(repository)
    # From 3 mi north of CENTER, alpha (7 mi away, serves 5 mi) is out of its own range.
    customer = north_of(CENTER, 3)
    results = search.find_alternative_businesses(customer, "charlie", max_radius=50)
    assert _ids(results) == ["bravo"]


def test_find_alternative_businesses_respects_limit(repository):
    search = ProximitySearchService(repository)
    customer = north_of(CENTER, 9)
    results = search.find_alternative_businesses(customer, "delta", max_radius=50, limit=1)
    # delta is the only spa; nothing else shares its category.
    assert results == []

    results = search.find_alternative_businesses(customer, "bravo", max_radius=50, limit=1)
    assert _ids(results) == ["alpha"]


def test_find_alternative_businesses_unknown_original(repository):
    search = ProximitySearchService(repository)
    with pytest.raises(BusinessNotFound):
        search.find_alternative_businesses(CENTER, "nope")
