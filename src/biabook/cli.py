"""
BiaBook CLI entrypoint.

Quick local checks of the location core without running the API:
- `distance`: miles + travel time between two points
- `nearby` / `zip`: proximity search over the configured business catalog
- `validate-location`: service-radius check for one business
- `cache`: geocoding cache statistics; `--purge` drops expired entries
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from biabook.config.settings import Settings, get_settings
from biabook.core.logging import configure_logging
from biabook.domain.models import SearchFilters, SearchOptions, SearchResult, ValidationOptions
from biabook.errors import InvalidCoordinates, LocationError
from biabook.geo.distance import Coordinates, calculate_distance_with_time, validate_coordinates
from biabook.geocoding.factory import build_geocoding_service
from biabook.repositories.businesses import InMemoryBusinessRepository
from biabook.search.proximity import ProximitySearchService
from biabook.search.service_radius import ServiceRadiusValidationService, booking_message


def build_search(settings: Settings) -> ProximitySearchService:
    """Matcher over the configured catalog, with geocoding for zip/address input."""
    repository = InMemoryBusinessRepository.from_path(settings.catalog.path)
    return ProximitySearchService(repository, build_geocoding_service(settings))


def _filters(args: argparse.Namespace, settings: Settings) -> SearchFilters:
    return SearchFilters(
        radius=args.radius if args.radius is not None else settings.search.default_radius_miles,
        category_id=args.category,
        sort_by=args.sort_by or settings.search.default_sort_by,
        limit=args.limit if args.limit is not None else settings.search.default_limit,
        offset=args.offset,
    )


def _options(args: argparse.Namespace) -> SearchOptions:
    return SearchOptions(
        include_services=bool(args.include_services),
        validate_service_radius=bool(args.validate_service_radius),
    )


def _print_results(results: list[SearchResult], as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.model_dump(mode="json") for r in results], ensure_ascii=False, indent=2))
        return
    if not results:
        print("No businesses found.")
        return
    for i, r in enumerate(results, start=1):
        loc = r.location
        radius = f"{loc.service_radius:g} mi" if loc.service_radius is not None else "unlimited"
        print(
            f"{i:>2}. {r.business.name} [{r.category.name}]  {r.distance:.2f} mi"
            f"  ~{r.estimated_travel_time} min  (serves: {radius})"
        )
        where = ", ".join(p for p in [loc.address, loc.city, loc.state] if p)
        if where:
            print(f"    {where}")
        for svc in r.services or []:
            print(f"    - {svc.name}: {svc.duration} min, ${svc.price / 100:.2f}")


def _cmd_distance(args: argparse.Namespace) -> int:
    a = Coordinates(latitude=args.from_lat, longitude=args.from_lon)
    b = Coordinates(latitude=args.to_lat, longitude=args.to_lon)
    for point in (a, b):
        if not validate_coordinates(point):
            raise InvalidCoordinates(f"Invalid coordinates: {point.latitude},{point.longitude}")
    result = calculate_distance_with_time(a, b)
    if args.json:
        print(json.dumps({"distance": result.distance, "estimated_travel_time": result.estimated_travel_time}))
    else:
        print(f"{result.distance:.2f} miles, ~{result.estimated_travel_time} min")
    return 0


def _cmd_nearby(args: argparse.Namespace) -> int:
    settings = get_settings()
    search = build_search(settings)
    center = Coordinates(latitude=args.lat, longitude=args.lon)
    results = search.search_nearby(center, _filters(args, settings), _options(args))
    _print_results(results, args.json)
    return 0


def _cmd_zip(args: argparse.Namespace) -> int:
    settings = get_settings()
    search = build_search(settings)
    results = search.search_by_zip_code(args.zip_code, _filters(args, settings), _options(args))
    _print_results(results, args.json)
    return 0


def _cmd_validate_location(args: argparse.Namespace) -> int:
    settings = get_settings()
    search = build_search(settings)
    validator = ServiceRadiusValidationService(search.repository, search)
    result = validator.validate_booking_location(
        args.business_id,
        Coordinates(latitude=args.lat, longitude=args.lon),
        ValidationOptions(
            include_alternatives=bool(args.alternatives),
            max_alternative_radius=settings.search.alternatives_max_radius_miles,
            max_alternatives=settings.search.alternatives_max_results,
        ),
    )
    if args.json:
        print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return 0 if result.is_valid else 1

    print(booking_message(result))
    for alt in result.alternatives or []:
        print(f"  - {alt.name}: {alt.distance:.2f} mi, ~{alt.estimated_travel_time} min")
    return 0 if result.is_valid else 1


def _cmd_cache(args: argparse.Namespace) -> int:
    geocoder = build_geocoding_service(get_settings())
    purged = geocoder.purge_expired_cache() if args.purge else None
    stats = geocoder.cache_stats()
    if args.json:
        payload: dict[str, Any] = dict(stats)
        if purged is not None:
            payload["purged_entries"] = purged
        print(json.dumps(payload))
        return 0

    if purged is not None:
        print(f"Purged {purged} expired entries.")
    print(f"{stats['total_entries']} cached lookups ({stats['expired_entries']} expired)")
    return 0


def _add_search_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--radius", type=float, default=None, help="Miles (default from config: 25)")
    p.add_argument("--category", type=str, default=None, help="Category ID filter")
    p.add_argument("--sort-by", choices=["distance", "rating", "price", "name"], default=None)
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--offset", type=int, default=0)
    p.add_argument("--include-services", action="store_true")
    p.add_argument(
        "--validate-service-radius",
        action="store_true",
        help="Drop businesses whose own service radius does not reach the search center",
    )
    p.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the BiaBook CLI."""
    parser = argparse.ArgumentParser(prog="biabook")
    parser.add_argument("--log-level", default=None, help="Override app.log_level (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    dist = sub.add_parser("distance", help="Great-circle distance and travel time between two points.")
    dist.add_argument("--from-lat", required=True, type=float)
    dist.add_argument("--from-lon", required=True, type=float)
    dist.add_argument("--to-lat", required=True, type=float)
    dist.add_argument("--to-lon", required=True, type=float)
    dist.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    dist.set_defaults(func=_cmd_distance)

    near = sub.add_parser("nearby", help="Businesses near a point.")
    near.add_argument("--lat", required=True, type=float)
    near.add_argument("--lon", required=True, type=float)
    _add_search_arguments(near)
    near.set_defaults(func=_cmd_nearby)

    z = sub.add_parser("zip", help="Businesses near a US zip code (needs a geocoding API key).")
    z.add_argument("zip_code")
    _add_search_arguments(z)
    z.set_defaults(func=_cmd_zip)

    val = sub.add_parser("validate-location", help="Check a customer location against a business's service area.")
    val.add_argument("business_id")
    val.add_argument("--lat", required=True, type=float)
    val.add_argument("--lon", required=True, type=float)
    val.add_argument("--alternatives", action="store_true", help="Suggest nearby substitutes when out of range")
    val.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    val.set_defaults(func=_cmd_validate_location)

    cache = sub.add_parser("cache", help="Geocoding cache statistics.")
    cache.add_argument("--purge", action="store_true", help="Delete expired or unreadable entries first")
    cache.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    cache.set_defaults(func=_cmd_cache)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m biabook.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        configure_logging(args.log_level)
        return int(func(args))
    except LocationError as e:
        print(f"error: [{e.code}] {e.message}", file=sys.stderr)
        if e.fallback_action:
            print(f"hint: {e.fallback_action}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
