"""
Provider selection.

Which providers exist depends on which API keys are configured:
- both keys: Google is primary, LocationIQ the fallback
- one key: that provider alone
- none: no provider (geocoding calls fail with `GeocodingFailed`)

`geocoding.primary` in settings flips the order when both are configured.
"""

from __future__ import annotations

from biabook.config.settings import Settings
from biabook.core.cache import FileCache
from biabook.core.env import resolve_project_path
from biabook.core.rate_limit import TokenBucketRateLimiter
from biabook.geocoding.providers import GeocodingProvider, GoogleMapsProvider, LocationIQProvider
from biabook.geocoding.service import GeocodingService


def build_providers(settings: Settings) -> tuple[GeocodingProvider | None, GeocodingProvider | None]:
    """Return `(primary, fallback)`; either may be None."""
    geo = settings.geocoding
    timeout = settings.app.http_timeout_seconds
    limiter = (
        TokenBucketRateLimiter(max_per_minute=geo.max_requests_per_minute)
        if geo.max_requests_per_minute > 0
        else None
    )

    available: dict[str, GeocodingProvider] = {}
    if geo.google.api_key:
        available["google"] = GoogleMapsProvider(
            geo.google.api_key,
            geocode_url=geo.google.geocode_url,
            timezone_url=geo.google.timezone_url,
            autocomplete_url=geo.google.autocomplete_url,
            place_details_url=geo.google.place_details_url,
            timeout_seconds=timeout,
            rate_limiter=limiter,
        )
    if geo.locationiq.api_key:
        available["locationiq"] = LocationIQProvider(
            geo.locationiq.api_key,
            base_url=geo.locationiq.base_url,
            country_codes=geo.locationiq.country_codes,
            timeout_seconds=timeout,
            rate_limiter=limiter,
        )

    order = ["google", "locationiq"]
    if geo.primary == "locationiq":
        order.reverse()
    ranked = [available[name] for name in order if name in available]
    primary = ranked[0] if ranked else None
    fallback = ranked[1] if len(ranked) > 1 else None
    return primary, fallback


def build_geocoding_service(settings: Settings) -> GeocodingService:
    primary, fallback = build_providers(settings)
    cache = FileCache(
        resolve_project_path(settings.cache.dir),
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )
    return GeocodingService(
        primary,
        fallback,
        cache=cache,
        cache_ttl_seconds=settings.geocoding.cache_ttl_seconds,
    )
