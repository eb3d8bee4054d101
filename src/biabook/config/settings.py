# src/biabook/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/biabook/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `BIABOOK_CONFIG_PATH`
- environment variables (e.g., `LOCATIONIQ_API_KEY`, `GOOGLE_MAPS_API_KEY`)

Design rule:
- Search defaults and provider endpoints live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from biabook.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `biabook.config`."""
    text = resources.files("biabook.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "BiaBook"
    timezone: str = "America/New_York"
    http_timeout_seconds: float = 10
    log_level: str = "INFO"


class CacheSettings(BaseModel):
    enabled: bool = True
    dir: str = ".cache/biabook"
    default_ttl_seconds: int = 60 * 60 * 24


class CatalogSettings(BaseModel):
    path: str = "data/catalogs/businesses.json"


class SearchSettings(BaseModel):
    default_radius_miles: float = Field(25, gt=0, le=500)
    default_limit: int = Field(20, ge=1)
    max_limit: int = Field(100, ge=1)
    default_sort_by: Literal["distance", "rating", "price", "name"] = "distance"
    alternatives_max_radius_miles: float = Field(50, ge=1, le=500)
    alternatives_max_results: int = Field(5, ge=1, le=20)


class LocationIQSettings(BaseModel):
    base_url: str = "https://us1.locationiq.com/v1"
    country_codes: str = "us"
    api_key: str | None = None


class GoogleMapsSettings(BaseModel):
    geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    timezone_url: str = "https://maps.googleapis.com/maps/api/timezone/json"
    autocomplete_url: str = "https://maps.googleapis.com/maps/api/place/autocomplete/json"
    place_details_url: str = "https://maps.googleapis.com/maps/api/place/details/json"
    api_key: str | None = None


class GeocodingSettings(BaseModel):
    primary: Literal["google", "locationiq"] | None = None
    # None: inherit `cache.default_ttl_seconds`.
    cache_ttl_seconds: int | None = Field(None, gt=0)
    max_requests_per_minute: float = Field(0, ge=0)
    default_timezone: str = "America/New_York"
    locationiq: LocationIQSettings = Field(default_factory=LocationIQSettings)
    google: GoogleMapsSettings = Field(default_factory=GoogleMapsSettings)


class ApiSettings(BaseModel):
    location_requests_per_minute: float = Field(60, ge=0)
    cors_origins: list[str] = Field(default_factory=list)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Only a small whitelist is honored; everything else comes from YAML.
    """
    load_dotenv_if_present()
    data = dict(data)
    cache_dir = os.getenv("BIABOOK_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    log_level = os.getenv("BIABOOK_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    catalog_path = os.getenv("BIABOOK_CATALOG_PATH")
    if catalog_path:
        data.setdefault("catalog", {})["path"] = catalog_path

    locationiq_key = os.getenv("LOCATIONIQ_API_KEY")
    google_key = os.getenv("GOOGLE_MAPS_API_KEY")
    if locationiq_key:
        data.setdefault("geocoding", {}).setdefault("locationiq", {})["api_key"] = locationiq_key
    if google_key:
        data.setdefault("geocoding", {}).setdefault("google", {})["api_key"] = google_key

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("BIABOOK_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
