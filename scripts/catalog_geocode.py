from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from biabook.config.settings import get_settings
from biabook.core.env import resolve_project_path
from biabook.core.logging import configure_logging
from biabook.core.time import is_valid_timezone
from biabook.errors import GeocodingFailed, TimezoneDetectionFailed
from biabook.geo.distance import Coordinates
from biabook.geocoding.factory import build_geocoding_service
from biabook.geocoding.service import GeocodingService
from biabook.repositories.businesses import BusinessCatalog

logger = logging.getLogger("catalog_geocode")


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def _as_float(v: Any) -> float | None:
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _one_line(loc: dict[str, Any]) -> str:
    locality = " ".join(str(loc.get(k) or "").strip() for k in ("state", "zip_code")).strip()
    parts = [str(loc.get("address") or "").strip(), str(loc.get("city") or "").strip(), locality]
    return ", ".join(p for p in parts if p)


def fill_location(
    loc: dict[str, Any],
    geocoder: GeocodingService,
    *,
    default_timezone: str,
    refresh_timezone: bool = False,
) -> list[str]:
    """Fill missing coordinates/timezone on one raw location dict; returns what changed."""
    changed: list[str] = []
    lat = _as_float(loc.get("latitude"))
    lon = _as_float(loc.get("longitude"))
    if lat is None or lon is None:
        query = _one_line(loc)
        if not query:
            raise GeocodingFailed("Location has neither an address nor coordinates")
        coords = geocoder.geocode_address(query)
        loc["latitude"], loc["longitude"] = coords.latitude, coords.longitude
        lat, lon = coords.latitude, coords.longitude
        changed.append("coordinates")

    if refresh_timezone or not is_valid_timezone(loc.get("timezone")):
        try:
            tz = geocoder.get_timezone(Coordinates(latitude=lat, longitude=lon))
        except TimezoneDetectionFailed as e:
            logger.warning("Timezone detection failed for %s (%s); using %s", loc.get("id"), e, default_timezone)
            tz = default_timezone
        if tz != loc.get("timezone"):
            loc["timezone"] = tz
            changed.append("timezone")
    return changed


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        description="Fill in missing business location coordinates and timezones using the geocoding providers."
    )
    p.add_argument("--catalog", type=str, default=None, help="Defaults to catalog.path from config.")
    p.add_argument("--refresh-timezones", action="store_true", help="Re-detect timezones even when set.")
    p.add_argument("--dry-run", action="store_true", help="Report changes without writing the catalog.")
    args = p.parse_args(argv)

    configure_logging()
    settings = get_settings()
    catalog_path = resolve_project_path(args.catalog or settings.catalog.path)
    payload = _read_json(catalog_path)
    if not isinstance(payload, dict):
        raise SystemExit(f"Unsupported catalog shape in {catalog_path}: expected an object.")

    geocoder = build_geocoding_service(settings)
    updated = 0
    failed = 0
    for loc in payload.get("locations") or []:
        if not isinstance(loc, dict):
            continue
        try:
            changed = fill_location(
                loc,
                geocoder,
                default_timezone=settings.geocoding.default_timezone,
                refresh_timezone=bool(args.refresh_timezones),
            )
        except GeocodingFailed as e:
            failed += 1
            logger.warning("Geocoding failed for %s: %s", loc.get("id"), e)
            continue
        if changed:
            updated += 1
            print(f"{loc.get('id')}: updated {', '.join(changed)}")

    if failed == 0:
        # Everything resolved: the result must load as a catalog.
        BusinessCatalog.model_validate(payload)

    if args.dry_run:
        print(f"Dry run: {updated} location(s) would change, {failed} failed.")
        return 0 if failed == 0 else 1

    if updated:
        _write_json(catalog_path, payload)
    print(f"Updated {updated} location(s), {failed} failed: {catalog_path}")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
