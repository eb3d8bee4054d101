"""
Business/location repository.

The proximity matcher and booking validator only need a handful of reads plus one
write, described by `BusinessRepository`. The shipped implementation keeps a
validated JSON catalog (default: `data/catalogs/businesses.json`) in memory; a
database-backed repository only has to honor the same protocol.

`find_all` accepts the search bounding box and applies it as a prefilter. Exact
distance filtering still happens in the matcher.

Lookups of unknown IDs return None. There is no placeholder/demo business here:
callers decide how to present "not found".
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from pydantic import BaseModel, Field

from biabook.core.env import resolve_project_path
from biabook.domain.models import Business, BusinessLocation, Category, Service
from biabook.errors import BusinessNotFound
from biabook.geo.bounding_box import BoundingBox, is_within_bounding_box

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """One (business, location) pair eligible for proximity matching."""

    business: Business
    location: BusinessLocation
    category: Category | None = None


@dataclass(frozen=True)
class BusinessRecord:
    business: Business
    category: Category | None
    locations: tuple[BusinessLocation, ...]
    services: tuple[Service, ...] = ()

    @property
    def primary_location(self) -> BusinessLocation | None:
        return self.locations[0] if self.locations else None


class BusinessRepository(Protocol):
    def find_all(
        self, *, category_id: str | None = None, within: BoundingBox | None = None
    ) -> list[Candidate]: ...

    def find_by_id(self, business_id: str) -> BusinessRecord | None: ...

    def find_by_id_with_services(self, business_id: str) -> BusinessRecord | None: ...

    def find_services(self, business_ids: Iterable[str]) -> dict[str, list[Service]]: ...

    def update_service_radius(self, business_id: str, service_radius: float | None) -> None: ...


class BusinessCatalog(BaseModel):
    """On-disk catalog shape."""

    categories: list[Category] = Field(default_factory=list)
    businesses: list[Business] = Field(default_factory=list)
    locations: list[BusinessLocation] = Field(default_factory=list)
    services: list[Service] = Field(default_factory=list)


def load_catalog(path: str | Path) -> BusinessCatalog:
    """Load and validate a business catalog JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    return BusinessCatalog.model_validate(payload)


class InMemoryBusinessRepository:
    """`BusinessRepository` over an in-memory `BusinessCatalog`.

    Candidate order is catalog order (business, then its locations in listed order),
    which is what the matcher's stable sort uses to break ties.
    """

    def __init__(self, catalog: BusinessCatalog):
        self._lock = threading.Lock()
        self._categories = {c.id: c for c in catalog.categories}
        self._businesses = {b.id: b for b in catalog.businesses}
        self._locations: dict[str, list[BusinessLocation]] = {}
        for loc in catalog.locations:
            if loc.business_id not in self._businesses:
                logger.warning("Skipping location %s for unknown business %s", loc.id, loc.business_id)
                continue
            self._locations.setdefault(loc.business_id, []).append(loc)
        self._services: dict[str, list[Service]] = {}
        for svc in catalog.services:
            self._services.setdefault(svc.business_id, []).append(svc)

    @classmethod
    def from_path(cls, path: str | Path) -> "InMemoryBusinessRepository":
        catalog = load_catalog(path)
        logger.info(
            "Loaded business catalog: businesses=%d locations=%d",
            len(catalog.businesses),
            len(catalog.locations),
        )
        return cls(catalog)

    def _category_for(self, business: Business) -> Category | None:
        if not business.category_id:
            return None
        return self._categories.get(business.category_id)

    def find_all(
        self, *, category_id: str | None = None, within: BoundingBox | None = None
    ) -> list[Candidate]:
        """Active businesses paired with each of their locations."""
        out: list[Candidate] = []
        for business in self._businesses.values():
            if not business.is_active:
                continue
            if category_id and business.category_id != category_id:
                continue
            category = self._category_for(business)
            for loc in self._locations.get(business.id, []):
                if within is not None and not is_within_bounding_box(loc.coordinates, within):
                    continue
                out.append(Candidate(business=business, location=loc, category=category))
        return out

    def find_by_id(self, business_id: str) -> BusinessRecord | None:
        business = self._businesses.get(business_id)
        if business is None:
            return None
        return BusinessRecord(
            business=business,
            category=self._category_for(business),
            locations=tuple(self._locations.get(business_id, [])),
        )

    def find_by_id_with_services(self, business_id: str) -> BusinessRecord | None:
        record = self.find_by_id(business_id)
        if record is None:
            return None
        services = tuple(s for s in self._services.get(business_id, []) if s.is_active)
        return BusinessRecord(
            business=record.business,
            category=record.category,
            locations=record.locations,
            services=services,
        )

    def find_services(self, business_ids: Iterable[str]) -> dict[str, list[Service]]:
        """Active services grouped by business ID (every requested ID is present)."""
        out: dict[str, list[Service]] = {}
        for business_id in business_ids:
            out[business_id] = [s for s in self._services.get(business_id, []) if s.is_active]
        return out

    def update_service_radius(self, business_id: str, service_radius: float | None) -> None:
        """Set the service radius on every location of `business_id`."""
        with self._lock:
            locations = self._locations.get(business_id)
            if business_id not in self._businesses or not locations:
                raise BusinessNotFound(business_id)
            self._locations[business_id] = [
                BusinessLocation.model_validate({**loc.model_dump(), "service_radius": service_radius})
                for loc in locations
            ]
