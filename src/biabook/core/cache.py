"""
On-disk JSON cache for geocoding lookups.

Geocoding the same address or zip code twice costs a provider request and quota, so
results are kept on disk under `.cache/biabook/` by default:
- Keys are normalized (trimmed, lower-cased) then hashed with SHA-256, so
  "10001" and " 10001 " share one entry.
- TTL is enforced on read; `purge_expired()` removes dead entries in bulk.
- Writes go through a temp file + atomic replace.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable


def normalize_key(key: str) -> str:
    """Normalize a lookup key (address, zip code, rounded coordinates)."""
    return " ".join(str(key).strip().lower().split())


@dataclass(frozen=True)
class CacheEntry:
    """Serialized cache envelope stored on disk."""

    created_at_unix: int
    ttl_seconds: int
    value: Any

    def is_expired(self, now_unix: int, ttl_seconds: int | None = None) -> bool:
        effective = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return now_unix - self.created_at_unix > effective


class FileCache:
    """A filesystem-backed cache keyed by (namespace, normalized key)."""

    def __init__(self, base_dir: Path, enabled: bool = True, default_ttl_seconds: int = 86400):
        self._base_dir = Path(base_dir)
        self._enabled = enabled
        self._default_ttl_seconds = default_ttl_seconds

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _key_path(self, namespace: str, key: str) -> Path:
        digest = sha256(normalize_key(key).encode("utf-8")).hexdigest()
        return self._base_dir / namespace / f"{digest}.json"

    @staticmethod
    def _read_entry(path: Path) -> CacheEntry | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry(
                created_at_unix=int(raw["created_at_unix"]),
                ttl_seconds=int(raw["ttl_seconds"]),
                value=raw["value"],
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def get(self, namespace: str, key: str, ttl_seconds: int | None = None) -> Any | None:
        """Return a cached value if present and not expired; otherwise None."""
        if not self._enabled:
            return None
        path = self._key_path(namespace, key)
        if not path.exists():
            return None
        entry = self._read_entry(path)
        if entry is None or entry.is_expired(int(time.time()), ttl_seconds):
            return None
        return entry.value

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Write a JSON-serializable value to disk."""
        if not self._enabled:
            return None

        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl_seconds
        path = self._key_path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            "created_at_unix": int(time.time()),
            "ttl_seconds": int(ttl),
            "value": value,
        }
        # One temp file per writer; concurrent writers of a key must not share it.
        tmp = path.with_name(f".{path.stem}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def delete(self, namespace: str, key: str) -> bool:
        path = self._key_path(namespace, key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def get_or_set(
        self,
        namespace: str,
        key: str,
        builder: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> Any:
        """Return the cached value, or compute it with `builder` and store it.

        Exceptions from `builder` propagate and nothing is stored.
        """
        cached = self.get(namespace, key, ttl_seconds=ttl_seconds)
        if cached is not None:
            return cached
        value = builder()
        if value is not None:
            self.set(namespace, key, value, ttl_seconds=ttl_seconds)
        return value

    def _iter_entries(self, namespace: str | None = None):
        if not self._base_dir.exists():
            return
        roots = [self._base_dir / namespace] if namespace else [p for p in self._base_dir.iterdir() if p.is_dir()]
        for root in roots:
            if not root.is_dir():
                continue
            for path in root.glob("*.json"):
                yield path, self._read_entry(path)

    def stats(self, namespace: str | None = None) -> dict[str, int]:
        """Count total and expired entries on disk."""
        now = int(time.time())
        total = 0
        expired = 0
        for _, entry in self._iter_entries(namespace):
            total += 1
            if entry is None or entry.is_expired(now):
                expired += 1
        return {"total_entries": total, "expired_entries": expired}

    def purge_expired(self, namespace: str | None = None) -> int:
        """Delete expired or unreadable entries; returns how many were removed."""
        now = int(time.time())
        removed = 0
        for path, entry in list(self._iter_entries(namespace)):
            if entry is None or entry.is_expired(now):
                path.unlink(missing_ok=True)
                removed += 1
        return removed
