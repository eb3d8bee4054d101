import threading

import pytest

from biabook.core.cache import FileCache, normalize_key


def test_normalize_key_collapses_case_and_whitespace():
    assert normalize_key("  10001 ") == "10001"
    assert normalize_key("1 Main  St,\tNew York") == "1 main st, new york"


def test_get_set_roundtrip_and_ttl(monkeypatch, tmp_path):
    now = {"t": 1_000_000.0}
    monkeypatch.setattr("biabook.core.cache.time.time", lambda: now["t"])

    cache = FileCache(tmp_path, default_ttl_seconds=60)
    cache.set("zip", "19103", {"latitude": 39.95, "longitude": -75.17})
    assert cache.get("zip", " 19103 ") == {"latitude": 39.95, "longitude": -75.17}

    now["t"] += 61
    assert cache.get("zip", "19103") is None
    # A longer read-side TTL keeps the entry alive.
    assert cache.get("zip", "19103", ttl_seconds=3600) is not None


def test_disabled_cache_is_a_noop(tmp_path):
    cache = FileCache(tmp_path, enabled=False)
    cache.set("zip", "19103", 1)
    assert cache.get("zip", "19103") is None
    assert not (tmp_path / "zip").exists()


def test_get_or_set_only_builds_once(tmp_path):
    cache = FileCache(tmp_path)
    calls = []

    def builder():
        calls.append(1)
        return "America/New_York"

    assert cache.get_or_set("timezone", "39.953,-75.165", builder) == "America/New_York"
    assert cache.get_or_set("timezone", "39.953,-75.165", builder) == "America/New_York"
    assert len(calls) == 1


def test_get_or_set_propagates_builder_errors(tmp_path):
    cache = FileCache(tmp_path)

    def boom():
        raise RuntimeError("provider down")

    with pytest.raises(RuntimeError):
        cache.get_or_set("timezone", "k", boom)
    assert cache.stats()["total_entries"] == 0


def test_stats_and_purge_expired(monkeypatch, tmp_path):
    now = {"t": 2_000_000.0}
    monkeypatch.setattr("biabook.core.cache.time.time", lambda: now["t"])

    cache = FileCache(tmp_path)
    cache.set("address", "old", 1, ttl_seconds=10)
    cache.set("address", "fresh", 2, ttl_seconds=1000)
    cache.set("zip", "19103", 3, ttl_seconds=1000)
    (tmp_path / "zip" / "garbage.json").write_text("{not json", encoding="utf-8")

    now["t"] += 100
    assert cache.stats() == {"total_entries": 4, "expired_entries": 2}
    assert cache.stats("address") == {"total_entries": 2, "expired_entries": 1}

    assert cache.purge_expired() == 2
    assert cache.stats() == {"total_entries": 2, "expired_entries": 0}
    assert cache.get("address", "fresh") == 2


def test_delete(tmp_path):
    cache = FileCache(tmp_path)
    cache.set("zip", "19103", 1)
    assert cache.delete("zip", "19103") is True
    assert cache.delete("zip", "19103") is False


def test_concurrent_writers_of_one_key(tmp_path):
    cache = FileCache(tmp_path)
    errors: list[BaseException] = []

    def writer(n: int) -> None:
        try:
            for i in range(100):
                cache.set("zip", "19103", {"writer": n, "i": i})
        except BaseException as e:  # collected and asserted below
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert cache.get("zip", "19103")["i"] == 99
    # Temp files never linger next to the entry.
    assert [p.suffix for p in (tmp_path / "zip").iterdir()] == [".json"]
