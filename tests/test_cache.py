import json

import pytest

from workfocus.core import RemoteError
from workfocus.infrastructure.cache import CacheLayer, SOURCE_CALENDAR, SOURCE_ITEM


class FakeTime:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class Fetcher:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def test_fresh_value_is_served_from_cache(tmp_path):
    clock = FakeTime()
    cache = CacheLayer(tmp_path, clock=clock)
    fetch = Fetcher({"id": 1, "title": "a"})

    first = cache.get_or_refresh(SOURCE_ITEM, "1", None, fetch)
    clock.now += 100
    second = cache.get_or_refresh(SOURCE_ITEM, "1", None, fetch)

    assert fetch.calls == 1
    assert first.from_cache is False
    assert second.from_cache is True
    assert second.value == {"id": 1, "title": "a"}


def test_expired_value_is_refetched(tmp_path):
    clock = FakeTime()
    cache = CacheLayer(tmp_path, clock=clock)
    fetch = Fetcher("old", "new")

    cache.get_or_refresh(SOURCE_ITEM, "1", 60, fetch)
    clock.now += 61
    result = cache.get_or_refresh(SOURCE_ITEM, "1", 60, fetch)

    assert result.value == "new"
    assert fetch.calls == 2


def test_failed_refresh_serves_stale_value(tmp_path):
    clock = FakeTime()
    cache = CacheLayer(tmp_path, clock=clock)
    error = RemoteError("down", "calendar")
    fetch = Fetcher(["event"], error)

    cache.get_or_refresh(SOURCE_CALENDAR, "today", None, fetch)
    clock.now += 10_000
    result = cache.get_or_refresh(SOURCE_CALENDAR, "today", None, fetch)

    assert result.value == ["event"]
    assert result.stale is True
    assert result.error is error


def test_failed_fetch_without_cached_value_raises(tmp_path):
    cache = CacheLayer(tmp_path, clock=FakeTime())

    with pytest.raises(RemoteError):
        cache.get_or_refresh(SOURCE_ITEM, "1", None, Fetcher(RemoteError("down", "tracker")))


def test_entries_survive_a_new_instance(tmp_path):
    clock = FakeTime()
    CacheLayer(tmp_path, clock=clock).put(SOURCE_ITEM, "1", {"id": 1})

    reloaded = CacheLayer(tmp_path, clock=clock)
    fetch = Fetcher({"id": 2})

    assert reloaded.get_or_refresh(SOURCE_ITEM, "1", None, fetch).value == {"id": 1}
    assert fetch.calls == 0
    stored = json.loads((tmp_path / "item.json").read_text())
    assert "1" in stored["entries"]


def test_identity_change_drops_cached_entries(tmp_path):
    clock = FakeTime()
    CacheLayer(tmp_path, identity_getter=lambda: "org:alice", clock=clock).put(SOURCE_ITEM, "1", "alice's")

    other = CacheLayer(tmp_path, identity_getter=lambda: "org:bob", clock=clock)

    assert other.get(SOURCE_ITEM, "1") is None
    assert not (tmp_path / "item.json").exists()


def test_invalidate(tmp_path):
    cache = CacheLayer(tmp_path, clock=FakeTime())
    cache.put(SOURCE_ITEM, "1", "a")
    cache.put(SOURCE_ITEM, "2", "b")

    cache.invalidate(SOURCE_ITEM, "1")
    assert cache.get(SOURCE_ITEM, "1") is None
    assert cache.get(SOURCE_ITEM, "2").value == "b"

    cache.invalidate(SOURCE_ITEM)
    assert cache.get(SOURCE_ITEM, "2") is None
    assert not (tmp_path / "item.json").exists()


def test_unreadable_cache_file_is_ignored(tmp_path):
    (tmp_path / "item.json").write_text("{broken", encoding="utf-8")
    cache = CacheLayer(tmp_path, clock=FakeTime())

    assert cache.get(SOURCE_ITEM, "1") is None
