"""Tests for the status cache."""

import threading
import time

import pytest

from utils.status_cache import StatusCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return StatusCache(ttl=5.0, clock=clock)


class TestStatusCache:

    def test_loads_once_within_ttl(self, cache, clock):
        calls = []

        def loader():
            calls.append(1)
            return "status"

        assert cache.get(loader) == "status"
        clock.now += 4.9
        assert cache.get(loader) == "status"
        assert len(calls) == 1

    def test_reloads_after_ttl(self, cache, clock):
        values = iter(["first", "second"])
        cache.get(lambda: next(values))
        clock.now += 5.0
        assert cache.get(lambda: next(values)) == "second"

    def test_invalidate(self, cache):
        cache.get(lambda: "old")
        cache.invalidate()
        assert cache.get(lambda: "new") == "new"

    def test_loader_exception_not_cached(self, cache):
        def broken():
            raise RuntimeError("socket gone")

        with pytest.raises(RuntimeError):
            cache.get(broken)
        assert cache.get(lambda: "recovered") == "recovered"

    def test_concurrent_callers_share_one_load(self):
        cache = StatusCache(ttl=60.0)
        calls = []

        def slow_loader():
            calls.append(1)
            time.sleep(0.05)
            return "status"

        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get(slow_loader))) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == ["status"] * 5
        assert len(calls) == 1
