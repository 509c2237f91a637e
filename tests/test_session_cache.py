"""Tests for the in-process session cache."""

import pytest

from app.services.session_cache import SessionCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_get_returns_stored_value(clock):
    cache = SessionCache(ttl_seconds=60, clock=clock)
    cache.set("a", 1)
    assert cache.get("a") == 1
    assert cache.get("missing") is None


def test_entries_expire(clock):
    cache = SessionCache(ttl_seconds=60, clock=clock)
    cache.set("a", 1)

    clock.now += 59
    assert cache.get("a") == 1

    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_reading_does_not_extend_ttl(clock):
    cache = SessionCache(ttl_seconds=10, clock=clock)
    cache.set("a", 1)
    clock.now += 8
    cache.get("a")
    clock.now += 3
    assert cache.get("a") is None


def test_least_recently_used_is_evicted(clock):
    cache = SessionCache(ttl_seconds=60, max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_invalidate_and_clear(clock):
    cache = SessionCache(clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    cache.invalidate("unknown")
    assert cache.get("a") is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


@pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
def test_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        SessionCache(**kwargs)
