from __future__ import annotations

import pytest

from paceboard.cache import CacheKey, CachePurpose, TTLCache


def test_cache_key_names() -> None:
    assert str(CacheKey(CachePurpose.SSM_DAILY, 7)) == "ssm_daily_7"
    assert str(CacheKey(CachePurpose.SSM_MONTHLY, 7, "2026-09")) == "ssm_monthly_7_2026-09"
    assert str(CacheKey(CachePurpose.SSM_WEEK_CHART, 3, "2026-09-15")) == "ssm_week_chart_3_2026-09-15"


def test_set_and_get_until_expiry(clock) -> None:
    cache = TTLCache(clock=clock)
    key = CacheKey(CachePurpose.SSM_DAILY, 1)
    cache.set(key, 42, 600)

    clock.advance(599)
    assert cache.get(key) == 42
    assert cache.has("ssm_daily_1")

    clock.advance(1)
    assert cache.get(key) is None
    assert cache.get(key, default=-1) == -1
    assert not cache.has(key)
    assert len(cache) == 0


def test_get_or_compute_runs_producer_once_per_ttl(clock) -> None:
    cache = TTLCache(clock=clock)
    calls = []

    def producer() -> int:
        calls.append(clock())
        return len(calls) * 10

    assert cache.get_or_compute("k", 60, producer) == 10
    assert cache.get_or_compute("k", 60, producer) == 10
    assert len(calls) == 1

    clock.advance(60)
    assert cache.get_or_compute("k", 60, producer) == 20
    assert len(calls) == 2


def test_producer_failure_is_not_cached(clock) -> None:
    cache = TTLCache(clock=clock)

    def broken() -> int:
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.get_or_compute("k", 60, broken)
    assert not cache.has("k")
    assert cache.get_or_compute("k", 60, lambda: 5) == 5


def test_forget_and_clear(clock) -> None:
    cache = TTLCache(clock=clock)
    cache.set("a", 1, 10)
    cache.set("b", 2, 10)

    assert cache.forget("a") is True
    assert cache.forget("a") is False
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_falsy_values_are_cached(clock) -> None:
    cache = TTLCache(clock=clock)
    calls = []

    def producer() -> int:
        calls.append(1)
        return 0

    assert cache.get_or_compute("zero", 60, producer) == 0
    assert cache.get_or_compute("zero", 60, producer) == 0
    assert len(calls) == 1


@pytest.mark.parametrize("ttl", [0, -5])
def test_ttl_must_be_positive(clock, ttl) -> None:
    with pytest.raises(ValueError):
        TTLCache(clock=clock).set("k", 1, ttl)


def test_writes_sweep_expired_entries(clock) -> None:
    cache = TTLCache(clock=clock)
    for day in range(30):
        cache.set(CacheKey(CachePurpose.SSM_WEEK_CHART, 1, f"2026-09-{day + 1:02d}"), day, 3600)
        clock.advance(86400)

    cache.set(CacheKey(CachePurpose.SSM_DAILY, 1), 0, 600)

    assert len(cache._entries) == 1
    assert cache.has("ssm_daily_1")


def test_purge_expired_keeps_live_entries(clock) -> None:
    cache = TTLCache(clock=clock)
    cache.set("short", 1, 10)
    cache.set("long", 2, 100)

    clock.advance(50)

    assert cache.purge_expired() == 1
    assert cache.get("long") == 2
    assert list(cache._entries) == ["long"]
