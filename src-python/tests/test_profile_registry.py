"""Tests for the cached bank profile registry."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from core.profiles.registry import ALL_COUNTRIES, BankProfileRegistry, ProfileCache
from core.profiles.store import ProfileNotFoundError, StoreError
from models.profiles import BankProfile


def _profile(code: str, country: str = "US", usage: int = 0) -> BankProfile:
    now = datetime.now(timezone.utc)
    return BankProfile(
        id=f"id-{code}",
        bank_code=code,
        bank_name=code.upper(),
        display_name=code.upper(),
        country_code=country,
        is_verified=True,
        usage_count=usage,
        created_at=now,
        updated_at=now,
    )


class _FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class _FakeStore:
    """In-memory store that counts calls and can be told to fail."""

    def __init__(self, profiles: list[BankProfile]):
        self.profiles = profiles
        self.fail = False
        self.fetch_calls: list[Optional[str]] = []
        self.usage: list[tuple[str, bool, int]] = []

    def _maybe_fail(self):
        if self.fail:
            raise StoreError("store unreachable")

    async def fetch_active_profiles(self, country=None):
        self.fetch_calls.append(country)
        self._maybe_fail()
        return [p for p in self.profiles if country is None or p.country_code == country]

    async def get_profile(self, bank_code):
        self._maybe_fail()
        return next((p for p in self.profiles if p.bank_code == bank_code), None)

    async def search_profiles(self, query, limit):
        self._maybe_fail()
        q = query.lower()
        return [p for p in self.profiles if q in p.bank_name.lower()][:limit]

    async def increment_usage(self, profile_id, success, transaction_count):
        self._maybe_fail()
        if not any(p.id == profile_id for p in self.profiles):
            raise ProfileNotFoundError(profile_id)
        self.usage.append((profile_id, success, transaction_count))

    async def set_active(self, bank_code, is_active):
        self._maybe_fail()
        before = len(self.profiles)
        self.profiles = [p for p in self.profiles if p.bank_code != bank_code]
        return len(self.profiles) != before


@pytest.fixture
def clock():
    return _FakeClock()


@pytest.fixture
def store():
    return _FakeStore([
        _profile("chase", "US", 9),
        _profile("citi", "US", 4),
        _profile("hdfc", "IN", 7),
    ])


@pytest.fixture
def registry(store, clock):
    return BankProfileRegistry(store, cache=ProfileCache(ttl_seconds=300, clock=clock), search_limit=2)


class TestProfileCache:
    def test_key_defaults_to_all_countries(self):
        assert ProfileCache.key(None) == ALL_COUNTRIES
        assert ProfileCache.key("") == ALL_COUNTRIES
        assert ProfileCache.key("IN") == "IN"

    def test_fresh_until_ttl(self, clock):
        cache = ProfileCache(ttl_seconds=10, clock=clock)
        cache.put([_profile("a")], "US")
        clock.now += 9.9
        assert cache.get_fresh("US") is not None
        clock.now += 0.1
        assert cache.get_fresh("US") is None
        assert cache.get_stale("US") is not None

    def test_invalidate_one_or_all(self, clock):
        cache = ProfileCache(ttl_seconds=10, clock=clock)
        cache.put([], "US")
        cache.put([], "IN")
        cache.invalidate("US")
        assert cache.get_stale("US") is None
        assert cache.get_stale("IN") == []
        cache.invalidate()
        assert cache.get_stale("IN") is None


class TestLoad:
    @pytest.mark.asyncio
    async def test_second_load_within_ttl_uses_cache(self, registry, store):
        first = await registry.load()
        second = await registry.load()
        assert store.fetch_calls == [None]
        assert first == second

    @pytest.mark.asyncio
    async def test_countries_cached_independently(self, registry, store):
        indian = await registry.load("IN")
        everything = await registry.load()
        assert [p.bank_code for p in indian] == ["hdfc"]
        assert len(everything) == 3
        assert store.fetch_calls == ["IN", None]

    @pytest.mark.asyncio
    async def test_expired_entry_refetches(self, registry, store, clock):
        await registry.load()
        clock.now += 301
        await registry.load()
        assert store.fetch_calls == [None, None]

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, registry, store):
        await registry.load()
        await registry.load(force_refresh=True)
        assert len(store.fetch_calls) == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_serves_stale(self, registry, store, clock):
        good = await registry.load()
        store.fail = True
        clock.now += 10_000
        assert await registry.load(force_refresh=True) == good
        assert await registry.load() == good

    @pytest.mark.asyncio
    async def test_failure_with_nothing_cached_returns_empty(self, registry, store):
        store.fail = True
        assert await registry.load("US") == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_raised(self, registry, store):
        async def broken(country=None):
            raise RuntimeError("connection reset")
        store.fetch_active_profiles = broken
        assert await registry.load() == []


class TestLookups:
    @pytest.mark.asyncio
    async def test_get(self, registry, store):
        assert (await registry.get("hdfc")).country_code == "IN"
        assert await registry.get("nope") is None
        store.fail = True
        assert await registry.get("hdfc") is None

    @pytest.mark.asyncio
    async def test_search(self, registry):
        results = await registry.search("  CH ")
        assert [p.bank_code for p in results] == ["chase"]

    @pytest.mark.asyncio
    async def test_blank_search_returns_top_profiles(self, registry):
        results = await registry.search("   ")
        assert [p.bank_code for p in results] == ["chase", "citi"]

    @pytest.mark.asyncio
    async def test_search_failure_returns_empty(self, registry, store):
        store.fail = True
        assert await registry.search("chase") == []


class TestWrites:
    @pytest.mark.asyncio
    async def test_record_usage(self, registry, store):
        assert await registry.record_usage("id-chase", True, 42) is True
        assert store.usage == [("id-chase", True, 42)]

    @pytest.mark.asyncio
    async def test_record_usage_unknown_profile(self, registry):
        assert await registry.record_usage("id-missing", False, 0) is False

    @pytest.mark.asyncio
    async def test_record_usage_store_down(self, registry, store):
        store.fail = True
        assert await registry.record_usage("id-chase", True, 1) is False

    @pytest.mark.asyncio
    async def test_deactivate_invalidates_cache(self, registry, store):
        await registry.load()
        assert await registry.deactivate("citi") is True
        profiles = await registry.load()
        assert [p.bank_code for p in profiles] == ["chase", "hdfc"]
        assert len(store.fetch_calls) == 2

    @pytest.mark.asyncio
    async def test_deactivate_unknown(self, registry, store):
        await registry.load()
        assert await registry.deactivate("nope") is False
        await registry.load()
        assert len(store.fetch_calls) == 1
