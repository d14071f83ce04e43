"""Bank profile registry: cached reads over a ``ProfileStore``.

Loads are served from a per-country TTL cache.  When the store fails the
registry serves the last good value for that key, however old, and only
returns an empty list when nothing was ever cached ("stale-while-error").
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from core.config import config
from core.profiles.store import ProfileStore, StoreError
from models.profiles import BankProfile

logger = logging.getLogger(__name__)

ALL_COUNTRIES = "__all__"


@dataclass
class CacheEntry:
    data: list[BankProfile]
    timestamp: float
    country: Optional[str] = None


class ProfileCache:
    """In-memory profile lists keyed by country, with TTL eviction.

    ``clock`` is injectable so tests can move time deterministically.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = config.profile_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def key(country: Optional[str]) -> str:
        return country or ALL_COUNTRIES

    def get_fresh(self, country: Optional[str] = None) -> Optional[list[BankProfile]]:
        entry = self._entries.get(self.key(country))
        if entry is None:
            return None
        if self._clock() - entry.timestamp < self.ttl_seconds:
            return entry.data
        return None

    def get_stale(self, country: Optional[str] = None) -> Optional[list[BankProfile]]:
        """Last stored value for *country*, ignoring age."""
        entry = self._entries.get(self.key(country))
        return entry.data if entry else None

    def put(self, data: list[BankProfile], country: Optional[str] = None) -> None:
        # Stamped on completion: the most recently finished fetch wins
        self._entries[self.key(country)] = CacheEntry(
            data=data, timestamp=self._clock(), country=country,
        )

    def invalidate(self, country: Optional[str] = None) -> None:
        """Drop one key, or every key when *country* is None."""
        if country is None:
            self._entries.clear()
        else:
            self._entries.pop(self.key(country), None)


class BankProfileRegistry:
    """Read side of the bank profile catalogue."""

    def __init__(
        self,
        store: ProfileStore,
        cache: Optional[ProfileCache] = None,
        search_limit: Optional[int] = None,
    ):
        self._store = store
        self.cache = cache if cache is not None else ProfileCache()
        self.search_limit = config.profile_search_limit if search_limit is None else search_limit

    async def load(
        self,
        country: Optional[str] = None,
        force_refresh: bool = False,
    ) -> list[BankProfile]:
        """Active, verified profiles (optionally for one country), most used first.

        Never raises for store failures: falls back to the stale cache entry,
        then to an empty list.
        """
        if not force_refresh:
            cached = self.cache.get_fresh(country)
            if cached is not None:
                return cached

        try:
            profiles = await self._store.fetch_active_profiles(country)
        except Exception as exc:
            logger.error(
                f"Bank profile load failed, serving stale cache: {exc}",
                extra={"country": country, "error_type": type(exc).__name__},
            )
            stale = self.cache.get_stale(country)
            return stale if stale is not None else []

        self.cache.put(profiles, country)
        logger.debug(f"Loaded {len(profiles)} bank profiles", extra={"country": country})
        return profiles

    async def get(self, bank_code: str) -> Optional[BankProfile]:
        try:
            return await self._store.get_profile(bank_code)
        except StoreError as exc:
            logger.error(
                f"Bank profile lookup failed: {exc}",
                extra={"bank_code": bank_code, "error_type": type(exc).__name__},
            )
            return None

    async def search(self, query: str) -> list[BankProfile]:
        """Case-insensitive match on bank name, display name or alias."""
        query = query.strip()
        if not query:
            return (await self.load())[: self.search_limit]
        try:
            return await self._store.search_profiles(query, self.search_limit)
        except StoreError as exc:
            logger.error(
                f"Bank profile search for '{query}' failed: {exc}",
                extra={"error_type": type(exc).__name__},
            )
            return []

    async def record_usage(
        self, profile_id: str, success: bool, transaction_count: int
    ) -> bool:
        """Count one parse against *profile_id*. Returns False if it could not be recorded."""
        try:
            await self._store.increment_usage(profile_id, success, transaction_count)
        except StoreError as exc:
            logger.error(
                f"Could not record bank profile usage: {exc}",
                extra={"profile_id": profile_id, "error_type": type(exc).__name__},
            )
            return False
        return True

    async def deactivate(self, bank_code: str) -> bool:
        """Hide a profile from loads and searches. Profiles are never hard-deleted."""
        try:
            changed = await self._store.set_active(bank_code, False)
        except StoreError as exc:
            logger.error(
                f"Could not deactivate bank profile: {exc}",
                extra={"bank_code": bank_code, "error_type": type(exc).__name__},
            )
            return False
        if changed:
            self.cache.invalidate()
            logger.info(f"Deactivated bank profile {bank_code}", extra={"bank_code": bank_code})
        return changed
