"""Bank profile catalogue: store, cached registry, bulk import and templates."""

from core.profiles.importer import (
    ProfileImporter,
    deep_merge,
    normalize_pattern_keys,
    parse_profiles_csv,
)
from core.profiles.registry import BankProfileRegistry, CacheEntry, ProfileCache
from core.profiles.store import (
    ProfileNotFoundError,
    ProfileStore,
    SQLiteProfileStore,
    StoreError,
)
from core.profiles.templates import BUILTIN_TEMPLATES, seed_templates

__all__ = [
    "BUILTIN_TEMPLATES",
    "BankProfileRegistry",
    "CacheEntry",
    "ProfileCache",
    "ProfileImporter",
    "ProfileNotFoundError",
    "ProfileStore",
    "SQLiteProfileStore",
    "StoreError",
    "deep_merge",
    "normalize_pattern_keys",
    "parse_profiles_csv",
    "seed_templates",
]
