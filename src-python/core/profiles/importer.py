"""Bulk import of bank profiles from CSV files or JSON-like rows.

Every row is merged over its template (if any), validated, and inserted only
if no profile with the same ``bank_code`` exists, so re-running an import
never overwrites a curated profile.  One bad row never stops the batch.
"""

from __future__ import annotations

import copy
import csv
import io
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError
from pydantic.alias_generators import to_camel, to_snake

from core.profiles.store import ProfileStore, StoreError
from models.profiles import ImportResult, PatternBlocks

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("bank_code", "bank_name", "country_code")
DEFAULT_CONFIDENCE_THRESHOLD = 0.60
IMPORT_SOURCE = "bulk_import"


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*.

    Nested mappings present on both sides merge key by key; anything else
    (lists included) in *override* replaces the base value outright.
    """
    result = dict(base)
    for key, value in override.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(existing, value)
        else:
            result[key] = value
    return result


def normalize_pattern_keys(patterns: Mapping[str, Any]) -> dict[str, Any]:
    """Key blocks by snake_case name and block fields by camelCase.

    Templates and overrides may spell keys either way; both sides must agree
    before they are merged, or ``transactionPatterns`` and
    ``transaction_patterns`` would end up as two separate blocks.
    """
    result: dict[str, Any] = {}
    for key, block in patterns.items():
        name = key if "_" in key else to_snake(key)
        if isinstance(block, Mapping):
            block = {(to_camel(k) if "_" in k else k): v for k, v in block.items()}
            existing = result.get(name)
            if isinstance(existing, Mapping):
                block = deep_merge(existing, block)
        result[name] = block
    return result


def parse_profiles_csv(text: str) -> list[dict[str, str]]:
    """Parse CSV text into rows keyed by lower-cased header names.

    Quoted cells may contain commas, so ``custom_patterns`` JSON survives.
    """
    reader = csv.DictReader(io.StringIO(text.strip()), skipinitialspace=True)
    if reader.fieldnames is None:
        return []
    reader.fieldnames = [h.strip().lower() for h in reader.fieldnames]
    rows = []
    for raw in reader:
        row = {k: (v or "").strip() for k, v in raw.items() if k is not None}
        if any(row.values()):
            rows.append(row)
    return rows


def _parse_aliases(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        parts = value.split(";")
    else:
        parts = list(value)
    return [p.strip() for p in parts if p and p.strip()]


class ProfileImporter:
    """Imports profile rows into a ``ProfileStore``."""

    def __init__(self, store: ProfileStore):
        self._store = store
        self._templates: dict[str, Optional[dict[str, Any]]] = {}

    async def _template_patterns(self, name: str) -> Optional[dict[str, Any]]:
        """Template blocks by name, fetched at most once per import run."""
        if name not in self._templates:
            template = await self._store.get_template(name)
            self._templates[name] = template.template_patterns if template else None
        patterns = self._templates[name]
        return copy.deepcopy(patterns) if patterns is not None else None

    async def _build_row(self, row: Mapping[str, Any], label: str) -> dict[str, Any]:
        patterns: dict[str, Any] = {}
        template_name = row.get("template_name")
        if template_name:
            template = await self._template_patterns(template_name)
            if template is None:
                logger.warning(f"{label}: template '{template_name}' not found, using empty")
            else:
                patterns = normalize_pattern_keys(template)

        custom = row.get("custom_patterns") or {}
        if isinstance(custom, str):
            custom = json.loads(custom)
        if not isinstance(custom, Mapping):
            raise ValueError("custom_patterns must be a JSON object")

        blocks = PatternBlocks.model_validate(
            deep_merge(patterns, normalize_pattern_keys(custom))
        )

        return {
            "id": uuid.uuid4().hex,
            "bank_code": row["bank_code"],
            "bank_name": row["bank_name"],
            "display_name": row.get("display_name") or row["bank_name"],
            "country_code": row["country_code"],
            "currency_code": row.get("currency_code") or None,
            "swift_code": row.get("swift_code") or None,
            "version": 1,
            "is_active": True,
            "is_verified": False,
            "confidence_threshold": DEFAULT_CONFIDENCE_THRESHOLD,
            **blocks.to_storage(),
            "source": IMPORT_SOURCE,
        }

    async def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        rows = list(rows)
        total = len(rows)
        result = ImportResult()
        self._templates = {}

        for i, row in enumerate(rows, start=1):
            label = f"[{i}/{total}] {row.get('bank_code') or '?'}"

            missing = [f for f in REQUIRED_FIELDS if not row.get(f)]
            if missing:
                result.failed += 1
                result.errors.append(
                    f"{label}: missing required fields ({', '.join(missing)})"
                )
                logger.warning(f"{label} SKIPPED - missing required fields")
                continue

            try:
                profile_row = await self._build_row(row, label)
                # Profile and aliases land together, or the row fails as a whole
                inserted = await self._store.upsert_profile(
                    profile_row,
                    on_conflict="ignore",
                    aliases=[(alias, "import") for alias in _parse_aliases(row.get("aliases"))],
                )
            except (ValueError, ValidationError, StoreError) as exc:
                result.failed += 1
                result.errors.append(f"{label}: {exc}")
                logger.warning(f"{label} FAILED - {exc}", extra={"bank_code": row.get("bank_code")})
                continue

            if inserted:
                result.imported += 1
                logger.info(f"{label} OK")
            else:
                result.skipped += 1
                logger.info(f"{label} exists, left unchanged")

        logger.info(
            f"Import complete: {result.imported} imported, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    async def import_json(self, profiles: Iterable[Mapping[str, Any]]) -> ImportResult:
        profiles = list(profiles)
        logger.info(f"Importing {len(profiles)} bank profiles from JSON")
        return await self.import_rows(profiles)

    async def import_csv_text(self, text: str) -> ImportResult:
        return await self.import_rows(parse_profiles_csv(text))

    async def import_csv(self, path: Union[str, Path]) -> ImportResult:
        path = Path(path)
        logger.info(f"Importing bank profiles from CSV: {path}")
        return await self.import_csv_text(path.read_text(encoding="utf-8-sig"))
