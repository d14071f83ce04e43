"""Backing store for bank profiles, templates, aliases and usage counters.

``ProfileStore`` is the keyed-record interface the registry and importer
talk to.  ``SQLiteProfileStore`` implements it on a local SQLite file; the
synchronous sqlite3 calls run in a worker thread behind a lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional, Sequence

from pydantic import ValidationError

from core.config import config
from models.profiles import BankProfile, BankProfileTemplate

logger = logging.getLogger(__name__)

OnConflict = Literal["update", "ignore"]

PATTERN_COLUMNS = (
    "detect_patterns",
    "transaction_patterns",
    "validation_rules",
    "regional_config",
    "column_config",
)

# Columns an upsert may write; usage statistics are only touched by
# increment_usage().
_WRITABLE_COLUMNS = (
    "bank_code", "bank_name", "display_name", "country_code",
    "currency_code", "swift_code", "version", "is_active", "is_verified",
    "confidence_threshold", *PATTERN_COLUMNS, "source",
)


class StoreError(Exception):
    """The backing store could not complete an operation."""


class ProfileNotFoundError(StoreError):
    """No profile with the requested id exists."""


class ProfileStore(ABC):
    """Keyed-record interface for bank profile data."""

    @abstractmethod
    async def fetch_active_profiles(self, country: Optional[str] = None) -> list[BankProfile]:
        """Active and verified profiles, most used first.

        Raises:
            StoreError: If the store cannot be read.
        """

    @abstractmethod
    async def get_profile(self, bank_code: str) -> Optional[BankProfile]:
        """The profile with *bank_code*, or None."""

    @abstractmethod
    async def search_profiles(self, query: str, limit: int) -> list[BankProfile]:
        """Case-insensitive substring match on names and aliases, most used first."""

    @abstractmethod
    async def increment_usage(
        self, profile_id: str, success: bool, transaction_count: int
    ) -> None:
        """Atomically bump the usage counter and fold *success* into the success rate.

        Raises:
            ProfileNotFoundError: If *profile_id* does not exist.
        """

    @abstractmethod
    async def upsert_profile(
        self,
        row: dict[str, Any],
        *,
        on_conflict: OnConflict = "update",
        aliases: Sequence[tuple[str, Optional[str]]] = (),
    ) -> bool:
        """Insert *row* keyed by ``bank_code``.

        With ``on_conflict="ignore"`` an existing row is left untouched and
        False is returned; otherwise it is updated.  Returns True when a row
        was written.  ``(alias, alias_type)`` pairs are attached to a written
        row in the same transaction: either all of it lands or none of it.
        """

    @abstractmethod
    async def get_template(self, template_name: str) -> Optional[BankProfileTemplate]:
        ...

    @abstractmethod
    async def upsert_template(self, template: BankProfileTemplate) -> None:
        ...

    @abstractmethod
    async def add_alias(
        self, profile_id: str, alias: str, alias_type: Optional[str] = None
    ) -> None:
        ...

    @abstractmethod
    async def set_active(self, bank_code: str, is_active: bool) -> bool:
        """Flip the active flag; False when no such profile exists."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteProfileStore(ProfileStore):
    """``ProfileStore`` on a local SQLite database."""

    _SCHEMA = """
    CREATE TABLE IF NOT EXISTS bank_profiles (
        id TEXT PRIMARY KEY,
        bank_code TEXT UNIQUE NOT NULL,
        bank_name TEXT NOT NULL,
        display_name TEXT NOT NULL,
        country_code TEXT NOT NULL,
        currency_code TEXT,
        swift_code TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        is_active INTEGER NOT NULL DEFAULT 1,
        is_verified INTEGER NOT NULL DEFAULT 0,
        confidence_threshold REAL NOT NULL DEFAULT 0.6,
        detect_patterns TEXT,
        transaction_patterns TEXT,
        validation_rules TEXT,
        regional_config TEXT,
        column_config TEXT,
        source TEXT,
        usage_count INTEGER NOT NULL DEFAULT 0,
        success_rate REAL,
        last_used_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS bank_profile_templates (
        template_name TEXT PRIMARY KEY,
        description TEXT,
        region TEXT,
        template_patterns TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS bank_aliases (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        bank_profile_id TEXT NOT NULL REFERENCES bank_profiles(id) ON DELETE CASCADE,
        alias_name TEXT NOT NULL,
        alias_type TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (bank_profile_id, alias_name)
    );

    CREATE INDEX IF NOT EXISTS idx_profiles_country ON bank_profiles(country_code);
    CREATE INDEX IF NOT EXISTS idx_profiles_usage ON bank_profiles(usage_count DESC);
    CREATE INDEX IF NOT EXISTS idx_aliases_profile ON bank_aliases(bank_profile_id);
    """

    def __init__(self, db_path: Optional[Path] = None):
        self._db_path = Path(db_path or config.profiles_db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()  # Protects all SQLite operations

    @property
    def db_path(self) -> Path:
        return self._db_path

    # -----------------------------------------------------------------------
    # Connection handling
    # -----------------------------------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        """Open the database on first use (must be called under self._lock)."""
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.executescript(self._SCHEMA)
            self._conn = conn
            logger.info(f"Opened bank profile store at {self._db_path}")
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def _run(self, fn, *args):
        """Run *fn* in a worker thread under the lock, wrapping sqlite errors."""
        def _call():
            with self._lock:
                try:
                    return fn(self._connection(), *args)
                except (sqlite3.Error, OSError) as exc:
                    if self._conn is not None:
                        self._conn.rollback()
                    raise StoreError(f"{fn.__name__} failed: {exc}") from exc
        return await asyncio.to_thread(_call)

    # -----------------------------------------------------------------------
    # Row conversion
    # -----------------------------------------------------------------------

    @staticmethod
    def _to_profile(row: sqlite3.Row) -> Optional[BankProfile]:
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        data["is_verified"] = bool(data["is_verified"])
        try:
            for column in PATTERN_COLUMNS:
                if data[column] is not None:
                    data[column] = json.loads(data[column])
            return BankProfile.model_validate(data)
        except (ValidationError, json.JSONDecodeError) as exc:
            logger.warning(
                f"Skipping bank profile '{data.get('bank_code')}' with invalid pattern blocks: {exc}",
                extra={"bank_code": data.get("bank_code")},
            )
            return None

    def _to_profiles(self, rows: list[sqlite3.Row]) -> list[BankProfile]:
        return [p for p in (self._to_profile(r) for r in rows) if p is not None]

    # -----------------------------------------------------------------------
    # Profiles
    # -----------------------------------------------------------------------

    def _fetch_active(self, conn: sqlite3.Connection, country: Optional[str]) -> list[BankProfile]:
        sql = "SELECT * FROM bank_profiles WHERE is_active = 1 AND is_verified = 1"
        params: list[Any] = []
        if country:
            sql += " AND country_code = ?"
            params.append(country)
        sql += " ORDER BY usage_count DESC"
        return self._to_profiles(conn.execute(sql, params).fetchall())

    async def fetch_active_profiles(self, country: Optional[str] = None) -> list[BankProfile]:
        return await self._run(self._fetch_active, country)

    def _get(self, conn: sqlite3.Connection, bank_code: str) -> Optional[BankProfile]:
        row = conn.execute(
            "SELECT * FROM bank_profiles WHERE bank_code = ?", (bank_code,)
        ).fetchone()
        return self._to_profile(row) if row else None

    async def get_profile(self, bank_code: str) -> Optional[BankProfile]:
        return await self._run(self._get, bank_code)

    def _search(self, conn: sqlite3.Connection, query: str, limit: int) -> list[BankProfile]:
        pattern = f"%{_escape_like(query.lower())}%"
        rows = conn.execute(
            """SELECT * FROM bank_profiles
               WHERE is_active = 1 AND is_verified = 1
                 AND (LOWER(bank_name) LIKE ? ESCAPE '\\'
                      OR LOWER(display_name) LIKE ? ESCAPE '\\'
                      OR id IN (SELECT bank_profile_id FROM bank_aliases
                                WHERE LOWER(alias_name) LIKE ? ESCAPE '\\'))
               ORDER BY usage_count DESC
               LIMIT ?""",
            (pattern, pattern, pattern, limit),
        ).fetchall()
        return self._to_profiles(rows)

    async def search_profiles(self, query: str, limit: int) -> list[BankProfile]:
        return await self._run(self._search, query, limit)

    def _increment(
        self, conn: sqlite3.Connection, profile_id: str, success: bool, transaction_count: int
    ) -> None:
        now = _now()
        # One statement: every column reference on the right sees the old row
        cur = conn.execute(
            """UPDATE bank_profiles
               SET success_rate = (COALESCE(success_rate, 0) * usage_count + ?) / (usage_count + 1),
                   usage_count = usage_count + 1,
                   last_used_at = ?,
                   updated_at = ?
               WHERE id = ?""",
            (1.0 if success else 0.0, now, now, profile_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise ProfileNotFoundError(f"Bank profile not found: {profile_id}")
        logger.debug(
            f"Recorded usage of profile {profile_id} "
            f"(success={success}, transactions={transaction_count})",
            extra={"profile_id": profile_id},
        )

    async def increment_usage(
        self, profile_id: str, success: bool, transaction_count: int
    ) -> None:
        await self._run(self._increment, profile_id, success, transaction_count)

    def _upsert(
        self,
        conn: sqlite3.Connection,
        row: dict[str, Any],
        on_conflict: OnConflict,
        aliases: tuple[tuple[str, Optional[str]], ...],
    ) -> bool:
        now = _now()
        values: dict[str, Any] = {
            "id": row.get("id") or uuid.uuid4().hex,
            "bank_code": row["bank_code"],
            "bank_name": row["bank_name"],
            "display_name": row.get("display_name") or row["bank_name"],
            "country_code": row["country_code"],
            "currency_code": row.get("currency_code"),
            "swift_code": row.get("swift_code"),
            "version": row.get("version", 1),
            "is_active": int(row.get("is_active", True)),
            "is_verified": int(row.get("is_verified", False)),
            "confidence_threshold": row.get("confidence_threshold", 0.60),
            "source": row.get("source"),
            "created_at": now,
            "updated_at": now,
        }
        for column in PATTERN_COLUMNS:
            block = row.get(column)
            values[column] = json.dumps(block) if block is not None else None

        columns = ", ".join(values)
        placeholders = ", ".join(f":{c}" for c in values)
        if on_conflict == "ignore":
            conflict = "DO NOTHING"
        else:
            updates = ", ".join(f"{c} = excluded.{c}" for c in _WRITABLE_COLUMNS if c != "bank_code")
            conflict = f"DO UPDATE SET {updates}, updated_at = excluded.updated_at"

        cur = conn.execute(
            f"INSERT INTO bank_profiles ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT(bank_code) {conflict}",
            values,
        )
        written = cur.rowcount == 1
        if written and aliases:
            profile_id = conn.execute(
                "SELECT id FROM bank_profiles WHERE bank_code = ?", (values["bank_code"],),
            ).fetchone()["id"]
            for alias, alias_type in aliases:
                self._insert_alias(conn, profile_id, alias, alias_type)
        conn.commit()
        return written

    async def upsert_profile(
        self,
        row: dict[str, Any],
        *,
        on_conflict: OnConflict = "update",
        aliases: Sequence[tuple[str, Optional[str]]] = (),
    ) -> bool:
        return await self._run(self._upsert, row, on_conflict, tuple(aliases))

    def _set_active(self, conn: sqlite3.Connection, bank_code: str, is_active: bool) -> bool:
        cur = conn.execute(
            "UPDATE bank_profiles SET is_active = ?, updated_at = ? WHERE bank_code = ?",
            (int(is_active), _now(), bank_code),
        )
        conn.commit()
        return cur.rowcount == 1

    async def set_active(self, bank_code: str, is_active: bool) -> bool:
        return await self._run(self._set_active, bank_code, is_active)

    # -----------------------------------------------------------------------
    # Templates & aliases
    # -----------------------------------------------------------------------

    def _get_template(self, conn: sqlite3.Connection, name: str) -> Optional[BankProfileTemplate]:
        row = conn.execute(
            """SELECT template_name, description, region, template_patterns
               FROM bank_profile_templates WHERE template_name = ?""",
            (name,),
        ).fetchone()
        if row is None:
            return None
        return BankProfileTemplate(
            template_name=row["template_name"],
            description=row["description"],
            region=row["region"],
            template_patterns=json.loads(row["template_patterns"] or "{}"),
        )

    async def get_template(self, template_name: str) -> Optional[BankProfileTemplate]:
        return await self._run(self._get_template, template_name)

    def _upsert_template(self, conn: sqlite3.Connection, template: BankProfileTemplate) -> None:
        now = _now()
        conn.execute(
            """INSERT INTO bank_profile_templates
               (template_name, description, region, template_patterns, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(template_name) DO UPDATE SET
                   description = excluded.description,
                   region = excluded.region,
                   template_patterns = excluded.template_patterns,
                   updated_at = excluded.updated_at""",
            (
                template.template_name,
                template.description,
                template.region,
                json.dumps(template.template_patterns),
                now,
                now,
            ),
        )
        conn.commit()

    async def upsert_template(self, template: BankProfileTemplate) -> None:
        await self._run(self._upsert_template, template)

    @staticmethod
    def _insert_alias(
        conn: sqlite3.Connection, profile_id: str, alias: str, alias_type: Optional[str]
    ) -> None:
        conn.execute(
            """INSERT OR IGNORE INTO bank_aliases
               (bank_profile_id, alias_name, alias_type, created_at)
               VALUES (?, ?, ?, ?)""",
            (profile_id, alias, alias_type, _now()),
        )

    def _add_alias(
        self, conn: sqlite3.Connection, profile_id: str, alias: str, alias_type: Optional[str]
    ) -> None:
        self._insert_alias(conn, profile_id, alias, alias_type)
        conn.commit()

    async def add_alias(
        self, profile_id: str, alias: str, alias_type: Optional[str] = None
    ) -> None:
        await self._run(self._add_alias, profile_id, alias, alias_type)
