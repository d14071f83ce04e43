"""Bank profile, template and pattern-block schemas.

Pattern blocks are stored as JSON with camelCase keys
(``{"transaction_patterns": {"mergedDebitCredit": true, ...}}``).  Each block
validates on load so a malformed profile is rejected at import time rather
than when a statement is parsed.  Keys we do not model are kept as extras.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _check_regexes(patterns: list[str]) -> list[str]:
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"invalid regex {pattern!r}: {exc}") from exc
    return patterns


class _PatternBlock(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class DetectPatterns(_PatternBlock):
    """Regexes and literals used to recognise a bank's statements."""
    account_patterns: list[str] = []
    unique_identifiers: list[str] = []
    logo_patterns: list[str] = []
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("account_patterns")
    @classmethod
    def _compile(cls, v: list[str]) -> list[str]:
        return _check_regexes(v)


# ---------------------------------------------------------------------------
# Transaction layout (tagged union on mergedDebitCredit)
# ---------------------------------------------------------------------------

class _TransactionPatternsBase(_PatternBlock):
    date_formats: list[str] = []
    date_separator: Optional[str] = None
    year_format: Optional[str] = None
    column_order: Optional[str] = None
    debit_indicators: list[str] = []
    credit_indicators: list[str] = []
    balance_position: Optional[str] = None
    has_reference_column: bool = False
    skip_patterns: list[str] = []
    opening_balance_patterns: list[str] = []
    closing_balance_patterns: list[str] = []
    continuation_patterns: list[str] = []
    multi_line_descriptions: bool = False
    max_description_lines: int = Field(default=1, ge=1)

    @field_validator(
        "skip_patterns",
        "opening_balance_patterns",
        "closing_balance_patterns",
        "continuation_patterns",
    )
    @classmethod
    def _compile(cls, v: list[str]) -> list[str]:
        return _check_regexes(v)


class MergedAmountPatterns(_TransactionPatternsBase):
    """One signed amount column; sign or indicator decides debit vs credit."""
    merged_debit_credit: Literal[True] = True


class SplitColumnPatterns(_TransactionPatternsBase):
    """Separate debit and credit columns."""
    merged_debit_credit: Literal[False] = False


def _transaction_layout(value: Any) -> str:
    if isinstance(value, dict):
        merged = value.get("mergedDebitCredit", value.get("merged_debit_credit", False))
    else:
        merged = getattr(value, "merged_debit_credit", False)
    return "merged" if merged else "split"


TransactionPatterns = Annotated[
    Union[
        Annotated[MergedAmountPatterns, Tag("merged")],
        Annotated[SplitColumnPatterns, Tag("split")],
    ],
    Discriminator(_transaction_layout),
]


# ---------------------------------------------------------------------------
# Validation, regional formatting, columns
# ---------------------------------------------------------------------------

class ValidationRules(_PatternBlock):
    balance_tolerance: float = Field(default=0.01, ge=0.0)
    require_opening_balance: bool = False
    require_closing_balance: bool = False
    validate_running_balance: bool = True
    page_header_patterns: list[str] = []
    page_footer_patterns: list[str] = []

    @field_validator("page_header_patterns", "page_footer_patterns")
    @classmethod
    def _compile(cls, v: list[str]) -> list[str]:
        return _check_regexes(v)


class RegionalConfig(_PatternBlock):
    currency_symbol: Optional[str] = None
    symbol_position: Optional[Literal["prefix", "suffix"]] = None
    negative_format: Optional[str] = None
    decimal_separator: Optional[str] = None
    thousands_separator: Optional[str] = None
    locale: Optional[str] = None
    number_format: Optional[str] = None
    digit_grouping: Optional[str] = None

    @model_validator(mode="after")
    def _separators_differ(self) -> "RegionalConfig":
        if (
            self.decimal_separator is not None
            and self.decimal_separator == self.thousands_separator
        ):
            raise ValueError("decimal and thousands separators must differ")
        return self


class ColumnConfig(_PatternBlock):
    column_order: Optional[str] = None
    custom_order: Optional[list[str]] = None
    merged_debit_credit: Optional[bool] = None
    balance_position: Optional[str] = None
    has_reference_column: bool = False
    column_hints: Optional[dict[str, Any]] = None


class PatternBlocks(BaseModel):
    """The five optional configuration blocks a profile or template carries.

    Block names are accepted in snake_case or camelCase; any other key is an
    error, so a misspelt block fails the import instead of vanishing.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    detect_patterns: Optional[DetectPatterns] = None
    transaction_patterns: Optional[TransactionPatterns] = None
    validation_rules: Optional[ValidationRules] = None
    regional_config: Optional[RegionalConfig] = None
    column_config: Optional[ColumnConfig] = None

    def to_storage(self) -> dict[str, Optional[dict[str, Any]]]:
        """Dump each block back to its camelCase JSON form."""
        return {
            name: (
                block.model_dump(by_alias=True)
                if block is not None else None
            )
            for name, block in (
                ("detect_patterns", self.detect_patterns),
                ("transaction_patterns", self.transaction_patterns),
                ("validation_rules", self.validation_rules),
                ("regional_config", self.regional_config),
                ("column_config", self.column_config),
            )
        }


# ---------------------------------------------------------------------------
# Profiles & templates
# ---------------------------------------------------------------------------

class BankProfile(BaseModel):
    """A named, versioned parsing configuration for one bank's statements."""
    id: str
    bank_code: str
    bank_name: str
    display_name: str
    country_code: str
    currency_code: Optional[str] = None
    swift_code: Optional[str] = None
    version: int = 1
    is_active: bool = True
    is_verified: bool = False
    confidence_threshold: float = Field(default=0.60, ge=0.0, le=1.0)
    detect_patterns: Optional[DetectPatterns] = None
    transaction_patterns: Optional[TransactionPatterns] = None
    validation_rules: Optional[ValidationRules] = None
    regional_config: Optional[RegionalConfig] = None
    column_config: Optional[ColumnConfig] = None
    source: Optional[str] = None
    usage_count: int = 0
    success_rate: Optional[float] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class BankProfileTemplate(BaseModel):
    """Bank-agnostic pattern blocks merged into profiles at import time."""
    template_name: str
    description: Optional[str] = None
    region: Optional[str] = None
    template_patterns: dict[str, Any] = {}


class ImportResult(BaseModel):
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = []
