"""PII masking for exported transaction data.

Masking runs as an ordered pipeline of pure stages:

    emails → phones → account/reference numbers → IDs → names

Each stage is ``(text, aliases) -> (masked_text, detected)``.  The order
matters: name patterns are the loosest, so they run last and never see a
number or address that an earlier stage could have claimed.

Person names are replaced by session-scoped pseudonyms (``[Person_001]``)
held in a ``NameAliasTable``; reset it once per export so numbering starts
over for each document.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, NamedTuple, Optional

from core.anonymizer.patterns import (
    ACCOUNT_PATTERNS,
    BUSINESS_NAME_RE,
    EMAIL_PATTERN,
    ID_PATTERNS,
    NAME_PATTERNS,
    PERSON_ALIAS_MARKER,
    PHONE_PATTERNS,
)
from models.schemas import MaskedResult, MaskingOptions, Transaction

logger = logging.getLogger(__name__)

ACCOUNT_MASK = "****XXXX"
ID_MASK = "****XXXX"


class NameAliasTable:
    """Maps normalised person names to sequential ``Person_NNN`` pseudonyms."""

    def __init__(self) -> None:
        self._aliases: dict[str, str] = {}
        self._counter = 0

    def alias_for(self, name: str) -> str:
        key = name.strip().upper()
        alias = self._aliases.get(key)
        if alias is None:
            self._counter += 1
            alias = f"{PERSON_ALIAS_MARKER}{self._counter:03d}"
            self._aliases[key] = alias
        return alias

    def reset(self) -> None:
        self._aliases.clear()
        self._counter = 0

    def __len__(self) -> int:
        return len(self._aliases)


# ---------------------------------------------------------------------------
# Value maskers
# ---------------------------------------------------------------------------

def mask_email(email: str) -> str:
    """user@domain.com → ***@domain.com"""
    return f"***@{email.split('@', 1)[1]}"


def mask_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 4:
        return "***"
    return f"***-***-{digits[-4:]}"


def mask_account_number(value: str) -> str:
    """Keep the shape of a masked number, never its characters."""
    alnum = re.sub(r"[^A-Za-z0-9]", "", value)
    if len(alnum) <= 4:
        return ACCOUNT_MASK
    return "****" + "X" * len(alnum[-4:])


def _replace_group(match: re.Match, replacement: str) -> str:
    """Swap group 1 (or the whole match if there is none) for *replacement*."""
    whole = match.group(0)
    if match.re.groups and match.group(1):
        start = match.start(1) - match.start(0)
        end = match.end(1) - match.start(0)
        return whole[:start] + replacement + whole[end:]
    return replacement


def _target(match: re.Match) -> str:
    return match.group(1) if match.re.groups and match.group(1) else match.group(0)


def is_likely_business_name(name: str) -> bool:
    return BUSINESS_NAME_RE.search(name) is not None


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def mask_emails(text: str, aliases: NameAliasTable) -> tuple[str, bool]:
    masked, count = EMAIL_PATTERN.subn(lambda m: mask_email(m.group(0)), text)
    return masked, count > 0


def mask_phones(text: str, aliases: NameAliasTable) -> tuple[str, bool]:
    detected = False

    def _sub(match: re.Match) -> str:
        nonlocal detected
        phone = match.group(0)
        if len(re.sub(r"\D", "", phone)) >= 10 and "***" not in phone:
            detected = True
            return mask_phone(phone)
        return phone

    for pattern in PHONE_PATTERNS:
        text = pattern.sub(_sub, text)
    return text, detected


def mask_accounts(text: str, aliases: NameAliasTable) -> tuple[str, bool]:
    detected = False
    for pattern in ACCOUNT_PATTERNS:
        text, count = pattern.subn(
            lambda m: _replace_group(m, mask_account_number(_target(m))), text
        )
        detected = detected or count > 0
    return text, detected


def mask_ids(text: str, aliases: NameAliasTable) -> tuple[str, bool]:
    detected = False
    for pattern in ID_PATTERNS:
        text, count = pattern.subn(lambda m: _replace_group(m, ID_MASK), text)
        detected = detected or count > 0
    return text, detected


def mask_names(text: str, aliases: NameAliasTable) -> tuple[str, bool]:
    detected = False

    def _sub(match: re.Match) -> str:
        nonlocal detected
        name = _target(match)
        if is_likely_business_name(name) or PERSON_ALIAS_MARKER in name:
            return match.group(0)
        detected = True
        return _replace_group(match, f"[{aliases.alias_for(name)}]")

    for pattern in NAME_PATTERNS:
        text = pattern.sub(_sub, text)
    return text, detected


class Stage(NamedTuple):
    pii_type: str
    option: str
    apply: Callable[[str, NameAliasTable], tuple[str, bool]]


# Order is load-bearing, see module docstring.  ``mask_addresses`` has no
# stage: street addresses are not detected in transaction text.
STAGES: tuple[Stage, ...] = (
    Stage("email", "mask_emails", mask_emails),
    Stage("phone", "mask_phones", mask_phones),
    Stage("account", "mask_account_numbers", mask_accounts),
    Stage("id", "mask_ids", mask_ids),
    Stage("name", "mask_names", mask_names),
)


# ---------------------------------------------------------------------------
# Masker
# ---------------------------------------------------------------------------

class PIIMasker:
    """Runs the masking stages with one pseudonym session."""

    def __init__(self, aliases: Optional[NameAliasTable] = None):
        self.aliases = aliases if aliases is not None else NameAliasTable()

    def reset_state(self) -> None:
        """Start a new session: pseudonym numbering restarts at 001."""
        self.aliases.reset()

    def mask(self, text: str, options: Optional[MaskingOptions] = None) -> MaskedResult:
        opts = options or MaskingOptions()
        masked = text
        pii_types: list[str] = []
        for stage in STAGES:
            if not getattr(opts, stage.option):
                continue
            masked, detected = stage.apply(masked, self.aliases)
            if detected:
                pii_types.append(stage.pii_type)
        return MaskedResult(
            original_value=text,
            masked_value=masked,
            pii_detected=bool(pii_types),
            pii_types=pii_types,
        )

    def mask_transactions(
        self,
        transactions: Iterable[Transaction],
        options: Optional[MaskingOptions] = None,
    ) -> list[Transaction]:
        """Reset the session, then mask every transaction's description and account."""
        opts = options or MaskingOptions()
        self.reset_state()

        masked: list[Transaction] = []
        detected = 0
        for txn in transactions:
            update: dict[str, str] = {}
            if txn.description:
                result = self.mask(txn.description, opts)
                update["description"] = result.masked_value
                detected += int(result.pii_detected)
            if txn.account and opts.mask_account_numbers:
                update["account"] = ACCOUNT_MASK
            masked.append(txn.model_copy(update=update))

        logger.info(
            f"Masked {len(masked)} transactions "
            f"({detected} descriptions with PII, {len(self.aliases)} distinct names)"
        )
        return masked


def mask_transaction_data(
    transactions: Iterable[Transaction],
    options: Optional[MaskingOptions] = None,
) -> list[Transaction]:
    """Mask a batch of transactions in a fresh pseudonym session."""
    return PIIMasker().mask_transactions(transactions, options)


def generate_export_filename(original_filename: str, is_masked: bool, fmt: str = "csv") -> str:
    """``statement.pdf`` → ``statement_anonymized.csv`` / ``statement_full.csv``."""
    base = re.sub(r"\.[^/.]+$", "", original_filename)
    suffix = "_anonymized" if is_masked else "_full"
    return f"{base}{suffix}.{fmt}"
