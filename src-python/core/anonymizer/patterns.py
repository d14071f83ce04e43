"""Declarative regex patterns for transaction-text PII masking.

Pattern data only; the replace logic lives in ``masker.py``.  Where a
pattern has a capture group, only the group is masked and the label in
front of it is kept.
"""

from __future__ import annotations

import re

_NOFLAGS = 0
_IC = re.IGNORECASE


# ═══════════════════════════════════════════════════════════════════════════
# Email
# ═══════════════════════════════════════════════════════════════════════════

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


# ═══════════════════════════════════════════════════════════════════════════
# Phone (international); candidates need >= 10 digits to be masked
# ═══════════════════════════════════════════════════════════════════════════

PHONE_PATTERNS: list[re.Pattern] = [
    re.compile(r"\+?\d{1,3}[-.\s]?\(?\d{2,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{3,4}"),
    re.compile(r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    re.compile(r"\b\d{10,12}\b"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Account / card / reference numbers
# ═══════════════════════════════════════════════════════════════════════════

# Alphanumeric tails must contain at least one digit, so words such as
# "REFUND" or "ORDERING" are never taken for a reference number.
ACCOUNT_PATTERNS: list[re.Pattern] = [
    # ACC 12345678, ACCOUNT #12345678, A/C-12345678
    re.compile(r"\b(?:ACCOUNT|ACC|A/C)[-.\s#]*(\d{4,})", _IC),
    # CARD ENDING 4521, CC NO. 4521
    re.compile(r"\b(?:CARD|CC)[-.\s]+(?:ENDING|END|NO\.?)?[-.\s#]*(\d{4,})", _IC),
    # REF AB12CD34, TXN#9988776655
    re.compile(r"\b(?:REFERENCE|REF|TRANSACTION|TXN)[-.\s#]*((?=[A-Z0-9]*\d)[A-Z0-9]{6,})", _IC),
    # ORDER 112-3345566
    re.compile(r"\b(?:ORDER|ORD)[-.\s#]*((?=[A-Z0-9-]*\d)[A-Z0-9-]{6,})", _IC),
    # Already partially masked: ****4521
    re.compile(r"\*{2,}\d{2,}"),
]


# ═══════════════════════════════════════════════════════════════════════════
# National / tax / passport-like identifiers
# ═══════════════════════════════════════════════════════════════════════════

ID_PATTERNS: list[re.Pattern] = [
    re.compile(r"\b(?:AADHAAR|SSN|NIN|PAN|ID)[-.\s#:]*((?=[A-Z0-9]*\d)[A-Z0-9]{4,})", _IC),
    re.compile(r"\b[A-Z]{2,3}\d{6,}"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Person names
# ═══════════════════════════════════════════════════════════════════════════

# Markers and honorifics match in any case; the name itself must be
# capitalised.
NAME_PATTERNS: list[re.Pattern] = [
    # FROM / TO / FOR / BY / ATTN followed by two or more capitalised words
    re.compile(r"\b(?i:from|to|for|by|attn:?)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)"),
    # JOHN SMITH
    re.compile(r"\b([A-Z]{2,}(?:\s+[A-Z]{2,})+)\b"),
    # Mr. Smith, DR John Smith
    re.compile(r"\b(?i:mrs|mr|ms|dr)\.?\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Business names: merchants stay legible for reconciliation
# ═══════════════════════════════════════════════════════════════════════════

BUSINESS_KEYWORDS: list[str] = [
    "CORP", "CORPORATION", "INC", "LLC", "LTD", "LIMITED", "CO", "COMPANY",
    "BANK", "STORE", "SHOP", "MARKET", "AMAZON", "WALMART", "TARGET",
    "STARBUCKS", "UBER", "LYFT", "NETFLIX", "SPOTIFY", "APPLE", "GOOGLE",
    "MICROSOFT", "PAYPAL", "VENMO", "ZELLE", "SQUARE", "STRIPE",
    "RESTAURANT", "CAFE", "HOTEL", "AIRLINES", "AIRWAYS",
    "INSURANCE", "ELECTRIC", "WATER", "GAS", "UTILITY", "UTILITIES",
    "ACME", "PURCHASE", "PAYMENT", "TRANSFER", "DEPOSIT", "WITHDRAWAL",
    "REFUND", "FEE", "CHARGE", "SERVICE", "SUBSCRIPTION",
]

# Short tokens that occur inside ordinary surnames ("COLLINS", "VINCENT")
# only count as whole words; every other keyword matches anywhere, so run-on
# descriptors such as "AMAZONPRIME" or "PAYPALTRANSFER" stay legible.
WHOLE_WORD_KEYWORDS = frozenset({"CO", "INC", "GAS", "FEE"})

BUSINESS_NAME_RE = re.compile(
    r"\b(?:" + "|".join(sorted(WHOLE_WORD_KEYWORDS, key=len, reverse=True)) + r")S?\b"
    + r"|(?:" + "|".join(
        sorted((k for k in BUSINESS_KEYWORDS if k not in WHOLE_WORD_KEYWORDS), key=len, reverse=True)
    ) + r")",
    _IC,
)

PERSON_ALIAS_MARKER = "Person_"
