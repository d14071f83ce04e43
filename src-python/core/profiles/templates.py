"""Built-in regional profile templates.

Each template holds the five pattern blocks (camelCase keys inside) that a
bank profile inherits when it is imported with ``template_name`` set.
"""

from __future__ import annotations

import logging

from core.profiles.store import ProfileStore
from models.profiles import BankProfileTemplate, PatternBlocks

logger = logging.getLogger(__name__)


def _validation(tolerance: float) -> dict:
    return {
        "balanceTolerance": tolerance,
        "requireOpeningBalance": False,
        "requireClosingBalance": False,
        "validateRunningBalance": True,
    }


BUILTIN_TEMPLATES: list[BankProfileTemplate] = [
    BankProfileTemplate(
        template_name="us_checking",
        description="Standard US checking account statement format",
        region="americas",
        template_patterns={
            "detect_patterns": {
                "accountPatterns": [r"\b\d{9,17}\b"],
                "routingNumberPattern": r"\b\d{9}\b",
                "uniqueIdentifiers": ["Routing Number", "ABA"],
                "confidenceThreshold": 0.65,
            },
            "transaction_patterns": {
                "dateFormats": ["MM/DD/YYYY", "MM-DD-YYYY", "MMM DD, YYYY"],
                "dateSeparator": "/",
                "yearFormat": "4-digit",
                "columnOrder": "date-desc-amount-balance",
                "mergedDebitCredit": True,
                "debitIndicators": ["-", "DR", "Debit"],
                "creditIndicators": ["+", "CR", "Credit"],
                "balancePosition": "right",
                "skipPatterns": [
                    r"^account\s+number", r"^routing\s+number",
                    r"^statement\s+period", r"^page\s+\d+",
                ],
                "openingBalancePatterns": [r"^beginning\s+balance", r"^previous\s+balance"],
                "closingBalancePatterns": [r"^ending\s+balance", r"^current\s+balance"],
                "multiLineDescriptions": True,
                "maxDescriptionLines": 2,
            },
            "validation_rules": _validation(0.01),
            "regional_config": {
                "currencySymbol": "$",
                "symbolPosition": "prefix",
                "negativeFormat": "minus",
                "decimalSeparator": ".",
                "thousandsSeparator": ",",
                "locale": "en-US",
            },
        },
    ),
    BankProfileTemplate(
        template_name="european_standard",
        description="Standard European bank statement format with IBAN detection",
        region="europe",
        template_patterns={
            "detect_patterns": {
                "accountPatterns": [r"\b[A-Z]{2}\d{2}[A-Z0-9]{4}\d{7}([A-Z0-9]?){0,16}\b"],
                "ibanPattern": r"\b[A-Z]{2}\d{2}\s?[A-Z0-9]{4}\s?\d{4}\s?\d{4}\s?\d{4}\s?\d{0,4}\b",
                "uniqueIdentifiers": ["IBAN", "BIC", "SWIFT"],
                "confidenceThreshold": 0.65,
            },
            "transaction_patterns": {
                "dateFormats": ["DD/MM/YYYY", "DD.MM.YYYY", "DD-MM-YYYY"],
                "dateSeparator": ".",
                "yearFormat": "4-digit",
                "columnOrder": "date-desc-debit-credit-balance",
                "mergedDebitCredit": False,
                "debitIndicators": ["-", "D", "Soll"],
                "creditIndicators": ["+", "C", "Haben"],
                "balancePosition": "right",
                "skipPatterns": [
                    r"^kontonummer", r"^IBAN", r"^BIC", r"^seite\s+\d+", r"^page\s+\d+",
                ],
                "openingBalancePatterns": [
                    r"^alter\s+saldo", r"^opening\s+balance", r"^solde\s+initial",
                ],
                "closingBalancePatterns": [
                    r"^neuer\s+saldo", r"^closing\s+balance", r"^solde\s+final",
                ],
                "multiLineDescriptions": True,
                "maxDescriptionLines": 3,
            },
            "validation_rules": _validation(0.01),
            "regional_config": {
                "currencySymbol": "€",
                "symbolPosition": "suffix",
                "negativeFormat": "minus",
                "decimalSeparator": ",",
                "thousandsSeparator": ".",
                "locale": "en-GB",
            },
        },
    ),
    BankProfileTemplate(
        template_name="indian_standard",
        description="Standard Indian bank statement format with IFSC and Lakh/Crore formatting",
        region="asia",
        template_patterns={
            "detect_patterns": {
                "accountPatterns": [r"\b\d{9,18}\b"],
                "ifscPattern": r"[A-Z]{4}0[A-Z0-9]{6}",
                "uniqueIdentifiers": ["IFSC", "MICR", "CIF"],
                "confidenceThreshold": 0.65,
            },
            "transaction_patterns": {
                "dateFormats": ["DD/MM/YYYY", "DD-MM-YYYY", "DD MMM YYYY"],
                "dateSeparator": "/",
                "yearFormat": "4-digit",
                "columnOrder": "date-desc-debit-credit-balance",
                "mergedDebitCredit": False,
                "debitIndicators": ["Dr", "Debit", "DR", "-"],
                "creditIndicators": ["Cr", "Credit", "CR", "+"],
                "balancePosition": "right",
                "hasReferenceColumn": True,
                "skipPatterns": [
                    r"^account\s+number", r"^IFSC", r"^branch",
                    r"^statement\s+of", r"^page\s+\d+",
                ],
                "openingBalancePatterns": [
                    r"^opening\s+balance", r"^balance\s+b/f", r"^brought\s+forward",
                ],
                "closingBalancePatterns": [
                    r"^closing\s+balance", r"^balance\s+c/f", r"^carried\s+forward",
                ],
                "multiLineDescriptions": True,
                "maxDescriptionLines": 4,
                "continuationPatterns": [
                    r"^UTR", r"^IMPS", r"^NEFT", r"^RTGS", r"^UPI", r"^\d{12,}",
                ],
            },
            "validation_rules": _validation(0.50),
            "regional_config": {
                "currencySymbol": "₹",
                "symbolPosition": "prefix",
                "negativeFormat": "suffix-dr",
                "decimalSeparator": ".",
                "thousandsSeparator": ",",
                "numberFormat": "1,23,456.78",
                "digitGrouping": "lakh-crore",
                "locale": "en-IN",
            },
        },
    ),
    BankProfileTemplate(
        template_name="uk_standard",
        description="Standard UK bank statement format with sort code detection",
        region="europe",
        template_patterns={
            "detect_patterns": {
                "accountPatterns": [r"\b\d{8}\b"],
                "sortCodePattern": r"\b\d{2}-\d{2}-\d{2}\b",
                "uniqueIdentifiers": ["Sort Code", "Account Number"],
                "confidenceThreshold": 0.65,
            },
            "transaction_patterns": {
                "dateFormats": ["DD/MM/YYYY", "DD MMM YYYY", "DD-MM-YYYY"],
                "dateSeparator": "/",
                "yearFormat": "4-digit",
                "columnOrder": "date-desc-debit-credit-balance",
                "mergedDebitCredit": False,
                "debitIndicators": ["OUT", "DR", "-", "D"],
                "creditIndicators": ["IN", "CR", "+", "C"],
                "balancePosition": "right",
                "skipPatterns": [
                    r"^account\s+number", r"^sort\s+code",
                    r"^statement\s+date", r"^page\s+\d+",
                ],
                "openingBalancePatterns": [
                    r"^opening\s+balance", r"^balance\s+brought\s+forward",
                ],
                "closingBalancePatterns": [
                    r"^closing\s+balance", r"^balance\s+carried\s+forward",
                ],
                "multiLineDescriptions": True,
                "maxDescriptionLines": 2,
            },
            "validation_rules": _validation(0.01),
            "regional_config": {
                "currencySymbol": "£",
                "symbolPosition": "prefix",
                "negativeFormat": "minus",
                "decimalSeparator": ".",
                "thousandsSeparator": ",",
                "locale": "en-GB",
            },
        },
    ),
    BankProfileTemplate(
        template_name="asian_standard",
        description="Standard Asian bank statement format for SEA and East Asia",
        region="asia",
        template_patterns={
            "detect_patterns": {
                "accountPatterns": [r"\b\d{10,16}\b"],
                "uniqueIdentifiers": ["SWIFT", "Branch Code"],
                "confidenceThreshold": 0.60,
            },
            "transaction_patterns": {
                "dateFormats": ["DD/MM/YYYY", "DD MMM YYYY", "YYYY/MM/DD", "DD-MM-YYYY"],
                "dateSeparator": "/",
                "yearFormat": "4-digit",
                "columnOrder": "date-desc-withdrawal-deposit-balance",
                "mergedDebitCredit": False,
                "debitIndicators": ["-", "DR", "Withdrawal"],
                "creditIndicators": ["+", "CR", "Deposit"],
                "balancePosition": "right",
                "hasReferenceColumn": True,
                "skipPatterns": [
                    r"^account\s+number", r"^statement\s+date", r"^page\s+\d+", r"^branch",
                ],
                "openingBalancePatterns": [
                    r"^opening\s+balance", r"^balance\s+b/f", r"^brought\s+forward",
                ],
                "closingBalancePatterns": [
                    r"^closing\s+balance", r"^balance\s+c/f", r"^carried\s+forward",
                ],
                "multiLineDescriptions": True,
                "maxDescriptionLines": 2,
            },
            "validation_rules": _validation(0.01),
            "regional_config": {
                "currencySymbol": None,
                "symbolPosition": "prefix",
                "negativeFormat": "minus",
                "decimalSeparator": ".",
                "thousandsSeparator": ",",
                "locale": "en-GB",
            },
        },
    ),
]


async def seed_templates(store: ProfileStore) -> int:
    """Write the built-in templates to *store*, replacing older copies."""
    for template in BUILTIN_TEMPLATES:
        PatternBlocks.model_validate(template.template_patterns)
        await store.upsert_template(template)
    logger.info(f"Seeded {len(BUILTIN_TEMPLATES)} bank profile templates")
    return len(BUILTIN_TEMPLATES)
