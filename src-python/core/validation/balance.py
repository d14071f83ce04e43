"""Balance arithmetic over extracted transactions.

The invariant checked everywhere is

    previous_balance + credit - debit == balance

within a currency-dependent absolute tolerance.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Literal, Optional, Union

from pydantic import BaseModel

from models.schemas import Transaction

logger = logging.getLogger(__name__)

# No-decimal currencies round to whole units; INR statements sometimes
# round to the rupee.
CURRENCY_TOLERANCES: dict[str, float] = {
    "JPY": 1.0, "KRW": 1.0, "IDR": 1.0, "VND": 1.0,
    "USD": 0.01, "EUR": 0.01, "GBP": 0.01, "AUD": 0.01, "CAD": 0.01,
    "NZD": 0.01, "CHF": 0.01, "SGD": 0.01, "HKD": 0.01,
    "INR": 0.50,
    "AED": 0.01, "SAR": 0.01, "QAR": 0.01,
}
DEFAULT_TOLERANCE = 0.05

_AMOUNT_JUNK_RE = re.compile(r"[^\d.,\-]")
_COMMA_DECIMAL_RE = re.compile(r",\d{1,2}$")


def get_tolerance_for_currency(currency: Optional[str] = None) -> float:
    if not currency:
        return DEFAULT_TOLERANCE
    return CURRENCY_TOLERANCES.get(currency.upper(), DEFAULT_TOLERANCE)


def _infer_decimal_separator(text: str) -> str:
    """The rightmost of "." and "," when both appear; a lone comma counts
    as decimal only when one or two digits follow it ("12,5", "1 234,56")."""
    dot, comma = text.rfind("."), text.rfind(",")
    if dot >= 0 and comma >= 0:
        return "," if comma > dot else "."
    if comma >= 0 and text.count(",") == 1 and _COMMA_DECIMAL_RE.search(text):
        return ","
    return "."


def parse_amount(
    value: Union[str, float, int, None],
    decimal_separator: Optional[str] = None,
) -> Optional[float]:
    """Parse a display amount ("1,234.56", "1.234,56", "(12.00)", "-5", "$ 3.10").

    *decimal_separator* comes from the bank profile's ``RegionalConfig``;
    when it is None the separator is inferred from the text.  Returns None
    for blanks and anything that is not a number.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    if not text:
        return None
    negative = text.startswith("(") and text.endswith(")")
    cleaned = _AMOUNT_JUNK_RE.sub("", text)
    separator = decimal_separator or _infer_decimal_separator(cleaned)
    if separator == ",":
        cleaned = cleaned.replace(".", "").replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    if cleaned in ("", "-", ".", "-."):
        return None
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    return -abs(amount) if negative else amount


class BalanceCheck(BaseModel):
    is_valid: bool
    status: Literal["valid", "warning", "error"]
    message: str
    expected_balance: float
    actual_balance: float
    discrepancy: float


def validate_balance_equation(
    previous_balance: float,
    credit: Optional[float],
    debit: Optional[float],
    current_balance: float,
    currency: Optional[str] = None,
) -> BalanceCheck:
    """Check one step of the running balance.

    A mismatch that would balance with debit and credit swapped is reported
    as a warning rather than an error.
    """
    tolerance = get_tolerance_for_currency(currency)
    credit_amount = credit or 0.0
    debit_amount = debit or 0.0

    expected = previous_balance + credit_amount - debit_amount
    discrepancy = round(abs(current_balance - expected), 6)

    if discrepancy <= tolerance:
        return BalanceCheck(
            is_valid=True,
            status="valid",
            message="Balance verified",
            expected_balance=expected,
            actual_balance=current_balance,
            discrepancy=0.0,
        )

    swapped = previous_balance - credit_amount + debit_amount
    if round(abs(current_balance - swapped), 6) <= tolerance:
        logger.debug(
            f"Possible debit/credit swap: previous={previous_balance} credit={credit_amount} "
            f"debit={debit_amount} actual={current_balance}"
        )
        return BalanceCheck(
            is_valid=False,
            status="warning",
            message="Possible debit/credit swap detected",
            expected_balance=expected,
            actual_balance=current_balance,
            discrepancy=discrepancy,
        )

    return BalanceCheck(
        is_valid=False,
        status="error",
        message=(
            f"Balance mismatch: expected {expected:,.2f}, got {current_balance:,.2f} "
            f"(difference: {discrepancy:,.2f})"
        ),
        expected_balance=expected,
        actual_balance=current_balance,
        discrepancy=discrepancy,
    )


def check_statement_balance(
    opening_balance: Optional[float],
    closing_balance: Optional[float],
    transactions: Iterable[Transaction],
    currency: Optional[str] = None,
    decimal_separator: Optional[str] = None,
) -> Optional[BalanceCheck]:
    """closing ≈ opening + Σcredits − Σdebits; None unless both balances are known."""
    if opening_balance is None or closing_balance is None:
        return None
    credits = debits = 0.0
    for txn in transactions:
        credits += parse_amount(txn.credit, decimal_separator) or 0.0
        debits += parse_amount(txn.debit, decimal_separator) or 0.0
    return validate_balance_equation(
        opening_balance, credits, debits, closing_balance, currency,
    )


def validate_running_balance(
    opening_balance: float,
    transactions: Iterable[Transaction],
    currency: Optional[str] = None,
    decimal_separator: Optional[str] = None,
) -> list[BalanceCheck]:
    """One check per transaction that shows a balance.

    Rows without a balance carry their amounts forward into the next check.
    """
    checks: list[BalanceCheck] = []
    previous = opening_balance
    pending_credit = pending_debit = 0.0
    for txn in transactions:
        pending_credit += parse_amount(txn.credit, decimal_separator) or 0.0
        pending_debit += parse_amount(txn.debit, decimal_separator) or 0.0
        balance = parse_amount(txn.balance, decimal_separator)
        if balance is None:
            continue
        checks.append(validate_balance_equation(
            previous, pending_credit, pending_debit, balance, currency,
        ))
        previous = balance
        pending_credit = pending_debit = 0.0

    failures = sum(1 for c in checks if not c.is_valid)
    if failures:
        logger.info(f"Running balance: {failures}/{len(checks)} rows failed")
    return checks
