"""Tests for statement balance arithmetic."""

from __future__ import annotations

import pytest

from core.validation.balance import (
    DEFAULT_TOLERANCE,
    check_statement_balance,
    get_tolerance_for_currency,
    parse_amount,
    validate_balance_equation,
    validate_running_balance,
)
from models.schemas import Transaction


@pytest.mark.parametrize("value, expected", [
    ("1,234.56", 1234.56),
    ("(12.00)", -12.0),
    ("-5", -5.0),
    ("$ 3.10", 3.10),
    (42, 42.0),
    ("", None),
    (None, None),
    ("n/a", None),
    ("1.2.3", None),
    ("1.234,56", 1234.56),
    ("1 234,56", 1234.56),
    ("12,5", 12.5),
    ("1,234", 1234.0),
    ("-1.000.000,00", -1000000.0),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


def test_parse_amount_with_regional_separator():
    assert parse_amount("1.234", decimal_separator=",") == 1234.0
    assert parse_amount("1,5", decimal_separator=",") == 1.5
    assert parse_amount("1,234", decimal_separator=".") == 1234.0


def test_tolerances():
    assert get_tolerance_for_currency("usd") == 0.01
    assert get_tolerance_for_currency("JPY") == 1.0
    assert get_tolerance_for_currency("INR") == 0.50
    assert get_tolerance_for_currency("XYZ") == DEFAULT_TOLERANCE
    assert get_tolerance_for_currency(None) == DEFAULT_TOLERANCE


class TestBalanceEquation:
    def test_valid_within_tolerance(self):
        check = validate_balance_equation(100.0, 50.0, 20.0, 130.005, "USD")
        assert check.is_valid is True
        assert check.status == "valid"
        assert check.discrepancy == 0.0

    def test_swapped_amounts_warn(self):
        check = validate_balance_equation(100.0, 50.0, None, 50.0, "USD")
        assert check.is_valid is False
        assert check.status == "warning"
        assert check.discrepancy == pytest.approx(100.0)

    def test_mismatch_is_an_error(self):
        check = validate_balance_equation(100.0, None, 20.0, 75.0, "USD")
        assert check.status == "error"
        assert check.expected_balance == pytest.approx(80.0)
        assert check.discrepancy == pytest.approx(5.0)
        assert "expected 80.00, got 75.00" in check.message

    def test_currency_tolerance_applies(self):
        assert validate_balance_equation(1000, 0, 250, 751, "JPY").is_valid
        assert not validate_balance_equation(1000, 0, 250, 751, "USD").is_valid


class TestStatementBalance:
    TXNS = [
        Transaction(description="Salary", credit="2,400.00"),
        Transaction(description="Rent", debit="1,150.00"),
        Transaction(description="Groceries", debit="84.35"),
        Transaction(description="Note", debit="", credit=""),
    ]

    def test_closing_equals_opening_plus_credits_minus_debits(self):
        check = check_statement_balance(500.0, 1665.65, self.TXNS, "GBP")
        assert check.status == "valid"

    def test_needs_both_balances(self):
        assert check_statement_balance(None, 100.0, self.TXNS) is None
        assert check_statement_balance(100.0, None, self.TXNS) is None


class TestRunningBalance:
    def test_rows_without_balance_carry_forward(self):
        txns = [
            Transaction(debit="10.00"),
            Transaction(debit="15.00", balance="75.00"),
            Transaction(credit="100.00", balance="175.00"),
            Transaction(debit="5.00", balance="160.00"),
        ]
        checks = validate_running_balance(100.0, txns, "USD")
        assert [c.status for c in checks] == ["valid", "valid", "error"]
        assert checks[2].expected_balance == pytest.approx(170.0)

    def test_comma_decimal_amounts(self):
        txns = [
            Transaction(credit="1.250,00", balance="2.250,00"),
            Transaction(debit="250,50", balance="1.999,50"),
        ]
        checks = validate_running_balance(1000.0, txns, "EUR", decimal_separator=",")
        assert [c.status for c in checks] == ["valid", "valid"]
        assert checks[1].expected_balance == pytest.approx(1999.5)

    def test_no_balances(self):
        assert validate_running_balance(0.0, [Transaction(debit="1.00")]) == []
