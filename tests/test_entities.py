"""Tests for domain entities."""

import pytest
from datetime import datetime
from decimal import Decimal

from conti.domain.entities import (
    Account,
    AccountType,
    Frequency,
    ParseError,
    ParseResult,
    Subscription,
    TransactionType,
)
from conti.domain.errors import ImportAborted


def _subscription(amount="12.00", frequency=Frequency.MONTHLY):
    now = datetime(2025, 1, 1)
    return Subscription(
        id="s1",
        user_id="u1",
        account_id="a1",
        name="Netflix",
        description=None,
        amount=Decimal(amount),
        frequency=frequency,
        category="Abbonamento",
        start_date=now,
        next_renewal_date=now,
        end_date=None,
        is_active=True,
        notes=None,
        created_at=now,
        last_updated=now,
    )


class TestAccount:
    """Tests for Account entity."""

    def test_account_immutability(self):
        """Test that Account entities are immutable."""
        now = datetime(2025, 1, 1)
        account = Account(
            id="a1",
            user_id="u1",
            name="Conto",
            type=AccountType.PRIMARY_BANK,
            balance=Decimal("10.00"),
            initial_balance=Decimal("10.00"),
            currency="EUR",
            iban=None,
            created_at=now,
            last_updated=now,
        )
        with pytest.raises(Exception):  # dataclass frozen raises FrozenInstanceError
            account.balance = Decimal("0")

    def test_account_type_values(self):
        assert AccountType("primary-bank") is AccountType.PRIMARY_BANK
        assert AccountType("card-wallet") is AccountType.CARD_WALLET


class TestTransactionType:
    """Tests for TransactionType."""

    @pytest.mark.parametrize(
        "amount, expected",
        [
            ("10.00", TransactionType.INCOME),
            ("0.00", TransactionType.INCOME),
            ("-0.01", TransactionType.EXPENSE),
        ],
    )
    def test_from_amount(self, amount, expected):
        assert TransactionType.from_amount(Decimal(amount)) == expected


class TestFrequency:
    """Tests for Frequency."""

    @pytest.mark.parametrize(
        "frequency, months",
        [
            (Frequency.MONTHLY, 1),
            (Frequency.QUARTERLY, 3),
            (Frequency.SEMIANNUAL, 6),
            (Frequency.ANNUAL, 12),
        ],
    )
    def test_months(self, frequency, months):
        assert frequency.months == months


class TestSubscription:
    """Tests for Subscription cost figures."""

    def test_costs_of_annual_subscription(self):
        sub = _subscription("120.00", Frequency.ANNUAL)
        assert sub.monthly_cost == Decimal("10")
        assert sub.annual_cost == Decimal("120")

    def test_costs_of_monthly_subscription(self):
        sub = _subscription("12.00")
        assert sub.monthly_cost == Decimal("12")
        assert sub.annual_cost == Decimal("144")


class TestParseResult:
    """Tests for parse outcomes and their errors."""

    def test_row_error_rendering(self):
        assert str(ParseError(7, "Missing amount")) == "Row 7: Missing amount"
        assert str(ParseError(0, "File not found: x.xlsx")) == "File not found: x.xlsx"

    def test_has_errors(self):
        assert not ParseResult().has_errors
        assert ParseResult(errors=(ParseError(2, "bad"),)).has_errors

    def test_import_aborted_lists_rows(self):
        error = ImportAborted("Import aborted", [ParseError(2, "a"), ParseError(5, "b")])

        assert error.args[0] == "Import aborted"
        assert str(error) == "Import aborted\nRow 2: a\nRow 5: b"
        assert len(error.errors) == 2
