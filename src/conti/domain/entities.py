"""Domain model entities for conti.

These are pure data classes representing ledger concepts, independent of
the database schema. Services and the statement parser exchange these; the
database layer maps them to and from its ORM rows.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class AccountType(str, Enum):
    """Kind of account holding a balance."""

    PRIMARY_BANK = "primary-bank"
    CARD_WALLET = "card-wallet"
    OTHER = "other"


class TransactionType(str, Enum):
    """Label derived from the direction of a transaction."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"

    @classmethod
    def from_amount(cls, amount: Decimal) -> "TransactionType":
        return cls.INCOME if amount >= 0 else cls.EXPENSE


class Frequency(str, Enum):
    """Renewal frequency of a subscription."""

    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMIANNUAL = "SEMIANNUAL"
    ANNUAL = "ANNUAL"

    @property
    def months(self) -> int:
        """Number of months between two renewals."""
        return _FREQUENCY_MONTHS[self]


_FREQUENCY_MONTHS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.SEMIANNUAL: 6,
    Frequency.ANNUAL: 12,
}


@dataclass(frozen=True)
class Account:
    """Bank account domain entity."""

    id: str
    user_id: str
    name: str
    type: AccountType
    balance: Decimal
    initial_balance: Decimal
    currency: str
    iban: Optional[str]
    created_at: datetime
    last_updated: datetime


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity."""

    id: str
    user_id: str
    account_id: str
    amount: Decimal
    description: str
    category: str
    notes: Optional[str]
    date: datetime
    created_at: datetime
    type: TransactionType
    is_recurring: bool = False
    subscription_id: Optional[str] = None
    unique_id: Optional[str] = None


@dataclass(frozen=True)
class TransactionDraft:
    """Canonical transaction ready to be persisted (no id assigned yet)."""

    account_id: str
    amount: Decimal
    description: str
    category: str
    date: datetime
    type: TransactionType
    notes: Optional[str] = None
    is_recurring: bool = False
    subscription_id: Optional[str] = None
    unique_id: Optional[str] = None


@dataclass(frozen=True)
class Subscription:
    """Recurring charge domain entity."""

    id: str
    user_id: str
    account_id: str
    name: str
    description: Optional[str]
    amount: Decimal
    frequency: Frequency
    category: str
    start_date: datetime
    next_renewal_date: datetime
    end_date: Optional[datetime]
    is_active: bool
    notes: Optional[str]
    created_at: datetime
    last_updated: datetime

    @property
    def monthly_cost(self) -> Decimal:
        return self.amount / Decimal(self.frequency.months)

    @property
    def annual_cost(self) -> Decimal:
        return self.amount * Decimal(12) / Decimal(self.frequency.months)


@dataclass(frozen=True)
class Profile:
    """User profile document."""

    user_id: str
    email: str
    display_name: Optional[str]
    last_login: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class ParsedTransaction:
    """Transaction candidate read from one statement row."""

    account_id: str
    row_number: int
    date: date
    accounting_date: Optional[date]
    iban: Optional[str]
    type_label: str
    payee: str
    raw_description: str
    description: str
    amount: Decimal
    category: str
    notes: str


@dataclass(frozen=True)
class ParseError:
    """Row-level parse failure; collected, never raised."""

    row_number: int
    message: str

    def __str__(self) -> str:
        if self.row_number <= 0:
            return self.message
        return f"Row {self.row_number}: {self.message}"


@dataclass(frozen=True)
class ParseResult:
    """Outcome of reading one statement file."""

    transactions: tuple[ParsedTransaction, ...] = field(default_factory=tuple)
    errors: tuple[ParseError, ...] = field(default_factory=tuple)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


@dataclass(frozen=True)
class PeriodStats:
    """Income and expense totals for a date range."""

    start: Optional[datetime]
    end: Optional[datetime]
    income: Decimal
    expenses: Decimal
    net: Decimal
    count: int


@dataclass(frozen=True)
class SubscriptionCostLine:
    """Cost figures for one subscription."""

    subscription_id: str
    name: str
    frequency: Frequency
    amount: Decimal
    monthly_cost: Decimal
    annual_cost: Decimal


@dataclass(frozen=True)
class SubscriptionCostSummary:
    """Monthly and annual cost of all active subscriptions."""

    monthly_total: Decimal
    annual_total: Decimal
    active_count: int
    lines: tuple[SubscriptionCostLine, ...]
