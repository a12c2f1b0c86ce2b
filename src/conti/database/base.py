"""Abstract database interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar

# Import entities directly to avoid circular import through domain/__init__.py
from conti.domain.entities import (
    Account,
    Profile,
    Subscription,
    Transaction,
    TransactionDraft,
)
from conti.database.changes import LiveQuery

T = TypeVar("T")


class StoreTransaction(ABC):
    """Read-modify-write view of the store inside one atomic unit.

    Writes made through it commit together when the operation returns, or not
    at all.
    """

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Read an account as part of the unit."""
        pass

    @abstractmethod
    async def update_account(self, account_id: str, changes: dict[str, Any]) -> None:
        """Stage a partial update of an account read in this unit."""
        pass

    @abstractmethod
    async def sum_transactions(self, account_id: str) -> Decimal:
        """Sum the amounts of every transaction on an account."""
        pass

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        """Read a subscription as part of the unit."""
        pass

    @abstractmethod
    async def update_subscription(self, subscription_id: str, changes: dict[str, Any]) -> None:
        """Stage a partial update of a subscription read in this unit."""
        pass


class Database(ABC):
    """Abstract database interface for conti.

    Every method is scoped by ``user_id``; a document belonging to another
    user is treated as absent.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    async def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Account operations
    @abstractmethod
    async def create_account(
        self,
        user_id: str,
        name: str,
        type: str,
        initial_balance: Decimal,
        currency: str,
        iban: Optional[str],
        now: datetime,
    ) -> str:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    async def list_accounts(self, user_id: str) -> list[Account]:
        """List all accounts, ordered by name."""
        pass

    @abstractmethod
    async def update_account(self, user_id: str, account_id: str, changes: dict[str, Any]) -> None:
        """Merge ``changes`` into an account. Raises NotFoundError if missing."""
        pass

    @abstractmethod
    async def delete_account(self, user_id: str, account_id: str, cascade: bool = False) -> bool:
        """Delete an account, and with ``cascade`` its transactions and subscriptions.

        Returns True when an account was deleted.
        """
        pass

    # Transaction operations
    @abstractmethod
    async def create_transaction(self, user_id: str, draft: TransactionDraft, now: datetime) -> str:
        """Create a single transaction. Returns transaction ID."""
        pass

    @abstractmethod
    async def get_transaction(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        """Delete a transaction. Returns the deleted transaction, or None if absent."""
        pass

    @abstractmethod
    async def create_transactions_batch(
        self, user_id: str, drafts: list[TransactionDraft], now: datetime
    ) -> int:
        """Write several transactions in one atomic commit. Returns count written."""
        pass

    @abstractmethod
    async def replace_account_transactions(
        self, user_id: str, account_id: str, drafts: list[TransactionDraft], now: datetime
    ) -> tuple[Decimal, int]:
        """Atomically delete every transaction of an account and write ``drafts``.

        Returns (sum of removed amounts, count written).
        """
        pass

    @abstractmethod
    async def find_unique_ids(self, user_id: str, account_id: str, keys: list[str]) -> set[str]:
        """Return the subset of ``keys`` already used as unique_id on the account."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        account_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        subscription_id: Optional[str] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters, newest first."""
        pass

    # Subscription operations
    @abstractmethod
    async def create_subscription(self, user_id: str, fields: dict[str, Any], now: datetime) -> str:
        """Create a subscription. Returns subscription ID."""
        pass

    @abstractmethod
    async def get_subscription(self, user_id: str, subscription_id: str) -> Optional[Subscription]:
        """Get subscription by ID."""
        pass

    @abstractmethod
    async def list_subscriptions(self, user_id: str, active_only: bool = True) -> list[Subscription]:
        """List subscriptions sorted by lower-cased name."""
        pass

    @abstractmethod
    async def update_subscription(
        self, user_id: str, subscription_id: str, changes: dict[str, Any]
    ) -> None:
        """Merge ``changes`` into a subscription. Raises NotFoundError if missing."""
        pass

    @abstractmethod
    async def delete_subscription(self, user_id: str, subscription_id: str) -> bool:
        """Hard-delete a subscription. Returns True when one was deleted."""
        pass

    # Profile operations
    @abstractmethod
    async def upsert_profile(self, user_id: str, changes: dict[str, Any], now: datetime) -> None:
        """Create or merge the user's profile document."""
        pass

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Get the user's profile."""
        pass

    # Atomic and realtime primitives
    @abstractmethod
    async def run_transaction(
        self, user_id: str, operation: Callable[[StoreTransaction], Awaitable[T]]
    ) -> T:
        """Run ``operation`` as one atomic read-modify-write unit.

        The unit is retried when a concurrent writer commits first; domain
        errors raised by ``operation`` abort it without retry.
        """
        pass

    @abstractmethod
    async def watch(
        self,
        user_id: str,
        collections: tuple[str, ...],
        fetch: Callable[[], Awaitable[T]],
    ) -> LiveQuery[T]:
        """Register a live query re-run after each change to ``collections``."""
        pass

    @abstractmethod
    async def follow_external_commits(self, user_id: str, interval: float = 1.0) -> None:
        """Refresh ``user_id``'s live queries after commits made by other processes.

        Runs until cancelled.
        """
        pass
