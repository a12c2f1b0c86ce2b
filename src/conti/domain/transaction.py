"""Transaction domain service.

Every change to a transaction is mirrored on its account's running balance
through ``adjust_balance``, one atomic read-modify-write per change. Batch
writes are the exception: they leave balances alone and the caller
reconciles afterwards.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from conti.database.base import Database, StoreTransaction
from conti.database.changes import TRANSACTIONS, LiveQuery
from conti.domain.entities import (
    Transaction as TransactionEntity,
    TransactionDraft,
    TransactionType,
)
from conti.domain.errors import (
    NotFoundError,
    ValidationError,
    account_not_found,
    transaction_not_found,
)
from conti.domain.identity import IdentityProvider, require_user
from conti.logging_config import get_logger
from conti.utils.amount_parser import quantize_amount

logger = get_logger(__name__)

DEFAULT_CATEGORY = "Altro"


def to_amount(value: Union[Decimal, int, float, str]) -> Decimal:
    """Coerce a numeric value to a cent-quantized Decimal."""
    try:
        return quantize_amount(Decimal(str(value)))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount '{value}'") from e


def check_sign(amount: Decimal, type: TransactionType) -> None:
    """Ensure the amount's sign agrees with the transaction type.

    Raises:
        ValidationError: If an income is negative or an expense is not
    """
    if type == TransactionType.INCOME and amount < 0:
        raise ValidationError(f"Income amount must not be negative (got {amount})")
    if type == TransactionType.EXPENSE and amount >= 0:
        raise ValidationError(f"Expense amount must be negative (got {amount})")


def build_draft(
    account_id: str,
    amount: Union[Decimal, int, float, str],
    description: str = "",
    category: Optional[str] = None,
    date: Optional[datetime] = None,
    type: Optional[Union[str, TransactionType]] = None,
    notes: Optional[str] = None,
    is_recurring: bool = False,
    subscription_id: Optional[str] = None,
    unique_id: Optional[str] = None,
) -> TransactionDraft:
    """Validate inputs and build a canonical transaction draft."""
    if not account_id:
        raise ValidationError("Transaction must belong to an account")
    value = to_amount(amount)
    if type is None:
        kind = TransactionType.from_amount(value)
    else:
        try:
            kind = TransactionType(type)
        except ValueError as e:
            raise ValidationError(f"Invalid transaction type '{type}'") from e
    check_sign(value, kind)
    return TransactionDraft(
        account_id=account_id,
        amount=value,
        description=(description or "").strip(),
        category=(category or "").strip() or DEFAULT_CATEGORY,
        date=date or datetime.now(),
        type=kind,
        notes=notes,
        is_recurring=is_recurring,
        subscription_id=subscription_id,
        unique_id=unique_id,
    )


class TransactionService:
    """Service for managing transactions."""

    def __init__(self, db: Database, identity: IdentityProvider):
        """Initialize transaction service.

        Args:
            db: Database instance
            identity: Provider of the current user id
        """
        self.db = db
        self.identity = identity

    async def _require_account(self, user_id: str, account_id: str) -> None:
        if await self.db.get_account(user_id, account_id) is None:
            raise NotFoundError(account_not_found(account_id))

    async def add_transaction(
        self,
        account_id: str,
        amount: Union[Decimal, int, float, str],
        description: str = "",
        category: Optional[str] = None,
        date: Optional[datetime] = None,
        type: Optional[Union[str, TransactionType]] = None,
        notes: Optional[str] = None,
        is_recurring: bool = False,
        subscription_id: Optional[str] = None,
        unique_id: Optional[str] = None,
    ) -> str:
        """Create a transaction and apply it to the account balance.

        The insert and the balance adjustment are two separate atomic units.
        If the adjustment fails after the insert has committed, the error is
        raised and ``AccountService.reconcile_balance`` repairs the balance.

        Args:
            account_id: Account ID
            amount: Signed amount (negative for expenses)
            description: Description
            category: Category name, "Altro" when omitted
            date: Event timestamp, now when omitted
            type: Transaction type, derived from the sign when omitted
            notes: Optional notes
            is_recurring: Whether a subscription generated it
            subscription_id: Generating subscription
            unique_id: Optional natural key, unique per account

        Returns:
            Transaction ID

        Raises:
            ValidationError: If the amount disagrees with the type
            NotFoundError: If the account doesn't exist
            ConflictError: If unique_id is already used on the account
        """
        user_id = require_user(self.identity)
        draft = build_draft(
            account_id,
            amount,
            description=description,
            category=category,
            date=date,
            type=type,
            notes=notes,
            is_recurring=is_recurring,
            subscription_id=subscription_id,
            unique_id=unique_id,
        )
        await self._require_account(user_id, account_id)

        transaction_id = await self.db.create_transaction(user_id, draft, now=datetime.now())
        logger.info(
            "transaction_created",
            user_id=user_id,
            account_id=account_id,
            transaction_id=transaction_id,
            amount=str(draft.amount),
        )
        try:
            await self._adjust(user_id, account_id, draft.amount)
        except Exception:
            logger.error(
                "balance_adjustment_failed",
                user_id=user_id,
                account_id=account_id,
                transaction_id=transaction_id,
                amount=str(draft.amount),
            )
            raise
        return transaction_id

    async def get_transaction(self, transaction_id: str) -> Optional[TransactionEntity]:
        """Get transaction by ID.

        Returns:
            Transaction entity or None if not found
        """
        user_id = require_user(self.identity)
        return await self.db.get_transaction(user_id, transaction_id)

    async def delete_transaction(self, transaction_id: str) -> None:
        """Delete a transaction and reverse its effect on the balance.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        user_id = require_user(self.identity)
        deleted = await self.db.delete_transaction(user_id, transaction_id)
        if deleted is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        logger.info(
            "transaction_deleted",
            user_id=user_id,
            account_id=deleted.account_id,
            transaction_id=transaction_id,
        )
        try:
            await self._adjust(user_id, deleted.account_id, -deleted.amount)
        except NotFoundError:
            # The account was deleted without cascade; there is no balance left to fix
            logger.warning(
                "balance_adjustment_skipped",
                user_id=user_id,
                account_id=deleted.account_id,
                transaction_id=transaction_id,
            )

    async def add_transactions_batch(self, drafts: list[TransactionDraft]) -> int:
        """Write several transactions in a single atomic commit.

        Balances are not touched; callers reconcile afterwards.

        Returns:
            Number of transactions written

        Raises:
            ValidationError: If a draft's amount disagrees with its type
            NotFoundError: If a referenced account doesn't exist
            ConflictError: If a unique_id is already used
        """
        user_id = require_user(self.identity)
        for draft in drafts:
            check_sign(draft.amount, draft.type)
        for account_id in sorted({d.account_id for d in drafts}):
            await self._require_account(user_id, account_id)
        count = await self.db.create_transactions_batch(user_id, list(drafts), now=datetime.now())
        logger.info("transaction_batch_written", user_id=user_id, count=count)
        return count

    async def replace_account_transactions(
        self, account_id: str, drafts: list[TransactionDraft]
    ) -> tuple[Decimal, int]:
        """Replace every transaction of an account with ``drafts``, atomically.

        Balances are not touched.

        Returns:
            (sum of the removed amounts, number written)
        """
        user_id = require_user(self.identity)
        for draft in drafts:
            if draft.account_id != account_id:
                raise ValidationError(
                    f"Transaction for account {draft.account_id} cannot replace account {account_id}"
                )
            check_sign(draft.amount, draft.type)
        await self._require_account(user_id, account_id)
        removed_total, count = await self.db.replace_account_transactions(
            user_id, account_id, list(drafts), now=datetime.now()
        )
        logger.warning(
            "account_transactions_replaced",
            user_id=user_id,
            account_id=account_id,
            removed_total=str(removed_total),
            count=count,
        )
        return removed_total, count

    async def existing_unique_ids(self, account_id: str, keys: list[str]) -> set[str]:
        """Return the natural keys from ``keys`` already stored on the account."""
        user_id = require_user(self.identity)
        return await self.db.find_unique_ids(user_id, account_id, list(keys))

    async def adjust_balance(self, account_id: str, delta: Decimal) -> Decimal:
        """Atomically add ``delta`` to the account balance.

        Returns:
            The new balance

        Raises:
            NotFoundError: If the account doesn't exist
            ConflictError: If contention outlasted every retry
        """
        user_id = require_user(self.identity)
        return await self._adjust(user_id, account_id, to_amount(delta))

    async def _adjust(self, user_id: str, account_id: str, delta: Decimal) -> Decimal:
        async def _apply(tx: StoreTransaction) -> Decimal:
            account = await tx.get_account(account_id)
            if account is None:
                raise NotFoundError(account_not_found(account_id))
            balance = quantize_amount(account.balance + delta)
            await tx.update_account(account_id, {"balance": balance, "last_updated": datetime.now()})
            return balance

        balance = await self.db.run_transaction(user_id, _apply)
        logger.debug(
            "balance_adjusted",
            user_id=user_id,
            account_id=account_id,
            delta=str(delta),
            balance=str(balance),
        )
        return balance

    async def list_transactions(
        self,
        account_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        subscription_id: Optional[str] = None,
    ) -> list[TransactionEntity]:
        """List transactions, newest first, optionally by account, date range or subscription."""
        user_id = require_user(self.identity)
        return await self.db.list_transactions(
            user_id, account_id=account_id, start=start, end=end, subscription_id=subscription_id
        )

    async def watch_transactions(
        self, account_id: Optional[str] = None
    ) -> LiveQuery[list[TransactionEntity]]:
        """Watch transactions (all, or one account's), newest first."""
        user_id = require_user(self.identity)
        return await self.db.watch(
            user_id,
            (TRANSACTIONS,),
            lambda: self.db.list_transactions(user_id, account_id=account_id),
        )

    async def watch_transactions_by_date_range(
        self, start: datetime, end: datetime
    ) -> LiveQuery[list[TransactionEntity]]:
        """Watch transactions dated within [start, end], newest first."""
        user_id = require_user(self.identity)
        return await self.db.watch(
            user_id,
            (TRANSACTIONS,),
            lambda: self.db.list_transactions(user_id, start=start, end=end),
        )

    async def get_total_by_category(self, start: datetime, end: datetime) -> dict[str, Decimal]:
        """Sum signed amounts per category for transactions dated within [start, end]."""
        user_id = require_user(self.identity)
        totals: dict[str, Decimal] = {}
        for txn in await self.db.list_transactions(user_id, start=start, end=end):
            category = txn.category or DEFAULT_CATEGORY
            totals[category] = totals.get(category, Decimal("0")) + txn.amount
        return totals
