"""Account domain service."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from conti.database.base import Database, StoreTransaction
from conti.database.changes import ACCOUNTS, LiveQuery
from conti.domain.entities import Account as AccountEntity, AccountType
from conti.domain.errors import NotFoundError, ValidationError, account_not_found
from conti.domain.identity import IdentityProvider, require_user
from conti.logging_config import get_logger
from conti.utils.amount_parser import quantize_amount
from conti.utils.iban import is_valid_iban, normalize_iban

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("name", "type", "currency", "iban")


def _account_type(value: Union[str, AccountType]) -> AccountType:
    try:
        return AccountType(value)
    except ValueError as e:
        choices = ", ".join(t.value for t in AccountType)
        raise ValidationError(f"Invalid account type '{value}' (expected one of: {choices})") from e


def _clean_iban(iban: Optional[str]) -> Optional[str]:
    if iban is None or not iban.strip():
        return None
    if not is_valid_iban(iban):
        raise ValidationError(f"Invalid IBAN '{iban}'")
    return normalize_iban(iban)


def _clean_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"Invalid currency code '{currency}'")
    return code


def _clean_name(name: str) -> str:
    if name is None or not name.strip():
        raise ValidationError("Account name cannot be empty")
    return name.strip()


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database, identity: IdentityProvider):
        """Initialize account service.

        Args:
            db: Database instance
            identity: Provider of the current user id
        """
        self.db = db
        self.identity = identity

    async def create_account(
        self,
        name: str,
        type: Union[str, AccountType] = AccountType.OTHER,
        initial_balance: Decimal = Decimal("0"),
        currency: str = "EUR",
        iban: Optional[str] = None,
    ) -> str:
        """Create a new account.

        Args:
            name: Account name
            type: Account type
            initial_balance: Opening balance; the running balance starts here
            currency: ISO currency code
            iban: Optional IBAN, validated and normalized

        Returns:
            Account ID

        Raises:
            AuthenticationRequired: If no user is signed in
            ValidationError: If name, type, currency or IBAN are invalid
        """
        user_id = require_user(self.identity)
        try:
            opening = quantize_amount(Decimal(str(initial_balance)))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid initial balance '{initial_balance}'") from e

        account_id = await self.db.create_account(
            user_id,
            name=_clean_name(name),
            type=_account_type(type).value,
            initial_balance=opening,
            currency=_clean_currency(currency),
            iban=_clean_iban(iban),
            now=datetime.now(),
        )
        logger.info("account_created", user_id=user_id, account_id=account_id)
        return account_id

    async def get_account(self, account_id: str) -> Optional[AccountEntity]:
        """Get account by ID.

        Returns:
            Account entity or None if not found
        """
        user_id = require_user(self.identity)
        return await self.db.get_account(user_id, account_id)

    async def list_accounts(self) -> list[AccountEntity]:
        """List all accounts, ordered by name."""
        user_id = require_user(self.identity)
        return await self.db.list_accounts(user_id)

    async def watch_accounts(self) -> LiveQuery[list[AccountEntity]]:
        """Watch the account list; yields a fresh list after every change."""
        user_id = require_user(self.identity)
        return await self.db.watch(user_id, (ACCOUNTS,), lambda: self.db.list_accounts(user_id))

    async def update_account(self, account_id: str, **changes: Any) -> None:
        """Update account fields.

        Only name, type, currency and iban can be changed; the balance moves
        exclusively through transactions.

        Raises:
            NotFoundError: If the account doesn't exist
            ValidationError: If a field is unknown or invalid
        """
        user_id = require_user(self.identity)
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update account field(s): {', '.join(sorted(unknown))}")

        cleaned: dict[str, Any] = {}
        if "name" in changes:
            cleaned["name"] = _clean_name(changes["name"])
        if "type" in changes:
            cleaned["type"] = _account_type(changes["type"])
        if "currency" in changes:
            cleaned["currency"] = _clean_currency(changes["currency"])
        if "iban" in changes:
            cleaned["iban"] = _clean_iban(changes["iban"])
        cleaned["last_updated"] = datetime.now()

        await self.db.update_account(user_id, account_id, cleaned)
        logger.info("account_updated", user_id=user_id, account_id=account_id, fields=sorted(changes))

    async def delete_account(self, account_id: str, cascade: bool = False) -> None:
        """Delete an account.

        Args:
            account_id: Account ID
            cascade: Also delete the account's transactions and subscriptions

        Raises:
            NotFoundError: If the account doesn't exist
        """
        user_id = require_user(self.identity)
        deleted = await self.db.delete_account(user_id, account_id, cascade=cascade)
        if not deleted:
            raise NotFoundError(account_not_found(account_id))
        logger.info("account_deleted", user_id=user_id, account_id=account_id, cascade=cascade)

    async def reconcile_balance(self, account_id: str) -> Decimal:
        """Recompute the balance from the opening balance and every transaction.

        Repairs drift left behind by a failed adjustment.

        Returns:
            The reconciled balance

        Raises:
            NotFoundError: If the account doesn't exist
        """
        user_id = require_user(self.identity)

        async def _reconcile(tx: StoreTransaction) -> tuple[Decimal, Decimal]:
            account = await tx.get_account(account_id)
            if account is None:
                raise NotFoundError(account_not_found(account_id))
            total = await tx.sum_transactions(account_id)
            balance = quantize_amount(account.initial_balance + total)
            await tx.update_account(account_id, {"balance": balance, "last_updated": datetime.now()})
            return account.balance, balance

        previous, balance = await self.db.run_transaction(user_id, _reconcile)
        if previous != balance:
            logger.warning(
                "account_balance_reconciled",
                user_id=user_id,
                account_id=account_id,
                previous=str(previous),
                balance=str(balance),
            )
        return balance
