"""Subscription domain service."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Union

from conti.database.base import Database, StoreTransaction
from conti.database.changes import SUBSCRIPTIONS, LiveQuery
from conti.domain.entities import Frequency, Subscription as SubscriptionEntity
from conti.domain.errors import (
    NotFoundError,
    ValidationError,
    account_not_found,
    subscription_not_found,
)
from conti.domain.identity import IdentityProvider, require_user
from conti.domain.transaction import to_amount
from conti.logging_config import get_logger
from conti.utils.amount_parser import quantize_amount
from conti.utils.date_parser import as_datetime

logger = get_logger(__name__)

DEFAULT_CATEGORY = "Abbonamento"

UPDATABLE_FIELDS = (
    "account_id",
    "name",
    "description",
    "amount",
    "frequency",
    "category",
    "start_date",
    "next_renewal_date",
    "notes",
)


def _frequency(value: Union[str, Frequency]) -> Frequency:
    try:
        return Frequency(value.upper() if isinstance(value, str) else value)
    except ValueError as e:
        choices = ", ".join(f.value for f in Frequency)
        raise ValidationError(f"Invalid frequency '{value}' (expected one of: {choices})") from e


def _positive_amount(value: Union[Decimal, int, float, str]) -> Decimal:
    amount = to_amount(value)
    if amount <= 0:
        raise ValidationError(f"Subscription amount must be positive (got {amount})")
    return amount


def _check_dates(start_date: datetime, next_renewal_date: datetime) -> None:
    if next_renewal_date < start_date:
        raise ValidationError("Next renewal date cannot be before the start date")


class SubscriptionService:
    """Service for managing recurring subscriptions."""

    def __init__(self, db: Database, identity: IdentityProvider):
        """Initialize subscription service.

        Args:
            db: Database instance
            identity: Provider of the current user id
        """
        self.db = db
        self.identity = identity

    async def _get_or_raise(self, user_id: str, subscription_id: str) -> SubscriptionEntity:
        subscription = await self.db.get_subscription(user_id, subscription_id)
        if subscription is None:
            raise NotFoundError(subscription_not_found(subscription_id))
        return subscription

    async def create_subscription(
        self,
        account_id: str,
        name: str,
        amount: Union[Decimal, int, float, str],
        frequency: Union[str, Frequency] = Frequency.MONTHLY,
        category: str = DEFAULT_CATEGORY,
        start_date: Optional[date] = None,
        next_renewal_date: Optional[date] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        """Create a subscription.

        Args:
            account_id: Account charged on renewal
            name: Subscription name
            amount: Positive amount charged each cycle
            frequency: Renewal frequency
            category: Category of the generated transactions
            start_date: First day of the subscription, today when omitted
            next_renewal_date: Next charge date, start_date when omitted
            description: Optional description
            notes: Optional notes

        Returns:
            Subscription ID

        Raises:
            ValidationError: If amount, frequency or dates are invalid
            NotFoundError: If the account doesn't exist
        """
        user_id = require_user(self.identity)
        if not name or not name.strip():
            raise ValidationError("Subscription name cannot be empty")
        start = as_datetime(start_date) if start_date else as_datetime(date.today())
        renewal = as_datetime(next_renewal_date) if next_renewal_date else start
        _check_dates(start, renewal)

        if await self.db.get_account(user_id, account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        subscription_id = await self.db.create_subscription(
            user_id,
            {
                "account_id": account_id,
                "name": name.strip(),
                "description": description,
                "amount": _positive_amount(amount),
                "frequency": _frequency(frequency),
                "category": (category or "").strip() or DEFAULT_CATEGORY,
                "start_date": start,
                "next_renewal_date": renewal,
                "end_date": None,
                "is_active": True,
                "notes": notes,
            },
            now=datetime.now(),
        )
        logger.info("subscription_created", user_id=user_id, subscription_id=subscription_id)
        return subscription_id

    async def get_subscription(self, subscription_id: str) -> Optional[SubscriptionEntity]:
        """Get subscription by ID.

        Returns:
            Subscription entity or None if not found
        """
        user_id = require_user(self.identity)
        return await self.db.get_subscription(user_id, subscription_id)

    async def list_subscriptions(self, active_only: bool = True) -> list[SubscriptionEntity]:
        """List subscriptions sorted by name (case-insensitive)."""
        user_id = require_user(self.identity)
        return await self.db.list_subscriptions(user_id, active_only=active_only)

    async def watch_subscriptions(self, active_only: bool = True) -> LiveQuery[list[SubscriptionEntity]]:
        """Watch the subscription list."""
        user_id = require_user(self.identity)
        return await self.db.watch(
            user_id,
            (SUBSCRIPTIONS,),
            lambda: self.db.list_subscriptions(user_id, active_only=active_only),
        )

    async def update_subscription(self, subscription_id: str, **changes: Any) -> None:
        """Update subscription fields.

        Activation state goes through deactivate/reactivate. A new
        ``next_renewal_date`` may not be earlier than the current one.

        Raises:
            NotFoundError: If the subscription or a new account doesn't exist
            ValidationError: If a field is unknown or invalid
        """
        user_id = require_user(self.identity)
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update subscription field(s): {', '.join(sorted(unknown))}")

        current = await self._get_or_raise(user_id, subscription_id)
        cleaned: dict[str, Any] = {}
        if "account_id" in changes:
            if await self.db.get_account(user_id, changes["account_id"]) is None:
                raise NotFoundError(account_not_found(changes["account_id"]))
            cleaned["account_id"] = changes["account_id"]
        if "name" in changes:
            if not changes["name"] or not changes["name"].strip():
                raise ValidationError("Subscription name cannot be empty")
            cleaned["name"] = changes["name"].strip()
        if "amount" in changes:
            cleaned["amount"] = _positive_amount(changes["amount"])
        if "frequency" in changes:
            cleaned["frequency"] = _frequency(changes["frequency"])
        if "category" in changes:
            cleaned["category"] = (changes["category"] or "").strip() or DEFAULT_CATEGORY
        for key in ("description", "notes"):
            if key in changes:
                cleaned[key] = changes[key]
        if "start_date" in changes:
            cleaned["start_date"] = as_datetime(changes["start_date"])
        if "next_renewal_date" in changes:
            cleaned["next_renewal_date"] = as_datetime(changes["next_renewal_date"])
            if cleaned["next_renewal_date"] < current.next_renewal_date:
                raise ValidationError(
                    f"Next renewal date can only move forward "
                    f"({cleaned['next_renewal_date'].date().isoformat()} is before "
                    f"{current.next_renewal_date.date().isoformat()})"
                )
        _check_dates(
            cleaned.get("start_date", current.start_date),
            cleaned.get("next_renewal_date", current.next_renewal_date),
        )
        cleaned["last_updated"] = datetime.now()

        await self.db.update_subscription(user_id, subscription_id, cleaned)
        logger.info(
            "subscription_updated",
            user_id=user_id,
            subscription_id=subscription_id,
            fields=sorted(changes),
        )

    async def deactivate_subscription(self, subscription_id: str) -> None:
        """Soft-delete: mark inactive and stamp the end date. The document is kept."""
        user_id = require_user(self.identity)
        now = datetime.now()
        await self.db.update_subscription(
            user_id,
            subscription_id,
            {"is_active": False, "end_date": now, "last_updated": now},
        )
        logger.info("subscription_deactivated", user_id=user_id, subscription_id=subscription_id)

    async def reactivate_subscription(self, subscription_id: str) -> None:
        """Mark a deactivated subscription active again. end_date is left as is."""
        user_id = require_user(self.identity)
        await self.db.update_subscription(
            user_id,
            subscription_id,
            {"is_active": True, "last_updated": datetime.now()},
        )
        logger.info("subscription_reactivated", user_id=user_id, subscription_id=subscription_id)

    async def delete_subscription(self, subscription_id: str) -> None:
        """Hard-delete a subscription. Its past transactions are kept.

        Raises:
            NotFoundError: If the subscription doesn't exist
        """
        user_id = require_user(self.identity)
        if not await self.db.delete_subscription(user_id, subscription_id):
            raise NotFoundError(subscription_not_found(subscription_id))
        logger.info("subscription_deleted", user_id=user_id, subscription_id=subscription_id)

    async def update_next_renewal_date(self, subscription_id: str, new_date: date) -> None:
        """Move the next renewal date forward.

        Raises:
            NotFoundError: If the subscription doesn't exist
            ValidationError: If new_date is not after the current renewal date
        """
        user_id = require_user(self.identity)
        target = as_datetime(new_date)

        async def _advance(tx: StoreTransaction) -> None:
            subscription = await tx.get_subscription(subscription_id)
            if subscription is None:
                raise NotFoundError(subscription_not_found(subscription_id))
            if target <= subscription.next_renewal_date:
                raise ValidationError(
                    f"Next renewal date can only move forward "
                    f"({target.date().isoformat()} is not after "
                    f"{subscription.next_renewal_date.date().isoformat()})"
                )
            await tx.update_subscription(
                subscription_id, {"next_renewal_date": target, "last_updated": datetime.now()}
            )

        await self.db.run_transaction(user_id, _advance)
        logger.info(
            "subscription_renewal_date_updated",
            user_id=user_id,
            subscription_id=subscription_id,
            next_renewal_date=target.isoformat(),
        )

    async def get_expiring_subscriptions(
        self, threshold_days: int = 7, now: Optional[datetime] = None
    ) -> list[SubscriptionEntity]:
        """Active subscriptions renewing within the next ``threshold_days`` days, soonest first."""
        user_id = require_user(self.identity)
        if threshold_days < 0:
            raise ValidationError("Threshold must not be negative")
        start = now or datetime.now()
        limit = start + timedelta(days=threshold_days)
        subscriptions = await self.db.list_subscriptions(user_id, active_only=True)
        expiring = [s for s in subscriptions if start <= s.next_renewal_date <= limit]
        return sorted(expiring, key=lambda s: s.next_renewal_date)

    async def get_due_subscriptions(self, now: Optional[datetime] = None) -> list[SubscriptionEntity]:
        """Active subscriptions whose renewal date has been reached, oldest first."""
        user_id = require_user(self.identity)
        cutoff = now or datetime.now()
        subscriptions = await self.db.list_subscriptions(user_id, active_only=True)
        due = [s for s in subscriptions if s.next_renewal_date <= cutoff]
        return sorted(due, key=lambda s: s.next_renewal_date)

    async def get_total_monthly_subscription_cost(self) -> Decimal:
        """Monthly-equivalent cost of every active subscription, to the cent."""
        user_id = require_user(self.identity)
        subscriptions = await self.db.list_subscriptions(user_id, active_only=True)
        total = sum((s.monthly_cost for s in subscriptions), Decimal("0"))
        return quantize_amount(total)
