"""Subscription renewal processing."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from conti.domain.entities import Subscription, TransactionType
from conti.domain.errors import ConflictError, ValidationError
from conti.domain.subscription import SubscriptionService
from conti.domain.transaction import TransactionService
from conti.logging_config import get_logger

logger = get_logger(__name__)

RENEWAL_NOTES = "Pagamento automatico abbonamento"


@dataclass(frozen=True)
class RenewalOutcome:
    """What a single renewal produced."""

    subscription_id: str
    transaction_id: str
    amount: Decimal
    charged_on: datetime
    next_renewal_date: datetime


def next_renewal(current: datetime, months: int) -> datetime:
    """Advance a renewal date by ``months`` calendar months.

    Month-end dates clamp to the last day of shorter months.
    """
    return current + relativedelta(months=months)


def renewal_key(subscription_id: str, charged_on: datetime) -> str:
    """Natural key of the transaction charging one renewal cycle."""
    return f"renewal:{subscription_id}:{charged_on.date().isoformat()}"


class RenewalProcessor:
    """Charges subscription renewals against their accounts."""

    def __init__(self, transactions: TransactionService, subscriptions: SubscriptionService):
        self.transactions = transactions
        self.subscriptions = subscriptions

    async def process_renewal(self, subscription: Subscription) -> RenewalOutcome:
        """Charge one renewal cycle and advance the renewal date.

        The expense goes through ``TransactionService.add_transaction`` so the
        account balance follows. The transaction's natural key makes a second
        attempt for the same cycle fail before any balance change.

        Args:
            subscription: Subscription as last read from the store

        Returns:
            RenewalOutcome describing the charge

        Raises:
            ValidationError: If the subscription is inactive
            ConflictError: If this cycle was already charged
            NotFoundError: If the subscription's account no longer exists
        """
        if not subscription.is_active:
            raise ValidationError(f"Subscription '{subscription.name}' is not active")

        charged_on = subscription.next_renewal_date
        transaction_id = await self.transactions.add_transaction(
            account_id=subscription.account_id,
            amount=-subscription.amount,
            description=f"Rinnovo {subscription.name}",
            category=subscription.category,
            date=charged_on,
            type=TransactionType.EXPENSE,
            notes=RENEWAL_NOTES,
            is_recurring=True,
            subscription_id=subscription.id,
            unique_id=renewal_key(subscription.id, charged_on),
        )

        upcoming = next_renewal(charged_on, subscription.frequency.months)
        await self.subscriptions.update_next_renewal_date(subscription.id, upcoming)

        logger.info(
            "subscription_renewed",
            subscription_id=subscription.id,
            transaction_id=transaction_id,
            charged_on=charged_on.date().isoformat(),
            next_renewal_date=upcoming.date().isoformat(),
        )
        return RenewalOutcome(
            subscription_id=subscription.id,
            transaction_id=transaction_id,
            amount=-subscription.amount,
            charged_on=charged_on,
            next_renewal_date=upcoming,
        )

    async def process_due_renewals(self, now: Optional[datetime] = None) -> list[RenewalOutcome]:
        """Renew every active subscription that is due, one cycle each.

        A subscription whose current cycle was already charged is skipped.

        Returns:
            Outcomes of the renewals performed
        """
        outcomes = []
        for subscription in await self.subscriptions.get_due_subscriptions(now=now):
            try:
                outcomes.append(await self.process_renewal(subscription))
            except ConflictError as e:
                logger.warning(
                    "subscription_renewal_skipped",
                    subscription_id=subscription.id,
                    reason=str(e),
                )
        return outcomes
