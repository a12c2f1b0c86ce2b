"""Aggregation queries over transactions and subscriptions."""

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from conti.database.base import Database
from conti.domain.entities import (
    PeriodStats,
    SubscriptionCostLine,
    SubscriptionCostSummary,
    Transaction,
)
from conti.domain.errors import ValidationError
from conti.domain.identity import IdentityProvider, require_user
from conti.domain.subscription import SubscriptionService
from conti.domain.transaction import DEFAULT_CATEGORY, TransactionService
from conti.utils.amount_parser import quantize_amount
from conti.utils.date_parser import end_of_day, start_of_day

GRANULARITIES = ("month", "year")


def month_bounds(reference: date) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing ``reference``."""
    first = reference.replace(day=1)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return start_of_day(first), end_of_day(last)


class SummaryService:
    """Read-only totals and statistics."""

    def __init__(self, db: Database, identity: IdentityProvider):
        """Initialize summary service.

        Args:
            db: Database instance
            identity: Provider of the current user id
        """
        self.db = db
        self.identity = identity
        self.transaction_service = TransactionService(db, identity)
        self.subscription_service = SubscriptionService(db, identity)

    async def _transactions(self, start: Optional[datetime], end: Optional[datetime]) -> list[Transaction]:
        user_id = require_user(self.identity)
        return await self.db.list_transactions(user_id, start=start, end=end)

    async def get_total_by_category(self, start: datetime, end: datetime) -> dict[str, Decimal]:
        """Signed total per category for transactions dated within [start, end]."""
        return await self.transaction_service.get_total_by_category(start, end)

    async def get_totals_by_period(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        granularity: str = "month",
    ) -> dict[str, dict[str, Decimal]]:
        """Category totals grouped by month ("YYYY-MM") or year ("YYYY").

        Args:
            start: Optional lower bound on the transaction date
            end: Optional upper bound on the transaction date
            granularity: "month" or "year"

        Returns:
            Mapping of period key to category totals, periods in ascending order
        """
        if granularity not in GRANULARITIES:
            raise ValidationError(
                f"Unknown granularity '{granularity}' (expected one of: {', '.join(GRANULARITIES)})"
            )
        key_format = "%Y-%m" if granularity == "month" else "%Y"

        grouped: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        for txn in await self._transactions(start, end):
            grouped[txn.date.strftime(key_format)][txn.category or DEFAULT_CATEGORY] += txn.amount

        return {period: dict(grouped[period]) for period in sorted(grouped)}

    async def get_period_stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> PeriodStats:
        """Income, expenses and net for transactions dated within [start, end]."""
        income = Decimal("0")
        expenses = Decimal("0")
        transactions = await self._transactions(start, end)
        for txn in transactions:
            if txn.amount >= 0:
                income += txn.amount
            else:
                expenses += -txn.amount
        return PeriodStats(
            start=start,
            end=end,
            income=quantize_amount(income),
            expenses=quantize_amount(expenses),
            net=quantize_amount(income - expenses),
            count=len(transactions),
        )

    async def get_monthly_stats(self, reference: Optional[date] = None) -> PeriodStats:
        """Period stats for the calendar month containing ``reference`` (today by default)."""
        start, end = month_bounds(reference or date.today())
        return await self.get_period_stats(start, end)

    async def get_subscription_cost_summary(self) -> SubscriptionCostSummary:
        """Monthly and annual cost of the active subscriptions, with one line each."""
        subscriptions = await self.subscription_service.list_subscriptions(active_only=True)
        lines = tuple(
            SubscriptionCostLine(
                subscription_id=s.id,
                name=s.name,
                frequency=s.frequency,
                amount=s.amount,
                monthly_cost=quantize_amount(s.monthly_cost),
                annual_cost=quantize_amount(s.annual_cost),
            )
            for s in subscriptions
        )
        return SubscriptionCostSummary(
            monthly_total=quantize_amount(sum((s.monthly_cost for s in subscriptions), Decimal("0"))),
            annual_total=quantize_amount(sum((s.annual_cost for s in subscriptions), Decimal("0"))),
            active_count=len(subscriptions),
            lines=lines,
        )
