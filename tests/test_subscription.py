"""Tests for the subscription service."""

from datetime import datetime
from decimal import Decimal

import pytest

from conti.domain.entities import Frequency
from conti.domain.errors import NotFoundError, ValidationError


@pytest.fixture
def create(subscription_service, sample_account):
    async def _create(name="Netflix", amount="12.99", **kwargs):
        kwargs.setdefault("start_date", datetime(2025, 1, 15))
        return await subscription_service.create_subscription(sample_account.id, name, amount, **kwargs)

    return _create


@pytest.mark.asyncio
async def test_create_subscription_defaults(subscription_service, create, sample_account):
    sub_id = await create()

    sub = await subscription_service.get_subscription(sub_id)
    assert sub.account_id == sample_account.id
    assert sub.amount == Decimal("12.99")
    assert sub.frequency == Frequency.MONTHLY
    assert sub.category == "Abbonamento"
    assert sub.next_renewal_date == sub.start_date == datetime(2025, 1, 15)
    assert sub.is_active is True
    assert sub.end_date is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"amount": "0"}, "must be positive"),
        ({"amount": "-5"}, "must be positive"),
        ({"frequency": "WEEKLY"}, "Invalid frequency"),
        ({"next_renewal_date": datetime(2025, 1, 1)}, "before the start date"),
        ({"name": " "}, "name cannot be empty"),
    ],
)
async def test_create_subscription_validation(create, kwargs, message):
    with pytest.raises(ValidationError, match=message):
        await create(**kwargs)


@pytest.mark.asyncio
async def test_create_subscription_unknown_account(subscription_service):
    with pytest.raises(NotFoundError):
        await subscription_service.create_subscription("missing", "Netflix", "12.99")


@pytest.mark.asyncio
async def test_frequency_is_case_insensitive(subscription_service, create):
    sub_id = await create(frequency="quarterly")
    assert (await subscription_service.get_subscription(sub_id)).frequency == Frequency.QUARTERLY


@pytest.mark.asyncio
async def test_list_sorted_by_lowercase_name(subscription_service, create):
    for name in ("spotify", "Netflix", "amazon Prime"):
        await create(name=name)

    names = [s.name for s in await subscription_service.list_subscriptions()]

    assert names == ["amazon Prime", "Netflix", "spotify"]


@pytest.mark.asyncio
async def test_deactivate_and_reactivate_keep_document(
    subscription_service, transaction_service, create, sample_account
):
    sub_id = await create()
    await transaction_service.add_transaction(
        sample_account.id, "-12.99", "Rinnovo Netflix", subscription_id=sub_id, is_recurring=True
    )

    await subscription_service.deactivate_subscription(sub_id)

    sub = await subscription_service.get_subscription(sub_id)
    assert sub.is_active is False
    assert sub.end_date is not None
    assert await subscription_service.list_subscriptions() == []
    assert len(await subscription_service.list_subscriptions(active_only=False)) == 1

    await subscription_service.reactivate_subscription(sub_id)

    sub = await subscription_service.get_subscription(sub_id)
    assert sub.is_active is True
    assert sub.end_date is not None
    assert len(await transaction_service.list_transactions(account_id=sample_account.id)) == 1


@pytest.mark.asyncio
async def test_delete_subscription_is_hard(subscription_service, create):
    sub_id = await create()

    await subscription_service.delete_subscription(sub_id)

    assert await subscription_service.get_subscription(sub_id) is None
    with pytest.raises(NotFoundError):
        await subscription_service.delete_subscription(sub_id)


@pytest.mark.asyncio
async def test_deactivate_missing_subscription(subscription_service):
    with pytest.raises(NotFoundError):
        await subscription_service.deactivate_subscription("missing")


@pytest.mark.asyncio
async def test_update_subscription(subscription_service, create):
    sub_id = await create()

    await subscription_service.update_subscription(sub_id, amount="15.99", frequency="ANNUAL", notes="Piano famiglia")

    sub = await subscription_service.get_subscription(sub_id)
    assert sub.amount == Decimal("15.99")
    assert sub.frequency == Frequency.ANNUAL
    assert sub.notes == "Piano famiglia"
    assert sub.name == "Netflix"


@pytest.mark.asyncio
async def test_update_subscription_rejects_unknown_fields(subscription_service, create):
    sub_id = await create()
    with pytest.raises(ValidationError, match="is_active"):
        await subscription_service.update_subscription(sub_id, is_active=False)


@pytest.mark.asyncio
async def test_update_subscription_checks_dates(subscription_service, create):
    sub_id = await create()
    with pytest.raises(ValidationError):
        await subscription_service.update_subscription(sub_id, start_date=datetime(2025, 2, 1))


@pytest.mark.asyncio
async def test_update_subscription_cannot_move_renewal_backwards(subscription_service, create):
    sub_id = await create()
    await subscription_service.update_subscription(sub_id, next_renewal_date=datetime(2025, 3, 15))

    with pytest.raises(ValidationError, match="forward"):
        await subscription_service.update_subscription(sub_id, next_renewal_date=datetime(2025, 2, 15))
    # Re-saving the same date is not a move
    await subscription_service.update_subscription(sub_id, next_renewal_date=datetime(2025, 3, 15), notes="ok")

    assert (await subscription_service.get_subscription(sub_id)).next_renewal_date == datetime(2025, 3, 15)


@pytest.mark.asyncio
async def test_next_renewal_moves_forward_only(subscription_service, create):
    sub_id = await create()

    await subscription_service.update_next_renewal_date(sub_id, datetime(2025, 2, 15))
    with pytest.raises(ValidationError, match="forward"):
        await subscription_service.update_next_renewal_date(sub_id, datetime(2025, 2, 15))
    with pytest.raises(ValidationError):
        await subscription_service.update_next_renewal_date(sub_id, datetime(2025, 1, 20))

    assert (await subscription_service.get_subscription(sub_id)).next_renewal_date == datetime(2025, 2, 15)


@pytest.mark.asyncio
async def test_expiring_subscriptions(subscription_service, create):
    now = datetime(2025, 3, 1, 9, 0)
    soon = await create(name="Soon", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 3, 5))
    sooner = await create(name="Sooner", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 3, 2))
    await create(name="Later", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 3, 20))
    await create(name="Past", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 2, 20))
    inactive = await create(name="Off", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 3, 3))
    await subscription_service.deactivate_subscription(inactive)

    expiring = await subscription_service.get_expiring_subscriptions(now=now)

    assert [s.id for s in expiring] == [sooner, soon]


@pytest.mark.asyncio
async def test_due_subscriptions(subscription_service, create):
    due = await create(name="Due", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 2, 1))
    await create(name="Future", start_date=datetime(2025, 1, 1), next_renewal_date=datetime(2025, 4, 1))

    result = await subscription_service.get_due_subscriptions(now=datetime(2025, 3, 1))

    assert [s.id for s in result] == [due]


@pytest.mark.asyncio
async def test_total_monthly_cost_counts_active_only(subscription_service, create):
    await create(name="Monthly", amount="12")
    await create(name="Quarterly", amount="36", frequency="QUARTERLY")
    await create(name="Annual", amount="120", frequency="ANNUAL")
    off = await create(name="Off", amount="100")
    await subscription_service.deactivate_subscription(off)

    assert await subscription_service.get_total_monthly_subscription_cost() == Decimal("34.00")


@pytest.mark.asyncio
async def test_subscription_cost_properties(subscription_service, create):
    sub_id = await create(amount="60", frequency="SEMIANNUAL")
    sub = await subscription_service.get_subscription(sub_id)

    assert sub.monthly_cost == Decimal("10")
    assert sub.annual_cost == Decimal("120")
