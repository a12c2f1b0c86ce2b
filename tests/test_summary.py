"""Tests for aggregation queries."""

from datetime import date, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from conti.domain.entities import Frequency
from conti.domain.errors import ValidationError
from conti.domain.summary import month_bounds


@pytest_asyncio.fixture
async def ledger(transaction_service, sample_account):
    """A few transactions spread over two years."""
    rows = [
        ("1800", "Stipendio", "Stipendio", datetime(2024, 12, 27)),
        ("-60", "Spesa", "Esselunga", datetime(2024, 12, 30)),
        ("-42.50", "Spesa", "Conad", datetime(2025, 1, 3)),
        ("-12.99", "Abbonamento", "Netflix", datetime(2025, 1, 15)),
        ("1800", "Stipendio", "Stipendio", datetime(2025, 1, 27)),
        ("-30", "Ristorante", "Pizzeria", datetime(2025, 1, 31, 21, 0)),
        ("-20", "Spesa", "Lidl", datetime(2025, 2, 2)),
    ]
    for amount, category, description, when in rows:
        await transaction_service.add_transaction(
            sample_account.id, amount, description, category=category, date=when
        )
    return sample_account


def test_month_bounds():
    start, end = month_bounds(date(2024, 2, 10))

    assert start == datetime(2024, 2, 1)
    assert end.date() == date(2024, 2, 29)
    assert end > datetime(2024, 2, 29, 23, 59, 59)


@pytest.mark.asyncio
async def test_total_by_category(summary_service, ledger):
    start, end = month_bounds(date(2025, 1, 1))

    totals = await summary_service.get_total_by_category(start, end)

    assert totals == {
        "Spesa": Decimal("-42.50"),
        "Abbonamento": Decimal("-12.99"),
        "Stipendio": Decimal("1800.00"),
        "Ristorante": Decimal("-30.00"),
    }


@pytest.mark.asyncio
async def test_totals_by_month(summary_service, ledger):
    totals = await summary_service.get_totals_by_period()

    assert list(totals) == ["2024-12", "2025-01", "2025-02"]
    assert totals["2024-12"] == {"Stipendio": Decimal("1800.00"), "Spesa": Decimal("-60.00")}
    assert totals["2025-02"] == {"Spesa": Decimal("-20.00")}


@pytest.mark.asyncio
async def test_totals_by_year_in_range(summary_service, ledger):
    totals = await summary_service.get_totals_by_period(
        start=datetime(2025, 1, 1), end=datetime(2025, 12, 31), granularity="year"
    )

    assert list(totals) == ["2025"]
    assert totals["2025"]["Spesa"] == Decimal("-62.50")


@pytest.mark.asyncio
async def test_unknown_granularity(summary_service):
    with pytest.raises(ValidationError, match="granularity"):
        await summary_service.get_totals_by_period(granularity="week")


@pytest.mark.asyncio
async def test_period_stats(summary_service, ledger):
    stats = await summary_service.get_period_stats(datetime(2025, 1, 1), datetime(2025, 2, 28))

    assert stats.income == Decimal("1800.00")
    assert stats.expenses == Decimal("105.49")
    assert stats.net == Decimal("1694.51")
    assert stats.count == 5


@pytest.mark.asyncio
async def test_monthly_stats_cover_whole_month(summary_service, ledger):
    stats = await summary_service.get_monthly_stats(date(2025, 1, 20))

    # Includes the evening of the last day
    assert stats.count == 4
    assert stats.expenses == Decimal("85.49")
    assert stats.start == datetime(2025, 1, 1)


@pytest.mark.asyncio
async def test_monthly_stats_of_empty_month(summary_service, ledger):
    stats = await summary_service.get_monthly_stats(date(2023, 6, 1))

    assert stats.count == 0
    assert stats.net == Decimal("0.00")


@pytest.mark.asyncio
async def test_subscription_cost_summary(summary_service, subscription_service, sample_account):
    await subscription_service.create_subscription(sample_account.id, "Netflix", "12.99")
    await subscription_service.create_subscription(
        sample_account.id, "Assicurazione", "100", frequency=Frequency.QUARTERLY
    )
    off = await subscription_service.create_subscription(sample_account.id, "Palestra", "40")
    await subscription_service.deactivate_subscription(off)

    summary = await summary_service.get_subscription_cost_summary()

    assert summary.active_count == 2
    assert summary.monthly_total == Decimal("46.32")
    assert summary.annual_total == Decimal("555.88")
    lines = {line.name: line for line in summary.lines}
    assert lines["Assicurazione"].monthly_cost == Decimal("33.33")
    assert lines["Assicurazione"].annual_cost == Decimal("400.00")
