"""Tests for realtime watched queries."""

import asyncio
import contextlib
from datetime import datetime
from decimal import Decimal

import pytest

from conti.database.changes import ACCOUNTS, TRANSACTIONS, ChangeFeed
from conti.database.factories import create_sqlite_database
from conti.domain.identity import StaticIdentity
from conti.domain.account import AccountService
from conti.domain.transaction import TransactionService


async def _next(query):
    return await asyncio.wait_for(query.__anext__(), timeout=2)


@pytest.mark.asyncio
async def test_first_snapshot_is_delivered(account_service, sample_account):
    async with await account_service.watch_accounts() as query:
        snapshot = await _next(query)

    assert [a.id for a in snapshot] == [sample_account.id]


@pytest.mark.asyncio
async def test_snapshot_follows_writes(transaction_service, sample_account):
    async with await transaction_service.watch_transactions(sample_account.id) as query:
        assert await _next(query) == []

        await transaction_service.add_transaction(sample_account.id, "-3.20", "Bar")

        snapshot = await _next(query)
        assert [t.amount for t in snapshot] == [Decimal("-3.20")]


@pytest.mark.asyncio
async def test_balance_change_reaches_account_watchers(account_service, transaction_service, sample_account):
    async with await account_service.watch_accounts() as query:
        await _next(query)

        await transaction_service.add_transaction(sample_account.id, "-100", "Affitto")

        balances = []
        while query._queue.qsize():
            balances.append((await _next(query))[0].balance)
        assert balances[-1] == Decimal("900.00")


@pytest.mark.asyncio
async def test_other_users_do_not_notify(temp_db, account_service, sample_account):
    intruder = AccountService(temp_db, StaticIdentity("user-2"))

    async with await account_service.watch_accounts() as query:
        await _next(query)
        await intruder.create_account("Altro conto")

        assert query._queue.empty()


@pytest.mark.asyncio
async def test_iteration_ends_after_close(account_service, temp_db, identity):
    query = await account_service.watch_accounts()
    assert temp_db.changes.listener_count(identity.current_user_id(), ACCOUNTS) == 1

    query.close()

    snapshots = [snapshot async for snapshot in query]
    assert snapshots == [[]]
    assert temp_db.changes.listener_count(identity.current_user_id(), ACCOUNTS) == 0
    with pytest.raises(StopAsyncIteration):
        await query.__anext__()


@pytest.mark.asyncio
async def test_closed_query_ignores_later_writes(account_service, temp_db):
    query = await account_service.watch_accounts()
    await _next(query)
    query.close()

    await account_service.create_account("Carta")

    assert [s async for s in query] == []


@pytest.mark.asyncio
async def test_fetch_failure_is_raised_to_reader():
    feed = ChangeFeed()
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        if calls > 1:
            raise RuntimeError("store offline")
        return ["ok"]

    query = await feed.subscribe("u", (TRANSACTIONS,), fetch)
    assert await _next(query) == ["ok"]

    await feed.publish("u", [TRANSACTIONS])

    with pytest.raises(RuntimeError, match="store offline"):
        await _next(query)
    query.close()


@pytest.mark.asyncio
async def test_publish_refreshes_each_listener_once():
    feed = ChangeFeed()
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        return calls

    query = await feed.subscribe("u", (ACCOUNTS, TRANSACTIONS), fetch)
    await feed.publish("u", [ACCOUNTS, TRANSACTIONS])

    assert calls == 2
    query.close()


@pytest.mark.asyncio
async def test_date_range_watch_filters_snapshots(transaction_service, sample_account):
    async with await transaction_service.watch_transactions_by_date_range(
        datetime(2025, 1, 1), datetime(2025, 1, 31)
    ) as query:
        assert await _next(query) == []

        await transaction_service.add_transaction(sample_account.id, "-5", "Dicembre", date=datetime(2024, 12, 31))
        assert await _next(query) == []

        await transaction_service.add_transaction(sample_account.id, "-7", "Gennaio", date=datetime(2025, 1, 10))
        assert [t.description for t in await _next(query)] == ["Gennaio"]


@pytest.mark.asyncio
async def test_unread_snapshots_collapse_to_latest(transaction_service, sample_account):
    async with await transaction_service.watch_transactions(sample_account.id) as query:
        await transaction_service.add_transaction(sample_account.id, "-1", "Primo")
        await transaction_service.add_transaction(sample_account.id, "-2", "Secondo")
        await transaction_service.add_transaction(sample_account.id, "-3", "Terzo")

        assert query._queue.qsize() == 1
        snapshot = await _next(query)
        assert len(snapshot) == 3


@pytest.mark.asyncio
async def test_publish_refreshes_listeners_concurrently():
    feed = ChangeFeed()
    slow_started = asyncio.Event()
    release = asyncio.Event()

    async def slow_fetch():
        if slow_started.is_set():
            await release.wait()
        slow_started.set()
        return "slow"

    async def fast_fetch():
        return "fast"

    slow = await feed.subscribe("u", (ACCOUNTS,), slow_fetch)
    fast = await feed.subscribe("u", (ACCOUNTS,), fast_fetch)
    await _next(slow)
    await _next(fast)

    publishing = asyncio.create_task(feed.publish("u", [ACCOUNTS]))
    # The fast listener is served while the slow one is still fetching
    assert await _next(fast) == "fast"
    assert not publishing.done()

    release.set()
    await publishing
    assert await _next(slow) == "slow"
    slow.close()
    fast.close()


@pytest.mark.asyncio
async def test_commits_from_another_process_reach_watchers(temp_db, identity, sample_account):
    other_process = create_sqlite_database(database_path=temp_db.database_path)
    await other_process.connect()
    follower = asyncio.create_task(
        temp_db.follow_external_commits(identity.current_user_id(), interval=0.01)
    )
    try:
        async with await TransactionService(temp_db, identity).watch_transactions(sample_account.id) as query:
            assert await _next(query) == []
            # Let the follower record the starting commit counter
            await asyncio.sleep(0.1)

            await TransactionService(other_process, identity).add_transaction(
                sample_account.id, "-8", "Da un altro terminale"
            )

            snapshot = await _next(query)
            while not snapshot:
                snapshot = await _next(query)
            assert [t.description for t in snapshot] == ["Da un altro terminale"]
    finally:
        follower.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await follower
        await other_process.disconnect()
