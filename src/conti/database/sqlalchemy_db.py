"""Generic SQLAlchemy asyncio database implementation."""

import asyncio
import os
import random
import uuid
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

from sqlalchemy import delete, event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from conti.database.base import Database, StoreTransaction
from conti.database.changes import (
    ACCOUNTS,
    COLLECTIONS,
    PROFILE,
    SUBSCRIPTIONS,
    TRANSACTIONS,
    ChangeFeed,
    LiveQuery,
)
from conti.database.mappers import (
    account_to_domain,
    draft_to_orm,
    profile_to_domain,
    subscription_to_domain,
    transaction_to_domain,
)
from conti.database.models import (
    Account,
    Base,
    Profile,
    Subscription,
    Transaction,
)
from conti.domain.entities import (
    Account as DomainAccount,
    Profile as DomainProfile,
    Subscription as DomainSubscription,
    Transaction as DomainTransaction,
    TransactionDraft,
)
from conti.domain.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    account_not_found,
    subscription_not_found,
)
from conti.logging_config import get_logger
from conti.utils.amount_parser import quantize_amount

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 10
_BACKOFF_SECONDS = 0.005
SQLITE_BUSY_TIMEOUT = 30

_ACCOUNT_FIELDS = {"name", "type", "currency", "iban", "balance", "last_updated"}
_SUBSCRIPTION_FIELDS = {
    "account_id",
    "name",
    "description",
    "amount",
    "frequency",
    "category",
    "start_date",
    "next_renewal_date",
    "end_date",
    "is_active",
    "notes",
    "last_updated",
}
_PROFILE_FIELDS = {"email", "display_name", "last_login"}


def new_id() -> str:
    """Return a fresh document id."""
    return uuid.uuid4().hex


def _max_attempts_from_env() -> int:
    value = os.environ.get("CONTI_TX_MAX_ATTEMPTS")
    if not value:
        return DEFAULT_MAX_ATTEMPTS
    try:
        return max(1, int(value))
    except ValueError:
        logger.warning("invalid_tx_max_attempts", value=value, default=DEFAULT_MAX_ATTEMPTS)
        return DEFAULT_MAX_ATTEMPTS


def _is_lock_error(error: OperationalError) -> bool:
    return "locked" in str(error.orig).lower() or "busy" in str(error.orig).lower()


def _apply(row: Any, changes: dict[str, Any], allowed: set[str]) -> None:
    for key, value in changes.items():
        if key not in allowed:
            raise ValueError(f"Field '{key}' cannot be updated")
        if isinstance(value, Enum):
            value = value.value
        setattr(row, key, value)


def serialize_sqlite_units(engine: AsyncEngine) -> None:
    """Run every SQLite unit of work inside ``BEGIN IMMEDIATE``.

    The sqlite3 driver only opens a transaction at the first write, so reads
    of a read-modify-write would otherwise see no isolation. IMMEDIATE takes
    the write lock up front; concurrent units queue on the busy timeout
    instead of failing their version check.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into domain errors."""
    try:
        yield
    except IntegrityError as e:
        raise ConflictError(f"Could not {action}: duplicate record") from e
    except SQLAlchemyError as e:
        raise StoreError(f"Could not {action}: {e}") from e


class _SessionTransaction(StoreTransaction):
    """StoreTransaction bound to one AsyncSession."""

    def __init__(self, session: AsyncSession, user_id: str):
        self.session = session
        self.user_id = user_id
        self.touched: set[str] = set()

    async def _account_row(self, account_id: str) -> Optional[Account]:
        result = await self.session.execute(
            select(Account).where(Account.id == account_id, Account.user_id == self.user_id)
        )
        return result.scalar_one_or_none()

    async def _subscription_row(self, subscription_id: str) -> Optional[Subscription]:
        result = await self.session.execute(
            select(Subscription).where(
                Subscription.id == subscription_id, Subscription.user_id == self.user_id
            )
        )
        return result.scalar_one_or_none()

    async def get_account(self, account_id: str) -> Optional[DomainAccount]:
        row = await self._account_row(account_id)
        return account_to_domain(row) if row is not None else None

    async def update_account(self, account_id: str, changes: dict[str, Any]) -> None:
        row = await self._account_row(account_id)
        if row is None:
            raise NotFoundError(account_not_found(account_id))
        _apply(row, changes, _ACCOUNT_FIELDS)
        self.touched.add(ACCOUNTS)

    async def sum_transactions(self, account_id: str) -> Decimal:
        result = await self.session.execute(
            select(Transaction.amount).where(
                Transaction.account_id == account_id, Transaction.user_id == self.user_id
            )
        )
        return quantize_amount(sum(result.scalars(), Decimal("0")))

    async def get_subscription(self, subscription_id: str) -> Optional[DomainSubscription]:
        row = await self._subscription_row(subscription_id)
        return subscription_to_domain(row) if row is not None else None

    async def update_subscription(self, subscription_id: str, changes: dict[str, Any]) -> None:
        row = await self._subscription_row(subscription_id)
        if row is None:
            raise NotFoundError(subscription_not_found(subscription_id))
        _apply(row, changes, _SUBSCRIPTION_FIELDS)
        self.touched.add(SUBSCRIPTIONS)


class SQLAlchemyDatabase(Database):
    """SQLAlchemy-based implementation of Database interface."""

    def __init__(self, database_url: str, max_attempts: Optional[int] = None):
        """Initialize SQLAlchemy database.

        Args:
            database_url: SQLAlchemy async database URL (e.g.
                'sqlite+aiosqlite:///path/to.db')
            max_attempts: Bound on retries of a conflicting atomic unit. If
                None, reads CONTI_TX_MAX_ATTEMPTS.
        """
        self.database_url = database_url
        self.max_attempts = max_attempts or _max_attempts_from_env()
        is_sqlite = database_url.startswith("sqlite")
        # Serialized writers wait on the busy timeout rather than failing fast
        connect_args = {"timeout": SQLITE_BUSY_TIMEOUT} if is_sqlite else {}
        self.engine = create_async_engine(database_url, connect_args=connect_args)
        if is_sqlite:
            serialize_sqlite_units(self.engine)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        self.changes = ChangeFeed()

    async def connect(self) -> None:
        """Connect to the database."""
        # Connections are pooled lazily
        pass

    async def disconnect(self) -> None:
        """Dispose the engine and its pooled connections."""
        await self.engine.dispose()

    async def initialize_schema(self) -> None:
        """Create tables that do not exist yet."""
        with _store_errors("initialize schema"):
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def _publish(self, user_id: str, *collections: str) -> None:
        await self.changes.publish(user_id, collections)

    # Account operations
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
        account_id = new_id()
        with _store_errors("create account"):
            async with self.session_factory() as session, session.begin():
                session.add(
                    Account(
                        id=account_id,
                        user_id=user_id,
                        name=name,
                        type=type,
                        balance=initial_balance,
                        initial_balance=initial_balance,
                        currency=currency,
                        iban=iban,
                        created_at=now,
                        last_updated=now,
                    )
                )
        await self._publish(user_id, ACCOUNTS)
        return account_id

    async def get_account(self, user_id: str, account_id: str) -> Optional[DomainAccount]:
        """Get account by ID."""
        with _store_errors("read account"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Account).where(Account.id == account_id, Account.user_id == user_id)
                )
                row = result.scalar_one_or_none()
                return account_to_domain(row) if row is not None else None

    async def list_accounts(self, user_id: str) -> list[DomainAccount]:
        """List all accounts, ordered by name."""
        with _store_errors("list accounts"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Account).where(Account.user_id == user_id).order_by(Account.name)
                )
                return [account_to_domain(row) for row in result.scalars()]

    async def update_account(self, user_id: str, account_id: str, changes: dict[str, Any]) -> None:
        """Merge ``changes`` into an account."""

        async def _update(tx: StoreTransaction) -> None:
            await tx.update_account(account_id, changes)

        await self.run_transaction(user_id, _update)

    async def delete_account(self, user_id: str, account_id: str, cascade: bool = False) -> bool:
        """Delete an account, optionally with its transactions and subscriptions."""
        touched = [ACCOUNTS]
        with _store_errors("delete account"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    delete(Account).where(Account.id == account_id, Account.user_id == user_id)
                )
                deleted = result.rowcount > 0
                if deleted and cascade:
                    await session.execute(
                        delete(Transaction).where(
                            Transaction.account_id == account_id, Transaction.user_id == user_id
                        )
                    )
                    await session.execute(
                        delete(Subscription).where(
                            Subscription.account_id == account_id, Subscription.user_id == user_id
                        )
                    )
                    touched.extend([TRANSACTIONS, SUBSCRIPTIONS])
        if deleted:
            await self._publish(user_id, *touched)
        return deleted

    # Transaction operations
    async def create_transaction(self, user_id: str, draft: TransactionDraft, now: datetime) -> str:
        """Create a single transaction. Returns transaction ID."""
        transaction_id = new_id()
        with _store_errors("create transaction"):
            async with self.session_factory() as session, session.begin():
                session.add(draft_to_orm(draft, transaction_id, user_id, now))
        await self._publish(user_id, TRANSACTIONS)
        return transaction_id

    async def get_transaction(self, user_id: str, transaction_id: str) -> Optional[DomainTransaction]:
        """Get transaction by ID."""
        with _store_errors("read transaction"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Transaction).where(
                        Transaction.id == transaction_id, Transaction.user_id == user_id
                    )
                )
                row = result.scalar_one_or_none()
                return transaction_to_domain(row) if row is not None else None

    async def delete_transaction(self, user_id: str, transaction_id: str) -> Optional[DomainTransaction]:
        """Delete a transaction and return it, or None if it did not exist."""
        with _store_errors("delete transaction"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    select(Transaction).where(
                        Transaction.id == transaction_id, Transaction.user_id == user_id
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return None
                deleted = transaction_to_domain(row)
                outcome = await session.execute(
                    delete(Transaction).where(
                        Transaction.id == transaction_id, Transaction.user_id == user_id
                    )
                )
                # A concurrent delete got there first
                if outcome.rowcount == 0:
                    return None
        await self._publish(user_id, TRANSACTIONS)
        return deleted

    async def create_transactions_batch(
        self, user_id: str, drafts: list[TransactionDraft], now: datetime
    ) -> int:
        """Write several transactions in one atomic commit."""
        if not drafts:
            return 0
        with _store_errors("write transaction batch"):
            async with self.session_factory() as session, session.begin():
                session.add_all([draft_to_orm(d, new_id(), user_id, now) for d in drafts])
        await self._publish(user_id, TRANSACTIONS)
        return len(drafts)

    async def replace_account_transactions(
        self, user_id: str, account_id: str, drafts: list[TransactionDraft], now: datetime
    ) -> tuple[Decimal, int]:
        """Atomically swap every transaction of an account for ``drafts``."""
        with _store_errors("replace account transactions"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    select(Transaction.amount).where(
                        Transaction.account_id == account_id, Transaction.user_id == user_id
                    )
                )
                removed_total = quantize_amount(sum(result.scalars(), Decimal("0")))
                await session.execute(
                    delete(Transaction).where(
                        Transaction.account_id == account_id, Transaction.user_id == user_id
                    )
                )
                # Deletes must reach the database before re-inserting the same natural keys
                await session.flush()
                session.add_all([draft_to_orm(d, new_id(), user_id, now) for d in drafts])
        await self._publish(user_id, TRANSACTIONS)
        return removed_total, len(drafts)

    async def find_unique_ids(self, user_id: str, account_id: str, keys: list[str]) -> set[str]:
        """Return the subset of ``keys`` already present on the account."""
        if not keys:
            return set()
        found: set[str] = set()
        with _store_errors("look up transaction keys"):
            async with self.session_factory() as session:
                # Stay well under SQLite's bound-parameter limit
                for offset in range(0, len(keys), 500):
                    chunk = keys[offset : offset + 500]
                    result = await session.execute(
                        select(Transaction.unique_id).where(
                            Transaction.user_id == user_id,
                            Transaction.account_id == account_id,
                            Transaction.unique_id.in_(chunk),
                        )
                    )
                    found.update(result.scalars())
        return found

    async def list_transactions(
        self,
        user_id: str,
        account_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        subscription_id: Optional[str] = None,
    ) -> list[DomainTransaction]:
        """List transactions with optional filters, newest first."""
        query = select(Transaction).where(Transaction.user_id == user_id)
        if account_id is not None:
            query = query.where(Transaction.account_id == account_id)
        if start is not None:
            query = query.where(Transaction.date >= start)
        if end is not None:
            query = query.where(Transaction.date <= end)
        if subscription_id is not None:
            query = query.where(Transaction.subscription_id == subscription_id)
        query = query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
        with _store_errors("list transactions"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return [transaction_to_domain(row) for row in result.scalars()]

    # Subscription operations
    async def create_subscription(self, user_id: str, fields: dict[str, Any], now: datetime) -> str:
        """Create a subscription. Returns subscription ID."""
        subscription_id = new_id()
        row = Subscription(id=subscription_id, user_id=user_id, created_at=now, last_updated=now)
        _apply(row, fields, _SUBSCRIPTION_FIELDS)
        with _store_errors("create subscription"):
            async with self.session_factory() as session, session.begin():
                session.add(row)
        await self._publish(user_id, SUBSCRIPTIONS)
        return subscription_id

    async def get_subscription(self, user_id: str, subscription_id: str) -> Optional[DomainSubscription]:
        """Get subscription by ID."""
        with _store_errors("read subscription"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Subscription).where(
                        Subscription.id == subscription_id, Subscription.user_id == user_id
                    )
                )
                row = result.scalar_one_or_none()
                return subscription_to_domain(row) if row is not None else None

    async def list_subscriptions(self, user_id: str, active_only: bool = True) -> list[DomainSubscription]:
        """List subscriptions sorted by lower-cased name."""
        query = select(Subscription).where(Subscription.user_id == user_id)
        if active_only:
            query = query.where(Subscription.is_active.is_(True))
        query = query.order_by(func.lower(Subscription.name), Subscription.id)
        with _store_errors("list subscriptions"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return [subscription_to_domain(row) for row in result.scalars()]

    async def update_subscription(
        self, user_id: str, subscription_id: str, changes: dict[str, Any]
    ) -> None:
        """Merge ``changes`` into a subscription."""

        async def _update(tx: StoreTransaction) -> None:
            await tx.update_subscription(subscription_id, changes)

        await self.run_transaction(user_id, _update)

    async def delete_subscription(self, user_id: str, subscription_id: str) -> bool:
        """Hard-delete a subscription."""
        with _store_errors("delete subscription"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    delete(Subscription).where(
                        Subscription.id == subscription_id, Subscription.user_id == user_id
                    )
                )
                deleted = result.rowcount > 0
        if deleted:
            await self._publish(user_id, SUBSCRIPTIONS)
        return deleted

    # Profile operations
    async def upsert_profile(self, user_id: str, changes: dict[str, Any], now: datetime) -> None:
        """Create or merge the user's profile document."""
        with _store_errors("save profile"):
            async with self.session_factory() as session, session.begin():
                row = await session.get(Profile, user_id)
                if row is None:
                    row = Profile(user_id=user_id, created_at=now, email="")
                    session.add(row)
                _apply(row, changes, _PROFILE_FIELDS)
        await self._publish(user_id, PROFILE)

    async def get_profile(self, user_id: str) -> Optional[DomainProfile]:
        """Get the user's profile."""
        with _store_errors("read profile"):
            async with self.session_factory() as session:
                row = await session.get(Profile, user_id)
                return profile_to_domain(row) if row is not None else None

    # Atomic and realtime primitives
    async def run_transaction(
        self, user_id: str, operation: Callable[[StoreTransaction], Awaitable[T]]
    ) -> T:
        """Run ``operation`` atomically, retrying when a concurrent writer wins.

        Raises:
            ConflictError: If every attempt lost to a concurrent writer
            StoreError: If the store fails for another reason
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        tx = _SessionTransaction(session, user_id)
                        result = await operation(tx)
            except StaleDataError as e:
                reason: Exception = e
            except OperationalError as e:
                if not _is_lock_error(e):
                    raise StoreError(f"Transaction failed: {e}") from e
                reason = e
            except IntegrityError as e:
                raise ConflictError("Transaction failed: duplicate record") from e
            except SQLAlchemyError as e:
                raise StoreError(f"Transaction failed: {e}") from e
            else:
                if tx.touched:
                    await self._publish(user_id, *sorted(tx.touched))
                return result

            logger.debug(
                "store_transaction_retry",
                user_id=user_id,
                attempt=attempt,
                reason=type(reason).__name__,
            )
            await asyncio.sleep(random.uniform(0, _BACKOFF_SECONDS * attempt))

        logger.warning("store_transaction_exhausted", user_id=user_id, attempts=self.max_attempts)
        raise ConflictError(
            f"Transaction aborted after {self.max_attempts} attempts due to concurrent updates"
        )

    async def watch(
        self,
        user_id: str,
        collections: tuple[str, ...],
        fetch: Callable[[], Awaitable[T]],
    ) -> LiveQuery[T]:
        """Register a live query and deliver its first snapshot."""
        return await self.changes.subscribe(user_id, collections, fetch)

    async def follow_external_commits(self, user_id: str, interval: float = 1.0) -> None:
        """Refresh this user's live queries when another process commits.

        SQLite bumps ``PRAGMA data_version`` on a connection whenever some
        other connection commits. Runs until cancelled.
        """
        if self.engine.dialect.name != "sqlite":
            # No commit counter to watch; refresh on every tick instead
            while True:
                await asyncio.sleep(interval)
                await self._publish(user_id, *COLLECTIONS)

        last_version = None
        async with self.engine.connect() as conn:
            while True:
                with _store_errors("poll for external commits"):
                    result = await conn.exec_driver_sql("PRAGMA data_version")
                    version = result.scalar()
                    # Drop the lock BEGIN IMMEDIATE took before sleeping
                    await conn.rollback()
                if last_version is not None and version != last_version:
                    logger.debug("external_commit_detected", user_id=user_id)
                    await self._publish(user_id, *COLLECTIONS)
                last_version = version
                await asyncio.sleep(interval)
