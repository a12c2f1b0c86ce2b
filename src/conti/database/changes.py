"""Realtime change feed for watched queries.

A ``LiveQuery`` re-runs its fetch whenever a committed write touches one of the
collections it watches for the same user, and queues the full snapshot. Only the latest unread snapshot is kept.
Consumers iterate it with ``async for`` until ``close()`` is called.
"""

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Generic, Iterable, TypeVar

from conti.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"
SUBSCRIPTIONS = "subscriptions"
PROFILE = "profile"

COLLECTIONS = (ACCOUNTS, TRANSACTIONS, SUBSCRIPTIONS, PROFILE)

_CLOSED = object()


class _Failed:
    def __init__(self, error: BaseException):
        self.error = error


class LiveQuery(Generic[T]):
    """Handle on a realtime query.

    Yields one snapshot right after registration and one per committed
    change afterwards. Leaving ``async with`` or calling ``close()`` removes
    the listener and ends iteration.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        user_id: str,
        collections: tuple[str, ...],
        fetch: Callable[[], Awaitable[T]],
    ):
        self._feed = feed
        self.user_id = user_id
        self.collections = collections
        self._fetch = fetch
        self._queue: asyncio.Queue = asyncio.Queue()
        self._lock = asyncio.Lock()
        self.closed = False

    async def refresh(self) -> None:
        """Re-run the query and queue the resulting snapshot."""
        if self.closed:
            return
        async with self._lock:
            try:
                snapshot = await self._fetch()
            except Exception as e:
                logger.warning(
                    "live_query_refresh_failed",
                    user_id=self.user_id,
                    collections=list(self.collections),
                    error=str(e),
                )
                self._offer(_Failed(e))
                return
            self._offer(snapshot)

    def _offer(self, item) -> None:
        if self.closed:
            return
        # A newer snapshot supersedes any the reader has not consumed yet
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Stop listening. Pending iteration ends after queued snapshots."""
        if self.closed:
            return
        self.closed = True
        self._feed.unregister(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "LiveQuery[T]":
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the sentinel so later calls also stop
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        if isinstance(item, _Failed):
            raise item.error
        return item

    async def __aenter__(self) -> "LiveQuery[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    """Registry of live queries keyed by (user_id, collection)."""

    def __init__(self):
        self._listeners: dict[tuple[str, str], list[LiveQuery]] = defaultdict(list)

    def register(self, query: LiveQuery) -> None:
        for collection in query.collections:
            self._listeners[(query.user_id, collection)].append(query)

    def unregister(self, query: LiveQuery) -> None:
        for collection in query.collections:
            key = (query.user_id, collection)
            listeners = self._listeners.get(key)
            if not listeners:
                continue
            if query in listeners:
                listeners.remove(query)
            if not listeners:
                del self._listeners[key]

    def listener_count(self, user_id: str, collection: str) -> int:
        return len(self._listeners.get((user_id, collection), ()))

    async def publish(self, user_id: str, collections: Iterable[str]) -> None:
        """Notify every listener watching one of ``collections`` for ``user_id``."""
        targets: list[LiveQuery] = []
        for collection in collections:
            for query in self._listeners.get((user_id, collection), ()):
                if query not in targets:
                    targets.append(query)
        await asyncio.gather(*(query.refresh() for query in targets))

    async def subscribe(
        self,
        user_id: str,
        collections: tuple[str, ...],
        fetch: Callable[[], Awaitable[T]],
    ) -> LiveQuery[T]:
        """Register a live query and deliver its first snapshot."""
        query: LiveQuery[T] = LiveQuery(self, user_id, collections, fetch)
        self.register(query)
        await query.refresh()
        return query
