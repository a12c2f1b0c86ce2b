"""Result values and view states for callers that render outcomes.

Services raise ``DomainError`` subclasses. Boundaries that prefer values wrap
calls with ``capture`` and dispatch on ``Ok``/``Err`` with ``isinstance``.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, TypeVar, Union

from conti.domain.errors import DomainError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: DomainError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.error)


Result = Union[Ok[T], Err]


async def capture(awaitable: Awaitable[T]) -> "Result[T]":
    """Await ``awaitable`` and turn a raised DomainError into ``Err``."""
    try:
        return Ok(await awaitable)
    except DomainError as e:
        return Err(e)


@dataclass(frozen=True)
class Loading:
    """No snapshot received yet."""


@dataclass(frozen=True)
class Empty:
    """A snapshot arrived and it holds nothing."""


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T


@dataclass(frozen=True)
class Failure:
    message: str


ViewState = Union[Loading, Empty, Success[Any], Failure]


def view_state(snapshot: Optional[Any] = None, error: Optional[BaseException] = None) -> ViewState:
    """Map the latest snapshot (or failure) of a query to a view state."""
    if error is not None:
        return Failure(str(error))
    if isinstance(snapshot, Err):
        return Failure(snapshot.message)
    if isinstance(snapshot, Ok):
        snapshot = snapshot.value
    if snapshot is None:
        return Loading()
    if hasattr(snapshot, "__len__") and len(snapshot) == 0:
        return Empty()
    return Success(snapshot)
