"""Abstract data gateway: row store, identity and realtime push."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

import structlog

logger = structlog.get_logger()

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = (INSERT, UPDATE, DELETE)


@dataclass(frozen=True)
class Filter:
    """Row predicate. ``op`` is ``eq`` or ``in``."""
    column: str
    value: Any
    op: str = "eq"

    def matches(self, row: Dict[str, Any]) -> bool:
        if self.op == "eq":
            return row.get(self.column) == self.value
        if self.op == "in":
            return row.get(self.column) in self.value
        raise ValueError(f"Unsupported filter op: {self.op}")


def eq(column: str, value: Any) -> Filter:
    return Filter(column, value, "eq")


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, tuple(values), "in")


@dataclass(frozen=True)
class Order:
    """Ordering clause."""
    column: str
    descending: bool = False


@dataclass(frozen=True)
class CurrentUser:
    """Identity reported by the gateway's auth service."""
    id: str
    email: Optional[str] = None


@dataclass
class ChangeEvent:
    """A row change pushed by the gateway."""
    event: str
    collection: str
    row: Dict[str, Any] = field(default_factory=dict)
    old_row: Optional[Dict[str, Any]] = None


_CLOSED = object()


class Subscription:
    """Cancellable stream of change events.

    Iterate with ``async for``; the stream ends once ``close()`` is called.
    Lifetime is owned by the caller, there is no timeout.
    """

    def __init__(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        events: Sequence[str] = ALL_EVENTS,
        on_close: Optional[Callable[["Subscription"], Awaitable[None]]] = None,
    ):
        self.collection = collection
        self.filters = tuple(filters)
        self.events = tuple(events)
        self._on_close = on_close
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def accepts(self, event: ChangeEvent) -> bool:
        if self.closed or event.collection != self.collection:
            return False
        if event.event not in self.events:
            return False
        row = event.row if event.event != DELETE else (event.old_row or event.row)
        return all(f.matches(row) for f in self.filters)

    def push(self, event: ChangeEvent) -> None:
        """Deliver an event; ignored once closed."""
        if not self.closed:
            self._queue.put_nowait(event)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            await self._on_close(self)
        logger.debug("Subscription closed", collection=self.collection)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


FilterArg = Optional[Union[Sequence[Filter], Dict[str, Any]]]


def serialize_row(value: Any) -> Any:
    """Convert datetimes to ISO strings, as they travel on the wire."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_row(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_row(v) for v in value]
    return value


def normalize_filters(filters: FilterArg) -> List[Filter]:
    """Accept a list of ``Filter`` or a plain ``{column: value}`` mapping."""
    if not filters:
        return []
    if isinstance(filters, dict):
        return [eq(column, value) for column, value in filters.items()]
    return list(filters)


def normalize_order(order: Optional[Union[Order, Sequence[Order]]]) -> List[Order]:
    if order is None:
        return []
    if isinstance(order, Order):
        return [order]
    return list(order)


class DataGateway(ABC):
    """Hosted row store / auth / realtime service contract."""

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: FilterArg = None,
        order: Optional[Union[Order, Sequence[Order]]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch rows matching all filters."""

    @abstractmethod
    async def insert(self, collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored."""

    @abstractmethod
    async def update(self, collection: str, filters: FilterArg, patch: Dict[str, Any]) -> None:
        """Patch every row matching the filters."""

    @abstractmethod
    async def get_current_user(self) -> Optional[CurrentUser]:
        """Identity of the session user, if any."""

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        filters: FilterArg = None,
        events: Sequence[str] = ALL_EVENTS,
    ) -> Subscription:
        """Open a push subscription."""

    @abstractmethod
    async def upload_file(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """Store a file and return its storage reference."""

    async def unsubscribe(self, subscription: Subscription) -> None:
        await subscription.close()

    async def ping(self) -> bool:
        """Readiness probe."""
        return True

    async def close(self) -> None:
        """Release client resources."""
