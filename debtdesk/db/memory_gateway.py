"""In-process gateway used for local development and tests."""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

import structlog

from .gateway import (
    ALL_EVENTS,
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    CurrentUser,
    DataGateway,
    FilterArg,
    Order,
    Subscription,
    normalize_filters,
    normalize_order,
    serialize_row,
)

logger = structlog.get_logger()

# Columns the hosted schema fills with now() on insert.
TIMESTAMP_DEFAULTS: Dict[str, Tuple[str, ...]] = {
    "case_intakes": ("created_at", "updated_at"),
    "actions": ("created_at",),
    "conversations": ("created_at", "updated_at"),
    "conversation_participants": ("joined_at",),
    "messages": ("created_at", "updated_at"),
}


def _sort_key(column: str):
    def key(row: Dict[str, Any]):
        value = row.get(column)
        return (value is None, value)
    return key


class InMemoryGateway(DataGateway):
    """Row store kept in process memory.

    Mirrors the hosted service closely enough for the services to run
    unchanged: ids and timestamps are filled on insert, timestamps are
    ISO strings, and every write fans out to matching subscriptions.
    """

    def __init__(self, current_user: Optional[CurrentUser] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.files: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.writes: List[Tuple[str, str, Dict[str, Any]]] = []
        self.current_user = current_user
        self._subscriptions: Set[Subscription] = set()
        self._last_timestamp = datetime.min.replace(tzinfo=timezone.utc)

    def now(self) -> str:
        """Current time as ISO string, strictly increasing per gateway."""
        now = datetime.now(timezone.utc)
        if now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now.isoformat()

    def seed(self, collection: str, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Load rows without emitting events or recording writes."""
        stored = [self._prepare(collection, row) for row in rows]
        self.tables.setdefault(collection, []).extend(stored)
        return copy.deepcopy(stored)

    def _prepare(self, collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = serialize_row(copy.deepcopy(row))
        stored.setdefault("id", str(uuid.uuid4()))
        missing = [c for c in TIMESTAMP_DEFAULTS.get(collection, ()) if stored.get(c) is None]
        if missing:
            stamp = self.now()
            for column in missing:
                stored[column] = stamp
        return stored

    async def select(
        self,
        collection: str,
        filters: FilterArg = None,
        order: Optional[Union[Order, Sequence[Order]]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        predicates = normalize_filters(filters)
        rows = [
            row for row in self.tables.get(collection, [])
            if all(p.matches(row) for p in predicates)
        ]
        # Apply the least significant ordering first; sorts are stable.
        for clause in reversed(normalize_order(order)):
            rows.sort(key=_sort_key(clause.column), reverse=clause.descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = self._prepare(collection, row)
        self.tables.setdefault(collection, []).append(stored)
        self.writes.append(("insert", collection, copy.deepcopy(stored)))
        self._publish(ChangeEvent(INSERT, collection, copy.deepcopy(stored)))
        return copy.deepcopy(stored)

    async def update(self, collection: str, filters: FilterArg, patch: Dict[str, Any]) -> None:
        predicates = normalize_filters(filters)
        patch = serialize_row(copy.deepcopy(patch))
        for row in self.tables.get(collection, []):
            if not all(p.matches(row) for p in predicates):
                continue
            old_row = copy.deepcopy(row)
            row.update(patch)
            self.writes.append(("update", collection, copy.deepcopy(row)))
            self._publish(ChangeEvent(UPDATE, collection, copy.deepcopy(row), old_row))

    async def delete(self, collection: str, filters: FilterArg) -> None:
        predicates = normalize_filters(filters)
        kept = []
        for row in self.tables.get(collection, []):
            if all(p.matches(row) for p in predicates):
                self.writes.append(("delete", collection, copy.deepcopy(row)))
                self._publish(ChangeEvent(DELETE, collection, {}, copy.deepcopy(row)))
            else:
                kept.append(row)
        self.tables[collection] = kept

    async def get_current_user(self) -> Optional[CurrentUser]:
        return self.current_user

    async def subscribe(
        self,
        collection: str,
        filters: FilterArg = None,
        events: Sequence[str] = ALL_EVENTS,
    ) -> Subscription:
        subscription = Subscription(
            collection,
            normalize_filters(filters),
            events,
            on_close=self._release,
        )
        self._subscriptions.add(subscription)
        logger.debug("Subscription opened", collection=collection, events=list(events))
        return subscription

    async def _release(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def upload_file(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self.files[(bucket, path)] = (content, content_type)
        self.writes.append(("upload", bucket, {"path": path, "content_type": content_type}))
        return f"{bucket}/{path}"

    def _publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.accepts(event):
                subscription.push(copy.deepcopy(event))
