"""Gateway backed by the hosted Supabase project."""

import uuid
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog
from supabase import AsyncClient, acreate_client
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from ..core.config import settings
from ..services.error_handling import GatewayError
from .gateway import (
    ALL_EVENTS,
    ChangeEvent,
    CurrentUser,
    DataGateway,
    Filter,
    FilterArg,
    Order,
    Subscription,
    normalize_filters,
    normalize_order,
    serialize_row,
)

logger = structlog.get_logger()


def _realtime_filter(filters: Sequence[Filter]) -> Optional[str]:
    """Realtime accepts a single server-side filter; the rest is checked locally."""
    if not filters:
        return None
    first = filters[0]
    if first.op == "in":
        return f"{first.column}=in.({','.join(str(v) for v in first.value)})"
    return f"{first.column}=eq.{first.value}"


def _to_change_event(collection: str, payload: Dict[str, Any]) -> ChangeEvent:
    data = payload.get("data", payload)
    event = (data.get("type") or data.get("eventType") or "").upper()
    row = data.get("record") or data.get("new") or {}
    old_row = data.get("old_record") or data.get("old") or None
    return ChangeEvent(event=event, collection=collection, row=row, old_row=old_row)


class SupabaseGateway(DataGateway):
    """Row store, auth and realtime over the supabase async client."""

    def __init__(self, client: AsyncClient):
        self.client = client
        self._channels: Dict[Subscription, Any] = {}

    @classmethod
    async def connect(
        cls,
        url: Optional[str] = None,
        key: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> "SupabaseGateway":
        """Create the client, retrying with exponential backoff."""
        url = url or settings.supabase_url
        key = key or settings.supabase_key
        if not url or not key:
            raise GatewayError("SUPABASE_URL and SUPABASE_KEY must be set", operation="connect")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts or settings.gateway_connect_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        ):
            with attempt:
                logger.info("Connecting to Supabase", attempt=attempt.retry_state.attempt_number)
                client = await acreate_client(url, key)
        return cls(client)

    async def select(
        self,
        collection: str,
        filters: FilterArg = None,
        order: Optional[Union[Order, Sequence[Order]]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            query = self.client.table(collection).select("*")
            for f in normalize_filters(filters):
                if f.op == "in":
                    query = query.in_(f.column, list(f.value))
                else:
                    query = query.eq(f.column, f.value)
            for clause in normalize_order(order):
                query = query.order(clause.column, desc=clause.descending)
            if limit is not None:
                query = query.limit(limit)
            response = await query.execute()
        except Exception as e:
            raise GatewayError(str(e), operation="select", collection=collection) from e
        return response.data or []

    async def insert(self, collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.table(collection).insert(serialize_row(row)).execute()
        except Exception as e:
            raise GatewayError(str(e), operation="insert", collection=collection) from e
        if not response.data:
            raise GatewayError("Insert returned no row", operation="insert", collection=collection)
        return response.data[0]

    async def update(self, collection: str, filters: FilterArg, patch: Dict[str, Any]) -> None:
        try:
            query = self.client.table(collection).update(serialize_row(patch))
            for f in normalize_filters(filters):
                if f.op == "in":
                    query = query.in_(f.column, list(f.value))
                else:
                    query = query.eq(f.column, f.value)
            await query.execute()
        except Exception as e:
            raise GatewayError(str(e), operation="update", collection=collection) from e

    async def get_current_user(self) -> Optional[CurrentUser]:
        try:
            response = await self.client.auth.get_user()
        except Exception as e:
            # No session is reported as an exception by the auth client.
            logger.debug("No authenticated session", error=str(e))
            return None
        if not response or not response.user:
            return None
        return CurrentUser(id=response.user.id, email=response.user.email)

    async def subscribe(
        self,
        collection: str,
        filters: FilterArg = None,
        events: Sequence[str] = ALL_EVENTS,
    ) -> Subscription:
        predicates = normalize_filters(filters)
        subscription = Subscription(collection, predicates, events, on_close=self._release)

        def on_change(payload: Dict[str, Any]) -> None:
            event = _to_change_event(collection, payload)
            if subscription.accepts(event):
                subscription.push(event)

        server_filter = _realtime_filter(predicates)
        channel = self.client.channel(f"{collection}:{uuid.uuid4().hex[:12]}")
        wanted = ["*"] if set(events) == set(ALL_EVENTS) else list(events)
        for event in wanted:
            kwargs = {"schema": "public", "table": collection, "callback": on_change}
            if server_filter:
                kwargs["filter"] = server_filter
            channel.on_postgres_changes(event, **kwargs)

        try:
            await channel.subscribe()
        except Exception as e:
            raise GatewayError(str(e), operation="subscribe", collection=collection) from e

        self._channels[subscription] = channel
        logger.info("Realtime channel subscribed", collection=collection, filter=server_filter)
        return subscription

    async def _release(self, subscription: Subscription) -> None:
        channel = self._channels.pop(subscription, None)
        if channel is None:
            return
        try:
            await self.client.remove_channel(channel)
        except Exception as e:
            logger.warning(f"Failed to remove realtime channel: {e}", collection=subscription.collection)

    async def upload_file(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        try:
            await self.client.storage.from_(bucket).upload(
                path, content, {"content-type": content_type}
            )
        except Exception as e:
            raise GatewayError(str(e), operation="upload", collection=bucket) from e
        return f"{bucket}/{path}"

    async def ping(self) -> bool:
        try:
            await self.client.table("case_intakes").select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.warning(f"Supabase ping failed: {e}")
            return False

    async def close(self) -> None:
        for subscription in list(self._channels):
            await subscription.close()
