"""Data gateway implementations."""

from ..core.config import settings
from .gateway import (
    ChangeEvent,
    CurrentUser,
    DataGateway,
    Filter,
    Order,
    Subscription,
    eq,
    in_,
)
from .memory_gateway import InMemoryGateway


async def create_gateway() -> DataGateway:
    """Build the gateway selected by ``GATEWAY_BACKEND``."""
    if settings.gateway_backend == "supabase":
        from .supabase_gateway import SupabaseGateway
        return await SupabaseGateway.connect()
    return InMemoryGateway()


__all__ = [
    "ChangeEvent",
    "CurrentUser",
    "DataGateway",
    "Filter",
    "InMemoryGateway",
    "Order",
    "Subscription",
    "create_gateway",
    "eq",
    "in_",
]
