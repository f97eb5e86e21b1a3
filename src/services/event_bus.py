"""Change-event bus - Supabase realtime postgres_changes subscriptions."""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from src.models.change_event import ChangeEvent
from src.services.supabase_client import get_supabase_client
from src.utils.errors import SupabaseError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


@dataclass
class SubscriptionHandle:
    """Opaque handle returned by EventBus.subscribe."""
    table: str
    filter: Optional[str] = None
    handle_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    channel: Any = None


class EventBus(ABC):
    @abstractmethod
    async def subscribe(self, table: str, callback: ChangeCallback, filter: Optional[str] = None) -> SubscriptionHandle:
        """Deliver every change on `table` matching `filter` to callback."""

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop deliveries for handle. Safe to call more than once."""


class SupabaseEventBus(EventBus):
    """One realtime channel per subscription.

    `filter` uses the realtime filter syntax, e.g. ``agent_id=eq.<id>``.
    """

    def __init__(self, schema: str = "public"):
        self.schema = schema

    async def subscribe(self, table: str, callback: ChangeCallback, filter: Optional[str] = None) -> SubscriptionHandle:
        handle = SubscriptionHandle(table=table, filter=filter)

        def _deliver(payload: dict) -> None:
            callback(ChangeEvent.from_realtime(table, payload))

        try:
            client = await get_supabase_client()
            channel = client.channel(f"{table}-changes-{handle.handle_id}")
            options = {"schema": self.schema, "table": table, "callback": _deliver}
            if filter:
                options["filter"] = filter
            channel.on_postgres_changes("*", **options)
            await channel.subscribe()
        except Exception as e:
            raise SupabaseError(f"Failed to subscribe to {table} changes: {e}") from e

        handle.channel = channel
        logger.info("Realtime subscription opened", table=table, handle_id=handle.handle_id, has_filter=bool(filter))
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        if handle.channel is None:
            return
        channel, handle.channel = handle.channel, None
        try:
            client = await get_supabase_client()
            await client.remove_channel(channel)
        except Exception as e:
            raise SupabaseError(f"Failed to unsubscribe from {handle.table} changes: {e}") from e
        logger.info("Realtime subscription closed", table=handle.table, handle_id=handle.handle_id)
