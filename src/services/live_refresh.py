"""Live refresh coordinator - keep a displayed timeline current as records change."""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from src.models.change_event import ChangeEvent
from src.models.contact import Contact
from src.models.timeline import Timeline
from src.services.event_bus import EventBus, SubscriptionHandle
from src.services.identity_resolver import record_matches_keys, resolve_keys
from src.services.stores import APPOINTMENTS_TABLE, INTERACTIONS_TABLE
from src.services.timeline_aggregator import TimelineAggregator
from src.utils.config import ServiceConfig
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

WATCHED_TABLES = (APPOINTMENTS_TABLE, INTERACTIONS_TABLE)

TimelineCallback = Callable[[Timeline], Union[None, Awaitable[None]]]


class RefreshState(str, Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"


class LiveRefreshCoordinator:
    """Re-aggregates one contact's timeline after relevant changes.

    Relevant means the changed row belongs to this agent and is filed under
    any of the contact's resolved keys. Bursts of events inside the debounce
    window collapse into a single refetch. After unsubscribe() no refetch is
    started and no result is delivered, even for events already in flight.

    The owner must release the subscription, either by calling unsubscribe()
    or by using the coordinator as an async context manager.
    """

    def __init__(
        self,
        aggregator: TimelineAggregator,
        event_bus: EventBus,
        contact: Contact,
        agent_id: Optional[str] = None,
        on_update: Optional[TimelineCallback] = None,
        debounce_seconds: float = ServiceConfig.LIVE_REFRESH_DEBOUNCE_SECONDS,
    ):
        self.aggregator = aggregator
        self.event_bus = event_bus
        self.contact_id = contact.contact_id
        self.agent_id = agent_id or contact.agent_id
        self.keys = resolve_keys(contact).candidates()
        self.on_update = on_update
        self.debounce_seconds = debounce_seconds

        self.state = RefreshState.IDLE
        self.latest: Optional[Timeline] = None
        self.refetch_count = 0
        self.handles: list[SubscriptionHandle] = []
        self._timer: Optional[asyncio.Task] = None
        # Strong references to debounce and refetch tasks until they finish
        self._tasks: set[asyncio.Task] = set()
        # Refetches are numbered as they start; an older result never replaces a newer one
        self._started_seq = 0
        self._delivered_seq = 0
        # Bumped on unsubscribe so in-flight work can tell it is stale
        self._generation = 0

    async def __aenter__(self) -> "LiveRefreshCoordinator":
        await self.subscribe()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.unsubscribe()
        return False

    @property
    def is_subscribed(self) -> bool:
        return self.state == RefreshState.SUBSCRIBED

    async def subscribe(self) -> None:
        """Start listening on the appointment and interaction tables."""
        if self.is_subscribed:
            return

        self.state = RefreshState.SUBSCRIBED
        try:
            for table in WATCHED_TABLES:
                handle = await self.event_bus.subscribe(
                    table,
                    self._on_change,
                    filter=f"agent_id=eq.{self.agent_id}",
                )
                self.handles.append(handle)
        except Exception:
            await self.unsubscribe()
            raise

        logger.info(
            "Live refresh subscribed",
            contact_id=self.contact_id,
            agent_id=self.agent_id,
            tables=list(WATCHED_TABLES),
            debounce_seconds=self.debounce_seconds,
        )

    async def unsubscribe(self) -> None:
        """Stop listening. Pending and in-flight refetches are discarded."""
        was_subscribed = self.is_subscribed
        self.state = RefreshState.IDLE
        self._generation += 1

        self._timer = None
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()

        handles, self.handles = self.handles, []
        for handle in handles:
            try:
                await self.event_bus.unsubscribe(handle)
            except Exception as e:
                # Keep releasing the remaining handles
                logger.error(
                    "Failed to release change subscription",
                    contact_id=self.contact_id,
                    table=handle.table,
                    error=str(e),
                )

        if was_subscribed:
            logger.info("Live refresh unsubscribed", contact_id=self.contact_id, agent_id=self.agent_id)

    def is_relevant(self, event: ChangeEvent) -> bool:
        """Agent owns the row and the row is filed under one of the contact's keys."""
        rows = [row for row in (event.record, event.old_record) if row]
        if not rows:
            return False
        for row in rows:
            if row.get("agent_id") != self.agent_id:
                continue
            if record_matches_keys(row, self.keys):
                return True
        return False

    def _on_change(self, event: ChangeEvent) -> None:
        if not self.is_subscribed:
            logger.debug("Dropping change event after unsubscribe", table=event.table, event_type=event.event_type)
            return
        if not self.is_relevant(event):
            return

        logger.debug(
            "Relevant change received",
            contact_id=self.contact_id,
            table=event.table,
            event_type=event.event_type,
        )

        # Reset the debounce timer
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        task = asyncio.get_running_loop().create_task(self._refetch_after_delay(self._generation))
        self._timer = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refetch_after_delay(self, generation: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation or not self.is_subscribed:
            return
        # Detach so a new event restarts the timer instead of cancelling this refetch
        if self._timer is asyncio.current_task():
            self._timer = None
        await self._refetch(generation)

    async def _refetch(self, generation: int) -> Optional[Timeline]:
        self.refetch_count += 1
        self._started_seq += 1
        seq = self._started_seq
        try:
            timeline = await self.aggregator.get_timeline(self.contact_id, self.agent_id)
        except Exception as e:
            logger.error(
                "Live refresh failed",
                contact_id=self.contact_id,
                agent_id=self.agent_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if generation != self._generation:
            logger.debug("Discarding refetch finished after unsubscribe", contact_id=self.contact_id)
            return None

        if seq < self._delivered_seq:
            logger.debug(
                "Discarding refetch overtaken by a newer one",
                contact_id=self.contact_id,
                seq=seq,
                delivered_seq=self._delivered_seq,
            )
            return None

        self._delivered_seq = seq
        self.latest = timeline
        await self._deliver(timeline)
        return timeline

    async def _deliver(self, timeline: Timeline) -> None:
        if self.on_update is None:
            return
        try:
            result: Any = self.on_update(timeline)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Timeline update callback failed",
                contact_id=self.contact_id,
                error=str(e),
                exc_info=True,
            )

    async def refresh(self) -> Optional[Timeline]:
        """Fetch immediately (initial load or manual reload)."""
        return await self._refetch(self._generation)
