"""Tests for the live refresh coordinator."""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from src.services.live_refresh import LiveRefreshCoordinator, RefreshState, WATCHED_TABLES
from src.services.stores import APPOINTMENTS_TABLE, INTERACTIONS_TABLE
from tests.utils.factories import create_change_event

DEBOUNCE = 0.05


def _appointment_event(account_key="account-1", agent_id="agent-1", event_type="UPDATE"):
    return create_change_event(
        APPOINTMENTS_TABLE,
        {"appointment_id": "appt-1", "agent_id": agent_id, "contact_account_key": account_key},
        event_type=event_type,
    )


def _interaction_event(contact_id="contact-1", agent_id="agent-1"):
    return create_change_event(
        INTERACTIONS_TABLE,
        {"interaction_id": "int-1", "agent_id": agent_id, "contact_id": contact_id},
        event_type="INSERT",
    )


@pytest.fixture
def updates():
    return []


@pytest.fixture
def coordinator(aggregator, event_bus, contact, updates):
    return LiveRefreshCoordinator(
        aggregator,
        event_bus,
        contact,
        on_update=updates.append,
        debounce_seconds=DEBOUNCE,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_watches_appointments_and_interactions(coordinator, event_bus):
    await coordinator.subscribe()

    assert coordinator.state == RefreshState.SUBSCRIBED
    tables = sorted(handle.table for handle, _ in event_bus.subscriptions.values())
    assert tables == sorted(WATCHED_TABLES)
    assert all(handle.filter == "agent_id=eq.agent-1" for handle, _ in event_bus.subscriptions.values())

    await coordinator.unsubscribe()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_twice_is_a_no_op(coordinator, event_bus):
    await coordinator.subscribe()
    await coordinator.subscribe()

    assert len(event_bus.subscriptions) == 2
    await coordinator.unsubscribe()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_burst_of_events_triggers_one_refetch(coordinator, event_bus, updates):
    await coordinator.subscribe()

    for _ in range(5):
        event_bus.publish(_appointment_event())
        await asyncio.sleep(DEBOUNCE / 10)

    await asyncio.sleep(DEBOUNCE * 4)

    assert coordinator.refetch_count == 1
    assert len(updates) == 1
    assert coordinator.latest is updates[0]
    assert updates[0].contact_id == "contact-1"

    await coordinator.unsubscribe()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_events_after_quiet_period_refetch_again(coordinator, event_bus, updates):
    await coordinator.subscribe()

    event_bus.publish(_interaction_event())
    await asyncio.sleep(DEBOUNCE * 4)
    event_bus.publish(_appointment_event(event_type="DELETE"))
    await asyncio.sleep(DEBOUNCE * 4)

    assert coordinator.refetch_count == 2
    assert len(updates) == 2

    await coordinator.unsubscribe()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unrelated_events_are_ignored(coordinator, event_bus, updates):
    await coordinator.subscribe()

    event_bus.publish(_appointment_event(account_key="account-9"))
    event_bus.publish(_interaction_event(contact_id="contact-9"))
    await asyncio.sleep(DEBOUNCE * 4)

    assert coordinator.refetch_count == 0
    assert updates == []

    await coordinator.unsubscribe()


@pytest.mark.unit
def test_is_relevant(coordinator):
    assert coordinator.is_relevant(_appointment_event())
    assert coordinator.is_relevant(_interaction_event())
    # Email-filed legacy appointments match case-insensitively
    legacy = create_change_event(
        APPOINTMENTS_TABLE,
        {"agent_id": "agent-1", "contact_account_key": None, "contact_email_key": "JANE.BUYER@example.com"},
    )
    assert coordinator.is_relevant(legacy)
    # Deletes carry only the old row
    deleted = create_change_event(
        APPOINTMENTS_TABLE,
        {},
        event_type="DELETE",
        old_record={"agent_id": "agent-1", "contact_account_key": "account-1"},
    )
    assert coordinator.is_relevant(deleted)
    assert not coordinator.is_relevant(_appointment_event(agent_id="agent-2"))
    assert not coordinator.is_relevant(create_change_event(APPOINTMENTS_TABLE, {}))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe_cancels_pending_refetch(coordinator, event_bus, updates):
    await coordinator.subscribe()

    event_bus.publish(_appointment_event())
    await coordinator.unsubscribe()
    await asyncio.sleep(DEBOUNCE * 4)

    assert coordinator.refetch_count == 0
    assert updates == []
    assert len(event_bus.unsubscribed) == 2
    assert event_bus.subscriptions == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_events_after_unsubscribe_are_dropped(coordinator, updates):
    await coordinator.subscribe()
    await coordinator.unsubscribe()

    # A late delivery from the transport after the channel was released
    coordinator._on_change(_appointment_event())
    await asyncio.sleep(DEBOUNCE * 4)

    assert coordinator.refetch_count == 0
    assert updates == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_in_flight_refetch_is_discarded_after_unsubscribe(coordinator, event_bus, appointment_store, updates):
    appointment_store.query_delay = DEBOUNCE * 4
    await coordinator.subscribe()

    event_bus.publish(_appointment_event())
    await asyncio.sleep(DEBOUNCE * 2)
    assert coordinator.refetch_count == 1

    await coordinator.unsubscribe()
    await asyncio.sleep(DEBOUNCE * 6)

    assert updates == []
    assert coordinator.latest is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_context_manager_releases_subscriptions(aggregator, event_bus, contact):
    async with LiveRefreshCoordinator(aggregator, event_bus, contact, debounce_seconds=DEBOUNCE) as live:
        assert live.is_subscribed
        assert len(event_bus.subscriptions) == 2

    assert live.state == RefreshState.IDLE
    assert event_bus.subscriptions == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_subscribe_releases_partial_subscriptions(coordinator, event_bus):
    event_bus.fail_subscribe_on = INTERACTIONS_TABLE

    with pytest.raises(RuntimeError):
        await coordinator.subscribe()

    assert coordinator.state == RefreshState.IDLE
    assert event_bus.subscriptions == {}
    assert [h.table for h in event_bus.unsubscribed] == [APPOINTMENTS_TABLE]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe_keeps_going_when_release_fails(coordinator, event_bus):
    await coordinator.subscribe()
    event_bus.unsubscribe = AsyncMock(side_effect=[RuntimeError("socket closed"), None])

    await coordinator.unsubscribe()

    assert event_bus.unsubscribe.await_count == 2
    assert coordinator.handles == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_fetches_immediately(coordinator, updates):
    timeline = await coordinator.refresh()

    assert timeline is not None
    assert coordinator.refetch_count == 1
    assert updates == [timeline]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_async_callback_is_awaited(aggregator, event_bus, contact):
    on_update = AsyncMock()
    live = LiveRefreshCoordinator(aggregator, event_bus, contact, on_update=on_update, debounce_seconds=DEBOUNCE)

    timeline = await live.refresh()

    on_update.assert_awaited_once_with(timeline)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_callback_errors_do_not_escape(aggregator, event_bus, contact):
    on_update = Mock(side_effect=ValueError("render failed"))
    live = LiveRefreshCoordinator(aggregator, event_bus, contact, on_update=on_update, debounce_seconds=DEBOUNCE)

    timeline = await live.refresh()

    assert timeline is not None
    assert live.latest is timeline


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_refetch_keeps_previous_timeline(coordinator, contact_store):
    first = await coordinator.refresh()
    contact_store.contacts.clear()

    assert await coordinator.refresh() is None
    assert coordinator.latest is first


class _SequencedAggregator:
    """Returns timeline-vN for call N, sleeping the matching delay first."""

    def __init__(self, delays):
        self.delays = list(delays)
        self.calls = 0
        self.cancelled = 0

    async def get_timeline(self, contact_id, agent_id):
        self.calls += 1
        call = self.calls
        try:
            await asyncio.sleep(self.delays[call - 1])
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return f"timeline-v{call}"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_refetch_does_not_overwrite_newer_result(event_bus, contact):
    stub = _SequencedAggregator([0.3, 0.01])
    delivered = []
    live = LiveRefreshCoordinator(stub, event_bus, contact, on_update=delivered.append, debounce_seconds=DEBOUNCE)
    await live.subscribe()

    event_bus.publish(_appointment_event())
    await asyncio.sleep(DEBOUNCE * 2)
    event_bus.publish(_appointment_event())
    await asyncio.sleep(0.4)

    assert stub.calls == 2
    assert live.latest == "timeline-v2"
    assert delivered == ["timeline-v2"]

    await live.unsubscribe()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe_cancels_running_refetch(event_bus, contact):
    stub = _SequencedAggregator([1.0])
    live = LiveRefreshCoordinator(stub, event_bus, contact, debounce_seconds=DEBOUNCE)
    await live.subscribe()

    event_bus.publish(_appointment_event())
    await asyncio.sleep(DEBOUNCE * 2)
    assert stub.calls == 1

    await live.unsubscribe()
    await asyncio.sleep(DEBOUNCE)

    assert stub.cancelled == 1
    assert live.latest is None
    assert live._tasks == set()
