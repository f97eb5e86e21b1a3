"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import Mock, AsyncMock, MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LIVE_REFRESH_DEBOUNCE_SECONDS", "0.05")
os.environ.setdefault("LOG_FORMAT", "text")

from src.models.inquiry import PropertyInquiry  # noqa: E402
from tests.utils.factories import (  # noqa: E402
    create_appointment,
    create_contact,
    create_conversation,
    create_inquiry_row,
    create_interaction,
    create_note,
)
from tests.utils.fakes import (  # noqa: E402
    FakeEventBus,
    InMemoryAppointmentStore,
    InMemoryContactStore,
    InMemoryConversationStore,
    InMemoryInquiryStore,
    InMemoryInteractionStore,
    InMemoryNoteStore,
    RecordingDispatcher,
)


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client whose query builder chains end in an awaitable execute()."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "eq", "or_", "order", "limit", "insert", "update"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=Mock(data=[]))
    client.table.return_value = query
    client.functions.invoke = AsyncMock(return_value=b"{}")
    return client


@pytest.fixture
def contact():
    """Registered contact with a linked account and an email."""
    return create_contact(
        contact_id="contact-1",
        agent_id="agent-1",
        linked_account_id="account-1",
        name="Jane Buyer",
        email="Jane.Buyer@Example.com",
        phone="555-0100",
    )


@pytest.fixture
def lead_contact():
    """Unregistered lead: no linked account, only an email."""
    return create_contact(
        contact_id="contact-2",
        agent_id="agent-1",
        linked_account_id=None,
        name="Sam Lead",
        email="sam.lead@example.com",
    )


@pytest.fixture
def contact_store(contact, lead_contact):
    return InMemoryContactStore([contact, lead_contact])


@pytest.fixture
def inquiry():
    """Buyer account-1 asking about listing-7."""
    return PropertyInquiry.from_row(create_inquiry_row(
        id="inquiry-1",
        buyer_id="account-1",
        property_id="listing-7",
        property_listings={"title": "Sunny bungalow", "address": "7 Birch Lane"},
        profiles={"id": "account-1", "full_name": "Jane Buyer", "email": "Jane.Buyer@Example.com"},
    ))


@pytest.fixture
def inquiry_store(inquiry):
    return InMemoryInquiryStore([inquiry])


@pytest.fixture
def appointment_store():
    return InMemoryAppointmentStore()


@pytest.fixture
def interaction_store():
    return InMemoryInteractionStore()


@pytest.fixture
def note_store():
    return InMemoryNoteStore()


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def event_bus():
    return FakeEventBus()


@pytest.fixture
def aggregator(contact_store, appointment_store, interaction_store, note_store, conversation_store):
    from src.services.timeline_aggregator import TimelineAggregator

    return TimelineAggregator(
        contacts=contact_store,
        appointments=appointment_store,
        interactions=interaction_store,
        notes=note_store,
        conversations=conversation_store,
        source_timeout=1.0,
    )


@pytest.fixture
def lifecycle(appointment_store, dispatcher):
    from src.services.appointment_lifecycle import AppointmentLifecycleManager

    return AppointmentLifecycleManager(store=appointment_store, dispatcher=dispatcher)


@pytest.fixture
def sample_records(contact):
    """One interaction, one note, one appointment and one conversation for `contact`."""
    return {
        "interaction": create_interaction(contact_id=contact.contact_id, created_at="2024-12-05T10:00:00+00:00"),
        "note": create_note(contact_id=contact.contact_id, created_at="2024-12-06T09:00:00+00:00"),
        "appointment": create_appointment(
            agent_id=contact.agent_id,
            contact_account_key=contact.linked_account_id,
            created_at="2024-12-07T08:00:00+00:00",
        ),
        "conversation": create_conversation(client_id=contact.linked_account_id),
    }


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture(scope="function")
def reset_environment(monkeypatch):
    """Reset environment variables for each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
