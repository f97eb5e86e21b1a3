"""Timeline aggregator - one contact's interactions, appointments, notes and conversations."""

import asyncio
from typing import Any, Awaitable, Optional

from src.models.timeline import SourceDiagnostic, Timeline
from src.services.activity_normalizer import (
    normalize_appointment,
    normalize_interaction,
    sort_activities,
    sort_conversations,
    sort_notes,
    summarize_conversation,
)
from src.services.identity_resolver import dedupe_by_id, resolve_keys
from src.services.stores import (
    AppointmentStore,
    ContactStore,
    ConversationStore,
    InteractionStore,
    NoteStore,
    SupabaseAppointmentStore,
    SupabaseContactStore,
    SupabaseConversationStore,
    SupabaseInteractionStore,
    SupabaseNoteStore,
)
from src.utils.config import ServiceConfig
from src.utils.errors import NotFoundError, PartialAggregationFailure
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)


async def _nothing() -> list:
    return []


class TimelineAggregator:
    """Builds a contact's timeline from every store concurrently.

    A failing or timed-out source degrades to an empty collection and a
    diagnostic entry; only a missing contact fails the whole call.
    """

    def __init__(
        self,
        contacts: ContactStore,
        appointments: AppointmentStore,
        interactions: InteractionStore,
        notes: NoteStore,
        conversations: ConversationStore,
        source_timeout: Optional[float] = ServiceConfig.TIMELINE_SOURCE_TIMEOUT_SECONDS,
    ):
        self.contacts = contacts
        self.appointments = appointments
        self.interactions = interactions
        self.notes = notes
        self.conversations = conversations
        self.source_timeout = source_timeout

    async def _collect(self, source: str, query: Awaitable[list[Any]]) -> tuple[list[Any], Optional[SourceDiagnostic]]:
        try:
            if self.source_timeout:
                rows = await asyncio.wait_for(query, timeout=self.source_timeout)
            else:
                rows = await query
            return list(rows or []), None
        except Exception as e:
            failure = PartialAggregationFailure(source, e)
            logger.warning(
                "Timeline source failed, continuing without it",
                source=failure.source,
                error=str(failure.cause) or type(failure.cause).__name__,
                error_type=type(failure.cause).__name__,
            )
            return [], SourceDiagnostic(
                source=failure.source,
                error_type=type(failure.cause).__name__,
                error=str(failure.cause) or type(failure.cause).__name__,
            )

    async def get_timeline(self, contact_id: str, agent_id: Optional[str] = None) -> Timeline:
        """Aggregate the history of contact_id as seen by agent_id.

        agent_id defaults to the contact's owner. Asking for another agent's
        contact raises NotFoundError, like a missing contact.
        """
        contact = await self.contacts.get_by_id(contact_id)
        if agent_id is not None and contact.agent_id != agent_id:
            raise NotFoundError(f"Contact not found: {contact_id}")
        agent_id = agent_id or contact.agent_id

        keys = resolve_keys(contact)
        lookup_keys = keys.candidates()

        with log_timing(
            "get_timeline",
            logger=logger,
            contact_id=contact_id,
            agent_id=agent_id,
            key_count=len(lookup_keys),
        ):
            # Conversations have no fallback key: no linked account, no conversations
            conversation_query = (
                self.conversations.query(keys.primary_account_key)
                if keys.primary_account_key
                else _nothing()
            )
            results = await asyncio.gather(
                self._collect("interactions", self.interactions.query(contact_id)),
                self._collect("notes", self.notes.query(contact_id)),
                self._collect("appointments", self.appointments.query(agent_id, lookup_keys)),
                self._collect("conversations", conversation_query),
            )

        (interactions, _), (notes, _), (appointments, _), (conversations, _) = results
        diagnostics = [diagnostic for _, diagnostic in results if diagnostic is not None]

        # The same appointment can match on more than one key
        appointments = [
            appointment
            for appointment in dedupe_by_id(appointments, "appointment_id")
            if appointment.agent_id == agent_id
        ]

        activities = sort_activities(
            [normalize_interaction(interaction) for interaction in interactions]
            + [normalize_appointment(appointment) for appointment in appointments]
        )

        timeline = Timeline(
            contact_id=contact_id,
            agent_id=agent_id,
            resolved_keys=keys,
            interactions=activities,
            notes=sort_notes(notes),
            conversations=sort_conversations(summarize_conversation(c) for c in conversations),
            diagnostics=diagnostics,
        )

        logger.info(
            "Timeline aggregated",
            contact_id=contact_id,
            agent_id=agent_id,
            account_key=mask_user_id(keys.primary_account_key),
            activity_count=len(timeline.interactions),
            appointment_count=len(appointments),
            note_count=len(timeline.notes),
            conversation_count=timeline.conversation_count,
            failed_sources=timeline.failed_sources,
        )
        return timeline


# Global aggregator instance wired to Supabase
_timeline_aggregator: Optional[TimelineAggregator] = None


def get_timeline_aggregator() -> TimelineAggregator:
    """Get or create the Supabase-backed aggregator."""
    global _timeline_aggregator
    if _timeline_aggregator is None:
        _timeline_aggregator = TimelineAggregator(
            contacts=SupabaseContactStore(),
            appointments=SupabaseAppointmentStore(),
            interactions=SupabaseInteractionStore(),
            notes=SupabaseNoteStore(),
            conversations=SupabaseConversationStore(),
        )
    return _timeline_aggregator
