"""Activity normalizer - reshape interactions, appointments and notes into Activities."""

from datetime import datetime, time, timezone
from typing import Iterable, Optional

from src.models.activity import Activity, SourceType, SOURCE_PRECEDENCE
from src.models.appointment import Appointment
from src.models.conversation import Conversation, ConversationSummary
from src.models.interaction import Interaction, Note


# Number of newest messages carried on a conversation summary
RECENT_MESSAGE_PREVIEW = 2


def make_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware (UTC if naive)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _enum_value(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


def normalize_interaction(interaction: Interaction) -> Activity:
    return Activity(
        source_type=SourceType.INTERACTION,
        id=interaction.interaction_id,
        timestamp=make_aware(interaction.created_at),
        title=interaction.subject or interaction.interaction_type,
        body=interaction.content,
        status=interaction.outcome,
        extra={
            "interaction_type": interaction.interaction_type,
            "duration_minutes": interaction.duration_minutes,
            "next_follow_up": make_aware(interaction.next_follow_up),
        },
    )


def appointment_timestamp(appointment: Appointment) -> datetime:
    """Creation time, or the scheduled start when the row has no created_at."""
    if appointment.created_at is not None:
        return make_aware(appointment.created_at)
    try:
        return make_aware(appointment.starts_at())
    except ValueError:
        return make_aware(datetime.combine(appointment.date, time.min))


def normalize_appointment(appointment: Appointment) -> Activity:
    appointment_type = _enum_value(appointment.appointment_type)
    return Activity(
        source_type=SourceType.APPOINTMENT,
        id=appointment.appointment_id,
        timestamp=appointment_timestamp(appointment),
        title=f"{appointment_type} - {appointment.property_ref or ''}",
        body=appointment.notes or f"Scheduled for {appointment.date.isoformat()} {appointment.time}",
        status=_enum_value(appointment.status),
        extra={
            "date": appointment.date.isoformat(),
            "time": appointment.time,
            "type": appointment_type,
            "duration_minutes": appointment.duration_minutes,
        },
    )


def normalize_note(note: Note) -> Activity:
    return Activity(
        source_type=SourceType.NOTE,
        id=note.note_id,
        timestamp=make_aware(note.created_at),
        title=note.note_type,
        body=note.content,
        status=None,
    )


def summarize_conversation(conversation: Conversation) -> ConversationSummary:
    """Conversations stay out of the activity feed; only a summary is surfaced."""
    messages = sorted(
        conversation.messages,
        key=lambda m: make_aware(m.created_at),
        reverse=True,
    )
    latest = make_aware(messages[0].created_at) if messages else None
    return ConversationSummary(
        conversation_id=conversation.conversation_id,
        subject=conversation.subject or "General Conversation",
        status=conversation.status,
        created_at=make_aware(conversation.created_at),
        last_message_at=make_aware(conversation.last_message_at) or latest,
        message_count=len(messages),
        latest_message_at=latest,
        recent_messages=messages[:RECENT_MESSAGE_PREVIEW],
    )


def sort_activities(activities: Iterable[Activity]) -> list[Activity]:
    """Newest first; equal timestamps ordered appointment, interaction, note, then by id.

    The result depends only on the set of activities, never on input order.
    """
    by_tiebreak = sorted(activities, key=lambda a: (SOURCE_PRECEDENCE[a.source_type], a.id))
    # Stable sort keeps the tie-break order among equal timestamps
    return sorted(by_tiebreak, key=lambda a: make_aware(a.timestamp), reverse=True)


def sort_notes(notes: Iterable[Note]) -> list[Note]:
    by_id = sorted(notes, key=lambda n: n.note_id)
    return sorted(by_id, key=lambda n: make_aware(n.created_at), reverse=True)


def sort_conversations(summaries: Iterable[ConversationSummary]) -> list[ConversationSummary]:
    """Most recently active conversation first; threads with no activity last."""
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    by_id = sorted(summaries, key=lambda c: c.conversation_id)
    return sorted(
        by_id,
        key=lambda c: c.last_message_at or c.created_at or epoch,
        reverse=True,
    )
