"""Store interfaces consumed by the CRM core, with Supabase-backed implementations.

The core only depends on the abstract stores; the Supabase classes map them
onto the clients, appointments, client_interactions, client_notes,
conversations and property_inquiries tables.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Type, TypeVar

from pydantic import BaseModel, ValidationError

from src.models.appointment import Appointment
from src.models.contact import Contact
from src.models.conversation import Conversation
from src.models.interaction import Interaction, Note
from src.models.inquiry import PropertyInquiry
from src.services.identity_resolver import APPOINTMENT_KEY_COLUMNS
from src.services.supabase_client import SupabaseClient, in_list, quote_filter_value
from src.utils.errors import NotFoundError, PersistenceError, SupabaseError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CONTACTS_TABLE = "clients"
APPOINTMENTS_TABLE = "appointments"
INTERACTIONS_TABLE = "client_interactions"
NOTES_TABLE = "client_notes"
CONVERSATIONS_TABLE = "conversations"
INQUIRIES_TABLE = "property_inquiries"

INQUIRY_SELECT = "*, property_listings!inner(title, address), profiles!inner(full_name, email, id)"


class ContactStore(ABC):
    @abstractmethod
    async def get_by_id(self, contact_id: str) -> Contact:
        """Return the contact or raise NotFoundError."""


class AppointmentStore(ABC):
    @abstractmethod
    async def query(self, agent_id: str, any_of: list[str]) -> list[Appointment]:
        """Appointments owned by agent_id filed under any of the given keys."""

    @abstractmethod
    async def get_by_id(self, appointment_id: str) -> Appointment:
        """Return the appointment or raise NotFoundError."""

    @abstractmethod
    async def insert(self, appointment: Appointment) -> Appointment:
        """Persist a new appointment or raise PersistenceError."""

    @abstractmethod
    async def update(self, appointment_id: str, patch: dict[str, Any]) -> Appointment:
        """Apply patch as a single write or raise PersistenceError."""


class InquiryStore(ABC):
    @abstractmethod
    async def get_by_id(self, inquiry_id: str) -> PropertyInquiry:
        """Return the inquiry with its listing and buyer profile, or raise NotFoundError."""


class InteractionStore(ABC):
    @abstractmethod
    async def query(self, contact_id: str) -> list[Interaction]:
        ...


class NoteStore(ABC):
    @abstractmethod
    async def query(self, contact_id: str) -> list[Note]:
        ...


class ConversationStore(ABC):
    @abstractmethod
    async def query(self, account_key: str) -> list[Conversation]:
        ...


def _parse_rows(model: Type[ModelT], rows: Iterable[dict], table: str) -> list[ModelT]:
    """Validate rows, skipping (and logging) any that do not fit the model."""
    parsed = []
    for row in rows or []:
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed row",
                table=table,
                error_count=e.error_count(),
                error=str(e).splitlines()[0],
            )
    return parsed


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def appointment_key_filter(keys: list[str]) -> str:
    """PostgREST `or` filter for rows filed under any key in either key column.

    Emails were not always lowercased when an appointment was filed, so email
    keys match with ilike. Account and contact ids match exactly.
    """
    clauses = [f"{column}.in.{in_list(keys)}" for column in APPOINTMENT_KEY_COLUMNS]
    for key in keys:
        if "@" not in key:
            continue
        pattern = quote_filter_value(_escape_like(key))
        clauses.extend(f"{column}.ilike.{pattern}" for column in APPOINTMENT_KEY_COLUMNS)
    return ",".join(clauses)


class SupabaseContactStore(ContactStore):
    async def get_by_id(self, contact_id: str) -> Contact:
        async with SupabaseClient() as client:
            try:
                result = await client.table(CONTACTS_TABLE).select("*").eq("contact_id", contact_id).limit(1).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to get contact: {e}") from e

        if not result.data:
            raise NotFoundError(f"Contact not found: {contact_id}")
        return Contact.model_validate(result.data[0])


class SupabaseAppointmentStore(AppointmentStore):
    async def query(self, agent_id: str, any_of: list[str]) -> list[Appointment]:
        keys = [key for key in any_of if key]
        if not keys:
            return []

        # A key may sit in either column depending on how the row was filed
        or_filter = appointment_key_filter(keys)

        async with SupabaseClient() as client:
            try:
                result = await (
                    client.table(APPOINTMENTS_TABLE)
                    .select("*")
                    .eq("agent_id", agent_id)
                    .or_(or_filter)
                    .order("created_at", desc=True)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to query appointments: {e}") from e

        logger.debug(
            "Appointments queried",
            agent_id=agent_id,
            key_count=len(keys),
            row_count=len(result.data or []),
        )
        return _parse_rows(Appointment, result.data, APPOINTMENTS_TABLE)

    async def get_by_id(self, appointment_id: str) -> Appointment:
        async with SupabaseClient() as client:
            try:
                result = await client.table(APPOINTMENTS_TABLE).select("*").eq("appointment_id", appointment_id).limit(1).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to get appointment: {e}") from e

        if not result.data:
            raise NotFoundError(f"Appointment not found: {appointment_id}")
        return Appointment.model_validate(result.data[0])

    async def insert(self, appointment: Appointment) -> Appointment:
        row = appointment.model_dump(mode="json", exclude_none=True)
        async with SupabaseClient() as client:
            try:
                result = await client.table(APPOINTMENTS_TABLE).insert(row).execute()
            except Exception as e:
                raise PersistenceError(f"Failed to create appointment: {e}") from e

        if not result.data:
            raise PersistenceError("Failed to create appointment: no data returned")
        return Appointment.model_validate(result.data[0])

    async def update(self, appointment_id: str, patch: dict[str, Any]) -> Appointment:
        async with SupabaseClient() as client:
            try:
                result = await client.table(APPOINTMENTS_TABLE).update(patch).eq("appointment_id", appointment_id).execute()
            except Exception as e:
                raise PersistenceError(f"Failed to update appointment: {e}") from e

        if not result.data:
            raise PersistenceError(f"Failed to update appointment: {appointment_id}")
        return Appointment.model_validate(result.data[0])


class SupabaseInquiryStore(InquiryStore):
    async def get_by_id(self, inquiry_id: str) -> PropertyInquiry:
        async with SupabaseClient() as client:
            try:
                result = await (
                    client.table(INQUIRIES_TABLE)
                    .select(INQUIRY_SELECT)
                    .eq("id", inquiry_id)
                    .limit(1)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to get inquiry: {e}") from e

        if not result.data:
            raise NotFoundError(f"Inquiry not found: {inquiry_id}")
        try:
            return PropertyInquiry.from_row(result.data[0])
        except ValidationError as e:
            # An inquiry without a buyer cannot be scheduled
            raise NotFoundError(f"Inquiry {inquiry_id} has no buyer profile") from e


class SupabaseInteractionStore(InteractionStore):
    async def query(self, contact_id: str) -> list[Interaction]:
        async with SupabaseClient() as client:
            try:
                result = await (
                    client.table(INTERACTIONS_TABLE)
                    .select("*")
                    .eq("contact_id", contact_id)
                    .order("created_at", desc=True)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to query interactions: {e}") from e
        return _parse_rows(Interaction, result.data, INTERACTIONS_TABLE)


class SupabaseNoteStore(NoteStore):
    async def query(self, contact_id: str) -> list[Note]:
        async with SupabaseClient() as client:
            try:
                result = await (
                    client.table(NOTES_TABLE)
                    .select("*")
                    .eq("contact_id", contact_id)
                    .order("created_at", desc=True)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to query notes: {e}") from e
        return _parse_rows(Note, result.data, NOTES_TABLE)


class SupabaseConversationStore(ConversationStore):
    async def query(self, account_key: str) -> list[Conversation]:
        async with SupabaseClient() as client:
            try:
                result = await (
                    client.table(CONVERSATIONS_TABLE)
                    .select("*, messages(message_id, content, sender_id, created_at)")
                    .eq("client_id", account_key)
                    .order("last_message_at", desc=True)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to query conversations: {e}") from e

        logger.debug(
            "Conversations queried",
            account_key=mask_user_id(account_key),
            row_count=len(result.data or []),
        )
        return _parse_rows(Conversation, result.data, CONVERSATIONS_TABLE)
