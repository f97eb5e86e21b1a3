"""Appointment lifecycle - status transitions, scheduling, and appointment book views."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from ulid import ULID

from src.models.appointment import (
    Appointment,
    AppointmentDetails,
    AppointmentResult,
    AppointmentStats,
    AppointmentStatus,
    AppointmentType,
)
from src.models.contact import Contact
from src.models.inquiry import PropertyInquiry
from src.services.identity_resolver import normalize_email, resolve_keys
from src.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
    SupabaseNotificationDispatcher,
    agent_recipient,
    build_payload,
    contact_recipient,
    notification_kind_for_status,
)
from src.services.stores import AppointmentStore, SupabaseAppointmentStore
from src.utils.config import ServiceConfig
from src.utils.errors import AppointmentValidationError, InvalidTransitionError
from src.utils.logging import get_structured_logger, mask_user_id, sanitize_message_text, timed

logger = get_structured_logger(__name__)


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    # Reschedule is the only way out of a terminal state
    AppointmentStatus.CANCELLED: frozenset({AppointmentStatus.SCHEDULED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

DATE_WINDOWS = ("all", "today", "tomorrow", "this_week", "past")


def utc_today() -> date:
    """Today's date on the same UTC clock used for created_at stamps."""
    return datetime.now(timezone.utc).date()


def generate_appointment_id() -> str:
    """Generate a text-based appointment ID (ULID format)."""
    return str(ULID())


def is_allowed_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return AppointmentStatus(new) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def _require_not_past(details: AppointmentDetails, today: Optional[date]) -> None:
    today = today or utc_today()
    if details.date < today:
        raise AppointmentValidationError(
            f"Appointment date {details.date.isoformat()} is in the past"
        )


class AppointmentLifecycleManager:
    """Applies status changes and creates appointments, notifying both parties.

    Persistence errors abort the operation. Notification failures never do:
    they are logged and returned as warnings on the result.
    """

    def __init__(self, store: AppointmentStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def _notify(self, kind: NotificationKind, payload: dict[str, Any], appointment_id: str) -> Optional[str]:
        """Send one notification. Returns a warning string on failure, else None."""
        try:
            await self.dispatcher.send(kind, payload)
            return None
        except Exception as e:
            logger.warning(
                "Notification dispatch failed",
                appointment_id=appointment_id,
                notification_kind=kind.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return f"{kind.value} notification failed: {e}"

    @timed("appointment_lifecycle.transition")
    async def transition(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        notes: Optional[str] = None,
    ) -> AppointmentResult:
        """Move an appointment to new_status, optionally replacing its notes.

        Status and notes are written in one update. Any status value is
        accepted except the current one; transitions outside the lifecycle
        table are allowed but reported as warnings.
        """
        try:
            new_status = AppointmentStatus(new_status)
        except ValueError as e:
            raise InvalidTransitionError(f"Unknown appointment status: {new_status}") from e

        current = appointment.status
        if new_status == current:
            raise InvalidTransitionError(
                f"Appointment {appointment.appointment_id} is already {current.value}"
            )

        warnings: list[str] = []
        if not is_allowed_transition(current, new_status):
            logger.warning(
                "Unexpected appointment transition",
                appointment_id=appointment.appointment_id,
                from_status=current.value,
                to_status=new_status.value,
            )
            warnings.append(f"unexpected transition {current.value} -> {new_status.value}")

        patch: dict[str, Any] = {
            "status": new_status.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if notes is not None:
            patch["notes"] = notes

        # PersistenceError propagates: nothing is sent for a failed write
        updated = await self.store.update(appointment.appointment_id, patch)

        logger.info(
            "Appointment status updated",
            appointment_id=updated.appointment_id,
            agent_id=updated.agent_id,
            from_status=current.value,
            to_status=updated.status.value,
            notes_updated=notes is not None,
            notes=sanitize_message_text(notes),
        )

        kind = notification_kind_for_status(new_status)
        payload = build_payload(updated, [contact_recipient(updated), agent_recipient(updated)])
        payload["data"]["previousStatus"] = current.value
        warning = await self._notify(kind, payload, updated.appointment_id)
        if warning:
            warnings.append(warning)

        return AppointmentResult(
            appointment=updated,
            warnings=warnings,
            notifications_sent=0 if warning else 1,
        )

    @timed("appointment_lifecycle.create_appointment")
    async def create_appointment(
        self,
        agent_id: str,
        contact: Contact,
        details: AppointmentDetails,
        today: Optional[date] = None,
    ) -> AppointmentResult:
        """Schedule a new appointment for a contact.

        Contact keys are captured now and never re-derived, so a contact
        linking an account later does not move historical appointments.
        """
        if contact.agent_id != agent_id:
            raise AppointmentValidationError(
                f"Contact {contact.contact_id} does not belong to agent {agent_id}"
            )

        _require_not_past(details, today)

        keys = resolve_keys(contact)
        if not keys.primary_account_key and not keys.email_key:
            raise AppointmentValidationError(
                f"Contact {contact.contact_id} has neither a linked account nor an email; "
                "the appointment would be unreachable"
            )

        appointment = self._new_appointment(
            agent_id,
            details,
            contact_account_key=keys.primary_account_key,
            contact_email_key=keys.email_key,
            contact_name=contact.name,
            contact_phone=contact.phone,
        )
        return await self._schedule(appointment, contact_id=contact.contact_id)

    @timed("appointment_lifecycle.create_from_inquiry")
    async def create_from_inquiry(
        self,
        agent_id: str,
        inquiry: PropertyInquiry,
        details: AppointmentDetails,
        today: Optional[date] = None,
    ) -> AppointmentResult:
        """Schedule an appointment for the buyer behind a property inquiry.

        The appointment is filed under the buyer's account id and defaults to
        the inquired listing.
        """
        _require_not_past(details, today)

        appointment = self._new_appointment(
            agent_id,
            details,
            contact_account_key=inquiry.buyer_account_id,
            contact_email_key=normalize_email(inquiry.buyer_email),
            contact_name=inquiry.buyer_name or "Unknown",
            property_id=details.property_id or inquiry.property_id,
            property_address=details.property_address or inquiry.property_address,
            inquiry_id=inquiry.inquiry_id,
        )
        return await self._schedule(appointment, inquiry_id=inquiry.inquiry_id)

    def _new_appointment(self, agent_id: str, details: AppointmentDetails, **fields: Any) -> Appointment:
        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {
            "property_id": details.property_id,
            "property_address": details.property_address,
        }
        values.update(fields)
        values["property_address"] = values["property_address"] or ServiceConfig.DEFAULT_APPOINTMENT_LOCATION
        return Appointment(
            appointment_id=generate_appointment_id(),
            agent_id=agent_id,
            appointment_type=details.appointment_type,
            date=details.date,
            time=details.time,
            duration_minutes=details.duration_minutes,
            status=AppointmentStatus.SCHEDULED,
            notes=details.notes,
            created_at=now,
            updated_at=now,
            **values,
        )

    async def _schedule(self, appointment: Appointment, **log_fields: Any) -> AppointmentResult:
        """Persist a new appointment, then confirm to the contact and notify the agent."""
        created = await self.store.insert(appointment)

        logger.info(
            "Appointment created",
            appointment_id=created.appointment_id,
            agent_id=created.agent_id,
            contact_account_key=mask_user_id(created.contact_account_key),
            appointment_type=created.appointment_type.value,
            appointment_date=created.date.isoformat(),
            notes=sanitize_message_text(created.notes),
            **log_fields,
        )

        warnings: list[str] = []
        sent = 0
        outgoing = [
            (NotificationKind.APPOINTMENT_CONFIRMATION, contact_recipient(created)),
            (NotificationKind.APPOINTMENT_NOTIFICATION, agent_recipient(created)),
        ]
        for kind, recipient in outgoing:
            if recipient is None:
                warnings.append(f"{kind.value} skipped: no recipient address")
                continue
            warning = await self._notify(kind, build_payload(created, [recipient]), created.appointment_id)
            if warning:
                warnings.append(warning)
            else:
                sent += 1

        return AppointmentResult(appointment=created, warnings=warnings, notifications_sent=sent)


def appointment_stats(appointments: Iterable[Appointment], today: Optional[date] = None) -> AppointmentStats:
    """Counters for the appointment book header.

    `today` and `week` ignore cancelled appointments; `week` spans today
    through seven days ahead.
    """
    today = today or utc_today()
    week_end = today + timedelta(days=7)
    stats = AppointmentStats()
    for appointment in appointments:
        active = appointment.status != AppointmentStatus.CANCELLED
        if active and appointment.date == today:
            stats.today += 1
        if active and today <= appointment.date <= week_end:
            stats.week += 1
        if appointment.status == AppointmentStatus.CONFIRMED:
            stats.confirmed += 1
        elif appointment.status == AppointmentStatus.SCHEDULED:
            stats.pending += 1
    return stats


def _in_date_window(appointment_date: date, window: str, today: date) -> bool:
    if window == "today":
        return appointment_date == today
    if window == "tomorrow":
        return appointment_date == today + timedelta(days=1)
    if window == "this_week":
        return today <= appointment_date <= today + timedelta(days=7)
    if window == "past":
        return appointment_date < today
    return True


def filter_appointments(
    appointments: Iterable[Appointment],
    search: str = "",
    status: Optional[AppointmentStatus] = None,
    appointment_type: Optional[AppointmentType] = None,
    date_window: str = "all",
    today: Optional[date] = None,
) -> list[Appointment]:
    """Filter an agent's appointments, soonest first.

    `search` matches the contact name or property address, case-insensitively.
    """
    if date_window not in DATE_WINDOWS:
        raise ValueError(f"date_window must be one of {', '.join(DATE_WINDOWS)}")

    today = today or utc_today()
    needle = search.strip().lower()
    matches = []
    for appointment in appointments:
        if needle:
            haystack = f"{appointment.contact_name or ''} {appointment.property_address or ''}".lower()
            if needle not in haystack:
                continue
        if status is not None and appointment.status != AppointmentStatus(status):
            continue
        if appointment_type is not None and appointment.appointment_type != AppointmentType(appointment_type):
            continue
        if not _in_date_window(appointment.date, date_window, today):
            continue
        matches.append(appointment)

    return sorted(matches, key=lambda a: (a.date, a.time, a.appointment_id))


# Global manager instance wired to Supabase
_lifecycle_manager: Optional[AppointmentLifecycleManager] = None


def get_lifecycle_manager() -> AppointmentLifecycleManager:
    """Get or create the Supabase-backed lifecycle manager."""
    global _lifecycle_manager
    if _lifecycle_manager is None:
        _lifecycle_manager = AppointmentLifecycleManager(
            store=SupabaseAppointmentStore(),
            dispatcher=SupabaseNotificationDispatcher(),
        )
    return _lifecycle_manager
