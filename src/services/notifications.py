"""Notification dispatch - appointment emails sent through a Supabase edge function."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from src.models.appointment import Appointment, AppointmentStatus
from src.services.supabase_client import SupabaseClient
from src.utils.config import ServiceConfig
from src.utils.errors import NotificationDispatchFailure
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class NotificationKind(str, Enum):
    """Email templates. The first two are only sent when an appointment is created."""
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_NOTIFICATION = "appointment_notification"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_COMPLETED = "appointment_completed"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_NO_SHOW = "appointment_no_show"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"


STATUS_NOTIFICATIONS: dict[AppointmentStatus, NotificationKind] = {
    AppointmentStatus.CONFIRMED: NotificationKind.APPOINTMENT_CONFIRMED,
    AppointmentStatus.COMPLETED: NotificationKind.APPOINTMENT_COMPLETED,
    AppointmentStatus.CANCELLED: NotificationKind.APPOINTMENT_CANCELLED,
    AppointmentStatus.NO_SHOW: NotificationKind.APPOINTMENT_NO_SHOW,
    AppointmentStatus.SCHEDULED: NotificationKind.APPOINTMENT_RESCHEDULED,
}


def notification_kind_for_status(status: AppointmentStatus) -> NotificationKind:
    """Template for a status change, chosen from the new status alone."""
    return STATUS_NOTIFICATIONS[AppointmentStatus(status)]


def contact_recipient(appointment: Appointment) -> Optional[dict[str, Any]]:
    if not appointment.contact_email_key:
        return None
    return {
        "role": "contact",
        "email": appointment.contact_email_key,
        "name": appointment.contact_name,
    }


def agent_recipient(appointment: Appointment) -> dict[str, Any]:
    return {"role": "agent", "agent_id": appointment.agent_id}


def build_payload(appointment: Appointment, recipients: list[Optional[dict[str, Any]]]) -> dict[str, Any]:
    """Template data shared by every appointment email."""
    appointment_type = appointment.appointment_type.value
    return {
        "recipients": [r for r in recipients if r],
        "data": {
            "appointmentId": appointment.appointment_id,
            "clientName": appointment.contact_name,
            "clientEmail": appointment.contact_email_key,
            "clientPhone": appointment.contact_phone or "Not provided",
            "appointmentType": appointment_type.replace("_", " ").upper(),
            "date": appointment.date.isoformat(),
            "time": appointment.time,
            "duration": appointment.duration_minutes,
            "location": appointment.property_address or ServiceConfig.DEFAULT_APPOINTMENT_LOCATION,
            "notes": appointment.notes or "No additional notes",
            "status": appointment.status.value,
        },
    }


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        """Deliver a notification; raise NotificationDispatchFailure on failure."""


class SupabaseNotificationDispatcher(NotificationDispatcher):
    """Invokes the email edge function once per recipient.

    Agent recipients are addressed by agent_id and resolved through the
    profiles table, which also supplies the agent's name and phone for the
    template.
    """

    def __init__(self, function_name: Optional[str] = None):
        self.function_name = function_name or ServiceConfig.NOTIFICATION_EMAIL_FUNCTION

    async def _agent_profile(self, client, agent_id: str) -> Optional[dict]:
        result = await client.table("profiles").select("email, full_name, phone").eq("id", agent_id).limit(1).execute()
        return result.data[0] if result.data else None

    async def send(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        recipients = payload.get("recipients") or []
        data = dict(payload.get("data") or {})
        failures: list[str] = []

        try:
            async with SupabaseClient() as client:
                # Resolve addresses first so every email carries the agent's details
                addressed: list[tuple[str, Optional[str]]] = []
                for recipient in recipients:
                    role = recipient.get("role", "recipient")
                    email = recipient.get("email")
                    if role == "agent" and recipient.get("agent_id"):
                        profile = await self._agent_profile(client, recipient["agent_id"])
                        if profile:
                            email = email or profile.get("email")
                            data.setdefault("agentName", profile.get("full_name") or "Your Agent")
                            data.setdefault("agentPhone", profile.get("phone") or "")
                    addressed.append((role, email))

                for role, email in addressed:
                    if not email:
                        failures.append(f"no address for {role}")
                        continue
                    try:
                        await client.functions.invoke(
                            self.function_name,
                            invoke_options={"body": {"to": email, "template": kind.value, "data": data}},
                        )
                        logger.info(
                            "Notification sent",
                            notification_kind=kind.value,
                            recipient_role=role,
                            recipient=mask_user_id(email),
                        )
                    except Exception as e:
                        failures.append(f"{role}: {e}")
        except Exception as e:
            raise NotificationDispatchFailure(f"Failed to dispatch {kind.value}: {e}", kind=kind.value) from e

        if failures:
            raise NotificationDispatchFailure(
                f"Failed to dispatch {kind.value}: {'; '.join(failures)}",
                kind=kind.value,
            )
