"""Appointment status update endpoint for Vercel."""

from http.server import BaseHTTPRequestHandler
from typing import Any

from src.models.appointment import AppointmentStatus
from src.services.appointment_lifecycle import get_lifecycle_manager
from src.utils.errors import InvalidTransitionError, NotFoundError, PersistenceError
from src.utils.http import read_json_body, run_async, send_json
from src.utils.logging import correlation_context, get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


async def update_status(body: Any) -> tuple[int, dict[str, Any]]:
    """Apply a status change request and return (status code, JSON body)."""
    if not isinstance(body, dict):
        return 400, {"error": "request body must be a JSON object"}

    appointment_id = body.get("appointment_id")
    new_status = body.get("status")
    notes = body.get("notes")
    if not appointment_id or not new_status:
        return 400, {"error": "appointment_id and status are required"}
    if notes is not None and not isinstance(notes, str):
        return 400, {"error": "notes must be a string"}

    valid = {status.value for status in AppointmentStatus}
    if new_status not in valid:
        return 400, {"error": f"status must be one of {', '.join(sorted(valid))}"}

    manager = get_lifecycle_manager()
    try:
        appointment = await manager.store.get_by_id(appointment_id)
        result = await manager.transition(appointment, AppointmentStatus(new_status), notes=notes)
    except NotFoundError as e:
        return 404, {"error": str(e)}
    except InvalidTransitionError as e:
        return 400, {"error": str(e)}
    except PersistenceError as e:
        logger.error("Appointment status update not persisted", appointment_id=appointment_id, error=str(e))
        return 502, {"error": "failed to save appointment"}

    return 200, {
        "ok": True,
        "appointment": result.appointment.model_dump(mode="json"),
        "warnings": result.warnings,
        "notifications_sent": result.notifications_sent,
    }


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for appointment status changes."""

    def do_POST(self):
        with correlation_context():
            try:
                body = read_json_body(self)
            except ValueError as e:
                send_json(self, 400, {"error": str(e)})
                return

            try:
                status, response = run_async(update_status(body))
            except Exception as e:
                logger.exception("Error updating appointment status", error=str(e), error_type=type(e).__name__)
                status, response = 500, {"error": "internal server error"}
            send_json(self, status, response)
