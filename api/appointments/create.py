"""Appointment scheduling endpoint for Vercel."""

from http.server import BaseHTTPRequestHandler
from typing import Any

from pydantic import ValidationError

from src.models.appointment import AppointmentDetails
from src.services.appointment_lifecycle import get_lifecycle_manager
from src.services.stores import SupabaseContactStore, SupabaseInquiryStore
from src.utils.errors import AppointmentValidationError, NotFoundError, PersistenceError
from src.utils.http import read_json_body, run_async, send_json
from src.utils.logging import correlation_context, get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


async def create_appointment(body: Any) -> tuple[int, dict[str, Any]]:
    """Schedule an appointment from a request body and return (status code, JSON body)."""
    if not isinstance(body, dict):
        return 400, {"error": "request body must be a JSON object"}

    agent_id = body.get("agent_id")
    contact_id = body.get("contact_id")
    inquiry_id = body.get("inquiry_id")
    if not agent_id or not (contact_id or inquiry_id):
        return 400, {"error": "agent_id and one of contact_id or inquiry_id are required"}

    try:
        details = AppointmentDetails.model_validate(body.get("appointment") or {})
    except ValidationError as e:
        return 400, {"error": "invalid appointment", "details": e.errors(include_url=False, include_context=False)}

    try:
        if contact_id:
            contact = await SupabaseContactStore().get_by_id(contact_id)
            result = await get_lifecycle_manager().create_appointment(agent_id, contact, details)
        else:
            inquiry = await SupabaseInquiryStore().get_by_id(inquiry_id)
            result = await get_lifecycle_manager().create_from_inquiry(agent_id, inquiry, details)
    except NotFoundError as e:
        return 404, {"error": str(e)}
    except AppointmentValidationError as e:
        return 400, {"error": str(e)}
    except PersistenceError as e:
        logger.error(
            "Appointment not persisted",
            agent_id=agent_id,
            contact_id=contact_id,
            inquiry_id=inquiry_id,
            error=str(e),
        )
        return 502, {"error": "failed to save appointment"}

    return 201, {
        "ok": True,
        "appointment": result.appointment.model_dump(mode="json"),
        "warnings": result.warnings,
        "notifications_sent": result.notifications_sent,
    }


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for new appointments."""

    def do_POST(self):
        with correlation_context():
            try:
                body = read_json_body(self)
            except ValueError as e:
                send_json(self, 400, {"error": str(e)})
                return

            try:
                status, response = run_async(create_appointment(body))
            except Exception as e:
                logger.exception("Error creating appointment", error=str(e), error_type=type(e).__name__)
                status, response = 500, {"error": "internal server error"}
            send_json(self, status, response)
