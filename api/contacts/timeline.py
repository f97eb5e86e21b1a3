"""Contact timeline endpoint for Vercel."""

from http.server import BaseHTTPRequestHandler
from typing import Any

from src.services.timeline_aggregator import get_timeline_aggregator
from src.utils.errors import NotFoundError
from src.utils.http import query_params, run_async, send_json
from src.utils.logging import correlation_context, get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


async def build_timeline_response(params: dict[str, str]) -> tuple[int, dict[str, Any]]:
    """Resolve a timeline request to (status code, JSON body)."""
    contact_id = (params.get("contact_id") or "").strip()
    agent_id = (params.get("agent_id") or "").strip()
    if not contact_id or not agent_id:
        return 400, {"error": "contact_id and agent_id are required"}

    try:
        timeline = await get_timeline_aggregator().get_timeline(contact_id, agent_id)
    except NotFoundError as e:
        logger.info("Timeline requested for unknown contact", contact_id=contact_id, agent_id=agent_id)
        return 404, {"error": str(e)}

    body = timeline.model_dump(mode="json")
    body["partial"] = timeline.is_partial
    body["failed_sources"] = timeline.failed_sources
    body["conversation_count"] = timeline.conversation_count
    body["last_message_at"] = timeline.last_message_at.isoformat() if timeline.last_message_at else None
    return 200, body


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for contact timelines."""

    def do_GET(self):
        with correlation_context():
            try:
                status, body = run_async(build_timeline_response(query_params(self.path)))
            except Exception as e:
                logger.exception("Error building timeline", error=str(e), error_type=type(e).__name__)
                status, body = 500, {"error": "internal server error"}
            send_json(self, status, body)
