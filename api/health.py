"""Health check endpoint: reports whether this deployment can reach its stores."""

from http.server import BaseHTTPRequestHandler
from typing import Any

from src.utils.config import ServiceConfig
from src.utils.http import send_json

SERVICE_NAME = "pickfirst-crm-core"

REQUIRED_SETTINGS = ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")


def health_report() -> tuple[int, dict[str, Any]]:
    """Return (status code, body). Missing Supabase settings make the service unready."""
    missing = [name for name in REQUIRED_SETTINGS if not getattr(ServiceConfig, name)]
    body = {
        "status": "degraded" if missing else "ok",
        "service": SERVICE_NAME,
        "supabase_configured": not missing,
        "missing_settings": missing,
        "live_refresh_debounce_seconds": ServiceConfig.LIVE_REFRESH_DEBOUNCE_SECONDS,
        "timeline_source_timeout_seconds": ServiceConfig.TIMELINE_SOURCE_TIMEOUT_SECONDS,
        "notification_email_function": ServiceConfig.NOTIFICATION_EMAIL_FUNCTION,
    }
    return (503 if missing else 200), body


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        status, body = health_report()
        send_json(self, status, body)

    def do_POST(self):
        """Same as GET."""
        self.do_GET()
