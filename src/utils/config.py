"""Service configuration read from environment variables."""

import os
from typing import Optional


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


class ServiceConfig:
    """Runtime settings for the CRM core, resolved once at import time."""

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

    # Quiet period before a burst of change events triggers one refetch
    LIVE_REFRESH_DEBOUNCE_SECONDS = float(os.environ.get("LIVE_REFRESH_DEBOUNCE_SECONDS", "0.5"))

    # None means each store's own timeout applies
    TIMELINE_SOURCE_TIMEOUT_SECONDS = _optional_float(os.environ.get("TIMELINE_SOURCE_TIMEOUT_SECONDS"))

    NOTIFICATION_EMAIL_FUNCTION = os.environ.get("NOTIFICATION_EMAIL_FUNCTION", "send-email")
    DEFAULT_APPOINTMENT_LOCATION = os.environ.get("DEFAULT_APPOINTMENT_LOCATION", "Virtual/Office Meeting")
