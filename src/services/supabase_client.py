"""Supabase client wrapper with async context manager support."""

import logging
from typing import Optional
from supabase import acreate_client, AsyncClient
from supabase.lib.client_options import AsyncClientOptions

from src.utils.config import ServiceConfig
from src.utils.errors import SupabaseError

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """Get or create the async Supabase client singleton.

    The async client is required for realtime channels used by the live
    refresh coordinator.
    """
    global _client

    if _client is None:
        url = ServiceConfig.SUPABASE_URL
        key = ServiceConfig.SUPABASE_SERVICE_ROLE_KEY

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = AsyncClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = await acreate_client(url, key, options=options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


async def close_supabase_client() -> None:
    """Drop the client reference and close any realtime channels."""
    global _client
    if _client:
        try:
            await _client.remove_all_channels()
        except Exception as e:
            logger.warning("Failed to remove realtime channels on close", extra={"error": str(e)})
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[AsyncClient] = None

    async def __aenter__(self) -> AsyncClient:
        self.client = await get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


def quote_filter_value(value: str) -> str:
    """Quote a value for a PostgREST `or`/`in` filter (emails contain dots)."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def in_list(values: list[str]) -> str:
    """Render values as a PostgREST `in.(...)` list."""
    return "(" + ",".join(quote_filter_value(v) for v in values) + ")"
