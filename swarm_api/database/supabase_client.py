import logging
from typing import Any

from fastapi.concurrency import run_in_threadpool
from supabase import create_client, Client

from swarm_api.config import settings
from swarm_api.core.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Used for membership and permission lookups."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or cls.get_client()

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_service_supabase() -> Client:
    return SupabaseClient.get_service_client()


async def execute(query: Any, description: str = "query") -> Any:
    """Run a Supabase query builder off the event loop. Store failures become UpstreamUnavailableError."""
    try:
        return await run_in_threadpool(query.execute)
    except Exception as e:
        logger.error(f"Supabase {description} failed: {e}")
        raise UpstreamUnavailableError(f"Data store unavailable during {description}", cause=e) from e
