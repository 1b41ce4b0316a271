"""Supabase client factories for database and auth operations."""

from functools import lru_cache
from typing import Any

from supabase import Client, create_client
from supabase.lib.client_options import SyncClientOptions
from supabase_auth import SyncMemoryStorage

from src.core.config import get_settings


def _isolated_options() -> SyncClientOptions:
    """Client options with in-memory session storage and no token refresh."""
    return SyncClientOptions(
        storage=SyncMemoryStorage(),
        auto_refresh_token=False,
        persist_session=False,
    )


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses secret key (sb_secret_) for backend operations, which bypasses RLS
    at the PostgREST level. Only call it after the caller's permission has
    been verified, or for compensating writes the caller could not make.

    IMPORTANT: Do NOT use this client for auth operations that call
    set_session() - use create_auth_client() instead to avoid polluting
    the singleton's Authorization header.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


def create_auth_client() -> Client:
    """Create a fresh Supabase client for auth operations.

    Use this for operations that call auth.sign_up(), auth.sign_in_*(),
    or any method that modifies the client's Authorization header.
    Each call creates a new isolated client instance.

    Returns:
        Client: Fresh Supabase client instance with isolated session storage.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
        options=_isolated_options(),
    )


def create_user_client(access_token: str) -> Client:
    """Create a client that runs queries as the given user.

    Queries go through row-level security with the caller's JWT, so the
    client only sees and changes the rows that user is allowed to.

    Args:
        access_token: The caller's Supabase access token.

    Returns:
        Client: Fresh Supabase client scoped to the user.
    """
    settings = get_settings()
    client = create_client(
        settings.supabase_url,
        settings.supabase_publishable_key or settings.supabase_secret_key,
        options=_isolated_options(),
    )
    client.postgrest.auth(access_token)
    return client


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Performs a simple query to verify database connectivity.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = get_supabase_client()
        client.table("organization_types").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
