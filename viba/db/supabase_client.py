"""Service-role Supabase client shared by history and artifact storage."""

from typing import Optional

from supabase import Client, create_client

from viba.config import settings

_client: Optional[Client] = None


def get_supabase() -> Client:
    """Get or create the Supabase client using the service role key."""
    global _client
    if _client is None:
        if not settings.supabase_configured():
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"
            )
        _client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )
    return _client


def get_supabase_if_configured() -> Optional[Client]:
    """The shared client, or None when Supabase is not configured (local dev)."""
    if not settings.supabase_configured():
        return None
    return get_supabase()
