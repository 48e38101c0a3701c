"""
MealSync - Remote store client.

Builds the Supabase-backed store from settings. All production access
to the remote store goes through the instance returned here.
"""

from supabase import AsyncClient, acreate_client

from mealsync.config import settings
from mealsync.db.supabase_store import SupabaseStore

# Singleton store instance
_store: SupabaseStore | None = None


async def get_store(access_token: str | None = None) -> SupabaseStore:
    """
    Get the Supabase store.

    Uses singleton pattern to reuse the connection. When an access token
    is given, PostgREST requests run as that user (row level security).
    """
    global _store

    if _store is None:
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        client: AsyncClient = await acreate_client(
            settings.supabase_url,
            settings.supabase_anon_key,
        )
        _store = SupabaseStore(client)

    if access_token:
        _store.client.postgrest.auth(access_token)

    return _store
