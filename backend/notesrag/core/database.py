"""
Database connections: one Supabase client per role and process.

- "api":    anon key; every table call runs under row level security.
- "worker": service_role key; the ingestion worker runs outside any user
            session and reads any file record and blob.
"""

from functools import lru_cache
from typing import Literal

from supabase import Client, ClientOptions, create_client

from notesrag.config import get_settings

ClientRole = Literal["api", "worker"]


def _client_options() -> ClientOptions:
    # server side: no browser session to persist or refresh
    settings = get_settings()
    return ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        postgrest_client_timeout=settings.SUPABASE_TIMEOUT_SECONDS,
        storage_client_timeout=settings.SUPABASE_TIMEOUT_SECONDS,
    )


@lru_cache
def get_supabase(role: ClientRole = "api") -> Client:
    """Get the Supabase client for ``role`` (cached per process).

    Raises:
        ValueError: If the worker client is requested without SUPABASE_SERVICE_KEY.
    """
    settings = get_settings()
    if role == "worker":
        if not settings.SUPABASE_SERVICE_KEY:
            raise ValueError("SUPABASE_SERVICE_KEY not configured; the ingestion worker needs it")
        key = settings.SUPABASE_SERVICE_KEY
    else:
        key = settings.SUPABASE_KEY
    return create_client(settings.SUPABASE_URL, key, options=_client_options())
