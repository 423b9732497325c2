"""Supabase client shared by the dispatch repository and the run ledger."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Return the process-wide Supabase client, or None when unconfigured.

    Creating the client does not open a connection; reads and ledger
    writes report their own failures.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.warning(
            "Supabase credentials not configured (DISPATCH_SUPABASE_URL / DISPATCH_SUPABASE_KEY); "
            "dispatch reads will fail and optimization runs will not be recorded"
        )
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as exc:
        logger.error("Failed to create Supabase client for %s: %s", settings.supabase_url, exc)
        return None
