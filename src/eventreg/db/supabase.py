"""Supabase client for the registration backend."""

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

from supabase import Client, create_client

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client(url: Optional[str], key: Optional[str]) -> Client | None:
    """Cached client per project URL and key; None when either is missing.

    Creating the client does not contact the project, so the first table or
    storage call is where network errors surface.
    """
    if not url or not key:
        logger.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        client = create_client(url, key)
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {e}")
        return None
    logger.info(f"Supabase client created for {urlparse(url).netloc or url}")
    return client
