"""Supabase client for the merchant configuration tables."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
        return client
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Tables read by this service:
#
# delivery_zones: id, restaurant_id, name, delivery_fee, max_distance_km,
#                 min_delivery_time_minutes, max_delivery_time_minutes,
#                 is_active, created_at
# restaurants:    id, name, latitude, longitude, delivery_enabled
