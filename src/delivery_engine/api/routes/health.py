"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_provider_builder():
    """Lazy import to avoid startup failures."""
    from ...services.geocoding.service import build_providers
    return build_providers


@router.get("/health/geocoder", status_code=status.HTTP_200_OK)
def health_geocoder() -> dict:
    """Report which geocoding providers are configured, in fallback order."""
    try:
        providers = _get_provider_builder()()
        names = [provider.name for provider in providers]
        return {"service": "geocoder", "healthy": bool(names), "providers": names}
    except Exception as e:
        return {"service": "geocoder", "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check that the merchant configuration tables are reachable."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set DFE_SUPABASE_URL and DFE_SUPABASE_KEY environment variables.",
        }

    try:
        supabase.table("delivery_zones").select("id").limit(1).execute()
        return {"configured": True, "connected": True, "message": "Database connected."}
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
