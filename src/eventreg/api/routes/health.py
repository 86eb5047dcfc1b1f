"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

from ...persistence.store import StoreError

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
async def check_database(request: Request) -> dict:
    """Check which registration store is active and whether it answers queries."""
    registry = request.app.state.sessions
    store = registry.store
    kind = getattr(store, "kind", type(store).__name__)

    try:
        located = await store.list_located()
    except StoreError as exc:
        return {
            "store": kind,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }

    return {
        "store": kind,
        "connected": True,
        "located_registrations": len(located),
        "open_sessions": len(registry),
        "message": "In-memory store active; set EVREG_SUPABASE_URL and EVREG_SUPABASE_KEY to persist."
        if kind == "memory"
        else f"Database connected. {len(located)} registrations carry a location.",
    }
