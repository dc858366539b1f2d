"""Health check endpoint for load balancers and monitoring."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from escrowdesk.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Lightweight health check (no upstream call).

    Returns 200 OK if the service is running.
    """
    sessions = getattr(request.app.state, "sessions", None)
    return {
        "status": "ok",
        "service": "EscrowDesk",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "gateway_backend": settings.gateway_backend,
        "open_sessions": len(sessions) if sessions is not None else 0,
    }
