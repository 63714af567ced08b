"""Health and readiness endpoints.

  GET /        — plain-text banner the browser app pings on load
  GET /health  — liveness + dependency status (never 503; see below)
  GET /ready   — readiness for the load balancer
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from oauth_relay.api.dependencies import get_state_store
from oauth_relay.db.redis import redis_pool
from oauth_relay.services.state_store import StateStore

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Backend is up and running!"


@router.get("/health")
async def health(store: Annotated[StateStore, Depends(get_state_store)]) -> dict:
    """Liveness probe + dependency status.

    Returns 200 even when degraded; the status field says which check failed.
    Redis only backs the API-version cache, so losing it impairs nothing
    that matters for login.
    """
    checks: dict[str, str] = {}
    overall = "ok"

    if redis_pool is not None:
        try:
            await redis_pool.ping()  # type: ignore[misc]
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "degraded"
            overall = "degraded"
    else:
        checks["redis"] = "not_configured"

    return {
        "status": overall,
        "checks": checks,
        "pending_authorizations": len(store),
    }


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe.  Nothing this process depends on is critical at
    request time (the provider is checked per call), so if we can answer
    we are ready."""
    return Response(status_code=200)
