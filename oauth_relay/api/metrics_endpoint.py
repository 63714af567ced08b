"""Prometheus scrape endpoint (text exposition format, not JSON).

Only counters and gauges live here: state prefixes, tokens and instance
URLs are never used as label values, so the output is safe to expose to
the scraper.  Keep it off the public ingress all the same.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
