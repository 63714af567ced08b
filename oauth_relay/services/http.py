"""Outbound HTTP plumbing shared by the token exchange and the API proxy."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from oauth_relay.core.config import Settings

logger = logging.getLogger(__name__)

USER_AGENT = "sf-oauth-relay"


def create_http_client(settings: Settings, **kwargs: Any) -> httpx.AsyncClient:
    """One pooled client per process.

    Every provider call is bounded by UPSTREAM_TIMEOUT_SECONDS; a timeout
    surfaces as an httpx.TimeoutException and is mapped by the caller.
    Redirects are not followed: a 3xx from Salesforce is an error here.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.upstream_timeout_seconds),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        follow_redirects=False,
        **kwargs,
    )


@asynccontextmanager
async def lifespan_http_client(
    settings: Settings,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    client = create_http_client(settings)
    logger.info(
        "Upstream HTTP client ready  timeout=%.1fs", settings.upstream_timeout_seconds
    )
    try:
        yield client
    finally:
        await client.aclose()
        logger.info("Upstream HTTP client closed")


def decode_body(response: httpx.Response) -> Any:
    """Best-effort body: parsed JSON, else raw text, else None when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
