"""FastAPI dependencies shared by the routers.

Long-lived components (correlation store, outbound HTTP client) are
built in the application lifespan and parked on ``app.state``; the
getters below hand them to routes.  Tests swap them with
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import urlparse

import httpx
from fastapi import Depends, Header, Request

from oauth_relay.core.config import SETTINGS, Settings
from oauth_relay.core.errors import InvalidRequest
from oauth_relay.models.salesforce_credentials import SalesforceCredentials
from oauth_relay.services.cache import cache_service
from oauth_relay.services.oauth_service import OAuthService
from oauth_relay.services.salesforce_client import SalesforceClient
from oauth_relay.services.state_store import StateStore

logger = logging.getLogger(__name__)


def get_settings() -> Settings:
    return SETTINGS


def get_state_store(request: Request) -> StateStore:
    return request.app.state.state_store


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_oauth_service(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[StateStore, Depends(get_state_store)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> OAuthService:
    return OAuthService(settings, store, http_client)


# ---------------------------------------------------------------------------
# Salesforce credentials
# ---------------------------------------------------------------------------


def parse_credentials(
    access_token: str | None,
    instance_url: str | None,
    *,
    missing_message: str = "Missing access_token or instance_url",
) -> SalesforceCredentials:
    """Validate caller-supplied credentials before any upstream call."""
    if not access_token or not instance_url:
        logger.warning("Proxied call rejected: credentials missing")
        raise InvalidRequest(missing_message)

    instance_url = instance_url.strip().rstrip("/")
    parsed = urlparse(instance_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRequest("instance_url must be an absolute http(s) URL")
    # Request paths are appended to it, so only a bare origin is usable.
    if parsed.path or parsed.params or parsed.query or parsed.fragment:
        raise InvalidRequest("instance_url must be a bare origin (scheme and host)")
    return SalesforceCredentials(instance_url=instance_url, access_token=access_token)


def require_header_credentials(
    access_token: Annotated[str | None, Header(convert_underscores=False)] = None,
    instance_url: Annotated[str | None, Header(convert_underscores=False)] = None,
) -> SalesforceCredentials:
    """Read ``access_token`` / ``instance_url`` headers (underscored names,
    as the browser app sends them)."""
    return parse_credentials(access_token, instance_url)


def build_salesforce_client(
    http_client: httpx.AsyncClient,
    credentials: SalesforceCredentials,
    settings: Settings,
) -> SalesforceClient:
    return SalesforceClient(
        http_client,
        credentials,
        api_version=settings.sf_api_version,
        cache=cache_service,
        cache_ttl_seconds=settings.api_version_cache_ttl_seconds,
    )


def get_salesforce_client(
    credentials: Annotated[SalesforceCredentials, Depends(require_header_credentials)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SalesforceClient:
    return build_salesforce_client(http_client, credentials, settings)
