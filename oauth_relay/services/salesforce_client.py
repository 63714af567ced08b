"""Thin async client for the handful of Salesforce REST calls we proxy.

Every call is single-attempt: a failure is surfaced to the browser app
as an UpstreamError carrying Salesforce's own status and body, and the
app decides whether to retry.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import status

from oauth_relay.core.errors import UpstreamError
from oauth_relay.core.metrics import CACHE_OPERATIONS, UPSTREAM_REQUESTS
from oauth_relay.models.salesforce_credentials import SalesforceCredentials
from oauth_relay.services.cache import CacheService
from oauth_relay.services.http import decode_body

logger = logging.getLogger(__name__)

VALIDATION_RULES_QUERY = (
    "SELECT Id, ValidationName, Active FROM ValidationRule "
    "WHERE EntityDefinition.QualifiedApiName = 'Account'"
)
ORGANIZATION_QUERY = (
    "SELECT Name, OrganizationType, IsSandbox, InstanceName FROM Organization"
)


class SalesforceClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: SalesforceCredentials,
        *,
        api_version: str,
        cache: CacheService,
        cache_ttl_seconds: int,
    ) -> None:
        self._http = http_client
        self._credentials = credentials
        self._api_version = api_version
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds

    async def _request(
        self,
        operation: str,
        failure_message: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        url = f"{self._credentials.instance_url}{path}"
        headers = {"Authorization": self._credentials.authorization}
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            UPSTREAM_REQUESTS.labels(operation=operation, outcome="unreachable").inc()
            logger.warning(
                "Salesforce %s unreachable (%s)", operation, type(exc).__name__
            )
            raise UpstreamError(message=failure_message) from exc

        body = decode_body(response)
        if not response.is_success:
            UPSTREAM_REQUESTS.labels(operation=operation, outcome="error").inc()
            logger.warning(
                "Salesforce %s failed  status=%d body=%s",
                operation,
                response.status_code,
                body,
                extra={"upstream_status": response.status_code},
            )
            # A redirect here means the instance URL is wrong; not the
            # caller's status to replay.
            upstream_status = (
                response.status_code
                if response.is_error
                else status.HTTP_502_BAD_GATEWAY
            )
            raise UpstreamError(upstream_status, body, message=failure_message)

        UPSTREAM_REQUESTS.labels(operation=operation, outcome="ok").inc()
        return body

    # ------------------------------------------------------------------
    # Validation rules (Tooling API)
    # ------------------------------------------------------------------

    def _rule_path(self, rule_id: str) -> str:
        return (
            f"/services/data/v{self._api_version}"
            f"/tooling/sobjects/ValidationRule/{rule_id}"
        )

    async def list_validation_rules(self) -> Any:
        return await self._request(
            "list_validation_rules",
            "Failed to fetch validation rules",
            "GET",
            f"/services/data/v{self._api_version}/tooling/query",
            params={"q": VALIDATION_RULES_QUERY},
        )

    async def get_validation_rule_metadata(self, rule_id: str) -> dict[str, Any]:
        body = await self._request(
            "get_validation_rule",
            "Failed to fetch validation rule",
            "GET",
            self._rule_path(rule_id),
        )
        metadata = body.get("Metadata") if isinstance(body, dict) else None
        if not isinstance(metadata, dict):
            raise UpstreamError(
                status.HTTP_502_BAD_GATEWAY,
                message="Validation rule has no Metadata",
            )
        return metadata

    async def set_validation_rule_active(self, rule_id: str, active: bool) -> Any:
        """Flip a rule on or off.

        The Tooling API only accepts whole-Metadata updates, so the
        current Metadata is read first and written back with ``active``
        changed.  Returns the PATCH response body (None on 204).
        """
        metadata = await self.get_validation_rule_metadata(rule_id)
        metadata["active"] = active
        return await self._request(
            "toggle_validation_rule",
            "Failed to toggle validation rule",
            "PATCH",
            self._rule_path(rule_id),
            json={"Metadata": metadata},
        )

    # ------------------------------------------------------------------
    # Identity and org
    # ------------------------------------------------------------------

    async def get_userinfo(self) -> Any:
        return await self._request(
            "userinfo", "Failed to fetch user info", "GET", "/services/oauth2/userinfo"
        )

    async def get_latest_api_version(self) -> str:
        """Newest REST API version the instance serves, cached per instance."""
        cache_key = f"sf:api_version:{self._credentials.instance_url}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return cached
        CACHE_OPERATIONS.labels(operation="miss").inc()

        body = await self._request(
            "api_versions", "Failed to fetch API versions", "GET", "/services/data"
        )
        versions = [
            str(item["version"])
            for item in (body if isinstance(body, list) else [])
            if isinstance(item, dict) and "version" in item
        ]
        if not versions:
            raise UpstreamError(
                status.HTTP_502_BAD_GATEWAY, message="No API versions advertised"
            )
        try:
            latest = max(versions, key=float)
        except ValueError:
            raise UpstreamError(
                status.HTTP_502_BAD_GATEWAY, message="Unreadable API version list"
            ) from None
        await self._cache.set(cache_key, latest, self._cache_ttl_seconds)
        logger.info(
            "Resolved API version  instance=%s version=%s",
            self._credentials.instance_url,
            latest,
        )
        return latest

    async def get_organization(self) -> dict[str, Any]:
        api_version = await self.get_latest_api_version()
        body = await self._request(
            "organization",
            "Failed to fetch organization info",
            "GET",
            f"/services/data/v{api_version}/query",
            params={"q": ORGANIZATION_QUERY},
        )
        records = body.get("records") if isinstance(body, dict) else None
        if not records or not isinstance(records, list):
            raise UpstreamError(
                status.HTTP_502_BAD_GATEWAY,
                message="Organization query returned no records",
            )
        if not isinstance(records[0], dict):
            raise UpstreamError(
                status.HTTP_502_BAD_GATEWAY,
                message="Organization query returned an unreadable record",
            )
        return {"apiVersion": api_version, **records[0]}
