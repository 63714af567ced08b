from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from oauth_relay.core.errors import UpstreamError
from oauth_relay.models.salesforce_credentials import SalesforceCredentials
from oauth_relay.services.cache import InMemoryCacheService
from oauth_relay.services.salesforce_client import SalesforceClient
from tests.conftest import INSTANCE_URL, FakeSalesforce, json_response

RULE_ID = "03d5g000000AbCdEAF"
RULE_PATH = f"/services/data/v59.0/tooling/sobjects/ValidationRule/{RULE_ID}"


@pytest.fixture
def upstream() -> FakeSalesforce:
    return FakeSalesforce()


@pytest.fixture
def cache() -> InMemoryCacheService:
    return InMemoryCacheService()


def _client(
    upstream: FakeSalesforce,
    cache: InMemoryCacheService,
    instance_url: str = INSTANCE_URL,
) -> SalesforceClient:
    return SalesforceClient(
        upstream.client(),
        SalesforceCredentials(instance_url=instance_url, access_token="tok"),
        api_version="59.0",
        cache=cache,
        cache_ttl_seconds=3600,
    )


def test_every_call_carries_bearer_token(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    upstream.handler = lambda request: json_response({"sub": "005"})

    asyncio.run(_client(upstream, cache).get_userinfo())

    (request,) = upstream.requests
    assert request.headers["authorization"] == "Bearer tok"
    assert str(request.url) == f"{INSTANCE_URL}/services/oauth2/userinfo"


def test_list_validation_rules_runs_tooling_query(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    result = {"size": 1, "records": [{"Id": RULE_ID, "Active": True}]}
    upstream.handler = lambda request: json_response(result)

    body = asyncio.run(_client(upstream, cache).list_validation_rules())

    assert body == result
    (request,) = upstream.requests
    assert request.url.path == "/services/data/v59.0/tooling/query"
    assert "FROM ValidationRule" in request.url.params["q"]
    assert "'Account'" in request.url.params["q"]


def test_set_active_reads_metadata_then_patches_it(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    metadata = {
        "active": False,
        "errorConditionFormula": "ISBLANK(Phone)",
        "errorMessage": "Phone is required",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return json_response({"Id": RULE_ID, "Metadata": metadata})
        return httpx.Response(204)

    upstream.handler = handler

    result = asyncio.run(_client(upstream, cache).set_validation_rule_active(RULE_ID, True))

    assert result is None
    get, patch = upstream.requests
    assert get.method == "GET" and get.url.path == RULE_PATH
    assert patch.method == "PATCH" and patch.url.path == RULE_PATH
    assert json.loads(patch.content) == {"Metadata": {**metadata, "active": True}}


def test_missing_metadata_is_a_bad_gateway(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    upstream.handler = lambda request: json_response({"Id": RULE_ID})

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(_client(upstream, cache).set_validation_rule_active(RULE_ID, True))
    assert excinfo.value.http_status == 502
    assert len(upstream.requests) == 1


def test_upstream_error_keeps_status_and_body(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    body = [{"errorCode": "INVALID_SESSION_ID", "message": "Session expired"}]
    upstream.handler = lambda request: json_response(body, status_code=401)

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(_client(upstream, cache).get_userinfo())
    assert excinfo.value.status_code == 401
    assert excinfo.value.to_content() == body


def test_unreachable_instance_is_generic_500(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route to host")

    upstream.handler = boom

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(_client(upstream, cache).list_validation_rules())
    assert excinfo.value.http_status == 500
    assert excinfo.value.to_content() == {"error": "Failed to fetch validation rules"}


def test_latest_api_version_picks_highest_and_is_cached(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    versions = [
        {"label": "Winter '24", "url": "/services/data/v59.0", "version": "59.0"},
        {"label": "Summer '24", "url": "/services/data/v61.0", "version": "61.0"},
        {"label": "Spring '24", "url": "/services/data/v60.0", "version": "60.0"},
    ]
    upstream.handler = lambda request: json_response(versions)
    client = _client(upstream, cache)

    assert asyncio.run(client.get_latest_api_version()) == "61.0"
    assert asyncio.run(client.get_latest_api_version()) == "61.0"
    assert len(upstream.requests) == 1


def test_api_version_cache_is_per_instance(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        version = "62.0" if request.url.host == "beta.my.salesforce.com" else "60.0"
        return json_response([{"version": version}])

    upstream.handler = handler

    acme = _client(upstream, cache)
    beta = _client(upstream, cache, instance_url="https://beta.my.salesforce.com")

    assert asyncio.run(acme.get_latest_api_version()) == "60.0"
    assert asyncio.run(beta.get_latest_api_version()) == "62.0"
    assert len(upstream.requests) == 2


def test_api_version_cache_entry_expires() -> None:
    now = [0.0]
    cache = InMemoryCacheService(clock=lambda: now[0])

    asyncio.run(cache.set("k", "v", ttl_seconds=10))
    assert asyncio.run(cache.get("k")) == "v"
    now[0] = 10.0
    assert asyncio.run(cache.get("k")) is None


def test_organization_merges_api_version_into_first_record(
    upstream: FakeSalesforce, cache: InMemoryCacheService
) -> None:
    org = {"Name": "Acme", "OrganizationType": "Developer Edition", "IsSandbox": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/services/data":
            return json_response([{"version": "60.0"}])
        assert request.url.path == "/services/data/v60.0/query"
        assert "FROM Organization" in request.url.params["q"]
        return json_response({"totalSize": 1, "records": [org]})

    upstream.handler = handler

    body = asyncio.run(_client(upstream, cache).get_organization())

    assert body == {"apiVersion": "60.0", **org}
