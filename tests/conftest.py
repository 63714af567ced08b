from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# Settings are read at import time and the Connected App credentials are
# required, so the environment must be in place before the app is imported.
os.environ.update(
    {
        "APP_ENV": "test",
        "LOG_LEVEL": "info",
        "CLIENT_ID": "test-client-id",
        "CLIENT_SECRET": "test-client-secret-do-not-log",
        "REDIRECT_URI": "http://localhost:4000/oauth/callback",
        "FRONTEND_URL": "http://localhost:5173",
    }
)
os.environ.pop("REDIS_URL", None)

# Ensure repo root is on sys.path so `import oauth_relay` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from oauth_relay.api.dependencies import get_http_client  # noqa: E402
from oauth_relay.main import app  # noqa: E402
from oauth_relay.services.cache import cache_service  # noqa: E402
from oauth_relay.services.state_store import StateStore  # noqa: E402

LOGIN_URL = "https://login.salesforce.com"
INSTANCE_URL = "https://acme.my.salesforce.com"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeSalesforce:
    """Stands in for every outbound call the relay makes.

    Tests set ``handler`` to answer requests; every request is recorded so
    tests can assert on what was (or wasn't) sent upstream.  A call with
    no handler set fails the test.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Handler | None = None
        self.clients: list[httpx.AsyncClient] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is None:
            raise AssertionError(
                f"unexpected upstream call: {request.method} {request.url}"
            )
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self))
        self.clients.append(http_client)
        return http_client


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear the API-version cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def fake_salesforce() -> FakeSalesforce:
    return FakeSalesforce()


@pytest.fixture
def client(fake_salesforce: FakeSalesforce) -> Iterator[TestClient]:
    """App client with the lifespan running and upstream calls faked.

    Redirects are not followed so tests can inspect Location headers.
    """
    http_client = fake_salesforce.client()
    app.dependency_overrides[get_http_client] = lambda: http_client
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client
        # Close on the app's event loop, while the portal is still open.
        test_client.portal.call(http_client.aclose)
    app.dependency_overrides.clear()


@pytest.fixture
def state_store(client: TestClient) -> StateStore:
    return client.app.state.state_store  # type: ignore[attr-defined]


def json_response(
    data: object, status_code: int = 200, request: httpx.Request | None = None
) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=data, request=request)
