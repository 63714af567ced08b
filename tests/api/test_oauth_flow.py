"""OAuth 2.0 Authorization Code + PKCE through the relay — full flow.

The test plays both the browser app and (via FakeSalesforce) the
identity provider:

  1. Login     — GET /oauth/login?loginUrl=…  → 302 to Salesforce
  2. Provider  — "user signs in"; Salesforce redirects to /oauth/callback
  3. Callback  — GET /oauth/callback          → 302 to the browser app
  4. Token     — POST /oauth/token            → provider token JSON
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from oauth_relay.services import pkce_service
from oauth_relay.services.state_store import StateStore
from tests.conftest import LOGIN_URL, FakeSalesforce, json_response

TOKEN_BODY = {
    "access_token": "00Dxx!AQ4AQ-access-token",
    "instance_url": "https://acme.my.salesforce.com",
    "token_type": "Bearer",
    "scope": "api id",
}


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def _start_login(client: TestClient) -> dict[str, str]:
    resp = client.get("/oauth/login", params={"loginUrl": LOGIN_URL})
    assert resp.status_code == 302, resp.text
    return _query(resp.headers["location"])


def _provider_token_endpoint(
    verifiers_seen: list[str], expected_code: str = "good-code"
):
    """Answer like Salesforce: check the code and the PKCE verifier."""

    def handler(request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        verifiers_seen.append(form["code_verifier"])
        if form["code"] != expected_code:
            return json_response(
                {"error": "invalid_grant", "error_description": "authentication failure"},
                status_code=400,
            )
        return json_response(TOKEN_BODY)

    return handler


def test_full_flow_happy_path(
    client: TestClient,
    fake_salesforce: FakeSalesforce,
    caplog: pytest.LogCaptureFixture,
) -> None:
    # ── 1. Login ───────────────────────────────────────────────────
    authorize = _start_login(client)
    assert authorize["code_challenge_method"] == "S256"
    state = authorize["state"]

    # ── 2+3. Provider redirects back; relay forwards to browser app ─
    resp = client.get("/oauth/callback", params={"code": "good-code", "state": state})
    assert resp.status_code == 302
    forwarded = _query(resp.headers["location"])
    assert forwarded == {"code": "good-code", "state": state}

    # ── 4. Browser app trades code + state for the token ───────────
    verifiers: list[str] = []
    fake_salesforce.handler = _provider_token_endpoint(verifiers)
    with caplog.at_level(logging.INFO, logger="oauth_relay.services.oauth_service"):
        resp = client.post(
            "/oauth/token",
            json={"code": "good-code", "state": state, "loginUrl": LOGIN_URL},
        )

    assert resp.status_code == 200, resp.text
    assert resp.json() == TOKEN_BODY

    # The verifier sent upstream matches the challenge sent at login.
    (verifier,) = verifiers
    assert pkce_service.compute_code_challenge(verifier) == authorize["code_challenge"]

    assert any("OAUTH FLOW [token]" in r.message for r in caplog.records)


def test_login_requires_login_url(client: TestClient, state_store: StateStore) -> None:
    resp = client.get("/oauth/login")
    assert resp.status_code == 400
    assert resp.json() == {"error": "loginUrl is required"}
    assert len(state_store) == 0


def test_login_stores_one_pending_attempt(
    client: TestClient, state_store: StateStore
) -> None:
    _start_login(client)
    _start_login(client)
    assert len(state_store) == 2


def test_token_replay_is_rejected(
    client: TestClient, fake_salesforce: FakeSalesforce
) -> None:
    state = _start_login(client)["state"]
    fake_salesforce.handler = _provider_token_endpoint([])
    body = {"code": "good-code", "state": state, "loginUrl": LOGIN_URL}

    first = client.post("/oauth/token", json=body)
    replay = client.post("/oauth/token", json=body)

    assert first.status_code == 200
    assert replay.status_code == 400
    assert replay.json() == {"error": "Invalid or expired state"}
    assert len(fake_salesforce.requests) == 1


def test_token_with_unissued_state_never_reaches_provider(
    client: TestClient, fake_salesforce: FakeSalesforce
) -> None:
    resp = client.post(
        "/oauth/token",
        json={"code": "good-code", "state": "made-up", "loginUrl": LOGIN_URL},
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid or expired state"}
    assert fake_salesforce.requests == []


def test_token_with_tampered_code_fails_and_consumes_state(
    client: TestClient, fake_salesforce: FakeSalesforce, state_store: StateStore
) -> None:
    state = _start_login(client)["state"]
    fake_salesforce.handler = _provider_token_endpoint([])

    resp = client.post(
        "/oauth/token",
        json={"code": "tampered", "state": state, "loginUrl": LOGIN_URL},
    )

    assert resp.status_code == 400
    assert resp.json() == {
        "error": "Token exchange failed",
        "details": {
            "error": "invalid_grant",
            "error_description": "authentication failure",
        },
    }
    assert len(state_store) == 0


def test_token_provider_unreachable_is_500(
    client: TestClient, fake_salesforce: FakeSalesforce
) -> None:
    state = _start_login(client)["state"]

    def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out")

    fake_salesforce.handler = down

    resp = client.post(
        "/oauth/token",
        json={"code": "good-code", "state": state, "loginUrl": LOGIN_URL},
    )
    assert resp.status_code == 500
    assert resp.json()["error"] == "Token exchange failed"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"state": "s", "loginUrl": LOGIN_URL},
        {"code": "c", "loginUrl": LOGIN_URL},
        {"code": "c", "state": "s"},
    ],
)
def test_token_missing_fields_is_400(
    client: TestClient, fake_salesforce: FakeSalesforce, body: dict
) -> None:
    resp = client.post("/oauth/token", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Missing required field")
    assert fake_salesforce.requests == []


def test_token_malformed_body_is_400(client: TestClient) -> None:
    resp = client.post("/oauth/token", json={"code": ["not", "a", "string"]})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request"


def test_callback_error_is_forwarded_decoded(client: TestClient) -> None:
    resp = client.get(
        "/oauth/callback?error=access_denied&error_description=User%20cancelled"
    )
    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith("http://localhost:5173/?")
    params = _query(location)
    assert params["error"] == "access_denied"
    assert params["error_description"] == "User cancelled"


def test_callback_without_code_redirects_with_error(client: TestClient) -> None:
    resp = client.get("/oauth/callback", params={"state": "abc"})
    assert resp.status_code == 302
    assert _query(resp.headers["location"])["error"] == "invalid_request"
