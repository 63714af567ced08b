"""Demo: walk the relay's OAuth PKCE flow and one proxied call.

Salesforce is replaced by an in-process fake (httpx.MockTransport), so
no Connected App or network access is needed.

Run with:
    python scripts/demo_relay_flow.py
"""

from __future__ import annotations

import os
from urllib.parse import parse_qs, urlparse

import httpx

os.environ.setdefault("CLIENT_ID", "demo-client")
os.environ.setdefault("CLIENT_SECRET", "demo-client-secret")
os.environ.setdefault("REDIRECT_URI", "http://localhost:4000/oauth/callback")

from fastapi.testclient import TestClient  # noqa: E402

from oauth_relay.api.dependencies import get_http_client  # noqa: E402
from oauth_relay.main import app  # noqa: E402

LOGIN_URL = "https://login.salesforce.com"
INSTANCE_URL = "https://demo.my.salesforce.com"
DEMO_CODE = "demo-authorization-code"


def _fake_salesforce(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/services/oauth2/token":
        form = parse_qs(request.content.decode())
        if form["code"][0] != DEMO_CODE:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={
                "access_token": "00Ddemo!access-token",
                "instance_url": INSTANCE_URL,
                "token_type": "Bearer",
            },
        )
    if request.url.path.endswith("/tooling/query"):
        return httpx.Response(
            200,
            json={
                "totalSize": 1,
                "records": [{"Id": "03d000000000001AAA", "Active": True}],
            },
        )
    return httpx.Response(404, json=[{"errorCode": "NOT_FOUND"}])


def main() -> None:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_fake_salesforce))
    app.dependency_overrides[get_http_client] = lambda: http_client

    with TestClient(app, follow_redirects=False) as client:
        # ── Step 1: GET /oauth/login ────────────────────────────────
        r = client.get("/oauth/login", params={"loginUrl": LOGIN_URL})
        query = parse_qs(urlparse(r.headers["location"]).query)
        state = query["state"][0]
        print(
            f"1. GET  /oauth/login        → {r.status_code}  "
            f"challenge={query['code_challenge'][0][:12]}…  state={state[:8]}…"
        )

        # ── Step 2: provider redirects to /oauth/callback ───────────
        r = client.get("/oauth/callback", params={"code": DEMO_CODE, "state": state})
        print(f"2. GET  /oauth/callback     → {r.status_code}  {r.headers['location']}")

        # ── Step 3: POST /oauth/token ───────────────────────────────
        body = {"code": DEMO_CODE, "state": state, "loginUrl": LOGIN_URL}
        r = client.post("/oauth/token", json=body)
        token = r.json()
        print(
            f"3. POST /oauth/token        → {r.status_code}  "
            f"instance_url={token['instance_url']}"
        )

        # ── Step 4: GET /validation-rules (proxied) ─────────────────
        r = client.get(
            "/validation-rules",
            headers={
                "access_token": token["access_token"],
                "instance_url": token["instance_url"],
            },
        )
        print(f"4. GET  /validation-rules   → {r.status_code}  {r.json()}")

        # ── Step 5: replay the state ────────────────────────────────
        r = client.post("/oauth/token", json=body)
        print(f"5. POST /oauth/token (replay) → {r.status_code}  {r.json()['error']}")

        client.portal.call(http_client.aclose)

    app.dependency_overrides.clear()
    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
