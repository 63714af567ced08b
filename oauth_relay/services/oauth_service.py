"""OAuth 2.0 Authorization Code + PKCE broker (relay side).

The relay plays the *client* role towards Salesforce on behalf of a
browser app that must never see the client secret or the PKCE verifier.

  begin()            — GET  /oauth/login     → 302 to the provider
  callback_redirect()— GET  /oauth/callback  → 302 to the browser app
  exchange()         — POST /oauth/token     → provider token response

The browser only ever holds the state token and (briefly) the code.
The verifier stays in the correlation store until exchange() takes it.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode, urlparse

import httpx
from fastapi import status

from oauth_relay.core.config import Settings
from oauth_relay.core.errors import (
    InvalidOrExpiredState,
    InvalidRequest,
    TokenExchangeFailed,
)
from oauth_relay.core.metrics import TOKEN_EXCHANGES
from oauth_relay.models.pending_authorization import PendingAuthorization
from oauth_relay.services import pkce_service
from oauth_relay.services.http import decode_body
from oauth_relay.services.state_store import StateStore

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/services/oauth2/authorize"
TOKEN_PATH = "/services/oauth2/token"
CALLBACK_SUCCESS_PATH = "/oauth/callback"


def normalize_login_url(login_url: str | None) -> str:
    """Validate the caller-supplied provider base URL.

    Salesforce has several login hosts (login., test., My Domain), so the
    browser app picks one.  We only accept a bare absolute http(s) origin
    and strip a trailing slash so paths can be appended.
    """
    if not login_url or not login_url.strip():
        raise InvalidRequest("loginUrl is required")
    candidate = login_url.strip().rstrip("/")
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRequest("loginUrl must be an absolute http(s) URL")
    if parsed.query or parsed.fragment:
        raise InvalidRequest("loginUrl must not carry a query or fragment")
    return candidate


def _state_prefix(state: str) -> str:
    # Enough to correlate log lines; too short to replay.
    return state[:8]


class OAuthService:
    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._settings = settings
        self._store = store
        self._http = http_client

    # ======================== GET /oauth/login ==========================

    def begin(self, login_url: str | None) -> str:
        """Start an attempt and return the provider authorization URL."""
        base = normalize_login_url(login_url)

        pair = pkce_service.generate_pkce_pair()
        state = pkce_service.generate_state()
        self._store.put(
            PendingAuthorization(
                state=state,
                code_verifier=pair.code_verifier,
                login_url=base,
                created_at=self._store.now(),
            )
        )
        logger.info(
            "OAUTH FLOW [login] attempt stored  state=%s… provider=%s ttl=%ss",
            _state_prefix(state),
            urlparse(base).netloc,
            self._store.ttl_seconds,
            extra={"flow": "login", "state_prefix": _state_prefix(state)},
        )

        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "code_challenge": pair.code_challenge,
            "code_challenge_method": "S256",
            "state": state,
            # Always show the login screen so users can switch orgs.
            "prompt": "login",
        }
        return f"{base}{AUTHORIZE_PATH}?{urlencode(params)}"

    # ======================= GET /oauth/callback ========================

    def callback_redirect(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None,
        error_description: str | None,
    ) -> str:
        """Forward the provider's answer to the browser app.

        Never touches the store or the provider: the browser app posts
        code + state to /oauth/token itself.  An abandoned attempt simply
        ages out of the store.
        """
        frontend = self._settings.frontend_url

        if error:
            logger.warning(
                "OAUTH FLOW [callback] provider returned error=%s",
                error,
                extra={"flow": "callback"},
            )
            params = {"error": error, "error_description": error_description or error}
            return f"{frontend}/?{urlencode(params)}"

        if not code or not state:
            missing = [n for n, v in (("code", code), ("state", state)) if not v]
            logger.warning(
                "OAUTH FLOW [callback] incomplete redirect  missing=%s",
                missing,
                extra={"flow": "callback"},
            )
            params = {
                "error": "invalid_request",
                "error_description": f"Missing {' and '.join(missing)} in callback",
            }
            return f"{frontend}/?{urlencode(params)}"

        logger.info(
            "OAUTH FLOW [callback] forwarding code to client app  state=%s…",
            _state_prefix(state),
            extra={"flow": "callback", "state_prefix": _state_prefix(state)},
        )
        query = urlencode({"code": code, "state": state})
        return f"{frontend}{CALLBACK_SUCCESS_PATH}?{query}"

    # ======================== POST /oauth/token =========================

    async def exchange(
        self,
        code: str | None,
        state: str | None,
        login_url: str | None,
    ) -> dict[str, Any]:
        """Redeem code + state for the provider's token response.

        The store entry is consumed before the provider is contacted, so
        it is gone whether the exchange then succeeds or fails.
        """
        if not code or not state or not login_url:
            fields = (("code", code), ("state", state), ("loginUrl", login_url))
            missing = ", ".join(name for name, value in fields if not value)
            raise InvalidRequest(f"Missing required field(s): {missing}")
        base = normalize_login_url(login_url)

        log_extra = {"flow": "token", "state_prefix": _state_prefix(state)}

        entry = self._store.take(state)
        if entry is None:
            logger.warning(
                "OAUTH FLOW [token] FAIL: unknown, reused or expired state",
                extra=log_extra,
            )
            raise InvalidOrExpiredState()
        if entry.login_url != base:
            logger.warning(
                "OAUTH FLOW [token] FAIL: loginUrl differs from the one used at login",
                extra=log_extra,
            )
            raise InvalidOrExpiredState()
        logger.info("OAUTH FLOW [token] state redeemed  ✓", extra=log_extra)

        # NOTE: never log this form; it carries the client secret,
        # the code and the verifier.
        form = {
            "grant_type": "authorization_code",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "redirect_uri": self._settings.redirect_uri,
            "code": code,
            "code_verifier": entry.code_verifier,
        }
        try:
            response = await self._http.post(f"{base}{TOKEN_PATH}", data=form)
        except httpx.HTTPError as exc:
            TOKEN_EXCHANGES.labels(result="unreachable").inc()
            logger.warning(
                "OAUTH FLOW [token] FAIL: provider unreachable (%s)",
                type(exc).__name__,
                extra=log_extra,
            )
            raise TokenExchangeFailed(message="Identity provider unreachable") from exc

        body = decode_body(response)
        if response.is_error:
            TOKEN_EXCHANGES.labels(result="provider_error").inc()
            logger.warning(
                "OAUTH FLOW [token] FAIL: provider answered %d  body=%s",
                response.status_code,
                body,
                extra={**log_extra, "upstream_status": response.status_code},
            )
            raise TokenExchangeFailed(response.status_code, body)

        if not isinstance(body, dict):
            TOKEN_EXCHANGES.labels(result="provider_error").inc()
            logger.warning(
                "OAUTH FLOW [token] FAIL: provider returned a non-JSON token response",
                extra=log_extra,
            )
            raise TokenExchangeFailed(
                status.HTTP_502_BAD_GATEWAY,
                message="Provider returned an unreadable token response",
            )

        TOKEN_EXCHANGES.labels(result="success").inc()
        logger.info(
            "OAUTH FLOW [token] access token issued by provider  ✓", extra=log_extra
        )
        return body
