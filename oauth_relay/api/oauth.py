from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from oauth_relay.api.dependencies import get_oauth_service
from oauth_relay.services.oauth_service import OAuthService

# ---------------------------------------------------------------------------
# OAuth 2.0 Authorization Code + PKCE, relay side
#
# Endpoints:
#   GET  /oauth/login     — start an attempt, 302 to the Salesforce login page
#   GET  /oauth/callback  — Salesforce redirects here; 302 on to the browser app
#   POST /oauth/token     — browser app trades code + state for the token
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


class TokenRequest(BaseModel):
    """Body of POST /oauth/token.  Fields are checked by the service so a
    missing one yields our 400, not a 422."""

    code: str | None = None
    state: str | None = None
    loginUrl: str | None = None


@router.get("/oauth/login")
def login(
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    login_url: Annotated[str | None, Query(alias="loginUrl")] = None,
) -> RedirectResponse:
    authorize_url = service.begin(login_url)
    return RedirectResponse(url=authorize_url, status_code=status.HTTP_302_FOUND)


@router.get("/oauth/callback")
def callback(
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    error_description: str | None = Query(None),
) -> RedirectResponse:
    target = service.callback_redirect(
        code=code, state=state, error=error, error_description=error_description
    )
    return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)


@router.post("/oauth/token")
async def exchange_token(
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    body: TokenRequest | None = None,
) -> dict[str, Any]:
    # The provider's JSON goes back untouched; we don't model its fields.
    body = body or TokenRequest()
    return await service.exchange(body.code, body.state, body.loginUrl)
