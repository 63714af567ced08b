"""Error taxonomy for the relay.

Two families, kept apart on purpose so handlers never have to sniff
JSON shapes to decide what went wrong:

  LocalValidationError — we rejected the request ourselves.  Always a
    400.  Carries a human-readable ``reason``.

  UpstreamError — Salesforce (or the network in between) failed.
    Carries the upstream ``status_code`` and ``body`` when we got a
    response at all, or ``None`` for both when the provider was
    unreachable.  Mapped to the upstream status, else 500.

The mapping to HTTP responses lives in ``install_error_handlers`` so
routes just raise.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base class for every error the relay maps to an HTTP response."""


class LocalValidationError(RelayError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidRequest(LocalValidationError):
    """Missing or malformed caller input."""


class InvalidOrExpiredState(LocalValidationError):
    """The state is unknown, already redeemed, or past its TTL.

    All three cases share one message so a caller can't probe which
    states exist.
    """

    def __init__(self) -> None:
        super().__init__("Invalid or expired state")


class UpstreamError(RelayError):
    generic_message = "Upstream request failed"

    def __init__(
        self,
        status_code: int | None = None,
        body: Any = None,
        *,
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.message = message or self.generic_message
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return self.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR

    def to_content(self) -> Any:
        if self.body is not None:
            return self.body
        return {"error": self.message}


class TokenExchangeFailed(UpstreamError):
    generic_message = "Token exchange failed"

    def to_content(self) -> Any:
        details = self.body if self.body is not None else self.message
        return {"error": self.generic_message, "details": details}


async def _local_validation_handler(
    _request: Request, exc: LocalValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.reason}
    )


async def _upstream_handler(_request: Request, exc: UpstreamError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_content())


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Only field locations are reported; the submitted values may hold tokens.
    fields = sorted(
        {".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()}
    )
    logger.info("Rejected malformed request  fields=%s", fields)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "fields": fields},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LocalValidationError, _local_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(UpstreamError, _upstream_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
