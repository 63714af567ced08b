"""Request context middleware: assigns a unique ID to every request.

Login attempts, callbacks and token exchanges for different users
interleave in the log.  The request ID (a ContextVar, so it is per-task
under asyncio) is stamped on every LogRecord by a wrapped record factory and
echoed back as X-Request-ID so the browser app can quote it in bug
reports.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Client-supplied ids end up in every log line; anything else is replaced.
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def _install_record_factory() -> None:
    """Stamp request_id on every LogRecord at creation time.

    A filter on the root logger would miss records from child loggers
    (logger filters don't run on propagation), so the factory is wrapped
    instead.  Idempotent across module reloads.
    """
    previous = logging.getLogRecordFactory()
    if getattr(previous, "_stamps_request_id", False):
        return

    def factory(*args, **kwargs) -> logging.LogRecord:
        record = previous(*args, **kwargs)
        record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        return record

    factory._stamps_request_id = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(factory)


_install_record_factory()


def _request_id_from(request: Request) -> str:
    supplied = request.headers.get("x-request-id")
    if supplied and _SAFE_REQUEST_ID.match(supplied):
        return supplied
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line.

    The summary logs the path only, never the query string: /oauth/callback
    carries the authorization code there.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = _request_id_from(request)
        token = request_id_var.set(req_id)
        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = req_id
        return response
