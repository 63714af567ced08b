"""Logging configuration for the OAuth relay.

Two output shapes, picked by ``LOG_JSON``:

  _ContainerFormatter — single-line, human-readable, for local dev.
  _JsonFormatter      — JSON lines for the log aggregator in prod, with
                        the request context fields as top-level keys.

SECRETS
-------
This service handles a client secret, PKCE verifiers, authorization
codes and access tokens.  None of them may reach a log line.  Call
sites are written to never pass them to a logger; as a backstop,
``setup_logging`` accepts a list of known secret values and installs
``_RedactSecretsFilter`` on the handler, which masks any of them that
sneak into a fully-rendered message (e.g. inside an upstream error
body echoed back by the provider).
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterable

_REDACTED = "[REDACTED]"


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - ERROR/CRITICAL: stack trace included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Extra context fields are injected by RequestContextMiddleware (and by
    the OAuth routes for ``flow``/``state_prefix``) and appear as
    top-level keys.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "flow",
        "state_prefix",
        "upstream_status",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class _RedactSecretsFilter(logging.Filter):
    """Mask known secret values in the rendered message.

    The record is rewritten in place (msg rendered, args dropped) so every
    formatter downstream sees the masked text.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        # Very short values would mask ordinary words; skip them.
        self._secrets = tuple(s for s in secrets if s and len(s) >= 8)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, _REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level_name: str,
    *,
    json_format: bool = False,
    secrets: Iterable[str] = (),
) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
        secrets: Values that must never appear in output (client secret).
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(_RedactSecretsFilter(secrets))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG.  httpx logs full
    # request URLs at INFO, which would include query strings.
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
