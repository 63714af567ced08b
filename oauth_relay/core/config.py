from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlparse

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEFAULT_CORS_ORIGINS = "http://localhost:5173,https://sf-validation-rule.netlify.app"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _require(name: str) -> str:
    value = _getenv(name, "")
    if not value:
        raise ValueError(f"{name} must be set")
    return value


def _positive_int(name: str, default: str) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value})")
    return value


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    redis_url: str | None
    client_id: str
    # Never shown in repr() so a logged Settings object can't leak it.
    client_secret: str = field(repr=False)
    redirect_uri: str
    frontend_url: str
    cors_origins: tuple[str, ...]
    state_ttl_seconds: int
    sweep_interval_seconds: int
    upstream_timeout_seconds: float
    sf_api_version: str
    api_version_cache_ttl_seconds: int

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    port_raw = _getenv("PORT", "4000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    # Connected App credentials: the relay cannot do anything useful without
    # them, so a missing value stops the process at startup.
    client_id = _require("CLIENT_ID")
    client_secret = _require("CLIENT_SECRET")
    redirect_uri = _require("REDIRECT_URI")
    if not _is_http_url(redirect_uri):
        raise ValueError(
            f"REDIRECT_URI must be an absolute http(s) URL (got {redirect_uri!r})"
        )

    frontend_url = _getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
    if not _is_http_url(frontend_url):
        raise ValueError(
            f"FRONTEND_URL must be an absolute http(s) URL (got {frontend_url!r})"
        )

    cors_origins = tuple(
        origin.strip().rstrip("/")
        for origin in _getenv("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    )

    timeout_raw = _getenv("UPSTREAM_TIMEOUT_SECONDS", "10")
    try:
        upstream_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"UPSTREAM_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if upstream_timeout <= 0:
        raise ValueError(
            f"UPSTREAM_TIMEOUT_SECONDS must be positive (got {upstream_timeout})"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("1", "true", "yes"),
        port=port,
        redis_url=_getenv("REDIS_URL", "") or None,
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        frontend_url=frontend_url,
        cors_origins=cors_origins,
        state_ttl_seconds=_positive_int("OAUTH_STATE_TTL_SECONDS", "600"),
        sweep_interval_seconds=_positive_int("OAUTH_SWEEP_INTERVAL_SECONDS", "60"),
        upstream_timeout_seconds=upstream_timeout,
        sf_api_version=_getenv("SF_API_VERSION", "59.0"),
        api_version_cache_ttl_seconds=_positive_int(
            "API_VERSION_CACHE_TTL_SECONDS", "3600"
        ),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
