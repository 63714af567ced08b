from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oauth_relay.api.health import router as health_router
from oauth_relay.api.metrics_endpoint import router as metrics_router
from oauth_relay.api.oauth import router as oauth_router
from oauth_relay.api.salesforce import router as salesforce_router
from oauth_relay.api.validation_rules import router as validation_rules_router
from oauth_relay.core.config import SETTINGS
from oauth_relay.core.errors import install_error_handlers
from oauth_relay.core.logging import setup_logging
from oauth_relay.db.redis import lifespan_redis
from oauth_relay.middleware.metrics import MetricsMiddleware
from oauth_relay.middleware.request_context import RequestContextMiddleware
from oauth_relay.services.http import lifespan_http_client
from oauth_relay.services.state_store import InMemoryStateStore, run_sweeper

# Configure logging before anything else runs.
setup_logging(
    SETTINGS.log_level,
    json_format=SETTINGS.log_json,
    secrets=(SETTINGS.client_secret,),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # The correlation store lives exactly as long as the app; routes get it
    # through Depends(get_state_store), never via an import.
    store = InMemoryStateStore(ttl_seconds=SETTINGS.state_ttl_seconds)
    app.state.state_store = store
    sweeper = asyncio.create_task(
        run_sweeper(store, SETTINGS.sweep_interval_seconds), name="oauth-state-sweeper"
    )
    try:
        async with lifespan_redis():
            async with lifespan_http_client(SETTINGS) as http_client:
                app.state.http_client = http_client
                yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        logger.info("Correlation store dropped  pending=%d", len(store))


app = FastAPI(
    title="sf-oauth-relay",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

install_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(oauth_router)
app.include_router(salesforce_router)
app.include_router(validation_rules_router)

logger.info(
    "sf-oauth-relay configured  env=%s log_level=%s port=%d state_ttl=%ds docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.state_ttl_seconds,
    "on" if SETTINGS.is_dev else "off",
)


def run() -> None:
    """Console entry point: serve the app with uvicorn on PORT."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=SETTINGS.port, log_config=None)
