"""Application metrics (Prometheus).

One inventory of everything the relay measures.  Other modules import
the metric they own and increment/observe it at the point of action.
Scraped from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Upper buckets are wide: proxied calls wait on Salesforce round-trips.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# OAuth broker
# ---------------------------------------------------------------------------

OAUTH_STATE_EVENTS = Counter(
    "oauth_state_events_total",
    "Correlation store lifecycle events",
    ["event"],  # "issued", "redeemed", "rejected", "expired"
)

PENDING_AUTHORIZATIONS = Gauge(
    "oauth_pending_authorizations",
    "Authorization attempts waiting for their token exchange",
)

TOKEN_EXCHANGES = Counter(
    "token_exchanges_total",
    "Code-for-token exchanges against the provider by result",
    ["result"],  # "success", "provider_error", "unreachable"
)

# ---------------------------------------------------------------------------
# API proxy
# ---------------------------------------------------------------------------

UPSTREAM_REQUESTS = Counter(
    "upstream_requests_total",
    "Proxied Salesforce API calls by operation and outcome",
    ["operation", "outcome"],  # outcome: "ok", "error", "unreachable"
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
