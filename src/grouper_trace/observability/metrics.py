"""Prometheus metrics for grouper-trace.

Usage::

    from grouper_trace.observability.metrics import TRACES_TOTAL

    TRACES_TOTAL.labels(outcome="member").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, route template and status code.",
    labelnames=["method", "route", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Trace metrics
# ---------------------------------------------------------------------------

TRACES_TOTAL = Counter(
    "grouper_trace_traces_total",
    "Completed membership traces by outcome (member, not_member, error, cancelled).",
    labelnames=["outcome"],
    registry=REGISTRY,
)

TRACE_DURATION_SECONDS = Histogram(
    "grouper_trace_duration_seconds",
    "Wall-clock time of a top-level membership trace.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=REGISTRY,
)

TRACE_NODES_TOTAL = Counter(
    "grouper_trace_nodes_total",
    "Trace nodes produced, by node kind.",
    labelnames=["kind"],
    registry=REGISTRY,
)

TRACE_BRANCH_FAILURES_TOTAL = Counter(
    "grouper_trace_branch_failures_total",
    "Sub-branch directory lookups that failed and were dropped from the trace.",
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
