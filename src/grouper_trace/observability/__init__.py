"""Observability infrastructure for grouper-trace.

Structured logging, Prometheus metrics, and request-ID correlation
middleware for the trace API.

Quick start::

    from grouper_trace.observability import configure_logging, get_logger

    configure_logging()
    logger = get_logger(__name__)
"""

from .logging import configure_logging, get_logger, request_id_ctx, trace_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
    "trace_id_ctx",
]
