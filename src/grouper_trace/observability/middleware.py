"""ASGI middleware for the trace HTTP surface.

- ``RequestIdMiddleware`` correlates each request with an id. A well-formed
  client ``X-Request-ID`` is reused, anything else is replaced, and the id
  is echoed on the response and injected into every log record.
- ``AccessMiddleware`` records Prometheus HTTP metrics and writes one
  access-log line per request, both keyed by the matched route template.

Add ``AccessMiddleware`` first and ``RequestIdMiddleware`` last so the id is
in context when the access line is written.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Label for requests no route matched, so stray paths share one series.
UNMATCHED_ROUTE = "unmatched"

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9\-]{8,128}$")


def accepted_request_id(value: str | None) -> str | None:
    """Return ``value`` if it is usable as a request id, else None."""
    if value and _VALID_REQUEST_ID.match(value):
        return value
    return None


def route_template(request: Request) -> str:
    """Path template of the matched route, e.g. ``/api/v1/subjects/{subject_id}``."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        rid = accepted_request_id(request.headers.get(REQUEST_ID_HEADER)) or uuid.uuid4().hex
        request.state.request_id = rid

        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response


class AccessMiddleware(BaseHTTPMiddleware):
    """Per-request metrics and access log, labelled by route template.

    The template is only known once routing has run, so labels are
    resolved after ``call_next`` returns.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start
            HTTP_REQUESTS_IN_FLIGHT.dec()
            self._record(request, status, duration)

    @staticmethod
    def _record(request: Request, status: int, duration: float) -> None:
        route = route_template(request)
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method, route=route, status=str(status),
        ).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(
            method=request.method, route=route,
        ).observe(duration)

        fields = {
            "method": request.method,
            "route": route,
            "status": status,
            "duration_ms": round(duration * 1000, 2),
        }
        group_name = request.query_params.get("group_name")
        if group_name:
            fields["group_name"] = group_name
        if status >= 500:
            logger.warning("request_completed", **fields)
        else:
            logger.info("request_completed", **fields)
