"""Membership trace endpoints.

Response contracts:
  GET /health        → 200 { status: ok }
  GET /metrics       → 200 Prometheus exposition text
  GET /api/v1/trace  → 200 TraceResponse JSON (text/plain tree with format=text)
                       400 { error: invalid_request }
                       502 { error: directory_unavailable }
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse, Response

from grouper_trace.directory.errors import DirectoryError
from grouper_trace.observability.metrics import metrics_text
from grouper_trace.protocols import DirectoryClient
from grouper_trace.tracing.render import render_text
from grouper_trace.tracing.resolver import TraceOptions, trace

from .errors import directory_error_response, error_response
from .schemas import ErrorResponse, TraceResponse


def create_trace_router(
    directory: DirectoryClient,
    *,
    default_max_depth: int | None = None,
) -> APIRouter:
    """Create the trace router.

    Args:
        directory: Directory client used for every trace.
        default_max_depth: Depth applied when a request omits ``max_depth``.
    """
    router = APIRouter(tags=['trace'])

    @router.get('/health')
    async def health():
        return {'status': 'ok'}

    @router.get('/metrics')
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    @router.get(
        '/api/v1/trace',
        response_model=TraceResponse,
        response_model_exclude_unset=True,
        responses={400: {'model': ErrorResponse}, 502: {'model': ErrorResponse}},
    )
    async def trace_membership(
        subject_id: str = Query(..., min_length=1),
        group_name: str = Query(..., min_length=1),
        subject_source_id: str | None = None,
        max_depth: int | None = Query(default=None, ge=0),
        format: Literal['json', 'text'] = 'json',
    ):
        """Explain whether and how a subject is a member of a group.

        ``max_depth`` above 20 is accepted and clamped to 20.
        """
        subject_id = subject_id.strip()
        group_name = group_name.strip()
        if not subject_id or not group_name:
            return error_response(
                400, 'invalid_request', 'subject_id and group_name must be non-blank.',
            )

        options = TraceOptions(
            subject_source_id=subject_source_id or None,
            max_depth=max_depth if max_depth is not None else default_max_depth,
        )
        try:
            result = await trace(directory, subject_id, group_name, options)
        except DirectoryError as exc:
            return directory_error_response(exc)

        if format == 'text':
            return PlainTextResponse(render_text(result))
        return result.to_dict()

    return router
