"""JSON error bodies shared by the API routers."""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse

from grouper_trace.directory.errors import DirectoryAuthError, DirectoryError

logger = logging.getLogger(__name__)


def error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': error, 'detail': detail})


def directory_error_response(exc: DirectoryError) -> JSONResponse:
    """Map a directory failure to a 502 body; credentials problems are reported apart."""
    if isinstance(exc, DirectoryAuthError):
        logger.error('Grouper rejected credentials: %s', exc)
        return error_response(
            502, 'directory_auth_failed', 'Grouper rejected the configured credentials.',
        )
    logger.error('Grouper request failed: %s', exc)
    return error_response(502, 'directory_unavailable', exc.message or str(exc))
