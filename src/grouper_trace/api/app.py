"""FastAPI application factory for the membership trace service."""

from __future__ import annotations

from fastapi import FastAPI

from grouper_trace.directory.client import GrouperClient
from grouper_trace.observability.middleware import AccessMiddleware, RequestIdMiddleware
from grouper_trace.protocols import DirectoryClient, DirectoryLookupClient
from grouper_trace.settings import GrouperSettings

from .directory_routes import create_directory_router
from .routes import create_trace_router


def create_app(
    settings: GrouperSettings | None = None,
    *,
    directory: DirectoryClient | None = None,
) -> FastAPI:
    """Create a configured trace API application.

    Args:
        settings: Application settings. Defaults to ``GrouperSettings()``.
        directory: Directory client override. When None, a ``GrouperClient``
            is built from ``settings``.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = GrouperSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Grouper trace settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if directory is None:
        directory = GrouperClient.from_settings(settings)

    app = FastAPI(title="grouper-trace")
    app.state.settings = settings
    app.state.directory = directory

    app.include_router(
        create_trace_router(directory, default_max_depth=settings.default_max_depth)
    )
    # Lookup routes only for clients that implement the lookups.
    if isinstance(directory, DirectoryLookupClient):
        app.include_router(create_directory_router(directory))

    # Last added runs outermost, so the request id is set before logging and metrics.
    app.add_middleware(AccessMiddleware)
    app.add_middleware(RequestIdMiddleware)
    return app
