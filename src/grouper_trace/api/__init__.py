"""HTTP surface for membership traces and directory lookups."""

from .app import create_app
from .directory_routes import create_directory_router
from .routes import create_trace_router

__all__ = ["create_app", "create_directory_router", "create_trace_router"]
