"""Grouper directory error hierarchy.

Kept small and free of httpx types so callers (the trace resolver, the API
layer, the CLI) can catch them without importing the transport.
"""

from __future__ import annotations

from typing import Any


class DirectoryError(Exception):
    """Base exception for Grouper directory lookups."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        response_body: str = "",
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Grouper directory error {status_code}: {message}")


class DirectoryUnavailableError(DirectoryError):
    """Network or protocol failure talking to Grouper (5xx, connection reset)."""


class DirectoryTimeoutError(DirectoryUnavailableError):
    """Request to Grouper timed out."""

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(0, message)


class DirectoryAuthError(DirectoryError):
    """401/403 (bad credentials, act-as not permitted)."""


class DirectoryNotFoundError(DirectoryError):
    """404 (unknown endpoint or web service version)."""

    def __init__(self, message: str = "Not found", **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class GrouperResultError(DirectoryError):
    """Grouper answered 200 but flagged the result as unsuccessful."""

    def __init__(
        self,
        result_code: str,
        message: str = "",
        *,
        response_body: str = "",
    ) -> None:
        self.result_code = result_code
        super().__init__(200, message or result_code, response_body=response_body)
