"""Grouper trace configuration settings.

GrouperSettings is the single configuration object accepted by create_app()
and the CLI. It is a plain dataclass (not env-coupled) so tests can inject
config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from grouper_trace.directory.client import DEFAULT_BASE_URL

DEFAULT_MAX_DEPTH = 10
ABSOLUTE_MAX_DEPTH = 20


def _int(raw: str | None, default: int) -> int:
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _float(raw: str | None, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True, slots=True)
class GrouperSettings:
    """Connection and tracing defaults.

    All fields have defaults pointing at the public Grouper demo server.
    """

    # ── Grouper WS ─────────────────────────────────────────────────
    base_url: str = DEFAULT_BASE_URL
    """Grouper WS JSON base URL, including the ``v4_0_000`` version segment."""

    username: str = ""
    """Basic-auth user for Grouper WS."""

    password: str = ""
    """Basic-auth password. Never log this."""

    act_as_subject_id: str = ""
    act_as_subject_source_id: str = ""
    act_as_subject_identifier: str = ""

    timeout_seconds: float = 30.0
    max_retries: int = 3

    # ── Tracing ────────────────────────────────────────────────────
    default_max_depth: int = DEFAULT_MAX_DEPTH
    """Depth used when a trace request does not ask for one (clamped to 20)."""

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.base_url.startswith(("http://", "https://")):
            errors.append("base_url must be an http(s) URL")
        if bool(self.username) != bool(self.password):
            errors.append("username and password must be set together")
        if self.timeout_seconds <= 0:
            errors.append("timeout_seconds must be positive")
        if self.max_retries < 0:
            errors.append("max_retries must be >= 0")
        if not 1 <= self.default_max_depth <= ABSOLUTE_MAX_DEPTH:
            errors.append(
                f"default_max_depth must be between 1 and {ABSOLUTE_MAX_DEPTH}"
            )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> GrouperSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct GrouperSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        return cls(
            base_url=env.get("GROUPER_BASE_URL") or DEFAULT_BASE_URL,
            username=env.get("GROUPER_USERNAME", ""),
            password=env.get("GROUPER_PASSWORD", ""),
            act_as_subject_id=env.get("GROUPER_ACT_AS_SUBJECT_ID", ""),
            act_as_subject_source_id=env.get("GROUPER_ACT_AS_SUBJECT_SOURCE_ID", ""),
            act_as_subject_identifier=env.get("GROUPER_ACT_AS_SUBJECT_IDENTIFIER", ""),
            timeout_seconds=_float(env.get("GROUPER_TIMEOUT_SECONDS"), 30.0),
            max_retries=_int(env.get("GROUPER_MAX_RETRIES"), 3),
            default_max_depth=_int(env.get("GROUPER_TRACE_MAX_DEPTH"), DEFAULT_MAX_DEPTH),
        )
