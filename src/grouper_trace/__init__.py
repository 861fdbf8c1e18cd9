"""grouper-trace: explain how a subject is a member of a Grouper group.

Quick start::

    from grouper_trace import GrouperClient, GrouperSettings, TraceOptions, trace

    client = GrouperClient.from_settings(GrouperSettings.from_env())
    result = await trace(client, "jsmith", "org:apps:admins", TraceOptions(max_depth=5))
"""

from .directory.client import GrouperClient
from .settings import GrouperSettings
from .tracing.nodes import TraceResult
from .tracing.render import render_text
from .tracing.resolver import TraceCancelledError, TraceOptions, trace

__all__ = [
    "GrouperClient",
    "GrouperSettings",
    "TraceCancelledError",
    "TraceOptions",
    "TraceResult",
    "render_text",
    "trace",
]
