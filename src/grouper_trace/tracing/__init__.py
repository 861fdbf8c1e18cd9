"""Membership trace resolver and trace tree model."""

from .nodes import (
    CompositeNode,
    CycleDetectedNode,
    EffectiveNode,
    ImmediateNode,
    MaxDepthReachedNode,
    TraceNode,
    TraceResult,
    UnknownNode,
    walk,
)
from .render import render_text
from .resolver import (
    TraceCancelledError,
    TraceOptions,
    VisitedGroups,
    effective_max_depth,
    trace,
)

__all__ = [
    "CompositeNode",
    "CycleDetectedNode",
    "EffectiveNode",
    "ImmediateNode",
    "MaxDepthReachedNode",
    "TraceCancelledError",
    "TraceNode",
    "TraceOptions",
    "TraceResult",
    "UnknownNode",
    "VisitedGroups",
    "effective_max_depth",
    "render_text",
    "trace",
    "walk",
]
