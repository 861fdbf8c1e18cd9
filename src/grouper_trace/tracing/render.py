"""Plain-text rendering of trace results."""

from __future__ import annotations

from .nodes import (
    CompositeNode,
    CycleDetectedNode,
    EffectiveNode,
    ImmediateNode,
    MaxDepthReachedNode,
    TraceNode,
    TraceResult,
    UnknownNode,
)

_INDENT = "  "


def _label(node: TraceNode) -> str:
    name = node.group
    if node.display_name and node.display_name != node.group:
        name = f"{node.group} ({node.display_name})"

    if isinstance(node, ImmediateNode):
        return f"{name} [immediate member]"
    if isinstance(node, EffectiveNode):
        if node.lookup_failed:
            return f"{name} [effective member, directory lookup failed]"
        if not node.via:
            return f"{name} [effective member, path could not be reconstructed]"
        return f"{name} [effective member via]"
    if isinstance(node, CompositeNode):
        if node.operator is None:
            return f"{name} [composite, factor metadata unavailable]"
        op = node.operator.value
        return f"{name} [composite {op}: {node.left_group_name} {op.lower()} {node.right_group_name}]"
    if isinstance(node, CycleDetectedNode):
        return f"{name} [cycle detected, not followed]"
    if isinstance(node, MaxDepthReachedNode):
        return f"{name} [max depth reached]"
    if isinstance(node, UnknownNode):
        return f"{name} [unknown membership type {node.raw_type!r}]"
    raise TypeError(f"unsupported trace node: {type(node).__name__}")


def _render_nodes(nodes: tuple[TraceNode, ...], level: int, lines: list[str]) -> None:
    for node in nodes:
        lines.append(f"{_INDENT * level}- {_label(node)}")
        if isinstance(node, (EffectiveNode, CompositeNode)):
            _render_nodes(node.via, level + 1, lines)


def render_text(result: TraceResult) -> str:
    """Render a trace result as an indented tree for humans."""
    subject = result.subject_id
    if result.subject_name:
        subject = f"{result.subject_name} ({result.subject_id})"
    group = result.target_group_name
    if result.target_group_display_name:
        group = f"{result.target_group_name} ({result.target_group_display_name})"

    if not result.is_member:
        return f"{subject} is NOT a member of {group}"

    lines = [f"{subject} is a member of {group}", "", "Membership path:"]
    _render_nodes(result.paths, 1, lines)

    if result.cycles:
        lines.append("")
        lines.append("Cycles detected: " + ", ".join(result.cycles))
    if result.max_depth_reached:
        lines.append("")
        lines.append("Note: maximum trace depth reached; some paths were not fully expanded.")
    return "\n".join(lines)
