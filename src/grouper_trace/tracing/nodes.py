"""Trace tree model.

A trace tree is built from six node variants, one frozen dataclass each.
``TraceNode`` is their union; match on the class (or on ``kind`` once
serialised) rather than probing optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Union

from grouper_trace.directory.models import CompositeType


@dataclass(frozen=True, slots=True)
class _NodeBase:
    group: str
    depth: int
    display_name: str | None = field(default=None, kw_only=True)
    description: str | None = field(default=None, kw_only=True)

    kind: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "group": self.group, "depth": self.depth}
        if self.display_name is not None:
            data["display_name"] = self.display_name
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(frozen=True, slots=True)
class ImmediateNode(_NodeBase):
    """Subject is a direct member of ``group``."""

    kind: ClassVar[str] = "immediate"


@dataclass(frozen=True, slots=True)
class EffectiveNode(_NodeBase):
    """Subject reaches ``group`` through the intermediate sub-traces in ``via``.

    ``lookup_failed`` marks an empty ``via`` caused by a directory error while
    discovering intermediates, as opposed to none being found.
    """

    via: tuple[TraceNode, ...] = ()
    lookup_failed: bool = False

    kind: ClassVar[str] = "effective"

    def to_dict(self) -> dict[str, Any]:
        data = _NodeBase.to_dict(self)
        data["via"] = [child.to_dict() for child in self.via]
        if self.lookup_failed:
            data["lookup_failed"] = True
        return data


@dataclass(frozen=True, slots=True)
class CompositeNode(_NodeBase):
    """Membership derived from ``operator`` applied to two factor groups.

    ``operator`` is None when the directory reported a composite membership
    without usable factor metadata.
    """

    operator: CompositeType | None = None
    left_group_name: str | None = None
    right_group_name: str | None = None
    via: tuple[TraceNode, ...] = ()

    kind: ClassVar[str] = "composite"

    def to_dict(self) -> dict[str, Any]:
        data = _NodeBase.to_dict(self)
        data["operator"] = self.operator.value if self.operator else None
        data["left_group_name"] = self.left_group_name
        data["right_group_name"] = self.right_group_name
        data["via"] = [child.to_dict() for child in self.via]
        return data


@dataclass(frozen=True, slots=True)
class CycleDetectedNode(_NodeBase):
    kind: ClassVar[str] = "cycle_detected"


@dataclass(frozen=True, slots=True)
class MaxDepthReachedNode(_NodeBase):
    kind: ClassVar[str] = "max_depth_reached"


@dataclass(frozen=True, slots=True)
class UnknownNode(_NodeBase):
    """Membership type the tracer does not recognise."""

    raw_type: str = ""

    kind: ClassVar[str] = "unknown"

    def to_dict(self) -> dict[str, Any]:
        data = _NodeBase.to_dict(self)
        data["raw_type"] = self.raw_type
        return data


TraceNode = Union[
    ImmediateNode,
    EffectiveNode,
    CompositeNode,
    CycleDetectedNode,
    MaxDepthReachedNode,
    UnknownNode,
]


def walk(nodes: tuple[TraceNode, ...] | list[TraceNode]) -> Iterator[TraceNode]:
    """Yield every node of the given forest, depth first, parents before children."""
    for node in nodes:
        yield node
        if isinstance(node, (EffectiveNode, CompositeNode)):
            yield from walk(node.via)


@dataclass(frozen=True, slots=True)
class TraceResult:
    """Outcome of one top-level trace."""

    subject_id: str
    target_group_name: str
    is_member: bool
    paths: tuple[TraceNode, ...] = ()
    cycles: tuple[str, ...] = ()
    subject_name: str | None = None
    target_group_display_name: str | None = None

    @property
    def max_depth_reached(self) -> bool:
        return any(isinstance(node, MaxDepthReachedNode) for node in walk(self.paths))

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "target_group_name": self.target_group_name,
            "target_group_display_name": self.target_group_display_name,
            "is_member": self.is_member,
            "paths": [node.to_dict() for node in self.paths],
            "cycles": list(self.cycles),
            "max_depth_reached": self.max_depth_reached,
        }
