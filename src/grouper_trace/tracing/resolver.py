"""Membership trace resolver.

Explains *how* a subject is a member of a Grouper group by walking the
membership graph from the target group down to the subject's immediate
memberships:

- ``immediate``  -> terminal node.
- ``composite``  -> trace the factor groups (INTERSECTION: both, concurrently;
  UNION: left, then right only if left explains nothing; COMPLEMENT: left
  only, the excluded right factor is never traced).
- ``effective``  -> find intermediate groups (groups the subject belongs to
  that are direct members of this group) and trace each concurrently.

Every top-level ``trace()`` owns a fresh ``_TraceState``. Recursion is
bounded by ``max_depth`` (default 10, never more than 20) and re-entry into
an already visited group name is reported as a cycle instead of followed.
Concurrent branches share the visited set; check-and-mark is serialised
behind an ``asyncio.Lock`` so two siblings cannot both claim a group.

Directory failures on the initial lookup propagate to the caller. Failures
inside a sub-branch are logged and the branch contributes nothing, so one bad
group cannot sink the whole trace.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Iterable, TypeVar

from grouper_trace.directory.errors import DirectoryError
from grouper_trace.directory.models import (
    CompositeType,
    Group,
    MembershipDetails,
    MembershipRecord,
    MembershipType,
)
from grouper_trace.observability.logging import trace_id_ctx
from grouper_trace.observability.metrics import (
    TRACE_BRANCH_FAILURES_TOTAL,
    TRACE_DURATION_SECONDS,
    TRACE_NODES_TOTAL,
    TRACES_TOTAL,
)
from grouper_trace.protocols import DirectoryClient
from grouper_trace.settings import ABSOLUTE_MAX_DEPTH, DEFAULT_MAX_DEPTH

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

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRACEABLE_MEMBERSHIP_TYPES = frozenset(t.value for t in MembershipType)


class TraceCancelledError(Exception):
    """Raised when the caller's cancel event is set while a trace is running."""


@dataclass(frozen=True, slots=True)
class TraceOptions:
    subject_source_id: str | None = None
    max_depth: int | None = None
    cancel_event: asyncio.Event | None = None


def effective_max_depth(requested: int | None) -> int:
    """Clamp a requested depth: default 10, hard ceiling 20.

    Zero is honoured (the target itself is reported as max depth reached);
    negative values count as zero.
    """
    if requested is None:
        return DEFAULT_MAX_DEPTH
    return max(0, min(requested, ABSOLUTE_MAX_DEPTH))


class VisitedGroups:
    """Group names entered during one trace, shared by all of its branches."""

    def __init__(self) -> None:
        self._names: set[str] = set()
        self._lock = asyncio.Lock()

    async def claim(self, group_name: str) -> bool:
        """Mark ``group_name`` visited. Returns False if it already was."""
        async with self._lock:
            if group_name in self._names:
                return False
            self._names.add(group_name)
            return True

    def __contains__(self, group_name: object) -> bool:
        return group_name in self._names

    def __len__(self) -> int:
        return len(self._names)


@dataclass(slots=True)
class _TraceState:
    client: DirectoryClient
    subject_id: str
    subject_source_id: str | None
    max_depth: int
    cancel_event: asyncio.Event | None = None
    visited: VisitedGroups = field(default_factory=VisitedGroups)

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TraceCancelledError(f"trace of {self.subject_id} cancelled")


async def _gather(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Run awaitables concurrently; if one raises, cancel the rest."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


def _node_kwargs(group: Group | None) -> dict[str, str | None]:
    if group is None:
        return {}
    return {"display_name": group.display_name, "description": group.description}


def _group_for(details: MembershipDetails, record: MembershipRecord, group_name: str) -> Group | None:
    group = details.group_for(record)
    if group is not None:
        return group
    for candidate in details.groups:
        if candidate.name == group_name:
            return candidate
    return None


# ── Top level ─────────────────────────────────────────────────────────


async def trace(
    client: DirectoryClient,
    subject_id: str,
    target_group_name: str,
    options: TraceOptions | None = None,
) -> TraceResult:
    """Trace how ``subject_id`` is (or is not) a member of ``target_group_name``.

    Raises:
        ValueError: empty identifiers.
        DirectoryError: the initial membership lookup failed.
        TraceCancelledError: ``options.cancel_event`` was set mid-trace.
    """
    if not subject_id:
        raise ValueError("subject_id is required")
    if not target_group_name:
        raise ValueError("target_group_name is required")

    options = options or TraceOptions()
    state = _TraceState(
        client=client,
        subject_id=subject_id,
        subject_source_id=options.subject_source_id,
        max_depth=effective_max_depth(options.max_depth),
        cancel_event=options.cancel_event,
    )

    token = trace_id_ctx.set(uuid.uuid4().hex)
    start = time.perf_counter()
    outcome = "error"
    try:
        result = await _trace(state, target_group_name)
        outcome = "member" if result.is_member else "not_member"
        return result
    except (TraceCancelledError, asyncio.CancelledError):
        outcome = "cancelled"
        raise
    finally:
        TRACE_DURATION_SECONDS.observe(time.perf_counter() - start)
        TRACES_TOTAL.labels(outcome=outcome).inc()
        trace_id_ctx.reset(token)


async def _trace(state: _TraceState, target_group_name: str) -> TraceResult:
    logger.debug(
        "Starting membership trace: subject=%s group=%s max_depth=%d",
        state.subject_id,
        target_group_name,
        state.max_depth,
        extra={"group_name": target_group_name},
    )

    state.check_cancelled()
    details = await state.client.get_membership_details(
        state.subject_id,
        target_group_name,
        subject_source_id=state.subject_source_id,
    )

    subject_name = details.subject.name if details.subject else None
    display_name = details.group.display_name if details.group else None

    if not details.memberships:
        return TraceResult(
            subject_id=state.subject_id,
            subject_name=subject_name,
            target_group_name=target_group_name,
            target_group_display_name=display_name,
            is_member=False,
        )

    record = details.memberships[0]
    paths = await expand(
        state, target_group_name, record, _group_for(details, record, target_group_name), 0,
    )

    cycles = tuple(n.group for n in walk(paths) if isinstance(n, CycleDetectedNode))
    for node in walk(paths):
        TRACE_NODES_TOTAL.labels(kind=node.kind).inc()

    result = TraceResult(
        subject_id=state.subject_id,
        subject_name=subject_name,
        target_group_name=target_group_name,
        target_group_display_name=display_name,
        is_member=True,
        paths=tuple(paths),
        cycles=cycles,
    )
    logger.info(
        "Membership trace finished: subject=%s group=%s groups_visited=%d cycles=%d",
        state.subject_id,
        target_group_name,
        len(state.visited),
        len(cycles),
        extra={"group_name": target_group_name},
    )
    return result


# ── Recursive step ────────────────────────────────────────────────────


async def expand(
    state: _TraceState,
    group_name: str,
    record: MembershipRecord,
    group: Group | None,
    depth: int,
) -> list[TraceNode]:
    """Explain one (subject, group) membership record at ``depth``."""
    extra = _node_kwargs(group)

    if depth >= state.max_depth:
        logger.info(
            "Max depth reached during trace: group=%s depth=%d",
            group_name,
            depth,
            extra={"group_name": group_name},
        )
        return [MaxDepthReachedNode(group_name, depth, **extra)]

    if not await state.visited.claim(group_name):
        logger.info(
            "Cycle detected during trace: group=%s depth=%d",
            group_name,
            depth,
            extra={"group_name": group_name},
        )
        return [CycleDetectedNode(group_name, depth, **extra)]

    membership_type = record.membership_type

    if membership_type == MembershipType.immediate.value:
        return [ImmediateNode(group_name, depth, **extra)]

    if membership_type == MembershipType.composite.value:
        return [await _expand_composite(state, group_name, group, depth)]

    if membership_type == MembershipType.effective.value:
        via = await _discover_intermediates(state, group_name, depth)
        return [EffectiveNode(
            group_name,
            depth,
            via=tuple(via or ()),
            lookup_failed=via is None,
            **extra,
        )]

    logger.info(
        "Unknown membership type: type=%r group=%s",
        membership_type,
        group_name,
        extra={"group_name": group_name},
    )
    return [UnknownNode(group_name, depth, raw_type=membership_type, **extra)]


async def _expand_composite(
    state: _TraceState,
    group_name: str,
    group: Group | None,
    depth: int,
) -> CompositeNode:
    extra = _node_kwargs(group)
    composite = group.composite if group is not None else None
    if composite is None:
        logger.warning(
            "Composite membership without composite metadata: group=%s",
            group_name,
            extra={"group_name": group_name},
        )
        return CompositeNode(group_name, depth, **extra)

    operator = composite.composite_type
    left = composite.left_group_name
    right = composite.right_group_name
    node_args = dict(operator=operator, left_group_name=left, right_group_name=right, **extra)

    logger.debug(
        "Processing composite membership: group=%s operator=%s left=%s right=%s",
        group_name,
        operator.value if operator else composite.raw_composite_type,
        left,
        right,
        extra={"group_name": group_name},
    )

    via: list[TraceNode] = []
    if operator is CompositeType.INTERSECTION and left and right:
        left_paths, right_paths = await _gather([
            _trace_group(state, left, depth + 1),
            _trace_group(state, right, depth + 1),
        ])
        via = left_paths + right_paths
    elif operator is CompositeType.UNION and left:
        via = await _trace_group(state, left, depth + 1)
        if not via and right:
            via = await _trace_group(state, right, depth + 1)
    elif operator is CompositeType.COMPLEMENT and left:
        # The excluded (right) factor is trusted to the directory, not traced.
        via = await _trace_group(state, left, depth + 1)
    else:
        logger.warning(
            "Malformed composite metadata: group=%s operator=%r left=%s right=%s",
            group_name,
            composite.raw_composite_type,
            left,
            right,
            extra={"group_name": group_name},
        )

    return CompositeNode(group_name, depth, via=tuple(via), **node_args)


async def _discover_intermediates(
    state: _TraceState,
    group_name: str,
    depth: int,
) -> list[TraceNode] | None:
    """Trace the groups through which an effective membership flows.

    Returns None when the discovery lookups themselves failed.
    """
    state.check_cancelled()
    try:
        subject_memberships, group_members = await _gather([
            state.client.get_subject_memberships(
                state.subject_id, subject_source_id=state.subject_source_id,
            ),
            state.client.get_group_direct_members(group_name),
        ])
    except DirectoryError as exc:
        TRACE_BRANCH_FAILURES_TOTAL.inc()
        logger.error(
            "Intermediate group discovery failed: group=%s error=%s",
            group_name,
            exc,
            extra={"group_name": group_name},
        )
        return None

    # uuid -> name for every group the subject belongs to, by any route.
    # A group listed as its own member is kept; the visited set reports it as a cycle.
    subject_groups: dict[str, str] = {}
    for m in subject_memberships:
        if m.membership_type not in _TRACEABLE_MEMBERSHIP_TYPES:
            continue
        if not m.group_id or not m.group_name:
            continue
        subject_groups[m.group_id] = m.group_name

    candidates: list[str] = []
    for member in group_members:
        if not member.is_group:
            continue
        name = subject_groups.get(member.id)
        if name and name not in candidates:
            candidates.append(name)

    if not candidates:
        logger.info(
            "No intermediate groups found for effective membership: group=%s subject=%s",
            group_name,
            state.subject_id,
            extra={"group_name": group_name},
        )
        return []

    traces = await _gather(
        _trace_group(state, name, depth + 1) for name in candidates
    )
    return [node for nodes in traces for node in nodes]


async def _trace_group(state: _TraceState, group_name: str, depth: int) -> list[TraceNode]:
    """Look up the subject's record in ``group_name`` and expand it.

    Directory failures are contained: the branch contributes no nodes.
    """
    state.check_cancelled()
    try:
        details = await state.client.get_membership_details(
            state.subject_id,
            group_name,
            subject_source_id=state.subject_source_id,
        )
    except DirectoryError as exc:
        TRACE_BRANCH_FAILURES_TOTAL.inc()
        logger.error(
            "Error tracing to group: group=%s error=%s",
            group_name,
            exc,
            extra={"group_name": group_name},
        )
        return []

    if not details.memberships:
        return []

    record = details.memberships[0]
    return await expand(state, group_name, record, _group_for(details, record, group_name), depth)
