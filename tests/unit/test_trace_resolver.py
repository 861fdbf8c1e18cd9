"""Tests for the membership trace resolver.

Covers immediate/effective/composite expansion, cycle and depth guards,
union short-circuit, intersection fan-out, branch failure containment and
cancellation, all against an in-memory directory stub.
"""
from __future__ import annotations

import asyncio

import pytest

from grouper_trace.directory.errors import DirectoryUnavailableError
from grouper_trace.directory.models import CompositeType
from grouper_trace.tracing.nodes import (
    CompositeNode,
    CycleDetectedNode,
    EffectiveNode,
    ImmediateNode,
    MaxDepthReachedNode,
    UnknownNode,
    walk,
)
from grouper_trace.tracing.resolver import (
    TraceCancelledError,
    TraceOptions,
    VisitedGroups,
    effective_max_depth,
    trace,
)
from tests.stubs.directory import StubDirectory


def _chain(directory: StubDirectory, length: int) -> list[str]:
    """g0 <- g1 <- ... : each group is a direct member of the previous one.

    The subject is an immediate member of the last group only, so every
    other group is an effective membership.
    """
    names = [f"org:chain:g{i}" for i in range(length)]
    for i, name in enumerate(names):
        directory.set_membership(name, "immediate" if i == length - 1 else "effective")
    for parent, child in zip(names, names[1:]):
        directory.add_group_member(parent, child)
    return names


# ─────────────────────── depth clamp ───────────────────────


class TestEffectiveMaxDepth:
    def test_default(self):
        assert effective_max_depth(None) == 10

    def test_within_bounds(self):
        assert effective_max_depth(5) == 5

    def test_ceiling(self):
        assert effective_max_depth(20) == 20
        assert effective_max_depth(1000) == 20

    def test_zero_and_negative(self):
        assert effective_max_depth(0) == 0
        assert effective_max_depth(-3) == 0


@pytest.mark.asyncio
async def test_zero_depth_reports_target_only(directory):
    directory.set_membership("org:x", "immediate")

    result = await trace(directory, "S1", "org:x", TraceOptions(max_depth=0))

    assert result.is_member is True
    assert result.paths == (MaxDepthReachedNode("org:x", 0),)
    assert result.max_depth_reached is True


# ─────────────────────── top level ───────────────────────


@pytest.mark.asyncio
async def test_non_member_short_circuits(directory):
    directory.add_group("org:apps:users", display_name="App Users")

    result = await trace(directory, "S1", "org:apps:users")

    assert result.is_member is False
    assert result.paths == ()
    assert result.cycles == ()
    assert result.max_depth_reached is False
    assert result.subject_name == "Sam Subject"
    assert result.target_group_display_name == "App Users"
    assert directory.calls == [("get_membership_details", "org:apps:users")]


@pytest.mark.asyncio
async def test_rejects_empty_identifiers(directory):
    with pytest.raises(ValueError):
        await trace(directory, "", "org:x")
    with pytest.raises(ValueError):
        await trace(directory, "S1", "")
    assert directory.calls == []


@pytest.mark.asyncio
async def test_initial_lookup_failure_propagates(directory):
    directory.set_membership("org:x", "immediate")
    directory.failing_groups.add("org:x")

    with pytest.raises(DirectoryUnavailableError):
        await trace(directory, "S1", "org:x")


@pytest.mark.asyncio
async def test_immediate_is_terminal_even_for_composite_group(directory):
    directory.add_group("org:x", composite=("UNION", "org:l", "org:r"))
    directory.set_membership("org:x", "immediate")
    directory.set_membership("org:l", "immediate")

    result = await trace(directory, "S1", "org:x")

    assert result.is_member is True
    assert result.paths == (ImmediateNode("org:x", 0),)
    assert directory.calls == [("get_membership_details", "org:x")]


@pytest.mark.asyncio
async def test_unknown_membership_type(directory):
    directory.set_membership("org:x", "disabled")

    result = await trace(directory, "S1", "org:x")

    assert result.paths == (UnknownNode("org:x", 0, raw_type="disabled"),)


@pytest.mark.asyncio
async def test_display_name_carried_on_nodes(directory):
    directory.add_group("org:x", display_name="Org X")
    directory.set_membership("org:x", "immediate")

    result = await trace(directory, "S1", "org:x")

    node = result.paths[0]
    assert node.display_name == "Org X"
    assert result.target_group_display_name == "Org X"


# ─────────────────────── composite ───────────────────────


@pytest.mark.asyncio
async def test_union_example_short_circuits_right_factor(directory):
    directory.add_group(
        "org:apps:admins",
        composite=("union", "org:apps:admins:manual", "org:apps:admins:auto"),
    )
    directory.set_membership("org:apps:admins", "composite")
    directory.set_membership("org:apps:admins:manual", "immediate")
    # Right factor would also satisfy membership; it must never be asked.
    directory.set_membership("org:apps:admins:auto", "immediate")

    result = await trace(directory, "S1", "org:apps:admins")

    assert result.is_member is True
    assert result.paths == (
        CompositeNode(
            "org:apps:admins",
            0,
            operator=CompositeType.UNION,
            left_group_name="org:apps:admins:manual",
            right_group_name="org:apps:admins:auto",
            via=(ImmediateNode("org:apps:admins:manual", 1),),
        ),
    )
    assert directory.lookups_for("org:apps:admins:manual") == 1
    assert directory.lookups_for("org:apps:admins:auto") == 0


@pytest.mark.asyncio
async def test_union_falls_back_to_right_factor(directory):
    directory.add_group("org:u", composite=("UNION", "org:l", "org:r"))
    directory.add_group("org:l")
    directory.set_membership("org:u", "composite")
    directory.set_membership("org:r", "immediate")

    result = await trace(directory, "S1", "org:u")

    composite = result.paths[0]
    assert isinstance(composite, CompositeNode)
    assert composite.via == (ImmediateNode("org:r", 1),)
    assert directory.lookups_for("org:l") == 1
    assert directory.lookups_for("org:r") == 1


@pytest.mark.asyncio
async def test_intersection_traces_both_factors(directory):
    directory.add_group("org:both", composite=("INTERSECTION", "org:staff", "org:vpn"))
    directory.set_membership("org:both", "composite")
    directory.set_membership("org:staff", "immediate")
    directory.set_membership("org:vpn", "immediate")

    result = await trace(directory, "S1", "org:both")

    composite = result.paths[0]
    assert isinstance(composite, CompositeNode)
    assert composite.operator is CompositeType.INTERSECTION
    assert composite.via == (
        ImmediateNode("org:staff", 1),
        ImmediateNode("org:vpn", 1),
    )
    assert directory.lookups_for("org:staff") == 1
    assert directory.lookups_for("org:vpn") == 1


@pytest.mark.asyncio
async def test_intersection_runs_factors_concurrently(directory):
    directory.delay = 0.1
    directory.add_group("org:both", composite=("INTERSECTION", "org:a", "org:b"))
    directory.set_membership("org:both", "composite")
    directory.set_membership("org:a", "immediate")
    directory.set_membership("org:b", "immediate")

    loop = asyncio.get_running_loop()
    start = loop.time()
    await trace(directory, "S1", "org:both")
    elapsed = loop.time() - start

    # Sequential factors would take three round trips.
    assert elapsed < 0.28


@pytest.mark.asyncio
async def test_complement_never_traces_excluded_factor(directory):
    directory.add_group("org:c", composite=("COMPLEMENT", "org:all", "org:banned"))
    directory.set_membership("org:c", "composite")
    directory.set_membership("org:all", "immediate")

    result = await trace(directory, "S1", "org:c")

    composite = result.paths[0]
    assert composite.via == (ImmediateNode("org:all", 1),)
    assert directory.lookups_for("org:banned") == 0


@pytest.mark.asyncio
async def test_composite_without_metadata_yields_empty_via(directory):
    directory.add_group("org:c")
    directory.set_membership("org:c", "composite")

    result = await trace(directory, "S1", "org:c")

    assert result.paths == (CompositeNode("org:c", 0),)
    assert len(directory.calls) == 1


@pytest.mark.asyncio
async def test_intersection_missing_factor_name_yields_empty_via(directory):
    directory.add_group("org:c", composite=("INTERSECTION", "org:a", None))
    directory.set_membership("org:c", "composite")
    directory.set_membership("org:a", "immediate")

    result = await trace(directory, "S1", "org:c")

    composite = result.paths[0]
    assert composite.operator is CompositeType.INTERSECTION
    assert composite.right_group_name is None
    assert composite.via == ()
    assert directory.lookups_for("org:a") == 0


@pytest.mark.asyncio
async def test_intersection_branch_failure_is_contained(directory):
    directory.add_group("org:both", composite=("INTERSECTION", "org:a", "org:b"))
    directory.set_membership("org:both", "composite")
    directory.set_membership("org:a", "immediate")
    directory.set_membership("org:b", "immediate")
    directory.failing_groups.add("org:b")

    result = await trace(directory, "S1", "org:both")

    assert result.is_member is True
    assert result.paths[0].via == (ImmediateNode("org:a", 1),)


# ─────────────────────── effective ───────────────────────


@pytest.mark.asyncio
async def test_effective_through_intermediate_group(directory):
    directory.set_membership("org:target", "effective")
    directory.set_membership("org:team", "immediate")
    directory.add_group_member("org:target", "org:team")

    result = await trace(directory, "S1", "org:target")

    assert result.paths == (
        EffectiveNode("org:target", 0, via=(ImmediateNode("org:team", 1),)),
    )


@pytest.mark.asyncio
async def test_effective_chain_through_non_immediate_intermediates(directory):
    names = _chain(directory, 3)

    result = await trace(directory, "S1", names[0])

    assert result.paths == (
        EffectiveNode(
            names[0],
            0,
            via=(
                EffectiveNode(names[1], 1, via=(ImmediateNode(names[2], 2),)),
            ),
        ),
    )


@pytest.mark.asyncio
async def test_effective_with_several_intermediates(directory):
    directory.set_membership("org:target", "effective")
    directory.set_membership("org:a", "immediate")
    directory.set_membership("org:b", "immediate")
    directory.add_group("org:unrelated")
    directory.add_group_member("org:target", "org:a")
    directory.add_group_member("org:target", "org:unrelated")
    directory.add_group_member("org:target", "org:b")

    result = await trace(directory, "S1", "org:target")

    assert result.paths[0].via == (
        ImmediateNode("org:a", 1),
        ImmediateNode("org:b", 1),
    )
    assert directory.lookups_for("org:unrelated") == 0


@pytest.mark.asyncio
async def test_effective_without_intermediates_yields_empty_via(directory):
    directory.set_membership("org:target", "effective")

    result = await trace(directory, "S1", "org:target")

    assert result.is_member is True
    assert result.paths == (EffectiveNode("org:target", 0),)


@pytest.mark.asyncio
async def test_effective_candidate_failure_is_contained(directory):
    directory.set_membership("org:target", "effective")
    directory.set_membership("org:ok", "immediate")
    directory.set_membership("org:broken", "immediate")
    directory.add_group_member("org:target", "org:broken")
    directory.add_group_member("org:target", "org:ok")
    directory.failing_groups.add("org:broken")

    result = await trace(directory, "S1", "org:target")

    assert result.paths == (
        EffectiveNode("org:target", 0, via=(ImmediateNode("org:ok", 1),)),
    )


@pytest.mark.asyncio
async def test_effective_discovery_failure_is_contained(directory):
    directory.set_membership("org:target", "effective")
    directory.set_membership("org:team", "immediate")
    directory.add_group_member("org:target", "org:team")
    directory.fail_discovery = True

    result = await trace(directory, "S1", "org:target")

    assert result.is_member is True
    assert result.paths == (EffectiveNode("org:target", 0, lookup_failed=True),)


# ─────────────────────── cycles and depth ───────────────────────


@pytest.mark.asyncio
async def test_self_cycle_surfaces_and_terminates(directory):
    directory.set_membership("X", "effective")
    directory.add_group_member("X", "X")

    result = await trace(directory, "S1", "X")

    assert result.paths == (
        EffectiveNode("X", 0, via=(CycleDetectedNode("X", 1),)),
    )
    assert result.cycles == ("X",)


@pytest.mark.asyncio
async def test_two_group_cycle_terminates(directory):
    directory.set_membership("org:a", "effective")
    directory.set_membership("org:b", "effective")
    directory.add_group_member("org:a", "org:b")
    directory.add_group_member("org:b", "org:a")

    result = await trace(directory, "S1", "org:a")

    assert result.paths == (
        EffectiveNode(
            "org:a",
            0,
            via=(EffectiveNode("org:b", 1, via=(CycleDetectedNode("org:a", 2),)),),
        ),
    )
    assert result.cycles == ("org:a",)
    assert result.max_depth_reached is False


@pytest.mark.asyncio
async def test_max_depth_prunes_traversal(directory):
    names = _chain(directory, 6)

    result = await trace(directory, "S1", names[0], TraceOptions(max_depth=3))

    assert result.paths == (
        EffectiveNode(
            names[0],
            0,
            via=(
                EffectiveNode(
                    names[1],
                    1,
                    via=(
                        EffectiveNode(
                            names[2],
                            2,
                            via=(MaxDepthReachedNode(names[3], 3),),
                        ),
                    ),
                ),
            ),
        ),
    )
    assert result.max_depth_reached is True
    assert directory.lookups_for(names[4]) == 0


@pytest.mark.asyncio
async def test_default_depth_is_ten():
    directory = StubDirectory(subject_id="S1")
    names = _chain(directory, 15)

    result = await trace(directory, "S1", names[0])

    deepest = max(node.depth for node in walk(result.paths))
    assert deepest == 10
    assert result.max_depth_reached is True


@pytest.mark.asyncio
async def test_depth_ceiling_matches_twenty():
    clamped_dir = StubDirectory(subject_id="S1")
    names = _chain(clamped_dir, 25)
    ceiling_dir = StubDirectory(subject_id="S1")
    _chain(ceiling_dir, 25)

    huge = await trace(clamped_dir, "S1", names[0], TraceOptions(max_depth=1000))
    twenty = await trace(ceiling_dir, "S1", names[0], TraceOptions(max_depth=20))

    assert huge.to_dict() == twenty.to_dict()
    assert max(node.depth for node in walk(huge.paths)) == 20
    assert clamped_dir.calls == ceiling_dir.calls


@pytest.mark.asyncio
async def test_depth_strictly_increases_along_paths(directory):
    directory.add_group("org:top", composite=("INTERSECTION", "org:left", "org:right"))
    directory.set_membership("org:top", "composite")
    directory.set_membership("org:left", "effective")
    directory.set_membership("org:right", "immediate")
    directory.set_membership("org:inner", "immediate")
    directory.add_group_member("org:left", "org:inner")

    result = await trace(directory, "S1", "org:top")

    def check(node, parent_depth):
        assert node.depth == parent_depth + 1
        for child in getattr(node, "via", ()):
            check(child, node.depth)

    for root in result.paths:
        assert root.depth == 0
        for child in getattr(root, "via", ()):
            check(child, 0)


# ─────────────────────── visited set & cancellation ───────────────────────


@pytest.mark.asyncio
async def test_visited_groups_claim_is_exclusive():
    visited = VisitedGroups()

    claims = await asyncio.gather(*(visited.claim("org:x") for _ in range(50)))

    assert claims.count(True) == 1
    assert "org:x" in visited
    assert len(visited) == 1


@pytest.mark.asyncio
async def test_fresh_state_per_trace(directory):
    directory.set_membership("org:x", "immediate")

    first = await trace(directory, "S1", "org:x")
    second = await trace(directory, "S1", "org:x")

    assert first.paths == second.paths == (ImmediateNode("org:x", 0),)


@pytest.mark.asyncio
async def test_cancel_event_set_before_trace(directory):
    directory.set_membership("org:x", "immediate")
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(TraceCancelledError):
        await trace(directory, "S1", "org:x", TraceOptions(cancel_event=cancel))
    assert directory.calls == []


@pytest.mark.asyncio
async def test_cancel_event_stops_outstanding_branches():
    cancel = asyncio.Event()

    class CancellingDirectory(StubDirectory):
        async def get_membership_details(self, subject_id, group_name, **kwargs):
            details = await super().get_membership_details(subject_id, group_name, **kwargs)
            if group_name == "org:both":
                cancel.set()
            return details

    directory = CancellingDirectory(subject_id="S1")
    directory.add_group("org:both", composite=("INTERSECTION", "org:a", "org:b"))
    directory.set_membership("org:both", "composite")
    directory.set_membership("org:a", "immediate")
    directory.set_membership("org:b", "immediate")

    with pytest.raises(TraceCancelledError):
        await trace(directory, "S1", "org:both", TraceOptions(cancel_event=cancel))
    assert directory.lookups_for("org:a") == 0
    assert directory.lookups_for("org:b") == 0
