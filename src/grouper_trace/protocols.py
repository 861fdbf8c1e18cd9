"""Directory protocols.

``DirectoryClient`` is what the membership tracer consumes; tests supply
in-memory fakes. ``DirectoryLookupClient`` adds the group and subject
lookups served by the directory endpoints. ``GrouperClient`` satisfies both.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from grouper_trace.directory.models import (
    Group,
    GroupMembers,
    MemberFilter,
    MembershipDetails,
    MembershipRecord,
    Subject,
)


@runtime_checkable
class DirectoryClient(Protocol):
    """Read-only group membership lookups."""

    async def get_membership_details(
        self,
        subject_id: str,
        group_name: str,
        *,
        subject_source_id: str | None = None,
    ) -> MembershipDetails: ...

    async def get_subject_memberships(
        self,
        subject_id: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[MembershipRecord]: ...

    async def get_group_direct_members(self, group_name: str) -> list[Subject]: ...


@runtime_checkable
class DirectoryLookupClient(DirectoryClient, Protocol):
    """Group and subject lookups on top of the tracer's membership queries."""

    async def get_members(
        self,
        group_name: str,
        *,
        member_filter: MemberFilter | str = MemberFilter.ALL,
        subject_attribute_names: Sequence[str] = (),
    ) -> GroupMembers: ...

    async def find_groups(self, query: str) -> list[Group]: ...

    async def get_group_by_name(self, group_name: str) -> Group | None: ...

    async def get_group_by_uuid(self, group_uuid: str) -> Group | None: ...

    async def get_subject_by_id(
        self,
        subject_id: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[Subject]: ...

    async def get_subject_by_identifier(
        self,
        subject_identifier: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[Subject]: ...

    async def search_subjects(
        self,
        search_string: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[Subject]: ...
