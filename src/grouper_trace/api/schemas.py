"""Response schemas for the trace API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TraceNodeResponse(BaseModel):
    """One node of a trace tree.

    Only the fields meaningful for ``kind`` are present in responses.
    """

    kind: str
    group: str
    depth: int = Field(ge=0)
    display_name: str | None = None
    description: str | None = None
    operator: str | None = None
    left_group_name: str | None = None
    right_group_name: str | None = None
    raw_type: str | None = None
    lookup_failed: bool | None = None
    via: list[TraceNodeResponse] = Field(default_factory=list)


class TraceResponse(BaseModel):
    """Outcome of a membership trace."""

    subject_id: str
    subject_name: str | None = None
    target_group_name: str
    target_group_display_name: str | None = None
    is_member: bool
    paths: list[TraceNodeResponse] = Field(default_factory=list)
    cycles: list[str] = Field(default_factory=list)
    max_depth_reached: bool = False


class ErrorResponse(BaseModel):
    error: str
    detail: str


class CompositeResponse(BaseModel):
    composite_type: str | None = None
    left_group_name: str | None = None
    right_group_name: str | None = None


class GroupResponse(BaseModel):
    name: str
    uuid: str | None = None
    display_name: str | None = None
    description: str | None = None
    extension: str | None = None
    display_extension: str | None = None
    type_of_group: str | None = None
    id_index: str | None = None
    enabled: bool | None = None
    composite: CompositeResponse | None = None


class GroupListResponse(BaseModel):
    count: int
    groups: list[GroupResponse]


class SubjectResponse(BaseModel):
    id: str
    source_id: str | None = None
    name: str | None = None
    member_id: str | None = None
    attributes: dict[str, str | None] = Field(default_factory=dict)


class SubjectListResponse(BaseModel):
    count: int
    subjects: list[SubjectResponse]


class GroupMembersResponse(BaseModel):
    group: GroupResponse | None = None
    count: int
    members: list[SubjectResponse]
