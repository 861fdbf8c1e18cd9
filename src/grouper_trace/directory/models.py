"""Typed views over Grouper WS JSON payloads.

Grouper returns loosely-shaped camelCase dicts with ``"T"``/``"F"`` string
booleans. These dataclasses normalise the fields the tracer and the
lookup endpoints need and keep parsing in one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

# Grouper source id used when a group appears as a member of another group.
GROUP_SOURCE_ID = "g:gsa"


class MembershipType(str, Enum):
    """Membership types the tracer knows how to expand."""

    immediate = "immediate"
    effective = "effective"
    composite = "composite"


class MemberFilter(str, Enum):
    """Which members ``GetMembers`` returns."""

    ALL = "All"
    EFFECTIVE = "Effective"
    IMMEDIATE = "Immediate"
    COMPOSITE = "Composite"
    NON_IMMEDIATE = "NonImmediate"

    @classmethod
    def parse(cls, raw: str | MemberFilter) -> MemberFilter:
        """Case-insensitive lookup. Raises ValueError for unknown filters."""
        if isinstance(raw, cls):
            return raw
        for member in cls:
            if member.value.lower() == str(raw).strip().lower():
                return member
        raise ValueError(f"unknown member filter: {raw!r}")


class CompositeType(str, Enum):
    """Boolean operator of a composite group."""

    UNION = "UNION"
    INTERSECTION = "INTERSECTION"
    COMPLEMENT = "COMPLEMENT"

    @classmethod
    def parse(cls, raw: Any) -> CompositeType | None:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return None


def _flag(value: Any) -> bool:
    return str(value or "").strip().upper() in ("T", "TRUE")


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True, slots=True)
class GroupIdentity:
    """Durable uuid plus the (renameable) colon-delimited group name."""

    uuid: str | None
    name: str | None

    @classmethod
    def from_ws(cls, raw: Any) -> GroupIdentity | None:
        # Older Grouper versions send the factor as a bare name string.
        if isinstance(raw, str):
            return cls(uuid=None, name=raw or None)
        if not isinstance(raw, Mapping):
            return None
        return cls(uuid=_str_or_none(raw.get("uuid")), name=_str_or_none(raw.get("name")))


@dataclass(frozen=True, slots=True)
class GroupCompositeInfo:
    has_composite: bool
    composite_type: CompositeType | None
    left_group: GroupIdentity | None
    right_group: GroupIdentity | None
    raw_composite_type: str | None = None

    @property
    def left_group_name(self) -> str | None:
        return self.left_group.name if self.left_group else None

    @property
    def right_group_name(self) -> str | None:
        return self.right_group.name if self.right_group else None

    @classmethod
    def from_detail(cls, detail: Mapping[str, Any]) -> GroupCompositeInfo | None:
        """Build composite info from a ``WsGroupDetail`` block, or None if not composite."""
        if not _flag(detail.get("hasComposite")):
            return None
        raw_type = _str_or_none(detail.get("compositeType"))
        return cls(
            has_composite=True,
            composite_type=CompositeType.parse(raw_type),
            left_group=GroupIdentity.from_ws(detail.get("leftGroup")),
            right_group=GroupIdentity.from_ws(detail.get("rightGroup")),
            raw_composite_type=raw_type,
        )


@dataclass(frozen=True, slots=True)
class Group:
    name: str
    uuid: str | None = None
    display_name: str | None = None
    description: str | None = None
    composite: GroupCompositeInfo | None = None
    extension: str | None = None
    display_extension: str | None = None
    type_of_group: str | None = None
    id_index: str | None = None
    enabled: bool | None = None

    @property
    def identity(self) -> GroupIdentity:
        return GroupIdentity(uuid=self.uuid, name=self.name)

    @classmethod
    def from_ws(cls, raw: Mapping[str, Any]) -> Group:
        detail = raw.get("detail")
        composite = (
            GroupCompositeInfo.from_detail(detail) if isinstance(detail, Mapping) else None
        )
        enabled = raw.get("enabled")
        return cls(
            name=str(raw.get("name") or ""),
            uuid=_str_or_none(raw.get("uuid")),
            display_name=_str_or_none(raw.get("displayName")),
            description=_str_or_none(raw.get("description")),
            composite=composite,
            extension=_str_or_none(raw.get("extension")),
            display_extension=_str_or_none(raw.get("displayExtension")),
            type_of_group=_str_or_none(raw.get("typeOfGroup")),
            id_index=_str_or_none(raw.get("idIndex")),
            enabled=None if enabled in (None, "") else _flag(enabled),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "uuid": self.uuid,
            "display_name": self.display_name,
            "description": self.description,
            "extension": self.extension,
            "display_extension": self.display_extension,
            "type_of_group": self.type_of_group,
            "id_index": self.id_index,
            "enabled": self.enabled,
            "composite": None,
        }
        if self.composite is not None:
            data["composite"] = {
                "composite_type": self.composite.raw_composite_type,
                "left_group_name": self.composite.left_group_name,
                "right_group_name": self.composite.right_group_name,
            }
        return data


@dataclass(frozen=True, slots=True)
class Subject:
    """A person or group as Grouper reports it.

    ``attributes`` pairs the response's ``subjectAttributeNames`` with this
    subject's ``attributeValues``.
    """

    id: str
    source_id: str | None = None
    name: str | None = None
    member_id: str | None = None
    result_code: str | None = None
    found: bool = True
    attributes: dict[str, str | None] = field(default_factory=dict, compare=False)

    @property
    def is_group(self) -> bool:
        return self.source_id == GROUP_SOURCE_ID

    @classmethod
    def from_ws(
        cls, raw: Mapping[str, Any], attribute_names: Sequence[str] = (),
    ) -> Subject:
        values = raw.get("attributeValues") or []
        return cls(
            id=str(raw.get("id") or ""),
            source_id=_str_or_none(raw.get("sourceId")),
            name=_str_or_none(raw.get("name")),
            member_id=_str_or_none(raw.get("memberId")),
            result_code=_str_or_none(raw.get("resultCode")),
            # Unresolvable lookups come back as placeholder rows with success "F".
            found=str(raw.get("success") or "T").strip().upper() != "F",
            attributes={
                name: _str_or_none(value) for name, value in zip(attribute_names, values)
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "name": self.name,
            "member_id": self.member_id,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True, slots=True)
class MembershipRecord:
    """One (subject, group) membership row.

    ``membership_type`` is lower-cased but otherwise kept verbatim so that
    types the tracer does not recognise can still be reported.
    """

    group_id: str | None
    group_name: str | None
    membership_type: str
    subject_id: str | None = None

    @classmethod
    def from_ws(cls, raw: Mapping[str, Any]) -> MembershipRecord:
        return cls(
            group_id=_str_or_none(raw.get("groupId")),
            group_name=_str_or_none(raw.get("groupName")),
            membership_type=str(raw.get("membershipType") or "").strip().lower(),
            subject_id=_str_or_none(raw.get("subjectId")),
        )


@dataclass(frozen=True, slots=True)
class MembershipDetails:
    """Result of one (subject, group) membership lookup."""

    memberships: list[MembershipRecord] = field(default_factory=list)
    subjects: list[Subject] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)

    @property
    def subject(self) -> Subject | None:
        return self.subjects[0] if self.subjects else None

    @property
    def group(self) -> Group | None:
        return self.groups[0] if self.groups else None

    def group_for(self, record: MembershipRecord) -> Group | None:
        """Return the group metadata whose uuid matches the record's group id."""
        for group in self.groups:
            if record.group_id and group.uuid == record.group_id:
                return group
        return None

    @classmethod
    def from_ws(cls, raw: Mapping[str, Any]) -> MembershipDetails:
        return cls(
            memberships=[
                MembershipRecord.from_ws(m) for m in raw.get("wsMemberships") or []
            ],
            subjects=[Subject.from_ws(s) for s in raw.get("wsSubjects") or []],
            groups=[Group.from_ws(g) for g in raw.get("wsGroups") or []],
        )


@dataclass(frozen=True, slots=True)
class GroupMembers:
    """Result of a ``GetMembers`` call for one group."""

    group: Group | None = None
    members: list[Subject] = field(default_factory=list)

    @classmethod
    def from_ws(cls, raw: Mapping[str, Any]) -> GroupMembers:
        results = raw.get("results") or []
        if not results:
            return cls()
        first = results[0]
        names = raw.get("subjectAttributeNames") or []
        ws_group = first.get("wsGroup")
        return cls(
            group=Group.from_ws(ws_group) if isinstance(ws_group, Mapping) else None,
            members=[Subject.from_ws(s, names) for s in first.get("wsSubjects") or []],
        )
