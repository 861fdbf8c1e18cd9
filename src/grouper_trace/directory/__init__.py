"""Grouper directory adapter: typed payload models, errors and the async client."""

from .client import GrouperClient
from .errors import (
    DirectoryAuthError,
    DirectoryError,
    DirectoryNotFoundError,
    DirectoryTimeoutError,
    DirectoryUnavailableError,
    GrouperResultError,
)
from .models import (
    GROUP_SOURCE_ID,
    CompositeType,
    Group,
    GroupCompositeInfo,
    GroupIdentity,
    GroupMembers,
    MemberFilter,
    MembershipDetails,
    MembershipRecord,
    MembershipType,
    Subject,
)

__all__ = [
    "GROUP_SOURCE_ID",
    "CompositeType",
    "DirectoryAuthError",
    "DirectoryError",
    "DirectoryNotFoundError",
    "DirectoryTimeoutError",
    "DirectoryUnavailableError",
    "Group",
    "GroupCompositeInfo",
    "GroupIdentity",
    "GroupMembers",
    "GrouperClient",
    "GrouperResultError",
    "MemberFilter",
    "MembershipDetails",
    "MembershipRecord",
    "MembershipType",
    "Subject",
]
