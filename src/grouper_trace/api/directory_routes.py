"""Read-only Grouper directory lookups.

Response contracts:
  GET /api/v1/groups?q=                    → 200 GroupListResponse
  GET /api/v1/groups/by-name?name=         → 200 GroupResponse | 404 group_not_found
  GET /api/v1/groups/by-uuid/{group_uuid}  → 200 GroupResponse | 404 group_not_found
  GET /api/v1/groups/members?group_name=   → 200 GroupMembersResponse
  GET /api/v1/subjects/search?q=           → 200 SubjectListResponse
  GET /api/v1/subjects/by-identifier?identifier=
                                           → 200 SubjectListResponse | 404 subject_not_found
  GET /api/v1/subjects/{subject_id}        → 200 SubjectListResponse | 404 subject_not_found

Every route answers 502 when Grouper itself fails.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query

from grouper_trace.directory.errors import DirectoryError
from grouper_trace.directory.models import Group, Subject
from grouper_trace.protocols import DirectoryLookupClient

from .errors import directory_error_response, error_response
from .schemas import (
    ErrorResponse,
    GroupListResponse,
    GroupMembersResponse,
    GroupResponse,
    SubjectListResponse,
)

_ERRORS = {502: {'model': ErrorResponse}}
_NOT_FOUND_ERRORS = {404: {'model': ErrorResponse}, 502: {'model': ErrorResponse}}


def _subjects_body(subjects: list[Subject]) -> dict:
    return {'count': len(subjects), 'subjects': [s.to_dict() for s in subjects]}


def _group_or_404(group: Group | None, what: str):
    if group is None:
        return error_response(404, 'group_not_found', f'Group {what} not found.')
    return group.to_dict()


def _attribute_names(raw: str | None) -> list[str]:
    return [name.strip() for name in (raw or '').split(',') if name.strip()]


def create_directory_router(directory: DirectoryLookupClient) -> APIRouter:
    """Create the directory lookup router.

    Args:
        directory: Client that also implements the group and subject lookups.
    """
    router = APIRouter(prefix='/api/v1', tags=['directory'])

    @router.get('/groups', response_model=GroupListResponse, responses=_ERRORS)
    async def find_groups(q: str = Query(..., min_length=1)):
        """Groups whose name approximately matches ``q``."""
        try:
            groups = await directory.find_groups(q)
        except DirectoryError as exc:
            return directory_error_response(exc)
        return {'count': len(groups), 'groups': [g.to_dict() for g in groups]}

    @router.get('/groups/by-name', response_model=GroupResponse, responses=_NOT_FOUND_ERRORS)
    async def get_group_by_name(name: str = Query(..., min_length=1)):
        try:
            group = await directory.get_group_by_name(name)
        except DirectoryError as exc:
            return directory_error_response(exc)
        return _group_or_404(group, f'"{name}"')

    @router.get(
        '/groups/by-uuid/{group_uuid}',
        response_model=GroupResponse,
        responses=_NOT_FOUND_ERRORS,
    )
    async def get_group_by_uuid(group_uuid: str):
        try:
            group = await directory.get_group_by_uuid(group_uuid)
        except DirectoryError as exc:
            return directory_error_response(exc)
        return _group_or_404(group, f'with UUID "{group_uuid}"')

    @router.get('/groups/members', response_model=GroupMembersResponse, responses=_ERRORS)
    async def get_members(
        group_name: str = Query(..., min_length=1),
        member_filter: Literal[
            'All', 'Effective', 'Immediate', 'Composite', 'NonImmediate'
        ] = 'All',
        attributes: str | None = Query(
            default=None, description='Comma-separated extra subject attribute names.',
        ),
    ):
        """Members of a group plus the group's own details."""
        try:
            result = await directory.get_members(
                group_name,
                member_filter=member_filter,
                subject_attribute_names=_attribute_names(attributes),
            )
        except DirectoryError as exc:
            return directory_error_response(exc)
        return {
            'group': result.group.to_dict() if result.group else None,
            'count': len(result.members),
            'members': [m.to_dict() for m in result.members],
        }

    @router.get('/subjects/search', response_model=SubjectListResponse, responses=_ERRORS)
    async def search_subjects(
        q: str = Query(..., min_length=1),
        source_id: str | None = None,
    ):
        try:
            subjects = await directory.search_subjects(q, subject_source_id=source_id or None)
        except DirectoryError as exc:
            return directory_error_response(exc)
        return _subjects_body(subjects)

    @router.get(
        '/subjects/by-identifier',
        response_model=SubjectListResponse,
        responses=_NOT_FOUND_ERRORS,
    )
    async def get_subject_by_identifier(
        identifier: str = Query(..., min_length=1),
        source_id: str | None = None,
    ):
        try:
            subjects = await directory.get_subject_by_identifier(
                identifier, subject_source_id=source_id or None,
            )
        except DirectoryError as exc:
            return directory_error_response(exc)
        if not subjects:
            return error_response(
                404, 'subject_not_found', f'Subject identifier "{identifier}" not found.',
            )
        return _subjects_body(subjects)

    # Declared last so the literal /subjects/... routes above win.
    @router.get(
        '/subjects/{subject_id}',
        response_model=SubjectListResponse,
        responses=_NOT_FOUND_ERRORS,
    )
    async def get_subject_by_id(subject_id: str, source_id: str | None = None):
        try:
            subjects = await directory.get_subject_by_id(
                subject_id, subject_source_id=source_id or None,
            )
        except DirectoryError as exc:
            return directory_error_response(exc)
        if not subjects:
            return error_response(404, 'subject_not_found', f'Subject "{subject_id}" not found.')
        return _subjects_body(subjects)

    return router
