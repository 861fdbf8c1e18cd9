"""Async HTTP client for the Grouper Web Services REST (JSON) API.

Read-only lookups only. The membership tracer needs membership details
for a (subject, group) pair, all of a subject's memberships and the
immediate members of a group; the lookup endpoints add group search and
fetch, full member listings and subject fetch and search.

Auth is HTTP Basic (server-side credentials) with optional ``actAs``
headers. Includes exponential backoff with jitter for transient errors and
Retry-After header respect for 429 responses.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Sequence

import httpx

from .errors import (
    DirectoryAuthError,
    DirectoryError,
    DirectoryNotFoundError,
    DirectoryTimeoutError,
    DirectoryUnavailableError,
    GrouperResultError,
)
from .models import (
    Group,
    GroupMembers,
    MemberFilter,
    MembershipDetails,
    MembershipRecord,
    Subject,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = (
    "https://grouperdemo.internet2.edu/grouper-ws/servicesRest/json/v4_0_000"
)

# Status codes eligible for automatic retry.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Default retry configuration.
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 0.5  # seconds
_DEFAULT_MAX_DELAY = 10.0  # seconds


# ── Module-level shared client ───────────────────────────────────

_shared_async_client: httpx.AsyncClient | None = None


def _get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


def _reset_shared_async_client_for_tests() -> None:
    global _shared_async_client
    _shared_async_client = None


def _result_body(payload: Any, key: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise DirectoryUnavailableError(
            0, f"Expected JSON object from Grouper, got {type(payload).__name__}"
        )
    body = payload.get(key)
    if not isinstance(body, dict):
        raise DirectoryUnavailableError(0, f"Grouper response is missing {key}")
    return body


def _check_result_metadata(body: dict[str, Any], raw_text: str) -> None:
    meta = body.get("resultMetadata") or {}
    if str(meta.get("success", "T")).upper() == "T":
        return
    raise GrouperResultError(
        str(meta.get("resultCode") or "UNKNOWN"),
        str(meta.get("resultMessage") or ""),
        response_body=raw_text,
    )


# ── Client ───────────────────────────────────────────────────────


class GrouperClient:
    """Async read-only client for Grouper WS ``v4_0_000`` JSON endpoints."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        username: str | None = None,
        password: str | None = None,
        act_as_subject_id: str | None = None,
        act_as_subject_source_id: str | None = None,
        act_as_subject_identifier: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        if bool(username) != bool(password):
            raise ValueError("username and password must be supplied together")

        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, password) if username else None
        self._act_as = {
            "X-Grouper-actAsSubjectId": act_as_subject_id,
            "X-Grouper-actAsSubjectSourceId": act_as_subject_source_id,
            "X-Grouper-actAsSubjectIdentifier": act_as_subject_identifier,
        }
        self._client = http_client or _get_shared_async_client()
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> GrouperClient:
        """Build a client from a ``GrouperSettings`` instance."""
        kwargs: dict[str, Any] = {
            "base_url": settings.base_url,
            "username": settings.username or None,
            "password": settings.password or None,
            "act_as_subject_id": settings.act_as_subject_id or None,
            "act_as_subject_source_id": settings.act_as_subject_source_id or None,
            "act_as_subject_identifier": settings.act_as_subject_identifier or None,
            "timeout_seconds": settings.timeout_seconds,
            "max_retries": settings.max_retries,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "text/x-json; charset=UTF-8"}
        # Never log these; act-as ids identify the calling principal.
        headers.update({k: v for k, v in self._act_as.items() if v})
        return headers

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("error", payload.get("message", message))
        except (ValueError, KeyError):
            pass

        if resp.status_code in (401, 403):
            raise DirectoryAuthError(resp.status_code, message, response_body=body)
        if resp.status_code == 404:
            raise DirectoryNotFoundError(message=message, response_body=body)
        if resp.status_code >= 500 or resp.status_code == 429:
            raise DirectoryUnavailableError(
                resp.status_code, message, response_body=body
            )

        raise DirectoryError(
            status_code=resp.status_code,
            message=message,
            response_body=body,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential backoff retry for transient errors."""
        url = f"{self._base_url}{path}"
        headers = self._headers()

        last_exc: DirectoryError | None = None
        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    auth=self._auth or httpx.USE_CLIENT_DEFAULT,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                last_exc = DirectoryTimeoutError(str(e) or "Request timed out")
            except httpx.TransportError as e:
                last_exc = DirectoryUnavailableError(0, str(e) or type(e).__name__)
            else:
                if resp.status_code not in _RETRYABLE_STATUS_CODES:
                    return resp
                if attempt >= self._max_retries:
                    return resp
                delay = self._retry_after_delay(resp, attempt)
                logger.warning(
                    "Grouper %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                    method,
                    path,
                    resp.status_code,
                    attempt + 1,
                    self._max_retries + 1,
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            if attempt < self._max_retries:
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "Grouper request failed: %s (attempt %d/%d), retrying in %.1fs",
                    last_exc.message,
                    attempt + 1,
                    self._max_retries + 1,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            raise last_exc

        # Should not reach here, but guard against it.
        if last_exc:
            raise last_exc
        raise DirectoryUnavailableError(0, "exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    def _retry_after_delay(self, resp: httpx.Response, attempt: int) -> float:
        """Use Retry-After header if present, otherwise exponential backoff."""
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                pass
        return self._backoff_delay(attempt)

    async def _post(self, path: str, payload: dict[str, Any], result_key: str) -> dict[str, Any]:
        resp = await self._request_with_retry("POST", path, json=payload)
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise DirectoryUnavailableError(
                resp.status_code, "Grouper returned invalid JSON", response_body=resp.text
            ) from e
        body = _result_body(data, result_key)
        _check_result_metadata(body, resp.text)
        return body

    # ── Public API ───────────────────────────────────────────────

    async def get_membership_details(
        self,
        subject_id: str,
        group_name: str,
        *,
        subject_source_id: str | None = None,
    ) -> MembershipDetails:
        """Return the subject's membership record(s) in ``group_name``.

        The response includes group detail, so composite factor metadata is
        available when the group is composite.
        """
        subject_lookup: dict[str, str] = {"subjectId": subject_id}
        if subject_source_id:
            subject_lookup["subjectSourceId"] = subject_source_id

        body = await self._post(
            "/memberships",
            {
                "WsRestGetMembershipsRequest": {
                    "wsGroupLookups": [{"groupName": group_name}],
                    "wsSubjectLookups": [subject_lookup],
                    "memberFilter": "All",
                    "includeGroupDetail": "T",
                    "includeSubjectDetail": "T",
                }
            },
            "WsGetMembershipsResults",
        )
        details = MembershipDetails.from_ws(body)
        logger.debug(
            "Membership details: subject=%s group=%s records=%d",
            subject_id,
            group_name,
            len(details.memberships),
            extra={"group_name": group_name},
        )
        return details

    async def get_subject_memberships(
        self,
        subject_id: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[MembershipRecord]:
        """Return every membership the subject holds (immediate, effective, composite)."""
        subject_lookup: dict[str, str] = {"subjectId": subject_id}
        if subject_source_id:
            subject_lookup["subjectSourceId"] = subject_source_id

        body = await self._post(
            "/memberships",
            {
                "WsRestGetMembershipsRequest": {
                    "wsSubjectLookups": [subject_lookup],
                    "memberFilter": "All",
                }
            },
            "WsGetMembershipsResults",
        )
        return [MembershipRecord.from_ws(m) for m in body.get("wsMemberships") or []]

    async def get_group_direct_members(self, group_name: str) -> list[Subject]:
        """Return the immediate members of a group (people and groups alike)."""
        members = await self.get_members(group_name, member_filter=MemberFilter.IMMEDIATE)
        return members.members

    async def get_members(
        self,
        group_name: str,
        *,
        member_filter: MemberFilter | str = MemberFilter.ALL,
        subject_attribute_names: Sequence[str] = (),
    ) -> GroupMembers:
        """Return a group's members together with the group's own details.

        Raises:
            ValueError: ``member_filter`` is not a Grouper member filter.
        """
        member_filter = MemberFilter.parse(member_filter)
        request: dict[str, Any] = {
            "wsGroupLookups": [{"groupName": group_name}],
            "memberFilter": member_filter.value,
            "includeGroupDetail": "T",
            "includeSubjectDetail": "T",
        }
        if subject_attribute_names:
            request["subjectAttributeNames"] = list(subject_attribute_names)

        body = await self._post(
            "/groups", {"WsRestGetMembersRequest": request}, "WsGetMembersResults",
        )
        return GroupMembers.from_ws(body)

    # ── Group lookups ────────────────────────────────────────────

    async def find_groups(self, query: str) -> list[Group]:
        """Groups whose name approximately matches ``query``."""
        return await self._find_groups(
            {"queryFilterType": "FIND_BY_GROUP_NAME_APPROXIMATE", "groupName": query}
        )

    async def get_group_by_name(self, group_name: str) -> Group | None:
        groups = await self._find_groups(
            {"queryFilterType": "FIND_BY_GROUP_NAME_EXACT", "groupName": group_name}
        )
        return groups[0] if groups else None

    async def get_group_by_uuid(self, group_uuid: str) -> Group | None:
        groups = await self._find_groups(
            {"queryFilterType": "FIND_BY_GROUP_UUID", "groupUuid": group_uuid}
        )
        return groups[0] if groups else None

    async def _find_groups(self, query_filter: dict[str, str]) -> list[Group]:
        body = await self._post(
            "/groups",
            {
                "WsRestFindGroupsRequest": {
                    "wsQueryFilter": query_filter,
                    "includeGroupDetail": "T",
                }
            },
            "WsFindGroupsResults",
        )
        return [Group.from_ws(g) for g in body.get("groupResults") or []]

    # ── Subject lookups ──────────────────────────────────────────

    async def get_subject_by_id(
        self,
        subject_id: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[Subject]:
        """Every subject matching ``subject_id`` (one per source unless scoped)."""
        lookup = {"subjectId": subject_id}
        if subject_source_id:
            lookup["subjectSourceId"] = subject_source_id
        return await self._get_subjects({"wsSubjectLookups": [lookup]})

    async def get_subject_by_identifier(
        self,
        subject_identifier: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[Subject]:
        lookup = {"subjectIdentifier": subject_identifier}
        if subject_source_id:
            lookup["subjectSourceId"] = subject_source_id
        return await self._get_subjects({"wsSubjectLookups": [lookup]})

    async def search_subjects(
        self,
        search_string: str,
        *,
        subject_source_id: str | None = None,
    ) -> list[Subject]:
        """Free-text subject search over names, identifiers and other subject data."""
        request: dict[str, Any] = {"searchString": search_string}
        if subject_source_id:
            request["sourceIds"] = [subject_source_id]
        return await self._get_subjects(request)

    async def _get_subjects(self, request: dict[str, Any]) -> list[Subject]:
        body = await self._post(
            "/subjects",
            {"WsRestGetSubjectsRequest": {**request, "includeSubjectDetail": "T"}},
            "WsGetSubjectsResults",
        )
        names = body.get("subjectAttributeNames") or []
        subjects = [Subject.from_ws(s, names) for s in body.get("wsSubjects") or []]
        return [s for s in subjects if s.found]
