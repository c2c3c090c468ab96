"""
Issue Lookup

Maps a complaint ID to an issue record. Two stores are available: an
in-memory store seeded with sample city issues, and an HTTP store that reads
from an external issue tracker (set ISSUE_API_URL).
"""

import logging
from typing import Iterable, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from models import Issue, IssueStatus, Location

logger = logging.getLogger(__name__)


class IssueLookupError(RuntimeError):
    """The issue tracker could not answer (as opposed to an unknown ID)."""


class IssueStore(Protocol):
    def get(self, issue_id: str) -> Issue | None: ...

    def list_issues(self, status: IssueStatus | None = None) -> list[Issue]: ...


# Sample issues (replace with a real tracker via ISSUE_API_URL)
SAMPLE_ISSUES = [
    Issue(
        id="CIV-1001",
        title="Large pothole on Main Street",
        location=Location(lat=40.7128, lon=-74.0060),
        status=IssueStatus.PENDING,
    ),
    Issue(
        id="CIV-1002",
        title="Broken streetlight near the library",
        location=Location(lat=40.7306, lon=-73.9866),
        status=IssueStatus.IN_PROGRESS,
    ),
    Issue(
        id="CIV-1003",
        title="Overflowing garbage bins in Riverside Park",
        location=Location(lat=40.8007, lon=-73.9710),
        status=IssueStatus.RESOLVED,
    ),
    Issue(
        id="CIV-1004",
        title="Graffiti on the community center wall",
        location=Location(lat=40.6782, lon=-73.9442),
        status=IssueStatus.RESOLVED,
    ),
]


class InMemoryIssueStore:
    def __init__(self, issues: Iterable[Issue] = SAMPLE_ISSUES):
        self._issues = {issue.id: issue for issue in issues}

    def get(self, issue_id: str) -> Issue | None:
        return self._issues.get(issue_id)

    def list_issues(self, status: IssueStatus | None = None) -> list[Issue]:
        return [
            issue for issue in self._issues.values()
            if status is None or issue.status == status
        ]


class HttpIssueStore:
    """Reads issues from a tracker exposing `GET /issues` and `GET /issues/{id}`."""

    def __init__(self, base_url: str, transport: httpx.BaseTransport | None = None):
        self.http_client = httpx.Client(base_url=base_url, timeout=10.0, transport=transport)

    def get(self, issue_id: str) -> Issue | None:
        try:
            response = self.http_client.get(f"/issues/{quote(issue_id, safe='')}")
        except httpx.HTTPError as e:
            raise IssueLookupError(f"Issue tracker unreachable: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise IssueLookupError(
                f"Issue tracker returned {response.status_code} for {issue_id}"
            )

        try:
            return Issue.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise IssueLookupError(f"Issue tracker sent an unreadable issue for {issue_id}") from e

    def list_issues(self, status: IssueStatus | None = None) -> list[Issue]:
        params = {"status": status.value} if status else None
        try:
            response = self.http_client.get("/issues", params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise IssueLookupError(f"Failed to list issues: {e}") from e

        try:
            data = response.json()
            items = data.get("issues", []) if isinstance(data, dict) else data
            return [Issue.model_validate(item) for item in items]
        except (ValidationError, ValueError, TypeError) as e:
            raise IssueLookupError("Issue tracker sent an unreadable issue list") from e

    def close(self):
        self.http_client.close()


def build_issue_store(issue_api_url: str | None) -> IssueStore:
    if issue_api_url:
        logger.info("Using HTTP issue store", extra={"issue_api_url": issue_api_url})
        return HttpIssueStore(issue_api_url)
    logger.info("Using in-memory issue store", extra={"issue_count": len(SAMPLE_ISSUES)})
    return InMemoryIssueStore()
