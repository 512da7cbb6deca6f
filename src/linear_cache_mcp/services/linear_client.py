"""Read-only Linear GraphQL client.

Normalizes projects and issues into snapshots. Any failure surfaces as
RemoteFetchError; retries are left to the caller.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.errors import RemoteFetchError
from ..schemas.linear import IssueSnapshot, ProjectSnapshot

log = logging.getLogger(__name__)

PAGE_SIZE = 50

PROJECTS_QUERY = """
query Projects($first: Int!, $after: String, $filter: ProjectFilter) {
  projects(first: $first, after: $after, filter: $filter) {
    nodes {
      id
      name
      description
      content
      state
      progress
      targetDate
      startDate
      url
      lead { id name }
      members { nodes { id name } }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

ISSUES_QUERY = """
query Issues($first: Int!, $after: String, $filter: IssueFilter) {
  issues(first: $first, after: $after, filter: $filter) {
    nodes {
      id
      identifier
      title
      description
      priority
      url
      state { id name }
      assignee { id name }
      team { id name key }
      project { id name }
      parent { id }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


class IssueFilters(BaseModel):
    """Filters for listing issues. Without show_all, issues default to LINEAR_USER_ID.

    A limit of None pages until Linear reports no further issues.
    """

    assignee_id: Optional[str] = None
    state_id: Optional[str] = None
    team_id: Optional[str] = None
    project_id: Optional[str] = None
    query: Optional[str] = None
    limit: Optional[int] = Field(default_factory=lambda: settings.LINEAR_ISSUE_FETCH_LIMIT, ge=1)
    show_all: bool = False


class RemoteFetcher(Protocol):
    def list_projects(self, team_id: Optional[str] = None) -> List[ProjectSnapshot]: ...

    def list_issues(self, filters: Optional[IssueFilters] = None) -> List[IssueSnapshot]: ...


def _name_of(node: Optional[Dict[str, Any]]) -> Optional[str]:
    return node.get("name") if node else None


def _id_of(node: Optional[Dict[str, Any]]) -> Optional[str]:
    return node.get("id") if node else None


def normalize_project(node: Dict[str, Any]) -> ProjectSnapshot:
    members = (node.get("members") or {}).get("nodes") or []
    return ProjectSnapshot(
        id=node["id"],
        name=node["name"],
        description=node.get("description"),
        content=node.get("content"),
        state=node.get("state"),
        progress=node.get("progress"),
        target_date=node.get("targetDate"),
        start_date=node.get("startDate"),
        url=node.get("url"),
        lead_id=_id_of(node.get("lead")),
        lead_name=_name_of(node.get("lead")),
        member_ids=[m["id"] for m in members if m.get("id")],
    )


def normalize_issue(node: Dict[str, Any]) -> IssueSnapshot:
    team = node.get("team") or {}
    return IssueSnapshot(
        id=node["id"],
        identifier=node.get("identifier"),
        title=node["title"],
        description=node.get("description"),
        url=node.get("url"),
        priority=node.get("priority"),
        state_id=_id_of(node.get("state")),
        state_name=_name_of(node.get("state")),
        assignee_id=_id_of(node.get("assignee")),
        assignee_name=_name_of(node.get("assignee")),
        team_id=team.get("id"),
        team_name=team.get("name"),
        team_key=team.get("key"),
        project_id=_id_of(node.get("project")),
        project_name=_name_of(node.get("project")),
        parent_id=_id_of(node.get("parent")),
    )


class LinearClient:
    """Thin wrapper around the Linear GraphQL endpoint."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.linear.app/graphql",
        user_id: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not api_key:
            raise RemoteFetchError("LINEAR_API_KEY is not configured.")
        self.api_url = api_url
        self.user_id = user_id
        self._client = httpx.Client(
            headers={"Content-Type": "application/json", "Authorization": api_key},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "LinearClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.post(self.api_url, json={"query": query, "variables": variables})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise RemoteFetchError(f"Linear API error: {e.response.status_code} {e.response.reason_phrase}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise RemoteFetchError(f"Linear API request failed: {e}") from e

        if not isinstance(payload, dict):
            raise RemoteFetchError(f"Linear API returned an unexpected payload: {type(payload).__name__}")
        if payload.get("errors"):
            error = payload["errors"][0]
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            raise RemoteFetchError(f"Linear GraphQL error: {message}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise RemoteFetchError("Linear API returned no data.")
        return data

    def _paginate(self, query: str, root: str, filter_: Optional[Dict[str, Any]], limit: Optional[int]) -> List[Dict[str, Any]]:
        nodes: List[Dict[str, Any]] = []
        after = None
        while True:
            first = PAGE_SIZE if limit is None else min(PAGE_SIZE, limit - len(nodes))
            data = self._query(query, {"first": first, "after": after, "filter": filter_})
            connection = data.get(root) or {}
            nodes.extend(connection.get("nodes") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or (limit is not None and len(nodes) >= limit):
                break
            after = page_info.get("endCursor")
        return nodes if limit is None else nodes[:limit]

    def list_projects(self, team_id: Optional[str] = None, show_all: bool = False) -> List[ProjectSnapshot]:
        """Projects the configured user is a member of (all projects with show_all)."""
        log.debug(f"Fetching Linear projects{f' for team {team_id}' if team_id else ''}")
        filter_: Dict[str, Any] = {}
        if team_id:
            filter_["accessibleTeams"] = {"id": {"eq": team_id}}
        if not show_all and self.user_id:
            filter_["members"] = {"id": {"eq": self.user_id}}
        nodes = self._paginate(PROJECTS_QUERY, "projects", filter_ or None, None)
        try:
            return [normalize_project(node) for node in nodes]
        except (KeyError, ValueError) as e:
            raise RemoteFetchError(f"Unexpected project payload from Linear: {e}") from e

    def list_issues(self, filters: Optional[IssueFilters] = None) -> List[IssueSnapshot]:
        """Issues matching the filters, assigned to the configured user unless show_all."""
        filters = filters or IssueFilters()
        log.debug(f"Listing Linear issues with filters: {filters.model_dump(exclude_none=True)}")
        filter_: Dict[str, Any] = {}
        assignee_id = filters.assignee_id or (None if filters.show_all else self.user_id)
        if assignee_id:
            filter_["assignee"] = {"id": {"eq": assignee_id}}
        if filters.state_id:
            filter_["state"] = {"id": {"eq": filters.state_id}}
        if filters.team_id:
            filter_["team"] = {"id": {"eq": filters.team_id}}
        if filters.project_id:
            filter_["project"] = {"id": {"eq": filters.project_id}}
        if filters.query:
            filter_["or"] = [
                {"title": {"containsIgnoreCase": filters.query}},
                {"description": {"containsIgnoreCase": filters.query}},
            ]
        nodes = self._paginate(ISSUES_QUERY, "issues", filter_ or None, filters.limit)
        try:
            return [normalize_issue(node) for node in nodes]
        except (KeyError, ValueError) as e:
            raise RemoteFetchError(f"Unexpected issue payload from Linear: {e}") from e


def get_remote_fetcher() -> LinearClient:
    """Build a LinearClient from settings. Used as a FastAPI dependency and by the MCP tools."""
    return LinearClient(
        api_key=settings.LINEAR_API_KEY or "",
        api_url=settings.LINEAR_API_URL,
        user_id=settings.LINEAR_USER_ID,
        timeout=settings.LINEAR_TIMEOUT_SECONDS,
    )
