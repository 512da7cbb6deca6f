"""Builders and fakes shared by the service tests."""

import threading
from typing import List, Optional

from linear_cache_mcp.core.errors import RemoteFetchError
from linear_cache_mcp.schemas.linear import IssueSnapshot, ProjectSnapshot


def project(project_id: str = "P1", name: str = "Alpha", **fields) -> ProjectSnapshot:
    return ProjectSnapshot(id=project_id, name=name, **fields)


def issue(issue_id: str = "I1", title: str = "Fix login", **fields) -> IssueSnapshot:
    fields.setdefault("identifier", f"DEV-{issue_id[1:] or '1'}")
    fields.setdefault("state_name", "Todo")
    return IssueSnapshot(id=issue_id, title=title, **fields)


class FakeFetcher:
    """In-memory stand-in for LinearClient."""

    def __init__(
        self,
        projects: Optional[List[ProjectSnapshot]] = None,
        issues: Optional[List[IssueSnapshot]] = None,
        fail_on: Optional[str] = None,
    ):
        self.projects = projects or []
        self.issues = issues or []
        self.fail_on = fail_on
        self.closed = False
        self.issue_filters = None
        self.thread_ids = set()

    def list_projects(self, team_id=None):
        self.thread_ids.add(threading.get_ident())
        if self.fail_on == "projects":
            raise RemoteFetchError("Linear API error: 503 Service Unavailable")
        return list(self.projects)

    def list_issues(self, filters=None):
        self.issue_filters = filters
        self.thread_ids.add(threading.get_ident())
        if self.fail_on == "issues":
            raise RemoteFetchError("Linear API error: 503 Service Unavailable")
        return list(self.issues)

    def close(self):
        self.closed = True


class FakeSummarizer:
    def __init__(self, summary: Optional[str] = "Generated summary"):
        self.summary = summary
        self.calls = []

    def summarize(self, kind, title, content):
        self.calls.append((kind, title, content))
        return self.summary

    def close(self):
        pass
