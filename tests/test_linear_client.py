import json

import httpx
import pytest

from linear_cache_mcp.core import config as core_config
from linear_cache_mcp.core.errors import RemoteFetchError
from linear_cache_mcp.services import linear_client
from linear_cache_mcp.services.linear_client import IssueFilters, LinearClient

PROJECT_NODE = {
    "id": "P1",
    "name": "Onboarding",
    "description": "New team onboarding",
    "content": "",
    "state": "started",
    "progress": 0.5,
    "targetDate": "2026-03-01",
    "startDate": None,
    "url": "https://linear.app/acme/project/onboarding",
    "lead": {"id": "u1", "name": "Sam"},
    "members": {"nodes": [{"id": "u2", "name": "Kim"}, {"id": "u1", "name": "Sam"}]},
}

ISSUE_NODE = {
    "id": "I1",
    "identifier": "DEV-1",
    "title": "Fix login",
    "description": None,
    "priority": 2,
    "url": "https://linear.app/acme/issue/DEV-1",
    "state": {"id": "s1", "name": "In Progress"},
    "assignee": {"id": "u1", "name": "Sam"},
    "team": {"id": "t1", "name": "Dev", "key": "DEV"},
    "project": {"id": "P1", "name": "Onboarding"},
    "parent": None,
}


def make_client(handler, **kwargs):
    kwargs.setdefault("user_id", "u1")
    return LinearClient("lin_api_key", transport=httpx.MockTransport(handler), **kwargs)


def page(root, nodes, has_next=False, cursor=None):
    return {"data": {root: {"nodes": nodes, "pageInfo": {"hasNextPage": has_next, "endCursor": cursor}}}}


def test_list_projects_normalizes_nodes():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        assert request.headers["Authorization"] == "lin_api_key"
        return httpx.Response(200, json=page("projects", [PROJECT_NODE]))

    with make_client(handler) as client:
        [snapshot] = client.list_projects()

    assert snapshot.id == "P1"
    assert snapshot.kind == "project"
    assert snapshot.content is None
    assert snapshot.lead_name == "Sam"
    assert snapshot.member_ids == ["u1", "u2"]
    assert snapshot.progress == 0.5
    assert requests[0]["variables"]["filter"] == {"members": {"id": {"eq": "u1"}}}


def test_list_projects_show_all_has_no_member_filter():
    def handler(request):
        assert json.loads(request.content)["variables"]["filter"] is None
        return httpx.Response(200, json=page("projects", []))

    assert make_client(handler).list_projects(show_all=True) == []


def test_pagination_follows_cursor():
    cursors = []

    def handler(request):
        after = json.loads(request.content)["variables"]["after"]
        cursors.append(after)
        if after is None:
            return httpx.Response(200, json=page("issues", [ISSUE_NODE], has_next=True, cursor="c1"))
        return httpx.Response(200, json=page("issues", [dict(ISSUE_NODE, id="I2", identifier="DEV-2")]))

    issues = make_client(handler).list_issues()

    assert cursors == [None, "c1"]
    assert [i.id for i in issues] == ["I1", "I2"]
    assert issues[0].state_name == "In Progress"
    assert issues[0].team_key == "DEV"
    assert issues[0].project_id == "P1"
    assert issues[0].parent_id is None


def test_issue_limit_stops_paging():
    calls = []

    def handler(request):
        calls.append(json.loads(request.content)["variables"]["first"])
        return httpx.Response(200, json=page("issues", [ISSUE_NODE], has_next=True, cursor="c"))

    issues = make_client(handler).list_issues(IssueFilters(limit=1))
    assert len(issues) == 1
    assert calls == [1]


def test_no_issue_limit_pages_until_exhausted():
    nodes = [dict(ISSUE_NODE, id=f"I{n}", identifier=f"DEV-{n}") for n in range(1, 121)]
    calls = []

    def handler(request):
        variables = json.loads(request.content)["variables"]
        calls.append(variables["first"])
        start = int(variables["after"] or 0)
        end = start + variables["first"]
        return httpx.Response(
            200, json=page("issues", nodes[start:end], has_next=end < len(nodes), cursor=str(end))
        )

    issues = make_client(handler).list_issues(IssueFilters(limit=None))

    assert len(issues) == 120
    assert calls == [linear_client.PAGE_SIZE] * 3


def test_issue_filters_are_translated():
    def handler(request):
        variables = json.loads(request.content)["variables"]
        assert variables["filter"] == {
            "assignee": {"id": {"eq": "u9"}},
            "team": {"id": {"eq": "t1"}},
            "or": [
                {"title": {"containsIgnoreCase": "login"}},
                {"description": {"containsIgnoreCase": "login"}},
            ],
        }
        return httpx.Response(200, json=page("issues", []))

    make_client(handler).list_issues(IssueFilters(assignee_id="u9", team_id="t1", query="login"))


def test_show_all_issues_drops_default_assignee():
    def handler(request):
        assert json.loads(request.content)["variables"]["filter"] is None
        return httpx.Response(200, json=page("issues", []))

    make_client(handler).list_issues(IssueFilters(show_all=True))


def test_http_error_raises_remote_fetch_error():
    client = make_client(lambda request: httpx.Response(401, json={"error": "unauthorized"}))
    with pytest.raises(RemoteFetchError, match="401"):
        client.list_projects()


def test_graphql_errors_raise_remote_fetch_error():
    client = make_client(lambda request: httpx.Response(200, json={"errors": [{"message": "Rate limited"}]}))
    with pytest.raises(RemoteFetchError, match="Rate limited"):
        client.list_issues()


@pytest.mark.parametrize("body", [b"null", b"[1, 2]", b"\"ok\""])
def test_non_object_payload_raises_remote_fetch_error(body):
    client = make_client(lambda request: httpx.Response(200, content=body))
    with pytest.raises(RemoteFetchError, match="unexpected payload"):
        client.list_issues()


def test_missing_data_raises_remote_fetch_error():
    client = make_client(lambda request: httpx.Response(200, json={"data": None}))
    with pytest.raises(RemoteFetchError, match="no data"):
        client.list_projects()


def test_transport_error_raises_remote_fetch_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteFetchError, match="request failed"):
        make_client(handler).list_projects()


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(core_config.settings, "LINEAR_API_KEY", None)
    with pytest.raises(RemoteFetchError, match="LINEAR_API_KEY"):
        linear_client.get_remote_fetcher()


def test_get_remote_fetcher_uses_settings(monkeypatch):
    monkeypatch.setattr(core_config.settings, "LINEAR_API_KEY", "lin_api_x")
    monkeypatch.setattr(core_config.settings, "LINEAR_USER_ID", "u7")
    client = linear_client.get_remote_fetcher()
    assert client.user_id == "u7"
    assert client.api_url == core_config.settings.LINEAR_API_URL
    client.close()
