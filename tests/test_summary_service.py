import json

import httpx

from linear_cache_mcp.core import config as core_config
from linear_cache_mcp.services import summary_service
from linear_cache_mcp.services.summary_service import SummaryClient

from .utils import FakeSummarizer, issue, project

URL = "http://localhost:3000/api/ai/summarize"


def test_summarize_posts_kind_title_and_content():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"summary": "  Short summary. "})

    client = SummaryClient(URL, transport=httpx.MockTransport(handler))

    assert client.summarize("issue", "Fix login", "Users cannot log in with SSO.") == "Short summary."
    assert seen == [{"type": "linear_issue", "title": "Fix login", "content": "Users cannot log in with SSO."}]


def test_summarize_failure_returns_none(caplog):
    client = SummaryClient(URL, transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    assert client.summarize("project", "Alpha", "x" * 40) is None
    assert "Summary generation failed" in caplog.text


def test_summarize_without_summary_field_returns_none():
    client = SummaryClient(URL, transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
    assert client.summarize("project", "Alpha", "x" * 40) is None


def test_summarize_non_object_payload_returns_none(caplog):
    client = SummaryClient(URL, transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"null")))

    assert client.summarize("project", "Alpha", "x" * 40) is None
    assert "returned no summary" in caplog.text


def test_summary_input():
    assert summary_service.summary_input(issue(description="too short")) is None
    assert summary_service.summary_input(issue(description="A description that is long enough")) == (
        "A description that is long enough"
    )
    combined = summary_service.summary_input(project(description="Ship the thing", content="Details follow here"))
    assert combined == "Ship the thing\n\nDetails follow here"


def test_summarize_snapshot_skips_thin_content():
    summarizer = FakeSummarizer()
    assert summary_service.summarize_snapshot(summarizer, project(description="tiny")) is None
    assert summarizer.calls == []


def test_get_summarizer_depends_on_settings(monkeypatch):
    monkeypatch.setattr(core_config.settings, "SUMMARY_API_URL", None)
    assert summary_service.get_summarizer() is None

    monkeypatch.setattr(core_config.settings, "SUMMARY_API_URL", URL)
    client = summary_service.get_summarizer()
    assert client.api_url == URL
    client.close()
