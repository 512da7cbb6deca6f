import logging
from typing import Optional, Protocol, Union

import httpx

from ..core.config import settings
from ..schemas.linear import IssueSnapshot, ProjectSnapshot

log = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 20


class Summarizer(Protocol):
    def summarize(self, kind: str, title: str, content: str) -> Optional[str]: ...


def summary_input(snapshot: Union[ProjectSnapshot, IssueSnapshot]) -> Optional[str]:
    """Text worth summarizing for a snapshot, or None if there is too little of it."""
    if snapshot.kind == "project":
        parts = [snapshot.description, snapshot.content]
    else:
        parts = [snapshot.description]
    content = "\n\n".join(part.strip() for part in parts if part and part.strip())
    if len(content) < MIN_CONTENT_LENGTH:
        return None
    return content


class SummaryClient:
    """Client for the AI summarize endpoint."""

    def __init__(self, api_url: str, timeout: float = 60.0, transport: Optional[httpx.BaseTransport] = None):
        self.api_url = api_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def summarize(self, kind: str, title: str, content: str) -> Optional[str]:
        try:
            response = self._client.post(
                self.api_url,
                json={"type": f"linear_{kind}", "title": title, "content": content},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Summary generation failed for {kind} '{title}': {e}")
            return None
        summary = payload.get("summary") if isinstance(payload, dict) else None
        if not isinstance(summary, str) or not summary.strip():
            log.warning(f"Summary endpoint returned no summary for {kind} '{title}'")
            return None
        return summary.strip()


def summarize_snapshot(
    summarizer: Summarizer, snapshot: Union[ProjectSnapshot, IssueSnapshot]
) -> Optional[str]:
    content = summary_input(snapshot)
    if content is None:
        log.debug(f"Skipping summary for {snapshot.kind} {snapshot.id}: not enough content")
        return None
    return summarizer.summarize(snapshot.kind, snapshot.display_name, content)


def get_summarizer() -> Optional[SummaryClient]:
    """SummaryClient from settings, or None when no summary endpoint is configured."""
    if not settings.SUMMARY_API_URL:
        return None
    return SummaryClient(settings.SUMMARY_API_URL, timeout=settings.SUMMARY_TIMEOUT_SECONDS)
