import datetime
from typing import Annotated, Any, ClassVar, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

EntityType = Literal["project", "issue"]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ProjectSnapshot(BaseModel):
    """Point-in-time state of a Linear project, limited to the fields we cache."""

    COMPARE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name",
        "description",
        "content",
        "state",
        "progress",
        "target_date",
        "start_date",
        "url",
        "lead_id",
        "lead_name",
        "member_ids",
    )
    CONTENT_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "description", "content")

    kind: Literal["project"] = "project"
    id: str = Field(..., min_length=1)
    name: str
    description: Optional[str] = None
    content: Optional[str] = None
    state: Optional[str] = None
    progress: Optional[float] = None
    target_date: Optional[str] = None
    start_date: Optional[str] = None
    url: Optional[str] = None
    lead_id: Optional[str] = None
    lead_name: Optional[str] = None
    member_ids: List[str] = []
    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "description", "content", "state", "target_date", "start_date", "url", "lead_id", "lead_name",
        mode="before",
    )
    @classmethod
    def normalize_blank_strings(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("member_ids", mode="before")
    @classmethod
    def sort_member_ids(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple, set)):
            return sorted({str(v) for v in value})
        return value

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def identifier(self) -> Optional[str]:
        return None

    def is_completed(self) -> bool:
        return (self.state or "").lower() in ("completed", "canceled", "cancelled")


class IssueSnapshot(BaseModel):
    """Point-in-time state of a Linear issue, limited to the fields we cache."""

    COMPARE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "identifier",
        "title",
        "description",
        "url",
        "priority",
        "state_id",
        "state_name",
        "assignee_id",
        "assignee_name",
        "team_id",
        "team_name",
        "team_key",
        "project_id",
        "project_name",
        "parent_id",
    )
    CONTENT_FIELDS: ClassVar[Tuple[str, ...]] = ("title", "description")
    COMPLETED_STATE_MARKERS: ClassVar[Tuple[str, ...]] = ("done", "completed", "canceled", "cancelled")

    kind: Literal["issue"] = "issue"
    id: str = Field(..., min_length=1)
    identifier: Optional[str] = None
    title: str
    description: Optional[str] = None
    url: Optional[str] = None
    priority: Optional[int] = None
    state_id: Optional[str] = None
    state_name: Optional[str] = None
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    team_key: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    parent_id: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "identifier", "description", "url", "state_id", "state_name", "assignee_id", "assignee_name",
        "team_id", "team_name", "team_key", "project_id", "project_name", "parent_id",
        mode="before",
    )
    @classmethod
    def normalize_blank_strings(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def display_name(self) -> str:
        return self.title

    def is_completed(self) -> bool:
        state_name = (self.state_name or "").lower()
        return any(marker in state_name for marker in self.COMPLETED_STATE_MARKERS)


Snapshot = Annotated[Union[ProjectSnapshot, IssueSnapshot], Field(discriminator="kind")]

SNAPSHOT_TYPES = {"project": ProjectSnapshot, "issue": IssueSnapshot}


class CacheMetadata(BaseModel):
    """Sync bookkeeping stored next to every cached entity."""

    is_deleted: bool = False
    deleted_at: Optional[datetime.datetime] = None
    synced_at: datetime.datetime
    summary: Optional[str] = None
    summary_generated_at: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None


class CachedProjectRead(CacheMetadata, ProjectSnapshot):
    """Represent a cached project for read operations."""

    model_config = ConfigDict(from_attributes=True)


class CachedIssueRead(CacheMetadata, IssueSnapshot):
    """Represent a cached issue for read operations."""

    model_config = ConfigDict(from_attributes=True)


CACHED_READ_TYPES = {"project": CachedProjectRead, "issue": CachedIssueRead}


class CacheStats(BaseModel):
    active_projects: int = 0
    deleted_projects: int = 0
    active_issues: int = 0
    deleted_issues: int = 0
    last_project_sync: Optional[datetime.datetime] = None
    last_issue_sync: Optional[datetime.datetime] = None


class CacheListing(BaseModel):
    """Cached projects and issues returned together to the review surface."""

    projects: List[CachedProjectRead]
    issues: List[CachedIssueRead]
    stats: CacheStats
