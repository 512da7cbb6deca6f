import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .linear import CacheStats, EntityType, Snapshot

ChangeAction = Literal["create", "update", "delete"]
ChangeState = Literal["proposed", "rejected", "applied"]
OutcomeStatus = Literal["applied", "rejected", "failed"]


def change_key(entity_type: str, entity_id: str) -> str:
    """Key of a change inside a recorded preview."""
    return f"{entity_type}:{entity_id}"


class SyncChange(BaseModel):
    """One proposed difference between the cache and a fresh Linear fetch."""

    id: str
    type: EntityType
    action: ChangeAction
    identifier: Optional[str] = None
    name: str
    before: Optional[Snapshot] = None
    after: Optional[Snapshot] = None
    changed_fields: List[str] = []
    current_summary: Optional[str] = None
    proposed_summary: Optional[str] = None
    summary_needs_review: bool = False

    @model_validator(mode="after")
    def check_shape(self) -> "SyncChange":
        if (self.before is None) != (self.action == "create"):
            raise ValueError("'before' must be null exactly when action is 'create'")
        if (self.after is None) != (self.action == "delete"):
            raise ValueError("'after' must be null exactly when action is 'delete'")
        if bool(self.changed_fields) != (self.action == "update"):
            raise ValueError("'changed_fields' must be non-empty exactly when action is 'update'")
        for snapshot in (self.before, self.after):
            if snapshot is not None and (snapshot.kind != self.type or snapshot.id != self.id):
                raise ValueError("snapshot kind and id must match the change")
        return self

    @property
    def key(self) -> str:
        return change_key(self.type, self.id)


class SyncStats(BaseModel):
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.deleted + self.unchanged


class SyncPreview(BaseModel):
    preview_id: str
    changes: List[SyncChange]
    stats: SyncStats
    generated_at: datetime.datetime
    include_completed: bool = False


class ApprovedChange(BaseModel):
    id: str = Field(..., min_length=1)
    type: EntityType
    action: ChangeAction
    summary_override: Optional[str] = Field(
        None, description="Summary to store instead of the existing or regenerated one."
    )


class ApplyRequest(BaseModel):
    """The user's explicit selection over one recorded preview."""

    preview_id: str = Field(..., min_length=1)
    approved: List[ApprovedChange] = []
    rejected: List[str] = Field([], description="Ids of changes to reject.")


class ChangeOutcome(BaseModel):
    id: str
    type: Optional[EntityType] = None
    action: Optional[ChangeAction] = None
    status: OutcomeStatus
    success: bool
    error: Optional[str] = None


class ApplyResult(BaseModel):
    preview_id: str
    success: bool
    applied: int = 0
    rejected: int = 0
    failed: int = 0
    outcomes: List[ChangeOutcome] = []
    stats: CacheStats
