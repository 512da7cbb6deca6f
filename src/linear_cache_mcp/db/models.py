import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, declarative_base

Base: type[DeclarativeBase] = declarative_base()


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# Historical buffer of Linear data. Rows are never deleted, only flagged.
class LinearProject(Base):
    __tablename__ = "linear_projects"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    state = Column(String, nullable=True, index=True)
    progress = Column(Float, nullable=True)
    target_date = Column(String, nullable=True)
    start_date = Column(String, nullable=True)
    url = Column(String, nullable=True)
    lead_id = Column(String, nullable=True)
    lead_name = Column(String, nullable=True)
    member_ids = Column(JSON, nullable=False, default=list)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    summary = Column(Text, nullable=True)
    summary_generated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class LinearIssue(Base):
    __tablename__ = "linear_issues"
    id = Column(String, primary_key=True)
    identifier = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    url = Column(String, nullable=True)
    priority = Column(Integer, nullable=True)
    state_id = Column(String, nullable=True)
    state_name = Column(String, nullable=True, index=True)
    assignee_id = Column(String, nullable=True, index=True)
    assignee_name = Column(String, nullable=True)
    team_id = Column(String, nullable=True)
    team_name = Column(String, nullable=True)
    team_key = Column(String, nullable=True)
    project_id = Column(String, nullable=True, index=True)
    project_name = Column(String, nullable=True)
    parent_id = Column(String, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    summary = Column(Text, nullable=True)
    summary_generated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# Recorded previews, so an apply request can be checked against what the user reviewed.
class SyncPreviewRecord(Base):
    __tablename__ = "sync_previews"
    id = Column(String, primary_key=True)
    generated_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    include_completed = Column(Boolean, nullable=False, default=False)
    stats = Column(JSON, nullable=False, default=dict)
    changes = Column(JSON, nullable=False, default=list)
    change_states = Column(JSON, nullable=False, default=dict)
    last_applied_at = Column(DateTime, nullable=True)


# History/Audit Model
class LinearEntityHistory(Base):
    __tablename__ = "linear_entity_history"
    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=utcnow, index=True)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    snapshot = Column(JSON, nullable=False)
    change_source = Column(String, nullable=True)
    __table_args__ = (UniqueConstraint("entity_type", "entity_id", "version", name="_entity_version_uc"),)
