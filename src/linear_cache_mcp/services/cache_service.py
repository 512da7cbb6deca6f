"""Historical buffer of Linear projects and issues.

Rows are never removed: ``mark_deleted`` is the only way an entity leaves the
active set, and every other field (including the summary) is kept for audit.
Each mutation commits exactly one entity.
"""

import datetime
import logging
from typing import Dict, List, Optional, Type, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import CacheStoreError
from ..db import models
from ..schemas.linear import CacheStats, EntityType, IssueSnapshot, ProjectSnapshot

log = logging.getLogger(__name__)

CacheModel = Union[models.LinearProject, models.LinearIssue]

MODELS: Dict[str, Type[CacheModel]] = {
    "project": models.LinearProject,
    "issue": models.LinearIssue,
}


def _model_for(kind: str) -> Type[CacheModel]:
    try:
        return MODELS[kind]
    except KeyError:
        raise ValueError(f"Invalid entity type: {kind}. Must be 'project' or 'issue'.")


def _name_column(model: Type[CacheModel]):
    return model.name if model is models.LinearProject else model.title


def get(db: Session, kind: EntityType, entity_id: str) -> Optional[CacheModel]:
    model = _model_for(kind)
    return db.query(model).filter(model.id == entity_id).first()


def get_issue(db: Session, id_or_identifier: str) -> Optional[models.LinearIssue]:
    """Retrieve a cached issue by id, falling back to its identifier (e.g. DEV-123)."""
    issue = get(db, "issue", id_or_identifier)
    if issue is None:
        issue = (
            db.query(models.LinearIssue)
            .filter(models.LinearIssue.identifier == id_or_identifier)
            .first()
        )
    return issue


def _filtered_query(db: Session, kind: str, include_deleted: bool, state: Optional[str]):
    model = _model_for(kind)
    query = db.query(model)
    if not include_deleted:
        query = query.filter(model.is_deleted.is_(False))
    if state:
        state_column = model.state if model is models.LinearProject else model.state_name
        query = query.filter(state_column == state)
    return query


def list_entities(
    db: Session,
    kind: EntityType,
    include_deleted: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
    state: Optional[str] = None,
) -> List[CacheModel]:
    """List cached entities ordered by name/title, then id."""
    model = _model_for(kind)
    query = _filtered_query(db, kind, include_deleted, state).order_by(
        _name_column(model).asc(), model.id.asc()
    )
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def count_entities(
    db: Session, kind: EntityType, include_deleted: bool = False, state: Optional[str] = None
) -> int:
    return _filtered_query(db, kind, include_deleted, state).count()


def upsert(
    db: Session,
    snapshot: Union[ProjectSnapshot, IssueSnapshot],
    summary: Optional[str] = None,
    summary_generated_at: Optional[datetime.datetime] = None,
    synced_at: Optional[datetime.datetime] = None,
    commit: bool = True,
) -> CacheModel:
    """Create or update a cached entity from a snapshot.

    Idempotent by id. ``synced_at`` is always advanced (touch semantics) but
    never moved backwards. A ``summary`` of None keeps the stored summary.
    ``is_deleted`` is left alone; see ``mark_deleted``.
    """
    model = _model_for(snapshot.kind)
    now = synced_at or models.utcnow()
    try:
        db_entity = db.query(model).filter(model.id == snapshot.id).first()
        if db_entity is None:
            db_entity = model(id=snapshot.id, is_deleted=False, created_at=now, synced_at=now)
            db.add(db_entity)
        for field in snapshot.COMPARE_FIELDS:
            setattr(db_entity, field, getattr(snapshot, field))
        if db_entity.synced_at is None or now > db_entity.synced_at:
            db_entity.synced_at = now
        if summary is not None:
            db_entity.summary = summary
            db_entity.summary_generated_at = summary_generated_at or now
        if commit:
            db.commit()
            db.refresh(db_entity)
        else:
            db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Failed to upsert {snapshot.kind} {snapshot.id}: {e}", exc_info=True)
        raise CacheStoreError(f"Failed to upsert {snapshot.kind} {snapshot.id}: {e}") from e
    return db_entity


def mark_deleted(
    db: Session,
    kind: EntityType,
    entity_id: str,
    deleted: bool = True,
    synced_at: Optional[datetime.datetime] = None,
    commit: bool = True,
) -> Optional[CacheModel]:
    """Flip the soft-delete flag of a cached entity. Returns None if it is not cached."""
    model = _model_for(kind)
    now = synced_at or models.utcnow()
    try:
        db_entity = db.query(model).filter(model.id == entity_id).first()
        if db_entity is None:
            return None
        if deleted and not db_entity.is_deleted:
            db_entity.deleted_at = now
        elif not deleted:
            db_entity.deleted_at = None
        db_entity.is_deleted = deleted
        if db_entity.synced_at is None or now > db_entity.synced_at:
            db_entity.synced_at = now
        if commit:
            db.commit()
            db.refresh(db_entity)
        else:
            db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Failed to mark {kind} {entity_id} deleted={deleted}: {e}", exc_info=True)
        raise CacheStoreError(f"Failed to update deletion flag of {kind} {entity_id}: {e}") from e
    return db_entity


def _kind_stats(db: Session, model: Type[CacheModel]):
    active = db.query(func.count(model.id)).filter(model.is_deleted.is_(False)).scalar() or 0
    deleted = db.query(func.count(model.id)).filter(model.is_deleted.is_(True)).scalar() or 0
    last_sync = db.query(func.max(model.synced_at)).scalar()
    return active, deleted, last_sync


def get_stats(db: Session) -> CacheStats:
    """Active/deleted counts and last sync time per entity kind."""
    try:
        active_projects, deleted_projects, last_project_sync = _kind_stats(db, models.LinearProject)
        active_issues, deleted_issues, last_issue_sync = _kind_stats(db, models.LinearIssue)
    except SQLAlchemyError as e:
        raise CacheStoreError(f"Failed to compute cache stats: {e}") from e
    return CacheStats(
        active_projects=active_projects,
        deleted_projects=deleted_projects,
        active_issues=active_issues,
        deleted_issues=deleted_issues,
        last_project_sync=last_project_sync,
        last_issue_sync=last_issue_sync,
    )
