import datetime
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import CacheStoreError, PreviewNotFoundError
from ..db import models
from ..schemas.linear import CachedIssueRead, CachedProjectRead
from ..schemas.sync import SyncPreview
from . import cache_service, diff_service
from .linear_client import IssueFilters, RemoteFetcher

log = logging.getLogger(__name__)


def build_preview(
    db: Session,
    fetcher: RemoteFetcher,
    include_completed: bool = False,
    include_deleted: bool = False,
) -> SyncPreview:
    """Fetch the remote state, diff it against the cache and record the preview.

    A RemoteFetchError from either fetch propagates before anything is
    recorded. Cache tables are only read. Issues are paged to exhaustion,
    since a truncated fetch would turn every missing id into a delete.
    """
    remote_projects = fetcher.list_projects()
    remote_issues = fetcher.list_issues(IssueFilters(limit=None))
    log.info(f"Fetched {len(remote_projects)} projects and {len(remote_issues)} issues from Linear")

    cached_projects = [
        CachedProjectRead.model_validate(p)
        for p in cache_service.list_entities(db, "project", include_deleted=True)
    ]
    cached_issues = [
        CachedIssueRead.model_validate(i)
        for i in cache_service.list_entities(db, "issue", include_deleted=True)
    ]

    preview = diff_service.compute_preview(
        remote_projects,
        remote_issues,
        cached_projects,
        cached_issues,
        include_completed=include_completed,
        include_deleted=include_deleted,
    )
    save_preview(db, preview)
    log.info(
        f"Preview {preview.preview_id}: {preview.stats.created} create, {preview.stats.updated} update, "
        f"{preview.stats.deleted} delete, {preview.stats.unchanged} unchanged"
    )
    return preview


def save_preview(db: Session, preview: SyncPreview) -> models.SyncPreviewRecord:
    record = models.SyncPreviewRecord(
        id=preview.preview_id,
        generated_at=preview.generated_at,
        include_completed=preview.include_completed,
        stats=preview.stats.model_dump(),
        changes=[change.model_dump(mode="json") for change in preview.changes],
        change_states={change.key: "proposed" for change in preview.changes},
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        raise CacheStoreError(f"Failed to record preview {preview.preview_id}: {e}") from e
    return record


def get_preview_record(db: Session, preview_id: str) -> models.SyncPreviewRecord:
    record = db.query(models.SyncPreviewRecord).filter(models.SyncPreviewRecord.id == preview_id).first()
    if record is None:
        raise PreviewNotFoundError(f"Preview with id {preview_id} not found.")
    return record


def load_preview(record: models.SyncPreviewRecord) -> SyncPreview:
    return SyncPreview(
        preview_id=record.id,
        changes=record.changes,
        stats=record.stats,
        generated_at=record.generated_at,
        include_completed=record.include_completed,
    )


def get_preview(db: Session, preview_id: str) -> SyncPreview:
    return load_preview(get_preview_record(db, preview_id))


def is_stale(
    db: Session, record: models.SyncPreviewRecord, now: Optional[datetime.datetime] = None
) -> bool:
    """A preview is stale once a newer one exists or it has outlived PREVIEW_MAX_AGE_MINUTES."""
    now = now or models.utcnow()
    if now - record.generated_at > datetime.timedelta(minutes=settings.PREVIEW_MAX_AGE_MINUTES):
        return True
    newer = (
        db.query(models.SyncPreviewRecord.id)
        .filter(models.SyncPreviewRecord.generated_at > record.generated_at)
        .first()
    )
    return newer is not None
