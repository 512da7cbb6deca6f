from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.errors import CacheStoreError
from ..db.database import get_db
from ..schemas import history as history_schema
from ..schemas import linear as linear_schema
from ..services import cache_service, history_service

router = APIRouter(prefix="/workspaces/{workspace_id_b64}/linear/cache", tags=["Linear Cache"])


@router.get("", response_model=linear_schema.CacheListing)
def read_cache(
    workspace_id_b64: str,
    include_deleted: bool = False,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Cached projects and issues with the cache stats. Soft-deleted rows only on request."""
    try:
        projects = cache_service.list_entities(db, "project", include_deleted=include_deleted, limit=limit)
        issues = cache_service.list_entities(db, "issue", include_deleted=include_deleted, limit=limit)
        stats = cache_service.get_stats(db)
    except CacheStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return linear_schema.CacheListing(
        projects=[linear_schema.CachedProjectRead.model_validate(p) for p in projects],
        issues=[linear_schema.CachedIssueRead.model_validate(i) for i in issues],
        stats=stats,
    )


@router.get("/stats", response_model=linear_schema.CacheStats)
def read_cache_stats(workspace_id_b64: str, db: Session = Depends(get_db)):
    try:
        return cache_service.get_stats(db)
    except CacheStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/projects/{project_id}", response_model=linear_schema.CachedProjectRead)
def read_cached_project(workspace_id_b64: str, project_id: str, db: Session = Depends(get_db)):
    """Retrieve a cached project by id, including soft-deleted ones."""
    db_project = cache_service.get(db, "project", project_id)
    if db_project is None:
        raise HTTPException(status_code=404, detail="Project not found in cache")
    return db_project


@router.get("/issues/{issue_id}", response_model=linear_schema.CachedIssueRead)
def read_cached_issue(workspace_id_b64: str, issue_id: str, db: Session = Depends(get_db)):
    """Retrieve a cached issue by id or identifier (e.g. DEV-123)."""
    db_issue = cache_service.get_issue(db, issue_id)
    if db_issue is None:
        raise HTTPException(status_code=404, detail="Issue not found in cache")
    return db_issue


@router.get("/{entity_type}/{entity_id}/history", response_model=List[history_schema.EntityHistoryRead])
def read_entity_history(
    workspace_id_b64: str,
    entity_type: Literal["project", "issue"],
    entity_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Retrieve previous versions of a cached project or issue, newest first."""
    return history_service.get_history(db, entity_type, entity_id, limit=limit)
