from typing import Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.config import decode_workspace_id
from ..core.errors import (
    CacheStoreError,
    PreviewNotFoundError,
    RemoteFetchError,
    StalePreviewError,
)
from ..db.database import get_db
from ..schemas import sync as sync_schema
from ..services import apply_service, preview_service
from ..services.linear_client import RemoteFetcher, get_remote_fetcher
from ..services.summary_service import Summarizer, get_summarizer

router = APIRouter(prefix="/workspaces/{workspace_id_b64}/linear/sync", tags=["Linear Sync"])


def provide_fetcher() -> Iterator[RemoteFetcher]:
    try:
        client = get_remote_fetcher()
    except RemoteFetchError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    try:
        yield client
    finally:
        client.close()


def provide_summarizer() -> Iterator[Optional[Summarizer]]:
    client = get_summarizer()
    try:
        yield client
    finally:
        if client is not None:
            client.close()


@router.get("/preview", response_model=sync_schema.SyncPreview)
def preview_sync(
    workspace_id_b64: str,
    include_completed: bool = False,
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    fetcher: RemoteFetcher = Depends(provide_fetcher),
):
    """Compare a fresh Linear fetch with the cache. Nothing is written to the cache."""
    try:
        return preview_service.build_preview(
            db, fetcher, include_completed=include_completed, include_deleted=include_deleted
        )
    except RemoteFetchError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except CacheStoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/previews/{preview_id}", response_model=sync_schema.SyncPreview)
def read_preview(workspace_id_b64: str, preview_id: str, db: Session = Depends(get_db)):
    try:
        return preview_service.get_preview(db, preview_id)
    except PreviewNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/apply", response_model=sync_schema.ApplyResult)
def apply_sync(
    workspace_id_b64: str,
    apply_request: sync_schema.ApplyRequest,
    db: Session = Depends(get_db),
    summarizer: Optional[Summarizer] = Depends(provide_summarizer),
):
    """Apply the approved changes of a preview and record the rejected ones."""
    try:
        return apply_service.apply_changes(
            db, decode_workspace_id(workspace_id_b64), apply_request, summarizer=summarizer
        )
    except PreviewNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StalePreviewError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except CacheStoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
