"""Applies user-approved changes from a recorded preview to the cache.

Each change is written in its own transaction under a per-entity lock, so a
failing change never blocks the others. Applies against the same preview are
serialized so that their decisions never overwrite each other. The outcome of
every approved or rejected id is reported back; nothing is dropped silently.
"""

import datetime
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import CacheStoreError, ChangeValidationError, StalePreviewError, SyncError
from ..db import models
from ..schemas.sync import (
    ApplyRequest,
    ApplyResult,
    ApprovedChange,
    ChangeOutcome,
    SyncChange,
    change_key,
)
from . import cache_service, preview_service, summary_service
from .summary_service import Summarizer

log = logging.getLogger(__name__)


class _LockRegistry:
    """Named locks that exist only while somebody holds or waits for them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, Tuple[threading.Lock, int]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


_entity_locks = _LockRegistry()
_preview_locks = _LockRegistry()

def _failed(entity_id: str, error: str, change: Optional[SyncChange] = None) -> ChangeOutcome:
    return ChangeOutcome(
        id=entity_id,
        type=change.type if change else None,
        action=change.action if change else None,
        status="failed",
        success=False,
        error=error,
    )


def _resolve_summary(
    change: SyncChange,
    approval: ApprovedChange,
    already_applied: bool,
    summarizer: Optional[Summarizer],
) -> Optional[str]:
    """Summary to write, or None to keep the stored one."""
    if approval.summary_override is not None:
        return approval.summary_override
    if change.summary_needs_review and summarizer is not None and not already_applied:
        return summary_service.summarize_snapshot(summarizer, change.after)
    return None


def _apply_one(
    db: Session,
    change: SyncChange,
    approval: ApprovedChange,
    already_applied: bool,
    summarizer: Optional[Summarizer],
    now: datetime.datetime,
) -> None:
    if change.action == "delete":
        if cache_service.mark_deleted(db, change.type, change.id, deleted=True, synced_at=now) is None:
            raise CacheStoreError(f"{change.type} {change.id} is not in the cache.")
        return

    summary = _resolve_summary(change, approval, already_applied, summarizer)
    entity = cache_service.upsert(db, change.after, summary=summary, synced_at=now, commit=False)
    if entity.is_deleted:
        # The id came back upstream after we flagged it: restore the row.
        cache_service.mark_deleted(db, change.type, change.id, deleted=False, synced_at=now, commit=False)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise CacheStoreError(f"Failed to commit {change.type} {change.id}: {e}") from e


def _validate_approval(
    approval: ApprovedChange,
    changes: Dict[str, SyncChange],
    states: Dict[str, str],
    conflicting: set,
) -> SyncChange:
    if approval.id in conflicting:
        raise ChangeValidationError(f"Change {approval.id} is both approved and rejected.")
    change = changes.get(change_key(approval.type, approval.id))
    if change is None:
        if any(c.id == approval.id for c in changes.values()):
            raise ChangeValidationError(f"Change {approval.id} is not a {approval.type} in this preview.")
        raise ChangeValidationError(f"Change {approval.id} is not part of this preview.")
    if change.action != approval.action:
        raise ChangeValidationError(
            f"Change {approval.id} was previewed as '{change.action}', not '{approval.action}'."
        )
    if states.get(change.key) == "rejected":
        raise ChangeValidationError(f"Change {approval.id} was already rejected.")
    return change


def _reject(
    entity_id: str,
    changes: Dict[str, SyncChange],
    states: Dict[str, str],
    conflicting: set,
) -> List[ChangeOutcome]:
    if entity_id in conflicting:
        return [_failed(entity_id, f"Change {entity_id} is both approved and rejected.")]
    matches = [c for c in changes.values() if c.id == entity_id]
    if not matches:
        return [_failed(entity_id, f"Change {entity_id} is not part of this preview.")]
    outcomes = []
    for change in matches:
        if states.get(change.key) == "applied":
            outcomes.append(_failed(entity_id, f"Change {entity_id} was already applied.", change))
            continue
        states[change.key] = "rejected"
        outcomes.append(
            ChangeOutcome(id=entity_id, type=change.type, action=change.action, status="rejected", success=True)
        )
    return outcomes




def apply_changes(
    db: Session,
    workspace_id: str,
    request: ApplyRequest,
    summarizer: Optional[Summarizer] = None,
    now: Optional[datetime.datetime] = None,
) -> ApplyResult:
    """Apply the approved changes and record the rejected ones.

    Raises PreviewNotFoundError for an unknown preview and StalePreviewError
    for a preview that has been superseded or has expired. Concurrent calls
    for the same preview run one after the other.
    """
    with _preview_locks.hold((workspace_id, request.preview_id)):
        return _apply_locked(db, workspace_id, request, summarizer, now or models.utcnow())


def _apply_locked(
    db: Session,
    workspace_id: str,
    request: ApplyRequest,
    summarizer: Optional[Summarizer],
    now: datetime.datetime,
) -> ApplyResult:
    record = preview_service.get_preview_record(db, request.preview_id)
    # Another session may have recorded decisions while we waited for the lock.
    db.refresh(record)
    if preview_service.is_stale(db, record, now):
        raise StalePreviewError(f"Preview {request.preview_id} is stale; generate a new preview.")
    preview = preview_service.load_preview(record)

    changes = {change.key: change for change in preview.changes}
    states: Dict[str, str] = dict(record.change_states or {})
    for key in changes:
        states.setdefault(key, "proposed")
    conflicting = {a.id for a in request.approved} & set(request.rejected)

    outcomes: List[ChangeOutcome] = []
    for entity_id in dict.fromkeys(request.rejected):
        outcomes.extend(_reject(entity_id, changes, states, conflicting))

    for approval in request.approved:
        try:
            change = _validate_approval(approval, changes, states, conflicting)
        except ChangeValidationError as e:
            outcomes.append(_failed(approval.id, str(e)))
            continue

        already_applied = states.get(change.key) == "applied"
        try:
            with _entity_locks.hold((workspace_id, change.type, change.id)):
                _apply_one(db, change, approval, already_applied, summarizer, now)
        except SyncError as e:
            log.error(f"Failed to apply {change.action} of {change.type} {change.id}: {e}", exc_info=True)
            outcomes.append(_failed(change.id, str(e), change))
            continue
        except Exception as e:
            log.error(f"Unexpected error applying {change.action} of {change.type} {change.id}: {e}", exc_info=True)
            db.rollback()
            outcomes.append(_failed(change.id, f"Unexpected error: {e}", change))
            continue
        states[change.key] = "applied"
        outcomes.append(
            ChangeOutcome(id=change.id, type=change.type, action=change.action, status="applied", success=True)
        )

    record.change_states = states
    record.last_applied_at = now
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise CacheStoreError(f"Failed to record decisions for preview {request.preview_id}: {e}") from e

    applied = sum(1 for o in outcomes if o.status == "applied")
    rejected = sum(1 for o in outcomes if o.status == "rejected")
    failed = sum(1 for o in outcomes if o.status == "failed")
    log.info(f"Preview {request.preview_id}: applied {applied}, rejected {rejected}, failed {failed}")
    return ApplyResult(
        preview_id=request.preview_id,
        success=failed == 0,
        applied=applied,
        rejected=rejected,
        failed=failed,
        outcomes=outcomes,
        stats=cache_service.get_stats(db),
    )
