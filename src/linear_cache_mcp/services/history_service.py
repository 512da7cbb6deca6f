from typing import Any, Dict, List, Optional

import dictdiffer
from sqlalchemy import event, select
from sqlalchemy.orm import Session, attributes

from ..db import models
from ..schemas.linear import IssueSnapshot, ProjectSnapshot

TRACKED_FIELDS = {
    models.LinearProject: ("project", ProjectSnapshot.COMPARE_FIELDS + ("summary", "is_deleted")),
    models.LinearIssue: ("issue", IssueSnapshot.COMPARE_FIELDS + ("summary", "is_deleted")),
}


def _previous_value(target, field: str) -> Any:
    history = attributes.get_history(target, field)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, field)


def _add_history(session: Session, target, entity_type: str, fields) -> None:
    changed = [f for f in fields if attributes.get_history(target, f).has_changes()]
    if not changed:
        return
    snapshot = {field: _previous_value(target, field) for field in fields}
    latest_version_stmt = (
        select(models.LinearEntityHistory.version)
        .filter_by(entity_type=entity_type, entity_id=target.id)
        .order_by(models.LinearEntityHistory.version.desc())
        .limit(1)
    )
    with session.no_autoflush:
        latest_version = session.execute(latest_version_stmt).scalar_one_or_none() or 0
    session.add(
        models.LinearEntityHistory(
            entity_type=entity_type,
            entity_id=target.id,
            version=latest_version + 1,
            snapshot=snapshot,
            change_source=f"{entity_type} update: {', '.join(sorted(changed))}",
        )
    )


def setup_history_listeners():
    @event.listens_for(Session, "before_flush")
    def receive_before_flush(session, flush_context, instances):
        for target in list(session.dirty):
            tracked = TRACKED_FIELDS.get(type(target))
            if tracked is None or not session.is_modified(target):
                continue
            entity_type, fields = tracked
            _add_history(session, target, entity_type, fields)


def get_history(
    db: Session, entity_type: str, entity_id: str, limit: int = 10
) -> List[models.LinearEntityHistory]:
    return (
        db.query(models.LinearEntityHistory)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(models.LinearEntityHistory.version.desc())
        .limit(limit)
        .all()
    )


def get_version(
    db: Session, entity_type: str, entity_id: str, version: int
) -> Optional[models.LinearEntityHistory]:
    return (
        db.query(models.LinearEntityHistory)
        .filter_by(entity_type=entity_type, entity_id=entity_id, version=version)
        .first()
    )


def diff_snapshots(snapshot_a: Dict[str, Any], snapshot_b: Dict[str, Any]) -> List[Any]:
    """List of dictdiffer differences going from snapshot_a to snapshot_b."""
    return list(dictdiffer.diff(snapshot_a, snapshot_b))


setup_history_listeners()
