"""Classification of differences between the cache and a fresh Linear fetch.

Everything in here is pure: it takes snapshots in and returns a preview,
without touching the database or the network. Summaries are only flagged for
review; generating them is the apply step's business.
"""

import datetime
import json
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import dictdiffer

from ..db.models import utcnow
from ..schemas.linear import (
    CachedIssueRead,
    CachedProjectRead,
    IssueSnapshot,
    ProjectSnapshot,
)
from ..schemas.sync import SyncChange, SyncPreview, SyncStats

AnySnapshot = Union[ProjectSnapshot, IssueSnapshot]
AnyCached = Union[CachedProjectRead, CachedIssueRead]

ACTION_PRIORITY = {"create": 0, "update": 1, "delete": 2}


def canonical_value(value: Any) -> Any:
    """Comparable form of a field value.

    Compound values are serialized with a stable order so that list order and
    key order never show up as a change.
    """
    if isinstance(value, (list, tuple, set)):
        items = [canonical_value(v) for v in value]
        return json.dumps(sorted(items, key=lambda v: json.dumps(v, sort_keys=True, default=str)), sort_keys=True, default=str)
    if isinstance(value, dict):
        return json.dumps({k: canonical_value(v) for k, v in value.items()}, sort_keys=True, default=str)
    if isinstance(value, str) and not value.strip():
        return None
    return value


def comparable_view(snapshot: AnySnapshot) -> Dict[str, Any]:
    return {field: canonical_value(getattr(snapshot, field)) for field in snapshot.COMPARE_FIELDS}


def changed_fields(before: AnySnapshot, after: AnySnapshot) -> List[str]:
    """Comparable fields that differ, in the fixed field order of the entity kind."""
    if before.kind != after.kind:
        raise ValueError(f"Cannot compare a {before.kind} with a {after.kind}")
    differing: Set[str] = set()
    for action, path, values in dictdiffer.diff(comparable_view(before), comparable_view(after)):
        if action == "change":
            differing.add(path[0] if isinstance(path, list) else str(path).split(".")[0])
        else:
            # add/remove report the keys at path '' as (key, value) pairs
            differing.update(str(key) for key, _ in values)
    return [field for field in before.COMPARE_FIELDS if field in differing]


def summary_needs_review(
    snapshot: AnySnapshot, fields: Sequence[str], current_summary: Optional[str]
) -> bool:
    """True when a content-bearing field changed or there is no summary yet."""
    if not current_summary:
        return True
    return any(field in snapshot.CONTENT_FIELDS for field in fields)


def _to_snapshot(cached: AnyCached) -> AnySnapshot:
    snapshot_type = ProjectSnapshot if cached.kind == "project" else IssueSnapshot
    return snapshot_type.model_validate(
        {field: getattr(cached, field) for field in snapshot_type.model_fields}
    )


def _in_scope(
    remote: Optional[AnySnapshot], cached: Optional[AnyCached], include_completed: bool
) -> bool:
    """An id drops out of scope only when every side holding it reports it as completed.

    That keeps an open item that just got closed upstream visible as an update.
    """
    if include_completed:
        return True
    sides = [entity for entity in (remote, cached) if entity is not None]
    return not all(entity.is_completed() for entity in sides)


def classify_kind(
    remote_entities: Iterable[AnySnapshot],
    cached_entities: Iterable[AnyCached],
    include_completed: bool = False,
    include_deleted: bool = False,
) -> Tuple[List[SyncChange], int]:
    """Classify the ids of one entity kind. Returns (changes, unchanged_count)."""
    remote_map = {entity.id: entity for entity in remote_entities}
    cached_map = {
        entity.id: entity
        for entity in cached_entities
        if include_deleted or not entity.is_deleted
    }

    changes: List[SyncChange] = []
    unchanged = 0
    for entity_id in sorted(remote_map.keys() | cached_map.keys()):
        remote = remote_map.get(entity_id)
        cached = cached_map.get(entity_id)
        if not _in_scope(remote, cached, include_completed):
            continue

        if cached is not None and cached.is_deleted:
            # Only reachable with include_deleted: the row already reflects a deletion.
            if remote is None:
                unchanged += 1
                continue
            cached = None

        if cached is None:
            changes.append(
                SyncChange(
                    id=entity_id,
                    type=remote.kind,
                    action="create",
                    identifier=remote.identifier,
                    name=remote.display_name,
                    before=None,
                    after=remote,
                    changed_fields=[],
                    current_summary=None,
                    proposed_summary=None,
                    summary_needs_review=True,
                )
            )
        elif remote is None:
            changes.append(
                SyncChange(
                    id=entity_id,
                    type=cached.kind,
                    action="delete",
                    identifier=cached.identifier,
                    name=cached.display_name,
                    before=_to_snapshot(cached),
                    after=None,
                    changed_fields=[],
                    current_summary=cached.summary,
                    proposed_summary=None,
                    summary_needs_review=False,
                )
            )
        else:
            before = _to_snapshot(cached)
            fields = changed_fields(before, remote)
            if not fields:
                unchanged += 1
                continue
            changes.append(
                SyncChange(
                    id=entity_id,
                    type=remote.kind,
                    action="update",
                    identifier=remote.identifier,
                    name=remote.display_name,
                    before=before,
                    after=remote,
                    changed_fields=fields,
                    current_summary=cached.summary,
                    proposed_summary=None,
                    summary_needs_review=summary_needs_review(remote, fields, cached.summary),
                )
            )
    return changes, unchanged


def sort_changes(changes: Iterable[SyncChange]) -> List[SyncChange]:
    return sorted(
        changes,
        key=lambda c: (ACTION_PRIORITY[c.action], c.name, c.type, c.id),
    )


def compute_preview(
    remote_projects: Iterable[ProjectSnapshot],
    remote_issues: Iterable[IssueSnapshot],
    cached_projects: Iterable[CachedProjectRead],
    cached_issues: Iterable[CachedIssueRead],
    include_completed: bool = False,
    include_deleted: bool = False,
    generated_at: Optional[datetime.datetime] = None,
    preview_id: Optional[str] = None,
) -> SyncPreview:
    """Build a SyncPreview from a remote fetch and the current cache contents."""
    project_changes, unchanged_projects = classify_kind(
        remote_projects, cached_projects, include_completed, include_deleted
    )
    issue_changes, unchanged_issues = classify_kind(
        remote_issues, cached_issues, include_completed, include_deleted
    )
    changes = sort_changes(project_changes + issue_changes)
    stats = SyncStats(
        created=sum(1 for c in changes if c.action == "create"),
        updated=sum(1 for c in changes if c.action == "update"),
        deleted=sum(1 for c in changes if c.action == "delete"),
        unchanged=unchanged_projects + unchanged_issues,
    )
    return SyncPreview(
        preview_id=preview_id or uuid.uuid4().hex,
        changes=changes,
        stats=stats,
        generated_at=generated_at or utcnow(),
        include_completed=include_completed,
    )
