import asyncio
import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from fastmcp import FastMCP
from pydantic import Field, ValidationError

from .core.config import settings
from .core.errors import (
    CacheStoreError,
    PreviewNotFoundError,
    RemoteFetchError,
    StalePreviewError,
)
from .db.database import get_db_session_for_workspace, get_session_local
from .schemas.error import MCPError
from .schemas.history import EntityHistoryRead
from .schemas.linear import CachedIssueRead, CachedProjectRead, CacheStats
from .schemas.sync import ApplyRequest, ApplyResult, ApprovedChange, SyncPreview
from .services import (
    apply_service,
    cache_service,
    history_service,
    preview_service,
)
from .services.linear_client import get_remote_fetcher
from .services.summary_service import get_summarizer

logging.basicConfig(
    level=settings.LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s"
)
log = logging.getLogger(__name__)

# Importing the history service registers its flush listener
_history_service_initialized = history_service

mcp_server = FastMCP(name="Linear-Cache-MCP")

WorkspaceId = Annotated[
    str, Field(description="Identifier for the workspace (e.g., absolute path)")
]


async def _run_in_session(workspace_id: str, func, *args, **kwargs):
    """Runs a blocking service call in a worker thread with a session of its own."""
    session_local = await get_session_local(workspace_id)

    def call():
        db = session_local()
        try:
            return func(db, *args, **kwargs)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    return await asyncio.to_thread(call)


# --- Sync review ---


@mcp_server.tool()
async def linear_preview_sync(
    workspace_id: WorkspaceId,
    include_completed: Annotated[
        bool, Field(description="Also compare completed and canceled items.")
    ] = False,
    include_deleted: Annotated[
        bool, Field(description="Compare against soft-deleted cache rows as well.")
    ] = False,
) -> Union[SyncPreview, MCPError]:
    """Fetches projects and issues from Linear and lists what differs from the cache.

    The cache is not modified. Review the returned changes and pass the
    preview_id with the approved ids to linear_apply_sync.
    """
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    try:
        fetcher = get_remote_fetcher()
    except RemoteFetchError as e:
        return MCPError(error="Linear is not reachable", details=str(e))
    try:
        return await _run_in_session(
            workspace_id,
            preview_service.build_preview,
            fetcher,
            include_completed=include_completed,
            include_deleted=include_deleted,
        )
    except RemoteFetchError as e:
        return MCPError(error="Failed to fetch from Linear", details=str(e))
    except CacheStoreError as e:
        return MCPError(error="Failed to record preview", details=str(e))
    finally:
        fetcher.close()


@mcp_server.tool()
async def linear_apply_sync(
    workspace_id: WorkspaceId,
    preview_id: Annotated[str, Field(description="Id of the preview that was reviewed.")],
    approved: Annotated[
        Optional[List[Dict[str, Any]]],
        Field(
            description="Changes to apply, each as {'id', 'type', 'action', 'summary_override'?}."
        ),
    ] = None,
    rejected: Annotated[
        Optional[List[str]], Field(description="Ids of changes to reject.")
    ] = None,
) -> Union[ApplyResult, MCPError]:
    """Applies the approved changes of a preview to the cache and records the rejected ones.

    Changes in neither list stay proposed. Each change succeeds or fails on
    its own; check the outcomes in the result.
    """
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    try:
        request = ApplyRequest(
            preview_id=preview_id,
            approved=[ApprovedChange.model_validate(a) for a in approved or []],
            rejected=rejected or [],
        )
    except ValidationError as e:
        return MCPError(error="Validation error", details=str(e))

    summarizer = get_summarizer()
    try:
        return await _run_in_session(
            workspace_id, apply_service.apply_changes, workspace_id, request, summarizer=summarizer
        )
    except PreviewNotFoundError as e:
        return MCPError(error="Preview not found", details={"preview_id": preview_id, "message": str(e)})
    except StalePreviewError as e:
        return MCPError(error="Preview is stale", details={"preview_id": preview_id, "message": str(e)})
    except CacheStoreError as e:
        return MCPError(error="Failed to record apply decisions", details=str(e))
    finally:
        if summarizer is not None:
            summarizer.close()


@mcp_server.tool()
async def linear_get_sync_preview(
    workspace_id: WorkspaceId,
    preview_id: Annotated[str, Field(description="Id of a recorded preview.")],
) -> Union[SyncPreview, MCPError]:
    """Retrieves a previously generated preview."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        try:
            return preview_service.get_preview(db, preview_id)
        except PreviewNotFoundError as e:
            return MCPError(error=str(e), details={"preview_id": preview_id})


# --- Cache reads ---


@mcp_server.tool()
async def linear_get_cache_stats(workspace_id: WorkspaceId) -> Union[CacheStats, MCPError]:
    """Active and soft-deleted counts per kind, with the last sync times."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        try:
            return cache_service.get_stats(db)
        except CacheStoreError as e:
            return MCPError(error="Failed to read cache stats", details=str(e))


@mcp_server.tool()
async def linear_list_cached_projects(
    workspace_id: WorkspaceId,
    include_deleted: Annotated[
        bool, Field(description="Include projects that were removed upstream.")
    ] = True,
    state: Annotated[
        Optional[str], Field(description="Only projects in this state (e.g. 'started').")
    ] = None,
    limit: Annotated[
        Optional[int], Field(description="Maximum number of projects to return.")
    ] = None,
) -> Union[List[CachedProjectRead], MCPError]:
    """Lists cached projects ordered by name. Soft-deleted projects are flagged with is_deleted."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        projects = cache_service.list_entities(
            db, "project", include_deleted=include_deleted, limit=limit, state=state
        )
        return [CachedProjectRead.model_validate(p) for p in projects]


@mcp_server.tool()
async def linear_list_cached_issues(
    workspace_id: WorkspaceId,
    include_deleted: Annotated[
        bool, Field(description="Include issues that were removed upstream.")
    ] = False,
    state: Annotated[
        Optional[str], Field(description="Only issues with this state name (e.g. 'In Progress').")
    ] = None,
    limit: Annotated[
        Optional[int], Field(description="Maximum number of issues to return.")
    ] = 100,
    offset: Annotated[int, Field(description="Number of issues to skip.")] = 0,
) -> Union[List[CachedIssueRead], MCPError]:
    """Lists cached issues ordered by title."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        issues = cache_service.list_entities(
            db, "issue", include_deleted=include_deleted, limit=limit, offset=offset, state=state
        )
        return [CachedIssueRead.model_validate(i) for i in issues]


@mcp_server.tool()
async def linear_get_cached_project(
    workspace_id: WorkspaceId,
    project_id: Annotated[str, Field(description="Linear project id.")],
) -> Union[CachedProjectRead, MCPError]:
    """Retrieves a cached project, including soft-deleted ones."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        project = cache_service.get(db, "project", project_id)
        if project is None:
            return MCPError(error=f"Project {project_id} not found in cache", details={"id": project_id})
        return CachedProjectRead.model_validate(project)


@mcp_server.tool()
async def linear_get_cached_issue(
    workspace_id: WorkspaceId,
    issue_id: Annotated[str, Field(description="Linear issue id or identifier such as 'DEV-123'.")],
) -> Union[CachedIssueRead, MCPError]:
    """Retrieves a cached issue by id or identifier."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        issue = cache_service.get_issue(db, issue_id)
        if issue is None:
            return MCPError(error=f"Issue {issue_id} not found in cache", details={"id": issue_id})
        return CachedIssueRead.model_validate(issue)


# --- History ---


@mcp_server.tool()
async def linear_get_entity_history(
    workspace_id: WorkspaceId,
    entity_type: Annotated[
        Literal["project", "issue"], Field(description="Kind of the cached entity.")
    ],
    entity_id: Annotated[str, Field(description="Linear id of the entity.")],
    limit: Annotated[
        int, Field(description="Maximum number of versions to return (newest first).")
    ] = 10,
) -> Union[List[EntityHistoryRead], MCPError]:
    """Retrieves previous versions of a cached project or issue."""
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        records = history_service.get_history(db, entity_type, entity_id, limit=limit)
        return [EntityHistoryRead.model_validate(r) for r in records]


@mcp_server.tool()
async def linear_diff_entity_versions(
    workspace_id: WorkspaceId,
    entity_type: Annotated[
        Literal["project", "issue"], Field(description="Kind of the cached entity.")
    ],
    entity_id: Annotated[str, Field(description="Linear id of the entity.")],
    version_a: Annotated[int, Field(description="Version number of the first snapshot")],
    version_b: Annotated[int, Field(description="Version number of the second snapshot")],
) -> Union[List[Any], MCPError]:
    """Compares two recorded versions of a cached entity.

    Returns the list of differences found by dictdiffer going from
    version_a to version_b.
    """
    if not workspace_id:
        return MCPError(error="workspace_id is a required argument.")
    async with get_db_session_for_workspace(workspace_id) as db:
        record_a = history_service.get_version(db, entity_type, entity_id, version_a)
        if not record_a:
            return MCPError(
                error=f"Version {version_a} not found",
                details={"entity_type": entity_type, "entity_id": entity_id, "version": version_a},
            )
        record_b = history_service.get_version(db, entity_type, entity_id, version_b)
        if not record_b:
            return MCPError(
                error=f"Version {version_b} not found",
                details={"entity_type": entity_type, "entity_id": entity_id, "version": version_b},
            )
        return history_service.diff_snapshots(record_a.snapshot, record_b.snapshot)
