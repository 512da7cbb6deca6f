"""Per-workspace SQLite databases for the Linear cache.

Every workspace gets its own database file under its data directory. The
engine is created and migrated to the latest revision the first time the
workspace is used, then cached for the life of the process.
"""

import asyncio
import importlib.resources
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from alembic import command
from alembic.config import Config
from fastapi import HTTPException, status
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..core import config as core_config

log = logging.getLogger(__name__)

_engines: Dict[str, Engine] = {}
_session_locals: Dict[str, sessionmaker] = {}
_init_locks: Dict[str, asyncio.Lock] = {}


def run_migrations(engine: Engine) -> None:
    """Upgrade the cache schema to head on the given engine. Blocking."""
    alembic_cfg = Config()
    alembic_cfg.set_main_option(
        "script_location", str(importlib.resources.files("linear_cache_mcp") / "db" / "alembic")
    )
    alembic_cfg.set_main_option("sqlalchemy.url", str(engine.url))
    with engine.begin() as connection:
        alembic_cfg.attributes["connection"] = connection
        command.upgrade(alembic_cfg, "head")
    log.info(f"Linear cache schema is up to date in {engine.url.database}")


def _open_workspace(workspace_id: str) -> sessionmaker:
    engine = create_engine(
        core_config.get_database_url_for_workspace(workspace_id),
        connect_args={"check_same_thread": False},
    )
    try:
        run_migrations(engine)
    except Exception:
        engine.dispose()
        raise
    _engines[workspace_id] = engine
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


async def get_session_local(workspace_id: str) -> sessionmaker:
    """Session factory of a workspace, opening and migrating its database on first use."""
    session_local = _session_locals.get(workspace_id)
    if session_local is not None:
        return session_local

    async with _init_locks.setdefault(workspace_id, asyncio.Lock()):
        if workspace_id not in _session_locals:
            try:
                _session_locals[workspace_id] = await asyncio.to_thread(_open_workspace, workspace_id)
            except Exception as e:
                log.error(f"Could not open the Linear cache for '{workspace_id}': {e}", exc_info=True)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"Database initialization error: {e}",
                ) from e
    return _session_locals[workspace_id]


def dispose_workspace(workspace_id: str) -> None:
    _session_locals.pop(workspace_id, None)
    _init_locks.pop(workspace_id, None)
    engine = _engines.pop(workspace_id, None)
    if engine is not None:
        engine.dispose()


# FastAPI dependency; the workspace id arrives base64url-encoded in the path.
async def get_db(workspace_id_b64: str) -> AsyncGenerator[Session, None]:
    try:
        workspace_id = core_config.decode_workspace_id(workspace_id_b64)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    db = (await get_session_local(workspace_id))()
    try:
        yield db
    finally:
        db.close()


@asynccontextmanager
async def get_db_session_for_workspace(workspace_id: str) -> AsyncGenerator[Session, None]:
    """Session for the MCP tools. Rolls back and re-raises on error."""
    db = (await get_session_local(workspace_id))()
    try:
        yield db
    except Exception as e:
        log.error(f"Linear cache session for '{workspace_id}' failed: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
