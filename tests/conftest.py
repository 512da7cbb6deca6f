import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from linear_cache_mcp.db.database import run_migrations
from linear_cache_mcp.services import history_service

# Importing the history service registers its flush listener
_history_service_initialized = history_service


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database migrated with Alembic."""
    db_path = tmp_path / "linear_cache.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    run_migrations(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
