import pytest
from fastapi.testclient import TestClient

from linear_cache_mcp.api import linear_sync
from linear_cache_mcp.app_factory import create_app
from linear_cache_mcp.db.database import get_db

from ..utils import FakeFetcher


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def client(session_factory, fetcher):
    """TestClient whose database and Linear access are replaced by test doubles."""
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[linear_sync.provide_fetcher] = lambda: fetcher
    app.dependency_overrides[linear_sync.provide_summarizer] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
