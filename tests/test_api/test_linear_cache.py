from linear_cache_mcp.services import cache_service

from ..utils import issue, project
from .test_utils import BASE_URL


def seed(session_factory):
    db = session_factory()
    try:
        cache_service.upsert(db, project("P1", "Alpha"))
        cache_service.upsert(db, project("P2", "Beta"))
        cache_service.mark_deleted(db, "project", "P2")
        cache_service.upsert(db, issue("I1", "Fix login", identifier="DEV-7"))
        cache_service.upsert(db, issue("I1", "Fix SSO login", identifier="DEV-7"))
    finally:
        db.close()


def test_read_cache_hides_deleted_by_default(client, session_factory):
    seed(session_factory)

    listing = client.get(f"{BASE_URL}/cache").json()
    assert [p["id"] for p in listing["projects"]] == ["P1"]
    assert [i["identifier"] for i in listing["issues"]] == ["DEV-7"]
    assert listing["stats"]["deleted_projects"] == 1

    listing = client.get(f"{BASE_URL}/cache", params={"include_deleted": True}).json()
    projects = {p["id"]: p for p in listing["projects"]}
    assert projects["P2"]["is_deleted"] is True
    assert projects["P2"]["deleted_at"] is not None


def test_read_cache_stats(client, session_factory):
    seed(session_factory)
    stats = client.get(f"{BASE_URL}/cache/stats").json()
    assert stats["active_projects"] == 1
    assert stats["active_issues"] == 1


def test_read_single_entities(client, session_factory):
    seed(session_factory)

    assert client.get(f"{BASE_URL}/cache/projects/P2").json()["name"] == "Beta"
    assert client.get(f"{BASE_URL}/cache/issues/DEV-7").json()["id"] == "I1"
    assert client.get(f"{BASE_URL}/cache/projects/P9").status_code == 404
    assert client.get(f"{BASE_URL}/cache/issues/DEV-9").status_code == 404


def test_read_entity_history(client, session_factory):
    seed(session_factory)

    history = client.get(f"{BASE_URL}/cache/issue/I1/history").json()
    assert len(history) == 1
    assert history[0]["snapshot"]["title"] == "Fix login"

    assert client.get(f"{BASE_URL}/cache/cycle/C1/history").status_code == 422
