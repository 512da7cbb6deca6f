from linear_cache_mcp.services import cache_service

from ..utils import issue, project
from .test_utils import BASE_URL


def test_preview_then_apply(client, fetcher, session_factory):
    fetcher.projects = [project("P1", "Alpha")]
    fetcher.issues = [issue("I1")]

    response = client.get(f"{BASE_URL}/sync/preview")
    assert response.status_code == 200
    preview = response.json()
    assert preview["stats"] == {"created": 2, "updated": 0, "deleted": 0, "unchanged": 0}
    assert [c["action"] for c in preview["changes"]] == ["create", "create"]
    assert preview["changes"][0]["after"]["kind"] in ("project", "issue")

    body = {
        "preview_id": preview["preview_id"],
        "approved": [{"id": "P1", "type": "project", "action": "create", "summary_override": "Custom"}],
        "rejected": ["I1"],
    }
    response = client.post(f"{BASE_URL}/sync/apply", json=body)
    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["applied"] == 1
    assert result["rejected"] == 1
    assert result["stats"]["active_projects"] == 1

    db = session_factory()
    try:
        assert cache_service.get(db, "project", "P1").summary == "Custom"
        assert cache_service.get(db, "issue", "I1") is None
    finally:
        db.close()


def test_read_recorded_preview(client, fetcher):
    fetcher.projects = [project("P1", "Alpha")]
    preview_id = client.get(f"{BASE_URL}/sync/preview").json()["preview_id"]

    response = client.get(f"{BASE_URL}/sync/previews/{preview_id}")
    assert response.status_code == 200
    assert response.json()["changes"][0]["id"] == "P1"

    assert client.get(f"{BASE_URL}/sync/previews/unknown").status_code == 404


def test_preview_reports_remote_failure(client, fetcher):
    fetcher.fail_on = "projects"
    response = client.get(f"{BASE_URL}/sync/preview")
    assert response.status_code == 502
    assert "503" in response.json()["detail"]


def test_apply_unknown_preview(client):
    response = client.post(f"{BASE_URL}/sync/apply", json={"preview_id": "missing"})
    assert response.status_code == 404


def test_apply_stale_preview(client, fetcher):
    fetcher.projects = [project("P1", "Alpha")]
    old_id = client.get(f"{BASE_URL}/sync/preview").json()["preview_id"]
    client.get(f"{BASE_URL}/sync/preview")

    body = {"preview_id": old_id, "approved": [{"id": "P1", "type": "project", "action": "create"}]}
    response = client.post(f"{BASE_URL}/sync/apply", json=body)
    assert response.status_code == 409


def test_apply_validates_body(client):
    body = {"preview_id": "x", "approved": [{"id": "P1", "type": "cycle", "action": "create"}]}
    assert client.post(f"{BASE_URL}/sync/apply", json=body).status_code == 422


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
