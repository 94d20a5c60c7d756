import pytest
from fastapi.testclient import TestClient

from creatorlogic.local_cache import HISTORY, RESULTS
from creatorlogic.main import create_application

PASSWORD = "correct-horse"


@pytest.fixture(scope="module")
def client():
    with TestClient(create_application()) as test_client:
        yield test_client


def _login(client, email, full_name="Test User"):
    response = client.post(
        "/auth/register", json={"email": email, "password": PASSWORD, "full_name": full_name}
    )
    assert response.status_code in (201, 400)
    token = client.post("/auth/token", data={"username": email, "password": PASSWORD}).json()
    return {"Authorization": f"Bearer {token['access_token']}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_routes_require_authentication(client):
    assert client.get("/partnerships").status_code == 401


def test_register_assigns_roles(client):
    admin = client.post("/auth/register", json={"email": "admin@creatorlogic.io", "password": PASSWORD})
    user = client.post("/auth/register", json={"email": "member@creatorlogic.io", "password": PASSWORD})

    assert admin.json()["role"] == "admin"
    assert user.json()["role"] == "user"
    duplicate = client.post("/auth/register", json={"email": "member@creatorlogic.io", "password": PASSWORD})
    assert duplicate.status_code == 400


def test_me_and_bad_password(client):
    headers = _login(client, "me@creatorlogic.io")

    assert client.get("/auth/me", headers=headers).json()["email"] == "me@creatorlogic.io"
    rejected = client.post("/auth/token", data={"username": "me@creatorlogic.io", "password": "wrong-pass"})
    assert rejected.status_code == 401


def test_partnership_crud_and_installs(client):
    headers = _login(client, "brand@creatorlogic.io")
    created = client.post(
        "/partnerships",
        headers=headers,
        json={
            "creator_name": "creator",
            "video_url": "https://www.instagram.com/reel/ABC123/",
            "cost_usd": 250,
            "posted_date": "2024-05-01",
            "status": "live",
        },
    )
    assert created.status_code == 201
    partnership = created.json()
    assert partnership["views"] == 0
    assert partnership["cpm_usd"] is None

    updated = client.put(
        f"/partnerships/{partnership['id']}", headers=headers, json={"cost_usd": 300, "views": 99}
    )
    assert updated.json()["cost_usd"] == 300
    assert updated.json()["views"] == 0

    listed = client.get("/partnerships", headers=headers).json()
    assert [p["id"] for p in listed] == [partnership["id"]]
    assert client.get("/partnerships/missing", headers=headers).status_code == 404

    series = client.get("/analytics/installs", params={"range": "7d"}, headers=headers).json()
    assert len(series) == 8
    assert client.get("/analytics/installs", params={"range": "1y"}, headers=headers).status_code == 422


def test_job_errors_map_to_http_statuses(client):
    headers = _login(client, "jobs@creatorlogic.io")

    bad_seed = client.post(
        "/jobs/discovery", headers=headers, json={"seed_username": "https://instagram.com/nike"}
    )
    assert bad_seed.status_code == 400
    assert client.get("/jobs/does-not-exist", headers=headers).status_code == 404
    assert client.get("/jobs/history", headers=headers).json() == []


def test_job_status_is_hidden_from_other_users(client):
    owner = _login(client, "owner@creatorlogic.io")
    stranger = _login(client, "stranger@creatorlogic.io")
    admin = _login(client, "admin@creatorlogic.io")
    owner_id = client.get("/auth/me", headers=owner).json()["id"]
    cache = client.app.state.services.store.local
    cache.set(
        HISTORY,
        [
            {
                "id": "owned-job",
                "created_at": "2024-06-01T00:00:00+00:00",
                "kind": "discovery",
                "seed_username": "seed",
                "status": "completed",
                "result_count": 1,
                "emails_found": 1,
                "owner_id": owner_id,
            }
        ]
        + (cache.get(HISTORY, []) or []),
    )
    results = cache.get(RESULTS, {}) or {}
    results["owned-job"] = [{"username": "alpha", "email": "alpha@brand.io"}]
    cache.set(RESULTS, results)

    mine = client.get("/jobs/owned-job", headers=owner)
    assert mine.status_code == 200
    assert mine.json()["results"][0]["email"] == "alpha@brand.io"
    assert client.get("/jobs/owned-job", headers=stranger).status_code == 404
    assert client.get("/jobs/owned-job", headers=admin).status_code == 200


def test_agency_history_is_admin_only(client):
    member = _login(client, "member2@creatorlogic.io")
    admin = _login(client, "admin@creatorlogic.io")

    assert client.get("/jobs/history/agency", headers=member).status_code == 403
    assert client.get("/jobs/history/agency", headers=admin).status_code == 200


def test_logout(client):
    headers = _login(client, "leaving@creatorlogic.io")

    assert client.post("/auth/logout", headers=headers).status_code == 204


def test_app_store_credentials_absent(client):
    headers = _login(client, "apps@creatorlogic.io")

    assert client.get("/credentials/app-store", headers=headers).status_code == 404
