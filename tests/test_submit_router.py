import pytest
from fastapi.testclient import TestClient

from formrelay.config import Settings
from formrelay.main import create_app


@pytest.fixture
def client(intake):
    settings = Settings(app_name="formrelay-test", trust_forwarded_for=True)
    app = create_app(settings=settings, intake_service=intake)
    with TestClient(app) as c:
        yield c


HEADERS = {"Origin": "https://example.com", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
GOOD = {"name": "Ada", "email": "ada@example.org", "message": "Hi"}


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok", "app": "formrelay-test"}


def test_json_submission_accepted(client, stores):
    resp = client.post("/api/submit/fr_test_key", json=GOOD, headers=HEADERS)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["submission_id"] == "sub-1"
    assert body["mail"]["event"] == "delivered"
    assert stores["submissions"].records[0].ip == "203.0.113.9"


def test_form_encoded_submission_accepted(client, stores):
    resp = client.post("/api/submit/fr_test_key", data=GOOD, headers=HEADERS)
    assert resp.status_code == 201
    assert stores["submissions"].records[0].data["email"] == "ada@example.org"


def test_unknown_project_is_404(client):
    resp = client.post("/api/submit/unknown", json=GOOD, headers=HEADERS)
    assert resp.status_code == 404
    assert resp.json()["error"] == "project_not_found"


def test_origin_rejection_is_403(client):
    resp = client.post(
        "/api/submit/fr_test_key", json=GOOD, headers={"Origin": "https://evil.com"}
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "origin_not_allowed"


def test_honeypot_is_400(client):
    resp = client.post(
        "/api/submit/fr_test_key", json={**GOOD, "_gotcha": "x"}, headers=HEADERS
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "honeypot_triggered"


def test_rate_limit_is_429(client):
    assert client.post("/api/submit/fr_test_key", json=GOOD, headers=HEADERS).status_code == 201
    resp = client.post("/api/submit/fr_test_key", json=GOOD, headers=HEADERS)
    assert resp.status_code == 429
    assert resp.json()["error"] == "rate_limited"


def test_validation_errors_are_422(client):
    resp = client.post("/api/submit/fr_test_key", json={"email": "bad"}, headers=HEADERS)
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "validation_failed"
    assert body["errors"] == ["Name is required.", "Email must be a valid email."]


def test_non_object_json_is_400(client):
    resp = client.post(
        "/api/submit/fr_test_key",
        content="[1, 2]",
        headers={**HEADERS, "Content-Type": "application/json"},
    )
    assert resp.status_code == 400


def test_store_failure_is_generic_500(client, stores):
    async def broken_insert(record):
        raise RuntimeError("database is locked at /var/lib/secret.db")

    stores["submissions"].insert = broken_insert

    resp = client.post("/api/submit/fr_test_key", json=GOOD, headers=HEADERS)
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Unable to accept submission at this time."}


@pytest.fixture
def direct_client(intake):
    app = create_app(settings=Settings(app_name="formrelay-test"), intake_service=intake)
    with TestClient(app) as c:
        yield c


def test_forwarded_for_ignored_without_trusted_proxy(direct_client, stores):
    resp = direct_client.post("/api/submit/fr_test_key", json=GOOD, headers=HEADERS)
    assert resp.status_code == 201
    assert stores["submissions"].records[0].ip == "testclient"


def test_rotating_forwarded_for_does_not_bypass_rate_limit(direct_client):
    first = {"Origin": "https://example.com", "X-Forwarded-For": "198.51.100.1"}
    second = {"Origin": "https://example.com", "X-Forwarded-For": "198.51.100.2"}
    assert direct_client.post("/api/submit/fr_test_key", json=GOOD, headers=first).status_code == 201
    resp = direct_client.post("/api/submit/fr_test_key", json=GOOD, headers=second)
    assert resp.status_code == 429
