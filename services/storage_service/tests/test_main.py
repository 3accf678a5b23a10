import pytest
from fastapi.testclient import TestClient

from services.storage_service.main import app
from services.storage_service.src.dependencies import get_bucket_client, get_executor
from services.storage_service.src.exceptions import ForbiddenError, RetryableError
from services.storage_service.src.retry import RetryingExecutor

client = TestClient(app)


@pytest.fixture(autouse=True)
def gcs(fake_client):
    app.dependency_overrides[get_bucket_client] = lambda: fake_client
    app.dependency_overrides[get_executor] = lambda: RetryingExecutor(retries=1)
    yield fake_client
    app.dependency_overrides.clear()


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_lifecycle_ok(gcs):
    resp = client.post(
        "/api/v1/buckets/lifecycle",
        json={"bucket": "gs://builds", "ttl": 30},
        headers={"x-correlation-id": "abc"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["action"] == "created"
    assert data["lifecycle_rules"][0]["condition"] == {"age": 30}
    assert gcs.ops == ["get", "insert"]


def test_lifecycle_invalid_bucket_is_400(gcs):
    resp = client.post("/api/v1/buckets/lifecycle", json={"bucket": "gs://builds/sub", "ttl": 30})

    assert resp.status_code == 400
    assert gcs.calls == []


def test_lifecycle_negative_ttl_is_422():
    resp = client.post("/api/v1/buckets/lifecycle", json={"bucket": "gs://builds", "ttl": -1})
    assert resp.status_code == 422


def test_lifecycle_forbidden_is_422(gcs):
    gcs.fail("get", ForbiddenError("403"))

    resp = client.post("/api/v1/buckets/lifecycle", json={"bucket": "gs://builds", "ttl": 30})

    assert resp.status_code == 422
    assert "builds" in resp.json()["detail"]


def test_lifecycle_transient_is_503(gcs):
    gcs.fail("get", RetryableError("503"), RetryableError("503"))

    resp = client.post("/api/v1/buckets/lifecycle", json={"bucket": "gs://builds", "ttl": 30})

    assert resp.status_code == 503
    assert gcs.count("get") == 2


def test_upload_ok(gcs, tmp_path):
    (tmp_path / "report.html").write_text("<html/>")

    resp = client.post(
        "/api/v1/uploads",
        json={"bucket": "gs://builds/reports", "workspace": str(tmp_path), "files": ["report.html"]},
    )

    assert resp.status_code == 200
    assert resp.json()["objects"] == ["gs://builds/reports/report.html"]
    assert gcs.uploads[0]["content_type"] == "text/html"


def test_upload_empty_file_list_is_422():
    resp = client.post("/api/v1/uploads", json={"bucket": "gs://builds", "workspace": "/tmp", "files": []})
    assert resp.status_code == 422


def test_upload_bad_uri_is_400(tmp_path):
    resp = client.post("/api/v1/uploads", json={"bucket": "builds", "workspace": str(tmp_path), "files": ["a"]})
    assert resp.status_code == 400


def test_upload_log_ok(gcs):
    resp = client.post("/api/v1/uploads/log", json={"bucket": "gs://builds", "content": "done"})

    assert resp.status_code == 200
    assert resp.json()["objects"] == ["gs://builds/build-log.txt"]


def test_download_ok(gcs, tmp_path):
    gcs.objects[("builds", "a/b.txt")] = "hi"

    resp = client.post("/api/v1/downloads", json={"bucket_uri": "gs://builds/a/b.txt", "local_directory": str(tmp_path)})

    assert resp.status_code == 200
    assert (tmp_path / "a" / "b.txt").read_text() == "hi"


def test_download_missing_is_422(tmp_path):
    resp = client.post("/api/v1/downloads", json={"bucket_uri": "gs://builds/none", "local_directory": str(tmp_path)})
    assert resp.status_code == 422


def test_download_transient_is_503(gcs, tmp_path):
    gcs.fail("download_file", RetryableError("reset"), RetryableError("reset"))

    resp = client.post("/api/v1/downloads", json={"bucket_uri": "gs://builds/x", "local_directory": str(tmp_path)})

    assert resp.status_code == 503


def test_method_not_allowed():
    resp = client.get("/api/v1/uploads")
    assert resp.status_code == 405


def test_upload_outside_workspace_is_400(gcs, tmp_path):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (tmp_path / "secret.txt").write_text("token=abc")

    resp = client.post(
        "/api/v1/uploads",
        json={"bucket": "gs://builds/out", "workspace": str(workspace), "files": ["../secret.txt"]},
    )

    assert resp.status_code == 400
    assert gcs.calls == []
