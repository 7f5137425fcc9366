import pytest
from fastapi.testclient import TestClient

from assetforge.main import app
from assetforge.models.asset import Asset
from assetforge.services.media_storage import get_storage_backends
from assetforge.services.side_effects import default_hooks
from assetforge.services.workflows import get_workflow_engine

from .conftest import FakeWorkflowEngine

HEADERS = {"X-API-Key": "test-key", "X-User-Id": "user-1"}


@pytest.fixture()
def engine():
    return FakeWorkflowEngine()


@pytest.fixture()
def client(db, storage, hooks, engine):
    app.dependency_overrides[get_storage_backends] = lambda: storage
    app.dependency_overrides[default_hooks] = lambda: hooks
    app.dependency_overrides[get_workflow_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def product(client):
    response = client.post("/api/products", json={"name": "Trail Runner"}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


@pytest.fixture()
def version_id(client, product):
    response = client.get(f"/api/products/{product['id']}/versions", headers=HEADERS)
    return response.json()[0]["id"]


def _generate(client, version_id, **overrides):
    body = {"asset_group": "main", "prompt": "trail runner on rocks", "version_id": version_id, **overrides}
    return client.post("/api/assets/generate", json=body, headers=HEADERS)


def _complete(client, workflow_id, asset_id, result):
    return client.post(
        "/api/internal/workflows/image/complete",
        json={"workflowId": workflow_id, "result": result, "context": {"asset_id": asset_id}},
        headers={"X-API-Key": "test-key"},
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_api_key_is_required(client):
    response = client.get("/api/products", headers={"X-User-Id": "user-1"})
    assert response.status_code == 401


def test_user_header_is_required(client):
    response = client.get("/api/products", headers={"X-API-Key": "test-key"})
    assert response.status_code == 401


def test_generate_and_complete_flow(client, version_id, engine):
    response = _generate(client, version_id)
    assert response.status_code == 201
    asset_id = response.json()["asset_id"]
    workflow_id = response.json()["workflow_id"]
    assert engine.started[0]["context"] == {"asset_id": asset_id}

    result = {
        "kind": "success",
        "returnValue": {"storageKey": "org/image/abc.png", "url": "https://cdn/abc.png", "width": 1024, "height": 1024, "fileSize": 204800},
    }
    assert _complete(client, workflow_id, asset_id, result).json() == {"outcome": "finalized"}
    assert _complete(client, workflow_id, asset_id, result).json() == {"outcome": "duplicate"}

    asset = client.get(f"/api/assets/{asset_id}", headers=HEADERS).json()
    assert asset["status"] == "completed"
    assert asset["url"] == "https://cdn/abc.png"

    listed = client.get("/api/assets/", params={"version_id": version_id}, headers=HEADERS).json()
    assert [item["id"] for item in listed] == [asset_id]


def test_failed_callback_surfaces_as_status_message(client, version_id):
    response = _generate(client, version_id)
    asset_id = response.json()["asset_id"]
    ack = _complete(client, response.json()["workflow_id"], asset_id, {"kind": "failed", "error": "quota exceeded"})
    assert ack.json() == {"outcome": "failed"}
    asset = client.get(f"/api/assets/{asset_id}", headers=HEADERS).json()
    assert asset["status"] == "failed"
    assert asset["status_message"] == "quota exceeded"


def test_dispatch_failure_returns_bad_gateway(client, version_id, engine, db):
    engine.error = ConnectionError("engine unreachable")
    response = _generate(client, version_id)
    assert response.status_code == 502
    asset = db.query(Asset).one()
    assert asset.status == "failed"


def test_invalid_aspect_ratio_is_conflict(client, version_id):
    assert _generate(client, version_id, aspect_ratio="7:5").status_code == 409


def test_missing_asset_is_not_found(client):
    assert client.get("/api/assets/missing", headers=HEADERS).status_code == 404


def test_other_users_cannot_read_asset(client, version_id):
    asset_id = _generate(client, version_id).json()["asset_id"]
    response = client.get(f"/api/assets/{asset_id}", headers={**HEADERS, "X-User-Id": "intruder"})
    assert response.status_code == 403


def test_upload_creates_completed_asset(client, version_id):
    response = client.post(
        "/api/media/uploads/assets",
        data={"asset_group": "main", "version_id": version_id},
        files={"file": ("shoe.png", b"\x89PNG fake", "image/png")},
        headers=HEADERS,
    )
    assert response.status_code == 201
    asset = response.json()
    assert asset["status"] == "completed"
    assert asset["storage_key"].startswith("personal/image/")
    assert asset["url"] == f"https://cdn.test/{asset['storage_key']}"


def test_only_main_asset_cannot_be_deleted(client, version_id):
    upload = client.post(
        "/api/media/uploads/assets",
        data={"asset_group": "main", "version_id": version_id},
        files={"file": ("shoe.png", b"img", "image/png")},
        headers=HEADERS,
    ).json()
    response = client.delete(f"/api/assets/{upload['id']}", headers=HEADERS)
    assert response.status_code == 409


def test_patch_with_unknown_storage_key_is_not_found(client, version_id):
    asset_id = _generate(client, version_id).json()["asset_id"]
    response = client.patch(f"/api/assets/{asset_id}", json={"storage_key": "personal/image/nope.png"}, headers=HEADERS)
    assert response.status_code == 404


def test_promote_without_locator_is_bad_request(client, version_id):
    asset_id = _generate(client, version_id).json()["asset_id"]
    response = client.post(f"/api/assets/{asset_id}/alternates/promote", json={}, headers=HEADERS)
    assert response.status_code == 400


def test_progress_tracking(client, version_id):
    created = client.post(
        f"/api/versions/{version_id}/auto-gen-runs", json={"run_id": "run-1", "num_images": 2}, headers=HEADERS
    )
    assert created.status_code == 201

    progress = client.post(f"/api/versions/{version_id}/progress", json={"run_id": "run-1"}, headers=HEADERS).json()
    assert progress["completed_count"] == 1
    assert client.get(f"/api/versions/{version_id}/progress", headers=HEADERS).json()["status"] == "running"

    client.post(f"/api/versions/{version_id}/progress", json={"run_id": "run-1"}, headers=HEADERS)
    assert client.get(f"/api/versions/{version_id}/progress", headers=HEADERS).json() is None


def test_sweep_endpoint(client):
    response = client.post("/api/internal/maintenance/sweep-pending", headers={"X-API-Key": "test-key"})
    assert response.json() == {"swept": 0}


def test_worker_status_and_preview_pushes(client, version_id):
    asset_id = _generate(client, version_id).json()["asset_id"]
    internal = {"X-API-Key": "test-key"}

    pushed = client.post(
        f"/api/internal/assets/{asset_id}/status",
        json={"status": "processing", "status_message": "Rendering"},
        headers=internal,
    )
    assert pushed.json()["status"] == "processing"

    preview = client.post(
        f"/api/internal/assets/{asset_id}/temp-url", json={"temp_image_url": "https://cdn/preview.png"}, headers=internal
    )
    assert preview.json()["temp_image_url"] == "https://cdn/preview.png"

    thread = client.post(f"/api/internal/assets/{asset_id}/thread", json={"thread_id": "thread-7"}, headers=internal)
    assert thread.status_code == 204
    assert client.get(f"/api/assets/{asset_id}", headers=HEADERS).json()["thread_id"] == "thread-7"

    handle = client.post(f"/api/internal/assets/{asset_id}/workflow", json={"workflow_id": "wf-99"}, headers=internal)
    assert handle.status_code == 204
    assert client.get(f"/api/assets/{asset_id}", headers=HEADERS).json()["workflow_id"] == "wf-99"

    missing = client.post("/api/internal/assets/missing/status", json={"status": "failed"}, headers=internal)
    assert missing.status_code == 404
