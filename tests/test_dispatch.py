import threading
from unittest.mock import MagicMock

import httpx
import pytest

from assetforge.core.errors import AssetRuleViolation, WorkflowDispatchError
from assetforge.models.asset import Asset
from assetforge.services import assets as lifecycle
from assetforge.services.enhancement import enhance_prompt
from assetforge.services.media_storage import ContentLocator
from assetforge.services.workflows import (
    GenerationRequest,
    HttpWorkflowEngine,
    completion_route,
    regenerate_asset,
    start_asset_generation,
)

from .conftest import FakeWorkflowEngine


def _request(version, **kwargs):
    kwargs.setdefault("prompt", "leather boot on white")
    return GenerationRequest(owner_id="user-1", asset_group="main", version_id=version.id, **kwargs)


def test_dispatch_passes_resolved_payload_and_route(db, version):
    engine = FakeWorkflowEngine()
    result = start_asset_generation(db, _request(version, target_width=1024, target_height=768), engine)

    started = engine.started[0]
    assert started["definition"] == "generate-image"
    assert started["context"] == {"asset_id": result.asset_id}
    assert started["completion_route"] == completion_route("image")
    assert started["completion_route"].endswith("/api/internal/workflows/image/complete")
    assert started["payload"] == {
        "prompt": "leather boot on white",
        "referenceUrls": [],
        "aspectRatio": "1:1",
        "width": 1024,
        "height": 768,
    }
    asset = db.get(Asset, result.asset_id)
    assert asset.status == "pending"
    assert asset.workflow_id == result.workflow_id


def test_reference_assets_resolve_to_urls(db, version):
    reference = lifecycle.create_placeholder(
        db, owner_id="user-1", asset_group="reference", version_id=version.id, temp_image_url="https://cdn/ref.png"
    )
    engine = FakeWorkflowEngine()
    start_asset_generation(db, _request(version, reference_ids=[reference.id]), engine)
    payload = engine.started[0]["payload"]
    assert payload["referenceUrls"] == ["https://cdn/ref.png"]
    assert payload["aspectRatio"] == "match_input_image"


def test_unknown_aspect_ratio_is_rejected_before_placeholder(db, version):
    with pytest.raises(AssetRuleViolation):
        start_asset_generation(db, _request(version, aspect_ratio="5:7"), FakeWorkflowEngine())
    assert db.query(Asset).count() == 0


def test_dispatch_failure_fails_placeholder(db, version):
    engine = FakeWorkflowEngine(error=ConnectionError("engine unreachable"))
    with pytest.raises(WorkflowDispatchError):
        start_asset_generation(db, _request(version), engine)

    asset = db.query(Asset).one()
    assert asset.status == "failed"
    assert asset.status_message == "engine unreachable"


def test_recording_handle_failure_does_not_fail_dispatch(db, version, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("write conflict")

    monkeypatch.setattr(lifecycle, "set_workflow_id", broken)
    result = start_asset_generation(db, _request(version), FakeWorkflowEngine())
    asset = db.get(Asset, result.asset_id)
    assert asset.status == "pending"
    assert asset.workflow_id is None


def test_regenerate_failure_reverts_to_previous_content(db, version, storage, stored_key, hooks):
    asset = lifecycle.create_placeholder(db, owner_id="user-1", asset_group="main", version_id=version.id, prompt="boot")
    lifecycle.finalize_asset(
        db, asset.id, ContentLocator(storage_key=stored_key()), width=1, height=1, file_size=1, storage=storage, hooks=hooks
    )
    engine = FakeWorkflowEngine(error=RuntimeError("provider rate limited"))

    with pytest.raises(WorkflowDispatchError):
        regenerate_asset(db, asset.id, engine)

    db.refresh(asset)
    assert asset.status == "completed"
    assert asset.status_message == "provider rate limited"


def test_regenerate_dispatches_in_place(db, version):
    asset = lifecycle.create_placeholder(db, owner_id="user-1", asset_group="main", version_id=version.id, prompt="boot")
    engine = FakeWorkflowEngine()
    result = regenerate_asset(db, asset.id, engine, prompt="suede boot")
    assert result.asset_id == asset.id
    assert engine.started[0]["context"] == {"asset_id": asset.id, "edit_type": "regenerate"}
    db.refresh(asset)
    assert asset.prompt == "suede boot"
    assert asset.status == "pending"


def test_http_engine_posts_workflow_and_returns_handle():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = request.read()
        return httpx.Response(200, json={"workflowId": "wf-42"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    engine = HttpWorkflowEngine("https://engine.test/", client=client)

    handle = engine.start("generate-image", {"prompt": "x"}, "https://api/complete", {"asset_id": "a1"})

    assert handle == "wf-42"
    assert captured["url"] == "https://engine.test/workflows"
    assert b'"asset_id":"a1"' in captured["body"].replace(b" ", b"")


def test_http_engine_wraps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    engine = HttpWorkflowEngine("https://engine.test", client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(WorkflowDispatchError):
        engine.start("generate-image", {}, "https://api/complete", {})


def test_enhancement_times_out_to_original_prompt():
    release = threading.Event()

    class SlowEnhancer:
        def enhance(self, prompt):
            release.wait(5)
            return "never used"

    try:
        assert enhance_prompt("red shoe", SlowEnhancer(), timeout=0.05) == "red shoe"
    finally:
        release.set()


def test_enhancement_failure_falls_back():
    enhancer = MagicMock()
    enhancer.enhance.side_effect = httpx.ReadTimeout("slow")
    assert enhance_prompt("red shoe", enhancer, timeout=1) == "red shoe"


def test_enhancement_result_is_used():
    enhancer = MagicMock()
    enhancer.enhance.return_value = "  a red running shoe, studio lighting  "
    assert enhance_prompt("red shoe", enhancer, timeout=1) == "a red running shoe, studio lighting"
