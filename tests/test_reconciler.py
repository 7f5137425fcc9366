import pytest

from assetforge.models.asset import Asset, AssetCompletionEvent
from assetforge.services import assets as lifecycle
from assetforge.services.progress import find_run
from assetforge.services.reconciler import (
    CANCELED_MESSAGE,
    MISSING_FIELDS_MESSAGE,
    NO_3D_FILES_MESSAGE,
    NO_3D_URL_MESSAGE,
    CompletionContext,
    WorkflowOutcome,
    handle_3d_completion,
    handle_image_completion,
    handle_video_completion,
)
from assetforge.services.workflows import GenerationRequest, start_asset_generation

from .conftest import FakeWorkflowEngine

IMAGE_RESULT = {
    "storageKey": "org/image/abc.png",
    "url": "https://cdn/abc.png",
    "width": 1024,
    "height": 1024,
    "fileSize": 204800,
}


def _success(payload):
    return WorkflowOutcome(kind="success", return_value=payload)


def _context(asset_id):
    return CompletionContext(asset_id=asset_id)


def _placeholder(db, version, type="image", group="main"):
    return lifecycle.create_placeholder(db, owner_id="user-1", asset_group=group, version_id=version.id, type=type)


def test_generation_round_trip(db, version, storage, hooks, notifications):
    engine = FakeWorkflowEngine()
    dispatched = start_asset_generation(
        db,
        GenerationRequest(owner_id="user-1", asset_group="main", prompt="white sneaker", version_id=version.id),
        engine,
    )
    assert db.get(Asset, dispatched.asset_id).workflow_id == dispatched.workflow_id
    context = CompletionContext.from_payload(engine.started[0]["context"])

    first = handle_image_completion(db, dispatched.workflow_id, _success(IMAGE_RESULT), context, storage, hooks)
    second = handle_image_completion(db, dispatched.workflow_id, _success(IMAGE_RESULT), context, storage, hooks)

    asset = db.get(Asset, dispatched.asset_id)
    assert (first, second) == ("finalized", "duplicate")
    assert asset.status == "completed"
    assert asset.metadata_json["file_size"] == 204800
    assert asset.version_history == []
    assert notifications.finalized == [asset.id]
    assert db.query(AssetCompletionEvent).filter_by(asset_id=asset.id).count() == 1
    db.refresh(version)
    assert version.selected_asset_id == asset.id

    lifecycle.mark_pending(db, asset.id)
    reverted = lifecycle.revert_to_completed(db, asset.id, "provider rate limited")
    assert reverted.status == "completed"
    assert reverted.url == "https://cdn/abc.png"
    assert reverted.storage_key == "org/image/abc.png"
    assert reverted.status_message == "provider rate limited"


def test_legacy_result_finalizes(db, version, storage, hooks):
    asset = _placeholder(db, version)
    outcome = _success({"storageId": "h-1", "storageUrl": "https://legacy/h-1", "width": 10, "height": 10, "fileSize": 5})
    assert handle_image_completion(db, "wf-1", outcome, _context(asset.id), storage, hooks) == "finalized"
    db.refresh(asset)
    assert asset.storage_id == "h-1"
    assert asset.storage_key is None


def test_replacement_content_is_not_treated_as_duplicate(db, version, storage, hooks):
    asset = _placeholder(db, version)
    handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks)
    edited = {**IMAGE_RESULT, "storageKey": "org/image/def.png", "url": "https://cdn/def.png"}

    assert handle_image_completion(db, "wf-2", _success(edited), _context(asset.id), storage, hooks) == "finalized"
    db.refresh(asset)
    assert asset.storage_key == "org/image/def.png"
    assert asset.version_history[-1]["storage_key"] == "org/image/abc.png"


def test_failure_uses_engine_error_text(db, version, storage, hooks, diagnostics):
    asset = _placeholder(db, version)
    outcome = WorkflowOutcome(kind="failed", error="NSFW content detected")
    assert handle_image_completion(db, "wf-9", outcome, _context(asset.id), storage, hooks) == "failed"
    db.refresh(asset)
    assert asset.status == "failed"
    assert asset.status_message == "NSFW content detected"
    assert diagnostics.events[0]["asset_id"] == asset.id
    assert diagnostics.events[0]["workflow_id"] == "wf-9"


def test_cancellation_fails_asset(db, version, storage, hooks):
    asset = _placeholder(db, version)
    outcome = WorkflowOutcome(kind="canceled")
    assert handle_image_completion(db, "wf-1", outcome, _context(asset.id), storage, hooks) == "failed"
    db.refresh(asset)
    assert asset.status_message == CANCELED_MESSAGE


def test_malformed_result_fails_placeholder(db, version, storage, hooks):
    asset = _placeholder(db, version)
    outcome = _success({"something": "else"})
    assert handle_image_completion(db, "wf-1", outcome, _context(asset.id), storage, hooks) == "failed"
    db.refresh(asset)
    assert asset.status == "failed"
    assert asset.status_message == MISSING_FIELDS_MESSAGE


def test_malformed_result_after_other_finalize_route_is_ignored(db, version, storage, hooks):
    asset = _placeholder(db, version)
    handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks)

    outcome = _success({})
    assert handle_image_completion(db, "wf-1", outcome, _context(asset.id), storage, hooks) == "already_finalized"
    db.refresh(asset)
    assert asset.status == "completed"


def test_missing_asset_does_not_raise(db, storage, hooks, diagnostics):
    outcome = _success(IMAGE_RESULT)
    assert handle_image_completion(db, "wf-1", outcome, _context("gone"), storage, hooks) == "missing_asset"
    assert diagnostics.events[0]["asset_id"] == "gone"


def test_diagnostics_failures_are_swallowed(db, version, storage, hooks):
    class BrokenSink:
        def capture_exception(self, *args, **kwargs):
            raise ConnectionError("analytics down")

    hooks.diagnostics = BrokenSink()
    asset = _placeholder(db, version)
    outcome = WorkflowOutcome(kind="failed", error={"message": "boom"})
    assert handle_image_completion(db, "wf-1", outcome, _context(asset.id), storage, hooks) == "failed"
    db.refresh(asset)
    assert asset.status_message == "boom"


def test_notification_failure_does_not_fail_finalize(db, version, storage, hooks):
    class BrokenNotifications:
        def asset_finalized(self, asset_id):
            raise RuntimeError("push gateway down")

    hooks.notifications = BrokenNotifications()
    asset = _placeholder(db, version)
    assert handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks) == "finalized"
    db.refresh(asset)
    assert asset.status == "completed"


def test_video_completion_updates_batch_job(db, version, storage, hooks):
    engine = FakeWorkflowEngine()
    dispatched = start_asset_generation(
        db,
        GenerationRequest(owner_id="user-1", asset_group="video", prompt="spin", family="video", version_id=version.id),
        engine,
    )
    assert find_run(db, dispatched.workflow_id).status == "running"

    outcome = _success({"storageKey": "org/video/spin.mp4", "url": "https://cdn/spin.mp4", "fileSize": 1000})
    context = _context(dispatched.asset_id)
    assert handle_video_completion(db, dispatched.workflow_id, outcome, context, storage, hooks) == "finalized"

    asset = db.get(Asset, dispatched.asset_id)
    assert asset.metadata_json["mime_type"] == "video/mp4"
    assert find_run(db, dispatched.workflow_id).status == "completed"
    db.refresh(version)
    assert version.selected_asset_id is None


def test_video_failure_marks_batch_job_failed(db, version, storage, hooks):
    engine = FakeWorkflowEngine()
    dispatched = start_asset_generation(
        db,
        GenerationRequest(owner_id="user-1", asset_group="video", prompt="spin", family="video", version_id=version.id),
        engine,
    )
    outcome = WorkflowOutcome(kind="failed", error="timeout")
    handle_video_completion(db, dispatched.workflow_id, outcome, _context(dispatched.asset_id), storage, hooks)
    run = find_run(db, dispatched.workflow_id)
    assert run.status == "failed"
    assert run.error_message == "timeout"


def test_video_batch_lookup_miss_does_not_block_asset(db, version, storage, hooks):
    asset = _placeholder(db, version, type="video", group="video")
    outcome = _success({"storageKey": "org/video/x.mp4", "url": "https://cdn/x.mp4"})
    assert handle_video_completion(db, "wf-unknown", outcome, _context(asset.id), storage, hooks) == "finalized"


def test_3d_completion_uses_glb(db, version, storage, hooks):
    asset = _placeholder(db, version, type="3d", group="model")
    outcome = _success(
        {
            "files": [
                {"fileName": "texture.png", "url": "https://cdn/texture.png", "storageKey": "org/3d/texture.png"},
                {"fileName": "shoe.glb", "url": "https://cdn/shoe.glb", "storageKey": "org/3d/shoe.glb"},
            ]
        }
    )
    assert handle_3d_completion(db, "wf-1", outcome, _context(asset.id), storage, hooks) == "finalized"
    db.refresh(asset)
    assert asset.storage_key == "org/3d/shoe.glb"
    assert asset.alternate_storage_keys == ["org/3d/texture.png"]


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"files": []}, NO_3D_FILES_MESSAGE),
        ({"files": [{"fileName": "shoe.glb"}]}, NO_3D_URL_MESSAGE),
    ],
)
def test_3d_unusable_results_fail(db, version, storage, hooks, payload, message):
    asset = _placeholder(db, version, type="3d", group="model")
    assert handle_3d_completion(db, "wf-1", _success(payload), _context(asset.id), storage, hooks) == "failed"
    db.refresh(asset)
    assert asset.status_message == message


def test_non_numeric_metadata_does_not_escape_reconciler(db, version, storage, hooks):
    asset = _placeholder(db, version)
    handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks)
    lifecycle.update_asset(db, asset.id, {"metadata": {"width": "wide", "height": None}})

    assert handle_image_completion(db, "wf-1", _success({}), _context(asset.id), storage, hooks) == "failed"
    assert handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks) == "finalized"
    db.refresh(asset)
    assert asset.status == "completed"
    assert asset.metadata_json["width"] == 1024


def test_numeric_string_metadata_counts_as_complete(db, version, storage, hooks):
    asset = _placeholder(db, version)
    handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks)
    lifecycle.update_asset(db, asset.id, {"metadata": {"width": "1024"}})

    assert handle_image_completion(db, "wf-1", _success(IMAGE_RESULT), _context(asset.id), storage, hooks) == "duplicate"


def test_completion_from_other_workflow_is_reported(db, version, storage, hooks, diagnostics):
    asset = _placeholder(db, version)
    lifecycle.set_workflow_id(db, asset.id, "wf-current")

    assert handle_image_completion(db, "wf-stale", _success(IMAGE_RESULT), _context(asset.id), storage, hooks) == "finalized"
    assert [event["name"] for event in diagnostics.events] == ["StaleWorkflowCompletion"]
    assert diagnostics.events[0]["workflow_id"] == "wf-stale"


def test_completion_from_tracked_workflow_is_not_reported(db, version, storage, hooks, diagnostics):
    asset = _placeholder(db, version)
    lifecycle.set_workflow_id(db, asset.id, "wf-current")

    handle_image_completion(db, "wf-current", _success(IMAGE_RESULT), _context(asset.id), storage, hooks)
    assert diagnostics.events == []
