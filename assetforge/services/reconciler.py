"""Translate workflow engine completions into asset transitions.

The engine delivers callbacks at least once, so every path here must be safe
to replay. Nothing in this module raises back to the engine: unexpected
errors fail the asset and are reported to diagnostics.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from sqlalchemy.orm import Session

from ..models.asset import Asset
from . import assets as lifecycle
from .history import current_locator
from .media_storage import StorageBackends
from .progress import set_run_status
from .results import ParsedResult, parse_3d_result, parse_image_result, parse_video_result, positive_int
from .side_effects import LifecycleHooks, best_effort, default_hooks

logger = logging.getLogger(__name__)

Family = Literal["image", "video", "3d"]

CANCELED_MESSAGE = "Workflow was canceled"
MISSING_FIELDS_MESSAGE = "Workflow completed but missing required fields (storageKey/url or storageId/storageUrl)"
NO_3D_FILES_MESSAGE = "Workflow completed but returned no 3D files"
NO_3D_URL_MESSAGE = "Workflow completed but returned file with no URL"

PARSERS: dict[str, Callable[[dict[str, Any] | None], ParsedResult]] = {
    "image": parse_image_result,
    "video": parse_video_result,
    "3d": parse_3d_result,
}

# Whether the first content of a fresh placeholder becomes the version's selection.
AUTO_SELECT_ON_FIRST_CONTENT = {
    "image": True,
    "video": False,
    "3d": False,
}


@dataclass(frozen=True)
class WorkflowOutcome:
    kind: Literal["success", "failed", "canceled"]
    return_value: dict[str, Any] | None = None
    error: Any = None


@dataclass
class CompletionContext:
    asset_id: str | None = None
    edit_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "CompletionContext":
        payload = dict(payload or {})
        return cls(
            asset_id=payload.pop("asset_id", None) or payload.pop("assetId", None),
            edit_type=payload.pop("edit_type", None),
            extra=payload,
        )


def has_complete_metadata(asset: Asset) -> bool:
    metadata = asset.metadata_json or {}
    return all(positive_int(metadata.get(key)) is not None for key in ("width", "height", "file_size"))


def is_duplicate_completion(asset: Asset, parsed: ParsedResult) -> bool:
    if asset.status != "completed" or not has_complete_metadata(asset):
        return False
    current = current_locator(asset).identity()
    return current is not None and current == parsed.locator.identity()


def _unrecognized_message(family: str, parsed: ParsedResult) -> str:
    if family == "3d":
        return NO_3D_FILES_MESSAGE if parsed.reason == "no files" else NO_3D_URL_MESSAGE
    return MISSING_FIELDS_MESSAGE


def _failure_message(error: Any) -> str:
    if isinstance(error, dict):
        error = error.get("message") or error.get("error") or error
    text = str(error) if error is not None else ""
    return text or "Workflow failed"


def _report(
    hooks: LifecycleHooks,
    asset: Asset | None,
    family: str,
    workflow_id: str,
    asset_id: str | None,
    message: str,
    name: str,
) -> None:
    distinct_id = asset.owner_id if asset is not None else "system"
    properties = {
        "asset_id": asset_id,
        "workflow_id": workflow_id,
        "family": family,
        "organization_id": asset.organization_id if asset is not None else None,
    }
    best_effort("diagnostics", hooks.diagnostics.capture_exception, distinct_id, message, name, properties)


def _track_batch(db: Session, family: str, workflow_id: str, status: str, error_message: str | None = None) -> None:
    if family != "video":
        return
    updated = best_effort("batch job status", set_run_status, db, workflow_id, status, error_message, session=db)
    if not updated:
        logger.info("No batch job recorded for workflow %s", workflow_id)


def _fail(
    db: Session,
    hooks: LifecycleHooks,
    asset: Asset,
    family: str,
    workflow_id: str,
    message: str,
    name: str,
) -> str:
    lifecycle.fail_asset(db, asset.id, message)
    _report(hooks, asset, family, workflow_id, asset.id, message, name)
    _track_batch(db, family, workflow_id, "failed", message)
    return "failed"


def handle_completion(
    db: Session,
    family: Family,
    workflow_id: str,
    outcome: WorkflowOutcome,
    context: CompletionContext,
    storage: StorageBackends | None = None,
    hooks: LifecycleHooks | None = None,
) -> str:
    """Apply one engine callback and return a short outcome label."""
    hooks = hooks or default_hooks()
    asset = db.get(Asset, context.asset_id) if context.asset_id else None
    if asset is None:
        logger.warning("Workflow %s completed for missing asset %s", workflow_id, context.asset_id)
        _report(hooks, None, family, workflow_id, context.asset_id, "Asset not found for workflow completion", "MissingAsset")
        _track_batch(db, family, workflow_id, "completed" if outcome.kind == "success" else "failed")
        return "missing_asset"

    if outcome.kind == "canceled":
        return _fail(db, hooks, asset, family, workflow_id, CANCELED_MESSAGE, "WorkflowCanceled")
    if outcome.kind != "success":
        return _fail(db, hooks, asset, family, workflow_id, _failure_message(outcome.error), "WorkflowFailed")

    parsed = PARSERS[family](outcome.return_value)
    if not parsed.recognized:
        if asset.status == "completed" and has_complete_metadata(asset):
            logger.info("Asset %s already finalized by another route; ignoring workflow %s", asset.id, workflow_id)
            _track_batch(db, family, workflow_id, "completed")
            return "already_finalized"
        return _fail(db, hooks, asset, family, workflow_id, _unrecognized_message(family, parsed), "MalformedResult")

    if is_duplicate_completion(asset, parsed):
        logger.info("Duplicate completion for asset %s from workflow %s", asset.id, workflow_id)
        _track_batch(db, family, workflow_id, "completed")
        return "duplicate"

    if asset.workflow_id and asset.workflow_id != workflow_id:
        logger.warning(
            "Asset %s is tracking workflow %s but received content from workflow %s",
            asset.id,
            asset.workflow_id,
            workflow_id,
        )
        _report(
            hooks,
            asset,
            family,
            workflow_id,
            asset.id,
            f"Completion from workflow {workflow_id} replaces content of workflow {asset.workflow_id}",
            "StaleWorkflowCompletion",
        )

    metadata = dict(parsed.metadata)
    try:
        lifecycle.finalize_asset(
            db,
            asset.id,
            parsed.locator,
            width=metadata.pop("width", None),
            height=metadata.pop("height", None),
            file_size=metadata.pop("file_size", None),
            mime_type=metadata.pop("mime_type", None),
            edit_type=context.edit_type,
            extra_metadata=metadata,
            alternate_storage_keys=parsed.alternate_storage_keys or None,
            auto_select=AUTO_SELECT_ON_FIRST_CONTENT[family],
            storage=storage,
            hooks=hooks,
        )
    except Exception as exc:
        logger.exception("Finalize failed for asset %s from workflow %s", asset.id, workflow_id)
        db.rollback()
        return _fail(db, hooks, asset, family, workflow_id, _failure_message(exc), exc.__class__.__name__)

    _track_batch(db, family, workflow_id, "completed")
    return "finalized"


def handle_image_completion(db, workflow_id, outcome, context, storage=None, hooks=None) -> str:
    return handle_completion(db, "image", workflow_id, outcome, context, storage, hooks)


def handle_video_completion(db, workflow_id, outcome, context, storage=None, hooks=None) -> str:
    return handle_completion(db, "video", workflow_id, outcome, context, storage, hooks)


def handle_3d_completion(db, workflow_id, outcome, context, storage=None, hooks=None) -> str:
    return handle_completion(db, "3d", workflow_id, outcome, context, storage, hooks)
