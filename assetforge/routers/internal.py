from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.security import require_api_key
from ..schemas.assets import AssetRead
from ..schemas.workflows import (
    AssetStatusPush,
    SweepResult,
    TempUrlPush,
    ThreadIdPush,
    WorkflowCompletion,
    WorkflowCompletionAck,
    WorkflowIdPush,
)
from ..services import assets as lifecycle
from ..services.media_storage import StorageBackends, get_storage_backends
from ..services.reconciler import CompletionContext, WorkflowOutcome, handle_completion
from ..services.side_effects import LifecycleHooks, default_hooks
from ..services.sweeper import sweep_stale_pending_assets

router = APIRouter(prefix="/internal", tags=["internal"], dependencies=[Depends(require_api_key)])


@router.post("/workflows/{family}/complete", response_model=WorkflowCompletionAck)
def complete_workflow(
    family: Literal["image", "video", "3d"],
    payload: WorkflowCompletion,
    db: Session = Depends(get_db),
    storage: StorageBackends = Depends(get_storage_backends),
    hooks: LifecycleHooks = Depends(default_hooks),
):
    outcome = WorkflowOutcome(
        kind=payload.result.kind,
        return_value=payload.result.return_value,
        error=payload.result.error,
    )
    label = handle_completion(
        db,
        family,
        payload.workflow_id,
        outcome,
        CompletionContext.from_payload(payload.context),
        storage,
        hooks,
    )
    return WorkflowCompletionAck(outcome=label)


@router.post("/assets/{asset_id}/status", response_model=AssetRead)
def push_status(asset_id: str, payload: AssetStatusPush, db: Session = Depends(get_db)):
    asset = lifecycle.update_status(db, asset_id, payload.status, payload.status_message)
    if asset is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    return asset


@router.post("/assets/{asset_id}/temp-url", response_model=AssetRead)
def push_temp_url(asset_id: str, payload: TempUrlPush, db: Session = Depends(get_db)):
    return lifecycle.update_temp_url(db, asset_id, payload.temp_image_url)


@router.post("/assets/{asset_id}/workflow", status_code=status.HTTP_204_NO_CONTENT)
def push_workflow_id(asset_id: str, payload: WorkflowIdPush, db: Session = Depends(get_db)):
    lifecycle.set_workflow_id(db, asset_id, payload.workflow_id)


@router.post("/assets/{asset_id}/thread", status_code=status.HTTP_204_NO_CONTENT)
def push_thread_id(asset_id: str, payload: ThreadIdPush, db: Session = Depends(get_db)):
    lifecycle.set_thread_id(db, asset_id, payload.thread_id)


@router.post("/maintenance/sweep-pending", response_model=SweepResult)
def sweep_pending(db: Session = Depends(get_db)):
    return SweepResult(swept=sweep_stale_pending_assets(db))
