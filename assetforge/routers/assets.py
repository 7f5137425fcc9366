from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.security import Actor, ensure_access, get_actor, require_api_key
from ..models.asset import Asset
from ..schemas.assets import (
    AlternateLocatorsUpdate,
    AssetRead,
    AssetUpdate,
    BillingCharge,
    GenerateAssetRequest,
    GenerateAssetResponse,
    LocatorPayload,
    RegenerateAssetRequest,
)
from ..services import assets as lifecycle
from ..services.enhancement import PromptEnhancer, get_prompt_enhancer
from ..services.media_storage import StorageBackends, get_storage_backends
from ..services.side_effects import LifecycleHooks, default_hooks
from ..services.workflows import GenerationRequest, WorkflowEngine, get_workflow_engine, regenerate_asset, start_asset_generation
from .products import load_version

router = APIRouter(prefix="/assets", tags=["assets"], dependencies=[Depends(require_api_key)])


def _load_asset(db: Session, asset_id: str, actor: Actor) -> Asset:
    asset = lifecycle.get_asset(db, asset_id)
    ensure_access(actor, asset.owner_id, asset.organization_id)
    return asset


@router.post("/generate", response_model=GenerateAssetResponse, status_code=status.HTTP_201_CREATED)
def generate_asset(
    payload: GenerateAssetRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    enhancer: PromptEnhancer | None = Depends(get_prompt_enhancer),
):
    version = lifecycle.resolve_version(db, payload.version_id, payload.product_id)
    load_version(db, version.id, actor)
    request = GenerationRequest(
        owner_id=actor.user_id,
        organization_id=actor.organization_id,
        asset_group=payload.asset_group,
        prompt=payload.prompt,
        family=payload.type,
        version_id=version.id,
        reference_ids=payload.reference_ids,
        reference_urls=payload.reference_urls,
        aspect_ratio=payload.aspect_ratio,
        target_width=payload.target_width,
        target_height=payload.target_height,
        temp_image_url=payload.temp_image_url,
        related_aesthetic_asset_id=payload.related_aesthetic_asset_id,
        model=payload.model,
        enhance_prompt=payload.enhance_prompt,
        options=payload.options,
    )
    result = start_asset_generation(db, request, engine, enhancer)
    return GenerateAssetResponse(asset_id=result.asset_id, workflow_id=result.workflow_id)


@router.get("/", response_model=list[AssetRead])
def list_assets(
    version_id: str,
    asset_group: str | None = None,
    status_filter: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    load_version(db, version_id, actor)
    query = db.query(Asset).filter(Asset.version_id == version_id)
    if asset_group:
        query = query.filter(Asset.asset_group == asset_group)
    if status_filter:
        query = query.filter(Asset.status == status_filter)
    return query.order_by(Asset.created_at.desc()).all()


@router.get("/{asset_id}", response_model=AssetRead)
def get_asset(asset_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _load_asset(db, asset_id, actor)


@router.patch("/{asset_id}", response_model=AssetRead)
def update_asset(
    asset_id: str,
    payload: AssetUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    storage: StorageBackends = Depends(get_storage_backends),
):
    _load_asset(db, asset_id, actor)
    return lifecycle.update_asset(db, asset_id, payload.model_dump(exclude_unset=True, exclude_none=True), storage)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_asset(
    asset_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    storage: StorageBackends = Depends(get_storage_backends),
):
    _load_asset(db, asset_id, actor)
    lifecycle.delete_asset(db, asset_id, storage)


@router.post("/{asset_id}/duplicate", response_model=AssetRead, status_code=status.HTTP_201_CREATED)
def duplicate_asset(asset_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    _load_asset(db, asset_id, actor)
    return lifecycle.duplicate_asset(db, asset_id)


@router.post("/{asset_id}/archive", response_model=AssetRead)
def archive_asset(asset_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    _load_asset(db, asset_id, actor)
    return lifecycle.archive_asset(db, asset_id)


@router.post("/{asset_id}/regenerate", response_model=GenerateAssetResponse)
def regenerate(
    asset_id: str,
    payload: RegenerateAssetRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    _load_asset(db, asset_id, actor)
    result = regenerate_asset(db, asset_id, engine, payload.prompt, payload.aspect_ratio, payload.options)
    return GenerateAssetResponse(asset_id=result.asset_id, workflow_id=result.workflow_id)


@router.post("/{asset_id}/history/restore", response_model=AssetRead)
def restore_history_entry(
    asset_id: str,
    payload: LocatorPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    storage: StorageBackends = Depends(get_storage_backends),
):
    _load_asset(db, asset_id, actor)
    return lifecycle.restore_version(db, asset_id, payload.to_locator(), storage)


@router.post("/{asset_id}/history/remove", response_model=AssetRead)
def remove_history_entry(
    asset_id: str,
    payload: LocatorPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    _load_asset(db, asset_id, actor)
    return lifecycle.delete_history_entry(db, asset_id, payload.to_locator())


@router.post("/{asset_id}/alternates", response_model=AssetRead)
def add_alternates(
    asset_id: str,
    payload: AlternateLocatorsUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    _load_asset(db, asset_id, actor)
    return lifecycle.add_alternate_locators(db, asset_id, payload.storage_keys, payload.storage_ids)


@router.post("/{asset_id}/alternates/promote", response_model=AssetRead)
def promote_alternate(
    asset_id: str,
    payload: LocatorPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    storage: StorageBackends = Depends(get_storage_backends),
):
    _load_asset(db, asset_id, actor)
    return lifecycle.promote_alternate(db, asset_id, payload.to_locator(), storage)


@router.post("/{asset_id}/billing/charge", response_model=AssetRead)
def charge_asset(
    asset_id: str,
    payload: BillingCharge,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    hooks: LifecycleHooks = Depends(default_hooks),
):
    _load_asset(db, asset_id, actor)
    return lifecycle.charge_for_asset(db, asset_id, payload.cost, payload.ctc, hooks)
