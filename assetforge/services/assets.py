"""Lifecycle of a single asset record.

pending -> (processing) -> completed | failed, with in-place regeneration
re-entering pending and archive parking a completed asset as failed.
Bookkeeping (version activity, completion events, usage counters,
notifications) is best-effort; content errors are raised to the caller.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from ..core.errors import (
    AssetNotFoundError,
    AssetRuleViolation,
    MissingLocatorError,
    ProductNotFoundError,
    VersionNotFoundError,
)
from ..models.asset import ASSET_STATUSES, ASSET_TYPES, MAIN_GROUP, Asset
from ..models.billing import CreditTransaction
from ..models.media_asset import MediaAsset
from ..models.product import Product, Version
from . import history as ledger
from .media_storage import ContentLocator, StorageBackends, get_storage_backends
from .progress import update_auto_gen_progress
from .side_effects import (
    LifecycleHooks,
    best_effort,
    bump_version_activity,
    default_hooks,
    increment_aesthetic_usage,
    record_completion_event,
    select_asset,
)

logger = logging.getLogger(__name__)

ARCHIVED_MESSAGE = "Asset archived"
_UNSET: Any = object()

_PATCHABLE_FIELDS = {
    "asset_group",
    "prompt",
    "status",
    "thumbnail_url",
    "alternate_storage_keys",
    "alternate_storage_ids",
    "processing_time_ms",
    "cost",
}


def get_asset(db: Session, asset_id: str) -> Asset:
    asset = db.get(Asset, asset_id)
    if asset is None:
        raise AssetNotFoundError("Asset not found")
    return asset


def resolve_version(db: Session, version_id: str | None = None, product_id: str | None = None) -> Version:
    if version_id:
        version = db.get(Version, version_id)
        if version is None:
            raise VersionNotFoundError("Version not found")
        return version
    if product_id:
        if db.get(Product, product_id) is None:
            raise ProductNotFoundError("Product not found")
        version = (
            db.query(Version)
            .filter(Version.product_id == product_id)
            .order_by(Version.created_at.desc())
            .first()
        )
        if version is None:
            raise VersionNotFoundError("No version found for this product")
        return version
    raise VersionNotFoundError("Either product_id or version_id must be provided")


def _bump(db: Session, version_id: str, when: datetime | None = None) -> None:
    best_effort("bump version activity", bump_version_activity, db, version_id, when, session=db)


def _completed_main_count(db: Session, version_id: str) -> int:
    return (
        db.query(Asset)
        .filter(
            Asset.version_id == version_id,
            Asset.asset_group == MAIN_GROUP,
            Asset.status == "completed",
        )
        .count()
    )


def _guard_last_main(db: Session, asset: Asset, message: str) -> None:
    if asset.asset_group != MAIN_GROUP or asset.status != "completed":
        return
    if _completed_main_count(db, asset.version_id) <= 1:
        raise AssetRuleViolation(message)


def create_placeholder(
    db: Session,
    *,
    owner_id: str,
    asset_group: str,
    version_id: str | None = None,
    product_id: str | None = None,
    organization_id: str | None = None,
    type: str = "image",
    prompt: str | None = None,
    temp_image_url: str | None = None,
    reference_ids: Iterable[str] | None = None,
    upscaled_from_asset_id: str | None = None,
    related_aesthetic_ids: Iterable[str] | None = None,
    related_aesthetic_asset_id: str | None = None,
    target_width: int | None = None,
    target_height: int | None = None,
    auto_gen_run_id: str | None = None,
    extra_metadata: dict[str, Any] | None = None,
) -> Asset:
    if type not in ASSET_TYPES:
        raise AssetRuleViolation(f"Unsupported asset type: {type}")
    version = resolve_version(db, version_id, product_id)

    # Seeded dimensions only drive layout until finalize writes real ones.
    metadata: dict[str, Any] = dict(extra_metadata or {})
    if target_width and target_width > 0:
        metadata["width"] = target_width
    if target_height and target_height > 0:
        metadata["height"] = target_height

    now = datetime.utcnow()
    asset = Asset(
        version_id=version.id,
        product_id=version.product_id,
        owner_id=owner_id,
        organization_id=organization_id,
        type=type,
        asset_group=asset_group,
        status="pending",
        status_message="Creating Asset",
        prompt=prompt or None,
        temp_image_url=temp_image_url or None,
        reference_ids=list(reference_ids or []),
        upscaled_from_asset_id=upscaled_from_asset_id,
        related_aesthetic_ids=list(related_aesthetic_ids or []),
        related_aesthetic_asset_id=related_aesthetic_asset_id,
        auto_gen_run_id=auto_gen_run_id,
        metadata_json=metadata,
        created_at=now,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)

    if related_aesthetic_asset_id:
        best_effort("aesthetic usage count", increment_aesthetic_usage, db, related_aesthetic_asset_id, session=db)
    _bump(db, version.id, now)
    return asset


def create_asset_from_upload(
    db: Session,
    locator: ContentLocator,
    *,
    owner_id: str,
    asset_group: str,
    version_id: str | None = None,
    product_id: str | None = None,
    organization_id: str | None = None,
    type: str = "image",
    prompt: str | None = None,
    metadata: dict[str, Any] | None = None,
    storage: StorageBackends | None = None,
) -> Asset:
    if locator.is_empty:
        raise MissingLocatorError("A url, storage key or storage handle is required")
    if type not in ASSET_TYPES:
        raise AssetRuleViolation(f"Unsupported asset type: {type}")
    version = resolve_version(db, version_id, product_id)
    url = locator.resolve(storage or get_storage_backends())

    now = datetime.utcnow()
    asset = Asset(
        version_id=version.id,
        product_id=version.product_id,
        owner_id=owner_id,
        organization_id=organization_id,
        type=type,
        asset_group=asset_group,
        status="completed",
        status_message="Completed",
        prompt=prompt,
        url=url,
        storage_key=locator.storage_key,
        storage_id=locator.storage_id,
        metadata_json=dict(metadata or {}),
        created_at=now,
        completed_at=now,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    _bump(db, version.id, now)
    return asset


def finalize_asset(
    db: Session,
    asset_id: str,
    locator: ContentLocator,
    *,
    width: int | None = None,
    height: int | None = None,
    file_size: int | None = None,
    mime_type: str | None = None,
    edit_type: str | None = None,
    extra_metadata: dict[str, Any] | None = None,
    alternate_storage_keys: list[str] | None = None,
    alternate_storage_ids: list[str] | None = None,
    auto_select: bool = True,
    storage: StorageBackends | None = None,
    hooks: LifecycleHooks | None = None,
) -> Asset:
    asset = get_asset(db, asset_id)
    if locator.is_empty:
        raise MissingLocatorError("A url, storage key or storage handle is required")
    url = locator.resolve(storage or get_storage_backends())
    incoming = ContentLocator(url=url, storage_key=locator.storage_key, storage_id=locator.storage_id)
    hooks = hooks or default_hooks()

    had_content = ledger.current_locator(asset).identity() is not None
    repeat = asset.status == "completed" and had_content and ledger.current_locator(asset).identity() == incoming.identity()

    now = datetime.utcnow()
    updated_history = ledger.compute_updated_history(asset, incoming, edit_type, now)

    metadata = dict(asset.metadata_json or {})
    metadata.update(extra_metadata or {})
    for key, value in (("width", width), ("height", height), ("file_size", file_size), ("mime_type", mime_type)):
        if value is not None:
            metadata[key] = value

    asset.url = url
    asset.storage_key = incoming.storage_key
    asset.storage_id = incoming.storage_id
    asset.status = "completed"
    asset.status_message = "Completed"
    asset.metadata_json = metadata
    if alternate_storage_keys is not None:
        asset.alternate_storage_keys = list(alternate_storage_keys)
    if alternate_storage_ids is not None:
        asset.alternate_storage_ids = list(alternate_storage_ids)
    if updated_history is not None:
        asset.version_history = updated_history
    if not repeat or asset.completed_at is None:
        asset.completed_at = now
    db.commit()

    if repeat:
        logger.info("Asset %s already finalized with the same content; skipping side effects", asset_id)
        return asset

    best_effort("completion event", record_completion_event, db, asset, asset.completed_at, session=db)
    if auto_select and not had_content:
        best_effort("auto-select asset", select_asset, db, asset.version_id, asset.id, session=db)
    if asset.auto_gen_run_id:
        best_effort(
            "auto-generation progress",
            update_auto_gen_progress,
            db,
            asset.version_id,
            asset.auto_gen_run_id,
            1,
            f"Generated {asset.asset_group}",
            session=db,
        )
    _bump(db, asset.version_id)
    best_effort("finalize notification", hooks.notifications.asset_finalized, asset.id)
    return asset


def fail_asset(db: Session, asset_id: str, message: str) -> bool:
    try:
        asset = db.get(Asset, asset_id)
        if asset is None:
            logger.warning("Cannot fail missing asset %s: %s", asset_id, message)
            return False
        asset.status = "failed"
        asset.status_message = message
        db.commit()
    except Exception:
        logger.exception("Failed to mark asset %s as failed", asset_id)
        db.rollback()
        return False
    _bump(db, asset.version_id)
    return True


def update_status(db: Session, asset_id: str, status: str | None = None, status_message: str | None = None) -> Asset | None:
    if status is not None and status not in ASSET_STATUSES:
        raise AssetRuleViolation(f"Unknown status: {status}")
    asset = db.get(Asset, asset_id)
    if asset is None:
        logger.warning("Status update for missing asset %s", asset_id)
        return None
    if status is not None:
        asset.status = status
    if status_message is not None:
        asset.status_message = status_message
    db.commit()
    return asset


def mark_pending(db: Session, asset_id: str) -> Asset:
    asset = get_asset(db, asset_id)
    now = datetime.utcnow()
    asset.status = "pending"
    # Restart the clock so the sweeper does not fail an in-place regeneration.
    asset.created_at = now
    db.commit()
    _bump(db, asset.version_id, now)
    return asset


def revert_to_completed(db: Session, asset_id: str, status_message: str | None = None) -> Asset:
    asset = get_asset(db, asset_id)
    asset.status = "completed"
    if status_message:
        asset.status_message = status_message
    db.commit()
    _bump(db, asset.version_id)
    return asset


def archive_asset(db: Session, asset_id: str) -> Asset:
    asset = get_asset(db, asset_id)
    asset.status = "failed"
    asset.status_message = ARCHIVED_MESSAGE
    db.commit()
    _bump(db, asset.version_id)
    return asset


def set_workflow_id(db: Session, asset_id: str, workflow_id: str) -> None:
    asset = get_asset(db, asset_id)
    asset.workflow_id = workflow_id
    db.commit()


def set_thread_id(db: Session, asset_id: str, thread_id: str) -> None:
    asset = get_asset(db, asset_id)
    asset.thread_id = thread_id
    db.commit()


def update_temp_url(db: Session, asset_id: str, temp_image_url: str) -> Asset:
    asset = get_asset(db, asset_id)
    asset.temp_image_url = temp_image_url
    db.commit()
    _bump(db, asset.version_id)
    return asset


def update_asset(
    db: Session,
    asset_id: str,
    changes: dict[str, Any],
    storage: StorageBackends | None = None,
) -> Asset:
    asset = get_asset(db, asset_id)
    unknown = set(changes) - _PATCHABLE_FIELDS - {"metadata", "storage_key", "storage_id"}
    if unknown:
        raise AssetRuleViolation(f"Fields cannot be patched: {', '.join(sorted(unknown))}")
    if "status" in changes and changes["status"] not in ASSET_STATUSES:
        raise AssetRuleViolation(f"Unknown status: {changes['status']}")

    new_group = changes.get("asset_group")
    if new_group is not None and new_group != asset.asset_group and new_group != MAIN_GROUP:
        _guard_last_main(db, asset, "Cannot move the only main asset out of the 'main' group")

    now = datetime.utcnow()
    for field, value in changes.items():
        if field in _PATCHABLE_FIELDS:
            setattr(asset, field, value)

    if changes.get("metadata"):
        merged = dict(asset.metadata_json or {})
        merged.update(changes["metadata"])
        asset.metadata_json = merged

    if changes.get("storage_key") or changes.get("storage_id"):
        locator = ContentLocator(storage_key=changes.get("storage_key"), storage_id=changes.get("storage_id"))
        url = locator.resolve(storage or get_storage_backends())
        incoming = ContentLocator(url=url, storage_key=locator.storage_key, storage_id=locator.storage_id)
        updated_history = ledger.compute_updated_history(asset, incoming, None, now)
        if updated_history is not None:
            asset.version_history = updated_history
        asset.url = url
        asset.storage_key = incoming.storage_key
        asset.storage_id = incoming.storage_id
        asset.status = "completed"
        asset.completed_at = now
    elif changes.get("status") == "completed" and asset.completed_at is None:
        asset.completed_at = now

    db.commit()
    _bump(db, asset.version_id, now)
    return asset


def _locator_in_use(db: Session, asset: Asset) -> bool:
    if asset.storage_key:
        asset_column, media_column, value = Asset.storage_key, MediaAsset.storage_key, asset.storage_key
    elif asset.storage_id:
        asset_column, media_column, value = Asset.storage_id, MediaAsset.storage_id, asset.storage_id
    else:
        return False
    sibling = db.query(Asset.id).filter(asset_column == value, Asset.id != asset.id).first()
    if sibling is not None:
        return True
    if db.query(MediaAsset.id).filter(media_column == value).first() is not None:
        return True
    return _referenced_by_history_or_alternates(db, asset, value)


def _referenced_by_history_or_alternates(db: Session, asset: Asset, value: str) -> bool:
    # JSON text match narrows the scan; the exact check runs on the decoded lists.
    candidates = db.query(Asset.alternate_storage_keys, Asset.alternate_storage_ids, Asset.version_history).filter(
        Asset.id != asset.id,
        or_(
            cast(Asset.alternate_storage_keys, String).contains(value),
            cast(Asset.alternate_storage_ids, String).contains(value),
            cast(Asset.version_history, String).contains(value),
        ),
    )
    for alternate_keys, alternate_ids, history in candidates:
        if value in (alternate_keys or []) or value in (alternate_ids or []):
            return True
        for entry in history or []:
            if value in (entry.get("storage_key"), entry.get("storage_id")):
                return True
    return False


def delete_asset(db: Session, asset_id: str, storage: StorageBackends | None = None) -> None:
    asset = get_asset(db, asset_id)
    _guard_last_main(db, asset, "Cannot delete the only main asset")

    in_use = _locator_in_use(db, asset)
    storage_key, storage_id = asset.storage_key, asset.storage_id

    db.query(CreditTransaction).filter(CreditTransaction.related_asset_id == asset.id).delete(synchronize_session=False)
    db.query(Version).filter(Version.selected_asset_id == asset.id).update(
        {Version.selected_asset_id: None}, synchronize_session=False
    )
    db.delete(asset)
    db.commit()

    if in_use:
        logger.info("Keeping stored object for deleted asset %s; still referenced elsewhere", asset_id)
        return
    if storage_key or storage_id:
        backends = storage or get_storage_backends()
        best_effort("delete stored object", backends.delete, storage_key, storage_id)


def _copy_asset(source: Asset, version_id: str, product_id: str, now: datetime) -> Asset:
    return Asset(
        version_id=version_id,
        product_id=product_id,
        owner_id=source.owner_id,
        organization_id=source.organization_id,
        type=source.type,
        asset_group=source.asset_group,
        status=source.status,
        status_message=source.status_message,
        prompt=source.prompt,
        url=source.url,
        temp_image_url=source.temp_image_url,
        thumbnail_url=source.thumbnail_url,
        storage_key=source.storage_key,
        storage_id=source.storage_id,
        alternate_storage_keys=list(source.alternate_storage_keys or []),
        alternate_storage_ids=list(source.alternate_storage_ids or []),
        reference_ids=list(source.reference_ids or []),
        metadata_json=dict(source.metadata_json or {}),
        processing_time_ms=source.processing_time_ms,
        cost=source.cost,
        version_history=[],
        created_at=now,
        completed_at=source.completed_at,
    )


def duplicate_asset(db: Session, asset_id: str) -> Asset:
    source = get_asset(db, asset_id)
    now = datetime.utcnow()
    duplicate = _copy_asset(source, source.version_id, source.product_id, now)
    db.add(duplicate)
    db.commit()
    db.refresh(duplicate)
    _bump(db, source.version_id, now)
    return duplicate


def duplicate_version_assets(
    db: Session,
    source_version_id: str,
    target_version_id: str,
    asset_group: str | None = None,
    status_filter: str | None = None,
) -> list[Asset]:
    source_version = db.get(Version, source_version_id)
    if source_version is None:
        raise VersionNotFoundError("Source version not found")
    target_version = db.get(Version, target_version_id)
    if target_version is None:
        raise VersionNotFoundError("Target version not found")
    if source_version.product_id != target_version.product_id:
        raise AssetRuleViolation("Versions must belong to the same product")

    query = db.query(Asset).filter(Asset.version_id == source_version_id)
    if asset_group:
        query = query.filter(Asset.asset_group == asset_group)
    if status_filter:
        query = query.filter(Asset.status == status_filter)
    sources = query.order_by(Asset.created_at).all()
    if not sources:
        return []

    now = datetime.utcnow()
    duplicates = [_copy_asset(source, target_version.id, target_version.product_id, now) for source in sources]
    db.add_all(duplicates)
    db.commit()
    _bump(db, target_version.id, now)
    return duplicates


def add_alternate_locators(
    db: Session,
    asset_id: str,
    storage_keys: Iterable[str] = (),
    storage_ids: Iterable[str] = (),
) -> Asset:
    asset = get_asset(db, asset_id)
    keys = list(asset.alternate_storage_keys or [])
    for key in storage_keys:
        if key not in keys:
            keys.append(key)
    ids = list(asset.alternate_storage_ids or [])
    for handle in storage_ids:
        if handle not in ids:
            ids.append(handle)
    asset.alternate_storage_keys = keys
    asset.alternate_storage_ids = ids
    db.commit()
    return asset


def promote_alternate(
    db: Session,
    asset_id: str,
    alternate: ContentLocator,
    storage: StorageBackends | None = None,
) -> Asset:
    asset = get_asset(db, asset_id)
    if not (alternate.storage_key or alternate.storage_id):
        raise MissingLocatorError("A storage key or storage handle is required")
    url = ContentLocator(storage_key=alternate.storage_key, storage_id=alternate.storage_id).resolve(
        storage or get_storage_backends()
    )
    incoming = ContentLocator(url=url, storage_key=alternate.storage_key, storage_id=alternate.storage_id)

    keys = [key for key in (asset.alternate_storage_keys or []) if key != alternate.storage_key]
    ids = [handle for handle in (asset.alternate_storage_ids or []) if handle != alternate.storage_id]
    if asset.storage_key:
        keys.insert(0, asset.storage_key)
    elif asset.storage_id:
        ids.insert(0, asset.storage_id)

    now = datetime.utcnow()
    updated_history = ledger.compute_updated_history(asset, incoming, "promote-alternate", now)
    if updated_history is not None:
        asset.version_history = updated_history
    asset.url = url
    asset.storage_key = incoming.storage_key
    asset.storage_id = incoming.storage_id
    asset.alternate_storage_keys = keys
    asset.alternate_storage_ids = ids
    asset.status = "completed"
    asset.completed_at = now
    db.commit()
    _bump(db, asset.version_id, now)
    return asset


def restore_version(
    db: Session,
    asset_id: str,
    target: ContentLocator,
    storage: StorageBackends | None = None,
) -> Asset:
    asset = get_asset(db, asset_id)
    now = datetime.utcnow()
    restored = ledger.restore_from_history(asset, target, now)
    url = restored.locator.resolve(storage or get_storage_backends())

    asset.url = url
    asset.storage_key = restored.locator.storage_key
    asset.storage_id = restored.locator.storage_id
    asset.metadata_json = restored.metadata
    asset.version_history = restored.history
    asset.status = "completed"
    asset.completed_at = now
    db.commit()
    _bump(db, asset.version_id, now)
    return asset


def delete_history_entry(db: Session, asset_id: str, target: ContentLocator) -> Asset:
    asset = get_asset(db, asset_id)
    asset.version_history = ledger.delete_from_history(asset, target)
    db.commit()
    return asset


def update_asset_costs(db: Session, asset_id: str, cost: float, ctc: float) -> Asset:
    asset = get_asset(db, asset_id)
    asset.cost = cost
    asset.ctc = ctc
    db.commit()
    return asset


def set_billing_state(
    db: Session,
    asset_id: str,
    *,
    billing_status: str | None = _UNSET,
    billing_error: str | None = _UNSET,
    billing_failed_at: datetime | None = _UNSET,
    billing_charged_at: datetime | None = _UNSET,
) -> Asset:
    """Billing bookkeeping; never bumps version activity or history."""
    asset = get_asset(db, asset_id)
    updates = {
        "billing_status": billing_status,
        "billing_error": billing_error,
        "billing_failed_at": billing_failed_at,
        "billing_charged_at": billing_charged_at,
    }
    changed = False
    for field, value in updates.items():
        if value is not _UNSET:
            setattr(asset, field, value)
            changed = True
    if changed:
        db.commit()
    return asset


def charge_for_asset(
    db: Session,
    asset_id: str,
    cost: float,
    ctc: float,
    hooks: LifecycleHooks | None = None,
) -> Asset:
    hooks = hooks or default_hooks()
    asset = get_asset(db, asset_id)
    set_billing_state(db, asset_id, billing_status="pending", billing_error=None)
    try:
        hooks.billing.charge(db, asset, cost, ctc)
    except Exception as exc:
        logger.warning("Billing failed for asset %s", asset_id, exc_info=True)
        db.rollback()
        return set_billing_state(
            db,
            asset_id,
            billing_status="failed",
            billing_error=str(exc) or exc.__class__.__name__,
            billing_failed_at=datetime.utcnow(),
        )
    update_asset_costs(db, asset_id, cost, ctc)
    return set_billing_state(
        db,
        asset_id,
        billing_status="charged",
        billing_failed_at=None,
        billing_charged_at=datetime.utcnow(),
    )
