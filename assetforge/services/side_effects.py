"""Bookkeeping side effects that must never fail a primary operation.

Every call site routes through ``best_effort`` so the swallow policy lives in
one place.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, TypeVar

from sqlalchemy.orm import Session

from ..models.asset import AestheticAsset, Asset, AssetCompletionEvent
from ..models.billing import CreditTransaction
from ..models.product import Version

logger = logging.getLogger(__name__)

T = TypeVar("T")


def best_effort(label: str, fn: Callable[..., T], *args: Any, session: Session | None = None, **kwargs: Any) -> T | None:
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.warning("Best-effort step %r failed", label, exc_info=True)
        if session is not None:
            session.rollback()
        return None


class NotificationHook(Protocol):
    def asset_finalized(self, asset_id: str) -> None: ...


class DiagnosticsSink(Protocol):
    def capture_exception(self, distinct_id: str, message: str, name: str, properties: dict[str, Any]) -> None: ...


class BillingHook(Protocol):
    def charge(self, db: Session, asset: Asset, cost: float, ctc: float) -> None: ...


class LoggingNotificationHook:
    def asset_finalized(self, asset_id: str) -> None:
        logger.info("Live usage notification queued for asset %s", asset_id)


class LoggingDiagnosticsSink:
    def capture_exception(self, distinct_id: str, message: str, name: str, properties: dict[str, Any]) -> None:
        logger.error("%s for %s: %s %s", name, distinct_id, message, properties)


class CreditLedgerBillingHook:
    def charge(self, db: Session, asset: Asset, cost: float, ctc: float) -> None:
        db.add(
            CreditTransaction(
                organization_id=asset.organization_id,
                user_id=asset.owner_id,
                amount=-cost,
                ctc=ctc,
                kind="usage",
                related_asset_id=asset.id,
                description=f"{asset.type} generation ({asset.asset_group})",
            )
        )
        db.commit()


@dataclass
class LifecycleHooks:
    notifications: NotificationHook = field(default_factory=LoggingNotificationHook)
    diagnostics: DiagnosticsSink = field(default_factory=LoggingDiagnosticsSink)
    billing: BillingHook = field(default_factory=CreditLedgerBillingHook)


def default_hooks() -> LifecycleHooks:
    return LifecycleHooks()


def bump_version_activity(db: Session, version_id: str, when: datetime | None = None) -> None:
    db.query(Version).filter(Version.id == version_id).update(
        {Version.updated_at: when or datetime.utcnow()}, synchronize_session=False
    )
    db.commit()


def record_completion_event(db: Session, asset: Asset, completed_at: datetime) -> None:
    db.add(
        AssetCompletionEvent(
            asset_id=asset.id,
            version_id=asset.version_id,
            product_id=asset.product_id,
            organization_id=asset.organization_id,
            completed_at=completed_at,
        )
    )
    db.commit()


def increment_aesthetic_usage(db: Session, aesthetic_asset_id: str) -> None:
    aesthetic = db.get(AestheticAsset, aesthetic_asset_id)
    if aesthetic is None:
        return
    aesthetic.usage_count = (aesthetic.usage_count or 0) + 1
    db.commit()


def select_asset(db: Session, version_id: str, asset_id: str) -> None:
    version = db.get(Version, version_id)
    if version is None:
        return
    version.selected_asset_id = asset_id
    db.commit()
