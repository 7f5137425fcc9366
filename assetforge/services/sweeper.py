from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..models.asset import Asset
from .assets import fail_asset

logger = logging.getLogger(__name__)


def _timeout_for(asset: Asset, settings: Settings) -> tuple[int, bool]:
    # A prompt or preview means the asset was on its way into a workflow.
    likely_workflow = bool(asset.prompt or asset.temp_image_url)
    if likely_workflow:
        return settings.workflow_pending_timeout_seconds, True
    return settings.pending_timeout_seconds, False


def timeout_message(timeout_seconds: int, likely_workflow: bool) -> str:
    if likely_workflow:
        return f"Auto-failed after exceeding {timeout_seconds}s pending timeout (workflow may have failed to start)"
    return f"Auto-failed after exceeding {timeout_seconds}s pending timeout"


def sweep_stale_pending_assets(
    db: Session,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> int:
    """Fail pending assets that no workflow will ever complete; return how many."""
    settings = settings or get_settings()
    now = now or datetime.utcnow()
    grace_cutoff = now - timedelta(seconds=settings.pending_grace_seconds)

    candidates = (
        db.query(Asset)
        .filter(
            Asset.status == "pending",
            Asset.workflow_id.is_(None),
            Asset.created_at <= grace_cutoff,
        )
        .all()
    )

    swept = 0
    for asset in candidates:
        timeout_seconds, likely_workflow = _timeout_for(asset, settings)
        age = (now - asset.created_at).total_seconds()
        if age <= timeout_seconds:
            continue
        if fail_asset(db, asset.id, timeout_message(timeout_seconds, likely_workflow)):
            swept += 1

    if swept:
        logger.info("Swept %s stale pending assets", swept)
    return swept
