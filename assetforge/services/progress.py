from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.errors import VersionNotFoundError
from ..models.product import AutoGenRequest, Version

logger = logging.getLogger(__name__)


def begin_auto_gen_run(
    db: Session,
    version_id: str,
    run_id: str,
    created_by: str,
    *,
    organization_id: str | None = None,
    num_images: int = 1,
    title: str | None = None,
    subtitle: str | None = None,
    prompt: str | None = None,
    kind: str = "other",
    source: str = "manual",
    track_on_version: bool = True,
) -> AutoGenRequest:
    version = db.get(Version, version_id)
    if version is None:
        raise VersionNotFoundError("Version not found")

    now = datetime.utcnow()
    request = AutoGenRequest(
        version_id=version_id,
        organization_id=organization_id,
        created_by=created_by,
        source=source,
        kind=kind,
        status="running",
        title=title,
        subtitle=subtitle,
        prompt=prompt,
        num_images=max(1, num_images),
        run_id=run_id,
        created_at=now,
        started_at=now,
    )
    db.add(request)
    if track_on_version:
        version.active_auto_gen_run_id = run_id
    db.commit()
    db.refresh(request)
    return request


def find_run(db: Session, run_id: str) -> AutoGenRequest | None:
    return db.query(AutoGenRequest).filter(AutoGenRequest.run_id == run_id).first()


def update_auto_gen_progress(
    db: Session,
    version_id: str,
    run_id: str,
    increment_completed: int = 1,
    current_stage: str | None = None,
) -> AutoGenRequest | None:
    version = db.get(Version, version_id)
    if version is None or version.active_auto_gen_run_id != run_id:
        return None
    request = find_run(db, run_id)
    if request is None:
        return None

    request.completed_count = (request.completed_count or 0) + increment_completed
    if current_stage:
        request.current_stage = current_stage
    if request.completed_count >= request.num_images:
        request.status = "completed"
        request.completed_at = datetime.utcnow()
        version.active_auto_gen_run_id = None
        logger.info("Auto-generation run %s completed for version %s", run_id, version_id)
    db.commit()
    return request


def set_run_status(db: Session, run_id: str, status: str, error_message: str | None = None) -> bool:
    request = find_run(db, run_id)
    if request is None:
        return False
    request.status = status
    request.completed_at = datetime.utcnow()
    if error_message:
        request.error_message = error_message
    version = db.get(Version, request.version_id)
    if version is not None and version.active_auto_gen_run_id == run_id:
        version.active_auto_gen_run_id = None
    db.commit()
    return True


def get_active_run(db: Session, version_id: str) -> AutoGenRequest | None:
    version = db.get(Version, version_id)
    if version is None:
        raise VersionNotFoundError("Version not found")
    if not version.active_auto_gen_run_id:
        return None
    return find_run(db, version.active_auto_gen_run_id)
