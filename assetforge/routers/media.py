from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.security import Actor, get_actor, require_api_key
from ..models.media_asset import MediaAsset
from ..models.product import Organization
from ..schemas.assets import AssetRead
from ..schemas.media import MediaAssetRead
from ..services import assets as lifecycle
from ..services.media_storage import ContentLocator, StorageBackends, get_storage_backends, media_type_for
from .products import load_version

router = APIRouter(prefix="/media", tags=["media"], dependencies=[Depends(require_api_key)])


def _organization_slug(db: Session, actor: Actor) -> str:
    if actor.organization_id:
        organization = db.get(Organization, actor.organization_id)
        if organization:
            return organization.slug
    return "personal"


@router.get("/", response_model=list[MediaAssetRead])
def list_media(
    owner_type: str | None = None,
    owner_id: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    query = db.query(MediaAsset)
    if actor.organization_id:
        query = query.filter(MediaAsset.organization_id == actor.organization_id)
    if owner_type:
        query = query.filter(MediaAsset.owner_type == owner_type)
    if owner_id:
        query = query.filter(MediaAsset.owner_id == owner_id)
    return query.order_by(MediaAsset.created_at.desc()).all()


@router.post("/uploads", response_model=MediaAssetRead, status_code=status.HTTP_201_CREATED)
async def upload_media(
    file: UploadFile = File(...),
    owner_type: str = Form("upload"),
    owner_id: str | None = Form(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    storage: StorageBackends = Depends(get_storage_backends),
):
    key = storage.objects.save_upload(_organization_slug(db, actor), file)
    media = MediaAsset(
        owner_type=owner_type,
        owner_id=owner_id or actor.user_id,
        organization_id=actor.organization_id,
        storage_key=key,
        url=storage.objects.url_for(key),
        mime_type=file.content_type,
        metadata_json={"filename": file.filename},
    )
    db.add(media)
    db.commit()
    db.refresh(media)
    return media


@router.post("/uploads/assets", response_model=AssetRead, status_code=status.HTTP_201_CREATED)
async def upload_asset(
    file: UploadFile = File(...),
    asset_group: str = Form(...),
    version_id: str = Form(...),
    prompt: str | None = Form(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    storage: StorageBackends = Depends(get_storage_backends),
):
    load_version(db, version_id, actor)
    media_type = media_type_for(file.content_type)
    key = storage.objects.save_upload(_organization_slug(db, actor), file)
    return lifecycle.create_asset_from_upload(
        db,
        ContentLocator(storage_key=key),
        owner_id=actor.user_id,
        organization_id=actor.organization_id,
        asset_group=asset_group,
        version_id=version_id,
        type=media_type if media_type != "file" else "image",
        prompt=prompt,
        metadata={"filename": file.filename, "mime_type": file.content_type, "file_size": file.size},
        storage=storage,
    )
