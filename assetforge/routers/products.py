from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.errors import ProductNotFoundError, VersionNotFoundError
from ..core.security import Actor, ensure_access, get_actor, require_api_key
from ..models.product import Organization, Product, Version
from ..schemas.assets import AssetRead
from ..schemas.products import (
    AutoGenProgressUpdate,
    AutoGenRunCreate,
    AutoGenRunRead,
    DuplicateVersionAssetsRequest,
    ProductCreate,
    ProductRead,
    VersionCreate,
    VersionRead,
)
from ..services import assets as lifecycle
from ..services import progress

router = APIRouter(tags=["products"], dependencies=[Depends(require_api_key)])


def load_product(db: Session, product_id: str, actor: Actor) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFoundError("Product not found")
    ensure_access(actor, product.owner_id, product.organization_id)
    return product


def load_version(db: Session, version_id: str, actor: Actor) -> Version:
    version = db.get(Version, version_id)
    if not version:
        raise VersionNotFoundError("Version not found")
    load_product(db, version.product_id, actor)
    return version


@router.get("/products", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    query = db.query(Product)
    if actor.organization_id:
        query = query.filter(Product.organization_id == actor.organization_id)
    else:
        query = query.filter(Product.owner_id == actor.user_id, Product.organization_id.is_(None))
    return query.order_by(Product.created_at.desc()).all()


@router.post("/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    if actor.organization_id and not db.get(Organization, actor.organization_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    product = Product(
        name=payload.name,
        category=payload.category,
        description=payload.description,
        owner_id=actor.user_id,
        organization_id=actor.organization_id,
    )
    db.add(product)
    db.flush()
    db.add(Version(product_id=product.id, name=payload.version_name))
    db.commit()
    db.refresh(product)
    return product


@router.get("/products/{product_id}", response_model=ProductRead)
def get_product(product_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return load_product(db, product_id, actor)


@router.get("/products/{product_id}/versions", response_model=list[VersionRead])
def list_versions(product_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    load_product(db, product_id, actor)
    return (
        db.query(Version)
        .filter(Version.product_id == product_id)
        .order_by(Version.created_at.desc())
        .all()
    )


@router.post("/products/{product_id}/versions", response_model=VersionRead, status_code=status.HTTP_201_CREATED)
def create_version(
    product_id: str,
    payload: VersionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    load_product(db, product_id, actor)
    version = Version(product_id=product_id, name=payload.name)
    db.add(version)
    db.commit()
    db.refresh(version)
    return version


@router.get("/versions/{version_id}", response_model=VersionRead)
def get_version(version_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return load_version(db, version_id, actor)


@router.post("/versions/{version_id}/duplicate-assets", response_model=list[AssetRead], status_code=status.HTTP_201_CREATED)
def duplicate_version_assets(
    version_id: str,
    payload: DuplicateVersionAssetsRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    load_version(db, version_id, actor)
    load_version(db, payload.target_version_id, actor)
    return lifecycle.duplicate_version_assets(
        db, version_id, payload.target_version_id, payload.asset_group, payload.status
    )


@router.post("/versions/{version_id}/auto-gen-runs", response_model=AutoGenRunRead, status_code=status.HTTP_201_CREATED)
def begin_auto_gen_run(
    version_id: str,
    payload: AutoGenRunCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    load_version(db, version_id, actor)
    return progress.begin_auto_gen_run(
        db,
        version_id,
        payload.run_id,
        actor.user_id,
        organization_id=actor.organization_id,
        num_images=payload.num_images,
        title=payload.title,
        subtitle=payload.subtitle,
        prompt=payload.prompt,
        kind=payload.kind,
        source=payload.source,
    )


@router.get("/versions/{version_id}/progress", response_model=AutoGenRunRead | None)
def get_progress(version_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    load_version(db, version_id, actor)
    return progress.get_active_run(db, version_id)


@router.post("/versions/{version_id}/progress", response_model=AutoGenRunRead | None)
def update_progress(
    version_id: str,
    payload: AutoGenProgressUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    load_version(db, version_id, actor)
    return progress.update_auto_gen_progress(
        db, version_id, payload.run_id, payload.increment_completed, payload.current_stage
    )
