import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text

from ..core.database import Base


ASSET_TYPES = ("image", "video", "3d")
ASSET_STATUSES = ("pending", "processing", "completed", "failed")
MAIN_GROUP = "main"


class Asset(Base):
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    version_id = Column(String(36), ForeignKey("versions.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_id = Column(String(64), nullable=False)
    organization_id = Column(String(36), nullable=True, index=True)

    type = Column(String(16), nullable=False, default="image")
    asset_group = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    status_message = Column(Text, nullable=True)
    prompt = Column(Text, nullable=True)

    url = Column(Text, nullable=True)
    temp_image_url = Column(Text, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    storage_key = Column(String(512), nullable=True, index=True)
    storage_id = Column(String(128), nullable=True, index=True)
    alternate_storage_keys = Column(JSON, nullable=False, default=list)
    alternate_storage_ids = Column(JSON, nullable=False, default=list)
    version_history = Column(JSON, nullable=False, default=list)
    reference_ids = Column(JSON, nullable=False, default=list)

    workflow_id = Column(String(128), nullable=True)
    thread_id = Column(String(128), nullable=True)
    auto_gen_run_id = Column(String(128), nullable=True)

    metadata_json = Column(JSON, nullable=False, default=dict)
    upscaled_from_asset_id = Column(String(36), ForeignKey("assets.id", ondelete="SET NULL"), nullable=True)
    related_aesthetic_ids = Column(JSON, nullable=False, default=list)
    related_aesthetic_asset_id = Column(String(36), ForeignKey("aesthetic_assets.id", ondelete="SET NULL"), nullable=True)

    processing_time_ms = Column(Integer, nullable=True)
    cost = Column(Float, nullable=True)
    ctc = Column(Float, nullable=True)
    billing_status = Column(String(16), nullable=True)
    billing_error = Column(Text, nullable=True)
    billing_failed_at = Column(DateTime, nullable=True)
    billing_charged_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)


class AestheticAsset(Base):
    __tablename__ = "aesthetic_assets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(36), nullable=True)
    url = Column(Text, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AssetCompletionEvent(Base):
    __tablename__ = "asset_completion_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    asset_id = Column(String(36), nullable=False, index=True)
    version_id = Column(String(36), nullable=False)
    product_id = Column(String(36), nullable=False)
    organization_id = Column(String(36), nullable=True)
    completed_at = Column(DateTime, nullable=False)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
