from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from ..services.media_storage import ContentLocator


class LocatorPayload(BaseModel):
    url: str | None = None
    storage_key: str | None = None
    storage_id: str | None = None

    def to_locator(self) -> ContentLocator:
        return ContentLocator(url=self.url, storage_key=self.storage_key, storage_id=self.storage_id)


class AssetRead(BaseModel):
    id: str
    version_id: str
    product_id: str
    owner_id: str
    organization_id: str | None = None
    type: str
    asset_group: str
    status: str
    status_message: str | None = None
    prompt: str | None = None
    url: str | None = None
    temp_image_url: str | None = None
    thumbnail_url: str | None = None
    storage_key: str | None = None
    storage_id: str | None = None
    alternate_storage_keys: list[str] = Field(default_factory=list)
    alternate_storage_ids: list[str] = Field(default_factory=list)
    version_history: list[dict[str, Any]] = Field(default_factory=list)
    reference_ids: list[str] = Field(default_factory=list)
    workflow_id: str | None = None
    thread_id: str | None = None
    metadata_json: dict[str, Any] = Field(default_factory=dict)
    upscaled_from_asset_id: str | None = None
    processing_time_ms: int | None = None
    cost: float | None = None
    ctc: float | None = None
    billing_status: str | None = None
    billing_error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class GenerateAssetRequest(BaseModel):
    asset_group: str
    prompt: str
    type: Literal["image", "video", "3d"] = "image"
    version_id: str | None = None
    product_id: str | None = None
    reference_ids: list[str] = Field(default_factory=list)
    reference_urls: list[str] = Field(default_factory=list)
    aspect_ratio: str | None = None
    target_width: int | None = None
    target_height: int | None = None
    temp_image_url: str | None = None
    related_aesthetic_asset_id: str | None = None
    model: str | None = None
    enhance_prompt: bool = False
    options: dict[str, Any] = Field(default_factory=dict)


class GenerateAssetResponse(BaseModel):
    asset_id: str
    workflow_id: str


class RegenerateAssetRequest(BaseModel):
    prompt: str | None = None
    aspect_ratio: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class AssetUpdate(BaseModel):
    asset_group: str | None = None
    prompt: str | None = None
    status: Literal["pending", "processing", "completed", "failed"] | None = None
    thumbnail_url: str | None = None
    storage_key: str | None = None
    storage_id: str | None = None
    alternate_storage_keys: list[str] | None = None
    alternate_storage_ids: list[str] | None = None
    metadata: dict[str, Any] | None = None
    processing_time_ms: int | None = None
    cost: float | None = None


class AlternateLocatorsUpdate(BaseModel):
    storage_keys: list[str] = Field(default_factory=list)
    storage_ids: list[str] = Field(default_factory=list)


class BillingCharge(BaseModel):
    cost: float = Field(ge=0)
    ctc: float = Field(ge=0)
