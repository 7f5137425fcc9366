from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str
    category: str | None = None
    description: str | None = None
    version_name: str = "v1"


class ProductRead(BaseModel):
    id: str
    name: str
    category: str | None = None
    description: str | None = None
    owner_id: str
    organization_id: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class VersionCreate(BaseModel):
    name: str


class VersionRead(BaseModel):
    id: str
    product_id: str
    name: str
    selected_asset_id: str | None = None
    active_auto_gen_run_id: str | None = None
    pattern_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DuplicateVersionAssetsRequest(BaseModel):
    target_version_id: str
    asset_group: str | None = None
    status: str | None = None


class AutoGenRunCreate(BaseModel):
    run_id: str
    num_images: int = Field(default=1, ge=1)
    title: str | None = None
    subtitle: str | None = None
    prompt: str | None = None
    kind: str = "other"
    source: str = "manual"


class AutoGenProgressUpdate(BaseModel):
    run_id: str
    increment_completed: int = Field(default=1, ge=0)
    current_stage: str | None = None


class AutoGenRunRead(BaseModel):
    id: str
    version_id: str
    run_id: str | None = None
    status: str
    kind: str
    source: str
    title: str | None = None
    subtitle: str | None = None
    num_images: int
    completed_count: int
    current_stage: str | None = None
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True
