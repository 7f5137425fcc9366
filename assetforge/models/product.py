import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ..core.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(128), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    category = Column(String(128), nullable=True)
    description = Column(Text, nullable=True)
    owner_id = Column(String(64), nullable=False)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    versions = relationship("Version", back_populates="product", cascade="all, delete-orphan")


class Version(Base):
    __tablename__ = "versions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="v1")
    selected_asset_id = Column(String(36), nullable=True)
    active_auto_gen_run_id = Column(String(128), nullable=True)
    pattern_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="versions")


class AutoGenRequest(Base):
    __tablename__ = "version_auto_gen_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    version_id = Column(String(36), ForeignKey("versions.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(String(36), nullable=True)
    created_by = Column(String(64), nullable=False)
    source = Column(String(32), nullable=False, default="manual")
    kind = Column(String(32), nullable=False, default="other")
    status = Column(String(32), nullable=False, default="running")
    title = Column(String(255), nullable=True)
    subtitle = Column(String(255), nullable=True)
    prompt = Column(Text, nullable=True)
    num_images = Column(Integer, nullable=False, default=1)
    completed_count = Column(Integer, nullable=False, default=0)
    current_stage = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    run_id = Column(String(128), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
