import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, String, Text

from ..core.database import Base


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(36), nullable=True)
    user_id = Column(String(64), nullable=False)
    amount = Column(Float, nullable=False)
    ctc = Column(Float, nullable=True)
    kind = Column(String(32), nullable=False, default="usage")
    related_asset_id = Column(String(36), nullable=True, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
