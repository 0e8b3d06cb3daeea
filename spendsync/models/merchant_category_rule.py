from sqlalchemy import Column, String, DateTime, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid

from spendsync.db import Base
from spendsync.models.sync_job import utcnow


class MerchantCategoryRule(Base):
    """User-authored merchant -> category override"""
    __tablename__ = "merchant_category_rules"
    __table_args__ = (
        UniqueConstraint("user_id", "merchant_key", name="uq_merchant_category_rules_user_merchant"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    merchant = Column(String(255), nullable=False)
    merchant_key = Column(String(255), nullable=False)  # normalized, lowercased merchant
    category = Column(String(100), nullable=False)
    subcategory = Column(String(100), nullable=False)
    category_metadata = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
