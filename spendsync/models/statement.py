from sqlalchemy import Column, String, Numeric, Date, DateTime, UniqueConstraint, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import uuid

from spendsync.db import Base
from spendsync.models.sync_job import utcnow


class Statement(Base):
    """Card/account statement summary parsed from a statement-ready email"""
    __tablename__ = "statements"
    __table_args__ = (
        UniqueConstraint("user_id", "issuer", "period_start", "period_end", name="uq_statements_user_issuer_period"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    issuer = Column(String(50), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    total_due = Column(Numeric(14, 2), nullable=False)
    minimum_due = Column(Numeric(14, 2), nullable=True)
    due_date = Column(Date, nullable=True)
    currency = Column(String(3), nullable=False, default="INR")
    source_email_id = Column(UUID(as_uuid=True), ForeignKey("raw_emails.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
