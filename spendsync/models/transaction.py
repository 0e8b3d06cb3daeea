"""
Transaction Model: one categorized debit/credit derived from an email.
"""
from sqlalchemy import Column, String, Numeric, Float, Boolean, DateTime, UniqueConstraint, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
import enum

from spendsync.db import Base
from spendsync.models.sync_job import utcnow


class CategorizationMethod(str, enum.Enum):
    RULE = "rule"
    HISTORICAL = "historical"
    HEURISTIC = "heuristic"
    MANUAL = "manual"


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_hash", name="uq_transactions_user_dedupe_hash"),
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    dedupe_hash = Column(String(64), nullable=False)
    source_email_id = Column(UUID(as_uuid=True), ForeignKey("raw_emails.id", ondelete="SET NULL"), nullable=True)
    statement_id = Column(UUID(as_uuid=True), ForeignKey("statements.id", ondelete="SET NULL"), nullable=True)
    merchant = Column(String(255), nullable=False)
    merchant_raw = Column(String(512), nullable=False)
    vpa = Column(String(255), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    transaction_date = Column(DateTime(timezone=True), nullable=False)
    transaction_type = Column(String(20), nullable=False, default="debited")  # debited / credited
    transaction_mode = Column(String(20), nullable=False, default="other")  # upi, credit_card, neft, ...
    card_last4 = Column(String(4), nullable=True)
    card_name = Column(String(255), nullable=True)
    category = Column(String(100), nullable=False, default="uncategorized")
    subcategory = Column(String(100), nullable=False, default="uncategorized")
    confidence = Column(Float, nullable=False, default=0.0)
    categorization_method = Column(String(20), nullable=False, default=CategorizationMethod.HEURISTIC.value)
    requires_review = Column(Boolean, nullable=False, default=True)
    category_metadata = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Transaction(id={self.id}, merchant={self.merchant}, amount={self.amount}, category={self.category})>"
