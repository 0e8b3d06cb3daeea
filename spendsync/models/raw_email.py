"""
Raw Email Model: every transactional email fetched from the provider.
"""
from sqlalchemy import Column, String, Text, Boolean, DateTime, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
import uuid

from spendsync.db import Base
from spendsync.models.sync_job import utcnow


class RawEmail(Base):
    __tablename__ = "raw_emails"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", "provider_message_id", name="uq_raw_emails_user_provider_message"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    category = Column(String(50), default="expenses", nullable=False)
    provider = Column(String(30), default="gmail", nullable=False)
    provider_message_id = Column(String(255), nullable=False)
    from_address = Column(String(512), nullable=False, default="")
    subject = Column(Text, nullable=False, default="")
    body_text = Column(Text, nullable=False, default="")
    body_html = Column(Text, nullable=True)
    snippet = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False)
    processed = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<RawEmail(id={self.id}, provider_message_id={self.provider_message_id}, processed={self.processed})>"
