"""
Sync Job Model for tracking email fetch, parse and reprocess progress.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime, timezone
import uuid
import enum

from spendsync.db import Base
from spendsync.exceptions import InvalidJobTransition


class JobStatus(str, enum.Enum):
    """Status of a sync job"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, enum.Enum):
    SYNC = "sync"
    REPROCESS = "reprocess"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Forward-only lifecycle; a job may fail before it ever starts
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

REPROCESS_QUERY = "__reprocess__"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncJob(Base):
    """Model for tracking sync and reprocess jobs"""
    __tablename__ = "sync_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    category = Column(String(50), default="expenses", nullable=False)
    kind = Column(
        SQLEnum(JobKind, name='syncjobkind', values_callable=lambda enum_cls: [e.value for e in enum_cls]),
        default=JobKind.SYNC,
        nullable=False,
    )
    query = Column(Text, nullable=False)
    status = Column(
        SQLEnum(JobStatus, name='syncjobstatus', values_callable=lambda enum_cls: [e.value for e in enum_cls]),
        default=JobStatus.PENDING,
        nullable=False,
        index=True,
    )
    total_emails = Column(Integer, nullable=True)  # unknown until the listing finishes
    processed_emails = Column(Integer, default=0, nullable=False)
    new_emails = Column(Integer, default=0, nullable=False)
    transactions = Column(Integer, default=0, nullable=False)
    statements = Column(Integer, default=0, nullable=False)
    failed_emails = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_STATUSES

    def transition(self, new_status: JobStatus) -> None:
        """
        Move the job to a new status, stamping started/completed times.

        Raises:
            InvalidJobTransition: if the move is backward or leaves a terminal state
        """
        current = JobStatus(self.status)
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidJobTransition(self.id, current.value, JobStatus(new_status).value)
        self.status = new_status
        if new_status == JobStatus.PROCESSING:
            self.started_at = utcnow()
        elif new_status in TERMINAL_STATUSES:
            self.completed_at = utcnow()

    def to_status_dict(self) -> dict:
        return {
            "job_id": str(self.id),
            "status": JobStatus(self.status).value,
            "kind": JobKind(self.kind).value if self.kind else JobKind.SYNC.value,
            "total_emails": self.total_emails or 0,
            "processed_emails": self.processed_emails or 0,
            "new_emails": self.new_emails or 0,
            "transactions": self.transactions or 0,
            "statements": self.statements or 0,
            "failed_emails": self.failed_emails or 0,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<SyncJob(id={self.id}, user_id={self.user_id}, status={self.status}, processed={self.processed_emails}/{self.total_emails})>"
