from typing import Optional
from pydantic import BaseModel


class SyncRequest(BaseModel):
    query: Optional[str] = None
    deferred_parse: bool = False  # store first, parse in a follow-up reprocess


class ReprocessRequest(BaseModel):
    force_all: bool = False


class SyncJobStarted(BaseModel):
    job_id: str
    status: str = "pending"


class SyncJobStatusResponse(BaseModel):
    job_id: str
    status: str
    kind: str
    total_emails: int
    processed_emails: int
    new_emails: int
    transactions: int
    statements: int
    failed_emails: int
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
