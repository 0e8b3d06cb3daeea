"""
Sync API endpoints for triggering and monitoring expense sync jobs.
"""
from fastapi import APIRouter, Depends, Query
from typing import List
from uuid import UUID

from spendsync.dependencies import get_orchestrator
from spendsync.exceptions import JobNotFoundError, NotFoundError
from spendsync.ingestion.orchestrator import SyncJobOrchestrator
from spendsync.schemas.sync_job import ReprocessRequest, SyncJobStarted, SyncJobStatusResponse, SyncRequest
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/expenses", tags=["Expense Sync"])


@router.post("/sync", response_model=SyncJobStarted, status_code=202)
async def start_sync(
    user_id: UUID,
    request: SyncRequest = SyncRequest(),
    orchestrator: SyncJobOrchestrator = Depends(get_orchestrator),
):
    """
    Start a sync of the user's transactional email. Returns immediately;
    poll GET /expenses/sync/{job_id} for progress.
    """
    if request.deferred_parse:
        job_id = await orchestrator.start_sync_and_process(user_id, request.query)
    else:
        job_id = await orchestrator.start_sync(user_id, request.query)
    return SyncJobStarted(job_id=str(job_id))


@router.post("/reprocess", response_model=SyncJobStarted, status_code=202)
async def start_reprocess(
    user_id: UUID,
    request: ReprocessRequest = ReprocessRequest(),
    orchestrator: SyncJobOrchestrator = Depends(get_orchestrator),
):
    """Re-run parsing and categorization over stored emails"""
    job_id = await orchestrator.start_reprocess(user_id, force_all=request.force_all)
    return SyncJobStarted(job_id=str(job_id))


@router.get("/sync/jobs", response_model=List[SyncJobStatusResponse])
async def list_sync_jobs(
    user_id: UUID,
    limit: int = Query(default=10, ge=1, le=100),
    orchestrator: SyncJobOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.list_recent(user_id, limit)


@router.get("/sync/{job_id}", response_model=SyncJobStatusResponse)
async def get_sync_status(job_id: UUID, orchestrator: SyncJobOrchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.get_status(job_id)
    except JobNotFoundError:
        raise NotFoundError("Sync job not found")
