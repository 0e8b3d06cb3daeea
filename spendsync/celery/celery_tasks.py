"""
Celery tasks for expense sync.
Each task runs the async pipeline to completion on the worker's event loop.
"""
from datetime import datetime, timedelta, timezone
import asyncio
import uuid

from celery.utils.log import get_task_logger

from spendsync.celery.celery_app import celery_app
from spendsync.config import settings

logger = get_task_logger(__name__)

STALE_JOB_AFTER = timedelta(hours=2)


def _event_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


async def _sync_user(user_id: str) -> dict:
    # The worker has its own analytics cache; API processes see the new data
    # once their cached entries expire (ANALYTICS_CACHE_TTL_SECONDS).
    from spendsync.db import engine
    from spendsync.dependencies import build_container

    container = build_container()
    try:
        job_id = await container.orchestrator.start_sync(uuid.UUID(user_id))
        finished = await container.orchestrator.wait_for(job_id, timeout=settings.POST_SYNC_MAX_WAIT_SECONDS)
        await container.supervisor.drain(timeout=30.0)
        if not finished:
            logger.warning(f"Sync job {job_id} for user {user_id} still running after wait")
        return await container.orchestrator.get_status(job_id)
    finally:
        await container.supervisor.shutdown(timeout=5.0)
        await engine.dispose()


async def _users_with_history() -> list:
    from spendsync.db import AsyncSessionLocal, engine
    from spendsync.repositories import session_repositories

    scope = session_repositories(AsyncSessionLocal)
    try:
        async with scope() as repos:
            return [str(user_id) for user_id in await repos.sync_jobs.list_user_ids_with_history()]
    finally:
        await engine.dispose()


async def _cleanup_stale() -> list:
    from spendsync.db import AsyncSessionLocal, engine
    from spendsync.repositories import session_repositories

    cutoff = datetime.now(timezone.utc) - STALE_JOB_AFTER
    scope = session_repositories(AsyncSessionLocal)
    try:
        async with scope() as repos:
            job_ids = await repos.sync_jobs.fail_stale_processing(
                cutoff, "Job marked as stale (in processing for more than 2 hours)"
            )
    finally:
        await engine.dispose()
    return [str(job_id) for job_id in job_ids]


# ============================================================================
# EMAIL SYNC TASKS
# ============================================================================

@celery_app.task
def sync_user_expenses(user_id: str):
    """
    Incremental sync for one user; returns the final job status payload.

    Args:
        user_id: User ID
    """
    loop = _event_loop()
    try:
        logger.info(f"Starting expense sync for user {user_id}")
        result = loop.run_until_complete(_sync_user(user_id))
        logger.info(f"Expense sync for user {user_id} finished: {result['status']}")
        return result
    except Exception as exc:
        logger.error(f"Expense sync failed for user {user_id}: {exc}", exc_info=True)
        raise


@celery_app.task
def schedule_incremental_sync():
    """
    Periodic task to enqueue a sync for every user that has synced before.
    Run every 30 minutes via Celery Beat
    """
    user_ids = _event_loop().run_until_complete(_users_with_history())
    for user_id in user_ids:
        sync_user_expenses.delay(user_id)
    logger.info(f"Scheduled incremental sync for {len(user_ids)} users")
    return {"scheduled": len(user_ids)}


@celery_app.task
def cleanup_stale_sync_jobs():
    """
    Mark jobs stuck in processing (e.g. after a worker crash) as failed.
    """
    job_ids = _event_loop().run_until_complete(_cleanup_stale())
    for job_id in job_ids:
        logger.warning(f"Marked stale sync job {job_id} as failed")
    return {"cleaned_jobs": len(job_ids)}
