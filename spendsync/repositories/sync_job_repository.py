from datetime import datetime
from typing import List, Optional
import uuid

from sqlalchemy import update, func, distinct
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from spendsync.exceptions import JobNotFoundError
from spendsync.models.sync_job import SyncJob, JobStatus, JobKind
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

PROGRESS_COUNTERS = ("processed_emails", "new_emails", "transactions", "statements", "failed_emails")


class SyncJobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        query: str,
        kind: JobKind = JobKind.SYNC,
        category: str = "expenses",
    ) -> SyncJob:
        job = SyncJob(
            id=uuid.uuid4(),
            user_id=user_id,
            query=query,
            kind=kind,
            category=category,
            status=JobStatus.PENDING,
            processed_emails=0,
            new_emails=0,
            transactions=0,
            statements=0,
            failed_emails=0,
        )
        self.session.add(job)
        await self.session.commit()
        await self.session.refresh(job)
        return job

    async def find_by_id(self, job_id: uuid.UUID) -> Optional[SyncJob]:
        result = await self.session.execute(select(SyncJob).filter(SyncJob.id == job_id))
        return result.scalar_one_or_none()

    async def find_by_user(self, user_id: uuid.UUID, limit: int = 10, category: Optional[str] = None) -> List[SyncJob]:
        stmt = select(SyncJob).filter(SyncJob.user_id == user_id)
        if category:
            stmt = stmt.filter(SyncJob.category == category)
        stmt = stmt.order_by(SyncJob.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_last_completed(self, user_id: uuid.UUID, category: str = "expenses") -> Optional[SyncJob]:
        """Latest completed provider sync; reprocess runs never anchor incremental queries"""
        result = await self.session.execute(
            select(SyncJob)
            .filter(
                SyncJob.user_id == user_id,
                SyncJob.category == category,
                SyncJob.kind == JobKind.SYNC,
                SyncJob.status == JobStatus.COMPLETED,
            )
            .order_by(SyncJob.completed_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def transition(self, job_id: uuid.UUID, new_status: JobStatus, **fields) -> SyncJob:
        """
        Apply a status transition (validated by the model) plus any extra fields.

        Raises:
            JobNotFoundError: unknown job
            InvalidJobTransition: transition not allowed from the current status
        """
        result = await self.session.execute(
            select(SyncJob).filter(SyncJob.id == job_id).with_for_update()
        )
        job = result.scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(job_id)
        try:
            job.transition(new_status)
        except Exception:
            await self.session.rollback()
            raise
        for key, value in fields.items():
            setattr(job, key, value)
        await self.session.commit()
        return job

    async def set_total(self, job_id: uuid.UUID, total_emails: int) -> None:
        await self.session.execute(
            update(SyncJob).where(SyncJob.id == job_id).values(total_emails=total_emails)
        )
        await self.session.commit()

    async def increment_progress(self, job_id: uuid.UUID, **counters: int) -> None:
        """Atomically add to progress counters; processed_emails never passes total_emails"""
        values = {}
        for name, amount in counters.items():
            if name not in PROGRESS_COUNTERS:
                raise ValueError(f"Unknown progress counter: {name}")
            if amount:
                values[name] = getattr(SyncJob, name) + amount
        if not values:
            return
        if "processed_emails" in values:
            values["processed_emails"] = func.least(
                values["processed_emails"],
                func.coalesce(SyncJob.total_emails, values["processed_emails"]),
            )
        values["updated_at"] = func.now()
        await self.session.execute(update(SyncJob).where(SyncJob.id == job_id).values(**values))
        await self.session.commit()

    async def list_user_ids_with_history(self, category: str = "expenses") -> List[uuid.UUID]:
        result = await self.session.execute(
            select(distinct(SyncJob.user_id)).filter(SyncJob.category == category)
        )
        return list(result.scalars().all())

    async def fail_stale_processing(self, started_before: datetime, message: str) -> List[uuid.UUID]:
        """Mark jobs stuck in processing since before the cutoff as failed"""
        result = await self.session.execute(
            update(SyncJob)
            .where(SyncJob.status == JobStatus.PROCESSING, SyncJob.started_at < started_before)
            .values(status=JobStatus.FAILED, error_message=message, completed_at=func.now(), updated_at=func.now())
            .returning(SyncJob.id)
        )
        job_ids = list(result.scalars().all())
        await self.session.commit()
        return job_ids
