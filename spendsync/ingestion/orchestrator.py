"""
Sync job lifecycle: create, run in the background, report progress.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
import uuid

from spendsync.categorization.categorizer import CategorizationContext
from spendsync.exceptions import JobNotFoundError
from spendsync.ingestion.batcher import EmailIngestionBatcher, IngestionContext
from spendsync.ingestion.ports import MailProvider
from spendsync.ingestion.query_builder import DEFAULT_KEYWORDS, build_sync_query
from spendsync.ingestion.supervisor import JobSupervisor
from spendsync.models.sync_job import JobKind, JobStatus, REPROCESS_QUERY
from spendsync.services.analytics_cache import AnalyticsCache
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000


@dataclass(frozen=True)
class SyncOptions:
    keywords: Sequence[str] = DEFAULT_KEYWORDS
    lookback_days: int = 180
    safety_offset_days: int = 5
    max_results: int = 1000
    sync_batch_size: int = 100
    reprocess_batch_size: int = 20
    post_sync_max_wait_seconds: float = 600.0
    category: str = "expenses"


class SyncJobOrchestrator:
    def __init__(
        self,
        repositories: Callable,
        mail_provider: MailProvider,
        batcher: EmailIngestionBatcher,
        supervisor: JobSupervisor,
        cache: AnalyticsCache,
        options: Optional[SyncOptions] = None,
    ):
        self._repositories = repositories
        self.mail_provider = mail_provider
        self.batcher = batcher
        self.supervisor = supervisor
        self.cache = cache
        self.options = options or SyncOptions()

    # ==========================================================================
    # Public API
    # ==========================================================================

    async def start_sync(
        self,
        user_id: uuid.UUID,
        query: Optional[str] = None,
        parse_inline: bool = True,
    ) -> uuid.UUID:
        """
        Create a sync job and run it in the background.

        Args:
            user_id: Owner of the mailbox
            query: Provider search query; built incrementally when omitted
            parse_inline: Parse and categorize while fetching; when False the
                job only stores emails

        Returns:
            The new job's id (the job itself may still be pending)
        """
        async with self._repositories() as repos:
            if query is None:
                last = await repos.sync_jobs.find_last_completed(user_id, self.options.category)
                query = build_sync_query(
                    last.completed_at if last else None,
                    keywords=self.options.keywords,
                    lookback_days=self.options.lookback_days,
                    safety_offset_days=self.options.safety_offset_days,
                )
            job = await repos.sync_jobs.create(user_id, query, kind=JobKind.SYNC, category=self.options.category)

        logger.info(f"Created sync job {job.id} for user {user_id} (query: {query})")
        self._launch(job.id, user_id, lambda: self._run_sync(job.id, user_id, query, parse_inline))
        return job.id

    async def start_reprocess(self, user_id: uuid.UUID, force_all: bool = False) -> uuid.UUID:
        """Re-parse stored emails (only unprocessed ones unless force_all)"""
        async with self._repositories() as repos:
            job = await repos.sync_jobs.create(
                user_id, REPROCESS_QUERY, kind=JobKind.REPROCESS, category=self.options.category
            )

        logger.info(f"Created reprocess job {job.id} for user {user_id} (force_all={force_all})")
        self._launch(job.id, user_id, lambda: self._run_reprocess(job.id, user_id, not force_all))
        return job.id

    async def start_sync_and_process(self, user_id: uuid.UUID, query: Optional[str] = None) -> uuid.UUID:
        """
        Store-only sync followed by a reprocess of whatever it stored.

        Returns the sync job id; the follow-up reprocess starts once the sync
        completes, unless the wait exceeds the configured maximum.
        """
        job_id = await self.start_sync(user_id, query, parse_inline=False)
        self.supervisor.track(
            self._process_after_sync(user_id, job_id),
            name=f"post-sync-{job_id}",
        )
        return job_id

    async def get_status(self, job_id: uuid.UUID) -> dict:
        async with self._repositories() as repos:
            job = await repos.sync_jobs.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.to_status_dict()

    async def list_recent(self, user_id: uuid.UUID, limit: int = 10) -> List[dict]:
        async with self._repositories() as repos:
            jobs = await repos.sync_jobs.find_by_user(user_id, limit=limit, category=self.options.category)
        return [job.to_status_dict() for job in jobs]

    async def wait_for(self, job_id: uuid.UUID, timeout: Optional[float] = None) -> bool:
        return await self.supervisor.wait_for(job_id, timeout)

    # ==========================================================================
    # Job bodies
    # ==========================================================================

    def _launch(self, job_id: uuid.UUID, user_id: uuid.UUID, body: Callable) -> None:
        self.supervisor.spawn(
            job_id,
            user_id,
            body=body,
            on_failure=lambda exc: self._fail(job_id, exc),
            on_finished=lambda: self.cache.invalidate_user(user_id),
        )

    async def _run_sync(self, job_id: uuid.UUID, user_id: uuid.UUID, query: str, parse_inline: bool) -> None:
        await self._transition(job_id, JobStatus.PROCESSING)
        logger.info(f"[JOB {job_id}] Listing emails for user {user_id}")

        message_ids = await self.mail_provider.list_emails(user_id, query, self.options.max_results)
        async with self._repositories() as repos:
            await repos.sync_jobs.set_total(job_id, len(message_ids))
        logger.info(f"[JOB {job_id}] Found {len(message_ids)} emails")

        categorization = await self._load_context(user_id) if parse_inline else CategorizationContext.empty()
        ctx = IngestionContext(
            job_id=job_id,
            user_id=user_id,
            categorization=categorization,
            parse_inline=parse_inline,
            category=self.options.category,
        )
        stats = await self.batcher.ingest_from_provider(ctx, self.mail_provider, message_ids, self.options.sync_batch_size)

        logger.info(
            f"[JOB {job_id}] Sync finished: {stats.emails} emails, {stats.failed_emails} failed, "
            f"{stats.failed_batches}/{stats.batches} batches failed"
        )
        await self._complete(job_id)

    async def _run_reprocess(self, job_id: uuid.UUID, user_id: uuid.UUID, unprocessed_only: bool) -> None:
        await self._transition(job_id, JobStatus.PROCESSING)
        async with self._repositories() as repos:
            total = await repos.raw_emails.count_by_user(
                user_id, self.options.category, unprocessed_only=unprocessed_only
            )
            await repos.sync_jobs.set_total(job_id, total)
        logger.info(f"[JOB {job_id}] Reprocessing {total} stored emails for user {user_id}")

        ctx = IngestionContext(
            job_id=job_id,
            user_id=user_id,
            categorization=await self._load_context(user_id),
            category=self.options.category,
        )
        stats = await self.batcher.ingest_stored(ctx, unprocessed_only, self.options.reprocess_batch_size)

        logger.info(f"[JOB {job_id}] Reprocess finished: {stats.emails} emails, {stats.failed_emails} failed")
        await self._complete(job_id)

    async def _process_after_sync(self, user_id: uuid.UUID, sync_job_id: uuid.UUID) -> Optional[uuid.UUID]:
        finished = await self.supervisor.wait_for(sync_job_id, self.options.post_sync_max_wait_seconds)
        if not finished:
            logger.warning(
                f"Sync job {sync_job_id} still running after {self.options.post_sync_max_wait_seconds}s; "
                f"skipping post-sync processing"
            )
            return None
        status = await self.get_status(sync_job_id)
        if status["status"] != JobStatus.COMPLETED.value:
            logger.info(f"Sync job {sync_job_id} ended {status['status']}; skipping post-sync processing")
            return None
        return await self.start_reprocess(user_id, force_all=False)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _load_context(self, user_id: uuid.UUID) -> CategorizationContext:
        async with self._repositories() as repos:
            rules = await repos.merchant_rules.find_all_by_user(user_id)
            history = await repos.transactions.get_historical_categories(user_id)
        context = CategorizationContext.build(rules, history)
        logger.info(
            f"Loaded {len(context.merchant_rules)} merchant rules and "
            f"{len(context.history)} historical merchants for user {user_id}"
        )
        return context

    async def _transition(self, job_id: uuid.UUID, status: JobStatus, **fields) -> None:
        async with self._repositories() as repos:
            await repos.sync_jobs.transition(job_id, status, **fields)

    async def _complete(self, job_id: uuid.UUID) -> None:
        async with self._repositories() as repos:
            job = await repos.sync_jobs.find_by_id(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            total = job.total_emails or 0
            if job.processed_emails != total:
                logger.warning(f"[JOB {job_id}] Processed count {job.processed_emails} != total {total}; reconciling")
            await repos.sync_jobs.transition(job_id, JobStatus.COMPLETED, processed_emails=total, total_emails=total)
        logger.info(f"[JOB {job_id}] Completed")

    async def _fail(self, job_id: uuid.UUID, exc: BaseException) -> None:
        message = (str(exc) or type(exc).__name__)[:MAX_ERROR_MESSAGE_LENGTH]
        async with self._repositories() as repos:
            job = await repos.sync_jobs.find_by_id(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.is_terminal:
                logger.warning(f"[JOB {job_id}] Already {JobStatus(job.status).value}; not marking failed ({message})")
                return
            await repos.sync_jobs.transition(job_id, JobStatus.FAILED, error_message=message)
        logger.error(f"[JOB {job_id}] Marked failed: {message}")
