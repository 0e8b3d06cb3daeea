"""
Batched email ingestion: fetch, persist, parse, categorize and report progress.

Failure isolation:
- an email that fails to persist or parse is logged and counted as failed
- a batch whose content fetch fails is logged, counted as failed, and skipped
Every email is counted as processed exactly once, whatever its outcome.
"""
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple
import asyncio
import uuid

from mailparse.records import EmailMessage, ParsedTransaction
from mailparse.registry import ParserRegistry
from spendsync.cards.card_resolver import CardResolver
from spendsync.categorization.categorizer import CategorizationContext, TransactionCategorizer
from spendsync.ingestion.ports import MailProvider
from spendsync.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class IngestionContext:
    """Everything a job's batches share; built once per job run"""
    job_id: uuid.UUID
    user_id: uuid.UUID
    categorization: CategorizationContext
    parse_inline: bool = True
    category: str = "expenses"


@dataclass
class EmailOutcome:
    processed: int = 1
    new: int = 0
    transactions: int = 0
    statements: int = 0
    failed: int = 0


@dataclass
class IngestionStats:
    batches: int = 0
    failed_batches: int = 0
    emails: int = 0
    failed_emails: int = 0

    def add(self, outcomes: Sequence[EmailOutcome]) -> None:
        self.emails += sum(o.processed for o in outcomes)
        self.failed_emails += sum(o.failed for o in outcomes)


class EmailIngestionBatcher:
    def __init__(
        self,
        repositories: Callable,
        parsers: ParserRegistry,
        categorizer: TransactionCategorizer,
        card_resolver: CardResolver,
        email_concurrency: int = 10,
    ):
        """
        Args:
            repositories: scope factory; `async with repositories() as repos`
            parsers: Parser registry used to route each email
            categorizer: Categorizer applied to every parsed transaction
            card_resolver: Resolves card display names from last four digits
            email_concurrency: Emails of one batch handled at the same time
        """
        self._repositories = repositories
        self.parsers = parsers
        self.categorizer = categorizer
        self.card_resolver = card_resolver
        self.email_concurrency = max(1, email_concurrency)

    # ==========================================================================
    # Batch loops
    # ==========================================================================

    async def ingest_from_provider(
        self,
        ctx: IngestionContext,
        provider: MailProvider,
        message_ids: Sequence[str],
        batch_size: int = 100,
    ) -> IngestionStats:
        """Fetch content in fixed-size batches and ingest each batch"""
        stats = IngestionStats()
        total_batches = (len(message_ids) + batch_size - 1) // batch_size
        for index in range(0, len(message_ids), batch_size):
            batch_ids = list(message_ids[index:index + batch_size])
            batch_number = index // batch_size + 1
            stats.batches += 1
            try:
                emails = await provider.fetch_content_batch(ctx.user_id, batch_ids)
            except Exception as e:
                logger.error(
                    f"[JOB {ctx.job_id}] Batch {batch_number}/{total_batches} fetch failed, "
                    f"skipping {len(batch_ids)} emails: {e}"
                )
                stats.failed_batches += 1
                skipped = EmailOutcome(processed=len(batch_ids), failed=len(batch_ids))
                await self._record(ctx, skipped)
                stats.add([skipped])
                continue

            outcomes = await self._ingest_batch(ctx, emails, store=True)
            missing = len(batch_ids) - len(emails)
            if missing > 0:
                logger.warning(f"[JOB {ctx.job_id}] Provider returned {len(emails)} of {len(batch_ids)} emails in batch {batch_number}")
                gap = EmailOutcome(processed=missing, failed=missing)
                await self._record(ctx, gap)
                outcomes.append(gap)
            stats.add(outcomes)
            logger.info(f"[JOB {ctx.job_id}] Batch {batch_number}/{total_batches} done ({len(emails)} emails)")
        return stats

    async def ingest_stored(
        self,
        ctx: IngestionContext,
        unprocessed_only: bool,
        batch_size: int = 20,
    ) -> IngestionStats:
        """Re-parse emails already in storage, page by page, without the provider"""
        stats = IngestionStats()
        after_id: Optional[uuid.UUID] = None
        while True:
            async with self._repositories() as repos:
                page = await repos.raw_emails.list_page_after(
                    ctx.user_id, after_id, batch_size, category=ctx.category, unprocessed_only=unprocessed_only
                )
            if not page:
                break
            after_id = page[-1].id
            stats.batches += 1
            stats.add(await self._ingest_batch(ctx, page, store=False))
        return stats

    # ==========================================================================
    # Per-email work
    # ==========================================================================

    async def _ingest_batch(self, ctx: IngestionContext, emails: Sequence[EmailMessage], store: bool) -> List[EmailOutcome]:
        semaphore = asyncio.Semaphore(self.email_concurrency)

        async def bounded(email: EmailMessage) -> EmailOutcome:
            async with semaphore:
                return await self._ingest_one(ctx, email, store)

        return list(await asyncio.gather(*(bounded(email) for email in emails)))

    async def _ingest_one(self, ctx: IngestionContext, email: EmailMessage, store: bool) -> EmailOutcome:
        outcome = EmailOutcome()
        try:
            async with self._repositories() as repos:
                if store:
                    is_new, email_id = await repos.raw_emails.upsert(replace(email, category=ctx.category))
                    email = replace(email, id=email_id, user_id=ctx.user_id, category=ctx.category)
                    outcome.new = int(is_new)
                    emit_statement = is_new
                else:
                    # stored emails not yet parsed never had their statement emitted
                    emit_statement = not email.processed

                if ctx.parse_inline:
                    outcome.transactions, outcome.statements = await self._parse(repos, ctx, email, emit_statement)
        except Exception as e:
            logger.warning(f"[JOB {ctx.job_id}] Email {email.provider_message_id} failed: {e}")
            outcome.failed = 1
        await self._record(ctx, outcome)
        return outcome

    async def _parse(self, repos, ctx: IngestionContext, email: EmailMessage, emit_statement: bool) -> Tuple[int, int]:
        parser = self.parsers.find_parser(email)
        if parser is None:
            await repos.raw_emails.mark_processed(email.id)
            return 0, 0

        transactions = [self._categorize(txn, ctx) for txn in parser.parse_transactions(email)]
        written = await repos.transactions.upsert_many(transactions) if transactions else 0

        statements = 0
        if emit_statement:
            statement = parser.parse_statement(email)
            if statement is not None:
                await repos.statements.upsert(statement)
                statements = 1

        await repos.raw_emails.mark_processed(email.id)
        return written, statements

    def _categorize(self, transaction: ParsedTransaction, ctx: IngestionContext) -> ParsedTransaction:
        categorized = self.categorizer.apply(transaction, ctx.categorization)
        if categorized.card_last4:
            categorized = replace(categorized, card_name=self.card_resolver.resolve_card_name(categorized.card_last4))
        return categorized

    async def _record(self, ctx: IngestionContext, outcome: EmailOutcome) -> None:
        try:
            async with self._repositories() as repos:
                await repos.sync_jobs.increment_progress(
                    ctx.job_id,
                    processed_emails=outcome.processed,
                    new_emails=outcome.new,
                    transactions=outcome.transactions,
                    statements=outcome.statements,
                    failed_emails=outcome.failed,
                )
        except Exception as e:
            logger.error(f"[JOB {ctx.job_id}] Could not record progress: {e}")
