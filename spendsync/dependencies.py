"""
Composition root: reads settings once and wires the services together.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from mailparse import ParserRegistry, default_registry
from spendsync.cards.card_resolver import CardResolver
from spendsync.cards.milestones import MilestoneEngine
from spendsync.categorization.categorizer import TransactionCategorizer
from spendsync.config import Settings, settings as default_settings
from spendsync.ingestion.batcher import EmailIngestionBatcher
from spendsync.ingestion.orchestrator import SyncJobOrchestrator, SyncOptions
from spendsync.ingestion.ports import MailProvider
from spendsync.ingestion.supervisor import JobSupervisor
from spendsync.services.analytics_cache import AnalyticsCache
from spendsync.services.expenses_service import ExpensesService


@dataclass
class Container:
    settings: Settings
    cache: AnalyticsCache
    categorizer: TransactionCategorizer
    card_resolver: CardResolver
    supervisor: JobSupervisor
    orchestrator: SyncJobOrchestrator
    expenses: ExpensesService


def build_container(
    repositories: Optional[Callable] = None,
    mail_provider: Optional[MailProvider] = None,
    parsers: Optional[ParserRegistry] = None,
    config: Optional[Settings] = None,
) -> Container:
    """
    Args:
        repositories: repository scope factory (defaults to PostgreSQL sessions)
        mail_provider: mail provider (defaults to Gmail with per-user token files)
        parsers: parser registry (defaults to the bundled parsers)
        config: settings (defaults to the environment)
    """
    config = config or default_settings
    if repositories is None:
        from spendsync.db import AsyncSessionLocal
        from spendsync.repositories import session_repositories
        repositories = session_repositories(AsyncSessionLocal)
    if mail_provider is None:
        from spendsync.services.gmail_provider import GmailMailProvider, token_file_credentials_loader
        mail_provider = GmailMailProvider(token_file_credentials_loader(config.GMAIL_TOKEN_DIR))

    cache = AnalyticsCache(ttl_seconds=config.ANALYTICS_CACHE_TTL_SECONDS)
    categorizer = TransactionCategorizer.from_config_dir(
        config.CATEGORIZATION_CONFIG_DIR or None,
        review_threshold=config.REVIEW_CONFIDENCE_THRESHOLD,
    )
    card_resolver = CardResolver.from_file(config.CARD_CONFIG_PATH or None)
    supervisor = JobSupervisor(max_concurrent_jobs=config.SYNC_MAX_CONCURRENT_JOBS)
    batcher = EmailIngestionBatcher(
        repositories,
        parsers or default_registry(),
        categorizer,
        card_resolver,
        email_concurrency=config.SYNC_EMAIL_CONCURRENCY,
    )
    orchestrator = SyncJobOrchestrator(
        repositories,
        mail_provider,
        batcher,
        supervisor,
        cache,
        SyncOptions(
            keywords=tuple(config.SYNC_QUERY_KEYWORDS),
            lookback_days=config.SYNC_LOOKBACK_DAYS,
            safety_offset_days=config.SYNC_SAFETY_OFFSET_DAYS,
            max_results=config.SYNC_MAX_RESULTS,
            sync_batch_size=config.SYNC_BATCH_SIZE,
            reprocess_batch_size=config.REPROCESS_BATCH_SIZE,
            post_sync_max_wait_seconds=config.POST_SYNC_MAX_WAIT_SECONDS,
        ),
    )
    expenses = ExpensesService(repositories, cache, categorizer, MilestoneEngine(card_resolver))
    return Container(
        settings=config,
        cache=cache,
        categorizer=categorizer,
        card_resolver=card_resolver,
        supervisor=supervisor,
        orchestrator=orchestrator,
        expenses=expenses,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_orchestrator(request: Request) -> SyncJobOrchestrator:
    return get_container(request).orchestrator


def get_expenses_service(request: Request) -> ExpensesService:
    return get_container(request).expenses
