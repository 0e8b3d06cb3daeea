import uuid

import pytest

from mailparse import default_registry
from spendsync.cards.card_resolver import CardResolver
from spendsync.cards.milestones import MilestoneEngine
from spendsync.categorization.categorizer import TransactionCategorizer
from spendsync.ingestion.batcher import EmailIngestionBatcher
from spendsync.ingestion.orchestrator import SyncJobOrchestrator, SyncOptions
from spendsync.ingestion.supervisor import JobSupervisor
from spendsync.services.analytics_cache import AnalyticsCache
from tests.fakes import FakeMailProvider, FakeStore, fake_repositories


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def repositories(store):
    return fake_repositories(store)


@pytest.fixture
def categorizer():
    return TransactionCategorizer.from_config_dir()


@pytest.fixture
def card_resolver():
    return CardResolver.from_file()


@pytest.fixture
def cache():
    return AnalyticsCache(ttl_seconds=60)


@pytest.fixture
def batcher(repositories, categorizer, card_resolver):
    return EmailIngestionBatcher(repositories, default_registry(), categorizer, card_resolver, email_concurrency=4)


@pytest.fixture
def make_orchestrator(repositories, batcher, cache):
    """Build an orchestrator over a given mailbox"""
    def build(provider: FakeMailProvider, **options) -> SyncJobOrchestrator:
        return SyncJobOrchestrator(
            repositories,
            provider,
            batcher,
            JobSupervisor(max_concurrent_jobs=2),
            cache,
            SyncOptions(**{"sync_batch_size": 2, "reprocess_batch_size": 2, **options}),
        )

    return build


@pytest.fixture
def milestone_engine(card_resolver):
    return MilestoneEngine(card_resolver)
