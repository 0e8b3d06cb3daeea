from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from spendsync.repositories.sync_job_repository import SyncJobRepository
from spendsync.repositories.raw_email_repository import RawEmailRepository
from spendsync.repositories.transaction_repository import TransactionRepository, TransactionFilters
from spendsync.repositories.statement_repository import StatementRepository
from spendsync.repositories.merchant_rule_repository import MerchantRuleRepository


@dataclass
class Repositories:
    """Repositories sharing one session (one unit of work)"""
    sync_jobs: SyncJobRepository
    raw_emails: RawEmailRepository
    transactions: TransactionRepository
    statements: StatementRepository
    merchant_rules: MerchantRuleRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "Repositories":
        return cls(
            sync_jobs=SyncJobRepository(session),
            raw_emails=RawEmailRepository(session),
            transactions=TransactionRepository(session),
            statements=StatementRepository(session),
            merchant_rules=MerchantRuleRepository(session),
        )


def session_repositories(session_factory: Callable[[], AsyncSession]):
    """
    Build a scope factory: each `async with scope() as repos` opens a fresh
    session, so concurrent background work never shares one.
    """
    @asynccontextmanager
    async def scope() -> AsyncIterator[Repositories]:
        async with session_factory() as session:
            yield Repositories.for_session(session)

    return scope


__all__ = [
    "Repositories",
    "session_repositories",
    "SyncJobRepository",
    "RawEmailRepository",
    "TransactionRepository",
    "TransactionFilters",
    "StatementRepository",
    "MerchantRuleRepository",
]
