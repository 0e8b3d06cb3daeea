from spendsync.db import Base
from spendsync.models.sync_job import SyncJob, JobStatus, JobKind, REPROCESS_QUERY
from spendsync.models.raw_email import RawEmail
from spendsync.models.statement import Statement
from spendsync.models.transaction import Transaction, CategorizationMethod
from spendsync.models.merchant_category_rule import MerchantCategoryRule

__all__ = [
    "Base",
    "SyncJob",
    "JobStatus",
    "JobKind",
    "REPROCESS_QUERY",
    "RawEmail",
    "Statement",
    "Transaction",
    "CategorizationMethod",
    "MerchantCategoryRule",
]
