"""
Transaction persistence: idempotent upserts, filtered listing, bulk edits
and the time-windowed aggregation queries behind the analytics endpoints.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence
import uuid

from sqlalchemy import and_, case, func, update, desc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from mailparse.records import ParsedTransaction
from mailparse.utils import merchant_key
from spendsync.models.transaction import Transaction, CategorizationMethod
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

DEBITED = "debited"
CREDITED = "credited"

# Columns a manual edit may change
EDITABLE_FIELDS = frozenset({
    "category", "subcategory", "category_metadata", "merchant", "transaction_mode",
    "card_last4", "card_name", "requires_review",
})
CATEGORY_FIELDS = ("category", "subcategory", "confidence", "categorization_method", "requires_review", "category_metadata")


@dataclass
class TransactionFilters:
    category: Optional[str] = None
    transaction_mode: Optional[str] = None
    transaction_type: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    requires_review: Optional[bool] = None
    card_last4: Optional[str] = None


class TransactionQueryBuilder:
    """Builder class for constructing transaction filter conditions."""

    def __init__(self, user_id: uuid.UUID):
        self.conditions = [Transaction.user_id == user_id]

    def with_filters(self, filters: Optional[TransactionFilters]) -> 'TransactionQueryBuilder':
        if filters is None:
            return self
        if filters.category:
            self.conditions.append(Transaction.category == filters.category)
        if filters.transaction_mode:
            self.conditions.append(Transaction.transaction_mode == filters.transaction_mode)
        if filters.transaction_type:
            self.conditions.append(Transaction.transaction_type == filters.transaction_type)
        if filters.card_last4:
            self.conditions.append(Transaction.card_last4 == filters.card_last4)
        if filters.requires_review is not None:
            self.conditions.append(Transaction.requires_review.is_(filters.requires_review))
        if filters.search:
            self.conditions.append(Transaction.merchant.ilike(f"%{filters.search}%"))
        return self.with_date_range(filters.date_from, filters.date_to)

    def with_date_range(self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> 'TransactionQueryBuilder':
        """Half-open window [date_from, date_to)"""
        if date_from:
            self.conditions.append(Transaction.transaction_date >= date_from)
        if date_to:
            self.conditions.append(Transaction.transaction_date < date_to)
        return self

    def debits_only(self) -> 'TransactionQueryBuilder':
        self.conditions.append(Transaction.transaction_type == DEBITED)
        return self

    def build(self):
        return and_(*self.conditions)


def _to_row(txn: ParsedTransaction) -> dict:
    return {
        "id": txn.id,
        "user_id": txn.user_id,
        "dedupe_hash": txn.dedupe_hash,
        "source_email_id": txn.source_email_id,
        "statement_id": txn.statement_id,
        "merchant": txn.merchant,
        "merchant_raw": txn.merchant_raw,
        "vpa": txn.vpa,
        "amount": txn.amount,
        "currency": txn.currency,
        "transaction_date": txn.transaction_date,
        "transaction_type": txn.transaction_type,
        "transaction_mode": txn.transaction_mode,
        "card_last4": txn.card_last4,
        "card_name": txn.card_name,
        "category": txn.category,
        "subcategory": txn.subcategory,
        "confidence": txn.confidence,
        "categorization_method": txn.categorization_method,
        "requires_review": txn.requires_review,
        "category_metadata": txn.category_metadata or {},
    }


class TransactionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def upsert_many(self, transactions: Sequence[ParsedTransaction]) -> int:
        """
        Insert or refresh transactions keyed on (user, dedupe hash).

        Rows a user categorized by hand keep their category fields.

        Returns:
            Number of distinct transactions written
        """
        unique: Dict[str, ParsedTransaction] = {}
        for txn in transactions:
            unique[txn.dedupe_hash] = txn
        if not unique:
            return 0

        stmt = pg_insert(Transaction).values([_to_row(t) for t in unique.values()])
        excluded = stmt.excluded
        is_manual = Transaction.categorization_method == CategorizationMethod.MANUAL.value
        set_ = {
            "merchant": excluded.merchant,
            "merchant_raw": excluded.merchant_raw,
            "vpa": excluded.vpa,
            "amount": excluded.amount,
            "currency": excluded.currency,
            "transaction_date": excluded.transaction_date,
            "transaction_type": excluded.transaction_type,
            "transaction_mode": excluded.transaction_mode,
            "card_last4": excluded.card_last4,
            "card_name": excluded.card_name,
            "source_email_id": excluded.source_email_id,
            "updated_at": func.now(),
        }
        for field in CATEGORY_FIELDS:
            set_[field] = case((is_manual, getattr(Transaction, field)), else_=getattr(excluded, field))
        stmt = stmt.on_conflict_do_update(
            index_elements=[Transaction.user_id, Transaction.dedupe_hash],
            set_=set_,
        )
        await self.session.execute(stmt)
        await self.session.commit()
        return len(unique)

    async def update_by_id(self, user_id: uuid.UUID, transaction_id: uuid.UUID, fields: dict) -> Optional[Transaction]:
        values = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS or k in CATEGORY_FIELDS}
        if not values:
            return await self.find_by_id(user_id, transaction_id)
        result = await self.session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.user_id == user_id)
            .values(**values, updated_at=func.now())
            .returning(Transaction)
        )
        row = result.scalar_one_or_none()
        await self.session.commit()
        return row

    async def bulk_update_by_ids(self, user_id: uuid.UUID, transaction_ids: Sequence[uuid.UUID], fields: dict) -> int:
        values = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS or k in CATEGORY_FIELDS}
        if not values or not transaction_ids:
            return 0
        result = await self.session.execute(
            update(Transaction)
            .where(Transaction.user_id == user_id, Transaction.id.in_(list(transaction_ids)))
            .values(**values, updated_at=func.now())
        )
        await self.session.commit()
        return result.rowcount

    async def bulk_categorize_by_merchant(
        self,
        user_id: uuid.UUID,
        merchant: str,
        category: str,
        subcategory: str,
        category_metadata: dict,
    ) -> int:
        """Assign a category to every transaction of a merchant (case-insensitive)"""
        result = await self.session.execute(
            update(Transaction)
            .where(Transaction.user_id == user_id, func.lower(Transaction.merchant) == merchant_key(merchant))
            .values(
                category=category,
                subcategory=subcategory,
                category_metadata=category_metadata,
                confidence=1.0,
                categorization_method=CategorizationMethod.RULE.value,
                requires_review=False,
                updated_at=func.now(),
            )
        )
        await self.session.commit()
        return result.rowcount

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def find_by_id(self, user_id: uuid.UUID, transaction_id: uuid.UUID) -> Optional[Transaction]:
        result = await self.session.execute(
            select(Transaction).filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_by_user(
        self,
        user_id: uuid.UUID,
        filters: Optional[TransactionFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Transaction]:
        condition = TransactionQueryBuilder(user_id).with_filters(filters).build()
        result = await self.session.execute(
            select(Transaction)
            .filter(condition)
            .order_by(Transaction.transaction_date.desc(), Transaction.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_by_user(self, user_id: uuid.UUID, filters: Optional[TransactionFilters] = None) -> int:
        condition = TransactionQueryBuilder(user_id).with_filters(filters).build()
        result = await self.session.execute(select(func.count(Transaction.id)).filter(condition))
        return result.scalar_one()

    async def get_distinct_merchants(self, user_id: uuid.UUID) -> List[dict]:
        """Merchants with their spend, count and most common category"""
        key = func.lower(Transaction.merchant)
        per_category = (
            select(
                key.label("merchant_key"),
                func.min(Transaction.merchant).label("merchant"),
                Transaction.category,
                func.count(Transaction.id).label("count"),
                func.sum(Transaction.amount).label("total"),
            )
            .filter(Transaction.user_id == user_id)
            .group_by(key, Transaction.category)
        )
        rows = (await self.session.execute(per_category)).all()

        merchants: Dict[str, dict] = {}
        for row in rows:
            entry = merchants.setdefault(row.merchant_key, {
                "merchant": row.merchant,
                "transaction_count": 0,
                "total_amount": 0.0,
                "category": row.category,
                "_best": 0,
            })
            entry["transaction_count"] += row.count
            entry["total_amount"] += float(row.total or 0)
            if row.count > entry["_best"]:
                entry["_best"] = row.count
                entry["category"] = row.category
        result = []
        for entry in merchants.values():
            entry.pop("_best")
            entry["total_amount"] = round(entry["total_amount"], 2)
            result.append(entry)
        result.sort(key=lambda e: (-e["transaction_count"], e["merchant"]))
        return result

    async def get_historical_categories(self, user_id: uuid.UUID) -> List[dict]:
        """
        Per-merchant category counts from user-asserted categorizations.

        Only manual edits count as history, so reprocessing never learns from
        its own earlier inferences.
        """
        key = func.lower(Transaction.merchant)
        result = await self.session.execute(
            select(
                key.label("merchant_key"),
                Transaction.category,
                Transaction.subcategory,
                func.count(Transaction.id).label("count"),
            )
            .filter(
                Transaction.user_id == user_id,
                Transaction.categorization_method == CategorizationMethod.MANUAL.value,
                Transaction.category != "uncategorized",
            )
            .group_by(key, Transaction.category, Transaction.subcategory)
        )
        return [
            {"merchant_key": r.merchant_key, "category": r.category, "subcategory": r.subcategory, "count": r.count}
            for r in result.all()
        ]

    # ==========================================================================
    # Aggregations (debits unless stated otherwise; windows are [start, end))
    # ==========================================================================

    async def spend_by_category(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        result = await self.session.execute(
            select(
                Transaction.category,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(condition)
            .group_by(Transaction.category)
            .order_by(desc("total"))
        )
        return [{"category": r.category, "total": float(r.total or 0), "count": r.count} for r in result.all()]

    async def spend_by_mode(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        result = await self.session.execute(
            select(
                Transaction.transaction_mode,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(condition)
            .group_by(Transaction.transaction_mode)
            .order_by(desc("total"))
        )
        return [{"mode": r.transaction_mode, "total": float(r.total or 0), "count": r.count} for r in result.all()]

    async def spend_by_card(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        builder = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only()
        builder.conditions.append(Transaction.transaction_mode == "credit_card")
        builder.conditions.append(Transaction.card_last4.isnot(None))
        result = await self.session.execute(
            select(
                Transaction.card_last4,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(builder.build())
            .group_by(Transaction.card_last4)
            .order_by(desc("total"))
        )
        return [{"card_last4": r.card_last4, "total": float(r.total or 0), "count": r.count} for r in result.all()]

    async def spend_by_day_of_week(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        dow = func.extract("dow", Transaction.transaction_date)
        result = await self.session.execute(
            select(
                dow.label("dow"),
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(condition)
            .group_by(dow)
            .order_by(dow)
        )
        return [{"day_of_week": int(r.dow), "total": float(r.total or 0), "count": r.count} for r in result.all()]

    async def daily_spend(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        day = func.date_trunc("day", Transaction.transaction_date)
        result = await self.session.execute(
            select(day.label("day"), func.sum(Transaction.amount).label("total"))
            .filter(condition)
            .group_by(day)
            .order_by(day)
        )
        return [{"day": r.day.date(), "total": float(r.total or 0)} for r in result.all()]

    async def period_totals(self, user_id: uuid.UUID, start: datetime, end: datetime) -> dict:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).build()
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(case((Transaction.transaction_type == DEBITED, Transaction.amount), else_=0)), 0).label("debited"),
                func.coalesce(func.sum(case((Transaction.transaction_type == CREDITED, Transaction.amount), else_=0)), 0).label("credited"),
                func.count(Transaction.id).label("count"),
            ).filter(condition)
        )
        row = result.one()
        return {"debited": float(row.debited), "credited": float(row.credited), "count": row.count}

    async def top_merchants(self, user_id: uuid.UUID, start: datetime, end: datetime, limit: int = 10) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        result = await self.session.execute(
            select(
                Transaction.merchant,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(condition)
            .group_by(Transaction.merchant)
            .order_by(desc("total"))
            .limit(limit)
        )
        return [{"merchant": r.merchant, "total": float(r.total or 0), "count": r.count} for r in result.all()]

    async def largest_transactions(self, user_id: uuid.UUID, start: datetime, end: datetime, limit: int = 10) -> List[Transaction]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        result = await self.session.execute(
            select(Transaction).filter(condition).order_by(Transaction.amount.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def monthly_trend(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).build()
        month = func.date_trunc("month", Transaction.transaction_date)
        result = await self.session.execute(
            select(
                month.label("month"),
                func.coalesce(func.sum(case((Transaction.transaction_type == DEBITED, Transaction.amount), else_=0)), 0).label("debited"),
                func.coalesce(func.sum(case((Transaction.transaction_type == CREDITED, Transaction.amount), else_=0)), 0).label("credited"),
            )
            .filter(condition)
            .group_by(month)
            .order_by(month)
        )
        return [
            {"month": r.month.strftime("%Y-%m"), "debited": float(r.debited), "credited": float(r.credited)}
            for r in result.all()
        ]

    async def daily_totals(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        """Debited and credited totals per calendar day"""
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).build()
        day = func.date_trunc("day", Transaction.transaction_date)
        result = await self.session.execute(
            select(
                day.label("day"),
                func.coalesce(func.sum(case((Transaction.transaction_type == DEBITED, Transaction.amount), else_=0)), 0).label("debited"),
                func.coalesce(func.sum(case((Transaction.transaction_type == CREDITED, Transaction.amount), else_=0)), 0).label("credited"),
            )
            .filter(condition)
            .group_by(day)
            .order_by(day)
        )
        return [
            {"day": r.day.date(), "debited": float(r.debited), "credited": float(r.credited)}
            for r in result.all()
        ]

    async def monthly_category_spend(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        condition = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only().build()
        month = func.date_trunc("month", Transaction.transaction_date)
        result = await self.session.execute(
            select(
                month.label("month"),
                Transaction.category,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(condition)
            .group_by(month, Transaction.category)
            .order_by(month, desc("total"))
        )
        return [
            {"month": r.month.strftime("%Y-%m"), "category": r.category, "total": float(r.total or 0), "count": r.count}
            for r in result.all()
        ]

    async def spend_by_card_category(self, user_id: uuid.UUID, start: datetime, end: datetime) -> List[dict]:
        builder = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only()
        builder.conditions.append(Transaction.transaction_mode == "credit_card")
        builder.conditions.append(Transaction.card_last4.isnot(None))
        result = await self.session.execute(
            select(
                Transaction.card_last4,
                Transaction.category,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(builder.build())
            .group_by(Transaction.card_last4, Transaction.category)
            .order_by(Transaction.card_last4, desc("total"))
        )
        return [
            {"card_last4": r.card_last4, "category": r.category, "total": float(r.total or 0), "count": r.count}
            for r in result.all()
        ]

    async def top_vpas(self, user_id: uuid.UUID, start: datetime, end: datetime, limit: int = 10) -> List[dict]:
        builder = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only()
        builder.conditions.append(Transaction.vpa.isnot(None))
        vpa = func.lower(Transaction.vpa)
        result = await self.session.execute(
            select(
                vpa.label("vpa"),
                func.max(Transaction.merchant).label("merchant"),
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .filter(builder.build())
            .group_by(vpa)
            .order_by(desc("total"))
            .limit(limit)
        )
        return [
            {"vpa": r.vpa, "merchant": r.merchant, "total": float(r.total or 0), "count": r.count}
            for r in result.all()
        ]

    async def get_card_spend_for_ranges(
        self,
        user_id: uuid.UUID,
        card_last4s: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> List[dict]:
        """
        Daily credit-card spend per card over one covering window.

        Callers pass the union of all the milestone windows they need and
        slice the daily buckets in memory.
        """
        if not card_last4s:
            return []
        builder = TransactionQueryBuilder(user_id).with_date_range(start, end).debits_only()
        builder.conditions.append(Transaction.transaction_mode == "credit_card")
        builder.conditions.append(Transaction.card_last4.in_(list(card_last4s)))
        day = func.date_trunc("day", Transaction.transaction_date)
        result = await self.session.execute(
            select(Transaction.card_last4, day.label("day"), func.sum(Transaction.amount).label("total"))
            .filter(builder.build())
            .group_by(Transaction.card_last4, day)
        )
        return [{"card_last4": r.card_last4, "day": r.day.date(), "total": float(r.total or 0)} for r in result.all()]
