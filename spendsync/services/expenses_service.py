"""
Expenses service layer: analytics reads (cached), transaction/merchant
management and the cache invalidation that goes with every mutation.
"""
from collections import deque
from datetime import datetime, timedelta, timezone
from itertools import accumulate
from typing import Callable, Iterable, List, Optional
import uuid

from spendsync.cards.milestones import MilestoneEngine
from spendsync.categorization.categorizer import TransactionCategorizer
from spendsync.exceptions import BadRequestError, NotFoundError
from spendsync.models.transaction import CategorizationMethod, Transaction
from spendsync.repositories.transaction_repository import TransactionFilters
from spendsync.services.analytics_cache import AnalyticsCache
from spendsync.utils.date_utils import compute_period_range, get_month_start_date, previous_range, subtract_months
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
VELOCITY_WINDOW_DAYS = 7


def transaction_to_dict(txn: Transaction) -> dict:
    return {
        "id": str(txn.id),
        "merchant": txn.merchant,
        "merchant_raw": txn.merchant_raw,
        "vpa": txn.vpa,
        "amount": float(txn.amount),
        "currency": txn.currency,
        "transaction_date": txn.transaction_date.isoformat() if txn.transaction_date else None,
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
        "source_email_id": str(txn.source_email_id) if txn.source_email_id else None,
    }


def raw_email_to_dict(email, include_body: bool = False) -> dict:
    data = {
        "id": str(email.id),
        "provider_message_id": email.provider_message_id,
        "from_address": email.from_address,
        "subject": email.subject,
        "snippet": email.snippet,
        "received_at": email.received_at.isoformat() if email.received_at else None,
        "processed": email.processed,
    }
    if include_body:
        data["body_text"] = email.body_text
        data["body_html"] = email.body_html
    return data


def percentage_change(current: float, previous: float) -> float:
    """Change rounded to 2dp; 100 when growing from zero"""
    if previous > 0:
        return round((current - previous) / previous * 10000) / 100
    return 100.0 if current > 0 else 0.0


class ExpensesService:
    def __init__(
        self,
        repositories: Callable,
        cache: AnalyticsCache,
        categorizer: TransactionCategorizer,
        milestones: MilestoneEngine,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._repositories = repositories
        self.cache = cache
        self.categorizer = categorizer
        self.milestones = milestones
        self._clock = clock

    def _range(self, period: str):
        try:
            return compute_period_range(period, self._clock())
        except ValueError as e:
            raise BadRequestError(str(e))

    # ==========================================================================
    # Analytics (cached per user)
    # ==========================================================================

    async def spending_summary(self, user_id: uuid.UUID, period: str) -> dict:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                totals = await repos.transactions.period_totals(user_id, start, end)
            return {
                "period": period,
                "total_spent": totals["debited"],
                "total_received": totals["credited"],
                "net": round(totals["credited"] - totals["debited"], 2),
                "transaction_count": totals["count"],
            }

        return await self.cache.get_or_compute(user_id, "spending_summary", {"period": period}, compute)

    async def spending_by_category(self, user_id: uuid.UUID, period: str) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.spend_by_category(user_id, start, end)
            grand_total = sum(r["total"] for r in rows)
            return [
                {
                    **row,
                    "percentage": round(row["total"] / grand_total * 100, 2) if grand_total else 0.0,
                    "category_metadata": self.categorizer.category_metadata(row["category"]),
                }
                for row in rows
            ]

        return await self.cache.get_or_compute(user_id, "spending_by_category", {"period": period}, compute)

    async def spending_by_mode(self, user_id: uuid.UUID, period: str) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                return await repos.transactions.spend_by_mode(user_id, start, end)

        return await self.cache.get_or_compute(user_id, "spending_by_mode", {"period": period}, compute)

    async def spending_by_card(self, user_id: uuid.UUID, period: str) -> List[dict]:
        """Per-card spend decorated with card metadata and milestone progress"""
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.spend_by_card(user_id, start, end)
                return await self.milestones.progress_for_cards(repos.transactions, user_id, rows, now=self._clock())

        return await self.cache.get_or_compute(user_id, "spending_by_card", {"period": period}, compute)

    async def spending_by_day_of_week(self, user_id: uuid.UUID, period: str) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.spend_by_day_of_week(user_id, start, end)
            by_day = {row["day_of_week"]: row for row in rows}
            return [
                {
                    "day_of_week": index,
                    "day_name": name,
                    "total": by_day.get(index, {}).get("total", 0.0),
                    "count": by_day.get(index, {}).get("count", 0),
                }
                for index, name in enumerate(DAY_NAMES)
            ]

        return await self.cache.get_or_compute(user_id, "spending_by_day_of_week", {"period": period}, compute)

    async def cumulative_spend(self, user_id: uuid.UUID, period: str) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.daily_spend(user_id, start, end)
            running = accumulate(row["total"] for row in rows)
            return [
                {"date": row["day"].isoformat(), "daily": row["total"], "cumulative": round(total, 2)}
                for row, total in zip(rows, running)
            ]

        return await self.cache.get_or_compute(user_id, "cumulative_spend", {"period": period}, compute)

    async def period_comparison(self, user_id: uuid.UUID, period: str) -> dict:
        start, end = self._range(period)
        prev_start, prev_end = previous_range(start, end)

        def summarize(totals: dict) -> dict:
            count = totals["count"]
            return {
                "total_spent": totals["debited"],
                "total_received": totals["credited"],
                "transaction_count": count,
                "avg_transaction": round(totals["debited"] / count, 2) if count else 0.0,
            }

        async def compute():
            async with self._repositories() as repos:
                current = summarize(await repos.transactions.period_totals(user_id, start, end))
                previous = summarize(await repos.transactions.period_totals(user_id, prev_start, prev_end))
            return {
                "current_period": current,
                "previous_period": previous,
                "changes": {
                    "spent_change": percentage_change(current["total_spent"], previous["total_spent"]),
                    "received_change": percentage_change(current["total_received"], previous["total_received"]),
                    "count_change": percentage_change(current["transaction_count"], previous["transaction_count"]),
                    "avg_change": percentage_change(current["avg_transaction"], previous["avg_transaction"]),
                },
            }

        return await self.cache.get_or_compute(user_id, "period_comparison", {"period": period}, compute)

    async def top_merchants(self, user_id: uuid.UUID, period: str, limit: int = 10) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                return await repos.transactions.top_merchants(user_id, start, end, limit)

        return await self.cache.get_or_compute(user_id, "top_merchants", {"period": period, "limit": limit}, compute)

    async def largest_transactions(self, user_id: uuid.UUID, period: str, limit: int = 10) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.largest_transactions(user_id, start, end, limit)
            return [transaction_to_dict(row) for row in rows]

        return await self.cache.get_or_compute(user_id, "largest_transactions", {"period": period, "limit": limit}, compute)

    async def monthly_trend(self, user_id: uuid.UUID, months: int = 12) -> List[dict]:
        now = self._clock()
        start = subtract_months(get_month_start_date(now), months - 1)

        async def compute():
            async with self._repositories() as repos:
                return await repos.transactions.monthly_trend(user_id, start, now)

        return await self.cache.get_or_compute(user_id, "monthly_trend", {"months": months}, compute)

    async def daily_spending(self, user_id: uuid.UUID, period: str) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.daily_totals(user_id, start, end)
            return [
                {"date": row["day"].isoformat(), "debited": row["debited"], "credited": row["credited"]}
                for row in rows
            ]

        return await self.cache.get_or_compute(user_id, "daily_spending", {"period": period}, compute)

    async def spending_velocity(self, user_id: uuid.UUID, period: str, window_days: int = VELOCITY_WINDOW_DAYS) -> List[dict]:
        """
        Trailing average of daily spend for every day of the period.

        Days without spend count as zero; the first days of the period average
        over the days seen so far.
        """
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.daily_spend(user_id, start, end)
            spend_by_day = {row["day"]: row["total"] for row in rows}
            window: deque = deque(maxlen=window_days)
            result = []
            day = start.date()
            while day <= end.date():
                window.append(spend_by_day.get(day, 0.0))
                result.append({"date": day.isoformat(), "velocity": round(sum(window) / len(window), 2)})
                day += timedelta(days=1)
            return result

        return await self.cache.get_or_compute(
            user_id, "spending_velocity", {"period": period, "window_days": window_days}, compute
        )

    async def category_trend(self, user_id: uuid.UUID, months: int = 6) -> List[dict]:
        now = self._clock()
        start = subtract_months(get_month_start_date(now), months - 1)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.monthly_category_spend(user_id, start, now)
            return [
                {
                    "month": row["month"],
                    "category": row["category"],
                    "display_name": self.categorizer.display_name(row["category"]),
                    "amount": row["total"],
                    "count": row["count"],
                }
                for row in rows
            ]

        return await self.cache.get_or_compute(user_id, "category_trend", {"months": months}, compute)

    async def savings_rate(self, user_id: uuid.UUID, months: int = 12) -> List[dict]:
        """Per month: credits as income, debits as expenses, savings as a share of income"""
        now = self._clock()
        start = subtract_months(get_month_start_date(now), months - 1)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.monthly_trend(user_id, start, now)
            result = []
            for row in rows:
                income, expenses = row["credited"], row["debited"]
                savings = round(income - expenses, 2)
                result.append({
                    "month": row["month"],
                    "income": income,
                    "expenses": expenses,
                    "savings": savings,
                    "savings_rate": round(savings / income * 100, 2) if income > 0 else 0.0,
                })
            return result

        return await self.cache.get_or_compute(user_id, "savings_rate", {"months": months}, compute)

    async def card_category_breakdown(self, user_id: uuid.UUID, period: str) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.spend_by_card_category(user_id, start, end)
            return [
                {
                    "card_last4": row["card_last4"],
                    "card_name": self.milestones.card_resolver.resolve_card_name(row["card_last4"]),
                    "category": row["category"],
                    "display_name": self.categorizer.display_name(row["category"]),
                    "amount": row["total"],
                    "count": row["count"],
                }
                for row in rows
            ]

        return await self.cache.get_or_compute(user_id, "card_category_breakdown", {"period": period}, compute)

    async def top_vpas(self, user_id: uuid.UUID, period: str, limit: int = 10) -> List[dict]:
        start, end = self._range(period)

        async def compute():
            async with self._repositories() as repos:
                rows = await repos.transactions.top_vpas(user_id, start, end, limit)
            return [
                {"vpa": row["vpa"], "merchant": row["merchant"], "amount": row["total"], "count": row["count"]}
                for row in rows
            ]

        return await self.cache.get_or_compute(user_id, "top_vpas", {"period": period, "limit": limit}, compute)

    async def milestone_etas(self, user_id: uuid.UUID) -> List[dict]:
        async def compute():
            async with self._repositories() as repos:
                return await self.milestones.etas(repos.transactions, user_id, now=self._clock())

        return await self.cache.get_or_compute(user_id, "milestone_etas", None, compute)

    # ==========================================================================
    # Non-cached reads
    # ==========================================================================

    async def list_transactions(
        self,
        user_id: uuid.UUID,
        filters: Optional[TransactionFilters] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> dict:
        async with self._repositories() as repos:
            items = await repos.transactions.list_by_user(user_id, filters, limit=page_size, offset=(page - 1) * page_size)
            total = await repos.transactions.count_by_user(user_id, filters)
        return {"items": [transaction_to_dict(t) for t in items], "total": total, "page": page, "page_size": page_size}

    async def get_transaction(self, user_id: uuid.UUID, transaction_id: uuid.UUID) -> dict:
        async with self._repositories() as repos:
            txn = await repos.transactions.find_by_id(user_id, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        return transaction_to_dict(txn)

    async def list_raw_emails(self, user_id: uuid.UUID, unprocessed_only: bool = False, page: int = 1, page_size: int = 50) -> dict:
        async with self._repositories() as repos:
            rows = await repos.raw_emails.list_by_user(
                user_id, unprocessed_only=unprocessed_only, limit=page_size, offset=(page - 1) * page_size
            )
            total = await repos.raw_emails.count_by_user(user_id, unprocessed_only=unprocessed_only)
        items = [raw_email_to_dict(row) for row in rows]
        return {"items": items, "total": total, "page": page, "page_size": page_size}

    async def get_raw_email(self, user_id: uuid.UUID, email_id: uuid.UUID) -> dict:
        async with self._repositories() as repos:
            email = await repos.raw_emails.find_by_id(user_id, email_id)
        if email is None:
            raise NotFoundError("Email not found")
        return raw_email_to_dict(email, include_body=True)

    async def distinct_merchants(self, user_id: uuid.UUID) -> List[dict]:
        async with self._repositories() as repos:
            return await repos.transactions.get_distinct_merchants(user_id)

    async def list_merchant_rules(self, user_id: uuid.UUID) -> List[dict]:
        async with self._repositories() as repos:
            rules = await repos.merchant_rules.find_all_by_user(user_id)
        return [
            {
                "merchant": rule.merchant,
                "category": rule.category,
                "subcategory": rule.subcategory,
                "category_metadata": rule.category_metadata or {},
            }
            for rule in rules
        ]

    async def list_statements(self, user_id: uuid.UUID, limit: int = 24) -> List[dict]:
        async with self._repositories() as repos:
            rows = await repos.statements.list_by_user(user_id, limit)
        return [
            {
                "id": str(row.id),
                "issuer": row.issuer,
                "period_start": row.period_start.isoformat(),
                "period_end": row.period_end.isoformat(),
                "total_due": float(row.total_due),
                "minimum_due": float(row.minimum_due) if row.minimum_due is not None else None,
                "due_date": row.due_date.isoformat() if row.due_date else None,
                "currency": row.currency,
            }
            for row in rows
        ]

    # ==========================================================================
    # Mutations (each one invalidates the user's analytics)
    # ==========================================================================

    def _manual_category_fields(self, category: str, subcategory: Optional[str] = None) -> dict:
        if not category or not category.strip():
            raise BadRequestError("Category must not be empty")
        return {
            "category": category,
            "subcategory": subcategory or category,
            "category_metadata": self.categorizer.category_metadata(category),
            "confidence": 1.0,
            "categorization_method": CategorizationMethod.MANUAL.value,
            "requires_review": False,
        }

    async def update_transaction(self, user_id: uuid.UUID, transaction_id: uuid.UUID, changes: dict) -> dict:
        fields = {k: v for k, v in changes.items() if v is not None}
        if "category" in fields:
            fields.update(self._manual_category_fields(fields["category"], fields.get("subcategory")))
        async with self._repositories() as repos:
            txn = await repos.transactions.update_by_id(user_id, transaction_id, fields)
        if txn is None:
            raise NotFoundError("Transaction not found")
        self.cache.invalidate_user(user_id)
        return transaction_to_dict(txn)

    async def bulk_update_transactions(
        self,
        user_id: uuid.UUID,
        transaction_ids: Iterable[uuid.UUID],
        category: str,
        subcategory: Optional[str] = None,
    ) -> int:
        ids = list(transaction_ids)
        if not ids:
            raise BadRequestError("No transactions selected")
        async with self._repositories() as repos:
            updated = await repos.transactions.bulk_update_by_ids(
                user_id, ids, self._manual_category_fields(category, subcategory)
            )
        self.cache.invalidate_user(user_id)
        logger.info(f"Bulk updated {updated} transactions for user {user_id}")
        return updated

    async def bulk_categorize_merchant(
        self,
        user_id: uuid.UUID,
        merchant: str,
        category: str,
        subcategory: Optional[str] = None,
    ) -> int:
        """Save a merchant rule and apply it to all of the merchant's transactions"""
        if not merchant or not merchant.strip():
            raise BadRequestError("Merchant must not be empty")
        if not category or not category.strip():
            raise BadRequestError("Category must not be empty")
        subcategory = subcategory or category
        metadata = self.categorizer.category_metadata(category)
        async with self._repositories() as repos:
            await repos.merchant_rules.upsert(user_id, merchant, category, subcategory, metadata)
            updated = await repos.transactions.bulk_categorize_by_merchant(user_id, merchant, category, subcategory, metadata)
        self.cache.invalidate_user(user_id)
        logger.info(f"Categorized {updated} transactions of {merchant!r} as {category} for user {user_id}")
        return updated

    async def delete_merchant_rule(self, user_id: uuid.UUID, merchant: str) -> None:
        async with self._repositories() as repos:
            deleted = await repos.merchant_rules.delete_by_merchant(user_id, merchant)
        if not deleted:
            raise NotFoundError("Merchant rule not found")
        self.cache.invalidate_user(user_id)
