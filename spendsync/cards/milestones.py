"""
Card milestone progress and completion forecasting.

Windows:
- quarterly: current calendar quarter, [quarter start, next quarter start)
- yearly with explicit dates: start 00:00:00 through end 23:59:59.999
- yearly without dates: current calendar year
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
import math
import uuid

from spendsync.cards.card_resolver import CardMilestone, CardResolver, ResolvedCard
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

QUARTER_NAMES = ["Jan–Mar", "Apr–Jun", "Jul–Sep", "Oct–Dec"]


@dataclass(frozen=True)
class MilestoneWindow:
    start: datetime
    end: datetime
    label: str

    def contains_day(self, day: date) -> bool:
        return self.start.date() <= day and datetime.combine(day, time.min, tzinfo=timezone.utc) < self.end


def _format_day(d: date) -> str:
    return f"{d.day} {d.strftime('%b')} {d.year}"


def milestone_window(milestone: CardMilestone, now: datetime) -> MilestoneWindow:
    if milestone.duration == "quarterly":
        quarter = (now.month - 1) // 3
        start = datetime(now.year, quarter * 3 + 1, 1, tzinfo=timezone.utc)
        if quarter == 3:
            end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(now.year, quarter * 3 + 4, 1, tzinfo=timezone.utc)
        return MilestoneWindow(start, end, f"Q{quarter + 1} {now.year} ({QUARTER_NAMES[quarter]})")

    if milestone.start_date and milestone.end_date:
        start = datetime.combine(milestone.start_date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(milestone.end_date, time(23, 59, 59, 999000), tzinfo=timezone.utc)
        return MilestoneWindow(start, end, f"{_format_day(milestone.start_date)} – {_format_day(milestone.end_date)}")

    start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
    end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return MilestoneWindow(start, end, f"FY {now.year}")


def milestone_progress(target: float, spend: float) -> Tuple[float, float]:
    """
    Returns:
        (percentage clamped to [0, 100] and rounded to 2dp, remaining >= 0)
    """
    if target <= 0:
        return 100.0, 0.0
    percentage = max(0.0, min(100.0, spend / target * 100))
    return round(percentage, 2), round(max(0.0, target - spend), 2)


class MilestoneEngine:
    def __init__(self, card_resolver: CardResolver):
        self.card_resolver = card_resolver

    async def _load_daily_spend(
        self,
        spend_source,
        user_id: uuid.UUID,
        targets: Sequence[Tuple[ResolvedCard, CardMilestone, MilestoneWindow]],
    ) -> Dict[str, List[Tuple[date, float]]]:
        """One spend query over the union of every window, bucketed per card"""
        if not targets:
            return {}
        card_last4s = sorted({card.last4 for card, _, _ in targets})
        start = min(window.start for _, _, window in targets)
        end = max(window.end for _, _, window in targets)
        rows = await spend_source.get_card_spend_for_ranges(user_id, card_last4s, start, end)

        daily: Dict[str, List[Tuple[date, float]]] = {}
        for row in rows:
            daily.setdefault(row["card_last4"], []).append((row["day"], float(row["total"])))
        return daily

    @staticmethod
    def _spend_in(daily: Sequence[Tuple[date, float]], window: MilestoneWindow) -> float:
        return round(sum(total for day, total in daily if window.contains_day(day)), 2)

    def _targets(self, cards: Sequence[ResolvedCard], now: datetime):
        return [
            (card, milestone, milestone_window(milestone, now))
            for card in cards
            for milestone in card.milestones
        ]

    async def progress_for_cards(
        self,
        spend_source,
        user_id: uuid.UUID,
        card_rows: Sequence[dict],
        now: Optional[datetime] = None,
    ) -> List[dict]:
        """
        Decorate spend-by-card rows with card metadata and milestone progress.

        Args:
            spend_source: object providing get_card_spend_for_ranges()
            user_id: Owner of the transactions
            card_rows: dicts with at least card_last4
            now: Evaluation time (defaults to current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        resolved = {row["card_last4"]: self.card_resolver.resolve(row["card_last4"]) for row in card_rows}
        targets = self._targets([card for card in resolved.values() if card], now)
        daily = await self._load_daily_spend(spend_source, user_id, targets)

        by_card: Dict[str, List[dict]] = {}
        for card, milestone, window in targets:
            spend = self._spend_in(daily.get(card.last4, []), window)
            percentage, remaining = milestone_progress(milestone.amount, spend)
            by_card.setdefault(card.last4, []).append({
                "id": milestone.id,
                "type": milestone.type,
                "description": milestone.description,
                "target_amount": milestone.amount,
                "current_spend": spend,
                "percentage": percentage,
                "remaining": remaining,
                "period_label": window.label,
                "period_start": window.start.date().isoformat(),
                "period_end": window.end.date().isoformat(),
            })

        enriched = []
        for row in card_rows:
            card = resolved.get(row["card_last4"])
            enriched.append({
                **row,
                "card_name": card.card_name if card else self.card_resolver.resolve_card_name(row["card_last4"]),
                "bank": card.bank if card else None,
                "icon": card.icon if card else None,
                "milestones": by_card.get(row["card_last4"]) or None,
            })
        return enriched

    async def etas(self, spend_source, user_id: uuid.UUID, now: Optional[datetime] = None) -> List[dict]:
        """Completion forecast for every configured milestone"""
        now = now or datetime.now(timezone.utc)
        targets = self._targets(self.card_resolver.all_cards(), now)
        daily = await self._load_daily_spend(spend_source, user_id, targets)

        results = []
        for card, milestone, window in targets:
            spend = self._spend_in(daily.get(card.last4, []), window)
            percentage, remaining = milestone_progress(milestone.amount, spend)

            elapsed_days = max(1.0, (now - window.start).total_seconds() / 86400)
            daily_rate = spend / elapsed_days
            days_remaining = None
            estimated_completion = None
            if daily_rate > 0 and remaining > 0:
                days_remaining = math.ceil(remaining / daily_rate)
                estimated_completion = now.date() + timedelta(days=days_remaining)
            elif remaining <= 0:
                days_remaining = 0

            period_end = window.end.date()
            on_track = remaining <= 0 or (estimated_completion is not None and estimated_completion <= period_end)
            results.append({
                "id": milestone.id,
                "card_last4": card.last4,
                "card_name": card.card_name,
                "description": milestone.description,
                "target_amount": milestone.amount,
                "current_spend": spend,
                "percentage": percentage,
                "daily_rate": round(daily_rate, 2),
                "days_remaining": days_remaining,
                "estimated_completion_date": estimated_completion.isoformat() if estimated_completion else None,
                "period_end": period_end.isoformat(),
                "on_track": on_track,
            })
        return results
