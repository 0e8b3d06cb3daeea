"""
Static credit card metadata keyed by the card's last four digits.

Two configured cards sharing the same last four digits cannot be told apart;
the later entry in the file wins and a warning is logged at load time.
"""
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Mapping, Optional
import json

from spendsync.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "credit_cards.json"


@dataclass(frozen=True)
class CardMilestone:
    id: str
    type: str  # "spend" or "fee waiver"
    description: str
    amount: float
    durations: List[str]
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reward_points: Optional[int] = None

    @property
    def duration(self) -> str:
        return self.durations[0] if self.durations else "yearly"


@dataclass(frozen=True)
class ResolvedCard:
    last4: str
    card_name: str
    bank: str
    icon: str
    milestones: List[CardMilestone] = field(default_factory=list)


def _parse_milestone(milestone_id: str, raw: Mapping) -> CardMilestone:
    start = raw.get("milestone_start_date")
    end = raw.get("milestone_end_date")
    return CardMilestone(
        id=milestone_id,
        type=raw.get("type", "spend"),
        description=raw.get("description", ""),
        amount=float(raw["amount"]),
        durations=list(raw.get("durations") or ["yearly"]),
        start_date=date.fromisoformat(start) if start else None,
        end_date=date.fromisoformat(end) if end else None,
        reward_points=raw.get("reward_points"),
    )


class CardResolver:
    def __init__(self, cards: Mapping[str, Mapping]):
        self._cards: Dict[str, ResolvedCard] = {}
        for card_id, raw in cards.items():
            last4 = str(raw["last_four_digits"])
            if last4 in self._cards:
                logger.warning(f"Card {card_id} shares last four digits {last4} with another configured card")
            self._cards[last4] = ResolvedCard(
                last4=last4,
                card_name=raw.get("name", f"Card ••{last4}"),
                bank=raw.get("bank", ""),
                icon=raw.get("icon", ""),
                milestones=[_parse_milestone(mid, m) for mid, m in (raw.get("milestones") or {}).items()],
            )

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "CardResolver":
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        if not config_path.exists():
            logger.warning(f"Card config {config_path} not found; card names fall back to last four digits")
            return cls({})
        with open(config_path, encoding="utf-8") as f:
            return cls(json.load(f))

    def resolve(self, last4: Optional[str]) -> Optional[ResolvedCard]:
        if not last4:
            return None
        return self._cards.get(last4)

    def resolve_card_name(self, last4: Optional[str]) -> Optional[str]:
        """Configured display name, else "Card ••1234"."""
        if not last4:
            return None
        card = self._cards.get(last4)
        return card.card_name if card else f"Card ••{last4}"

    def all_cards(self) -> List[ResolvedCard]:
        return list(self._cards.values())
