"""
Deterministic transaction categorization.

Precedence, highest first:
1. the user's own merchant rule
2. the user's historical (manually assigned) category for that merchant
3. built-in heuristics from payment signals (merchant tables, VPA, NEFT, keywords)
"""
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Tuple
import json
import re

from mailparse.records import ParsedTransaction
from mailparse.utils import merchant_key
from spendsync.models.transaction import CategorizationMethod
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

CONFIG_DIR = Path(__file__).parent / "config"
UNCATEGORIZED = "uncategorized"
DEFAULT_METADATA = {"icon": "question-circle", "color": "#BDC3C7", "parent": None}

RULE_CONFIDENCE = 1.0
HISTORICAL_BASE_CONFIDENCE = 0.6
HISTORICAL_SHARE_WEIGHT = 0.3


@dataclass(frozen=True)
class CategorizationResult:
    category: str
    subcategory: str
    confidence: float
    method: str
    requires_review: bool
    category_metadata: Dict


@dataclass(frozen=True)
class MerchantRule:
    merchant: str
    category: str
    subcategory: str
    category_metadata: Optional[Dict] = None


@dataclass(frozen=True)
class HistoricalCategory:
    category: str
    subcategory: str
    count: int
    share: float


@dataclass(frozen=True)
class CategorizationContext:
    """Per-user rules and history, loaded once per job and shared by every transaction"""
    merchant_rules: Mapping[str, MerchantRule]
    history: Mapping[str, HistoricalCategory]

    @classmethod
    def empty(cls) -> "CategorizationContext":
        return cls(merchant_rules={}, history={})

    @classmethod
    def build(cls, rules: Iterable, history_rows: Iterable[dict]) -> "CategorizationContext":
        """
        Args:
            rules: objects with merchant/category/subcategory/category_metadata
            history_rows: dicts with merchant_key, category, subcategory, count
        """
        rule_map = {
            merchant_key(r.merchant): MerchantRule(r.merchant, r.category, r.subcategory, r.category_metadata or None)
            for r in rules
        }

        grouped: Dict[str, List[dict]] = {}
        for row in history_rows:
            if row["category"] == UNCATEGORIZED:
                continue
            grouped.setdefault(merchant_key(row["merchant_key"]), []).append(row)

        history = {}
        for key, rows in grouped.items():
            total = sum(r["count"] for r in rows)
            # most common wins; ties go to the alphabetically first category
            best = min(rows, key=lambda r: (-r["count"], r["category"]))
            history[key] = HistoricalCategory(
                category=best["category"],
                subcategory=best["subcategory"] or best["category"],
                count=best["count"],
                share=best["count"] / total,
            )
        return cls(merchant_rules=rule_map, history=history)


@dataclass(frozen=True)
class _Match:
    category: str
    confidence: float
    requires_manual: bool = False


class TransactionCategorizer:
    """Holds immutable category/heuristic configuration; safe to share across jobs."""

    def __init__(
        self,
        default_categories: Mapping,
        merchant_rules: Mapping,
        review_threshold: float = 0.7,
    ):
        self.review_threshold = review_threshold
        self._categories: Dict[str, Dict] = dict(default_categories.get("categories", {}))
        self._exact_matches = {merchant_key(k): v for k, v in merchant_rules.get("exact_matches", {}).items()}
        self._keyword_patterns = [
            (p["category"], float(p.get("confidence", 0.85)), [k.lower() for k in p.get("keywords", [])])
            for p in merchant_rules.get("merchant_patterns", [])
        ]
        self._vpa_amount_rules = [r for r in merchant_rules.get("vpa_amount_rules", []) if r.get("vpa") and r.get("category")]
        self._vpa_patterns = self._compile_vpa_patterns(merchant_rules.get("vpa_patterns", []))
        neft = merchant_rules.get("neft_patterns") or {}
        self._neft_category = neft.get("category", "income_salary")
        self._neft_confidence = float(neft.get("confidence", 0.9))
        self._salary_keywords = [k.lower() for k in neft.get("salary_keywords", [])]

    @classmethod
    def from_config_dir(cls, config_dir: Optional[str] = None, review_threshold: float = 0.7) -> "TransactionCategorizer":
        directory = Path(config_dir) if config_dir else CONFIG_DIR
        with open(directory / "default_categories.json", encoding="utf-8") as f:
            default_categories = json.load(f)
        with open(directory / "merchant_rules.json", encoding="utf-8") as f:
            merchant_rules = json.load(f)
        logger.info(f"Loaded categorization config from {directory}")
        return cls(default_categories, merchant_rules, review_threshold=review_threshold)

    @staticmethod
    def _compile_vpa_patterns(rules: Iterable[dict]) -> List[Tuple[Pattern, str, float]]:
        compiled = []
        for rule in rules:
            if not rule.get("category"):
                continue
            try:
                compiled.append((re.compile(rule["pattern"]), rule["category"], float(rule.get("confidence", 0.9))))
            except re.error as e:
                logger.warning(f"Skipping invalid VPA pattern {rule.get('pattern')!r}: {e}")
        return compiled

    # ==========================================================================
    # Public API
    # ==========================================================================

    def category_metadata(self, category: str) -> Dict:
        data = self._categories.get(category, {})
        return {
            "icon": data.get("icon", DEFAULT_METADATA["icon"]),
            "color": data.get("color", DEFAULT_METADATA["color"]),
            "parent": data.get("parent", DEFAULT_METADATA["parent"]),
        }

    def display_name(self, category: str) -> str:
        """Configured name, else the key with underscores as spaces and title case"""
        name = self._categories.get(category, {}).get("name")
        return name or category.replace("_", " ").title()

    def is_known_category(self, category: str) -> bool:
        return category in self._categories

    def categorize(self, transaction: ParsedTransaction, context: CategorizationContext) -> CategorizationResult:
        key = merchant_key(transaction.merchant or "")

        rule = context.merchant_rules.get(key) if key else None
        if rule is not None:
            return CategorizationResult(
                category=rule.category,
                subcategory=rule.subcategory or rule.category,
                confidence=RULE_CONFIDENCE,
                method=CategorizationMethod.RULE.value,
                requires_review=False,
                category_metadata=rule.category_metadata or self.category_metadata(rule.category),
            )

        history = context.history.get(key) if key else None
        if history is not None:
            confidence = round(HISTORICAL_BASE_CONFIDENCE + HISTORICAL_SHARE_WEIGHT * history.share, 4)
            return CategorizationResult(
                category=history.category,
                subcategory=history.subcategory,
                confidence=confidence,
                method=CategorizationMethod.HISTORICAL.value,
                requires_review=confidence < self.review_threshold,
                category_metadata=self.category_metadata(history.category),
            )

        match = self._heuristic(transaction, key) or _Match(UNCATEGORIZED, 0.0)
        return CategorizationResult(
            category=match.category,
            subcategory=match.category,
            confidence=match.confidence,
            method=CategorizationMethod.HEURISTIC.value,
            requires_review=match.requires_manual or match.confidence < self.review_threshold,
            category_metadata=self.category_metadata(match.category),
        )

    def apply(self, transaction: ParsedTransaction, context: CategorizationContext) -> ParsedTransaction:
        """Return a copy of the transaction with category fields filled in"""
        result = self.categorize(transaction, context)
        return replace(
            transaction,
            category=result.category,
            subcategory=result.subcategory,
            confidence=result.confidence,
            categorization_method=result.method,
            requires_review=result.requires_review,
            category_metadata=result.category_metadata,
        )

    # ==========================================================================
    # Heuristics
    # ==========================================================================

    def _heuristic(self, transaction: ParsedTransaction, key: str) -> Optional[_Match]:
        if key and key in self._exact_matches:
            return _Match(self._exact_matches[key], 0.95)

        if transaction.transaction_mode == "upi" and transaction.vpa:
            vpa_match = self._match_vpa(transaction.vpa.lower(), float(transaction.amount or 0))
            if vpa_match:
                return vpa_match

        if transaction.transaction_mode == "neft" and transaction.transaction_type == "credited" and key:
            if any(keyword in key for keyword in self._salary_keywords):
                return _Match(self._neft_category, self._neft_confidence)

        if key:
            return self._match_keywords(key)
        return None

    def _match_vpa(self, vpa: str, amount: float) -> Optional[_Match]:
        for rule in self._vpa_amount_rules:
            if vpa != rule["vpa"].lower():
                continue
            if rule.get("min_amount") is not None and amount < rule["min_amount"]:
                continue
            if rule.get("max_amount") is not None and amount > rule["max_amount"]:
                continue
            return _Match(rule["category"], float(rule.get("confidence", 0.95)), bool(rule.get("requires_manual", False)))

        for pattern, category, confidence in self._vpa_patterns:
            if pattern.search(vpa):
                return _Match(category, confidence)
        return None

    def _match_keywords(self, key: str) -> Optional[_Match]:
        best: Optional[_Match] = None
        for category, confidence, keywords in self._keyword_patterns:
            if best is not None and confidence <= best.confidence:
                continue
            if any(keyword in key for keyword in keywords):
                best = _Match(category, confidence)
        return best
