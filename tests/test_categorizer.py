from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
import uuid

import pytest

from mailparse.records import ParsedTransaction
from spendsync.categorization.categorizer import CategorizationContext, TransactionCategorizer, UNCATEGORIZED

CATEGORIES = {
    "categories": {
        "food_delivery": {"icon": "motorcycle", "color": "#F39C12", "parent": "food_dining"},
        "groceries": {"icon": "shopping-basket", "color": "#27AE60", "parent": None},
        "shopping": {"icon": "shopping-bag", "color": "#8E44AD", "parent": None},
        "income_salary": {"icon": "wallet", "color": "#2ECC71", "parent": None},
    }
}
RULES = {
    "exact_matches": {"swiggy": "food_delivery"},
    "merchant_patterns": [
        {"category": "groceries", "keywords": ["mart"], "confidence": 0.8},
        {"category": "shopping", "keywords": ["mart", "store"], "confidence": 0.9},
    ],
    "vpa_amount_rules": [
        {"vpa": "paytmqr@paytm", "category": "food_dining", "max_amount": 500, "confidence": 0.75},
        {"vpa": "paytmqr@paytm", "category": "shopping", "min_amount": 500.01, "confidence": 0.6, "requires_manual": True},
    ],
    "vpa_patterns": [{"pattern": "^zomato", "category": "food_delivery", "confidence": 0.95}],
    "neft_patterns": {"category": "income_salary", "confidence": 0.9, "salary_keywords": ["salary"]},
}


def txn(merchant, amount="100.00", mode="other", vpa=None, txn_type="debited"):
    return ParsedTransaction(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        dedupe_hash="h",
        source_email_id=None,
        merchant=merchant,
        merchant_raw=merchant,
        amount=Decimal(amount),
        currency="INR",
        transaction_date=datetime(2024, 5, 15, tzinfo=timezone.utc),
        transaction_type=txn_type,
        transaction_mode=mode,
        vpa=vpa,
    )


def rule(merchant, category, subcategory=None):
    return SimpleNamespace(merchant=merchant, category=category, subcategory=subcategory or category, category_metadata=None)


def history(merchant_key, category, count):
    return {"merchant_key": merchant_key, "category": category, "subcategory": category, "count": count}


@pytest.fixture
def categorizer():
    return TransactionCategorizer(CATEGORIES, RULES, review_threshold=0.7)


def test_user_rule_beats_history_and_heuristics(categorizer):
    ctx = CategorizationContext.build([rule("Swiggy", "groceries")], [history("swiggy", "shopping", 5)])

    result = categorizer.categorize(txn("SWIGGY"), ctx)

    assert result.category == "groceries"
    assert result.method == "rule"
    assert result.confidence == 1.0
    assert result.requires_review is False


def test_history_beats_heuristics(categorizer):
    ctx = CategorizationContext.build([], [history("swiggy", "groceries", 3), history("swiggy", "shopping", 1)])

    result = categorizer.categorize(txn("Swiggy"), ctx)

    assert result.category == "groceries"
    assert result.method == "historical"
    assert result.confidence == pytest.approx(0.6 + 0.3 * 0.75)
    assert result.requires_review is False


def test_weak_history_requires_review(categorizer):
    rows = [history("corner shop", c, 1) for c in ("groceries", "shopping", "food_delivery", "income_salary")]
    ctx = CategorizationContext.build([], rows)

    result = categorizer.categorize(txn("Corner Shop"), ctx)

    assert result.confidence == pytest.approx(0.675)
    assert result.requires_review is True


def test_history_ties_go_to_alphabetically_first_category():
    ctx = CategorizationContext.build([], [history("acme", "shopping", 2), history("acme", "groceries", 2)])

    assert ctx.history["acme"].category == "groceries"


def test_uncategorized_history_is_ignored():
    ctx = CategorizationContext.build([], [history("acme", UNCATEGORIZED, 9)])

    assert ctx.history == {}


def test_exact_merchant_match(categorizer):
    result = categorizer.categorize(txn("Swiggy."), CategorizationContext.empty())

    assert (result.category, result.confidence, result.method) == ("food_delivery", 0.95, "heuristic")
    assert result.category_metadata["icon"] == "motorcycle"


def test_vpa_amount_rules_respect_bounds(categorizer):
    small = categorizer.categorize(txn("PAYTM QR", "120.00", "upi", "PaytmQR@paytm"), CategorizationContext.empty())
    large = categorizer.categorize(txn("PAYTM QR", "2400.00", "upi", "paytmqr@paytm"), CategorizationContext.empty())

    assert small.category == "food_dining"
    assert small.requires_review is False
    assert large.category == "shopping"
    assert large.requires_review is True


def test_vpa_pattern(categorizer):
    result = categorizer.categorize(txn("ZOMATO LTD", mode="upi", vpa="zomato.order@hdfc"), CategorizationContext.empty())

    assert result.category == "food_delivery"


def test_neft_salary_credit(categorizer):
    result = categorizer.categorize(
        txn("ACME TECHNOLOGIES SALARY", "85000.00", "neft", txn_type="credited"),
        CategorizationContext.empty(),
    )

    assert result.category == "income_salary"
    assert result.confidence == 0.9


def test_highest_confidence_keyword_wins(categorizer):
    result = categorizer.categorize(txn("SUPER MART"), CategorizationContext.empty())

    assert result.category == "shopping"
    assert result.confidence == 0.9


def test_unknown_merchant_is_uncategorized_for_review(categorizer):
    result = categorizer.categorize(txn("XYZ 123"), CategorizationContext.empty())

    assert result.category == UNCATEGORIZED
    assert result.confidence == 0.0
    assert result.requires_review is True
    assert result.category_metadata == {"icon": "question-circle", "color": "#BDC3C7", "parent": None}


def test_apply_returns_a_categorized_copy(categorizer):
    original = txn("Swiggy")

    categorized = categorizer.apply(original, CategorizationContext.empty())

    assert categorized.category == "food_delivery"
    assert original.category == UNCATEGORIZED
    assert categorized.id == original.id


def test_bundled_config_loads():
    categorizer = TransactionCategorizer.from_config_dir()

    assert categorizer.is_known_category("groceries")
    assert categorizer.categorize(txn("Zomato"), CategorizationContext.empty()).category == "food_delivery"


def test_display_name_uses_config_then_falls_back_to_key():
    categorizer = TransactionCategorizer.from_config_dir()

    assert categorizer.display_name("telecom") == "Mobile & Internet"
    assert categorizer.display_name("pet_care") == "Pet Care"
