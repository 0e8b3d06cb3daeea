from datetime import datetime, timezone
from decimal import Decimal
import uuid

import pytest

from mailparse.records import ParsedTransaction
from spendsync.exceptions import BadRequestError, NotFoundError
from spendsync.services.expenses_service import ExpensesService, percentage_change
from tests.fakes import FakeRawEmailRepository, make_email

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(repositories, cache, categorizer, milestone_engine):
    return ExpensesService(repositories, cache, categorizer, milestone_engine, clock=lambda: NOW)


@pytest.fixture
def add_transaction(store, user_id):
    def add(merchant, amount, day=10, month=5, mode="upi", txn_type="debited", category="food_delivery", card_last4=None, vpa=None):
        txn = ParsedTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            dedupe_hash=uuid.uuid4().hex,
            source_email_id=None,
            merchant=merchant,
            merchant_raw=merchant,
            amount=Decimal(amount),
            currency="INR",
            transaction_date=datetime(2024, month, day, 9, 0, tzinfo=timezone.utc),
            transaction_type=txn_type,
            transaction_mode=mode,
            card_last4=card_last4,
            vpa=vpa,
            category=category,
            subcategory=category,
            confidence=0.95,
        )
        store.transactions[(user_id, txn.dedupe_hash)] = txn
        return txn

    return add


async def test_summary_is_cached_until_a_mutation(service, add_transaction, user_id):
    first = add_transaction("SWIGGY", "300.00")
    add_transaction("ACME SALARY", "1000.00", txn_type="credited", mode="neft", category="income_salary")

    summary = await service.spending_summary(user_id, "month")
    assert summary["total_spent"] == 300.0
    assert summary["total_received"] == 1000.0
    assert summary["net"] == 700.0

    add_transaction("ZOMATO", "200.00")
    assert (await service.spending_summary(user_id, "month"))["total_spent"] == 300.0

    await service.update_transaction(user_id, first.id, {"category": "groceries"})
    assert (await service.spending_summary(user_id, "month"))["total_spent"] == 500.0


async def test_category_edit_becomes_manual(service, add_transaction, user_id):
    txn = add_transaction("SWIGGY", "300.00")

    updated = await service.update_transaction(user_id, txn.id, {"category": "groceries", "merchant": None})

    assert updated["category"] == "groceries"
    assert updated["subcategory"] == "groceries"
    assert updated["categorization_method"] == "manual"
    assert updated["confidence"] == 1.0
    assert updated["requires_review"] is False
    assert updated["category_metadata"]["icon"] == "shopping-basket"
    assert updated["merchant"] == "SWIGGY"


async def test_update_unknown_transaction(service, user_id):
    with pytest.raises(NotFoundError):
        await service.update_transaction(user_id, uuid.uuid4(), {"category": "groceries"})


async def test_bulk_update_needs_ids(service, user_id):
    with pytest.raises(BadRequestError):
        await service.bulk_update_transactions(user_id, [], "groceries")


async def test_bulk_update(service, add_transaction, user_id, store):
    ids = [add_transaction("SWIGGY", "100.00").id, add_transaction("ZOMATO", "200.00").id]

    assert await service.bulk_update_transactions(user_id, ids, "groceries") == 2
    assert {t.categorization_method for t in store.transactions.values()} == {"manual"}


async def test_categorize_merchant_saves_rule_and_updates_history(service, add_transaction, user_id, store):
    add_transaction("Corner Shop", "100.00", category="uncategorized")
    add_transaction("CORNER SHOP", "150.00", category="uncategorized")
    add_transaction("SWIGGY", "90.00")

    updated = await service.bulk_categorize_merchant(user_id, "corner shop", "groceries")

    assert updated == 2
    rules = await service.list_merchant_rules(user_id)
    assert [(r["merchant"], r["category"]) for r in rules] == [("corner shop", "groceries")]
    corner = [t for t in store.transactions.values() if t.merchant.lower() == "corner shop"]
    assert {(t.category, t.categorization_method) for t in corner} == {("groceries", "rule")}

    await service.delete_merchant_rule(user_id, "Corner Shop")
    assert await service.list_merchant_rules(user_id) == []
    with pytest.raises(NotFoundError):
        await service.delete_merchant_rule(user_id, "Corner Shop")


async def test_invalid_period(service, user_id):
    with pytest.raises(BadRequestError):
        await service.spending_summary(user_id, "fortnight")


async def test_spending_by_category_percentages(service, add_transaction, user_id):
    add_transaction("SWIGGY", "300.00")
    add_transaction("BIGBASKET", "100.00", category="groceries")

    rows = await service.spending_by_category(user_id, "month")

    assert [(r["category"], r["percentage"]) for r in rows] == [("food_delivery", 75.0), ("groceries", 25.0)]
    assert rows[0]["category_metadata"]["icon"] == "motorcycle"


async def test_spending_by_card_adds_card_details(service, add_transaction, user_id):
    add_transaction("AMAZON", "40000.00", mode="credit_card", card_last4="4321", category="shopping")

    [card] = await service.spending_by_card(user_id, "month")

    assert card["card_name"] == "HDFC Regalia Gold"
    quarterly = next(m for m in card["milestones"] if m["id"] == "quarterly_bonus")
    assert quarterly["current_spend"] == 40000.0
    assert quarterly["percentage"] == 26.67


async def test_period_comparison(service, add_transaction, user_id):
    add_transaction("SWIGGY", "300.00", day=10, month=5)
    add_transaction("SWIGGY", "200.00", day=5, month=4)

    comparison = await service.period_comparison(user_id, "month")

    assert comparison["current_period"]["total_spent"] == 300.0
    assert comparison["previous_period"]["total_spent"] == 200.0
    assert comparison["changes"]["spent_change"] == 50.0


def test_percentage_change():
    assert percentage_change(150, 100) == 50.0
    assert percentage_change(50, 0) == 100.0
    assert percentage_change(0, 0) == 0.0


async def test_daily_spending_splits_debits_and_credits(service, add_transaction, user_id):
    add_transaction("SWIGGY", "300.00", day=10)
    add_transaction("ZOMATO", "200.00", day=10)
    add_transaction("ACME SALARY", "1000.00", day=12, txn_type="credited", mode="neft", category="income_salary")

    rows = await service.daily_spending(user_id, "month")

    assert rows == [
        {"date": "2024-05-10", "debited": 500.0, "credited": 0.0},
        {"date": "2024-05-12", "debited": 0.0, "credited": 1000.0},
    ]


async def test_spending_velocity_is_a_trailing_average(service, add_transaction, user_id):
    add_transaction("SWIGGY", "70.00", day=13)
    add_transaction("ZOMATO", "140.00", day=15)

    rows = await service.spending_velocity(user_id, "week")

    assert [r["date"] for r in rows] == [f"2024-05-{d}" for d in range(13, 21)]
    velocity = {r["date"]: r["velocity"] for r in rows}
    assert velocity["2024-05-13"] == 70.0
    assert velocity["2024-05-14"] == 35.0
    assert velocity["2024-05-15"] == 70.0
    assert velocity["2024-05-19"] == 30.0
    # the 13th has left the seven-day window
    assert velocity["2024-05-20"] == 20.0


async def test_category_trend_groups_by_month(service, add_transaction, user_id):
    add_transaction("SWIGGY", "200.00", day=5, month=4)
    add_transaction("SWIGGY", "300.00", day=10)
    add_transaction("BIGBASKET", "100.00", day=11, category="groceries")
    add_transaction("SWIGGY", "999.00", day=20, month=3)

    rows = await service.category_trend(user_id, months=2)

    assert [(r["month"], r["category"], r["amount"], r["count"]) for r in rows] == [
        ("2024-04", "food_delivery", 200.0, 1),
        ("2024-05", "food_delivery", 300.0, 1),
        ("2024-05", "groceries", 100.0, 1),
    ]
    assert rows[0]["display_name"] == "Food Delivery"


async def test_savings_rate_per_month(service, add_transaction, user_id):
    add_transaction("ACME SALARY", "1000.00", day=1, month=4, txn_type="credited", mode="neft", category="income_salary")
    add_transaction("SWIGGY", "200.00", day=5, month=4)
    add_transaction("SWIGGY", "300.00", day=10)

    rows = await service.savings_rate(user_id, months=2)

    assert rows == [
        {"month": "2024-04", "income": 1000.0, "expenses": 200.0, "savings": 800.0, "savings_rate": 80.0},
        {"month": "2024-05", "income": 0.0, "expenses": 300.0, "savings": -300.0, "savings_rate": 0.0},
    ]


async def test_card_category_breakdown_names_cards(service, add_transaction, user_id):
    add_transaction("AMAZON", "1000.00", mode="credit_card", card_last4="4321", category="shopping")
    add_transaction("SWIGGY", "500.00", mode="credit_card", card_last4="4321")
    add_transaction("MYNTRA", "200.00", mode="credit_card", card_last4="5555", category="shopping")
    add_transaction("ZOMATO", "80.00")

    rows = await service.card_category_breakdown(user_id, "month")

    assert [(r["card_last4"], r["card_name"], r["category"], r["amount"]) for r in rows] == [
        ("4321", "HDFC Regalia Gold", "shopping", 1000.0),
        ("4321", "HDFC Regalia Gold", "food_delivery", 500.0),
        ("5555", "Card ••5555", "shopping", 200.0),
    ]
    assert rows[1]["display_name"] == "Food Delivery"


async def test_top_vpas(service, add_transaction, user_id):
    add_transaction("SWIGGY", "100.00", vpa="swiggy@icici")
    add_transaction("SWIGGY", "200.00", vpa="SWIGGY@icici")
    add_transaction("ZOMATO", "50.00", vpa="zomato@hdfc")
    add_transaction("AMAZON", "900.00", mode="credit_card", card_last4="4321")

    rows = await service.top_vpas(user_id, "month")

    assert [(r["vpa"], r["amount"], r["count"]) for r in rows] == [("swiggy@icici", 300.0, 2), ("zomato@hdfc", 50.0, 1)]
    assert len(await service.top_vpas(user_id, "month", limit=1)) == 1


async def test_get_raw_email_includes_body(service, store, user_id):
    _, email_id = await FakeRawEmailRepository(store).upsert(make_email("m1", user_id, "Rs.250.00 debited"))

    email = await service.get_raw_email(user_id, email_id)

    assert email["provider_message_id"] == "m1"
    assert email["body_text"] == "Rs.250.00 debited"
    with pytest.raises(NotFoundError):
        await service.get_raw_email(uuid.uuid4(), email_id)
