import pytest

from spendsync.categorization.categorizer import CategorizationContext
from spendsync.ingestion.batcher import IngestionContext
from tests.fakes import CARD_BODY, STATEMENT_BODY, FakeMailProvider, FakeSyncJobRepository, make_email, upi_body


@pytest.fixture
async def ctx(store, user_id):
    job = await FakeSyncJobRepository(store).create(user_id, "query")
    return IngestionContext(job_id=job.id, user_id=user_id, categorization=CategorizationContext.empty())


async def ingest(batcher, ctx, emails, batch_size=10):
    provider = FakeMailProvider(emails)
    return await batcher.ingest_from_provider(ctx, provider, [e.provider_message_id for e in emails], batch_size)


async def test_transactions_are_categorized_and_card_named(batcher, ctx, store, user_id):
    await ingest(batcher, ctx, [make_email("card-1", user_id, CARD_BODY)])

    [txn] = store.transactions.values()
    assert txn.transaction_mode == "credit_card"
    assert txn.card_last4 == "4321"
    assert txn.card_name == "HDFC Regalia Gold"
    assert txn.merchant == "AMAZON PAY INDIA"
    assert txn.category == "shopping"
    assert txn.categorization_method == "heuristic"
    assert store.jobs[ctx.job_id].transactions == 1


async def test_unknown_card_gets_fallback_name(batcher, ctx, store, user_id):
    await ingest(batcher, ctx, [make_email("card-2", user_id, CARD_BODY.replace("4321", "5555"))])

    [txn] = store.transactions.values()
    assert txn.card_name == "Card ••5555"


async def test_email_without_parser_is_processed_not_failed(batcher, ctx, store, user_id):
    newsletter = make_email("news", user_id, "Big sale this weekend", subject="Offers", sender="promo@shop.example")

    stats = await ingest(batcher, ctx, [newsletter])

    job = store.jobs[ctx.job_id]
    assert stats.failed_emails == 0
    assert job.processed_emails == 1
    assert job.transactions == 0
    assert all(email.processed for email in store.emails.values())


async def test_one_failing_email_does_not_stop_the_batch(batcher, ctx, store, user_id):
    emails = [make_email(f"m{i}", user_id, upi_body(f"{i}00.00", "swiggy@icici", "SWIGGY")) for i in range(1, 4)]
    store.failing_message_ids.add("m2")

    stats = await ingest(batcher, ctx, emails)

    job = store.jobs[ctx.job_id]
    assert stats.emails == 3
    assert stats.failed_emails == 1
    assert job.processed_emails == 3
    assert job.failed_emails == 1
    assert job.transactions == 2


async def test_statement_is_emitted_only_for_new_emails(batcher, ctx, store, user_id):
    email = make_email("stmt", user_id, STATEMENT_BODY, subject="Your HDFC Bank Credit Card Statement")

    await ingest(batcher, ctx, [email])
    await ingest(batcher, ctx, [email])

    job = store.jobs[ctx.job_id]
    assert job.statements == 1
    assert job.new_emails == 1
    assert len(store.statements) == 1


async def test_store_only_mode_leaves_emails_unprocessed(batcher, ctx, store, user_id):
    ctx.parse_inline = False
    emails = [make_email("m1", user_id, upi_body("250.00", "zomato@hdfc", "ZOMATO"))]

    await ingest(batcher, ctx, emails)

    assert store.transactions == {}
    assert [e.processed for e in store.emails.values()] == [False]


async def test_stored_emails_are_paged_until_exhausted(batcher, ctx, store, user_id):
    ctx.parse_inline = False
    emails = [make_email(f"m{i}", user_id, upi_body(f"{i}0.00", "swiggy@icici", "SWIGGY")) for i in range(1, 6)]
    await ingest(batcher, ctx, emails)
    ctx.parse_inline = True

    stats = await batcher.ingest_stored(ctx, unprocessed_only=True, batch_size=2)

    assert stats.batches == 3
    assert stats.emails == 5
    assert len(store.transactions) == 5
    assert all(email.processed for email in store.emails.values())
