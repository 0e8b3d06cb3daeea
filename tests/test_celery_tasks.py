from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from spendsync import db, dependencies, repositories as repositories_module
from spendsync.celery import celery_tasks
from spendsync.models.sync_job import JobStatus, utcnow
from tests.fakes import FakeMailProvider, FakeSyncJobRepository, make_email, upi_body


@pytest.fixture
def engine(monkeypatch):
    engine = Mock(dispose=AsyncMock())
    monkeypatch.setattr(db, "engine", engine)
    return engine


@pytest.fixture
def patched_scope(monkeypatch, repositories):
    monkeypatch.setattr(repositories_module, "session_repositories", lambda session_factory: repositories)


async def test_sync_user_runs_job_to_completion(monkeypatch, engine, repositories, user_id):
    provider = FakeMailProvider([make_email("m1", user_id, upi_body("99.00", "swiggy@icici", "SWIGGY"))])
    container = dependencies.build_container(repositories=repositories, mail_provider=provider)
    monkeypatch.setattr(dependencies, "build_container", lambda: container)

    result = await celery_tasks._sync_user(str(user_id))

    assert result["status"] == "completed"
    assert result["transactions"] == 1
    assert container.supervisor.active_jobs == 0
    engine.dispose.assert_awaited_once()


async def test_users_with_history(engine, patched_scope, store, user_id):
    await FakeSyncJobRepository(store).create(user_id, "subject:(upi)")

    assert await celery_tasks._users_with_history() == [str(user_id)]
    engine.dispose.assert_awaited_once()


async def test_cleanup_fails_only_stale_processing_jobs(engine, patched_scope, store, user_id):
    jobs = FakeSyncJobRepository(store)
    stale = await jobs.create(user_id, "q")
    fresh = await jobs.create(user_id, "q")
    for job in (stale, fresh):
        job.transition(JobStatus.PROCESSING)
    stale.started_at = utcnow() - timedelta(hours=3)

    cleaned = await celery_tasks._cleanup_stale()

    assert cleaned == [str(stale.id)]
    assert stale.status == JobStatus.FAILED
    assert "stale" in stale.error_message
    assert fresh.status == JobStatus.PROCESSING
