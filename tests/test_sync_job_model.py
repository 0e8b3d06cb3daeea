import uuid

import pytest

from spendsync.exceptions import InvalidJobTransition
from spendsync.models.sync_job import JobKind, JobStatus, SyncJob


def _job(status: JobStatus) -> SyncJob:
    return SyncJob(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        category="expenses",
        kind=JobKind.SYNC,
        query="subject:(upi)",
        status=status,
        total_emails=None,
        processed_emails=0,
        new_emails=0,
        transactions=0,
        statements=0,
        failed_emails=0,
    )


def test_forward_transitions_stamp_times():
    job = _job(JobStatus.PENDING)

    job.transition(JobStatus.PROCESSING)
    assert job.started_at is not None
    assert job.completed_at is None

    job.transition(JobStatus.COMPLETED)
    assert job.completed_at is not None
    assert job.is_terminal


def test_pending_job_can_fail_before_starting():
    job = _job(JobStatus.PENDING)

    job.transition(JobStatus.FAILED)

    assert job.status == JobStatus.FAILED
    assert job.started_at is None


@pytest.mark.parametrize("current,requested", [
    (JobStatus.PROCESSING, JobStatus.PENDING),
    (JobStatus.COMPLETED, JobStatus.PROCESSING),
    (JobStatus.FAILED, JobStatus.COMPLETED),
    (JobStatus.PENDING, JobStatus.COMPLETED),
])
def test_backward_or_terminal_moves_are_rejected(current, requested):
    job = _job(current)

    with pytest.raises(InvalidJobTransition) as exc_info:
        job.transition(requested)

    assert exc_info.value.current == current.value
    assert exc_info.value.requested == requested.value
    assert job.status == current


def test_status_dict_reports_unknown_total_as_zero():
    status = _job(JobStatus.PENDING).to_status_dict()

    assert status["total_emails"] == 0
    assert status["kind"] == "sync"
    assert status["started_at"] is None
