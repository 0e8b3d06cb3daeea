import asyncio
import uuid

import pytest

from spendsync.ingestion.supervisor import JobSupervisor


class Recorder:
    def __init__(self):
        self.failures = []
        self.finished = 0

    async def on_failure(self, exc):
        self.failures.append(exc)

    def on_finished(self):
        self.finished += 1


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


async def test_jobs_of_one_user_run_one_at_a_time():
    supervisor = JobSupervisor()
    recorder = Recorder()
    user = uuid.uuid4()
    gate = asyncio.Event()
    started = []

    async def first():
        started.append("first")
        await gate.wait()

    async def second():
        started.append("second")

    supervisor.spawn("job-1", user, first, recorder.on_failure, recorder.on_finished)
    supervisor.spawn("job-2", user, second, recorder.on_failure, recorder.on_finished)
    await settle()
    assert started == ["first"]

    gate.set()
    assert await supervisor.drain(timeout=1)
    assert started == ["first", "second"]
    assert recorder.finished == 2


async def test_jobs_of_different_users_run_concurrently():
    supervisor = JobSupervisor()
    recorder = Recorder()
    gate = asyncio.Event()
    started = []

    async def body(name):
        started.append(name)
        await gate.wait()

    supervisor.spawn("a", uuid.uuid4(), lambda: body("a"), recorder.on_failure)
    supervisor.spawn("b", uuid.uuid4(), lambda: body("b"), recorder.on_failure)
    await settle()

    assert sorted(started) == ["a", "b"]
    assert supervisor.active_jobs == 2
    gate.set()
    await supervisor.drain(timeout=1)
    assert supervisor.active_jobs == 0


async def test_escaped_error_is_handed_to_failure_hook():
    supervisor = JobSupervisor()
    recorder = Recorder()

    async def body():
        raise RuntimeError("parser exploded")

    supervisor.spawn("job", uuid.uuid4(), body, recorder.on_failure, recorder.on_finished)

    assert await supervisor.wait_for("job", timeout=1)
    assert [str(e) for e in recorder.failures] == ["parser exploded"]
    assert recorder.finished == 1


async def test_failure_hook_error_reraises_original_error():
    supervisor = JobSupervisor()

    async def body():
        raise RuntimeError("original")

    async def on_failure(exc):
        raise ConnectionError("database down")

    task = supervisor.spawn("job", uuid.uuid4(), body, on_failure)

    with pytest.raises(RuntimeError, match="original"):
        await task
    assert await supervisor.wait_for("job", timeout=0)


async def test_wait_for_times_out_on_a_running_job():
    supervisor = JobSupervisor()
    gate = asyncio.Event()

    async def body():
        await gate.wait()

    supervisor.spawn("job", uuid.uuid4(), body, Recorder().on_failure)

    assert await supervisor.wait_for("job", timeout=0.01) is False
    gate.set()
    assert await supervisor.wait_for("job", timeout=1) is True


async def test_wait_for_unknown_job_returns_immediately():
    assert await JobSupervisor().wait_for("never-started", timeout=0.01) is True


async def test_shutdown_cancels_stuck_jobs_and_records_failure():
    supervisor = JobSupervisor()
    recorder = Recorder()

    async def body():
        await asyncio.Event().wait()

    supervisor.spawn("stuck", uuid.uuid4(), body, recorder.on_failure, recorder.on_finished)
    await settle()

    await supervisor.shutdown(timeout=0.01)

    assert len(recorder.failures) == 1
    assert isinstance(recorder.failures[0], asyncio.CancelledError)
    assert recorder.finished == 1
    assert supervisor.active_jobs == 0


async def test_tracked_follow_up_is_drained():
    supervisor = JobSupervisor()
    done = []

    async def follow_up():
        await asyncio.sleep(0)
        done.append(True)

    supervisor.track(follow_up(), name="follow-up")

    assert await supervisor.drain(timeout=1)
    assert done == [True]
