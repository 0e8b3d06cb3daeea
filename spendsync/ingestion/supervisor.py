"""
Owner of background job tasks in this process.
"""
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Optional, Set
import asyncio

from spendsync.logging_config import get_logger

logger = get_logger(__name__)


class JobSupervisor:
    """
    Runs job bodies as asyncio tasks.

    - keeps strong references so tasks are never garbage collected mid-run
    - serializes jobs of the same user; a queued job stays pending meanwhile
    - bounds concurrently running jobs
    - on an escaped error, persists the failure; if that also fails the
      original error is logged as critical and re-raised out of the task
    - signals a per-job completion event once the job has finished
    """

    def __init__(self, max_concurrent_jobs: int = 4):
        self._tasks: Set[asyncio.Task] = set()
        self._done_events: Dict[str, asyncio.Event] = {}
        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._user_refs: Dict[str, int] = defaultdict(int)
        self._slots = asyncio.Semaphore(max_concurrent_jobs)

    @property
    def active_jobs(self) -> int:
        return len(self._done_events)

    def spawn(
        self,
        job_id,
        user_id,
        body: Callable[[], Awaitable[None]],
        on_failure: Callable[[BaseException], Awaitable[None]],
        on_finished: Optional[Callable[[], None]] = None,
    ) -> asyncio.Task:
        key = str(job_id)
        self._done_events[key] = asyncio.Event()
        task = asyncio.create_task(
            self._supervise(key, str(user_id), body, on_failure, on_finished),
            name=f"sync-job-{key}",
        )
        self._keep(task)
        return task

    def track(self, coro: Awaitable, name: str) -> asyncio.Task:
        """Keep a helper coroutine (e.g. a follow-up waiter) alive and logged"""
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._keep(task)
        return task

    def _keep(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical(f"Background task {task.get_name()} ended with an unhandled error: {exc!r}")

    async def _supervise(
        self,
        job_key: str,
        user_key: str,
        body: Callable[[], Awaitable[None]],
        on_failure: Callable[[BaseException], Awaitable[None]],
        on_finished: Optional[Callable[[], None]],
    ) -> None:
        lock = self._user_locks.setdefault(user_key, asyncio.Lock())
        self._user_refs[user_key] += 1
        try:
            async with lock:
                async with self._slots:
                    await body()
        except asyncio.CancelledError as exc:
            logger.warning(f"Job {job_key} cancelled")
            await self._persist_failure(job_key, on_failure, exc)
            raise
        except Exception as exc:
            logger.error(f"Job {job_key} failed: {exc}", exc_info=True)
            await self._persist_failure(job_key, on_failure, exc)
        finally:
            self._user_refs[user_key] -= 1
            if self._user_refs[user_key] <= 0:
                self._user_refs.pop(user_key, None)
                self._user_locks.pop(user_key, None)
            event = self._done_events.pop(job_key, None)
            if event is not None:
                event.set()
            if on_finished is not None:
                try:
                    on_finished()
                except Exception as e:
                    logger.error(f"Job {job_key} completion hook failed: {e}")

    async def _persist_failure(
        self,
        job_key: str,
        on_failure: Callable[[BaseException], Awaitable[None]],
        exc: BaseException,
    ) -> None:
        try:
            await on_failure(exc)
        except Exception as persist_error:
            logger.critical(
                f"Job {job_key} failed and its failed status could not be saved: {persist_error}",
                exc_info=True,
            )
            raise exc

    async def wait_for(self, job_id, timeout: Optional[float] = None) -> bool:
        """
        Wait until a job started by this supervisor finishes.

        Returns:
            True once finished (or if the job is not running here), False on timeout
        """
        event = self._done_events.get(str(job_id))
        if event is None:
            return True
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for every tracked task, including follow-ups spawned meanwhile"""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            done, pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            self._tasks.difference_update(done)
            if pending and deadline is not None and loop.time() >= deadline:
                return False
        return True

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Give running jobs a grace period, then cancel what is left"""
        if await self.drain(timeout):
            return
        logger.warning(f"Cancelling {len(self._tasks)} background task(s) on shutdown")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
