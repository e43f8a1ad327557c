from __future__ import annotations

import asyncio
import enum
import time
from typing import Any, Awaitable, Callable, Optional

from app.core.job_store import InMemoryJobStore, Job, JobStatus, JobStore
from app.core.logging import get_logger, job_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]
JobHandler = Callable[[Job, ProgressCallback], Awaitable[Any]]

START_PROGRESS = 5


def _kind(kind: Any) -> str:
    return kind.value if isinstance(kind, enum.Enum) else str(kind)


class BackgroundQueue:
    """In-process async job queue with fixed concurrency, retries and quarantine.

    Jobs live in a ``JobStore``; the asyncio queue only carries job ids. A
    failed attempt goes back to ``queued`` with an exponential delay until the
    attempts are used up, then the job is marked ``failed`` and a dead
    letter is written.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        *,
        concurrency: int = 2,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
    ) -> None:
        self.store: JobStore = store if store is not None else InMemoryJobStore()
        self.concurrency = max(1, int(concurrency))
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = max(0.0, float(backoff_base))
        self._handlers: dict[str, JobHandler] = {}
        self._queue: Optional[asyncio.Queue[str]] = None
        self._workers: list[asyncio.Task[None]] = []
        self._timers: set[asyncio.TimerHandle] = set()
        self._started = False

    def register(self, kind: str, handler: JobHandler) -> None:
        self._handlers[_kind(kind)] = handler

    def backoff_delay(self, attempts_made: int) -> float:
        return self.backoff_base * (2 ** max(0, attempts_made - 1))

    async def _worker(self, idx: int) -> None:
        assert self._queue is not None
        while True:
            job_id = await self._queue.get()
            try:
                await self._process(job_id)
            except Exception as e:  # noqa: BLE001
                logger.exception("worker %d crashed on job %s: %s", idx, job_id, e)
            finally:
                self._queue.task_done()

    async def _process(self, job_id: str) -> None:
        now = time.time()
        job = await self.store.claim(job_id, now)
        if job is None:
            current = await self.store.get(job_id)
            if current is not None and current.status == JobStatus.QUEUED:
                # Timer fired slightly early; try again when due
                self._schedule(job_id, max(0.0, current.available_at - now))
            return

        log = job_logger(logger, job.id, job.kind)
        handler = self._handlers.get(job.kind)
        if handler is None:
            error = f"no handler registered for job kind {job.kind!r}"
            log.error("%s", error)
            await self.store.fail(job.id, error)
            return

        async def progress(value: int) -> None:
            await self.store.set_progress(job.id, value)

        log.info("%s attempt %d/%d started", job.kind, job.attempts_made, job.max_attempts)
        await progress(START_PROGRESS)
        try:
            result = await handler(job, progress)
        except Exception as e:  # noqa: BLE001
            await self._handle_failure(job, e)
            return
        await self.store.complete(job.id, result)
        log.info("%s completed", job.kind)

    async def _handle_failure(self, job: Job, exc: Exception) -> None:
        log = job_logger(logger, job.id, job.kind)
        error = str(exc) or exc.__class__.__name__
        if job.attempts_made < job.max_attempts:
            delay = self.backoff_delay(job.attempts_made)
            log.warning(
                "attempt %d/%d failed, retrying in %.2fs: %s",
                job.attempts_made,
                job.max_attempts,
                delay,
                error,
            )
            await self.store.requeue(job.id, error, time.time() + delay)
            self._schedule(job.id, delay)
            return

        log.error(
            "failed after %d attempts, moved to dead letters: %s", job.attempts_made, error
        )
        await self.store.fail(job.id, error)

    def _dispatch(self, job_id: str) -> None:
        if self._queue is not None:
            self._queue.put_nowait(job_id)

    def _schedule(self, job_id: str, delay: float) -> None:
        if not self._started:
            return
        loop = asyncio.get_running_loop()

        def fire() -> None:
            self._timers.discard(handle)
            self._dispatch(job_id)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._queue = asyncio.Queue()
        for i in range(self.concurrency):
            self._workers.append(asyncio.create_task(self._worker(i)))

        pending = await self.store.recover()
        now = time.time()
        for job in pending:
            self._schedule(job.id, max(0.0, job.available_at - now))
        if pending:
            logger.info("re-dispatched %d pending jobs", len(pending))

    async def stop(self) -> None:
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        for t in self._workers:
            t.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._queue = None
        self._started = False

    async def enqueue(
        self, kind: str, data: dict[str, Any], *, max_attempts: Optional[int] = None
    ) -> str:
        job = Job(kind=_kind(kind), data=data, max_attempts=max_attempts or self.max_attempts)
        await self.store.add(job)
        self._dispatch(job.id)
        job_logger(logger, job.id, job.kind).info("%s queued", job.kind)
        return job.id

    async def get_status(self, job_id: str) -> dict[str, Any]:
        job = await self.store.get(job_id)
        if job is None:
            return {"status": "not_found"}
        out: dict[str, Any] = {
            "status": job.status.value,
            "progress": job.progress,
            "attempts_made": job.attempts_made,
        }
        if job.result is not None:
            out["result"] = job.result
        if job.error is not None:
            out["error"] = job.error
        return out

    async def stats(self) -> dict[str, int]:
        return await self.store.counts()

    async def dead_letters(self) -> list[dict[str, Any]]:
        return [d.model_dump() for d in await self.store.dead_letters()]
