"""Job records and the in-process job store.

Every state change goes through one store method so that the transition is
atomic: ``claim`` moves a job from queued to active only if it is still
queued and due, ``requeue``/``fail``/``complete`` only act on active jobs.
"""

from __future__ import annotations

import enum
import threading
import time
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

from app.modules.study.models import new_id


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, enum.Enum):
    FLASHCARDS = "flashcards"
    QUIZ = "quiz"


class Job(BaseModel):
    id: str = Field(default_factory=lambda: new_id("job"))
    kind: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[str] = None
    attempts_made: int = 0
    max_attempts: int = 3
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    available_at: float = Field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class DeadLetter(BaseModel):
    id: str = Field(default_factory=lambda: new_id("dlq"))
    original_job_id: str
    kind: str
    data: dict[str, Any] = Field(default_factory=dict)
    error: str
    attempts_made: int
    timestamp: float = Field(default_factory=time.time)


class JobStore(Protocol):
    async def add(self, job: Job) -> None: ...

    async def get(self, job_id: str) -> Optional[Job]: ...

    async def claim(self, job_id: str, now: float) -> Optional[Job]: ...

    async def set_progress(self, job_id: str, progress: int) -> None: ...

    async def complete(self, job_id: str, result: Any) -> None: ...

    async def requeue(self, job_id: str, error: str, available_at: float) -> None: ...

    async def fail(self, job_id: str, error: str) -> Optional[DeadLetter]: ...

    async def recover(self) -> list[Job]: ...

    async def counts(self) -> dict[str, int]: ...

    async def dead_letters(self) -> list[DeadLetter]: ...


class InMemoryJobStore:
    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._dead: list[DeadLetter] = []
        self._lock = threading.Lock()

    def _update(self, job_id: str, expected: JobStatus, **changes: Any) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None or job.status != expected:
            return None
        changes["updated_at"] = time.time()
        job = job.model_copy(update=changes)
        self._jobs[job_id] = job
        return job

    async def add(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    async def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    async def claim(self, job_id: str, now: float) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.available_at > now:
                return None
            return self._update(
                job_id,
                JobStatus.QUEUED,
                status=JobStatus.ACTIVE,
                attempts_made=job.attempts_made + 1,
                error=None,
            )

    async def set_progress(self, job_id: str, progress: int) -> None:
        with self._lock:
            self._update(job_id, JobStatus.ACTIVE, progress=max(0, min(100, int(progress))))

    async def complete(self, job_id: str, result: Any) -> None:
        with self._lock:
            self._update(
                job_id, JobStatus.ACTIVE, status=JobStatus.COMPLETED, progress=100, result=result
            )

    async def requeue(self, job_id: str, error: str, available_at: float) -> None:
        with self._lock:
            self._update(
                job_id,
                JobStatus.ACTIVE,
                status=JobStatus.QUEUED,
                error=error,
                available_at=available_at,
            )

    async def fail(self, job_id: str, error: str) -> Optional[DeadLetter]:
        with self._lock:
            job = self._update(job_id, JobStatus.ACTIVE, status=JobStatus.FAILED, error=error)
            if job is None:
                return None
            letter = DeadLetter(
                original_job_id=job.id,
                kind=job.kind,
                data=job.data,
                error=error,
                attempts_made=job.attempts_made,
            )
            self._dead.append(letter)
            return letter

    async def recover(self) -> list[Job]:
        with self._lock:
            for job in list(self._jobs.values()):
                if job.status == JobStatus.ACTIVE:
                    self._update(job.id, JobStatus.ACTIVE, status=JobStatus.QUEUED)
            return [j for j in self._jobs.values() if j.status == JobStatus.QUEUED]

    async def counts(self) -> dict[str, int]:
        with self._lock:
            out = {s.value: 0 for s in JobStatus}
            for job in self._jobs.values():
                out[job.status.value] += 1
            out["dead_letters"] = len(self._dead)
            return out

    async def dead_letters(self) -> list[DeadLetter]:
        with self._lock:
            return list(self._dead)
