"""Database-backed job store and study storage (``STORAGE_BACKEND=postgres``)."""

from __future__ import annotations

import time
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.db.schemas.jobs import DeadLetterRow, JobRow
from app.core.db.schemas.study import DeckRow, QuizAttemptRow
from app.core.job_store import DeadLetter, Job, JobStatus
from app.modules.study.models import Deck, QuizAttempt


def _to_job(row: JobRow) -> Job:
    return Job(
        id=row.id,
        kind=row.kind,
        status=JobStatus(row.status),
        progress=row.progress,
        data=row.data or {},
        result=row.result,
        error=row.error,
        attempts_made=row.attempts_made,
        max_attempts=row.max_attempts,
        created_at=row.created_at,
        updated_at=row.updated_at,
        available_at=row.available_at,
    )


def _to_dead_letter(row: DeadLetterRow) -> DeadLetter:
    return DeadLetter(
        id=row.id,
        original_job_id=row.original_job_id,
        kind=row.kind,
        data=row.data or {},
        error=row.error,
        attempts_made=row.attempts_made,
        timestamp=row.timestamp,
    )


class SqlJobStore:
    """Job store whose transitions are conditional UPDATEs.

    A claim only succeeds for the worker whose ``UPDATE ... WHERE status =
    'queued'`` touched the row, so several processes can share the table.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @staticmethod
    async def _update(
        session: AsyncSession, job_id: str, expected: JobStatus, **values: Any
    ) -> Optional[Job]:
        values["updated_at"] = time.time()
        result = await session.execute(
            update(JobRow)
            .where(JobRow.id == job_id, JobRow.status == expected.value)
            .values(**values)
            .returning(JobRow)
        )
        row = result.scalar_one_or_none()
        return _to_job(row) if row is not None else None

    async def _transition(
        self, job_id: str, expected: JobStatus, **values: Any
    ) -> Optional[Job]:
        async with self.session_maker() as session:
            job = await self._update(session, job_id, expected, **values)
            await session.commit()
            return job

    async def add(self, job: Job) -> None:
        async with self.session_maker() as session:
            session.add(JobRow(**{**job.model_dump(), "status": job.status.value}))
            await session.commit()

    async def get(self, job_id: str) -> Optional[Job]:
        async with self.session_maker() as session:
            row = await session.get(JobRow, job_id)
            return _to_job(row) if row is not None else None

    async def claim(self, job_id: str, now: float) -> Optional[Job]:
        values = {
            "status": JobStatus.ACTIVE.value,
            "attempts_made": JobRow.attempts_made + 1,
            "error": None,
            "updated_at": time.time(),
        }
        async with self.session_maker() as session:
            result = await session.execute(
                update(JobRow)
                .where(
                    JobRow.id == job_id,
                    JobRow.status == JobStatus.QUEUED.value,
                    JobRow.available_at <= now,
                )
                .values(**values)
                .returning(JobRow)
            )
            row = result.scalar_one_or_none()
            await session.commit()
            return _to_job(row) if row is not None else None

    async def set_progress(self, job_id: str, progress: int) -> None:
        await self._transition(
            job_id, JobStatus.ACTIVE, progress=max(0, min(100, int(progress)))
        )

    async def complete(self, job_id: str, result: Any) -> None:
        await self._transition(
            job_id,
            JobStatus.ACTIVE,
            status=JobStatus.COMPLETED.value,
            progress=100,
            result=result,
        )

    async def requeue(self, job_id: str, error: str, available_at: float) -> None:
        await self._transition(
            job_id,
            JobStatus.ACTIVE,
            status=JobStatus.QUEUED.value,
            error=error,
            available_at=available_at,
        )

    async def fail(self, job_id: str, error: str) -> Optional[DeadLetter]:
        """Mark the job failed and quarantine it in one transaction."""
        async with self.session_maker() as session:
            job = await self._update(
                session,
                job_id,
                JobStatus.ACTIVE,
                status=JobStatus.FAILED.value,
                error=error,
            )
            if job is None:
                await session.rollback()
                return None
            letter = DeadLetter(
                original_job_id=job.id,
                kind=job.kind,
                data=job.data,
                error=error,
                attempts_made=job.attempts_made,
            )
            session.add(DeadLetterRow(**letter.model_dump()))
            await session.commit()
        return letter

    async def recover(self) -> list[Job]:
        async with self.session_maker() as session:
            await session.execute(
                update(JobRow)
                .where(JobRow.status == JobStatus.ACTIVE.value)
                .values(status=JobStatus.QUEUED.value, updated_at=time.time())
            )
            await session.commit()
            rows = await session.execute(
                select(JobRow).where(JobRow.status == JobStatus.QUEUED.value)
            )
            return [_to_job(r) for r in rows.scalars().all()]

    async def counts(self) -> dict[str, int]:
        async with self.session_maker() as session:
            rows = await session.execute(
                select(JobRow.status, func.count()).group_by(JobRow.status)
            )
            out = {s.value: 0 for s in JobStatus}
            for status, n in rows.all():
                out[status] = n
            dead = await session.execute(select(func.count()).select_from(DeadLetterRow))
            out["dead_letters"] = dead.scalar_one()
            return out

    async def dead_letters(self) -> list[DeadLetter]:
        async with self.session_maker() as session:
            rows = await session.execute(
                select(DeadLetterRow).order_by(DeadLetterRow.timestamp)
            )
            return [_to_dead_letter(r) for r in rows.scalars().all()]


class SqlStorage:
    """Decks and quiz attempts stored as JSON rows."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def save_deck(self, deck: Deck) -> None:
        data = deck.model_dump(mode="json")
        async with self.session_maker() as session:
            await session.merge(DeckRow(**data))
            await session.commit()

    async def get_deck_history(self) -> list[Deck]:
        async with self.session_maker() as session:
            rows = await session.execute(select(DeckRow).order_by(DeckRow.timestamp.desc()))
            return [
                Deck(id=r.id, topic=r.topic, timestamp=r.timestamp, cards=r.cards)
                for r in rows.scalars().all()
            ]

    async def get_deck(self, deck_id: str) -> Optional[Deck]:
        async with self.session_maker() as session:
            r = await session.get(DeckRow, deck_id)
            if r is None:
                return None
            return Deck(id=r.id, topic=r.topic, timestamp=r.timestamp, cards=r.cards)

    async def save_quiz_result(self, attempt: QuizAttempt) -> None:
        data = attempt.model_dump(mode="json")
        async with self.session_maker() as session:
            await session.merge(QuizAttemptRow(**data))
            await session.commit()

    async def get_quiz_history(self) -> list[QuizAttempt]:
        async with self.session_maker() as session:
            rows = await session.execute(
                select(QuizAttemptRow).order_by(QuizAttemptRow.timestamp.desc())
            )
            return [
                QuizAttempt(
                    id=r.id,
                    topic=r.topic,
                    timestamp=r.timestamp,
                    score=r.score,
                    total=r.total,
                    results=r.results,
                )
                for r in rows.scalars().all()
            ]
