"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table (question stats,
answer history, sessions). Repositories work on an `AsyncSession`
supplied by the caller and perform commits where appropriate; error
translation and initialisation checks live in `store.StatisticsStore`.
"""

from typing import List, Optional
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from . import models


class QuestionStatsRepository:
    """Upserts and queries for `QuestionStats` rows."""
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, stats: models.QuestionStats) -> models.QuestionStats:
        """Insert or replace the row keyed by `question_id`."""
        await self.session.merge(stats)
        await self.session.commit()
        return stats

    async def get(self, question_id: str) -> Optional[models.QuestionStats]:
        """Return the stats row for `question_id` or `None`."""
        return await self.session.get(models.QuestionStats, question_id)

    async def list_all(self) -> List[models.QuestionStats]:
        result = await self.session.scalars(select(models.QuestionStats))
        return list(result.all())

    async def list_needing_review(self) -> List[models.QuestionStats]:
        """Return flagged rows; the filter is served by the `needs_review` index."""
        stmt = select(models.QuestionStats).where(models.QuestionStats.needs_review == True)  # noqa: E712
        result = await self.session.scalars(stmt)
        return list(result.all())


class AnswerHistoryRepository:
    """Append and range queries over the answer history."""
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, record: models.AnswerRecord) -> int:
        """Append `record` and return the id assigned by the database."""
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record.id

    async def list_for_question(self, question_id: str) -> List[models.AnswerRecord]:
        stmt = select(models.AnswerRecord).where(models.AnswerRecord.question_id == question_id)
        result = await self.session.scalars(stmt)
        return list(result.all())

    async def list_recent(self, limit: int) -> List[models.AnswerRecord]:
        """Return up to `limit` records, newest first.

        The ORDER BY/LIMIT pair walks the `answered_at` index backwards and
        stops after `limit` rows, so the table is never sorted in memory.
        """
        stmt = (
            select(models.AnswerRecord)
            .order_by(models.AnswerRecord.answered_at.desc())
            .limit(limit)
        )
        result = await self.session.scalars(stmt)
        return list(result.all())


class SessionRepository:
    """Upserts and recency queries for `SessionRecord` rows."""
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, record: models.SessionRecord) -> models.SessionRecord:
        await self.session.merge(record)
        await self.session.commit()
        return record

    async def list_recent(self, limit: int) -> List[models.SessionRecord]:
        """Return up to `limit` sessions ordered by `start_time`, newest first."""
        stmt = select(models.SessionRecord).order_by(models.SessionRecord.start_time.desc()).limit(limit)
        result = await self.session.scalars(stmt)
        return list(result.all())


async def clear_tables(session: AsyncSession) -> None:
    """Delete every row of the three tables inside one transaction."""
    async with session.begin():
        await session.execute(delete(models.QuestionStats))
        await session.execute(delete(models.AnswerRecord))
        await session.execute(delete(models.SessionRecord))
