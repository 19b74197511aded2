"""Durable statistics store.

`StatisticsStore` owns the async engine and exposes the store
operations used by the scheduler, the recording path and the statistics
display. Every accessor refuses to run before `init()` has succeeded,
database errors on writes surface as `RecordWriteFailure` and errors on
reads or on open surface as `StorageUnavailable`. The store never
retries; that is left to callers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from . import models, repositories
from .database import create_db_and_tables, make_engine, make_session_factory
from .errors import NotInitialized, RecordWriteFailure, StorageUnavailable
from .schemas import CategoryStat

logger = logging.getLogger("revision.store")

DEFAULT_CATEGORY_WINDOW = 1000


class StatisticsStore:
    """Question stats, answer history and sessions behind one handle."""

    def __init__(self, url: str, category_window: int = DEFAULT_CATEGORY_WINDOW, echo: bool = False):
        self.url = url
        self.category_window = category_window
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._sessions is not None

    async def init(self) -> None:
        """Open the database and create tables and indexes on first use.

        Safe to call repeatedly and from concurrent tasks; only the first
        successful call does any work. Raises `StorageUnavailable` when the
        database cannot be opened.
        """
        if self._sessions is not None:
            return
        async with self._init_lock:
            if self._sessions is not None:
                return
            try:
                engine = make_engine(self.url, echo=self._echo)
            except (SQLAlchemyError, ImportError, ValueError) as exc:
                raise StorageUnavailable(f"cannot create engine for {self.url}: {exc}") from exc
            try:
                await create_db_and_tables(engine)
            except (SQLAlchemyError, OSError) as exc:
                await engine.dispose()
                logger.error("store_open_failed url=%s error=%s", self.url, exc)
                raise StorageUnavailable(f"cannot open statistics store: {exc}") from exc
            self._engine = engine
            self._sessions = make_session_factory(engine)
            logger.info("store_ready url=%s", self.url)

    async def close(self) -> None:
        """Dispose of the engine; the store must be re-initialised before reuse."""
        engine = self._engine
        self._engine = None
        self._sessions = None
        if engine is not None:
            await engine.dispose()

    def _factory(self, operation: str) -> async_sessionmaker:
        if self._sessions is None:
            raise NotInitialized(operation)
        return self._sessions

    # question stats

    async def save_question_stats(self, stats: models.QuestionStats) -> None:
        """Upsert `stats` keyed by `question_id`; derived fields are recomputed first."""
        factory = self._factory("save_question_stats")
        stats.recompute()
        try:
            async with factory() as session:
                await repositories.QuestionStatsRepository(session).upsert(stats)
        except SQLAlchemyError as exc:
            raise RecordWriteFailure(f"failed to save stats for {stats.question_id}: {exc}") from exc

    async def get_question_stats(self, question_id: str) -> Optional[models.QuestionStats]:
        """Return the stats row for `question_id`, or `None` when it was never answered."""
        factory = self._factory("get_question_stats")
        try:
            async with factory() as session:
                return await repositories.QuestionStatsRepository(session).get(question_id)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def get_all_question_stats(self) -> List[models.QuestionStats]:
        factory = self._factory("get_all_question_stats")
        try:
            async with factory() as session:
                return await repositories.QuestionStatsRepository(session).list_all()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def get_questions_needing_review(self) -> List[models.QuestionStats]:
        factory = self._factory("get_questions_needing_review")
        try:
            async with factory() as session:
                return await repositories.QuestionStatsRepository(session).list_needing_review()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    # answer history

    async def record_answer(self, record: models.AnswerRecord) -> int:
        """Append `record` to the answer history and return its new id.

        Identity belongs to the store: a caller-supplied id is rejected.
        """
        factory = self._factory("record_answer")
        if record.id is not None:
            raise ValueError("answer records are assigned an id by the store")
        try:
            async with factory() as session:
                return await repositories.AnswerHistoryRepository(session).add(record)
        except SQLAlchemyError as exc:
            raise RecordWriteFailure(f"failed to record answer for {record.question_id}: {exc}") from exc

    async def get_answer_history(self, question_id: str) -> List[models.AnswerRecord]:
        factory = self._factory("get_answer_history")
        try:
            async with factory() as session:
                return await repositories.AnswerHistoryRepository(session).list_for_question(question_id)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def get_recent_answers(self, limit: int = 50) -> List[models.AnswerRecord]:
        """Return at most `limit` answers, most recent first."""
        factory = self._factory("get_recent_answers")
        if limit <= 0:
            return []
        try:
            async with factory() as session:
                return await repositories.AnswerHistoryRepository(session).list_recent(limit)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    # sessions

    async def save_session(self, record: models.SessionRecord) -> None:
        factory = self._factory("save_session")
        try:
            async with factory() as session:
                await repositories.SessionRepository(session).upsert(record)
        except SQLAlchemyError as exc:
            raise RecordWriteFailure(f"failed to save session {record.session_id}: {exc}") from exc

    async def get_recent_sessions(self, limit: int = 10) -> List[models.SessionRecord]:
        """Return at most `limit` sessions, most recently started first."""
        factory = self._factory("get_recent_sessions")
        if limit <= 0:
            return []
        try:
            async with factory() as session:
                return await repositories.SessionRepository(session).list_recent(limit)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    # aggregates and reset

    async def get_category_stats(self) -> Dict[str, CategoryStat]:
        """Aggregate correctness per category over the most recent answers.

        Only the newest `category_window` answers are considered. Answers
        without a category are skipped, so categories never answered do
        not appear in the result.
        """
        answers = await self.get_recent_answers(self.category_window)
        out: Dict[str, CategoryStat] = {}
        for answer in answers:
            if not answer.category:
                continue
            stat = out.setdefault(answer.category, CategoryStat())
            stat.total += 1
            if answer.is_correct:
                stat.correct += 1
            stat.rate = stat.correct / stat.total
        return out

    async def clear_all_data(self) -> None:
        """Empty all three tables atomically.

        The deletes share one transaction; on failure it is rolled back and
        `RecordWriteFailure` is raised with nothing observably changed.
        """
        factory = self._factory("clear_all_data")
        try:
            async with factory() as session:
                await repositories.clear_tables(session)
        except SQLAlchemyError as exc:
            logger.error("clear_all_data_failed error=%s", exc)
            raise RecordWriteFailure(f"failed to clear statistics: {exc}") from exc
        logger.warning("store_cleared url=%s", self.url)
