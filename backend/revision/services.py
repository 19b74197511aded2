"""Business logic services used by HTTP controllers and scripts.

This module holds small service classes that coordinate the statistics
store, the session context and the derived reports. Services are
intentionally thin: they validate input, run the domain logic and
persist through the store.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

from . import models
from .errors import StorageError
from .models import as_naive_utc, utcnow
from .schemas import AnswerResult, AnswerSubmission, CategoryStat, MultipleAnswer, Question, SessionOverview
from .session import PracticeSession
from .store import StatisticsStore

logger = logging.getLogger("revision.services")

WEAK_CATEGORY_RATE = 0.7
WEAK_CATEGORY_MIN_ANSWERS = 3


class RecordingService:
    """Record submitted answers in two phases.

    The in-memory session tally is updated first and always succeeds.
    The durable writes (answer record, question stats, session summary)
    follow and are best-effort: a storage failure is logged and leaves
    the tally untouched. Writes go through one lock, so queued answers
    reach the stats rows in submission order.
    """
    def __init__(self, store: StatisticsStore):
        self.store = store
        self._background: Set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()

    def _grade(self, question: Question, submission: AnswerSubmission) -> bool:
        if submission.question_id != question.id:
            raise ValueError(f"submission is for {submission.question_id}, not {question.id}")
        if submission.is_correct is not None:
            return submission.is_correct
        return question.is_correct(submission.selection)

    def _apply(self, session: PracticeSession, question: Question, submission: AnswerSubmission) -> Tuple[AnswerResult, datetime]:
        is_correct = self._grade(question, submission)
        answered_at = as_naive_utc(submission.timestamp) if submission.timestamp else utcnow()
        session.record(question.id, submission.selection, is_correct, answered_at)
        result = AnswerResult(
            question_id=question.id,
            is_correct=is_correct,
            explanation=question.explanation,
            tally=session.tally(),
        )
        return result, answered_at

    async def submit(self, session: PracticeSession, question: Question, submission: AnswerSubmission) -> AnswerResult:
        """Tally the answer, then persist it before returning."""
        result, answered_at = self._apply(session, question, submission)
        await self.persist(session, question, submission, result.is_correct, answered_at)
        return result

    def submit_in_background(self, session: PracticeSession, question: Question,
                             submission: AnswerSubmission) -> Tuple[AnswerResult, asyncio.Task]:
        """Tally the answer and schedule persistence without waiting for it.

        Must be called from a running event loop. The returned task never
        raises storage errors; `drain()` waits for outstanding writes.
        """
        result, answered_at = self._apply(session, question, submission)
        task = asyncio.create_task(self.persist(session, question, submission, result.is_correct, answered_at))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return result, task

    async def drain(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def persist(self, session: PracticeSession, question: Question, submission: AnswerSubmission,
                      is_correct: bool, answered_at: datetime) -> bool:
        """Write the answer record, the stats update and the session summary.

        Returns False when a storage error stopped the writes, or when the
        store never opened. The store does not retry and neither does this
        method.
        """
        if not self.store.initialized:
            logger.warning("persist_skipped session_id=%s question_id=%s store unavailable",
                           session.session_id, question.id)
            return False
        multiple = isinstance(question.correctness, MultipleAnswer)
        record = models.AnswerRecord(
            question_id=question.id,
            session_id=session.session_id,
            answered_at=answered_at,
            selected_answer_index=submission.selected_answer_index,
            selected_answer_indices=sorted(submission.selected_answer_indices) if submission.selected_answer_indices is not None else None,
            correct_answer_index=None if multiple else question.correctness.index,
            correct_answer_indices=sorted(question.correctness.indices) if multiple else None,
            is_correct=is_correct,
            time_spent_ms=submission.time_spent_ms,
            category=question.category,
        )
        try:
            # stats are read-modify-write; hold the lock until the row is saved
            async with self._write_lock:
                record_id = await self.store.record_answer(record)
                stats = await self.store.get_question_stats(question.id)
                if stats is None:
                    stats = models.QuestionStats.first_answer(
                        question.id, is_correct, answered_at, submission.time_spent_ms, question.category
                    )
                else:
                    stats.apply_answer(is_correct, answered_at, submission.time_spent_ms)
                await self.store.save_question_stats(stats)
                await self.store.save_session(session.to_record())
        except StorageError as exc:
            logger.warning(
                "persist_failed %s",
                json.dumps(
                    {"session_id": session.session_id, "question_id": question.id, "error": str(exc)},
                    ensure_ascii=True,
                ),
            )
            return False
        logger.info(
            "answer_recorded %s",
            json.dumps(
                {
                    "record_id": record_id,
                    "session_id": session.session_id,
                    "question_id": question.id,
                    "is_correct": is_correct,
                    "success_rate": round(stats.success_rate, 4),
                    "needs_review": stats.needs_review,
                },
                ensure_ascii=True,
            ),
        )
        return True

    async def open_session(self, session: PracticeSession) -> bool:
        """Upsert the initial (empty) summary for a new session (best-effort)."""
        return await self._save_session(session)

    async def end_session(self, session: PracticeSession, when: Optional[datetime] = None) -> bool:
        """Stamp the session end time and upsert the summary (best-effort)."""
        session.end(when)
        return await self._save_session(session)

    async def _save_session(self, session: PracticeSession) -> bool:
        if not self.store.initialized:
            return False
        try:
            async with self._write_lock:
                await self.store.save_session(session.to_record())
        except StorageError as exc:
            logger.warning("session_persist_failed session_id=%s error=%s", session.session_id, exc)
            return False
        return True


class ReportingService:
    """Derived views over stored history for the statistics display.

    Report methods degrade instead of raising when the store cannot be
    read: weak categories fall back to an empty list and review
    selection falls back to the full question list.
    """
    def __init__(self, store: StatisticsStore, recent_sessions_limit: int = 10):
        self.store = store
        self.recent_sessions_limit = recent_sessions_limit

    async def get_weak_categories(self) -> List[str]:
        """Categories below 70% with at least three answers on record."""
        try:
            category_stats = await self.store.get_category_stats()
        except Exception:
            logger.exception("weak_categories_failed")
            return []
        return [
            category
            for category, stat in category_stats.items()
            if stat.rate < WEAK_CATEGORY_RATE and stat.total >= WEAK_CATEGORY_MIN_ANSWERS
        ]

    async def get_questions_needing_review(self, questions: Sequence[Question]) -> List[Question]:
        """Questions flagged for review plus questions never attempted.

        Only questions from `questions` are returned, in their input order.
        """
        try:
            flagged = {s.question_id for s in await self.store.get_questions_needing_review()}
            attempted = {s.question_id for s in await self.store.get_all_question_stats()}
        except Exception:
            logger.exception("review_selection_failed questions=%d", len(questions))
            return list(questions)
        return [q for q in questions if q.id in flagged or q.id not in attempted]

    async def get_category_breakdown(self) -> List[Tuple[str, CategoryStat]]:
        """Category stats sorted by rate, weakest first."""
        category_stats: Dict[str, CategoryStat] = await self.store.get_category_stats()
        return sorted(category_stats.items(), key=lambda item: item[1].rate)

    async def get_overview(self, limit: Optional[int] = None) -> SessionOverview:
        """Totals over the most recent sessions."""
        sessions = await self.store.get_recent_sessions(limit or self.recent_sessions_limit)
        total_q = sum(s.total_questions for s in sessions)
        total_c = sum(s.correct_answers for s in sessions)
        total_i = sum(s.incorrect_answers for s in sessions)
        return SessionOverview(
            sessions=len(sessions),
            total_questions=total_q,
            total_correct=total_c,
            total_incorrect=total_i,
            overall_rate=(total_c / total_q) * 100 if total_q > 0 else 0.0,
        )
