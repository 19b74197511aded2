"""SQLModel data models.

This module defines the three tables of the statistics store using
SQLModel: per-question statistics, the append-only answer history and
per-session summaries. Timestamps are stored in plain `DateTime` columns as
naive UTC datetimes so they round-trip through SQLite unchanged.
"""

from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

# needs_review thresholds; kept independent of the priority weakness tiers
REVIEW_SUCCESS_RATE = 0.6
REVIEW_INCORRECT_ATTEMPTS = 2


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def compute_needs_review(success_rate: float, incorrect_attempts: int) -> bool:
    """Return True when a question is considered under-mastered."""
    return success_rate < REVIEW_SUCCESS_RATE or incorrect_attempts >= REVIEW_INCORRECT_ATTEMPTS


class QuestionStats(SQLModel, table=True):
    """Aggregated attempt statistics for one question.

    Fields:
    - `success_rate`: always `correct_attempts / total_attempts`
    - `needs_review`: derived from the rest of the row by `recompute()`

    Neither derived field should be assigned by hand; the store calls
    `recompute()` on every write.
    """
    __tablename__ = "question_stats"

    question_id: str = Field(primary_key=True)
    total_attempts: int = 0
    correct_attempts: int = 0
    incorrect_attempts: int = 0
    success_rate: float = Field(default=0.0, index=True)
    first_attempt_date: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    last_attempt_date: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False, index=True))
    average_time_ms: float = 0.0
    needs_review: bool = Field(default=False, index=True)
    category: Optional[str] = None

    def recompute(self) -> "QuestionStats":
        """Refresh `success_rate` and `needs_review` from the counters."""
        if self.total_attempts > 0:
            self.success_rate = self.correct_attempts / self.total_attempts
        else:
            self.success_rate = 0.0
        self.needs_review = compute_needs_review(self.success_rate, self.incorrect_attempts)
        return self

    def apply_answer(self, is_correct: bool, answered_at: datetime, time_spent_ms: int = 0) -> "QuestionStats":
        """Fold one answer into the counters and recompute derived fields.

        `last_attempt_date` never moves backwards, so an out-of-order
        answer only updates the counters and the running average.
        """
        answered_at = as_naive_utc(answered_at)
        self.total_attempts += 1
        if is_correct:
            self.correct_attempts += 1
        else:
            self.incorrect_attempts += 1
        n = self.total_attempts
        self.average_time_ms = ((self.average_time_ms * (n - 1)) + max(0, time_spent_ms)) / n
        if answered_at < self.first_attempt_date:
            self.first_attempt_date = answered_at
        if answered_at > self.last_attempt_date:
            self.last_attempt_date = answered_at
        return self.recompute()

    @classmethod
    def first_answer(cls, question_id: str, is_correct: bool, answered_at: datetime,
                     time_spent_ms: int = 0, category: Optional[str] = None) -> "QuestionStats":
        """Create the stats row for a question answered for the first time."""
        answered_at = as_naive_utc(answered_at)
        stats = cls(
            question_id=question_id,
            first_attempt_date=answered_at,
            last_attempt_date=answered_at,
            category=category,
        )
        return stats.apply_answer(is_correct, answered_at, time_spent_ms)


class AnswerRecord(SQLModel, table=True):
    """A single submitted answer. Immutable once written.

    `id` is assigned by the store; multi-answer questions use the
    `*_indices` columns and leave the single-index columns empty.
    """
    __tablename__ = "answer_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: str = Field(index=True)
    session_id: str = Field(index=True)
    answered_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False, index=True))
    selected_answer_index: Optional[int] = None
    selected_answer_indices: Optional[List[int]] = Field(default=None, sa_column=Column(JSON))
    correct_answer_index: Optional[int] = None
    correct_answer_indices: Optional[List[int]] = Field(default=None, sa_column=Column(JSON))
    is_correct: bool = False
    time_spent_ms: int = 0
    category: Optional[str] = Field(default=None, index=True)


class SessionRecord(SQLModel, table=True):
    """Summary of one practice session, overwritten as answers accrue."""
    __tablename__ = "sessions"

    session_id: str = Field(primary_key=True)
    start_time: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False, index=True))
    end_time: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    total_questions: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    score_percentage: float = 0.0
