"""Practice session context.

A `PracticeSession` is created when a practice run starts and discarded
when it ends or the app is reset. It holds the session id and the
in-memory tally, which is the authoritative score for the current
session whether or not the durable writes succeed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Union

from .models import SessionRecord, as_naive_utc, utcnow
from .schemas import SessionTally


@dataclass(frozen=True)
class UserAnswer:
    question_id: str
    selection: Union[int, FrozenSet[int]]
    is_correct: bool
    timestamp: datetime


@dataclass
class PracticeSession:
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    total_questions: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    answers: List[UserAnswer] = field(default_factory=list)
    last_active: datetime = field(default_factory=utcnow)

    @property
    def score_percentage(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return (self.correct_answers / self.total_questions) * 100

    def record(self, question_id: str, selection: Union[int, FrozenSet[int]], is_correct: bool,
               timestamp: Optional[datetime] = None) -> UserAnswer:
        """Update the in-memory tally; this step cannot fail."""
        answer = UserAnswer(question_id, selection, is_correct, as_naive_utc(timestamp or utcnow()))
        self.total_questions += 1
        if is_correct:
            self.correct_answers += 1
        else:
            self.incorrect_answers += 1
        self.answers.append(answer)
        self.last_active = utcnow()
        return answer

    def end(self, when: Optional[datetime] = None) -> None:
        self.end_time = as_naive_utc(when or utcnow())

    def tally(self) -> SessionTally:
        return SessionTally(
            session_id=self.session_id,
            total_questions=self.total_questions,
            correct_answers=self.correct_answers,
            incorrect_answers=self.incorrect_answers,
            score_percentage=self.score_percentage,
        )

    def to_record(self) -> SessionRecord:
        """Snapshot the tally as a `SessionRecord` for upserting."""
        return SessionRecord(
            session_id=self.session_id,
            start_time=self.start_time,
            end_time=self.end_time,
            total_questions=self.total_questions,
            correct_answers=self.correct_answers,
            incorrect_answers=self.incorrect_answers,
            score_percentage=self.score_percentage,
        )


def evict_idle_sessions(sessions: Dict[str, PracticeSession], idle_after: timedelta, max_open: int,
                        now: Optional[datetime] = None) -> List[str]:
    """Drop open sessions nobody is answering in, returning the evicted ids.

    Sessions idle for longer than `idle_after` go first; if more than
    `max_open` remain, the least recently active ones follow. Evicted
    sessions are not ended: their stored summary keeps the last tally
    that was written.
    """
    now = as_naive_utc(now) if now is not None else utcnow()
    evicted = [sid for sid, s in sessions.items() if now - s.last_active > idle_after]
    for sid in evicted:
        del sessions[sid]
    overflow = len(sessions) - max_open
    if overflow > 0:
        oldest = sorted(sessions, key=lambda sid: sessions[sid].last_active)[:overflow]
        for sid in oldest:
            del sessions[sid]
        evicted.extend(oldest)
    return evicted
