"""Revision scheduling: priority ordering and smart shuffle.

The scheduler turns a question set into a list ordered by priority and
into a randomised presentation order biased toward high-priority
questions. There is no static deck: every pass re-derives its order
from the statistics currently in the store.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Iterable, List, Optional, Sequence

from .priority import calculate_priority
from .schemas import Question
from .store import StatisticsStore

logger = logging.getLogger("revision.scheduler")

DEFAULT_PRIORITY = 50
DEFAULT_REASON = "Default order"


@dataclass(frozen=True)
class QuestionPriority:
    question: Question
    priority: int
    reason: str


def smart_shuffle(prioritized: Sequence[QuestionPriority], rng: Optional[random.Random] = None) -> List[Question]:
    """Weighted sampling without replacement over `prioritized`.

    Each draw picks one remaining item with probability proportional to
    its priority. Negative priorities count as zero; when every
    remaining weight is zero the draw is uniform. The result is always
    a permutation of the input questions.
    """
    rng = rng or random.Random()
    remaining = [(max(0, item.priority), item.question) for item in prioritized]
    shuffled: List[Question] = []
    while remaining:
        total = sum(weight for weight, _ in remaining)
        if total <= 0:
            index = rng.randrange(len(remaining))
        else:
            target = rng.random() * total
            cumulative = 0.0
            for i, (weight, _) in enumerate(remaining):
                cumulative += weight
                if weight > 0 and target < cumulative:
                    index = i
                    break
            else:
                # float round-off on the last bucket: take the last positive weight
                index = max(i for i, (weight, _) in enumerate(remaining) if weight > 0)
        shuffled.append(remaining.pop(index)[1])
    return shuffled


def filter_by_category(questions: Iterable[Question], category: str) -> List[Question]:
    """Return the questions tagged with `category`."""
    return [q for q in questions if q.category == category]


class RevisionScheduler:
    """Prioritise and order questions from stored statistics."""

    def __init__(self, store: StatisticsStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    async def prioritize_questions(self, questions: Sequence[Question],
                                   now: Optional[datetime] = None) -> List[QuestionPriority]:
        """Score every question and sort by priority, highest first.

        Ties keep their input order. If the statistics cannot be read for
        any reason, every question gets the default priority and the
        input order is returned unchanged; the error is only logged.
        """
        try:
            all_stats = await self.store.get_all_question_stats()
        except Exception:
            logger.exception("prioritize_failed questions=%d", len(questions))
            return [QuestionPriority(q, DEFAULT_PRIORITY, DEFAULT_REASON) for q in questions]
        stats_by_id = {s.question_id: s for s in all_stats}
        prioritized = []
        for q in questions:
            score, reason = calculate_priority(stats_by_id.get(q.id), now)
            prioritized.append(QuestionPriority(q, score, reason))
        return sorted(prioritized, key=lambda p: p.priority, reverse=True)

    def smart_shuffle(self, prioritized: Sequence[QuestionPriority]) -> List[Question]:
        return smart_shuffle(prioritized, self.rng)

    async def next_order(self, questions: Sequence[Question]) -> List[Question]:
        """Prioritise `questions` against current stats and smart-shuffle them."""
        prioritized = await self.prioritize_questions(questions)
        return self.smart_shuffle(prioritized)


class RevisionCycle:
    """Endless practice over a question set.

    Questions are served one pass at a time. When a pass runs out the
    next one is derived again from current statistics, so answers given
    during a pass influence the following one.
    """

    def __init__(self, scheduler: RevisionScheduler, questions: Sequence[Question]):
        self.scheduler = scheduler
        self.questions = list(questions)
        self.pass_number = 0
        self._pending: Deque[Question] = deque()

    @property
    def remaining(self) -> int:
        return len(self._pending)

    async def reshuffle(self) -> List[Question]:
        order = await self.scheduler.next_order(self.questions)
        self._pending = deque(order)
        self.pass_number += 1
        logger.debug("revision_pass pass=%d questions=%d", self.pass_number, len(order))
        return order

    async def next_question(self) -> Optional[Question]:
        """Return the next question, starting a new pass when needed.

        Returns `None` only when the question set is empty.
        """
        if not self._pending:
            await self.reshuffle()
        if not self._pending:
            return None
        return self._pending.popleft()
