"""Revision priority scoring.

`calculate_priority` maps a question's stored statistics to a score in
0..100 (higher means the question should come back sooner) plus a short
human-readable reason. The score is additive: a base of 50 plus capped
bonuses for weakness, staleness, repeated failure and the review flag.
Questions never attempted get a fixed score.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import NamedTuple, Optional

from .models import QuestionStats, as_naive_utc, utcnow

NEVER_ATTEMPTED_PRIORITY = 70
BASE_PRIORITY = 50
MAX_PRIORITY = 100
MIN_PRIORITY = 0

# (upper bound on success rate, bonus); first match wins
WEAKNESS_TIERS = ((0.3, 40), (0.5, 30), (0.7, 20), (0.9, 10))
# (days since last attempt strictly above, bonus)
STALENESS_TIERS = ((7, 30), (3, 20), (1, 10))
# (incorrect attempts at least, bonus)
FAILURE_TIERS = ((3, 20), (2, 10))
REVIEW_FLAG_BONUS = 10

# reason text thresholds
LOW_RATE_REASON_BELOW = 0.5
STALE_REASON_DAYS = 7
DUE_REASON_DAYS = 3
FAILURE_REASON_AT_LEAST = 3


class PriorityScore(NamedTuple):
    score: int
    reason: str


def days_since(moment: datetime, now: Optional[datetime] = None) -> float:
    """Return fractional days elapsed between `moment` and `now`."""
    now = as_naive_utc(now) if now is not None else utcnow()
    return (now - as_naive_utc(moment)).total_seconds() / 86400.0


def _round_half_up(value: float) -> int:
    # halves round up, not to even
    return math.floor(value + 0.5)


def _weakness_bonus(success_rate: float) -> int:
    for bound, bonus in WEAKNESS_TIERS:
        if success_rate < bound:
            return bonus
    return 0


def _staleness_bonus(days: float) -> int:
    for bound, bonus in STALENESS_TIERS:
        if days > bound:
            return bonus
    return 0


def _failure_bonus(incorrect_attempts: int) -> int:
    for bound, bonus in FAILURE_TIERS:
        if incorrect_attempts >= bound:
            return bonus
    return 0


def priority_score(stats: Optional[QuestionStats], now: Optional[datetime] = None) -> int:
    """Return the 0..100 priority for `stats` (`None` means never attempted)."""
    if stats is None:
        return NEVER_ATTEMPTED_PRIORITY
    score = BASE_PRIORITY
    score += _weakness_bonus(stats.success_rate)
    score += _staleness_bonus(days_since(stats.last_attempt_date, now))
    score += _failure_bonus(stats.incorrect_attempts)
    if stats.needs_review:
        score += REVIEW_FLAG_BONUS
    return max(MIN_PRIORITY, min(MAX_PRIORITY, score))


def priority_reason(stats: Optional[QuestionStats], now: Optional[datetime] = None) -> str:
    """Describe why a question has its priority.

    The reason thresholds only loosely follow the scoring tiers: a
    question seen two days ago scores a staleness bonus but gets no
    staleness reason.
    """
    if stats is None:
        return "Never attempted"
    reasons = []
    if stats.success_rate < LOW_RATE_REASON_BELOW:
        reasons.append(f"Low success rate ({_round_half_up(stats.success_rate * 100)}%)")
    days = days_since(stats.last_attempt_date, now)
    if days > STALE_REASON_DAYS:
        reasons.append(f"Not practiced in {_round_half_up(days)} days")
    elif days > DUE_REASON_DAYS:
        reasons.append("Due for review")
    if stats.incorrect_attempts >= FAILURE_REASON_AT_LEAST:
        reasons.append("Multiple incorrect attempts")
    if not reasons:
        return "Regular practice"
    return ", ".join(reasons)


def calculate_priority(stats: Optional[QuestionStats], now: Optional[datetime] = None) -> PriorityScore:
    """Score a question and explain the score.

    `now` defaults to the current UTC time; pass it explicitly to get
    reproducible results.
    """
    now = as_naive_utc(now) if now is not None else utcnow()
    return PriorityScore(priority_score(stats, now), priority_reason(stats, now))
