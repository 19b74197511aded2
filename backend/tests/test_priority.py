from datetime import timedelta
import pytest
from revision.models import QuestionStats, compute_needs_review
from revision.priority import calculate_priority, priority_score


def _stats(success_rate=1.0, incorrect=0, needs_review=False, last=None, total=10):
    # fields set directly so one factor can move while the others stay fixed
    return QuestionStats(
        question_id='q', total_attempts=total, correct_attempts=total - incorrect,
        incorrect_attempts=incorrect, success_rate=success_rate, needs_review=needs_review,
        first_attempt_date=last, last_attempt_date=last,
    )


def test_never_attempted_is_fixed_seventy(now):
    assert calculate_priority(None, now) == (70, 'Never attempted')


def test_first_incorrect_answer_scores_one_hundred(now):
    stats = QuestionStats.first_answer('q1', is_correct=False, answered_at=now)
    assert stats.total_attempts == 1
    assert stats.incorrect_attempts == 1
    assert stats.success_rate == 0
    assert stats.needs_review is True
    # 50 + 40 (weak) + 0 (fresh) + 0 (one miss) + 10 (review flag)
    score, reason = calculate_priority(stats, now)
    assert score == 100
    assert reason == 'Low success rate (0%)'


def test_score_is_capped_and_reasons_are_joined(now, days_ago):
    stats = QuestionStats(question_id='q', total_attempts=5, correct_attempts=2, incorrect_attempts=3,
                          first_attempt_date=days_ago(20), last_attempt_date=days_ago(10)).recompute()
    score, reason = calculate_priority(stats, now)
    assert score == 100
    assert reason == 'Low success rate (40%), Not practiced in 10 days, Multiple incorrect attempts'


def test_staleness_reason_tiers(now, days_ago):
    assert calculate_priority(_stats(last=days_ago(2)), now) == (60, 'Regular practice')
    assert calculate_priority(_stats(last=days_ago(5)), now) == (70, 'Due for review')
    assert calculate_priority(_stats(last=days_ago(0.5)), now) == (50, 'Regular practice')


def test_reason_numbers_round_halves_up(now, days_ago):
    stats = QuestionStats(question_id='q', total_attempts=8, correct_attempts=1, incorrect_attempts=7,
                          first_attempt_date=days_ago(8.5), last_attempt_date=days_ago(8.5)).recompute()
    _, reason = calculate_priority(stats, now)
    assert reason == 'Low success rate (13%), Not practiced in 9 days, Multiple incorrect attempts'
    _, reason = calculate_priority(_stats(last=days_ago(10.5)), now)
    assert reason == 'Not practiced in 11 days'


def test_weakness_tiers(now):
    expected = {0.1: 90, 0.3: 80, 0.5: 70, 0.7: 60, 0.89: 60, 0.9: 50, 1.0: 50}
    for rate, score in expected.items():
        assert priority_score(_stats(success_rate=rate, last=now), now) == score


def test_monotonic_in_success_rate(now):
    rates = [i / 20 for i in range(21)]
    scores = [priority_score(_stats(success_rate=r, last=now), now) for r in rates]
    assert all(a >= b for a, b in zip(scores, scores[1:]))


def test_monotonic_in_staleness(now):
    days = [0, 0.5, 1, 1.5, 2, 3, 3.5, 5, 7, 7.5, 30, 365]
    scores = [priority_score(_stats(success_rate=0.95, last=now - timedelta(days=d)), now) for d in days]
    assert all(a <= b for a, b in zip(scores, scores[1:]))


def test_monotonic_in_incorrect_attempts(now):
    scores = [priority_score(_stats(success_rate=0.95, incorrect=n, total=100, last=now), now) for n in range(6)]
    assert all(a <= b for a, b in zip(scores, scores[1:]))
    assert scores[0] == 50 and scores[2] == 60 and scores[3] == 70


@pytest.mark.parametrize('rate', [0.0, 0.25, 0.55, 0.8, 1.0])
@pytest.mark.parametrize('days', [0, 2, 4, 10])
@pytest.mark.parametrize('incorrect', [0, 2, 5])
@pytest.mark.parametrize('flag', [False, True])
def test_score_always_in_range(now, rate, days, incorrect, flag):
    score = priority_score(_stats(success_rate=rate, incorrect=incorrect, needs_review=flag,
                                  last=now - timedelta(days=days)), now)
    assert 0 <= score <= 100


def test_needs_review_derivation():
    assert compute_needs_review(0.59, 0) is True
    assert compute_needs_review(0.6, 0) is False
    assert compute_needs_review(0.95, 2) is True
    assert compute_needs_review(1.0, 1) is False
