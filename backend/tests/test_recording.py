from datetime import timedelta
import pytest
from revision.errors import RecordWriteFailure
from revision.schemas import AnswerSubmission
from revision.services import RecordingService
from revision.session import PracticeSession
from revision.store import StatisticsStore
from conftest import make_question


async def test_first_incorrect_answer_creates_stats(store, now):
    q = make_question('q1', category='Health & Safety', correct=2)
    session = PracticeSession()
    result = await RecordingService(store).submit(
        session, q, AnswerSubmission(question_id='q1', selected_answer_index=0, timestamp=now, time_spent_ms=800)
    )
    assert result.is_correct is False
    assert result.tally.total_questions == 1 and result.tally.incorrect_answers == 1
    stats = await store.get_question_stats('q1')
    assert (stats.total_attempts, stats.correct_attempts, stats.incorrect_attempts) == (1, 0, 1)
    assert stats.success_rate == 0 and stats.needs_review is True
    assert stats.average_time_ms == 800
    history = await store.get_answer_history('q1')
    assert len(history) == 1
    assert history[0].session_id == session.session_id
    assert history[0].correct_answer_index == 2 and history[0].category == 'Health & Safety'
    saved = (await store.get_recent_sessions(1))[0]
    assert saved.session_id == session.session_id and saved.incorrect_answers == 1


async def test_stats_invariants_hold_after_every_answer(store, now):
    q = make_question('q1', correct=1)
    svc = RecordingService(store)
    session = PracticeSession()
    for i, choice in enumerate([1, 0, 1, 1, 0, 1]):
        await svc.submit(session, q, AnswerSubmission(question_id='q1', selected_answer_index=choice,
                                                      timestamp=now + timedelta(minutes=i)))
        s = await store.get_question_stats('q1')
        assert s.correct_attempts + s.incorrect_attempts == s.total_attempts
        assert s.success_rate == s.correct_attempts / s.total_attempts
        assert s.needs_review == (s.success_rate < 0.6 or s.incorrect_attempts >= 2)
    assert s.total_attempts == 6 and s.correct_attempts == 4
    assert s.last_attempt_date == now + timedelta(minutes=5)
    assert session.score_percentage == pytest.approx(66.667, abs=1e-3)


async def test_last_attempt_date_never_moves_backwards(store, now):
    q = make_question('q1')
    svc = RecordingService(store)
    session = PracticeSession()
    await svc.submit(session, q, AnswerSubmission(question_id='q1', selected_answer_index=0, timestamp=now))
    await svc.submit(session, q, AnswerSubmission(question_id='q1', selected_answer_index=0,
                                                  timestamp=now - timedelta(days=2)))
    s = await store.get_question_stats('q1')
    assert s.last_attempt_date == now
    assert s.first_attempt_date == now - timedelta(days=2)


async def test_multi_answer_grading_and_storage(store, now):
    q = make_question('m1', multiple=[0, 2])
    svc = RecordingService(store)
    session = PracticeSession()
    right = await svc.submit(session, q, AnswerSubmission(question_id='m1', selected_answer_indices=[2, 0]))
    wrong = await svc.submit(session, q, AnswerSubmission(question_id='m1', selected_answer_indices=[0]))
    assert right.is_correct is True and wrong.is_correct is False
    history = sorted(await store.get_answer_history('m1'), key=lambda r: r.id)
    assert history[0].selected_answer_indices == [0, 2]
    assert history[0].correct_answer_indices == [0, 2]
    assert history[0].correct_answer_index is None


async def test_caller_supplied_correctness_wins(store):
    q = make_question('q1', correct=0)
    result = await RecordingService(store).submit(
        PracticeSession(), q, AnswerSubmission(question_id='q1', selected_answer_index=3, is_correct=True)
    )
    assert result.is_correct is True
    assert (await store.get_question_stats('q1')).correct_attempts == 1


async def test_write_failure_keeps_in_memory_tally(store, monkeypatch, caplog):
    async def failing(record):
        raise RecordWriteFailure('quota exceeded')
    monkeypatch.setattr(store, 'record_answer', failing)
    session = PracticeSession()
    svc = RecordingService(store)
    result = await svc.submit(session, make_question('q1'), AnswerSubmission(question_id='q1', selected_answer_index=0))
    assert result.is_correct is True
    assert session.total_questions == 1 and session.correct_answers == 1
    assert await store.get_question_stats('q1') is None
    assert 'persist_failed' in caplog.text


async def test_unopened_store_skips_persistence(db_url):
    session = PracticeSession()
    result = await RecordingService(StatisticsStore(db_url)).submit(
        session, make_question('q1'), AnswerSubmission(question_id='q1', selected_answer_index=1)
    )
    assert result.is_correct is False
    assert result.tally.total_questions == 1


async def test_background_submission(store):
    svc = RecordingService(store)
    session = PracticeSession()
    result, task = svc.submit_in_background(session, make_question('q1'),
                                            AnswerSubmission(question_id='q1', selected_answer_index=0))
    # tally is visible before the write completes
    assert result.tally.total_questions == 1
    await svc.drain()
    assert task.result() is True
    assert (await store.get_question_stats('q1')).total_attempts == 1


async def test_queued_background_submissions_keep_every_stats_update(store, now):
    q = make_question('q1', correct=1)
    svc = RecordingService(store)
    session = PracticeSession()
    tasks = []
    for i, choice in enumerate([1, 0, 1, 1]):
        _, task = svc.submit_in_background(session, q, AnswerSubmission(
            question_id='q1', selected_answer_index=choice, timestamp=now + timedelta(seconds=i)))
        tasks.append(task)
    await svc.drain()
    assert all(t.result() is True for t in tasks)
    stats = await store.get_question_stats('q1')
    assert len(await store.get_answer_history('q1')) == 4
    assert stats.total_attempts == session.total_questions == 4
    assert (stats.correct_attempts, stats.incorrect_attempts) == (3, 1)
    assert stats.last_attempt_date == now + timedelta(seconds=3)
    assert (await store.get_recent_sessions(1))[0].total_questions == 4


async def test_submission_for_other_question_is_rejected(store):
    with pytest.raises(ValueError):
        await RecordingService(store).submit(
            PracticeSession(), make_question('q1'), AnswerSubmission(question_id='q2', selected_answer_index=0)
        )


async def test_end_session_persists_end_time(store, now):
    session = PracticeSession()
    assert await RecordingService(store).end_session(session, now)
    saved = (await store.get_recent_sessions(1))[0]
    assert saved.end_time == now


def test_submission_requires_exactly_one_selection():
    with pytest.raises(ValueError):
        AnswerSubmission(question_id='q')
    with pytest.raises(ValueError):
        AnswerSubmission(question_id='q', selected_answer_index=0, selected_answer_indices=[1])
