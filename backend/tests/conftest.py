from datetime import timedelta
from pathlib import Path
import pytest
from revision.models import utcnow
from revision.schemas import Question
from revision.store import StatisticsStore


def make_question(qid, category=None, correct=0, answers=None, multiple=None, explanation=None):
    """Build a question; pass `multiple` (a list of indices) for multi-answer."""
    answers = answers or ['A', 'B', 'C', 'D']
    if multiple is not None:
        correctness = {'kind': 'multiple', 'indices': multiple}
    else:
        correctness = {'kind': 'single', 'index': correct}
    return Question(id=qid, question=f'Question {qid}?', answers=answers, correctness=correctness,
                    category=category, explanation=explanation)


@pytest.fixture
def db_url(tmp_path):
    """A fresh SQLite database file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'stats.db'}"


@pytest.fixture
async def store(db_url):
    s = StatisticsStore(db_url)
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def now():
    return utcnow()


@pytest.fixture
def days_ago(now):
    return lambda d: now - timedelta(days=d)


@pytest.fixture
def sample_bank_path():
    return Path(__file__).resolve().parents[1] / 'data' / 'questions.json'
