"""Question bank parsing utilities.

Converts a local JSON question bank (a revision content document or a
bare array of questions) into validated `Question` objects.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..schemas import ContentMetadata, Question, RevisionContent

logger = logging.getLogger("revision.content")


def load_revision_content(path) -> RevisionContent:
    """Read a question bank file and return the validated content.

    Invalid question items are skipped and logged; a file that cannot be
    decoded at all raises `ValueError`.
    """
    p = Path(path)
    content, errors = parse_file_to_content(p.read_bytes(), p.name)
    for err in errors:
        logger.warning("question_skipped file=%s index=%s error=%s", p.name, err["index"], err["error"])
    logger.info("question_bank_loaded file=%s questions=%d skipped=%d", p.name, len(content.questions), len(errors))
    return content


def parse_file_to_content(file_bytes: bytes, filename: str) -> Tuple[RevisionContent, List[Dict]]:
    """Dispatch to the appropriate parser based on file extension."""
    if filename.lower().endswith('.json'):
        return parse_json(file_bytes)
    raise ValueError('Unsupported file type')


def parse_json(b: bytes) -> Tuple[RevisionContent, List[Dict]]:
    """Parse a revision content document or a JSON array of questions."""
    try:
        data = json.loads(b.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f'invalid JSON question bank: {exc}') from exc
    if isinstance(data, list):
        items, version, raw_meta = data, '1', {}
    elif isinstance(data, dict):
        items = data.get('questions') or []
        version = str(data.get('version') or '1')
        raw_meta = data.get('metadata') or {}
    else:
        raise ValueError('question bank must be an object or an array')
    questions, errors = build_questions(items)
    metadata = ContentMetadata(
        title=raw_meta.get('title') or '',
        description=raw_meta.get('description') or '',
        categories=raw_meta.get('categories'),
        author=raw_meta.get('author'),
        last_updated=raw_meta.get('lastUpdated'),
    )
    return RevisionContent(version=version, metadata=metadata, questions=questions), errors


def build_questions(items: list) -> Tuple[List[Question], List[Dict]]:
    """Validate raw items, returning the good questions and per-item errors.

    Duplicate ids are reported as errors; the first occurrence wins.
    """
    questions = []
    errors = []
    seen = set()
    for idx, item in enumerate(items):
        try:
            q = normalize_question(item)
        except (ValueError, ValidationError) as e:
            errors.append({'index': idx, 'error': str(e)})
            continue
        if q.id in seen:
            errors.append({'index': idx, 'error': f'duplicate question id {q.id}'})
            continue
        seen.add(q.id)
        questions.append(q)
    return questions, errors


def normalize_question(item: dict) -> Question:
    """Map the content file shape onto a `Question`.

    `multipleAnswers` selects between `correctAnswerIndices` and
    `correctAnswerIndex`.
    """
    if not isinstance(item, dict):
        raise ValueError('question item must be an object')
    qid = item.get('id')
    if qid is None or str(qid).strip() == '':
        raise ValueError('missing question id')
    text = item.get('question')
    if not text or not isinstance(text, str) or not text.strip():
        raise ValueError('missing or empty question text')
    answers = [str(a).strip() for a in item.get('answers') or []]
    if not answers:
        raise ValueError('answers missing or empty')
    if any(not a for a in answers):
        raise ValueError('answer missing text')

    if item.get('multipleAnswers'):
        indices = item.get('correctAnswerIndices')
        if not indices:
            raise ValueError('multiple-answer question has no correctAnswerIndices')
        correctness = {'kind': 'multiple', 'indices': [_coerce_int(i) for i in indices]}
    else:
        index = _coerce_int(item.get('correctAnswerIndex'))
        if index is None:
            raise ValueError('question has no correctAnswerIndex')
        correctness = {'kind': 'single', 'index': index}

    return Question(
        id=str(qid),
        question=text.strip(),
        answers=answers,
        correctness=correctness,
        explanation=item.get('explanation') or None,
        category=item.get('category') or None,
        difficulty=item.get('difficulty') or None,
        tags=list(item.get('tags') or []),
        image=item.get('image') or None,
    )


def _coerce_int(val) -> Optional[int]:
    try:
        return int(val) if val is not None and str(val).strip() != '' else None
    except (TypeError, ValueError):
        return None
