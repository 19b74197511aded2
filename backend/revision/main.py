"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the smart revision backend.
Controllers are intentionally thin: they accept requests, delegate to
the scheduler and services, and return JSON responses.

Endpoints implemented:
- GET /revision/questions
- GET /revision/priorities
- GET /revision/order
- POST /revision/sessions
- POST /revision/sessions/{session_id}/answers
- POST /revision/sessions/{session_id}/end
- GET /stats/questions, /stats/categories, /stats/sessions, /stats/answers
- GET /stats/weak-categories, /stats/review, /stats/overview
- DELETE /stats
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import Settings, settings
from .errors import RevisionError, StorageUnavailable
from .schemas import AnswerResult, AnswerSubmission, Question
from .scheduler import RevisionScheduler, filter_by_category
from .services import RecordingService, ReportingService
from .session import PracticeSession, evict_idle_sessions
from .store import StatisticsStore
from .utils.parsers import load_revision_content

logger = logging.getLogger("revision.api")


def _load_questions(path: Path) -> List[Question]:
    """Load the question bank, or an empty bank when the file is missing."""
    if not path.exists():
        logger.warning("question_bank_missing path=%s", path)
        return []
    return load_revision_content(path).questions


def create_app(app_settings: Optional[Settings] = None, questions: Optional[List[Question]] = None) -> FastAPI:
    """Build the application around its own store and session registry.

    `questions` overrides the bank read from `QUESTION_BANK_PATH`.
    """
    cfg = app_settings or settings
    if not logger.handlers:
        logging.basicConfig(level=cfg.LOG_LEVEL)
    store = StatisticsStore(cfg.DATABASE_URL, category_window=cfg.CATEGORY_STATS_WINDOW)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await store.init()
        except StorageUnavailable:
            # answering still works; ordering and history degrade
            logger.exception("store_unavailable url=%s", cfg.DATABASE_URL)
        app.state.questions = list(questions) if questions is not None else _load_questions(cfg.QUESTION_BANK_PATH)
        yield
        await app.state.recorder.drain()
        await store.close()

    app = FastAPI(title="Smart Revision API", lifespan=lifespan)
    app.state.settings = cfg
    app.state.store = store
    app.state.scheduler = RevisionScheduler(store)
    app.state.recorder = RecordingService(store)
    app.state.reporting = ReportingService(store, recent_sessions_limit=cfg.RECENT_SESSIONS_LIMIT)
    app.state.sessions = {}
    app.state.questions = []

    if cfg.ALLOW_DEV_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
        request.state.request_id = req_id
        started = time.perf_counter()
        response: Response
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {"request_id": req_id, "path": request.url.path, "method": request.method, "duration_ms": elapsed_ms},
                    ensure_ascii=True,
                ),
            )
            raise
        response.headers["X-Request-ID"] = req_id
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        return response

    @app.exception_handler(RevisionError)
    async def revision_error_handler(request: Request, exc: RevisionError):
        logger.warning("storage_error path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    def _question_map(request: Request) -> Dict[str, Question]:
        return {q.id: q for q in request.app.state.questions}

    def _get_session(request: Request, session_id: str) -> PracticeSession:
        session = request.app.state.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="session not found")
        return session

    def _question_out(q: Question) -> dict:
        return {
            "id": q.id,
            "question": q.question,
            "answers": q.answers,
            "category": q.category,
            "difficulty": q.difficulty,
            "multiple_answers": q.multiple_answers,
        }

    @app.get("/revision/questions")
    def list_questions(request: Request):
        """Return the loaded question bank without the correct answers."""
        return [_question_out(q) for q in request.app.state.questions]

    @app.get("/revision/priorities")
    async def list_priorities(request: Request, category: Optional[str] = None):
        """Return questions sorted by revision priority with the reason for each."""
        questions = request.app.state.questions
        if category:
            questions = filter_by_category(questions, category)
        prioritized = await request.app.state.scheduler.prioritize_questions(questions)
        return [{"id": p.question.id, "priority": p.priority, "reason": p.reason} for p in prioritized]

    @app.get("/revision/order")
    async def next_order(request: Request, category: Optional[str] = None):
        """Return one smart-shuffled pass over the (optionally filtered) bank."""
        questions = request.app.state.questions
        if category:
            questions = filter_by_category(questions, category)
        order = await request.app.state.scheduler.next_order(questions)
        return [_question_out(q) for q in order]

    @app.post("/revision/sessions")
    async def start_session(request: Request):
        """Start a practice session and return its id."""
        session = PracticeSession()
        sessions = request.app.state.sessions
        sessions[session.session_id] = session
        conf = request.app.state.settings
        evicted = evict_idle_sessions(sessions, timedelta(minutes=conf.SESSION_IDLE_MINUTES), conf.MAX_OPEN_SESSIONS)
        if evicted:
            logger.info("sessions_evicted count=%d open=%d", len(evicted), len(sessions))
        await request.app.state.recorder.open_session(session)
        return {"session_id": session.session_id, "start_time": session.start_time.isoformat()}

    @app.post("/revision/sessions/{session_id}/answers", response_model=AnswerResult)
    async def submit_answer(session_id: str, payload: AnswerSubmission, request: Request):
        """Grade and record one answer.

        The returned tally reflects the answer even if the durable write
        failed; write failures are only logged.
        """
        session = _get_session(request, session_id)
        question = _question_map(request).get(payload.question_id)
        if question is None:
            raise HTTPException(status_code=404, detail="question not found")
        selected = payload.selection
        indices = {selected} if isinstance(selected, int) else set(selected)
        if any(i >= len(question.answers) for i in indices):
            raise HTTPException(status_code=422, detail="selected answer index out of range")
        return await request.app.state.recorder.submit(session, question, payload)

    @app.post("/revision/sessions/{session_id}/end")
    async def end_session(session_id: str, request: Request):
        session = _get_session(request, session_id)
        persisted = await request.app.state.recorder.end_session(session)
        request.app.state.sessions.pop(session_id, None)
        out = session.tally().model_dump()
        out["persisted"] = persisted
        return out

    @app.get("/stats/questions")
    async def stats_questions(request: Request):
        rows = await request.app.state.store.get_all_question_stats()
        return [r.model_dump(mode="json") for r in rows]

    @app.get("/stats/categories")
    async def stats_categories(request: Request):
        """Category stats, weakest first."""
        breakdown = await request.app.state.reporting.get_category_breakdown()
        return [{"category": name, **stat.model_dump()} for name, stat in breakdown]

    @app.get("/stats/sessions")
    async def stats_sessions(request: Request, limit: Optional[int] = None):
        if limit is None:
            limit = request.app.state.settings.RECENT_SESSIONS_LIMIT
        rows = await request.app.state.store.get_recent_sessions(limit)
        return [r.model_dump(mode="json") for r in rows]

    @app.get("/stats/answers")
    async def stats_answers(request: Request, limit: Optional[int] = None):
        if limit is None:
            limit = request.app.state.settings.RECENT_ANSWERS_LIMIT
        rows = await request.app.state.store.get_recent_answers(limit)
        return [r.model_dump(mode="json") for r in rows]

    @app.get("/stats/weak-categories")
    async def stats_weak_categories(request: Request):
        return await request.app.state.reporting.get_weak_categories()

    @app.get("/stats/review")
    async def stats_review(request: Request):
        """Ids of questions flagged for review or never attempted."""
        questions = await request.app.state.reporting.get_questions_needing_review(request.app.state.questions)
        return [q.id for q in questions]

    @app.get("/stats/overview")
    async def stats_overview(request: Request):
        overview = await request.app.state.reporting.get_overview()
        return overview.model_dump()

    @app.delete("/stats")
    async def reset_stats(request: Request, confirm: bool = False):
        """Irreversibly clear all stored statistics.

        Requires `confirm=true` so a stray request cannot wipe history.
        """
        if not confirm:
            raise HTTPException(status_code=400, detail="pass confirm=true to clear all statistics")
        await request.app.state.store.clear_all_data()
        return {"cleared": True}

    return app


app = create_app()
