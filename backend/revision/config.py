"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    QUESTION_BANK_PATH: Path
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool
    CATEGORY_STATS_WINDOW: int
    RECENT_SESSIONS_LIMIT: int
    RECENT_ANSWERS_LIMIT: int
    SESSION_IDLE_MINUTES: int
    MAX_OPEN_SESSIONS: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{BASE / 'revision.db'}")
        self.QUESTION_BANK_PATH = Path(os.getenv("QUESTION_BANK_PATH", str(BASE / "data" / "questions.json")))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.CATEGORY_STATS_WINDOW = int(os.getenv("CATEGORY_STATS_WINDOW", "1000"))
        self.RECENT_SESSIONS_LIMIT = int(os.getenv("RECENT_SESSIONS_LIMIT", "10"))
        self.RECENT_ANSWERS_LIMIT = int(os.getenv("RECENT_ANSWERS_LIMIT", "50"))
        self.SESSION_IDLE_MINUTES = int(os.getenv("SESSION_IDLE_MINUTES", "120"))
        self.MAX_OPEN_SESSIONS = int(os.getenv("MAX_OPEN_SESSIONS", "1000"))
        self._validate()

    def _validate(self):
        for name in ("CATEGORY_STATS_WINDOW", "RECENT_SESSIONS_LIMIT", "RECENT_ANSWERS_LIMIT",
                     "SESSION_IDLE_MINUTES", "MAX_OPEN_SESSIONS"):
            if getattr(self, name) <= 0:
                raise RuntimeError(f"{name} must be a positive integer")
        if not self.DATABASE_URL.strip():
            raise RuntimeError("DATABASE_URL must not be empty")


settings = Settings()
