"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent
DEFAULT_DATABASE_URL = f"sqlite:///{BASE / 'app.db'}"


class Settings:
    ENV: str
    DATABASE_URL: str
    PASS_SCORE: int
    DISPLAY_TZ_OFFSET_HOURS: int
    LIST_LIMIT: int
    EXAM_LIST_LIMIT: int
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.PASS_SCORE = int(os.getenv("PASS_SCORE", "90"))
        self.DISPLAY_TZ_OFFSET_HOURS = int(os.getenv("DISPLAY_TZ_OFFSET_HOURS", "8"))  # Beijing time
        self.LIST_LIMIT = int(os.getenv("LIST_LIMIT", "200"))
        self.EXAM_LIST_LIMIT = int(os.getenv("EXAM_LIST_LIMIT", "50"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and self.DATABASE_URL == DEFAULT_DATABASE_URL:
            raise RuntimeError("DATABASE_URL must be set outside the dev environment")
        if not 0 <= self.PASS_SCORE <= 100:
            raise RuntimeError("PASS_SCORE must be between 0 and 100")
        if self.LIST_LIMIT <= 0 or self.EXAM_LIST_LIMIT <= 0:
            raise RuntimeError("LIST_LIMIT and EXAM_LIST_LIMIT must be positive")


settings = Settings()
