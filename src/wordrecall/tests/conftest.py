"""Test configuration."""
import os
from datetime import date, datetime, UTC
from pathlib import Path
from typing import Generator, List, Optional

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import Session

from wordrecall.models.base import Base, SessionLocal, engine, init_db
from wordrecall.models.srs_models import WordEntry, WordState, WordWithState
from wordrecall.services.storage_service import StorageService

TODAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 9, 30, tzinfo=UTC)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def storage(db: Session) -> StorageService:
    """Storage service for a freshly created learner."""
    learner = StorageService.get_or_create_learner(db, "tester")
    return StorageService(db, learner.id)


class FakeStorage:
    """In-memory storage collaborator."""

    def __init__(self, states: Optional[List[WordState]] = None, settings: Optional[dict] = None):
        self.states = {state.word_text: state for state in states or []}
        self.settings = dict(settings or {})
        self.sessions: List[dict] = []
        self.words: List[WordWithState] = []
        self.fail_saves = False

    def get_word_state(self, word_text):
        state = self.states.get(word_text)
        return state.copy() if state else None

    def save_word_state(self, state):
        if self.fail_saves:
            from wordrecall.errors import StorageError
            raise StorageError("save_word_state failed: disk full")
        self.states[state.word_text] = state.copy()
        return state.copy()

    def get_words_with_state(self, wordlist_id=None):
        return [
            WordWithState(word=entry.word, state=self.states.get(entry.word.text))
            for entry in self.words
            if wordlist_id is None or entry.word.wordlist_id == wordlist_id
        ]

    def get_setting(self, key, default=None):
        return self.settings.get(key, default)

    def save_session(self, summary, completed=True):
        self.sessions.append(dict(summary, completed=completed))
        return summary


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


def make_word(text: str, wordlist_id: str = "builtin_1", position: int = 0) -> WordEntry:
    return WordEntry(text=text, meaning=f"meaning of {text}", wordlist_id=wordlist_id, position=position)


def make_state(text: str, level: int = 1, next_review_at: Optional[date] = None, seen: bool = True) -> WordState:
    return WordState(
        word_text=text,
        level=level,
        last_seen_at=NOW if seen else None,
        next_review_at=next_review_at,
    )
