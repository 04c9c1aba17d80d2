"""Database models for the trainer."""
from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from wordrecall.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    """Learner model."""

    __tablename__ = "learners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)

    # Relationships
    word_states = relationship("WordStateRecord", back_populates="learner")
    settings = relationship("Setting", back_populates="learner")
    sessions = relationship("StudySessionRecord", back_populates="learner")


class Wordlist(Base, TimestampMixin):
    """Wordlist model, e.g. "builtin_1" or "custom_3"."""

    __tablename__ = "wordlists"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    position = Column(Integer, default=0)  # catalog order of lists

    # Relationships
    words = relationship("Word", back_populates="wordlist", order_by="Word.position")


class Word(Base, TimestampMixin):
    """Word model."""

    __tablename__ = "words"

    id = Column(Integer, primary_key=True)
    wordlist_id = Column(String, ForeignKey("wordlists.id"), nullable=False)
    text = Column(String, nullable=False, index=True)
    meaning = Column(String, nullable=False, default="")
    phonetic = Column(String)
    position = Column(Integer, default=0)  # catalog order inside the list

    # Relationships
    wordlist = relationship("Wordlist", back_populates="words")


class WordStateRecord(Base):
    """Per-learner learning state of one word, keyed by word text."""

    __tablename__ = "word_states"
    __table_args__ = (UniqueConstraint("learner_id", "word_text", name="uq_learner_word"),)

    id = Column(Integer, primary_key=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False)
    word_text = Column(String, nullable=False)
    level = Column(Integer, default=0)  # 0-3
    last_seen_at = Column(DateTime(timezone=True))
    next_review_at = Column(Date)
    wrong_count = Column(Integer, default=0)
    correct_streak = Column(Integer, default=0)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    # Relationships
    learner = relationship("Learner", back_populates="word_states")


class Setting(Base):
    """Learner setting stored as a JSON value."""

    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("learner_id", "key", name="uq_learner_setting"),)

    id = Column(Integer, primary_key=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False)
    key = Column(String, nullable=False)
    value = Column(JSON)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    # Relationships
    learner = relationship("Learner", back_populates="settings")


class StudySessionRecord(Base, TimestampMixin):
    """Summary of one finished (or abandoned) study session."""

    __tablename__ = "study_sessions"

    id = Column(Integer, primary_key=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    learned_count = Column(Integer, default=0)
    review_count = Column(Integer, default=0)
    total_words = Column(Integer, default=0)
    spelling_accuracy = Column(Integer, default=0)  # percent
    self_eval_stats = Column(JSON)
    duration = Column(Integer, default=0)  # in seconds
    hardest_word = Column(String)
    mastered_new = Column(Integer, default=0)
    is_completed = Column(Boolean, default=True)  # False for abandoned sessions

    # Relationships
    learner = relationship("Learner", back_populates="sessions")
