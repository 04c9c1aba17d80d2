"""Durable storage of word states, settings and session summaries."""
import logging
from datetime import date, datetime, UTC
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordrecall.errors import StorageError
from wordrecall.models.models import (
    Learner,
    Setting,
    StudySessionRecord,
    Word,
    WordStateRecord,
    Wordlist,
)
from wordrecall.models.srs_models import WordEntry, WordState, WordWithState
from wordrecall.monitoring import storage_errors

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_state(record: WordStateRecord) -> WordState:
    return WordState(
        word_text=record.word_text,
        level=record.level or 0,
        last_seen_at=_aware(record.last_seen_at),
        next_review_at=record.next_review_at,
        wrong_count=record.wrong_count or 0,
        correct_streak=record.correct_streak or 0,
        updated_at=_aware(record.updated_at),
    )


def _to_entry(word: Word) -> WordEntry:
    return WordEntry(
        id=word.id,
        text=word.text,
        meaning=word.meaning,
        wordlist_id=word.wordlist_id,
        position=word.position or 0,
        phonetic=word.phonetic,
    )


class StorageService:
    """Storage collaborator for one learner, backed by SQLAlchemy."""

    def __init__(self, db: Session, learner_id: int):
        """Initialize the service with a database session and a learner."""
        self.db = db
        self.learner_id = learner_id

    def _fail(self, operation: str, error: Exception) -> StorageError:
        self.db.rollback()
        storage_errors.labels(operation=operation).inc()
        logger.error(f"Storage operation {operation} failed for learner {self.learner_id}: {error}")
        return StorageError(f"{operation} failed: {error}")

    @staticmethod
    def get_or_create_learner(db: Session, name: str) -> Learner:
        """Get a learner by name, creating it on first use."""
        learner = db.query(Learner).filter(Learner.name == name).first()
        if learner:
            return learner
        learner = Learner(name=name)
        db.add(learner)
        db.commit()
        db.refresh(learner)
        logger.info(f"Created learner {name} (ID: {learner.id})")
        return learner

    # Word state

    def _get_record(self, word_text: str) -> Optional[WordStateRecord]:
        return (
            self.db.query(WordStateRecord)
            .filter(
                WordStateRecord.learner_id == self.learner_id,
                WordStateRecord.word_text == word_text,
            )
            .first()
        )

    def get_word_state(self, word_text: str) -> Optional[WordState]:
        """Get the stored state of a word, or None if it was never studied."""
        try:
            record = self._get_record(word_text)
        except SQLAlchemyError as e:
            raise self._fail("get_word_state", e) from e
        return _to_state(record) if record else None

    def get_all_word_states(self) -> List[WordState]:
        try:
            records = (
                self.db.query(WordStateRecord)
                .filter(WordStateRecord.learner_id == self.learner_id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("get_all_word_states", e) from e
        return [_to_state(record) for record in records]

    def save_word_state(self, state: WordState) -> WordState:
        """Upsert a word state keyed by learner and word text."""
        try:
            record = self._get_record(state.word_text)
            if record is None:
                record = WordStateRecord(learner_id=self.learner_id, word_text=state.word_text)
                self.db.add(record)
            record.level = state.level
            record.last_seen_at = state.last_seen_at
            record.next_review_at = state.next_review_at
            record.wrong_count = state.wrong_count
            record.correct_streak = state.correct_streak
            record.updated_at = state.updated_at or datetime.now(UTC)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            raise self._fail("save_word_state", e) from e
        logger.debug(f"Saved state of {state.word_text!r}: level={state.level}, next={state.next_review_at}")
        return _to_state(record)

    # Catalog

    def create_wordlist(
        self,
        wordlist_id: str,
        name: str,
        words: Iterable[Tuple[str, str]] = (),
    ) -> Wordlist:
        """Create a wordlist, or append to it, from (text, meaning) pairs."""
        try:
            wordlist = self.db.query(Wordlist).filter(Wordlist.id == wordlist_id).first()
            if wordlist is None:
                position = self.db.query(Wordlist).count()
                wordlist = Wordlist(id=wordlist_id, name=name, position=position)
                self.db.add(wordlist)
                self.db.flush()
            offset = self.db.query(Word).filter(Word.wordlist_id == wordlist_id).count()
            for index, (text, meaning) in enumerate(words):
                self.db.add(Word(
                    wordlist_id=wordlist_id,
                    text=text.strip(),
                    meaning=meaning.strip(),
                    position=offset + index,
                ))
            self.db.commit()
            self.db.refresh(wordlist)
        except SQLAlchemyError as e:
            raise self._fail("create_wordlist", e) from e
        return wordlist

    def get_words_with_state(self, wordlist_id: Optional[str] = None) -> List[WordWithState]:
        """Snapshot of catalog words and their states, in catalog order."""
        try:
            query = self.db.query(Word).join(Wordlist)
            if wordlist_id:
                query = query.filter(Word.wordlist_id == wordlist_id)
            words = query.order_by(Wordlist.position, Word.position, Word.id).all()
            states = {state.word_text: state for state in self.get_all_word_states()}
        except SQLAlchemyError as e:
            raise self._fail("get_words_with_state", e) from e
        return [WordWithState(word=_to_entry(word), state=states.get(word.text)) for word in words]

    # Settings

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a learner setting, or the default when it is unset."""
        try:
            setting = (
                self.db.query(Setting)
                .filter(Setting.learner_id == self.learner_id, Setting.key == key)
                .first()
            )
        except SQLAlchemyError as e:
            raise self._fail("get_setting", e) from e
        if setting is None or setting.value is None:
            return default
        return setting.value

    def get_setting_entry(self, key: str) -> Optional[Tuple[Any, Optional[datetime]]]:
        """Setting value with its last update time, or None when unset."""
        try:
            setting = (
                self.db.query(Setting)
                .filter(Setting.learner_id == self.learner_id, Setting.key == key)
                .first()
            )
        except SQLAlchemyError as e:
            raise self._fail("get_setting_entry", e) from e
        if setting is None:
            return None
        return setting.value, _aware(setting.updated_at)

    def set_setting(self, key: str, value: Any) -> None:
        try:
            setting = (
                self.db.query(Setting)
                .filter(Setting.learner_id == self.learner_id, Setting.key == key)
                .first()
            )
            if setting is None:
                setting = Setting(learner_id=self.learner_id, key=key)
                self.db.add(setting)
            setting.value = value
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("set_setting", e) from e

    # Sessions

    def save_session(self, summary: Dict[str, Any], completed: bool = True) -> StudySessionRecord:
        """Persist a session summary."""
        try:
            record = StudySessionRecord(
                learner_id=self.learner_id,
                date=summary["date"],
                learned_count=summary.get("learned_count", 0),
                review_count=summary.get("review_count", 0),
                total_words=summary.get("total_words", 0),
                spelling_accuracy=summary.get("spelling_accuracy", 0),
                self_eval_stats=summary.get("self_eval_stats"),
                duration=summary.get("duration", 0),
                hardest_word=summary.get("hardest_word"),
                mastered_new=summary.get("mastered_new", 0),
                is_completed=completed,
            )
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            raise self._fail("save_session", e) from e
        logger.info(f"Saved session {record.id} for learner {self.learner_id}: {record.total_words} words")
        return record

    def get_sessions(self, on_date: Optional[date] = None) -> List[StudySessionRecord]:
        try:
            query = self.db.query(StudySessionRecord).filter(
                StudySessionRecord.learner_id == self.learner_id
            )
            if on_date is not None:
                query = query.filter(StudySessionRecord.date == on_date)
            return query.order_by(StudySessionRecord.id).all()
        except SQLAlchemyError as e:
            raise self._fail("get_sessions", e) from e
