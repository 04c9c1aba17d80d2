"""Models for scheduling and session data structures."""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, UTC
from enum import Enum
from typing import Any, Dict, List, Optional


class SelfEvaluation(Enum):
    """Learner's self-report in the recall step."""
    KNOW = "know"
    FUZZY = "fuzzy"
    DONT_KNOW = "dont_know"

    @classmethod
    def parse(cls, value: Any) -> Optional["SelfEvaluation"]:
        """Return the matching member, or None for unknown input."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class SessionStep(Enum):
    """Step of the item currently shown in a session."""
    RECALL = "recall"  # meaning recall, does not change level
    SPELL = "spell"  # spelling, moves level by one
    COMPLETE = "complete"


class StudyMode(Enum):
    """Which halves of the daily queue are populated."""
    ALL = "all"
    REVIEW = "review"
    NEW = "new"

    @classmethod
    def parse(cls, value: Any) -> "StudyMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.ALL


@dataclass
class WordState:
    """Learning state of one word for one learner."""
    word_text: str
    level: int = 0
    last_seen_at: Optional[datetime] = None
    next_review_at: Optional[date] = None
    wrong_count: int = 0
    correct_streak: int = 0
    updated_at: Optional[datetime] = None

    @classmethod
    def blank(cls, word_text: str) -> "WordState":
        """State of a word that has never been studied."""
        return cls(word_text=word_text)

    def copy(self, **changes: Any) -> "WordState":
        return replace(self, **changes)


@dataclass
class WordEntry:
    """A catalog word."""
    text: str
    meaning: str = ""
    wordlist_id: Optional[str] = None
    position: int = 0
    phonetic: Optional[str] = None
    id: Optional[int] = None


@dataclass
class WordWithState:
    """A catalog word paired with the learner's state, if any."""
    word: WordEntry
    state: Optional[WordState] = None


@dataclass(frozen=True)
class RecallOutcome:
    """Result of the recall step, consumed by the spelling step."""
    triggers_relapse: bool = False
    suggested_review_date: Optional[date] = None


@dataclass
class SessionQueueItem:
    """One entry of a session queue."""
    word: WordEntry
    state: Optional[WordState] = None
    is_relapse_copy: bool = False

    def relapse_copy(self, state: Optional[WordState]) -> "SessionQueueItem":
        return SessionQueueItem(word=self.word, state=state, is_relapse_copy=True)


@dataclass(frozen=True)
class LevelChange:
    """Level transition recorded during a session."""
    word: str
    from_level: int
    to_level: int


@dataclass
class SessionStats:
    """Counters accumulated while a session runs."""
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    total_words: int = 0
    new_words: int = 0
    review_words: int = 0
    spelling_correct: int = 0
    spelling_wrong: int = 0
    self_eval_stats: Dict[str, int] = field(
        default_factory=lambda: {evaluation.value: 0 for evaluation in SelfEvaluation}
    )
    level_changes: List[LevelChange] = field(default_factory=list)
    hardest_word: Optional[str] = None
    hardest_word_errors: int = 0
    relapse_count: int = 0


@dataclass(frozen=True)
class SessionReport:
    """Immutable end-of-session snapshot."""
    started_at: datetime
    ended_at: datetime
    total_words: int
    new_words: int
    review_words: int
    spelling_correct: int
    spelling_wrong: int
    self_eval_stats: Dict[str, int]
    level_changes: List[LevelChange]
    hardest_word: Optional[str]
    hardest_word_errors: int
    relapse_count: int
    spelling_accuracy: int  # percent
    duration_seconds: int
    mastered_new: int

    def to_summary(self) -> Dict[str, Any]:
        """Session summary in the shape handed to storage."""
        return {
            "date": self.ended_at.date(),
            "learned_count": self.new_words,
            "review_count": self.review_words,
            "total_words": self.total_words,
            "spelling_accuracy": self.spelling_accuracy,
            "self_eval_stats": dict(self.self_eval_stats),
            "duration": self.duration_seconds,
            "hardest_word": self.hardest_word,
            "mastered_new": self.mastered_new,
        }


@dataclass(frozen=True)
class SpellResult:
    """Feedback for the UI after a spelling verdict."""
    correct: bool
    correct_answer_text: str
    old_level: int
    new_level: int
    relapsed: bool = False

    @property
    def needs_correction(self) -> bool:
        return not self.correct


@dataclass(frozen=True)
class CurrentItem:
    """What the UI should show next."""
    word: WordEntry
    state: Optional[WordState]
    step: SessionStep
    progress: int  # 1-based position in the queue
    total: int
    is_relapse_copy: bool = False


@dataclass
class StudyConfig:
    """Caps and preferences that drive queue generation."""
    daily_new_cap: int = 10
    daily_review_cap: int = 50
    active_wordlist_id: Optional[str] = None
    relapse_cap: int = 10


@dataclass
class DailyTasks:
    """Today's ordered study queue and its counts."""
    queue: List[SessionQueueItem]
    reviews: List[SessionQueueItem]
    new_words: List[SessionQueueItem]
    mode: StudyMode = StudyMode.ALL
    estimated_minutes: int = 0
    fallback_used: bool = False
    active_list_exhausted: bool = False
    active_wordlist_id: Optional[str] = None

    @property
    def review_count(self) -> int:
        return len(self.reviews)

    @property
    def new_count(self) -> int:
        return len(self.new_words)

    @property
    def total_count(self) -> int:
        return len(self.queue)


@dataclass(frozen=True)
class TodayStats:
    """Dashboard counts for today."""
    review_count: int
    new_count: int
    total_words: int
    total_learned: int
    mastered_count: int
    level_distribution: List[int]
    estimated_minutes: int
    fallback_used: bool = False
    active_list_exhausted: bool = False


@dataclass(frozen=True)
class ProgressStats:
    """Study history summary: streak and the last week."""
    streak: int
    week_days: int
    week_words: int
    week_avg_accuracy: int
    total_sessions: int
