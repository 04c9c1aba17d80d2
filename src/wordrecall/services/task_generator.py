"""Daily task queue generation.

Queue order:
    1. Due reviews (next review <= today), most overdue first, up to the review cap
    2. New words (never studied), active wordlist first, up to the daily new cap
    3. Relapse words are added dynamically during the session
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from wordrecall.config import settings
from wordrecall.models.srs_models import (
    DailyTasks,
    ProgressStats,
    SessionQueueItem,
    StudyConfig,
    StudyMode,
    TodayStats,
    WordWithState,
)
from wordrecall.services.srs import MAX_LEVEL, clamp_level, is_due, is_new, today_utc

logger = logging.getLogger(__name__)

# Setting keys understood by the storage collaborator
DAILY_NEW_WORDS_KEY = "dailyNewWords"
DAILY_REVIEW_CAP_KEY = "dailyReviewCap"
RELAPSE_CAP_KEY = "relapseCap"
ACTIVE_WORDLIST_KEY = "activeWordlistId"

WEEK_DAYS = 7


@dataclass
class QueuePartition:
    """Due/new split of a word snapshot with caps applied."""
    reviews: List[SessionQueueItem] = field(default_factory=list)
    new_words: List[SessionQueueItem] = field(default_factory=list)
    due_total: int = 0
    new_total: int = 0
    fallback_used: bool = False
    active_list_exhausted: bool = False


def _review_sort_key(item: SessionQueueItem) -> date:
    return item.state.next_review_at or date.max


def _select_new_words(
    new_items: List[SessionQueueItem],
    cap: int,
    active_wordlist_id: Optional[str],
) -> tuple[List[SessionQueueItem], bool, bool]:
    """Pick new words, preferring the active wordlist.

    Returns the selection, whether other lists were used to fill it, and
    whether the active list had nothing left to give.
    """
    if not active_wordlist_id:
        return new_items[:cap], False, False

    from_active = [item for item in new_items if item.word.wordlist_id == active_wordlist_id]
    from_others = [item for item in new_items if item.word.wordlist_id != active_wordlist_id]

    selected = from_active[:cap]
    fill = from_others[:cap - len(selected)] if len(selected) < cap else []
    if fill:
        logger.debug(f"Active wordlist {active_wordlist_id} has {len(from_active)} new words, filling {len(fill)} from other lists")
    return selected + fill, bool(fill), not from_active


def unique_words(
    words_with_state: Iterable[WordWithState],
    active_wordlist_id: Optional[str] = None,
) -> List[WordWithState]:
    """Keep one catalog entry per word text.

    The copy in the active wordlist wins; otherwise the first occurrence does.
    Surviving entries stay in catalog order.
    """
    words = list(words_with_state)
    chosen: Dict[str, WordWithState] = {}
    for entry in words:
        kept = chosen.get(entry.word.text)
        if kept is None:
            chosen[entry.word.text] = entry
        elif (
            active_wordlist_id
            and entry.word.wordlist_id == active_wordlist_id
            and kept.word.wordlist_id != active_wordlist_id
        ):
            chosen[entry.word.text] = entry

    if len(chosen) == len(words):
        return words
    logger.debug(f"Dropped {len(words) - len(chosen)} duplicate catalog entries")
    return [entry for entry in words if chosen[entry.word.text] is entry]


def partition_words(
    words_with_state: Iterable[WordWithState],
    config: StudyConfig,
    today: Optional[date] = None,
) -> QueuePartition:
    """Split a snapshot into capped due reviews and selected new words.

    Both the session queue and the dashboard counts come from here.
    """
    today = today or today_utc()
    review_cap = max(config.daily_review_cap, 0)
    new_cap = max(config.daily_new_cap, 0)

    due: List[SessionQueueItem] = []
    new: List[SessionQueueItem] = []
    for entry in unique_words(words_with_state, config.active_wordlist_id):
        if is_due(entry.state, today):
            due.append(SessionQueueItem(word=entry.word, state=entry.state))
        elif is_new(entry.state):
            new.append(SessionQueueItem(word=entry.word, state=entry.state))

    # sorted() is stable, so equal dates keep catalog order
    due = sorted(due, key=_review_sort_key)
    selected_new, fallback_used, exhausted = _select_new_words(new, new_cap, config.active_wordlist_id)

    return QueuePartition(
        reviews=due[:review_cap],
        new_words=selected_new,
        due_total=len(due),
        new_total=len(new),
        fallback_used=fallback_used,
        active_list_exhausted=exhausted,
    )


def estimate_minutes(word_count: int, seconds_per_word: Optional[int] = None) -> int:
    seconds = seconds_per_word or settings.study.seconds_per_word
    return math.ceil(word_count * seconds / 60)


def generate_daily_tasks(
    words_with_state: Iterable[WordWithState],
    config: StudyConfig,
    mode: Any = StudyMode.ALL,
    today: Optional[date] = None,
) -> DailyTasks:
    """Build today's queue: capped reviews first, then new words."""
    mode = StudyMode.parse(mode)
    partition = partition_words(words_with_state, config, today)

    reviews = [] if mode is StudyMode.NEW else partition.reviews
    new_words = [] if mode is StudyMode.REVIEW else partition.new_words
    queue = reviews + new_words

    logger.info(
        f"Generated daily tasks ({mode.value}): {len(reviews)} reviews of {partition.due_total} due, "
        f"{len(new_words)} new of {partition.new_total}"
    )
    return DailyTasks(
        queue=queue,
        reviews=reviews,
        new_words=new_words,
        mode=mode,
        estimated_minutes=estimate_minutes(len(queue)),
        fallback_used=partition.fallback_used,
        active_list_exhausted=partition.active_list_exhausted,
        active_wordlist_id=config.active_wordlist_id,
    )


def get_today_stats(
    words_with_state: Iterable[WordWithState],
    config: StudyConfig,
    today: Optional[date] = None,
) -> TodayStats:
    """Dashboard counts, using the same due/new/cap logic as the queue."""
    words = unique_words(words_with_state, config.active_wordlist_id)
    partition = partition_words(words, config, today)

    level_distribution = [0] * (MAX_LEVEL + 1)
    total_learned = 0
    for entry in words:
        if is_new(entry.state):
            continue
        total_learned += 1
        level_distribution[clamp_level(entry.state.level)] += 1

    review_count = len(partition.reviews)
    new_count = len(partition.new_words)
    return TodayStats(
        review_count=review_count,
        new_count=new_count,
        total_words=len(words),
        total_learned=total_learned,
        mastered_count=level_distribution[MAX_LEVEL],
        level_distribution=level_distribution,
        estimated_minutes=estimate_minutes(review_count + new_count),
        fallback_used=partition.fallback_used,
        active_list_exhausted=partition.active_list_exhausted,
    )


def calculate_streak(study_dates: Iterable[date], today: date) -> int:
    """Consecutive study days ending today."""
    days = set(study_dates)
    streak = 0
    day = today
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def get_progress_stats(sessions: Iterable[Any], today: Optional[date] = None) -> ProgressStats:
    """Streak and last-week totals over saved session summaries.

    Sessions are anything with ``date``, ``total_words`` and
    ``spelling_accuracy`` attributes, such as stored session records.
    """
    today = today or today_utc()
    sessions = list(sessions)
    week_start = today - timedelta(days=WEEK_DAYS)
    week = [session for session in sessions if session.date >= week_start]

    week_avg_accuracy = 0
    if week:
        mean = sum(session.spelling_accuracy or 0 for session in week) / len(week)
        week_avg_accuracy = math.floor(mean + 0.5)

    return ProgressStats(
        streak=calculate_streak((session.date for session in sessions), today),
        week_days=len({session.date for session in week}),
        week_words=sum(session.total_words or 0 for session in week),
        week_avg_accuracy=week_avg_accuracy,
        total_sessions=len(sessions),
    )


def coerce_cap(value: Any, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        logger.warning(f"Setting {key}={value!r} is not a number, using default {default}")
        return default
    try:
        cap = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Setting {key}={value!r} is not a number, using default {default}")
        return default
    if cap < 0:
        logger.warning(f"Setting {key}={value!r} is negative, using default {default}")
        return default
    return cap


class TaskService:
    """Entry points for building queues from a storage collaborator."""

    def __init__(self, storage):
        """Initialize the service with a storage collaborator."""
        self.storage = storage

    def load_config(self) -> StudyConfig:
        """Read caps and the active wordlist, falling back to configured defaults."""
        defaults = settings.study
        active = self.storage.get_setting(ACTIVE_WORDLIST_KEY, defaults.active_wordlist_id)
        return StudyConfig(
            daily_new_cap=coerce_cap(
                self.storage.get_setting(DAILY_NEW_WORDS_KEY, defaults.daily_new_words),
                defaults.daily_new_words,
                DAILY_NEW_WORDS_KEY,
            ),
            daily_review_cap=coerce_cap(
                self.storage.get_setting(DAILY_REVIEW_CAP_KEY, defaults.daily_review_cap),
                defaults.daily_review_cap,
                DAILY_REVIEW_CAP_KEY,
            ),
            active_wordlist_id=str(active) if active else None,
            relapse_cap=coerce_cap(
                self.storage.get_setting(RELAPSE_CAP_KEY, defaults.relapse_cap),
                defaults.relapse_cap,
                RELAPSE_CAP_KEY,
            ),
        )

    def generate_daily_tasks(
        self,
        mode: Any = StudyMode.ALL,
        wordlist_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> DailyTasks:
        """Build today's queue, optionally restricted to one wordlist."""
        config = self.load_config()
        words = self.storage.get_words_with_state(wordlist_id)
        return generate_daily_tasks(words, config, mode, today)

    def get_today_stats(self, today: Optional[date] = None) -> TodayStats:
        """Dashboard counts across all wordlists."""
        config = self.load_config()
        words = self.storage.get_words_with_state(None)
        return get_today_stats(words, config, today)

    def get_progress_stats(self, today: Optional[date] = None) -> ProgressStats:
        """Streak and week summary from the stored sessions."""
        return get_progress_stats(self.storage.get_sessions(), today)
