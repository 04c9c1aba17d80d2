"""Spaced repetition scheduling.

Level system:
    L0 = unfamiliar, L1 = recognized, L2 = proficient, L3 = mastered

Review intervals by level:
    L0: +1 day, L1: +2 days, L2: +5 days, L3: +10 days

The recall step only proposes an earlier review date; the spelling step is
the only place where the level changes (+1 correct, -1 wrong).
"""
from datetime import date, datetime, timedelta, UTC
from typing import Any, Optional

from wordrecall.models.srs_models import RecallOutcome, SelfEvaluation, WordState

REVIEW_INTERVALS = {
    0: 1,  # L0: +1 day
    1: 2,  # L1: +2 days
    2: 5,  # L2: +5 days
    3: 10,  # L3: +10 days
}
MIN_LEVEL = 0
MAX_LEVEL = 3

LEVEL_NAMES = ("unfamiliar", "recognized", "proficient", "mastered")


def today_utc() -> date:
    """Today's calendar date in UTC."""
    return datetime.now(UTC).date()


def get_level_name(level: Any) -> str:
    if isinstance(level, int) and MIN_LEVEL <= level <= MAX_LEVEL:
        return LEVEL_NAMES[level]
    return "unknown"


def clamp_level(level: Any) -> int:
    """Coerce a stored level into [0, 3]; anything unusable becomes 0."""
    if isinstance(level, bool) or not isinstance(level, int):
        return MIN_LEVEL
    return max(MIN_LEVEL, min(level, MAX_LEVEL))


def compute_next_review_date(level: Any, today: Optional[date] = None) -> date:
    """Date the word should come back, counted in whole days from today."""
    days = REVIEW_INTERVALS.get(level, REVIEW_INTERVALS[0]) if isinstance(level, int) else REVIEW_INTERVALS[0]
    return (today or today_utc()) + timedelta(days=days)


def is_due(state: Optional[WordState], today: Optional[date] = None) -> bool:
    """True when the scheduled review date has arrived (day granularity)."""
    if state is None or state.next_review_at is None:
        return False
    return state.next_review_at <= (today or today_utc())


def is_new(state: Optional[WordState]) -> bool:
    """True when the word has never been studied."""
    return state is None or state.last_seen_at is None


def process_recall_step(
    state: Optional[WordState],
    evaluation: Any,
    today: Optional[date] = None,
) -> RecallOutcome:
    """Turn a self-evaluation into a relapse flag and an optional earlier review date.

    The level is never touched here. Unknown evaluations behave like "know".
    """
    evaluation = SelfEvaluation.parse(evaluation)
    tomorrow = (today or today_utc()) + timedelta(days=1)

    if evaluation is SelfEvaluation.FUZZY:
        return RecallOutcome(triggers_relapse=False, suggested_review_date=tomorrow)
    if evaluation is SelfEvaluation.DONT_KNOW:
        return RecallOutcome(triggers_relapse=True, suggested_review_date=tomorrow)
    return RecallOutcome()


def process_spell_step(
    state: Optional[WordState],
    correct: bool,
    recall_outcome: Optional[RecallOutcome] = None,
    now: Optional[datetime] = None,
    word_text: Optional[str] = None,
) -> WordState:
    """Apply a spelling verdict and return the updated state.

    The next review date is computed from the new level and can only be
    pulled earlier by the recall outcome, never pushed later.
    """
    now = now or datetime.now(UTC)
    if state is None:
        state = WordState.blank(word_text or "")

    level = clamp_level(state.level)
    wrong_count = state.wrong_count or 0
    correct_streak = state.correct_streak or 0

    if correct:
        level = min(level + 1, MAX_LEVEL)
        correct_streak += 1
    else:
        level = max(level - 1, MIN_LEVEL)
        wrong_count += 1
        correct_streak = 0

    next_review = compute_next_review_date(level, now.date())
    if recall_outcome is not None and recall_outcome.suggested_review_date is not None:
        next_review = min(next_review, recall_outcome.suggested_review_date)

    return state.copy(
        level=level,
        wrong_count=wrong_count,
        correct_streak=correct_streak,
        last_seen_at=now,
        next_review_at=next_review,
        updated_at=now,
    )
