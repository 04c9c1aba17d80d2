"""Study session management.

A session walks an ordered queue of words. Each word goes through a recall
step (self-evaluation) and a spelling step (level change). Words that fail
are copied once into a bounded relapse queue and studied again after the
main queue runs out.
"""
import logging
from collections import deque
from datetime import datetime, UTC
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Union

from wordrecall.config import settings
from wordrecall.errors import SessionStateError
from wordrecall.models.srs_models import (
    CurrentItem,
    DailyTasks,
    LevelChange,
    RecallOutcome,
    SelfEvaluation,
    SessionQueueItem,
    SessionReport,
    SessionStats,
    SessionStep,
    SpellResult,
)
from wordrecall.monitoring import relapses_enqueued, session_duration, sessions_saved, spelling_results
from wordrecall.services.analytics import EventTracker
from wordrecall.services.srs import clamp_level, is_new, process_recall_step, process_spell_step
from wordrecall.services.sync_service import ReplicaSync
from wordrecall.services.task_generator import RELAPSE_CAP_KEY, coerce_cap

logger = logging.getLogger(__name__)


def is_correct_spelling(answer: str, word_text: str) -> bool:
    """Compare a typed answer with the word, ignoring case and outer whitespace."""
    return (answer or "").strip().lower() == word_text.strip().lower()


class StudySession:
    """State of one study sitting.

    The storage collaborator is the durable sink: word states are re-read
    from it before every step and written back after every spelling verdict,
    and its errors propagate. The event tracker and the replica are
    best-effort sinks whose failures are logged and ignored.
    """

    def __init__(
        self,
        tasks: Union[DailyTasks, Iterable[SessionQueueItem]],
        storage,
        events: Optional[EventTracker] = None,
        replica: Optional[ReplicaSync] = None,
        relapse_cap: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """Initialize the session with today's tasks and its collaborators."""
        items = tasks.queue if isinstance(tasks, DailyTasks) else tasks
        self.queue: List[SessionQueueItem] = list(items)
        self.storage = storage
        self.events = events or EventTracker()
        self.replica = replica or ReplicaSync()
        self.clock = clock
        self._relapse_cap_override = relapse_cap

        self.relapse_queue: Deque[SessionQueueItem] = deque()
        self.relapse_cap = settings.study.relapse_cap if relapse_cap is None else relapse_cap
        self.relapse_count = 0
        self.current_index = 0
        self.current_step = SessionStep.RECALL
        self.recall_outcome: Optional[RecallOutcome] = None
        self.stats = SessionStats(started_at=self.clock())
        self.error_counts: Dict[str, int] = {}
        self.is_complete = False
        self.saved = False
        self._spelled = False

    def init(self) -> "StudySession":
        """Load the relapse cap and reset progress to the first item."""
        if self._relapse_cap_override is None:
            default = settings.study.relapse_cap
            self.relapse_cap = coerce_cap(
                self.storage.get_setting(RELAPSE_CAP_KEY, default), default, RELAPSE_CAP_KEY
            )

        self.relapse_queue.clear()
        self.relapse_count = 0
        self.current_index = 0
        self.current_step = SessionStep.RECALL
        self.recall_outcome = None
        self.is_complete = False
        self._spelled = False

        new_words = sum(1 for item in self.queue if is_new(item.state))
        self.stats = SessionStats(
            started_at=self.clock(),
            new_words=new_words,
            review_words=len(self.queue) - new_words,
        )
        self.error_counts = {}

        logger.info(f"Session started with {len(self.queue)} words, relapse cap {self.relapse_cap}")
        self._track("start_session", count=len(self.queue), new=new_words)
        return self

    def _track(self, event_type: str, **data: Any) -> None:
        try:
            self.events.track(event_type, **data)
        except Exception as e:
            logger.error(f"Error tracking event {event_type}: {e}")

    def _current_queue_item(self) -> Optional[SessionQueueItem]:
        """Item under the cursor, pulling the next relapse when the queue runs out."""
        if self.is_complete:
            return None
        if self.current_index >= len(self.queue):
            if not self.relapse_queue:
                self.is_complete = True
                self.current_step = SessionStep.COMPLETE
                logger.info(f"Session complete after {self.stats.total_words} spelling attempts")
                return None
            # The cursor now points at the appended relapse item
            self.queue.append(self.relapse_queue.popleft())
        return self.queue[self.current_index]

    def _require_item(self, step: SessionStep) -> SessionQueueItem:
        item = self._current_queue_item()
        if item is None:
            raise SessionStateError("Session is complete")
        if self.current_step is not step:
            raise SessionStateError(
                f"Expected {step.value} step, session is at {self.current_step.value}"
            )
        return item

    def get_current_item(self) -> Optional[CurrentItem]:
        """Get the item to display, or None once the session is complete."""
        item = self._current_queue_item()
        if item is None:
            return None
        return CurrentItem(
            word=item.word,
            state=item.state,
            step=self.current_step,
            progress=self.current_index + 1,
            total=len(self.queue),
            is_relapse_copy=item.is_relapse_copy,
        )

    def handle_recall(self, evaluation: Any) -> RecallOutcome:
        """Handle the meaning-recall self-evaluation.

        Unknown evaluations act as "know" and are not tallied.
        """
        item = self._require_item(SessionStep.RECALL)

        state = self.storage.get_word_state(item.word.text)
        outcome = process_recall_step(state, evaluation, self.clock().date())

        parsed = SelfEvaluation.parse(evaluation)
        if parsed is not None:
            self.stats.self_eval_stats[parsed.value] += 1
        else:
            logger.warning(f"Unknown self-evaluation {evaluation!r} for {item.word.text!r}")

        self._track(
            "self_eval",
            word=item.word.text,
            choice=parsed.value if parsed else str(evaluation),
        )

        self.recall_outcome = outcome
        self.current_step = SessionStep.SPELL
        self._spelled = False
        return outcome

    def handle_spell(self, correct: bool) -> SpellResult:
        """Handle the spelling verdict for the current item.

        Raises StorageError when the new state cannot be saved; in that case
        the session is left as it was so the verdict can be retried.
        """
        item = self._require_item(SessionStep.SPELL)
        if self._spelled:
            raise SessionStateError(f"Spelling of {item.word.text!r} was already recorded")

        word_text = item.word.text
        state = self.storage.get_word_state(word_text)
        old_level = clamp_level(state.level) if state else 0
        new_state = process_spell_step(
            state, correct, self.recall_outcome, now=self.clock(), word_text=word_text
        )
        saved_state = self.storage.save_word_state(new_state)

        item.state = saved_state
        self._spelled = True
        self.stats.total_words += 1

        if correct:
            self.stats.spelling_correct += 1
        else:
            self.stats.spelling_wrong += 1
            self.error_counts[word_text] = self.error_counts.get(word_text, 0) + 1
            if self.error_counts[word_text] > self.stats.hardest_word_errors:
                self.stats.hardest_word = word_text
                self.stats.hardest_word_errors = self.error_counts[word_text]
        spelling_results.labels(result="correct" if correct else "wrong").inc()

        if old_level != saved_state.level:
            self.stats.level_changes.append(LevelChange(word_text, old_level, saved_state.level))
            self._track("word_level_change", word=word_text, from_level=old_level, to_level=saved_state.level)

        relapsed = False
        triggers_relapse = self.recall_outcome is not None and self.recall_outcome.triggers_relapse
        if (not correct or triggers_relapse) and self.relapse_count < self.relapse_cap:
            # Relapse copies are never re-queued, so each word relapses once at most
            if not item.is_relapse_copy:
                self.relapse_queue.append(item.relapse_copy(saved_state))
                self.relapse_count += 1
                self.stats.relapse_count = self.relapse_count
                relapsed = True
                relapses_enqueued.inc()
                logger.debug(f"Queued relapse of {word_text!r} ({self.relapse_count}/{self.relapse_cap})")

        self._track("spelling_submit", word=word_text, correct=correct)
        self.replica.push_word_state(saved_state)

        return SpellResult(
            correct=correct,
            correct_answer_text=word_text,
            old_level=old_level,
            new_level=saved_state.level,
            relapsed=relapsed,
        )

    def advance(self) -> None:
        """Move to the next item after both steps of the current one."""
        if self.is_complete:
            return
        self.current_index += 1
        self.current_step = SessionStep.RECALL
        self.recall_outcome = None
        self._spelled = False

    def get_report(self) -> SessionReport:
        """Snapshot of the session statistics."""
        ended_at = self.clock()
        stats = self.stats
        total_spelling = stats.spelling_correct + stats.spelling_wrong
        accuracy = round(stats.spelling_correct / total_spelling * 100) if total_spelling else 0
        return SessionReport(
            started_at=stats.started_at,
            ended_at=ended_at,
            total_words=stats.total_words,
            new_words=stats.new_words,
            review_words=stats.review_words,
            spelling_correct=stats.spelling_correct,
            spelling_wrong=stats.spelling_wrong,
            self_eval_stats=dict(stats.self_eval_stats),
            level_changes=list(stats.level_changes),
            hardest_word=stats.hardest_word,
            hardest_word_errors=stats.hardest_word_errors,
            relapse_count=stats.relapse_count,
            spelling_accuracy=accuracy,
            duration_seconds=max(round((ended_at - stats.started_at).total_seconds()), 0),
            mastered_new=sum(1 for change in stats.level_changes if change.to_level == 3),
        )

    def save_session(self) -> bool:
        """Persist the session summary once. Returns False if it was already saved."""
        if self.saved:
            logger.warning("Session summary already saved, skipping")
            return False

        report = self.get_report()
        summary = report.to_summary()
        self.storage.save_session(summary, completed=self.is_complete)
        self.saved = True

        sessions_saved.labels(kind="complete" if self.is_complete else "partial").inc()
        session_duration.observe(report.duration_seconds)
        self.replica.push_session(summary)
        self._track("session_complete", total_words=report.total_words, accuracy=report.spelling_accuracy)
        return True

    def abandon(self) -> bool:
        """Flush a partial summary when the learner leaves mid-session.

        Nothing is written when no word was studied. Errors are logged only.
        """
        if self.saved:
            return False
        if self.stats.total_words == 0:
            logger.info("Session abandoned before any word was studied, discarding")
            return False
        try:
            return self.save_session()
        except Exception as e:
            logger.error(f"Error saving abandoned session: {e}")
            return False
