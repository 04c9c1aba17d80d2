"""Command line entry point for the trainer."""
import argparse
import json
import logging
import sys
from typing import List, Optional

from wordrecall.config import ensure_directories, settings
from wordrecall.errors import StorageError
from wordrecall.logging_config import setup_logging
from wordrecall.models.base import SessionLocal, init_db
from wordrecall.models.srs_models import SelfEvaluation, SessionStep, StudyMode
from wordrecall.monitoring import start_monitoring
from wordrecall.services.analytics import EventTracker
from wordrecall.services.session_service import StudySession, is_correct_spelling
from wordrecall.services.srs import get_level_name
from wordrecall.services.storage_service import StorageService
from wordrecall.services.task_generator import TaskService

logger = logging.getLogger(__name__)

EVALUATION_KEYS = {
    "k": SelfEvaluation.KNOW,
    "f": SelfEvaluation.FUZZY,
    "d": SelfEvaluation.DONT_KNOW,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wordrecall", description="Spaced repetition vocabulary trainer")
    parser.add_argument("--learner", default="default", help="learner name")
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="create database tables")

    add_list = subparsers.add_parser("add-list", help="add words to a wordlist")
    add_list.add_argument("wordlist_id")
    add_list.add_argument("words", nargs="+", metavar="WORD=MEANING")
    add_list.add_argument("--name", default=None)

    subparsers.add_parser("today", help="show today's counts")

    study = subparsers.add_parser("study", help="run a study session")
    study.add_argument("--mode", choices=[mode.value for mode in StudyMode], default=StudyMode.ALL.value)
    study.add_argument("--wordlist", default=None, help="only study this wordlist")

    set_cmd = subparsers.add_parser("set", help="change a learner setting")
    set_cmd.add_argument("key")
    set_cmd.add_argument("value", help="JSON value, e.g. 20 or \"builtin_1\"")
    return parser


def parse_word_pairs(items: List[str]) -> List[tuple[str, str]]:
    pairs = []
    for item in items:
        text, _, meaning = item.partition("=")
        if text.strip():
            pairs.append((text, meaning))
    return pairs


def retry_on_storage_error(action, what: str):
    """Run a durable write, asking to retry while storage fails.

    Re-raises the last StorageError when the learner declines.
    """
    while True:
        try:
            return action()
        except StorageError as e:
            logger.error(f"Saving {what} failed: {e}")
            print(f"Could not save {what}: {e}")
            if not input("Retry? [y/n]: ").strip().lower().startswith("y"):
                raise


def run_today(tasks: TaskService) -> None:
    stats = tasks.get_today_stats()
    progress = tasks.get_progress_stats()
    print(f"Reviews due: {stats.review_count}")
    print(f"New words:   {stats.new_count}")
    print(f"Estimate:    ~{stats.estimated_minutes} min")
    print(f"Learned {stats.total_learned} of {stats.total_words}, mastered {stats.mastered_count}")
    print("Levels: " + ", ".join(
        f"{get_level_name(level)}={count}" for level, count in enumerate(stats.level_distribution)
    ))
    if stats.active_list_exhausted:
        print("The active wordlist has no new words left; new words come from other lists.")
    print(f"Streak: {progress.streak} day(s)")
    print(f"This week: {progress.week_days} day(s), {progress.week_words} words, "
          f"accuracy {progress.week_avg_accuracy}%")


def run_study(session: StudySession) -> None:
    session.init()
    while True:
        item = session.get_current_item()
        if item is None:
            break
        prefix = f"[{item.progress}/{item.total}]" + (" (again)" if item.is_relapse_copy else "")
        print(f"\n{prefix} {item.word.meaning or '?'}")

        if item.step is SessionStep.RECALL:
            choice = input("Do you know this word? [k]now / [f]uzzy / [d]on't know: ").strip().lower()
            session.handle_recall(EVALUATION_KEYS.get(choice[:1], choice))

        answer = input("Spell it: ")
        verdict = is_correct_spelling(answer, item.word.text)
        result = retry_on_storage_error(lambda: session.handle_spell(verdict), f"progress on {item.word.text!r}")
        if result.correct:
            print(f"Correct! {get_level_name(result.old_level)} -> {get_level_name(result.new_level)}")
        else:
            print(f"The answer is: {result.correct_answer_text}")
            while not is_correct_spelling(input("Type it correctly to continue: "), item.word.text):
                pass
        session.advance()

    report = session.get_report()
    retry_on_storage_error(session.save_session, "the session summary")
    print(f"\nDone: {report.total_words} words, accuracy {report.spelling_accuracy}%, "
          f"{report.mastered_new} newly mastered, {report.duration_seconds}s")
    if report.hardest_word:
        print(f"Hardest word: {report.hardest_word} ({report.hardest_word_errors} errors)")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    ensure_directories()
    setup_logging(level=args.log_level or settings.logging.level)
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)

    init_db()
    db = SessionLocal()
    try:
        learner = StorageService.get_or_create_learner(db, args.learner)
        storage = StorageService(db, learner.id)
        tasks = TaskService(storage)

        if args.command == "init-db":
            print("Database ready")
        elif args.command == "add-list":
            wordlist = storage.create_wordlist(
                args.wordlist_id, args.name or args.wordlist_id, parse_word_pairs(args.words)
            )
            print(f"Wordlist {wordlist.id} has {len(wordlist.words)} words")
        elif args.command == "today":
            run_today(tasks)
        elif args.command == "set":
            try:
                value = json.loads(args.value)
            except json.JSONDecodeError:
                value = args.value
            storage.set_setting(args.key, value)
            print(f"{args.key} = {value!r}")
        elif args.command == "study":
            daily = tasks.generate_daily_tasks(mode=args.mode, wordlist_id=args.wordlist)
            if not daily.queue:
                print("Nothing to study today")
                return 0
            session = StudySession(daily, storage, events=EventTracker())
            try:
                run_study(session)
            except (KeyboardInterrupt, EOFError):
                print()
                logger.info("Study session interrupted")
                session.abandon()
            except StorageError:
                print("Study session stopped")
                session.abandon()
                return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
