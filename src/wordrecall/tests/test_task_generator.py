"""Tests for daily task generation."""
from datetime import timedelta
from types import SimpleNamespace
from typing import List

import pytest

from conftest import FakeStorage, TODAY, make_state, make_word
from wordrecall.models.srs_models import StudyConfig, StudyMode, WordWithState
from wordrecall.services.task_generator import (
    TaskService,
    coerce_cap,
    generate_daily_tasks,
    get_progress_stats,
    get_today_stats,
    partition_words,
    unique_words,
)


def catalog() -> List[WordWithState]:
    """Two wordlists with due, future and new words."""
    return [
        WordWithState(make_word("apple", "list_a", 0), make_state("apple", 1, TODAY)),
        WordWithState(make_word("bread", "list_a", 1), make_state("bread", 2, TODAY - timedelta(days=4))),
        WordWithState(make_word("chair", "list_a", 2), make_state("chair", 3, TODAY + timedelta(days=3))),
        WordWithState(make_word("dog", "list_a", 3), None),
        WordWithState(make_word("egg", "list_b", 0), make_state("egg", 0, TODAY - timedelta(days=1))),
        WordWithState(make_word("fish", "list_b", 1), None),
        WordWithState(make_word("goat", "list_b", 2), None),
    ]


def texts(items) -> List[str]:
    return [item.word.text for item in items]


def test_reviews_sorted_most_overdue_first() -> None:
    """Due reviews come out in ascending next review order."""
    tasks = generate_daily_tasks(catalog(), StudyConfig(), today=TODAY)
    assert texts(tasks.reviews) == ["bread", "egg", "apple"]
    assert tasks.review_count == 3


def test_reviews_precede_new_words() -> None:
    """The queue is reviews followed by new words."""
    tasks = generate_daily_tasks(catalog(), StudyConfig(), today=TODAY)
    assert texts(tasks.queue) == ["bread", "egg", "apple", "dog", "fish", "goat"]
    assert tasks.total_count == 6


def test_equal_dates_keep_catalog_order() -> None:
    """Ties on next review date keep the catalog order."""
    words = [
        WordWithState(make_word(text, position=index), make_state(text, 1, TODAY))
        for index, text in enumerate(["zeta", "alpha", "mid"])
    ]
    tasks = generate_daily_tasks(words, StudyConfig(), today=TODAY)
    assert texts(tasks.reviews) == ["zeta", "alpha", "mid"]


def test_caps_are_applied() -> None:
    """Both halves are capped after sorting."""
    config = StudyConfig(daily_new_cap=1, daily_review_cap=2)
    tasks = generate_daily_tasks(catalog(), config, today=TODAY)
    assert texts(tasks.reviews) == ["bread", "egg"]
    assert texts(tasks.new_words) == ["dog"]


def test_negative_caps_mean_nothing() -> None:
    """Negative caps select nothing."""
    config = StudyConfig(daily_new_cap=-3, daily_review_cap=-1)
    tasks = generate_daily_tasks(catalog(), config, today=TODAY)
    assert tasks.queue == []


@pytest.mark.parametrize(
    "mode,expected",
    [
        (StudyMode.REVIEW, ["bread", "egg", "apple"]),
        ("new", ["dog", "fish", "goat"]),
        ("bogus", ["bread", "egg", "apple", "dog", "fish", "goat"]),
    ],
)
def test_modes(mode, expected: List[str]) -> None:
    """Modes empty the inactive half of the queue."""
    tasks = generate_daily_tasks(catalog(), StudyConfig(), mode, TODAY)
    assert texts(tasks.queue) == expected


def test_generation_is_deterministic() -> None:
    """Same snapshot, same queue."""
    words = catalog()
    first = generate_daily_tasks(words, StudyConfig(), today=TODAY)
    second = generate_daily_tasks(words, StudyConfig(), today=TODAY)
    assert texts(first.queue) == texts(second.queue)


def test_active_wordlist_first() -> None:
    """New words from the active list lead the selection."""
    config = StudyConfig(daily_new_cap=2, active_wordlist_id="list_b")
    tasks = generate_daily_tasks(catalog(), config, today=TODAY)
    assert texts(tasks.new_words) == ["fish", "goat"]
    assert tasks.fallback_used is False
    assert tasks.active_list_exhausted is False


def test_new_word_fallback() -> None:
    """3 new words in the active list, cap 10, 20 elsewhere -> 3 + 7 with fallback."""
    words = [WordWithState(make_word(f"other{i}", "others", i), None) for i in range(20)]
    words += [WordWithState(make_word(f"active{i}", "active", i), None) for i in range(3)]
    config = StudyConfig(daily_new_cap=10, active_wordlist_id="active")

    tasks = generate_daily_tasks(words, config, today=TODAY)

    assert tasks.new_count == 10
    assert texts(tasks.new_words) == [f"active{i}" for i in range(3)] + [f"other{i}" for i in range(7)]
    assert tasks.fallback_used is True
    assert tasks.active_list_exhausted is False


def test_active_list_exhausted() -> None:
    """An active list with no new words is flagged."""
    config = StudyConfig(daily_new_cap=5, active_wordlist_id="list_c")
    tasks = generate_daily_tasks(catalog(), config, today=TODAY)
    assert texts(tasks.new_words) == ["dog", "fish", "goat"]
    assert tasks.active_list_exhausted is True
    assert tasks.fallback_used is True


def test_no_active_wordlist_has_no_flags() -> None:
    """Without an active list new words come in catalog order."""
    partition = partition_words(catalog(), StudyConfig(daily_new_cap=2), TODAY)
    assert texts(partition.new_words) == ["dog", "fish"]
    assert partition.fallback_used is False
    assert partition.active_list_exhausted is False
    assert partition.due_total == 3
    assert partition.new_total == 3


def test_estimated_minutes_round_up() -> None:
    """Half a minute per word, rounded up."""
    tasks = generate_daily_tasks(catalog(), StudyConfig(daily_new_cap=0, daily_review_cap=3), today=TODAY)
    assert tasks.estimated_minutes == 2


def test_today_stats_match_queue() -> None:
    """Dashboard counts agree with the generated queue."""
    config = StudyConfig(daily_new_cap=2, daily_review_cap=2)
    words = catalog()
    stats = get_today_stats(words, config, TODAY)
    tasks = generate_daily_tasks(words, config, today=TODAY)

    assert stats.review_count == tasks.review_count == 2
    assert stats.new_count == tasks.new_count == 2
    assert stats.total_words == 7
    assert stats.total_learned == 4
    assert stats.mastered_count == 1
    assert stats.level_distribution == [1, 1, 1, 1]
    assert stats.estimated_minutes == 2


def test_task_service_reads_settings() -> None:
    """Settings come from storage, with defaults for missing or bad values."""
    storage = FakeStorage(
        states=[entry.state for entry in catalog() if entry.state],
        settings={"dailyNewWords": "2", "dailyReviewCap": "lots", "activeWordlistId": "list_b"},
    )
    storage.words = catalog()
    service = TaskService(storage)

    config = service.load_config()
    assert config.daily_new_cap == 2
    assert config.daily_review_cap == 50
    assert config.relapse_cap == 10
    assert config.active_wordlist_id == "list_b"

    tasks = service.generate_daily_tasks(today=TODAY)
    assert texts(tasks.new_words) == ["fish", "goat"]

    only_a = service.generate_daily_tasks(mode="review", wordlist_id="list_a", today=TODAY)
    assert texts(only_a.queue) == ["bread", "apple"]

    stats = service.get_today_stats(today=TODAY)
    assert stats.new_count == 2
    assert stats.review_count == 3


def shared_catalog() -> List[WordWithState]:
    """"apple" sits in both lists."""
    return [
        WordWithState(make_word("apple", "list_a", 0), None),
        WordWithState(make_word("bread", "list_a", 1), None),
        WordWithState(make_word("apple", "list_b", 0), None),
        WordWithState(make_word("cider", "list_b", 1), None),
    ]


def test_shared_word_queued_once() -> None:
    """A word in two lists is one word; its first catalog copy is kept."""
    tasks = generate_daily_tasks(shared_catalog(), StudyConfig(), today=TODAY)
    assert texts(tasks.queue) == ["apple", "bread", "cider"]
    assert tasks.queue[0].word.wordlist_id == "list_a"


def test_shared_word_prefers_active_list() -> None:
    """The active list's copy of a shared word wins."""
    config = StudyConfig(active_wordlist_id="list_b")
    tasks = generate_daily_tasks(shared_catalog(), config, today=TODAY)
    assert texts(tasks.queue) == ["apple", "cider", "bread"]
    assert tasks.queue[0].word.wordlist_id == "list_b"
    assert texts(unique_words(shared_catalog(), "list_b")) == ["bread", "apple", "cider"]


def test_shared_due_word_reviewed_once() -> None:
    """A due word listed twice yields one review and one dashboard entry."""
    words = [
        WordWithState(make_word("apple", "list_a", 0), make_state("apple", 1, TODAY)),
        WordWithState(make_word("apple", "list_b", 0), make_state("apple", 1, TODAY)),
    ]
    tasks = generate_daily_tasks(words, StudyConfig(), today=TODAY)
    assert texts(tasks.reviews) == ["apple"]

    stats = get_today_stats(words, StudyConfig(), TODAY)
    assert stats.review_count == 1
    assert stats.total_words == 1
    assert stats.total_learned == 1


def test_coerce_cap_rejects_booleans() -> None:
    """Booleans are not counts; numeric strings are."""
    assert coerce_cap(True, 10, "dailyNewWords") == 10
    assert coerce_cap(False, 10, "dailyNewWords") == 10
    assert coerce_cap("3", 10, "dailyNewWords") == 3
    assert coerce_cap(-1, 10, "dailyNewWords") == 10

    storage = FakeStorage(settings={"dailyReviewCap": True})
    assert TaskService(storage).load_config().daily_review_cap == 50


def studied(days_ago: int, total_words: int = 10, accuracy: int = 80) -> SimpleNamespace:
    return SimpleNamespace(
        date=TODAY - timedelta(days=days_ago),
        total_words=total_words,
        spelling_accuracy=accuracy,
    )


def test_streak_counts_days_back_from_today() -> None:
    """Several sessions on one day count once; a gap ends the streak."""
    sessions = [studied(0), studied(0), studied(1), studied(2), studied(4)]
    assert get_progress_stats(sessions, TODAY).streak == 3


def test_streak_is_zero_without_study_today() -> None:
    assert get_progress_stats([studied(1), studied(2)], TODAY).streak == 0


def test_week_summary() -> None:
    """The week covers today and the seven days before it."""
    sessions = [
        studied(0, total_words=10, accuracy=80),
        studied(1, total_words=6, accuracy=91),
        studied(7, total_words=4, accuracy=70),
        studied(8, total_words=50, accuracy=0),
    ]
    progress = get_progress_stats(sessions, TODAY)
    assert progress.week_days == 3
    assert progress.week_words == 20
    assert progress.week_avg_accuracy == 80
    assert progress.total_sessions == 4


def test_week_accuracy_rounds_half_up() -> None:
    progress = get_progress_stats([studied(0, accuracy=50), studied(0, accuracy=51)], TODAY)
    assert progress.week_avg_accuracy == 51
    assert progress.week_days == 1


def test_progress_without_sessions() -> None:
    progress = get_progress_stats([], TODAY)
    assert progress.streak == 0
    assert progress.week_days == 0
    assert progress.week_words == 0
    assert progress.week_avg_accuracy == 0
