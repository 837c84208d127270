"""Tests for progress aggregation."""
from datetime import UTC, datetime, timedelta

import pytest
from faker import Faker

from kotoba.models.progress_models import (
    DeckProgress,
    ItemKey,
    ItemProgress,
    MasteryLevel,
    VocabularyDeck,
    VocabularyItem,
    VocabularySection,
)
from kotoba.services.progress_aggregator import compute_overall_stats, recompute

fake = Faker()
NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def _item(section: int, index: int, correct: int, incorrect: int, level: MasteryLevel,
          minutes_ago: int = 0) -> ItemProgress:
    return ItemProgress(
        section_index=section,
        item_index=index,
        correct_attempts=correct,
        incorrect_attempts=incorrect,
        total_attempts=correct + incorrect,
        mastery_level=level,
        last_attempt_at=NOW - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def progress() -> DeckProgress:
    items = [
        _item(0, 0, 3, 1, MasteryLevel.FAMILIAR, minutes_ago=30),
        _item(0, 1, 1, 1, MasteryLevel.LEARNING, minutes_ago=5),
        _item(1, 0, 8, 0, MasteryLevel.MASTERED, minutes_ago=60),
        _item(1, 2, 0, 2, MasteryLevel.NEW),
    ]
    return DeckProgress(user_id=fake.uuid4(), deck_id="deck", items={item.key: item for item in items})


@pytest.fixture
def deck() -> VocabularyDeck:
    def section(index: int, size: int) -> VocabularySection:
        return VocabularySection(index, tuple(VocabularyItem(fake.word(), fake.word(), fake.word()) for _ in range(size)))
    return VocabularyDeck("deck", fake.catch_phrase(), (section(0, 4), section(1, 5)))


def test_overall_totals_match_items(progress):
    """Test totals are sums over the items."""
    stats = compute_overall_stats(progress.items.values())
    assert stats.total_attempts == sum(item.total_attempts for item in progress.items.values())
    assert stats.total_attempts == 16
    assert stats.total_correct_attempts == 12
    assert stats.total_incorrect_attempts == 4
    assert stats.total_items_practiced == 4
    assert stats.average_accuracy == pytest.approx(75.0)


def test_two_notions_of_mastered(progress):
    """Test FAMILIAR+ and strict MASTERED are counted separately."""
    stats = compute_overall_stats(progress.items.values())
    assert stats.items_mastered == 2
    assert stats.items_fully_mastered == 1
    assert stats.items_learning == 2


def test_section_summaries(progress, deck):
    """Test per-section summaries use deck sizes and item accuracies."""
    sections = recompute(progress, deck).sections
    assert set(sections) == {0, 1}

    first = sections[0]
    assert first.total_items == 4
    assert first.practiced_items == 2
    assert first.mastered_items == 1
    assert first.average_accuracy == pytest.approx((75.0 + 50.0) / 2)
    assert first.last_studied_at == NOW - timedelta(minutes=5)
    assert first.get_completion_percentage() == pytest.approx(25.0)

    assert sections[1].total_items == 5
    assert sections[1].average_accuracy == pytest.approx(50.0)


def test_section_size_without_deck(progress):
    """Test the fallback when deck content is unavailable."""
    assert recompute(progress).sections[1].total_items == 2


def test_recompute_is_idempotent(progress, deck):
    """Test running aggregation twice gives identical output."""
    once = recompute(progress, deck)
    assert recompute(once, deck) == once


def test_recompute_after_removing_items(progress, deck):
    """Test aggregates heal when items are removed."""
    kept = {key: item for key, item in progress.items.items() if key.section_index == 0}
    rebuilt = recompute(DeckProgress(progress.user_id, progress.deck_id, items=kept), deck)
    assert set(rebuilt.sections) == {0}
    assert rebuilt.overall.total_attempts == 6


def test_empty_progress():
    """Test aggregates of a deck with no practice."""
    rebuilt = recompute(DeckProgress("u", "d"))
    assert rebuilt.sections == {}
    assert rebuilt.overall.total_attempts == 0
    assert rebuilt.overall.average_accuracy == 0.0
    assert rebuilt.get_completion_percentage(0) == 0.0
    assert ItemKey(0, 0) not in rebuilt.items


def test_progress_mappings_are_read_only(progress):
    """Test item and section mappings cannot be changed in place."""
    source = dict(progress.items)
    rebuilt = DeckProgress(user_id=progress.user_id, deck_id="deck", items=source)
    source.clear()
    assert len(rebuilt.items) == 4

    with pytest.raises(TypeError):
        rebuilt.items[ItemKey(5, 5)] = _item(5, 5, 1, 0, MasteryLevel.LEARNING)
    with pytest.raises(TypeError):
        recompute(rebuilt).sections[9] = None
