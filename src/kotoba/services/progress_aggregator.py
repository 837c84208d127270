"""Rolls item progress up into section and deck summaries.

Everything here is recomputed from the current ItemProgress set, never
updated incrementally, so resets and deletions heal the aggregates.
"""
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional

from kotoba.models.progress_models import (
    DeckProgress,
    ItemKey,
    ItemProgress,
    MasteryLevel,
    OverallStats,
    SectionProgressSummary,
    VocabularyDeck,
)


def summarize_section(
    section_index: int,
    total_items: int,
    items: Iterable[ItemProgress],
) -> SectionProgressSummary:
    """Summary for one section. ``mastered_items`` counts FAMILIAR and above."""
    items = list(items)
    practiced = len(items)
    mastered = sum(1 for item in items if item.mastery_level.counts_as_mastered)
    average = (
        sum(item.get_accuracy_percentage() for item in items) / practiced if practiced else 0.0
    )
    attempts = [item.last_attempt_at for item in items if item.last_attempt_at is not None]
    return SectionProgressSummary(
        section_index=section_index,
        total_items=total_items,
        practiced_items=practiced,
        mastered_items=mastered,
        average_accuracy=average,
        last_studied_at=max(attempts) if attempts else None,
    )


def compute_overall_stats(items: Iterable[ItemProgress]) -> OverallStats:
    items = list(items)
    total_correct = sum(item.correct_attempts for item in items)
    total_attempts = sum(item.total_attempts for item in items)
    return OverallStats(
        total_items_practiced=len(items),
        total_correct_attempts=total_correct,
        total_incorrect_attempts=sum(item.incorrect_attempts for item in items),
        total_attempts=total_attempts,
        items_mastered=sum(1 for item in items if item.mastery_level.counts_as_mastered),
        items_fully_mastered=sum(1 for item in items if item.mastery_level is MasteryLevel.MASTERED),
        items_learning=sum(1 for item in items if item.mastery_level.is_learning),
        average_accuracy=total_correct / total_attempts * 100 if total_attempts else 0.0,
    )


def compute_section_summaries(
    items: Mapping[ItemKey, ItemProgress],
    deck: Optional[VocabularyDeck] = None,
) -> Dict[int, SectionProgressSummary]:
    """One summary per section with practiced items.

    Without deck content (e.g. the deck was deleted) the section size falls
    back to the number of practiced items.
    """
    by_section: Dict[int, List[ItemProgress]] = defaultdict(list)
    for key, item in items.items():
        by_section[key.section_index].append(item)

    summaries = {}
    for section_index in sorted(by_section):
        section_items = by_section[section_index]
        total = deck.section_size(section_index) if deck is not None else 0
        summaries[section_index] = summarize_section(
            section_index, max(total, len(section_items)), section_items
        )
    return summaries


def recompute(progress: DeckProgress, deck: Optional[VocabularyDeck] = None) -> DeckProgress:
    """Return ``progress`` with its section summaries and overall stats rebuilt."""
    return replace(
        progress,
        sections=compute_section_summaries(progress.items, deck),
        overall=compute_overall_stats(progress.items.values()),
    )
