"""Value objects for deck content and learning progress."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from types import MappingProxyType
from typing import Dict, Mapping, NamedTuple, Optional, Tuple


class MasteryLevel(IntEnum):
    """Ordered learning state of a vocabulary item."""
    NEW = 0
    LEARNING = 1
    FAMILIAR = 2
    MASTERED = 3

    @property
    def counts_as_mastered(self) -> bool:
        """FAMILIAR or above, i.e. no longer in urgent review.

        Aggregate "mastered" counts use this inclusive notion; the strict
        MASTERED state is checked with ``is MasteryLevel.MASTERED``.
        """
        return self >= MasteryLevel.FAMILIAR

    @property
    def is_learning(self) -> bool:
        return self <= MasteryLevel.LEARNING


class ItemKey(NamedTuple):
    """Position of a vocabulary item inside a deck."""
    section_index: int
    item_index: int

    def __str__(self) -> str:
        return f"{self.section_index}-{self.item_index}"


@dataclass(frozen=True)
class VocabularyItem:
    """A single vocabulary entry. Content is owned by the deck."""
    word: str
    reading: str
    meaning: str
    example: Optional[str] = None


@dataclass(frozen=True)
class VocabularySection:
    """An ordered group of vocabulary items."""
    index: int
    items: Tuple[VocabularyItem, ...] = ()

    def get_item(self, item_index: int) -> Optional[VocabularyItem]:
        if 0 <= item_index < len(self.items):
            return self.items[item_index]
        return None


@dataclass(frozen=True)
class VocabularyDeck:
    """A deck of vocabulary sections."""
    deck_id: str
    title: str
    sections: Tuple[VocabularySection, ...] = ()

    def get_section(self, section_index: int) -> Optional[VocabularySection]:
        for section in self.sections:
            if section.index == section_index:
                return section
        return None

    def get_item(self, section_index: int, item_index: int) -> Optional[VocabularyItem]:
        section = self.get_section(section_index)
        return section.get_item(item_index) if section else None

    def section_size(self, section_index: int) -> int:
        section = self.get_section(section_index)
        return len(section.items) if section else 0

    @property
    def total_items(self) -> int:
        return sum(len(section.items) for section in self.sections)

    def all_items(self) -> Dict[ItemKey, VocabularyItem]:
        return {
            ItemKey(section.index, item_index): item
            for section in self.sections
            for item_index, item in enumerate(section.items)
        }


@dataclass(frozen=True)
class VideoSegment:
    """Reference transcript of one video segment."""
    video_id: str
    segment_index: int
    text: str


@dataclass(frozen=True)
class ItemProgress:
    """Running statistics for one (user, deck, item)."""
    section_index: int
    item_index: int
    correct_attempts: int = 0
    incorrect_attempts: int = 0
    total_attempts: int = 0
    streak_count: int = 0
    best_streak: int = 0
    mastery_level: MasteryLevel = MasteryLevel.NEW
    last_attempt_at: Optional[datetime] = None
    last_correct_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.section_index, self.item_index)

    def get_accuracy_percentage(self) -> float:
        """Share of correct attempts, 0 when never attempted."""
        if self.total_attempts == 0:
            return 0.0
        return self.correct_attempts / self.total_attempts * 100


@dataclass(frozen=True)
class SectionProgressSummary:
    """Derived per-section summary."""
    section_index: int
    total_items: int
    practiced_items: int = 0
    mastered_items: int = 0
    average_accuracy: float = 0.0
    last_studied_at: Optional[datetime] = None

    def get_completion_percentage(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.mastered_items / self.total_items * 100


@dataclass(frozen=True)
class OverallStats:
    """Derived aggregate across every section of a deck."""
    total_items_practiced: int = 0
    total_correct_attempts: int = 0
    total_incorrect_attempts: int = 0
    total_attempts: int = 0
    items_mastered: int = 0
    items_fully_mastered: int = 0
    items_learning: int = 0
    average_accuracy: float = 0.0


@dataclass(frozen=True)
class DeckProgress:
    """A user's progress on one deck.

    ``items`` and ``sections`` are copied into read-only mappings; build a
    changed aggregate with ``dataclasses.replace``.
    """
    user_id: str
    deck_id: str
    items: Mapping[ItemKey, ItemProgress] = field(default_factory=dict)
    sections: Mapping[int, SectionProgressSummary] = field(default_factory=dict)
    overall: OverallStats = field(default_factory=OverallStats)
    study_streak: int = 0
    last_streak_date: Optional[datetime] = None
    last_studied_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self):
        object.__setattr__(self, "items", MappingProxyType(dict(self.items)))
        object.__setattr__(self, "sections", MappingProxyType(dict(self.sections)))

    def get_item(self, section_index: int, item_index: int) -> Optional[ItemProgress]:
        return self.items.get(ItemKey(section_index, item_index))

    def has_practiced(self, section_index: int, item_index: int) -> bool:
        return ItemKey(section_index, item_index) in self.items

    def get_completion_percentage(self, total_items: int) -> float:
        if total_items == 0:
            return 0.0
        mastered = sum(1 for item in self.items.values() if item.mastery_level.counts_as_mastered)
        return mastered / total_items * 100


@dataclass(frozen=True)
class ReviewItem:
    """An item due for review, with the deck it belongs to."""
    deck_id: str
    progress: ItemProgress

    @property
    def due_at(self) -> Optional[datetime]:
        return self.progress.next_review_at


@dataclass(frozen=True)
class VocabularyStats:
    """Vocabulary statistics of one user across every deck.

    ``items_mastered`` counts FAMILIAR and above, ``items_fully_mastered``
    only MASTERED.
    """
    decks_studied: int = 0
    total_items_practiced: int = 0
    items_mastered: int = 0
    items_fully_mastered: int = 0
    overall_accuracy: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    items_due: int = 0


@dataclass(frozen=True)
class SegmentProgress:
    """Progress of one user through the segments of a video."""
    video_id: str
    total_segments: int
    attempted_segments: int = 0
    completed_segments: int = 0
    average_score: float = 0.0
    best_score: float = 0.0
    total_attempts: int = 0

    @property
    def progress_percentage(self) -> float:
        if self.total_segments == 0:
            return 0.0
        return self.completed_segments / self.total_segments * 100


@dataclass(frozen=True)
class RecentDeck:
    """A recently studied deck with its completion."""
    deck_id: str
    title: str
    last_studied_at: Optional[datetime]
    completion_percentage: float
    items_mastered: int
    total_items: int


@dataclass(frozen=True)
class DeckStudyStats:
    """How a deck is studied across all users."""
    deck_id: str
    title: str
    users_studied: int = 0
    average_items_mastered: float = 0.0
    total_vocabulary: int = 0
