"""Models for practice submissions, evaluations and attempts."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union

from kotoba.models.progress_models import ItemProgress


class PracticeType(Enum):
    """Kinds of practice the engine scores."""
    DICTATION = "dictation"
    SHADOWING = "shadowing"
    FILL_IN = "fill_in"
    FLASHCARD = "flashcard"


class MistakeType(Enum):
    """Position-level dictation mistakes."""
    MISSING = "missing"  # Input ran out before the reference
    EXTRA = "extra"  # Reference ran out before the input
    SUBSTITUTION = "substitution"  # Both present, characters differ


class FillInQuestionType(Enum):
    """Prompt/answer pairings for fill-in questions."""
    WORD_TO_MEANING = "word_to_meaning"
    MEANING_TO_WORD = "meaning_to_word"
    READING_TO_WORD = "reading_to_word"
    WORD_TO_READING = "word_to_reading"

    @property
    def answer_field(self) -> str:
        """Name of the vocabulary item field holding the expected answer."""
        return {
            FillInQuestionType.WORD_TO_MEANING: "meaning",
            FillInQuestionType.MEANING_TO_WORD: "word",
            FillInQuestionType.READING_TO_WORD: "word",
            FillInQuestionType.WORD_TO_READING: "reading",
        }[self]


class FlashcardFace(Enum):
    """Which side of an item a flashcard shows first."""
    WORD = "word"  # Show the word, reveal the meaning
    MEANING = "meaning"  # Show the meaning, reveal the word
    READING = "reading"  # Show the reading, reveal the word


class FlashcardAssessment(Enum):
    """Learner's self-assessment of a flashcard."""
    EASY = "easy"
    GOOD = "good"
    HARD = "hard"
    FORGOT = "forgot"

    @property
    def is_correct(self) -> bool:
        return self in (FlashcardAssessment.EASY, FlashcardAssessment.GOOD)


@dataclass(frozen=True)
class DictationMistake:
    position: int
    expected: str
    actual: str
    type: MistakeType


@dataclass(frozen=True)
class DetailedDictationFeedback:
    strengths: Tuple[str, ...]
    improvements: Tuple[str, ...]
    specific_tips: Tuple[str, ...]
    correct_segments: Tuple[str, ...]
    incorrect_segments: Tuple[str, ...]
    similarity_percentage: float


@dataclass(frozen=True)
class DictationEvaluation:
    """Multi-metric comparison of a transcription against its reference."""
    accuracy_score: float
    character_accuracy: float
    word_accuracy: float
    overall_score: float
    feedback_text: str
    mistakes: Tuple[DictationMistake, ...] = ()
    detailed_feedback: Optional[DetailedDictationFeedback] = None


@dataclass(frozen=True)
class PhonemeScore:
    phoneme: str
    expected: str
    actual: str
    score: float


@dataclass(frozen=True)
class DetailedShadowingFeedback:
    strengths: Tuple[str, ...]
    improvements: Tuple[str, ...]
    specific_tips: Tuple[str, ...]
    transcribed_text: str
    phoneme_analysis: Tuple[PhonemeScore, ...]


@dataclass(frozen=True)
class ShadowingEvaluation:
    """Simulated pronunciation, speed and intonation evaluation."""
    pronunciation_score: float
    speed_score: float
    intonation_score: float
    overall_score: float
    feedback_text: str
    detailed_feedback: Optional[DetailedShadowingFeedback] = None


@dataclass(frozen=True)
class FillInEvaluation:
    """Outcome of comparing a free-text answer against the expected field."""
    is_correct: bool
    similarity: float
    user_answer: str
    correct_answer: str
    feedback: str
    base_points: int

    @property
    def overall_score(self) -> float:
        return self.similarity * 100


@dataclass(frozen=True)
class FlashcardEvaluation:
    assessment: FlashcardAssessment
    is_correct: bool
    overall_score: float
    base_points: int


Evaluation = Union[DictationEvaluation, ShadowingEvaluation, FillInEvaluation, FlashcardEvaluation]


@dataclass(frozen=True)
class DeckTarget:
    """A vocabulary item inside a deck."""
    deck_id: str
    section_index: int
    item_index: int


@dataclass(frozen=True)
class SegmentTarget:
    """A segment of a video transcript."""
    video_id: str
    segment_index: int


Target = Union[DeckTarget, SegmentTarget]


@dataclass(frozen=True)
class DictationSubmission:
    user_id: str
    target: Target
    user_answer: str


@dataclass(frozen=True)
class ShadowingSubmission:
    user_id: str
    target: Target
    audio_reference: str


@dataclass(frozen=True)
class FillInSubmission:
    user_id: str
    target: DeckTarget
    question_type: FillInQuestionType
    user_answer: str


@dataclass(frozen=True)
class FlashcardSubmission:
    user_id: str
    target: DeckTarget
    assessment: FlashcardAssessment


@dataclass(frozen=True)
class Attempt:
    """Immutable record of one submission."""
    attempt_id: str
    user_id: str
    practice_type: PracticeType
    target: Target
    user_input: str
    reference: str
    score: float
    is_correct: bool
    evaluation: Evaluation
    created_at: datetime


@dataclass(frozen=True)
class PracticeResult:
    """What the caller gets back after a submission."""
    attempt: Attempt
    evaluation: Evaluation
    item_progress: Optional[ItemProgress] = None
    next_review_at: Optional[datetime] = None
    points_earned: int = 0


@dataclass(frozen=True)
class FillInQuestion:
    """A generated fill-in question. ``options`` is set for multiple choice."""
    question_id: str
    section_index: int
    item_index: int
    question_type: FillInQuestionType
    prompt: str
    hint: Optional[str] = None
    options: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class FlashcardSide:
    primary_text: str
    secondary_text: Optional[str]
    label: str


@dataclass(frozen=True)
class Flashcard:
    card_id: str
    section_index: int
    item_index: int
    front: FlashcardSide
    back: FlashcardSide
    example: Optional[str] = None


@dataclass(frozen=True)
class PracticeStats:
    """Per-user totals for one practice type."""
    practice_type: PracticeType
    total_attempts: int = 0
    videos_attempted: int = 0
    average_score: float = 0.0
    best_score: float = 0.0
    recent_attempts: Tuple[Attempt, ...] = ()
