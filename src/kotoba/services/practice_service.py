"""Practice orchestration: scoring, attempt history and deck progress."""
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, ClassVar, Dict, Iterator, List, Optional, Tuple

from kotoba.clock import Clock, IdSource, new_id, utc_now
from kotoba.config import settings
from kotoba.exceptions import (
    ConcurrentUpdateConflict,
    InvalidInputError,
    NotFoundError,
    ProgressUpdateFailed,
)
from kotoba.models.practice_models import (
    Attempt,
    DeckTarget,
    DictationSubmission,
    Evaluation,
    FillInQuestion,
    FillInQuestionType,
    FillInSubmission,
    Flashcard,
    FlashcardAssessment,
    FlashcardFace,
    FlashcardSubmission,
    PracticeResult,
    PracticeStats,
    PracticeType,
    SegmentTarget,
    ShadowingSubmission,
    Target,
)
from kotoba.models.progress_models import (
    DeckProgress,
    DeckStudyStats,
    ItemKey,
    ItemProgress,
    RecentDeck,
    ReviewItem,
    SegmentProgress,
    VocabularyDeck,
    VocabularyItem,
    VocabularyStats,
)
from kotoba.monitoring import (
    attempt_scores,
    attempts_scored,
    progress_conflicts,
    progress_update_duration,
    progress_update_failures,
)
from kotoba.services.dictation_scorer import DictationScorer
from kotoba.services.fill_in_scorer import FillInScorer
from kotoba.services.flashcard_scorer import evaluate_flashcard
from kotoba.services.mastery_tracker import MasteryTracker
from kotoba.services.progress_aggregator import recompute
from kotoba.services.question_generator import (
    DEFAULT_FLASHCARD_COUNT,
    DEFAULT_QUESTION_COUNT,
    QuestionGenerator,
)
from kotoba.services.repositories import AttemptRepository, ContentRepository, ProgressRepository
from kotoba.services.review_scheduler import ReviewScheduler, current_study_streak, update_study_streak
from kotoba.services.shadowing_scorer import RandomShadowingScorer, ShadowingEvaluator

logger = logging.getLogger(__name__)

ProgressChange = Callable[[DeckProgress], DeckProgress]


class _ProgressLock:
    """A per-(user, deck) lock and the number of threads using or waiting on it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class PracticeService:
    """Entry point for practice submissions and progress queries.

    Scoring is pure and runs without any lock. Every change to a DeckProgress
    is a read-update-write cycle serialized per (user, deck) by an in-process
    lock and guarded across processes by the repository's version check;
    lost races are retried up to ``max_update_retries`` times.
    """
    _registry_lock = threading.Lock()
    _progress_locks: ClassVar[Dict[Tuple[str, str], _ProgressLock]] = {}

    def __init__(
        self,
        content_repository: ContentRepository,
        progress_repository: ProgressRepository,
        attempt_repository: AttemptRepository,
        shadowing_scorer: Optional[ShadowingEvaluator] = None,
        clock: Clock = utc_now,
        id_source: IdSource = new_id,
        mastery_tracker: Optional[MasteryTracker] = None,
        review_scheduler: Optional[ReviewScheduler] = None,
        fill_in_scorer: Optional[FillInScorer] = None,
        max_update_retries: Optional[int] = None,
        question_generator: Optional[QuestionGenerator] = None,
    ):
        self.content_repository = content_repository
        self.progress_repository = progress_repository
        self.attempt_repository = attempt_repository
        self.shadowing_scorer = shadowing_scorer or RandomShadowingScorer()
        self.dictation_scorer = DictationScorer()
        self.fill_in_scorer = fill_in_scorer or FillInScorer()
        self.mastery_tracker = mastery_tracker or MasteryTracker()
        self.review_scheduler = review_scheduler or ReviewScheduler()
        self.question_generator = question_generator or QuestionGenerator()
        self.clock = clock
        self.id_source = id_source
        self.max_update_retries = max_update_retries or settings.concurrency.max_update_retries
        self.pass_score = settings.scoring.pass_score
        self.segment_completion_score = settings.scoring.segment_completion_score

    # Validation and content lookup

    @staticmethod
    def _require_text(value: Optional[str], what: str) -> str:
        if value is None or not value.strip():
            raise InvalidInputError(f"{what} must not be empty")
        return value

    @staticmethod
    def _require_index(value: int, what: str) -> None:
        if value < 0:
            raise InvalidInputError(f"{what} must not be negative, got {value}")

    def _load_deck(self, deck_id: str) -> VocabularyDeck:
        deck = self.content_repository.load_deck(deck_id)
        if deck is None:
            raise NotFoundError(f"Deck {deck_id} not found")
        return deck

    def _resolve_item(self, target: DeckTarget) -> Tuple[VocabularyDeck, VocabularyItem]:
        self._require_index(target.section_index, "Section index")
        self._require_index(target.item_index, "Item index")
        deck = self._load_deck(target.deck_id)
        if deck.get_section(target.section_index) is None:
            raise NotFoundError(f"Section {target.section_index} not found in deck {target.deck_id}")
        item = deck.get_item(target.section_index, target.item_index)
        if item is None:
            raise NotFoundError(
                f"Item {target.item_index} not found in section {target.section_index} of deck {target.deck_id}"
            )
        return deck, item

    def _resolve_segment_text(self, target: SegmentTarget) -> str:
        self._require_index(target.segment_index, "Segment index")
        segment = self.content_repository.load_segment(target.video_id, target.segment_index)
        if segment is None:
            raise NotFoundError(f"Segment {target.segment_index} of video {target.video_id} not found")
        return segment.text

    def _resolve_reference(self, target: Target) -> Tuple[str, Optional[VocabularyDeck]]:
        """Reference text for a target; deck items are practiced on their word."""
        if isinstance(target, DeckTarget):
            deck, item = self._resolve_item(target)
            return item.word, deck
        if isinstance(target, SegmentTarget):
            return self._resolve_segment_text(target), None
        raise InvalidInputError(f"Unsupported practice target: {target!r}")

    # Progress updates

    @contextmanager
    def _locked(self, user_id: str, deck_id: str) -> Iterator[None]:
        """Hold the (user, deck) lock; the entry is dropped once nobody needs it."""
        key = (user_id, deck_id)
        with self._registry_lock:
            entry = self._progress_locks.get(key)
            if entry is None:
                entry = self._progress_locks[key] = _ProgressLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._progress_locks[key]

    def _apply(self, user_id: str, deck_id: str, change: ProgressChange,
               create: bool = True) -> Optional[DeckProgress]:
        """Run one read-update-write cycle on a deck progress.

        Returns the saved progress, or None when there is nothing stored and
        ``create`` is False.
        """
        last_conflict = None
        with self._locked(user_id, deck_id):
            for attempt in range(1, self.max_update_retries + 1):
                with progress_update_duration.time():
                    current = self.progress_repository.load_deck_progress(user_id, deck_id)
                    if current is None:
                        if not create:
                            return None
                        current = DeckProgress(user_id=user_id, deck_id=deck_id)
                    try:
                        return self.progress_repository.save_deck_progress(change(current))
                    except ConcurrentUpdateConflict as e:
                        last_conflict = e
                        progress_conflicts.inc()
                        logger.warning(
                            f"Progress conflict for user {user_id} on deck {deck_id} "
                            f"(attempt {attempt} of {self.max_update_retries})"
                        )

        progress_update_failures.inc()
        logger.error(
            f"Giving up on progress update for user {user_id} on deck {deck_id} "
            f"after {self.max_update_retries} attempts"
        )
        raise ProgressUpdateFailed(user_id, deck_id, self.max_update_retries, last_conflict)

    def _record_item_result(self, user_id: str, deck: VocabularyDeck, target: DeckTarget,
                            is_correct: bool) -> Tuple[ItemProgress, ItemProgress]:
        """Apply one result to an item; returns (before, after)."""
        key = ItemKey(target.section_index, target.item_index)
        now = self.clock()
        previous: Optional[ItemProgress] = None

        def change(progress: DeckProgress) -> DeckProgress:
            nonlocal previous
            previous = progress.items.get(key) or ItemProgress(key.section_index, key.item_index)
            updated = self.mastery_tracker.record_attempt(previous, is_correct, now)
            updated = replace(
                updated,
                next_review_at=self.review_scheduler.compute_next_review(updated.mastery_level, is_correct, now),
            )
            study_streak, last_streak_date = update_study_streak(
                progress.study_streak, progress.last_streak_date, now
            )
            return recompute(
                replace(
                    progress,
                    items={**progress.items, key: updated},
                    study_streak=study_streak,
                    last_streak_date=last_streak_date,
                    last_studied_at=now,
                ),
                deck,
            )

        saved = self._apply(user_id, deck.deck_id, change)
        logger.info(
            f"User {user_id} item {key} in deck {deck.deck_id}: "
            f"correct={is_correct}, mastery={saved.items[key].mastery_level.name}"
        )
        return previous, saved.items[key]

    def _complete(self, user_id: str, practice_type: PracticeType, target: Target, user_input: str,
                  reference: str, evaluation: Evaluation, is_correct: bool,
                  deck: Optional[VocabularyDeck], base_points: int = 0,
                  streak_bonus: bool = False) -> PracticeResult:
        """Record the attempt and, for deck items, update progress."""
        attempt = Attempt(
            attempt_id=self.id_source(),
            user_id=user_id,
            practice_type=practice_type,
            target=target,
            user_input=user_input,
            reference=reference,
            score=evaluation.overall_score,
            is_correct=is_correct,
            evaluation=evaluation,
            created_at=self.clock(),
        )
        self.attempt_repository.add(attempt)
        attempts_scored.labels(practice_type=practice_type.value).inc()
        attempt_scores.labels(practice_type=practice_type.value).observe(evaluation.overall_score)
        logger.debug(f"{practice_type.value} attempt {attempt.attempt_id} scored {attempt.score:.1f}")

        if deck is None:
            return PracticeResult(attempt=attempt, evaluation=evaluation, points_earned=base_points)

        previous, updated = self._record_item_result(user_id, deck, target, is_correct)
        points = base_points
        if streak_bonus:
            points += self.fill_in_scorer.streak_bonus(previous.streak_count)
        return PracticeResult(
            attempt=attempt,
            evaluation=evaluation,
            item_progress=updated,
            next_review_at=updated.next_review_at,
            points_earned=points,
        )

    # Submissions

    def submit_dictation(self, submission: DictationSubmission) -> PracticeResult:
        """Score a typed transcription of a deck item or video segment."""
        self._require_text(submission.user_answer, "Dictation answer")
        reference, deck = self._resolve_reference(submission.target)
        evaluation = self.dictation_scorer.evaluate(submission.user_answer, reference)
        return self._complete(
            submission.user_id, PracticeType.DICTATION, submission.target, submission.user_answer,
            reference, evaluation, evaluation.overall_score >= self.pass_score, deck,
        )

    def submit_shadowing(self, submission: ShadowingSubmission) -> PracticeResult:
        """Score a (simulated) spoken repetition of a deck item or video segment."""
        self._require_text(submission.audio_reference, "Audio reference")
        reference, deck = self._resolve_reference(submission.target)
        evaluation = self.shadowing_scorer.evaluate(submission.audio_reference, reference)
        return self._complete(
            submission.user_id, PracticeType.SHADOWING, submission.target, submission.audio_reference,
            reference, evaluation, evaluation.overall_score >= self.pass_score, deck,
        )

    def submit_fill_in(self, submission: FillInSubmission) -> PracticeResult:
        """Score a free-text answer. Points include a bonus for long streaks."""
        self._require_text(submission.user_answer, "Answer")
        if not isinstance(submission.target, DeckTarget):
            raise InvalidInputError("Fill-in questions need a deck item")
        try:
            question_type = FillInQuestionType(submission.question_type)
        except ValueError as e:
            raise InvalidInputError(f"Unknown question type: {submission.question_type!r}") from e

        deck, item = self._resolve_item(submission.target)
        evaluation = self.fill_in_scorer.evaluate(item, question_type, submission.user_answer)
        return self._complete(
            submission.user_id, PracticeType.FILL_IN, submission.target, submission.user_answer,
            evaluation.correct_answer, evaluation, evaluation.is_correct, deck,
            base_points=evaluation.base_points, streak_bonus=True,
        )

    def submit_flashcard(self, submission: FlashcardSubmission) -> PracticeResult:
        """Record a flashcard self-assessment against a deck item."""
        if not isinstance(submission.target, DeckTarget):
            raise InvalidInputError("Flashcards need a deck item")
        try:
            assessment = FlashcardAssessment(submission.assessment)
        except ValueError as e:
            raise InvalidInputError(f"Unknown flashcard assessment: {submission.assessment!r}") from e

        deck, item = self._resolve_item(submission.target)
        evaluation = evaluate_flashcard(assessment)
        return self._complete(
            submission.user_id, PracticeType.FLASHCARD, submission.target, assessment.value,
            item.word, evaluation, evaluation.is_correct, deck, base_points=evaluation.base_points,
        )

    # Practice material

    def generate_fill_in_questions(self, deck_id: str, section_index: Optional[int] = None,
                                   count: int = DEFAULT_QUESTION_COUNT, shuffle: bool = True) -> List[FillInQuestion]:
        """Fill-in questions from one section, or the whole deck when ``section_index`` is None."""
        if count < 0:
            raise InvalidInputError(f"Question count must not be negative, got {count}")
        if section_index is not None:
            self._require_index(section_index, "Section index")
        deck = self._load_deck(deck_id)
        return self.question_generator.fill_in_questions(deck, section_index, count, shuffle)

    def generate_flashcards(self, deck_id: str, section_index: Optional[int] = None,
                            count: int = DEFAULT_FLASHCARD_COUNT, shuffle: bool = True,
                            face: FlashcardFace = FlashcardFace.WORD) -> List[Flashcard]:
        """Flashcards from one section, or the whole deck when ``section_index`` is None."""
        if count < 0:
            raise InvalidInputError(f"Card count must not be negative, got {count}")
        if section_index is not None:
            self._require_index(section_index, "Section index")
        try:
            face = FlashcardFace(face)
        except ValueError as e:
            raise InvalidInputError(f"Unknown flashcard face: {face!r}") from e
        deck = self._load_deck(deck_id)
        return self.question_generator.flashcards(deck, section_index, count, shuffle, face)

    # Progress queries

    def get_deck_progress(self, user_id: str, deck_id: str) -> Optional[DeckProgress]:
        """A user's progress on a deck, or None if never studied."""
        return self.progress_repository.load_deck_progress(user_id, deck_id)

    def get_item_progress(self, user_id: str, deck_id: str, section_index: int,
                          item_index: int) -> Optional[ItemProgress]:
        """Progress on one item, or None if it was never practiced."""
        self._require_index(section_index, "Section index")
        self._require_index(item_index, "Item index")
        progress = self.get_deck_progress(user_id, deck_id)
        return progress.get_item(section_index, item_index) if progress else None

    def get_next_review_items(self, user_id: str, deck_id: str, limit: int = 10) -> List[ItemProgress]:
        """Items of a deck that are due now, earliest due first."""
        if limit < 0:
            raise InvalidInputError(f"Limit must not be negative, got {limit}")
        progress = self.get_deck_progress(user_id, deck_id)
        if progress is None:
            return []
        keys = self.review_scheduler.get_next_reviews(progress, self.clock(), limit)
        return [progress.items[key] for key in keys]

    def get_review_count(self, user_id: str, deck_id: str) -> int:
        """Number of items in the deck due for review now."""
        progress = self.get_deck_progress(user_id, deck_id)
        if progress is None:
            return 0
        return len(self.review_scheduler.get_items_needing_review(progress, self.clock()))

    def get_all_items_needing_review(self, user_id: str, limit: Optional[int] = None) -> List[ReviewItem]:
        """Due items across every deck of a user, earliest due first."""
        if limit is not None and limit < 0:
            raise InvalidInputError(f"Limit must not be negative, got {limit}")
        now = self.clock()
        due = [
            ReviewItem(deck_id=progress.deck_id, progress=progress.items[key])
            for progress in self.progress_repository.list_user_progress(user_id)
            for key in self.review_scheduler.get_items_needing_review(progress, now)
        ]
        due.sort(key=lambda review: (review.due_at, review.deck_id, review.progress.key))
        return due if limit is None else due[:limit]

    # Resets

    def reset_deck_progress(self, user_id: str, deck_id: str) -> bool:
        """Forget everything a user did on a deck. Returns False if nothing was stored."""
        with self._locked(user_id, deck_id):
            deleted = self.progress_repository.delete_deck_progress(user_id, deck_id)
        if deleted:
            logger.info(f"Reset progress for user {user_id} on deck {deck_id}")
        return deleted

    def reset_section_progress(self, user_id: str, deck_id: str, section_index: int) -> Optional[DeckProgress]:
        """Drop one section's item progress and rebuild the aggregates."""
        self._require_index(section_index, "Section index")
        deck = self.content_repository.load_deck(deck_id)

        def change(progress: DeckProgress) -> DeckProgress:
            items = {key: item for key, item in progress.items.items() if key.section_index != section_index}
            return recompute(replace(progress, items=items), deck)

        saved = self._apply(user_id, deck_id, change, create=False)
        if saved is not None:
            logger.info(f"Reset section {section_index} for user {user_id} on deck {deck_id}")
        return saved

    # Statistics

    def get_user_vocabulary_stats(self, user_id: str) -> VocabularyStats:
        """Totals across every deck the user has studied."""
        all_progress = self.progress_repository.list_user_progress(user_id)
        if not all_progress:
            return VocabularyStats()

        now = self.clock()
        correct = sum(p.overall.total_correct_attempts for p in all_progress)
        attempts = sum(p.overall.total_attempts for p in all_progress)
        # list_user_progress returns the most recently studied deck first
        latest = all_progress[0]
        return VocabularyStats(
            decks_studied=len(all_progress),
            total_items_practiced=sum(p.overall.total_items_practiced for p in all_progress),
            items_mastered=sum(p.overall.items_mastered for p in all_progress),
            items_fully_mastered=sum(p.overall.items_fully_mastered for p in all_progress),
            overall_accuracy=correct / attempts * 100 if attempts else 0.0,
            current_streak=current_study_streak(latest.study_streak, latest.last_streak_date, now),
            longest_streak=max(p.study_streak for p in all_progress),
            items_due=sum(len(self.review_scheduler.get_items_needing_review(p, now)) for p in all_progress),
        )

    def get_segment_progress(self, user_id: str, video_id: str,
                             practice_type: Optional[PracticeType] = None) -> SegmentProgress:
        """How far a user got through a video, optionally for one practice type."""
        total_segments = self.content_repository.count_segments(video_id)
        if total_segments == 0:
            raise NotFoundError(f"Video {video_id} not found")

        attempts = [
            attempt for attempt in self.attempt_repository.list_video_attempts(user_id, video_id)
            if practice_type is None or attempt.practice_type is practice_type
        ]
        if not attempts:
            return SegmentProgress(video_id=video_id, total_segments=total_segments)

        best: Dict[int, float] = {}
        for attempt in attempts:
            index = attempt.target.segment_index
            best[index] = max(best.get(index, 0.0), attempt.score)
        scores = [attempt.score for attempt in attempts]
        return SegmentProgress(
            video_id=video_id,
            total_segments=total_segments,
            attempted_segments=len(best),
            completed_segments=sum(1 for score in best.values() if score >= self.segment_completion_score),
            average_score=sum(scores) / len(scores),
            best_score=max(scores),
            total_attempts=len(attempts),
        )

    def get_best_attempt(self, user_id: str, video_id: str, segment_index: int) -> Optional[Attempt]:
        """Best attempt on a segment, or None."""
        self._require_index(segment_index, "Segment index")
        return self.attempt_repository.best_attempt(user_id, video_id, segment_index)

    def get_recent_attempts(self, user_id: str, limit: int = 20) -> List[Attempt]:
        """A user's latest attempts of any type, newest first."""
        return self.attempt_repository.list_user_attempts(user_id, limit)

    def get_practice_stats(self, user_id: str, practice_type: PracticeType,
                           recent_limit: int = 10) -> PracticeStats:
        """Attempt totals, scores and latest attempts of one practice type."""
        try:
            practice_type = PracticeType(practice_type)
        except ValueError as e:
            raise InvalidInputError(f"Unknown practice type: {practice_type!r}") from e
        total, videos, average, best = self.attempt_repository.summarize_user_attempts(user_id, practice_type)
        recent = self.attempt_repository.list_user_attempts(user_id, recent_limit, practice_type)
        return PracticeStats(
            practice_type=practice_type,
            total_attempts=total,
            videos_attempted=videos,
            average_score=average,
            best_score=best,
            recent_attempts=tuple(recent),
        )

    def get_recently_studied_decks(self, user_id: str, limit: int = 10) -> List[RecentDeck]:
        """Most recently studied decks first; decks whose content is gone are skipped."""
        if limit < 0:
            raise InvalidInputError(f"Limit must not be negative, got {limit}")
        recent = []
        for progress in self.progress_repository.list_user_progress(user_id):
            if len(recent) == limit:
                break
            deck = self.content_repository.load_deck(progress.deck_id)
            if deck is None:
                continue
            recent.append(RecentDeck(
                deck_id=deck.deck_id,
                title=deck.title,
                last_studied_at=progress.last_studied_at,
                completion_percentage=progress.get_completion_percentage(deck.total_items),
                items_mastered=progress.overall.items_mastered,
                total_items=deck.total_items,
            ))
        return recent

    def get_deck_study_stats(self, deck_id: str) -> DeckStudyStats:
        """How many users studied a deck and how much of it they mastered on average."""
        deck = self._load_deck(deck_id)
        stats = self.progress_repository.list_deck_overall_stats(deck_id)
        return DeckStudyStats(
            deck_id=deck.deck_id,
            title=deck.title,
            users_studied=len(stats),
            average_items_mastered=sum(s.items_mastered for s in stats) / len(stats) if stats else 0.0,
            total_vocabulary=deck.total_items,
        )
