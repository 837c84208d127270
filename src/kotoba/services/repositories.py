"""SQLAlchemy storage adapter for deck content, progress and attempts."""
import logging
from collections import defaultdict
from dataclasses import fields, is_dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload, sessionmaker

from kotoba.clock import as_utc
from kotoba.exceptions import ConcurrentUpdateConflict
from kotoba.models.base import SessionLocal
from kotoba.models.models import (
    Deck,
    DeckItem,
    DeckProgressRecord,
    ItemProgressRecord,
    PracticeAttempt,
    VideoSegmentRecord,
)
from kotoba.models.practice_models import (
    Attempt,
    DeckTarget,
    DetailedDictationFeedback,
    DetailedShadowingFeedback,
    DictationEvaluation,
    DictationMistake,
    Evaluation,
    FillInEvaluation,
    FlashcardAssessment,
    FlashcardEvaluation,
    MistakeType,
    PhonemeScore,
    PracticeType,
    SegmentTarget,
    ShadowingEvaluation,
)
from kotoba.models.progress_models import (
    DeckProgress,
    ItemKey,
    ItemProgress,
    MasteryLevel,
    OverallStats,
    SectionProgressSummary,
    VideoSegment,
    VocabularyDeck,
    VocabularyItem,
    VocabularySection,
)

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-compatible values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    return value


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return as_utc(datetime.fromisoformat(value)) if value else None


def _dictation_feedback_from_json(data: Dict[str, Any]) -> DetailedDictationFeedback:
    return DetailedDictationFeedback(
        strengths=tuple(data["strengths"]),
        improvements=tuple(data["improvements"]),
        specific_tips=tuple(data["specific_tips"]),
        correct_segments=tuple(data["correct_segments"]),
        incorrect_segments=tuple(data["incorrect_segments"]),
        similarity_percentage=data["similarity_percentage"],
    )


def evaluation_from_json(practice_type: PracticeType, data: Dict[str, Any]) -> Evaluation:
    """Rebuild a stored evaluation."""
    if practice_type is PracticeType.DICTATION:
        detailed = data.get("detailed_feedback")
        return DictationEvaluation(
            accuracy_score=data["accuracy_score"],
            character_accuracy=data["character_accuracy"],
            word_accuracy=data["word_accuracy"],
            overall_score=data["overall_score"],
            feedback_text=data["feedback_text"],
            mistakes=tuple(
                DictationMistake(m["position"], m["expected"], m["actual"], MistakeType(m["type"]))
                for m in data.get("mistakes", [])
            ),
            detailed_feedback=_dictation_feedback_from_json(detailed) if detailed else None,
        )
    if practice_type is PracticeType.SHADOWING:
        detailed = data.get("detailed_feedback")
        if detailed:
            detailed = DetailedShadowingFeedback(
                **{
                    **detailed,
                    "strengths": tuple(detailed["strengths"]),
                    "improvements": tuple(detailed["improvements"]),
                    "specific_tips": tuple(detailed["specific_tips"]),
                    "phoneme_analysis": tuple(PhonemeScore(**p) for p in detailed["phoneme_analysis"]),
                }
            )
        return ShadowingEvaluation(
            pronunciation_score=data["pronunciation_score"],
            speed_score=data["speed_score"],
            intonation_score=data["intonation_score"],
            overall_score=data["overall_score"],
            feedback_text=data["feedback_text"],
            detailed_feedback=detailed,
        )
    if practice_type is PracticeType.FILL_IN:
        return FillInEvaluation(**data)
    return FlashcardEvaluation(
        assessment=FlashcardAssessment(data["assessment"]),
        is_correct=data["is_correct"],
        overall_score=data["overall_score"],
        base_points=data["base_points"],
    )


class ContentRepository:
    """Read-mostly access to decks and video segments."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def add_deck(self, deck: VocabularyDeck) -> None:
        """Store a deck with its sections and items."""
        with self.session_factory() as session:
            record = Deck(id=deck.deck_id, title=deck.title)
            for section in deck.sections:
                for item_index, item in enumerate(section.items):
                    record.items.append(
                        DeckItem(
                            section_index=section.index,
                            item_index=item_index,
                            word=item.word,
                            reading=item.reading,
                            meaning=item.meaning,
                            example=item.example,
                        )
                    )
            session.add(record)
            session.commit()
        logger.info(f"Stored deck {deck.deck_id} ({deck.total_items} items)")

    def load_deck(self, deck_id: str) -> Optional[VocabularyDeck]:
        """Load a deck in section and item order, or None."""
        with self.session_factory() as session:
            record = session.get(Deck, deck_id)
            if record is None:
                return None
            rows = session.execute(
                select(DeckItem)
                .where(DeckItem.deck_id == deck_id)
                .order_by(DeckItem.section_index, DeckItem.item_index)
            ).scalars().all()

            sections: Dict[int, List[VocabularyItem]] = defaultdict(list)
            for row in rows:
                sections[row.section_index].append(
                    VocabularyItem(word=row.word, reading=row.reading, meaning=row.meaning, example=row.example)
                )
            return VocabularyDeck(
                deck_id=record.id,
                title=record.title,
                sections=tuple(
                    VocabularySection(index=index, items=tuple(items))
                    for index, items in sorted(sections.items())
                ),
            )

    def add_segment(self, segment: VideoSegment) -> None:
        """Store one transcript segment of a video."""
        with self.session_factory() as session:
            session.add(
                VideoSegmentRecord(
                    video_id=segment.video_id,
                    segment_index=segment.segment_index,
                    text=segment.text,
                )
            )
            session.commit()

    def load_segment(self, video_id: str, segment_index: int) -> Optional[VideoSegment]:
        """Load a transcript segment, or None."""
        with self.session_factory() as session:
            row = session.execute(
                select(VideoSegmentRecord).where(
                    VideoSegmentRecord.video_id == video_id,
                    VideoSegmentRecord.segment_index == segment_index,
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            return VideoSegment(video_id=row.video_id, segment_index=row.segment_index, text=row.text)

    def count_segments(self, video_id: str) -> int:
        """Number of stored segments for a video."""
        with self.session_factory() as session:
            return session.execute(
                select(func.count()).select_from(VideoSegmentRecord).where(VideoSegmentRecord.video_id == video_id)
            ).scalar_one()


class ProgressRepository:
    """Deck progress storage with an optimistic version check on every write."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    @staticmethod
    def _item_from_record(row: ItemProgressRecord) -> ItemProgress:
        return ItemProgress(
            section_index=row.section_index,
            item_index=row.item_index,
            correct_attempts=row.correct_attempts,
            incorrect_attempts=row.incorrect_attempts,
            total_attempts=row.total_attempts,
            streak_count=row.streak_count,
            best_streak=row.best_streak,
            mastery_level=MasteryLevel[row.mastery_level],
            last_attempt_at=as_utc(row.last_attempt_at),
            last_correct_at=as_utc(row.last_correct_at),
            next_review_at=as_utc(row.next_review_at),
        )

    @staticmethod
    def _item_to_record(item: ItemProgress, progress_id: int) -> ItemProgressRecord:
        return ItemProgressRecord(
            progress_id=progress_id,
            section_index=item.section_index,
            item_index=item.item_index,
            correct_attempts=item.correct_attempts,
            incorrect_attempts=item.incorrect_attempts,
            total_attempts=item.total_attempts,
            streak_count=item.streak_count,
            best_streak=item.best_streak,
            mastery_level=item.mastery_level.name,
            last_attempt_at=item.last_attempt_at,
            last_correct_at=item.last_correct_at,
            next_review_at=item.next_review_at,
        )

    def _from_record(self, record: DeckProgressRecord) -> DeckProgress:
        items = {ItemKey(row.section_index, row.item_index): self._item_from_record(row) for row in record.items}
        sections = {
            int(index): SectionProgressSummary(
                section_index=summary["section_index"],
                total_items=summary["total_items"],
                practiced_items=summary["practiced_items"],
                mastered_items=summary["mastered_items"],
                average_accuracy=summary["average_accuracy"],
                last_studied_at=_parse_datetime(summary["last_studied_at"]),
            )
            for index, summary in (record.section_summaries or {}).items()
        }
        return DeckProgress(
            user_id=record.user_id,
            deck_id=record.deck_id,
            items=items,
            sections=sections,
            overall=OverallStats(**(record.overall_stats or {})),
            study_streak=record.study_streak or 0,
            last_streak_date=as_utc(record.last_streak_date),
            last_studied_at=as_utc(record.last_studied_at),
            version=record.version,
        )

    def load_deck_progress(self, user_id: str, deck_id: str) -> Optional[DeckProgress]:
        """Load a user's progress on a deck, or None if never studied."""
        with self.session_factory() as session:
            record = session.execute(
                select(DeckProgressRecord)
                .options(selectinload(DeckProgressRecord.items))
                .where(DeckProgressRecord.user_id == user_id, DeckProgressRecord.deck_id == deck_id)
            ).scalar_one_or_none()
            return self._from_record(record) if record else None

    def list_user_progress(self, user_id: str) -> List[DeckProgress]:
        """All deck progress of a user, most recently studied first."""
        with self.session_factory() as session:
            records = session.execute(
                select(DeckProgressRecord)
                .options(selectinload(DeckProgressRecord.items))
                .where(DeckProgressRecord.user_id == user_id)
                .order_by(DeckProgressRecord.last_studied_at.desc())
            ).scalars().all()
            return [self._from_record(record) for record in records]

    def list_deck_overall_stats(self, deck_id: str) -> List[OverallStats]:
        """Overall stats of every user who studied a deck."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DeckProgressRecord.overall_stats).where(DeckProgressRecord.deck_id == deck_id)
            ).scalars()
            return [OverallStats(**(stats or {})) for stats in rows]

    def save_deck_progress(self, progress: DeckProgress) -> DeckProgress:
        """Write ``progress`` if nobody else wrote since it was loaded.

        ``progress.version`` must be the version it was loaded at (0 for a
        new aggregate). The header and every item row are replaced in one
        transaction. Raises ConcurrentUpdateConflict when the stored version
        moved on.
        """
        new_version = progress.version + 1
        values = dict(
            version=new_version,
            study_streak=progress.study_streak,
            last_streak_date=progress.last_streak_date,
            last_studied_at=progress.last_studied_at,
            section_summaries=to_jsonable(progress.sections),
            overall_stats=to_jsonable(progress.overall),
        )
        conflict = ConcurrentUpdateConflict(progress.user_id, progress.deck_id, progress.version)

        with self.session_factory() as session:
            try:
                if progress.version == 0:
                    record = DeckProgressRecord(user_id=progress.user_id, deck_id=progress.deck_id, **values)
                    session.add(record)
                    session.flush()
                    progress_id = record.id
                else:
                    result = session.execute(
                        update(DeckProgressRecord)
                        .where(
                            DeckProgressRecord.user_id == progress.user_id,
                            DeckProgressRecord.deck_id == progress.deck_id,
                            DeckProgressRecord.version == progress.version,
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise conflict
                    progress_id = session.execute(
                        select(DeckProgressRecord.id).where(
                            DeckProgressRecord.user_id == progress.user_id,
                            DeckProgressRecord.deck_id == progress.deck_id,
                        )
                    ).scalar_one()
                    session.execute(delete(ItemProgressRecord).where(ItemProgressRecord.progress_id == progress_id))

                session.add_all(self._item_to_record(item, progress_id) for item in progress.items.values())
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise conflict from e

        logger.debug(
            f"Saved progress for user {progress.user_id} on deck {progress.deck_id} at version {new_version}"
        )
        return replace(progress, version=new_version)

    def delete_deck_progress(self, user_id: str, deck_id: str) -> bool:
        """Delete a user's deck progress and its item rows. Returns False if there was none."""
        with self.session_factory() as session:
            record = session.execute(
                select(DeckProgressRecord).where(
                    DeckProgressRecord.user_id == user_id,
                    DeckProgressRecord.deck_id == deck_id,
                )
            ).scalar_one_or_none()
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True


class AttemptRepository:
    """Append-only attempt history."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    @staticmethod
    def _from_record(row: PracticeAttempt) -> Attempt:
        practice_type = PracticeType(row.practice_type)
        if row.deck_id is not None:
            target = DeckTarget(row.deck_id, row.section_index, row.item_index)
        else:
            target = SegmentTarget(row.video_id, row.segment_index)
        return Attempt(
            attempt_id=row.id,
            user_id=row.user_id,
            practice_type=practice_type,
            target=target,
            user_input=row.user_input,
            reference=row.reference,
            score=row.score,
            is_correct=row.is_correct,
            evaluation=evaluation_from_json(practice_type, row.evaluation),
            created_at=as_utc(row.created_at),
        )

    def add(self, attempt: Attempt) -> None:
        """Store an attempt."""
        target = attempt.target
        record = PracticeAttempt(
            id=attempt.attempt_id,
            user_id=attempt.user_id,
            practice_type=attempt.practice_type.value,
            user_input=attempt.user_input,
            reference=attempt.reference,
            score=attempt.score,
            is_correct=attempt.is_correct,
            evaluation=to_jsonable(attempt.evaluation),
            created_at=attempt.created_at,
        )
        if isinstance(target, DeckTarget):
            record.deck_id = target.deck_id
            record.section_index = target.section_index
            record.item_index = target.item_index
        else:
            record.video_id = target.video_id
            record.segment_index = target.segment_index

        with self.session_factory() as session:
            session.add(record)
            session.commit()

    def get(self, attempt_id: str) -> Optional[Attempt]:
        """Load an attempt by id, or None."""
        with self.session_factory() as session:
            row = session.get(PracticeAttempt, attempt_id)
            return self._from_record(row) if row else None

    def list_user_attempts(self, user_id: str, limit: Optional[int] = None,
                           practice_type: Optional[PracticeType] = None) -> List[Attempt]:
        """Most recent attempts first, optionally of one practice type."""
        query = (
            select(PracticeAttempt)
            .where(PracticeAttempt.user_id == user_id)
            .order_by(PracticeAttempt.created_at.desc())
        )
        if practice_type is not None:
            query = query.where(PracticeAttempt.practice_type == practice_type.value)
        if limit is not None:
            query = query.limit(limit)
        with self.session_factory() as session:
            return [self._from_record(row) for row in session.execute(query).scalars()]

    def list_video_attempts(self, user_id: str, video_id: str) -> List[Attempt]:
        """A user's attempts on any segment of a video, oldest first."""
        with self.session_factory() as session:
            rows = session.execute(
                select(PracticeAttempt)
                .where(PracticeAttempt.user_id == user_id, PracticeAttempt.video_id == video_id)
                .order_by(PracticeAttempt.created_at)
            ).scalars()
            return [self._from_record(row) for row in rows]

    def list_segment_attempts(self, user_id: str, video_id: str, segment_index: int) -> List[Attempt]:
        """A user's attempts on one segment, oldest first."""
        return [a for a in self.list_video_attempts(user_id, video_id) if a.target.segment_index == segment_index]

    def best_attempt(self, user_id: str, video_id: str, segment_index: int) -> Optional[Attempt]:
        """Highest-scoring attempt on a segment, or None."""
        with self.session_factory() as session:
            row = session.execute(
                select(PracticeAttempt)
                .where(
                    PracticeAttempt.user_id == user_id,
                    PracticeAttempt.video_id == video_id,
                    PracticeAttempt.segment_index == segment_index,
                )
                .order_by(PracticeAttempt.score.desc(), PracticeAttempt.created_at)
                .limit(1)
            ).scalar_one_or_none()
            return self._from_record(row) if row else None

    def summarize_user_attempts(self, user_id: str, practice_type: PracticeType) -> Tuple[int, int, float, float]:
        """(attempts, distinct videos, average score, best score) for one practice type."""
        with self.session_factory() as session:
            total, videos, average, best = session.execute(
                select(
                    func.count(PracticeAttempt.id),
                    func.count(PracticeAttempt.video_id.distinct()),
                    func.avg(PracticeAttempt.score),
                    func.max(PracticeAttempt.score),
                ).where(
                    PracticeAttempt.user_id == user_id,
                    PracticeAttempt.practice_type == practice_type.value,
                )
            ).one()
            return total, videos, average or 0.0, best or 0.0
