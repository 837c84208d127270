"""Database models for deck content, progress and attempts."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from kotoba.models.base import Base, TimestampMixin


class Deck(Base, TimestampMixin):
    """Vocabulary deck."""

    __tablename__ = "decks"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)

    # Relationships
    items = relationship(
        "DeckItem",
        back_populates="deck",
        cascade="all, delete-orphan",
    )


class DeckItem(Base, TimestampMixin):
    """Vocabulary item addressed by (section_index, item_index) inside a deck."""

    __tablename__ = "deck_items"
    __table_args__ = (UniqueConstraint("deck_id", "section_index", "item_index"),)

    id = Column(Integer, primary_key=True)
    deck_id = Column(String, ForeignKey("decks.id"), nullable=False, index=True)
    section_index = Column(Integer, nullable=False)
    item_index = Column(Integer, nullable=False)
    word = Column(String, nullable=False)
    reading = Column(String, nullable=False)
    meaning = Column(String, nullable=False)
    example = Column(String)

    # Relationships
    deck = relationship("Deck", back_populates="items")


class VideoSegmentRecord(Base, TimestampMixin):
    """Reference transcript of a video segment."""

    __tablename__ = "video_segments"
    __table_args__ = (UniqueConstraint("video_id", "segment_index"),)

    id = Column(Integer, primary_key=True)
    video_id = Column(String, nullable=False, index=True)
    segment_index = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)


class DeckProgressRecord(Base, TimestampMixin):
    """A user's progress on one deck. ``version`` guards concurrent writers."""

    __tablename__ = "deck_progress"
    __table_args__ = (UniqueConstraint("user_id", "deck_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    deck_id = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    study_streak = Column(Integer, default=0)
    last_streak_date = Column(DateTime(timezone=True))
    last_studied_at = Column(DateTime(timezone=True))
    section_summaries = Column(JSON, nullable=False, default=dict)
    overall_stats = Column(JSON, nullable=False, default=dict)

    # Relationships
    items = relationship(
        "ItemProgressRecord",
        back_populates="progress",
        cascade="all, delete-orphan",
    )


class ItemProgressRecord(Base):
    """Per-item statistics inside a deck progress record."""

    __tablename__ = "item_progress"
    __table_args__ = (UniqueConstraint("progress_id", "section_index", "item_index"),)

    id = Column(Integer, primary_key=True)
    progress_id = Column(Integer, ForeignKey("deck_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    section_index = Column(Integer, nullable=False)
    item_index = Column(Integer, nullable=False)
    correct_attempts = Column(Integer, default=0)
    incorrect_attempts = Column(Integer, default=0)
    total_attempts = Column(Integer, default=0)
    streak_count = Column(Integer, default=0)
    best_streak = Column(Integer, default=0)
    mastery_level = Column(String, nullable=False, default="NEW")
    last_attempt_at = Column(DateTime(timezone=True))
    last_correct_at = Column(DateTime(timezone=True))
    next_review_at = Column(DateTime(timezone=True))

    # Relationships
    progress = relationship("DeckProgressRecord", back_populates="items")


class PracticeAttempt(Base):
    """Immutable record of a scored submission."""

    __tablename__ = "practice_attempts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    practice_type = Column(String, nullable=False)
    deck_id = Column(String, index=True)
    section_index = Column(Integer)
    item_index = Column(Integer)
    video_id = Column(String, index=True)
    segment_index = Column(Integer)
    user_input = Column(Text, nullable=False)
    reference = Column(Text, nullable=False)
    score = Column(Float, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    evaluation = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
