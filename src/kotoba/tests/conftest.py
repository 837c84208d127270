"""Test configuration."""
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable

import pytest
from dotenv import load_dotenv
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from kotoba.models.base import create_db_engine, create_session_factory, init_db
from kotoba.models.progress_models import (
    VideoSegment,
    VocabularyDeck,
    VocabularyItem,
    VocabularySection,
)
from kotoba.services.practice_service import PracticeService
from kotoba.services.repositories import AttemptRepository, ContentRepository, ProgressRepository
from kotoba.services.shadowing_scorer import FixedShadowingScorer

fake = Faker()

START_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at a fixed UTC time."""
    return FrozenClock()


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database file."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'kotoba-test.db'}")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def content_repository(session_factory) -> ContentRepository:
    return ContentRepository(session_factory)


@pytest.fixture
def progress_repository(session_factory) -> ProgressRepository:
    return ProgressRepository(session_factory)


@pytest.fixture
def attempt_repository(session_factory) -> AttemptRepository:
    return AttemptRepository(session_factory)


@pytest.fixture
def user_id() -> str:
    """A random user identifier."""
    return fake.uuid4()


def make_deck(sections: int = 2, items_per_section: int = 5) -> VocabularyDeck:
    """Build a deck of Faker words with a fixed first item."""
    built = []
    for section_index in range(sections):
        items = [
            VocabularyItem(
                word=fake.word(),
                reading=fake.word(),
                meaning=fake.sentence(nb_words=2),
                example=fake.sentence(),
            )
            for _ in range(items_per_section)
        ]
        built.append(VocabularySection(index=section_index, items=tuple(items)))

    first = VocabularySection(
        index=0,
        items=(VocabularyItem(word="おはようございます", reading="おはようございます", meaning="good morning"),)
        + built[0].items[1:],
    )
    return VocabularyDeck(deck_id=fake.uuid4(), title=fake.catch_phrase(), sections=(first, *built[1:]))


@pytest.fixture
def deck_factory(content_repository: ContentRepository) -> Callable[..., VocabularyDeck]:
    """Build and store decks."""
    def build(**kwargs) -> VocabularyDeck:
        deck = make_deck(**kwargs)
        content_repository.add_deck(deck)
        return deck
    return build


@pytest.fixture
def deck(deck_factory) -> VocabularyDeck:
    """A stored deck: two sections of five items; item (0, 0) is おはようございます."""
    return deck_factory()


@pytest.fixture
def video_id(content_repository: ContentRepository) -> str:
    """A stored video with three transcript segments."""
    video_id = fake.uuid4()
    for index, text in enumerate(["今日は天気がいいです", "散歩に行きます", "ありがとうございます"]):
        content_repository.add_segment(VideoSegment(video_id=video_id, segment_index=index, text=text))
    return video_id


@pytest.fixture
def service_factory(content_repository, progress_repository, attempt_repository, clock) -> Callable[..., PracticeService]:
    """Build practice services over the test repositories."""
    def build(**kwargs) -> PracticeService:
        options = dict(shadowing_scorer=FixedShadowingScorer(), clock=clock)
        options.update(kwargs)
        return PracticeService(content_repository, progress_repository, attempt_repository, **options)
    return build


@pytest.fixture
def service(service_factory) -> PracticeService:
    return service_factory()
