"""Configuration settings for the practice engine."""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(BASE_DIR / env_file)


# Mastery promotion thresholds (consecutive correct answers)
LEARNING_STREAK = 1
FAMILIAR_STREAK = 3
MASTERED_STREAK = 6

# Review intervals in minutes, keyed by mastery level name
REVIEW_INTERVALS = {
    "NEW": 1,
    "LEARNING": 10,
    "FAMILIAR": 60 * 24,
    "MASTERED": 60 * 24 * 7,
}

DEMOTION_POLICIES = ("none", "one_level")


def _review_intervals_from_env() -> dict[str, int]:
    """Read the review interval table, allowing a JSON override."""
    raw = os.getenv("REVIEW_INTERVALS")
    if not raw:
        return dict(REVIEW_INTERVALS)
    intervals = dict(REVIEW_INTERVALS)
    intervals.update({key.upper(): int(value) for key, value in json.loads(raw).items()})
    return intervals


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///kotoba.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class MasterySettings:
    """Mastery state machine settings."""
    learning_streak: int = int(os.getenv("LEARNING_STREAK", str(LEARNING_STREAK)))
    familiar_streak: int = int(os.getenv("FAMILIAR_STREAK", str(FAMILIAR_STREAK)))
    mastered_streak: int = int(os.getenv("MASTERED_STREAK", str(MASTERED_STREAK)))
    demotion_policy: str = os.getenv("DEMOTION_POLICY", "one_level").lower()


@dataclass
class ReviewSettings:
    """Spaced repetition settings."""
    interval_minutes: dict[str, int] = field(default_factory=_review_intervals_from_env)


@dataclass
class ScoringSettings:
    """Scoring thresholds and point awards."""
    fill_in_threshold: float = float(os.getenv("FILL_IN_THRESHOLD", "0.85"))
    pass_score: float = float(os.getenv("PASS_SCORE", "85.0"))
    segment_completion_score: float = float(os.getenv("SEGMENT_COMPLETION_SCORE", "70.0"))
    streak_bonus_after: int = int(os.getenv("STREAK_BONUS_AFTER", "3"))
    streak_bonus_points: int = int(os.getenv("STREAK_BONUS_POINTS", "5"))


@dataclass
class ConcurrencySettings:
    """Progress update concurrency settings."""
    max_update_retries: int = int(os.getenv("MAX_UPDATE_RETRIES", "3"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_mastery_settings() -> MasterySettings:
    """Get mastery settings."""
    return MasterySettings()


def get_review_settings() -> ReviewSettings:
    """Get review settings."""
    return ReviewSettings()


def get_scoring_settings() -> ScoringSettings:
    """Get scoring settings."""
    return ScoringSettings()


def get_concurrency_settings() -> ConcurrencySettings:
    """Get concurrency settings."""
    return ConcurrencySettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    mastery: MasterySettings = field(default_factory=get_mastery_settings)
    review: ReviewSettings = field(default_factory=get_review_settings)
    scoring: ScoringSettings = field(default_factory=get_scoring_settings)
    concurrency: ConcurrencySettings = field(default_factory=get_concurrency_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        mastery = self.mastery
        if not 0 < mastery.learning_streak < mastery.familiar_streak < mastery.mastered_streak:
            raise ValueError("Mastery streak thresholds must be positive and strictly increasing")

        if mastery.demotion_policy not in DEMOTION_POLICIES:
            raise ValueError(f"DEMOTION_POLICY must be one of {', '.join(DEMOTION_POLICIES)}")

        intervals = self.review.interval_minutes
        missing = set(REVIEW_INTERVALS) - set(intervals)
        if missing:
            raise ValueError(f"Review intervals missing for: {', '.join(sorted(missing))}")
        ordered = [intervals[level] for level in REVIEW_INTERVALS]
        if ordered[0] <= 0 or any(a >= b for a, b in zip(ordered, ordered[1:])):
            raise ValueError("Review intervals must be positive and strictly increasing with mastery")

        if not 0 < self.scoring.fill_in_threshold <= 1:
            raise ValueError("FILL_IN_THRESHOLD must be in (0, 1]")

        if not 0 <= self.scoring.pass_score <= 100:
            raise ValueError("PASS_SCORE must be between 0 and 100")

        if self.concurrency.max_update_retries < 1:
            raise ValueError("MAX_UPDATE_RETRIES must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
