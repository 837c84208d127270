"""Monitoring configuration for the practice engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Scoring metrics
attempts_scored = Counter(
    "kotoba_attempts_scored_total",
    "Total number of practice attempts scored",
    ["practice_type"],
)

attempt_scores = Histogram(
    "kotoba_attempt_score",
    "Distribution of overall attempt scores (0-100)",
    ["practice_type"],
    buckets=[20, 40, 60, 70, 80, 90, 100],
)

# Mastery metrics
mastery_promotions = Counter(
    "kotoba_mastery_promotions_total",
    "Total number of mastery level promotions",
    ["level"],
)

mastery_demotions = Counter(
    "kotoba_mastery_demotions_total",
    "Total number of mastery level demotions",
    ["level"],
)

# Progress storage metrics
progress_conflicts = Counter(
    "kotoba_progress_conflicts_total",
    "Total number of optimistic write conflicts on deck progress",
)

progress_update_failures = Counter(
    "kotoba_progress_update_failures_total",
    "Total number of progress updates abandoned after exhausting retries",
)

progress_update_duration = Histogram(
    "kotoba_progress_update_duration_seconds",
    "Duration of read-update-write cycles on deck progress",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
