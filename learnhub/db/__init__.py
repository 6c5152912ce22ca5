"""
Persistence: repository protocols with in-memory and SQLAlchemy implementations.
"""
from learnhub.db.database import Database
from learnhub.db.repositories import (
    CurriculumRepository,
    FeedbackRepository,
    InMemoryCurriculumRepository,
    InMemoryFeedbackRepository,
    InMemoryMistakeRepository,
    InMemoryPerformanceRepository,
    InMemoryReviewCardRepository,
    MistakeRepository,
    PerformanceRepository,
    ReviewCardRepository,
)
from learnhub.db.sql_repositories import (
    SqlCurriculumRepository,
    SqlFeedbackRepository,
    SqlMistakeRepository,
    SqlPerformanceRepository,
    SqlReviewCardRepository,
)

__all__ = [
    "Database",
    "CurriculumRepository",
    "FeedbackRepository",
    "MistakeRepository",
    "PerformanceRepository",
    "ReviewCardRepository",
    "InMemoryCurriculumRepository",
    "InMemoryFeedbackRepository",
    "InMemoryMistakeRepository",
    "InMemoryPerformanceRepository",
    "InMemoryReviewCardRepository",
    "SqlCurriculumRepository",
    "SqlFeedbackRepository",
    "SqlMistakeRepository",
    "SqlPerformanceRepository",
    "SqlReviewCardRepository",
]
