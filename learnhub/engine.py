"""
Composition root.

Wires every component from Settings: SQL repositories when a Database is
given, in-memory ones otherwise.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from config import Settings, get_settings
from learnhub.adaptive.mistake_analyzer import MistakeTracker, MistakeVisualizer
from learnhub.adaptive.remediation_planner import RemediationPlanner
from learnhub.curriculum.optimizer import AutoOptimizationScheduler, CurriculumOptimizer
from learnhub.curriculum.service import CurriculumService
from learnhub.db.database import Database
from learnhub.db.sql_repositories import (
    SqlCurriculumRepository,
    SqlFeedbackRepository,
    SqlMistakeRepository,
    SqlPerformanceRepository,
    SqlReviewCardRepository,
)
from learnhub.integrations.content_generator import ContentGenerator, GenerativeClient
from learnhub.integrations.engagement import AchievementHook, EngagementDispatcher, StreakHook
from learnhub.session.orchestrator import SessionOrchestrator
from learnhub.study.spaced_repetition import SpacedRepetitionScheduler


@dataclass
class Engine:
    settings: Settings
    curriculum: CurriculumService
    mistakes: MistakeTracker
    visualizer: MistakeVisualizer
    scheduler: SpacedRepetitionScheduler
    planner: RemediationPlanner
    content: ContentGenerator
    optimizer: CurriculumOptimizer
    auto_optimizer: AutoOptimizationScheduler
    orchestrator: SessionOrchestrator
    streaks: StreakHook
    achievements: AchievementHook
    database: Database | None = None

    def close(self) -> None:
        self.auto_optimizer.stop()
        self.content.client.close()
        if self.database is not None:
            self.database.dispose()


def build_engine(
    settings: Settings | None = None,
    database: Database | None = None,
    clock: Callable[[], datetime] = datetime.now,
    rng: random.Random | None = None,
) -> Engine:
    settings = settings or get_settings()

    if database is not None:
        curricula, performance, feedback = (
            SqlCurriculumRepository(database),
            SqlPerformanceRepository(database),
            SqlFeedbackRepository(database),
        )
        mistake_log, cards = SqlMistakeRepository(database), SqlReviewCardRepository(database)
    else:
        curricula = performance = feedback = mistake_log = cards = None

    curriculum = CurriculumService(
        curricula=curricula,
        performance=performance,
        feedback=feedback,
        expected_answer_seconds=settings.expected_answer_seconds,
        performance_window_days=settings.performance_window_days,
        mastery_accuracy=settings.mastery_accuracy_threshold,
        mastery_min_attempts=settings.mastery_min_attempts,
        clock=clock,
    )
    mistakes = MistakeTracker(
        repository=mistake_log,
        min_occurrences=settings.pattern_min_occurrences,
        recency_window_days=settings.recency_window_days,
        high_severity=settings.high_severity_threshold,
        medium_severity=settings.medium_severity_threshold,
        clock=clock,
    )
    scheduler = SpacedRepetitionScheduler(
        repository=cards, history_limit=settings.review_history_limit, clock=clock
    )
    planner = RemediationPlanner(
        mistakes, content_source=curriculum, high_severity=settings.high_severity_threshold, clock=clock
    )
    content = ContentGenerator(
        GenerativeClient(
            api_key=settings.anthropic_api_key,
            model=settings.ai_model,
            base_url=settings.ai_base_url,
            timeout_seconds=settings.ai_timeout_seconds,
            max_tokens=settings.ai_max_tokens,
        )
    )
    optimizer = CurriculumOptimizer(
        curriculum,
        generator=content if content.is_available else None,
        min_sample_size=settings.optimization_min_sample_size,
        delay_seconds=settings.optimization_delay_seconds,
        clock=clock,
    )

    streaks, achievements = StreakHook(clock), AchievementHook(clock)
    orchestrator = SessionOrchestrator(
        curriculum,
        mistakes,
        scheduler,
        planner,
        content=content,
        engagement=EngagementDispatcher([streaks, achievements]),
        fast_answer_seconds=settings.fast_answer_seconds,
        expected_answer_seconds=settings.expected_answer_seconds,
        default_question_count=settings.default_question_count,
        remediation_session_minutes=settings.remediation_session_minutes,
        clock=clock,
        rng=rng,
    )

    return Engine(
        settings=settings,
        curriculum=curriculum,
        mistakes=mistakes,
        visualizer=MistakeVisualizer(mistakes),
        scheduler=scheduler,
        planner=planner,
        content=content,
        optimizer=optimizer,
        auto_optimizer=AutoOptimizationScheduler(optimizer),
        orchestrator=orchestrator,
        streaks=streaks,
        achievements=achievements,
        database=database,
    )
