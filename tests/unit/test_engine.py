"""
Tests for the composition root.
"""

import random

import pytest

from config import Settings
from learnhub.db.database import Database
from learnhub.db.sql_repositories import SqlCurriculumRepository
from learnhub.engine import build_engine
from learnhub.exceptions import ServiceUnavailableError


@pytest.fixture
def settings():
    return Settings(_env_file=None, anthropic_api_key=None, fast_answer_seconds=10, mastery_min_attempts=4)


class TestBuildEngine:
    """Tests for build_engine."""

    def test_thresholds_from_settings(self, settings, clock):
        engine = build_engine(settings, clock=clock)

        assert engine.orchestrator.fast_answer_seconds == 10
        assert engine.curriculum.mastery_min_attempts == 4
        assert engine.mistakes.min_occurrences == settings.pattern_min_occurrences
        assert engine.optimizer.min_sample_size == 30
        assert engine.database is None
        engine.close()

    def test_optimizer_without_api_key(self, settings, clock, curriculum_doc, student):
        """Test optimization reports the content service as unavailable without a key."""
        engine = build_engine(settings, clock=clock)
        engine.curriculum.import_curriculum(curriculum_doc)

        assert engine.content.is_available is False
        assert engine.optimizer.generator is None
        with pytest.raises(ServiceUnavailableError):
            engine.optimizer.optimize_curriculum(3, "math", force=True)
        engine.close()

    def test_optimizer_with_api_key(self, clock):
        engine = build_engine(Settings(_env_file=None, anthropic_api_key="sk-test"), clock=clock)

        assert engine.optimizer.generator is engine.content
        engine.close()

    def test_session_on_sql_storage(self, settings, clock, curriculum_doc, student):
        """Test a full session runs against the SQL repositories."""
        database = Database("sqlite://")
        database.init_db()
        engine = build_engine(settings, database=database, clock=clock, rng=random.Random(3))
        assert isinstance(engine.curriculum.curricula, SqlCurriculumRepository)
        engine.curriculum.import_curriculum(curriculum_doc)

        orchestrator = engine.orchestrator
        session = orchestrator.start_session(student, "math", topic_id="g3-integers-intro", question_count=4)
        for question in list(session.questions):
            orchestrator.submit_answer(student.id, question.correct_answer)
        summary = orchestrator.complete_session(student)

        assert summary.accuracy == 1.0
        assert summary.mastered_topics == ["g3-integers-intro"]
        assert len(engine.scheduler.get_student_cards(student.id)) == 0
        assert engine.curriculum.aggregate_performance(3, "math").sample_size == 1
        assert [a.id for a in engine.achievements.achievements_for(student.id)] == [
            "first-session",
            "topic-mastered",
        ]
        engine.close()
