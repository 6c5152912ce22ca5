"""
Tests for CurriculumService.

Tests cover:
- Curriculum import with inline and top-level question banks
- Topic navigation and recommendation
- Learning path status and the mastery rule
- Performance aggregation and feedback
"""

import random

import pytest

from learnhub.curriculum.service import CurriculumService, prerequisites_met, topic_readiness
from learnhub.exceptions import NotFoundError
from learnhub.models import Student, Topic, TopicStatus


class TestImport:
    """Tests for curriculum import."""

    def test_import_inline_questions(self, curriculum):
        """Test each topic's inline questions land in the bank."""
        loaded = curriculum.get_curriculum(3, "math")

        assert loaded.id == "curriculum_grade3_math"
        assert [t.id for t in loaded.topics][0] == "g3-integers-intro"
        assert len(curriculum.get_questions_for_topic("g3-fractions-add", 100)) == 6
        assert curriculum.get_question("g3-integers-ops-q2").correct_answer == "20"

    def test_import_top_level_questions(self, clock):
        service = CurriculumService(clock=clock)
        service.import_curriculum(
            {
                "grade_level": 5,
                "subject": "reading",
                "topics": [{"id": "g5-comprehension", "name": "Comprehension"}],
                "questions": [{"id": "r1", "topic_id": "g5-comprehension", "correct_answer": "b"}],
            }
        )

        assert service.get_question("r1").topic_id == "g5-comprehension"

    def test_camel_case_topic_fields(self, curriculum):
        topic = curriculum.get_topic(3, "math", "g3-integers-ops")

        assert topic.expected_duration_minutes == 30
        assert topic.prerequisites == ("g3-integers-intro",)

    def test_unknown_curriculum(self, curriculum):
        with pytest.raises(NotFoundError):
            curriculum.get_curriculum(9, "math")

    def test_unknown_topic(self, curriculum):
        with pytest.raises(NotFoundError):
            curriculum.get_topic(3, "math", "g3-calculus")


class TestQuestions:
    """Tests for question selection."""

    def test_adaptive_selection(self, curriculum):
        """Test adaptive picks stay near the requested difficulty."""
        picked = curriculum.get_questions_for_topic(
            "g3-fractions-basics", 3, adaptive_difficulty=5, rng=random.Random(1)
        )

        assert len(picked) == 3
        assert all(abs(q.difficulty - 5) <= 2 for q in picked)

    def test_filters(self, curriculum):
        picked = curriculum.get_questions_for_topic(
            "g3-integers-intro",
            10,
            question_type="short-answer",
            exclude_ids={"g3-integers-intro-q1"},
        )

        assert {q.id for q in picked} == {"g3-integers-intro-q3", "g3-integers-intro-q5"}

    def test_unknown_topic_has_no_questions(self, curriculum):
        assert curriculum.get_questions_for_topic("nope", 5) == []


class TestNavigation:
    """Tests for next-topic and recommended-topic selection."""

    def test_prerequisites(self):
        topic = Topic(id="b", prerequisites=("a", "c"))

        assert not prerequisites_met(topic, {"a"})
        assert prerequisites_met(topic, {"a", "c"})
        assert topic_readiness(topic, {"a"}) == 0.0
        assert topic_readiness(Topic(id="x"), set()) == 100.0

    def test_next_topic(self, curriculum):
        assert curriculum.get_next_topic(3, "math", None).id == "g3-integers-intro"
        assert curriculum.get_next_topic(3, "math", "g3-integers-intro", {"g3-integers-intro"}).id == "g3-integers-ops"

    def test_next_topic_skips_locked(self, curriculum):
        """Test locked topics are skipped and an exhausted path returns None."""
        mastered = {"g3-integers-intro"}

        assert curriculum.get_next_topic(3, "math", "g3-fractions-basics", mastered) is None

    def test_recommended_topic_for_new_student(self, curriculum):
        topic = curriculum.get_recommended_topic(3, "math")

        assert topic.id == "g3-integers-intro"

    def test_recommended_topic_strong_student(self, curriculum):
        """Test high accuracy pushes the recommendation up the difficulty band."""
        topic = curriculum.get_recommended_topic(
            3, "math", mastered={"g3-integers-intro"}, accuracy=95, average_difficulty=4
        )

        assert topic.id == "g3-fractions-basics"

    def test_recommended_topic_falls_back_to_first(self, curriculum):
        topic = curriculum.get_recommended_topic(
            3, "math", mastered={"g3-integers-intro"}, accuracy=70, average_difficulty=9
        )

        assert topic.id == "g3-integers-intro"


class TestLearningPath:
    """Tests for learning path and mastery."""

    @pytest.mark.parametrize(
        "accuracy,attempts,expected",
        [
            (80.0, 10, TopicStatus.MASTERED),
            (79.9, 10, TopicStatus.IN_PROGRESS),
            (100.0, 9, TopicStatus.IN_PROGRESS),
            (0.0, 0, TopicStatus.NOT_STARTED),
        ],
    )
    def test_mastery_rule(self, curriculum, accuracy, attempts, expected):
        """Test mastery needs 80% accuracy over at least 10 attempts."""
        assert curriculum.topic_status_for(accuracy, attempts) is expected

    def test_learning_path(self, curriculum):
        student = Student(
            id="student-1",
            grade_level=3,
            mastered_topics={"g3-integers-intro"},
            current_topic="g3-integers-ops",
        )

        path = curriculum.get_learning_path(3, "math", student)
        statuses = {p["topic"].id: p["status"] for p in path["path"]}

        assert statuses == {
            "g3-integers-intro": TopicStatus.MASTERED,
            "g3-integers-ops": TopicStatus.IN_PROGRESS,
            "g3-fractions-basics": TopicStatus.NOT_STARTED,
            "g3-fractions-add": TopicStatus.LOCKED,
        }
        assert path["completed_topics"] == 1
        assert path["next_recommended"]["topic"].id == "g3-fractions-basics"

    def test_student_topic_accuracy(self, curriculum):
        """Test accuracy accumulates across sessions on the same topic."""
        for correct in (4, 5):
            curriculum.record_performance(
                "student-1", 3, "math", "g3-integers-intro",
                total_attempts=5, correct_attempts=correct,
                session_duration_seconds=150, average_difficulty=3,
            )

        assert curriculum.student_topic_accuracy("student-1", "g3-integers-intro") == (90.0, 10)
        assert curriculum.student_topic_accuracy("student-2", "g3-integers-intro") == (0.0, 0)


class TestAggregation:
    """Tests for performance aggregation and feedback."""

    def record(self, curriculum, student_id, topic_id, total, correct, duration=300.0, difficulty=4.0):
        return curriculum.record_performance(
            student_id, 3, "math", topic_id,
            total_attempts=total, correct_attempts=correct,
            session_duration_seconds=duration, average_difficulty=difficulty,
        )

    def test_aggregate_per_topic(self, curriculum):
        self.record(curriculum, "s1", "g3-integers-intro", 10, 8, duration=300, difficulty=3)
        self.record(curriculum, "s2", "g3-integers-intro", 10, 4, duration=500, difficulty=5)
        self.record(curriculum, "s1", "g3-fractions-add", 5, 1)

        snapshot = curriculum.aggregate_performance(3, "math")
        intro = snapshot.topic_performance["g3-integers-intro"]

        assert snapshot.sample_size == 3
        assert intro.accuracy == 60.0
        assert intro.student_count == 2
        assert intro.average_time_seconds == 40.0
        assert intro.average_difficulty == 4.0
        assert snapshot.overall.total_attempts == 25
        assert snapshot.overall.accuracy == pytest.approx(52.0)

    def test_window_excludes_old_records(self, curriculum, clock):
        """Test records older than the performance window are left out."""
        self.record(curriculum, "s1", "g3-integers-intro", 10, 10)
        clock.advance(days=31)
        self.record(curriculum, "s1", "g3-integers-intro", 10, 5)

        snapshot = curriculum.aggregate_performance(3, "math")

        assert snapshot.sample_size == 1
        assert snapshot.overall.accuracy == 50.0

    def test_empty_snapshot(self, curriculum):
        snapshot = curriculum.aggregate_performance(3, "math")

        assert snapshot.sample_size == 0
        assert snapshot.overall.accuracy == 0.0

    def test_feedback(self, curriculum):
        curriculum.submit_feedback(3, "math", 4, "Clear progression")

        assert [f.rating for f in curriculum.get_feedback(3, "math")] == [4]
        with pytest.raises(ValueError):
            curriculum.submit_feedback(3, "math", 6)

    def test_curriculum_stats(self, curriculum):
        self.record(curriculum, "s1", "g3-integers-intro", 10, 9)

        stats = curriculum.get_curriculum_stats(3, "math")

        assert stats["curriculum"]["difficulty_range"] == {"min": 3, "max": 7}
        assert stats["performance"]["performance_level"] == "excellent"
