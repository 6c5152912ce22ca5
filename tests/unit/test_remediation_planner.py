"""
Tests for RemediationPlanner.

Tests cover:
- Plans with and without detected patterns
- Activity ordering, timing and exercise selection
- Progress tracking across sessions
"""

import pytest

from learnhub.adaptive.remediation_planner import NO_REMEDIATION_MESSAGE, RemediationPlanner
from learnhub.models import ActivityType, Priority


def add_integer_mistakes(mistakes, count=2, difficulty=4):
    topics = ["g3-integers-intro", "g3-integers-ops"]
    for n in range(count):
        mistakes.record_mistake(
            "student-1",
            question_id=f"{topics[n % 2]}-q1",
            topic_id=topics[n % 2],
            subject="math",
            grade_level=3,
            student_answer="-5",
            correct_answer="5",
            difficulty=difficulty,
        )


class TestCreatePlan:
    """Tests for RemediationPlanner.create_plan."""

    def test_no_patterns(self, planner):
        """Test a clean log produces an empty plan that needs no remediation."""
        plan = planner.create_plan("student-1", "math")

        assert plan.needs_remediation is False
        assert plan.sessions == []
        assert plan.message == NO_REMEDIATION_MESSAGE

    def test_plan_for_negative_numbers(self, planner, mistakes):
        """Test one detected pattern yields one three-step session."""
        add_integer_mistakes(mistakes)

        plan = planner.create_plan("student-1", "math", session_duration=20)

        assert plan.needs_remediation is True
        assert plan.priority is Priority.MEDIUM
        assert len(plan.sessions) == 1

        session = plan.sessions[0]
        assert session.misconception_id == "negative-number-operations"
        assert session.title == "Practice: Negative Number Operations"
        assert [a.type for a in session.activities] == [
            ActivityType.EXPLANATION,
            ActivityType.GUIDED_PRACTICE,
            ActivityType.INDEPENDENT_PRACTICE,
        ]
        assert [a.duration_minutes for a in session.activities] == [6, 8, 6]
        assert plan.estimated_total_minutes == 20

    def test_exercises_come_from_mistaken_topics(self, planner, mistakes):
        """Test guided and independent exercises are distinct and on the right topics."""
        add_integer_mistakes(mistakes)

        session = planner.create_plan("student-1", "math").sessions[0]
        guided = session.activities[1].exercises
        independent = session.activities[2].exercises

        assert len(guided) == 3
        assert len(independent) == 5
        assert not {q.id for q in guided} & {q.id for q in independent}
        assert {q.topic_id for q in guided + independent} <= {"g3-integers-intro", "g3-integers-ops"}

    def test_explanation_content(self, planner, mistakes):
        add_integer_mistakes(mistakes)

        explanation = planner.create_plan("student-1", "math").sessions[0].activities[0]

        assert explanation.exercises == []
        assert explanation.content["examples"][0]["student_answer"] == "-5"
        assert "Number line visualization" in explanation.content["strategies"]

    def test_high_priority(self, planner, mistakes):
        """Test a severe pattern makes the plan high priority."""
        add_integer_mistakes(mistakes, count=10, difficulty=9)

        assert planner.create_plan("student-1", "math").priority is Priority.HIGH

    def test_without_content_source(self, mistakes):
        """Test plans still build when no question bank is attached."""
        add_integer_mistakes(mistakes)

        plan = RemediationPlanner(mistakes).create_plan("student-1", "math")

        assert plan.sessions[0].activities[1].exercises == []


class TestTrackProgress:
    """Tests for RemediationPlanner.track_progress."""

    def test_progress_and_improvement(self, planner, mistakes):
        add_integer_mistakes(mistakes)
        plan = planner.create_plan("student-1", "math")
        session_id = plan.sessions[0].id

        first = planner.track_progress(plan, session_id, correct=4, total=5)
        second = planner.track_progress(plan, session_id, correct=5, total=5)

        assert first["accuracy"] == 80.0
        assert first["needs_more_practice"] is False
        assert first["completed"] is True
        assert plan.progress.completed_sessions == 1
        assert plan.progress.total_attempts == 10
        assert plan.progress.improvement_rate == pytest.approx(25.0)
        assert second["completed"] is True

    def test_total_must_be_positive(self, planner, mistakes):
        add_integer_mistakes(mistakes)
        plan = planner.create_plan("student-1", "math")

        with pytest.raises(ValueError):
            planner.track_progress(plan, plan.sessions[0].id, correct=0, total=0)
