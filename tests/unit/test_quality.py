"""
Tests for CurriculumQualityEvaluator.
"""

from learnhub.curriculum.quality import CurriculumQualityEvaluator
from learnhub.models import Topic


def rich_topic(topic_id: str, difficulty: int = 5) -> Topic:
    return Topic(
        id=topic_id,
        difficulty=difficulty,
        learning_objectives=("Add fractions with like denominators",),
        activities=({"type": "drag-drop"}, {"type": "worksheet"}),
        assessment_questions=tuple(
            {"type": "short-answer" if n % 2 else "multiple-choice", "difficulty": 2 + n % 6}
            for n in range(10)
        ),
        differentiation={"support": ["Fraction strips"], "extension": ["Unlike denominators"]},
        real_world_applications=("Sharing pizza",),
    )


class TestQualityEvaluator:
    """Tests for rule-based curriculum scoring."""

    def test_complete_curriculum_scores_full_marks(self):
        report = CurriculumQualityEvaluator.evaluate([rich_topic("a"), rich_topic("b", 6)])

        assert report.overall_score == 100
        assert report.grade == "A - Excellent"
        assert report.recommendations == []

    def test_bare_topics_lose_points(self):
        """Test each missing element deducts from its sub-score."""
        report = CurriculumQualityEvaluator.evaluate([Topic(id="a"), Topic(id="b")])

        assert report.scores == {
            "completeness": 78,
            "pedagogical_soundness": 96,
            "accessibility": 90,
            "engagement": 90,
            "assessment": 80,
        }
        assert report.overall_score == 87
        assert report.grade == "B - Good"
        assert report.recommendations == ["Add missing learning objectives and assessment questions"]

    def test_sharp_difficulty_drop_penalized(self):
        report = CurriculumQualityEvaluator.evaluate([rich_topic("a", 9), rich_topic("b", 4)])

        assert report.scores["pedagogical_soundness"] == 95

    def test_scores_floor_at_zero(self):
        report = CurriculumQualityEvaluator.evaluate([Topic(id=str(n)) for n in range(20)])

        assert report.scores["completeness"] == 0
        assert report.grade == "F - Poor"

    def test_evaluates_curriculum_version(self, curriculum):
        report = CurriculumQualityEvaluator.evaluate(curriculum.get_curriculum(3, "math"))

        assert set(report.to_dict()) == {"overall_score", "scores", "grade", "recommendations"}
