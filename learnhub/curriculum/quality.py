"""
Curriculum Quality Evaluator.

Stateless rule-based scoring of curriculum content. Five sub-scores start
at 100, lose points per topic-level shortcoming and are floored at 0; the
overall score is their rounded mean.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from learnhub.models import CurriculumVersion, Topic

INTERACTIVE_ACTIVITY_TYPES = {"interactive-game", "drag-drop", "project"}
RECOMMENDATION_THRESHOLD = 80

RECOMMENDATIONS = {
    "completeness": "Add missing learning objectives and assessment questions",
    "pedagogical_soundness": "Review topic progression and add scaffolding",
    "accessibility": "Add support materials and multiple learning modalities",
    "engagement": "Include more real-world applications and interactive activities",
    "assessment": "Expand question bank with varied types and difficulties",
}

GRADES = (
    (90, "A - Excellent"),
    (80, "B - Good"),
    (70, "C - Satisfactory"),
    (60, "D - Needs Improvement"),
)


def _records(items: Any) -> list[dict]:
    return [item for item in items or () if isinstance(item, dict)]


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class QualityReport:
    overall_score: int
    scores: dict[str, int]
    grade: str
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "scores": dict(self.scores),
            "grade": self.grade,
            "recommendations": list(self.recommendations),
        }


class CurriculumQualityEvaluator:
    """Scores completeness, pedagogy, accessibility, engagement and assessment."""

    @classmethod
    def evaluate(cls, curriculum: CurriculumVersion | list[Topic]) -> QualityReport:
        topics = curriculum.topics if isinstance(curriculum, CurriculumVersion) else list(curriculum)
        scores = {
            "completeness": cls.evaluate_completeness(topics),
            "pedagogical_soundness": cls.evaluate_pedagogy(topics),
            "accessibility": cls.evaluate_accessibility(topics),
            "engagement": cls.evaluate_engagement(topics),
            "assessment": cls.evaluate_assessment(topics),
        }
        overall = sum(scores.values()) / len(scores)
        return QualityReport(
            overall_score=round(overall),
            scores=scores,
            grade=cls.quality_grade(overall),
            recommendations=cls.recommendations(scores),
        )

    @staticmethod
    def evaluate_completeness(topics: list[Topic]) -> int:
        score = 100
        for topic in topics:
            if not topic.learning_objectives:
                score -= 5
            if len(topic.assessment_questions) < 5:
                score -= 3
            if not topic.activities:
                score -= 3
        return max(0, score)

    @staticmethod
    def evaluate_pedagogy(topics: list[Topic]) -> int:
        score = 100
        # Difficulty should not fall sharply from one topic to the next
        for previous, current in zip(topics, topics[1:]):
            if current.difficulty < previous.difficulty - 2:
                score -= 5
        score -= 2 * sum(1 for t in topics if not t.differentiation)
        return max(0, score)

    @staticmethod
    def evaluate_accessibility(topics: list[Topic]) -> int:
        score = 100
        for topic in topics:
            if len({a.get("type") for a in _records(topic.activities)}) < 2:
                score -= 3
            differentiation = topic.differentiation if isinstance(topic.differentiation, dict) else {}
            if not differentiation.get("support"):
                score -= 2
        return max(0, score)

    @staticmethod
    def evaluate_engagement(topics: list[Topic]) -> int:
        score = 100
        for topic in topics:
            if not topic.real_world_applications:
                score -= 3
            if not any(a.get("type") in INTERACTIVE_ACTIVITY_TYPES for a in _records(topic.activities)):
                score -= 2
        return max(0, score)

    @staticmethod
    def evaluate_assessment(topics: list[Topic]) -> int:
        score = 100
        for topic in topics:
            questions = topic.assessment_questions
            if len(questions) < 10:
                score -= 5
            if len({q.get("type") for q in _records(questions)}) < 2:
                score -= 3
            difficulties = [d for d in (_numeric(q.get("difficulty")) for q in _records(questions)) if d is not None]
            if not difficulties or max(difficulties) - min(difficulties) < 3:
                score -= 2
        return max(0, score)

    @staticmethod
    def quality_grade(score: float) -> str:
        for threshold, grade in GRADES:
            if score >= threshold:
                return grade
        return "F - Poor"

    @staticmethod
    def recommendations(scores: dict[str, int]) -> list[str]:
        return [
            RECOMMENDATIONS[name]
            for name in RECOMMENDATIONS
            if scores.get(name, 100) < RECOMMENDATION_THRESHOLD
        ]
