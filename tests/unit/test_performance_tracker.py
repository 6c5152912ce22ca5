"""
Tests for the adaptive difficulty tracker.

Tests cover:
- Grade bands and difficulty band mapping
- Rolling accuracy and difficulty estimate
- Clamping at the extremes
- Adaptive question selection
- Hint progression
"""

import random

import pytest

from learnhub.adaptive.performance_tracker import (
    HintSystem,
    PerformanceTracker,
    difficulty_band,
    grade_band,
    performance_level,
    select_adaptive_questions,
)
from learnhub.models import Question


def q(n: int, difficulty: int) -> Question:
    return Question(id=f"q{n}", topic_id="t", difficulty=difficulty, correct_answer="x")


class TestGradeBands:
    """Tests for grade band lookup."""

    @pytest.mark.parametrize(
        "grade,name,start",
        [(0, "early_elementary", 1), (3, "upper_elementary", 3), (7, "middle_school", 4), (12, "high_school", 6)],
    )
    def test_grade_band(self, grade, name, start):
        band = grade_band(grade)

        assert band.name == name
        assert band.starting_difficulty == start


class TestDifficultyBand:
    """Tests for the accuracy to difficulty mapping."""

    @pytest.mark.parametrize(
        "accuracy,expected",
        [(95, (6, 7)), (90, (6, 7)), (80, (5, 6)), (65, (4, 5)), (40, (3, 4))],
    )
    def test_bands_around_base(self, accuracy, expected):
        """Test each accuracy tier shifts the range as documented."""
        assert difficulty_band(accuracy, 5) == expected

    def test_band_clamped(self):
        """Test both ends stay within 1-10."""
        assert difficulty_band(100, 10) == (10, 10)
        assert difficulty_band(0, 1) == (1, 1)

    def test_performance_level(self):
        assert performance_level(92) == "excellent"
        assert performance_level(75) == "good"
        assert performance_level(60) == "fair"
        assert performance_level(10) == "needs-support"


class TestPerformanceTracker:
    """Tests for PerformanceTracker."""

    def test_initial_state(self, clock):
        """Test a new grade 3 tracker assumes 70% accuracy at difficulty 3."""
        tracker = PerformanceTracker(3, clock=clock)

        assert tracker.rolling_accuracy == 70.0
        assert tracker.current_difficulty == 3
        assert tracker.get_current_difficulty() == 2

    def test_starting_difficulty_override(self, clock):
        tracker = PerformanceTracker(3, starting_difficulty=8, clock=clock)

        assert tracker.current_difficulty == 8

    def test_all_correct_at_ceiling(self, clock):
        """Test perfect accuracy at difficulty 10 never exceeds 10."""
        tracker = PerformanceTracker(9, clock=clock, rng=random.Random(1))
        for _ in range(10):
            feedback = tracker.record_attempt(True, 10)

        assert tracker.rolling_accuracy == 100.0
        assert tracker.get_current_difficulty() == 10
        assert feedback.action == "increasing_difficulty"

    def test_all_wrong_at_floor(self, clock):
        """Test zero accuracy at difficulty 1 never drops below 1."""
        tracker = PerformanceTracker(1, clock=clock, rng=random.Random(1))
        for _ in range(10):
            feedback = tracker.record_attempt(False, 1)

        assert tracker.rolling_accuracy == 0.0
        assert tracker.get_current_difficulty() == 1
        assert feedback.action == "decreasing_difficulty"

    def test_rolling_window(self, clock):
        """Test only the last `window` attempts count toward accuracy."""
        tracker = PerformanceTracker(5, window=4, clock=clock)
        for _ in range(4):
            tracker.record_attempt(False, 5)
        for _ in range(4):
            tracker.record_attempt(True, 5)

        assert tracker.rolling_accuracy == 100.0
        assert tracker.total_attempts == 8

    def test_difficulty_tracks_attempted_questions(self, clock):
        """Test the estimate is the rounded mean of recent question difficulty."""
        tracker = PerformanceTracker(6, clock=clock)
        tracker.record_attempt(True, 4)
        tracker.record_attempt(True, 7)

        assert tracker.current_difficulty == 6

    def test_streak_encouragement(self, clock):
        """Test five in a row produces the streak message."""
        tracker = PerformanceTracker(3, clock=clock)
        for _ in range(5):
            feedback = tracker.record_attempt(True, 3)

        assert feedback.encouragement == "Great streak! 5 correct in a row!"

    def test_statistics(self, clock):
        tracker = PerformanceTracker(3, clock=clock)
        tracker.record_attempt(True, 3, 20)
        tracker.record_attempt(False, 3, 40)

        stats = tracker.get_statistics()

        assert stats["total_attempts"] == 2
        assert stats["accuracy"] == 50
        assert stats["avg_time_per_question"] == 30

    def test_should_take_break(self, clock):
        """Test the attention span of the grade band triggers a break."""
        tracker = PerformanceTracker(3, clock=clock)
        assert not tracker.should_take_break()

        clock.advance(minutes=25)

        assert tracker.should_take_break()


class TestSelectAdaptiveQuestions:
    """Tests for select_adaptive_questions."""

    def test_prefers_questions_near_target(self):
        """Test questions within two of target are chosen first."""
        pool = [q(n, d) for n, d in enumerate([1, 2, 5, 6, 7, 10])]

        picked = select_adaptive_questions(pool, 6, 3, rng=random.Random(3))

        assert sorted(p.difficulty for p in picked) == [5, 6, 7]

    def test_tops_up_from_remainder(self):
        """Test a short near-target pool is topped up with the next closest."""
        pool = [q(n, d) for n, d in enumerate([1, 2, 9, 10])]

        picked = select_adaptive_questions(pool, 9, 3, rng=random.Random(3))

        assert sorted(p.difficulty for p in picked) == [2, 9, 10]

    def test_count_larger_than_pool(self):
        pool = [q(n, 5) for n in range(3)]

        assert len(select_adaptive_questions(pool, 5, 10)) == 3


class TestHintSystem:
    """Tests for HintSystem."""

    def test_uses_question_hints_in_order(self):
        question = Question(id="q", topic_id="t", difficulty=3, correct_answer="4", hints=("first", "second", "third"))
        hints = HintSystem(1)

        assert hints.get_hint(question, 1) == "first"
        assert hints.get_hint(question, 2) == "second"
        assert hints.get_hint(question, 9) == "third"

    def test_older_students_capped_at_one_level(self):
        """Test high school students only ever see the first hint."""
        question = Question(id="q", topic_id="t", difficulty=3, correct_answer="4", hints=("first", "second"))

        assert HintSystem(10).get_hint(question, 3) == "first"

    def test_generic_hint_without_question_hints(self, sample_question):
        hint = HintSystem(3, rng=random.Random(0)).get_hint(sample_question, 1)

        assert hint
