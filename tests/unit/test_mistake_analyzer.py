"""
Tests for misconception detection.

Tests cover:
- Catalog lookup and topic substring matching
- Pattern threshold and severity scoring
- Recommendations and summary text
- Dashboard visualizer
"""

from datetime import datetime, timedelta

import pytest

from learnhub.adaptive.misconception_catalog import DEFAULT_CATALOG
from learnhub.adaptive.mistake_analyzer import (
    MistakeTracker,
    MistakeVisualizer,
    estimate_remediation_time,
    severity_to_priority,
)
from learnhub.models import DetectedPattern, Priority


def record(tracker, topic_id="g6-integers-addition", subject="math", difficulty=6, **kwargs):
    defaults = dict(
        question_id="q-int-1",
        topic_id=topic_id,
        subject=subject,
        grade_level=6,
        student_answer="-5",
        correct_answer="5",
        difficulty=difficulty,
    )
    defaults.update(kwargs)
    return tracker.record_mistake("student-1", **defaults)


class TestMisconceptionCatalog:
    """Tests for the static misconception catalog."""

    def test_subjects(self):
        """Test the catalog covers the four core subjects."""
        assert DEFAULT_CATALOG.subjects() == ["math", "reading", "science", "writing"]

    def test_topic_substring_match(self):
        """Test affected topics are matched as substrings of topic ids."""
        pattern = DEFAULT_CATALOG.get("negative-number-operations")

        assert pattern.matches_topic("grade6-integers-addition")
        assert pattern.matches_topic("pre-algebra-review")
        assert not pattern.matches_topic("g3-fractions-basics")

    def test_for_subject_filters(self):
        """Test subject filtering returns only that subject's patterns."""
        reading = DEFAULT_CATALOG.for_subject("reading")

        assert {p.id for p in reading} == {"main-idea-vs-detail", "inference-confusion"}
        assert len(DEFAULT_CATALOG.for_subject(None)) == len(DEFAULT_CATALOG)


class TestPatternDetection:
    """Tests for MistakeTracker.analyze_patterns."""

    def test_no_mistakes(self, mistakes):
        """Test an empty log yields no patterns and the encouragement summary."""
        analysis = mistakes.analyze_patterns("student-1")

        assert analysis.total_mistakes == 0
        assert analysis.patterns == []
        assert analysis.summary == "No significant patterns detected. Keep practicing!"

    def test_single_mistake_is_below_threshold(self, mistakes):
        """Test one mistake on an affected topic is not yet a pattern."""
        record(mistakes)

        analysis = mistakes.analyze_patterns("student-1", subject="math")

        assert analysis.total_mistakes == 1
        assert analysis.patterns == []

    def test_two_negative_number_mistakes(self, mistakes):
        """Test answering -5 for 5 twice on integer topics is diagnosed."""
        record(mistakes)
        record(mistakes, question_id="q-int-2", topic_id="g6-integers-subtraction")

        analysis = mistakes.analyze_patterns("student-1", subject="math")

        assert len(analysis.patterns) == 1
        pattern = analysis.patterns[0]
        assert pattern.misconception_id == "negative-number-operations"
        assert pattern.occurrences == 2
        # recency 30 + frequency 8 + difficulty 18
        assert pattern.severity == 56
        assert analysis.recommendations[0].priority is Priority.MEDIUM
        assert analysis.summary == "1 pattern(s) detected. Targeted practice recommended."

    def test_mistakes_are_tagged_with_misconception(self, mistakes):
        """Test contributing mistakes get their misconception id filled in."""
        record(mistakes)
        record(mistakes)

        mistakes.analyze_patterns("student-1")

        assert all(
            m.misconception_id == "negative-number-operations"
            for m in mistakes.get_mistakes("student-1")
        )

    def test_other_subject_patterns_ignored(self, mistakes):
        """Test patterns from another subject never match."""
        record(mistakes, topic_id="grammar-basics", subject="math")
        record(mistakes, topic_id="grammar-basics", subject="math")

        analysis = mistakes.analyze_patterns("student-1", subject="math")

        assert analysis.patterns == []

    def test_patterns_sorted_by_severity(self, mistakes):
        """Test the most severe pattern comes first."""
        for _ in range(2):
            record(mistakes, topic_id="g6-fractions-add", difficulty=2)
        for _ in range(5):
            record(mistakes, topic_id="g6-integers-ops", difficulty=9)

        analysis = mistakes.analyze_patterns("student-1", subject="math")

        severities = [p.severity for p in analysis.patterns]
        assert severities == sorted(severities, reverse=True)
        assert analysis.patterns[0].misconception_id == "negative-number-operations"

    def test_recent_mistakes_capped_at_three(self, mistakes):
        """Test only the last three mistakes are kept on a pattern."""
        for n in range(5):
            record(mistakes, question_id=f"q{n}")

        pattern = mistakes.analyze_patterns("student-1").patterns[0]

        assert [m.question_id for m in pattern.recent_mistakes] == ["q2", "q3", "q4"]


class TestSeverity:
    """Tests for severity scoring."""

    def test_severity_bounds(self, mistakes, clock):
        """Test severity stays within 0-100 at the extremes."""
        for _ in range(20):
            record(mistakes, difficulty=10)
        recent = mistakes.get_mistakes("student-1")

        assert mistakes.calculate_pattern_severity(recent) == 100
        assert mistakes.calculate_pattern_severity([]) == 0

    def test_old_mistakes_lose_recency(self, clock):
        """Test mistakes older than the recency window score no recency points."""
        tracker = MistakeTracker(clock=clock)
        old = clock.now - timedelta(days=30)
        record(tracker, difficulty=0, timestamp=old)
        record(tracker, difficulty=0, timestamp=old)

        severity = tracker.calculate_pattern_severity(tracker.get_mistakes("student-1"))

        assert severity == 8

    @pytest.mark.parametrize(
        "severity,expected",
        [(100, Priority.HIGH), (70, Priority.HIGH), (69, Priority.MEDIUM), (40, Priority.MEDIUM), (39, Priority.LOW)],
    )
    def test_severity_to_priority(self, severity, expected):
        """Test the priority cut points."""
        assert severity_to_priority(severity) is expected

    def test_estimate_remediation_time(self):
        """Test the time estimate grows with severity and occurrences."""
        pattern = DetectedPattern("x", "X", "", occurrences=2, affected_topics=(), recent_mistakes=[], severity=56)

        assert estimate_remediation_time(pattern) == 35

    def test_high_severity_summary(self, mistakes):
        """Test a high-severity pattern is named in the summary."""
        for _ in range(10):
            record(mistakes, difficulty=8)

        analysis = mistakes.analyze_patterns("student-1")

        assert analysis.summary.startswith("1 area(s) need attention")
        assert "Negative Number Operations" in analysis.summary


class TestMistakeFilters:
    """Tests for get_mistakes filtering."""

    def test_filter_by_date_range(self, mistakes, clock):
        """Test start/end bounds are inclusive."""
        record(mistakes, timestamp=datetime(2025, 3, 1))
        record(mistakes, timestamp=datetime(2025, 3, 5))
        record(mistakes, timestamp=datetime(2025, 3, 9))

        found = mistakes.get_mistakes("student-1", start=datetime(2025, 3, 5), end=datetime(2025, 3, 9))

        assert len(found) == 2

    def test_filter_by_topic(self, mistakes):
        record(mistakes, topic_id="a-integers")
        record(mistakes, topic_id="b-integers")

        assert len(mistakes.get_mistakes("student-1", topic_id="a-integers")) == 1


class TestMistakeVisualizer:
    """Tests for dashboard summaries."""

    def test_timeline_groups_by_day(self, mistakes, clock):
        """Test per-day counts with difficulty buckets."""
        record(mistakes, difficulty=2, timestamp=clock.now - timedelta(days=1))
        record(mistakes, difficulty=9, timestamp=clock.now - timedelta(days=1))
        record(mistakes, difficulty=5)

        timeline = MistakeVisualizer(mistakes).timeline("student-1")

        assert [day["count"] for day in timeline] == [2, 1]
        assert timeline[0]["by_difficulty"] == {"easy": 1, "medium": 0, "hard": 1}

    def test_subject_breakdown(self, mistakes):
        record(mistakes, topic_id="t1")
        record(mistakes, topic_id="t1")
        record(mistakes, topic_id="t2", subject="reading")

        breakdown = {b["subject"]: b for b in MistakeVisualizer(mistakes).subject_breakdown("student-1")}

        assert breakdown["math"]["total"] == 2
        assert breakdown["math"]["topics"] == [{"topic": "t1", "count": 2}]
        assert breakdown["reading"]["total"] == 1

    def test_improvement_needs_ten_mistakes(self, mistakes):
        """Test fewer than ten mistakes reports insufficient data."""
        for _ in range(9):
            record(mistakes)

        metrics = MistakeVisualizer(mistakes).improvement_metrics("student-1")

        assert metrics["insufficient_data"] is True

    def test_improving_trend(self, mistakes, clock):
        """Test a burst of early mistakes followed by sparse ones reads as improving."""
        start = clock.now - timedelta(days=20)
        for n in range(5):
            record(mistakes, timestamp=start + timedelta(hours=n))
        for n in range(5):
            record(mistakes, timestamp=start + timedelta(days=5 + n * 3))

        metrics = MistakeVisualizer(mistakes).improvement_metrics("student-1")

        assert metrics["trend"] == "improving"
        assert metrics["total_mistakes"] == 10
