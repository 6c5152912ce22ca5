"""
Tests for question-list strategies and the session store.
"""

import random
import threading

import pytest

from learnhub.adaptive.performance_tracker import PerformanceTracker
from learnhub.exceptions import NoActiveContentError
from learnhub.models import Question, Session, SessionType
from learnhub.session import STRATEGIES, SessionStore, StrategyKind, get_strategy
from learnhub.session.strategies import (
    REVIEW_TOPIC_ID,
    SessionRequest,
    StrategyContext,
    build_questions,
    review_strategy,
    select_strategy,
)


@pytest.fixture
def ctx(curriculum, scheduler, planner, clock):
    return StrategyContext(
        curriculum=curriculum,
        scheduler=scheduler,
        planner=planner,
        tracker=PerformanceTracker(3, clock=clock),
        rng=random.Random(5),
    )


def request(student, session_type=SessionType.PRACTICE, topic_id=None, count=4):
    return SessionRequest(
        student=student, subject="math", session_type=session_type, question_count=count, topic_id=topic_id
    )


class TestRegistry:
    """Tests for the strategy registry."""

    def test_every_kind_registered(self):
        assert set(STRATEGIES) == set(StrategyKind)

    def test_get_strategy_by_value(self):
        assert get_strategy("review") is review_strategy
        assert get_strategy(StrategyKind.REVIEW) is review_strategy

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            get_strategy("shuffle")

    @pytest.mark.parametrize(
        "session_type,topic_id,expected",
        [
            (SessionType.REVIEW, "t", StrategyKind.REVIEW),
            (SessionType.REMEDIATION, None, StrategyKind.REMEDIATION),
            (SessionType.PRACTICE, "t", StrategyKind.TOPIC),
            (SessionType.ASSESSMENT, None, StrategyKind.ADAPTIVE),
        ],
    )
    def test_select_strategy(self, session_type, topic_id, expected):
        assert select_strategy(session_type, topic_id) is expected


class TestBuildQuestions:
    """Tests for build_questions."""

    def test_topic_strategy(self, ctx, student):
        plan = build_questions(ctx, request(student, topic_id="g3-fractions-basics"))

        assert plan.strategy is StrategyKind.TOPIC
        assert plan.topic_name == "Fraction Basics"
        assert len(plan.questions) == 4

    def test_adaptive_strategy(self, ctx, student):
        """Test strong recent accuracy picks the next unlocked topic a step up in difficulty."""
        student.mastered_topics = {"g3-integers-intro"}
        student.current_difficulty = 4
        ctx.tracker.record_attempt(True, 4)

        plan = build_questions(ctx, request(student))

        assert plan.strategy is StrategyKind.ADAPTIVE
        assert plan.topic_id == "g3-fractions-basics"

    def test_topic_without_questions(self, ctx, student, curriculum):
        """Test an empty question bank is reported as missing content."""
        curriculum.import_curriculum(
            {"grade_level": 4, "subject": "science", "topics": [{"id": "g4-inquiry", "name": "Inquiry"}]}
        )
        student.grade_level = 4

        with pytest.raises(NoActiveContentError):
            build_questions(ctx, SessionRequest(student, "science", SessionType.PRACTICE, 5, "g4-inquiry"))

    def test_review_skips_unknown_questions(self, ctx, student, scheduler):
        """Test cards whose question left the bank are skipped."""
        orphan = Question(id="gone", topic_id="g3-integers-intro", difficulty=3, correct_answer="1")
        scheduler.add_card(student.id, orphan, subject="math")

        with pytest.raises(NoActiveContentError, match="no review cards due"):
            build_questions(ctx, request(student, SessionType.REVIEW))

    def test_review_questions_tagged(self, ctx, student, scheduler, curriculum):
        question = curriculum.get_question("g3-integers-ops-q2")
        card = scheduler.add_card(student.id, question, subject="math")

        plan = build_questions(ctx, request(student, SessionType.REVIEW))

        assert plan.topic_id == REVIEW_TOPIC_ID
        assert [q.card_id for q in plan.questions] == [card.id]
        assert curriculum.get_question("g3-integers-ops-q2").card_id is None


class TestSessionStore:
    """Tests for SessionStore."""

    def make_session(self, student_id, clock):
        return Session(
            id=f"session-{student_id}",
            student_id=student_id,
            grade_level=3,
            type=SessionType.PRACTICE,
            subject="math",
            topic_id="t",
            topic_name="T",
            questions=[],
            start_time=clock.now,
        )

    def test_put_get_clear(self, clock):
        store = SessionStore()
        session = store.put(self.make_session("a", clock))

        assert store.get("a") is session
        assert len(store) == 1
        assert store.clear("a") is session
        assert store.get("a") is None
        assert store.clear("a") is None

    def test_tracker_created_once(self):
        store = SessionStore()

        first = store.tracker_for("a", 3, starting_difficulty=6)
        second = store.tracker_for("a", 3)

        assert first is second
        assert first.current_difficulty == 6

    def test_lock_is_reentrant(self):
        store = SessionStore()
        with store.lock("a"):
            with store.lock("a"):
                pass

    def test_lock_serializes_same_student(self, clock):
        """Test a second thread waits for the first to release the student's lock."""
        store = SessionStore()
        order = []
        entered = threading.Event()

        def worker():
            entered.set()
            with store.lock("a"):
                order.append("worker")

        with store.lock("a"):
            thread = threading.Thread(target=worker)
            thread.start()
            entered.wait(timeout=5)
            order.append("main")
        thread.join(timeout=5)

        assert order == ["main", "worker"]
