"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from learnhub.adaptive.mistake_analyzer import MistakeTracker  # noqa: E402
from learnhub.adaptive.remediation_planner import RemediationPlanner  # noqa: E402
from learnhub.curriculum.service import CurriculumService  # noqa: E402
from learnhub.models import Question, Student  # noqa: E402
from learnhub.session.orchestrator import SessionOrchestrator  # noqa: E402
from learnhub.study.spaced_repetition import SpacedRepetitionScheduler  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


START = datetime(2025, 3, 10, 9, 0, 0)

# (topic id, name, difficulty, prerequisites, order)
TOPICS = (
    ("g3-integers-intro", "Introducing Integers", 3, (), 1),
    ("g3-integers-ops", "Adding and Subtracting Integers", 4, ("g3-integers-intro",), 2),
    ("g3-fractions-basics", "Fraction Basics", 5, ("g3-integers-intro",), 3),
    ("g3-fractions-add", "Adding Fractions", 7, ("g3-fractions-basics",), 4),
)


def make_questions(topic_id: str, base: int, count: int = 6) -> list[dict]:
    """Questions spread around the topic difficulty; answer to q<n> is str(n * 10)."""
    return [
        {
            "id": f"{topic_id}-q{n}",
            "topic_id": topic_id,
            "difficulty": max(1, min(10, base - 2 + n)),
            "correct_answer": str(n * 10),
            "explanation": f"Worked solution {n}",
            "type": "short-answer" if n % 2 else "multiple-choice",
            "text": f"{topic_id} question {n}",
        }
        for n in range(1, count + 1)
    ]


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Fixed clock starting at 2025-03-10 09:00."""
    return FakeClock(START)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def curriculum_doc():
    """Grade 3 math curriculum document with an inline question bank."""
    return {
        "grade_level": 3,
        "subject": "math",
        "version": "1.0",
        "topics": [
            {
                "id": topic_id,
                "name": name,
                "subject": "math",
                "difficulty": difficulty,
                "prerequisites": list(prereqs),
                "expectedDuration": 30,
                "order": order,
                "questions": make_questions(topic_id, difficulty),
            }
            for topic_id, name, difficulty, prereqs, order in TOPICS
        ],
    }


@pytest.fixture
def sample_question():
    return Question(
        id="q1",
        topic_id="g3-integers-intro",
        difficulty=4,
        correct_answer="5",
        explanation="Five units right of zero",
        text="What is 2 + 3?",
    )


@pytest.fixture
def student():
    return Student(id="student-1", grade_level=3)


@pytest.fixture
def curriculum(clock, curriculum_doc):
    """CurriculumService with the grade 3 math curriculum imported."""
    service = CurriculumService(clock=clock)
    service.import_curriculum(curriculum_doc)
    return service


@pytest.fixture
def mistakes(clock):
    return MistakeTracker(clock=clock)


@pytest.fixture
def scheduler(clock):
    return SpacedRepetitionScheduler(clock=clock)


@pytest.fixture
def planner(mistakes, curriculum, clock):
    return RemediationPlanner(mistakes, content_source=curriculum, clock=clock)


@pytest.fixture
def orchestrator(curriculum, mistakes, scheduler, planner, clock, rng):
    return SessionOrchestrator(curriculum, mistakes, scheduler, planner, clock=clock, rng=rng)
