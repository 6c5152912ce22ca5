"""
Tests for the generative content client.

Tests cover:
- JSON extraction from fenced blocks and raw text
- Degraded fallback records for malformed replies
- Messages API transport via httpx.MockTransport
- Error mapping to ServiceUnavailableError
"""

import json

import httpx
import pytest

from learnhub.exceptions import MalformedContentError, ServiceUnavailableError
from learnhub.integrations.content_generator import (
    ContentGenerator,
    GenerativeClient,
    extract_json,
    grade_range,
    parse_structured_response,
)
from learnhub.models import Question, Topic


def reply(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}


def make_client(handler, api_key="test-key"):
    transport = httpx.MockTransport(handler)
    return GenerativeClient(
        api_key, model="test-model", base_url="https://content.test", http_client=httpx.Client(transport=transport)
    )


class TestExtractJson:
    """Tests for JSON extraction."""

    def test_json_fence(self):
        raw = 'Here you go:\n```json\n{"problem": "2 + 2", "answer": "4"}\n```\nEnjoy!'

        assert extract_json(raw) == {"problem": "2 + 2", "answer": "4"}

    def test_plain_fence(self):
        assert extract_json('```\n{"a": 1}\n```') == {"a": 1}

    def test_raw_json(self):
        assert extract_json('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_malformed(self):
        with pytest.raises(MalformedContentError):
            extract_json("Sorry, I cannot help with that.")

    def test_non_object(self):
        with pytest.raises(MalformedContentError):
            extract_json("[1, 2, 3]")


class TestFallbacks:
    """Tests for degraded records on unparseable replies."""

    def test_problem_fallback(self):
        parsed = parse_structured_response("What is 3 x 4?", "problem")

        assert parsed["problem"] == "What is 3 x 4?"
        assert parsed["answer"] == "Parse error"
        assert parsed["hints"] == ["Try again"]

    def test_refinement_fallback(self):
        parsed = parse_structured_response("Looks fine overall", "refinement")

        assert parsed == {
            "analysis": "Looks fine overall",
            "refinements": [],
            "newTopics": [],
            "deprecatedTopics": [],
        }

    def test_explanation_fallback(self):
        parsed = parse_structured_response("Fractions are parts of a whole", "explanation")

        assert parsed["definition"] == "Fractions are parts of a whole"
        assert parsed["examples"] == []


class TestGenerativeClient:
    """Tests for the Messages API client."""

    def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=reply("Hello"))

        text = make_client(handler).complete("Say hello", max_tokens=50, temperature=0.2)

        assert text == "Hello"
        assert seen["url"] == "https://content.test/v1/messages"
        assert seen["headers"]["x-api-key"] == "test-key"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["max_tokens"] == 50
        assert seen["body"]["messages"] == [{"role": "user", "content": "Say hello"}]

    def test_not_configured(self):
        client = make_client(lambda request: httpx.Response(200, json=reply("x")), api_key=None)

        assert not client.is_configured
        with pytest.raises(ServiceUnavailableError):
            client.complete("anything")

    def test_error_status(self):
        client = make_client(lambda request: httpx.Response(529, json={"error": "overloaded"}))

        with pytest.raises(ServiceUnavailableError, match="529"):
            client.complete("anything")

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ServiceUnavailableError, match="unreachable"):
            make_client(handler).complete("anything")


class TestContentGenerator:
    """Tests for ContentGenerator requests."""

    def test_generate_problem(self):
        body = '```json\n{"problem": "Sam has -3 apples", "answer": "3"}\n```'
        generator = ContentGenerator(make_client(lambda r: httpx.Response(200, json=reply(body))))

        problem = generator.generate_problem("integers", 4, 6)

        assert problem["answer"] == "3"
        assert problem["type"] == "ai-generated"
        assert problem["difficulty"] == 4
        assert problem["id"].startswith("generated_")

    def test_refine_curriculum_malformed_degrades(self, curriculum):
        generator = ContentGenerator(make_client(lambda r: httpx.Response(200, json=reply("No JSON here"))))
        snapshot = curriculum.aggregate_performance(3, "math")

        refinements = generator.refine_curriculum(curriculum.get_curriculum(3, "math"), snapshot, [])

        assert refinements["analysis"] == "No JSON here"
        assert refinements["refinements"] == []

    def test_generate_assessment_questions(self):
        body = json.dumps(
            {
                "questions": [
                    {"id": "x", "type": "multiple-choice", "difficulty": "3", "text": "1/2 + 1/2?", "correctAnswer": "1"},
                    "not a question",
                ]
            }
        )
        generator = ContentGenerator(make_client(lambda r: httpx.Response(200, json=reply(body))))

        questions = generator.generate_assessment_questions(Topic(id="g4-fractions", name="Fractions"), 1)

        assert len(questions) == 1
        assert questions[0].topic_id == "g4-fractions"
        assert questions[0].difficulty == 3
        assert questions[0].correct_answer == "1"
        assert questions[0].id.startswith("q_")

    def test_hint_text_stripped(self):
        generator = ContentGenerator(make_client(lambda r: httpx.Response(200, json=reply("  Count on a number line.\n"))))
        question = Question(id="q", topic_id="t", difficulty=3, correct_answer="5")

        assert generator.generate_hint(question, 1, 3) == "Count on a number line."

    def test_grade_range(self):
        assert grade_range(0) == "Early Elementary (K-2)"
        assert grade_range(11) == "High School (9-12)"
