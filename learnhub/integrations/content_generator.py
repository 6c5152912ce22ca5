"""
Generative content service client.

GenerativeClient speaks the Messages API over httpx. ContentGenerator builds
requests for problems, explanations, hints and curriculum refinements and
parses the replies best-effort: JSON is pulled from a fenced block or the
raw text, and anything unparseable degrades to a minimal record built from
the raw text rather than failing the caller.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict
from typing import Any

import httpx
from loguru import logger

from learnhub.exceptions import MalformedContentError, ServiceUnavailableError
from learnhub.models import (
    CurriculumVersion,
    FeedbackRecord,
    PerformanceSnapshot,
    Question,
    Topic,
    new_id,
)

ANTHROPIC_VERSION = "2023-06-01"

_JSON_BLOCK = re.compile(r"```json\n([\s\S]*?)\n```")
_PLAIN_BLOCK = re.compile(r"```\n([\s\S]*?)\n```")


def _problem_fallback(raw: str) -> dict[str, Any]:
    return {
        "problem": raw,
        "answer": "Parse error",
        "solution": ["See content"],
        "explanation": raw,
        "hints": ["Try again"],
        "common_mistakes": [],
        "real_world_application": "N/A",
    }


def _explanation_fallback(raw: str) -> dict[str, Any]:
    return {"definition": raw, "explanation": raw, "examples": []}


def _refinement_fallback(raw: str) -> dict[str, Any]:
    return {"analysis": raw, "refinements": [], "newTopics": [], "deprecatedTopics": []}


def _questions_fallback(raw: str) -> dict[str, Any]:
    return {"questions": []}


FALLBACKS = {
    "problem": _problem_fallback,
    "explanation": _explanation_fallback,
    "refinement": _refinement_fallback,
    "questions": _questions_fallback,
}


def extract_json(raw: str) -> dict[str, Any]:
    """
    Parse the JSON object in a generative reply.

    Raises:
        MalformedContentError: No parseable JSON object in the text
    """
    match = _JSON_BLOCK.search(raw) or _PLAIN_BLOCK.search(raw)
    text = match.group(1) if match else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedContentError(raw) from e
    if not isinstance(data, dict):
        raise MalformedContentError(raw)
    return data


def parse_structured_response(raw: str, kind: str = "problem") -> dict[str, Any]:
    """Parse a reply, falling back to a minimally-populated record of the given kind."""
    try:
        return extract_json(raw)
    except MalformedContentError:
        logger.warning(f"Malformed {kind} response from content service; using raw-text fallback")
        return FALLBACKS.get(kind, _problem_fallback)(raw)


class GenerativeClient:
    """Thin Messages API client."""

    def __init__(
        self,
        api_key: str | None,
        model: str,
        base_url: str = "https://api.anthropic.com",
        timeout_seconds: float = 60.0,
        max_tokens: int = 2000,
        http_client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.client = http_client or httpx.Client(timeout=httpx.Timeout(timeout_seconds))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def close(self) -> None:
        self.client.close()

    def complete(self, prompt: str, max_tokens: int | None = None, temperature: float = 0.7) -> str:
        """
        Send one user prompt and return the reply text.

        Raises:
            ServiceUnavailableError: No API key, transport failure or error status
        """
        if not self.api_key:
            raise ServiceUnavailableError("generative content service is not configured")

        try:
            response = self.client.post(
                f"{self.base_url}/v1/messages",
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
                json={
                    "model": self.model,
                    "max_tokens": max_tokens or self.max_tokens,
                    "temperature": temperature,
                    "messages": [{"role": "user", "content": prompt}],
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ServiceUnavailableError(f"content service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ServiceUnavailableError(f"content service unreachable: {e}") from e

        blocks = response.json().get("content") or []
        return "".join(b.get("text", "") for b in blocks if b.get("type", "text") == "text")


def grade_range(grade_level: int) -> str:
    if grade_level <= 2:
        return "Early Elementary (K-2)"
    if grade_level <= 5:
        return "Upper Elementary (3-5)"
    if grade_level <= 8:
        return "Middle School (6-8)"
    return "High School (9-12)"


class ContentGenerator:
    """Structured content requests on top of a GenerativeClient."""

    def __init__(self, client: GenerativeClient):
        self.client = client

    @property
    def is_available(self) -> bool:
        return self.client.is_configured

    def generate_problem(
        self, topic: str, difficulty: int, grade_level: int, style: str = "word-problem"
    ) -> dict[str, Any]:
        prompt = (
            f"Create one {style} practice problem on '{topic}' for {grade_range(grade_level)} "
            f"at difficulty {difficulty}/10. Return JSON with: problem, answer, solution (list), "
            f"explanation, hints (list), common_mistakes (list), real_world_application."
        )
        problem = parse_structured_response(self.client.complete(prompt, temperature=0.9), "problem")
        problem.update(
            id=new_id("generated"),
            topic=topic,
            difficulty=difficulty,
            grade_level=grade_level,
            type="ai-generated",
        )
        return problem

    def generate_explanation(self, concept: str, grade_level: int) -> dict[str, Any]:
        prompt = (
            f"Explain '{concept}' to a {grade_range(grade_level)} student. "
            f"Return JSON with: definition, explanation, examples (list)."
        )
        return parse_structured_response(self.client.complete(prompt), "explanation")

    def generate_hint(self, question: Question, attempt_number: int, grade_level: int) -> str:
        prompt = (
            f"A {grade_range(grade_level)} student is stuck on: {question.text or question.id}\n"
            f"Give hint number {attempt_number}; do not reveal the answer. Reply with the hint only."
        )
        return self.client.complete(prompt, max_tokens=300).strip()

    def explain_mistake(self, question: Question, student_answer: str, grade_level: int) -> str:
        prompt = (
            f"Question: {question.text or question.id}\n"
            f"Correct answer: {question.correct_answer}\n"
            f"Student answered: {student_answer}\n"
            f"In two or three sentences for a {grade_range(grade_level)} student, explain the "
            f"likely misunderstanding and how to fix it."
        )
        return self.client.complete(prompt, max_tokens=500).strip()

    def refine_curriculum(
        self,
        curriculum: CurriculumVersion,
        performance: PerformanceSnapshot,
        feedback: list[FeedbackRecord],
    ) -> dict[str, Any]:
        prompt = (
            "Refine this curriculum from the performance and feedback data.\n\n"
            f"Curriculum:\n{json.dumps(curriculum.to_dict(), default=str)}\n\n"
            f"Performance:\n{json.dumps(asdict(performance), default=str)}\n\n"
            f"Feedback:\n{json.dumps([asdict(f) for f in feedback], default=str)}\n\n"
            "Return JSON: {analysis: {strengths, weaknesses, recommendations}, "
            "refinements: [{topicId, changes, reasoning}], newTopics: [], deprecatedTopics: []}"
        )
        return parse_structured_response(
            self.client.complete(prompt, max_tokens=8000, temperature=0.5), "refinement"
        )

    def generate_assessment_questions(self, topic: Topic, count: int = 20) -> list[Question]:
        objectives = "\n".join(f"- {o}" for o in topic.learning_objectives)
        prompt = (
            f"Generate {count} assessment questions for the topic '{topic.name}'"
            f" (grade {topic.grade_level}).\nLearning objectives:\n{objectives}\n"
            "Mix easy (30%), medium (50%) and hard (20%) difficulties and varied types. Return JSON: "
            "{questions: [{id, type, difficulty (1-10), text, correctAnswer, explanation, hints}]}"
        )
        data = parse_structured_response(
            self.client.complete(prompt, max_tokens=12000, temperature=0.8), "questions"
        )
        questions = []
        for raw in data.get("questions") or []:
            if not isinstance(raw, dict):
                continue
            questions.append(
                Question.from_dict({**raw, "id": new_id("q"), "topic_id": topic.id})
            )
        return questions
