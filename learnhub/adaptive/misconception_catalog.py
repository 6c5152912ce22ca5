"""
Static catalog of common K-12 misconceptions.

Each entry links recurring wrong answers to the underlying conceptual error
and the strategies used to remediate it. affected_topics are matched as
substrings of topic ids ("integers" matches "grade6-integers-addition").
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MisconceptionPattern:
    id: str
    subject: str
    name: str
    description: str
    common_errors: tuple[str, ...]
    affected_topics: tuple[str, ...]
    remediation_strategies: tuple[str, ...]

    def matches_topic(self, topic_id: str) -> bool:
        return any(fragment in topic_id for fragment in self.affected_topics)


_PATTERNS: tuple[MisconceptionPattern, ...] = (
    # Math
    MisconceptionPattern(
        id="negative-number-operations",
        subject="math",
        name="Negative Number Operations",
        description="Confusion about rules for adding/subtracting/multiplying negative numbers",
        common_errors=(
            "Thinking two negatives always make a positive",
            "Confusion about negative times negative",
            "Adding negatives incorrectly",
        ),
        affected_topics=("integers", "algebra", "equations"),
        remediation_strategies=(
            "Number line visualization",
            "Real-world context (debts, temperatures)",
            "Pattern recognition exercises",
        ),
    ),
    MisconceptionPattern(
        id="fraction-operations",
        subject="math",
        name="Fraction Operations",
        description="Applying whole number rules to fractions",
        common_errors=(
            "Adding numerators and denominators separately",
            "Multiplying denominators instead of cross-multiplying",
            "Not finding common denominators",
        ),
        affected_topics=("fractions", "decimals", "ratios"),
        remediation_strategies=(
            "Visual fraction models",
            "Pizza/pie analogies",
            "Step-by-step procedures",
        ),
    ),
    MisconceptionPattern(
        id="order-of-operations",
        subject="math",
        name="Order of Operations",
        description="Not following PEMDAS/BODMAS correctly",
        common_errors=(
            "Working left to right without regard to operations",
            "Not handling parentheses first",
            "Confusion about multiplication/division order",
        ),
        affected_topics=("arithmetic", "algebra", "expressions"),
        remediation_strategies=(
            "PEMDAS mnemonics",
            "Color-coded operation highlighting",
            "Step-by-step breakdown",
        ),
    ),
    MisconceptionPattern(
        id="variable-misconception",
        subject="math",
        name="Variable Understanding",
        description="Treating variables as labels rather than unknowns",
        common_errors=(
            "Thinking x always equals a specific number",
            "Not understanding variables can represent any value",
            "Confusion about solving for variables",
        ),
        affected_topics=("algebra", "equations", "functions"),
        remediation_strategies=(
            "Mystery box analogies",
            "Substitution exercises",
            "Real-world variable examples",
        ),
    ),
    # Reading
    MisconceptionPattern(
        id="main-idea-vs-detail",
        subject="reading",
        name="Main Idea vs Details",
        description="Confusing supporting details with main ideas",
        common_errors=(
            "Selecting a detail as the main idea",
            "Not identifying the overarching theme",
            "Focusing on interesting but minor points",
        ),
        affected_topics=("comprehension", "summarizing", "analysis"),
        remediation_strategies=(
            "Umbrella analogy (main idea covers details)",
            "Topic sentence identification",
            "Paragraph outlining",
        ),
    ),
    MisconceptionPattern(
        id="inference-confusion",
        subject="reading",
        name="Inference Confusion",
        description="Difficulty distinguishing explicit vs implicit information",
        common_errors=(
            "Looking for directly stated answers",
            "Not using context clues",
            "Making unsupported inferences",
        ),
        affected_topics=("comprehension", "critical-thinking", "analysis"),
        remediation_strategies=(
            "Detective work analogies",
            "Evidence-based reasoning",
            "Think-aloud protocols",
        ),
    ),
    # Science
    MisconceptionPattern(
        id="hypothesis-vs-theory",
        subject="science",
        name="Hypothesis vs Theory Confusion",
        description="Misunderstanding scientific terminology",
        common_errors=(
            'Using "theory" to mean "guess"',
            "Not understanding hypothesis testing",
            "Confusing law with theory",
        ),
        affected_topics=("scientific-method", "inquiry", "experimentation"),
        remediation_strategies=(
            "Scientific method review",
            "Real-world scientific examples",
            "Terminology clarification",
        ),
    ),
    # Writing
    MisconceptionPattern(
        id="run-on-sentences",
        subject="writing",
        name="Run-on Sentences",
        description="Joining independent clauses incorrectly",
        common_errors=(
            "Using comma splices",
            "Not using conjunctions properly",
            "Missing punctuation between clauses",
        ),
        affected_topics=("grammar", "punctuation", "sentence-structure"),
        remediation_strategies=(
            "FANBOYS conjunctions",
            "Semicolon usage",
            "Breaking into shorter sentences",
        ),
    ),
    MisconceptionPattern(
        id="subject-verb-agreement",
        subject="writing",
        name="Subject-Verb Agreement",
        description="Mismatching subject and verb number",
        common_errors=(
            "Using plural verb with singular subject",
            "Confusion with compound subjects",
            "Intervening phrases causing errors",
        ),
        affected_topics=("grammar", "writing", "editing"),
        remediation_strategies=(
            "Subject identification",
            "Crossing out prepositional phrases",
            "Verb conjugation practice",
        ),
    ),
)


class MisconceptionCatalog:
    """Lookup over misconception patterns, grouped by subject."""

    def __init__(self, patterns: tuple[MisconceptionPattern, ...] | list[MisconceptionPattern] = _PATTERNS):
        self._patterns = tuple(patterns)
        self._by_id = {p.id: p for p in self._patterns}

    def for_subject(self, subject: str | None) -> list[MisconceptionPattern]:
        if subject is None:
            return list(self._patterns)
        return [p for p in self._patterns if p.subject == subject]

    def get(self, misconception_id: str) -> MisconceptionPattern | None:
        return self._by_id.get(misconception_id)

    def subjects(self) -> list[str]:
        return sorted({p.subject for p in self._patterns})

    def __len__(self) -> int:
        return len(self._patterns)


DEFAULT_CATALOG = MisconceptionCatalog()
