"""
Adaptive layer.

Components:
- MisconceptionCatalog: static error patterns and their remedies
- MistakeTracker: mistake log, pattern detection and severity scoring
- MistakeVisualizer: dashboard summaries of the mistake log
- RemediationPlanner: ordered practice sessions for detected patterns
- PerformanceTracker: rolling accuracy and adaptive target difficulty
"""
from learnhub.adaptive.misconception_catalog import (
    DEFAULT_CATALOG,
    MisconceptionCatalog,
    MisconceptionPattern,
)
from learnhub.adaptive.mistake_analyzer import (
    MistakeTracker,
    MistakeVisualizer,
    PatternAnalysis,
    Recommendation,
    estimate_remediation_time,
)
from learnhub.adaptive.performance_tracker import (
    HintSystem,
    PerformanceTracker,
    select_adaptive_questions,
)
from learnhub.adaptive.remediation_planner import RemediationPlanner

__all__ = [
    "DEFAULT_CATALOG",
    "MisconceptionCatalog",
    "MisconceptionPattern",
    "MistakeTracker",
    "MistakeVisualizer",
    "PatternAnalysis",
    "Recommendation",
    "estimate_remediation_time",
    "HintSystem",
    "PerformanceTracker",
    "select_adaptive_questions",
    "RemediationPlanner",
]
