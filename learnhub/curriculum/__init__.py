"""
Curriculum content source, optimization loop and quality scoring.
"""
from learnhub.curriculum.optimizer import (
    AutoOptimizationScheduler,
    AutoOptimizationSummary,
    CurriculumAnalysis,
    CurriculumOptimizer,
    OptimizationResult,
)
from learnhub.curriculum.quality import CurriculumQualityEvaluator, QualityReport
from learnhub.curriculum.service import CurriculumService

__all__ = [
    "CurriculumService",
    "CurriculumOptimizer",
    "CurriculumAnalysis",
    "OptimizationResult",
    "AutoOptimizationScheduler",
    "AutoOptimizationSummary",
    "CurriculumQualityEvaluator",
    "QualityReport",
]
