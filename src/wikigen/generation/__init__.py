"""Wiki generation: mode selection, prompts, confidence and evaluation.

The pipeline itself lives in ``wikigen.generation.orchestrator``.
"""

from wikigen.generation.confidence import calculate_confidence, is_publishable
from wikigen.generation.evaluator import ContentEvaluator, EvaluationResult
from wikigen.generation.prompts import PromptTemplate, build_system_prompt
from wikigen.generation.quality import (
    GenerationMode,
    QualityAssessment,
    QualityThresholds,
    assess_quality,
)
from wikigen.generation.text import query_to_slug, slug_to_title, validate_query
from wikigen.generation.web import WebAugmentationResult, WebAugmenter

__all__ = [
    # Quality
    "GenerationMode",
    "QualityAssessment",
    "QualityThresholds",
    "assess_quality",
    # Confidence
    "calculate_confidence",
    "is_publishable",
    # Evaluation
    "ContentEvaluator",
    "EvaluationResult",
    # Prompts
    "PromptTemplate",
    "build_system_prompt",
    # Text
    "query_to_slug",
    "slug_to_title",
    "validate_query",
    # Web augmentation
    "WebAugmentationResult",
    "WebAugmenter",
]
