"""LLM-based content quality evaluation."""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

from wikigen.constants.confidence import (
    EVALUATION_CRITERIA,
    EVALUATION_DEFAULT_CRITERION,
    EVALUATION_MAX_CRITERION,
    EVALUATION_MAX_TOKENS,
    EVALUATION_MIN_CRITERION,
    EVALUATION_TEMPERATURE,
)
from wikigen.generation.prompts import EVALUATION_SYSTEM_PROMPT, build_evaluation_prompt
from wikigen.llm.client import LLMClient, LLMError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?|```")


@dataclass
class EvaluationResult:
    """Five criterion scores (1-20 each) and their 0-100 sum."""

    score: int
    criteria: dict[str, int] = field(default_factory=dict)
    feedback: str = ""
    evaluation_time_ms: int = 0
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "criteria": dict(self.criteria),
            "feedback": self.feedback,
            "evaluation_time_ms": self.evaluation_time_ms,
            "degraded": self.degraded,
        }


@dataclass
class ScoreInterpretation:
    label: str
    should_publish: bool
    color: str


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences an LLM may wrap around JSON."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _FENCE_RE.sub("", stripped).strip()
    return stripped


def _clamp_criterion(value: Any) -> int:
    return max(EVALUATION_MIN_CRITERION, min(EVALUATION_MAX_CRITERION, round(float(value))))


def parse_evaluation_response(response: str) -> tuple[dict[str, int], str]:
    """Parse and clamp criterion scores.

    Raises:
        ValueError: If the response is not JSON or a criterion is missing.
    """
    parsed = json.loads(strip_code_fences(response))
    if not isinstance(parsed, dict):
        raise ValueError("Evaluation response is not a JSON object")
    try:
        criteria = {name: _clamp_criterion(parsed[name]) for name in EVALUATION_CRITERIA}
    except (KeyError, TypeError) as e:
        raise ValueError(f"Evaluation response missing criterion: {e}") from e
    return criteria, str(parsed.get("feedback") or "No feedback provided")


def default_evaluation(elapsed_ms: int = 0) -> EvaluationResult:
    """Neutral score used when evaluation cannot be completed."""
    criteria = {name: EVALUATION_DEFAULT_CRITERION for name in EVALUATION_CRITERIA}
    return EvaluationResult(
        score=sum(criteria.values()),
        criteria=criteria,
        feedback="Evaluation failed, using default score",
        evaluation_time_ms=elapsed_ms,
        degraded=True,
    )


def interpret_score(score: int) -> ScoreInterpretation:
    if score >= 90:
        return ScoreInterpretation("Excellent", True, "green")
    if score >= 75:
        return ScoreInterpretation("Good", True, "green")
    if score >= 60:
        return ScoreInterpretation("Acceptable", True, "yellow")
    if score >= 40:
        return ScoreInterpretation("Poor", False, "orange")
    return ScoreInterpretation("Failed", False, "red")


class ContentEvaluator:
    """Scores a generated page on completeness, accuracy, structure,
    actionability and conciseness.

    Evaluation is advisory: on any provider or parsing failure a neutral
    result flagged ``degraded`` is returned.
    """

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def evaluate(self, topic: str, content: str, sources: list[str]) -> EvaluationResult:
        start = time.perf_counter()
        prompt = build_evaluation_prompt(topic, content, sources)
        try:
            response = await self.llm.generate_with_json(
                prompt,
                system_prompt=EVALUATION_SYSTEM_PROMPT,
                temperature=EVALUATION_TEMPERATURE,
                max_tokens=EVALUATION_MAX_TOKENS,
            )
            criteria, feedback = parse_evaluation_response(response)
        except (LLMError, ValueError) as e:
            logger.warning(f"Content evaluation failed for '{topic}': {e}")
            return default_evaluation(int((time.perf_counter() - start) * 1000))

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        score = sum(criteria.values())
        logger.info(f"Evaluated '{topic}': {score}/100 in {elapsed_ms}ms")
        return EvaluationResult(
            score=score, criteria=criteria, feedback=feedback, evaluation_time_ms=elapsed_ms
        )
