"""Composite scoring: weighted sum of sub-scores.

Score range: 0-100. Weights come from the versioned ScoringWeights table.
The exam score stays separate from the total unless the job configures an
exam weight; then the seven structural weights are rescaled by
(1 - exam_weight) so the full set still sums to 1.0.
"""

import logging
import math

from src.core.config import WEIGHT_SUM_TOLERANCE, ScoringWeights
from src.core.errors import WeightTableError
from src.core.schemas import DIMENSIONS, ExamOutcome, SubScores

logger = logging.getLogger(__name__)

EXAM_DIMENSION = "exam"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative input."""
    return int(math.floor(value + 0.5))


def check_weights(weights: ScoringWeights) -> None:
    """Raise WeightTableError unless the structural weights sum to 1.0."""
    total = sum(weights.as_dict()[d] for d in DIMENSIONS)
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        msg = f"Weight table {weights.version!r} sums to {total:.6f}, expected 1.0"
        raise WeightTableError(msg)


def effective_weights(
    weights: ScoringWeights,
    exam_weight: float | None = None,
    exam: ExamOutcome | None = None,
) -> dict[str, float]:
    """Return the weights actually applied, in canonical order.

    The exam dimension is included only when a weight is configured AND an
    exam outcome exists; an ungraded exam never distorts the structural score.
    """
    base = weights.as_dict()
    if not exam_weight or exam is None:
        return {d: base[d] for d in DIMENSIONS}
    scale = 1.0 - exam_weight
    applied = {d: base[d] * scale for d in DIMENSIONS}
    applied[EXAM_DIMENSION] = exam_weight
    return applied


def weighted_sum(
    sub_scores: SubScores,
    weights: ScoringWeights,
    exam: ExamOutcome | None = None,
    exam_weight: float | None = None,
) -> float:
    """Exact (unrounded) composite score."""
    applied = effective_weights(weights, exam_weight, exam)
    values = sub_scores.model_dump()
    total = 0.0
    for dimension in DIMENSIONS:
        total += values[dimension] * applied[dimension]
    if EXAM_DIMENSION in applied and exam is not None:
        total += exam.score * applied[EXAM_DIMENSION]
    return max(0.0, min(100.0, total))


def compose(
    sub_scores: SubScores,
    weights: ScoringWeights,
    exam: ExamOutcome | None = None,
    exam_weight: float | None = None,
) -> int:
    """Composite total rounded to the nearest integer (0-100)."""
    return round_half_up(weighted_sum(sub_scores, weights, exam, exam_weight))


def contributions(
    sub_scores: SubScores,
    weights: ScoringWeights,
    exam: ExamOutcome | None = None,
    exam_weight: float | None = None,
) -> dict[str, float]:
    """Per-dimension points contributed to the total, for match explanations."""
    applied = effective_weights(weights, exam_weight, exam)
    values = sub_scores.model_dump()
    result = {d: values[d] * applied[d] for d in DIMENSIONS}
    if EXAM_DIMENSION in applied and exam is not None:
        result[EXAM_DIMENSION] = exam.score * applied[EXAM_DIMENSION]
    return result
