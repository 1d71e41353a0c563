"""Exam scoring: completed assessment attempts -> 0-100 score and pass flag."""

import logging
from collections.abc import Iterable

from src.core.schemas import ExamAttemptStatus, ExamConfig, ExamOutcome, ExamResult
from src.pipeline.scorer import round_half_up

logger = logging.getLogger(__name__)


def authoritative_result(
    results: Iterable[ExamResult],
    allow_retakes: bool,
) -> ExamResult | None:
    """Pick the attempt that counts for a (candidate, job) pair.

    Only completed attempts are eligible. With retakes allowed the latest
    completion wins; otherwise the first completed attempt is the only
    legitimate one and later submissions are ignored.
    """
    completed = [r for r in results if r.status == ExamAttemptStatus.COMPLETED]
    if not completed:
        return None
    # Secondary key keeps the choice independent of input order on identical timestamps.
    ordered = sorted(completed, key=lambda r: (r.completed_at, r.raw_score / r.total_points))
    if allow_retakes:
        return ordered[-1]
    if len(ordered) > 1:
        logger.debug(
            "Retakes disabled: ignoring %d later attempt(s) for %s",
            len(ordered) - 1, ordered[0].candidate_id,
        )
    return ordered[0]


def score_exam(
    results: Iterable[ExamResult],
    config: ExamConfig | None,
) -> ExamOutcome | None:
    """Score the authoritative exam attempt against the job's exam config.

    Returns None when the job has no exam or the candidate has not
    completed one. Absence is distinct from a zero score.
    """
    if config is None:
        return None
    result = authoritative_result(results, config.allow_retakes)
    if result is None:
        return None

    score = round_half_up(result.raw_score / result.total_points * 100)
    score = max(0, min(100, score))
    return ExamOutcome(
        score=score,
        passed=score >= config.passing_score,
        within_time_limit=result.time_spent_minutes <= config.time_limit_minutes,
        completed_at=result.completed_at,
    )
