"""Ranker: total ordering of a job's scored candidates.

Sort keys, in order:
  1. total descending
  2. exam score descending (no exam sorts after any exam)
  3. application timestamp ascending (first come, first ranked)
  4. candidate id ascending (keeps the order total when timestamps collide)

Ranks are 1-based and unique. Filters and sort views never re-rank: they
narrow or reorder an already-ranked list, so a candidate's rank is the same
in every view.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum

from src.core.schemas import CandidateScore

logger = logging.getLogger(__name__)


class SortField(str, Enum):
    TOTAL = "total"
    EXAM = "exam"
    APPLIED = "applied"


# Missing exams count as 0 for display sorting.
_SORT_FIELDS: dict[SortField, Callable[[CandidateScore], float]] = {
    SortField.TOTAL: lambda s: float(s.total),
    SortField.EXAM: lambda s: float(s.exam_score or 0),
    SortField.APPLIED: lambda s: s.applied_at.timestamp(),
}


def rank_key(score: CandidateScore) -> tuple[int, int, int, datetime, str]:
    has_exam = score.exam_score is not None
    return (
        -score.total,
        0 if has_exam else 1,
        -(score.exam_score or 0),
        score.applied_at,
        score.candidate_id,
    )


def rank(scores: Iterable[CandidateScore]) -> list[CandidateScore]:
    """Order one job's scores and assign ranks 1..N.

    Raises:
        ValueError: If the scores belong to more than one job, or a candidate
            appears twice.
    """
    pool = list(scores)
    if not pool:
        return []
    job_ids = {s.job_id for s in pool}
    if len(job_ids) > 1:
        msg = f"Cannot rank scores from multiple jobs: {sorted(job_ids)}"
        raise ValueError(msg)
    candidate_ids = [s.candidate_id for s in pool]
    if len(set(candidate_ids)) != len(candidate_ids):
        msg = "Duplicate candidate in ranking pool"
        raise ValueError(msg)

    ordered = sorted(pool, key=rank_key)
    ranked = [s.model_copy(update={"rank": i}) for i, s in enumerate(ordered, start=1)]
    logger.debug("Ranked %d candidates for job %s", len(ranked), pool[0].job_id)
    return ranked


def sort_view(
    ranked: list[CandidateScore],
    by: SortField = SortField.TOTAL,
    descending: bool = True,
) -> list[CandidateScore]:
    """Reorder a ranked list for display; ranks are left untouched.

    Ties within the chosen field fall back to global rank.
    """
    field = _SORT_FIELDS[SortField(by)]
    sign = -1.0 if descending else 1.0
    return sorted(ranked, key=lambda s: (sign * field(s), s.rank or 0))


def top(ranked: list[CandidateScore], n: int) -> list[CandidateScore]:
    """First n entries of a ranked (or filtered) view."""
    return ranked[: max(0, n)]
