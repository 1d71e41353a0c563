"""Display filters over a ranked candidate list.

Filters narrow an already-ranked list; they never recompute rank, so a
candidate shows the same global rank under every filter combination.
Each filter is a stateless callable and every query is a fresh pass.
"""

import logging
from collections.abc import Callable, Iterable

from src.core.schemas import CandidateScore, CandidateStatus

logger = logging.getLogger(__name__)

# A filter is a callable that takes ranked scores and returns a subset, order preserved.
Filter = Callable[[list[CandidateScore]], list[CandidateScore]]


class StatusFilter:
    """Keep candidates whose status is in the given set. Empty set is a no-op."""

    def __init__(self, statuses: Iterable[CandidateStatus | str]) -> None:
        self._statuses = {CandidateStatus(s) for s in statuses}

    def __call__(self, scores: list[CandidateScore]) -> list[CandidateScore]:
        if not self._statuses:
            return scores
        result = [s for s in scores if s.status in self._statuses]
        _log_removed("StatusFilter", scores, result)
        return result


class ScoreRangeFilter:
    """Keep candidates whose total lies within [min_score, max_score] inclusive."""

    def __init__(self, min_score: int = 0, max_score: int = 100) -> None:
        if min_score > max_score:
            msg = f"min_score ({min_score}) must not exceed max_score ({max_score})"
            raise ValueError(msg)
        self._min = min_score
        self._max = max_score

    def __call__(self, scores: list[CandidateScore]) -> list[CandidateScore]:
        result = [s for s in scores if self._min <= s.total <= self._max]
        _log_removed("ScoreRangeFilter", scores, result)
        return result


class AutoQualifiedFilter:
    """Keep only auto-qualified candidates."""

    def __call__(self, scores: list[CandidateScore]) -> list[CandidateScore]:
        result = [s for s in scores if s.auto_qualified]
        _log_removed("AutoQualifiedFilter", scores, result)
        return result


class SkillTokenFilter:
    """Keep candidates having at least one skill containing any token (case-insensitive).

    If no tokens are given, the filter is a no-op.
    """

    def __init__(self, tokens: Iterable[str]) -> None:
        self._tokens = [t.casefold().strip() for t in tokens if t.strip()]

    def __call__(self, scores: list[CandidateScore]) -> list[CandidateScore]:
        if not self._tokens:
            return scores
        result = [s for s in scores if self._matches(s)]
        _log_removed("SkillTokenFilter", scores, result)
        return result

    def _matches(self, score: CandidateScore) -> bool:
        skills = [skill.casefold() for skill in score.skills]
        return any(token in skill for token in self._tokens for skill in skills)


def build_filters(
    statuses: Iterable[CandidateStatus | str] = (),
    min_score: int = 0,
    max_score: int = 100,
    auto_qualified_only: bool = False,
    skill_tokens: Iterable[str] = (),
) -> list[Filter]:
    """Assemble the standard filter chain from view parameters."""
    filters: list[Filter] = [
        StatusFilter(statuses),
        ScoreRangeFilter(min_score, max_score),
    ]
    if auto_qualified_only:
        filters.append(AutoQualifiedFilter())
    filters.append(SkillTokenFilter(skill_tokens))
    return filters


def run_filter_chain(
    scores: list[CandidateScore],
    filters: list[Filter],
) -> list[CandidateScore]:
    """Apply filters in order, returning the surviving candidates."""
    result = scores
    for f in filters:
        result = f(result)
    return result


def _log_removed(name: str, before: list[CandidateScore], after: list[CandidateScore]) -> None:
    removed = len(before) - len(after)
    if removed:
        logger.debug("%s: removed %d candidates", name, removed)
