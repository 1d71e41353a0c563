"""Feature extraction: candidate + job -> seven bounded sub-scores.

Pure and total. Missing candidate data degrades a sub-score to the
configured midpoint instead of failing; a job that states no requirement
for a dimension satisfies it vacuously (100).
"""

import logging
import re

from src.core.config import ExperienceBands, FeatureConfig
from src.core.schemas import (
    EXPERIENCE_BAND_ORDER,
    CandidateProfile,
    ExperienceLevel,
    JobRequirement,
    SubScores,
    WorkType,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9+#]+")
_TITLE_STOPWORDS = frozenset({"a", "an", "and", "at", "for", "in", "of", "the", "to", "with"})

FULL_SCORE = 100.0


def extract(
    candidate: CandidateProfile,
    job: JobRequirement,
    config: FeatureConfig | None = None,
) -> SubScores:
    """Compute all seven sub-scores for a (candidate, job) pair.

    Args:
        candidate: The candidate's profile.
        job: The job's requirements.
        config: Partial-credit constants; defaults to FeatureConfig().

    Returns:
        SubScores with every dimension clamped to [0, 100].
    """
    config = config or FeatureConfig()
    scores = SubScores(
        skills=_clamp(skills_score(candidate, job)),
        experience=_clamp(experience_score(candidate, job, config)),
        location=_clamp(location_score(candidate, job, config)),
        salary=_clamp(salary_score(candidate, job, config)),
        work_type=_clamp(work_type_score(candidate, job)),
        industry=_clamp(industry_score(candidate, job, config)),
        title_relevance=_clamp(title_score(candidate, job, config)),
    )
    logger.debug(
        "Sub-scores for %s on %s: %s", candidate.id, job.id, scores.model_dump(),
    )
    return scores


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------


def matched_skills(candidate: CandidateProfile, job: JobRequirement) -> list[str]:
    """Return the job's required skills (normalized) that the candidate covers.

    A required skill is covered when it is a case-insensitive substring of a
    candidate skill, or a candidate skill is a substring of it.
    """
    have = _normalize_skills(candidate.skills)
    return [req for req in _normalize_skills(job.skills) if _skill_present(req, have)]


def skills_score(candidate: CandidateProfile, job: JobRequirement) -> float:
    required = _normalize_skills(job.skills)
    if not required:
        return FULL_SCORE
    return len(matched_skills(candidate, job)) / len(required) * FULL_SCORE


def _normalize_skills(skills: list[str]) -> list[str]:
    """Casefold, strip, drop blanks and duplicates, keep order."""
    seen: list[str] = []
    for skill in skills:
        s = skill.strip().casefold()
        if s and s not in seen:
            seen.append(s)
    return seen


def _skill_present(required: str, have: list[str]) -> bool:
    return any(required in s or s in required for s in have)


# ---------------------------------------------------------------------------
# Experience
# ---------------------------------------------------------------------------


def band_for_years(years: float, bands: ExperienceBands) -> ExperienceLevel:
    """Map years of experience onto an experience band."""
    if years < bands.entry_max_years:
        return ExperienceLevel.ENTRY
    if years < bands.mid_max_years:
        return ExperienceLevel.MID
    if years < bands.senior_max_years:
        return ExperienceLevel.SENIOR
    return ExperienceLevel.EXECUTIVE


def experience_score(
    candidate: CandidateProfile, job: JobRequirement, config: FeatureConfig,
) -> float:
    if job.experience_level is None:
        return FULL_SCORE

    # Years are the primary signal; the self-reported tag is a fallback.
    if candidate.years_of_experience is not None:
        band = band_for_years(candidate.years_of_experience, config.bands)
    elif candidate.experience_level is not None:
        band = candidate.experience_level
    else:
        return config.missing_data_score

    distance = abs(EXPERIENCE_BAND_ORDER[band] - EXPERIENCE_BAND_ORDER[job.experience_level])
    if distance == 0:
        return FULL_SCORE
    if distance == 1:
        return config.adjacent_band_score
    return config.distant_band_score


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


def location_score(
    candidate: CandidateProfile, job: JobRequirement, config: FeatureConfig,
) -> float:
    if job.work_type == WorkType.REMOTE:
        return FULL_SCORE
    job_place = _normalize_place(job.location)
    if not job_place:
        return FULL_SCORE
    candidate_place = _normalize_place(candidate.location)
    if not candidate_place:
        return config.missing_data_score
    if candidate_place == job_place or _city(candidate_place) == _city(job_place):
        return FULL_SCORE
    # No exact match is not proof of mismatch (relocation is possible).
    return config.location_partial_score


def _normalize_place(place: str) -> str:
    return " ".join(place.casefold().split())


def _city(place: str) -> str:
    return place.split(",", 1)[0].strip()


# ---------------------------------------------------------------------------
# Salary
# ---------------------------------------------------------------------------


def salary_score(
    candidate: CandidateProfile, job: JobRequirement, config: FeatureConfig,
) -> float:
    if job.salary_min is None and job.salary_max is None:
        return FULL_SCORE

    stated = [
        v for v in (candidate.desired_salary_min, candidate.desired_salary_max) if v is not None
    ]
    if not stated:
        return config.missing_data_score
    # A single stated figure is treated as a point range.
    want_min, want_max = min(stated), max(stated)

    offer_min = job.salary_min if job.salary_min is not None else 0
    offer_max = job.salary_max

    if offer_max is not None and want_min > offer_max:
        gap, reference = want_min - offer_max, offer_max
    elif want_max < offer_min:
        gap, reference = offer_min - want_max, offer_min
    else:
        return FULL_SCORE

    if reference <= 0:
        return 0.0
    ratio = gap / reference
    return FULL_SCORE * (1.0 - ratio / config.salary_zero_gap_ratio)


# ---------------------------------------------------------------------------
# Work type, industry, title
# ---------------------------------------------------------------------------


def work_type_score(candidate: CandidateProfile, job: JobRequirement) -> float:
    if job.work_type is None or candidate.work_type_preference is None:
        return FULL_SCORE
    return FULL_SCORE if candidate.work_type_preference == job.work_type else 0.0


def industry_score(
    candidate: CandidateProfile, job: JobRequirement, config: FeatureConfig,
) -> float:
    wanted = job.industry.strip().casefold()
    if not wanted:
        return FULL_SCORE
    recent = candidate.recent_industry.strip().casefold()
    if not recent:
        return config.missing_data_score
    return FULL_SCORE if recent == wanted else config.industry_transfer_score


def title_tokens(title: str) -> set[str]:
    return {t for t in _TOKEN_RE.findall(title.casefold()) if t not in _TITLE_STOPWORDS}


def title_score(
    candidate: CandidateProfile, job: JobRequirement, config: FeatureConfig,
) -> float:
    """Overlap coefficient between title token sets, scaled to 100."""
    job_tokens = title_tokens(job.title)
    if not job_tokens:
        return FULL_SCORE
    candidate_tokens = title_tokens(candidate.recent_title)
    if not candidate_tokens:
        return config.missing_data_score
    shared = len(job_tokens & candidate_tokens)
    return shared / min(len(job_tokens), len(candidate_tokens)) * FULL_SCORE


def _clamp(value: float) -> float:
    return max(0.0, min(FULL_SCORE, value))
