"""Pool-level statistics over a job's ranked candidates."""

from collections import Counter

from pydantic import BaseModel, Field

from src.core.schemas import CandidateScore

# (label, inclusive lower bound, inclusive upper bound)
SCORE_BUCKETS: tuple[tuple[str, int, int], ...] = (
    ("90-100", 90, 100),
    ("80-89", 80, 89),
    ("70-79", 70, 79),
    ("60-69", 60, 69),
    ("<60", 0, 59),
)

TOP_SKILLS_LIMIT = 8


class ExamStats(BaseModel):
    completed: int = 0
    average: float | None = None
    pass_rate: float | None = None


class PoolSummary(BaseModel):
    """Aggregate view of one job's candidate pool."""

    job_id: str | None = None
    candidates: int = 0
    auto_qualified: int = 0
    average_total: float = 0.0
    status_counts: dict[str, int] = Field(default_factory=dict)
    distribution: dict[str, int] = Field(default_factory=dict)
    exams: ExamStats = Field(default_factory=ExamStats)
    top_skills: list[tuple[str, int]] = Field(default_factory=list)


def summarize_pool(scores: list[CandidateScore]) -> PoolSummary:
    """Compute counts, averages, score distribution and common skills."""
    if not scores:
        return PoolSummary(distribution={label: 0 for label, _, _ in SCORE_BUCKETS})

    distribution = {
        label: sum(1 for s in scores if low <= s.total <= high)
        for label, low, high in SCORE_BUCKETS
    }
    status_counts = Counter(s.status.value for s in scores)

    examined = [s for s in scores if s.exam_score is not None]
    exams = ExamStats(completed=len(examined))
    if examined:
        exams = ExamStats(
            completed=len(examined),
            average=sum(s.exam_score or 0 for s in examined) / len(examined),
            pass_rate=sum(1 for s in examined if s.exam_passed) / len(examined),
        )

    skills = Counter(
        skill.strip() for s in scores for skill in dict.fromkeys(s.skills) if skill.strip()
    )
    # Ties in frequency are listed alphabetically.
    top_skills = sorted(skills.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_SKILLS_LIMIT]

    return PoolSummary(
        job_id=scores[0].job_id,
        candidates=len(scores),
        auto_qualified=sum(1 for s in scores if s.auto_qualified),
        average_total=sum(s.total for s in scores) / len(scores),
        status_counts=dict(sorted(status_counts.items())),
        distribution=distribution,
        exams=exams,
        top_skills=top_skills,
    )
