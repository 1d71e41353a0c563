"""Core data models for the candidate scoring engine."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class WorkType(str, Enum):
    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"


class ExperienceLevel(str, Enum):
    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    EXECUTIVE = "executive"


# Ordinal position of each band; distance between bands drives the experience sub-score.
EXPERIENCE_BAND_ORDER: dict[ExperienceLevel, int] = {
    ExperienceLevel.ENTRY: 0,
    ExperienceLevel.MID: 1,
    ExperienceLevel.SENIOR: 2,
    ExperienceLevel.EXECUTIVE: 3,
}


class JobStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class ExamAttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class CandidateStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    CONTACTED = "contacted"
    INTERVIEWED = "interviewed"
    HIRED = "hired"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


TERMINAL_STATUSES = frozenset(
    {CandidateStatus.HIRED, CandidateStatus.REJECTED, CandidateStatus.WITHDRAWN}
)

# Statuses that grant direct-messaging access regardless of qualification.
MESSAGING_STATUSES = frozenset(
    {CandidateStatus.CONTACTED, CandidateStatus.INTERVIEWED, CandidateStatus.HIRED}
)


class TransitionTrigger(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class Actor(str, Enum):
    REVIEWER = "reviewer"
    CANDIDATE = "candidate"
    SYSTEM = "system"


def _lower_enum_input(v: Any) -> Any:
    """Accept enum values case-insensitively and treat blank strings as unset."""
    if isinstance(v, str):
        v = v.strip().lower()
        return v or None
    return v


class ExamConfig(BaseModel):
    """Assessment settings attached to a job posting."""

    model_config = ConfigDict(frozen=True)

    passing_score: int = Field(default=70, ge=0, le=100)
    time_limit_minutes: int = Field(default=30, ge=1)
    allow_retakes: bool = False
    required: bool = False
    weight: float | None = Field(default=None, ge=0.0, lt=1.0)


class JobRequirement(BaseModel):
    """A published job posting, as consumed from the job-posting subsystem.

    Frozen: edits by the posting party produce a new instance.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    skills: list[str] = Field(default_factory=list)
    location: str = ""
    salary_min: int | None = Field(default=None, ge=0)
    salary_max: int | None = Field(default=None, ge=0)
    work_type: WorkType | None = None
    industry: str = ""
    experience_level: ExperienceLevel | None = None
    exam: ExamConfig | None = None
    status: JobStatus = JobStatus.ACTIVE
    auto_connect_limit: int = Field(default=5, ge=0)

    @field_validator("work_type", "experience_level", "status", mode="before")
    @classmethod
    def normalize_enum(cls, v: Any) -> Any:
        return _lower_enum_input(v)

    @model_validator(mode="after")
    def salary_range_ordered(self) -> "JobRequirement":
        if (
            self.salary_min is not None
            and self.salary_max is not None
            and self.salary_min > self.salary_max
        ):
            msg = "salary_min must not exceed salary_max"
            raise ValueError(msg)
        return self


class CandidateProfile(BaseModel):
    """A candidate's structured profile.

    Owned by the candidate and the resume ingestion pipeline; the engine only reads it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    skills: list[str] = Field(default_factory=list)
    years_of_experience: float | None = Field(default=None, ge=0.0)
    experience_level: ExperienceLevel | None = None
    location: str = ""
    desired_salary_min: int | None = Field(default=None, ge=0)
    desired_salary_max: int | None = Field(default=None, ge=0)
    work_type_preference: WorkType | None = None
    industry_history: list[str] = Field(default_factory=list)  # most recent first
    recent_title: str = ""
    applied_at: datetime = Field(default_factory=datetime.now)

    @field_validator("experience_level", "work_type_preference", mode="before")
    @classmethod
    def normalize_enum(cls, v: Any) -> Any:
        return _lower_enum_input(v)

    @model_validator(mode="after")
    def desired_salary_ordered(self) -> "CandidateProfile":
        if (
            self.desired_salary_min is not None
            and self.desired_salary_max is not None
            and self.desired_salary_min > self.desired_salary_max
        ):
            msg = "desired_salary_min must not exceed desired_salary_max"
            raise ValueError(msg)
        return self

    @property
    def recent_industry(self) -> str:
        for industry in self.industry_history:
            if industry.strip():
                return industry
        return ""


class ExamResult(BaseModel):
    """A single exam attempt submitted by a candidate. Append-only."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    job_id: str
    raw_score: float = Field(ge=0.0)
    total_points: float = Field(gt=0.0)
    completed_at: datetime
    time_spent_minutes: float = Field(default=0.0, ge=0.0)
    status: ExamAttemptStatus = ExamAttemptStatus.COMPLETED

    @model_validator(mode="after")
    def raw_within_total(self) -> "ExamResult":
        if self.raw_score > self.total_points:
            msg = "raw_score must not exceed total_points"
            raise ValueError(msg)
        return self


class SubScores(BaseModel):
    """The seven per-dimension scores, each within [0, 100]."""

    model_config = ConfigDict(frozen=True)

    skills: float = Field(ge=0.0, le=100.0)
    experience: float = Field(ge=0.0, le=100.0)
    location: float = Field(ge=0.0, le=100.0)
    salary: float = Field(ge=0.0, le=100.0)
    work_type: float = Field(ge=0.0, le=100.0)
    industry: float = Field(ge=0.0, le=100.0)
    title_relevance: float = Field(ge=0.0, le=100.0)


# Canonical dimension order; summation always follows it so totals are bit-identical.
DIMENSIONS: tuple[str, ...] = tuple(SubScores.model_fields)


class ExamOutcome(BaseModel):
    """Scored exam attempt."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    passed: bool
    within_time_limit: bool = True
    completed_at: datetime


class RuleCheck(BaseModel):
    """Outcome of one qualification rule."""

    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    applied: bool = True
    detail: str


class QualificationVerdict(BaseModel):
    """Auto-qualification decision with an auditable rationale."""

    model_config = ConfigDict(frozen=True)

    auto_qualified: bool
    reason: str
    checks: tuple[RuleCheck, ...] = ()


class CandidateScore(BaseModel):
    """Derived score record for one (candidate, job) pair.

    Recomputed on demand, never hand-edited. ``raw_total`` is the exact
    weighted sum; ``total`` is its rounded, user-facing form.
    """

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    job_id: str
    sub_scores: SubScores
    exam_score: int | None = Field(default=None, ge=0, le=100)
    exam_passed: bool | None = None
    exam_within_time_limit: bool | None = None
    raw_total: float = Field(ge=0.0, le=100.0)
    total: int = Field(ge=0, le=100)
    auto_qualified: bool = False
    reason: str = ""
    rank: int | None = Field(default=None, ge=1)
    status: CandidateStatus = CandidateStatus.PENDING
    skills: tuple[str, ...] = ()
    applied_at: datetime
    weights_version: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.candidate_id, self.job_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class StatusTransitionEvent(BaseModel):
    """Emitted on every status change, for notification delivery."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    job_id: str
    from_status: CandidateStatus
    to_status: CandidateStatus
    trigger: TransitionTrigger
    actor: Actor
    occurred_at: datetime = Field(default_factory=datetime.now)
    note: str = ""
