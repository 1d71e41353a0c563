"""ApplicantPool: one job with its candidates and exam attempts, loaded from YAML."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from src.core.schemas import CandidateProfile, CandidateStatus, ExamResult, JobRequirement


class ApplicantPool(BaseModel):
    """Input bundle for scoring a single job's applicants.

    ``statuses`` carries the pipeline status each candidate already has, so
    terminal candidates stay frozen when the pool is rescored.
    """

    job: JobRequirement
    candidates: list[CandidateProfile] = Field(default_factory=list)
    exams: list[ExamResult] = Field(default_factory=list)
    statuses: dict[str, CandidateStatus] = Field(default_factory=dict)

    @model_validator(mode="after")
    def unique_candidates(self) -> "ApplicantPool":
        ids = [c.id for c in self.candidates]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"duplicate candidate ids: {duplicates}"
            raise ValueError(msg)
        return self

    def candidate(self, candidate_id: str) -> CandidateProfile:
        for c in self.candidates:
            if c.id == candidate_id:
                return c
        msg = f"Unknown candidate '{candidate_id}'"
        raise KeyError(msg)

    def exams_for(self, candidate_id: str) -> list[ExamResult]:
        return [
            e for e in self.exams if e.candidate_id == candidate_id and e.job_id == self.job.id
        ]

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ApplicantPool":
        """Load a pool from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Pool file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
