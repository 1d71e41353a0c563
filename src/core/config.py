"""Configuration models and YAML loader for the scoring engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Bumped whenever any weight changes: every outstanding score is reclassified.
WEIGHT_TABLE_VERSION = "2025.1"

WEIGHT_SUM_TOLERANCE = 1e-9


class ScoringWeights(BaseModel):
    """Fixed, publicly documented composite weights. Must sum to 1.0."""

    model_config = ConfigDict(frozen=True)

    version: str = WEIGHT_TABLE_VERSION
    skills: float = Field(default=0.35, ge=0.0, le=1.0)
    experience: float = Field(default=0.25, ge=0.0, le=1.0)
    location: float = Field(default=0.15, ge=0.0, le=1.0)
    salary: float = Field(default=0.10, ge=0.0, le=1.0)
    work_type: float = Field(default=0.08, ge=0.0, le=1.0)
    industry: float = Field(default=0.04, ge=0.0, le=1.0)
    title_relevance: float = Field(default=0.03, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> "ScoringWeights":
        if abs(self.total() - 1.0) > WEIGHT_SUM_TOLERANCE:
            msg = f"scoring weights must sum to 1.0, got {self.total():.6f}"
            raise ValueError(msg)
        return self

    def as_dict(self) -> dict[str, float]:
        """Return the dimension weights in canonical order (version excluded)."""
        return self.model_dump(exclude={"version"})

    def total(self) -> float:
        return sum(self.as_dict().values())


class ExperienceBands(BaseModel):
    """Upper bounds (exclusive) in years for each experience band."""

    entry_max_years: float = Field(default=3.0, gt=0.0)
    mid_max_years: float = Field(default=6.0, gt=0.0)
    senior_max_years: float = Field(default=10.0, gt=0.0)

    @model_validator(mode="after")
    def bounds_increasing(self) -> "ExperienceBands":
        if not self.entry_max_years < self.mid_max_years < self.senior_max_years:
            msg = "experience band bounds must be strictly increasing"
            raise ValueError(msg)
        return self


class FeatureConfig(BaseModel):
    """Partial-credit and fallback constants used by the feature extractor."""

    missing_data_score: float = Field(default=50.0, ge=0.0, le=100.0)
    location_partial_score: float = Field(default=50.0, ge=0.0, le=100.0)
    industry_transfer_score: float = Field(default=30.0, ge=0.0, le=100.0)
    adjacent_band_score: float = Field(default=70.0, ge=0.0, le=100.0)
    distant_band_score: float = Field(default=30.0, ge=0.0, le=100.0)
    # Salary gap, as a fraction of the nearest job bound, at which the score reaches 0.
    salary_zero_gap_ratio: float = Field(default=0.5, gt=0.0)
    bands: ExperienceBands = Field(default_factory=ExperienceBands)


class QualificationConfig(BaseModel):
    """Thresholds for the auto-qualification gate."""

    min_total: int = Field(default=85, ge=0, le=100)
    min_exam: int = Field(default=80, ge=0, le=100)
    min_skills: float = Field(default=70.0, ge=0.0, le=100.0)
    min_experience: float = Field(default=60.0, ge=0.0, le=100.0)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/scores.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    features: FeatureConfig = Field(default_factory=FeatureConfig)
    qualification: QualificationConfig = Field(default_factory=QualificationConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
