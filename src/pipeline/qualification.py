"""Qualification gate: decides auto-qualification and explains why.

Auto-qualification triggers irreversible outreach downstream, so every
verdict carries the outcome of each rule, not just a boolean.
"""

import logging

from src.core.config import QualificationConfig
from src.core.schemas import ExamConfig, ExamOutcome, QualificationVerdict, RuleCheck, SubScores

logger = logging.getLogger(__name__)


def qualify(
    total: int,
    sub_scores: SubScores,
    exam: ExamOutcome | None,
    exam_config: ExamConfig | None,
    config: QualificationConfig | None = None,
) -> QualificationVerdict:
    """Evaluate all auto-qualification rules.

    Rules (all must pass):
      1. total >= min_total
      2. exam score >= min_exam, only when an exam is configured and completed
         (a required exam that was not completed fails the rule)
      3. skills sub-score >= min_skills
      4. experience sub-score >= min_experience
    """
    config = config or QualificationConfig()
    checks = (
        _threshold("total", total, config.min_total),
        _exam_check(exam, exam_config, config.min_exam),
        _threshold("skills", sub_scores.skills, config.min_skills),
        _threshold("experience", sub_scores.experience, config.min_experience),
    )
    failed = [c.name for c in checks if not c.passed]
    qualified = not failed
    head = "Qualified" if qualified else f"Not qualified, failed: {', '.join(failed)}"
    reason = f"{head}. " + "; ".join(c.detail for c in checks)
    return QualificationVerdict(auto_qualified=qualified, reason=reason, checks=checks)


def _threshold(name: str, value: float, minimum: float) -> RuleCheck:
    passed = value >= minimum
    op = ">=" if passed else "<"
    verdict = "pass" if passed else "fail"
    return RuleCheck(
        name=name,
        passed=passed,
        detail=f"{name} {_fmt(value)} {op} {_fmt(minimum)} ({verdict})",
    )


def _exam_check(
    exam: ExamOutcome | None,
    exam_config: ExamConfig | None,
    minimum: int,
) -> RuleCheck:
    if exam_config is None:
        return RuleCheck(
            name="exam", passed=True, applied=False, detail="exam not configured (skipped)",
        )
    if exam is None:
        if exam_config.required:
            return RuleCheck(
                name="exam", passed=False, detail="required exam not completed (fail)",
            )
        return RuleCheck(
            name="exam", passed=True, applied=False, detail="exam not completed (skipped)",
        )
    return _threshold("exam", exam.score, minimum)


def _fmt(value: float) -> str:
    return f"{value:g}"
