"""Orchestrator: wires feature extraction, exam scoring, composition,
qualification, ranking and the status workflow.

Data flow:
  1. Job liveness gate (closed jobs raise StaleJobError)
  2. Frozen-score gate (terminal candidates raise FrozenScoreError)
  3. Feature extractor + exam scorer
  4. Composite scorer
  5. Qualification gate
  6. Ranker (per job, under that job's lock)
  7. Status workflow (auto-contact, manual transitions)

Scoring is pure and may run in parallel across pairs; only rank
materialization for a job is exclusive.
"""

import json
import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from src.core.config import Settings
from src.core.errors import FrozenScoreError, StaleJobError
from src.core.schemas import (
    Actor,
    CandidateProfile,
    CandidateScore,
    CandidateStatus,
    ExamResult,
    JobRequirement,
    JobStatus,
    StatusTransitionEvent,
    TransitionTrigger,
)
from src.pipeline.exam_scorer import score_exam
from src.pipeline.features import extract, matched_skills
from src.pipeline.qualification import qualify
from src.pipeline.ranker import rank
from src.pipeline.scorer import (
    check_weights,
    contributions,
    effective_weights,
    round_half_up,
    weighted_sum,
)
from src.pipeline.workflow import auto_contact, transition

logger = logging.getLogger(__name__)


class ScoringEngine:
    """Stateless scorer for (candidate, job) pairs.

    Validates the weight table at construction: a table that does not sum
    to 1.0 is a deployment error and fails here, never per request.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        check_weights(self._settings.weights)
        logger.debug("Scoring engine ready (weights %s)", self._settings.weights.version)

    @property
    def settings(self) -> Settings:
        return self._settings

    def score(
        self,
        candidate: CandidateProfile,
        job: JobRequirement,
        exam_results: Iterable[ExamResult] = (),
        previous: CandidateScore | None = None,
    ) -> CandidateScore:
        """Compute a fresh, unranked score for one pair.

        Args:
            candidate: Candidate profile.
            job: Job requirements.
            exam_results: All exam attempts submitted by this candidate for this job.
            previous: The pair's current score, if any; its status carries over.

        Raises:
            StaleJobError: If the job is closed.
            FrozenScoreError: If ``previous`` is in a terminal status.
        """
        if job.status == JobStatus.CLOSED:
            raise StaleJobError(job.id)
        if previous is not None and previous.is_terminal:
            raise FrozenScoreError(candidate.id, job.id, previous.status.value)

        attempts = [
            r for r in exam_results if r.candidate_id == candidate.id and r.job_id == job.id
        ]
        sub_scores = extract(candidate, job, self._settings.features)
        exam = score_exam(attempts, job.exam)
        exam_weight = job.exam.weight if job.exam else None
        raw_total = weighted_sum(sub_scores, self._settings.weights, exam, exam_weight)
        total = round_half_up(raw_total)
        verdict = qualify(total, sub_scores, exam, job.exam, self._settings.qualification)

        return CandidateScore(
            candidate_id=candidate.id,
            job_id=job.id,
            sub_scores=sub_scores,
            exam_score=exam.score if exam else None,
            exam_passed=exam.passed if exam else None,
            exam_within_time_limit=exam.within_time_limit if exam else None,
            raw_total=raw_total,
            total=total,
            auto_qualified=verdict.auto_qualified,
            reason=verdict.reason,
            status=previous.status if previous else CandidateStatus.PENDING,
            skills=tuple(candidate.skills),
            applied_at=candidate.applied_at,
            weights_version=self._settings.weights.version,
        )

    def rescore_pool(
        self,
        job: JobRequirement,
        candidates: Iterable[CandidateProfile],
        exam_results: Iterable[ExamResult] = (),
        existing: dict[str, CandidateScore] | None = None,
    ) -> list[CandidateScore]:
        """Recompute and rank a whole pool for reporting.

        Terminal candidates keep their frozen score (logged, not raised).
        """
        existing = existing or {}
        results = list(exam_results)
        scores: list[CandidateScore] = []
        for candidate in candidates:
            previous = existing.get(candidate.id)
            try:
                scores.append(self.score(candidate, job, results, previous))
            except FrozenScoreError as e:
                logger.info("%s; keeping the frozen score", e)
                scores.append(existing[candidate.id])
        return rank(scores)

    def explain(
        self,
        candidate: CandidateProfile,
        job: JobRequirement,
        exam_results: Iterable[ExamResult] = (),
    ) -> dict[str, Any]:
        """Match breakdown: sub-scores, weights, contributions and rationale."""
        results = list(exam_results)
        score = self.score(candidate, job, results)
        exam = score_exam(
            [r for r in results if r.candidate_id == candidate.id and r.job_id == job.id],
            job.exam,
        )
        exam_weight = job.exam.weight if job.exam else None
        weights = self._settings.weights
        matched = matched_skills(candidate, job)
        required = [s.strip() for s in job.skills if s.strip()]
        return {
            "candidate_id": candidate.id,
            "job_id": job.id,
            "weights_version": weights.version,
            "sub_scores": score.sub_scores.model_dump(),
            "weights": effective_weights(weights, exam_weight, exam),
            "contributions": contributions(score.sub_scores, weights, exam, exam_weight),
            "exam_score": score.exam_score,
            "exam_passed": score.exam_passed,
            "exam_within_time_limit": score.exam_within_time_limit,
            "raw_total": score.raw_total,
            "total": score.total,
            "auto_qualified": score.auto_qualified,
            "reason": score.reason,
            "matched_skills": matched,
            "missing_skills": [s for s in required if s.casefold() not in matched],
        }


class RankingBook:
    """Holds the current scores and materialized ranking of each job.

    Publishing a score touches only that pair. Materializing a job's ranking
    takes the job's lock, so two recomputations cannot expose two different
    orderings, and readers always see a complete snapshot.

    Usage::

        book = RankingBook()
        book.register_job(job)
        book.publish(engine.score(candidate, job, exams))
        ranking = book.materialize(job.id)
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._jobs: dict[str, JobRequirement] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._scores: dict[str, dict[str, CandidateScore]] = {}
        self._rankings: dict[str, tuple[CandidateScore, ...]] = {}

    def register_job(self, job: JobRequirement) -> None:
        """Add or update a job. Existing scores for it are kept."""
        with self._guard:
            self._jobs[job.id] = job
            self._locks.setdefault(job.id, threading.Lock())
            self._scores.setdefault(job.id, {})
            self._rankings.setdefault(job.id, ())

    def remove_job(self, job_id: str) -> None:
        """Delete a job and discard every score attached to it."""
        with self._guard:
            lock = self._locks.get(job_id)
        if lock is None:
            return
        with lock, self._guard:
            self._jobs.pop(job_id, None)
            dropped = len(self._scores.pop(job_id, {}))
            self._rankings.pop(job_id, None)
            self._locks.pop(job_id, None)
        logger.info("Removed job %s and discarded %d scores", job_id, dropped)

    def job(self, job_id: str) -> JobRequirement:
        with self._guard:
            job = self._jobs.get(job_id)
        if job is None:
            raise StaleJobError(job_id, reason="not registered")
        return job

    def get(self, job_id: str, candidate_id: str) -> CandidateScore | None:
        with self._guard:
            return self._scores.get(job_id, {}).get(candidate_id)

    def publish(self, score: CandidateScore) -> None:
        """Store a freshly computed score for its pair.

        The stored status always wins over the incoming one: status only
        changes through ``apply_transition`` or ``run_auto_contact``.

        Raises:
            StaleJobError: If the job was closed or removed meanwhile.
            FrozenScoreError: If the stored score is terminal.
        """
        lock = self._lock_for(score.job_id)
        with lock:
            job = self.job(score.job_id)
            if job.status == JobStatus.CLOSED:
                raise StaleJobError(job.id)
            with self._guard:
                pool = self._scores[score.job_id]
                current = pool.get(score.candidate_id)
                if current is not None and current.is_terminal:
                    raise FrozenScoreError(
                        score.candidate_id, score.job_id, current.status.value,
                    )
                if current is not None and current.status != score.status:
                    score = score.model_copy(update={"status": current.status})
                pool[score.candidate_id] = score

    def materialize(self, job_id: str) -> tuple[CandidateScore, ...]:
        """Rank the job's current scores and publish the ranking atomically."""
        lock = self._lock_for(job_id)
        with lock:
            self.job(job_id)
            with self._guard:
                snapshot = list(self._scores[job_id].values())
            ranked = tuple(rank(snapshot))
            with self._guard:
                self._scores[job_id] = {s.candidate_id: s for s in ranked}
                self._rankings[job_id] = ranked
        logger.info("Materialized ranking for job %s (%d candidates)", job_id, len(ranked))
        return ranked

    def ranking(self, job_id: str) -> tuple[CandidateScore, ...]:
        """Last materialized ranking for a job (a consistent snapshot)."""
        with self._guard:
            if job_id not in self._rankings:
                raise StaleJobError(job_id, reason="not registered")
            return self._rankings[job_id]

    def apply_transition(
        self,
        job_id: str,
        candidate_id: str,
        target: CandidateStatus | str,
        *,
        actor: Actor = Actor.REVIEWER,
        note: str = "",
    ) -> StatusTransitionEvent:
        """Manually move one candidate to a new status."""
        lock = self._lock_for(job_id)
        with lock:
            self.job(job_id)
            current = self.get(job_id, candidate_id)
            if current is None:
                msg = f"No score for candidate '{candidate_id}' on job '{job_id}'"
                raise KeyError(msg)
            updated, event = transition(
                current, target, actor=actor, trigger=TransitionTrigger.MANUAL, note=note,
            )
            self._replace([updated])
        return event

    def run_auto_contact(
        self, job_id: str, at: datetime | None = None,
    ) -> list[StatusTransitionEvent]:
        """Auto-contact the top auto-qualified candidates of the last ranking."""
        lock = self._lock_for(job_id)
        with lock:
            job = self.job(job_id)
            updated, events = auto_contact(list(self.ranking(job_id)), job, at=at)
            self._replace(updated)
        return events

    def _replace(self, scores: list[CandidateScore]) -> None:
        with self._guard:
            for s in scores:
                self._scores[s.job_id][s.candidate_id] = s
                ranking = self._rankings.get(s.job_id, ())
                self._rankings[s.job_id] = tuple(
                    s if r.candidate_id == s.candidate_id else r for r in ranking
                )

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(job_id)
        if lock is None:
            raise StaleJobError(job_id, reason="not registered")
        return lock


def export_ranking_json(ranked: Iterable[CandidateScore]) -> str:
    """Export a ranked view as a JSON string."""
    data = []
    for s in ranked:
        data.append({
            "rank": s.rank,
            "candidate_id": s.candidate_id,
            "job_id": s.job_id,
            "total": s.total,
            "raw_total": s.raw_total,
            "exam_score": s.exam_score,
            "exam_passed": s.exam_passed,
            "exam_within_time_limit": s.exam_within_time_limit,
            "auto_qualified": s.auto_qualified,
            "status": s.status.value,
            "sub_scores": s.sub_scores.model_dump(),
            "reason": s.reason,
            "applied_at": s.applied_at.isoformat(),
            "weights_version": s.weights_version,
        })
    return json.dumps(data, indent=2)
