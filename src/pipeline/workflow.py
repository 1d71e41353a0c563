"""Status workflow: the hiring-pipeline state machine for a candidate-job pair.

    pending -> reviewed -> contacted -> interviewed -> {hired | rejected}

``withdrawn`` is reachable from any non-terminal state by the candidate.
``reviewed -> pending`` is the only backward move (un-review). ``pending``
may jump straight to ``contacted`` (auto-contact or direct connect).
Automatic transitions only ever enter ``contacted``, and auto-contact never
retracts: a candidate bumped out of the top N later keeps its status.
"""

import logging
from datetime import datetime

from src.core.errors import InvalidTransitionError, StaleJobError
from src.core.schemas import (
    MESSAGING_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    CandidateScore,
    CandidateStatus,
    JobRequirement,
    JobStatus,
    StatusTransitionEvent,
    TransitionTrigger,
)

logger = logging.getLogger(__name__)

S = CandidateStatus

ALLOWED_TRANSITIONS: dict[CandidateStatus, frozenset[CandidateStatus]] = {
    S.PENDING: frozenset({S.REVIEWED, S.CONTACTED, S.WITHDRAWN}),
    S.REVIEWED: frozenset({S.PENDING, S.CONTACTED, S.WITHDRAWN}),
    S.CONTACTED: frozenset({S.INTERVIEWED, S.WITHDRAWN}),
    S.INTERVIEWED: frozenset({S.HIRED, S.REJECTED, S.WITHDRAWN}),
    S.HIRED: frozenset(),
    S.REJECTED: frozenset(),
    S.WITHDRAWN: frozenset(),
}

AUTO_CONTACT_FROM = frozenset({S.PENDING, S.REVIEWED})


def can_transition(current: CandidateStatus, target: CandidateStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    score: CandidateScore,
    target: CandidateStatus | str,
    *,
    actor: Actor = Actor.REVIEWER,
    trigger: TransitionTrigger = TransitionTrigger.MANUAL,
    note: str = "",
    at: datetime | None = None,
) -> tuple[CandidateScore, StatusTransitionEvent]:
    """Move a candidate to a new status.

    Returns:
        (updated score, event). The input score is not modified.

    Raises:
        InvalidTransitionError: If the move is not allowed from the current
            status, by this actor, or with this trigger.
    """
    target = CandidateStatus(target)
    current = score.status
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(current.value, target.value, "status is terminal")
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)

    if target == S.WITHDRAWN and actor != Actor.CANDIDATE:
        raise InvalidTransitionError(
            current.value, target.value, "only the candidate can withdraw",
        )
    if target != S.WITHDRAWN and actor == Actor.CANDIDATE:
        raise InvalidTransitionError(
            current.value, target.value, "candidates may only withdraw",
        )
    if trigger == TransitionTrigger.AUTOMATIC:
        if target != S.CONTACTED:
            raise InvalidTransitionError(
                current.value, target.value, "automatic transitions only enter 'contacted'",
            )
        if not score.auto_qualified:
            raise InvalidTransitionError(
                current.value, target.value, "candidate is not auto-qualified",
            )

    updated = score.model_copy(update={"status": target})
    event = StatusTransitionEvent(
        candidate_id=score.candidate_id,
        job_id=score.job_id,
        from_status=current,
        to_status=target,
        trigger=trigger,
        actor=actor,
        occurred_at=at or datetime.now(),
        note=note,
    )
    logger.debug(
        "Candidate %s on job %s: %s -> %s (%s)",
        score.candidate_id, score.job_id, current.value, target.value, trigger.value,
    )
    return updated, event


def select_auto_contacts(ranked: list[CandidateScore], limit: int) -> list[CandidateScore]:
    """Return the candidates auto-contact should move to ``contacted``.

    The window is the top ``limit`` auto-qualified, non-terminal candidates by
    global rank; of those, only ones still pending or reviewed are selected.
    Candidates already contacted inside the window use up a slot.
    """
    if limit <= 0:
        return []
    window = [
        s for s in sorted(ranked, key=lambda s: s.rank or 0)
        if s.auto_qualified and s.status not in TERMINAL_STATUSES
    ][:limit]
    return [s for s in window if s.status in AUTO_CONTACT_FROM]


def auto_contact(
    ranked: list[CandidateScore],
    job: JobRequirement,
    at: datetime | None = None,
) -> tuple[list[CandidateScore], list[StatusTransitionEvent]]:
    """Apply automatic contact to a job's ranked pool.

    Returns the pool (same order) with updated statuses, plus one event per
    candidate contacted. Paused jobs contact no one.

    Raises:
        StaleJobError: If the job is closed.
    """
    if job.status == JobStatus.CLOSED:
        raise StaleJobError(job.id)
    if job.status == JobStatus.PAUSED:
        logger.info("Job %s is paused; skipping auto-contact", job.id)
        return list(ranked), []

    selected = {s.candidate_id for s in select_auto_contacts(ranked, job.auto_connect_limit)}
    events: list[StatusTransitionEvent] = []
    result: list[CandidateScore] = []
    for s in ranked:
        if s.candidate_id in selected:
            s, event = transition(
                s,
                S.CONTACTED,
                actor=Actor.SYSTEM,
                trigger=TransitionTrigger.AUTOMATIC,
                note=f"auto-contact: rank {s.rank} within top {job.auto_connect_limit}",
                at=at,
            )
            events.append(event)
        result.append(s)

    if events:
        logger.info("Auto-contacted %d candidates for job %s", len(events), job.id)
    return result, events


def can_message(score: CandidateScore) -> bool:
    """Direct messaging is open to auto-qualified or actively engaged candidates."""
    return score.auto_qualified or score.status in MESSAGING_STATUSES
