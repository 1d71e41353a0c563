"""Exception hierarchy for the scoring engine."""


class ScoringEngineError(Exception):
    """Base class for errors raised by the scoring engine."""


class StaleJobError(ScoringEngineError):
    """The job was closed or removed while a score was being computed.

    Callers must discard the result instead of persisting it.
    """

    def __init__(self, job_id: str, reason: str = "closed") -> None:
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Job '{job_id}' is {reason}; score must be discarded")


class FrozenScoreError(ScoringEngineError):
    """Recompute requested for a candidate in a terminal status."""

    def __init__(self, candidate_id: str, job_id: str, status: str) -> None:
        self.candidate_id = candidate_id
        self.job_id = job_id
        self.status = status
        super().__init__(
            f"Score for candidate '{candidate_id}' on job '{job_id}' is frozen "
            f"(status '{status}')"
        )


class InvalidTransitionError(ScoringEngineError):
    """A status change that the workflow does not allow."""

    def __init__(self, current: str, target: str, detail: str = "") -> None:
        self.current = current
        self.target = target
        msg = f"Cannot move from '{current}' to '{target}'"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class WeightTableError(ScoringEngineError, ValueError):
    """The configured weight table does not sum to 1.0."""
