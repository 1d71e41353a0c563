"""SQLite persistence for candidate scores and status transition events.

The engine itself does no I/O; callers persist its output here at the boundary.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from src.core.schemas import CandidateScore, StatusTransitionEvent, SubScores

_SCORES_TABLE = """
CREATE TABLE IF NOT EXISTS candidate_scores (
    candidate_id    TEXT    NOT NULL,
    job_id          TEXT    NOT NULL,
    sub_scores_json TEXT    NOT NULL,
    exam_score      INTEGER,
    exam_passed     INTEGER,
    exam_in_time    INTEGER,
    raw_total       REAL    NOT NULL,
    total           INTEGER NOT NULL,
    auto_qualified  INTEGER NOT NULL DEFAULT 0,
    reason          TEXT    NOT NULL DEFAULT '',
    rank            INTEGER,
    status          TEXT    NOT NULL DEFAULT 'pending',
    skills_json     TEXT    NOT NULL DEFAULT '[]',
    applied_at      TEXT    NOT NULL,
    weights_version TEXT    NOT NULL DEFAULT '',
    updated_at      TEXT    NOT NULL,
    PRIMARY KEY (candidate_id, job_id)
);
"""

_EVENTS_TABLE = """
CREATE TABLE IF NOT EXISTS status_events (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    candidate_id    TEXT NOT NULL,
    job_id          TEXT NOT NULL,
    from_status     TEXT NOT NULL,
    to_status       TEXT NOT NULL,
    trigger_kind    TEXT NOT NULL,
    actor           TEXT NOT NULL,
    note            TEXT NOT NULL DEFAULT '',
    occurred_at     TEXT NOT NULL
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_SCORES_TABLE)
    conn.execute(_EVENTS_TABLE)
    conn.commit()
    return conn


def upsert_score(conn: sqlite3.Connection, score: CandidateScore) -> bool:
    """Insert or replace the score for (candidate_id, job_id).

    Returns True if a new row was inserted, False if an existing one was replaced.
    """
    existed = get_score(conn, score.candidate_id, score.job_id) is not None
    conn.execute(
        """
        INSERT INTO candidate_scores
            (candidate_id, job_id, sub_scores_json, exam_score, exam_passed,
             exam_in_time, raw_total, total, auto_qualified, reason, rank, status,
             skills_json, applied_at, weights_version, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(candidate_id, job_id) DO UPDATE SET
            sub_scores_json = excluded.sub_scores_json,
            exam_score      = excluded.exam_score,
            exam_passed     = excluded.exam_passed,
            exam_in_time    = excluded.exam_in_time,
            raw_total       = excluded.raw_total,
            total           = excluded.total,
            auto_qualified  = excluded.auto_qualified,
            reason          = excluded.reason,
            rank            = excluded.rank,
            status          = excluded.status,
            skills_json     = excluded.skills_json,
            applied_at      = excluded.applied_at,
            weights_version = excluded.weights_version,
            updated_at      = excluded.updated_at
        """,
        (
            score.candidate_id,
            score.job_id,
            score.sub_scores.model_dump_json(),
            score.exam_score,
            None if score.exam_passed is None else int(score.exam_passed),
            None if score.exam_within_time_limit is None else int(score.exam_within_time_limit),
            score.raw_total,
            score.total,
            int(score.auto_qualified),
            score.reason,
            score.rank,
            score.status.value,
            json.dumps(list(score.skills)),
            score.applied_at.isoformat(),
            score.weights_version,
            datetime.now().isoformat(),
        ),
    )
    conn.commit()
    return not existed


def get_score(
    conn: sqlite3.Connection,
    candidate_id: str,
    job_id: str,
) -> CandidateScore | None:
    """Fetch the stored score for one pair, or None."""
    row = conn.execute(
        "SELECT * FROM candidate_scores WHERE candidate_id = ? AND job_id = ?",
        (candidate_id, job_id),
    ).fetchone()
    return None if row is None else _row_to_score(row)


def get_job_scores(conn: sqlite3.Connection, job_id: str) -> list[CandidateScore]:
    """All stored scores for a job, ordered by rank (unranked last)."""
    rows = conn.execute(
        """
        SELECT * FROM candidate_scores
        WHERE job_id = ?
        ORDER BY rank IS NULL, rank, candidate_id
        """,
        (job_id,),
    ).fetchall()
    return [_row_to_score(r) for r in rows]


def delete_job_scores(conn: sqlite3.Connection, job_id: str) -> int:
    """Discard every score attached to a deleted job. Returns rows removed."""
    cursor = conn.execute("DELETE FROM candidate_scores WHERE job_id = ?", (job_id,))
    conn.commit()
    return cursor.rowcount


def insert_status_event(conn: sqlite3.Connection, event: StatusTransitionEvent) -> int:
    """Record a status transition. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO status_events
            (candidate_id, job_id, from_status, to_status, trigger_kind, actor, note, occurred_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            event.candidate_id,
            event.job_id,
            event.from_status.value,
            event.to_status.value,
            event.trigger.value,
            event.actor.value,
            event.note,
            event.occurred_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def get_status_events(
    conn: sqlite3.Connection,
    job_id: str,
    candidate_id: str | None = None,
) -> list[StatusTransitionEvent]:
    """Status history for a job (optionally one candidate), oldest first."""
    query = "SELECT * FROM status_events WHERE job_id = ?"
    params: list[str] = [job_id]
    if candidate_id is not None:
        query += " AND candidate_id = ?"
        params.append(candidate_id)
    rows = conn.execute(query + " ORDER BY id", params).fetchall()
    return [
        StatusTransitionEvent(
            candidate_id=r["candidate_id"],
            job_id=r["job_id"],
            from_status=r["from_status"],
            to_status=r["to_status"],
            trigger=r["trigger_kind"],
            actor=r["actor"],
            note=r["note"],
            occurred_at=datetime.fromisoformat(r["occurred_at"]),
        )
        for r in rows
    ]


def _row_to_score(row: sqlite3.Row) -> CandidateScore:
    exam_passed = row["exam_passed"]
    exam_in_time = row["exam_in_time"]
    return CandidateScore(
        candidate_id=row["candidate_id"],
        job_id=row["job_id"],
        sub_scores=SubScores.model_validate_json(row["sub_scores_json"]),
        exam_score=row["exam_score"],
        exam_passed=None if exam_passed is None else bool(exam_passed),
        exam_within_time_limit=None if exam_in_time is None else bool(exam_in_time),
        raw_total=row["raw_total"],
        total=row["total"],
        auto_qualified=bool(row["auto_qualified"]),
        reason=row["reason"],
        rank=row["rank"],
        status=row["status"],
        skills=tuple(json.loads(row["skills_json"])),
        applied_at=datetime.fromisoformat(row["applied_at"]),
        weights_version=row["weights_version"],
    )
