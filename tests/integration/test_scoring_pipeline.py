"""Integration test: full scoring pipeline, ranking book and CLI."""

import json
import sqlite3
import threading
from datetime import datetime, timedelta
from pathlib import Path
from textwrap import dedent

import pytest

from main import main
from src.core.config import ScoringWeights, Settings
from src.core.db import get_job_scores, get_status_events, init_db
from src.core.errors import (
    FrozenScoreError,
    InvalidTransitionError,
    StaleJobError,
    WeightTableError,
)
from src.core.schemas import (
    Actor,
    CandidateProfile,
    CandidateStatus,
    ExamConfig,
    ExamResult,
    JobRequirement,
    JobStatus,
    TransitionTrigger,
)
from src.pipeline.orchestrator import RankingBook, ScoringEngine, export_ranking_json

SAMPLE_POOL = "config/sample_pool.yaml"

# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _job(**overrides: object) -> JobRequirement:
    defaults: dict[str, object] = {
        "id": "job-1",
        "title": "Frontend Engineer",
        "skills": ["React", "TypeScript"],
        "salary_min": 80_000,
        "salary_max": 120_000,
        "work_type": "remote",
        "experience_level": "mid",
    }
    defaults.update(overrides)
    return JobRequirement(**defaults)  # type: ignore[arg-type]


def _candidate(candidate_id: str = "cand-a", **overrides: object) -> CandidateProfile:
    defaults: dict[str, object] = {
        "id": candidate_id,
        "skills": ["React", "TypeScript", "Node"],
        "years_of_experience": 4,
        "desired_salary_min": 100_000,
        "desired_salary_max": 100_000,
        "work_type_preference": "remote",
        "applied_at": datetime(2025, 3, 1, 9, 0),
    }
    defaults.update(overrides)
    return CandidateProfile(**defaults)  # type: ignore[arg-type]


def _exam(
    candidate_id: str,
    raw: float,
    *,
    job_id: str = "job-1",
    day: int = 1,
    minutes: float = 20,
) -> ExamResult:
    return ExamResult(
        candidate_id=candidate_id,
        job_id=job_id,
        raw_score=raw,
        total_points=20,
        completed_at=datetime(2025, 3, day, 12, 0),
        time_spent_minutes=minutes,
    )


# ---------------------------------------------------------------------------
# ScoringEngine
# ---------------------------------------------------------------------------


class TestScoringEngine:
    def test_strong_candidate_auto_qualifies(self) -> None:
        """All structural dimensions maximal; only the missing title is neutral."""
        score = ScoringEngine().score(_candidate(), _job())
        subs = score.sub_scores
        assert (subs.skills, subs.experience, subs.location, subs.salary, subs.work_type) == (
            100.0, 100.0, 100.0, 100.0, 100.0,
        )
        assert subs.title_relevance == 50.0
        assert score.raw_total == pytest.approx(98.5)
        assert score.total >= 98
        assert score.auto_qualified is True
        assert score.exam_score is None
        assert score.status == CandidateStatus.PENDING
        assert score.weights_version == ScoringWeights().version

    def test_missing_skills_fail_qualification(self) -> None:
        score = ScoringEngine().score(_candidate("cand-b", skills=["Java"]), _job())
        assert score.sub_scores.skills == 0.0
        assert score.raw_total == pytest.approx(63.5)
        assert score.total < 85
        assert score.auto_qualified is False
        assert "skills 0 < 70 (fail)" in score.reason

    def test_deterministic(self) -> None:
        engine = ScoringEngine()
        exams = [_exam("cand-a", 17)]
        job = _job(exam=ExamConfig())
        first = engine.score(_candidate(), job, exams)
        second = engine.score(_candidate(), job, exams)
        assert first == second

    def test_exam_attempts_filtered_to_pair(self) -> None:
        job = _job(exam=ExamConfig())
        exams = [_exam("cand-a", 17), _exam("cand-a", 2, job_id="job-2"), _exam("cand-x", 20)]
        score = ScoringEngine().score(_candidate(), job, exams)
        assert score.exam_score == 85
        assert score.exam_passed is True

    def test_exam_time_limit_reported(self) -> None:
        job = _job(exam=ExamConfig(time_limit_minutes=30))
        engine = ScoringEngine()
        on_time = engine.score(_candidate(), job, [_exam("cand-a", 17, minutes=30)])
        over_time = engine.score(_candidate(), job, [_exam("cand-a", 17, minutes=45)])
        assert on_time.exam_within_time_limit is True
        assert over_time.exam_within_time_limit is False
        # Informational only: same score and verdict either way.
        assert over_time.total == on_time.total
        assert over_time.auto_qualified == on_time.auto_qualified

    def test_no_exam_has_no_time_flag(self) -> None:
        assert ScoringEngine().score(_candidate(), _job()).exam_within_time_limit is None

    def test_exam_below_gate_blocks_qualification(self) -> None:
        job = _job(exam=ExamConfig())
        score = ScoringEngine().score(_candidate(), job, [_exam("cand-a", 15)])
        assert score.exam_score == 75
        assert score.exam_passed is True
        assert score.auto_qualified is False
        assert "exam 75 < 80 (fail)" in score.reason

    def test_exam_weight_folds_into_total(self) -> None:
        job = _job(exam=ExamConfig(weight=0.5))
        score = ScoringEngine().score(_candidate(), job, [_exam("cand-a", 10)])
        # 0.5 * 98.5 + 0.5 * 50
        assert score.raw_total == pytest.approx(74.25)

    def test_closed_job_raises(self) -> None:
        with pytest.raises(StaleJobError):
            ScoringEngine().score(_candidate(), _job(status="closed"))

    def test_paused_job_still_scores(self) -> None:
        score = ScoringEngine().score(_candidate(), _job(status="paused"))
        assert score.total >= 98

    def test_terminal_score_is_frozen(self) -> None:
        engine = ScoringEngine()
        previous = engine.score(_candidate(), _job()).model_copy(
            update={"status": CandidateStatus.HIRED}
        )
        with pytest.raises(FrozenScoreError, match="frozen"):
            engine.score(_candidate(), _job(), previous=previous)

    def test_status_carries_over_on_rescore(self) -> None:
        engine = ScoringEngine()
        previous = engine.score(_candidate(), _job()).model_copy(
            update={"status": CandidateStatus.CONTACTED}
        )
        fresh = engine.score(_candidate(years_of_experience=12), _job(), previous=previous)
        assert fresh.status == CandidateStatus.CONTACTED
        assert fresh.sub_scores.experience == 30.0

    def test_bad_weight_table_fails_at_construction(self) -> None:
        bad = ScoringWeights.model_construct(
            version="bad",
            skills=0.35,
            experience=0.25,
            location=0.15,
            salary=0.10,
            work_type=0.08,
            industry=0.04,
            title_relevance=0.13,
        )
        with pytest.raises(WeightTableError):
            ScoringEngine(Settings.model_construct(
                database=Settings().database,
                weights=bad,
                features=Settings().features,
                qualification=Settings().qualification,
            ))


class TestRescorePool:
    def test_ranks_whole_pool(self) -> None:
        candidates = [
            _candidate("cand-a"),
            _candidate("cand-b", skills=["Java"]),
            _candidate("cand-c", skills=["React"], applied_at=datetime(2025, 3, 2)),
        ]
        ranked = ScoringEngine().rescore_pool(_job(), candidates)
        assert [s.candidate_id for s in ranked] == ["cand-a", "cand-c", "cand-b"]
        assert [s.rank for s in ranked] == [1, 2, 3]

    def test_terminal_scores_kept(self) -> None:
        engine = ScoringEngine()
        frozen = engine.score(_candidate("cand-b", skills=["Java"]), _job()).model_copy(
            update={"status": CandidateStatus.WITHDRAWN, "reason": "snapshot"}
        )
        ranked = engine.rescore_pool(
            _job(),
            [_candidate("cand-a"), _candidate("cand-b")],
            existing={"cand-b": frozen},
        )
        by_id = {s.candidate_id: s for s in ranked}
        assert by_id["cand-b"].status == CandidateStatus.WITHDRAWN
        assert by_id["cand-b"].reason == "snapshot"
        assert by_id["cand-b"].sub_scores.skills == 0.0


class TestExplain:
    def test_breakdown(self) -> None:
        breakdown = ScoringEngine().explain(
            _candidate(skills=["react"]), _job(exam=ExamConfig()), [_exam("cand-a", 18)],
        )
        assert breakdown["candidate_id"] == "cand-a"
        assert breakdown["matched_skills"] == ["react"]
        assert breakdown["missing_skills"] == ["TypeScript"]
        assert breakdown["exam_score"] == 90
        assert breakdown["exam_within_time_limit"] is True
        assert set(breakdown["sub_scores"]) == set(breakdown["contributions"])
        assert sum(breakdown["contributions"].values()) == pytest.approx(breakdown["raw_total"])
        assert sum(breakdown["weights"].values()) == pytest.approx(1.0)
        json.dumps(breakdown)


# ---------------------------------------------------------------------------
# RankingBook
# ---------------------------------------------------------------------------


class TestRankingBook:
    def _book(self, **job_overrides: object) -> tuple[RankingBook, JobRequirement]:
        book = RankingBook()
        job = _job(auto_connect_limit=1, **job_overrides)
        book.register_job(job)
        return book, job

    def test_publish_then_materialize(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        book.publish(engine.score(_candidate("cand-b", skills=["Java"]), job))
        book.publish(engine.score(_candidate("cand-a"), job))
        ranking = book.materialize(job.id)
        assert [s.candidate_id for s in ranking] == ["cand-a", "cand-b"]
        assert book.ranking(job.id) == ranking
        assert book.get(job.id, "cand-a").rank == 1  # type: ignore[union-attr]

    def test_unregistered_job(self) -> None:
        book = RankingBook()
        with pytest.raises(StaleJobError, match="not registered"):
            book.publish(ScoringEngine().score(_candidate(), _job()))
        with pytest.raises(StaleJobError):
            book.ranking("job-1")

    def test_closed_job_rejects_publish(self) -> None:
        book, job = self._book()
        score = ScoringEngine().score(_candidate(), job)
        book.register_job(job.model_copy(update={"status": JobStatus.CLOSED}))
        with pytest.raises(StaleJobError):
            book.publish(score)

    def test_removed_job_discards_scores(self) -> None:
        book, job = self._book()
        book.publish(ScoringEngine().score(_candidate(), job))
        book.materialize(job.id)
        book.remove_job(job.id)
        assert book.get(job.id, "cand-a") is None
        with pytest.raises(StaleJobError):
            book.materialize(job.id)
        with pytest.raises(StaleJobError):
            book.job(job.id)

    def test_concurrent_publish_gives_total_ranking(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        base = datetime(2025, 3, 1, 9, 0)
        candidates = [
            _candidate(
                f"cand-{i:02d}",
                skills=["React"] if i % 2 else ["React", "TypeScript"],
                applied_at=base + timedelta(minutes=i % 4),
            )
            for i in range(40)
        ]

        def worker(chunk: list[CandidateProfile]) -> None:
            for c in chunk:
                book.publish(engine.score(c, job))

        threads = [threading.Thread(target=worker, args=(candidates[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ranking = book.materialize(job.id)
        assert [s.rank for s in ranking] == list(range(1, 41))
        assert ranking == book.materialize(job.id)

    def test_concurrent_materialize_is_consistent(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        for i in range(20):
            book.publish(engine.score(_candidate(f"cand-{i:02d}"), job))
        results: list[tuple[str, ...]] = []

        def worker() -> None:
            results.append(tuple(s.candidate_id for s in book.materialize(job.id)))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(results)) == 1

    def test_frozen_pair_rejects_publish(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        book.publish(engine.score(_candidate(), job))
        book.materialize(job.id)
        book.apply_transition(job.id, "cand-a", "withdrawn", actor=Actor.CANDIDATE)
        with pytest.raises(FrozenScoreError):
            book.publish(engine.score(_candidate(), job))

    def test_manual_transition_updates_ranking(self) -> None:
        book, job = self._book()
        book.publish(ScoringEngine().score(_candidate(), job))
        book.materialize(job.id)
        event = book.apply_transition(job.id, "cand-a", CandidateStatus.REVIEWED)
        assert event.trigger == TransitionTrigger.MANUAL
        assert book.ranking(job.id)[0].status == CandidateStatus.REVIEWED
        with pytest.raises(InvalidTransitionError):
            book.apply_transition(job.id, "cand-a", CandidateStatus.HIRED)

    def test_transition_for_unknown_candidate(self) -> None:
        book, job = self._book()
        with pytest.raises(KeyError):
            book.apply_transition(job.id, "nobody", CandidateStatus.REVIEWED)

    def test_auto_contact(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        book.publish(engine.score(_candidate("cand-a"), job))
        book.publish(
            engine.score(_candidate("cand-b", applied_at=datetime(2025, 3, 2)), job)
        )
        book.materialize(job.id)
        events = book.run_auto_contact(job.id)
        assert [e.candidate_id for e in events] == ["cand-a"]
        assert book.get(job.id, "cand-a").status == CandidateStatus.CONTACTED  # type: ignore[union-attr]
        assert book.get(job.id, "cand-b").status == CandidateStatus.PENDING  # type: ignore[union-attr]
        assert book.run_auto_contact(job.id) == []

    def test_republish_keeps_workflow_status(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        book.publish(engine.score(_candidate("cand-a"), job))
        book.materialize(job.id)
        assert [e.candidate_id for e in book.run_auto_contact(job.id)] == ["cand-a"]

        # Profile edit: a fresh score arrives without the stored status.
        book.publish(engine.score(_candidate("cand-a", years_of_experience=5), job))
        ranking = book.materialize(job.id)
        assert ranking[0].status == CandidateStatus.CONTACTED
        assert book.run_auto_contact(job.id) == []

    def test_republish_keeps_interviewed_status(self) -> None:
        book, job = self._book()
        engine = ScoringEngine()
        book.publish(engine.score(_candidate("cand-a"), job))
        book.materialize(job.id)
        book.apply_transition(job.id, "cand-a", CandidateStatus.CONTACTED)
        book.apply_transition(job.id, "cand-a", CandidateStatus.INTERVIEWED)
        book.publish(engine.score(_candidate("cand-a", skills=["React"]), job))
        stored = book.get(job.id, "cand-a")
        assert stored is not None
        assert stored.status == CandidateStatus.INTERVIEWED
        assert stored.sub_scores.skills == 50.0

    def test_export_json(self) -> None:
        book, job = self._book()
        book.publish(ScoringEngine().score(_candidate(), job))
        data = json.loads(export_ranking_json(book.materialize(job.id)))
        assert data[0]["rank"] == 1
        assert data[0]["status"] == "pending"
        assert data[0]["exam_within_time_limit"] is None
        assert set(data[0]["sub_scores"]) >= {"skills", "title_relevance"}


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _settings_file(tmp_path: Path) -> Path:
    config_file = tmp_path / "settings.yaml"
    config_file.write_text(dedent(f"""\
        database:
          path: {tmp_path / "scores.db"}
    """))
    return config_file


class TestCli:
    def test_rank_sample_pool(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["rank", "--pool", SAMPLE_POOL, "--export", "json"])
        data = json.loads(capsys.readouterr().out)
        # Retake pushes margaret's exam to 95, breaking the tie at 100 with ada (85).
        assert [row["candidate_id"] for row in data] == [
            "cand-margaret", "cand-ada", "cand-grace", "cand-linus",
        ]
        assert [row["rank"] for row in data] == [1, 2, 3, 4]
        by_id = {row["candidate_id"]: row for row in data}
        assert by_id["cand-margaret"]["exam_score"] == 95
        assert by_id["cand-margaret"]["exam_within_time_limit"] is True
        assert by_id["cand-grace"]["exam_within_time_limit"] is None
        assert by_id["cand-ada"]["auto_qualified"] is True
        assert by_id["cand-grace"]["auto_qualified"] is False
        assert by_id["cand-linus"]["status"] == "withdrawn"

    def test_rank_table_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["rank", "--pool", SAMPLE_POOL, "--auto-qualified-only"])
        out = capsys.readouterr().out
        assert "2 of 4 candidates shown" in out
        assert out.index("cand-margaret") < out.index("cand-ada")
        assert "cand-grace" not in out

    def test_filters_keep_global_rank(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["rank", "--pool", SAMPLE_POOL, "--status", "withdrawn", "--export", "json"])
        data = json.loads(capsys.readouterr().out)
        assert [(row["candidate_id"], row["rank"]) for row in data] == [("cand-linus", 4)]

    def test_auto_contact_and_save(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        config_file = _settings_file(tmp_path)
        main([
            "rank", "--pool", SAMPLE_POOL, "--config", str(config_file),
            "--auto-contact", "--save",
        ])
        out = capsys.readouterr().out
        assert "auto-contacted cand-margaret" in out
        assert "auto-contacted cand-ada" in out

        conn = init_db(tmp_path / "scores.db")
        stored = get_job_scores(conn, "job-frontend-1")
        assert [s.candidate_id for s in stored][:2] == ["cand-margaret", "cand-ada"]
        assert stored[0].status == CandidateStatus.CONTACTED
        events = get_status_events(conn, "job-frontend-1")
        assert {e.candidate_id for e in events} == {"cand-margaret", "cand-ada"}
        conn.close()

        # A second run reads stored statuses back and contacts no one new.
        main([
            "rank", "--pool", SAMPLE_POOL, "--config", str(config_file),
            "--auto-contact", "--save",
        ])
        assert "auto-contacted" not in capsys.readouterr().out

    def test_explain(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["explain", "--pool", SAMPLE_POOL, "--candidate", "cand-grace"])
        breakdown = json.loads(capsys.readouterr().out)
        assert breakdown["candidate_id"] == "cand-grace"
        assert breakdown["missing_skills"] == ["TypeScript"]
        assert breakdown["auto_qualified"] is False

    def test_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["summary", "--pool", SAMPLE_POOL])
        summary = json.loads(capsys.readouterr().out)
        assert summary["candidates"] == 4
        assert summary["auto_qualified"] == 2
        assert summary["status_counts"] == {"pending": 3, "withdrawn": 1}
        assert summary["exams"]["completed"] == 2

    def test_missing_pool_file(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["summary", "--pool", "/nonexistent/pool.yaml"])
        assert exc.value.code == 1
        assert "Error loading input" in capsys.readouterr().err

    def test_unknown_candidate(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["explain", "--pool", SAMPLE_POOL, "--candidate", "cand-nobody"])
        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_save_closes_connection_on_failure(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        pool_file = tmp_path / "closed_pool.yaml"
        pool_file.write_text(dedent("""\
            job:
              id: job-closed
              title: Backend Engineer
              status: closed
            candidates:
              - id: cand-1
                skills: [Python]
        """))
        opened: list[sqlite3.Connection] = []

        def tracking_init_db(path: str | Path) -> sqlite3.Connection:
            conn = init_db(path)
            opened.append(conn)
            return conn

        monkeypatch.setattr("main.init_db", tracking_init_db)
        with pytest.raises(SystemExit) as exc:
            main([
                "rank", "--pool", str(pool_file),
                "--config", str(_settings_file(tmp_path)), "--save",
            ])
        assert exc.value.code == 1
        assert "closed" in capsys.readouterr().err
        assert len(opened) == 1
        with pytest.raises(sqlite3.ProgrammingError):
            opened[0].execute("SELECT 1")
