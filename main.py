"""CLI entry point for the candidate scoring engine."""

import argparse
import json
import logging
import sys

from src.core.config import Settings
from src.core.db import get_job_scores, init_db, insert_status_event, upsert_score
from src.core.errors import ScoringEngineError
from src.core.pool import ApplicantPool
from src.core.schemas import CandidateScore, CandidateStatus
from src.pipeline.matcher import build_filters, run_filter_chain
from src.pipeline.orchestrator import ScoringEngine, export_ranking_json
from src.pipeline.ranker import SortField, sort_view, top
from src.pipeline.report import summarize_pool
from src.pipeline.workflow import auto_contact


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--pool",
        required=True,
        help="Path to applicant pool YAML (job, candidates, exams)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: built-in weights and thresholds)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Candidate scoring engine - score, rank and qualify applicants for a job",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- rank subcommand ---
    rank_parser = subparsers.add_parser("rank", help="Score and rank a job's applicants")
    _add_common(rank_parser)
    rank_parser.add_argument(
        "--status",
        action="append",
        default=[],
        choices=[s.value for s in CandidateStatus],
        help="Show only candidates in this status (repeatable)",
    )
    rank_parser.add_argument("--min-score", type=int, default=0, help="Minimum total (default: 0)")
    rank_parser.add_argument("--max-score", type=int, default=100, help="Maximum total (default: 100)")
    rank_parser.add_argument(
        "--auto-qualified-only",
        action="store_true",
        help="Show only auto-qualified candidates",
    )
    rank_parser.add_argument(
        "--skill",
        action="append",
        default=[],
        help="Show only candidates with a skill containing this token (repeatable)",
    )
    rank_parser.add_argument(
        "--sort",
        choices=[f.value for f in SortField],
        default=SortField.TOTAL.value,
        help="Display sort field (default: total); ranks are unaffected",
    )
    rank_parser.add_argument("--ascending", action="store_true", help="Sort ascending")
    rank_parser.add_argument("--top", type=int, default=None, help="Show only the first N rows")
    rank_parser.add_argument(
        "--auto-contact",
        action="store_true",
        help="Move the job's top auto-qualified candidates to 'contacted'",
    )
    rank_parser.add_argument(
        "--save",
        action="store_true",
        help="Persist scores and status events to the configured database",
    )
    rank_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )

    # --- explain subcommand ---
    explain_parser = subparsers.add_parser(
        "explain",
        help="Show the sub-score breakdown and qualification rationale for one candidate",
    )
    _add_common(explain_parser)
    explain_parser.add_argument("--candidate", required=True, help="Candidate id")

    # --- summary subcommand ---
    summary_parser = subparsers.add_parser("summary", help="Show pool statistics")
    _add_common(summary_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str | None) -> Settings:
    return Settings.from_yaml(path) if path else Settings()


def seed_existing(
    engine: ScoringEngine,
    pool: ApplicantPool,
    stored: list[CandidateScore],
) -> dict[str, CandidateScore]:
    """Build the 'current score' map used to carry status over and freeze terminals.

    Stored scores win; statuses declared in the pool file apply to the rest.
    """
    existing = {s.candidate_id: s for s in stored}
    for candidate_id, status in pool.statuses.items():
        if candidate_id in existing:
            continue
        fresh = engine.score(pool.candidate(candidate_id), pool.job, pool.exams_for(candidate_id))
        existing[candidate_id] = fresh.model_copy(update={"status": status})
    return existing


def cmd_rank(args: argparse.Namespace, settings: Settings, pool: ApplicantPool) -> None:
    """Handle rank subcommand."""
    engine = ScoringEngine(settings)
    conn = init_db(settings.database.path) if args.save else None
    try:
        stored = get_job_scores(conn, pool.job.id) if conn is not None else []

        existing = seed_existing(engine, pool, stored)
        ranked = engine.rescore_pool(pool.job, pool.candidates, pool.exams, existing)

        events = []
        if args.auto_contact:
            ranked, events = auto_contact(ranked, pool.job)

        if conn is not None:
            for s in ranked:
                upsert_score(conn, s)
            for e in events:
                insert_status_event(conn, e)
    finally:
        if conn is not None:
            conn.close()

    filters = build_filters(
        statuses=args.status,
        min_score=args.min_score,
        max_score=args.max_score,
        auto_qualified_only=args.auto_qualified_only,
        skill_tokens=args.skill,
    )
    view = run_filter_chain(ranked, filters)
    view = sort_view(view, SortField(args.sort), descending=not args.ascending)
    if args.top is not None:
        view = top(view, args.top)

    if args.export == "json":
        print(export_ranking_json(view))
        return

    print(f"Job '{pool.job.title}' ({pool.job.id}): {len(view)} of {len(ranked)} candidates shown")
    for s in view:
        exam = "-" if s.exam_score is None else str(s.exam_score)
        flag = "Q" if s.auto_qualified else " "
        print(
            f"  #{s.rank:<3} {s.candidate_id:<16} total {s.total:>3}  exam {exam:>3}  "
            f"{flag} {s.status.value}"
        )
    for e in events:
        print(f"  auto-contacted {e.candidate_id} ({e.note})")


def cmd_explain(args: argparse.Namespace, settings: Settings, pool: ApplicantPool) -> None:
    """Handle explain subcommand."""
    engine = ScoringEngine(settings)
    candidate = pool.candidate(args.candidate)
    breakdown = engine.explain(candidate, pool.job, pool.exams_for(candidate.id))
    print(json.dumps(breakdown, indent=2))


def cmd_summary(args: argparse.Namespace, settings: Settings, pool: ApplicantPool) -> None:
    """Handle summary subcommand."""
    engine = ScoringEngine(settings)
    existing = seed_existing(engine, pool, [])
    ranked = engine.rescore_pool(pool.job, pool.candidates, pool.exams, existing)
    print(summarize_pool(ranked).model_dump_json(indent=2))


_COMMANDS = {
    "rank": cmd_rank,
    "explain": cmd_explain,
    "summary": cmd_summary,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
        pool = ApplicantPool.from_yaml(args.pool)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading input: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        _COMMANDS[args.command](args, settings, pool)
    except (KeyError, ValueError, ScoringEngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
