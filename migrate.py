# migrate.py
"""
Command line for the v2 migration and its maintenance jobs.

    python migrate.py run --source data/matches.json
    python migrate.py run --source https://example.org/matches.json --wipe
    python migrate.py run --resume
    python migrate.py fold-squads
    python migrate.py recalculate-team-stats
    python migrate.py duplicates
    python migrate.py merge 2000000000000000042 2000000000000000007
    python migrate.py validate

Exit codes: 0 ok, 1 some items failed, 2 store unreachable / bad configuration.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from cricket_api.config import (
    CAREER_BATCH_SIZE,
    MAX_CONCURRENT_COMMITS,
    MIGRATION_BATCH_SIZE,
    SHOW_PROGRESS,
    SOURCE_JSON_PATH,
    validate_config,
)
from cricket_api.logging_setup import configure_logging
from cricket_api.maintenance import MergeError, find_duplicate_players, fold_legacy_squads, merge_players, validate_documents
from cricket_api.migration import MigrationError, MigrationOptions, MigrationOrchestrator, recalculate_team_stats
from cricket_api.models import MigrationReport
from cricket_api.source import SourceFormatError, load_source, parse_corpus
from cricket_api.store import DocumentStore, FirestoreStore, MemoryStore, StoreUnavailableError

logger = logging.getLogger("migrate")

EXIT_OK = 0
EXIT_ITEM_ERRORS = 1
EXIT_UNAVAILABLE = 2


def _print_report(report: MigrationReport) -> None:
    for line in report.summary_lines():
        print(line)
    if report.warnings:
        print(f"  {len(report.warnings)} warning(s), first: {report.warnings[0]}")


# -----------------------
# Subcommands
# -----------------------
async def cmd_run(args: argparse.Namespace, store: DocumentStore) -> int:
    try:
        raw = load_source(args.source)
    except SourceFormatError as e:
        logger.error("Cannot load source: %s", e)
        return EXIT_UNAVAILABLE

    matches, failures = parse_corpus(raw)
    logger.info("Parsed %d matches (%d rejected)", len(matches), len(failures))

    options = MigrationOptions(
        wipe=args.wipe,
        resume=args.resume,
        batch_size=args.batch_size,
        career_batch_size=args.career_batch_size,
        max_concurrency=args.max_concurrency,
        progress=not args.no_progress,
    )
    orchestrator = MigrationOrchestrator(store, options)
    try:
        report = await orchestrator.run(matches, failures)
    except MigrationError as e:
        logger.error("Migration could not start: %s", e)
        return EXIT_UNAVAILABLE

    _print_report(report)
    if args.dry_run:
        print("  (dry run: nothing was written to Firestore)")
    return report.exit_code


async def cmd_fold_squads(args: argparse.Namespace, store: DocumentStore) -> int:
    report = await fold_legacy_squads(store, batch_size=args.batch_size)
    _print_report(report)
    return report.exit_code


async def cmd_recalculate_team_stats(args: argparse.Namespace, store: DocumentStore) -> int:
    report = await recalculate_team_stats(store, MigrationOptions(progress=not args.no_progress))
    _print_report(report)
    return report.exit_code


async def cmd_duplicates(args: argparse.Namespace, store: DocumentStore) -> int:
    groups = await find_duplicate_players(store)
    if not groups:
        print("No duplicate players found")
    for group in groups:
        print(" / ".join(f"{d.get('name')} [{d.get('playerId')} #{d.get('displayId')}]" for d in group))
    return EXIT_OK


async def cmd_merge(args: argparse.Namespace, store: DocumentStore) -> int:
    try:
        result = await merge_players(store, args.source_id, args.target_id, batch_size=args.batch_size)
    except MergeError as e:
        logger.error("Merge refused: %s", e)
        return EXIT_ITEM_ERRORS

    print(
        f"Merged {result.source_id} into {result.target_id}: "
        f"{result.matches_updated} matches, {result.teams_updated} teams updated"
    )
    return EXIT_ITEM_ERRORS if result.failed_keys else EXIT_OK


async def cmd_validate(args: argparse.Namespace, store: DocumentStore) -> int:
    problems = await validate_documents(store)
    for p in problems:
        print(f"  ! {p}")
    print(f"{len(problems)} invalid document(s)")
    return EXIT_ITEM_ERRORS if problems else EXIT_OK


# -----------------------
# Parser
# -----------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cricket stats v2 migration and maintenance")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    parser.add_argument("--no-progress", action="store_true", default=not SHOW_PROGRESS, help="Disable progress bars")
    parser.add_argument("--batch-size", type=int, default=MIGRATION_BATCH_SIZE, help="Writes per committed batch")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Migrate a source JSON corpus into the v2 collections")
    run.add_argument("--source", default=SOURCE_JSON_PATH, help="Path or http(s) URL of the match JSON array")
    run.add_argument("--wipe", action="store_true", help="Delete v2 players/teams/matches before migrating")
    run.add_argument("--resume", action="store_true", help="Skip phases completed by the last checkpoint")
    run.add_argument("--career-batch-size", type=int, default=CAREER_BATCH_SIZE, help="Writes per batch for career updates")
    run.add_argument("--max-concurrency", type=int, default=MAX_CONCURRENT_COMMITS, help="Batches committed in parallel")
    run.add_argument("--dry-run", action="store_true", help="Run against an in-memory store; nothing is written")
    run.set_defaults(handler=cmd_run)

    sub.add_parser("fold-squads", help="Embed legacy match squads into matches").set_defaults(handler=cmd_fold_squads)
    sub.add_parser("recalculate-team-stats", help="Rebuild team win/loss stats from matches").set_defaults(
        handler=cmd_recalculate_team_stats
    )
    sub.add_parser("duplicates", help="List players that look like duplicates").set_defaults(handler=cmd_duplicates)

    merge = sub.add_parser("merge", help="Merge a duplicate player into another")
    merge.add_argument("source_id", help="Player id to fold away")
    merge.add_argument("target_id", help="Player id that keeps the combined record")
    merge.set_defaults(handler=cmd_merge)

    sub.add_parser("validate", help="Re-validate stored players, teams and matches").set_defaults(handler=cmd_validate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        validate_config()
    except RuntimeError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_UNAVAILABLE

    if args.batch_size <= 0 or args.batch_size > 500:
        logger.error("--batch-size must be between 1 and 500")
        return EXIT_UNAVAILABLE
    # run-only options; other commands use the configured defaults
    career_batch_size = getattr(args, "career_batch_size", CAREER_BATCH_SIZE)
    if career_batch_size <= 0 or career_batch_size > 500:
        logger.error("--career-batch-size must be between 1 and 500")
        return EXIT_UNAVAILABLE
    if getattr(args, "max_concurrency", MAX_CONCURRENT_COMMITS) < 1:
        logger.error("--max-concurrency must be at least 1")
        return EXIT_UNAVAILABLE

    try:
        store = MemoryStore() if getattr(args, "dry_run", False) else FirestoreStore()
        return asyncio.run(args.handler(args, store))
    except StoreUnavailableError as e:
        logger.error("Document store unavailable: %s", e)
        return EXIT_UNAVAILABLE


if __name__ == "__main__":
    sys.exit(main())
