"""CLI interface for Quizly progress.

Usage:
    python -m quizly due -c questions.json         Show how many questions are due
    python -m quizly stats -c questions.json       Show your statistics
    python -m quizly export -o progress.json       Export progress as JSON
    python -m quizly import progress.json          Replace progress from an export
    python -m quizly reset --yes                   Erase all progress
    python -m quizly -u USER_ID sync               Merge device progress into an account
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from backend.catalog import load_catalog
from backend.config import Settings, settings
from backend.srs import stats
from backend.srs.selection import MemoryLevel, weak_cards
from backend.srs.service import ProgressService
from backend.storage.factory import open_progress_store
from backend.storage.serialization import export_data


@asynccontextmanager
async def open_service(config: Settings) -> AsyncIterator[ProgressService]:
    """Open the configured stores and yield a service bound to them."""
    resources = await open_progress_store(config)
    try:
        yield ProgressService(resources.store)
    finally:
        await resources.aclose()


async def cmd_due(args: argparse.Namespace, config: Settings = settings) -> list[str]:
    """Show how many questions of the catalog are due."""
    catalog = load_catalog(args.catalog)
    ids = [q.id for q in catalog]
    async with open_service(config) as service:
        aggregate = await service.load_progress(args.user)
        due = service.due_cards(aggregate, ids)

    new = [qid for qid in due if qid not in aggregate.card_progress]
    print(f"  {len(due) - len(new)} cards due, {len(new)} new cards available")
    weak = weak_cards(aggregate, ids)
    if weak:
        print(f"  {len(weak)} cards need extra practice")
    return due


async def cmd_stats(args: argparse.Namespace, config: Settings = settings) -> None:
    """Show streak, accuracy and memory levels."""
    async with open_service(config) as service:
        aggregate = await service.load_progress(args.user)

    history = stats.review_history(aggregate)
    print("\n  Quizly Statistics")
    print(f"  {'Streak:':<20} {aggregate.streak} days")
    print(f"  {'Correct rate:':<20} {stats.correct_rate(aggregate)}%")
    print(f"  {'Reviewed cards:':<20} {len(history.cards)}")
    print(f"  {'Due now:':<20} {len(history.due)}")
    print(f"  {'Mastered:':<20} {stats.mastered_count(aggregate)}")
    print(f"  {'Study sessions:':<20} {len(aggregate.study_sessions)}")
    for level in MemoryLevel:
        print(f"    {level.value + ':':<18} {len(history.by_level[level])}")

    if args.catalog:
        print()
        for topic in stats.topic_progress(aggregate, load_catalog(args.catalog)):
            print(f"  {topic.topic:<30} {topic.answered}/{topic.total} ({topic.percentage}%)")
    print()


async def cmd_export(args: argparse.Namespace, config: Settings = settings) -> None:
    """Write progress as pretty-printed JSON to a file or stdout."""
    async with open_service(config) as service:
        data = export_data(await service.load_progress(args.user))
    if args.output:
        args.output.write_text(data, encoding="utf-8")
        print(f"  Progress exported to {args.output}")
    else:
        print(data)


async def cmd_import(args: argparse.Namespace, config: Settings = settings) -> bool:
    """Replace progress with the contents of an exported file."""
    text = args.file.read_text(encoding="utf-8")
    async with open_service(config) as service:
        imported = await service.import_progress(args.user, text)
    if imported is None:
        print(f"  {args.file} is not a valid progress file.")
        return False
    print(f"  Imported progress for {len(imported.card_progress)} cards.")
    return True


async def cmd_reset(args: argparse.Namespace, config: Settings = settings) -> bool:
    """Erase all progress after confirmation."""
    if not args.yes:
        answer = input("  Erase all progress? This cannot be undone [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("  Cancelled.")
            return False
    async with open_service(config) as service:
        await service.reset_progress(args.user)
    print("  Progress reset.")
    return True


async def cmd_sync(args: argparse.Namespace, config: Settings = settings) -> bool:
    """Merge this device's progress with the account's remote progress."""
    if not args.user:
        print("  Sync needs a signed-in user: quizly -u USER_ID sync")
        return False
    async with open_service(config) as service:
        if not service.store.has_remote:
            print("  No remote store configured (set QUIZLY_REMOTE_DATABASE_URL or QUIZLY_REMOTE_REST_URL).")
            return False
        merged = await service.load_progress(args.user)
    print(f"  Synced {len(merged.card_progress)} cards, streak {merged.streak} days.")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quizly",
        description="Quizly study progress",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-u", "--user", default=None, help="Signed-in user id (enables remote sync)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # due
    due_parser = subparsers.add_parser("due", help="Show questions due for review")
    due_parser.add_argument("-c", "--catalog", type=Path, required=True, help="JSON list of {id, topic}")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show your statistics")
    stats_parser.add_argument("-c", "--catalog", type=Path, default=None, help="JSON list of {id, topic}")

    # export
    export_parser = subparsers.add_parser("export", help="Export progress as JSON")
    export_parser.add_argument(
        "-o", "--output", type=Path, default=None, help="Output file (stdout if omitted)"
    )

    # import
    import_parser = subparsers.add_parser("import", help="Import progress from an export")
    import_parser.add_argument("file", type=Path, help="Exported progress JSON")

    # reset
    reset_parser = subparsers.add_parser("reset", help="Erase all progress")
    reset_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")

    # sync
    subparsers.add_parser("sync", help="Merge device progress into the account (requires --user)")
    return parser


def main() -> None:
    """Entry point for the Quizly CLI application."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "due": cmd_due,
        "stats": cmd_stats,
        "export": cmd_export,
        "import": cmd_import,
        "reset": cmd_reset,
        "sync": cmd_sync,
    }

    result = asyncio.run(cmd_map[args.command](args))
    if result is False:
        sys.exit(1)


if __name__ == "__main__":
    main()
