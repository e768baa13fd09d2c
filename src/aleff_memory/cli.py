#!/usr/bin/env python3
"""Backfill CLI.

    aleff-memory-backfill embeddings [--kind K ...] [--limit N] [--batch N] [--dry-run]
    aleff-memory-backfill relationships [--dry-run]

Exits 0 when the job ran to completion (per-row failures included) and 1 on
fatal setup errors: missing configuration or an unreachable database.
"""

import argparse
import asyncio
import sys

from .config import Settings, get_settings
from .database import Database
from .embeddings import EmbeddingProvider
from .enums import EmbeddingTarget
from .errors import AleffMemoryError, ConfigurationError
from .jobs import EmbeddingBackfill, RelationshipBackfill
from .logging import LogEventType, configure_logging, get_logger
from .repository import MemoryRepository, PostgresRepository
from .services import KnowledgeGraph

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aleff-memory-backfill", description="Backfill derived memory data"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    embeddings_parser = subparsers.add_parser(
        "embeddings", help="Generate embeddings for rows that have none"
    )
    embeddings_parser.add_argument(
        "--kind",
        action="append",
        choices=[t.value for t in EmbeddingTarget],
        help="Kind to backfill (repeatable; default: all)",
    )
    embeddings_parser.add_argument(
        "--limit", type=int, help="Maximum rows per kind"
    )
    embeddings_parser.add_argument(
        "--batch", type=int, default=10, help="Rows between progress reports"
    )
    embeddings_parser.add_argument(
        "--dry-run", action="store_true", help="Only report what would be done"
    )

    relationships_parser = subparsers.add_parser(
        "relationships", help="Derive graph relationships from open facts"
    )
    relationships_parser.add_argument(
        "--dry-run", action="store_true", help="Only report what would be created"
    )
    return parser


def check_configuration(settings: Settings, args: argparse.Namespace) -> None:
    if not settings.is_postgres_configured:
        raise ConfigurationError(
            "Database not configured: set DATABASE_URL or POSTGRES_* env vars",
            setting="DATABASE_URL",
        )
    if (
        args.command == "embeddings"
        and not args.dry_run
        and not settings.is_embedding_configured
    ):
        raise ConfigurationError("OPENAI_API_KEY not set", setting="OPENAI_API_KEY")


async def run_command(
    args: argparse.Namespace,
    settings: Settings,
    repository: MemoryRepository,
    embeddings: EmbeddingProvider,
) -> None:
    if args.command == "embeddings":
        report = await EmbeddingBackfill(
            repository, embeddings, delay_ms=settings.BACKFILL_DELAY_MS
        ).run(
            kinds=args.kind,
            limit=args.limit,
            batch_size=args.batch,
            dry_run=args.dry_run,
        )
        for kind, summary in report.items():
            line = (
                f"{kind}: {summary.before.with_embedding}/{summary.before.total} "
                f"embedded, {summary.candidates} candidates, "
                f"{summary.updated} updated, {summary.errors} errors"
            )
            if summary.after is not None:
                line += (
                    f"; after: {summary.after.with_embedding}/{summary.after.total}"
                    " embedded"
                )
            print(line)
    else:
        graph = KnowledgeGraph(repository)
        summary = await RelationshipBackfill(repository, graph, embeddings).run(
            dry_run=args.dry_run
        )
        print(
            f"facts processed: {summary.facts_processed}, "
            f"relationships created: {summary.relationships_created}, "
            f"skipped: {summary.relationships_skipped}, "
            f"entities created: {summary.entities_created}, "
            f"errors: {summary.errors}"
        )


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    database = Database(settings)
    embeddings = EmbeddingProvider(settings)
    try:
        await database.init()
        await run_command(args, settings, PostgresRepository(database), embeddings)
    except AleffMemoryError as e:
        logger.error(
            "Backfill aborted", event_type=LogEventType.JOB_ERROR, error=str(e)
        )
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await embeddings.close()
        await database.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(
        service_name="aleff-memory-backfill",
        log_level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON_FORMAT,
    )
    try:
        check_configuration(settings, args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return asyncio.run(_main(args, settings))


if __name__ == "__main__":
    sys.exit(main())
