# ABOUTME: CLI entry point for the feed aggregation job.
# ABOUTME: Provides subcommands: generate, validate, sources.

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from feed_pulse.config import Settings, get_settings
from feed_pulse.errors import ConfigurationError, CrawlFailedError, FeedValidationError
from feed_pulse.models import FeedDistributionSet
from feed_pulse.output.storer import ATOM_FILE_NAME, JSON_FILE_NAME, RSS_FILE_NAME
from feed_pulse.output.validator import FeedValidator
from feed_pulse.pipeline import run_pipeline
from feed_pulse.sources import load_feed_sources


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog for console or JSON output."""
    settings = settings or get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
        )
    else:
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
                structlog.processors.add_log_level,
                structlog.dev.ConsoleRenderer(colors=True),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
        )


def cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    """Crawl all sources and write the aggregated feeds.

    Nothing is written unless crawling, generation and validation all succeed.
    """
    log = structlog.get_logger()
    log.info("cmd_generate_start")

    if args.retention_days is not None:
        settings = settings.model_copy(update={"retention_days": args.retention_days})

    try:
        sources_path = Path(args.sources) if args.sources else settings.feed_sources_file
        sources = load_feed_sources(sources_path)
        result = asyncio.run(run_pipeline(settings, sources, dry_run=args.dry_run))
    except ConfigurationError as e:
        log.error("configuration_error", error=str(e))
        return 1
    except CrawlFailedError as e:
        log.error("crawl_failed", error=str(e))
        return 1
    except FeedValidationError as e:
        log.error("feed_validation_failed", feed_format=e.feed_format, error=e.message)
        return 1
    except Exception:
        log.exception("cmd_generate_failed")
        return 1

    log.info(
        "cmd_generate_complete",
        items=len(result.generated.aggregated_feed.items),
        sources=len(result.crawl.raw_feeds),
        dry_run=args.dry_run,
    )
    return 0


def cmd_validate(args: argparse.Namespace, settings: Settings) -> int:
    """Validate previously written feed files."""
    log = structlog.get_logger()
    feeds_dir = Path(args.feeds_dir) if args.feeds_dir else settings.feeds_dir

    try:
        distribution_set = FeedDistributionSet(
            atom=(feeds_dir / ATOM_FILE_NAME).read_text(encoding="utf-8"),
            rss=(feeds_dir / RSS_FILE_NAME).read_text(encoding="utf-8"),
            json=(feeds_dir / JSON_FILE_NAME).read_text(encoding="utf-8"),
        )
    except FileNotFoundError as e:
        log.error("feed_file_missing", path=str(e.filename))
        return 1

    try:
        FeedValidator().assert_valid_feeds(distribution_set)
    except FeedValidationError as e:
        log.error("feed_validation_failed", feed_format=e.feed_format, error=e.message)
        return 1

    print(f"\nFeeds in {feeds_dir} are valid.\n")
    return 0


def cmd_sources(args: argparse.Namespace, settings: Settings) -> int:
    """List the configured feed sources."""
    log = structlog.get_logger()
    path = Path(args.sources) if args.sources else settings.feed_sources_file

    try:
        sources = load_feed_sources(path)
    except ConfigurationError as e:
        log.error("configuration_error", error=str(e))
        return 1

    print(f"\n=== Feed sources ({len(sources)}) ===\n")
    for source in sources:
        print(f"  - {source.name}: {source.blog_title}")
        print(f"      {source.url}")
    print()
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="feed_pulse",
        description="feed-pulse - aggregate engineering blog feeds into Atom, RSS and JSON Feed",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # generate command
    generate_parser = subparsers.add_parser(
        "generate",
        help="Crawl feed sources and write the aggregated feeds",
    )
    generate_parser.add_argument(
        "--sources",
        type=str,
        help="Path to the feed sources TOML file. Defaults to settings.",
    )
    generate_parser.add_argument(
        "--retention-days",
        type=int,
        help="Drop items older than this many days (default: settings, 14)",
    )
    generate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate and validate without writing files",
    )

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate feed files written by a previous run",
    )
    validate_parser.add_argument(
        "--feeds-dir",
        type=str,
        help="Directory containing atom.xml, rss.xml and feed.json. Defaults to settings.",
    )

    # sources command
    sources_parser = subparsers.add_parser(
        "sources",
        help="List configured feed sources",
    )
    sources_parser.add_argument(
        "--sources",
        type=str,
        help="Path to the feed sources TOML file. Defaults to settings.",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 1

    configure_logging(settings)

    if args.command is None:
        # Default behavior: full generate run
        args.sources = None
        args.retention_days = None
        args.dry_run = False
        return cmd_generate(args, settings)

    commands = {
        "generate": cmd_generate,
        "validate": cmd_validate,
        "sources": cmd_sources,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args, settings)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
