"""CLI entrypoint for the security incident ingestion pipeline."""

from __future__ import annotations

import argparse
import logging
import os
from datetime import UTC, date, datetime, timedelta

from dotenv import load_dotenv

from config import (
    ConfigError,
    Settings,
    build_backfill_sources,
    build_classifier,
    build_sources,
    build_store,
)
from models import RunStats
from pipeline import IncidentPipeline

DEFAULT_BACKFILL_DAYS = 30


def _parse_since(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Fetch news, classify security incidents and store new ones")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify and deduplicate, but do not write to the incident store",
    )
    parser.add_argument(
        "--mode",
        choices=["scrape", "backfill"],
        default="scrape",
        help=(
            "'scrape' (default): configured news feeds. "
            "'backfill': Google News searches for older incidents published after --since."
        ),
    )
    parser.add_argument(
        "--since",
        type=_parse_since,
        default=None,
        help=f"Backfill start date (YYYY-MM-DD); defaults to {DEFAULT_BACKFILL_DAYS} days ago",
    )
    return parser.parse_args(argv)


def run(settings: Settings, mode: str, since: date | None, dry_run: bool) -> RunStats:
    """Wire the configured components and execute one pipeline run."""
    keywords = settings.load_keywords()
    if mode == "backfill":
        after = since or (datetime.now(UTC) - timedelta(days=DEFAULT_BACKFILL_DAYS)).date()
        logging.info("Backfill mode: searching for incidents published after %s", after)
        sources = build_backfill_sources(after)
    else:
        sources = build_sources(settings)

    pipeline = IncidentPipeline(
        sources,
        build_classifier(settings, keywords),
        build_store(settings),
        keywords=keywords,
        lookback_days=settings.lookback_days,
        dedup_window_days=settings.dedup_window_days,
        classify_delay=settings.classify_delay_seconds,
        dry_run=dry_run,
    )
    return pipeline.run()


def every_article_failed(stats: RunStats, *, dry_run: bool) -> bool:
    """True when articles reached classification and none finished without an error."""
    if dry_run:
        finished = stats.classified + stats.rejected_invalid
    else:
        finished = stats.persisted + stats.duplicates + stats.rejected_invalid
    return stats.errors > 0 and finished == 0


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the pipeline; returns the process exit code."""
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    args = parse_args(argv)

    try:
        settings = Settings.from_env()
        settings.validate(require_feeds=args.mode == "scrape")
        stats = run(settings, mode=args.mode, since=args.since, dry_run=args.dry_run)
    except ConfigError as exc:
        logging.error("Configuration error: %s", exc)
        return 1

    if every_article_failed(stats, dry_run=args.dry_run):
        logging.error("Every article failed (%s errors); check provider and store credentials", stats.errors)
        return 2
    if args.dry_run:
        logging.info("[dry-run] Nothing was written to the incident store")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
