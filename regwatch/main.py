"""
Regulation tracker - CLI entry point.

    regwatch crawl                         # all catalog sources
    regwatch crawl --source-ids a,b        # subset
    regwatch sources                       # list the catalog
"""

import argparse
import asyncio
import json
import logging
import sys

from .config import SOURCES, get_settings
from .database import Database, get_database
from .agents.orchestrator import run_ingestion_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_source_ids(raw: str):
    ids = [value.strip() for value in (raw or "").split(",") if value.strip()]
    return ids or None


async def cli_main(argv=None) -> int:
    """Command-line interface for running an ingestion pass."""
    parser = argparse.ArgumentParser(description="Teen online-safety regulation tracker")
    sub = parser.add_subparsers(dest="command")

    crawl = sub.add_parser("crawl", help="Run one ingestion pass")
    crawl.add_argument("--source-ids", default="", help="Comma-separated catalog ids (default: all)")
    crawl.add_argument("--database-url", default="", help="Override DATABASE_URL")

    sub.add_parser("sources", help="List catalog sources")

    args = parser.parse_args(argv)

    if args.command == "sources":
        for sid, cfg in SOURCES.items():
            print(f"{sid:28s} {cfg['kind']:14s} {cfg['jurisdiction']}")
        return 0

    if args.command != "crawl":
        parser.print_help()
        return 1

    settings = get_settings()
    if args.database_url:
        db = Database(args.database_url)
        db.create_tables()
    else:
        db = get_database()

    logger.info(f"Classifier key: {'SET' if settings.classifier_api_key else 'MISSING'}")
    logger.info(f"X bearer token: {'SET' if settings.x_bearer_token else 'MISSING'}")

    summary = await run_ingestion_pipeline(db, parse_source_ids(args.source_ids))
    print(json.dumps(summary.model_dump(mode="json"), indent=2))
    return 0


def main():
    """Entry point for CLI."""
    sys.exit(asyncio.run(cli_main()))


if __name__ == "__main__":
    main()
