#!/usr/bin/env python3
"""
Run one ingestion pass over source directories, in-process (no Celery).

Usage:
    uv run python scripts/ingest_sources.py                  # INGEST_SOURCES
    uv run python scripts/ingest_sources.py data/material data/pricing
    uv run python scripts/ingest_sources.py data/faq --category faq

Each directory's name is its category unless --category is given.
Exits non-zero when the knowledge store could not be reached.
"""

import argparse
import asyncio
import json
import sys

from app.config import settings
from app.main import configure_logging
from app.services.sources import DirectorySource, sources_from_settings
from app.workers.tasks import run_configured_ingestion


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("paths", nargs="*", help="Directories to ingest")
    parser.add_argument("--category", default=None, help="Category for every path")
    parser.add_argument(
        "--threshold",
        type=int,
        default=settings.acceptance_threshold,
        help="Minimum extracted length (exclusive)",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level)

    if args.paths:
        sources = [DirectorySource(path, args.category) for path in args.paths]
    else:
        sources = sources_from_settings(settings)

    report = asyncio.run(
        run_configured_ingestion(settings.database_url, sources, threshold=args.threshold)
    )
    print(json.dumps(report.as_dict(), indent=2, ensure_ascii=False))
    return 1 if report.store_failed else 0


if __name__ == "__main__":
    sys.exit(main())
