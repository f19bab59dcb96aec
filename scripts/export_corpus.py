#!/usr/bin/env python3
"""
Snapshot the knowledge store to a JSON Lines file.

Usage:
    uv run python scripts/export_corpus.py
    uv run python scripts/export_corpus.py --output backups/knowledge.jsonl

Output (default):
    data/knowledge.jsonl
"""

import argparse
import asyncio

from app.config import settings
from app.db.engine import create_engine_for_url, create_session_factory
from app.main import configure_logging
from app.services.export import export_corpus
from app.services.store import KnowledgeStore

DEFAULT_OUTPUT = "data/knowledge.jsonl"


async def _export(output: str) -> int:
    engine = create_engine_for_url(settings.database_url, use_null_pool=True)
    try:
        store = KnowledgeStore(create_session_factory(engine))
        return await export_corpus(store, output)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Export the knowledge store as JSONL")
    parser.add_argument("--output", default=DEFAULT_OUTPUT)
    args = parser.parse_args()

    configure_logging(settings.log_level)
    written = asyncio.run(_export(args.output))
    print(f"Wrote {written} documents to {args.output}")


if __name__ == "__main__":
    main()
