# =============================================================================
# Corpus Snapshot - JSON Lines Export
# =============================================================================
#
# Offline snapshot of the knowledge store, one JSON object per line:
#
#   {"source": "a.pdf", "category": "material", "content": "..."}
#
# Non-ASCII text is written as-is (UTF-8). The snapshot is never loaded back
# into the live store by this service.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from app.db.models import KnowledgeDocument
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = ("source", "category", "content")


def dump_jsonl(documents: Iterable[KnowledgeDocument], fh: TextIO) -> int:
    """Write documents as JSON lines; returns the number of lines written."""
    written = 0
    for doc in documents:
        record = {name: getattr(doc, name) for name in SNAPSHOT_FIELDS}
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")
        written += 1
    return written


async def export_corpus(store: KnowledgeStore, path: str | Path) -> int:
    """Snapshot the whole store to `path` (overwritten)."""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)

    documents = await store.list_all()
    with output.open("w", encoding="utf-8") as fh:
        written = dump_jsonl(documents, fh)

    logger.info("Exported %d documents to %s", written, output)
    return written


def read_jsonl(path: str | Path) -> list[dict]:
    """Read a snapshot; blank lines are ignored."""
    records: list[dict] = []
    with Path(path).open(encoding="utf-8") as fh:
        for line_number, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            missing = [name for name in SNAPSHOT_FIELDS if name not in record]
            if missing:
                raise ValueError(f"Line {line_number} is missing fields: {missing}")
            records.append(record)
    return records
