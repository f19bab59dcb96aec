# =============================================================================
# Ingestion Pipeline - Extract and Upsert
# =============================================================================
#
# Two modes share the same per-file logic (ingest_file):
#
#   run(sources)                 → batch over configured content sources
#   ingest_upload(name, data)    → one uploaded payload, category "uploads"
#
# PER-FILE STEPS:
#   1. Skip hidden names (leading ".") and unsupported extensions
#   2. Read bytes (worker thread)
#   3. Extract + normalise text (worker thread; extractors never raise)
#   4. Discard text not longer than the acceptance threshold
#   5. Upsert (source=file name, category=source category)
#
# Files are processed sequentially. A failure on one file is logged and the
# run moves on; the run always reaches the last file and reports how many
# documents were upserted.
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.db.models import UPLOADS_CATEGORY, KnowledgeDocument
from app.services.errors import (
    BelowThreshold,
    ExtractionFailure,
    StoreUnavailable,
    UnsupportedFileType,
)
from app.services.extractor import detect_format, extract_text
from app.services.sources import ContentSource
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTANCE_THRESHOLD = 50


class FileOutcome(str, enum.Enum):
    UPSERTED = "upserted"
    UNSUPPORTED = "unsupported"
    EXTRACTION_FAILED = "extraction_failed"
    BELOW_THRESHOLD = "below_threshold"
    STORE_FAILED = "store_failed"


@dataclass
class FileResult:
    name: str
    category: str
    outcome: FileOutcome
    detail: str | None = None


@dataclass
class IngestionReport:
    """Summary of one batch run."""

    results: list[FileResult] = field(default_factory=list)
    store_error: str | None = None

    @property
    def upserted(self) -> int:
        return self._count(FileOutcome.UPSERTED)

    @property
    def skipped(self) -> int:
        return self._count(FileOutcome.UNSUPPORTED) + self._count(FileOutcome.BELOW_THRESHOLD)

    @property
    def failed(self) -> int:
        return self._count(FileOutcome.EXTRACTION_FAILED) + self._count(FileOutcome.STORE_FAILED)

    @property
    def store_failed(self) -> bool:
        return self.store_error is not None or self._count(FileOutcome.STORE_FAILED) > 0

    def _count(self, outcome: FileOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    def as_dict(self) -> dict:
        return {
            "upserted": self.upserted,
            "skipped": self.skipped,
            "failed": self.failed,
            "store_failed": self.store_failed,
            "files": [
                {"name": r.name, "category": r.category, "outcome": r.outcome.value}
                for r in self.results
            ],
        }


class IngestionPipeline:
    """Runs extraction + upsert for content sources or a single upload."""

    def __init__(
        self,
        store: KnowledgeStore,
        threshold: int = DEFAULT_ACCEPTANCE_THRESHOLD,
        verbose_spreadsheets: bool = False,
    ) -> None:
        self._store = store
        self._threshold = threshold
        self._verbose_spreadsheets = verbose_spreadsheets

    @staticmethod
    def is_candidate(name: str) -> bool:
        """Visible file with a supported extension."""
        if name.startswith("."):
            return False
        return detect_format(name) is not None

    async def _extract(self, name: str, data: bytes, verbose: bool) -> str:
        text = await asyncio.to_thread(extract_text, data, name, verbose)
        if not text:
            raise ExtractionFailure(name)
        if len(text) <= self._threshold:
            raise BelowThreshold(name, len(text), self._threshold)
        return text

    async def ingest_file(self, name: str, data: bytes, category: str) -> FileResult:
        """
        Extract one payload and upsert it.

        Extraction problems come back as a FileResult; StoreUnavailable
        propagates to the caller.
        """
        if not self.is_candidate(name):
            return FileResult(name, category, FileOutcome.UNSUPPORTED)

        try:
            text = await self._extract(name, data, self._verbose_spreadsheets)
        except BelowThreshold as exc:
            logger.info("Skipped (empty or too short): %s (%d chars)", name, exc.length)
            return FileResult(name, category, FileOutcome.BELOW_THRESHOLD, str(exc))
        except ExtractionFailure as exc:
            logger.warning("Skipped (no text extracted): %s", name)
            return FileResult(name, category, FileOutcome.EXTRACTION_FAILED, str(exc))

        await self._store.upsert(name, category, text)
        logger.info("Ingested: %s (%s, %d chars)", name, category, len(text))
        return FileResult(name, category, FileOutcome.UPSERTED)

    async def run(self, sources: Iterable[ContentSource]) -> IngestionReport:
        """Ingest every candidate file of every source, one at a time."""
        report = IngestionReport()
        logger.info("Starting ingestion...")

        for source in sources:
            try:
                entries = await source.entries()
            except OSError as exc:
                logger.error("Cannot list source %r: %s", source, exc)
                continue

            for entry in entries:
                if not self.is_candidate(entry.name):
                    continue

                try:
                    data = await entry.read()
                    result = await self.ingest_file(entry.name, data, source.category)
                except StoreUnavailable as exc:
                    result = FileResult(
                        entry.name, source.category, FileOutcome.STORE_FAILED, str(exc)
                    )
                except Exception as exc:
                    logger.exception("Error processing %s: %s", entry.name, exc)
                    result = FileResult(
                        entry.name, source.category, FileOutcome.EXTRACTION_FAILED, str(exc)
                    )
                report.results.append(result)

        logger.info(
            "Ingestion complete. Upserted %d documents into database "
            "(%d skipped, %d failed).",
            report.upserted, report.skipped, report.failed,
        )
        return report

    async def ingest_upload(self, filename: str, data: bytes) -> KnowledgeDocument:
        """
        Ingest one uploaded file into the "uploads" category.

        Uploads render spreadsheets verbosely (sheet markers, one row per line).

        Raises:
            UnsupportedFileType: Extension outside pdf/xlsx/xls/txt/md.
            ExtractionFailure: No text, or not more than the threshold.
            StoreUnavailable: Persistence layer unreachable.
        """
        if detect_format(filename) is None:
            raise UnsupportedFileType(filename)

        text = await self._extract(filename, data, verbose=True)
        doc = await self._store.upsert(filename, UPLOADS_CATEGORY, text)
        logger.info("Ingested upload: %s (%d chars)", filename, len(text))
        return doc
