# =============================================================================
# Unit Tests - Ingestion Pipeline and Content Sources
# =============================================================================
#
# Text payloads only, so no Docling conversion runs. The store is the real
# SQLite-backed KnowledgeStore except where a failure must be injected.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.config import IngestSourceConfig, Settings
from app.services.errors import (
    BelowThreshold,
    ExtractionFailure,
    StoreUnavailable,
    UnsupportedFileType,
)
from app.services.ingestion import FileOutcome, IngestionPipeline
from app.services.sources import (
    DirectorySource,
    InMemorySource,
    SourceEntry,
    sources_from_settings,
)

LONG_TEXT = (
    "Quarterly sales review: the northern region closed eleven new accounts "
    "and renewed every existing contract."
).encode()


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FlakySource:
    """Source whose first entry cannot be read."""

    category = "material"

    async def entries(self) -> list[SourceEntry]:
        async def broken() -> bytes:
            raise OSError("permission denied")

        async def fine() -> bytes:
            return LONG_TEXT

        return [SourceEntry("broken.txt", broken), SourceEntry("fine.txt", fine)]


# ---------------------------------------------------------------------------
# Candidate filtering
# ---------------------------------------------------------------------------


class TestIsCandidate:
    def test_supported_visible_files(self):
        for name in ("a.pdf", "b.xlsx", "c.xls", "d.txt", "e.md"):
            assert IngestionPipeline.is_candidate(name)

    def test_hidden_and_unsupported(self):
        assert not IngestionPipeline.is_candidate(".hidden.txt")
        assert not IngestionPipeline.is_candidate("photo.png")
        assert not IngestionPipeline.is_candidate("archive.zip")


# ---------------------------------------------------------------------------
# Batch runs
# ---------------------------------------------------------------------------


class TestRun:
    def test_ingests_candidates_and_ignores_the_rest(self, store):
        source = InMemorySource(
            "material",
            {
                "review.txt": LONG_TEXT,
                ".draft.txt": LONG_TEXT,
                "logo.png": b"\x89PNG",
            },
        )
        report = _run(IngestionPipeline(store).run([source]))

        assert report.upserted == 1
        assert [(d.source, d.category) for d in _run(store.list_all())] == [
            ("review.txt", "material")
        ]

    def test_threshold_is_exclusive(self, store):
        source = InMemorySource(
            "notes",
            {"exact.txt": b"x" * 50, "longer.txt": b"y" * 51, "empty.txt": b""},
        )
        report = _run(IngestionPipeline(store, threshold=50).run([source]))

        outcomes = {r.name: r.outcome for r in report.results}
        assert outcomes == {
            "exact.txt": FileOutcome.BELOW_THRESHOLD,
            "longer.txt": FileOutcome.UPSERTED,
            "empty.txt": FileOutcome.EXTRACTION_FAILED,
        }
        assert [d.source for d in _run(store.list_all())] == ["longer.txt"]

    def test_short_reingest_leaves_existing_row_untouched(self, store):
        pipeline = IngestionPipeline(store, threshold=50)
        _run(pipeline.run([InMemorySource("material", {"review.txt": LONG_TEXT})]))
        before = _run(store.list_all())[0]

        report = _run(pipeline.run([InMemorySource("material", {"review.txt": b"too short"})]))

        assert report.results[0].outcome is FileOutcome.BELOW_THRESHOLD
        after = _run(store.list_all())
        assert len(after) == 1
        assert after[0].content == before.content
        assert after[0].updated_at == before.updated_at

    def test_rerun_is_idempotent(self, store):
        source = InMemorySource("material", {"review.txt": LONG_TEXT})
        pipeline = IngestionPipeline(store)

        _run(pipeline.run([source]))
        _run(pipeline.run([source]))

        assert _run(store.count()) == 1

    def test_unreadable_file_does_not_stop_the_run(self, store):
        report = _run(IngestionPipeline(store).run([FlakySource()]))

        outcomes = {r.name: r.outcome for r in report.results}
        assert outcomes["broken.txt"] is FileOutcome.EXTRACTION_FAILED
        assert outcomes["fine.txt"] is FileOutcome.UPSERTED
        assert report.failed == 1

    def test_store_outage_is_reported_per_file(self):
        store = AsyncMock()
        store.upsert.side_effect = StoreUnavailable("down")
        source = InMemorySource("material", {"a.txt": LONG_TEXT, "b.txt": LONG_TEXT})

        report = _run(IngestionPipeline(store).run([source]))

        assert report.store_failed is True
        assert report.upserted == 0
        assert store.upsert.await_count == 2

    def test_report_as_dict(self, store):
        source = InMemorySource("material", {"a.txt": LONG_TEXT, "b.txt": b"short"})
        summary = _run(IngestionPipeline(store).run([source])).as_dict()

        assert summary["upserted"] == 1
        assert summary["skipped"] == 1
        assert summary["failed"] == 0
        assert summary["store_failed"] is False
        assert {f["name"] for f in summary["files"]} == {"a.txt", "b.txt"}


# ---------------------------------------------------------------------------
# Single-file entry points
# ---------------------------------------------------------------------------


class TestIngestFile:
    def test_unsupported_outcome(self, store):
        result = _run(IngestionPipeline(store).ingest_file("x.png", b"data", "material"))
        assert result.outcome is FileOutcome.UNSUPPORTED

    def test_store_unavailable_propagates(self):
        store = AsyncMock()
        store.upsert.side_effect = StoreUnavailable("down")
        with pytest.raises(StoreUnavailable):
            _run(IngestionPipeline(store).ingest_file("a.txt", LONG_TEXT, "material"))


class TestIngestUpload:
    def test_upload_goes_to_uploads_category(self, store):
        doc = _run(IngestionPipeline(store).ingest_upload("notes.txt", LONG_TEXT))
        assert doc.category == "uploads"
        assert doc.source == "notes.txt"

    def test_reupload_overwrites(self, store):
        pipeline = IngestionPipeline(store)
        _run(pipeline.ingest_upload("notes.txt", LONG_TEXT))
        _run(pipeline.ingest_upload("notes.txt", LONG_TEXT + b" Updated figures."))

        docs = _run(store.list_all())
        assert len(docs) == 1
        assert docs[0].content.endswith("Updated figures.")

    def test_unsupported_upload_raises(self, store):
        with pytest.raises(UnsupportedFileType):
            _run(IngestionPipeline(store).ingest_upload("scan.png", b"\x89PNG"))

    def test_short_upload_raises_below_threshold(self, store):
        with pytest.raises(BelowThreshold):
            _run(IngestionPipeline(store).ingest_upload("tiny.txt", b"hi"))

    def test_empty_upload_raises_extraction_failure(self, store):
        with pytest.raises(ExtractionFailure):
            _run(IngestionPipeline(store).ingest_upload("blank.md", b"   \n"))


# ---------------------------------------------------------------------------
# Directory sources
# ---------------------------------------------------------------------------


class TestDirectorySource:
    def test_lists_files_sorted_and_defaults_category(self, tmp_path):
        folder = tmp_path / "pricing"
        folder.mkdir()
        (folder / "b.txt").write_bytes(b"b")
        (folder / "a.txt").write_bytes(b"a")
        (folder / "nested").mkdir()

        source = DirectorySource(folder)
        entries = _run(source.entries())

        assert source.category == "pricing"
        assert [e.name for e in entries] == ["a.txt", "b.txt"]
        assert _run(entries[0].read()) == b"a"

    def test_missing_directory_lists_nothing(self, tmp_path):
        assert _run(DirectorySource(tmp_path / "nope").entries()) == []

    def test_explicit_category(self, tmp_path):
        assert DirectorySource(tmp_path, category="faq").category == "faq"

    def test_directory_run_end_to_end(self, store, tmp_path):
        folder = tmp_path / "material"
        folder.mkdir()
        (folder / "review.md").write_bytes(LONG_TEXT)

        report = _run(IngestionPipeline(store).run([DirectorySource(folder)]))

        assert report.upserted == 1
        assert _run(store.list_all())[0].category == "material"

    def test_sources_from_settings(self, tmp_path):
        settings = Settings(
            ingest_sources=[
                IngestSourceConfig(path=str(tmp_path / "material")),
                IngestSourceConfig(path=str(tmp_path / "x"), category="faq"),
            ]
        )
        assert [s.category for s in sources_from_settings(settings)] == ["material", "faq"]
