# =============================================================================
# Unit Tests - Context Assembly
# =============================================================================

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

from app.services.context import RECORD_DELIMITER, assemble_context, format_context
from app.services.errors import StoreUnavailable


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _doc(source: str, category: str, content: str):
    return SimpleNamespace(source=source, category=category, content=content)


class TestFormatContext:
    def test_record_layout(self):
        context = format_context([_doc("a.pdf", "material", "alpha")], max_chars=10_000)
        assert context == (
            "[Document 1]\n"
            "Source: a.pdf\n"
            "Category: material\n"
            "Content:\n"
            "alpha\n"
            f"{RECORD_DELIMITER}"
        )

    def test_records_numbered_in_order(self):
        context = format_context(
            [_doc("a.pdf", "material", "A"), _doc("b.txt", "uploads", "B")],
            max_chars=10_000,
        )
        assert context.index("[Document 1]") < context.index("[Document 2]")
        assert "Source: b.txt\nCategory: uploads" in context
        assert f"{RECORD_DELIMITER}\n\n[Document 2]" in context

    def test_truncates_to_max_chars(self):
        context = format_context([_doc("a.txt", "notes", "x" * 500)], max_chars=100)
        assert len(context) == 100

    def test_empty_store_gives_empty_context(self):
        assert format_context([], max_chars=100) == ""


class TestAssembleContext:
    def test_reads_every_document(self, store):
        _run(store.upsert("a.pdf", "material", "alpha"))
        _run(store.upsert("b.xlsx", "pricing", "beta"))

        context = _run(assemble_context(store, max_chars=10_000))

        assert "Source: a.pdf" in context
        assert "Source: b.xlsx" in context
        assert context.count(RECORD_DELIMITER) == 2

    def test_store_outage_gives_empty_context(self):
        store = AsyncMock()
        store.list_all.side_effect = StoreUnavailable("down")
        assert _run(assemble_context(store, max_chars=100)) == ""
