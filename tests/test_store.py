# =============================================================================
# Unit Tests - Knowledge Store
# =============================================================================
#
# Runs against SQLite (aiosqlite) in tmp_path; see conftest.store.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from app.db.engine import create_engine_for_url, create_session_factory
from app.services.errors import DocumentNotFound, StoreUnavailable
from app.services.store import KnowledgeStore


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class TestUpsert:
    def test_insert_then_list(self, store):
        doc = _run(store.upsert("a.pdf", "material", "alpha"))
        assert doc.id is not None

        docs = _run(store.list_all())
        assert [(d.source, d.category, d.content) for d in docs] == [
            ("a.pdf", "material", "alpha")
        ]

    def test_same_key_replaces_content(self, store):
        first = _run(store.upsert("a.pdf", "material", "v1"))
        second = _run(store.upsert("a.pdf", "material", "v2"))

        assert second.id == first.id
        assert _run(store.count()) == 1
        assert _run(store.get(first.id)).content == "v2"

    def test_upsert_refreshes_updated_at(self, store):
        first = _run(store.upsert("a.pdf", "material", "same"))
        second = _run(store.upsert("a.pdf", "material", "same"))
        assert second.updated_at >= first.updated_at

    def test_same_source_in_two_categories(self, store):
        _run(store.upsert("a.pdf", "material", "x"))
        _run(store.upsert("a.pdf", "uploads", "y"))
        assert _run(store.count()) == 2

    def test_list_is_ordered_by_id(self, store):
        for name in ("c.txt", "a.txt", "b.txt"):
            _run(store.upsert(name, "notes", name))
        assert [d.source for d in _run(store.list_all())] == ["c.txt", "a.txt", "b.txt"]


class TestDelete:
    def test_delete_by_id(self, store):
        doc = _run(store.upsert("a.txt", "uploads", "x"))
        assert _run(store.delete_by_id(doc.id)) is True
        assert _run(store.count()) == 0

    def test_delete_unknown_raises(self, store):
        with pytest.raises(DocumentNotFound):
            _run(store.delete_by_id(999))

    def test_get_unknown_raises(self, store):
        with pytest.raises(DocumentNotFound):
            _run(store.get(42))

    def test_delete_category_only_touches_that_category(self, store):
        _run(store.upsert("a.txt", "uploads", "x"))
        _run(store.upsert("b.txt", "uploads", "y"))
        _run(store.upsert("c.txt", "material", "z"))

        assert _run(store.delete_category("uploads")) == 2
        assert [d.category for d in _run(store.list_all())] == ["material"]

    def test_delete_empty_category(self, store):
        assert _run(store.delete_category("uploads")) == 0


class TestUnavailable:
    def test_unreachable_database_raises_store_unavailable(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}"
        engine = create_engine_for_url(url, use_null_pool=True)
        broken = KnowledgeStore(create_session_factory(engine))

        with pytest.raises(StoreUnavailable):
            _run(broken.list_all())
        with pytest.raises(StoreUnavailable):
            _run(broken.upsert("a.txt", "uploads", "x"))
