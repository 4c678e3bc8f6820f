# Overview: Pytest coverage for the document store adapter.

"""
Document Store Adapter Tests

- Revisions: every write yields a new revision; stale revisions conflict.
- Creates never overwrite an existing id.
- Queries are partition scoped and support selector operators.
- get_document refuses ids from another tenant or of another kind.
"""

import pytest

from docledger.services.document_store import (
    DocumentConflictError,
    DocumentNotFoundError,
    get_document,
    matches,
)


class TestWrites:
    """insert / get / destroy."""

    def test_create_then_get(self, store):
        result = store.insert({"_id": "t1:note:a", "text": "hello"})

        assert result.rev.startswith("1-")
        doc = store.get("t1:note:a")
        assert doc["_rev"] == result.rev
        assert doc["kind"] == "note"
        assert doc["text"] == "hello"

    def test_update_requires_current_revision(self, store):
        first = store.insert({"_id": "t1:note:a", "text": "v1"})
        second = store.insert({"_id": "t1:note:a", "_rev": first.rev, "text": "v2"})

        assert second.rev.startswith("2-")
        with pytest.raises(DocumentConflictError):
            store.insert({"_id": "t1:note:a", "_rev": first.rev, "text": "stale"})
        assert store.get("t1:note:a")["text"] == "v2"

    def test_create_does_not_overwrite(self, store):
        store.insert({"_id": "t1:note:a", "text": "original"})

        with pytest.raises(DocumentConflictError):
            store.insert({"_id": "t1:note:a", "text": "duplicate"})
        assert store.get("t1:note:a")["text"] == "original"

    def test_destroy_checks_revision(self, store):
        result = store.insert({"_id": "t1:note:a"})

        with pytest.raises(DocumentConflictError):
            store.destroy("t1:note:a", "1-stale")
        store.destroy("t1:note:a", result.rev)

        with pytest.raises(DocumentNotFoundError):
            store.get("t1:note:a")
        with pytest.raises(DocumentNotFoundError):
            store.destroy("t1:note:a", result.rev)

    def test_recreate_after_destroy(self, store):
        result = store.insert({"_id": "t1:note:a", "text": "first"})
        store.destroy("t1:note:a", result.rev)

        again = store.insert({"_id": "t1:note:a", "text": "second"})
        assert again.rev.startswith("1-")
        assert store.get("t1:note:a")["text"] == "second"

    def test_kind_must_match_id(self, store):
        with pytest.raises(ValueError):
            store.insert({"_id": "t1:note:a", "kind": "stock"})

    def test_malformed_id_rejected(self, store):
        with pytest.raises(ValueError):
            store.insert({"_id": "no-partition"})


class TestFind:
    """Partition-scoped queries."""

    @pytest.fixture
    def notes(self, store):
        store.insert({"_id": "t1:note:a", "n": 1, "meta": {"tag": "x"}})
        store.insert({"_id": "t1:note:b", "n": 5, "meta": {"tag": "y"}})
        store.insert({"_id": "t1:note:c", "n": 3, "meta": {"tag": "x"}})
        store.insert({"_id": "t1:memo:d", "n": 9})
        store.insert({"_id": "t2:note:a", "n": 7})

    def test_partition_scoped(self, store, notes):
        ids = {d["_id"] for d in store.find("t1", {"kind": "note"})}
        assert ids == {"t1:note:a", "t1:note:b", "t1:note:c"}

    def test_operators_and_dotted_paths(self, store, notes):
        docs = store.find("t1", {"kind": "note", "n": {"$gte": 3}, "meta.tag": "x"})
        assert [d["_id"] for d in docs] == ["t1:note:c"]

    def test_sort_limit_skip(self, store, notes):
        docs = store.find("t1", {"kind": "note"}, sort=[{"n": "desc"}], limit=2)
        assert [d["n"] for d in docs] == [5, 3]

        docs = store.find("t1", {"kind": "note"}, sort=["n"], skip=1)
        assert [d["n"] for d in docs] == [3, 5]

    def test_kind_in_selector(self, store, notes):
        docs = store.find("t1", {"kind": {"$in": ["note", "memo"]}})
        assert len(docs) == 4

    def test_count_by_kind(self, store, notes):
        assert store.count_by_kind("t1") == {"note": 3, "memo": 1}
        assert store.count_by_kind()["note"] == 4


class TestGetDocument:
    """Tenant and kind checks on qualified ids."""

    def test_foreign_partition_is_not_found(self, store):
        store.insert({"_id": "t2:note:a"})

        with pytest.raises(DocumentNotFoundError):
            get_document(store, "t1", "note", "t2:note:a")

    def test_wrong_kind_is_not_found(self, store):
        store.insert({"_id": "t1:note:a"})

        with pytest.raises(DocumentNotFoundError):
            get_document(store, "t1", "memo", "t1:note:a")

    def test_own_document(self, store):
        store.insert({"_id": "t1:note:a", "n": 1})
        assert get_document(store, "t1", "note", "t1:note:a")["n"] == 1


class TestMatches:
    def test_missing_fields(self):
        assert matches({"a": 1}, {"b": {"$exists": False}})
        assert not matches({"a": 1}, {"b": 1})
        assert not matches({"a": None}, {"a": {"$gt": 0}})

    def test_regex_and_ne(self):
        assert matches({"name": "BATCH-001"}, {"name": {"$regex": "^BATCH"}})
        assert matches({"name": "x"}, {"name": {"$ne": "y"}})
