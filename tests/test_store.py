"""
Tests for the SQLite document store and write batches.
"""

import pytest

from comicforge.context.store import BatchOp, SQLiteDocumentStore
from comicforge.core.exceptions import (
    ConsistencyViolation,
    ResourceNotFoundError,
    ValidationError,
)


class TestDocuments:
    """Single-document operations and queries."""

    def test_set_and_get(self, store):
        store.set("panels", "p1", {"episode_id": "e1", "order": 0})

        doc = store.get("panels", "p1")

        assert doc.id == "p1"
        assert doc.data == {"episode_id": "e1", "order": 0}
        assert store.get("panels", "missing") is None

    def test_collections_are_separate(self, store):
        store.set("panels", "x", {"kind": "panel"})
        store.set("episodes", "x", {"kind": "episode"})

        assert store.get("panels", "x").data["kind"] == "panel"
        assert store.get("episodes", "x").data["kind"] == "episode"

    def test_update_merges_fields(self, store):
        store.set("panels", "p1", {"episode_id": "e1", "order": 0, "dialogue": "hi"})

        store.update("panels", "p1", {"order": 3})

        assert store.get("panels", "p1").data == {"episode_id": "e1", "order": 3, "dialogue": "hi"}

    def test_update_missing_document(self, store):
        with pytest.raises(ResourceNotFoundError):
            store.update("panels", "missing", {"order": 1})

    def test_delete(self, store):
        store.set("panels", "p1", {"order": 0})

        store.delete("panels", "p1")
        store.delete("panels", "p1")

        assert store.get("panels", "p1") is None

    def test_add_generates_id(self, store):
        doc_id = store.add("series", {"title": "Night Shift"})

        assert store.get("series", doc_id).data["title"] == "Night Shift"

    def test_require(self, store):
        with pytest.raises(ResourceNotFoundError) as exc_info:
            store.require("series", "missing")

        assert exc_info.value.details["resource_type"] == "series"

    def test_query_filters_and_orders(self, store):
        store.set("panels", "c", {"episode_id": "e1", "order": 2})
        store.set("panels", "a", {"episode_id": "e1", "order": 0})
        store.set("panels", "b", {"episode_id": "e1", "order": 1})
        store.set("panels", "z", {"episode_id": "e2", "order": 0})

        docs = store.query("panels", where={"episode_id": "e1"}, order_by="order")

        assert [d.id for d in docs] == ["a", "b", "c"]
        assert store.count("panels", where={"episode_id": "e2"}) == 1

    def test_query_rejects_unsafe_field_names(self, store):
        with pytest.raises(ValidationError):
            store.query("panels", where={"order') OR 1=1 --": 0})
        with pytest.raises(ValidationError):
            store.query("panels", order_by="order; DROP TABLE documents")

    def test_documents_persist_across_connections(self, tmp_path):
        path = tmp_path / "persist.db"
        first = SQLiteDocumentStore(path)
        first.set("series", "s1", {"title": "Night Shift"})
        first.close()

        second = SQLiteDocumentStore(path)
        try:
            assert second.get("series", "s1").data == {"title": "Night Shift"}
        finally:
            second.close()

    def test_in_memory_store(self):
        store = SQLiteDocumentStore(":memory:")
        store.set("series", "s1", {"title": "x"})

        assert store.count("series") == 1
        store.close()


class TestWriteBatch:
    """All-or-nothing batches."""

    def test_commit_applies_every_operation(self, store):
        store.set("panels", "p0", {"order": 0})
        store.set("panels", "p1", {"order": 1})
        store.set("panels", "p2", {"order": 2})

        batch = store.batch()
        batch.delete("panels", "p0")
        batch.update("panels", "p1", {"order": 0})
        batch.update("panels", "p2", {"order": 1})
        batch.commit(operation="delete_panel")

        assert store.get("panels", "p0") is None
        assert store.get("panels", "p1").data["order"] == 0
        assert store.get("panels", "p2").data["order"] == 1

    def test_nothing_applied_before_commit(self, store):
        store.set("panels", "p0", {"order": 0})

        batch = store.batch().delete("panels", "p0")

        assert len(batch) == 1
        assert store.get("panels", "p0") is not None

    def test_failed_batch_rolls_back(self, store):
        store.set("panels", "p0", {"order": 0})
        store.set("panels", "p1", {"order": 1})

        batch = store.batch()
        batch.delete("panels", "p0")
        batch.update("panels", "p1", {"order": 0})
        batch.update("panels", "gone", {"order": 1})

        with pytest.raises(ConsistencyViolation) as exc_info:
            batch.commit(operation="delete_panel")

        assert exc_info.value.nothing_changed
        assert exc_info.value.details["staged_ops"] == 3
        assert store.get("panels", "p0").data == {"order": 0}
        assert store.get("panels", "p1").data == {"order": 1}

    def test_stage_accepts_batch_ops(self, store):
        batch = store.batch()
        batch.stage(BatchOp("set", "series", "s1", {"title": "x"}))
        batch.commit()

        assert store.get("series", "s1").data == {"title": "x"}

    def test_unknown_operation_kind(self):
        with pytest.raises(ValidationError):
            BatchOp("upsert", "series", "s1")

    def test_batch_commits_once(self, store):
        batch = store.batch().set("series", "s1", {"title": "x"})
        batch.commit()

        with pytest.raises(ValidationError):
            batch.commit()
        with pytest.raises(ValidationError):
            batch.delete("series", "s1")
