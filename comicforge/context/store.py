"""
Document Store
==============

Collections of JSON documents keyed by id, with point reads, equality
queries, ordering by a field, and atomic multi-document batches.

The engine depends only on :class:`DocumentStore` and :class:`WriteBatch`;
:class:`SQLiteDocumentStore` is the bundled implementation.
"""

import json
import logging
import re
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from ..core.exceptions import ConsistencyViolation, ResourceNotFoundError, ValidationError

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class Document:
    """A stored document."""

    id: str
    data: Dict[str, Any]


@dataclass
class BatchOp:
    """One staged write: ``set``, ``update`` (merge) or ``delete``."""

    kind: str
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    KINDS = ("set", "update", "delete")

    def __post_init__(self):
        if self.kind not in self.KINDS:
            raise ValidationError(
                f"Unknown batch operation: {self.kind}",
                field="kind",
                value=self.kind,
            )


class WriteBatch:
    """
    All-or-nothing group of writes.

    Operations are staged in memory and applied together by
    :meth:`commit`; if any of them fails, none is applied.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: List[BatchOp] = []
        self._committed = False

    def stage(self, op: BatchOp) -> "WriteBatch":
        if self._committed:
            raise ValidationError("Batch already committed", field="batch")
        self._ops.append(op)
        return self

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        return self.stage(BatchOp("set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        return self.stage(BatchOp("update", collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        return self.stage(BatchOp("delete", collection, doc_id))

    @property
    def operations(self) -> List[BatchOp]:
        return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self, operation: Optional[str] = None) -> None:
        """
        Apply every staged operation atomically.

        Args:
            operation: Name of the logical operation, for errors and logs

        Raises:
            ConsistencyViolation: If the batch could not be applied; the
                store is left exactly as it was before the call
        """
        if self._committed:
            raise ValidationError("Batch already committed", field="batch")
        self._store._apply_batch(self._ops, operation=operation)
        self._committed = True
        logger.debug(f"Committed batch of {len(self._ops)} ops ({operation or 'unnamed'})")


class DocumentStore(ABC):
    """Minimal document-store interface required by the engine."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Point read; ``None`` if absent."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op if absent)."""

    @abstractmethod
    def query(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Document]:
        """Documents matching every equality filter, optionally ordered."""

    @abstractmethod
    def _apply_batch(self, ops: List[BatchOp], operation: Optional[str] = None) -> None:
        """Apply ``ops`` in one transaction or raise ConsistencyViolation."""

    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Create a document, generating an id if none is given."""
        doc_id = doc_id or uuid.uuid4().hex[:20]
        self.set(collection, doc_id, data)
        return doc_id

    def require(self, collection: str, doc_id: str) -> Document:
        """Point read that raises if the document is missing."""
        doc = self.get(collection, doc_id)
        if doc is None:
            raise ResourceNotFoundError(
                f"{collection}/{doc_id} not found",
                resource_type=collection,
                resource_id=doc_id,
            )
        return doc

    def count(self, collection: str, where: Optional[Dict[str, Any]] = None) -> int:
        return len(self.query(collection, where=where))

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


class SQLiteDocumentStore(DocumentStore):
    """
    Document store backed by a single SQLite table of JSON documents.

    Each batch is applied inside one SQLite transaction.
    """

    def __init__(self, db_path: Union[str, Path] = "output/comicforge.db"):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database, or ``":memory:"``
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite schema."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_collection
                ON documents(collection)
            """)

        logger.info(f"Initialized document store at {self.db_path}")

    def close(self) -> None:
        self._conn.close()

    # -------------------------------------------------------------------------
    # Single-document operations
    # -------------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        row = self._conn.execute(
            "SELECT doc_id, data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return None
        return Document(id=row["doc_id"], data=json.loads(row["data"]))

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._conn:
            self._set(collection, doc_id, data)

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._conn:
            if not self._update(collection, doc_id, data):
                raise ResourceNotFoundError(
                    f"{collection}/{doc_id} not found",
                    resource_type=collection,
                    resource_id=doc_id,
                )

    def delete(self, collection: str, doc_id: str) -> None:
        with self._conn:
            self._delete(collection, doc_id)

    def query(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Document]:
        sql = "SELECT doc_id, data FROM documents WHERE collection = ?"
        params: List[Any] = [collection]

        for name, value in (where or {}).items():
            self._check_field(name)
            sql += f" AND json_extract(data, '$.{name}') = ?"
            params.append(value)

        if order_by:
            self._check_field(order_by)
            sql += f" ORDER BY json_extract(data, '$.{order_by}'), doc_id"
        else:
            sql += " ORDER BY rowid"

        rows = self._conn.execute(sql, params).fetchall()
        return [Document(id=row["doc_id"], data=json.loads(row["data"])) for row in rows]

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def _apply_batch(self, ops: List[BatchOp], operation: Optional[str] = None) -> None:
        try:
            with self._conn:
                for op in ops:
                    self._apply_op(op)
        except (sqlite3.Error, _MissingDocument) as e:
            logger.error(f"Batch {operation or 'unnamed'} rolled back: {e}")
            raise ConsistencyViolation(
                f"Batch could not be committed: {e}",
                operation=operation,
                staged_ops=len(ops),
            ) from e

    def _apply_op(self, op: BatchOp) -> None:
        if op.kind == "set":
            self._set(op.collection, op.doc_id, op.data)
        elif op.kind == "update":
            if not self._update(op.collection, op.doc_id, op.data):
                raise _MissingDocument(f"{op.collection}/{op.doc_id} not found")
        else:
            self._delete(op.collection, op.doc_id)

    # -------------------------------------------------------------------------
    # Statement helpers (callers own the transaction)
    # -------------------------------------------------------------------------

    def _set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO documents (collection, doc_id, data) VALUES (?, ?, ?)",
            (collection, doc_id, json.dumps(data)),
        )

    def _update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        row = self._conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return False
        merged = json.loads(row["data"])
        merged.update(data)
        self._conn.execute(
            "UPDATE documents SET data = ? WHERE collection = ? AND doc_id = ?",
            (json.dumps(merged), collection, doc_id),
        )
        return True

    def _delete(self, collection: str, doc_id: str) -> None:
        self._conn.execute(
            "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )

    @staticmethod
    def _check_field(name: str) -> None:
        if not _FIELD_RE.match(name):
            raise ValidationError(
                f"Invalid field name: {name}",
                field="field",
                value=name,
            )


class _MissingDocument(Exception):
    """Raised inside a batch transaction to force a rollback."""
