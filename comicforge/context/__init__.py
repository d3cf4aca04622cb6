"""
Context Module
==============

Document storage and generation-context assembly for characters and
panels.
"""

from .references import (
    CHARACTER_TEMPLATES,
    ReferenceContext,
    ReferenceContextBuilder,
    RegenerationPlan,
)
from .store import (
    BatchOp,
    Document,
    DocumentStore,
    SQLiteDocumentStore,
    WriteBatch,
)

__all__ = [
    "CHARACTER_TEMPLATES",
    "ReferenceContext",
    "ReferenceContextBuilder",
    "RegenerationPlan",
    "BatchOp",
    "Document",
    "DocumentStore",
    "SQLiteDocumentStore",
    "WriteBatch",
]
