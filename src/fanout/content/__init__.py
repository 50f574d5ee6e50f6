"""Content store and duplication primitive boundary."""

from fanout.content.duplicator import ContentStoreDuplicator, Duplicator, probe_duplicator
from fanout.content.models import (
    CallerSignal,
    ContentItem,
    DuplicationResult,
    DuplicationStatus,
    DuplicatorCapability,
)
from fanout.content.store import ContentStore, SqliteContentStore

__all__ = [
    "CallerSignal",
    "ContentItem",
    "ContentStore",
    "ContentStoreDuplicator",
    "DuplicationResult",
    "DuplicationStatus",
    "Duplicator",
    "DuplicatorCapability",
    "SqliteContentStore",
    "probe_duplicator",
]
