"""The duplication primitive and its capability probe.

The primitive may be missing at runtime, so callers probe it first with
:func:`probe_duplicator` and get a typed :class:`DuplicatorCapability`
instead of attempting a call and hoping.

``ContentStoreDuplicator`` copies an item (row and meta) into a new
language variant of a :class:`SqliteContentStore`, the way a CMS
duplicate copies the post together with its custom fields.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from fanout.content.models import DuplicationResult, DuplicatorCapability
from fanout.content.store import SqliteContentStore
from fanout.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Duplicator(Protocol):
    """``duplicate(item_id, target_language) -> DuplicationResult``."""

    def duplicate(self, item_id: int, target_language: str) -> DuplicationResult: ...


def probe_duplicator(duplicator: Any) -> DuplicatorCapability:
    """Check whether ``duplicator`` can be called right now.

    An object may additionally expose ``available() -> bool`` to report
    that its backing API is switched off.
    """
    if duplicator is None:
        return DuplicatorCapability(False, "no duplicator configured")
    if not callable(getattr(duplicator, "duplicate", None)):
        return DuplicatorCapability(False, "duplicate API unavailable")
    available = getattr(duplicator, "available", None)
    if callable(available) and not available():
        return DuplicatorCapability(False, "duplicate API reported unavailable")
    return DuplicatorCapability(True)


class ContentStoreDuplicator:
    """Creates language variants inside a :class:`SqliteContentStore`."""

    def __init__(self, store: SqliteContentStore) -> None:
        self._store = store

    def duplicate(self, item_id: int, target_language: str) -> DuplicationResult:
        item = self._store.get_item(item_id)
        if item is None:
            return DuplicationResult.failed(f"item {item_id} not found")

        existing = self._store.translations(item_id)
        if target_language in existing:
            return DuplicationResult.created(existing[target_language])

        copy = self._store.create_item(
            title=item.title,
            item_type=item.item_type,
            language=target_language,
            body=self._store.body_of(item_id),
            source_item_id=item.source_item_id or item.id,
        )
        for key, value in self._store.all_meta(item_id).items():
            self._store.set_meta(copy.id, key, value)

        logger.debug("item_duplicated", item_id=item_id, new_id=copy.id, language=target_language)
        return DuplicationResult.created(copy.id)
