"""Content store boundary and its SQLite adapter.

The mission only needs a narrow view of the content system: read an item,
read/write named meta fields scoped to the item, and ask about
translations.  ``ContentStore`` is that view; ``SqliteContentStore``
implements it over ``content_items`` / ``content_meta`` so the CLI and
tests run against a real store.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

from fanout.content.models import ContentItem
from fanout.core.errors import ItemNotFound
from fanout.core.protocols import Connection
from fanout.core.timestamps import Clock, from_iso8601, to_db_timestamp, utc_now


@runtime_checkable
class ContentStore(Protocol):
    """What the mission reads and annotates in the content system."""

    def get_item(self, item_id: int) -> ContentItem | None: ...

    def get_meta(self, item_id: int, key: str, default: Any = None) -> Any: ...

    def set_meta(self, item_id: int, key: str, value: Any) -> None: ...

    def delete_meta(self, item_id: int, *keys: str) -> None: ...

    def find_by_meta(self, key: str, value: Any) -> list[int]: ...

    def language_of(self, item_id: int) -> str | None: ...

    def translation_source(self, item_id: int) -> int | None: ...

    def translations(self, item_id: int) -> dict[str, int]: ...


class SqliteContentStore:
    """``ContentStore`` over the ``content_items`` / ``content_meta`` tables.

    Meta values are stored as JSON documents.  A translation is an item
    whose ``source_item_id`` points at the original.
    """

    def __init__(self, conn: Connection, clock: Clock = utc_now) -> None:
        self._conn = conn
        self._clock = clock

    # -- items ---------------------------------------------------------------

    def create_item(
        self,
        *,
        title: str,
        item_type: str = "post",
        language: str | None = None,
        body: str = "",
        source_item_id: int | None = None,
    ) -> ContentItem:
        cursor = self._conn.execute(
            """
            INSERT INTO content_items (item_type, title, body, language, source_item_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (item_type, title, body, language, source_item_id, to_db_timestamp(self._clock())),
        )
        item_id = cursor.lastrowid
        self._conn.commit()
        item = self.get_item(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    def get_item(self, item_id: int) -> ContentItem | None:
        self._conn.execute(
            """
            SELECT id, item_type, title, language, source_item_id, created_at
            FROM content_items WHERE id = ?
            """,
            (item_id,),
        )
        row = self._conn.fetchone()
        if row is None:
            return None
        return ContentItem(
            id=row[0],
            item_type=row[1],
            title=row[2],
            language=row[3],
            source_item_id=row[4],
            created_at=from_iso8601(row[5]),
        )

    def body_of(self, item_id: int) -> str:
        self._conn.execute("SELECT body FROM content_items WHERE id = ?", (item_id,))
        row = self._conn.fetchone()
        return row[0] if row else ""

    def language_of(self, item_id: int) -> str | None:
        item = self.get_item(item_id)
        return item.language if item else None

    def translation_source(self, item_id: int) -> int | None:
        item = self.get_item(item_id)
        return item.source_item_id if item else None

    def translations(self, item_id: int) -> dict[str, int]:
        """Language → item id for the original and every translation of it."""
        item = self.get_item(item_id)
        if item is None:
            return {}
        root = item.source_item_id or item.id
        self._conn.execute(
            """
            SELECT id, language FROM content_items
            WHERE (id = ? OR source_item_id = ?) AND language IS NOT NULL
            ORDER BY id
            """,
            (root, root),
        )
        return {row[1]: row[0] for row in self._conn.fetchall()}

    # -- meta ----------------------------------------------------------------

    def get_meta(self, item_id: int, key: str, default: Any = None) -> Any:
        self._conn.execute(
            "SELECT meta_value FROM content_meta WHERE item_id = ? AND meta_key = ?",
            (item_id, key),
        )
        row = self._conn.fetchone()
        return json.loads(row[0]) if row else default

    def all_meta(self, item_id: int) -> dict[str, Any]:
        self._conn.execute(
            "SELECT meta_key, meta_value FROM content_meta WHERE item_id = ? ORDER BY meta_key",
            (item_id,),
        )
        return {row[0]: json.loads(row[1]) for row in self._conn.fetchall()}

    def set_meta(self, item_id: int, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO content_meta (item_id, meta_key, meta_value) VALUES (?, ?, ?)
            ON CONFLICT (item_id, meta_key) DO UPDATE SET meta_value = excluded.meta_value
            """,
            (item_id, key, json.dumps(value)),
        )
        self._conn.commit()

    def delete_meta(self, item_id: int, *keys: str) -> None:
        for key in keys:
            self._conn.execute(
                "DELETE FROM content_meta WHERE item_id = ? AND meta_key = ?",
                (item_id, key),
            )
        self._conn.commit()

    def find_by_meta(self, key: str, value: Any) -> list[int]:
        self._conn.execute(
            "SELECT item_id FROM content_meta WHERE meta_key = ? AND meta_value = ? ORDER BY item_id",
            (key, json.dumps(value)),
        )
        return [row[0] for row in self._conn.fetchall()]
