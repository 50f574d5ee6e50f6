"""
DDL for every table fanout persists.

All cross-invocation coordination goes through these tables; nothing is
held in process memory between invocations.

Tables:
    - mission_state:   key/value singletons with per-key expiry
    - mission_quota:   per-day admission counters
    - mission_breaker: the single-row execution lock
    - mission_jobs:    one-shot and recurring scheduled jobs
    - content_items / content_meta: SQLite content store adapter
"""

from __future__ import annotations

from fanout.core.protocols import Connection

MISSION_TABLES = """
CREATE TABLE IF NOT EXISTS mission_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    expires_at TEXT
);

CREATE TABLE IF NOT EXISTS mission_quota (
    day TEXT PRIMARY KEY,
    count INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS mission_breaker (
    name TEXT PRIMARY KEY,
    owner_item_id INTEGER NOT NULL,
    acquired_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    timeout_seconds INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS mission_jobs (
    id TEXT PRIMARY KEY,
    hook TEXT NOT NULL,
    payload TEXT NOT NULL DEFAULT '{}',
    not_before TEXT NOT NULL,
    interval_seconds INTEGER,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_mission_jobs_due
    ON mission_jobs (status, not_before);
"""

CONTENT_TABLES = """
CREATE TABLE IF NOT EXISTS content_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_type TEXT NOT NULL DEFAULT 'post',
    title TEXT NOT NULL DEFAULT '',
    body TEXT NOT NULL DEFAULT '',
    language TEXT,
    source_item_id INTEGER,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_content_items_source
    ON content_items (source_item_id, language);

CREATE TABLE IF NOT EXISTS content_meta (
    item_id INTEGER NOT NULL,
    meta_key TEXT NOT NULL,
    meta_value TEXT NOT NULL,
    PRIMARY KEY (item_id, meta_key)
);

CREATE INDEX IF NOT EXISTS idx_content_meta_key
    ON content_meta (meta_key, meta_value);
"""


def _statements(script: str) -> list[str]:
    return [stmt.strip() for stmt in script.split(";") if stmt.strip()]


def apply_schema(conn: Connection, *, content: bool = True) -> None:
    """Create mission tables (and content store tables) if missing."""
    scripts = [MISSION_TABLES, CONTENT_TABLES] if content else [MISSION_TABLES]
    for script in scripts:
        for stmt in _statements(script):
            conn.execute(stmt)
    conn.commit()
