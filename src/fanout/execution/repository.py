"""Mission records stored as meta fields on the content item.

The mission owns no table of its own for per-item state: each field of a
:class:`MissionRecord` is one meta key on the item, so the record lives
and dies with the content it describes.  Records are never deleted here.
"""

from __future__ import annotations

from datetime import date

from fanout.content.store import ContentStore
from fanout.core.timestamps import from_iso8601, to_iso8601
from fanout.execution.models import MissionRecord, MissionSnapshot, MissionStatus

STATUS_KEY = "_mission_status"
SNAPSHOT_KEY = "_mission_data"
RESULTS_KEY = "_mission_results"
ERROR_KEY = "_mission_error"
COMPLETED_KEY = "_mission_completed"
JOB_KEY = "_mission_job"
SCHEDULED_AT_KEY = "_mission_scheduled_at"
QUOTA_DAY_KEY = "_mission_quota_day"
ATTEMPTS_KEY = "_mission_attempts"

MISSION_META_KEYS = (
    STATUS_KEY,
    SNAPSHOT_KEY,
    RESULTS_KEY,
    ERROR_KEY,
    COMPLETED_KEY,
    JOB_KEY,
    SCHEDULED_AT_KEY,
    QUOTA_DAY_KEY,
    ATTEMPTS_KEY,
)


class MissionRepository:
    """Reads and writes :class:`MissionRecord` through a ``ContentStore``."""

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def get(self, item_id: int) -> MissionRecord | None:
        raw_status = self.store.get_meta(item_id, STATUS_KEY)
        if raw_status is None:
            return None

        snapshot = self.store.get_meta(item_id, SNAPSHOT_KEY)
        quota_day = self.store.get_meta(item_id, QUOTA_DAY_KEY)
        return MissionRecord(
            item_id=item_id,
            status=MissionStatus(raw_status),
            snapshot=MissionSnapshot.from_dict(snapshot) if snapshot else None,
            results={lang: int(new_id) for lang, new_id in (self.store.get_meta(item_id, RESULTS_KEY) or {}).items()},
            error=self.store.get_meta(item_id, ERROR_KEY),
            completed_at=from_iso8601(self.store.get_meta(item_id, COMPLETED_KEY)),
            job_id=self.store.get_meta(item_id, JOB_KEY),
            scheduled_at=from_iso8601(self.store.get_meta(item_id, SCHEDULED_AT_KEY)),
            quota_day=date.fromisoformat(quota_day) if quota_day else None,
            attempts=int(self.store.get_meta(item_id, ATTEMPTS_KEY, 0) or 0),
        )

    def exists(self, item_id: int) -> bool:
        return self.store.get_meta(item_id, STATUS_KEY) is not None

    def save(self, record: MissionRecord) -> MissionRecord:
        """Persist every field; ``None`` fields are removed from the item."""
        fields = {
            STATUS_KEY: record.status.value,
            SNAPSHOT_KEY: record.snapshot.to_dict() if record.snapshot else None,
            RESULTS_KEY: dict(record.results) if record.results else None,
            ERROR_KEY: record.error,
            COMPLETED_KEY: to_iso8601(record.completed_at),
            JOB_KEY: record.job_id,
            SCHEDULED_AT_KEY: to_iso8601(record.scheduled_at),
            QUOTA_DAY_KEY: record.quota_day.isoformat() if record.quota_day else None,
            ATTEMPTS_KEY: record.attempts or None,
        }
        stale = [key for key, value in fields.items() if value is None]
        for key, value in fields.items():
            if value is not None:
                self.store.set_meta(record.item_id, key, value)
        if stale:
            self.store.delete_meta(record.item_id, *stale)
        return record

    def clear(self, item_id: int) -> None:
        """Drop every mission field from an item (used on freshly created copies)."""
        self.store.delete_meta(item_id, *MISSION_META_KEYS)

    def find_by_status(self, *statuses: MissionStatus) -> list[MissionRecord]:
        records: list[MissionRecord] = []
        for status in statuses:
            for item_id in self.store.find_by_meta(STATUS_KEY, status.value):
                record = self.get(item_id)
                if record is not None:
                    records.append(record)
        return sorted(records, key=lambda r: r.item_id)
