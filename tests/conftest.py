"""
Shared pytest fixtures for fanout tests.

- ``clock``: a frozen, manually advanced UTC clock
- ``conn``: in-memory SQLite with every table created
- ``settings``: settings rooted in ``tmp_path`` with real guardrail defaults
- ``control`` / ``make_control``: fully wired ``MissionControl`` whose
  sleeps are recorded instead of slept
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import structlog

from fanout.content.models import CallerSignal, ContentItem
from fanout.control import MissionControl
from fanout.core.schema import apply_schema
from fanout.core.settings import MissionSettings, clear_settings_cache
from fanout.ops.sqlite_conn import SqliteConnection

START = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture(autouse=True)
def _reset_global_state() -> Generator[None, None, None]:
    yield
    structlog.reset_defaults()
    clear_settings_cache()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def conn() -> Generator[SqliteConnection, None, None]:
    db = SqliteConnection(":memory:")
    apply_schema(db)
    yield db
    db.close()


@pytest.fixture()
def sleeps() -> list[float]:
    """Delays requested by the code under test."""
    return []


@pytest.fixture()
def settings(tmp_path) -> MissionSettings:
    return MissionSettings(_env_file=None, data_dir=tmp_path)


@pytest.fixture()
def make_control(
    tmp_path, conn, clock, sleeps
) -> Callable[..., MissionControl]:
    """Factory: ``make_control(max_per_day=2, duplicator=...)``."""

    def _make(*, duplicator: Any = None, caller_check: Any = None, **overrides: Any) -> MissionControl:
        settings = MissionSettings(_env_file=None, data_dir=tmp_path, **overrides)
        kwargs: dict[str, Any] = {"clock": clock, "sleep": sleeps.append}
        if duplicator is not None:
            kwargs["duplicator"] = duplicator
        if caller_check is not None:
            kwargs["caller_check"] = caller_check
        return MissionControl(settings, conn, **kwargs)

    return _make


@pytest.fixture()
def control(make_control) -> MissionControl:
    return make_control()


@pytest.fixture()
def make_item(conn, clock) -> Callable[..., ContentItem]:
    from fanout.content.store import SqliteContentStore

    store = SqliteContentStore(conn, clock=clock)

    def _make(title: str = "Spring launch", **kwargs: Any) -> ContentItem:
        kwargs.setdefault("language", "en-gb")
        return store.create_item(title=title, **kwargs)

    return _make


@pytest.fixture()
def signal() -> CallerSignal:
    return CallerSignal(user_agent="Make/production", remote_addr="203.0.113.5")


@pytest.fixture()
def log_categories() -> Callable[[MissionControl], list[str]]:
    """Categories of every entry in the active mission log, in order."""

    def _categories(control: MissionControl) -> list[str]:
        return [entry.category for entry in control.mission_log.entries()]

    return _categories
