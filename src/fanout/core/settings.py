"""Mission settings.

All guardrail knobs (quota, breaker timeout, retry cap, staleness windows,
log rotation) live in one pydantic-settings model read from ``FANOUT_*``
environment variables and an optional ``.env`` file.

Examples:
    >>> from fanout.core.settings import MissionSettings
    >>> s = MissionSettings(max_per_day=10, target_languages=["en-gb", "en-us"])
    >>> s.breaker_timeout
    900

    Environment::

        FANOUT_MAX_PER_DAY=25
        FANOUT_TARGET_LANGUAGES=en-gb,en-us,en-au
        FANOUT_EMERGENCY_STOP=true
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_TARGET_LANGUAGES = ["en-gb", "en-ca", "en-au", "en-us", "en-nz"]


class MissionSettings(BaseSettings):
    """Guardrail configuration for the duplication mission.

    Fields
    ──────
    enabled / emergency_stop : master switches; admission refuses work when off
    max_per_day              : daily admission quota
    max_execution_time       : worst-case seconds for one mission
    breaker_timeout_floor    : minimum breaker lifetime in seconds
    retry_cap                : consecutive failures allowed before giving up
    stale_after_seconds      : age after which a ``scheduled`` record times out
    log_max_bytes            : mission log rotation threshold
    """

    model_config = SettingsConfigDict(
        env_prefix="FANOUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Switches ─────────────────────────────────────────────────
    enabled: bool = True
    emergency_stop: bool = False

    # ── Quota ────────────────────────────────────────────────────
    max_per_day: int = 50
    timezone: str = "UTC"
    quota_atomic_reserve: bool = True
    quota_increment_attempts: int = 10
    quota_backoff_seconds: float = 0.05
    quota_retention_days: int = 2

    # ── Scheduling / execution ───────────────────────────────────
    admission_delay_seconds: int = 45
    max_execution_time: int = 120
    breaker_timeout_floor: int = 900
    pacing_delay_seconds: float = 3.0
    busy_requeue_delay_seconds: int = 300

    # ── Retry ────────────────────────────────────────────────────
    retry_cap: int = 3
    retry_delay_seconds: int = 300
    failure_count_ttl_seconds: int = 3600
    last_failure_ttl_seconds: int = 86400
    failure_decay_seconds: int = 3600

    # ── Health ───────────────────────────────────────────────────
    stale_after_seconds: int = 7200
    health_interval_seconds: int = 3600

    # ── Languages / content ──────────────────────────────────────
    target_languages: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_TARGET_LANGUAGES)
    )
    default_source_language: str = "en-gb"
    eligible_types: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["post"])
    identity_salt: str = "fanout-identity-salt"

    # ── Storage / logging ────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".fanout",
        description="Directory holding the database and mission log",
    )
    database: str | None = None
    log_file_name: str = "mission-log.txt"
    log_max_bytes: int = 5 * 1024 * 1024
    log_backups: int = 5
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("target_languages", "eligible_types", mode="before")
    @classmethod
    def _split_csv(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("target_languages")
    @classmethod
    def _require_languages(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("target_languages must not be empty")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {value!r}") from e
        return value

    @field_validator("max_per_day", "retry_cap", "log_backups", "quota_increment_attempts")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    # ── Derived properties ───────────────────────────────────────

    @property
    def breaker_timeout(self) -> int:
        """Breaker lifetime: twice the worst-case run, never below the floor."""
        return max(self.max_execution_time * 2, self.breaker_timeout_floor)

    @property
    def log_file(self) -> Path:
        return self.data_dir / self.log_file_name

    @property
    def database_path(self) -> str:
        return self.database or str(self.data_dir / "fanout.db")

    @property
    def active(self) -> bool:
        """Whether admission and execution hooks should run at all."""
        return self.enabled and not self.emergency_stop


_settings_cache: dict[str, MissionSettings] = {}


def get_settings(*, _force_reload: bool = False) -> MissionSettings:
    """Load, validate, and cache :class:`MissionSettings`."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = MissionSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
