"""Tests for fanout.core.settings — guardrail configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fanout.core.settings import (
    DEFAULT_TARGET_LANGUAGES,
    MissionSettings,
    clear_settings_cache,
    get_settings,
)


class TestDefaults:
    def test_guardrail_defaults(self, settings):
        assert settings.max_per_day == 50
        assert settings.admission_delay_seconds == 45
        assert settings.retry_cap == 3
        assert settings.retry_delay_seconds == 300
        assert settings.stale_after_seconds == 7200
        assert settings.log_max_bytes == 5 * 1024 * 1024
        assert settings.log_backups == 5
        assert settings.target_languages == DEFAULT_TARGET_LANGUAGES
        assert settings.default_source_language == "en-gb"

    def test_breaker_timeout_never_below_floor(self, settings):
        assert settings.breaker_timeout == 900

    def test_breaker_timeout_twice_execution_time(self, tmp_path):
        s = MissionSettings(_env_file=None, data_dir=tmp_path, max_execution_time=600)
        assert s.breaker_timeout == 1200

    def test_paths_under_data_dir(self, settings, tmp_path):
        assert settings.log_file == tmp_path / "mission-log.txt"
        assert settings.database_path == str(tmp_path / "fanout.db")

    def test_active_requires_enabled_and_no_emergency_stop(self, tmp_path):
        assert MissionSettings(_env_file=None, data_dir=tmp_path).active
        assert not MissionSettings(_env_file=None, data_dir=tmp_path, enabled=False).active
        assert not MissionSettings(_env_file=None, data_dir=tmp_path, emergency_stop=True).active


class TestEnvironment:
    def test_reads_prefixed_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FANOUT_MAX_PER_DAY", "25")
        monkeypatch.setenv("FANOUT_TARGET_LANGUAGES", "en-us, en-au")
        monkeypatch.setenv("FANOUT_EMERGENCY_STOP", "true")
        s = MissionSettings(_env_file=None, data_dir=tmp_path)
        assert s.max_per_day == 25
        assert s.target_languages == ["en-us", "en-au"]
        assert s.emergency_stop is True

    def test_get_settings_is_cached(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FANOUT_DATA_DIR", str(tmp_path))
        clear_settings_cache()
        first = get_settings()
        assert get_settings() is first
        assert get_settings(_force_reload=True) is not first


class TestValidation:
    def test_rejects_empty_languages(self, tmp_path):
        with pytest.raises(ValidationError):
            MissionSettings(_env_file=None, data_dir=tmp_path, target_languages=[])

    def test_rejects_non_positive_quota(self, tmp_path):
        with pytest.raises(ValidationError):
            MissionSettings(_env_file=None, data_dir=tmp_path, max_per_day=0)

    def test_rejects_unknown_timezone(self, tmp_path):
        with pytest.raises(ValidationError):
            MissionSettings(_env_file=None, data_dir=tmp_path, timezone="Mars/Olympus_Mons")
