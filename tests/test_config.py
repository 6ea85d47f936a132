"""Unit tests for settings, execute options and the platform table."""

from __future__ import annotations

import pytest

from replaylens.core.config import ExecuteOptions, ReplaySettings, get_platform_config


class TestReplaySettings:
    def test_defaults(self):
        settings = ReplaySettings()
        assert settings.max_retries == 3
        assert settings.initial_position_tolerance == 15.0
        assert settings.relaxed_position_tolerance == 30.0
        assert settings.initial_min_confidence == 0.7
        assert settings.relaxed_min_confidence == 0.5

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("REPLAYLENS_MAX_RETRIES", "5")
        monkeypatch.setenv("REPLAYLENS_DEBUG", "true")
        settings = ReplaySettings()
        assert settings.max_retries == 5
        assert settings.debug is True


class TestExecuteOptions:
    def test_from_settings_with_camel_case_overrides(self):
        options = ExecuteOptions.from_settings(ReplaySettings(), maxRetries=1, stopOnError=False)
        assert options.max_retries == 1
        assert options.stop_on_error is False

    def test_unknown_option_rejected(self):
        with pytest.raises(ValueError):
            ExecuteOptions().merge(retries=2)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            ExecuteOptions().merge(max_retries=-1)


class TestPlatformConfig:
    def test_known_platform(self):
        config = get_platform_config("Instagram")
        assert config.protocol_timeout == 180_000
        assert config.navigation_stability_wait == 5_000
        assert config.use_mobile_viewport is True

    def test_unknown_platform_falls_back(self):
        assert get_platform_config("myspace").name == "default"
        assert get_platform_config(None).protocol_timeout == 60_000
