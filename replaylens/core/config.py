"""Settings, per-run replay options and the per-platform recording table."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_HOME = os.path.join(os.path.expanduser("~"), ".replaylens")


class ReplaySettings(BaseSettings):
    """Defaults for recording and replay, overridable through ``REPLAYLENS_*`` env vars."""

    model_config = SettingsConfigDict(
        env_prefix="REPLAYLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Replay
    max_retries: int = Field(3, ge=0, description="Retries per action after the first attempt")
    retry_delay: float = Field(1.0, ge=0, description="Seconds between attempts")
    stop_on_error: bool = Field(True, description="Abort the workflow on the first failed action")
    delay_between_actions: float = Field(0.0, ge=0, description="Seconds between actions, randomized +-30%")
    debug: bool = Field(False, description="Capture before/after screenshots and an HTML report")
    debug_dir: str = Field(os.path.join(_DEFAULT_HOME, "debug"))
    error_dir: str = Field(os.path.join(_DEFAULT_HOME, "errors"))

    # Matching thresholds
    initial_position_tolerance: float = Field(15.0, ge=0, description="Percent of viewport")
    relaxed_position_tolerance: float = Field(30.0, ge=0, description="Percent of viewport")
    initial_min_confidence: float = Field(0.7, ge=0, le=1)
    relaxed_min_confidence: float = Field(0.5, ge=0, le=1)
    initial_min_similarity: float = Field(0.7, ge=0, le=1, description="Image similarity needed on the first attempt")
    relaxed_min_similarity: float = Field(0.5, ge=0, le=1, description="Image similarity needed on the last retry")
    image_match_threshold: float = Field(0.1, ge=0, le=1, description="pixelmatch per-pixel threshold")

    # Recording
    sync_interval: float = Field(5.0, gt=0, description="Seconds between backup syncs")
    typing_debounce: float = Field(0.5, ge=0)
    scroll_debounce: float = Field(0.3, ge=0)
    min_scroll_distance: int = Field(50, ge=0, description="Pixels")
    injection_attempts: int = Field(3, ge=1)
    stability_timeout: float = Field(10.0, ge=0)
    dom_quiet_period: float = Field(0.5, ge=0)
    backup_path: str | None = Field(None, description="Optional JSON file mirroring captured events")

    # Storage and logging
    workflow_dir: str = Field(os.path.join(_DEFAULT_HOME, "workflows"))
    log_level: str = Field("INFO")
    json_logs: bool = Field(False)


def get_settings() -> ReplaySettings:
    return ReplaySettings()


@dataclass
class ExecuteOptions:
    """Per-run replay options."""

    max_retries: int = 3
    retry_delay: float = 1.0
    stop_on_error: bool = True
    debug: bool = False
    debug_dir: str = os.path.join(_DEFAULT_HOME, "debug")
    error_dir: str | None = os.path.join(_DEFAULT_HOME, "errors")
    timeout: float | None = None  # whole-run budget, checked between actions
    delay_between_actions: float = 0.0
    capture_error_screenshots: bool = True

    @classmethod
    def from_settings(cls, settings: ReplaySettings, **overrides) -> "ExecuteOptions":
        options = cls(
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            stop_on_error=settings.stop_on_error,
            debug=settings.debug,
            debug_dir=settings.debug_dir,
            error_dir=settings.error_dir,
            delay_between_actions=settings.delay_between_actions,
        )
        return options.merge(**overrides)

    def merge(self, **overrides) -> "ExecuteOptions":
        """Return a copy with overrides applied; camelCase keys are accepted."""
        known = {f.name for f in dataclasses.fields(self)}
        changes = {}
        for key, value in overrides.items():
            name = _snake(key)
            if name not in known:
                raise ValueError(f"Unknown execute option {key!r}")
            changes[name] = value
        if changes.get("max_retries") is not None and changes["max_retries"] < 0:
            raise ValueError("max_retries must be >= 0")
        return dataclasses.replace(self, **changes)


def _snake(name: str) -> str:
    return "".join("_" + c.lower() if c.isupper() else c for c in name).lstrip("_")


# ---------------------------------------------------------------------------
# Platform table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlatformConfig:
    name: str
    protocol_timeout: int  # ms
    navigation_stability_wait: int  # ms
    use_mobile_viewport: bool = False
    login_path: str = "/login"


PLATFORM_CONFIG: dict[str, PlatformConfig] = {
    "instagram": PlatformConfig("instagram", 180_000, 5_000, True, "/accounts/login/"),
    "facebook": PlatformConfig("facebook", 120_000, 3_000, True, "/login"),
    "twitter": PlatformConfig("twitter", 60_000, 2_000, False, "/login"),
    "default": PlatformConfig("default", 60_000, 1_000, False, "/login"),
}


def get_platform_config(platform: str | None) -> PlatformConfig:
    """Look up a platform by hint, falling back to ``default``."""
    key = (platform or "default").strip().lower()
    return PLATFORM_CONFIG.get(key, PLATFORM_CONFIG["default"])
