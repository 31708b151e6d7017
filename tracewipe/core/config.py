"""
Configuration for the TraceWipe engine.

Settings are loaded from environment variables (prefix ``TRACEWIPE_``),
a ``.env`` file, and optionally a YAML file passed to
:func:`load_settings`. Environment variables take precedence over values
defined in the YAML file, which take precedence over the defaults below.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(override=False)


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables and YAML."""

    # Durable store. Default is a SQLite file in the working directory.
    database_url: str = Field(default="sqlite+pysqlite:///tracewipe.db")

    # Retry buffer
    buffer_max_entries: int = Field(default=5000, ge=1)
    buffer_max_age_ms: int = Field(default=7 * 24 * 60 * 60 * 1000, ge=0)
    buffer_max_attempts: int = Field(default=10, ge=1)
    buffer_retry_spacing_ms: int = Field(default=5000, ge=0)
    buffer_flush_interval_minutes: float = Field(default=5, gt=0)

    # Rule safety defaults
    default_max_deletes_per_minute: int = Field(default=60, ge=1)
    default_cooldown_seconds: int = Field(default=0, ge=0)

    # Scheduler
    alarm_min_period_minutes: float = Field(default=1, gt=0)
    alarm_poll_interval_sec: float = Field(default=5.0, gt=0)

    # Pipeline
    rate_limit_window_ms: int = Field(default=60000, ge=1)
    dedup_window_ms: int = Field(default=2000, ge=0)
    dedup_max_entries: int = Field(default=500, ge=1)

    # Deletion
    cache_clear_min_interval_ms: int = Field(default=60000, ge=0)
    history_search_max_results: int = Field(default=1000, ge=1)

    # Action log
    action_log_max_entries: int = Field(default=200, ge=1)

    # HTTP surface
    http_host: str = Field(default="127.0.0.1")
    http_port: int = Field(default=8765)

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="TRACEWIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values handed in from a YAML overlay.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def _load_yaml_file(config_path: Path) -> Dict[str, Any]:
    """Load a YAML configuration file and return a dictionary."""
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file {config_path!s} not found")
    with config_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path!s} must contain a mapping")
    return data


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Build settings, optionally overlaying a YAML file.

    Unknown YAML keys are ignored with a warning so that older files keep
    loading after a setting is renamed.
    """
    if not config_path:
        return Settings()
    data = _load_yaml_file(Path(config_path))
    known = set(Settings.model_fields)
    unknown = sorted(key for key in data if key not in known)
    if unknown:
        logging.getLogger("config").warning("Ignoring unknown settings in %s: %s", config_path, ", ".join(unknown))
    return Settings(**{key: value for key, value in data.items() if key in known})


__all__ = ["Settings", "load_settings"]
