"""Harness settings and loading."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from casebox.errors import ConfigError

logger = logging.getLogger(__name__)


class HarnessSettings(BaseSettings):
    """Tunables for failure attribution, timers and logging.

    Every field can be set through a ``CASEBOX_``-prefixed environment
    variable, for example ``CASEBOX_MAX_STACK_DEPTH=32``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CASEBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    internal_paths: list[str] = Field(default_factory=list)
    max_stack_depth: int = 64
    locals_max_length: int = 10
    locals_max_string: int = 80
    timer_prefix: str = "simple_timer_"
    log_level: str = "WARNING"
    log_json: bool = False

    @field_validator("max_stack_depth", "locals_max_length", "locals_max_string")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("timer_prefix")
    @classmethod
    def validate_timer_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("timer_prefix must not be empty")
        return v


def load_settings(config_path: str | Path | None = None) -> HarnessSettings:
    """Build settings from an optional YAML file.

    ``CASEBOX_*`` environment variables win over values from the file, which
    win over the defaults. A missing file is treated as empty.
    """
    file_values = _read_settings_file(Path(config_path)) if config_path is not None else {}
    prefix = HarnessSettings.model_config.get("env_prefix", "")
    shadowed = {key for key in file_values if f"{prefix}{key}".upper() in os.environ}
    if shadowed:
        logger.debug(f"Environment overrides settings file keys: {sorted(shadowed)}")

    try:
        return HarnessSettings(
            **{key: value for key, value in file_values.items() if key not in shadowed}
        )
    except ValueError as e:
        raise ConfigError(str(e), cause=e) from e


def _read_settings_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        logger.debug(f"No settings file at {path}, using defaults")
        return {}
    loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping", path=str(path))
    return {str(key): value for key, value in loaded.items()}
