"""Configuration management for casebox."""

from casebox.config.settings import HarnessSettings, load_settings

__all__ = [
    "HarnessSettings",
    "load_settings",
]
