"""Configuration persistence."""

from __future__ import annotations

from trsync.config.config import ConfigManager, default_config_path

__all__ = ["ConfigManager", "default_config_path"]
