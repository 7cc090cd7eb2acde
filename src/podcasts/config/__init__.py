"""Configuration loading and logging setup."""

from podcasts.config.logging import setup_logging
from podcasts.config.manager import ConfigManager, resolve_storage_paths
from podcasts.config.schema import GlobalConfig

__all__ = ["ConfigManager", "GlobalConfig", "resolve_storage_paths", "setup_logging"]
