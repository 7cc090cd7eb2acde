"""Configuration schema models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from podcasts.feeds.fetcher import DEFAULT_USER_AGENT

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class StorageConfig(BaseModel):
    """Where metadata and enclosures live."""

    data_dir: Path | None = None  # If None, the platform user data dir
    roaming_path: Path | None = None  # If None, <data_dir>/roaming.json; may be a synced folder
    purge_after_days: int = Field(default=30, ge=1)


class RefreshConfig(BaseModel):
    """Staleness tolerances for cached feeds."""

    episode_list_max_age_hours: int = Field(default=168, ge=0)  # single podcast view
    starred_max_age_hours: int | None = None  # None: any cached copy is fine


class NetworkConfig(BaseModel):
    """HTTP client settings."""

    timeout_seconds: float = Field(default=30.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    chunk_size: int = Field(default=64 * 1024, gt=0)


class WatchConfig(BaseModel):
    """Roaming file watcher settings."""

    enabled: bool = True
    poll_interval_seconds: float = Field(default=2.0, gt=0)
    grace_seconds: float = Field(default=5.0, ge=0)
    debounce_seconds: float = Field(default=0.5, ge=0)


class GlobalConfig(BaseModel):
    """Global podcasts configuration."""

    version: str = "1"
    log_level: LogLevel = "INFO"

    storage: StorageConfig = Field(default_factory=StorageConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
