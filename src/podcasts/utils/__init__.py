"""Utility functions and helpers for podcasts."""

from podcasts.utils.cancellation import CancellationToken
from podcasts.utils.errors import (
    ConfigError,
    DownloadCancelled,
    DownloadError,
    EnclosureError,
    FeedError,
    InvalidConfigError,
    MetadataLoadError,
    NotFoundError,
    PaginationResolutionError,
    ParseError,
    PodcastsError,
    ProbeError,
    StorageError,
    TransportError,
)
from podcasts.utils.scheduling import Clock, Scheduler, TimerHandle

__all__ = [
    # Errors
    "PodcastsError",
    "ConfigError",
    "InvalidConfigError",
    "FeedError",
    "TransportError",
    "ParseError",
    "PaginationResolutionError",
    "StorageError",
    "MetadataLoadError",
    "NotFoundError",
    "EnclosureError",
    "DownloadError",
    "ProbeError",
    "DownloadCancelled",
    # Cancellation and timers
    "CancellationToken",
    "Clock",
    "Scheduler",
    "TimerHandle",
]
