"""Local and roaming metadata storage."""

from podcasts.storage.metadata import MetadataStore
from podcasts.storage.models import (
    DownloadRecord,
    EpisodeView,
    HistoryEntry,
    LocalEpisode,
    LocalPodcast,
    PodcastView,
    RoamingEpisode,
    RoamingPodcast,
)
from podcasts.storage.watcher import RoamingFileWatcher

__all__ = [
    "DownloadRecord",
    "EpisodeView",
    "HistoryEntry",
    "LocalEpisode",
    "LocalPodcast",
    "MetadataStore",
    "PodcastView",
    "RoamingEpisode",
    "RoamingFileWatcher",
    "RoamingPodcast",
]
