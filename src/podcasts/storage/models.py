"""Persisted metadata models.

Two independent tables keyed by feed URL:

- local: device-specific cache of feed contents and downloads (disposable)
- roaming: durable user intent and listening progress (sync-friendly)

All models are frozen; mutation replaces entries with updated copies.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class LocalEpisode(_Frozen):
    """Episode snapshot from the last successful fetch."""

    title: str
    description: str | None = None
    homepage_url: str | None = None
    duration_seconds: int | None = None
    published_at_ms: int | None = None
    enclosure_url: str


class DownloadRecord(_Frozen):
    """Downloaded enclosure, resolvable only through this record."""

    local_filename: str


class LocalPodcast(_Frozen):
    """Device-local snapshot of a feed."""

    title: str
    description: str | None = None
    homepage_url: str | None = None
    episodes: dict[str, LocalEpisode] = Field(default_factory=dict)
    downloaded: dict[str, DownloadRecord] = Field(default_factory=dict)
    last_refreshed_at_ms: int


class RoamingEpisode(_Frozen):
    """Listening progress for one episode."""

    completed: bool = False
    last_position_seconds: float | None = None
    last_played_at_ms: int | None = None


class RoamingPodcast(_Frozen):
    """User intent for one feed; may exist without any local snapshot."""

    starred: bool = False
    episodes: dict[str, RoamingEpisode] = Field(default_factory=dict)


class LocalMetadata(_Frozen):
    """Contents of the local metadata file."""

    podcasts: dict[str, LocalPodcast] = Field(default_factory=dict)


class RoamingMetadata(_Frozen):
    """Contents of the roaming metadata file."""

    podcasts: dict[str, RoamingPodcast] = Field(default_factory=dict)


class PodcastView(_Frozen):
    """Read-side join of both tables for one feed URL."""

    local: LocalPodcast | None = None
    roaming: RoamingPodcast | None = None


class EpisodeView(_Frozen):
    """Read-side join of both tables for one episode."""

    local: LocalEpisode | None = None
    roaming: RoamingEpisode | None = None


class HistoryEntry(_Frozen):
    """A played episode resolved against local metadata."""

    feed_url: str
    guid: str
    podcast_title: str
    episode: LocalEpisode
    status: RoamingEpisode
    downloaded: bool = False
